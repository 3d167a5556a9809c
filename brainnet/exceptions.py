"""
Exceptions raised by brainnet.

Every error the library raises on its own derives from BrainError, so callers
can catch the whole family at once. The concrete classes also derive from the
closest built-in exception (ValueError, RuntimeError) so generic handlers keep
working.

Classes:
    BrainError: Base class for library errors
    ConfigurationError: Unknown activation/optimizer name or invalid option value
    UninitializedStateError: Operation needs parameters that do not exist yet
    ShapeMismatchError: Gradients or a loaded snapshot do not fit the parameters
    TrainingDataError: Training data is empty or malformed

File access errors are not wrapped: OSError propagates unchanged.
"""


class BrainError(Exception):
    """Base class for all brainnet errors."""


class ConfigurationError(BrainError, ValueError):
    """Raised for an unknown activation/optimizer name or an invalid option."""


class UninitializedStateError(BrainError, RuntimeError):
    """Raised when an operation runs before initialize() or train()."""


class ShapeMismatchError(BrainError, ValueError):
    """Raised when arrays do not match the shapes of the current parameters."""


class TrainingDataError(BrainError, ValueError):
    """Raised when training data is empty or items lack input/output."""
