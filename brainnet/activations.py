"""
Activation Functions for Neural Networks

This module implements the activation functions available to the feedforward
network and the LSTM output layer. Each activation is a small stateless class
with a forward function and its derivative.

All implementations are in pure NumPy and work on scalars or arrays.

Derivative convention:
    derivative() receives the ALREADY ACTIVATED value y = f(x), not the
    pre-activation x. This is how the networks call it: after a forward pass
    only the layer outputs are kept, so e.g. the sigmoid derivative is
    computed as y * (1 - y).

Softmax is the exception:
    Softmax is vector valued and its derivative is only defined here together
    with the cross-entropy loss. Softmax.derivative(y, target) returns
    y - target, which is the gradient of cross-entropy(softmax(x), target)
    with respect to x. It is NOT the Jacobian of softmax on its own, and it
    needs the target vector, so callers must special-case it.

Classes:
    Activation: Base class
    Sigmoid, Tanh, ReLU, LeakyReLU, Linear, Softmax

Functions:
    softmax: Numerically stable softmax
    get_activation: Create an activation from its name
"""

import numpy as np

from brainnet.exceptions import ConfigurationError


def softmax(logits: np.ndarray, axis: int = -1) -> np.ndarray:
    """
    Turn output-layer sums into class probabilities.

    Used by the softmax output activation of both networks. The row maximum
    is subtracted before exp() so large sums cannot overflow; the shift
    cancels in the ratio.

    Example:
        >>> softmax(np.array([1.0, 2.0, 3.0]))
        array([0.09003057, 0.24472847, 0.66524096])
    """
    max_logit = np.max(logits, axis=axis, keepdims=True)
    exponentials = np.exp(logits - max_logit)
    return exponentials / np.sum(exponentials, axis=axis, keepdims=True)


class Activation:
    """
    Base class for activation functions.

    Attributes:
        name: Name used by get_activation and stored in model snapshots
        is_vector: True when the function must see the whole layer at once
    """

    name = ""
    is_vector = False

    def function(self, x):
        raise NotImplementedError

    def derivative(self, activated):
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Sigmoid(Activation):
    """
    Logistic sigmoid.

    Formula:
        f(x) = 1 / (1 + exp(-x))
        f'(x) = y * (1 - y), with y = f(x)
    """

    name = "sigmoid"

    def function(self, x):
        return 1.0 / (1.0 + np.exp(-x))

    def derivative(self, activated):
        return activated * (1.0 - activated)


class Tanh(Activation):
    """
    Hyperbolic tangent.

    Formula:
        f(x) = tanh(x)
        f'(x) = 1 - y^2, with y = f(x)
    """

    name = "tanh"

    def function(self, x):
        return np.tanh(x)

    def derivative(self, activated):
        return 1.0 - activated**2


class ReLU(Activation):
    """
    Rectified Linear Unit.

    The derivative at 0 is taken as 0 (subgradient convention). Since
    y = max(0, x) is positive exactly when x is, the derivative can be read
    off the activated value.
    """

    name = "relu"

    def function(self, x):
        return np.maximum(0.0, x)

    def derivative(self, activated):
        return np.where(activated > 0, 1.0, 0.0)


class LeakyReLU(Activation):
    """
    Leaky ReLU: lets a small slope alpha through for negative inputs.

    The sign of y = f(x) equals the sign of x for alpha > 0, so the
    derivative is again a function of the activated value.
    """

    name = "leaky-relu"

    def __init__(self, alpha: float = 0.01):
        self.alpha = alpha

    def function(self, x):
        return np.where(x > 0, x, self.alpha * x)

    def derivative(self, activated):
        return np.where(activated > 0, 1.0, self.alpha)

    def __repr__(self) -> str:
        return f"LeakyReLU(alpha={self.alpha})"


class Linear(Activation):
    """Identity activation."""

    name = "linear"

    def function(self, x):
        return x

    def derivative(self, activated):
        return np.ones_like(activated, dtype=np.float64)


class Softmax(Activation):
    """
    Softmax over a whole layer.

    derivative() is coupled to the cross-entropy loss, see the module
    docstring: it returns y - target rather than a Jacobian.
    """

    name = "softmax"
    is_vector = True

    def function(self, x):
        return softmax(np.asarray(x, dtype=np.float64))

    def derivative(self, activated, target=None):
        if target is None:
            raise ValueError(
                "Softmax derivative is defined with cross-entropy and needs the target"
            )
        return activated - target


ACTIVATIONS = {
    "sigmoid": Sigmoid,
    "tanh": Tanh,
    "relu": ReLU,
    "leaky-relu": LeakyReLU,
    "linear": Linear,
    "softmax": Softmax,
}


def get_activation(name: str, alpha: float = 0.01) -> Activation:
    """
    Create an activation function from its name.

    Args:
        name: One of sigmoid, tanh, relu, leaky-relu, linear, softmax
              (case-insensitive)
        alpha: Negative slope, only used by leaky-relu

    Returns:
        A new Activation instance

    Raises:
        ConfigurationError: If the name is unknown
    """
    key = str(name).lower()
    if key not in ACTIVATIONS:
        raise ConfigurationError(f"Unknown activation function: {name}")
    if key == "leaky-relu":
        return LeakyReLU(alpha)
    return ACTIVATIONS[key]()
