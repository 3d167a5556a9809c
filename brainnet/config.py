"""
Model Configuration

All hyperparameters that define a network and its training loop are stored
in dataclasses. This makes it easy to save/load configurations inside a model
snapshot and to experiment with different settings.

Classes:
    NeuralNetworkConfig: Options for the feedforward network
    LSTMConfig: Options for the LSTM
    TrainStats: Statistics returned by train()

Functions:
    build_config: Merge keyword overrides into a config and validate it
    training_overrides: Apply per-call train() overrides to a config
"""

import math
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Dict, List, Optional, Union

from brainnet.exceptions import ConfigurationError
from brainnet.validation import validate_lstm_options, validate_neural_network_options

TRAINING_OVERRIDES = (
    "iterations",
    "error_thresh",
    "log",
    "log_period",
    "learning_rate",
    "decay_rate",
    "batch_size",
    "callback",
    "callback_period",
    "timeout",
)


@dataclass
class NeuralNetworkConfig:
    """
    Configuration for the feedforward NeuralNetwork.

    Attributes:
        input_size: Number of inputs (0 = detect from the first example)
        hidden_layers: Size of each hidden layer
        output_size: Number of outputs (0 = detect from the first example)
        binary_thresh: Threshold used by evaluate() for single-output models
        activation: sigmoid, tanh, relu, leaky-relu, linear or softmax
        leaky_relu_alpha: Negative slope for leaky-relu
        learning_rate: Initial step size, multiplied by decay_rate every epoch
        momentum: SGD momentum
        iterations: Maximum number of epochs
        error_thresh: Training stops once the epoch error is at or below this
        log: True to print progress, or a callable receiving the progress line
        log_period: Epochs between progress lines
        dropout: Probability of dropping a unit during training
        decay_rate: Learning-rate multiplier applied once per epoch
        batch_size: Examples per optimizer update
        callback: Called with {"iterations", "error"} every callback_period epochs
        callback_period: Epochs between callback calls
        timeout: Wall-clock budget in seconds, checked once per epoch
        praxis: Optimizer name: sgd, adam, rmsprop or adagrad
        beta1, beta2, epsilon: Adam parameters (epsilon is shared)
        rmsprop_decay: RMSprop running-average decay
        normalize: Scale inputs/outputs to [0, 1] with a Normalizer
        format_data: One-hot encode string values with a DataFormatter
        clip_gradient: Clamp batch gradients to [-clip, clip]; None disables
    """

    input_size: int = 0
    hidden_layers: List[int] = field(default_factory=lambda: [10])
    output_size: int = 0
    binary_thresh: float = 0.5
    activation: str = "sigmoid"
    leaky_relu_alpha: float = 0.01
    learning_rate: float = 0.3
    momentum: float = 0.1
    iterations: int = 20000
    error_thresh: float = 0.005
    log: Union[bool, Callable[[str], Any]] = False
    log_period: int = 10
    dropout: float = 0.0
    decay_rate: float = 0.999
    batch_size: int = 10
    callback: Optional[Callable[[dict], Any]] = None
    callback_period: int = 10
    timeout: float = math.inf
    praxis: str = "adam"
    beta1: float = 0.9
    beta2: float = 0.999
    epsilon: float = 1e-8
    rmsprop_decay: float = 0.9
    normalize: bool = True
    format_data: bool = True
    clip_gradient: Optional[float] = None

    def validate(self) -> None:
        validate_neural_network_options(_options(self))

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible options; callables are left out."""
        return _serializable_options(self)


@dataclass
class LSTMConfig:
    """
    Configuration for the LSTM.

    Same meaning as NeuralNetworkConfig where the names overlap. The LSTM has
    no normalizer, always clips gradients, and uses momentum only with
    praxis="sgd" (default 0, i.e. plain gradient descent).
    """

    input_size: int = 0
    hidden_layers: List[int] = field(default_factory=lambda: [20])
    output_size: int = 0
    activation: str = "tanh"
    leaky_relu_alpha: float = 0.01
    learning_rate: float = 0.01
    momentum: float = 0.0
    iterations: int = 20000
    error_thresh: float = 0.005
    log: Union[bool, Callable[[str], Any]] = False
    log_period: int = 10
    dropout: float = 0.0
    decay_rate: float = 0.999
    batch_size: int = 10
    callback: Optional[Callable[[dict], Any]] = None
    callback_period: int = 10
    timeout: float = math.inf
    praxis: str = "adam"
    beta1: float = 0.9
    beta2: float = 0.999
    epsilon: float = 1e-8
    rmsprop_decay: float = 0.9
    clip_gradient: float = 5.0

    def validate(self) -> None:
        validate_lstm_options(_options(self))

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible options; callables are left out."""
        return _serializable_options(self)


@dataclass
class TrainStats:
    """
    Statistics of the most recent train() call.

    Attributes:
        error: Error of the last completed epoch
        iterations: Number of completed epochs
        time: Wall-clock seconds spent in train()
        error_log: Error of every epoch, in order
    """

    error: float = 1.0
    iterations: int = 0
    time: float = 0.0
    error_log: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error,
            "iterations": self.iterations,
            "time": self.time,
            "errorLog": list(self.error_log),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TrainStats":
        if not data:
            return cls()
        return cls(
            error=float(data.get("error", 1.0)),
            iterations=int(data.get("iterations", 0)),
            time=float(data.get("time", 0.0)),
            error_log=[float(e) for e in data.get("errorLog", [])],
        )


def _options(config) -> Dict[str, Any]:
    return {config_field.name: getattr(config, config_field.name) for config_field in fields(config)}


def _serializable_options(config) -> Dict[str, Any]:
    options = {}
    for config_field in fields(config):
        value = getattr(config, config_field.name)
        if config_field.name == "log":
            value = value if isinstance(value, bool) else False
        elif callable(value):
            continue
        elif isinstance(value, list):
            value = list(value)
        options[config_field.name] = value
    return options


def build_config(config_class, config=None, **options):
    """
    Merge keyword overrides into a config and validate the result.

    Args:
        config_class: NeuralNetworkConfig or LSTMConfig
        config: Base config, or None for the defaults
        **options: Field overrides

    Returns:
        A new, validated config instance

    Raises:
        ConfigurationError: For unknown option names or invalid values
    """
    known = {config_field.name for config_field in fields(config_class)}
    unknown = sorted(set(options) - known)
    if unknown:
        raise ConfigurationError(f"Unknown option(s): {', '.join(unknown)}")

    base = config if config is not None else config_class()
    hidden_layers = options.get("hidden_layers", base.hidden_layers)
    if isinstance(hidden_layers, (list, tuple)):
        options["hidden_layers"] = list(hidden_layers)
    merged = replace(base, **options)
    merged.validate()
    return merged


def training_overrides(config, overrides: Dict[str, Any]):
    """
    Return a copy of config with the per-call train() overrides applied.

    Only loop options (TRAINING_OVERRIDES) may be overridden; the stored
    config of the model is not modified.
    """
    unknown = sorted(set(overrides) - set(TRAINING_OVERRIDES))
    if unknown:
        raise ConfigurationError(
            f"Option(s) cannot be changed per train() call: {', '.join(unknown)}"
        )
    merged = replace(config, **overrides)
    merged.validate()
    return merged
