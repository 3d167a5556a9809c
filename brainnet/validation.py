"""
Validation of options, training data and model snapshots.

These checks run at the boundary (config construction, the start of
train(), loading a snapshot) so the training loop itself never has to
check anything.

Functions:
    validate_neural_network_options: Check feedforward options
    validate_lstm_options: Check LSTM options
    validate_training_data: Check labelled examples or sequences
    validate_model_json: Parse a snapshot and check its type
"""

import json
import math
import numbers
from typing import Any, Dict, List, Optional

from brainnet.exceptions import ConfigurationError, TrainingDataError

VALID_ACTIVATIONS = ("sigmoid", "tanh", "relu", "leaky-relu", "linear", "softmax")
VALID_OPTIMIZERS = ("sgd", "adam", "rmsprop", "adagrad")


def _is_int(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def validate_neural_network_options(options: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check the options shared by every network type.

    Only keys present in options are checked.

    Returns:
        The options, unchanged

    Raises:
        ConfigurationError: Naming the first invalid option
    """
    for key in ("input_size", "output_size"):
        if key in options and (not _is_int(options[key]) or options[key] < 0):
            raise ConfigurationError(f"{key} must be a non-negative integer")

    if "hidden_layers" in options:
        hidden_layers = options["hidden_layers"]
        if not isinstance(hidden_layers, (list, tuple)):
            raise ConfigurationError("hidden_layers must be a list")
        for size in hidden_layers:
            if not _is_int(size) or size <= 0:
                raise ConfigurationError("Hidden layer size must be a positive integer")

    if "activation" in options and str(options["activation"]).lower() not in VALID_ACTIVATIONS:
        raise ConfigurationError(f"Invalid activation function: {options['activation']}")

    _check_positive(options, "learning_rate", "Learning rate must be a positive number")
    _check_range(options, "momentum", 0.0, 1.0, upper_inclusive=True, message="Momentum must be between 0 and 1")
    if "iterations" in options and (not _is_int(options["iterations"]) or options["iterations"] <= 0):
        raise ConfigurationError("Iterations must be a positive integer")
    _check_positive(options, "error_thresh", "Error threshold must be a positive number")
    _check_range(options, "dropout", 0.0, 1.0, upper_inclusive=False, message="Dropout must be in [0, 1)")

    if "decay_rate" in options:
        decay_rate = options["decay_rate"]
        if not _is_number(decay_rate) or decay_rate <= 0 or decay_rate > 1:
            raise ConfigurationError("Decay rate must be in (0, 1]")

    for key in ("batch_size", "log_period", "callback_period"):
        if key in options and (not _is_int(options[key]) or options[key] <= 0):
            raise ConfigurationError(f"{key} must be a positive integer")

    if "praxis" in options and str(options["praxis"]).lower() not in VALID_OPTIMIZERS:
        raise ConfigurationError(f"Invalid optimizer: {options['praxis']}")

    _check_range(options, "beta1", 0.0, 1.0, upper_inclusive=False, message="Beta1 must be in [0, 1)")
    _check_range(options, "beta2", 0.0, 1.0, upper_inclusive=False, message="Beta2 must be in [0, 1)")
    _check_positive(options, "epsilon", "Epsilon must be a positive number")
    _check_range(options, "rmsprop_decay", 0.0, 1.0, upper_inclusive=False, message="RMSprop decay must be in [0, 1)")

    if "timeout" in options:
        timeout = options["timeout"]
        if not _is_number(timeout) or math.isnan(timeout) or timeout <= 0:
            raise ConfigurationError("Timeout must be a positive number of seconds")

    if options.get("clip_gradient") is not None:
        _check_positive(options, "clip_gradient", "Gradient clipping value must be a positive number")

    if "callback" in options and options["callback"] is not None and not callable(options["callback"]):
        raise ConfigurationError("callback must be callable")

    if "log" in options and not (isinstance(options["log"], bool) or callable(options["log"])):
        raise ConfigurationError("log must be a bool or a callable")

    return options


def validate_lstm_options(options: Dict[str, Any]) -> Dict[str, Any]:
    """Check LSTM options: the shared ones plus a mandatory clip_gradient."""
    options = validate_neural_network_options(options)
    if "clip_gradient" in options and options["clip_gradient"] is None:
        raise ConfigurationError("Gradient clipping value must be a positive number")
    return options


def _check_positive(options, key, message):
    if key in options:
        value = options[key]
        if not _is_number(value) or value <= 0:
            raise ConfigurationError(message)


def _check_range(options, key, lower, upper, upper_inclusive, message):
    if key not in options:
        return
    value = options[key]
    if not _is_number(value) or value < lower:
        raise ConfigurationError(message)
    if value > upper or (not upper_inclusive and value == upper):
        raise ConfigurationError(message)


def validate_training_data(data: List[Dict[str, Any]], is_sequence: bool = False) -> bool:
    """
    Check that training data is a non-empty list of input/output items.

    Args:
        data: List of {"input": ..., "output": ...} items
        is_sequence: Items hold sequences (lists of vectors) instead of vectors

    Raises:
        TrainingDataError: Describing the first malformed item
    """
    if not data:
        raise TrainingDataError("Training data cannot be empty")

    for i, item in enumerate(data):
        if not isinstance(item, dict) or "input" not in item or "output" not in item:
            raise TrainingDataError(
                f"Training data item at index {i} must have 'input' and 'output' keys"
            )
        for key in ("input", "output"):
            value = item[key]
            if isinstance(value, (str, bytes)) or not hasattr(value, "__len__"):
                raise TrainingDataError(f"{key.capitalize()} at index {i} must be a list")
            if len(value) == 0:
                raise TrainingDataError(f"{key.capitalize()} at index {i} cannot be empty")
            if is_sequence:
                for j, step in enumerate(value):
                    if isinstance(step, (str, bytes)) or not hasattr(step, "__len__"):
                        raise TrainingDataError(
                            f"{key.capitalize()} sequence item at index {i},{j} must be a list"
                        )
    return True


def validate_model_json(json_string: str, expected_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Parse a model snapshot and check its "type" field.

    Args:
        json_string: Output of a model's to_json()
        expected_type: Required value of "type"; None accepts any type

    Raises:
        ConfigurationError: For invalid JSON, a missing type or the wrong type
    """
    try:
        data = json.loads(json_string)
    except (TypeError, ValueError) as error:
        raise ConfigurationError(f"Invalid JSON: {error}") from error

    if not isinstance(data, dict) or "type" not in data:
        raise ConfigurationError("Missing 'type' field in model JSON")
    if expected_type is not None and data["type"] != expected_type:
        raise ConfigurationError(
            f"Invalid model type: expected '{expected_type}', got '{data['type']}'"
        )
    return data
