"""
Feedforward Neural Network

This module implements a fully connected network trained with
backpropagation. Every layer is a dense affine map followed by the configured
activation:

    Input vector (sizes[0])
           |
    [W0 @ x + b0] -> activation -> (dropout)     hidden layer 1
           |
          ...
           |
    [Wk @ h + bk] -> activation                  output layer (sizes[-1])

Shapes:
    weights[l]: (sizes[l + 1], sizes[l])
    biases[l]:  (sizes[l + 1],)

Forward/backward contract:
    forward() returns a ForwardTrace holding every layer's values. backward()
    takes that trace plus the target and returns the gradients. Nothing is
    cached on the network, so two callers never share forward state.

Gradients:
    backward() returns the gradient of the squared-error loss
        L = 0.5 * sum((output - target)^2)
    with respect to every weight and bias. The classic delta rule writes the
    output delta as (target - output) * f'(output); our delta is the negative
    of that, which lets every optimizer subtract the gradient. With the
    softmax activation the loss is cross-entropy and the output delta is
    output - target.

Classes:
    ForwardTrace: Layer values of one forward pass
    NeuralNetwork: The network, its training loop and its (de)serialization

Functions:
    gaussian_random: Normal samples via the Box-Muller transform
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

from brainnet.activations import Sigmoid, get_activation
from brainnet.config import NeuralNetworkConfig, TrainStats, build_config, training_overrides
from brainnet.exceptions import ConfigurationError, ShapeMismatchError, UninitializedStateError
from brainnet.optimizer import create_optimizer
from brainnet.preprocessing import DataFormatter, Normalizer
from brainnet.training import fit
from brainnet.validation import validate_model_json, validate_training_data


def gaussian_random(shape, standard_deviation: float = 1.0, mean: float = 0.0) -> np.ndarray:
    """
    Draw normal samples with the Box-Muller transform.

    Formula:
        z = sqrt(-2 ln(u1)) * sin(2 pi u2),   u1, u2 ~ U(0, 1]

    Args:
        shape: Output shape
        standard_deviation: Scale of the distribution
        mean: Center of the distribution

    Returns:
        Array of the given shape
    """
    u1 = 1.0 - np.random.random_sample(shape)
    u2 = 1.0 - np.random.random_sample(shape)
    standard_normal = np.sqrt(-2.0 * np.log(u1)) * np.sin(2.0 * np.pi * u2)
    return mean + standard_deviation * standard_normal


@dataclass
class ForwardTrace:
    """
    Values produced by one forward pass.

    Attributes:
        activations: Post-activation value of every layer, before dropout.
                     activations[0] is the input.
        layers: Value each layer passes on, after dropout scaling.
        masks: Dropout keep-mask per layer (1 keep, 0 drop), None when off.
        dropout: Dropout rate used for this pass
    """

    activations: List[np.ndarray]
    layers: List[np.ndarray]
    masks: List[Optional[np.ndarray]]
    dropout: float = 0.0

    @property
    def output(self) -> np.ndarray:
        return self.layers[-1]


class NeuralNetwork:
    """
    Feedforward neural network.

    Lifecycle:
        created -> initialize() (explicit, or implicit on the first train())
        -> train() any number of times -> run() / evaluate() / to_json()

    Calling initialize() again draws fresh weights and discards the optimizer
    state.

    Example usage:
        network = NeuralNetwork(hidden_layers=[3], activation="tanh")
        network.train([
            {"input": [0, 0], "output": [0]},
            {"input": [0, 1], "output": [1]},
            {"input": [1, 0], "output": [1]},
            {"input": [1, 1], "output": [0]},
        ])
        network.run([1, 0])  # -> array([0.98...])

    Attributes:
        config: NeuralNetworkConfig
        sizes: Layer sizes [input, hidden..., output]
        weights: Weight matrices, weights[l] of shape (sizes[l+1], sizes[l])
        biases: Bias vectors, biases[l] of shape (sizes[l+1],)
        optimizer: Optimizer holding the shadow state of the parameters
        normalizer: Normalizer, or None when config.normalize is False
        data_formatter: DataFormatter, or None when config.format_data is False
        train_stats: TrainStats of the last train() call
    """

    model_type = "NeuralNetwork"

    def __init__(self, config: Optional[NeuralNetworkConfig] = None, **options):
        """
        Args:
            config: Base configuration, defaults to NeuralNetworkConfig()
            **options: Overrides for individual config fields

        Raises:
            ConfigurationError: For unknown or invalid options
        """
        self.config = build_config(NeuralNetworkConfig, config, **options)

        self.activation = get_activation(self.config.activation, self.config.leaky_relu_alpha)
        # Softmax only makes sense on the whole output layer.
        self.hidden_activation = Sigmoid() if self.activation.is_vector else self.activation

        self.sizes: List[int] = []
        self.weights: List[np.ndarray] = []
        self.biases: List[np.ndarray] = []
        self.optimizer = None

        self.normalizer = Normalizer() if self.config.normalize else None
        self.data_formatter = DataFormatter() if self.config.format_data else None

        self.train_stats = TrainStats()
        self.is_initialized = False
        self.is_training = False

    def initialize(self) -> None:
        """
        Allocate weights and biases with Xavier/Glorot initialization.

        Every weight and bias entry is drawn from N(0, sqrt(2 / (fan_in + fan_out))).

        Raises:
            ConfigurationError: If the input or output size is still 0
        """
        self.sizes = [self.config.input_size, *self.config.hidden_layers, self.config.output_size]
        if any(size <= 0 for size in self.sizes):
            raise ConfigurationError(
                f"All layer sizes must be positive, got {self.sizes}; "
                "set input_size/output_size or train on data first"
            )

        self.weights = []
        self.biases = []
        for fan_in, fan_out in zip(self.sizes[:-1], self.sizes[1:]):
            standard_deviation = np.sqrt(2.0 / (fan_in + fan_out))
            self.weights.append(gaussian_random((fan_out, fan_in), standard_deviation))
            self.biases.append(gaussian_random(fan_out, standard_deviation))

        self._initialize_optimizer()
        self.is_initialized = True

    def _initialize_optimizer(self) -> None:
        self.optimizer = create_optimizer(
            self.config.praxis,
            learning_rate=self.config.learning_rate,
            momentum=self.config.momentum,
            beta1=self.config.beta1,
            beta2=self.config.beta2,
            epsilon=self.config.epsilon,
            decay=self.config.rmsprop_decay,
        )
        self.optimizer.initialize(self.get_parameters())

    def get_parameters(self) -> Dict[str, np.ndarray]:
        """
        Get all trainable parameters.

        Returns:
            Dictionary of "weights.{l}" / "biases.{l}" -> array. The arrays are
            the live parameters, not copies.
        """
        params = {}
        for layer, (weight, bias) in enumerate(zip(self.weights, self.biases)):
            params[f"weights.{layer}"] = weight
            params[f"biases.{layer}"] = bias
        return params

    def set_parameters(self, params: Dict[str, np.ndarray]) -> None:
        """
        Copy parameter values into the network.

        Raises:
            ShapeMismatchError: If a name is missing or a shape differs
        """
        current = self.get_parameters()
        for name, target in current.items():
            if name not in params:
                raise ShapeMismatchError(f"Missing parameter '{name}'")
            value = np.asarray(params[name], dtype=np.float64)
            if value.shape != target.shape:
                raise ShapeMismatchError(
                    f"Shape mismatch for '{name}': expected {target.shape}, got {value.shape}"
                )
            np.copyto(target, value)

    def forward(self, input_vector, training: Optional[bool] = None) -> ForwardTrace:
        """
        Forward pass through every layer.

        For layer l:
            pre[l+1] = biases[l] + weights[l] @ layer[l]
            activation[l+1] = f(pre[l+1])

        In training mode with dropout p > 0, the input layer and every hidden
        layer keep each unit with probability 1 - p and scale kept units by
        1 / (1 - p) (inverted dropout).

        Args:
            input_vector: Already formatted/normalized input of size sizes[0]
            training: Apply dropout; defaults to whether train() is running

        Returns:
            ForwardTrace; trace.output is the output layer

        Raises:
            UninitializedStateError: Before initialize()
            ShapeMismatchError: If the input has the wrong size
        """
        self._check_initialized()
        x = np.asarray(input_vector, dtype=np.float64)
        if x.shape != (self.sizes[0],):
            raise ShapeMismatchError(f"Expected input of size {self.sizes[0]}, got shape {x.shape}")

        if training is None:
            training = self.is_training
        dropout = self.config.dropout if training else 0.0

        last = len(self.weights)
        activations = [x]
        layers = []
        masks = []

        for l in range(last + 1):
            raw = activations[l]
            if dropout > 0 and l < last:
                mask = (np.random.random_sample(raw.shape) > dropout).astype(np.float64)
                layer = raw * mask / (1.0 - dropout)
            else:
                mask = None
                layer = raw
            masks.append(mask)
            layers.append(layer)

            if l < last:
                pre_activation = self.biases[l] + self.weights[l] @ layer
                activation = self.activation if l == last - 1 else self.hidden_activation
                activations.append(activation.function(pre_activation))

        return ForwardTrace(activations=activations, layers=layers, masks=masks, dropout=dropout)

    def backward(self, trace: ForwardTrace, target) -> Dict[str, np.ndarray]:
        """
        Backpropagate the error of one example.

        Deltas (gradient of the loss w.r.t. each pre-activation):
            output:  delta = (output - target) * f'(output)
                     (output - target for softmax + cross-entropy)
            hidden:  delta[l] = (weights[l].T @ delta[l+1]) * mask[l] / (1 - p)
                                * f'(activation[l])

        Gradients:
            d weights[l] = outer(delta[l+1], layer[l])
            d biases[l]  = delta[l+1]

        Args:
            trace: Result of forward() for this example
            target: Expected output of size sizes[-1]

        Returns:
            Dictionary of parameter name -> gradient, same shapes as
            get_parameters()
        """
        target = np.asarray(target, dtype=np.float64)
        output = trace.output
        if target.shape != output.shape:
            raise ShapeMismatchError(f"Expected target of shape {output.shape}, got {target.shape}")

        if self.activation.is_vector:
            delta = self.activation.derivative(output, target)
        else:
            delta = (output - target) * self.activation.derivative(output)

        gradients = {}
        for l in reversed(range(len(self.weights))):
            gradients[f"weights.{l}"] = np.outer(delta, trace.layers[l])
            gradients[f"biases.{l}"] = delta

            if l > 0:
                error = self.weights[l].T @ delta
                if trace.masks[l] is not None:
                    error = error * trace.masks[l] / (1.0 - trace.dropout)
                delta = error * self.hidden_activation.derivative(trace.activations[l])

        return gradients

    def _compute_batch(self, batch):
        gradients = {name: np.zeros_like(param) for name, param in self.get_parameters().items()}
        total_error = 0.0

        for item in batch:
            trace = self.forward(item["input"], training=True)
            for name, gradient in self.backward(trace, item["output"]).items():
                gradients[name] += gradient
            total_error += float(np.mean((trace.output - item["output"]) ** 2))

        return total_error / len(batch), gradients

    def train(self, data: List[Dict[str, Any]], **options) -> TrainStats:
        """
        Train the network on labelled examples.

        Each epoch shuffles the data, splits it into batches of batch_size,
        sums the gradients of each batch and applies one optimizer update per
        batch. See brainnet.training for the stopping rules.

        Args:
            data: List of {"input": [...], "output": [...]} items
            **options: Per-call overrides of the loop options (iterations,
                       error_thresh, learning_rate, log, callback, ...)

        Returns:
            TrainStats, also stored in self.train_stats
        """
        config = training_overrides(self.config, options)
        validate_training_data(data)

        examples = self._prepare(data)

        if self.config.input_size == 0:
            self.config.input_size = len(examples[0]["input"])
        if self.config.output_size == 0:
            self.config.output_size = len(examples[0]["output"])

        if not self.is_initialized:
            self.initialize()
        self._check_example_sizes(examples)

        self.is_training = True
        try:
            stats = fit(
                examples,
                self._compute_batch,
                self.get_parameters(),
                self.optimizer,
                config,
                clip_value=self.config.clip_gradient,
            )
        finally:
            self.is_training = False

        self.train_stats = stats
        return stats

    def _prepare(self, data):
        if self.data_formatter is not None:
            examples = self.data_formatter.format(data)
        else:
            examples = [
                {
                    "input": np.asarray(item["input"], dtype=np.float64),
                    "output": np.asarray(item["output"], dtype=np.float64),
                }
                for item in data
            ]

        if self.normalizer is not None:
            self.normalizer.fit(examples)
            examples = self.normalizer.transform(examples)
        return examples

    def _check_example_sizes(self, examples) -> None:
        for i, item in enumerate(examples):
            if len(item["input"]) != self.sizes[0] or len(item["output"]) != self.sizes[-1]:
                raise ShapeMismatchError(
                    f"Example {i} has {len(item['input'])} inputs and {len(item['output'])} "
                    f"outputs, network expects {self.sizes[0]} and {self.sizes[-1]}"
                )

    def _check_initialized(self) -> None:
        if not self.is_initialized:
            raise UninitializedStateError(
                "NeuralNetwork is not initialized. Call initialize() or train() first."
            )

    def run(self, input_vector) -> np.ndarray:
        """
        Predict the output for one raw input.

        The input goes through the data formatter and normalizer (when they
        are set up), a forward pass without dropout, and the output is mapped
        back to the original range. This never changes the network.

        Returns:
            Output vector of size sizes[-1]
        """
        self._check_initialized()
        if self.data_formatter is not None:
            x = self.data_formatter.format_item(input_vector)
        else:
            x = np.asarray(input_vector, dtype=np.float64)

        fitted = self.normalizer is not None and self.normalizer.is_initialized
        if fitted:
            x = self.normalizer.transform_input(x)

        output = self.forward(x, training=False).output

        if fitted:
            output = self.normalizer.inverse_transform_output(output)
        return output

    def evaluate(self, test_data: List[Dict[str, Any]]) -> Dict[str, float]:
        """
        Measure error and accuracy on held-out examples.

        Accuracy uses binary_thresh for single-output networks and arg-max
        otherwise.

        Returns:
            Dictionary with error (mean squared error), accuracy,
            total_predictions and correct_predictions
        """
        validate_training_data(test_data)

        total_error = 0.0
        correct = 0
        for item in test_data:
            output = self.run(item["input"])
            if self.data_formatter is not None:
                target = self.data_formatter.format_item(item["output"])
            else:
                target = np.asarray(item["output"], dtype=np.float64)

            total_error += float(np.mean((output - target) ** 2))
            if self._is_prediction_correct(output, target):
                correct += 1

        total = len(test_data)
        return {
            "error": total_error / total,
            "accuracy": correct / total,
            "total_predictions": total,
            "correct_predictions": correct,
        }

    def _is_prediction_correct(self, prediction: np.ndarray, target: np.ndarray) -> bool:
        if len(prediction) == 1:
            threshold = self.config.binary_thresh
            return bool((prediction[0] >= threshold) == (target[0] >= threshold))
        return int(np.argmax(prediction)) == int(np.argmax(target))

    @property
    def error_log(self) -> List[float]:
        return self.train_stats.error_log

    def to_dict(self) -> Dict[str, Any]:
        """
        Snapshot of the network as JSON-compatible data.

        Keys: type, options, sizes, weights, biases, trainStats, and
        normalizer / dataFormatter when present.
        """
        data = {
            "type": self.model_type,
            "options": self.config.to_dict(),
            "sizes": list(self.sizes),
            "weights": [weight.tolist() for weight in self.weights],
            "biases": [bias.tolist() for bias in self.biases],
            "trainStats": self.train_stats.to_dict(),
        }
        if self.normalizer is not None:
            data["normalizer"] = self.normalizer.to_dict()
        if self.data_formatter is not None:
            data["dataFormatter"] = self.data_formatter.to_dict()
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NeuralNetwork":
        """
        Rebuild a network from to_dict() output.

        Raises:
            ConfigurationError: For a wrong type or invalid options
            ShapeMismatchError: If weights/biases do not match sizes
        """
        if data.get("type") != cls.model_type:
            raise ConfigurationError(f"Invalid snapshot format for {cls.model_type}")

        network = cls(**data.get("options", {}))
        sizes = [int(size) for size in data.get("sizes", [])]

        weights = [np.array(weight, dtype=np.float64) for weight in data.get("weights", [])]
        biases = [np.array(bias, dtype=np.float64) for bias in data.get("biases", [])]
        if len(sizes) < 2 or len(weights) != len(sizes) - 1 or len(biases) != len(sizes) - 1:
            raise ShapeMismatchError("Snapshot layer count does not match its sizes")
        for l, (weight, bias) in enumerate(zip(weights, biases)):
            if weight.shape != (sizes[l + 1], sizes[l]) or bias.shape != (sizes[l + 1],):
                raise ShapeMismatchError(
                    f"Snapshot layer {l} has weights {weight.shape} and biases {bias.shape}, "
                    f"expected {(sizes[l + 1], sizes[l])} and {(sizes[l + 1],)}"
                )

        network.sizes = sizes
        network.weights = weights
        network.biases = biases
        network.train_stats = TrainStats.from_dict(data.get("trainStats"))
        network._initialize_optimizer()
        network.is_initialized = True

        if "normalizer" in data:
            network.normalizer = Normalizer.from_dict(data["normalizer"])
        if "dataFormatter" in data:
            network.data_formatter = DataFormatter.from_dict(data["dataFormatter"])
        return network

    @classmethod
    def from_json(cls, json_string: str) -> "NeuralNetwork":
        return cls.from_dict(validate_model_json(json_string, cls.model_type))


# =============================================================================
# EDUCATIONAL DEMO
# Run with: python -m brainnet.neural_network
# =============================================================================
if __name__ == "__main__":
    print("=" * 70)
    print("FEEDFORWARD NETWORK DEMO - Learning XOR")
    print("=" * 70)
    print()

    np.random.seed(0)
    xor_data = [
        {"input": [0, 0], "output": [0]},
        {"input": [0, 1], "output": [1]},
        {"input": [1, 0], "output": [1]},
        {"input": [1, 1], "output": [0]},
    ]

    network = NeuralNetwork(
        hidden_layers=[3], activation="tanh", learning_rate=0.3, praxis="sgd", momentum=0.5
    )
    stats = network.train(xor_data, decay_rate=1.0, error_thresh=0.01, log=True, log_period=500)

    print()
    print(f"Epochs: {stats.iterations}, final error: {stats.error:.5f}")
    for item in xor_data:
        print(f"  {item['input']} -> {network.run(item['input'])[0]:.3f}")
