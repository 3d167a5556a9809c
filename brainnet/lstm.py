"""
Long Short-Term Memory Network

This module implements a stacked LSTM with a dense output projection,
trained with backpropagation through time (BPTT).

At each timestep t and layer l, with x the layer input (the sequence value
for layer 0, the hidden state of layer l-1 otherwise):

    i = sigmoid(b_i + Wx_i @ x + Wh_i @ h_prev)     input gate
    f = sigmoid(b_f + Wx_f @ x + Wh_f @ h_prev)     forget gate
    o = sigmoid(b_o + Wx_o @ x + Wh_o @ h_prev)     output gate
    g = tanh(b_g + Wx_g @ x + Wh_g @ h_prev)        cell write

    c = f * c_prev + i * g
    h = o * tanh(c)

The top layer's hidden state is projected to the output:

    y = activation(Why @ h + by)

Parameter naming (used by the optimizer and in error messages):
    "{gate}.{layer}.Wx"  (hidden, layer input)
    "{gate}.{layer}.Wh"  (hidden, hidden)
    "{gate}.{layer}.b"   (hidden,)
    "output.Why"         (output, top hidden)
    "output.by"          (output,)
with gate one of inputGate, forgetGate, outputGate, cellWrite.

Initialization:
    Every entry is drawn from U(-0.1, 0.1), except the forget-gate biases,
    which start at 1 so the cell remembers by default early in training.

Classes:
    Gate: The four gates of a cell
    GateParameters: Wx / Wh / b of one gate in one layer
    LSTMParameters: All parameters of the network
    SequenceTrace: Gate and state values of one forward pass
    LSTM: The network
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np

from brainnet.activations import Sigmoid, Tanh, get_activation
from brainnet.config import LSTMConfig, TrainStats, build_config, training_overrides
from brainnet.exceptions import (
    ConfigurationError,
    ShapeMismatchError,
    TrainingDataError,
    UninitializedStateError,
)
from brainnet.optimizer import clip_gradient_values, create_optimizer
from brainnet.preprocessing import DataFormatter
from brainnet.training import fit
from brainnet.validation import validate_model_json, validate_training_data

INIT_RANGE = 0.1
FORGET_BIAS = 1.0

_sigmoid = Sigmoid()
_tanh = Tanh()


class Gate(Enum):
    INPUT = "inputGate"
    FORGET = "forgetGate"
    OUTPUT = "outputGate"
    CELL_WRITE = "cellWrite"


@dataclass
class GateParameters:
    """
    Parameters of one gate in one layer.

    Attributes:
        wx: Input-to-gate weights, shape (hidden_size, input_size)
        wh: Hidden-to-gate weights, shape (hidden_size, hidden_size)
        b: Bias, shape (hidden_size,)
    """

    wx: np.ndarray
    wh: np.ndarray
    b: np.ndarray

    def pre_activation(self, x: np.ndarray, h_prev: np.ndarray) -> np.ndarray:
        return self.b + self.wx @ x + self.wh @ h_prev


@dataclass
class LSTMParameters:
    """
    All trainable parameters of an LSTM.

    Attributes:
        gates: For every Gate, one GateParameters per layer
        why: Output projection, shape (output_size, top hidden size)
        by: Output bias, shape (output_size,)
    """

    gates: Dict[Gate, List[GateParameters]]
    why: np.ndarray
    by: np.ndarray

    @classmethod
    def zeros(cls, input_size: int, hidden_layers: List[int], output_size: int) -> "LSTMParameters":
        """Allocate zero-filled parameters for the given topology."""
        gates = {}
        for gate in Gate:
            gates[gate] = []
            layer_input = input_size
            for hidden_size in hidden_layers:
                gates[gate].append(
                    GateParameters(
                        wx=np.zeros((hidden_size, layer_input)),
                        wh=np.zeros((hidden_size, hidden_size)),
                        b=np.zeros(hidden_size),
                    )
                )
                layer_input = hidden_size
        return cls(gates=gates, why=np.zeros((output_size, hidden_layers[-1])), by=np.zeros(output_size))

    @property
    def num_layers(self) -> int:
        return len(self.gates[Gate.INPUT])

    def named(self) -> Dict[str, np.ndarray]:
        """
        Flat name -> array view of every parameter.

        The arrays are the live parameters, so in-place updates through this
        dictionary change the network.
        """
        params = {}
        for gate in Gate:
            for layer, gate_params in enumerate(self.gates[gate]):
                prefix = f"{gate.value}.{layer}"
                params[f"{prefix}.Wx"] = gate_params.wx
                params[f"{prefix}.Wh"] = gate_params.wh
                params[f"{prefix}.b"] = gate_params.b
        params["output.Why"] = self.why
        params["output.by"] = self.by
        return params

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gates": {
                gate.value: [
                    {"Wx": p.wx.tolist(), "Wh": p.wh.tolist(), "b": p.b.tolist()}
                    for p in self.gates[gate]
                ]
                for gate in Gate
            },
            "Why": self.why.tolist(),
            "by": self.by.tolist(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LSTMParameters":
        gates_data = data.get("gates", {})
        gates = {}
        for gate in Gate:
            if gate.value not in gates_data:
                raise ShapeMismatchError(f"Snapshot is missing gate '{gate.value}'")
            gates[gate] = [
                GateParameters(
                    wx=np.array(layer["Wx"], dtype=np.float64),
                    wh=np.array(layer["Wh"], dtype=np.float64),
                    b=np.array(layer["b"], dtype=np.float64),
                )
                for layer in gates_data[gate.value]
            ]
        return cls(
            gates=gates,
            why=np.array(data.get("Why", []), dtype=np.float64),
            by=np.array(data.get("by", []), dtype=np.float64),
        )


@dataclass
class SequenceTrace:
    """
    Values produced by forward_sequence().

    Every per-layer entry is an array of shape (T, hidden_size) whose row t
    holds the value at timestep t.

    Attributes:
        inputs: The input sequence, shape (T, input_size)
        input_gates, forget_gates, output_gates, cell_writes: Gate values
        cell_states: c per layer
        hidden_states: h per layer
        outputs: Network output per timestep, shape (T, output_size)
    """

    inputs: np.ndarray
    input_gates: List[np.ndarray]
    forget_gates: List[np.ndarray]
    output_gates: List[np.ndarray]
    cell_writes: List[np.ndarray]
    cell_states: List[np.ndarray]
    hidden_states: List[np.ndarray]
    outputs: np.ndarray

    @property
    def length(self) -> int:
        return len(self.inputs)

    def layer_input(self, layer: int, t: int) -> np.ndarray:
        if layer == 0:
            return self.inputs[t]
        return self.hidden_states[layer - 1][t]

    def previous(self, states: List[np.ndarray], layer: int, t: int) -> np.ndarray:
        """State of layer at t - 1, zeros before the first step."""
        if t == 0:
            return np.zeros(states[layer].shape[1])
        return states[layer][t - 1]


class LSTM:
    """
    Stacked LSTM for sequence-to-sequence learning.

    Training data items are {"input": [[...], ...], "output": [[...], ...]}:
    one vector per timestep. The output at step t is compared with
    output[t]; if the target sequence is shorter than the input, the trailing
    steps carry no loss.

    Example usage:
        lstm = LSTM(hidden_layers=[8], activation="linear")
        lstm.train([{"input": [[0.1], [0.2], [0.3]], "output": [[0.2], [0.3], [0.4]]}])
        lstm.run([[0.1], [0.2]])        # -> array of shape (2, 1)
        lstm.generate([[0.1], [0.2]], 5)  # -> array of shape (5, 1)

    Attributes:
        config: LSTMConfig
        parameters: LSTMParameters, None before initialize()
        optimizer: Optimizer over parameters.named()
        data_formatter: DataFormatter for string-valued sequences
        train_stats: TrainStats of the last train() call
    """

    model_type = "LSTM"

    def __init__(self, config: Optional[LSTMConfig] = None, **options):
        self.config = build_config(LSTMConfig, config, **options)
        self.activation = get_activation(self.config.activation, self.config.leaky_relu_alpha)

        self.parameters: Optional[LSTMParameters] = None
        self.optimizer = None
        self.data_formatter = DataFormatter()
        self.train_stats = TrainStats()
        self.is_initialized = False

    def initialize(self) -> None:
        """
        Allocate parameters: U(-0.1, 0.1) everywhere, forget-gate biases at 1.

        Raises:
            ConfigurationError: If the input or output size is still 0
        """
        if self.config.input_size <= 0 or self.config.output_size <= 0:
            raise ConfigurationError(
                "input_size and output_size must be positive; set them or train on data first"
            )

        parameters = LSTMParameters.zeros(
            self.config.input_size, self.config.hidden_layers, self.config.output_size
        )
        for value in parameters.named().values():
            value[...] = np.random.uniform(-INIT_RANGE, INIT_RANGE, value.shape)
        for gate_params in parameters.gates[Gate.FORGET]:
            gate_params.b.fill(FORGET_BIAS)

        self.parameters = parameters
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
        self.optimizer.initialize(self.parameters.named())

    def get_parameters(self) -> Dict[str, np.ndarray]:
        self._check_initialized()
        return self.parameters.named()

    def _check_initialized(self) -> None:
        if not self.is_initialized:
            raise UninitializedStateError("LSTM is not initialized. Call initialize() or train() first.")

    def forward_sequence(self, inputs) -> SequenceTrace:
        """
        Run a whole sequence through the network from zero initial states.

        Args:
            inputs: Formatted sequence, shape (T, input_size)

        Returns:
            SequenceTrace with every gate, state and output value
        """
        self._check_initialized()
        x_seq = np.asarray(inputs, dtype=np.float64)
        if x_seq.ndim != 2 or x_seq.shape[1] != self.config.input_size:
            raise ShapeMismatchError(
                f"Expected a sequence of shape (T, {self.config.input_size}), got {x_seq.shape}"
            )

        steps = len(x_seq)
        gates = self.parameters.gates
        hidden_sizes = self.config.hidden_layers

        def per_layer():
            return [np.zeros((steps, size)) for size in hidden_sizes]

        trace = SequenceTrace(
            inputs=x_seq,
            input_gates=per_layer(),
            forget_gates=per_layer(),
            output_gates=per_layer(),
            cell_writes=per_layer(),
            cell_states=per_layer(),
            hidden_states=per_layer(),
            outputs=np.zeros((steps, self.config.output_size)),
        )

        h_prev = [np.zeros(size) for size in hidden_sizes]
        c_prev = [np.zeros(size) for size in hidden_sizes]

        for t in range(steps):
            x = x_seq[t]
            for l in range(len(hidden_sizes)):
                i = _sigmoid.function(gates[Gate.INPUT][l].pre_activation(x, h_prev[l]))
                f = _sigmoid.function(gates[Gate.FORGET][l].pre_activation(x, h_prev[l]))
                o = _sigmoid.function(gates[Gate.OUTPUT][l].pre_activation(x, h_prev[l]))
                g = _tanh.function(gates[Gate.CELL_WRITE][l].pre_activation(x, h_prev[l]))

                c = f * c_prev[l] + i * g
                h = o * np.tanh(c)

                trace.input_gates[l][t] = i
                trace.forget_gates[l][t] = f
                trace.output_gates[l][t] = o
                trace.cell_writes[l][t] = g
                trace.cell_states[l][t] = c
                trace.hidden_states[l][t] = h

                h_prev[l] = h
                c_prev[l] = c
                x = h

            trace.outputs[t] = self.activation.function(self.parameters.why @ x + self.parameters.by)

        return trace

    def _output_delta(self, output: np.ndarray, target: np.ndarray) -> np.ndarray:
        if self.activation.is_vector:
            return self.activation.derivative(output, target)
        return (output - target) * self.activation.derivative(output)

    def backward_sequence(self, inputs, trace: SequenceTrace, targets) -> Dict[str, np.ndarray]:
        """
        Backpropagation through time for one sequence.

        Walks t from the last step to the first. For each step the output
        delta dy = (y - target) * f'(y) feeds the output projection and the
        top layer. Per layer, with dh the hidden-state gradient and dc the
        running cell-state gradient:

            dOutputGate = dh * tanh(c) * o * (1 - o)
            dc         += dh * o * (1 - tanh(c)^2)
            dInputGate  = dc * g * i * (1 - i)
            dForgetGate = dc * c_prev * f * (1 - f)
            dCellWrite  = dc * i * (1 - g^2)

        dc flows to t - 1 scaled by f. The gate deltas flow to t - 1 through
        Wh and to the layer below through Wx.

        Args:
            inputs: The sequence passed to forward_sequence()
            trace: Result of forward_sequence(inputs)
            targets: Target vectors, shape (T', output_size); only the first
                     min(T, T') steps carry loss

        Returns:
            Gradients of 0.5 * sum((y - target)^2) keyed like get_parameters(),
            each entry clipped to [-clip_gradient, clip_gradient]
        """
        x_seq = np.asarray(inputs, dtype=np.float64)
        targets = np.asarray(targets, dtype=np.float64)
        if targets.ndim != 2 or targets.shape[1] != self.config.output_size:
            raise ShapeMismatchError(
                f"Expected targets of shape (T, {self.config.output_size}), got {targets.shape}"
            )

        params = self.parameters
        gradients = {name: np.zeros_like(value) for name, value in params.named().items()}
        num_layers = params.num_layers
        steps = len(x_seq)
        supervised = min(steps, len(targets))

        dh_next = [np.zeros(size) for size in self.config.hidden_layers]
        dc_next = [np.zeros(size) for size in self.config.hidden_layers]

        for t in reversed(range(steps)):
            if t < supervised:
                dy = self._output_delta(trace.outputs[t], targets[t])
            else:
                dy = np.zeros(self.config.output_size)

            gradients["output.Why"] += np.outer(dy, trace.hidden_states[-1][t])
            gradients["output.by"] += dy
            dh_above = params.why.T @ dy

            for l in reversed(range(num_layers)):
                x = trace.layer_input(l, t)
                h_prev = trace.previous(trace.hidden_states, l, t)
                c_prev = trace.previous(trace.cell_states, l, t)

                i = trace.input_gates[l][t]
                f = trace.forget_gates[l][t]
                o = trace.output_gates[l][t]
                g = trace.cell_writes[l][t]
                tanh_c = np.tanh(trace.cell_states[l][t])

                dh = dh_above + dh_next[l]
                d_output = dh * tanh_c * o * (1.0 - o)
                dc = dh * o * (1.0 - tanh_c ** 2) + dc_next[l]
                d_input = dc * g * i * (1.0 - i)
                d_forget = dc * c_prev * f * (1.0 - f)
                d_cell_write = dc * i * (1.0 - g ** 2)
                dc_next[l] = dc * f

                dh_prev = np.zeros_like(dh)
                dx = np.zeros_like(x)
                for gate, delta in (
                    (Gate.INPUT, d_input),
                    (Gate.FORGET, d_forget),
                    (Gate.OUTPUT, d_output),
                    (Gate.CELL_WRITE, d_cell_write),
                ):
                    gate_params = params.gates[gate][l]
                    prefix = f"{gate.value}.{l}"
                    gradients[f"{prefix}.Wx"] += np.outer(delta, x)
                    gradients[f"{prefix}.Wh"] += np.outer(delta, h_prev)
                    gradients[f"{prefix}.b"] += delta
                    dh_prev += gate_params.wh.T @ delta
                    dx += gate_params.wx.T @ delta

                dh_next[l] = dh_prev
                dh_above = dx

        return clip_gradient_values(gradients, self.config.clip_gradient)

    def _sequence_error(self, outputs: np.ndarray, targets: np.ndarray) -> float:
        steps = min(len(outputs), len(targets))
        return float(np.mean((outputs[:steps] - targets[:steps]) ** 2))

    def _compute_batch(self, batch):
        gradients = {name: np.zeros_like(value) for name, value in self.get_parameters().items()}
        total_error = 0.0

        for sequence in batch:
            trace = self.forward_sequence(sequence["input"])
            for name, gradient in self.backward_sequence(sequence["input"], trace, sequence["output"]).items():
                gradients[name] += gradient
            total_error += self._sequence_error(trace.outputs, sequence["output"])

        return total_error / len(batch), gradients

    def train(self, data: List[Dict[str, Any]], **options) -> TrainStats:
        """
        Train on whole sequences.

        Same epoch loop as NeuralNetwork.train() (shuffling, batching,
        learning-rate decay, early stopping, timeout); the batch error is the
        mean over sequences of the per-timestep mean squared error.

        Args:
            data: List of {"input": [[...], ...], "output": [[...], ...]}
            **options: Per-call overrides of the loop options

        Returns:
            TrainStats, also stored in self.train_stats
        """
        config = training_overrides(self.config, options)
        validate_training_data(data, is_sequence=True)

        sequences = self.data_formatter.format_sequences(data)

        if self.config.input_size == 0:
            self.config.input_size = sequences[0]["input"].shape[1]
        if self.config.output_size == 0:
            self.config.output_size = sequences[0]["output"].shape[1]

        if not self.is_initialized:
            self.initialize()

        for index, sequence in enumerate(sequences):
            if (
                sequence["input"].ndim != 2
                or sequence["input"].shape[1] != self.config.input_size
                or sequence["output"].ndim != 2
                or sequence["output"].shape[1] != self.config.output_size
            ):
                raise ShapeMismatchError(
                    f"Sequence {index} has shapes {sequence['input'].shape} -> "
                    f"{sequence['output'].shape}, network expects (T, {self.config.input_size}) -> "
                    f"(T, {self.config.output_size})"
                )

        stats = fit(
            sequences,
            self._compute_batch,
            self.get_parameters(),
            self.optimizer,
            config,
        )
        self.train_stats = stats
        return stats

    def run(self, input_sequence) -> np.ndarray:
        """
        Outputs for every timestep of a raw input sequence.

        Returns:
            Array of shape (T, output_size)
        """
        self._check_initialized()
        return self.forward_sequence(self.data_formatter.format_sequence(input_sequence)).outputs

    def generate(self, seed, length: int) -> np.ndarray:
        """
        Autoregressive rollout.

        Runs the current window, appends the last output as the next input
        and drops the oldest step so the window keeps the seed's length.

        Args:
            seed: Starting sequence, at least one step
            length: Number of steps to generate

        Returns:
            Generated outputs, shape (length, output_size)

        Raises:
            UninitializedStateError: Before initialize()/train()
            ShapeMismatchError: If output_size != input_size
        """
        if not self.is_initialized:
            raise UninitializedStateError("LSTM must be trained before generating sequences")
        if self.config.output_size != self.config.input_size:
            raise ShapeMismatchError(
                f"generate() feeds outputs back as inputs, but output_size={self.config.output_size} "
                f"differs from input_size={self.config.input_size}"
            )

        window = list(self.data_formatter.format_sequence(seed))
        if not window:
            raise TrainingDataError("Seed sequence cannot be empty")
        lookback = len(window)

        generated = []
        for _ in range(length):
            last_output = self.forward_sequence(np.array(window)).outputs[-1]
            generated.append(last_output)
            window.append(last_output)
            if len(window) > lookback:
                window.pop(0)

        if not generated:
            return np.zeros((0, self.config.output_size))
        return np.array(generated)

    @property
    def error_log(self) -> List[float]:
        return self.train_stats.error_log

    def to_dict(self) -> Dict[str, Any]:
        self._check_initialized()
        return {
            "type": self.model_type,
            "options": self.config.to_dict(),
            "model": self.parameters.to_dict(),
            "trainStats": self.train_stats.to_dict(),
            "dataFormatter": self.data_formatter.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LSTM":
        """
        Rebuild an LSTM from to_dict() output.

        Raises:
            ConfigurationError: For a wrong type or invalid options
            ShapeMismatchError: If the stored parameters do not fit the options
        """
        if data.get("type") != cls.model_type:
            raise ConfigurationError(f"Invalid snapshot format for {cls.model_type}")

        lstm = cls(**data.get("options", {}))
        if "model" not in data:
            raise ShapeMismatchError("Snapshot has no 'model' parameters")
        loaded = LSTMParameters.from_dict(data["model"])

        expected = LSTMParameters.zeros(
            lstm.config.input_size, lstm.config.hidden_layers, lstm.config.output_size
        ).named()
        actual = loaded.named()
        if set(actual) != set(expected):
            raise ShapeMismatchError("Snapshot layer count does not match hidden_layers")
        for name, value in expected.items():
            if actual[name].shape != value.shape:
                raise ShapeMismatchError(
                    f"Shape mismatch for '{name}': expected {value.shape}, got {actual[name].shape}"
                )

        lstm.parameters = loaded
        lstm.train_stats = TrainStats.from_dict(data.get("trainStats"))
        if "dataFormatter" in data:
            lstm.data_formatter = DataFormatter.from_dict(data["dataFormatter"])
        lstm.is_initialized = True
        lstm._initialize_optimizer()
        return lstm

    @classmethod
    def from_json(cls, json_string: str) -> "LSTM":
        return cls.from_dict(validate_model_json(json_string, cls.model_type))


# =============================================================================
# EDUCATIONAL DEMO
# Run with: python -m brainnet.lstm
# =============================================================================
if __name__ == "__main__":
    print("=" * 70)
    print("LSTM DEMO - Predicting the next value of a sine wave")
    print("=" * 70)
    print()

    np.random.seed(0)
    wave = np.sin(np.linspace(0, 4 * np.pi, 41))
    sequences = [
        {
            "input": [[v] for v in wave[start:start + 8]],
            "output": [[v] for v in wave[start + 1:start + 9]],
        }
        for start in range(0, 32, 4)
    ]

    lstm = LSTM(hidden_layers=[8], activation="linear", learning_rate=0.02)
    stats = lstm.train(sequences, iterations=200, log=True, log_period=20)

    print()
    print(f"Epochs: {stats.iterations}, final error: {stats.error:.5f}")
    generated = lstm.generate([[v] for v in wave[:8]], 5)
    print("Next 5 values (expected vs generated):")
    for expected, value in zip(wave[8:13], generated[:, 0]):
        print(f"  {expected:+.3f}  {value:+.3f}")
