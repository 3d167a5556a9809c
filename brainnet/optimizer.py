"""
Optimizers for Training Neural Networks

This module implements the parameter update rules used by the feedforward
network and the LSTM. Every optimizer keeps "shadow" state shaped exactly like
the parameters it updates and mutates the parameter arrays in place.

Parameters and gradients are both passed as flat dictionaries of
parameter name -> numpy array, e.g. {"weights.0": ..., "biases.0": ...}.
The arrays are views into the model, so updating them in place updates the
model.

Gradients handed to update() are SUMMED over a batch. The optimizer divides
them by batch_size before applying its rule, and update() must be called
exactly once per batch (Adam's bias correction counts update() calls).

Reference:
    - "On the importance of initialization and momentum in deep learning"
      (Sutskever et al., 2013)
    - "Adam: A Method for Stochastic Optimization" (Kingma & Ba, 2014)
    - "Adaptive Subgradient Methods for Online Learning" (Duchi et al., 2011)
    - RMSprop, Lecture 6e of "Neural Networks for Machine Learning" (Hinton)

Classes:
    Optimizer: Base class with state bookkeeping
    SGD: Stochastic gradient descent with momentum
    Adam: Adam with bias correction folded into the step size
    RMSprop: Running average of squared gradients
    AdaGrad: Accumulated squared gradients

Functions:
    create_optimizer: Build an optimizer from its name
    clip_gradient_values: Clamp every gradient entry into [-clip, clip]
"""

from typing import Dict, Optional

import numpy as np

from brainnet.exceptions import (
    ConfigurationError,
    ShapeMismatchError,
    UninitializedStateError,
)


class Optimizer:
    """
    Base class for optimizers.

    Subclasses list the names of their shadow buffers in ``state_names`` and
    implement ``_apply``, which updates one parameter array in place.

    Attributes:
        learning_rate: Step size, may be changed between updates (decay)
        epsilon: Numerical stability constant
        step_count: Number of update() calls since initialize()
    """

    state_names = ()

    def __init__(self, learning_rate: float = 0.01, epsilon: float = 1e-8):
        self.learning_rate = learning_rate
        self.epsilon = epsilon
        self.step_count: int = 0
        self.state: Dict[str, Dict[str, np.ndarray]] = {}
        self._initialized = False

    def initialize(self, parameters: Dict[str, np.ndarray]) -> None:
        """
        Allocate zero-filled shadow state for the given parameters.

        Calling this again discards the previous state and resets the step
        counter, which is required whenever the topology changes.

        Args:
            parameters: Dictionary of parameter name -> parameter array
        """
        self.step_count = 0
        self.state = {
            buffer: {name: np.zeros_like(param, dtype=np.float64) for name, param in parameters.items()}
            for buffer in self.state_names
        }
        self._shapes = {name: param.shape for name, param in parameters.items()}
        self._initialized = True

    def update(
        self,
        parameters: Dict[str, np.ndarray],
        gradients: Dict[str, np.ndarray],
        batch_size: int = 1,
    ) -> None:
        """
        Perform a single optimization step.

        Args:
            parameters: Parameter arrays, updated in place
            gradients: Gradients summed over the batch, same keys and shapes
            batch_size: Number of examples the gradients were summed over

        Raises:
            UninitializedStateError: If initialize() was never called
            ShapeMismatchError: If keys or shapes differ from the state
        """
        if not self._initialized:
            raise UninitializedStateError(
                "Optimizer not initialized. Call initialize() first."
            )
        self._check_shapes(parameters, gradients)

        self.step_count += 1
        step_size = self._step_size()

        for name, param in parameters.items():
            gradient = gradients[name] / batch_size
            self._apply(name, param, gradient, step_size)

    def _check_shapes(self, parameters, gradients) -> None:
        if set(parameters) != set(self._shapes) or set(gradients) != set(self._shapes):
            raise ShapeMismatchError(
                "Parameter/gradient names do not match the optimizer state"
            )
        for name, shape in self._shapes.items():
            if parameters[name].shape != shape or np.shape(gradients[name]) != shape:
                raise ShapeMismatchError(
                    f"Shape mismatch for '{name}': expected {shape}, got "
                    f"{parameters[name].shape} and {np.shape(gradients[name])}"
                )

    def _step_size(self) -> float:
        return self.learning_rate

    def _apply(self, name: str, param: np.ndarray, gradient: np.ndarray, step_size: float) -> None:
        raise NotImplementedError

    def get_state(self) -> dict:
        """Get optimizer state for checkpointing."""
        return {
            "state": {
                buffer: {k: v.copy() for k, v in values.items()}
                for buffer, values in self.state.items()
            },
            "step_count": self.step_count,
            "learning_rate": self.learning_rate,
        }

    def load_state(self, state: dict) -> None:
        """Load optimizer state from checkpoint."""
        self.state = {
            buffer: {k: np.array(v, dtype=np.float64) for k, v in values.items()}
            for buffer, values in state["state"].items()
        }
        self.step_count = state["step_count"]
        self.learning_rate = state.get("learning_rate", self.learning_rate)
        first = next(iter(self.state.values()), {})
        self._shapes = {name: value.shape for name, value in first.items()}
        self._initialized = True


class SGD(Optimizer):
    """
    Stochastic Gradient Descent with momentum.

    Algorithm (elementwise):
        v = momentum * v - lr * g
        theta = theta + v

    With momentum = 0 this is plain gradient descent.
    """

    state_names = ("velocity",)

    def __init__(self, learning_rate: float = 0.3, momentum: float = 0.1, epsilon: float = 1e-8):
        super().__init__(learning_rate=learning_rate, epsilon=epsilon)
        self.momentum = momentum

    def _apply(self, name, param, gradient, step_size):
        velocity = self.state["velocity"][name]
        velocity *= self.momentum
        velocity -= step_size * gradient
        param += velocity


class Adam(Optimizer):
    """
    Adam optimizer.

    Algorithm (at each step t):
        m_t = beta1 * m_{t-1} + (1 - beta1) * g_t
        v_t = beta2 * v_{t-1} + (1 - beta2) * g_t^2
        alpha_t = lr * sqrt(1 - beta2^t) / (1 - beta1^t)
        theta_t = theta_{t-1} - alpha_t * m_t / (sqrt(v_t) + eps)

    The bias correction is folded into alpha_t instead of correcting m and v
    separately; the two forms differ only in where epsilon enters.

    Attributes:
        beta1: Exponential decay rate for the first moment
        beta2: Exponential decay rate for the second moment
    """

    state_names = ("m", "v")

    def __init__(
        self,
        learning_rate: float = 0.001,
        beta1: float = 0.9,
        beta2: float = 0.999,
        epsilon: float = 1e-8,
    ):
        super().__init__(learning_rate=learning_rate, epsilon=epsilon)
        self.beta1 = beta1
        self.beta2 = beta2

    def _step_size(self) -> float:
        bias_correction_1 = 1.0 - self.beta1**self.step_count
        bias_correction_2 = 1.0 - self.beta2**self.step_count
        return self.learning_rate * np.sqrt(bias_correction_2) / bias_correction_1

    def _apply(self, name, param, gradient, step_size):
        m = self.state["m"][name]
        v = self.state["v"][name]

        m *= self.beta1
        m += (1.0 - self.beta1) * gradient

        v *= self.beta2
        v += (1.0 - self.beta2) * np.square(gradient)

        param -= step_size * m / (np.sqrt(v) + self.epsilon)


class RMSprop(Optimizer):
    """
    RMSprop.

    Algorithm (elementwise):
        cache = decay * cache + (1 - decay) * g^2
        theta = theta - lr * g / (sqrt(cache) + eps)
    """

    state_names = ("cache",)

    def __init__(self, learning_rate: float = 0.01, decay: float = 0.9, epsilon: float = 1e-8):
        super().__init__(learning_rate=learning_rate, epsilon=epsilon)
        self.decay = decay

    def _apply(self, name, param, gradient, step_size):
        cache = self.state["cache"][name]
        cache *= self.decay
        cache += (1.0 - self.decay) * np.square(gradient)
        param -= step_size * gradient / (np.sqrt(cache) + self.epsilon)


class AdaGrad(Optimizer):
    """
    AdaGrad.

    Algorithm (elementwise):
        cache = cache + g^2
        theta = theta - lr * g / (sqrt(cache) + eps)
    """

    state_names = ("cache",)

    def _apply(self, name, param, gradient, step_size):
        cache = self.state["cache"][name]
        cache += np.square(gradient)
        param -= step_size * gradient / (np.sqrt(cache) + self.epsilon)


OPTIMIZERS = ("sgd", "adam", "rmsprop", "adagrad")


def create_optimizer(
    praxis: str,
    learning_rate: float,
    momentum: float = 0.0,
    beta1: float = 0.9,
    beta2: float = 0.999,
    epsilon: float = 1e-8,
    decay: float = 0.9,
) -> Optimizer:
    """
    Build an optimizer from its name.

    Args:
        praxis: One of sgd, adam, rmsprop, adagrad
        learning_rate: Initial step size
        momentum: SGD momentum
        beta1, beta2: Adam moment decay rates
        epsilon: Numerical stability constant
        decay: RMSprop running-average decay

    Raises:
        ConfigurationError: If praxis is unknown
    """
    key = str(praxis).lower()
    if key == "sgd":
        return SGD(learning_rate=learning_rate, momentum=momentum, epsilon=epsilon)
    if key == "adam":
        return Adam(learning_rate=learning_rate, beta1=beta1, beta2=beta2, epsilon=epsilon)
    if key == "rmsprop":
        return RMSprop(learning_rate=learning_rate, decay=decay, epsilon=epsilon)
    if key == "adagrad":
        return AdaGrad(learning_rate=learning_rate, epsilon=epsilon)
    raise ConfigurationError(f"Invalid optimizer: {praxis}")


def clip_gradient_values(
    gradients: Dict[str, np.ndarray], clip_value: Optional[float]
) -> Dict[str, np.ndarray]:
    """
    Clamp every gradient entry into [-clip_value, clip_value], in place.

    Unlike clipping by global norm, each entry is clipped independently, so
    the direction of the gradient vector may change.

    Args:
        gradients: Dictionary of parameter name -> gradient array
        clip_value: Positive bound, or None to leave gradients untouched

    Returns:
        The same dictionary, for chaining
    """
    if clip_value is None:
        return gradients
    for gradient in gradients.values():
        np.clip(gradient, -clip_value, clip_value, out=gradient)
    return gradients
