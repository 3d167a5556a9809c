"""
Tests for optimizer module.

Tests cover:
- SGD with momentum, Adam, RMSprop, AdaGrad update rules
- Batch-size averaging of summed gradients
- State bookkeeping errors (uninitialized, shape mismatch)
- Per-value gradient clipping
"""

import numpy as np
import pytest


class TestSGD:
    """SGD: v = momentum * v - lr * g; theta += v."""

    def test_plain_gradient_step(self):
        """Without momentum a step is theta - lr * g."""
        from brainnet.optimizer import SGD

        params = {"weight": np.array([1.0, -2.0])}
        optimizer = SGD(learning_rate=0.5, momentum=0.0)
        optimizer.initialize(params)

        optimizer.update(params, {"weight": np.array([0.2, -0.4])})

        np.testing.assert_allclose(params["weight"], [0.9, -1.8])

    def test_momentum_accumulates(self):
        """The second step with the same gradient is larger by momentum * previous step."""
        from brainnet.optimizer import SGD

        params = {"weight": np.array([0.0])}
        grads = {"weight": np.array([1.0])}
        optimizer = SGD(learning_rate=0.1, momentum=0.5)
        optimizer.initialize(params)

        optimizer.update(params, grads)
        assert np.isclose(params["weight"][0], -0.1)

        optimizer.update(params, grads)
        # v = 0.5 * -0.1 - 0.1 = -0.15
        assert np.isclose(params["weight"][0], -0.25)

    def test_gradients_are_divided_by_batch_size(self):
        from brainnet.optimizer import SGD

        params = {"weight": np.array([1.0])}
        optimizer = SGD(learning_rate=1.0, momentum=0.0)
        optimizer.initialize(params)

        optimizer.update(params, {"weight": np.array([4.0])}, batch_size=4)

        assert np.isclose(params["weight"][0], 0.0)


class TestAdam:
    """
    Test suite for Adam.

    Reference: "Adam: A Method for Stochastic Optimization" (Kingma & Ba, 2014)
    """

    def test_first_step_size_is_learning_rate(self):
        """With bias correction, the first step is lr * sign(g) (up to epsilon)."""
        from brainnet.optimizer import Adam

        params = {"weight": np.array([1.0, 1.0])}
        optimizer = Adam(learning_rate=0.01)
        optimizer.initialize(params)

        optimizer.update(params, {"weight": np.array([3.0, -0.5])})

        np.testing.assert_allclose(params["weight"], [0.99, 1.01], atol=1e-6)

    def test_minimizes_quadratic(self):
        """100 steps with lr=0.1 on x^2 from x=5 bring x below 0.5."""
        from brainnet.optimizer import Adam

        params = {"x": np.array([5.0])}
        optimizer = Adam(learning_rate=0.1)
        optimizer.initialize(params)

        distances = []
        for _ in range(100):
            optimizer.update(params, {"x": 2.0 * params["x"]})
            distances.append(abs(params["x"][0]))

        assert abs(params["x"][0]) < 0.5, f"x should approach 0, got {params['x'][0]}"
        # Far from the minimum every step must move closer.
        early = distances[:20]
        assert all(b < a for a, b in zip(early, early[1:]))

    def test_step_count_increments(self):
        from brainnet.optimizer import Adam

        params = {"weight": np.zeros(3)}
        optimizer = Adam()
        optimizer.initialize(params)

        for _ in range(3):
            optimizer.update(params, {"weight": np.ones(3)})

        assert optimizer.step_count == 3


class TestAdaptiveOptimizers:
    def test_rmsprop_first_step(self):
        """cache = 0.1 g^2, so the first step is lr * g / (|g| * sqrt(0.1))."""
        from brainnet.optimizer import RMSprop

        params = {"weight": np.array([0.0])}
        optimizer = RMSprop(learning_rate=0.01, decay=0.9)
        optimizer.initialize(params)

        optimizer.update(params, {"weight": np.array([2.0])})

        assert np.isclose(params["weight"][0], -0.01 / np.sqrt(0.1), rtol=1e-6)

    def test_adagrad_steps_shrink(self):
        """AdaGrad's accumulated cache makes equal gradients take smaller steps."""
        from brainnet.optimizer import AdaGrad

        params = {"weight": np.array([0.0])}
        grads = {"weight": np.array([1.0])}
        optimizer = AdaGrad(learning_rate=0.1)
        optimizer.initialize(params)

        optimizer.update(params, grads)
        first_step = -params["weight"][0]
        optimizer.update(params, grads)
        second_step = -params["weight"][0] - first_step

        assert np.isclose(first_step, 0.1, rtol=1e-6)
        assert np.isclose(second_step, 0.1 / np.sqrt(2.0), rtol=1e-6)


class TestOptimizerState:
    def test_update_before_initialize_raises(self):
        from brainnet.exceptions import UninitializedStateError
        from brainnet.optimizer import Adam

        with pytest.raises(UninitializedStateError):
            Adam().update({"w": np.zeros(2)}, {"w": np.zeros(2)})

    def test_shape_mismatch_raises(self):
        from brainnet.exceptions import ShapeMismatchError
        from brainnet.optimizer import SGD

        optimizer = SGD()
        optimizer.initialize({"w": np.zeros((2, 3))})

        with pytest.raises(ShapeMismatchError):
            optimizer.update({"w": np.zeros((2, 3))}, {"w": np.zeros((3, 2))})
        with pytest.raises(ShapeMismatchError):
            optimizer.update({"w": np.zeros((2, 3))}, {"other": np.zeros((2, 3))})

    def test_get_and_load_state(self):
        """A restored optimizer continues exactly like the original."""
        from brainnet.optimizer import Adam

        params_a = {"w": np.array([1.0, 2.0])}
        optimizer_a = Adam(learning_rate=0.05)
        optimizer_a.initialize(params_a)
        optimizer_a.update(params_a, {"w": np.array([0.3, -0.1])})

        params_b = {"w": params_a["w"].copy()}
        optimizer_b = Adam(learning_rate=0.05)
        optimizer_b.load_state(optimizer_a.get_state())

        grads = {"w": np.array([0.2, 0.4])}
        optimizer_a.update(params_a, grads)
        optimizer_b.update(params_b, grads)

        np.testing.assert_allclose(params_a["w"], params_b["w"])
        assert optimizer_b.step_count == 2


class TestCreateOptimizer:
    @pytest.mark.parametrize(
        "praxis, expected",
        [("sgd", "SGD"), ("adam", "Adam"), ("rmsprop", "RMSprop"), ("adagrad", "AdaGrad")],
    )
    def test_known_names(self, praxis, expected):
        from brainnet.optimizer import create_optimizer

        optimizer = create_optimizer(praxis, learning_rate=0.1)

        assert type(optimizer).__name__ == expected
        assert optimizer.learning_rate == 0.1

    def test_unknown_name_raises(self):
        from brainnet.exceptions import ConfigurationError
        from brainnet.optimizer import create_optimizer

        with pytest.raises(ConfigurationError):
            create_optimizer("lbfgs", learning_rate=0.1)


class TestGradientClipping:
    def test_values_are_clamped_in_place(self):
        """Each entry is clipped independently to [-clip, clip]."""
        from brainnet.optimizer import clip_gradient_values

        grads = {"w": np.array([1e6, -1e6, 0.5]), "b": np.array([-7.0])}
        result = clip_gradient_values(grads, 5.0)

        assert result is grads
        np.testing.assert_array_equal(grads["w"], [5.0, -5.0, 0.5])
        np.testing.assert_array_equal(grads["b"], [-5.0])

    def test_none_disables_clipping(self):
        from brainnet.optimizer import clip_gradient_values

        grads = {"w": np.array([100.0])}
        clip_gradient_values(grads, None)

        assert grads["w"][0] == 100.0
