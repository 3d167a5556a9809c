"""
Tests for the model factories.
"""

import json

import numpy as np
import pytest


class TestFactories:
    def test_neural_network_factory(self):
        from brainnet import brain
        from brainnet.neural_network import NeuralNetwork

        network = brain.neural_network(hidden_layers=[4], activation="relu")

        assert isinstance(network, NeuralNetwork)
        assert network.config.hidden_layers == [4]

    def test_lstm_factory(self):
        from brainnet import brain
        from brainnet.lstm import LSTM

        lstm = brain.lstm(hidden_layers=[6])

        assert isinstance(lstm, LSTM)
        assert lstm.config.clip_gradient == 5.0


class TestFromJson:
    def test_dispatches_on_type(self):
        from brainnet import brain
        from brainnet.lstm import LSTM
        from brainnet.neural_network import NeuralNetwork

        np.random.seed(0)
        network = NeuralNetwork(input_size=2, hidden_layers=[2], output_size=1)
        network.initialize()
        lstm = LSTM(input_size=1, hidden_layers=[2], output_size=1)
        lstm.initialize()

        assert isinstance(brain.from_json(network.to_json()), NeuralNetwork)
        assert isinstance(brain.from_json(lstm.to_json()), LSTM)

    @pytest.mark.parametrize(
        "payload",
        ["not json", json.dumps({"options": {}}), json.dumps({"type": "LiquidStateMachine"})],
    )
    def test_invalid_snapshots_raise(self, payload):
        from brainnet import brain
        from brainnet.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError):
            brain.from_json(payload)

    def test_errors_share_a_base_class(self):
        from brainnet.exceptions import (
            BrainError,
            ConfigurationError,
            ShapeMismatchError,
            TrainingDataError,
            UninitializedStateError,
        )

        for error in (ConfigurationError, ShapeMismatchError, TrainingDataError, UninitializedStateError):
            assert issubclass(error, BrainError)
        assert issubclass(ConfigurationError, ValueError)
        assert issubclass(UninitializedStateError, RuntimeError)
