"""
Model factories.

Functions:
    neural_network: Create a feedforward NeuralNetwork
    lstm: Create an LSTM
    from_json: Restore either model type from a JSON snapshot
"""

from typing import Union

from brainnet.exceptions import ConfigurationError
from brainnet.lstm import LSTM
from brainnet.neural_network import NeuralNetwork
from brainnet.validation import validate_model_json

MODEL_TYPES = {
    NeuralNetwork.model_type: NeuralNetwork,
    LSTM.model_type: LSTM,
}


def neural_network(**options) -> NeuralNetwork:
    return NeuralNetwork(**options)


def lstm(**options) -> LSTM:
    return LSTM(**options)


def from_json(json_string: str) -> Union[NeuralNetwork, LSTM]:
    """
    Restore a model from to_json() output, dispatching on its "type" field.

    Raises:
        ConfigurationError: For invalid JSON or a missing/unknown type
    """
    data = validate_model_json(json_string)

    model_class = MODEL_TYPES.get(data["type"])
    if model_class is None:
        raise ConfigurationError(f"Unknown model type: {data['type']}")
    return model_class.from_dict(data)
