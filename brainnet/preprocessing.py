"""
Data Preprocessing for Training and Inference

This module turns raw labelled records into the fixed-width float vectors the
networks consume, and back.

Classes:
    DataFormatter: One-hot encodes string values through a learned vocabulary
    Normalizer: Min/max scaling of every input and output dimension to [0, 1]

Both classes can be saved inside a model snapshot with to_dict() and restored
with from_dict().
"""

from typing import Any, Dict, List, Sequence

import numpy as np

from brainnet.exceptions import TrainingDataError, UninitializedStateError


class DataFormatter:
    """
    Converts mixed string/number records to numeric vectors.

    Every distinct string seen while fitting gets an index in a vocabulary
    shared by inputs and outputs. When formatting, each string value expands
    into a one-hot block the size of the vocabulary, and numbers pass through
    unchanged:

        vocabulary = ["red", "green"]
        ["green", 0.5] -> [0.0, 1.0, 0.5]

    The vocabulary is built once, on the first call to format() or
    format_sequences(), and reused afterwards.

    Attributes:
        vocabulary: Strings in index order
        index_map: String -> index in vocabulary
        is_initialized: Whether a vocabulary has been built
    """

    def __init__(self):
        self.vocabulary: List[str] = []
        self.index_map: Dict[str, int] = {}
        self.is_initialized = False

    def format(self, data: List[Dict[str, Any]]) -> List[Dict[str, np.ndarray]]:
        """
        Format labelled examples, building the vocabulary on first use.

        Args:
            data: List of {"input": [...], "output": [...]} items

        Returns:
            List of {"input": array, "output": array} items
        """
        if not self.is_initialized:
            self._build_vocabulary(
                value for item in data for key in ("input", "output") for value in item[key]
            )
        return [
            {"input": self.format_item(item["input"]), "output": self.format_item(item["output"])}
            for item in data
        ]

    def format_sequences(self, sequences: List[Dict[str, Any]]) -> List[Dict[str, np.ndarray]]:
        """
        Format sequence examples, building the vocabulary on first use.

        Args:
            sequences: List of {"input": [[...], ...], "output": [[...], ...]}

        Returns:
            List of {"input": (T, n) array, "output": (T', m) array}
        """
        if not self.is_initialized:
            self._build_vocabulary(
                value
                for sequence in sequences
                for key in ("input", "output")
                for step in sequence[key]
                for value in step
            )
        return [
            {
                "input": self.format_sequence(sequence["input"]),
                "output": self.format_sequence(sequence["output"]),
            }
            for sequence in sequences
        ]

    def format_item(self, item: Sequence[Any]) -> np.ndarray:
        """Format a single input or output vector."""
        formatted: List[float] = []
        for value in item:
            if isinstance(value, str):
                if value not in self.index_map:
                    raise TrainingDataError(f"Value '{value}' is not in the vocabulary")
                one_hot = [0.0] * len(self.vocabulary)
                one_hot[self.index_map[value]] = 1.0
                formatted.extend(one_hot)
            else:
                formatted.append(float(value))
        return np.array(formatted, dtype=np.float64)

    def format_sequence(self, sequence: Sequence[Sequence[Any]]) -> np.ndarray:
        """Format a sequence of vectors into a (T, n) array."""
        return np.array([self.format_item(step) for step in sequence], dtype=np.float64)

    def _build_vocabulary(self, values) -> None:
        self.vocabulary = []
        self.index_map = {}
        for value in values:
            if isinstance(value, str) and value not in self.index_map:
                self.index_map[value] = len(self.vocabulary)
                self.vocabulary.append(value)
        self.is_initialized = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vocabulary": list(self.vocabulary),
            "indexMap": dict(self.index_map),
            "isInitialized": self.is_initialized,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DataFormatter":
        formatter = cls()
        formatter.vocabulary = list(data.get("vocabulary", []))
        formatter.index_map = {k: int(v) for k, v in data.get("indexMap", {}).items()}
        formatter.is_initialized = bool(data.get("isInitialized", False))
        return formatter


class Normalizer:
    """
    Min/max normalizer.

    fit() records the minimum and maximum of every input and output
    dimension. transform() then maps each value to (value - min) / (max - min).
    A dimension whose min equals its max maps to 0.5, and maps back to min.

    Attributes:
        input_min, input_max: Per-dimension input range
        output_min, output_max: Per-dimension output range
        is_initialized: Whether fit() has run
    """

    def __init__(self):
        self.input_min = np.zeros(0)
        self.input_max = np.zeros(0)
        self.output_min = np.zeros(0)
        self.output_max = np.zeros(0)
        self.is_initialized = False

    def fit(self, data: List[Dict[str, np.ndarray]]) -> None:
        """Record per-dimension ranges of inputs and outputs."""
        inputs = np.array([item["input"] for item in data], dtype=np.float64)
        outputs = np.array([item["output"] for item in data], dtype=np.float64)
        self.input_min, self.input_max = inputs.min(axis=0), inputs.max(axis=0)
        self.output_min, self.output_max = outputs.min(axis=0), outputs.max(axis=0)
        self.is_initialized = True

    def transform(self, data: List[Dict[str, np.ndarray]]) -> List[Dict[str, np.ndarray]]:
        """Normalize the inputs and outputs of every example."""
        self._check_fitted()
        return [
            {
                "input": _scale(item["input"], self.input_min, self.input_max),
                "output": _scale(item["output"], self.output_min, self.output_max),
            }
            for item in data
        ]

    def transform_input(self, values: np.ndarray) -> np.ndarray:
        self._check_fitted()
        return _scale(values, self.input_min, self.input_max)

    def transform_output(self, values: np.ndarray) -> np.ndarray:
        self._check_fitted()
        return _scale(values, self.output_min, self.output_max)

    def inverse_transform_output(self, values: np.ndarray) -> np.ndarray:
        """Map normalized outputs back to the original range."""
        self._check_fitted()
        values = np.asarray(values, dtype=np.float64)
        return values * (self.output_max - self.output_min) + self.output_min

    def _check_fitted(self) -> None:
        if not self.is_initialized:
            raise UninitializedStateError("Normalizer must be fitted before transforming data")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inputRanges": _ranges(self.input_min, self.input_max),
            "outputRanges": _ranges(self.output_min, self.output_max),
            "isInitialized": self.is_initialized,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Normalizer":
        normalizer = cls()
        input_ranges = data.get("inputRanges", [])
        output_ranges = data.get("outputRanges", [])
        normalizer.input_min = np.array([r["min"] for r in input_ranges], dtype=np.float64)
        normalizer.input_max = np.array([r["max"] for r in input_ranges], dtype=np.float64)
        normalizer.output_min = np.array([r["min"] for r in output_ranges], dtype=np.float64)
        normalizer.output_max = np.array([r["max"] for r in output_ranges], dtype=np.float64)
        normalizer.is_initialized = bool(data.get("isInitialized", False))
        return normalizer


def _scale(values, minimum: np.ndarray, maximum: np.ndarray) -> np.ndarray:
    values = np.asarray(values, dtype=np.float64)
    span = maximum - minimum
    safe_span = np.where(span > 0, span, 1.0)
    return np.where(span > 0, (values - minimum) / safe_span, 0.5)


def _ranges(minimum: np.ndarray, maximum: np.ndarray) -> List[Dict[str, float]]:
    return [{"min": float(lo), "max": float(hi)} for lo, hi in zip(minimum, maximum)]
