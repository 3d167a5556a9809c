"""
Model Saving, Loading and Checkpointing

Snapshots are the JSON documents produced by to_json(); any model type known
to brainnet.brain.from_json can be restored from them.

Classes:
    ModelCheckpoint: Periodic / best-only checkpoints with rotation

Functions:
    save_model: Write a model snapshot to a file
    load_model: Read a model snapshot from a file

File errors are the built-in OSError subclasses and propagate to the caller.
"""

import glob
import math
import os
import re
import time
from typing import Any, Dict, List, Optional

from brainnet.brain import from_json
from brainnet.exceptions import ConfigurationError

CHECKPOINT_PATTERN = re.compile(r"epoch(\d+)_([a-zA-Z_]+?)(-?[\d.]+)_(\d+)\.json$")


def save_model(model, filepath: str) -> None:
    """
    Save a model snapshot.

    Args:
        model: NeuralNetwork or LSTM
        filepath: Destination path (conventionally ending in .json)
    """
    with open(filepath, "w", encoding="utf-8") as f:
        f.write(model.to_json())


def load_model(filepath: str):
    """
    Load a model snapshot saved with save_model().

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigurationError: If the file is empty or not a valid snapshot
    """
    with open(filepath, "r", encoding="utf-8") as f:
        json_string = f.read()
    if not json_string.strip():
        raise ConfigurationError(f"Checkpoint file is empty: {filepath}")
    return from_json(json_string)


class ModelCheckpoint:
    """
    Saves model snapshots during training.

    Files are named
        {file_prefix}_epoch{N}_{monitor_metric}{value:.4f}_{timestamp}.json
    so the epoch and metric can be recovered from the name alone.

    Modes:
        save_only_best=False: save every save_frequency epochs
        save_only_best=True: save whenever the monitored metric improves

    Only the newest max_checkpoints files written by this instance are kept.

    Example usage:
        checkpoint = ModelCheckpoint("checkpoints", save_only_best=True)
        network.train(data, callback=lambda s: checkpoint.save(network, s, s["iterations"]))
        best = checkpoint.load_best()
    """

    def __init__(
        self,
        directory: str = "./checkpoints",
        file_prefix: str = "model",
        save_frequency: int = 10,
        save_only_best: bool = False,
        monitor_metric: str = "error",
        is_maximizing: bool = False,
        max_checkpoints: int = 5,
    ):
        if save_frequency <= 0:
            raise ConfigurationError("save_frequency must be a positive integer")
        if max_checkpoints <= 0:
            raise ConfigurationError("max_checkpoints must be a positive integer")

        self.directory = directory
        self.file_prefix = file_prefix
        self.save_frequency = save_frequency
        self.save_only_best = save_only_best
        self.monitor_metric = monitor_metric
        self.is_maximizing = is_maximizing
        self.max_checkpoints = max_checkpoints
        self.best_metric_value = -math.inf if is_maximizing else math.inf
        self.checkpoint_files: List[str] = []

        os.makedirs(self.directory, exist_ok=True)

    def save(self, model, metrics: Dict[str, float], epoch: int) -> Optional[str]:
        """
        Save a checkpoint if this epoch qualifies.

        Args:
            model: Model with a to_json() method
            metrics: Must contain monitor_metric
            epoch: Current epoch number

        Returns:
            Path of the written file, or None when nothing was saved

        Raises:
            ConfigurationError: If the monitored metric is missing
        """
        if not self.save_only_best and epoch % self.save_frequency != 0:
            return None

        if self.monitor_metric not in metrics:
            raise ConfigurationError(f"Monitored metric '{self.monitor_metric}' not found in metrics")
        value = float(metrics[self.monitor_metric])

        if self.save_only_best:
            improved = value > self.best_metric_value if self.is_maximizing else value < self.best_metric_value
            if not improved:
                return None
            self.best_metric_value = value

        timestamp = time.strftime("%Y%m%d%H%M%S")
        filename = f"{self.file_prefix}_epoch{epoch}_{self.monitor_metric}{value:.4f}_{timestamp}.json"
        filepath = os.path.join(self.directory, filename)

        save_model(model, filepath)

        self.checkpoint_files.append(filepath)
        self._rotate()
        return filepath

    def _rotate(self) -> None:
        excess = len(self.checkpoint_files) - self.max_checkpoints
        if excess <= 0:
            return
        for filepath in self.checkpoint_files[:excess]:
            if os.path.exists(filepath):
                os.remove(filepath)
        self.checkpoint_files = self.checkpoint_files[excess:]

    def _files(self) -> List[str]:
        return glob.glob(os.path.join(self.directory, f"{self.file_prefix}_*.json"))

    def load(self, filepath: str):
        return load_model(filepath)

    def load_latest(self):
        """Load the most recent checkpoint, or return None if there is none."""
        checkpoints = self.get_checkpoints()
        if not checkpoints:
            return None
        return self.load(checkpoints[0]["filepath"])

    def load_best(self):
        """Load the checkpoint with the best metric value in its name, or None."""
        scored = [c for c in self.get_checkpoints() if c.get("metric") == self.monitor_metric]
        if not scored:
            return None
        pick = max if self.is_maximizing else min
        best = pick(scored, key=lambda c: c["value"])
        return self.load(best["filepath"])

    def get_checkpoints(self) -> List[Dict[str, Any]]:
        """
        Describe every checkpoint file with this prefix, newest first.

        Returns:
            List of dicts with filepath, filename, created, size and, when the
            name can be parsed, epoch, metric and value
        """
        checkpoints = []
        for filepath in self._files():
            info: Dict[str, Any] = {
                "filepath": filepath,
                "filename": os.path.basename(filepath),
                "created": os.path.getmtime(filepath),
                "size": os.path.getsize(filepath),
            }
            match = CHECKPOINT_PATTERN.search(info["filename"])
            if match:
                info["epoch"] = int(match.group(1))
                info["metric"] = match.group(2)
                info["value"] = float(match.group(3))
            checkpoints.append(info)

        checkpoints.sort(key=lambda c: (c["created"], c.get("epoch", -1)), reverse=True)
        return checkpoints

    def clear_checkpoints(self) -> None:
        for filepath in self._files():
            os.remove(filepath)
        self.checkpoint_files = []
