"""
Training Loop

Both network types train the same way; only the per-batch gradient
computation differs. This module holds the shared epoch loop:

    repeat until error <= error_thresh, iterations >= max, or timeout:
        shuffle the examples
        for each batch:
            sum per-example gradients (model specific)
            optionally clip the summed gradients
            one optimizer update, dividing by the batch size
        epoch error = mean of the batch errors
        learning_rate *= decay_rate
        log / callback every N epochs
        early stopping: after PATIENCE epochs without improvement, restore the
        best parameters seen and stop

The timeout is checked once per epoch, before the epoch starts. There is no
cancellation inside an epoch.

Functions:
    create_batches: Split examples into consecutive batches
    clone_parameters: Structural deep copy of a parameter dictionary
    restore_parameters: Copy a snapshot back into the live arrays
    fit: Run the epoch loop
"""

import math
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from brainnet.config import TrainStats
from brainnet.optimizer import Optimizer, clip_gradient_values

PATIENCE = 10

BatchFunction = Callable[[Sequence[Any]], Tuple[float, Dict[str, np.ndarray]]]


def create_batches(data: Sequence[Any], batch_size: int, drop_last: bool = False) -> List[Sequence[Any]]:
    """
    Cut the shuffled examples of one epoch into optimizer batches.

    Every example lands in exactly one batch, in order. The last batch holds
    the remainder and is skipped when drop_last is set; fit() never sets it,
    so each epoch sees every example.
    """
    batches = [data[start:start + batch_size] for start in range(0, len(data), batch_size)]
    if drop_last and batches and len(batches[-1]) < batch_size:
        batches.pop()
    return batches


def clone_parameters(parameters: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
    return {name: value.copy() for name, value in parameters.items()}


def restore_parameters(parameters: Dict[str, np.ndarray], snapshot: Dict[str, np.ndarray]) -> None:
    # In place, so the model and the optimizer keep referencing the same arrays.
    for name, value in snapshot.items():
        np.copyto(parameters[name], value)


def report(log, message: str) -> None:
    """Print a progress line, or hand it to a user supplied log function."""
    if callable(log) and not isinstance(log, bool):
        log(message)
    else:
        print(message)


def fit(
    data: Sequence[Any],
    compute_batch: BatchFunction,
    parameters: Dict[str, np.ndarray],
    optimizer: Optimizer,
    config,
    clip_value: Optional[float] = None,
) -> TrainStats:
    """
    Run the training loop.

    Args:
        data: Formatted training examples
        compute_batch: Returns (mean error, summed gradients) for a batch
        parameters: Live parameter arrays, updated in place
        optimizer: Initialized optimizer for these parameters
        config: Config holding the loop options (after per-call overrides)
        clip_value: Clamp summed batch gradients to [-clip, clip]; None disables

    Returns:
        TrainStats of this run
    """
    start_time = time.time()
    optimizer.learning_rate = config.learning_rate

    error = 1.0
    iterations = 0
    error_log: List[float] = []

    best_error = math.inf
    best_parameters = None
    patience_counter = 0

    examples = list(data)
    batch_size = min(config.batch_size, len(examples))

    while error > config.error_thresh and iterations < config.iterations:
        if time.time() - start_time > config.timeout:
            break

        order = np.random.permutation(len(examples))
        shuffled = [examples[i] for i in order]

        total_error = 0.0
        batch_count = 0
        for batch in create_batches(shuffled, batch_size):
            batch_error, gradients = compute_batch(batch)
            clip_gradient_values(gradients, clip_value)
            optimizer.update(parameters, gradients, batch_size=len(batch))
            total_error += batch_error
            batch_count += 1

        error = total_error / batch_count
        error_log.append(error)
        iterations += 1

        optimizer.learning_rate *= config.decay_rate

        if config.log and iterations % config.log_period == 0:
            report(config.log, f"Iteration: {iterations}, Error: {error}")

        if error < best_error:
            best_error = error
            best_parameters = clone_parameters(parameters)
            patience_counter = 0
        else:
            patience_counter += 1
            if patience_counter >= PATIENCE:
                restore_parameters(parameters, best_parameters)
                break

        if config.callback is not None and iterations % config.callback_period == 0:
            config.callback({"iterations": iterations, "error": error})

    return TrainStats(
        error=error,
        iterations=iterations,
        time=time.time() - start_time,
        error_log=error_log,
    )
