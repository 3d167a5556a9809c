"""
Neural Networks from Scratch

This package implements feedforward networks and LSTMs with hand-derived
backpropagation, using only NumPy. Every forward pass, gradient and optimizer
rule is written out explicitly so the math can be followed line by line.

Modules:
    activations: Activation functions (sigmoid, tanh, ReLU, softmax, etc.)
    optimizer: SGD with momentum, Adam, RMSprop, AdaGrad and gradient clipping
    config: Option dataclasses and training statistics
    validation: Option, training-data and snapshot checks
    preprocessing: DataFormatter (one-hot strings) and Normalizer (min/max)
    training: Shared epoch loop with decay, early stopping and timeout
    neural_network: Feedforward network with dropout
    lstm: Stacked LSTM trained with backpropagation through time
    brain: Model factories and JSON restore
    utils: Saving/loading snapshots and checkpoint rotation
    exceptions: Error types raised by the library

Reference:
    "Long Short-Term Memory" (Hochreiter & Schmidhuber, 1997)
    "Adam: A Method for Stochastic Optimization" (Kingma & Ba, 2014)
"""

__version__ = "1.0.0"
__author__ = "Neural Networks from Scratch Project"
