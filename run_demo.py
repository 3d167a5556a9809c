#!/usr/bin/env python3
"""
Neural Network Demo Script

This script walks through the library end to end:
1. Training a feedforward network on XOR
2. Classifying colors with string inputs and a softmax output
3. Training an LSTM on a sine wave and generating a continuation
4. Checkpointing during training and restoring the best model

Usage:
    python run_demo.py [mode]

    Modes:
        all         - Run every demo
        xor         - Feedforward network on XOR
        classify    - Softmax classifier with string inputs
        lstm        - LSTM sequence prediction and generation
        checkpoint  - Checkpointing from the training callback

Example:
    python run_demo.py xor
"""

import argparse
import os
import shutil
import tempfile

import numpy as np

from brainnet import brain
from brainnet.utils import ModelCheckpoint, load_model, save_model


def print_header(text: str):
    """Print a formatted header."""
    print()
    print("=" * 60)
    print(text)
    print("=" * 60)
    print()


def print_section(text: str):
    """Print a section divider."""
    print()
    print("-" * 40)
    print(text)
    print("-" * 40)


XOR_DATA = [
    {"input": [0, 0], "output": [0]},
    {"input": [0, 1], "output": [1]},
    {"input": [1, 0], "output": [1]},
    {"input": [1, 1], "output": [0]},
]


def demo_xor():
    print_header("Feedforward Network - XOR")

    network = brain.neural_network(
        hidden_layers=[3], activation="tanh", learning_rate=0.3, praxis="sgd", momentum=0.5
    )
    stats = network.train(XOR_DATA, error_thresh=0.01, decay_rate=1.0, log=True, log_period=500)

    print(f"\nStopped after {stats.iterations} epochs, error {stats.error:.5f} ({stats.time:.2f}s)")

    print_section("Predictions")
    for item in XOR_DATA:
        output = network.run(item["input"])[0]
        print(f"  {item['input']} -> {output:+.3f} (expected {item['output'][0]})")

    results = network.evaluate(XOR_DATA)
    print(f"\nAccuracy: {results['accuracy']:.0%}")
    return network


def demo_classify():
    print_header("Softmax Classifier - Colors")

    data = [
        {"input": ["red", 0.9], "output": [1, 0, 0]},
        {"input": ["orange", 0.7], "output": [1, 0, 0]},
        {"input": ["green", 0.4], "output": [0, 1, 0]},
        {"input": ["teal", 0.3], "output": [0, 1, 0]},
        {"input": ["blue", 0.1], "output": [0, 0, 1]},
        {"input": ["navy", 0.0], "output": [0, 0, 1]},
    ]
    labels = ["warm", "neutral", "cool"]

    network = brain.neural_network(hidden_layers=[6], activation="softmax", learning_rate=0.05)
    stats = network.train(data, iterations=500)

    print(f"Vocabulary: {network.data_formatter.vocabulary}")
    print(f"Topology:   {network.sizes}")
    print(f"Final error {stats.error:.5f} after {stats.iterations} epochs")

    print_section("Predictions")
    for item in data:
        probabilities = network.run(item["input"])
        label = labels[int(np.argmax(probabilities))]
        print(f"  {item['input']} -> {label:8s} {np.round(probabilities, 3)}")


def sine_sequences(length: int = 8, count: int = 10):
    wave = np.sin(np.linspace(0, 6 * np.pi, 4 * count + length + 1))
    sequences = [
        {
            "input": [[v] for v in wave[start:start + length]],
            "output": [[v] for v in wave[start + 1:start + length + 1]],
        }
        for start in range(0, 4 * count, 4)
    ]
    return wave, sequences


def demo_lstm():
    print_header("LSTM - Sine Wave")

    wave, sequences = sine_sequences()
    lstm = brain.lstm(hidden_layers=[10], activation="linear", learning_rate=0.02)
    stats = lstm.train(sequences, iterations=300, log=True, log_period=50)

    print(f"\nStopped after {stats.iterations} epochs, error {stats.error:.5f}")

    print_section("Generation")
    seed = [[v] for v in wave[:8]]
    generated = lstm.generate(seed, 6)
    for step, (expected, value) in enumerate(zip(wave[8:14], generated[:, 0])):
        print(f"  t+{step + 1}: expected {expected:+.3f}, generated {value:+.3f}")

    print_section("Save and reload")
    directory = tempfile.mkdtemp()
    try:
        filepath = os.path.join(directory, "lstm.json")
        save_model(lstm, filepath)
        restored = load_model(filepath)
        difference = np.max(np.abs(restored.run(seed) - lstm.run(seed)))
        print(f"Saved to {filepath}; max output difference after reload: {difference:.2e}")
    finally:
        shutil.rmtree(directory)


def demo_checkpoint():
    print_header("Checkpointing")

    directory = tempfile.mkdtemp()
    try:
        checkpoint = ModelCheckpoint(directory, file_prefix="xor", save_only_best=True, max_checkpoints=3)
        network = brain.neural_network(hidden_layers=[4], activation="tanh")

        def save(progress):
            checkpoint.save(network, progress, progress["iterations"])

        network.train(XOR_DATA, iterations=200, callback=save, callback_period=20)

        print("Kept checkpoints (newest first):")
        for info in checkpoint.get_checkpoints():
            print(f"  {info['filename']}  ({info['size']} bytes)")

        best = checkpoint.load_best()
        print(f"\nBest checkpoint error on XOR: {best.evaluate(XOR_DATA)['error']:.5f}")
    finally:
        shutil.rmtree(directory)


def main():
    parser = argparse.ArgumentParser(description="Neural Network Demo")
    parser.add_argument(
        "mode",
        nargs="?",
        default="all",
        choices=["all", "xor", "classify", "lstm", "checkpoint"],
        help="Demo mode to run",
    )
    args = parser.parse_args()

    np.random.seed(42)

    print_header("Neural Networks from Scratch - Demo")
    print(f"Mode: {args.mode}")

    if args.mode in ("all", "xor"):
        demo_xor()
    if args.mode in ("all", "classify"):
        demo_classify()
    if args.mode in ("all", "lstm"):
        demo_lstm()
    if args.mode in ("all", "checkpoint"):
        demo_checkpoint()

    print("\nDone!")


if __name__ == "__main__":
    main()
