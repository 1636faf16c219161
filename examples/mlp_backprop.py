#!/usr/bin/env python3
"""Train a two-layer MLP classifier with the gradflow graph.

The graph is built once:

    x -> pad -> W1 -> tanh -> pad -> W2 -> softmax -> cross entropy
                                                   \\-> error rate
    W1 -> L2 penalty

Each step re-runs ``forward()`` and applies plain SGD to the gradients
returned by ``backprop([W1, W2])``.

Run with:
    python -m examples.mlp_backprop
"""

import logging

import numpy as np

from gradflow import Graph, KernelConfig


def make_blobs(rng, samples: int, classes: int):
    """Gaussian blobs on a circle, one per class."""
    angles = 2 * np.pi * np.arange(classes) / classes
    centers = 3.0 * np.stack([np.cos(angles), np.sin(angles)], axis=1)
    labels = rng.integers(0, classes, size=samples)
    features = centers[labels] + 0.7 * rng.normal(size=(samples, 2))
    return features, labels.reshape(-1, 1).astype(float)


def build_graph(features, labels, classes: int, hidden: int, lam: float, rng):
    g = Graph("mlp_classifier", config=KernelConfig.from_env())

    x = g.input("x", features)
    y = g.input("labels", labels)
    w1 = g.param("w1", 0.5 * rng.normal(size=(features.shape[1] + 1, hidden)))
    w2 = g.param("w2", 0.5 * rng.normal(size=(hidden + 1, classes)))

    h = g.tanh(g.matmul(g.pad(x), w1, name="h1"), name="a1")
    probs = g.softmax(g.matmul(g.pad(h), w2, name="logits"), name="probs")

    g.add_output(g.cross_entropy(probs, g.one_hot(y, classes), name="loss"))
    g.add_output(g.l2_penalty(w1, lam, name="l2"))
    g.add_output(g.error_rate(probs, y, name="train"))
    return g, w1, w2


def main():
    logging.basicConfig(level=logging.WARNING, format="%(name)s: %(message)s")

    print("=" * 70)
    print("gradflow: MLP classifier trained with backprop")
    print("=" * 70)

    rng = np.random.default_rng(0)
    features, labels = make_blobs(rng, samples=256, classes=3)
    g, w1, w2 = build_graph(features, labels, classes=3, hidden=8, lam=1e-3, rng=rng)

    print("\n[1] Graph")
    print("-" * 70)
    g.forward()
    print(g.summary())

    print("\n[2] Training")
    print("-" * 70)
    lr = 0.5
    for step in range(201):
        if step % 25 == 0:
            loss = g.get_output(0).at(0)
            penalty = g.get_output(1).at(0)
            error = g.get_output(2).at(0)
            print(f"  step {step:4d}  loss={loss:.4f}  l2={penalty:.5f}  error={error:.3f}")
        dw1, dw2 = g.backprop([w1, w2])
        w1.data.array -= lr * dw1.array
        w2.data.array -= lr * dw2.array
        g.forward()

    print("\n[3] Result")
    print("-" * 70)
    final_error = g.get_output(2).at(0)
    print(f"  final training error: {final_error:.3f}")
    print("  ✓ converged" if final_error < 0.1 else "  ✗ did not converge")


if __name__ == "__main__":
    main()
