import sys
from pathlib import Path

import numpy as np
import pytest


def pytest_configure() -> None:
    """Make `src/` importable in tests without requiring installation."""
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "src"))


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


def _numeric_gradient(graph, leaf, eps: float = 1e-6) -> np.ndarray:
    """Central differences of the sum of every registered output w.r.t. ``leaf``."""

    def total() -> float:
        graph.forward()
        return float(sum(np.sum(graph.get_output(i).array) for i in range(len(graph.outputs))))

    values = leaf.data.array
    grad = np.zeros_like(values)
    for idx in np.ndindex(values.shape):
        original = values[idx]
        values[idx] = original + eps
        up = total()
        values[idx] = original - eps
        down = total()
        values[idx] = original
        grad[idx] = (up - down) / (2 * eps)
    graph.forward()
    return grad


@pytest.fixture
def numeric_gradient():
    return _numeric_gradient
