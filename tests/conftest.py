import numpy as np
import pytest


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def step_data():
    """Four distinct points repeated so that any bootstrap draw contains all of them."""
    X = np.repeat(np.array([[0.0], [1.0], [2.0], [3.0]]), 25, axis=0)
    y = np.repeat(np.array([0.0, 0.0, 1.0, 1.0]), 25)
    return X, y


@pytest.fixture
def separable_data(rng):
    """Class is decided by feature 0 alone, features 1 and 2 are noise."""
    X = rng.uniform(0.0, 1.0, size=(200, 3))
    y = (X[:, 0] > 0.5).astype(float)
    return X, y


@pytest.fixture
def regression_data(rng):
    X = rng.uniform(0.0, 10.0, size=(150, 2))
    y = 3.0 * X[:, 0] + 50.0
    return X, y


@pytest.fixture
def make_config():
    """Factory for forest configuration documents, overriding the defaults by keyword."""
    def _make(**overrides) -> dict:
        config = {
            "numTrees": 10,
            "maxDepth": "auto",
            "minSamplesLeaf": 1,
            "featureSamplingRatio": "all",
            "taskType": "classification",
            "bootstrapSampleRatio": 1.0,
            "randomSeed": 7,
        }
        config.update(overrides)
        return config

    return _make
