import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

import rfe.const as rconst
from rfe.models.random_forest.exceptions import ValidationError


def create_bootstrap_sample(dataset_size: int, ratio: float, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    """
    Draws a bootstrap sample of row indices, with replacement.

    :param int dataset_size: Number of rows in the training set
    :param float ratio: Fraction of the dataset size to draw, in (0, 1]
    :param np.random.Generator rng: The random generator to draw from
    :return Tuple[np.ndarray, np.ndarray]: The drawn indices and the sorted out-of-bag indices
    :raises ValidationError: If the ratio is outside (0, 1]
    """
    if not 0 < ratio <= 1:
        raise ValidationError(f"Bootstrap sample ratio must be between 0 and 1, got {ratio}")

    sample_size = int(math.floor(dataset_size * ratio))
    indices = rng.integers(0, dataset_size, size=sample_size) if dataset_size > 0 else np.empty(0, dtype=int)

    in_bag = np.zeros(dataset_size, dtype=bool)
    in_bag[indices] = True
    oob_indices = np.flatnonzero(~in_bag)

    return indices.astype(int), oob_indices.astype(int)


def sample_features(total_features: int, sample_size: int, rng: np.random.Generator) -> np.ndarray:
    # partial Fisher-Yates: each pick is swapped to the tail of the pool
    pool = np.arange(total_features)
    sample_size = min(sample_size, total_features)
    selected = np.empty(sample_size, dtype=int)

    for i in range(sample_size):
        last = total_features - 1 - i
        j = int(rng.integers(0, last + 1))
        selected[i] = pool[j]
        pool[j], pool[last] = pool[last], pool[j]

    return np.sort(selected)


def get_feature_sample_size(total_features: int, ratio: float | str) -> int:
    if isinstance(ratio, str):
        if ratio == "sqrt":
            size = math.floor(math.sqrt(total_features))
        elif ratio == "log2":
            size = math.floor(math.log2(total_features)) if total_features > 0 else 0
        elif ratio == "all":
            size = total_features
        else:
            raise ValidationError(
                f"Feature sampling ratio must be one of {rconst.RFE_RF_FEATURE_SAMPLING_MODES} or a number, got {ratio!r}"
            )
    else:
        size = math.floor(ratio * total_features)

    return int(min(max(1, size), total_features))


@dataclass
class _Bag:
    indices: np.ndarray
    features: np.ndarray
    oob_indices: np.ndarray


class BaggingSampler:
    """Draws the rows and the feature subspace for one tree-training round."""

    def __init__(self, n_samples: int, n_features: int, bootstrap_sample_ratio: float, feature_sampling_ratio: float | str):
        assert n_samples >= 1, "The training set must contain at least one sample"
        assert n_features >= 1, "The training set must contain at least one feature"

        self.n_samples = n_samples
        self.n_features = n_features
        self.bootstrap_sample_ratio = bootstrap_sample_ratio
        self.max_features = get_feature_sample_size(n_features, feature_sampling_ratio)

    def draw(self, rng: np.random.Generator) -> _Bag:
        indices, oob_indices = create_bootstrap_sample(self.n_samples, self.bootstrap_sample_ratio, rng)
        features = sample_features(self.n_features, self.max_features, rng)
        return _Bag(indices=indices, features=features, oob_indices=oob_indices)
