from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Sequence

import numpy as np
from numpy.typing import ArrayLike

import rfe.const as rconst
from rfe.models.random_forest.tree.node import InternalNode, Node, iter_internal_nodes
from rfe.models.random_forest.tree.tree import TrainedTree

if TYPE_CHECKING:
    from rfe.models.random_forest.forest.forest import RandomForest


@dataclass(frozen=True)
class FeatureImportance:
    feature_index: int
    feature_name: str
    importance: float
    rank: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "featureIndex": self.feature_index,
            "featureName": self.feature_name,
            "importance": self.importance,
            "rank": self.rank,
        }


def _weighted_child_impurity(node: InternalNode) -> float:
    total = node.samples
    return (node.left.samples / total) * node.left.impurity + (node.right.samples / total) * node.right.impurity


def tree_feature_importance(root: Node, n_features: int) -> np.ndarray:
    """Un-normalized mean decrease in impurity of a single tree, weighted by the parent sample count."""
    importance = np.zeros(n_features, dtype=float)
    for node in iter_internal_nodes(root):
        decrease = node.impurity - _weighted_child_impurity(node)
        importance[node.feature_index] += decrease * node.samples
    return importance


def normalize_importance(importance: np.ndarray) -> np.ndarray:
    total = float(np.sum(importance))
    if total > 0:
        return importance / total
    return np.zeros_like(importance)


def calculate_feature_importance(trees: Sequence[TrainedTree], n_features: int) -> list[float]:
    """
    Mean decrease in impurity across the forest.

    Per-tree vectors are accumulated independently and merged, then normalized to sum
    to 1.0; a forest without any split yields an all-zero vector.
    """
    per_tree = [tree_feature_importance(tree.root, n_features) for tree in trees]
    total = np.sum(per_tree, axis=0) if per_tree else np.zeros(n_features, dtype=float)
    return normalize_importance(total).tolist()


def rank_features(importances: Sequence[float], feature_names: Sequence[str]) -> list[FeatureImportance]:
    if len(importances) != len(feature_names):
        raise ValueError("Importance scores and feature names must have the same length")

    # stable sort keeps the original feature order among equal scores
    order = sorted(range(len(importances)), key=lambda i: -importances[i])
    return [
        FeatureImportance(
            feature_index=index,
            feature_name=str(feature_names[index]),
            importance=float(importances[index]),
            rank=rank,
        )
        for rank, index in enumerate(order, start=1)
    ]


def feature_importance_from_trees(trees: Sequence[TrainedTree], feature_names: Sequence[str]) -> list[FeatureImportance]:
    return rank_features(calculate_feature_importance(trees, len(feature_names)), feature_names)


def _ensemble_score(forest: "RandomForest", X: np.ndarray, y: np.ndarray, task_type: str) -> float:
    predictions = np.array([result.prediction for result in forest.predict_batch(X)], dtype=float)
    if task_type == rconst.RFE_TASK_CLASSIFICATION:
        return float(np.mean(predictions == y))
    return -float(np.mean(np.square(predictions - y)))


def calculate_permutation_importance(forest: "RandomForest",
                                     features: ArrayLike,
                                     targets: ArrayLike,
                                     feature_names: Sequence[str],
                                     n_repeats: int = rconst.RFE_PERMUTATION_IMPORTANCE_DEFAULT_REPEATS,
                                     rng: Optional[np.random.Generator] = None) -> list[FeatureImportance]:
    """
    Permutation importance of a trained forest on the given data.

    The importance of a feature is the drop in score (accuracy for classification,
    negative mean squared error for regression) after shuffling its column, averaged
    over ``n_repeats`` shuffles.

    :param RandomForest forest: The trained forest
    :param ArrayLike features: Evaluation features, shape (n_samples, n_features)
    :param ArrayLike targets: Evaluation targets, shape (n_samples,)
    :param Sequence[str] feature_names: One name per feature column
    :param int n_repeats: Number of shuffles per feature
    :param Optional[np.random.Generator] rng: The random generator used for shuffling
    :return list[FeatureImportance]: The ranked permutation importances
    """
    X = np.asarray(features, dtype=float)
    y = np.asarray(targets, dtype=float).ravel()

    if X.ndim != 2 or X.shape[0] != y.shape[0]:
        raise ValueError("features must be 2D and aligned with targets")
    if X.shape[1] != len(feature_names):
        raise ValueError("feature_names must have one entry per feature column")
    if n_repeats < 1:
        raise ValueError("n_repeats must be at least 1")

    rng = rng if rng is not None else np.random.default_rng()
    task_type = forest.config.task_type
    baseline = _ensemble_score(forest, X, y, task_type)

    importances = np.zeros(X.shape[1], dtype=float)
    for dim in range(X.shape[1]):
        drops = []
        for _ in range(n_repeats):
            X_perm = X.copy()
            X_perm[:, dim] = rng.permutation(X_perm[:, dim])
            drops.append(baseline - _ensemble_score(forest, X_perm, y, task_type))
        importances[dim] = float(np.mean(drops))

    return rank_features(importances.tolist(), feature_names)
