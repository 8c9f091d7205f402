import math
from collections import Counter
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import ArrayLike

import rfe.const as rconst
from rfe.models.random_forest.exceptions import NumericError, ValidationError
from rfe.models.random_forest.tree.impurity import compute_impurity
from rfe.models.random_forest.tree.node import (
    InternalNode,
    LeafNode,
    Node,
    count_leaves,
    node_depth,
    node_from_dict,
    node_to_dict,
    predict_node,
)
from rfe.utils import get_logger


@dataclass(frozen=True)
class TreeConfig:
    max_depth: int
    min_samples_leaf: int
    task_type: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "maxDepth": self.max_depth,
            "minSamplesLeaf": self.min_samples_leaf,
            "taskType": self.task_type,
        }

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> "TreeConfig":
        return cls(
            max_depth=int(document["maxDepth"]),
            min_samples_leaf=int(document["minSamplesLeaf"]),
            task_type=str(document["taskType"]),
        )


@dataclass(frozen=True)
class TrainedTree:
    """
    A fitted CART tree together with the sampling context it was trained under.

    ``feature_indices`` is the feature subset the splits were restricted to and
    ``oob_indices`` are the training-set rows left out of the tree's bootstrap sample.
    Node feature indices refer to the full feature vector, so prediction takes the
    complete vector of ``num_features`` values.
    """
    root: Node
    config: TreeConfig
    feature_indices: Tuple[int, ...]
    oob_indices: Tuple[int, ...]
    num_features: Optional[int] = None

    def predict(self, x: Sequence[float] | np.ndarray) -> float:
        if self.num_features is not None and len(x) != self.num_features:
            raise ValidationError(f"Expected a feature vector of length {self.num_features}, got {len(x)}")
        return predict_node(self.root, x)

    def to_dict(self) -> dict[str, Any]:
        document = {
            "root": node_to_dict(self.root),
            "config": self.config.to_dict(),
            "featureIndices": list(self.feature_indices),
            "oobIndices": list(self.oob_indices),
        }
        if self.num_features is not None:
            document["numFeatures"] = self.num_features
        return document

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> "TrainedTree":
        num_features = document.get("numFeatures")
        return cls(
            root=node_from_dict(document["root"]),
            config=TreeConfig.from_dict(document["config"]),
            feature_indices=tuple(int(i) for i in document.get("featureIndices", [])),
            oob_indices=tuple(int(i) for i in document.get("oobIndices", [])),
            num_features=int(num_features) if num_features is not None else None,
        )


class DecisionTree:
    """
    CART decision tree builder for classification (Gini) and regression (variance).

    Splits are searched only over the feature subset passed to ``train``. For every
    allowed feature the candidate thresholds are the midpoints between consecutive
    distinct sorted values; the pair with the lowest sample-weighted child impurity
    wins, ties going to the earlier feature and then the smaller threshold.
    """

    def __init__(self, config: TreeConfig):
        if config.task_type not in rconst.RFE_TASK_TYPES:
            raise ValidationError(f"Invalid task type: {config.task_type}")

        self.config = config
        self.logger = get_logger(self.__class__.__name__)

    def train(self,
              features: ArrayLike,
              targets: ArrayLike,
              feature_indices: Sequence[int],
              oob_indices: Sequence[int] = ()) -> TrainedTree:
        X = np.asarray(features, dtype=float)
        y = np.asarray(targets, dtype=float).ravel()

        if X.ndim != 2:
            raise ValidationError(f"Features must be a 2D array (n_samples, n_features), got shape {X.shape}")
        if X.shape[0] != y.shape[0]:
            raise ValidationError(f"Got {X.shape[0]} feature rows but {y.shape[0]} targets")

        features_subset = np.asarray(feature_indices, dtype=int)
        if features_subset.size == 0:
            raise ValidationError("At least one feature index is required")
        if features_subset.min() < 0 or features_subset.max() >= X.shape[1]:
            raise ValidationError(f"Feature indices must lie in [0, {X.shape[1] - 1}]")

        finite = np.isfinite(y)
        if not finite.all():
            self.logger.warning(f"Skipping {int((~finite).sum())} samples with a non-finite target")
            X, y = X[finite], y[finite]

        if y.shape[0] == 0:
            raise ValidationError("Cannot train a tree on an empty sample")

        root = self._build(X, y, features_subset, depth=0)
        self.logger.debug(f"Built tree on {y.shape[0]} samples: depth={node_depth(root)}, leaves={count_leaves(root)}")

        return TrainedTree(
            root=root,
            config=self.config,
            feature_indices=tuple(int(i) for i in features_subset),
            oob_indices=tuple(int(i) for i in oob_indices),
            num_features=int(X.shape[1]),
        )

    def _build(self, X: np.ndarray, y: np.ndarray, features: np.ndarray, depth: int) -> Node:
        n = y.shape[0]
        impurity = compute_impurity(y, self.config.task_type)
        prediction = self._leaf_value(y)

        if not (math.isfinite(impurity) and math.isfinite(prediction)):
            raise NumericError(f"Non-finite node statistics at depth {depth}: impurity={impurity}, prediction={prediction}")

        if (depth >= self.config.max_depth
                or n < 2 * self.config.min_samples_leaf
                or impurity <= 0.0
                or np.all(y == y[0])):
            return LeafNode(prediction=prediction, samples=n, impurity=impurity)

        split = self._find_best_split(X, y, features, impurity)
        if split is None:
            return LeafNode(prediction=prediction, samples=n, impurity=impurity)

        feature, threshold = split
        mask = X[:, feature] <= threshold

        # a best split leaving a child under min_samples_leaf makes this node a leaf
        n_left = int(np.count_nonzero(mask))
        if min(n_left, n - n_left) < self.config.min_samples_leaf:
            return LeafNode(prediction=prediction, samples=n, impurity=impurity)

        return InternalNode(
            feature_index=feature,
            threshold=threshold,
            samples=n,
            impurity=impurity,
            left=self._build(X[mask], y[mask], features, depth + 1),
            right=self._build(X[~mask], y[~mask], features, depth + 1),
        )

    def _leaf_value(self, y: np.ndarray) -> float:
        if self.config.task_type == rconst.RFE_TASK_CLASSIFICATION:
            # first-encountered class wins ties
            return float(Counter(y.tolist()).most_common(1)[0][0])
        return float(np.mean(y))

    def _find_best_split(self, X: np.ndarray, y: np.ndarray, features: np.ndarray, parent_impurity: float) -> Optional[Tuple[int, float]]:
        # a split has to beat the parent impurity to be worth making
        best_cost = parent_impurity - rconst.RFE_RF_MIN_IMPURITY_DECREASE
        best_split = None

        if self.config.task_type == rconst.RFE_TASK_CLASSIFICATION:
            _, codes = np.unique(y, return_inverse=True)
            encoded = np.eye(int(codes.max()) + 1)[codes]
        else:
            # centering keeps the running sums of squares well conditioned
            encoded = y - y.mean()

        for dim in features:
            cost, threshold = self._find_best_split_for_dim(X[:, dim], encoded)
            if threshold is not None and cost < best_cost:
                best_cost = cost
                best_split = (int(dim), threshold)

        return best_split

    def _find_best_split_for_dim(self, column: np.ndarray, encoded: np.ndarray) -> Tuple[float, Optional[float]]:
        n = column.shape[0]
        order = np.argsort(column, kind="stable")  # non-finite values sort last and always fall right
        xs = column[order]

        n_left = np.arange(1, n, dtype=float)
        n_right = n - n_left

        if self.config.task_type == rconst.RFE_TASK_CLASSIFICATION:
            cumulative = np.cumsum(encoded[order], axis=0)
            left_counts = cumulative[:-1]
            right_counts = cumulative[-1] - left_counts
            left_impurity = 1.0 - np.sum(np.square(left_counts / n_left[:, None]), axis=1)
            right_impurity = 1.0 - np.sum(np.square(right_counts / n_right[:, None]), axis=1)
        else:
            ys = encoded[order]
            sums = np.cumsum(ys)
            squares = np.cumsum(np.square(ys))
            left_sum, left_sq = sums[:-1], squares[:-1]
            right_sum, right_sq = sums[-1] - left_sum, squares[-1] - left_sq
            left_impurity = np.maximum(left_sq / n_left - np.square(left_sum / n_left), 0.0)
            right_impurity = np.maximum(right_sq / n_right - np.square(right_sum / n_right), 0.0)

        with np.errstate(invalid="ignore", over="ignore"):
            cost = (n_left * left_impurity + n_right * right_impurity) / n
            thresholds = (xs[:-1] + xs[1:]) / 2.

            valid = (
                (xs[:-1] != xs[1:])
                & np.isfinite(thresholds)
                & (thresholds < xs[1:])
                & np.isfinite(cost)
            )

        if not valid.any():
            return math.inf, None

        candidate_cost = np.where(valid, cost, np.inf)
        i = int(np.argmin(candidate_cost))
        return float(candidate_cost[i]), float(thresholds[i])
