from typing import Sequence

import numpy as np

import rfe.const as rconst
from rfe.models.random_forest.sampling.aggregation import aggregate_predictions
from rfe.models.random_forest.tree.node import predict_node
from rfe.models.random_forest.tree.tree import TrainedTree


def is_oob_prediction_correct(prediction: float, target: float, task_type: str) -> bool:
    if task_type == rconst.RFE_TASK_CLASSIFICATION:
        return prediction == target
    # regression: within a fixed fraction of the target magnitude
    return abs(prediction - target) <= rconst.RFE_RF_OOB_REGRESSION_TOLERANCE * abs(target)


class OOBVoteCollector:
    """
    Accumulates, per training-set row, the predictions of the trees that left it out of bag.

    Trees must be added in ensemble order; votes for each row keep that order.
    """

    def __init__(self, features: np.ndarray, targets: np.ndarray, task_type: str):
        self.features = features
        self.targets = targets
        self.task_type = task_type
        self.votes: dict[int, list[float]] = {}

    def add_tree(self, tree: TrainedTree) -> None:
        for index in tree.oob_indices:
            vote = predict_node(tree.root, self.features[index])
            if not np.isfinite(vote):
                continue
            self.votes.setdefault(index, []).append(vote)

    def score(self, indices: Sequence[int] | None = None) -> float:
        """Fraction of rows whose aggregated out-of-bag prediction is correct, over ``indices`` or every voted row."""
        rows = self.votes.keys() if indices is None else indices

        correct = 0
        total = 0
        for index in rows:
            votes = self.votes.get(index)
            target = float(self.targets[index])
            if not votes or not np.isfinite(target):
                continue
            prediction = aggregate_predictions(votes, self.task_type)
            if is_oob_prediction_correct(prediction, target, self.task_type):
                correct += 1
            total += 1

        return correct / total if total > 0 else 0.0


def calculate_oob_trace(trees: Sequence[TrainedTree],
                        features: np.ndarray,
                        targets: np.ndarray,
                        task_type: str) -> tuple[list[float], float]:
    """
    Computes the out-of-bag score trace and the final out-of-bag score.

    The trace entry for tree ``t`` scores the rows out of bag for tree ``t`` using the
    trees ``0..t``; the final score covers every row that was out of bag at least once.
    """
    collector = OOBVoteCollector(features, targets, task_type)
    trace: list[float] = []

    for tree in trees:
        collector.add_tree(tree)
        trace.append(collector.score(tree.oob_indices) if tree.oob_indices else 0.0)

    return trace, collector.score()
