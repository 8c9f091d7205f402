import math
from collections import Counter
from typing import Sequence

import numpy as np

import rfe.const as rconst


def _majority_vote(predictions: Sequence[float]) -> tuple[float, int]:
    # most_common keeps first-encountered order among equal counts
    pred, count = Counter(predictions).most_common(1)[0]
    return pred, count


def aggregate_predictions(predictions: Sequence[float], task_type: str) -> float:
    """
    Combines per-tree predictions into the ensemble prediction.

    Classification takes the majority vote, ties going to the class encountered first;
    regression takes the arithmetic mean.
    """
    if len(predictions) == 0:
        raise ValueError("No predictions to aggregate")

    if task_type == rconst.RFE_TASK_REGRESSION:
        return float(np.mean(predictions))
    elif task_type == rconst.RFE_TASK_CLASSIFICATION:
        return _majority_vote(predictions)[0]
    else:
        raise ValueError(f"Invalid task type: {task_type}")


def calculate_prediction_confidence(predictions: Sequence[float], task_type: str) -> float:
    """
    Scores the agreement between trees.

    Classification: the fraction of trees voting for the majority class.
    Regression: exp(-variance) of the tree predictions, an uncalibrated agreement proxy.
    """
    if len(predictions) == 0:
        return 0.0

    if task_type == rconst.RFE_TASK_REGRESSION:
        return math.exp(-float(np.var(predictions)))
    elif task_type == rconst.RFE_TASK_CLASSIFICATION:
        return _majority_vote(predictions)[1] / len(predictions)
    else:
        raise ValueError(f"Invalid task type: {task_type}")
