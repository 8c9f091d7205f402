import numpy as np

import rfe.const as rconst


def gini_impurity(class_counts: np.ndarray) -> float:
    total = np.sum(class_counts)
    return float(1. - np.sum(np.square(class_counts / total))) if total > 0 else 0.0


def variance(targets: np.ndarray) -> float:
    # mean squared deviation from the node mean
    return float(np.var(targets)) if targets.size > 0 else 0.0


def compute_impurity(targets: np.ndarray, task_type: str) -> float:
    if task_type == rconst.RFE_TASK_CLASSIFICATION:
        _, class_counts = np.unique(targets, return_counts=True)
        return gini_impurity(class_counts)
    elif task_type == rconst.RFE_TASK_REGRESSION:
        return variance(targets)
    else:
        raise ValueError(f"Unknown task type: {task_type}")
