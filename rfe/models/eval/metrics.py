from typing import Any

import numpy as np
import sklearn.metrics as skm
from numpy.typing import ArrayLike

import rfe.const as rconst
from rfe.utils import get_logger


def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5).astype(int)


class Scorer(object):
    def __init__(self, task_type: str) -> None:
        self.logger = get_logger(self.__class__.__name__)

        if task_type not in rconst.RFE_TASK_TYPES:
            raise ValueError(f"Invalid task type: {task_type}")
        self.task_type = task_type

    def _regression_metrics(self, y_true: np.ndarray, y_pred: np.ndarray) -> dict[str, Any]:
        # constant targets count as a perfect fit
        r2 = 1.0 if np.all(y_true == y_true[0]) else float(skm.r2_score(y_true, y_pred))

        return {
            "mse": float(skm.mean_squared_error(y_true, y_pred)),
            "mae": float(skm.mean_absolute_error(y_true, y_pred)),
            "r2": r2,
        }

    def _classification_metrics(self, y_true: np.ndarray, y_pred: np.ndarray) -> dict[str, Any]:
        y_true, y_pred = _round_half_up(y_true), _round_half_up(y_pred)
        labels = np.unique(np.concatenate([y_true, y_pred]))

        return {
            "accuracy": float(skm.accuracy_score(y_true, y_pred)),
            "confusion_matrix": skm.confusion_matrix(y_true, y_pred, labels=labels).tolist(),
            "labels": labels.tolist(),
        }

    def score(self, y_true: ArrayLike, y_pred: ArrayLike) -> dict[str, Any]:
        y_true, y_pred = np.asarray(y_true, dtype=float).ravel(), np.asarray(y_pred, dtype=float).ravel()

        if y_true.shape[0] != y_pred.shape[0]:
            raise ValueError("Predictions and targets must have the same length")
        if y_true.shape[0] == 0:
            raise ValueError("No predictions to evaluate")

        if self.task_type == rconst.RFE_TASK_REGRESSION:
            metrics = self._regression_metrics(y_true, y_pred)
        else:
            metrics = self._classification_metrics(y_true, y_pred)

        self.logger.debug(f"Computed {self.task_type} metrics over {y_true.shape[0]} samples")
        return metrics


def calculate_metrics(predictions: ArrayLike, targets: ArrayLike, task_type: str) -> dict[str, Any]:
    """
    Computes evaluation metrics for a set of predictions.

    Regression reports mse, mae and r2; classification reports accuracy and the confusion
    matrix over the sorted union of the (rounded) predicted and true labels.

    :param ArrayLike predictions: The predicted values
    :param ArrayLike targets: The true values
    :param str task_type: 'regression' or 'classification'
    :return dict[str, Any]: The computed metrics
    :raises ValueError: If the inputs are empty, of different lengths, or the task type is invalid
    """
    return Scorer(task_type).score(targets, predictions)
