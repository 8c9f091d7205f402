import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import numpy as np
import pandas as pd

import rfe.const as rconst
from rfe.models.random_forest.exceptions import ValidationError


@dataclass
class TrainingData:
    features: np.ndarray
    targets: np.ndarray
    feature_names: list[str]
    task_type: str


def infer_task_type(targets: np.ndarray) -> str:
    """Classification when there are few distinct targets relative to the sample count, regression otherwise."""
    n_unique = np.unique(targets).shape[0]
    if n_unique <= max(2, math.sqrt(targets.shape[0])):
        return rconst.RFE_TASK_CLASSIFICATION
    return rconst.RFE_TASK_REGRESSION


def _to_numeric(df: pd.DataFrame, column: str) -> np.ndarray:
    values = pd.to_numeric(df[column], errors="coerce")
    invalid = values.isna()
    if invalid.any():
        raise ValidationError(f"Invalid numeric value for column {column}: {df[column][invalid].iloc[0]!r}")
    return values.to_numpy(dtype=float)


def prepare_training_data(data: pd.DataFrame | Sequence[Mapping[str, Any]],
                          target_column: str,
                          input_columns: Sequence[str],
                          logger: logging.Logger | None = None) -> TrainingData:
    """
    Extracts the numeric training matrix and targets from tabular data.

    :param pd.DataFrame | Sequence[Mapping[str, Any]] data: The dataset, as a DataFrame or a list of records
    :param str target_column: The column holding the targets
    :param Sequence[str] input_columns: The feature columns, in order
    :param logging.Logger | None logger: The logger to use for logging, defaults to None
    :return TrainingData: The features, targets, feature names and inferred task type
    :raises ValidationError: If the data is empty, a column is missing, or a value is not numeric
    """
    df = data if isinstance(data, pd.DataFrame) else pd.DataFrame.from_records(list(data))

    if df.empty:
        raise ValidationError("Dataset is empty")
    if not input_columns:
        raise ValidationError("No input columns specified")
    if not target_column:
        raise ValidationError("No target column specified")

    missing = [col for col in [*input_columns, target_column] if col not in df.columns]
    if missing:
        raise ValidationError(f"Columns not found in dataset: {', '.join(map(str, missing))}")

    features = np.column_stack([_to_numeric(df, col) for col in input_columns])
    targets = _to_numeric(df, target_column)
    task_type = infer_task_type(targets)

    if logger:
        logger.info(
            f"Prepared {features.shape[0]} samples with {features.shape[1]} features, inferred task type: {task_type}"
        )

    return TrainingData(
        features=features,
        targets=targets,
        feature_names=[str(col) for col in input_columns],
        task_type=task_type,
    )
