from typing import Optional

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike
from sklearn.base import BaseEstimator

import rfe.const as rconst
from rfe.models.eval.metrics import calculate_metrics
from rfe.models.random_forest.config import RandomForestConfig
from rfe.models.random_forest.exceptions import NotTrainedError
from rfe.models.random_forest.forest.forest import RandomForest


class RandomForestEstimator(BaseEstimator):
    """
    Scikit-learn compatible wrapper around RandomForest.

    - __init__() stores only hyperparameters
    - fit(X, y) trains and sets the learned attributes
    - predict(X) returns the ensemble predictions as an array
    - score(X, y) returns accuracy (classification) or R^2 (regression)
    """

    def __init__(self,
                 n_trees: int = rconst.RFE_RF_DEFAULT_NUM_TREES,
                 max_depth: int | str = rconst.RFE_RF_DEFAULT_MAX_DEPTH,
                 min_samples_leaf: int = rconst.RFE_RF_DEFAULT_MIN_SAMPLES_LEAF,
                 feature_sampling_ratio: float | str = rconst.RFE_RF_DEFAULT_FEATURE_SAMPLING_RATIO,
                 task_type: str = rconst.RFE_RF_DEFAULT_TASK_TYPE,
                 bootstrap_sample_ratio: float = rconst.RFE_RF_DEFAULT_BOOTSTRAP_SAMPLE_RATIO,
                 random_seed: Optional[int] = None,
                 n_jobs: int = 1):
        self.n_trees = n_trees
        self.max_depth = max_depth
        self.min_samples_leaf = min_samples_leaf
        self.feature_sampling_ratio = feature_sampling_ratio
        self.task_type = task_type
        self.bootstrap_sample_ratio = bootstrap_sample_ratio
        self.random_seed = random_seed
        self.n_jobs = n_jobs

    def fit(self, X: ArrayLike, y: ArrayLike) -> "RandomForestEstimator":
        feature_names = [str(col) for col in X.columns] if isinstance(X, pd.DataFrame) else None

        config = RandomForestConfig(
            num_trees=self.n_trees,
            max_depth=self.max_depth,
            min_samples_leaf=self.min_samples_leaf,
            feature_sampling_ratio=self.feature_sampling_ratio,
            task_type=self.task_type,
            random_seed=self.random_seed,
            bootstrap_sample_ratio=self.bootstrap_sample_ratio,
        )

        self.forest_ = RandomForest(config, n_jobs=self.n_jobs)
        model = self.forest_.train(np.asarray(X), np.asarray(y), feature_names)

        self.n_features_in_ = model.n_features
        if feature_names is not None:
            self.feature_names_in_ = np.asarray(feature_names, dtype=object)
        self.feature_importances_ = np.asarray(model.feature_importance, dtype=float)
        self.oob_score_ = model.oob_score

        return self

    def predict(self, X: ArrayLike) -> np.ndarray:
        self._check_fitted()

        X = np.asarray(X, dtype=float)
        if X.ndim == 1:
            X = X.reshape(1, -1)

        if X.shape[1] != self.n_features_in_:
            raise ValueError(
                f"X has {X.shape[1]} features, but this model was fitted with {self.n_features_in_} features")

        return np.asarray([result.prediction for result in self.forest_.predict_batch(X)], dtype=float)

    def score(self, X: ArrayLike, y: ArrayLike) -> float:
        metrics = calculate_metrics(self.predict(X), y, self.task_type)
        if self.task_type == rconst.RFE_TASK_CLASSIFICATION:
            return metrics["accuracy"]
        return metrics["r2"]

    def _check_fitted(self):
        if not hasattr(self, "forest_") or not self.forest_.is_trained:
            raise NotTrainedError("Estimator not fitted. "
                                  "Call fit with appropriate input data before using this estimator.")
