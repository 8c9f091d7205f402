import asyncio
import json
import pathlib
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Mapping, Optional, Sequence

import numpy as np
from joblib import Parallel, delayed
from numpy.typing import ArrayLike

import rfe.const as rconst
from rfe.decorators import time_func
from rfe.models.random_forest.config import RandomForestConfig, ensure_valid_config
from rfe.models.random_forest.exceptions import (
    NotTrainedError,
    NumericError,
    TrainingCancelledError,
    TrainingError,
    ValidationError,
)
from rfe.models.random_forest.forest.importance import calculate_feature_importance
from rfe.models.random_forest.forest.oob import calculate_oob_trace
from rfe.models.random_forest.sampling.aggregation import aggregate_predictions, calculate_prediction_confidence
from rfe.models.random_forest.sampling.bagging import BaggingSampler
from rfe.models.random_forest.tree.node import predict_node
from rfe.models.random_forest.tree.tree import DecisionTree, TrainedTree, TreeConfig
from rfe.utils import get_logger

ProgressCallback = Callable[[float, int], None]


@dataclass(frozen=True)
class PredictionResult:
    prediction: float
    confidence: Optional[float] = None
    tree_votes: Optional[list[float]] = None

    def to_dict(self) -> dict[str, Any]:
        document: dict[str, Any] = {"prediction": self.prediction}
        if self.confidence is not None:
            document["confidence"] = self.confidence
        if self.tree_votes is not None:
            document["treeVotes"] = list(self.tree_votes)
        return document


@dataclass(frozen=True)
class TrainingHistory:
    trees_completed: list[int] = field(default_factory=list)
    oob_scores: list[float] = field(default_factory=list)
    training_time: int = 0  # milliseconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "treesCompleted": list(self.trees_completed),
            "oobScores": list(self.oob_scores),
            "trainingTime": self.training_time,
        }

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> "TrainingHistory":
        return cls(
            trees_completed=[int(v) for v in document.get("treesCompleted", [])],
            oob_scores=[float(v) for v in document.get("oobScores", [])],
            training_time=int(document.get("trainingTime", 0)),
        )


@dataclass(frozen=True)
class RandomForestModel:
    config: RandomForestConfig
    trees: tuple[TrainedTree, ...]
    feature_importance: tuple[float, ...]
    oob_score: float
    trained: bool
    training_history: TrainingHistory
    feature_names: tuple[str, ...] = ()

    @property
    def n_features(self) -> int:
        return len(self.feature_importance)

    def to_dict(self) -> dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "trees": [tree.to_dict() for tree in self.trees],
            "featureImportance": list(self.feature_importance),
            "oobScore": self.oob_score,
            "trained": self.trained,
            "featureNames": list(self.feature_names),
            "trainingHistory": self.training_history.to_dict(),
        }

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> "RandomForestModel":
        for key in ("config", "trees", "featureImportance"):
            if key not in document:
                raise ValidationError(f"Serialized model is missing the '{key}' entry")
        if document.get("trained", False) and not document["trees"]:
            raise ValidationError("Serialized model is marked as trained but contains no trees")

        return cls(
            config=RandomForestConfig.from_dict(document["config"]),
            trees=tuple(TrainedTree.from_dict(tree) for tree in document["trees"]),
            feature_importance=tuple(float(v) for v in document["featureImportance"]),
            oob_score=float(document.get("oobScore", 0.0)),
            trained=bool(document.get("trained", False)),
            training_history=TrainingHistory.from_dict(document.get("trainingHistory", {})),
            feature_names=tuple(str(name) for name in document.get("featureNames", [])),
        )


class CancellationToken:
    """Cooperative cancellation flag, polled by the training loop between tree rounds."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class _RoundResult:
    index: int
    tree: Optional[TrainedTree] = None
    error: Optional[str] = None


@dataclass
class _TrainingRun:
    X: np.ndarray
    y: np.ndarray
    feature_names: tuple[str, ...]
    tree_config: TreeConfig
    sampler: BaggingSampler
    seeds: list[np.random.SeedSequence]
    started_at: float
    trees: list[TrainedTree] = field(default_factory=list)
    trees_completed: list[int] = field(default_factory=list)
    skipped: int = 0


def _train_round(index: int,
                 X: np.ndarray,
                 y: np.ndarray,
                 sampler: BaggingSampler,
                 tree_config: TreeConfig,
                 seed: np.random.SeedSequence) -> _RoundResult:
    # module-level so joblib workers can pickle it; failures are reported, not raised
    rng = np.random.default_rng(seed)
    bag = sampler.draw(rng)

    try:
        tree = DecisionTree(tree_config).train(X[bag.indices], y[bag.indices], bag.features, bag.oob_indices)
    except (ValidationError, NumericError, FloatingPointError) as e:
        return _RoundResult(index=index, error=str(e))

    return _RoundResult(index=index, tree=tree)


class RandomForest:
    """
    Random Forest ensemble of CART trees for classification or regression.

    - __init__() stores the configuration only, validation happens when training starts
    - train() builds a new model from bootstrap samples and random feature subsets
    - predict() / predict_batch() aggregate the tree votes of the trained model
    - serialize() / deserialize() convert to and from a self-contained document

    Every tree round draws from its own generator spawned from ``random_seed``, so a
    seeded forest is reproducible regardless of ``n_jobs``.
    """

    def __init__(self, config: RandomForestConfig | Mapping[str, Any] | None = None, n_jobs: int = 1):
        if config is None:
            config = RandomForestConfig()
        elif not isinstance(config, RandomForestConfig):
            config = RandomForestConfig.from_dict(config)

        self.config = config
        self.n_jobs = n_jobs
        self._model: Optional[RandomForestModel] = None

        self.logger = get_logger(self.__class__.__name__)

    @property
    def model(self) -> Optional[RandomForestModel]:
        return self._model

    @property
    def is_trained(self) -> bool:
        return self._model is not None and self._model.trained

    @time_func
    def train(self,
              features: ArrayLike,
              targets: ArrayLike,
              feature_names: Optional[Sequence[str]] = None,
              on_progress: Optional[ProgressCallback] = None,
              cancellation_token: Optional[CancellationToken] = None) -> RandomForestModel:
        """
        Trains a new forest, replacing any previously trained model once it completes.

        :param ArrayLike features: The training features, shape (n_samples, n_features)
        :param ArrayLike targets: The training targets, shape (n_samples,)
        :param Optional[Sequence[str]] feature_names: One name per feature column, defaults to feature_<i>
        :param Optional[ProgressCallback] on_progress: Called after each round with (percent_complete, trees_completed)
        :param Optional[CancellationToken] cancellation_token: Polled between rounds
        :return RandomForestModel: The trained model
        :raises ValidationError: If the configuration or the training data is invalid
        :raises TrainingCancelledError: If the token was cancelled before training finished
        :raises TrainingError: If no tree could be built
        """
        run = self._start_training(features, targets, feature_names)

        self._check_cancelled(cancellation_token)
        rounds = self._iter_rounds(run, self.n_jobs)
        try:
            for result in rounds:
                self._complete_round(run, result, on_progress)
                self._check_cancelled(cancellation_token)
        finally:
            rounds.close()

        return self._finish_training(run)

    async def train_async(self,
                          features: ArrayLike,
                          targets: ArrayLike,
                          feature_names: Optional[Sequence[str]] = None,
                          on_progress: Optional[ProgressCallback] = None,
                          cancellation_token: Optional[CancellationToken] = None) -> RandomForestModel:
        """Sequential training that hands control back to the event loop every few trees."""
        run = self._start_training(features, targets, feature_names)

        self._check_cancelled(cancellation_token)
        for result in self._iter_rounds(run, n_jobs=1):
            self._complete_round(run, result, on_progress)
            if result.index % rconst.RFE_RF_YIELD_EVERY_N_TREES == 0:
                await asyncio.sleep(0)
            self._check_cancelled(cancellation_token)

        return self._finish_training(run)

    def predict(self, x: ArrayLike) -> PredictionResult:
        model = self._require_trained()
        x = self._check_feature_vector(x, model)

        votes = [predict_node(tree.root, x) for tree in model.trees]
        finite_votes = [float(v) for v in votes if np.isfinite(v)]
        if len(finite_votes) < len(votes):
            self.logger.warning(f"Ignoring {len(votes) - len(finite_votes)} non-finite tree predictions")
        if not finite_votes:
            raise NumericError("Every tree produced a non-finite prediction")

        task_type = model.config.task_type
        return PredictionResult(
            prediction=aggregate_predictions(finite_votes, task_type),
            confidence=calculate_prediction_confidence(finite_votes, task_type),
            tree_votes=finite_votes,
        )

    def predict_batch(self, X: ArrayLike) -> list[PredictionResult]:
        self._require_trained()
        return [self.predict(x) for x in X]

    def serialize(self) -> dict[str, Any]:
        if self._model is None:
            raise NotTrainedError("No model to serialize")
        return self._model.to_dict()

    @classmethod
    def deserialize(cls, document: Mapping[str, Any], n_jobs: int = 1) -> "RandomForest":
        model = RandomForestModel.from_dict(document)
        forest = cls(model.config, n_jobs=n_jobs)
        forest._model = model
        return forest

    def to_json(self, **kwargs) -> str:
        return json.dumps(self.serialize(), **kwargs)

    @classmethod
    def from_json(cls, payload: str) -> "RandomForest":
        return cls.deserialize(json.loads(payload))

    def save(self, path: str | pathlib.Path) -> pathlib.Path:
        path = pathlib.Path(path)
        document = self.serialize()

        if not path.parent.exists():
            self.logger.warning(f"Save path parent directory does not exist, creating it: {path.parent}")
            path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(document, f)
        self.logger.info(f"Model saved to {path}")

        return path

    @classmethod
    def load(cls, path: str | pathlib.Path) -> "RandomForest":
        path = pathlib.Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Model file not found at {path}")

        with open(path, "r") as f:
            forest = cls.deserialize(json.load(f))
        forest.logger.info(f"Model loaded from {path}")

        return forest

    def _start_training(self,
                        features: ArrayLike,
                        targets: ArrayLike,
                        feature_names: Optional[Sequence[str]]) -> _TrainingRun:
        ensure_valid_config(self.config)
        X, y, names = self._check_training_data(features, targets, feature_names)

        tree_config = TreeConfig(
            max_depth=self.config.resolve_max_depth(X.shape[0]),
            min_samples_leaf=self.config.min_samples_leaf,
            task_type=self.config.task_type,
        )
        sampler = BaggingSampler(
            n_samples=X.shape[0],
            n_features=X.shape[1],
            bootstrap_sample_ratio=self.config.bootstrap_sample_ratio,
            feature_sampling_ratio=self.config.feature_sampling_ratio,
        )
        seeds = np.random.SeedSequence(self.config.random_seed).spawn(self.config.num_trees)

        self.logger.info(
            f"Training {self.config.num_trees} {self.config.task_type} trees on data with shape {X.shape}: "
            f"max_depth={tree_config.max_depth}, features per tree={sampler.max_features}, n_jobs={self.n_jobs}"
        )

        return _TrainingRun(
            X=X,
            y=y,
            feature_names=names,
            tree_config=tree_config,
            sampler=sampler,
            seeds=seeds,
            started_at=time.perf_counter(),
        )

    def _iter_rounds(self, run: _TrainingRun, n_jobs: int) -> Iterator[_RoundResult]:
        if n_jobs == 1:
            return (
                _train_round(index, run.X, run.y, run.sampler, run.tree_config, seed)
                for index, seed in enumerate(run.seeds)
            )

        # results come back in submission order, keeping progress reporting sequential
        return Parallel(n_jobs=n_jobs, return_as="generator")(
            delayed(_train_round)(index, run.X, run.y, run.sampler, run.tree_config, seed)
            for index, seed in enumerate(run.seeds)
        )

    def _complete_round(self,
                        run: _TrainingRun,
                        result: _RoundResult,
                        on_progress: Optional[ProgressCallback]) -> None:
        if result.tree is None:
            run.skipped += 1
            self.logger.warning(f"Skipping tree {result.index + 1}/{self.config.num_trees}: {result.error}")
        else:
            run.trees.append(result.tree)
            run.trees_completed.append(len(run.trees))

        if on_progress is not None:
            on_progress((result.index + 1) / self.config.num_trees * 100.0, len(run.trees))

    def _finish_training(self, run: _TrainingRun) -> RandomForestModel:
        if len(run.trees) < rconst.RFE_RF_MIN_VIABLE_TREES:
            raise TrainingError(
                f"Only {len(run.trees)} of {self.config.num_trees} trees could be built, "
                f"at least {rconst.RFE_RF_MIN_VIABLE_TREES} required"
            )

        oob_trace, oob_score = calculate_oob_trace(run.trees, run.X, run.y, self.config.task_type)
        feature_importance = calculate_feature_importance(run.trees, run.X.shape[1])
        training_time = int(round((time.perf_counter() - run.started_at) * 1000))

        self._model = RandomForestModel(
            config=self.config,
            trees=tuple(run.trees),
            feature_importance=tuple(feature_importance),
            oob_score=oob_score,
            trained=True,
            training_history=TrainingHistory(
                trees_completed=list(run.trees_completed),
                oob_scores=oob_trace,
                training_time=training_time,
            ),
            feature_names=run.feature_names,
        )

        self.logger.info(
            f"Trained {len(run.trees)} trees ({run.skipped} skipped) in {training_time} ms, OOB score: {oob_score:.4f}"
        )

        return self._model

    def _check_cancelled(self, token: Optional[CancellationToken]) -> None:
        if token is not None and token.cancelled:
            self.logger.warning("Training cancelled")
            raise TrainingCancelledError("Training was cancelled")

    def _check_training_data(self,
                             features: ArrayLike,
                             targets: ArrayLike,
                             feature_names: Optional[Sequence[str]]) -> tuple[np.ndarray, np.ndarray, tuple[str, ...]]:
        try:
            X = np.asarray(features, dtype=float)
            y = np.asarray(targets, dtype=float)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Training data must be a rectangular numeric matrix and numeric targets: {e}")

        if X.ndim != 2 or X.shape[0] == 0 or X.shape[1] == 0:
            raise ValidationError(f"Features must be a non-empty 2D array (n_samples, n_features), got shape {X.shape}")

        if y.ndim == 2 and y.shape[1] == 1:
            y = y[:, 0]
        if y.ndim != 1 or y.shape[0] != X.shape[0]:
            raise ValidationError(f"Expected {X.shape[0]} targets, got shape {y.shape}")

        if feature_names is None:
            names = tuple(f"feature_{i}" for i in range(X.shape[1]))
        else:
            names = tuple(str(name) for name in feature_names)
            if len(names) != X.shape[1]:
                raise ValidationError(f"Got {len(names)} feature names for {X.shape[1]} feature columns")

        return X, y, names

    def _check_feature_vector(self, x: ArrayLike, model: RandomForestModel) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        if x.ndim != 1:
            raise ValidationError(f"Feature vector must be 1D, got shape {x.shape}")
        if x.shape[0] != model.n_features:
            raise ValidationError(f"Expected a feature vector of length {model.n_features}, got {x.shape[0]}")
        return x

    def _require_trained(self) -> RandomForestModel:
        if self._model is None or not self._model.trained:
            raise NotTrainedError("Model has not been trained yet")
        return self._model
