from .config import RandomForestConfig, ensure_valid_config, validate_config
from .exceptions import (
    NotTrainedError,
    NumericError,
    RandomForestError,
    TrainingCancelledError,
    TrainingError,
    ValidationError,
)
from .forest.estimator import RandomForestEstimator
from .forest.forest import CancellationToken, PredictionResult, RandomForest, RandomForestModel, TrainingHistory
from .forest.importance import (
    FeatureImportance,
    calculate_feature_importance,
    calculate_permutation_importance,
    feature_importance_from_trees,
    rank_features,
)
from .sampling.aggregation import aggregate_predictions, calculate_prediction_confidence
from .sampling.bagging import BaggingSampler, create_bootstrap_sample, get_feature_sample_size, sample_features
from .tree.node import InternalNode, LeafNode, Node, predict_node
from .tree.tree import DecisionTree, TrainedTree, TreeConfig

__all__ = [
    "RandomForest",
    "RandomForestEstimator",
    "RandomForestConfig",
    "RandomForestModel",
    "TrainingHistory",
    "PredictionResult",
    "CancellationToken",
    "DecisionTree",
    "TrainedTree",
    "TreeConfig",
    "Node",
    "LeafNode",
    "InternalNode",
    "predict_node",
    "BaggingSampler",
    "create_bootstrap_sample",
    "sample_features",
    "get_feature_sample_size",
    "aggregate_predictions",
    "calculate_prediction_confidence",
    "FeatureImportance",
    "calculate_feature_importance",
    "calculate_permutation_importance",
    "feature_importance_from_trees",
    "rank_features",
    "validate_config",
    "ensure_valid_config",
    "RandomForestError",
    "ValidationError",
    "NotTrainedError",
    "NumericError",
    "TrainingError",
    "TrainingCancelledError",
]
