import math
import numbers
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

import rfe.const as rconst
from rfe.models.random_forest.exceptions import ValidationError

# document key -> dataclass field
_DOCUMENT_KEYS: dict[str, str] = {
    "numTrees": "num_trees",
    "maxDepth": "max_depth",
    "minSamplesLeaf": "min_samples_leaf",
    "featureSamplingRatio": "feature_sampling_ratio",
    "taskType": "task_type",
    "randomSeed": "random_seed",
    "bootstrapSampleRatio": "bootstrap_sample_ratio",
}


@dataclass(frozen=True)
class RandomForestConfig:
    num_trees: int = rconst.RFE_RF_DEFAULT_NUM_TREES
    max_depth: int | str = rconst.RFE_RF_DEFAULT_MAX_DEPTH
    min_samples_leaf: int = rconst.RFE_RF_DEFAULT_MIN_SAMPLES_LEAF
    feature_sampling_ratio: float | str = rconst.RFE_RF_DEFAULT_FEATURE_SAMPLING_RATIO
    task_type: str = rconst.RFE_RF_DEFAULT_TASK_TYPE
    random_seed: Optional[int] = None
    bootstrap_sample_ratio: float = rconst.RFE_RF_DEFAULT_BOOTSTRAP_SAMPLE_RATIO

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> "RandomForestConfig":
        """
        Builds a configuration from a document mapping.

        Both the camelCase document keys and the dataclass field names are accepted;
        missing keys fall back to the defaults. No validation is performed here.

        :param Mapping[str, Any] config: The configuration mapping
        :return RandomForestConfig: The configuration
        :raises ValidationError: If the mapping contains unknown keys
        """
        field_names = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        unknown: list[str] = []

        for key, value in config.items():
            name = _DOCUMENT_KEYS.get(key, key)
            if name not in field_names:
                unknown.append(key)
                continue
            kwargs[name] = value

        if unknown:
            raise ValidationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        document = {key: getattr(self, name) for key, name in _DOCUMENT_KEYS.items()}
        if self.random_seed is None:
            document.pop("randomSeed")
        return document

    def resolve_max_depth(self, n_samples: int) -> int:
        if self.max_depth == rconst.RFE_RF_AUTO_MAX_DEPTH:
            return int(math.floor(math.log2(max(n_samples, 1)))) + 1
        return int(self.max_depth)


def _is_int(value: Any) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and math.isfinite(value)


def _in_range(value: Any, bounds: tuple[int, int]) -> bool:
    return _is_int(value) and bounds[0] <= value <= bounds[1]


def validate_config(config: RandomForestConfig) -> list[str]:
    """Returns every violated configuration constraint, empty when the configuration is valid."""
    errors: list[str] = []

    lo, hi = rconst.RFE_RF_NUM_TREES_RANGE
    if not _in_range(config.num_trees, rconst.RFE_RF_NUM_TREES_RANGE):
        errors.append(f"Number of trees must be between {lo} and {hi}")

    lo, hi = rconst.RFE_RF_MAX_DEPTH_RANGE
    if config.max_depth != rconst.RFE_RF_AUTO_MAX_DEPTH and not _in_range(
        config.max_depth, rconst.RFE_RF_MAX_DEPTH_RANGE
    ):
        errors.append(f'Max depth must be "auto" or between {lo} and {hi}')

    lo, hi = rconst.RFE_RF_MIN_SAMPLES_LEAF_RANGE
    if not _in_range(config.min_samples_leaf, rconst.RFE_RF_MIN_SAMPLES_LEAF_RANGE):
        errors.append(f"Min samples per leaf must be between {lo} and {hi}")

    ratio = config.feature_sampling_ratio
    if isinstance(ratio, str):
        if ratio not in rconst.RFE_RF_FEATURE_SAMPLING_MODES:
            errors.append('Feature sampling ratio must be "sqrt", "log2", "all", or a number between 0 and 1')
    elif not (_is_number(ratio) and 0 < ratio <= 1):
        errors.append("Feature sampling ratio must be between 0 and 1")

    ratio = config.bootstrap_sample_ratio
    if not (_is_number(ratio) and 0 < ratio <= 1):
        errors.append("Bootstrap sample ratio must be between 0 and 1")

    if config.task_type not in rconst.RFE_TASK_TYPES:
        errors.append('Task type must be "regression" or "classification"')

    if config.random_seed is not None and not (_is_int(config.random_seed) and config.random_seed >= 0):
        errors.append("Random seed must be a non-negative integer")

    return errors


def ensure_valid_config(config: RandomForestConfig) -> None:
    errors = validate_config(config)
    if errors:
        raise ValidationError("Configuration validation failed: " + ", ".join(errors), errors)
