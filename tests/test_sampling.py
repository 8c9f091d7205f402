"""Tests for bootstrap sampling, feature subsampling and prediction aggregation."""

import math

import numpy as np
import pytest

from rfe.models.random_forest import (
    BaggingSampler,
    ValidationError,
    aggregate_predictions,
    calculate_prediction_confidence,
    create_bootstrap_sample,
    get_feature_sample_size,
    sample_features,
)


class TestBootstrapSample:
    @pytest.mark.parametrize("n, ratio, expected", [(50, 1.0, 50), (50, 0.5, 25), (7, 0.3, 2), (10, 0.05, 0)])
    def test_sample_size_is_floor_of_ratio(self, rng, n, ratio, expected):
        indices, _ = create_bootstrap_sample(n, ratio, rng)
        assert len(indices) == expected

    def test_oob_is_complement_of_draw(self, rng):
        indices, oob = create_bootstrap_sample(40, 1.0, rng)

        assert np.all((indices >= 0) & (indices < 40))
        assert oob.tolist() == sorted(set(range(40)) - set(indices.tolist()))

    @pytest.mark.parametrize("ratio", [0.0, -0.5, 1.5])
    def test_ratio_outside_unit_interval_is_rejected(self, rng, ratio):
        with pytest.raises(ValidationError):
            create_bootstrap_sample(10, ratio, rng)

    def test_oob_fraction_converges_to_one_over_e(self, rng):
        n = 2000
        fractions = [len(create_bootstrap_sample(n, 1.0, rng)[1]) / n for _ in range(20)]
        assert np.mean(fractions) == pytest.approx(1 / math.e, abs=0.05)

    def test_same_seed_same_sample(self):
        first = create_bootstrap_sample(100, 0.8, np.random.default_rng(3))
        second = create_bootstrap_sample(100, 0.8, np.random.default_rng(3))

        assert np.array_equal(first[0], second[0])
        assert np.array_equal(first[1], second[1])


class TestFeatureSampling:
    def test_sampled_features_are_sorted_unique_and_in_range(self, rng):
        features = sample_features(20, 6, rng)

        assert len(features) == 6
        assert features.tolist() == sorted(set(features.tolist()))
        assert features.min() >= 0 and features.max() < 20

    def test_full_sample_returns_every_feature(self, rng):
        assert sample_features(5, 5, rng).tolist() == [0, 1, 2, 3, 4]

    @pytest.mark.parametrize(
        "total, ratio, expected",
        [
            (16, "sqrt", 4),
            (10, "sqrt", 3),
            (16, "log2", 4),
            (1, "log2", 1),
            (10, "all", 10),
            (10, 0.35, 3),
            (10, 0.01, 1),
            (10, 1.0, 10),
        ],
    )
    def test_feature_sample_size(self, total, ratio, expected):
        assert get_feature_sample_size(total, ratio) == expected

    def test_unknown_sampling_mode_is_rejected(self):
        with pytest.raises(ValidationError):
            get_feature_sample_size(10, "cube")

    def test_bagging_sampler_draw_is_reproducible(self):
        sampler = BaggingSampler(n_samples=30, n_features=9, bootstrap_sample_ratio=0.5, feature_sampling_ratio="sqrt")
        first = sampler.draw(np.random.default_rng(11))
        second = sampler.draw(np.random.default_rng(11))

        assert sampler.max_features == 3
        assert len(first.indices) == 15
        assert np.array_equal(first.indices, second.indices)
        assert np.array_equal(first.features, second.features)
        assert np.array_equal(first.oob_indices, second.oob_indices)


class TestAggregation:
    def test_majority_vote(self):
        assert aggregate_predictions([1.0, 0.0, 1.0], "classification") == 1.0

    def test_tie_goes_to_first_encountered_class(self):
        assert aggregate_predictions([2.0, 1.0, 1.0, 2.0], "classification") == 2.0
        assert aggregate_predictions([1.0, 2.0, 2.0, 1.0], "classification") == 1.0

    def test_regression_mean(self):
        assert aggregate_predictions([1.0, 2.0, 6.0], "regression") == pytest.approx(3.0)

    def test_empty_predictions_are_rejected(self):
        with pytest.raises(ValueError):
            aggregate_predictions([], "regression")

    def test_classification_confidence_is_agreement_fraction(self):
        assert calculate_prediction_confidence([1.0, 1.0, 0.0, 1.0], "classification") == pytest.approx(0.75)

    def test_regression_confidence_decays_with_variance(self):
        assert calculate_prediction_confidence([4.0, 4.0, 4.0], "regression") == pytest.approx(1.0)
        assert calculate_prediction_confidence([0.0, 2.0], "regression") == pytest.approx(math.exp(-1.0))

    def test_confidence_of_no_predictions_is_zero(self):
        assert calculate_prediction_confidence([], "classification") == 0.0
