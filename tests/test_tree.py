"""Tests for CART tree induction, traversal and node serialization."""

import logging

import numpy as np
import pytest

from rfe.models.random_forest import (
    DecisionTree,
    InternalNode,
    LeafNode,
    NumericError,
    TrainedTree,
    TreeConfig,
    ValidationError,
    predict_node,
)
from rfe.models.random_forest.tree.impurity import compute_impurity, gini_impurity
from rfe.models.random_forest.tree.node import count_leaves, node_depth, node_from_dict, node_to_dict


def _leaves(node):
    if isinstance(node, LeafNode):
        return [node]
    return _leaves(node.left) + _leaves(node.right)


def _internal(node):
    if isinstance(node, LeafNode):
        return []
    return [node] + _internal(node.left) + _internal(node.right)


def classification_tree(max_depth: int = 10, min_samples_leaf: int = 1) -> DecisionTree:
    return DecisionTree(TreeConfig(max_depth=max_depth, min_samples_leaf=min_samples_leaf, task_type="classification"))


def regression_tree(max_depth: int = 10, min_samples_leaf: int = 1) -> DecisionTree:
    return DecisionTree(TreeConfig(max_depth=max_depth, min_samples_leaf=min_samples_leaf, task_type="regression"))


class TestImpurity:
    def test_gini_of_pure_and_balanced_counts(self):
        assert gini_impurity(np.array([4, 0])) == 0.0
        assert gini_impurity(np.array([2, 2])) == pytest.approx(0.5)
        assert gini_impurity(np.array([1, 1, 1])) == pytest.approx(2 / 3)

    def test_regression_impurity_is_variance(self):
        assert compute_impurity(np.array([1.0, 1.0, 5.0, 5.0]), "regression") == pytest.approx(4.0)

    def test_unknown_task_type(self):
        with pytest.raises(ValueError):
            compute_impurity(np.array([1.0]), "ranking")


class TestDecisionTreeClassification:
    def test_single_step_split_between_classes(self):
        tree = classification_tree(max_depth=2).train([[0], [1], [2], [3]], [0, 0, 1, 1], [0])

        assert isinstance(tree.root, InternalNode)
        assert tree.root.feature_index == 0
        assert tree.root.threshold == pytest.approx(1.5)
        assert tree.root.impurity == pytest.approx(0.5)
        assert [tree.predict([v]) for v in (0, 1, 2, 3)] == [0.0, 0.0, 1.0, 1.0]

    def test_pure_node_becomes_leaf(self):
        tree = classification_tree().train([[0], [1], [2]], [1, 1, 1], [0])

        assert tree.root == LeafNode(prediction=1.0, samples=3, impurity=0.0)

    def test_leaf_majority_tie_goes_to_first_encountered_class(self):
        tree = classification_tree(max_depth=1).train([[0], [0], [0], [0]], [2, 1, 1, 2], [0])

        assert isinstance(tree.root, LeafNode)
        assert tree.root.prediction == 2.0

    def test_equal_splits_prefer_the_first_feature(self):
        tree = classification_tree().train([[0, 0], [1, 1], [2, 2], [3, 3]], [0, 0, 1, 1], [0, 1])

        assert tree.root.feature_index == 0

    def test_splits_use_only_the_allowed_features(self):
        X = [[0, 5], [1, 3], [2, 9], [3, 1], [4, 7], [5, 2]]
        y = [0, 0, 1, 1, 0, 1]
        tree = classification_tree().train(X, y, [1])

        assert tree.feature_indices == (1,)
        assert all(node.feature_index == 1 for node in _internal(tree.root))

    def test_depth_is_bounded(self, rng):
        X = rng.uniform(size=(120, 3))
        y = rng.integers(0, 3, size=120)
        tree = classification_tree(max_depth=3).train(X, y, [0, 1, 2])

        assert node_depth(tree.root) <= 3

    def test_leaves_respect_min_samples_leaf(self, rng):
        X = rng.uniform(size=(100, 2))
        y = rng.integers(0, 2, size=100)
        tree = classification_tree(min_samples_leaf=5).train(X, y, [0, 1])

        assert all(leaf.samples >= 5 for leaf in _leaves(tree.root))

    def test_build_summary_is_logged(self, caplog):
        caplog.set_level(logging.DEBUG, logger="DecisionTree")

        classification_tree().train([[0], [1], [2], [3]], [0, 0, 1, 1], [0])

        assert "Built tree on 4 samples: depth=1, leaves=2" in caplog.text

    def test_best_split_with_a_small_child_makes_a_leaf(self):
        tree = classification_tree(min_samples_leaf=2).train([[0], [1], [2], [3], [4]], [0, 1, 1, 1, 1], [0])

        assert tree.root == LeafNode(prediction=1.0, samples=5, impurity=pytest.approx(0.32))

    def test_too_few_samples_for_two_leaves(self):
        tree = classification_tree(min_samples_leaf=3).train([[0], [1], [2], [3], [4]], [0, 0, 1, 1, 1], [0])

        assert isinstance(tree.root, LeafNode)

    def test_sample_counts_add_up(self, rng):
        X = rng.uniform(size=(80, 2))
        y = (X[:, 0] + X[:, 1] > 1).astype(float)
        tree = classification_tree().train(X, y, [0, 1])

        assert tree.root.samples == 80
        for node in _internal(tree.root):
            assert node.left.samples + node.right.samples == node.samples
        assert sum(leaf.samples for leaf in _leaves(tree.root)) == 80

    def test_training_data_is_fit_exactly_without_limits(self, rng):
        X = rng.uniform(size=(60, 2))
        y = rng.integers(0, 2, size=60).astype(float)
        tree = classification_tree(max_depth=50).train(X, y, [0, 1])

        predictions = np.array([tree.predict(x) for x in X])
        assert np.array_equal(predictions, y)


class TestDecisionTreeRegression:
    def test_split_and_leaf_means(self):
        tree = regression_tree().train([[0], [1], [2], [3]], [1, 1, 5, 5], [0])

        assert tree.root.threshold == pytest.approx(1.5)
        assert tree.root.impurity == pytest.approx(4.0)
        assert tree.root.left.prediction == pytest.approx(1.0)
        assert tree.root.right.prediction == pytest.approx(5.0)

    def test_depth_one_leaf_predicts_mean(self):
        tree = regression_tree(max_depth=1).train([[0], [1], [2], [3]], [1, 2, 10, 11], [0])

        assert tree.predict([0.2]) == pytest.approx(1.5)
        assert tree.predict([2.7]) == pytest.approx(10.5)

    def test_large_offset_targets_split_cleanly(self):
        tree = regression_tree().train([[0], [1], [2], [3]], [1e9, 1e9, 1e9 + 4, 1e9 + 4], [0])

        assert tree.root.threshold == pytest.approx(1.5)
        assert count_leaves(tree.root) == 2


class TestDecisionTreeRobustness:
    def test_non_finite_targets_are_skipped(self):
        tree = classification_tree().train([[0], [1], [2], [3]], [0, np.nan, 1, 1], [0])

        assert tree.root.samples == 3

    def test_non_finite_feature_values_never_yield_a_non_finite_threshold(self):
        tree = classification_tree().train([[0], [np.nan], [2], [3]], [0, 0, 1, 1], [0])

        assert all(np.isfinite(node.threshold) for node in _internal(tree.root))
        assert tree.predict([0.0]) == 0.0

    @pytest.mark.filterwarnings("ignore::RuntimeWarning")
    def test_overflowing_statistics_raise_numeric_error(self):
        with pytest.raises(NumericError):
            regression_tree().train([[0], [1]], [1.7e308, 1.7e308], [0])

    def test_empty_sample_is_rejected(self):
        with pytest.raises(ValidationError):
            classification_tree().train(np.empty((0, 1)), [], [0])

    def test_out_of_range_feature_index_is_rejected(self):
        with pytest.raises(ValidationError):
            classification_tree().train([[0], [1]], [0, 1], [1])

    def test_mismatched_targets_are_rejected(self):
        with pytest.raises(ValidationError):
            classification_tree().train([[0], [1]], [0, 1, 1], [0])

    def test_prediction_checks_vector_length(self):
        tree = classification_tree().train([[0, 1], [1, 0]], [0, 1], [0, 1])

        with pytest.raises(ValidationError):
            tree.predict([0.0])

    def test_invalid_task_type(self):
        with pytest.raises(ValidationError):
            DecisionTree(TreeConfig(max_depth=2, min_samples_leaf=1, task_type="ranking"))


class TestTraversalAndSerialization:
    def test_threshold_equality_descends_left(self):
        root = InternalNode(
            feature_index=1,
            threshold=2.0,
            samples=4,
            impurity=0.5,
            left=LeafNode(prediction=0.0, samples=2, impurity=0.0),
            right=LeafNode(prediction=1.0, samples=2, impurity=0.0),
        )

        assert predict_node(root, [9.0, 2.0]) == 0.0
        assert predict_node(root, [9.0, 2.5]) == 1.0

    def test_node_document_shape(self):
        root = InternalNode(0, 1.5, 4, 0.5, LeafNode(0.0, 2, 0.0), LeafNode(1.0, 2, 0.0))
        document = node_to_dict(root)

        assert document["isLeaf"] is False
        assert document["featureIndex"] == 0
        assert document["left"] == {"isLeaf": True, "prediction": 0.0, "samples": 2, "impurity": 0.0}
        assert node_from_dict(document) == root

    def test_internal_node_without_children_is_rejected(self):
        with pytest.raises(ValueError):
            node_from_dict({"isLeaf": False, "featureIndex": 0, "threshold": 1.0, "samples": 2, "impurity": 0.5})

    def test_trained_tree_round_trip(self, rng):
        X = rng.uniform(size=(50, 3))
        y = (X[:, 2] > 0.3).astype(float)
        tree = classification_tree().train(X, y, [0, 2], oob_indices=[4, 9])

        document = tree.to_dict()
        restored = TrainedTree.from_dict(document)

        assert document["featureIndices"] == [0, 2]
        assert document["oobIndices"] == [4, 9]
        assert document["numFeatures"] == 3
        assert restored == tree
