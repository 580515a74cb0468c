import numpy as np
import pytest

from arbor.models.random_forest.tree.impurity import (
    SplitRule,
    compute_impurity,
    impurity_reduction,
    leaf_output,
    posteriori,
    variance_reduction,
)


def test_pure_histogram_has_zero_impurity_for_every_rule():
    for rule in SplitRule:
        assert compute_impurity(np.array([0, 7, 0]), rule) == 0.0


def test_balanced_two_class_impurities():
    counts = np.array([5, 5])
    assert compute_impurity(counts, "gini") == pytest.approx(0.5)
    assert compute_impurity(counts, "entropy") == pytest.approx(1.0)
    assert compute_impurity(counts, "classification_error") == pytest.approx(0.5)


def test_impurity_accepts_stacked_histograms():
    stacked = np.array([[2, 2], [4, 0], [0, 0]])
    np.testing.assert_allclose(compute_impurity(stacked, SplitRule.GINI), [0.5, 0.0, 0.0])


def test_unknown_rule_is_rejected():
    with pytest.raises(ValueError):
        compute_impurity(np.array([1, 1]), "twoing")


def test_impurity_reduction_of_a_perfect_split_equals_parent_impurity():
    parent = np.array([3, 3])
    score = impurity_reduction(parent, np.array([3, 0]), np.array([0, 3]), SplitRule.GINI)
    assert score == pytest.approx(6 * 0.5)


def test_variance_reduction_matches_sum_of_squares_difference():
    y = np.array([0.0, 0.0, 10.0, 10.0])
    score = variance_reduction(y.sum(), 4.0, np.array([0.0]), np.array([2.0]))
    parent_ss = np.sum((y - y.mean()) ** 2)
    assert score[0] == pytest.approx(parent_ss)


def test_leaf_output_prefers_lowest_class_on_ties():
    assert leaf_output(np.array([3, 5, 5])) == 1


def test_posteriori_is_laplace_smoothed_and_normalized():
    p = posteriori((3, 0, 1))
    np.testing.assert_allclose(p, [4 / 7, 1 / 7, 2 / 7])
    assert p.sum() == pytest.approx(1.0)
