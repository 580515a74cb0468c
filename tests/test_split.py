import numpy as np
import pytest

from arbor.data.dataset import Dataset
from arbor.models.random_forest.errors import ForestConfigError, InvalidStateError
from arbor.models.random_forest.tree.split import SplitFinder


def _finder(x, y, **kwargs) -> SplitFinder:
    nominal = kwargs.pop("nominal", None)
    task = kwargs.pop("task", None)
    return SplitFinder(Dataset(x, y, nominal=nominal, task=task), node_size=kwargs.pop("node_size", 1), **kwargs)


def test_continuous_split_on_separable_classes():
    x = np.arange(1.0, 7.0).reshape(-1, 1)
    finder = _finder(x, np.array([0, 0, 0, 1, 1, 1]))

    split = finder.find_best_split(np.ones(6, dtype=np.int64))
    assert split.feature == 0
    assert split.threshold == pytest.approx(3.5)
    assert split.score == pytest.approx(3.0)
    assert (split.true_size, split.false_size) == (3, 3)


def test_regression_split_maximizes_variance_reduction():
    x = np.array([[1.0], [2.0], [3.0], [4.0]])
    finder = _finder(x, np.array([0.0, 0.0, 10.0, 10.0]), task="regression")

    split = finder.find_best_split(np.ones(4, dtype=np.int64))
    assert split.threshold == pytest.approx(2.5)
    assert split.score == pytest.approx(100.0)


def test_bagging_weights_count_as_repeated_rows():
    x = np.arange(1.0, 7.0).reshape(-1, 1)
    finder = _finder(x, np.array([0, 0, 0, 1, 1, 1]))

    split = finder.find_best_split(np.array([2, 0, 1, 3, 0, 1]))
    assert split.threshold == pytest.approx(3.5)
    assert (split.true_size, split.false_size) == (3, 4)


def test_ties_keep_the_first_scanned_feature():
    rng = np.random.default_rng(3)
    column = rng.uniform(size=40)
    x = np.column_stack([column, column])
    y = (column > 0.5).astype(np.int64)

    split = _finder(x, y, mtry=2).find_best_split(np.ones(40, dtype=np.int64))
    assert split.feature == 0


def test_single_valued_feature_is_skipped():
    x = np.column_stack([np.full(6, 2.0), np.arange(6.0)])
    finder = _finder(x, np.array([0, 0, 0, 1, 1, 1]))
    samples = np.ones(6, dtype=np.int64)

    assert finder.find_best_split_for(0, samples) is None
    assert finder.find_best_split(samples).feature == 1


def test_pure_node_has_no_split():
    x = np.arange(6.0).reshape(-1, 1)
    assert _finder(x, np.array([1, 1, 1, 1, 1, 0])).find_best_split(np.array([1, 1, 1, 1, 1, 0])) is None


def test_undersized_node_cannot_be_split():
    x = np.arange(6.0).reshape(-1, 1)
    finder = _finder(x, np.array([0, 1, 0, 1, 0, 1]), node_size=5)
    with pytest.raises(InvalidStateError):
        finder.find_best_split(np.array([1, 1, 1, 0, 0, 0]))


def test_invalid_mtry_and_node_size():
    x = np.zeros((4, 2))
    y = np.array([0, 1, 0, 1])
    with pytest.raises(ForestConfigError):
        _finder(x, y, mtry=3)
    with pytest.raises(ForestConfigError):
        _finder(x, y, mtry=0)
    with pytest.raises(ForestConfigError):
        _finder(x, y, node_size=0)


def test_nominal_two_class_split_groups_categories_by_class_proportion():
    x = np.array([[0.0], [0.0], [1.0], [1.0], [2.0], [2.0]])
    y = np.array([0, 0, 1, 1, 0, 0])
    split = _finder(x, y, nominal=[True]).find_best_split(np.ones(6, dtype=np.int64))

    assert split.categories == frozenset({0, 2})
    assert split.threshold is None
    assert split.score == pytest.approx(8 / 3)


def test_nominal_multiclass_split_enumerates_bipartitions():
    x = np.repeat(np.arange(4.0), 2).reshape(-1, 1)
    y = np.array([0, 0, 1, 1, 2, 2, 0, 0])
    split = _finder(x, y, nominal=[True]).find_best_split(np.ones(8, dtype=np.int64))

    assert split.categories == frozenset({1, 2})
    assert split.score == pytest.approx(3.0)
    assert (split.true_size, split.false_size) == (4, 4)


def test_nominal_multiclass_split_with_many_categories_isolates_one_category():
    codes = np.concatenate([np.repeat(np.arange(11.0), 2), np.full(6, 11.0)])
    y = np.concatenate([np.zeros(20, dtype=np.int64), [2, 2], np.ones(6, dtype=np.int64)])
    split = _finder(codes.reshape(-1, 1), y, nominal=[True]).find_best_split(np.ones(28, dtype=np.int64))

    assert split.categories == frozenset({11})
    assert (split.true_size, split.false_size) == (6, 22)
    parent = 28 * (1 - (20**2 + 6**2 + 2**2) / 28**2)
    right = 22 * (1 - (20**2 + 2**2) / 22**2)
    assert split.score == pytest.approx(parent - right)


def test_nominal_regression_split():
    x = np.array([[0.0], [1.0], [2.0], [0.0], [1.0], [2.0]])
    y = np.array([5.0, 0.0, 5.0, 5.0, 0.0, 5.0])
    split = _finder(x, y, nominal=[True], task="regression").find_best_split(np.ones(6, dtype=np.int64))

    assert split.categories == frozenset({1})
    assert split.score == pytest.approx(np.sum((y - y.mean()) ** 2))


def test_partition_splits_weights_into_disjoint_children():
    x = np.arange(1.0, 7.0).reshape(-1, 1)
    finder = _finder(x, np.array([0, 0, 0, 1, 1, 1]))
    samples = np.array([2, 0, 1, 3, 0, 1])

    split = finder.find_best_split(samples)
    true_samples, false_samples = finder.partition(split, samples)

    np.testing.assert_array_equal(true_samples + false_samples, samples)
    assert not np.any((true_samples > 0) & (false_samples > 0))
    assert (true_samples.sum(), false_samples.sum()) == (split.true_size, split.false_size)
