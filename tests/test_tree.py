import numpy as np
import pytest

from arbor.data.dataset import Dataset
from arbor.models.random_forest.errors import ForestConfigError
from arbor.models.random_forest.tree.node import InternalNode, LeafNode, iter_nodes, to_leaf
from arbor.models.random_forest.tree.tree import Tree


def _noisy_classification(n: int = 150, seed: int = 0) -> Dataset:
    rng = np.random.default_rng(seed)
    x = rng.uniform(-1, 1, size=(n, 3))
    y = ((x[:, 0] + 0.5 * x[:, 1] + rng.normal(0, 0.3, size=n)) > 0).astype(np.int64)
    return Dataset(x, y)


def _check_partition(node, x: np.ndarray, samples: np.ndarray) -> None:
    stack = [(node, samples)]
    while stack:
        current, weights = stack.pop()
        assert current.size == weights.sum()
        if isinstance(current, InternalNode):
            mask = current.true_mask(x[:, current.feature])
            true_w, false_w = np.where(mask, weights, 0), np.where(mask, 0, weights)
            assert true_w.sum() > 0 and false_w.sum() > 0
            stack.append((current.true_child, true_w))
            stack.append((current.false_child, false_w))


def test_children_partition_their_parent():
    ds = _noisy_classification()
    samples = np.random.default_rng(1).integers(0, 3, size=ds.n_rows)
    tree = Tree.build(ds, samples, node_size=1, max_nodes=40, rng=np.random.default_rng(2))
    _check_partition(tree.root, ds.x, samples)


def test_leaf_count_and_depth_are_bounded():
    ds = _noisy_classification()
    for max_nodes in (2, 5, 17):
        tree = Tree.build(ds, node_size=1, max_nodes=max_nodes)
        assert 1 <= tree.n_leaves() <= max_nodes
        assert tree.depth() < max_nodes


def test_split_nodes_hold_more_than_node_size_samples():
    ds = _noisy_classification()
    tree = Tree.build(ds, node_size=10, max_nodes=100)
    for node in iter_nodes(tree.root):
        if isinstance(node, InternalNode):
            assert node.size > 10


def test_fitted_tree_is_already_collapsed():
    ds = _noisy_classification()
    tree = Tree.build(ds, node_size=1, max_nodes=30)
    assert to_leaf(tree.root) == tree.root
    assert tree.to_leaf().root == tree.root


def test_stump_separates_two_clusters():
    x = np.array([[0.1], [0.2], [0.3], [0.7], [0.8], [0.9]])
    y = np.array(["low", "low", "low", "high", "high", "high"])
    tree = Tree.build(Dataset(x, y), node_size=1, max_nodes=2)

    assert tree.n_leaves() == 2
    assert tree.root.threshold == pytest.approx(0.5)
    np.testing.assert_array_equal(tree.predict(x), [1, 1, 1, 0, 0, 0])
    assert tree.importance()[0] == pytest.approx(3.0)


def test_pure_data_grows_a_single_leaf():
    x = np.arange(10.0).reshape(-1, 1)
    tree = Tree.build(Dataset(x, np.zeros(10, dtype=np.int64)), node_size=1, max_nodes=5)
    assert isinstance(tree.root, LeafNode)
    assert tree.depth() == 0
    assert tree.predict_one(np.array([3.0])) == 0


def test_regression_tree_predicts_leaf_means():
    x = np.array([[1.0], [2.0], [3.0], [4.0]])
    tree = Tree.build(Dataset(x, np.array([1.0, 3.0, 10.0, 12.0])), node_size=1, max_nodes=2)
    np.testing.assert_allclose(tree.predict(x), [2.0, 2.0, 11.0, 11.0])


def test_posteriori_follows_leaf_counts():
    x = np.array([[0.0], [0.0], [0.0], [1.0], [1.0], [1.0]])
    y = np.array([0, 0, 1, 1, 1, 1])
    tree = Tree.build(Dataset(x, y), node_size=1, max_nodes=2)

    label, proba = tree.posteriori_one(np.array([0.0]))
    assert label == 0
    np.testing.assert_allclose(proba, [3 / 5, 2 / 5])
    assert tree.posteriori(x).shape == (6, 2)


def test_invalid_tree_configuration():
    with pytest.raises(ForestConfigError):
        Tree(node_size=0)
    with pytest.raises(ForestConfigError):
        Tree(max_nodes=1)
    with pytest.raises(ValueError):
        Tree(rule="twoing")


def test_invalid_samples_are_rejected():
    ds = _noisy_classification(n=20)
    with pytest.raises(ValueError):
        Tree().fit(ds, np.ones(19, dtype=np.int64))
    with pytest.raises(ValueError):
        Tree().fit(ds, np.zeros(20, dtype=np.int64))
    with pytest.raises(ValueError):
        Tree().fit(ds, np.full(20, 0.5))


def test_prediction_checks_feature_count():
    ds = _noisy_classification(n=30)
    tree = Tree.build(ds)
    with pytest.raises(ValueError):
        tree.predict(np.zeros((2, 2)))
