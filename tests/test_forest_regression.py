import numpy as np
import pandas as pd
import pytest
from sklearn.exceptions import NotFittedError

from arbor.data.dataset import Dataset
from arbor.models.random_forest import ForestConfigError, RandomForestRegressor


def _identity_response(n: int = 500, p: int = 5, seed: int = 0):
    rng = np.random.default_rng(seed)
    x = rng.uniform(-1, 1, size=(n, p))
    return x, x[:, 0].copy()


def test_identity_response_is_recovered():
    x, y = _identity_response()
    forest = RandomForestRegressor(n_trees=50, mtry=5, node_size=5, n_jobs=1, seed=42).fit(x, y)

    assert forest.error() < 0.1 * np.std(y)
    importance = forest.importance()
    assert np.all(importance[0] > importance[1:])
    assert all(tree_weight.weight == 1.0 for tree_weight in forest.trees_)


def test_default_node_size_and_mtry():
    x, y = _identity_response(n=100, p=6)
    forest = RandomForestRegressor(n_trees=3, n_jobs=1, seed=0).fit(x, y)
    params = forest._resolve_tree_params(Dataset(x, y))
    assert params["node_size"] == 5
    assert params["mtry"] == 2
    assert params["max_nodes"] == 20
    assert all(tree.n_leaves() <= 20 for tree in forest.trees())


def test_fixed_seed_is_reproducible_whatever_n_jobs():
    x, y = _identity_response(n=150)
    a = RandomForestRegressor(n_trees=8, n_jobs=1, seed=4).fit(x, y)
    b = RandomForestRegressor(n_trees=8, n_jobs=2, seed=4).fit(x, y)

    assert a.error() == b.error()
    np.testing.assert_array_equal(a.predict(x), b.predict(x))


def test_single_and_batch_predictions_agree():
    x, y = _identity_response(n=150)
    forest = RandomForestRegressor(n_trees=6, n_jobs=1, seed=1).fit(x, y)
    batch = forest.predict(x[:5])
    np.testing.assert_allclose([forest.predict_one(row) for row in x[:5]], batch)


def test_growth_curve_ends_at_full_forest_rmse():
    x, y = _identity_response(n=300)
    forest = RandomForestRegressor(n_trees=10, mtry=5, n_jobs=1, seed=2).fit(x[:200], y[:200])

    curve = forest.test(x[200:], y[200:])
    assert curve.shape == (10,)
    rmse = np.sqrt(np.mean((forest.predict(x[200:]) - y[200:]) ** 2))
    assert curve[-1] == pytest.approx(rmse)


def test_merge_and_trim():
    x, y = _identity_response(n=120)
    a = RandomForestRegressor(n_trees=5, n_jobs=1, seed=0).fit(x, y)
    b = RandomForestRegressor(n_trees=5, n_jobs=1, seed=10).fit(x, y)

    merged = a.merge(b)
    assert merged.size() == 10
    np.testing.assert_allclose(merged.importance(), a.importance() + b.importance())

    merged.trim(5)
    np.testing.assert_allclose(merged.predict(x), a.predict(x))


def test_dataframe_with_nominal_column():
    rng = np.random.default_rng(3)
    group = rng.choice(["a", "b", "c"], size=200)
    df = pd.DataFrame({"group": pd.Categorical(group), "noise": rng.normal(size=200)})
    y = np.select([group == "a", group == "b"], [1.0, 5.0], default=10.0)

    forest = RandomForestRegressor(n_trees=10, mtry=2, n_jobs=1, seed=0).fit(df, y)
    np.testing.assert_allclose(forest.predict(df), y)
    assert forest.error() == pytest.approx(0.0, abs=1e-9)


def test_unfitted_and_misconfigured_forest():
    x, y = _identity_response(n=30)
    with pytest.raises(NotFittedError):
        RandomForestRegressor().predict(x)
    with pytest.raises(ForestConfigError):
        RandomForestRegressor(n_jobs=1, mtry=6).fit(x, y)
    with pytest.raises(ValueError):
        RandomForestRegressor(n_trees=2, n_jobs=1, seed=0).fit(x, y).predict(x[:, :3])
