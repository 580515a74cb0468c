from copy import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from numpy.typing import ArrayLike
from sklearn.base import BaseEstimator
from sklearn.exceptions import NotFittedError

import arbor.models.eval.metrics as em
from arbor.const import ARBOR_RF_NEUTRAL_TREE_WEIGHT, ARBOR_RF_PARALLEL_PREFER
from arbor.data.dataset import Dataset
from arbor.decorators import time_func
from arbor.models.random_forest.errors import ForestConfigError
from arbor.models.random_forest.sampling.bagging import BaggingSampler
from arbor.models.random_forest.tree.tree import Tree
from arbor.utils import get_logger, resolve_seed

logger = get_logger(__name__)


@dataclass
class ForestTree:
    """A member tree of a forest together with its voting weight."""

    tree: Tree
    weight: float


@dataclass
class TreeContribution:
    """
    Everything one tree-building task hands back to the forest: the tree, its weight and its
    private out-of-bag predictions. Contributions are reduced once all tasks are done, so
    tasks never share mutable state.
    """

    tree: Tree
    weight: float
    oob_rows: np.ndarray
    oob_predictions: np.ndarray


def _fit_tree(
    tree_index: int,
    seed: int,
    dataset: Dataset,
    sampler: BaggingSampler,
    tree_params: Dict[str, Any],
) -> TreeContribution:
    rng = np.random.default_rng(seed)
    samples = sampler.sample(rng)
    tree = Tree.build(dataset, samples, rng=rng, **tree_params)

    oob_rows = BaggingSampler.oob_indices(samples)
    if oob_rows.size == 0:
        logger.warning(f"Random forest tree {tree_index} was trained without out-of-bag samples")
        return TreeContribution(
            tree=tree,
            weight=ARBOR_RF_NEUTRAL_TREE_WEIGHT,
            oob_rows=oob_rows,
            oob_predictions=np.empty(0, dtype=dataset.response.dtype),
        )

    oob_predictions = tree.predict(dataset.x[oob_rows])
    y_oob = dataset.response[oob_rows]

    if dataset.task == "classification":
        weight = em.accuracy_score(y_oob, oob_predictions)
        logger.info(f"Random forest tree {tree_index} OOB size: {oob_rows.size}, accuracy: {100 * weight:.2f}%")
    else:
        weight = ARBOR_RF_NEUTRAL_TREE_WEIGHT
        logger.info(
            f"Random forest tree {tree_index} OOB size: {oob_rows.size}, "
            f"RMSE: {em.root_mean_squared_error(y_oob, oob_predictions):.4f}"
        )

    return TreeContribution(tree=tree, weight=weight, oob_rows=oob_rows, oob_predictions=oob_predictions)


class RandomForest(BaseEstimator):
    """
    Bagged ensemble of CART trees, shared by the classification and regression forests.

    Trees are grown as independent joblib tasks, each from its own generator seeded with
    ``seed + tree_index``, so a fixed seed reproduces the forest whatever ``n_jobs`` is.
    After fitting the forest exposes its out-of-bag error estimate through ``error()`` and the
    summed split scores of every feature through ``importance()``.

    Subclasses set ``_task`` and define the hyperparameters in ``__init__``.
    """

    _task: str = ""

    # -- configuration -------------------------------------------------------------------------

    def _default_node_size(self) -> int:
        raise NotImplementedError

    def _default_mtry(self, n_features: int) -> int:
        raise NotImplementedError

    def _make_sampler(self, dataset: Dataset) -> BaggingSampler:
        raise NotImplementedError

    def _split_rule(self) -> str:
        return "gini"

    def _resolve_tree_params(self, dataset: Dataset) -> Dict[str, Any]:
        if not isinstance(self.n_trees, (int, np.integer)) or self.n_trees < 1:
            raise ForestConfigError(f"Invalid number of trees: {self.n_trees}")

        node_size = self.node_size if self.node_size is not None else self._default_node_size()
        if node_size < 1:
            raise ForestConfigError(f"Invalid minimum size of leaves: {node_size}")

        max_nodes = self.max_nodes if self.max_nodes is not None else max(2, dataset.n_rows // node_size)
        if max_nodes < 2:
            raise ForestConfigError(f"Invalid maximum number of leaves: {max_nodes}")

        mtry = self.mtry if self.mtry is not None else self._default_mtry(dataset.n_features)
        if not 1 <= mtry <= dataset.n_features:
            raise ForestConfigError(f"Invalid number of variables to split on at a node of the tree: {mtry}")

        if not 0.0 < self.subsample <= 1.0:
            raise ForestConfigError(f"Invalid sampling rate: {self.subsample}")

        if self.seed is not None and self.seed < 0:
            raise ForestConfigError(f"Seed must be non-negative, got {self.seed}")

        return {"node_size": int(node_size), "max_nodes": int(max_nodes), "mtry": int(mtry), "rule": self._split_rule()}

    # -- data handling -------------------------------------------------------------------------

    def _as_dataset(self, X: Union[Dataset, pd.DataFrame, ArrayLike], y: Optional[ArrayLike]) -> Dataset:
        if isinstance(X, Dataset):
            if y is not None:
                return Dataset(X.x, y, nominal=X.nominal, task=self._task, order=X.order, feature_names=X.feature_names, categories=X.categories)
            if X.task != self._task:
                raise ValueError(f"Expected a {self._task} dataset, got task {X.task}")
            return X

        if y is None:
            raise ValueError("A response vector is required unless X is a Dataset")

        if isinstance(X, pd.DataFrame):
            features = Dataset.from_frame(X)
            return Dataset(
                features.x,
                np.asarray(y),
                nominal=features.nominal,
                task=self._task,
                feature_names=features.feature_names,
                categories=features.categories,
            )

        return Dataset(X, np.asarray(y), task=self._task)

    def _as_matrix(self, X: Union[Dataset, pd.DataFrame, ArrayLike]) -> np.ndarray:
        if isinstance(X, Dataset):
            x = X.x
        elif isinstance(X, pd.DataFrame):
            if X.shape[1] != self.n_features_in_:
                raise ValueError(
                    f"X has {X.shape[1]} features, but this model was fitted with {self.n_features_in_} features"
                )
            columns = []
            for j, col in enumerate(X.columns):
                if j in self.categories_:
                    # unseen levels get code -1 and follow the false branch of every nominal split
                    columns.append(pd.Categorical(X[col], categories=self.categories_[j]).codes.astype(float))
                else:
                    columns.append(X[col].to_numpy(dtype=float))
            x = np.column_stack(columns)
        else:
            x = np.asarray(X, dtype=float)

        if x.ndim == 1:
            x = x.reshape(1, -1)
        if x.ndim != 2 or x.shape[1] != self.n_features_in_:
            raise ValueError(
                f"X has {x.shape[-1]} features, but this model was fitted with {self.n_features_in_} features"
            )
        return x

    def _as_instance(self, x: ArrayLike) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        if x.ndim == 2 and x.shape[0] == 1:
            x = x[0]
        if x.ndim != 1 or x.shape[0] != self.n_features_in_:
            raise ValueError(
                f"Expected a single instance with {self.n_features_in_} features, got shape {x.shape}"
            )
        return x

    # -- fitting -------------------------------------------------------------------------------

    @time_func
    def fit(self, X: Union[Dataset, pd.DataFrame, ArrayLike], y: Optional[ArrayLike] = None) -> "RandomForest":
        """
        Grows ``n_trees`` trees in parallel and aggregates their out-of-bag votes and importances.

        :param Dataset | pd.DataFrame | ArrayLike X: The training features, or a Dataset carrying the response
        :param Optional[ArrayLike] y: The response, unless X is a Dataset
        :return RandomForest: The fitted forest
        :raises ForestConfigError: If a hyperparameter is invalid for this data
        """
        dataset = self._as_dataset(X, y)
        tree_params = self._resolve_tree_params(dataset)
        sampler = self._make_sampler(dataset)

        # computed once here, shared read-only by every task
        _ = dataset.order

        base_seed = resolve_seed(self.seed)
        logger.info(
            f"Fitting {self.__class__.__name__} with {self.n_trees} trees on {dataset.n_rows} rows "
            f"and {dataset.n_features} features, tree params: {tree_params}"
        )

        contributions: List[TreeContribution] = Parallel(n_jobs=self.n_jobs, prefer=ARBOR_RF_PARALLEL_PREFER)(
            delayed(_fit_tree)(t, base_seed + t, dataset, sampler, tree_params) for t in range(self.n_trees)
        )

        self.n_features_in_ = dataset.n_features
        self.categories_ = dict(dataset.categories)
        self._set_response_metadata(dataset)

        self.trees_ = [ForestTree(tree=c.tree, weight=c.weight) for c in contributions]
        self.importance_ = np.sum([c.tree.importance() for c in contributions], axis=0)
        self.error_ = self._oob_error(dataset, contributions)

        logger.info(f"{self.__class__.__name__} OOB error: {self.error_:.6f}")
        return self

    def _set_response_metadata(self, dataset: Dataset) -> None:
        pass

    def _oob_error(self, dataset: Dataset, contributions: List[TreeContribution]) -> float:
        raise NotImplementedError

    # -- fitted model --------------------------------------------------------------------------

    def _check_fitted(self) -> None:
        if not hasattr(self, "trees_") or self.trees_ is None or len(self.trees_) == 0:
            raise NotFittedError(
                "Estimator not fitted. Call fit with appropriate input data before using this estimator."
            )

    def error(self) -> float:
        """Out-of-bag error estimate, stale after a merge."""
        self._check_fitted()
        return self.error_

    def importance(self) -> np.ndarray:
        self._check_fitted()
        return self.importance_.copy()

    def size(self) -> int:
        self._check_fitted()
        return len(self.trees_)

    def trees(self) -> List[Tree]:
        self._check_fitted()
        return [t.tree for t in self.trees_]

    def trim(self, n_trees: int) -> "RandomForest":
        """
        Keeps only the first ``n_trees`` trees, in insertion order.

        :raises ValueError: If ``n_trees`` is not positive or larger than the current size
        """
        self._check_fitted()
        if n_trees > len(self.trees_):
            raise ValueError(f"The new model size {n_trees} is larger than the current size {len(self.trees_)}")
        if n_trees <= 0:
            raise ValueError(f"Invalid new model size: {n_trees}")

        self.trees_ = self.trees_[:n_trees]
        return self

    def _check_mergeable(self, other: "RandomForest") -> None:
        if type(other) is not type(self):
            raise ValueError(f"Cannot merge {type(self).__name__} with {type(other).__name__}")
        other._check_fitted()
        if other.n_features_in_ != self.n_features_in_:
            raise ValueError(
                f"Cannot merge forests fitted on {self.n_features_in_} and {other.n_features_in_} features"
            )

    def merge(self, other: "RandomForest") -> "RandomForest":
        """
        New forest made of this forest's trees followed by ``other``'s, with summed importances.

        The OOB error is carried over from this forest and not recomputed, as the per-row OOB
        votes of the constituent forests are not kept.
        """
        self._check_fitted()
        self._check_mergeable(other)

        merged = copy(self)
        merged.trees_ = list(self.trees_) + list(other.trees_)
        merged.importance_ = self.importance_ + other.importance_
        merged.error_ = self.error_

        logger.info(
            f"Merged forests of {len(self.trees_)} and {len(other.trees_)} trees, the OOB error is not recomputed"
        )
        return merged

    def _tree_predictions(self, x: np.ndarray) -> np.ndarray:
        return np.vstack([t.tree.predict(x) for t in self.trees_])
