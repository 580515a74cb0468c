from typing import List, Optional, Union

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike
from sklearn.base import RegressorMixin

import arbor.models.eval.metrics as em
from arbor.const import (
    ARBOR_RF_DEFAULT_N_JOBS,
    ARBOR_RF_DEFAULT_N_TREES,
    ARBOR_RF_DEFAULT_SUBSAMPLE,
    ARBOR_RF_REGRESSION_NODE_SIZE,
)
from arbor.data.dataset import Dataset
from arbor.models.random_forest.forest.forest import RandomForest, TreeContribution
from arbor.models.random_forest.forest.voting import average
from arbor.models.random_forest.sampling.bagging import BaggingSampler
from arbor.utils import get_logger

logger = get_logger(__name__)


class RandomForestRegressor(RegressorMixin, RandomForest):
    """
    Random forest regressor compatible with the sklearn API.

    Trees are grown on unstratified bootstrap samples with variance reduction as split score;
    predictions are the unweighted mean of the trees and ``error()`` is the out-of-bag RMSE.
    """

    _task = "regression"

    def __init__(
        self,
        n_trees: int = ARBOR_RF_DEFAULT_N_TREES,
        max_nodes: Optional[int] = None,
        node_size: Optional[int] = ARBOR_RF_REGRESSION_NODE_SIZE,
        mtry: Optional[int] = None,
        subsample: float = ARBOR_RF_DEFAULT_SUBSAMPLE,
        n_jobs: Optional[int] = ARBOR_RF_DEFAULT_N_JOBS,
        seed: Optional[int] = None,
    ):
        self.n_trees = n_trees
        self.max_nodes = max_nodes
        self.node_size = node_size
        self.mtry = mtry
        self.subsample = subsample
        self.n_jobs = n_jobs
        self.seed = seed

    def _default_node_size(self) -> int:
        return ARBOR_RF_REGRESSION_NODE_SIZE

    def _default_mtry(self, n_features: int) -> int:
        return max(1, n_features // 3)

    def _make_sampler(self, dataset: Dataset) -> BaggingSampler:
        return BaggingSampler(dataset.n_rows, subsample=self.subsample)

    def _oob_error(self, dataset: Dataset, contributions: List[TreeContribution]) -> float:
        total = np.zeros(dataset.n_rows)
        count = np.zeros(dataset.n_rows, dtype=np.int64)
        for c in contributions:
            total[c.oob_rows] += c.oob_predictions
            count[c.oob_rows] += 1

        predicted = np.flatnonzero(count > 0)
        if predicted.size == 0:
            logger.warning("No row received an out-of-bag prediction, the OOB error is reported as 0")
            return 0.0

        return em.root_mean_squared_error(dataset.response[predicted], total[predicted] / count[predicted])

    def predict(self, X: Union[Dataset, pd.DataFrame, ArrayLike]) -> np.ndarray:
        self._check_fitted()
        return average(self._tree_predictions(self._as_matrix(X)))

    def predict_one(self, x: ArrayLike) -> float:
        self._check_fitted()
        x = self._as_instance(x)
        return float(np.mean([t.tree.predict_one(x) for t in self.trees_]))

    def test(self, X: Union[Dataset, pd.DataFrame, ArrayLike], y: Optional[ArrayLike] = None) -> np.ndarray:
        """
        RMSE of the sub-forests made of the first ``t`` trees, for ``t = 1..size()``.

        :return np.ndarray: One RMSE per forest size
        """
        self._check_fitted()
        if y is None:
            if not isinstance(X, Dataset) or not X.has_response:
                raise ValueError("A response vector is required unless X is a Dataset with a response")
            y = X.response
        x = self._as_matrix(X)
        y = np.asarray(y, dtype=float).ravel()

        running = np.cumsum(self._tree_predictions(x), axis=0)
        return np.array(
            [em.root_mean_squared_error(y, running[i] / (i + 1)) for i in range(running.shape[0])]
        )
