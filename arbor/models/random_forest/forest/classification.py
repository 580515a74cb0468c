from typing import List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike
from sklearn.base import ClassifierMixin

import arbor.models.eval.metrics as em
from arbor.const import (
    ARBOR_CART_DEFAULT_SPLIT_RULE,
    ARBOR_RF_CLASSIFICATION_NODE_SIZE,
    ARBOR_RF_DEFAULT_N_JOBS,
    ARBOR_RF_DEFAULT_N_TREES,
    ARBOR_RF_DEFAULT_SUBSAMPLE,
)
from arbor.data.dataset import Dataset
from arbor.models.random_forest.errors import ForestConfigError
from arbor.models.random_forest.forest.forest import RandomForest, TreeContribution
from arbor.models.random_forest.forest.voting import majority_vote, vote_histogram, weighted_posteriori
from arbor.models.random_forest.sampling.bagging import BaggingSampler
from arbor.models.random_forest.tree.impurity import SplitRule
from arbor.utils import get_logger

logger = get_logger(__name__)


class RandomForestClassifier(ClassifierMixin, RandomForest):
    """
    Random forest classifier compatible with the sklearn API.

    - ``fit(X, y)`` grows the trees on stratified bootstrap samples and estimates the OOB error
    - ``predict(X)`` returns the unweighted majority vote of the trees
    - ``predict_proba(X)`` returns the leaf class distributions averaged with the trees' OOB accuracies as weights

    Class labels may be arbitrary; they are stored in ``classes_`` and ``class_weight`` follows
    their sorted order. A class weight ``w`` down-samples its class by a factor ``w`` in every
    bootstrap draw.
    """

    _task = "classification"

    def __init__(
        self,
        n_trees: int = ARBOR_RF_DEFAULT_N_TREES,
        max_nodes: Optional[int] = None,
        node_size: Optional[int] = ARBOR_RF_CLASSIFICATION_NODE_SIZE,
        mtry: Optional[int] = None,
        subsample: float = ARBOR_RF_DEFAULT_SUBSAMPLE,
        split_rule: str = ARBOR_CART_DEFAULT_SPLIT_RULE,
        class_weight: Optional[ArrayLike] = None,
        n_jobs: Optional[int] = ARBOR_RF_DEFAULT_N_JOBS,
        seed: Optional[int] = None,
    ):
        self.n_trees = n_trees
        self.max_nodes = max_nodes
        self.node_size = node_size
        self.mtry = mtry
        self.subsample = subsample
        self.split_rule = split_rule
        self.class_weight = class_weight
        self.n_jobs = n_jobs
        self.seed = seed

    def _default_node_size(self) -> int:
        return ARBOR_RF_CLASSIFICATION_NODE_SIZE

    def _default_mtry(self, n_features: int) -> int:
        return max(1, int(np.floor(np.sqrt(n_features))))

    def _split_rule(self) -> str:
        try:
            return SplitRule.parse(self.split_rule).value
        except ValueError as e:
            raise ForestConfigError(str(e)) from None

    def _make_sampler(self, dataset: Dataset) -> BaggingSampler:
        if dataset.n_classes < 2:
            raise ValueError(f"Classification requires at least 2 classes, got {dataset.classes.tolist()}")
        return BaggingSampler(
            dataset.n_rows,
            subsample=self.subsample,
            labels=dataset.response,
            class_weight=self.class_weight,
        )

    def _set_response_metadata(self, dataset: Dataset) -> None:
        self.classes_ = dataset.classes
        self.n_classes_ = dataset.n_classes

    def _oob_error(self, dataset: Dataset, contributions: List[TreeContribution]) -> float:
        votes = np.zeros((dataset.n_rows, dataset.n_classes), dtype=np.int64)
        for c in contributions:
            np.add.at(votes, (c.oob_rows, c.oob_predictions), 1)

        voted = np.flatnonzero(votes.sum(axis=1) > 0)
        if voted.size == 0:
            logger.warning("No row received an out-of-bag vote, the OOB error is reported as 0")
            return 0.0

        return em.error_rate(dataset.response[voted], np.argmax(votes[voted], axis=1))

    def _check_mergeable(self, other: RandomForest) -> None:
        super()._check_mergeable(other)
        if not np.array_equal(self.classes_, other.classes_):
            raise ValueError(
                f"Cannot merge forests fitted on different classes: {self.classes_.tolist()} and {other.classes_.tolist()}"
            )

    def predict(self, X: Union[Dataset, pd.DataFrame, ArrayLike]) -> np.ndarray:
        self._check_fitted()
        x = self._as_matrix(X)
        return self.classes_[majority_vote(self._tree_predictions(x), self.n_classes_)]

    def predict_one(self, x: ArrayLike):
        self._check_fitted()
        x = self._as_instance(x)
        votes = np.zeros(self.n_classes_, dtype=np.int64)
        for t in self.trees_:
            votes[t.tree.predict_one(x)] += 1
        return self.classes_[int(np.argmax(votes))]

    def _posteriori(self, x: np.ndarray) -> np.ndarray:
        posterioris = np.stack([t.tree.posteriori(x) for t in self.trees_])
        return weighted_posteriori(posterioris, [t.weight for t in self.trees_])

    def predict_posteriori(self, x: ArrayLike) -> Tuple[object, np.ndarray]:
        """
        Label and posteriori class probabilities of a single instance.

        The posteriori sums each tree's leaf class distribution weighted by the tree's OOB
        accuracy and is L1-normalized; the label is its most probable class.
        """
        self._check_fitted()
        proba = self._posteriori(self._as_instance(x).reshape(1, -1))[0]
        return self.classes_[int(np.argmax(proba))], proba

    def predict_proba(self, X: Union[Dataset, pd.DataFrame, ArrayLike]) -> np.ndarray:
        self._check_fitted()
        return self._posteriori(self._as_matrix(X))

    def test(self, X: Union[Dataset, pd.DataFrame, ArrayLike], y: Optional[ArrayLike] = None) -> np.ndarray:
        """
        Accuracy of the sub-forests made of the first ``t`` trees, for ``t = 1..size()``.

        :return np.ndarray: One accuracy per forest size
        """
        self._check_fitted()
        if y is None:
            if not isinstance(X, Dataset) or not X.has_response:
                raise ValueError("A response vector is required unless X is a Dataset with a response")
            y = X.classes[X.response]
        x = self._as_matrix(X)
        y = np.asarray(y).ravel()

        votes = np.zeros((x.shape[0], self.n_classes_), dtype=np.int64)
        accuracy = np.zeros(len(self.trees_))
        for i, t in enumerate(self.trees_):
            votes += vote_histogram(t.tree.predict(x)[np.newaxis, :], self.n_classes_)
            accuracy[i] = em.accuracy_score(y, self.classes_[np.argmax(votes, axis=1)])
        return accuracy
