from dataclasses import dataclass
from typing import FrozenSet, Optional, Tuple

import numpy as np

from arbor.const import ARBOR_CART_DEFAULT_NODE_SIZE, ARBOR_MAX_EXHAUSTIVE_CATEGORIES
from arbor.data.dataset import Dataset
from arbor.models.random_forest.errors import ForestConfigError, InvalidStateError
from arbor.models.random_forest.tree.impurity import (
    SplitRule,
    compute_impurity,
    impurity_reduction,
    variance_reduction,
)
from arbor.utils import get_logger

logger = get_logger(__name__)

# Scores at or below this fraction of the node's total impurity are rounding noise
_MIN_RELATIVE_SCORE: float = 1e-10


@dataclass(frozen=True)
class Split:
    feature: int
    score: float
    true_size: int
    false_size: int
    threshold: Optional[float] = None
    categories: Optional[FrozenSet[int]] = None

    def true_mask(self, values: np.ndarray) -> np.ndarray:
        if self.categories is not None:
            return np.isin(values.astype(np.int64), np.fromiter(self.categories, dtype=np.int64))
        return values <= self.threshold


@dataclass
class NodeStatistics:
    n: int
    counts: Optional[np.ndarray] = None  # weighted class histogram
    total: float = 0.0  # weighted response sum
    min_score: float = 0.0
    pure: bool = False


class SplitFinder:
    """
    Finds the locally optimal binary split of a node.

    A node is described by its bagging weight array: ``samples[i]`` is how many times row ``i``
    is present in the node (0 when the row is absent). Classification splits maximize the
    weighted impurity reduction under ``rule``, regression splits the reduction of the sum of
    squares. When ``mtry`` is smaller than the number of features, each call draws a fresh random
    permutation of the columns and scans only its first ``mtry`` entries.
    """

    def __init__(
        self,
        dataset: Dataset,
        rule: SplitRule | str = SplitRule.GINI,
        node_size: int = ARBOR_CART_DEFAULT_NODE_SIZE,
        mtry: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        if not dataset.has_response:
            raise ValueError("Split search requires a dataset with a response vector")

        self.dataset = dataset
        self.rule = SplitRule.parse(rule)
        self.node_size = node_size
        self.n_features = dataset.n_features
        self.mtry = self.n_features if mtry is None else mtry
        self.rng = rng if rng is not None else np.random.default_rng()

        if self.node_size < 1:
            raise ForestConfigError(f"Invalid minimum size of leaves: {self.node_size}")
        if not 1 <= self.mtry <= self.n_features:
            raise ForestConfigError(
                f"Invalid number of variables to split on at a node of the tree: {self.mtry}"
            )

        self.classification = dataset.task == "classification"
        self.n_classes = dataset.n_classes if self.classification else 0
        self._x = dataset.x
        self._y = dataset.response
        self._order = dataset.order

    def node_statistics(self, samples: np.ndarray) -> NodeStatistics:
        rows = np.flatnonzero(samples)
        w = samples[rows]
        n = int(w.sum())

        if self.classification:
            counts = np.bincount(self._y[rows], weights=w, minlength=self.n_classes)
            impurity = float(n * compute_impurity(counts, self.rule))
            return NodeStatistics(
                n=n,
                counts=counts,
                min_score=_MIN_RELATIVE_SCORE * impurity,
                pure=impurity <= 0.0,
            )

        y = self._y[rows]
        total = float(np.dot(w, y))
        sum_squares = float(np.dot(w, (y - total / n) ** 2)) if n > 0 else 0.0
        return NodeStatistics(
            n=n,
            total=total,
            min_score=_MIN_RELATIVE_SCORE * sum_squares,
            pure=y.size == 0 or np.ptp(y) == 0,
        )

    def find_best_split(self, samples: np.ndarray) -> Optional[Split]:
        """
        Best split of the node over the candidate features, or None when no feature achieves
        a positive score. Ties keep the feature scanned first.

        :raises InvalidStateError: if the node holds ``node_size`` weighted samples or fewer
        """
        n = int(np.sum(samples))
        if n <= self.node_size:
            raise InvalidStateError(f"Split a node with samples less than {self.node_size}: {n}")

        stats = self.node_statistics(samples)
        if stats.pure:
            return None

        columns = np.arange(self.n_features)
        if self.mtry < self.n_features:
            columns = self.rng.permutation(self.n_features)

        best: Optional[Split] = None
        for j in columns[: self.mtry]:
            split = self.find_best_split_for(int(j), samples, stats)
            if split is not None and (best is None or split.score > best.score):
                best = split

        if best is None or best.score <= stats.min_score:
            return None

        logger.debug(f"Best split on feature {best.feature} with score {best.score:.6f} ({best.true_size}/{best.false_size})")
        return best

    def find_best_split_for(
        self, feature: int, samples: np.ndarray, stats: Optional[NodeStatistics] = None
    ) -> Optional[Split]:
        """
        Best split of the node on a single feature, or None when the feature takes a single
        value among the node's rows.
        """
        if stats is None:
            stats = self.node_statistics(samples)

        if self.dataset.is_nominal(feature):
            return self._split_nominal(feature, samples, stats)
        return self._split_continuous(feature, samples, stats)

    def _split_continuous(self, feature: int, samples: np.ndarray, stats: NodeStatistics) -> Optional[Split]:
        ordered = self._order[feature]
        rows = ordered[samples[ordered] > 0]
        values = self._x[rows, feature]
        if values.size < 2 or values[0] == values[-1]:
            return None

        w = samples[rows].astype(float)
        # separator after position i is a candidate only between distinct consecutive values
        positions = np.flatnonzero(values[:-1] != values[1:])
        left_n = np.cumsum(w)[positions]

        if self.classification:
            weighted = np.zeros((rows.size, self.n_classes))
            weighted[np.arange(rows.size), self._y[rows]] = w
            left_counts = np.cumsum(weighted, axis=0)[positions]
            scores = impurity_reduction(stats.counts, left_counts, stats.counts - left_counts, self.rule)
        else:
            left_sum = np.cumsum(w * self._y[rows])[positions]
            scores = variance_reduction(stats.total, float(stats.n), left_sum, left_n)

        best = int(np.argmax(scores))
        i = positions[best]
        lower, upper = values[i], values[i + 1]
        threshold = (lower + upper) / 2.0
        if not lower <= threshold < upper:
            threshold = lower

        true_size = int(left_n[best])
        return Split(
            feature=feature,
            score=float(scores[best]),
            true_size=true_size,
            false_size=stats.n - true_size,
            threshold=float(threshold),
        )

    def _split_nominal(self, feature: int, samples: np.ndarray, stats: NodeStatistics) -> Optional[Split]:
        rows = np.flatnonzero(samples)
        codes = self._x[rows, feature].astype(np.int64)
        categories, inverse = np.unique(codes, return_inverse=True)
        if categories.size < 2:
            return None

        w = samples[rows].astype(float)
        cat_n = np.bincount(inverse, weights=w, minlength=categories.size)

        if self.classification:
            cat_counts = np.zeros((categories.size, self.n_classes))
            np.add.at(cat_counts, (inverse, self._y[rows]), w)
            if self.n_classes == 2:
                masks = self._prefix_masks(cat_counts[:, 1] / cat_n)
            elif categories.size <= ARBOR_MAX_EXHAUSTIVE_CATEGORIES:
                masks = self._bipartition_masks(categories.size)
            else:
                masks = np.eye(categories.size, dtype=bool)
            left_counts = masks.astype(float) @ cat_counts
            scores = impurity_reduction(stats.counts, left_counts, stats.counts - left_counts, self.rule)
        else:
            cat_sum = np.bincount(inverse, weights=w * self._y[rows], minlength=categories.size)
            masks = self._prefix_masks(cat_sum / cat_n)
            left_sum = masks.astype(float) @ cat_sum
            left_n = masks.astype(float) @ cat_n
            scores = variance_reduction(stats.total, float(stats.n), left_sum, left_n)

        best = int(np.argmax(scores))
        true_size = int(masks[best].astype(float) @ cat_n)
        return Split(
            feature=feature,
            score=float(scores[best]),
            true_size=true_size,
            false_size=stats.n - true_size,
            categories=frozenset(int(c) for c in categories[masks[best]]),
        )

    @staticmethod
    def _prefix_masks(key: np.ndarray) -> np.ndarray:
        """
        True-side masks for the ``c - 1`` prefixes of the categories sorted by ``key``.

        For regression and two-class problems the optimal bipartition is among them.
        """
        c = key.shape[0]
        ranks = np.empty(c, dtype=np.int64)
        ranks[np.argsort(key, kind="stable")] = np.arange(c)
        return ranks[np.newaxis, :] <= np.arange(c - 1)[:, np.newaxis]

    @staticmethod
    def _bipartition_masks(c: int) -> np.ndarray:
        """All ``2^(c-1) - 1`` bipartitions of ``c`` categories, the last one always on the false side."""
        codes = np.arange(1, 1 << (c - 1))
        return ((codes[:, np.newaxis] >> np.arange(c)) & 1).astype(bool)

    def partition(self, split: Split, samples: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Splits the node's weight array into the weight arrays of its true and false children."""
        in_true = split.true_mask(self._x[:, split.feature])
        true_samples = np.where(in_true, samples, 0)
        false_samples = np.where(in_true, 0, samples)
        return true_samples, false_samples
