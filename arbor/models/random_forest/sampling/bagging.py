from typing import List, Optional

import numpy as np
from numpy.typing import ArrayLike

from arbor.const import ARBOR_RF_DEFAULT_SUBSAMPLE
from arbor.models.random_forest.errors import ForestConfigError


class BaggingSampler:
    """
    Draws the per-tree training multiset of a forest as a row weight array.

    ``samples[i]`` is the number of times row ``i`` is drawn for the tree, 0 meaning the row is
    out-of-bag. With ``subsample == 1.0`` rows are drawn with replacement (classic bootstrap),
    otherwise a ``subsample`` fraction is drawn without replacement.

    When class labels are given the draw is stratified: every class is sampled on its own and
    shrunk by its integer class weight, so minority classes are never starved.
    """

    def __init__(
        self,
        n: int,
        subsample: float = ARBOR_RF_DEFAULT_SUBSAMPLE,
        labels: Optional[ArrayLike] = None,
        class_weight: Optional[ArrayLike] = None,
    ):
        if n < 1:
            raise ForestConfigError(f"Invalid number of rows to sample from: {n}")
        if not 0.0 < subsample <= 1.0:
            raise ForestConfigError(f"Invalid sampling rate: {subsample}")

        self.n = n
        self.subsample = subsample

        self.strata: List[np.ndarray] = [np.arange(n)]
        self.class_weight = np.ones(1, dtype=np.int64)

        if labels is not None:
            labels = np.asarray(labels, dtype=np.int64).ravel()
            if labels.shape[0] != n:
                raise ForestConfigError(f"Expected {n} labels, got {labels.shape[0]}")

            n_classes = int(labels.max()) + 1
            self.strata = [np.flatnonzero(labels == c) for c in range(n_classes)]
            self.class_weight = (
                np.ones(n_classes, dtype=np.int64) if class_weight is None else np.asarray(class_weight).ravel()
            )
            if self.class_weight.shape[0] != n_classes:
                raise ForestConfigError(
                    f"Expected one class weight per class ({n_classes}), got {self.class_weight.shape[0]}"
                )
            if self.class_weight.dtype.kind not in ("i", "u") or np.any(self.class_weight < 1):
                raise ForestConfigError(f"Class weights must be positive integers, got {self.class_weight.tolist()}")
        elif class_weight is not None:
            raise ForestConfigError("Class weights require class labels")

        sizes = [self._stratum_size(s, int(w)) for s, w in zip(self.strata, self.class_weight)]
        if sum(sizes) == 0:
            raise ForestConfigError(
                f"Sampling rate {self.subsample} with class weights {self.class_weight.tolist()} draws no row"
            )

    def _stratum_size(self, stratum: np.ndarray, weight: int) -> int:
        # down-sample classes by their weight
        if self.subsample == 1.0:
            return stratum.size // weight
        return int(round(self.subsample * stratum.size / weight))

    def sample(self, rng: np.random.Generator) -> np.ndarray:
        samples = np.zeros(self.n, dtype=np.int64)

        for stratum, weight in zip(self.strata, self.class_weight):
            if stratum.size == 0:
                continue
            size = self._stratum_size(stratum, int(weight))
            if self.subsample == 1.0:
                drawn = stratum[rng.integers(0, stratum.size, size=size)]
                np.add.at(samples, drawn, 1)
            else:
                samples[rng.permutation(stratum)[:size]] += 1

        return samples

    @staticmethod
    def oob_indices(samples: np.ndarray) -> np.ndarray:
        return np.flatnonzero(np.asarray(samples) == 0)
