from enum import Enum

import numpy as np


class SplitRule(str, Enum):
    GINI = "gini"
    ENTROPY = "entropy"
    CLASSIFICATION_ERROR = "classification_error"

    @classmethod
    def parse(cls, rule: "SplitRule | str") -> "SplitRule":
        if isinstance(rule, SplitRule):
            return rule
        try:
            return cls(str(rule).lower())
        except ValueError:
            raise ValueError(f"Unknown split rule: {rule}. Expected one of {[r.value for r in cls]}") from None


def gini_impurity(class_counts: np.ndarray) -> np.ndarray:
    total = np.sum(class_counts, axis=-1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        probs = np.where(total > 0, class_counts / total, 0.0)
    # an empty histogram is pure
    return np.where(total[..., 0] > 0, 1.0 - np.sum(np.square(probs), axis=-1), 0.0)


def entropy(class_counts: np.ndarray) -> np.ndarray:
    total = np.sum(class_counts, axis=-1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        probs = np.where(total > 0, class_counts / total, 0.0)
        logs = np.where(probs > 0, np.log2(np.where(probs > 0, probs, 1.0)), 0.0)  # avoid log(0)
    return -np.sum(probs * logs, axis=-1)


def classification_error(class_counts: np.ndarray) -> np.ndarray:
    total = np.sum(class_counts, axis=-1)
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(total > 0, 1.0 - np.max(class_counts, axis=-1) / np.where(total > 0, total, 1.0), 0.0)


def compute_impurity(class_counts: np.ndarray, rule: SplitRule | str) -> np.ndarray:
    """
    Impurity of one class histogram, or of each row of a stacked ``(m, k)`` array of histograms.
    """
    class_counts = np.asarray(class_counts, dtype=float)
    match SplitRule.parse(rule):
        case SplitRule.GINI:
            return gini_impurity(class_counts)
        case SplitRule.ENTROPY:
            return entropy(class_counts)
        case SplitRule.CLASSIFICATION_ERROR:
            return classification_error(class_counts)


def impurity_reduction(
    parent_counts: np.ndarray, left_counts: np.ndarray, right_counts: np.ndarray, rule: SplitRule | str
) -> np.ndarray:
    """
    Weighted impurity reduction ``n * I(parent) - (n_L * I(L) + n_R * I(R))`` of candidate splits.

    ``left_counts``/``right_counts`` may stack several candidates as ``(m, k)`` arrays.
    """
    n = float(np.sum(parent_counts))
    n_left = np.sum(left_counts, axis=-1)
    n_right = np.sum(right_counts, axis=-1)
    return (
        n * compute_impurity(parent_counts, rule)
        - n_left * compute_impurity(left_counts, rule)
        - n_right * compute_impurity(right_counts, rule)
    )


def variance_reduction(
    total_sum: float, total_n: float, left_sum: np.ndarray, left_n: np.ndarray
) -> np.ndarray:
    """
    Reduction of the sum of squares ``SS(parent) - (SS(L) + SS(R))`` for candidate splits, given
    weighted response sums and counts on the left side. Both sides must be non-empty.
    """
    right_sum = total_sum - left_sum
    right_n = total_n - left_n
    return left_sum**2 / left_n + right_sum**2 / right_n - total_sum**2 / total_n


def leaf_output(class_counts: np.ndarray) -> int:
    """Majority class of a histogram, lowest class index on ties."""
    return int(np.argmax(class_counts))


def posteriori(class_counts: np.ndarray) -> np.ndarray:
    """Class distribution of a leaf, with the +1 Laplace correction so no class gets zero mass."""
    class_counts = np.asarray(class_counts, dtype=float)
    return (class_counts + 1.0) / (np.sum(class_counts) + class_counts.shape[0])
