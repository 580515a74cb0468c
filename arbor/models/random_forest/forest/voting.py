from typing import Sequence

import numpy as np


def vote_histogram(predictions: np.ndarray, n_classes: int) -> np.ndarray:
    """
    Per-row vote counts from a ``(n_trees, n_rows)`` array of predicted class codes.

    :return np.ndarray: An ``(n_rows, n_classes)`` integer histogram
    """
    predictions = np.atleast_2d(np.asarray(predictions, dtype=np.int64))
    n_rows = predictions.shape[1]
    votes = np.zeros((n_rows, n_classes), dtype=np.int64)
    for tree_predictions in predictions:
        votes[np.arange(n_rows), tree_predictions] += 1
    return votes


def majority_vote(predictions: np.ndarray, n_classes: int) -> np.ndarray:
    """Unweighted majority class of each row, the lowest class code wins ties."""
    return np.argmax(vote_histogram(predictions, n_classes), axis=1)


def weighted_posteriori(posterioris: np.ndarray, weights: Sequence[float]) -> np.ndarray:
    """
    Sums each tree's leaf class distribution scaled by the tree's weight and L1-normalizes
    the result per row.

    :param np.ndarray posterioris: ``(n_trees, n_rows, n_classes)`` per-tree leaf distributions
    :param Sequence[float] weights: The voting weight of each tree
    :return np.ndarray: ``(n_rows, n_classes)`` normalized posteriori probabilities
    """
    weights = np.asarray(weights, dtype=float)
    total = np.tensordot(weights, np.asarray(posterioris, dtype=float), axes=1)
    norm = np.sum(np.abs(total), axis=-1, keepdims=True)
    return np.divide(total, norm, out=np.zeros_like(total), where=norm > 0)


def average(predictions: np.ndarray) -> np.ndarray:
    """Unweighted mean of the ``(n_trees, n_rows)`` per-tree regression predictions."""
    return np.mean(np.atleast_2d(np.asarray(predictions, dtype=float)), axis=0)
