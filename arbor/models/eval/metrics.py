import numpy as np


# Regression metrics
def mean_squared_error(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """
    Computes the mean squared error between true and predicted values.

    :param np.ndarray y_true: The true responses.
    :param np.ndarray y_pred: The predicted responses.
    :return float: The mean squared error.
    """
    return float(np.mean((np.asarray(y_true, dtype=float) - np.asarray(y_pred, dtype=float)) ** 2))


def root_mean_squared_error(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """
    Computes the root mean squared error between true and predicted values.

    :param np.ndarray y_true: The true responses.
    :param np.ndarray y_pred: The predicted responses.
    :return float: The root mean squared error.
    """
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


# Classification metrics
def accuracy_score(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """
    Computes the accuracy score.

    :param np.ndarray y_true: The true labels.
    :param np.ndarray y_pred: The predicted labels.
    :return float: The accuracy score.
    """
    return float(np.mean(np.asarray(y_true) == np.asarray(y_pred)))


def error_rate(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """
    Computes the misclassification rate, the complement of the accuracy score.

    :param np.ndarray y_true: The true labels.
    :param np.ndarray y_pred: The predicted labels.
    :return float: The fraction of wrongly predicted labels.
    """
    return 1.0 - accuracy_score(y_true, y_pred)
