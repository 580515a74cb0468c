from typing import Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike

SUPPORTED_TASK_TYPES: set[str] = {"classification", "regression"}


def _infer_task(y: np.ndarray) -> str:
    if y.dtype.kind in ("i", "u", "b", "O", "U", "S"):
        return "classification"
    return "regression"


class Dataset:
    """
    Column-accessible, read-only view over a training or prediction table.

    Holds ``n_rows`` x ``n_features`` feature values as a float matrix, a per-column
    flag telling whether the column is nominal (non-negative integer category codes)
    and an optional response vector. For classification the response is stored as
    class codes ``0..n_classes-1`` and the original labels are kept in ``classes``.

    The ascending order index of every continuous column is computed on first access
    and cached; callers fitting several models on the same data can pass it in
    through ``order`` to avoid sorting again.
    """

    def __init__(
        self,
        x: ArrayLike,
        y: Optional[ArrayLike] = None,
        nominal: Optional[ArrayLike] = None,
        task: Optional[str] = None,
        order: Optional[Sequence[Optional[np.ndarray]]] = None,
        feature_names: Optional[Sequence[str]] = None,
        categories: Optional[dict] = None,
    ) -> None:
        x = np.asarray(x, dtype=float)
        if x.ndim == 1:
            x = x.reshape(-1, 1)
        if x.ndim != 2:
            raise ValueError(f"Feature data must be a 2D array (n_rows, n_features), got {x.ndim}D")
        if x.shape[0] == 0 or x.shape[1] == 0:
            raise ValueError(f"Feature data cannot be empty, got shape {x.shape}")
        if not np.all(np.isfinite(x)):
            raise ValueError("Feature data must not contain NaN or infinite values")

        self._x = np.asfortranarray(x)
        self.n_rows, self.n_features = x.shape

        if nominal is None:
            self._nominal = np.zeros(self.n_features, dtype=bool)
        else:
            self._nominal = np.asarray(nominal, dtype=bool).ravel()
            if self._nominal.shape[0] != self.n_features:
                raise ValueError(
                    f"nominal must flag every column, got {self._nominal.shape[0]} flags for {self.n_features} columns"
                )

        for j in np.flatnonzero(self._nominal):
            col = self._x[:, j]
            if np.any(col < 0) or np.any(col != np.floor(col)):
                raise ValueError(f"Nominal column {j} must hold non-negative integer category codes")

        self.feature_names: List[str] = (
            list(feature_names) if feature_names is not None else [f"x{j}" for j in range(self.n_features)]
        )
        if len(self.feature_names) != self.n_features:
            raise ValueError("feature_names must name every column")
        self.categories = dict(categories) if categories else {}

        self.task: Optional[str] = None
        self.classes: Optional[np.ndarray] = None
        self._y: Optional[np.ndarray] = None
        if y is not None:
            self._set_response(np.asarray(y).ravel(), task)
        elif task is not None:
            raise ValueError("A task type requires a response vector")

        self._order: Optional[List[Optional[np.ndarray]]] = None
        if order is not None:
            self._order = self._validate_order(order)

    def _set_response(self, y: np.ndarray, task: Optional[str]) -> None:
        if y.shape[0] != self.n_rows:
            raise ValueError(f"Feature data and response must have the same number of rows, got {self.n_rows} and {y.shape[0]}")

        task = task or _infer_task(y)
        if task not in SUPPORTED_TASK_TYPES:
            raise ValueError(f"Unsupported task type: {task}. Supported types: {SUPPORTED_TASK_TYPES}")
        self.task = task

        if task == "classification":
            self.classes, codes = np.unique(y, return_inverse=True)
            self._y = codes.astype(np.int64).ravel()
        else:
            y = y.astype(float)
            if not np.all(np.isfinite(y)):
                raise ValueError("Regression response must not contain NaN or infinite values")
            self._y = y

    def _validate_order(self, order: Sequence[Optional[np.ndarray]]) -> List[Optional[np.ndarray]]:
        if len(order) != self.n_features:
            raise ValueError(f"order must hold one entry per column, got {len(order)} for {self.n_features} columns")

        validated: List[Optional[np.ndarray]] = []
        for j, idx in enumerate(order):
            if self._nominal[j]:
                validated.append(None)
                continue
            if idx is None:
                raise ValueError(f"Missing order index for continuous column {j}")
            idx = np.asarray(idx, dtype=np.int64)
            if idx.shape != (self.n_rows,):
                raise ValueError(f"Order index of column {j} must have length {self.n_rows}")
            if not np.array_equal(np.sort(idx), np.arange(self.n_rows)):
                raise ValueError(f"Order index of column {j} is not a permutation of the rows")
            steps = np.diff(self._x[idx, j])
            if np.any(steps < 0):
                raise ValueError(f"Order index of column {j} does not sort the column in ascending order")
            # tied values keep their row order
            if np.any((steps == 0) & (np.diff(idx) < 0)):
                raise ValueError(f"Order index of column {j} is not stable on tied values")
            validated.append(idx)
        return validated

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        response: Optional[str] = None,
        nominal: Optional[Iterable[str]] = None,
        task: Optional[str] = None,
    ) -> "Dataset":
        """
        Builds a dataset view from a pandas DataFrame.

        Columns listed in ``nominal``, together with categorical, object and boolean columns,
        are encoded to category codes; their levels are kept in ``categories``.

        :param pd.DataFrame df: The source frame
        :param Optional[str] response: The response column, defaults to None (features only)
        :param Optional[Iterable[str]] nominal: Extra columns to treat as nominal, defaults to None
        :param Optional[str] task: 'classification' or 'regression', inferred from the response dtype if None
        :return Dataset: The dataset view
        """
        if response is not None and response not in df.columns:
            raise ValueError(f"Response column '{response}' not found in the frame")

        nominal_set = set(nominal or [])
        unknown = nominal_set - set(df.columns)
        if unknown:
            raise ValueError(f"Nominal columns not found in the frame: {sorted(unknown)}")

        feature_cols = [c for c in df.columns if c != response]
        columns, flags, categories = [], [], {}
        for j, col in enumerate(feature_cols):
            series = df[col]
            is_nominal = (
                col in nominal_set
                or isinstance(series.dtype, pd.CategoricalDtype)
                or pd.api.types.is_object_dtype(series)
                or pd.api.types.is_string_dtype(series)
                or pd.api.types.is_bool_dtype(series)
            )
            if is_nominal:
                encoded = pd.Categorical(series)
                if np.any(encoded.codes < 0):
                    raise ValueError(f"Nominal column '{col}' contains missing values")
                columns.append(encoded.codes.astype(float))
                categories[j] = list(encoded.categories)
            else:
                columns.append(series.to_numpy(dtype=float))
            flags.append(is_nominal)

        y = df[response].to_numpy() if response is not None else None
        return cls(
            np.column_stack(columns),
            y,
            nominal=flags,
            task=task,
            feature_names=[str(c) for c in feature_cols],
            categories=categories,
        )

    def __len__(self) -> int:
        return self.n_rows

    @property
    def x(self) -> np.ndarray:
        return self._x

    @property
    def response(self) -> np.ndarray:
        if self._y is None:
            raise ValueError("This dataset has no response vector")
        return self._y

    @property
    def has_response(self) -> bool:
        return self._y is not None

    @property
    def nominal(self) -> np.ndarray:
        return self._nominal

    @property
    def n_classes(self) -> int:
        if self.task != "classification":
            raise ValueError("n_classes is only defined for classification datasets")
        return int(self.classes.shape[0])

    def column(self, j: int) -> np.ndarray:
        return self._x[:, j]

    def is_nominal(self, j: int) -> bool:
        return bool(self._nominal[j])

    def row(self, i: int) -> np.ndarray:
        return self._x[i, :]

    @property
    def order(self) -> List[Optional[np.ndarray]]:
        """Stable ascending order index of each continuous column, None for nominal columns."""
        if self._order is None:
            self._order = [
                None if self._nominal[j] else np.argsort(self._x[:, j], kind="stable")
                for j in range(self.n_features)
            ]
        return self._order
