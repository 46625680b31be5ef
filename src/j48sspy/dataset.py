"""
j48sspy.dataset
===============

Typed tabular dataset consumed by the induction engine.

Each column is tagged with an :class:`AttributeKind`.  Sequence and time
series columns are recognised by their name prefix (``SEQ_`` and ``TS_``),
nominal columns are the ones declared as categorical, everything else is
numeric.  Values are stored column-wise:

* nominal columns hold the category index as ``float`` (``NaN`` if missing),
* numeric columns hold ``float`` values (``NaN`` if missing),
* sequence columns hold strings without blanks (``None`` if missing),
* time series columns hold 1-D ``float`` arrays (``None`` if missing).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

SEQUENCE_PREFIX = "SEQ_"
TIME_SERIES_PREFIX = "TS_"


class AttributeKind(Enum):
    NOMINAL = "nominal"
    NUMERIC = "numeric"
    SEQUENCE = "sequence"
    TIME_SERIES = "time_series"


def is_missing(v) -> bool:
    """``True`` for ``None``, float ``NaN`` and empty / ``?`` strings."""
    if v is None:
        return True
    if isinstance(v, (float, np.floating)):
        return bool(np.isnan(v))
    if isinstance(v, str):
        return v.strip() in ("", "?")
    return False


def attribute_kind(name: str, nominal: bool = False) -> AttributeKind:
    if name.startswith(SEQUENCE_PREFIX):
        return AttributeKind.SEQUENCE
    if name.startswith(TIME_SERIES_PREFIX):
        return AttributeKind.TIME_SERIES
    return AttributeKind.NOMINAL if nominal else AttributeKind.NUMERIC


@dataclass(frozen=True)
class Attribute:
    """Name, kind and (for nominal attributes) the ordered category values."""

    name: str
    kind: AttributeKind
    values: tuple = ()

    @property
    def num_values(self) -> int:
        return len(self.values)

    @property
    def is_ordinary(self) -> bool:
        return self.kind in (AttributeKind.NOMINAL, AttributeKind.NUMERIC)

    def value_index(self, v) -> float:
        if is_missing(v):
            return np.nan
        try:
            return float(self.values.index(v))
        except ValueError:
            # unseen category
            return np.nan


def parse_series(v) -> np.ndarray | None:
    """Turn ``"1.0,2.5,3"`` or an array-like into a float array."""
    if is_missing(v):
        return None
    if isinstance(v, str):
        parts = [p for p in v.replace(" ", "").split(",") if p != ""]
        return np.array([float(p) for p in parts], dtype=float)
    arr = np.asarray(v, dtype=float).ravel()
    return arr


def infer_attributes(columns: list[np.ndarray], names: list[str], nominal: set[int]) -> list[Attribute]:
    """Build the attribute header for raw object columns."""
    attrs = []
    for j, (col, name) in enumerate(zip(columns, names)):
        kind = attribute_kind(str(name), j in nominal)
        values: tuple = ()
        if kind is AttributeKind.NOMINAL:
            seen = {v for v in col if not is_missing(v)}
            values = tuple(sorted(seen, key=str))
        attrs.append(Attribute(str(name), kind, values))
    return attrs


def encode_column(attr: Attribute, col) -> np.ndarray:
    col = list(col)
    if attr.kind is AttributeKind.NUMERIC:
        return np.array([np.nan if is_missing(v) else float(v) for v in col], dtype=float)
    if attr.kind is AttributeKind.NOMINAL:
        return np.array([attr.value_index(v) for v in col], dtype=float)
    out = np.empty(len(col), dtype=object)
    for i, v in enumerate(col):
        if attr.kind is AttributeKind.SEQUENCE:
            out[i] = None if is_missing(v) else str(v).replace(" ", "")
        else:
            out[i] = parse_series(v)
    return out


# -----------------------------------------------------------------------------
# Instances
# -----------------------------------------------------------------------------
class Instances:
    """
    Column-wise weighted dataset slice.

    Parameters
    ----------
    attributes : list[Attribute]
        Attribute header shared by every slice of the same dataset.
    columns : list[ndarray]
        One encoded column per attribute.
    y : ndarray of int
        Class index per instance, in ``[0, n_classes)``.
    weights : ndarray of float
        Instance weights.
    n_classes : int
        Number of class values of the full dataset.
    """

    def __init__(self, attributes, columns, y, weights, n_classes: int):
        self.attributes = list(attributes)
        self.columns = list(columns)
        self.y = np.asarray(y, dtype=int)
        self.weights = np.asarray(weights, dtype=float)
        self.n_classes = int(n_classes)

    @classmethod
    def from_raw(cls, attributes, raw_columns, y, weights=None, n_classes: int | None = None) -> "Instances":
        y = np.asarray(y, dtype=int)
        if weights is None:
            weights = np.ones(len(y), dtype=float)
        if n_classes is None:
            n_classes = int(y.max()) + 1 if len(y) else 0
        cols = [encode_column(a, c) for a, c in zip(attributes, raw_columns)]
        return cls(attributes, cols, y, weights, n_classes)

    def __len__(self) -> int:
        return len(self.y)

    @property
    def n_attributes(self) -> int:
        return len(self.attributes)

    def sum_of_weights(self) -> float:
        return float(self.weights.sum())

    def column(self, att: int) -> np.ndarray:
        return self.columns[att]

    def is_missing(self, att: int) -> np.ndarray:
        col = self.columns[att]
        if col.dtype == object:
            return np.array([v is None for v in col], dtype=bool)
        return np.isnan(col)

    def subset(self, index, weights=None) -> "Instances":
        index = np.asarray(index)
        w = self.weights[index] if weights is None else np.asarray(weights, dtype=float)
        return Instances(self.attributes, [c[index] for c in self.columns],
                         self.y[index], w, self.n_classes)

