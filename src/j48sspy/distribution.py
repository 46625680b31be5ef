"""
j48sspy.distribution
====================

Weighted class counts per subset ("bag") of a split.

All comparisons on weights go through the tolerance helpers below
(``EPS = 1e-6``) so that a boundary sweep accumulating floating error keeps
choosing the same split points.
"""

from __future__ import annotations

import numpy as np

from .exceptions import InternalInvariantError

EPS = 1e-6


# -----------------------------------------------------------------------------
# Tolerant comparisons
# -----------------------------------------------------------------------------
def eq(a: float, b: float) -> bool:
    return (a - b < EPS) and (b - a < EPS)


def gr(a: float, b: float) -> bool:
    return a - b > EPS


def gr_or_eq(a: float, b: float) -> bool:
    return (b - a < EPS) or (a >= b)


def sm(a: float, b: float) -> bool:
    return b - a > EPS


def sm_or_eq(a: float, b: float) -> bool:
    return (a - b < EPS) or (a <= b)


# -----------------------------------------------------------------------------
# Distribution
# -----------------------------------------------------------------------------
class Distribution:
    """
    Per-class, per-bag weight table.

    ``per_bag[b] == per_class_per_bag[b].sum()`` and
    ``total == per_bag.sum()`` hold after every mutation.

    Parameters
    ----------
    n_bags : int
        Number of subsets.
    n_classes : int
        Number of class values.
    """

    def __init__(self, n_bags: int, n_classes: int):
        self.per_class_per_bag = np.zeros((int(n_bags), int(n_classes)), dtype=float)
        self.per_bag = np.zeros(int(n_bags), dtype=float)
        self.per_class = np.zeros(int(n_classes), dtype=float)
        self.total = 0.0

    # ---------------------------------------------------------------- builders
    @classmethod
    def from_table(cls, table) -> "Distribution":
        table = np.asarray(table, dtype=float)
        dist = cls(table.shape[0], table.shape[1])
        dist.per_class_per_bag = table.copy()
        dist.per_bag = table.sum(axis=1)
        dist.per_class = table.sum(axis=0)
        dist.total = float(table.sum())
        return dist

    @classmethod
    def from_instances(cls, data) -> "Distribution":
        """Single-bag distribution of a dataset slice."""
        dist = cls(1, data.n_classes)
        dist.add_instances(0, data.y, data.weights)
        return dist

    @classmethod
    def from_model(cls, data, model) -> "Distribution":
        """
        Distribution of ``data`` across the subsets of a built split model.

        Instances whose split value is missing are spread over the bags
        according to ``model.weights()``.
        """
        dist = cls(model.num_subsets, data.n_classes)
        subsets = model.which_subset(data)
        known = subsets >= 0
        for b in range(model.num_subsets):
            sel = subsets == b
            if sel.any():
                dist.add_instances(b, data.y[sel], data.weights[sel])
        if not known.all():
            bag_weights = model.weights()
            if bag_weights is None:
                raise InternalInvariantError("split model returned a missing subset but has no bag weights")
            dist.add_weights(data.y[~known], data.weights[~known], bag_weights)
        return dist

    @classmethod
    def merged(cls, dist: "Distribution") -> "Distribution":
        """Collapse all bags of ``dist`` into one."""
        return cls.from_table(dist.per_class.reshape(1, -1))

    @classmethod
    def one_vs_rest(cls, dist: "Distribution", bag: int) -> "Distribution":
        """Two bags: ``bag`` of ``dist`` against the union of the others."""
        table = np.zeros((2, dist.n_classes), dtype=float)
        table[0] = dist.per_class_per_bag[bag]
        table[1] = dist.per_class - dist.per_class_per_bag[bag]
        return cls.from_table(table)

    def copy(self) -> "Distribution":
        return Distribution.from_table(self.per_class_per_bag)

    # -------------------------------------------------------------- properties
    @property
    def n_bags(self) -> int:
        return self.per_bag.shape[0]

    @property
    def n_classes(self) -> int:
        return self.per_class.shape[0]

    # ---------------------------------------------------------------- mutators
    def add(self, bag: int, cls_idx: int, weight: float) -> None:
        self.per_class_per_bag[bag, cls_idx] += weight
        self.per_bag[bag] += weight
        self.per_class[cls_idx] += weight
        self.total += weight

    def sub(self, bag: int, cls_idx: int, weight: float) -> None:
        self.per_class_per_bag[bag, cls_idx] -= weight
        self.per_bag[bag] -= weight
        self.per_class[cls_idx] -= weight
        self.total -= weight
        self._check_non_negative()

    def add_counts(self, bag: int, counts) -> None:
        counts = np.asarray(counts, dtype=float)
        s = float(counts.sum())
        self.per_class_per_bag[bag] += counts
        self.per_bag[bag] += s
        self.per_class += counts
        self.total += s

    def add_instances(self, bag: int, y, w) -> None:
        """Add a batch of instances (class indices ``y``, weights ``w``) to ``bag``."""
        self.add_counts(bag, np.bincount(np.asarray(y, dtype=int), weights=w, minlength=self.n_classes))

    def add_range(self, bag: int, data, start: int, end: int) -> None:
        """Add instances ``start:end`` of ``data`` to ``bag``."""
        self.add_instances(bag, data.y[start:end], data.weights[start:end])

    def shift_range(self, from_bag: int, to_bag: int, data, start: int, end: int) -> None:
        """Move instances ``start:end`` of ``data`` from one bag to another."""
        counts = np.bincount(data.y[start:end], weights=data.weights[start:end], minlength=self.n_classes)
        s = float(counts.sum())
        self.per_class_per_bag[from_bag] -= counts
        self.per_bag[from_bag] -= s
        self.per_class_per_bag[to_bag] += counts
        self.per_bag[to_bag] += s
        self._check_non_negative()

    def add_weights(self, y, w, bag_weights) -> None:
        """Spread each instance over all bags in proportion to ``bag_weights``."""
        counts = np.bincount(np.asarray(y, dtype=int), weights=w, minlength=self.n_classes)
        bag_weights = np.asarray(bag_weights, dtype=float)
        s = float(counts.sum())
        self.per_class += counts
        self.total += s
        self.per_class_per_bag += np.outer(bag_weights, counts)
        self.per_bag += bag_weights * s

    def add_inst_with_unknown(self, data, att: int) -> None:
        """
        Add instances of ``data`` whose value of ``att`` is missing.

        Each one is split across bags in proportion to the current bag
        weights (uniformly if the distribution is empty).
        """
        missing = data.is_missing(att)
        if not missing.any():
            return
        if eq(self.total, 0):
            probs = np.full(self.n_bags, 1.0 / self.n_bags)
        else:
            probs = self.per_bag / self.total
        self.add_weights(data.y[missing], data.weights[missing], probs)

    def _check_non_negative(self) -> None:
        if (self.per_bag < -EPS).any() or (self.per_class_per_bag < -EPS).any():
            raise InternalInvariantError("distribution weight went negative")

    # ----------------------------------------------------------------- queries
    def check(self, min_no_obj: float) -> bool:
        """True iff at least two bags carry ``min_no_obj`` weight or more."""
        n = sum(1 for b in self.per_bag if gr_or_eq(b, min_no_obj))
        return n > 1

    def max_bag(self) -> int:
        best, idx = 0.0, -1
        for i, v in enumerate(self.per_bag):
            if gr_or_eq(v, best):
                best, idx = v, i
        return idx

    def max_class(self, bag: int | None = None) -> int:
        """Mode class overall or within ``bag``; the first maximum wins."""
        if bag is None:
            counts = self.per_class
        elif gr(self.per_bag[bag], 0):
            counts = self.per_class_per_bag[bag]
        else:
            return self.max_class()
        best, idx = 0.0, 0
        for i, v in enumerate(counts):
            if gr(v, best):
                best, idx = v, i
        return idx

    def num_correct(self, bag: int | None = None) -> float:
        if bag is None:
            return float(self.per_class[self.max_class()])
        return float(self.per_class_per_bag[bag, self.max_class(bag)])

    def num_incorrect(self, bag: int | None = None) -> float:
        if bag is None:
            return self.total - self.num_correct()
        return float(self.per_bag[bag]) - self.num_correct(bag)

    def prob(self, cls_idx: int, bag: int | None = None) -> float:
        if bag is not None and gr(self.per_bag[bag], 0):
            return float(self.per_class_per_bag[bag, cls_idx] / self.per_bag[bag])
        if eq(self.total, 0):
            return 0.0
        return float(self.per_class[cls_idx] / self.total)

    def laplace_prob(self, cls_idx: int, bag: int | None = None) -> float:
        k = self.n_classes
        if bag is not None and gr(self.per_bag[bag], 0):
            return float((self.per_class_per_bag[bag, cls_idx] + 1.0) / (self.per_bag[bag] + k))
        return float((self.per_class[cls_idx] + 1.0) / (self.total + k))

    def class_probs(self, bag: int | None = None, laplace: bool = False) -> np.ndarray:
        fn = self.laplace_prob if laplace else self.prob
        return np.array([fn(c, bag) for c in range(self.n_classes)], dtype=float)
