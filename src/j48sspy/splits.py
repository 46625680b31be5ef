"""
j48sspy.splits
==============

Split models: one evaluator per attribute kind.

Every model follows the same life cycle: it is created unbuilt, ``build``
searches for the best partition of a dataset slice, and ``check_model``
tells whether a usable split (more than one subset, positive gain) was
found.  A built model partitions instances through ``which_subset`` which
returns the subset index per instance, or ``-1`` when the split value is
missing; such instances are spread over the subsets in proportion to
``weights()``.
"""

from __future__ import annotations

import logging
import math
from bisect import bisect_left

import numpy as np

from .criteria import info_gain, old_ent
from .dataset import AttributeKind
from .distribution import Distribution, EPS, eq, gr, gr_or_eq, sm, sm_or_eq
from .exceptions import InternalInvariantError
from .patterns import SequencePatternMiner
from .shapelets import subsequence_distance

logger = logging.getLogger(__name__)


def _min_split(total: float, n_classes: int, min_no_obj: float) -> float:
    """Minimum subset weight: 10% of the average class weight, within [min_no_obj, 25]."""
    m = 0.1 * total / n_classes
    if sm_or_eq(m, min_no_obj):
        return float(min_no_obj)
    if gr(m, 25.0):
        return 25.0
    return m


def parse_sequence(text: str) -> list[list[str]]:
    """Split ``"a,b>c"`` into itemsets ``[["a", "b"], ["c"]]``."""
    return [itemset.split(",") for itemset in text.replace(" ", "").split(">")]


def contains_pattern(sequence, pattern, max_gap: int) -> bool:
    """
    Whether ``pattern`` occurs in ``sequence``.

    Both are lists of itemsets.  Every pattern itemset must be included in
    a later itemset of the sequence than the previous one, at most
    ``max_gap`` positions after it (no bound when ``max_gap <= 0``).  Order
    and repetition of items inside an itemset do not matter.
    """
    rows = [set(itemset) for itemset in sequence]
    wanted = [set(itemset) for itemset in pattern]
    if not wanted:
        return False
    ends = [j for j, row in enumerate(rows) if wanted[0] <= row]
    for need in wanted[1:]:
        nxt = []
        for j, row in enumerate(rows):
            if not need <= row:
                continue
            # closest earlier end decides the gap
            k = bisect_left(ends, j) - 1
            if k >= 0 and (max_gap <= 0 or j - ends[k] <= max_gap):
                nxt.append(j)
        ends = nxt
        if not ends:
            return False
    return bool(ends)


# -----------------------------------------------------------------------------
# Base
# -----------------------------------------------------------------------------
class SplitModel:
    """
    Common interface of all split models.

    Parameters
    ----------
    att_index : int
        Attribute the model splits on.
    min_no_obj : int
        Minimum weight required in at least two subsets.
    sum_of_weights : float
        Total weight of the slice the model is built on, including instances
        with a missing split value.
    """

    def __init__(self, att_index: int, min_no_obj: int = 2, sum_of_weights: float = 0.0):
        self.att_index = int(att_index)
        self.min_no_obj = min_no_obj
        self.sum_of_weights = float(sum_of_weights)
        self.num_subsets = 0
        self.info_gain = 0.0
        self.distribution: Distribution | None = None

    def check_model(self) -> bool:
        return self.num_subsets > 0

    def build(self, data) -> "SplitModel":
        raise NotImplementedError

    def _subsets_of_known(self, values) -> np.ndarray:
        raise NotImplementedError

    def which_subset(self, data) -> np.ndarray:
        """Subset index per instance of ``data``; ``-1`` where the value is missing."""
        missing = data.is_missing(self.att_index)
        out = np.full(len(data), -1, dtype=int)
        if (~missing).any():
            out[~missing] = self._subsets_of_known(data.column(self.att_index)[~missing])
        return out

    def weights(self) -> np.ndarray | None:
        """Fraction of the training weight that went to each subset."""
        dist = self.distribution
        if eq(dist.total, 0):
            return np.full(self.num_subsets, 1.0 / self.num_subsets)
        return dist.per_bag[:self.num_subsets] / dist.total

    def split(self, data) -> list:
        """
        Partition ``data`` into one slice per subset.

        Instances with a missing split value are copied into every subset
        with a positive weight, their weight scaled accordingly.
        """
        subsets = self.which_subset(data)
        missing = np.flatnonzero(subsets == -1)
        bag_weights = self.weights() if len(missing) else None
        parts = []
        for i in range(self.num_subsets):
            known = np.flatnonzero(subsets == i)
            if bag_weights is not None and gr(bag_weights[i], 0):
                idx = np.concatenate([known, missing])
                w = np.concatenate([data.weights[known], data.weights[missing] * bag_weights[i]])
                parts.append(data.subset(idx, w))
            else:
                parts.append(data.subset(known))
        return parts

    def reset_distribution(self, data) -> None:
        """Recompute the stored distribution on ``data`` keeping the split fixed."""
        subsets = self.which_subset(data)
        dist = Distribution(self.num_subsets, data.n_classes)
        for b in range(self.num_subsets):
            sel = subsets == b
            if sel.any():
                dist.add_instances(b, data.y[sel], data.weights[sel])
        if (subsets < 0).any():
            dist.add_inst_with_unknown(data, self.att_index)
        self.distribution = dist

    def set_split_point(self, all_data) -> None:
        """Only numeric splits move their threshold."""

    def describe(self, index: int, attributes) -> str:
        """Condition satisfied by the instances in subset ``index``."""
        raise NotImplementedError


class NoSplit(SplitModel):
    """Leaf marker: a single subset holding everything."""

    def __init__(self, distribution: Distribution):
        super().__init__(-1)
        self.num_subsets = 1
        self.distribution = distribution

    def which_subset(self, data) -> np.ndarray:
        return np.zeros(len(data), dtype=int)

    def weights(self):
        return None

    def reset_distribution(self, data) -> None:
        self.distribution = Distribution.from_instances(data)

    def describe(self, index: int, attributes) -> str:
        return ""


# -----------------------------------------------------------------------------
# Nominal
# -----------------------------------------------------------------------------
def _nominal_distribution(data, att: int, n_values: int) -> Distribution:
    dist = Distribution(n_values, data.n_classes)
    col = data.column(att)
    known = ~np.isnan(col)
    codes = col[known].astype(int)
    y, w = data.y[known], data.weights[known]
    for v in range(n_values):
        sel = codes == v
        if sel.any():
            dist.add_instances(v, y[sel], w[sel])
    return dist


class NominalSplit(SplitModel):
    """One subset per category value."""

    def build(self, data) -> "NominalSplit":
        n_values = data.attributes[self.att_index].num_values
        self.distribution = _nominal_distribution(data, self.att_index, n_values)
        if self.distribution.check(self.min_no_obj):
            self.num_subsets = n_values
            self.info_gain = info_gain(self.distribution, self.sum_of_weights)
        return self

    def _subsets_of_known(self, values) -> np.ndarray:
        return np.asarray(values).astype(int)

    def describe(self, index: int, attributes) -> str:
        attr = attributes[self.att_index]
        return f"{attr.name} = {attr.values[index]}"


class BinaryNominalSplit(SplitModel):
    """Best ``value`` vs ``rest`` partition of a nominal attribute."""

    def __init__(self, att_index: int, min_no_obj: int = 2, sum_of_weights: float = 0.0):
        super().__init__(att_index, min_no_obj, sum_of_weights)
        self.split_value: int | None = None

    def build(self, data) -> "BinaryNominalSplit":
        n_values = data.attributes[self.att_index].num_values
        full = _nominal_distribution(data, self.att_index, n_values)
        self.distribution = full
        for v in range(n_values):
            if not gr_or_eq(full.per_bag[v], self.min_no_obj):
                continue
            candidate = Distribution.one_vs_rest(full, v)
            if not candidate.check(self.min_no_obj):
                continue
            gain = info_gain(candidate, self.sum_of_weights)
            if self.split_value is None or gr(gain, self.info_gain):
                self.info_gain = gain
                self.split_value = v
                self.distribution = candidate
            self.num_subsets = 2
        return self

    def _subsets_of_known(self, values) -> np.ndarray:
        return np.where(np.asarray(values).astype(int) == self.split_value, 0, 1)

    def describe(self, index: int, attributes) -> str:
        attr = attributes[self.att_index]
        op = "=" if index == 0 else "!="
        return f"{attr.name} {op} {attr.values[self.split_value]}"


# -----------------------------------------------------------------------------
# Threshold splits (numeric values and shapelet distances)
# -----------------------------------------------------------------------------
class _ThresholdSplit(SplitModel):
    """Binary ``value <= split_point`` partition found by a boundary sweep."""

    def __init__(self, att_index: int, min_no_obj: int = 2, sum_of_weights: float = 0.0,
                 use_mdl_correction: bool = True):
        super().__init__(att_index, min_no_obj, sum_of_weights)
        self.use_mdl_correction = bool(use_mdl_correction)
        self.split_point = -math.inf

    def _threshold_search(self, sorted_data, values: np.ndarray) -> None:
        """
        Sweep the boundaries of ``values`` (sorted, known values only, aligned
        with the first rows of ``sorted_data``) and keep the best one.
        """
        n_classes = sorted_data.n_classes
        first_miss = len(values)
        dist = Distribution(2, n_classes)
        dist.add_range(1, sorted_data, 0, first_miss)
        self.distribution = dist

        min_split = _min_split(dist.total, n_classes, self.min_no_obj)
        if sm(first_miss, 2.0 * min_split):
            return

        default_ent = old_ent(dist)
        last, index, split_index = 0, 0, -1
        boundaries = np.flatnonzero(values[:-1] + 1e-5 < values[1:]) + 1
        for nxt in boundaries:
            dist.shift_range(1, 0, sorted_data, last, nxt)
            if gr_or_eq(dist.per_bag[0], min_split) and gr_or_eq(dist.per_bag[1], min_split):
                gain = info_gain(dist, self.sum_of_weights, default_ent)
                if gr(gain, self.info_gain):
                    self.info_gain = gain
                    split_index = nxt - 1
                index += 1
            last = nxt

        if index == 0:
            return
        if self.use_mdl_correction:
            self.info_gain -= math.log2(index) / self.sum_of_weights
        if sm_or_eq(self.info_gain, 0):
            return

        self.num_subsets = 2
        lo, hi = float(values[split_index]), float(values[split_index + 1])
        self.split_point = (lo + hi) / 2.0
        if self.split_point == hi:
            self.split_point = lo

        self.distribution = Distribution(2, n_classes)
        self.distribution.add_range(0, sorted_data, 0, split_index + 1)
        self.distribution.add_range(1, sorted_data, split_index + 1, first_miss)


class NumericSplit(_ThresholdSplit):
    """``x <= t`` vs ``x > t`` on a numeric attribute."""

    def build(self, data) -> "NumericSplit":
        col = data.column(self.att_index)
        known = np.flatnonzero(~np.isnan(col))
        order = known[np.argsort(col[known], kind="mergesort")]
        self._threshold_search(data.subset(order), col[order])
        return self

    def _subsets_of_known(self, values) -> np.ndarray:
        values = np.asarray(values, dtype=float)
        return np.where((values - self.split_point < EPS) | (values <= self.split_point), 0, 1)

    def set_split_point(self, all_data) -> None:
        """Snap the threshold down to the largest training value not above it."""
        if self.num_subsets <= 1:
            return
        col = all_data.column(self.att_index)
        new_point = -np.finfo(float).max
        for v in col[~np.isnan(col)]:
            if gr(v, new_point) and sm_or_eq(v, self.split_point):
                new_point = float(v)
        self.split_point = new_point

    def describe(self, index: int, attributes) -> str:
        name = attributes[self.att_index].name
        op = "<=" if index == 0 else ">"
        return f"{name} {op} {self.split_point}"


class TimeSeriesSplit(_ThresholdSplit):
    """
    Split on the distance between each series and a shapelet.

    The shapelet comes from a genetic search over the slice; the distance
    column is then handled exactly like a numeric attribute.

    Parameters
    ----------
    search : ShapeletGeneticSearch
        Configured search used to discover the shapelet.
    """

    def __init__(self, att_index: int, min_no_obj: int = 2, sum_of_weights: float = 0.0,
                 use_mdl_correction: bool = True, search=None):
        super().__init__(att_index, min_no_obj, sum_of_weights, use_mdl_correction)
        self.search = search
        self.shapelet: np.ndarray | None = None

    def build(self, data) -> "TimeSeriesSplit":
        col = data.column(self.att_index)
        known = np.flatnonzero(~data.is_missing(self.att_index))
        n_classes = data.n_classes
        min_split_ea = _min_split(float(len(data)), n_classes, self.min_no_obj)

        result = self.search.search([col[i] for i in known], data.y[known], min_split_ea, n_classes)
        if result.shapelet is None:
            return self
        self.shapelet = result.shapelet

        distances = np.array([subsequence_distance(col[i], self.shapelet) for i in known], dtype=float)
        order = np.argsort(distances, kind="mergesort")
        self._threshold_search(data.subset(known[order]), distances[order])
        logger.debug("shapelet on %s: search gain %.5f, split gain %.5f",
                     data.attributes[self.att_index].name, result.info_gain, self.info_gain)
        return self

    def _subsets_of_known(self, values) -> np.ndarray:
        out = np.empty(len(values), dtype=int)
        for i, series in enumerate(values):
            d = subsequence_distance(series, self.shapelet)
            out[i] = 0 if sm_or_eq(d, self.split_point) else 1
        return out

    def describe(self, index: int, attributes) -> str:
        name = attributes[self.att_index].name
        shapelet = ",".join(f"{v:g}" for v in self.shapelet)
        op = "<=" if index == 0 else ">"
        return f"d({name},[{shapelet}]) {op} {self.split_point}"


# -----------------------------------------------------------------------------
# Sequential patterns
# -----------------------------------------------------------------------------
class SequentialSplit(SplitModel):
    """
    ``contains pattern`` vs ``does not contain pattern`` on a sequence attribute.

    Parameters
    ----------
    prev_found_ig : array-like of float
        Per-class one-vs-all gain floor handed to the pattern miner.
    item_codes : dict[str, int]
        Translation from item strings to the miner's integer ids.
    min_support, max_gap, max_pattern_length, pattern_weight
        Miner settings.  ``max_gap <= 0`` leaves gaps unbounded.
    """

    def __init__(self, att_index: int, min_no_obj: int = 2, sum_of_weights: float = 0.0, *,
                 prev_found_ig=None, item_codes=None, min_support: float = 0.5, max_gap: int = 2,
                 max_pattern_length: int = 21, pattern_weight: float = 0.75):
        super().__init__(att_index, min_no_obj, sum_of_weights)
        self.prev_found_ig = prev_found_ig
        self.item_codes = item_codes or {}
        self.min_support = min_support
        self.max_gap = int(max_gap)
        self.max_pattern_length = int(max_pattern_length)
        self.pattern_weight = pattern_weight
        self.pattern: list[list[str]] | None = None

    def _encode(self, text: str) -> list[list[int]]:
        itemsets = []
        for itemset in parse_sequence(text):
            codes = []
            for item in itemset:
                code = self.item_codes.get(item)
                if code is None:
                    raise InternalInvariantError(f"item {item!r} missing from the translation table")
                codes.append(code)
            itemsets.append(sorted(codes))
        return itemsets

    def build(self, data) -> "SequentialSplit":
        n_classes = data.n_classes
        self.distribution = Distribution(2, n_classes)
        col = data.column(self.att_index)
        known = np.flatnonzero(~data.is_missing(self.att_index))
        transactions = [self._encode(col[i]) for i in known]

        miner = SequencePatternMiner(transactions, data.y[known], n_classes,
                                     pattern_weight=self.pattern_weight,
                                     max_gap=self.max_gap if self.max_gap > 0 else None,
                                     max_pattern_length=self.max_pattern_length if self.max_pattern_length > 0 else None)
        prev = self.prev_found_ig if self.prev_found_ig is not None else np.zeros(n_classes)
        result = miner.run(prev, self.min_support)
        self.info_gain = result.info_gain
        if result.pattern is None:
            return self

        decode = {code: item for item, code in self.item_codes.items()}
        self.pattern = [[decode[c] for c in itemset] for itemset in result.pattern]

        # bags come from the same test that routes instances in split()
        matched = self._subsets_of_known(col[known]) == 1
        y, w = data.y[known], data.weights[known]
        self.distribution.add_instances(1, y[matched], w[matched])
        self.distribution.add_instances(0, y[~matched], w[~matched])

        min_split = _min_split(self.distribution.total, n_classes, self.min_no_obj)
        if not sm(len(known), 2.0 * min_split):
            if not sm_or_eq(self.info_gain, 0) and self.distribution.check(self.min_no_obj):
                self.num_subsets = 2
        return self

    @property
    def pattern_text(self) -> str:
        return ">".join(",".join(itemset) for itemset in self.pattern or [])

    def matches(self, text: str) -> bool:
        """Whether the sequence ``text`` contains the split pattern."""
        return contains_pattern(parse_sequence(str(text)), self.pattern or [], self.max_gap)

    def _subsets_of_known(self, values) -> np.ndarray:
        return np.array([1 if self.matches(v) else 0 for v in values], dtype=int)

    def describe(self, index: int, attributes) -> str:
        name = attributes[self.att_index].name
        op = "contains" if index == 1 else "!contains"
        return f"{name} {op} {self.pattern_text}"


def make_ordinary_split(attr, att_index: int, min_no_obj: int, sum_of_weights: float,
                        use_mdl_correction: bool, binary_splits: bool) -> SplitModel:
    """Model for a nominal or numeric attribute."""
    if attr.kind is AttributeKind.NOMINAL:
        cls = BinaryNominalSplit if binary_splits else NominalSplit
        return cls(att_index, min_no_obj, sum_of_weights)
    return NumericSplit(att_index, min_no_obj, sum_of_weights, use_mdl_correction)
