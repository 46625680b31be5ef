"""
j48sspy.patterns
================

Frequent generator sequential pattern mining with vertical bitmaps, guided
by an information gain bound.

Every sequence is a list of itemsets; every itemset occupies one bit
position in a global position space (sequence ``sid`` starts at
``starts[sid]``).  An item's bitmap is the sorted array of positions where it
occurs.  Patterns are grown depth first by

* s-steps: append a new itemset holding one item, found after the prefix
  (within ``max_gap`` positions when a gap is set),
* i-steps: add an item with a larger id to the last itemset of the prefix.

Branches are cut by minimum support, by co-occurrence maps (CMAP) and by an
upper bound on the one-vs-all information gain reachable at the current
support.  Only generator patterns (no sub-pattern with the same support)
are retained.  Among the best patterns found for each length, the winner
balances information gain against length through ``pattern_weight``.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field

import numpy as np

logger = logging.getLogger(__name__)

NO_PATTERN = "NO_PATTERNS_FOUND_WITHIN_SUPPORT"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _entropy(freqs) -> float:
    """Entropy in bits of relative frequencies; zero entries contribute 0."""
    f = np.asarray(freqs, dtype=float)
    f = f[f > 0]
    return float(-np.sum(f * np.log2(f)))


def cond_entropy_lower_bound(p: float, t: float) -> float:
    """
    Lower bound of the conditional entropy of a binary class with frequency
    ``p`` given a pattern of relative support ``t`` (0 where undefined).
    """
    p, t = np.float64(p), np.float64(t)
    with np.errstate(all="ignore"):
        if t <= p:
            lb1 = (t - 1.0) * ((p - t) / (1.0 - t) * np.log2((p - t) / (1.0 - t))
                               + (1.0 - p) / (1.0 - t) * np.log2((1.0 - p) / (1.0 - t)))
            lb2 = -p * np.log2(p / (1.0 - t)) + (t - 1.0 + p) * np.log2((1.0 - p - t) / (1.0 - t))
        else:
            lb1 = -p * np.log2(p / t) - (t - p) * np.log2(1.0 - p / t)
            lb2 = -(t - 1.0 + p) * np.log2((t - 1.0 + p) / t) - (1.0 - p) * np.log2((1.0 - p) / t)
        lb = np.minimum(lb1, lb2)
    if np.isnan(lb):
        return 0.0
    return float(lb)


def strictly_contains(pattern1, pattern2) -> bool:
    """True if ``pattern2`` is contained in ``pattern1`` (itemset by itemset, in order)."""
    i = j = 0
    while True:
        if set(pattern1[j]) >= set(pattern2[i]):
            i += 1
            if i == len(pattern2):
                return True
        j += 1
        if j >= len(pattern1):
            return False
        if len(pattern1) - j < len(pattern2) - i:
            return False


def pattern_length(pattern) -> int:
    return sum(len(itemset) for itemset in pattern)


# -----------------------------------------------------------------------------
# Bitmap / pattern
# -----------------------------------------------------------------------------
class Bitmap:
    """Sorted occurrence positions of a pattern, with their sequence ids."""

    __slots__ = ("bits", "sids", "support", "sidsum", "support_without_gap")

    def __init__(self, bits: np.ndarray, sids: np.ndarray, support_without_gap: int | None = None):
        self.bits = bits
        self.sids = sids
        uniq = np.unique(sids)
        self.support = int(len(uniq))
        self.sidsum = int(uniq.sum())
        self.support_without_gap = self.support if support_without_gap is None else int(support_without_gap)

    def sequence_ids(self) -> np.ndarray:
        return np.unique(self.sids)

    def i_step(self, item: "Bitmap") -> "Bitmap":
        keep = np.isin(self.bits, item.bits, assume_unique=True)
        return Bitmap(self.bits[keep], self.sids[keep])

    def s_step(self, item: "Bitmap", max_gap: int | None) -> "Bitmap":
        # nearest prefix position strictly before each item position
        idx = np.searchsorted(self.bits, item.bits, side="left") - 1
        valid = idx >= 0
        prior = np.where(valid, self.bits[np.maximum(idx, 0)], -1)
        prior_sid = np.where(valid, self.sids[np.maximum(idx, 0)], -1)
        after = valid & (prior_sid == item.sids)
        if max_gap is None:
            return Bitmap(item.bits[after], item.sids[after])
        within = after & (item.bits - prior <= max_gap)
        without_gap = len(np.unique(item.sids[after]))
        return Bitmap(item.bits[within], item.sids[within], without_gap)

    def has_backward_extension(self, other: "Bitmap") -> bool:
        """True if every position of ``self`` is at or before the matching one of ``other``."""
        n = len(self.bits)
        return n <= len(other.bits) and bool(np.all(self.bits <= other.bits[:n]))


@dataclass
class _Pattern:
    itemsets: tuple
    bitmap: Bitmap
    sum_even: int = 0
    sum_odd: int = 0

    @property
    def support(self) -> int:
        return self.bitmap.support


@dataclass
class MiningResult:
    """Winning pattern (itemsets of item ids), its gain and the matched sequence ids."""

    pattern: list | None
    info_gain: float
    sids: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=int))

    @property
    def text(self) -> str:
        if self.pattern is None:
            return NO_PATTERN
        return " -1 ".join(" ".join(str(i) for i in itemset) for itemset in self.pattern) + " -1 -2"


def _extend(pattern: _Pattern, item: int, bitmap: Bitmap, new_itemset: bool) -> _Pattern:
    if new_itemset:
        itemsets = pattern.itemsets + ((item,),)
    else:
        itemsets = pattern.itemsets[:-1] + (pattern.itemsets[-1] + (item,),)
    even, odd = pattern.sum_even, pattern.sum_odd
    if item % 2 == 0:
        even += item
    else:
        odd += item
    return _Pattern(itemsets, bitmap, even, odd)


# -----------------------------------------------------------------------------
# Miner
# -----------------------------------------------------------------------------
class SequencePatternMiner:
    """
    Information-gain guided generator pattern search.

    Parameters
    ----------
    transactions : list[list[list[int]]]
        One sequence per instance: a list of itemsets of item ids.
    labels : array-like of int
        Class index per sequence.
    n_classes : int
        Number of classes.
    pattern_weight : float, default=0.75
        Weight of the information gain against the pattern length when
        choosing the final pattern.
    max_gap : int or None, default=None
        Maximum distance (in itemsets) between consecutive itemsets of a
        match; ``None`` for unbounded.
    max_pattern_length : int or None, default=None
        Patterns are grown while ``max_pattern_length`` exceeds their next
        length; ``None`` for unbounded.
    """

    def __init__(self, transactions, labels, n_classes: int, *, pattern_weight: float = 0.75,
                 max_gap: int | None = None, max_pattern_length: int | None = None):
        self.transactions = [[list(itemset) for itemset in seq] for seq in transactions]
        self.labels = np.asarray(labels, dtype=int)
        self.n_classes = int(n_classes)
        self.pattern_weight = float(pattern_weight)
        self.max_gap = max_gap
        self.max_pattern_length = math.inf if max_pattern_length is None else int(max_pattern_length)

        self.minsup = 1
        self.n_sequences = len(self.transactions)
        self.vertical: dict[int, Bitmap] = {}
        self.cmap_equals: dict[int, dict[int, int]] = {}
        self.cmap_after: dict[int, dict[int, int]] = {}
        self.generators: list[dict[int, list[_Pattern]]] = []
        self._best_ig = np.zeros(self.n_classes)
        self._best_for_length: dict[tuple[int, int], tuple[float, _Pattern]] = {}
        self._longest = -1

    # ------------------------------------------------------------------ setup
    def _build_vertical(self) -> None:
        starts, pos = [], 0
        for seq in self.transactions:
            starts.append(pos)
            pos += len(seq)
        self.starts = np.asarray(starts, dtype=int)
        bits, sids = defaultdict(list), defaultdict(list)
        for sid, seq in enumerate(self.transactions):
            for tid, itemset in enumerate(seq):
                for item in itemset:
                    p = self.starts[sid] + tid
                    # an item listed twice in one itemset occupies one position
                    if not bits[item] or bits[item][-1] != p:
                        bits[item].append(p)
                        sids[item].append(sid)
        self.vertical = {item: Bitmap(np.asarray(bits[item], dtype=int), np.asarray(sids[item], dtype=int))
                         for item in sorted(bits)}

    def _build_cmaps(self, frequent: set[int]) -> None:
        self.cmap_equals = defaultdict(lambda: defaultdict(int))
        self.cmap_after = defaultdict(lambda: defaultdict(int))
        for seq in self.transactions:
            tokens = []
            for itemset in seq:
                tokens.extend(itemset)
                tokens.append(-1)
            tokens.append(-2)
            already_processed: set[int] = set()
            equal_processed: dict[int, set[int]] = defaultdict(set)
            for i, item_i in enumerate(tokens):
                if item_i < 0 or item_i not in frequent:
                    continue
                equal_set = equal_processed[item_i]
                already_b: set[int] = set()
                same_itemset = True
                for item_j in tokens[i + 1:]:
                    if item_j < 0:
                        same_itemset = False
                        continue
                    if item_j not in frequent:
                        continue
                    if same_itemset:
                        if item_j not in equal_set:
                            self.cmap_equals[item_i][item_j] += 1
                            equal_set.add(item_j)
                    elif item_j not in already_b:
                        if item_i in already_processed:
                            break
                        self.cmap_after[item_i][item_j] += 1
                        already_b.add(item_j)
                already_processed.add(item_i)

    # ------------------------------------------------------------- gain math
    def _split_freqs(self, bitmap: Bitmap):
        inside = np.zeros(self.n_sequences, dtype=bool)
        inside[bitmap.sequence_ids()] = True
        n_in = inside.sum()
        n_out = self.n_sequences - n_in
        cnt_in = np.bincount(self.labels[inside], minlength=self.n_classes).astype(float)
        cnt_out = np.bincount(self.labels[~inside], minlength=self.n_classes).astype(float)
        f_in = cnt_in / n_in if n_in else cnt_in
        f_out = cnt_out / n_out if n_out else cnt_out
        return n_in / self.n_sequences, f_in, f_out

    def pattern_info_gain(self, bitmap: Bitmap) -> float:
        """Multi-class information gain of splitting on the pattern."""
        t, f_in, f_out = self._split_freqs(bitmap)
        return self._initial_entropy_multiclass - (t * _entropy(f_in) + (1 - t) * _entropy(f_out))

    def pattern_info_gain_one_vs_all(self, bitmap: Bitmap) -> np.ndarray:
        """Per-class information gain with all other classes merged."""
        t, f_in, f_out = self._split_freqs(bitmap)
        gains = np.zeros(self.n_classes)
        for c in range(self.n_classes):
            e_in = _entropy([f_in[c], f_in.sum() - f_in[c]])
            e_out = _entropy([f_out[c], f_out.sum() - f_out[c]])
            gains[c] = self._initial_entropy[c] - (t * e_in + (1 - t) * e_out)
        return gains

    # ------------------------------------------------------------------- run
    def run(self, prev_found_ig, min_support: float) -> MiningResult:
        """
        Mine the sequences and pick one pattern.

        Parameters
        ----------
        prev_found_ig : array-like of float
            Per-class one-vs-all gain a pattern must beat to be recorded as
            a length-1 candidate; also the starting bound of the search.
        min_support : float
            Minimum relative support.

        Returns
        -------
        MiningResult
            ``pattern`` is ``None`` and ``info_gain`` is ``-1`` when no
            candidate was found.
        """
        if self.n_sequences == 0:
            return MiningResult(None, -1.0)
        self._build_vertical()
        self.minsup = max(1, int(math.ceil(min_support * self.n_sequences)))

        class_freq = np.bincount(self.labels, minlength=self.n_classes) / self.n_sequences
        self._class_freq = class_freq
        self._initial_entropy = np.array([_entropy([p, 1 - p]) for p in class_freq])
        self._initial_entropy_multiclass = _entropy(class_freq)
        self._best_ig = np.array(prev_found_ig, dtype=float)[:self.n_classes].copy()

        frequent_items = [i for i, b in self.vertical.items() if b.support >= self.minsup]
        frequent_items.sort(key=lambda i: self.vertical[i].support)
        self._build_cmaps(set(frequent_items))

        self.generators = [{}, {}]
        singles = []
        for item in sorted(frequent_items):
            pat = _Pattern(((item,),), self.vertical[item],
                           item if item % 2 == 0 else 0, item if item % 2 else 0)
            singles.append(pat)
            if pat.support != self.n_sequences:
                self.generators[1].setdefault(pat.bitmap.sidsum, []).append(pat)
        if singles:
            self._longest = 1

        single_gains = {}
        for pat in singles:
            gains = self.pattern_info_gain_one_vs_all(pat.bitmap)
            single_gains[id(pat)] = gains
            for c in range(self.n_classes):
                if gains[c] > self._best_ig[c]:
                    self._best_ig[c] = gains[c]
                    self._best_for_length[(1, c)] = (gains[c], pat)

        singles.sort(key=lambda p: -single_gains[id(p)].mean())
        for pat in singles:
            if self.max_pattern_length > 1:
                item = pat.itemsets[0][0]
                self._dfs(pat, frequent_items, frequent_items, item, 2, item)

        result = self._select()
        logger.debug("pattern miner: %d sequences, minsup %d, %d generator patterns, winner %s (gain %.5f)",
                     self.n_sequences, self.minsup, sum(len(v) for lvl in self.generators for v in lvl.values()),
                     result.text, result.info_gain)
        return result

    def _dfs(self, prefix: _Pattern, sn, in_, greater_than: int, m: int, last_item: int) -> None:
        support = prefix.support
        rel = support / self.n_sequences
        prev_rel = (support - 1.0) / self.n_sequences
        if prev_rel <= 0:
            return

        all_stop = True
        for c in range(self.n_classes):
            p = self._class_freq[c]
            ub = self._initial_entropy[c] - cond_entropy_lower_bound(p, rel)
            prev_ub = self._initial_entropy[c] - cond_entropy_lower_bound(p, prev_rel)
            if not prev_ub <= ub or ub > self._best_ig[c]:
                all_stop = False
                break
        if all_stop:
            return

        gains = self.pattern_info_gain_one_vs_all(prefix.bitmap)
        length = pattern_length(prefix.itemsets)
        for c in range(self.n_classes):
            if gains[c] > self._best_ig[c]:
                self._best_ig[c] = gains[c]
            key = (length, c)
            if key not in self._best_for_length or gains[c] > self._best_for_length[key][0]:
                self._best_for_length[key] = (gains[c], prefix)
            self._longest = max(self._longest, length)

        # s-steps
        s_temp, s_bitmaps = [], []
        after = self.cmap_after.get(last_item)
        for item in sn:
            if after is None or after.get(item, 0) < self.minsup:
                continue
            bm = prefix.bitmap.s_step(self.vertical[item], self.max_gap)
            if bm.support_without_gap >= self.minsup:
                s_temp.append(item)
                s_bitmaps.append(bm)
        for item, bm in zip(s_temp, s_bitmaps):
            if bm.support >= self.minsup and self.max_pattern_length > m:
                new = _extend(prefix, item, bm, new_itemset=True)
                if not self._save_pattern(new, m):
                    self._dfs(new, s_temp, s_temp, item, m + 1, item)

        # i-steps
        i_temp, i_bitmaps = [], []
        equals = self.cmap_equals.get(last_item)
        for item in in_:
            if item <= greater_than:
                continue
            if equals is None or equals.get(item, 0) < self.minsup:
                continue
            bm = prefix.bitmap.i_step(self.vertical[item])
            if bm.support >= self.minsup:
                i_temp.append(item)
                i_bitmaps.append(bm)
        for item, bm in zip(i_temp, i_bitmaps):
            if self.max_pattern_length > m:
                new = _extend(prefix, item, bm, new_itemset=False)
                if not self._save_pattern(new, m):
                    self._dfs(new, s_temp, i_temp, item, m + 1, item)

    def _save_pattern(self, pattern: _Pattern, length: int) -> bool:
        """
        Store ``pattern`` if it may be a generator.

        Returns ``True`` when a sub-pattern with the same support admits a
        backward extension, meaning extensions of ``pattern`` can be skipped.
        """
        bitmap = pattern.bitmap
        if bitmap.support == self.n_sequences:
            return False
        may_be_generator = True
        for level in self.generators[1:length]:
            for other in level.get(bitmap.sidsum, ()):
                if (pattern.sum_even >= other.sum_even and pattern.sum_odd >= other.sum_odd
                        and bitmap.support == other.support
                        and strictly_contains(pattern.itemsets, other.itemsets)):
                    if bitmap.has_backward_extension(other.bitmap):
                        return True
                    may_be_generator = False
        if not may_be_generator:
            return False

        # longer patterns with the same support that contain this one are no longer generators
        for level in self.generators[length + 1:]:
            same = level.get(bitmap.sidsum)
            if not same:
                continue
            same[:] = [other for other in same
                       if not (pattern.sum_even <= other.sum_even and pattern.sum_odd <= other.sum_odd
                               and bitmap.support == other.support
                               and strictly_contains(other.itemsets, pattern.itemsets))]

        while len(self.generators) - 1 < length:
            self.generators.append({})
        self.generators[length].setdefault(bitmap.sidsum, []).append(pattern)
        return False

    def generator_patterns(self) -> list[tuple[tuple, int]]:
        """Retained generator patterns as ``(itemsets, support)`` pairs."""
        return [(p.itemsets, p.support) for level in self.generators for group in level.values() for p in group]

    # ------------------------------------------------------------- selection
    def _select(self) -> MiningResult:
        best_overall: dict[int, tuple[float, _Pattern]] = {}
        best_ig_found = -1.0
        for (length, _c), (gain, pat) in self._best_for_length.items():
            best_ig_found = max(best_ig_found, gain)
            overall = self.pattern_info_gain(pat.bitmap)
            if length not in best_overall or overall > best_overall[length][0]:
                best_overall[length] = (overall, pat)
        if best_ig_found <= 0:
            best_ig_found = 1.0
        if not best_overall:
            return MiningResult(None, -1.0)

        w = self.pattern_weight
        chosen, chosen_score = None, math.inf
        for length in sorted(best_overall):
            gain = best_overall[length][0]
            score = w * (1.0 - gain / best_ig_found) + (1.0 - w) * (length / self._longest)
            if score < chosen_score:
                chosen, chosen_score = length, score
        gain, pat = best_overall[chosen]
        return MiningResult([list(itemset) for itemset in pat.itemsets], float(gain),
                            pat.bitmap.sequence_ids())
