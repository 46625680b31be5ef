"""
j48sspy.shapelets
=================

Genetic discovery of shapelets for time series attributes.

A shapelet is a short run of values.  Its quality as a split feature is
judged on two objectives that are both minimised:

* the negated information gain of the best binary split of the slice on
  the distance between each series and the shapelet,
* a compression ratio of the shapelet's textual form (gzip size over raw
  size), which favours short and repetitive shapelets.

:class:`ShapeletGeneticSearch` runs NSGA-II (non-dominated sorting with
crowding-distance truncation) over a population of candidate shapelets and
reduces the final Pareto front to a single shapelet by a weighted sum of
both objectives.  Objective evaluation of a generation is spread over a
thread pool; each evaluation is memoised in a :class:`ShapeletEvaluationCache`
shared by all workers.
"""

from __future__ import annotations

import gzip
import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np

from .distribution import gr_or_eq

logger = logging.getLogger(__name__)

N_OBJECTIVES = 2
_BITS = 64
_EXPONENT = slice(1, 12)


# -----------------------------------------------------------------------------
# Distances
# -----------------------------------------------------------------------------
def _truncate5(x: float) -> float:
    """Cut ``x`` to 5 decimals toward zero."""
    return int(x * 1e5) / 1e5


def subsequence_distance(series, shapelet) -> float:
    """
    Minimum Euclidean distance between ``shapelet`` and any window of ``series``.

    The shorter of the two arguments slides over the longer one.  Windows
    whose running sum already reaches the best distance are abandoned early;
    the earliest best window wins.  The result is truncated (not rounded)
    to 5 decimals.
    """
    ts = np.asarray(series, dtype=float)
    sh = np.asarray(shapelet, dtype=float)
    if len(sh) > len(ts):
        ts, sh = sh, ts
    best = math.inf
    m = len(sh)
    for i in range(len(ts) - m + 1):
        total = 0.0
        for j in range(m):
            total += (sh[j] - ts[i + j]) ** 2
            if total >= best:
                break
        else:
            best = total
    return _truncate5(math.sqrt(best))


def padded_distance(series, shapelet) -> float:
    """
    Distance used while evaluating candidate shapelets.

    Unlike :func:`subsequence_distance` the shapelet always slides; values
    past the end of a shorter series count as 0.
    """
    ts = np.asarray(series, dtype=float)
    sh = np.asarray(shapelet, dtype=float)
    n, m = len(ts), len(sh)
    best = math.inf
    for i in range(max(n, m) - m + 1):
        total = 0.0
        for j in range(m):
            v = ts[i + j] if i + j < n else 0.0
            total += (sh[j] - v) ** 2
            if total >= best:
                break
        else:
            best = total
    return _truncate5(math.sqrt(best))


def compression_ratio(values) -> float:
    """gzip size over raw size of the comma-terminated text of ``values``."""
    text = "".join(repr(float(v)) + "," for v in values)
    raw = text.encode()
    return len(gzip.compress(raw)) / len(raw)


# -----------------------------------------------------------------------------
# Encoding
# -----------------------------------------------------------------------------
class Shapelet:
    """
    Candidate shapelet: its values and their IEEE-754 bit mirror.

    ``bits`` has one row of 64 bits per value, most significant bit
    (the sign) first.
    """

    def __init__(self, values):
        self.values = np.array(values, dtype=float).ravel()

    @classmethod
    def from_bits(cls, bits: np.ndarray) -> "Shapelet":
        packed = np.packbits(np.asarray(bits, dtype=np.uint8), axis=1)
        return cls(packed.view(">f8").ravel().astype(float))

    @property
    def bits(self) -> np.ndarray:
        raw = self.values.astype(">f8").view(np.uint8).reshape(-1, 8)
        return np.unpackbits(raw, axis=1)

    @property
    def length(self) -> int:
        return len(self.values)

    @property
    def description(self) -> str:
        """Content key: ``L<length>B<comma separated values>``."""
        return f"L{self.length}B" + ",".join(repr(float(v)) for v in self.values)

    def copy(self) -> "Shapelet":
        return Shapelet(self.values.copy())


class Solution:
    """Individual of the population: a shapelet with its objectives, rank and crowding distance."""

    def __init__(self, shapelet: Shapelet):
        self.shapelet = shapelet
        self.objectives = np.zeros(N_OBJECTIVES, dtype=float)
        self.rank = 0
        self.crowding_distance = 0.0

    def copy(self) -> "Solution":
        other = Solution(self.shapelet.copy())
        other.objectives = self.objectives.copy()
        other.rank = self.rank
        other.crowding_distance = self.crowding_distance
        return other

    def __repr__(self) -> str:
        return f"Solution(len={self.shapelet.length}, objectives={self.objectives.tolist()})"


@dataclass
class ShapeletResult:
    """Outcome of a search; ``shapelet`` is ``None`` when nothing could be scored."""

    shapelet: np.ndarray | None
    info_gain: float


# -----------------------------------------------------------------------------
# Evaluation
# -----------------------------------------------------------------------------
class ShapeletEvaluationCache:
    """
    Thread-safe map from shapelet description to split entropy.

    Concurrent workers may compute the same entry twice; only the first
    stored value is kept and returned to every caller.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._store: dict[str, float] = {}

    def get(self, key: str) -> float | None:
        with self._lock:
            return self._store.get(key)

    def put_if_absent(self, key: str, value: float) -> float:
        with self._lock:
            return self._store.setdefault(key, value)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._store


def _class_entropy(counts: np.ndarray) -> float:
    total = counts.sum()
    if total <= 0:
        return 0.0
    p = counts[counts > 0] / total
    return float(-np.sum(p * np.log2(p)))


class ShapeletProblem:
    """
    Objective function over one slice of labelled series.

    Parameters
    ----------
    series : list of ndarray
        Known series of the slice.
    labels : array-like of int
        Class index per series.
    n_classes : int
        Number of class values.
    min_split : float
        Minimum number of series on each side of a candidate split.
    distance : callable, optional
        ``distance(series, shapelet) -> float``; defaults to
        :func:`padded_distance`.
    cache : ShapeletEvaluationCache, optional
        Shared memo of split entropies.
    """

    def __init__(self, series, labels, n_classes: int, min_split: float,
                 distance=None, cache: ShapeletEvaluationCache | None = None):
        self.series = list(series)
        self.labels = np.asarray(labels, dtype=int)
        self.n_classes = int(n_classes)
        self.min_split = float(min_split)
        self.distance = distance or padded_distance
        self.cache = cache if cache is not None else ShapeletEvaluationCache()
        self.max_instance_length = max((len(s) for s in self.series), default=0)
        self.initial_entropy = _class_entropy(np.bincount(self.labels, minlength=self.n_classes).astype(float))

    def random_shapelet(self, rng: np.random.Generator) -> Shapelet:
        """Random contiguous piece of a random non-empty series."""
        candidates = [s for s in self.series if len(s) > 0]
        source = candidates[int(rng.integers(len(candidates)))]
        begin = int(rng.integers(len(source)))
        end = int(rng.integers(len(source)))
        if end < begin:
            begin, end = end, begin
        return Shapelet(source[begin:end + 1])

    def split_entropy(self, values) -> float:
        """Weighted class entropy of the best distance split, or the class entropy if none qualifies."""
        d = np.array([self.distance(s, values) for s in self.series], dtype=float)
        order = np.argsort(d, kind="mergesort")
        d, y = d[order], self.labels[order]
        n = len(d)
        left = np.zeros(self.n_classes, dtype=float)
        right = np.bincount(y, minlength=self.n_classes).astype(float)
        best = None
        last = 0
        for i in range(1, n):
            if d[i - 1] + 1e-5 < d[i]:
                moved = np.bincount(y[last:i], minlength=self.n_classes)
                left += moved
                right -= moved
                nl, nr = left.sum(), right.sum()
                if gr_or_eq(nl, self.min_split) and gr_or_eq(nr, self.min_split):
                    cur = nl / n * _class_entropy(left) + nr / n * _class_entropy(right)
                    if best is None or gr_or_eq(abs(best), abs(cur)):
                        best = cur
                last = i
        return self.initial_entropy if best is None else best

    def evaluate(self, solution: Solution) -> Solution:
        """Fill in both objectives of ``solution`` and return it."""
        shapelet = solution.shapelet
        key = shapelet.description
        ent = self.cache.get(key)
        if ent is None:
            ent = self.cache.put_if_absent(key, self.split_entropy(shapelet.values))
        solution.objectives[0] = -(self.initial_entropy - ent)
        solution.objectives[1] = compression_ratio(shapelet.values)
        return solution


# -----------------------------------------------------------------------------
# Variation operators
# -----------------------------------------------------------------------------
def crossover(parents, probability: float, rng: np.random.Generator):
    """
    Single point crossover.

    With probability ``probability`` the children swap tails: the first
    child is the head of the first parent up to a random cut followed by
    the tail of the second parent from its own random cut, and vice versa.
    Children never alias their parents.
    """
    child1, child2 = parents[0].copy(), parents[1].copy()
    if rng.random() < probability:
        v1, v2 = child1.shapelet.values, child2.shapelet.values
        s1 = int(rng.integers(len(v1)))
        s2 = int(rng.integers(len(v2)))
        child1.shapelet = Shapelet(np.concatenate([v1[:s1], v2[s2:]]))
        child2.shapelet = Shapelet(np.concatenate([v2[:s2], v1[s1:]]))
    return child1, child2


def bit_flip_probabilities(probability: float) -> np.ndarray:
    """Per-bit flip probability, highest on the least significant bits."""
    j = np.arange(_BITS)
    return probability - probability * np.log(_BITS - j) / np.log(_BITS + 1)


def mutate(solution: Solution, probability: float, rng: np.random.Generator) -> Solution:
    """
    Bit-flip mutation of the IEEE-754 form of each value, in place.

    An all-ones exponent (infinity or NaN) is repaired by clearing one
    random exponent bit.
    """
    if not rng.random() < probability:
        return solution
    bits = solution.shapelet.bits
    flips = rng.random(bits.shape) < bit_flip_probabilities(probability)
    bits = bits ^ flips.astype(np.uint8)
    for row in np.flatnonzero(bits[:, _EXPONENT].all(axis=1)):
        bits[row, int(rng.integers(1, 12))] = 0
    solution.shapelet = Shapelet.from_bits(bits)
    return solution


# -----------------------------------------------------------------------------
# Non-dominated sorting
# -----------------------------------------------------------------------------
def dominance_compare(a: Solution, b: Solution) -> int:
    """``-1`` if ``a`` dominates ``b``, ``1`` if ``b`` dominates ``a``, else ``0``."""
    a_better = bool(np.any(a.objectives < b.objectives))
    b_better = bool(np.any(b.objectives < a.objectives))
    if a_better and not b_better:
        return -1
    if b_better and not a_better:
        return 1
    return 0


def rank_fronts(solutions) -> list[list[Solution]]:
    """Fast non-dominated sort; sets ``rank`` and returns the fronts in order."""
    n = len(solutions)
    dominates = [[] for _ in range(n)]
    dominated_by = np.zeros(n, dtype=int)
    for i in range(n):
        for j in range(i + 1, n):
            flag = dominance_compare(solutions[i], solutions[j])
            if flag == -1:
                dominates[i].append(j)
                dominated_by[j] += 1
            elif flag == 1:
                dominates[j].append(i)
                dominated_by[i] += 1

    fronts = []
    current = [i for i in range(n) if dominated_by[i] == 0]
    rank = 0
    while current:
        for i in current:
            solutions[i].rank = rank
        fronts.append([solutions[i] for i in current])
        nxt = []
        for i in current:
            for j in dominates[i]:
                dominated_by[j] -= 1
                if dominated_by[j] == 0:
                    nxt.append(j)
        current = sorted(nxt)
        rank += 1
    return fronts


def assign_crowding_distance(front) -> None:
    """
    Crowding distance within one front.

    Fronts of one or two solutions and the boundary solutions of every
    objective get ``inf``.  An objective that is constant over the front
    contributes nothing.
    """
    size = len(front)
    if size == 0:
        return
    if size <= 2:
        for s in front:
            s.crowding_distance = math.inf
        return
    for s in front:
        s.crowding_distance = 0.0
    for k in range(N_OBJECTIVES):
        ordered = sorted(front, key=lambda s: s.objectives[k])
        lo, hi = ordered[0].objectives[k], ordered[-1].objectives[k]
        ordered[0].crowding_distance = math.inf
        ordered[-1].crowding_distance = math.inf
        if hi == lo:
            continue
        for j in range(1, size - 1):
            step = (ordered[j + 1].objectives[k] - ordered[j - 1].objectives[k]) / (hi - lo)
            ordered[j].crowding_distance += step


class BinaryTournament:
    """
    Binary tournament over a random permutation consumed two at a time.

    The winner is the dominating solution, then the less crowded one, then
    a coin flip.
    """

    def __init__(self, rng: np.random.Generator):
        self.rng = rng
        self._perm: np.ndarray | None = None
        self._index = 0

    def __call__(self, population) -> Solution:
        size = len(population)
        if self._perm is None or self._index == 0 or self._index + 1 >= size or len(self._perm) != size:
            self._perm = self.rng.permutation(size)
            self._index = 0
        a = population[self._perm[self._index]]
        b = population[self._perm[self._index + 1]]
        self._index = (self._index + 2) % size

        flag = dominance_compare(a, b)
        if flag == -1:
            return a
        if flag == 1:
            return b
        if a.crowding_distance > b.crowding_distance:
            return a
        if b.crowding_distance > a.crowding_distance:
            return b
        return a if self.rng.random() < 0.5 else b


# -----------------------------------------------------------------------------
# Search
# -----------------------------------------------------------------------------
class ShapeletGeneticSearch:
    """
    NSGA-II search for the best shapelet of a slice.

    Parameters
    ----------
    population_size : int
        Number of individuals kept between generations.
    num_evaluations : int
        Evaluation budget; the initial population counts towards it.
    crossover_probability : float
        Probability that a pair of parents exchanges tails.
    mutation_probability : float
        Probability that an offspring is mutated, also the base per-bit
        flip probability.
    pattern_weight : float
        Weight of the information gain against the compression ratio when
        the final front is reduced to one shapelet.
    rng : numpy.random.Generator
        Source of every random draw of the search.
    n_jobs : int
        Worker threads used to evaluate a generation.
    distance : callable, optional
        Distance used during evaluation, :func:`padded_distance` by default.
    """

    def __init__(self, population_size: int = 100, num_evaluations: int = 500,
                 crossover_probability: float = 0.8, mutation_probability: float = 0.1,
                 pattern_weight: float = 0.75, rng: np.random.Generator | None = None,
                 n_jobs: int = 1, distance=None):
        self.population_size = int(population_size)
        self.num_evaluations = int(num_evaluations)
        self.crossover_probability = float(crossover_probability)
        self.mutation_probability = float(mutation_probability)
        self.pattern_weight = float(pattern_weight)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.n_jobs = max(1, int(n_jobs))
        self.distance = distance

    @classmethod
    def from_config(cls, config, rng: np.random.Generator) -> "ShapeletGeneticSearch":
        return cls(population_size=config.population_size,
                   num_evaluations=config.num_evaluations,
                   crossover_probability=config.crossover_probability,
                   mutation_probability=config.mutation_probability,
                   pattern_weight=config.pattern_weight,
                   rng=rng, n_jobs=config.workers)

    def search(self, series, labels, min_split: float, n_classes: int | None = None) -> ShapeletResult:
        """
        Find a shapelet for the given series.

        Parameters
        ----------
        series : list of ndarray
            Series of the slice, missing ones excluded.
        labels : array-like of int
            Class index per series.
        min_split : float
            Minimum number of series on each side of a scored split.
        n_classes : int, optional
            Number of class values; inferred from ``labels`` when omitted.

        Returns
        -------
        ShapeletResult
            The selected shapelet and its information gain.
        """
        labels = np.asarray(labels, dtype=int)
        if not any(len(s) > 0 for s in series):
            return ShapeletResult(None, 0.0)
        if n_classes is None:
            n_classes = int(labels.max()) + 1
        problem = ShapeletProblem(series, labels, n_classes, min_split, distance=self.distance)
        front = self.run(problem)
        result = self.reduce_front(front)
        logger.debug("shapelet search: %d cached evaluations, front of %d, gain %.5f",
                     len(problem.cache), len(front), result.info_gain)
        return result

    def run(self, problem: ShapeletProblem) -> list[Solution]:
        """Evolve a population on ``problem`` and return its first front."""
        tournament = BinaryTournament(self.rng)
        with ThreadPoolExecutor(max_workers=self.n_jobs) as executor:
            initial = [Solution(problem.random_shapelet(self.rng)) for _ in range(self.population_size)]
            population = list(executor.map(problem.evaluate, initial))
            evaluations = len(population)

            while evaluations < self.num_evaluations:
                offspring = []
                for _ in range(self.population_size // 2):
                    parents = (tournament(population), tournament(population))
                    for child in crossover(parents, self.crossover_probability, self.rng):
                        offspring.append(mutate(child, self.mutation_probability, self.rng))
                offspring = list(executor.map(problem.evaluate, offspring))
                evaluations += len(offspring)
                population = self._survivors(population + offspring)

        return rank_fronts(population)[0]

    def _survivors(self, union) -> list[Solution]:
        survivors: list[Solution] = []
        remain = self.population_size
        for front in rank_fronts(union):
            if remain <= 0:
                break
            assign_crowding_distance(front)
            if len(front) <= remain:
                survivors.extend(front)
                remain -= len(front)
            else:
                front = sorted(front, key=lambda s: s.crowding_distance, reverse=True)
                survivors.extend(front[:remain])
                remain = 0
        return survivors

    def reduce_front(self, front) -> ShapeletResult:
        """
        Pick one shapelet from a Pareto front.

        Both objectives are normalised by their extreme over the front and
        combined as ``(1 - w) * compression + w * (1 - gain)``.  Solutions
        with a zero normalised objective are skipped; the first of them is
        returned with a gain of 0 when no other solution qualifies.
        """
        if not front:
            return ShapeletResult(None, 0.0)
        w = self.pattern_weight
        max_ig = -min(s.objectives[0] for s in front)
        max_compr = max(s.objectives[1] for s in front)

        best_score = math.inf
        best_compr = -1.0
        best: Solution | None = None
        null_shapelet = None
        with np.errstate(divide="ignore", invalid="ignore"):
            for s in front:
                neg_ig, compr = s.objectives
                neg_rel = np.float64(neg_ig) / max_ig
                compr_rel = np.float64(compr) / max_compr
                neg_rel = 0.0 if np.isnan(neg_rel) else float(neg_rel)
                compr_rel = 0.0 if np.isnan(compr_rel) else float(compr_rel)
                score = (1.0 - w) * compr_rel + w * (1.0 + neg_rel)
                if neg_rel == 0.0 or compr_rel == 0.0:
                    score = math.inf
                    if null_shapelet is None:
                        null_shapelet = s.shapelet.values.copy()
                if score < best_score or (score == best_score and compr < best_compr):
                    best, best_score, best_compr = s, score, compr

        if best is None:
            return ShapeletResult(null_shapelet, 0.0)
        return ShapeletResult(best.shapelet.values.copy(), float(-best.objectives[0]))
