"""
j48sspy.criteria
================

Entropy based split criteria over a :class:`~j48sspy.distribution.Distribution`
and the pessimistic error estimate used by confidence-based pruning.

All entropies are in bits.  ``old_ent``/``new_ent``/``split_ent`` return
*weighted* entropies (entropy times total weight), following the C4.5
convention; :func:`entropy` and :func:`split_entropy` normalise them to a
per-instance value.
"""

from __future__ import annotations

import logging
import math

import numpy as np

from .distribution import Distribution, eq

logger = logging.getLogger(__name__)

LOG2 = math.log(2.0)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def ln_func(x: float) -> float:
    """``x * ln(x)``, defined as 0 for ``x < 1e-6``."""
    if x < 1e-6:
        return 0.0
    return x * math.log(x)


def _ln_sum(values) -> float:
    v = np.asarray(values, dtype=float)
    v = v[v >= 1e-6]
    return float(np.sum(v * np.log(v)))


def _norm_ppf(p: float) -> float:
    """Approximate inverse CDF of standard normal (Acklam's approximation)."""
    p = min(max(p, 1e-12), 1 - 1e-12)
    a = [-3.969683028665376e+01, 2.209460984245205e+02,
         -2.759285104469687e+02, 1.383577518672690e+02,
         -3.066479806614716e+01, 2.506628277459239e+00]
    b = [-5.447609879822406e+01, 1.615858368580409e+02,
         -1.556989798598866e+02, 6.680131188771972e+01,
         -1.328068155288572e+01]
    c = [-7.784894002430293e-03, -3.223964580411365e-01,
         -2.400758277161838e+00, -2.549732539343734e+00,
         4.374664141464968e+00, 2.938163982698783e+00]
    d = [7.784695709041462e-03, 3.224671290700398e-01,
         2.445134137142996e+00, 3.754408661907416e+00]
    plow = 0.02425
    phigh = 1 - plow
    if p < plow:
        q = math.sqrt(-2 * math.log(p))
        return (((((c[0]*q + c[1])*q + c[2])*q + c[3])*q + c[4])*q + c[5]) / \
               ((((d[0]*q + d[1])*q + d[2])*q + d[3])*q + 1)
    if phigh < p:
        q = math.sqrt(-2 * math.log(1 - p))
        return -(((((c[0]*q + c[1])*q + c[2])*q + c[3])*q + c[4])*q + c[5]) / \
                ((((d[0]*q + d[1])*q + d[2])*q + d[3])*q + 1)
    q = p - 0.5
    r = q * q
    return (((((a[0]*r + a[1])*r + a[2])*r + a[3])*r + a[4])*r + a[5])*q / \
           (((((b[0]*r + b[1])*r + b[2])*r + b[3])*r + b[4])*r + 1)


def _one_vs_all_table(table: np.ndarray, cls_idx: int) -> np.ndarray:
    """Collapse every class except ``cls_idx`` into a single "other" column."""
    table = np.atleast_2d(table)
    target = table[:, cls_idx]
    other = table.sum(axis=1) - target
    return np.stack([target, other], axis=1)


# -----------------------------------------------------------------------------
# Weighted entropies
# -----------------------------------------------------------------------------
def old_ent(bags: Distribution, one_vs_all: int | None = None) -> float:
    """Weighted class entropy before splitting."""
    if one_vs_all is None:
        per_class = bags.per_class
    else:
        per_class = _one_vs_all_table(bags.per_class.reshape(1, -1), one_vs_all)[0]
    return (ln_func(bags.total) - _ln_sum(per_class)) / LOG2


def new_ent(bags: Distribution, one_vs_all: int | None = None) -> float:
    """Weighted class entropy after splitting."""
    table = bags.per_class_per_bag
    if one_vs_all is not None:
        table = _one_vs_all_table(table, one_vs_all)
    value = 0.0
    for b in range(bags.n_bags):
        value += _ln_sum(table[b]) - ln_func(bags.per_bag[b])
    return -value / LOG2


def split_ent(bags: Distribution) -> float:
    """Weighted entropy of the bag marginal, ignoring classes."""
    return (ln_func(bags.total) - _ln_sum(bags.per_bag)) / LOG2


def entropy(dist: Distribution) -> float:
    """Per-instance class entropy in bits (0 for a pure distribution)."""
    if eq(dist.total, 0):
        return 0.0
    return old_ent(dist) / dist.total


def split_entropy(dist: Distribution) -> float:
    """Per-instance entropy of the bag marginal in bits."""
    if eq(dist.total, 0):
        return 0.0
    return split_ent(dist) / dist.total


# -----------------------------------------------------------------------------
# Information gain
# -----------------------------------------------------------------------------
def info_gain(bags: Distribution, total_no_inst: float, old: float | None = None) -> float:
    """
    C4.5 information gain of a split.

    Parameters
    ----------
    bags : Distribution
        Distribution of the instances with a known split value.
    total_no_inst : float
        Total weight of the slice, including instances whose split value is
        missing.  The gain is scaled by the known fraction.
    old : float, optional
        Precomputed :func:`old_ent` of ``bags``.

    Returns
    -------
    float
        Per-instance information gain, 0 when the gain vanishes.
    """
    unknown_rate = (total_no_inst - bags.total) / total_no_inst
    if old is None:
        old = old_ent(bags)
    numerator = (1.0 - unknown_rate) * (old - new_ent(bags))
    if eq(numerator, 0):
        return 0.0
    return numerator / bags.total


def info_gain_one_vs_all(bags: Distribution, total_no_inst: float, cls_idx: int) -> float:
    """Information gain with every class but ``cls_idx`` merged into one."""
    unknown_rate = (total_no_inst - bags.total) / total_no_inst
    numerator = (1.0 - unknown_rate) * (old_ent(bags, cls_idx) - new_ent(bags, cls_idx))
    if eq(numerator, 0):
        return 0.0
    return numerator / bags.total


# -----------------------------------------------------------------------------
# Pessimistic error
# -----------------------------------------------------------------------------
def add_errs(n: float, e: float, cf: float) -> float:
    """
    Extra errors to add to ``e`` observed errors out of ``n`` instances.

    Upper limit of the binomial confidence interval at confidence ``cf``
    (normal approximation, exact solution for ``e < 1``).

    Parameters
    ----------
    n : float
        Weight of instances at the leaf.
    e : float
        Observed (weighted) errors.
    cf : float
        Confidence factor.

    Returns
    -------
    float
        Additional pessimistic errors, never negative.
    """
    if cf > 0.5:
        logger.warning("add_errs: confidence value %s is too high, returning 0", cf)
        return 0.0
    if e < 1:
        base = n * (1 - math.pow(cf, 1 / n))
        if e == 0:
            return base
        return base + e * (add_errs(n, 1, cf) - base)
    if e + 0.5 >= n:
        return max(n - e, 0.0)
    z = _norm_ppf(1 - cf)
    f = (e + 0.5) / n
    r = (f + (z * z) / (2 * n) + z * math.sqrt((f / n) - (f * f / n) + (z * z / (4 * n * n)))) / (1 + (z * z) / n)
    return (r * n) - e
