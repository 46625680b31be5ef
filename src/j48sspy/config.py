"""
j48sspy.config
==============

Hyperparameters shared by model selection, tree induction, the sequential
pattern miner and the genetic shapelet search.

A :class:`TreeConfig` is built once per ``fit`` call from the estimator's
parameters and validated before any data is touched.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

from .exceptions import ConfigurationError

DEFAULT_CONFIDENCE_FACTOR = 0.25
DEFAULT_NUM_FOLDS = 3


class PruningStrategy(Enum):
    """Post-growth simplification applied to a tree, chosen once per run."""

    NONE = "none"
    CONFIDENCE = "confidence"
    REDUCED_ERROR = "reduced_error"


@dataclass
class TreeConfig:
    unpruned: bool = False
    collapse_tree: bool = True
    confidence_factor: float | None = None
    min_num_obj: int = 2
    use_mdl_correction: bool = True
    use_ig_pruning: bool = False
    use_laplace: bool = False
    reduced_error_pruning: bool = False
    num_folds: int | None = None
    binary_splits: bool = False
    subtree_raising: bool = True
    make_split_point_actual_value: bool = True
    # sequential pattern miner
    min_support: float = 0.5
    max_gap: int = 2
    max_pattern_length: int = 20
    pattern_weight: float = 0.75
    # genetic shapelet search
    population_size: int = 100
    num_evaluations: int = 500
    crossover_probability: float = 0.8
    mutation_probability: float = 0.1
    random_state: int | None = 1
    n_jobs: int | None = None

    # ------------------------------------------------------------------
    @property
    def cf(self) -> float:
        """Effective confidence factor."""
        if self.confidence_factor is None:
            return DEFAULT_CONFIDENCE_FACTOR
        return float(self.confidence_factor)

    @property
    def folds(self) -> int:
        """Effective number of reduced-error pruning folds."""
        if self.num_folds is None:
            return DEFAULT_NUM_FOLDS
        return int(self.num_folds)

    @property
    def pruning_strategy(self) -> PruningStrategy:
        if self.unpruned:
            return PruningStrategy.NONE
        if self.reduced_error_pruning:
            return PruningStrategy.REDUCED_ERROR
        return PruningStrategy.CONFIDENCE

    @property
    def workers(self) -> int:
        """Worker count for the shapelet evaluation pool."""
        if self.n_jobs is None:
            return os.cpu_count() or 1
        return int(self.n_jobs)

    # ------------------------------------------------------------------
    def validate(self) -> "TreeConfig":
        """
        Reject inconsistent or out-of-range settings.

        Returns
        -------
        TreeConfig
            ``self``, to allow chaining.

        Raises
        ------
        ConfigurationError
            If two options are mutually exclusive or a value is outside its
            admissible range.
        """
        if self.unpruned and not self.subtree_raising:
            raise ConfigurationError("Subtree raising does not need to be unset for an unpruned tree.")
        if self.unpruned and self.reduced_error_pruning:
            raise ConfigurationError("Unpruned tree and reduced error pruning cannot be selected simultaneously.")
        if self.confidence_factor is not None:
            if self.reduced_error_pruning:
                raise ConfigurationError("Setting the confidence factor does not make sense for reduced error pruning.")
            if self.unpruned:
                raise ConfigurationError("Doesn't make sense to change the confidence factor for an unpruned tree.")
            if not (0.0 < float(self.confidence_factor) < 1.0):
                raise ConfigurationError("Confidence factor has to be greater than 0 and less than 1.")
        if self.num_folds is not None:
            if not self.reduced_error_pruning:
                raise ConfigurationError("Setting the number of folds only makes sense for reduced error pruning.")
            if int(self.num_folds) < 2:
                raise ConfigurationError("num_folds must be at least 2.")
        if int(self.min_num_obj) < 1:
            raise ConfigurationError("min_num_obj must be at least 1.")
        if not (0.0 < float(self.min_support) <= 1.0):
            raise ConfigurationError("min_support must lie in (0, 1].")
        if int(self.max_pattern_length) < 1:
            raise ConfigurationError("max_pattern_length must be at least 1.")
        if not (0.0 <= float(self.pattern_weight) <= 1.0):
            raise ConfigurationError("pattern_weight must lie in [0, 1].")
        for name in ("crossover_probability", "mutation_probability"):
            p = float(getattr(self, name))
            if not (0.0 <= p <= 1.0):
                raise ConfigurationError(f"{name} must lie in [0, 1].")
        if int(self.population_size) < 2:
            raise ConfigurationError("population_size must be at least 2.")
        if int(self.num_evaluations) < 1:
            raise ConfigurationError("num_evaluations must be at least 1.")
        if self.n_jobs is not None and int(self.n_jobs) < 1:
            raise ConfigurationError("n_jobs must be None or a positive integer.")
        return self
