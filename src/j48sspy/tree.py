"""
j48sspy.tree
============

This module implements a C4.5 (J48) style decision tree classifier whose
attributes may be nominal, numeric, symbolic sequences or raw time series.

Sequence attributes (name prefix ``SEQ_``) are split on the presence of a
sequential pattern mined from the slice; time series attributes (name prefix
``TS_``) are split on the distance to a shapelet found by a genetic search.
Trees are simplified either by C4.5 confidence-based pruning (with an
optional collapse pass and subtree raising) or by reduced-error pruning on a
stratified hold-out fold.

The module contains the recursive :class:`ClassifierTree` node and the
scikit-learn style estimator :class:`J48SSClassifier`.
"""

from __future__ import annotations

import logging
from collections import deque

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin

from .config import PruningStrategy, TreeConfig
from .criteria import add_errs
from .dataset import AttributeKind, Instances, infer_attributes, is_missing
from .distribution import Distribution, eq, sm_or_eq
from .selection import ModelSelection
from .splits import NoSplit, parse_sequence

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Folds
# -----------------------------------------------------------------------------
def stratify(data: Instances, n_folds: int) -> Instances:
    """
    Reorder ``data`` so that contiguous folds keep the class proportions.

    Instances are grouped by class (classes in order of first appearance)
    and then dealt round robin, one every ``n_folds`` positions.
    """
    _, first = np.unique(data.y, return_index=True)
    rank = np.empty(data.n_classes, dtype=int)
    rank[data.y[np.sort(first)]] = np.arange(len(first))
    grouped = np.argsort(rank[data.y], kind="mergesort")
    order = np.concatenate([grouped[start::n_folds] for start in range(n_folds)])
    return data.subset(order)


def _fold_bounds(n: int, n_folds: int, fold: int) -> tuple[int, int]:
    size = n // n_folds
    if fold < n % n_folds:
        size += 1
        offset = fold
    else:
        offset = n % n_folds
    first = fold * (n // n_folds) + offset
    return first, first + size


def train_test_fold(data: Instances, n_folds: int, fold: int) -> tuple[Instances, Instances]:
    """Training part and test part of fold ``fold`` of a stratified dataset."""
    start, end = _fold_bounds(len(data), n_folds, fold)
    idx = np.arange(len(data))
    test = (idx >= start) & (idx < end)
    return data.subset(idx[~test]), data.subset(idx[test])


# -----------------------------------------------------------------------------
# Node
# -----------------------------------------------------------------------------
class ClassifierTree:
    """
    One node of the tree.

    The node owns its split model and its sons.  Pruning behaviour is set
    once for the whole tree through ``strategy``.

    Parameters
    ----------
    selection : ModelSelection
        Split chooser shared by all nodes.
    strategy : PruningStrategy, default=PruningStrategy.CONFIDENCE
        Pruning applied by :meth:`prune`.
    cf : float, default=0.25
        Confidence factor of the pessimistic error estimate.
    subtree_raising : bool, default=True
        Whether confidence pruning may replace a node by its largest branch.

    Attributes
    ----------
    model : SplitModel
        Split of this node; :class:`~j48sspy.splits.NoSplit` at leaves.
    sons : list[ClassifierTree]
        One child per subset of ``model``; empty at leaves.
    is_leaf, is_empty : bool
        Leaf flag, and whether the leaf received no training weight.
    train : Instances or None
        Training slice, kept when confidence pruning needs it.
    test : Distribution or None
        Hold-out distribution across ``model``'s subsets (reduced-error pruning).
    node_id : int
        Preorder index assigned by :meth:`assign_ids`.
    """

    def __init__(self, selection: ModelSelection, strategy: PruningStrategy = PruningStrategy.CONFIDENCE,
                 cf: float = 0.25, subtree_raising: bool = True):
        self.selection = selection
        self.strategy = strategy
        self.cf = float(cf)
        self.subtree_raising = bool(subtree_raising)
        self.model = None
        self.sons: list[ClassifierTree] = []
        self.is_leaf = False
        self.is_empty = False
        self.train: Instances | None = None
        self.test: Distribution | None = None
        self.node_id = -1

    def _new_tree(self) -> "ClassifierTree":
        return ClassifierTree(self.selection, self.strategy, self.cf, self.subtree_raising)

    def _make_leaf(self) -> None:
        self.sons = []
        self.is_leaf = True
        self.model = NoSplit(self.model.distribution)

    # ------------------------------------------------------------------
    # Growth
    # ------------------------------------------------------------------
    def build_tree(self, data: Instances, keep_data: bool = False) -> "ClassifierTree":
        """Grow the subtree of ``data`` recursively."""
        if keep_data:
            self.train = data
        self.test = None
        self.is_leaf = False
        self.is_empty = False
        self.sons = []
        self.model = self.selection.select_model(data)
        if self.model.num_subsets > 1:
            for part in self.model.split(data):
                self.sons.append(self._new_tree().build_tree(part, keep_data))
        else:
            self.is_leaf = True
            if eq(data.sum_of_weights(), 0.0):
                self.is_empty = True
        return self

    def build_tree_with_holdout(self, train: Instances, test: Instances) -> "ClassifierTree":
        """Grow on ``train`` while routing ``test`` down the same splits."""
        self.is_leaf = False
        self.is_empty = False
        self.sons = []
        self.model = self.selection.select_model(train)
        self.test = Distribution.from_model(test, self.model)
        if self.model.num_subsets > 1:
            for part_train, part_test in zip(self.model.split(train), self.model.split(test)):
                self.sons.append(self._new_tree().build_tree_with_holdout(part_train, part_test))
        else:
            self.is_leaf = True
            if eq(train.sum_of_weights(), 0.0):
                self.is_empty = True
        return self

    # ------------------------------------------------------------------
    # Simplification
    # ------------------------------------------------------------------
    def training_errors(self) -> float:
        if self.is_leaf:
            return self.model.distribution.num_incorrect()
        return sum(son.training_errors() for son in self.sons)

    def collapse(self) -> None:
        """Turn subtrees that do not reduce the training error into leaves."""
        if self.is_leaf:
            return
        if self.training_errors() >= self.model.distribution.num_incorrect() - 1e-3:
            self._make_leaf()
        else:
            for son in self.sons:
                son.collapse()

    def prune(self) -> None:
        if self.strategy is PruningStrategy.CONFIDENCE:
            self._prune_confidence()
        elif self.strategy is PruningStrategy.REDUCED_ERROR:
            self._prune_reduced_error()

    # --- confidence based -------------------------------------------------
    def _estimated_errors_for_distribution(self, dist: Distribution) -> float:
        if eq(dist.total, 0.0):
            return 0.0
        incorrect = dist.num_incorrect()
        return incorrect + add_errs(dist.total, incorrect, self.cf)

    def estimated_errors(self) -> float:
        if self.is_leaf:
            return self._estimated_errors_for_distribution(self.model.distribution)
        return sum(son.estimated_errors() for son in self.sons)

    def estimated_errors_for_branch(self, data: Instances) -> float:
        """Pessimistic errors of this subtree when it receives ``data``."""
        if self.is_leaf:
            return self._estimated_errors_for_distribution(Distribution.from_instances(data))
        saved = self.model.distribution
        self.model.reset_distribution(data)
        parts = self.model.split(data)
        self.model.distribution = saved
        return sum(son.estimated_errors_for_branch(part) for son, part in zip(self.sons, parts))

    def new_distribution(self, data: Instances) -> None:
        """Refit every distribution of the subtree to ``data``, splits unchanged."""
        self.model.reset_distribution(data)
        self.train = data
        if not self.is_leaf:
            for son, part in zip(self.sons, self.model.split(data)):
                son.new_distribution(part)
        elif not eq(data.sum_of_weights(), 0.0):
            self.is_empty = False

    def _prune_confidence(self) -> None:
        if self.is_leaf:
            return
        for son in self.sons:
            son._prune_confidence()

        largest = self.model.distribution.max_bag()
        if self.subtree_raising:
            errors_largest = self.sons[largest].estimated_errors_for_branch(self.train)
        else:
            errors_largest = np.finfo(float).max
        errors_leaf = self._estimated_errors_for_distribution(self.model.distribution)
        errors_tree = self.estimated_errors()

        if sm_or_eq(errors_leaf, errors_tree + 0.1) and sm_or_eq(errors_leaf, errors_largest + 0.1):
            self._make_leaf()
            return

        if sm_or_eq(errors_largest, errors_tree + 0.1) and not self.sons[largest].is_leaf:
            raised = self.sons[largest]
            self.sons = raised.sons
            self.model = raised.model
            self.is_leaf = raised.is_leaf
            self.new_distribution(self.train)
            self._prune_confidence()

    # --- reduced error ----------------------------------------------------
    def _errors_for_leaf(self) -> float:
        return self.test.total - self.test.per_class[self.model.distribution.max_class()]

    def _errors_for_tree(self) -> float:
        if self.is_leaf:
            return self._errors_for_leaf()
        dist = self.model.distribution
        errors = 0.0
        for i, son in enumerate(self.sons):
            if eq(dist.per_bag[i], 0.0):
                errors += self.test.per_bag[i] - self.test.per_class_per_bag[i, dist.max_class()]
            else:
                errors += son._errors_for_tree()
        return errors

    def _prune_reduced_error(self) -> None:
        if self.is_leaf:
            return
        for son in self.sons:
            son._prune_reduced_error()
        if sm_or_eq(self._errors_for_leaf(), self._errors_for_tree()):
            self._make_leaf()

    def cleanup(self) -> None:
        """Drop the training and hold-out data kept for pruning."""
        self.train = None
        self.test = None
        for son in self.sons:
            son.cleanup()

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------
    def class_probs(self, data: Instances, weight: np.ndarray, laplace: bool = False) -> np.ndarray:
        """
        Weighted class probabilities of every instance of ``data``.

        Instances with a missing split value visit all non-empty sons, their
        weight scaled by the training bag proportions.  Instances reaching an
        empty son use this node's class distribution for that bag.
        """
        n_classes = self.model.distribution.n_classes
        if self.is_leaf:
            return weight[:, None] * self.model.distribution.class_probs(laplace=laplace)[None, :]

        out = np.zeros((len(data), n_classes), dtype=float)
        subsets = self.model.which_subset(data)
        missing = np.flatnonzero(subsets == -1)
        if len(missing):
            bag_weights = self.model.weights()
            part = data.subset(missing)
            for i, son in enumerate(self.sons):
                if not son.is_empty:
                    out[missing] += son.class_probs(part, weight[missing] * bag_weights[i], laplace)
        for i, son in enumerate(self.sons):
            idx = np.flatnonzero(subsets == i)
            if not len(idx):
                continue
            if son.is_empty:
                out[idx] = weight[idx, None] * self.model.distribution.class_probs(i, laplace)[None, :]
            else:
                out[idx] = son.class_probs(data.subset(idx), weight[idx], laplace)
        return out

    def membership_values(self, data: Instances) -> np.ndarray:
        """Per-node weight of each instance, nodes in breadth-first order."""
        columns = []
        queue = deque([(self, data.weights.astype(float))])
        while queue:
            node, w = queue.popleft()
            columns.append(w)
            if node.is_leaf:
                continue
            subsets = node.model.which_subset(data)
            missing = subsets == -1
            bag_weights = node.model.weights() if missing.any() else None
            for i, son in enumerate(node.sons):
                factor = (subsets == i).astype(float)
                if bag_weights is not None:
                    factor[missing] = bag_weights[i]
                queue.append((son, w * factor))
        return np.column_stack(columns)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def num_leaves(self) -> int:
        if self.is_leaf:
            return 1
        return sum(son.num_leaves() for son in self.sons)

    def num_nodes(self) -> int:
        return 1 + sum(son.num_nodes() for son in self.sons)

    def assign_ids(self, last_id: int = -1) -> int:
        """Number the subtree in preorder, starting after ``last_id``."""
        current = last_id + 1
        self.node_id = current
        for son in self.sons:
            current = son.assign_ids(current)
        return current

    def _leaf_label(self, dist: Distribution, bag: int | None, class_names) -> str:
        weight = dist.total if bag is None else dist.per_bag[bag]
        wrong = dist.num_incorrect(bag)
        text = f"{class_names[dist.max_class(bag)]} ({round(float(weight), 2)}"
        if wrong > 1e-6:
            text += f"/{round(float(wrong), 2)}"
        return text + ")"

    def dump(self, attributes, class_names, depth: int = 0, lines=None) -> list[str]:
        """Weka style text lines of the subtree."""
        lines = [] if lines is None else lines
        if self.is_leaf and depth == 0:
            lines.append(": " + self._leaf_label(self.model.distribution, None, class_names))
            return lines
        for i, son in enumerate(self.sons):
            line = "|   " * depth + self.model.describe(i, attributes)
            if son.is_leaf:
                lines.append(line + ": " + self._leaf_label(self.model.distribution, i, class_names))
            else:
                lines.append(line)
                son.dump(attributes, class_names, depth + 1, lines)
        return lines


# -----------------------------------------------------------------------------
# Classifier
# -----------------------------------------------------------------------------
class J48SSClassifier(BaseEstimator, ClassifierMixin):
    """
    C4.5 style decision tree over nominal, numeric, sequence and time series attributes.

    Splits are scored by information gain.  Numeric attributes get binary
    threshold splits, nominal attributes one branch per value (or value vs
    rest with ``binary_splits``).  Columns named ``SEQ_*`` hold symbolic
    sequences such as ``"a,b>c"`` (itemsets separated by ``>``, items by
    ``,``) and are split on the presence of a mined sequential pattern;
    columns named ``TS_*`` hold time series (comma separated numbers or
    arrays) and are split on the distance to a shapelet found by NSGA-II.

    Parameters
    ----------
    unpruned : bool, default=False
        Grow the tree without pruning.
    collapse_tree : bool, default=True
        Collapse subtrees that do not lower the training error.
    confidence_factor : float or None, default=None
        Confidence of the pessimistic error estimate, 0.25 when ``None``.
        Smaller values prune more.
    min_num_obj : int, default=2
        Minimum number of instances per leaf.
    use_mdl_correction : bool, default=True
        Penalise numeric and time series gains by the number of candidate
        thresholds.
    use_ig_pruning : bool, default=False
        Bound the pattern miner by the one-vs-all gain of the best ordinary
        split.
    use_laplace : bool, default=False
        Laplace-smoothed leaf probabilities.
    reduced_error_pruning : bool, default=False
        Prune on a hold-out fold instead of the confidence estimate.
    num_folds : int or None, default=None
        Number of folds for reduced-error pruning (one is held out), 3 when
        ``None``.
    binary_splits : bool, default=False
        Use value-vs-rest splits on nominal attributes.
    subtree_raising : bool, default=True
        Allow confidence pruning to raise the largest branch of a node.
    make_split_point_actual_value : bool, default=True
        Move numeric thresholds down to a value seen in training.
    min_support : float, default=0.5
        Minimum relative support of a sequential pattern.
    max_gap : int, default=2
        Maximum gap between consecutive itemsets of a pattern match;
        ``0`` or less for no limit.
    max_pattern_length : int, default=20
        Maximum number of items of a pattern.
    pattern_weight : float, default=0.75
        Weight of information gain against pattern length (or shapelet
        compression) when picking among candidates.
    population_size : int, default=100
        Genetic search population.
    num_evaluations : int, default=500
        Genetic search evaluation budget.
    crossover_probability : float, default=0.8
    mutation_probability : float, default=0.1
    random_state : int or None, default=1
        Seed of the generator used by the shapelet search and the
        reduced-error pruning folds.
    n_jobs : int or None, default=None
        Threads evaluating shapelets; all CPUs when ``None``.
    feature_names : list[str] or None, default=None
        Column names.  Names decide which columns are sequences or series.
    categorical_features : list[int|str] or None, default=None
        Indices or names of nominal columns.  All other columns are numeric
        unless their name marks them as a sequence or time series.
    verbose : int, default=0
        ``1`` logs a training summary, ``2`` also logs every chosen split.

    Notes
    -----
    - Inconsistent settings raise :class:`~j48sspy.exceptions.ConfigurationError`
      from :meth:`fit` before any data is processed.
    - Instances whose class is missing are ignored during training.
    """

    def __init__(
        self,
        *,
        unpruned: bool = False,
        collapse_tree: bool = True,
        confidence_factor: float | None = None,
        min_num_obj: int = 2,
        use_mdl_correction: bool = True,
        use_ig_pruning: bool = False,
        use_laplace: bool = False,
        reduced_error_pruning: bool = False,
        num_folds: int | None = None,
        binary_splits: bool = False,
        subtree_raising: bool = True,
        make_split_point_actual_value: bool = True,
        min_support: float = 0.5,
        max_gap: int = 2,
        max_pattern_length: int = 20,
        pattern_weight: float = 0.75,
        population_size: int = 100,
        num_evaluations: int = 500,
        crossover_probability: float = 0.8,
        mutation_probability: float = 0.1,
        random_state: int | None = 1,
        n_jobs: int | None = None,
        feature_names: list[str] | None = None,
        categorical_features: list[int | str] | None = None,
        verbose: int = 0,
    ):
        self.unpruned = bool(unpruned)
        self.collapse_tree = bool(collapse_tree)
        self.confidence_factor = confidence_factor
        self.min_num_obj = int(min_num_obj)
        self.use_mdl_correction = bool(use_mdl_correction)
        self.use_ig_pruning = bool(use_ig_pruning)
        self.use_laplace = bool(use_laplace)
        self.reduced_error_pruning = bool(reduced_error_pruning)
        self.num_folds = num_folds
        self.binary_splits = bool(binary_splits)
        self.subtree_raising = bool(subtree_raising)
        self.make_split_point_actual_value = bool(make_split_point_actual_value)

        self.min_support = float(min_support)
        self.max_gap = int(max_gap)
        self.max_pattern_length = int(max_pattern_length)
        self.pattern_weight = float(pattern_weight)

        self.population_size = int(population_size)
        self.num_evaluations = int(num_evaluations)
        self.crossover_probability = float(crossover_probability)
        self.mutation_probability = float(mutation_probability)
        self.random_state = random_state
        self.n_jobs = n_jobs

        self.feature_names = feature_names
        self.categorical_features = categorical_features
        self.verbose = int(verbose)

        self.tree_ = None
        self.classes_ = None
        self.n_features_ = None

    def _config(self) -> TreeConfig:
        return TreeConfig(
            unpruned=self.unpruned,
            collapse_tree=self.collapse_tree,
            confidence_factor=self.confidence_factor,
            min_num_obj=self.min_num_obj,
            use_mdl_correction=self.use_mdl_correction,
            use_ig_pruning=self.use_ig_pruning,
            use_laplace=self.use_laplace,
            reduced_error_pruning=self.reduced_error_pruning,
            num_folds=self.num_folds,
            binary_splits=self.binary_splits,
            subtree_raising=self.subtree_raising,
            make_split_point_actual_value=self.make_split_point_actual_value,
            min_support=self.min_support,
            max_gap=self.max_gap,
            max_pattern_length=self.max_pattern_length,
            pattern_weight=self.pattern_weight,
            population_size=self.population_size,
            num_evaluations=self.num_evaluations,
            crossover_probability=self.crossover_probability,
            mutation_probability=self.mutation_probability,
            random_state=self.random_state,
            n_jobs=self.n_jobs,
        )

    def _set_verbosity(self) -> None:
        if self.verbose >= 2:
            logging.getLogger("j48sspy").setLevel(logging.DEBUG)
        elif self.verbose >= 1:
            logging.getLogger("j48sspy").setLevel(logging.INFO)

    @staticmethod
    def _as_2d(X) -> np.ndarray:
        X = np.asarray(X, dtype=object)
        if X.ndim != 2:
            raise ValueError("X must be a 2-dimensional array-like")
        return X

    def _check_fitted(self) -> None:
        if getattr(self, "tree_", None) is None:
            raise ValueError("Estimator not fitted. Call fit(...) first.")

    def fit(self, X, y, sample_weight=None, feature_names=None):
        config = self._config().validate()
        self._set_verbosity()

        if feature_names is None and hasattr(X, "columns"):
            feature_names = [str(c) for c in X.columns]
        X = self._as_2d(X)
        y = np.asarray(y, dtype=object).ravel()
        if len(y) != X.shape[0]:
            raise ValueError("X and y must have the same number of rows")
        if sample_weight is None:
            w = np.ones(len(y), dtype=float)
        else:
            w = np.asarray(sample_weight, dtype=float)
            if len(w) != len(y):
                raise ValueError("sample_weight must have the same length as y")

        n_features = X.shape[1]
        if feature_names is not None:
            if len(feature_names) != n_features:
                raise ValueError("feature_names length must match X.shape[1]")
            self.feature_names_ = [str(n) for n in feature_names]
        elif self.feature_names is not None:
            if len(self.feature_names) != n_features:
                raise ValueError("feature_names length must match X.shape[1]")
            self.feature_names_ = [str(n) for n in self.feature_names]
        else:
            self.feature_names_ = [f"f{i}" for i in range(n_features)]
        self.n_features_ = n_features

        cats = set()
        if self.categorical_features is not None:
            name_to_idx = {n: i for i, n in enumerate(self.feature_names_)}
            for c in self.categorical_features:
                if isinstance(c, str):
                    if c not in name_to_idx:
                        raise ValueError(f"unknown categorical feature {c!r}")
                    cats.add(name_to_idx[c])
                else:
                    cats.add(int(c))

        known = np.array([not is_missing(v) for v in y], dtype=bool)
        if not known.all():
            logger.warning("dropping %d instances with a missing class", int((~known).sum()))
        if not known.any():
            logger.warning("empty training set after dropping missing classes")
            raise ValueError("y has no instance with a known class")
        X, y, w = X[known], np.asarray(y[known].tolist()), w[known]

        self.classes_, y_idx = np.unique(y, return_inverse=True)
        columns = [X[:, j] for j in range(n_features)]
        self.attributes_ = infer_attributes(columns, self.feature_names_, cats)
        data = Instances.from_raw(self.attributes_, columns, y_idx, w, len(self.classes_))
        self.item_codes_ = self._item_codes(data)

        rng = np.random.default_rng(config.random_state)
        selection = ModelSelection(config, all_data=data, item_codes=self.item_codes_, rng=rng)
        strategy = config.pruning_strategy
        tree = ClassifierTree(selection, strategy, config.cf, config.subtree_raising)

        if strategy is PruningStrategy.REDUCED_ERROR:
            shuffled = data.subset(rng.permutation(len(data)))
            train, test = train_test_fold(stratify(shuffled, config.folds), config.folds, config.folds - 1)
            tree.build_tree_with_holdout(train, test)
            tree.prune()
        else:
            tree.build_tree(data, keep_data=strategy is PruningStrategy.CONFIDENCE)
            if config.collapse_tree:
                tree.collapse()
            tree.prune()
        tree.cleanup()
        tree.assign_ids()
        self.tree_ = tree

        logger.info("trained on %d instances, %d attributes: %d leaves, %d nodes (%s pruning)",
                    len(data), n_features, tree.num_leaves(), tree.num_nodes(), strategy.value)
        return self

    @staticmethod
    def _item_codes(data: Instances) -> dict[int, dict[str, int]]:
        """Integer id per item of each sequence attribute, in order of first appearance."""
        codes: dict[int, dict[str, int]] = {}
        for att, attr in enumerate(data.attributes):
            if attr.kind is not AttributeKind.SEQUENCE:
                continue
            table: dict[str, int] = {}
            for text in data.column(att):
                if text is None:
                    continue
                for itemset in parse_sequence(text):
                    for item in itemset:
                        table.setdefault(item, len(table) + 1)
            codes[att] = table
        return codes

    def _instances(self, X, sample_weight=None) -> Instances:
        X = self._as_2d(X)
        if X.shape[1] != self.n_features_:
            raise ValueError(f"X has {X.shape[1]} features, expected {self.n_features_}")
        n = X.shape[0]
        w = np.ones(n, dtype=float) if sample_weight is None else np.asarray(sample_weight, dtype=float)
        columns = [X[:, j] for j in range(self.n_features_)]
        return Instances.from_raw(self.attributes_, columns, np.zeros(n, dtype=int), w, len(self.classes_))

    def predict(self, X):
        """
        Predict class labels for the provided samples.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Input samples, encoded like the training data.

        Returns
        -------
        ndarray of shape (n_samples,)
            Class with the largest probability, first class on ties.
        """
        proba = self.predict_proba(X)
        return self.classes_[np.argmax(proba, axis=1)]

    def predict_proba(self, X):
        """
        Predict class probabilities for the provided samples.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Input samples.  Missing values may be ``None``, ``numpy.nan`` or
            an empty string.

        Returns
        -------
        ndarray of shape (n_samples, n_classes)
            Class probabilities, columns ordered like ``classes_``.

        Raises
        ------
        ValueError
            If the estimator has not been fitted.
        """
        self._check_fitted()
        data = self._instances(X)
        proba = self.tree_.class_probs(data, np.ones(len(data), dtype=float), self.use_laplace)
        # missing values may route weight only to empty leaves
        row_sum = proba.sum(axis=1, keepdims=True)
        row_sum[row_sum == 0] = 1.0
        return proba / row_sum

    def membership_values(self, X, sample_weight=None):
        """
        Weight each instance carries into every node.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
        sample_weight : array-like of shape (n_samples,), optional
            Weight at the root, 1 by default.

        Returns
        -------
        ndarray of shape (n_samples, n_nodes)
            Nodes in breadth-first order.  An instance with a missing split
            value spreads its weight over the sons of that node.
        """
        self._check_fitted()
        return self.tree_.membership_values(self._instances(X, sample_weight))

    def leaf_count(self) -> int:
        self._check_fitted()
        return self.tree_.num_leaves()

    def node_count(self) -> int:
        self._check_fitted()
        return self.tree_.num_nodes()

    def export_text(self, class_names=None) -> str:
        """
        Text rendering of the tree.

        Each line holds a condition; leaves show the predicted class with
        ``(weight/errors)`` of training instances.

        Parameters
        ----------
        class_names : list[str], optional
            Names for the classes, ordered like ``classes_``.

        Returns
        -------
        str
        """
        self._check_fitted()
        cn = class_names if class_names is not None else [str(c) for c in self.classes_]
        lines = self.tree_.dump(self.attributes_, cn)
        lines += ["", f"Number of Leaves  : {self.leaf_count()}", "", f"Size of the tree : {self.node_count()}"]
        return "\n".join(lines)
