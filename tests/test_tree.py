import numpy as np
import pytest

from j48sspy.config import PruningStrategy, TreeConfig
from j48sspy.dataset import Attribute, AttributeKind, Instances
from j48sspy.distribution import Distribution
from j48sspy.selection import ModelSelection
from j48sspy.splits import NoSplit, NumericSplit
from j48sspy.tree import ClassifierTree, _fold_bounds, stratify, train_test_fold


def _separable():
    attrs = [Attribute("x", AttributeKind.NUMERIC)]
    x = [1.0, 2.0, 3.0, 4.0, 10.0, 11.0, 12.0, 13.0]
    return Instances.from_raw(attrs, [x], [0, 0, 0, 0, 1, 1, 1, 1], n_classes=2)


def _grow(data, strategy=PruningStrategy.CONFIDENCE):
    selection = ModelSelection(TreeConfig(), all_data=data)
    return ClassifierTree(selection, strategy).build_tree(data, keep_data=True)


def test_stratify_interleaves_classes():
    attrs = [Attribute("x", AttributeKind.NUMERIC)]
    data = Instances.from_raw(attrs, [[0.0, 1.0, 2.0, 3.0, 4.0, 5.0]], [0, 1, 0, 1, 0, 1], n_classes=2)
    out = stratify(data, 3)
    assert out.y.tolist() == [0, 1, 0, 1, 0, 1]
    assert out.column(0).tolist() == [0.0, 1.0, 2.0, 3.0, 4.0, 5.0]


def test_stratify_keeps_first_seen_class_first():
    attrs = [Attribute("x", AttributeKind.NUMERIC)]
    data = Instances.from_raw(attrs, [[0.0, 1.0, 2.0, 3.0]], [1, 1, 0, 0], n_classes=2)
    out = stratify(data, 2)
    assert out.y.tolist() == [1, 0, 1, 0]
    assert out.column(0).tolist() == [0.0, 2.0, 1.0, 3.0]


def test_fold_bounds_spread_remainder_over_first_folds():
    assert [_fold_bounds(10, 3, f) for f in range(3)] == [(0, 4), (4, 7), (7, 10)]
    assert [_fold_bounds(9, 3, f) for f in range(3)] == [(0, 3), (3, 6), (6, 9)]


def test_train_test_fold_partitions_data():
    data = _separable()
    train, test = train_test_fold(data, 3, 2)
    assert len(train) == 6 and len(test) == 2
    assert sorted(train.column(0).tolist() + test.column(0).tolist()) == sorted(data.column(0).tolist())


def test_tree_on_separable_data():
    tree = _grow(_separable())
    tree.prune()
    assert not tree.is_leaf
    assert tree.num_leaves() == 2
    assert tree.num_nodes() == 3
    assert tree.model.split_point == 4.0


def test_pure_data_gives_single_leaf():
    attrs = [Attribute("x", AttributeKind.NUMERIC)]
    data = Instances.from_raw(attrs, [[1.0, 2.0, 3.0]], [0, 0, 0], n_classes=2)
    tree = _grow(data)
    assert tree.is_leaf
    assert tree.num_nodes() == 1
    assert tree.dump(data.attributes, ["a", "b"]) == [": a (3.0)"]


def test_dump_lists_conditions_and_leaf_counts():
    data = _separable()
    tree = _grow(data)
    assert tree.dump(data.attributes, ["a", "b"]) == ["x <= 4.0: a (4.0)", "x > 4.0: b (4.0)"]


def test_assign_ids_is_preorder():
    tree = _grow(_separable())
    assert tree.assign_ids() == 2
    assert [tree.node_id] + [s.node_id for s in tree.sons] == [0, 1, 2]


def test_missing_value_visits_both_sons():
    data = _separable()
    tree = _grow(data)
    attrs = data.attributes
    query = Instances.from_raw(attrs, [[2.0, np.nan, 12.0]], [0, 0, 0], n_classes=2)
    proba = tree.class_probs(query, np.ones(3))
    assert np.allclose(proba, [[1.0, 0.0], [0.5, 0.5], [0.0, 1.0]])
    members = tree.membership_values(query)
    assert np.allclose(members, [[1.0, 1.0, 0.0], [1.0, 0.5, 0.5], [1.0, 0.0, 1.0]])


def test_laplace_leaf_probabilities():
    data = _separable()
    tree = _grow(data)
    query = Instances.from_raw(data.attributes, [[2.0]], [0], n_classes=2)
    assert np.allclose(tree.class_probs(query, np.ones(1), laplace=True), [[5 / 6, 1 / 6]])


def test_collapse_removes_useless_subtree():
    data = _separable()
    tree = _grow(data)
    # sons that repeat the parent's mistakes add nothing to the training error
    for son in tree.sons:
        son.model = NoSplit(Distribution.from_table([[2.0, 2.0]]))
    tree.collapse()
    assert tree.is_leaf
    assert tree.num_nodes() == 1


def test_confidence_pruning_never_adds_leaves():
    rng = np.random.default_rng(0)
    n = 80
    x = rng.uniform(0, 10, size=(2, n))
    y = (x[0] > 5).astype(int)
    flip = rng.random(n) < 0.2
    y[flip] = 1 - y[flip]
    attrs = [Attribute("a", AttributeKind.NUMERIC), Attribute("b", AttributeKind.NUMERIC)]
    data = Instances.from_raw(attrs, list(x), y, n_classes=2)

    full = _grow(data)
    leaves_before = full.num_leaves()
    full.prune()
    assert 1 <= full.num_leaves() <= leaves_before


def test_reduced_error_pruning_uses_holdout():
    data = _separable()
    selection = ModelSelection(TreeConfig(reduced_error_pruning=True), all_data=data)
    tree = ClassifierTree(selection, PruningStrategy.REDUCED_ERROR)
    train, test = train_test_fold(stratify(data, 2), 2, 1)
    tree.build_tree_with_holdout(train, test)
    assert np.isclose(tree.test.total, len(test))
    tree.prune()
    tree.cleanup()
    assert tree.test is None and tree.train is None


def _internal_nodes(tree):
    if tree.is_leaf:
        return 0
    return 1 + sum(_internal_nodes(son) for son in tree.sons)


@pytest.mark.parametrize("subtree_raising", [False, True])
def test_aggressive_pruning_bounds_estimated_error(subtree_raising):
    rng = np.random.default_rng(0)
    n = 100
    x = rng.uniform(0, 10, size=(3, n))
    y = rng.integers(0, 2, size=n)
    attrs = [Attribute(name, AttributeKind.NUMERIC) for name in ("a", "b", "c")]
    data = Instances.from_raw(attrs, list(x), y, n_classes=2)

    selection = ModelSelection(TreeConfig(), all_data=data)
    tree = ClassifierTree(selection, PruningStrategy.CONFIDENCE, cf=0.01, subtree_raising=subtree_raising)
    tree.build_tree(data, keep_data=True)
    before = tree.estimated_errors()
    internal = _internal_nodes(tree)
    leaves = tree.num_leaves()

    # every replacement removes an internal node and may cost at most 0.1
    tree.prune()
    assert tree.estimated_errors() <= before + (0.1 + 1e-6) * internal
    assert tree.num_leaves() <= leaves


def _threshold_node(att, point, data, sons):
    model = NumericSplit(att, 2, data.sum_of_weights())
    model.num_subsets = 2
    model.split_point = point
    model.reset_distribution(data)
    node = ClassifierTree(None, PruningStrategy.CONFIDENCE, cf=0.25, subtree_raising=True)
    node.model, node.train, node.sons = model, data, sons
    return node


def _leaf_node(data):
    node = ClassifierTree(None, PruningStrategy.CONFIDENCE, cf=0.25, subtree_raising=True)
    node.model, node.train, node.is_leaf = NoSplit(Distribution.from_instances(data)), data, True
    return node


def _raising_tree():
    # a <= 0.5 holds 20 rows that b separates; the other branch holds 2 rows b also separates
    a = [0.0] * 20 + [1.0, 1.0]
    b = [0.0] * 10 + [1.0] * 10 + [0.0, 1.0]
    y = [0] * 10 + [1] * 10 + [0, 1]
    attrs = [Attribute("a", AttributeKind.NUMERIC), Attribute("b", AttributeKind.NUMERIC)]
    data = Instances.from_raw(attrs, [a, b], y, n_classes=2)

    root_split = NumericSplit(0, 2, data.sum_of_weights())
    root_split.num_subsets, root_split.split_point = 2, 0.5
    big, small = root_split.split(data)
    inner = _threshold_node(1, 0.5, big, [_leaf_node(part) for part in _split_at(1, 0.5, big)])
    root = _threshold_node(0, 0.5, data, [inner, _leaf_node(small)])
    return root, inner, data


def _split_at(att, point, data):
    model = NumericSplit(att, 2, data.sum_of_weights())
    model.num_subsets, model.split_point = 2, point
    return model.split(data)


def test_subtree_raising_lifts_largest_branch():
    root, inner, data = _raising_tree()
    before = root.estimated_errors()
    inner_model = inner.model

    root.prune()

    assert root.model is inner_model
    assert root.model.att_index == 1
    assert np.isclose(root.model.distribution.total, len(data))
    assert np.allclose(root.model.distribution.per_class_per_bag, [[11.0, 0.0], [0.0, 11.0]])
    assert [son.is_leaf for son in root.sons] == [True, True]
    assert [son.model.distribution.total for son in root.sons] == [11.0, 11.0]
    assert root.num_leaves() == 2
    assert root.estimated_errors() <= before + 0.1

    proba = root.class_probs(data, np.ones(len(data)))
    assert np.allclose(proba.argmax(axis=1), data.y)


def test_subtree_raising_disabled_keeps_structure():
    root, inner, data = _raising_tree()
    root.subtree_raising = False
    root.prune()
    assert root.model.att_index == 0
    assert root.sons[0] is inner
    assert root.num_leaves() == 3
