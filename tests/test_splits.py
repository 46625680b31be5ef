import math

import numpy as np
import pytest

from j48sspy.dataset import Attribute, AttributeKind, Instances
from j48sspy.distribution import Distribution
from j48sspy.exceptions import InternalInvariantError
from j48sspy.shapelets import ShapeletResult
from j48sspy.splits import (BinaryNominalSplit, NominalSplit, NoSplit, NumericSplit,
                            SequentialSplit, TimeSeriesSplit, contains_pattern, make_ordinary_split,
                            parse_sequence)


def _numeric_dataset(x=None, y=None):
    attrs = [Attribute("x", AttributeKind.NUMERIC)]
    x = [1.0, 2.0, 3.0, 4.0, 10.0, 11.0, 12.0, 13.0] if x is None else x
    y = [0, 0, 0, 0, 1, 1, 1, 1] if y is None else y
    return Instances.from_raw(attrs, [x], y, n_classes=2)


def _nominal_dataset():
    attrs = [Attribute("colour", AttributeKind.NOMINAL, ("a", "b", "c"))]
    x = ["a", "a", "b", "b", "c", "c"]
    y = [0, 0, 1, 1, 1, 1]
    return Instances.from_raw(attrs, [x], y, n_classes=2)


def _sequence_dataset():
    attrs = [Attribute("SEQ_items", AttributeKind.SEQUENCE)]
    seqs = ["1,2", "1,2>3", "3>1,2", "1,2>4", "1>2", "2>1", "1>3", "2>4"]
    y = [0, 0, 0, 0, 1, 1, 1, 1]
    return Instances.from_raw(attrs, [seqs], y, n_classes=2)


class _FixedShapeletSearch:
    """Stands in for the genetic search and always returns the same shapelet."""

    def __init__(self, shapelet):
        self.shapelet = np.asarray(shapelet, dtype=float)
        self.calls = 0

    def search(self, series, labels, min_split, n_classes=None):
        self.calls += 1
        return ShapeletResult(self.shapelet.copy(), 1.0)


def test_parse_sequence():
    assert parse_sequence("a,b>c") == [["a", "b"], ["c"]]
    assert parse_sequence(" a > b ") == [["a"], ["b"]]


def test_numeric_split_without_mdl_finds_class_boundary():
    data = _numeric_dataset()
    model = NumericSplit(0, 2, data.sum_of_weights(), use_mdl_correction=False).build(data)
    assert model.check_model()
    assert np.isclose(model.info_gain, 1.0)
    assert np.isclose(model.split_point, 7.0)
    assert np.allclose(model.distribution.per_class_per_bag, [[4, 0], [0, 4]])


def test_numeric_split_mdl_penalty_and_snap():
    data = _numeric_dataset()
    model = NumericSplit(0, 2, data.sum_of_weights(), use_mdl_correction=True).build(data)
    # five admissible boundaries compete
    assert np.isclose(model.info_gain, 1.0 - math.log2(5) / 8.0)
    model.set_split_point(data)
    assert model.split_point == 4.0
    assert model.describe(0, data.attributes) == "x <= 4.0"
    assert model.describe(1, data.attributes) == "x > 4.0"


def test_numeric_split_is_order_independent():
    x = [1.0, 2.0, 2.0, 2.0, 5.0, 5.0, 6.0, 7.0, 7.0, 8.0]
    y = [0, 0, 1, 0, 1, 0, 1, 1, 1, 1]
    base = NumericSplit(0, 2, 10.0).build(_numeric_dataset(x, y))
    rng = np.random.default_rng(3)
    for _ in range(5):
        perm = rng.permutation(len(x))
        other = NumericSplit(0, 2, 10.0).build(_numeric_dataset([x[i] for i in perm], [y[i] for i in perm]))
        assert other.num_subsets == base.num_subsets
        assert other.split_point == base.split_point
        assert np.isclose(other.info_gain, base.info_gain)


def test_numeric_split_needs_enough_instances():
    data = _numeric_dataset([1.0, 2.0, 3.0], [0, 1, 1])
    model = NumericSplit(0, 2, 3.0).build(data)
    assert not model.check_model()


def test_split_copies_missing_values_into_every_branch():
    data = _numeric_dataset([1.0, 2.0, 3.0, 10.0, 11.0, 12.0, np.nan], [0, 0, 0, 1, 1, 1, 0])
    model = NumericSplit(0, 2, data.sum_of_weights()).build(data)
    model.distribution.add_inst_with_unknown(data, 0)
    assert np.allclose(model.weights(), [0.5, 0.5])
    assert list(model.which_subset(data)) == [0, 0, 0, 1, 1, 1, -1]
    left, right = model.split(data)
    assert len(left) == 4 and len(right) == 4
    assert np.isclose(left.sum_of_weights(), 3.5)
    assert np.isclose(right.sum_of_weights(), 3.5)


def test_nominal_split_one_branch_per_value():
    data = _nominal_dataset()
    model = NominalSplit(0, 2, data.sum_of_weights()).build(data)
    assert model.num_subsets == 3
    h = -(1 / 3) * math.log2(1 / 3) - (2 / 3) * math.log2(2 / 3)
    assert np.isclose(model.info_gain, h)
    assert model.describe(2, data.attributes) == "colour = c"


def test_binary_nominal_split_value_vs_rest():
    data = _nominal_dataset()
    model = BinaryNominalSplit(0, 2, data.sum_of_weights()).build(data)
    assert model.num_subsets == 2
    assert model.split_value == 0
    assert list(model.which_subset(data)) == [0, 0, 1, 1, 1, 1]
    assert model.describe(0, data.attributes) == "colour = a"
    assert model.describe(1, data.attributes) == "colour != a"


def test_make_ordinary_split_dispatch():
    nominal = Attribute("c", AttributeKind.NOMINAL, ("x", "y"))
    numeric = Attribute("n", AttributeKind.NUMERIC)
    assert isinstance(make_ordinary_split(nominal, 0, 2, 4.0, True, False), NominalSplit)
    assert isinstance(make_ordinary_split(nominal, 0, 2, 4.0, True, True), BinaryNominalSplit)
    assert isinstance(make_ordinary_split(numeric, 0, 2, 4.0, True, False), NumericSplit)


def test_no_split_keeps_everything_together():
    data = _numeric_dataset()
    model = NoSplit(Distribution.from_instances(data))
    assert model.num_subsets == 1
    assert model.weights() is None
    assert list(model.which_subset(data)) == [0] * 8


def test_sequential_split_on_mined_pattern():
    data = _sequence_dataset()
    codes = {"1": 1, "2": 2, "3": 3, "4": 4}
    model = SequentialSplit(0, 2, data.sum_of_weights(), prev_found_ig=np.zeros(2), item_codes=codes,
                            min_support=0.5, max_gap=2, max_pattern_length=21, pattern_weight=0.75)
    model.build(data)
    assert model.check_model()
    assert model.pattern == [["1", "2"]]
    assert np.isclose(model.info_gain, 1.0)
    assert list(model.which_subset(data)) == [1, 1, 1, 1, 0, 0, 0, 0]
    assert model.describe(1, data.attributes) == "SEQ_items contains 1,2"
    assert model.describe(0, data.attributes) == "SEQ_items !contains 1,2"


def test_sequential_split_matching_respects_gap():
    model = SequentialSplit(0, max_gap=2)
    model.pattern = [["a"], ["b"]]
    assert model.matches("a>b")
    assert model.matches("x,a>c>b,y")
    assert not model.matches("a>c>d>b")
    assert not model.matches("b>a")
    assert not model.matches("aa>b")
    # any item text may sit in a skipped itemset
    assert model.matches("a>x.y>b")


def test_contains_pattern_ignores_order_inside_itemsets():
    assert contains_pattern([["2", "1"], ["3"]], [["1", "2"]], 2)
    assert contains_pattern([["3"], ["2", "5", "1"]], [["1", "2"]], 2)
    assert not contains_pattern([["1"], ["2"]], [["1", "2"]], 2)
    assert contains_pattern([["a"], ["c"], ["d"], ["b"]], [["a"], ["b"]], 0)
    # the closest earlier occurrence is used for the gap
    assert contains_pattern([["a"], ["c"], ["a"], ["b"]], [["a"], ["b"]], 1)


def test_sequential_split_routes_like_its_distribution():
    attrs = [Attribute("SEQ_items", AttributeKind.SEQUENCE)]
    seqs = ["1,2", "2,1>3", "3>1,2", "2,1>4", "1>2", "2>1", "1>3", "2>4"]
    data = Instances.from_raw(attrs, [seqs], [0, 0, 0, 0, 1, 1, 1, 1], n_classes=2)
    codes = {"1": 1, "2": 2, "3": 3, "4": 4}
    model = SequentialSplit(0, 1, data.sum_of_weights(), prev_found_ig=np.zeros(2), item_codes=codes)
    model.build(data)
    assert model.check_model()
    assert list(model.which_subset(data)) == [1, 1, 1, 1, 0, 0, 0, 0]
    assert np.allclose(model.distribution.per_class_per_bag, [[0.0, 4.0], [4.0, 0.0]])
    left, right = model.split(data)
    assert right.y.tolist() == [0, 0, 0, 0]
    assert left.y.tolist() == [1, 1, 1, 1]


def test_sequential_split_unknown_item_is_internal_error():
    data = _sequence_dataset()
    model = SequentialSplit(0, 2, 8.0, item_codes={"1": 1})
    with pytest.raises(InternalInvariantError):
        model.build(data)


def test_time_series_split_thresholds_shapelet_distance():
    attrs = [Attribute("TS_x", AttributeKind.TIME_SERIES)]
    series = ["1,5,5,1", "5,5,2,2", "3,5,5", "0,5,5,0",
              "1,1,1,1", "2,2,2,2", "0,0,0", "1,2,1,2"]
    y = [0, 0, 0, 0, 1, 1, 1, 1]
    data = Instances.from_raw(attrs, [series], y, n_classes=2)
    search = _FixedShapeletSearch([5.0, 5.0])
    model = TimeSeriesSplit(0, 2, data.sum_of_weights(), True, search=search).build(data)
    assert search.calls == 1
    assert model.check_model()
    assert np.isclose(model.info_gain, 1.0 - math.log2(3) / 8.0)
    assert np.isclose(model.split_point, 4.24264 / 2.0)
    assert list(model.which_subset(data)) == [0, 0, 0, 0, 1, 1, 1, 1]
    assert model.describe(0, data.attributes).startswith("d(TS_x,[5,5]) <=")


def test_time_series_split_without_shapelet_is_not_usable():
    attrs = [Attribute("TS_x", AttributeKind.TIME_SERIES)]
    data = Instances.from_raw(attrs, [["1,2", "2,3", "3,4", "4,5"]], [0, 0, 1, 1], n_classes=2)

    class _Empty:
        def search(self, series, labels, min_split, n_classes=None):
            return ShapeletResult(None, 0.0)

    model = TimeSeriesSplit(0, 2, 4.0, search=_Empty()).build(data)
    assert not model.check_model()
