import logging

import numpy as np
import pytest
from sklearn.base import clone

from j48sspy import ConfigurationError, J48SSClassifier


def _separable():
    X = np.array([[1.0], [2.0], [3.0], [4.0], [10.0], [11.0], [12.0], [13.0]])
    y = np.array([0, 0, 0, 0, 1, 1, 1, 1])
    return X, y


def _noisy(seed=0, n=120):
    rng = np.random.default_rng(seed)
    X = rng.uniform(0, 10, size=(n, 3))
    y = (X[:, 0] + X[:, 1] > 10).astype(int)
    flip = rng.random(n) < 0.15
    y[flip] = 1 - y[flip]
    return X, y


def test_single_class_gives_single_leaf():
    X = np.array([[1.0], [2.0], [3.0]])
    clf = J48SSClassifier().fit(X, ['a', 'a', 'a'])
    assert clf.leaf_count() == 1
    assert clf.node_count() == 1
    assert clf.export_text().startswith(": a (3.0)")


def test_numeric_split_and_text_export():
    X, y = _separable()
    clf = J48SSClassifier().fit(X, y)
    assert clf.leaf_count() == 2
    assert clf.node_count() == 3
    text = clf.export_text(class_names=['neg', 'pos'])
    assert "f0 <= 4.0: neg (4.0)" in text
    assert "f0 > 4.0: pos (4.0)" in text
    assert "Number of Leaves  : 2" in text
    assert "Size of the tree : 3" in text


def test_membership_values_follow_branches():
    X, y = _separable()
    clf = J48SSClassifier().fit(X, y)
    members = clf.membership_values(np.array([[2.0], [np.nan]]))
    assert np.allclose(members, [[1.0, 1.0, 0.0], [1.0, 0.5, 0.5]])
    weighted = clf.membership_values(np.array([[12.0]]), sample_weight=[2.0])
    assert np.allclose(weighted, [[2.0, 0.0, 2.0]])


def test_laplace_probabilities():
    X, y = _separable()
    clf = J48SSClassifier(use_laplace=True).fit(X, y)
    assert np.allclose(clf.predict_proba([[2.0]]), [[5 / 6, 1 / 6]])


def test_pruning_never_grows_the_tree():
    X, y = _noisy()
    full = J48SSClassifier(unpruned=True, collapse_tree=False).fit(X, y)
    pruned = J48SSClassifier(collapse_tree=False).fit(X, y)
    strong = J48SSClassifier(collapse_tree=False, confidence_factor=0.05).fit(X, y)
    assert 1 <= pruned.leaf_count() <= full.leaf_count()
    assert 1 <= strong.leaf_count() <= full.leaf_count()
    assert full.leaf_count() > 2


def test_reduced_error_pruning_is_reproducible():
    X, y = _noisy(1)
    a = J48SSClassifier(reduced_error_pruning=True, num_folds=4, random_state=7).fit(X, y)
    b = J48SSClassifier(reduced_error_pruning=True, num_folds=4, random_state=7).fit(X, y)
    pa, pb = a.predict_proba(X), b.predict_proba(X)
    assert np.array_equal(pa, pb)
    assert np.allclose(pa.sum(axis=1), 1.0)
    assert a.export_text() == b.export_text()


def test_sequence_attribute_end_to_end():
    seqs = ["1,2", "1,2>3", "3>1,2", "1,2>4", "1>2", "2>1", "1>3", "2>4"]
    X = np.array(seqs, dtype=object).reshape(-1, 1)
    y = np.array(['yes'] * 4 + ['no'] * 4)
    clf = J48SSClassifier(feature_names=['SEQ_items']).fit(X, y)
    assert clf.item_codes_ == {0: {"1": 1, "2": 2, "3": 3, "4": 4}}
    text = clf.export_text()
    assert "SEQ_items contains 1,2: yes (4.0)" in text
    assert "SEQ_items !contains 1,2: no (4.0)" in text
    assert clf.predict(np.array([["4>1,2"], ["2>3"]], dtype=object)).tolist() == ['yes', 'no']


def test_sequence_items_in_any_order_within_itemsets():
    seqs = ["1,2", "2,1>3", "3>1,2", "2,1>4", "1>2", "2>1", "1>3", "2>4"]
    X = np.array(seqs, dtype=object).reshape(-1, 1)
    y = np.array([0, 0, 0, 0, 1, 1, 1, 1])
    clf = J48SSClassifier(unpruned=True, min_num_obj=1, feature_names=['SEQ_items']).fit(X, y)
    assert clf.leaf_count() == 2
    assert clf.predict(X).tolist() == y.tolist()
    assert clf.predict(np.array([["4>2,7,1"]], dtype=object)).tolist() == [0]


def test_time_series_attribute_end_to_end():
    high = ["5,5,5,5"] * 5
    low = ["0,0,0,0"] * 5
    X = np.array(high + low, dtype=object).reshape(-1, 1)
    y = np.array([1] * 5 + [0] * 5)
    clf = J48SSClassifier(feature_names=['TS_signal'], population_size=10, num_evaluations=40,
                          n_jobs=1, random_state=3).fit(X, y)
    assert clf.score(X, y) == 1.0
    assert "d(TS_signal,[" in clf.export_text()
    assert clf.leaf_count() == 2


def test_time_series_from_arrays():
    X = np.empty((6, 1), dtype=object)
    for i in range(3):
        X[i, 0] = np.array([0.0, 1.0, 0.0, 1.0])
        X[i + 3, 0] = np.array([7.0, 7.0, 7.0])
    y = [0, 0, 0, 1, 1, 1]
    clf = J48SSClassifier(feature_names=['TS_x'], population_size=6, num_evaluations=12, n_jobs=1,
                          min_num_obj=1).fit(X, y)
    assert clf.predict(X).tolist() == y


def test_inconsistent_settings_raise():
    X, y = _separable()
    with pytest.raises(ConfigurationError):
        J48SSClassifier(unpruned=True, reduced_error_pruning=True).fit(X, y)
    with pytest.raises(ConfigurationError):
        J48SSClassifier(confidence_factor=1.5).fit(X, y)
    with pytest.raises(ConfigurationError):
        J48SSClassifier(num_folds=3).fit(X, y)
    # configuration errors are value errors too
    with pytest.raises(ValueError):
        J48SSClassifier(min_support=0.0).fit(X, y)


def test_not_fitted():
    clf = J48SSClassifier()
    with pytest.raises(ValueError, match="not fitted"):
        clf.predict([[1.0]])
    with pytest.raises(ValueError, match="not fitted"):
        clf.export_text()


def test_shape_checks():
    X, y = _separable()
    with pytest.raises(ValueError):
        J48SSClassifier().fit(X, y, sample_weight=[1.0, 2.0])
    with pytest.raises(ValueError):
        J48SSClassifier().fit(X, y[:-1])
    with pytest.raises(ValueError):
        J48SSClassifier(feature_names=['a', 'b']).fit(X, y)
    clf = J48SSClassifier().fit(X, y)
    with pytest.raises(ValueError):
        clf.predict(np.zeros((2, 3)))


def test_missing_class_rows_are_dropped(caplog):
    X = np.array([[1.0], [2.0], [3.0], [4.0], [5.0], [10.0], [11.0], [12.0], [13.0]])
    y = np.array([0, 0, 0, 0, None, 1, 1, 1, 1], dtype=object)
    with caplog.at_level(logging.WARNING, logger="j48sspy"):
        clf = J48SSClassifier().fit(X, y)
    assert "missing class" in caplog.text
    assert clf.classes_.tolist() == [0, 1]
    assert clf.leaf_count() == 2


def test_all_classes_missing():
    with pytest.raises(ValueError, match="known class"):
        J48SSClassifier().fit([[1.0], [2.0]], [None, None])


def test_verbose_logs_summary(caplog):
    X, y = _separable()
    with caplog.at_level(logging.INFO, logger="j48sspy"):
        J48SSClassifier(verbose=1).fit(X, y)
    assert "2 leaves, 3 nodes" in caplog.text


def test_clone_and_params():
    clf = J48SSClassifier(min_num_obj=3, max_gap=0, feature_names=['x'])
    params = clf.get_params()
    assert params["min_num_obj"] == 3
    assert params["max_gap"] == 0
    twin = clone(clf)
    assert twin.get_params() == params
    assert twin.tree_ is None


def test_dataframe_input():
    pd = pytest.importorskip("pandas")
    df = pd.DataFrame({
        "size": [1.0, 2.0, 3.0, 4.0, 10.0, 11.0, 12.0, 13.0],
        "SEQ_events": ["a", "a>b", "b", "a", "c", "c>a", "c", "b>c"],
    })
    y = [0, 0, 0, 0, 1, 1, 1, 1]
    clf = J48SSClassifier().fit(df, y)
    assert clf.feature_names_ == ["size", "SEQ_events"]
    assert clf.score(df, y) == 1.0
