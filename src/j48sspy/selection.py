"""
j48sspy.selection
=================

Best split search over every attribute of a dataset slice.
"""

from __future__ import annotations

import logging

import numpy as np

from .criteria import info_gain_one_vs_all
from .dataset import AttributeKind
from .distribution import Distribution, eq, gr, sm
from .shapelets import ShapeletGeneticSearch
from .splits import NoSplit, SequentialSplit, SplitModel, TimeSeriesSplit, make_ordinary_split

logger = logging.getLogger(__name__)


class ModelSelection:
    """
    Chooses the split model of a node.

    Ordinary attributes are scored first; the best of them sets the
    per-class one-vs-all gain floor handed to the sequential pattern miner.
    Sequence and time series attributes are scored afterwards and win only
    with a strictly larger gain.

    Parameters
    ----------
    config : TreeConfig
        Validated hyperparameters.
    all_data : Instances
        Full training set, used to snap numeric thresholds to observed values.
    item_codes : dict[int, dict[str, int]], optional
        Per sequence attribute, the translation from item strings to ids.
    rng : numpy.random.Generator, optional
        Random source of the shapelet search.
    """

    def __init__(self, config, all_data=None, item_codes=None, rng: np.random.Generator | None = None):
        self.config = config
        self.all_data = all_data
        self.item_codes = item_codes or {}
        self.rng = rng if rng is not None else np.random.default_rng(config.random_state)
        self.shapelet_search = ShapeletGeneticSearch.from_config(config, self.rng)

    def select_model(self, data) -> SplitModel:
        """
        Best split of ``data``, or a :class:`NoSplit` leaf model.

        Parameters
        ----------
        data : Instances
            Slice to split.

        Returns
        -------
        SplitModel
            The winning model with missing-value weight already spread over
            its subsets.
        """
        cfg = self.config
        check = Distribution.from_instances(data)
        no_split = NoSplit(check)
        if sm(check.total, 2 * cfg.min_num_obj) or eq(check.total, check.per_class[check.max_class()]):
            return no_split

        sum_of_weights = data.sum_of_weights()
        best: SplitModel | None = None
        min_result = 0.0

        sequences, series = [], []
        for att, attr in enumerate(data.attributes):
            if attr.kind is AttributeKind.SEQUENCE:
                sequences.append(att)
                continue
            if attr.kind is AttributeKind.TIME_SERIES:
                series.append(att)
                continue
            model = make_ordinary_split(attr, att, cfg.min_num_obj, sum_of_weights,
                                        cfg.use_mdl_correction, cfg.binary_splits).build(data)
            if model.check_model() and gr(model.info_gain, min_result):
                best, min_result = model, model.info_gain

        if best is not None and cfg.use_ig_pruning:
            floor = np.array([info_gain_one_vs_all(best.distribution, best.sum_of_weights, c)
                              for c in range(data.n_classes)], dtype=float)
        else:
            floor = np.zeros(data.n_classes, dtype=float)

        for att in sequences:
            model = SequentialSplit(att, cfg.min_num_obj, sum_of_weights,
                                    prev_found_ig=floor,
                                    item_codes=self.item_codes.get(att),
                                    min_support=cfg.min_support,
                                    max_gap=cfg.max_gap,
                                    max_pattern_length=cfg.max_pattern_length + 1,
                                    pattern_weight=cfg.pattern_weight).build(data)
            if model.check_model() and gr(model.info_gain, min_result):
                best, min_result = model, model.info_gain

        for att in series:
            model = TimeSeriesSplit(att, cfg.min_num_obj, sum_of_weights, cfg.use_mdl_correction,
                                    search=self.shapelet_search).build(data)
            if model.check_model() and gr(model.info_gain, min_result):
                best, min_result = model, model.info_gain

        if best is None or eq(min_result, 0.0):
            return no_split

        best.distribution.add_inst_with_unknown(data, best.att_index)
        if cfg.make_split_point_actual_value and self.all_data is not None:
            best.set_split_point(self.all_data)
        logger.debug("selected split on %s (gain %.5f) over %d instances",
                     data.attributes[best.att_index].name, min_result, len(data))
        return best
