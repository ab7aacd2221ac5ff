import numpy as np
import pytest

from stickerwall.core.selector import WeightedSelector, random_select
from stickerwall.utils.common import InternalSelectionError


class FixedDraw:
    """Random source that always returns the same uniform value."""

    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


def test_even_weights_split_evenly():
    rng = np.random.default_rng(1234)
    selector = WeightedSelector([("a", 1), ("b", 1)])

    draws = [selector.select(rng) for _ in range(10_000)]

    assert abs(draws.count("a") / len(draws) - 0.5) < 0.03
    assert abs(draws.count("b") / len(draws) - 0.5) < 0.03


def test_first_category_whose_cumulative_weight_exceeds_draw_wins():
    selector = WeightedSelector([("a", 1), ("b", 1)])

    assert selector.select(FixedDraw(0.0)) == "a"
    assert selector.select(FixedDraw(0.4999)) == "a"
    # draw == cumulative weight of "a" is not below it
    assert selector.select(FixedDraw(0.5)) == "b"
    assert selector.select(FixedDraw(0.9999)) == "b"


def test_mapping_iteration_order_is_tie_break_order():
    selector = WeightedSelector({"b": 1, "a": 1})

    assert selector.keys == ["b", "a"]
    assert selector.select(FixedDraw(0.0)) == "b"


def test_cumulative_weights_are_precomputed():
    selector = WeightedSelector([(0.5, 1), (1.0, 10), (3.0, 1)])

    assert selector.cumulative == [1.0, 11.0, 12.0]
    assert selector.total == 12.0
    assert len(selector) == 3


def test_medium_category_dominates_default_size_table():
    rng = np.random.default_rng(99)
    selector = WeightedSelector([(0.5, 1), (1.0, 10), (3.0, 1)])

    draws = [selector.select(rng) for _ in range(6_000)]

    assert draws.count(1.0) / len(draws) == pytest.approx(10 / 12, abs=0.03)


def test_zero_weight_category_is_never_selected():
    selector = WeightedSelector([("never", 0), ("always", 1)])

    assert selector.select(FixedDraw(0.0)) == "always"


def test_empty_table_raises_internal_error():
    with pytest.raises(InternalSelectionError):
        WeightedSelector([]).select(FixedDraw(0.5))


def test_all_zero_weights_raise_internal_error():
    with pytest.raises(InternalSelectionError):
        WeightedSelector([("a", 0), ("b", 0)]).select(FixedDraw(0.3))


def test_negative_weight_is_rejected():
    with pytest.raises(InternalSelectionError):
        WeightedSelector([("a", 2), ("b", -1)])


def test_random_select_uses_given_source():
    assert random_select({"x": 3, "y": 1}, FixedDraw(0.8)) == "y"
