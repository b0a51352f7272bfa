import pytest

from runeaim.common import EnemyColor
from runeaim.rune_types import FeaturePoints, RuneObject, RuneType


def _sample():
    return FeaturePoints(
        r_center=(1.0, 2.0),
        bottom_right=(3.0, 4.0),
        top_right=(5.0, 6.0),
        top_left=(7.0, 8.0),
        bottom_left=(9.0, 10.0),
    )


def test_rune_objects_sort_by_type():
    objs = [
        RuneObject(color=EnemyColor.BLUE, type=RuneType(1), prob=0.9),
        RuneObject(color=EnemyColor.BLUE, type=RuneType(0), prob=0.5),
        RuneObject(color=EnemyColor.BLUE, type=RuneType(1), prob=0.7),
    ]
    ordered = sorted(objs, key=lambda o: o.type)
    assert [o.type for o in ordered] == [
        RuneType.INACTIVATED,
        RuneType.ACTIVATED,
        RuneType.ACTIVATED,
    ]
    assert ordered[0].prob == 0.5


def test_default_points_are_unset():
    pts = FeaturePoints()
    assert pts.to_list() == [(-1.0, -1.0)] * 5
    assert pts.children == []


def test_to_list_order():
    pts = _sample()
    assert pts.to_list() == [pts.r_center, pts.bottom_left, pts.top_left, pts.top_right, pts.bottom_right]


def test_to_int_list_rounds():
    pts = FeaturePoints(
        r_center=(1.4, 2.6),
        bottom_right=(3.0, 4.0),
        top_right=(5.0, 6.0),
        top_left=(7.0, 8.0),
        bottom_left=(9.0, 10.0),
    )
    ints = pts.to_int_list()
    assert ints[0] == (1, 3)
    assert ints[1:] == [(9, 10), (7, 8), (5, 6), (3, 4)]
    assert all(isinstance(v, int) for p in ints for v in p)


def test_add_then_divide_round_trip():
    pts = _sample()
    averaged = (pts + pts) / 2
    assert averaged.to_list() == pytest.approx(pts.to_list())


def test_add_is_componentwise():
    a = _sample()
    b = FeaturePoints()
    total = a + b
    for (sx, sy), (ax, ay) in zip(total.to_list(), a.to_list()):
        assert sx == pytest.approx(ax - 1.0)
        assert sy == pytest.approx(ay - 1.0)


def test_operations_do_not_carry_children():
    a = _sample()
    a.children.append(_sample())
    assert (a + a).children == []
    assert (a / 3).children == []


def test_reset_restores_defaults_and_keeps_children():
    pts = _sample()
    child = _sample()
    pts.children.append(child)
    pts.reset()
    assert pts.to_list() == FeaturePoints().to_list()
    assert pts.children == [child]


def test_rune_object_defaults():
    obj = RuneObject(color=EnemyColor.RED, type=RuneType.ACTIVATED, prob=0.7)
    assert obj.pts == FeaturePoints()
    assert obj.box == (0, 0, 0, 0)
    assert obj.color is EnemyColor.RED