import pytest

from runeaim.common import (
    EnemyColor,
    VisionMode,
    enemy_color_to_string,
    vision_mode_to_string,
)


def test_enemy_color_names():
    assert enemy_color_to_string(EnemyColor.RED) == "RED"
    assert enemy_color_to_string(EnemyColor.BLUE) == "BLUE"
    assert enemy_color_to_string(EnemyColor.WHITE) == "WHITE"


def test_enemy_color_from_int():
    assert enemy_color_to_string(1) == "BLUE"


@pytest.mark.parametrize("value", [-1, 3, 99])
def test_enemy_color_unknown(value):
    assert enemy_color_to_string(value) == "UNKNOWN"


@pytest.mark.parametrize("mode", list(VisionMode))
def test_vision_mode_names_match_members(mode):
    assert vision_mode_to_string(mode) == mode.name


def test_vision_mode_from_int():
    assert vision_mode_to_string(2) == "SMALL_RUNE_RED"
    assert vision_mode_to_string(5) == "BIG_RUNE_BLUE"
    assert vision_mode_to_string(0) == "AUTO_AIM_RED"


@pytest.mark.parametrize("value", [-1, 6, 42])
def test_vision_mode_unknown(value):
    assert vision_mode_to_string(value) == "UNKNOWN"