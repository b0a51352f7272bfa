"""Team colours and vision modes shared across the aiming pipeline."""

from __future__ import annotations

from enum import IntEnum

__all__ = ["EnemyColor", "VisionMode", "enemy_color_to_string", "vision_mode_to_string"]


class EnemyColor(IntEnum):
    """Colour of the opposing team's targets."""

    RED = 0
    BLUE = 1
    WHITE = 2


class VisionMode(IntEnum):
    """Operating mode requested from the vision system."""

    AUTO_AIM_RED = 0
    AUTO_AIM_BLUE = 1
    SMALL_RUNE_RED = 2
    SMALL_RUNE_BLUE = 3
    BIG_RUNE_RED = 4
    BIG_RUNE_BLUE = 5


def enemy_color_to_string(color: EnemyColor | int) -> str:
    """Return the colour name, or ``"UNKNOWN"`` for a value outside the enum."""
    try:
        return EnemyColor(color).name
    except ValueError:
        return "UNKNOWN"


def vision_mode_to_string(mode: VisionMode | int) -> str:
    """Return the mode name, or ``"UNKNOWN"`` for a value outside the enum."""
    try:
        return VisionMode(mode).name
    except ValueError:
        return "UNKNOWN"