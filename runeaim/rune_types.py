"""Keypoints and detection records for rune targets."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

from runeaim.common import EnemyColor

__all__ = ["Point", "Box", "RuneType", "FeaturePoints", "RuneObject"]

Point = tuple[float, float]
Box = tuple[int, int, int, int]

_UNSET: Point = (-1.0, -1.0)
_POINT_NAMES = ("r_center", "bottom_left", "top_left", "top_right", "bottom_right")


class RuneType(IntEnum):
    """Whether a rune blade still has to be hit."""

    INACTIVATED = 0
    ACTIVATED = 1


@dataclass
class FeaturePoints:
    """The R tag centre and the four corners of a rune blade's armor.

    ``children`` holds near-duplicate detections that are averaged into this one.
    """

    r_center: Point = _UNSET
    bottom_right: Point = _UNSET
    top_right: Point = _UNSET
    top_left: Point = _UNSET
    bottom_left: Point = _UNSET
    children: list[FeaturePoints] = field(default_factory=list)

    def reset(self) -> None:
        """Set every point back to ``(-1, -1)``; children are kept."""
        for name in _POINT_NAMES:
            setattr(self, name, _UNSET)

    def __add__(self, other: FeaturePoints) -> FeaturePoints:
        if not isinstance(other, FeaturePoints):
            return NotImplemented
        return FeaturePoints(
            **{
                name: (
                    getattr(self, name)[0] + getattr(other, name)[0],
                    getattr(self, name)[1] + getattr(other, name)[1],
                )
                for name in _POINT_NAMES
            }
        )

    def __truediv__(self, divisor: float) -> FeaturePoints:
        return FeaturePoints(
            **{
                name: (getattr(self, name)[0] / divisor, getattr(self, name)[1] / divisor)
                for name in _POINT_NAMES
            }
        )

    def to_list(self) -> list[Point]:
        """Points in the order r_center, bottom_left, top_left, top_right, bottom_right."""
        return [tuple(getattr(self, name)) for name in _POINT_NAMES]

    def to_int_list(self) -> list[tuple[int, int]]:
        """The points of :meth:`to_list` rounded to integer pixel positions."""
        return [(round(x), round(y)) for x, y in self.to_list()]


@dataclass
class RuneObject:
    """One detected rune blade."""

    color: EnemyColor
    type: RuneType
    prob: float
    pts: FeaturePoints = field(default_factory=FeaturePoints)
    box: Box = (0, 0, 0, 0)