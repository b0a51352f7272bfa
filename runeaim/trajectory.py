"""Ballistic trajectory compensation for projectile aiming."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import NamedTuple, Sequence

__all__ = [
    "TrajectoryCompensator",
    "IdealCompensator",
    "ResistanceCompensator",
    "create_compensator",
]

_MAX_ANGLE = math.pi / 2.5
_HEIGHT_TOLERANCE = 0.01
_TRAJECTORY_STEP = 0.03


@dataclass
class TrajectoryCompensator(ABC):
    """Base for compensators that find the pitch needed to hit a target."""

    velocity: float = 15.0
    iteration_times: int = 20
    gravity: float = 9.8
    resistance: float = 0.01

    def compensate(self, target_position: Sequence[float]) -> float | None:
        """Return the pitch that hits ``target_position``, or ``None`` if none is found."""
        target_height = float(target_position[2])
        distance = math.hypot(float(target_position[0]), float(target_position[1]))
        iterative_height = target_height
        angle = math.atan2(target_height, distance)
        dh = 0.0
        for _ in range(self.iteration_times):
            angle = math.atan2(iterative_height, distance)
            if abs(angle) > _MAX_ANGLE:
                break
            impact_height = self.calculate_trajectory(distance, angle)
            dh = target_height - impact_height
            if abs(dh) < _HEIGHT_TOLERANCE:
                break
            iterative_height += dh
        if abs(dh) > _HEIGHT_TOLERANCE or abs(angle) > _MAX_ANGLE:
            return None
        return angle

    def trajectory(self, distance: float, angle: float) -> list[tuple[float, float]]:
        """Sample (x, height) along the flight path every 3 cm up to ``distance``."""
        points: list[tuple[float, float]] = []
        if distance < 0:
            return points
        x = 0.0
        while x < distance:
            points.append((x, self.calculate_trajectory(x, angle)))
            x += _TRAJECTORY_STEP
        return points

    @abstractmethod
    def flying_time(self, target_position: Sequence[float]) -> float:
        """Time in seconds for the projectile to reach ``target_position``."""

    @abstractmethod
    def calculate_trajectory(self, x: float, angle: float) -> float:
        """Height of the projectile at horizontal distance ``x`` when fired at ``angle``."""


@dataclass
class IdealCompensator(TrajectoryCompensator):
    """Compensator for a projectile without air resistance."""

    def calculate_trajectory(self, x: float, angle: float) -> float:
        t = x / (self.velocity * math.cos(angle))
        return self.velocity * math.sin(angle) * t - 0.5 * self.gravity * t * t

    def flying_time(self, target_position: Sequence[float]) -> float:
        distance = math.hypot(float(target_position[0]), float(target_position[1]))
        angle = math.atan2(float(target_position[2]), distance)
        return distance / (self.velocity * math.cos(angle))


class _State(NamedTuple):
    x: float
    y: float
    vx: float
    vy: float
    t: float


class _Derivative(NamedTuple):
    dx: float
    dy: float
    dvx: float
    dvy: float


_EPSILON = 1e-8
_DRAG_COEFFICIENT = 0.47
_GRAVITY_CONSTANT = 9.81


@dataclass
class ResistanceCompensator(TrajectoryCompensator):
    """Compensator integrating quadratic air drag with fourth-order Runge-Kutta."""

    velocity: float = 23.0
    max_steps: int = 10000
    dt_base: float = 0.001
    hardness: float = 90.0
    air_density: float = 1.225
    diameter: float = 0.0168
    mass: float = 0.0032
    high_precision_mode: bool = True

    def _k_quad(self) -> float:
        return 0.5 * self.air_density * _DRAG_COEFFICIENT * math.pi * (self.diameter / 2) ** 2

    def _derivative(self, s: _State, k_quad: float) -> _Derivative:
        v = max(math.hypot(s.vx, s.vy), 1e-5)
        return _Derivative(
            s.vx,
            s.vy,
            -k_quad * v * s.vx / self.mass,
            -_GRAVITY_CONSTANT - k_quad * v * s.vy / self.mass,
        )

    @staticmethod
    def _apply(s: _State, d: _Derivative, dt: float) -> _State:
        return _State(s.x + d.dx * dt, s.y + d.dy * dt, s.vx + d.dvx * dt, s.vy + d.dvy * dt, s.t + dt)

    def _rk4_step(self, s: _State, dt: float, k_quad: float) -> _State:
        k1 = self._derivative(s, k_quad)
        k2 = self._derivative(self._apply(s, k1, dt / 2), k_quad)
        k3 = self._derivative(self._apply(s, k2, dt / 2), k_quad)
        k4 = self._derivative(self._apply(s, k3, dt), k_quad)
        return _State(
            s.x + dt * (k1.dx + 2 * k2.dx + 2 * k3.dx + k4.dx) / 6,
            s.y + dt * (k1.dy + 2 * k2.dy + 2 * k3.dy + k4.dy) / 6,
            s.vx + dt * (k1.dvx + 2 * k2.dvx + 2 * k3.dvx + k4.dvx) / 6,
            s.vy + dt * (k1.dvy + 2 * k2.dvy + 2 * k3.dvy + k4.dvy) / 6,
            s.t + dt,
        )

    def _integrate(self, angle: float):
        k_quad = self._k_quad()
        dt = self.dt_base
        s = _State(0.0, 0.0, self.velocity * math.cos(angle), self.velocity * math.sin(angle), 0.0)
        for _ in range(self.max_steps):
            s = self._rk4_step(s, dt, k_quad)
            yield s

    def calculate_trajectory(self, x: float, angle: float) -> float:
        if x <= _EPSILON or abs(angle) >= math.pi / 2 - _EPSILON:
            return math.nan
        dt = self.dt_base
        for s in self._integrate(angle):
            if s.x >= x:
                alpha = (x - (s.x - dt * s.vx)) / (s.vx * dt)
                return (
                    (s.y - dt * s.vy)
                    + alpha * dt * s.vy
                    - 0.5 * _GRAVITY_CONSTANT * ((s.t - dt) + alpha * dt) ** 2
                )
        return math.nan

    def flying_time(self, target_position: Sequence[float]) -> float:
        distance = math.hypot(float(target_position[0]), float(target_position[1]))
        if distance <= _EPSILON:
            return math.nan
        angle = math.atan2(float(target_position[2]), distance)
        for s in self._integrate(angle):
            if s.x >= distance:
                return s.t
        return math.nan


def create_compensator(kind: str) -> TrajectoryCompensator:
    """Create a compensator by name: ``"ideal"`` or ``"resistance"``."""
    if kind == "ideal":
        return IdealCompensator()
    if kind == "resistance":
        return ResistanceCompensator()
    raise ValueError(f"unknown compensator type: {kind!r}")