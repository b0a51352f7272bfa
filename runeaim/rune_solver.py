"""Tracking and aiming at a rune target from its detected keypoints.

Usage: ``init(target)`` while the tracker is ``LOST``, ``update(target)`` while
``DETECTING`` or ``TRACKING``; then ``predict_target(timestamp)`` gives the point
to aim at, and ``solve_gimbal_cmd(point, ...)`` the gimbal command.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

import numpy as np

from runeaim.curve_fitter import (
    ARM_LENGTH,
    ARMOR_KEYPOINTS_NUM,
    DEG_72,
    KEYPOINTS_NUM,
    MAX_RUNE_DISTANCE,
    MIN_RUNE_DISTANCE,
    CurveFitter,
    MotionType,
)
from runeaim.ekf import ExtendedKalmanFilter
from runeaim.mathutils import EulerOrder, euler_to_matrix
from runeaim.trajectory import create_compensator

__all__ = [
    "TrackerState",
    "RuneSolverParams",
    "RuneTarget",
    "GimbalCmd",
    "PoseSolver",
    "normalize_angle",
    "normalize_angle_positive",
    "shortest_angular_distance",
    "default_ekf",
    "RuneSolver",
]

_log = logging.getLogger(__name__)

_TWO_PI = 2.0 * math.pi
_TARGET_RADIUS = 0.308
_MIN_SHOOTING_RANGE_DEG = 1.0


def normalize_angle_positive(angle: float) -> float:
    """Map ``angle`` into ``[0, 2*pi)``."""
    return math.fmod(math.fmod(angle, _TWO_PI) + _TWO_PI, _TWO_PI)


def normalize_angle(angle: float) -> float:
    """Map ``angle`` into ``(-pi, pi]``."""
    a = normalize_angle_positive(angle)
    if a > math.pi:
        a -= _TWO_PI
    return a


def shortest_angular_distance(start: float, end: float) -> float:
    """Signed smallest rotation taking ``start`` to ``end``."""
    return normalize_angle(end - start)


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


class TrackerState(Enum):
    """State of the rune tracker."""

    LOST = "lost"
    DETECTING = "detecting"
    TRACKING = "tracking"


@dataclass
class RuneSolverParams:
    """Tunable parameters of the solver."""

    compensator_type: str = "ideal"
    gravity: float = 9.8
    bullet_speed: float = 28.0
    angle_offset_thres: float = 0.78
    lost_time_thres: float = 0.5
    auto_type_determined: bool = True


@dataclass
class RuneTarget:
    """A detection: time stamp in seconds and the five image keypoints.

    ``pts`` holds r_center, bottom_left, top_left, top_right, bottom_right.
    """

    stamp: float
    pts: Sequence[tuple[float, float]]
    is_lost: bool = False
    is_big_rune: bool = False


@dataclass
class GimbalCmd:
    """Gimbal command; angles in degrees, distance in metres."""

    yaw: float = 0.0
    pitch: float = 0.0
    yaw_diff: float = 0.0
    pitch_diff: float = 0.0
    distance: float = -1.0
    fire_advice: bool = False


PoseSolver = Callable[[RuneTarget], "np.ndarray"]


def default_ekf(q: Sequence[float] = (0.001,) * 4, r: Sequence[float] = (0.1,) * 4) -> ExtendedKalmanFilter:
    """Constant-state filter over (x, y, z, yaw) of the rune centre."""
    q_mat = np.diag(np.asarray(q, dtype=float))
    r_mat = np.diag(np.asarray(r, dtype=float))
    return ExtendedKalmanFilter(
        f=lambda x: np.array(x, dtype=float),
        h=lambda x: np.array(x, dtype=float),
        j_f=lambda _x: np.eye(4),
        j_h=lambda _x: np.eye(4),
        u_q=lambda: q_mat,
        u_r=lambda _z: r_mat,
        p0=np.eye(4),
    )


def _yaw_of(rotation: np.ndarray) -> float:
    """Yaw of a rotation matrix in roll-pitch-yaw (Z-Y-X) convention."""
    if abs(rotation[2, 0]) >= 1.0:
        return 0.0
    return math.atan2(rotation[1, 0], rotation[0, 0])


def _rot_x(angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])


class RuneSolver:
    """Filters the rune centre, fits its rotation and predicts where to aim.

    ``pose_solver`` maps a detection to the 4x4 transform from the rune frame
    to the odometry frame; it may raise on failure. Without one every pose
    request fails, as when no camera calibration has arrived yet.
    """

    def __init__(
        self,
        params: RuneSolverParams | None = None,
        pose_solver: PoseSolver | None = None,
        *,
        ekf: ExtendedKalmanFilter | None = None,
        curve_fitter: CurveFitter | None = None,
    ) -> None:
        self.params = params if params is not None else RuneSolverParams()
        self.pose_solver = pose_solver
        self.tracker_state = TrackerState.LOST
        self.curve_fitter = curve_fitter if curve_fitter is not None else CurveFitter(MotionType.UNKNOWN)
        self.curve_fitter.auto_type_determined = self.params.auto_type_determined
        self.trajectory_compensator = create_compensator(self.params.compensator_type)
        self.trajectory_compensator.gravity = self.params.gravity
        self.trajectory_compensator.velocity = self.params.bullet_speed
        self.trajectory_compensator.resistance = 0.01
        self.ekf = ekf if ekf is not None else default_ekf()
        self._ekf_state = np.zeros(4)
        self._last_observed_angle = 0.0
        self._last_angle = 0.0
        self._start_time = 0.0
        self._last_time = 0.0

    @property
    def current_angle(self) -> float:
        """The last normalised blade angle."""
        return self._last_angle

    @property
    def last_observed_angle(self) -> float:
        """The last continuous (unwrapped) observed angle."""
        return self._last_observed_angle

    @property
    def ekf_state(self) -> np.ndarray:
        """Filtered (x, y, z, yaw) of the rune centre."""
        return self._ekf_state.copy()

    # Pose ------------------------------------------------------------------

    def _solve_pose(self, target: RuneTarget) -> np.ndarray:
        if self.pose_solver is None:
            raise RuntimeError("PnP failed")
        pose = np.asarray(self.pose_solver(target), dtype=float)
        if pose.shape != (4, 4):
            raise ValueError("pose must be a 4x4 transform")
        return pose

    def _measure(self, target: RuneTarget) -> np.ndarray | None:
        transform = self._solve_pose(target)
        distance = float(np.linalg.norm(transform[:3, 3]))
        if distance < MIN_RUNE_DISTANCE or distance > MAX_RUNE_DISTANCE:
            _log.error("Rune position is out of range")
            return None
        return self._state_from_transform(transform)

    def _state_from_transform(self, transform: np.ndarray) -> np.ndarray:
        yaw = normalize_angle(_yaw_of(transform[:3, :3]))
        # Keep yaw continuous with the filtered value.
        prev = float(self._ekf_state[3])
        yaw = prev + shortest_angular_distance(prev, yaw)
        return np.array([transform[0, 3], transform[1, 3], transform[2, 3], yaw])

    # Tracking --------------------------------------------------------------

    def init(self, target: RuneTarget) -> float:
        """Start tracking from ``target``; return the initial angle, or 0 on failure."""
        if target.is_lost:
            return 0.0
        _log.info("Init!")
        try:
            state = self._measure(target)
        except Exception as exc:  # noqa: BLE001 - any pose failure aborts the init
            _log.error("Init failed: %s", exc)
            return 0.0
        if state is None:
            return 0.0
        self._ekf_state = state
        self.ekf.set_state(state)

        self.tracker_state = TrackerState.DETECTING
        angle = self.normal_angle(target)
        self.curve_fitter.update(0.0, angle)
        self._last_observed_angle = angle
        self._last_angle = angle
        self._start_time = float(target.stamp)
        self._last_time = self._start_time
        return angle

    def update(self, target: RuneTarget) -> float:
        """Feed a new detection; return the continuous observed angle, or 0 on failure."""
        now = float(target.stamp)
        delta_time = now - self._last_time

        self.curve_fitter.set_type(MotionType.BIG if target.is_big_rune else MotionType.SMALL)

        if not target.is_lost:
            try:
                measurement = self._measure(target)
                if measurement is None:
                    return 0.0
                self.ekf.predict()
                self._ekf_state = self.ekf.update(measurement)
            except Exception as exc:  # noqa: BLE001 - any pose failure skips the frame
                _log.error("EKF update failed: %s", exc)
                return 0.0

            normal = self.normal_angle(target)
            observed = self.observed_angle(normal)
            self.curve_fitter.update(now - self._start_time, observed)
            self._last_time = now
            self._last_angle = normal
            self._last_observed_angle = observed

        lost_long = target.is_lost and delta_time > self.params.lost_time_thres
        if self.tracker_state is TrackerState.DETECTING:
            if lost_long:
                self.tracker_state = TrackerState.LOST
                self.curve_fitter.reset()
            elif self.curve_fitter.status_verified():
                self.tracker_state = TrackerState.TRACKING
        elif self.tracker_state is TrackerState.TRACKING:
            if lost_long:
                self.tracker_state = TrackerState.LOST
                self.curve_fitter.reset()
        elif not target.is_lost:
            self.tracker_state = TrackerState.DETECTING
        return self._last_observed_angle

    def predict_target(self, timestamp: float) -> tuple[float, np.ndarray]:
        """Return the predicted continuous angle and the 3-D point to aim at ``timestamp``."""
        t1 = timestamp - self._start_time
        t0 = self._last_time - self._start_time
        diff = self.curve_fitter.predict(t1) - self.curve_fitter.predict(t0)
        return diff + self._last_observed_angle, self.target_position(diff)

    # Aiming ----------------------------------------------------------------

    def solve_gimbal_cmd(self, target, current_yaw: float = 0.0, current_pitch: float = 0.0) -> GimbalCmd:
        """Gimbal command for a 3-D ``target``, given the gimbal's yaw and pitch in radians."""
        point = np.asarray(target, dtype=float).reshape(3)
        yaw = math.atan2(point[1], point[0])
        pitch = math.atan2(point[2], math.hypot(point[0], point[1]))

        comp = self.trajectory_compensator
        comp.velocity = self.params.bullet_speed
        comp.gravity = self.params.gravity
        comp.iteration_times = 30
        compensated = comp.compensate(point)
        if compensated is not None:
            pitch = compensated
        distance = float(np.linalg.norm(point))

        cmd = GimbalCmd(
            yaw=math.degrees(yaw),
            pitch=math.degrees(pitch),
            yaw_diff=math.degrees(yaw - current_yaw),
            pitch_diff=math.degrees(pitch - current_pitch),
            distance=distance,
        )
        shooting_range = abs(math.degrees(math.atan2(_TARGET_RADIUS / 2, distance)))
        shooting_range = max(shooting_range, _MIN_SHOOTING_RANGE_DEG)
        cmd.fire_advice = abs(cmd.yaw_diff) < shooting_range and abs(cmd.pitch_diff) < shooting_range
        if cmd.fire_advice:
            _log.debug("You Can Fire!")
        return cmd

    def center_position(self) -> np.ndarray:
        """3-D position of the R tag."""
        return self._ekf_state[:3].copy()

    def target_position(self, angle_diff: float) -> np.ndarray:
        """3-D position of the armor after it turns further by ``angle_diff``."""
        center = self._ekf_state[:3]
        # PnP orientation is noisy; rebuild it from the filtered yaw and the blade angle.
        rotation = euler_to_matrix((-self._last_angle, 0.0, float(self._ekf_state[3])), EulerOrder.XYZ)
        p_rune = _rot_x(-angle_diff) @ np.array([0.0, -ARM_LENGTH, 0.0])
        return rotation @ p_rune + center

    def normal_angle(self, target: RuneTarget) -> float:
        """Angle in ``[0, 2*pi)`` from the R tag to the armor centre, image y pointing up."""
        pts = list(target.pts)
        if len(pts) != KEYPOINTS_NUM:
            raise ValueError(f"target must have {KEYPOINTS_NUM} keypoints, got {len(pts)}")
        cx, cy = pts[0]
        armor = pts[1:]
        ax = sum(p[0] for p in armor) / ARMOR_KEYPOINTS_NUM
        ay = sum(p[1] for p in armor) / ARMOR_KEYPOINTS_NUM
        return normalize_angle_positive(math.atan2(-(ay - cy), ax - cx))

    def observed_angle(self, normal_angle: float) -> float:
        """Continuous angle for ``normal_angle``, absorbing jumps between blades."""
        diff = shortest_angular_distance(self._last_angle, normal_angle)
        if abs(diff) > self.params.angle_offset_thres:
            diff = normal_angle - self._last_angle
            diff -= _round_half_away(diff / DEG_72) * DEG_72
        return self._last_observed_angle + diff