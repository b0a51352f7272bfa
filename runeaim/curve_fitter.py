"""Fitting and prediction of a rune's rotation angle over time.

The small rune turns at a constant speed. The big rune's speed follows
``a * sin(omega * t) + b``, so its angle is the integral of that.
"""

from __future__ import annotations

import logging
import math
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Callable

import numpy as np
from scipy.optimize import least_squares

__all__ = [
    "DEG_72",
    "ARMOR_KEYPOINTS_NUM",
    "KEYPOINTS_NUM",
    "ARM_LENGTH",
    "MIN_RUNE_DISTANCE",
    "MAX_RUNE_DISTANCE",
    "RUNE_OBJECT_POINTS",
    "MotionType",
    "Direction",
    "big_rune_curve",
    "small_rune_curve",
    "CurveFitter",
]

_log = logging.getLogger(__name__)

DEG_72 = 0.4 * math.pi
ARMOR_KEYPOINTS_NUM = 4
KEYPOINTS_NUM = 5

# Rune arm length, in metres.
ARM_LENGTH = 0.700

# Acceptable distance between robot and rune, in metres (true value about 6.436 m).
MIN_RUNE_DISTANCE = 4.0
MAX_RUNE_DISTANCE = 9.0

# r_tag, bottom_left, top_left, top_right, bottom_right; in metres.
RUNE_OBJECT_POINTS: tuple[tuple[float, float, float], ...] = tuple(
    (x / 1000, y / 1000, z / 1000)
    for x, y, z in (
        (0.0, 0.0, 0.0),
        (0.0, -541.5, 186.0),
        (0.0, -858.5, 160.0),
        (0.0, -858.5, -160.0),
        (0.0, -541.5, -186.0),
    )
)


class MotionType(Enum):
    """Kind of rune motion."""

    SMALL = "small"
    BIG = "big"
    UNKNOWN = "unknown"


class Direction(IntEnum):
    """Direction of rotation; the value is the sign applied to the curve."""

    CLOCKWISE = -1
    ANTI_CLOCKWISE = 1
    UNKNOWN = 0


def big_rune_curve(x, a, omega, b, c, d, sign):
    """Angle of the big rune: ``(-(a/omega) cos(omega (x+d)) + b (x+d) + c) * sign``."""
    return (-(a / omega * np.cos(omega * (x + d))) + b * (x + d) + c) * sign


def small_rune_curve(x, a, b, c, sign):
    """Angle of the small rune: ``(a (x+b) + c) * sign``."""
    return (a * (x + b) + c) * sign


_Params = tuple[float, float, float, float, float]

_BIG_INIT: _Params = (0.9125, 1.942, 2.090 - 0.9125, 0.0, 0.0)
_SMALL_INIT: _Params = (1.045, 0.0, 0.0, 0.0, 0.0)

_INF = math.inf
_BIG_LOWER = np.array([0.780 * 0.5, 1.884 * 0.5, (2.090 - 1.045) * 0.5, -_INF, -_INF])
_BIG_UPPER = np.array([1.045 * 1.5, 2.000 * 1.5, (2.090 - 0.780) * 1.5, _INF, _INF])
_SMALL_LOWER = np.array([1.045 * 0.5, -_INF, -_INF])
_SMALL_UPPER = np.array([1.045 * 1.5, _INF, _INF])

_CAUCHY_SCALE = 0.5
_STATIC_THRESHOLD = 2 * math.pi / 180


@dataclass(frozen=True)
class _Snapshot:
    times: np.ndarray
    angles: np.ndarray
    sign: int
    motion_type: MotionType
    params: _Params
    is_static: bool


def _solve(
    curve: Callable[..., np.ndarray],
    p0: _Params,
    lower: np.ndarray,
    upper: np.ndarray,
    snap: _Snapshot,
) -> tuple[_Params, float]:
    """Robustly fit the leading parameters of ``p0``; return full parameters and final cost."""
    n = len(lower)
    x0 = np.clip(np.asarray(p0[:n], dtype=float), lower, upper)

    def residuals(p: np.ndarray) -> np.ndarray:
        return snap.angles - curve(snap.times, *p, snap.sign)

    result = least_squares(
        residuals,
        x0,
        bounds=(lower, upper),
        loss="cauchy",
        f_scale=_CAUCHY_SCALE,
        method="trf",
    )
    fitted = tuple(float(v) for v in result.x) + tuple(p0[n:])
    return fitted, float(result.cost)  # type: ignore[return-value]


def _fit_big(p0: _Params, snap: _Snapshot) -> tuple[_Params, float]:
    return _solve(big_rune_curve, p0, _BIG_LOWER, _BIG_UPPER, snap)


def _fit_small(p0: _Params, snap: _Snapshot) -> tuple[_Params, float]:
    return _solve(small_rune_curve, p0, _SMALL_LOWER, _SMALL_UPPER, snap)


class CurveFitter:
    """Collects (time, angle) samples of a rune and fits its motion curve.

    Fitting starts once ``QUEUE_LOWER_LIMIT`` samples are held and runs in a
    background thread unless ``synchronous`` is set. With
    ``auto_type_determined`` both curves are fitted and the cheaper one wins.
    """

    QUEUE_UPPER_LIMIT = 500
    QUEUE_LOWER_LIMIT = 50

    def __init__(
        self,
        motion_type: MotionType = MotionType.UNKNOWN,
        auto_type_determined: bool = False,
        *,
        synchronous: bool = False,
    ) -> None:
        self._type = MotionType(motion_type)
        self.auto_type_determined = bool(auto_type_determined)
        self._synchronous = synchronous
        self._params: _Params = _SMALL_INIT
        self._direction = Direction.UNKNOWN
        self._is_static = False
        self._data: deque[tuple[float, float]] = deque()
        self._future: Future | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._lock = threading.Lock()

    # State -----------------------------------------------------------------

    @property
    def type(self) -> MotionType:
        """The motion type currently assumed."""
        with self._lock:
            return self._type

    @property
    def direction(self) -> Direction:
        """The rotation direction seen in the samples."""
        with self._lock:
            return self._direction

    @property
    def is_static(self) -> bool:
        """Whether the rune barely moved over the held samples."""
        with self._lock:
            return self._is_static

    @property
    def params(self) -> _Params:
        """The fitted curve parameters (a, omega, b, c, d) or (a, b, c, -, -)."""
        with self._lock:
            return self._params

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    # Fitting ---------------------------------------------------------------

    def _snapshot(self) -> _Snapshot:
        with self._lock:
            times = np.fromiter((t for t, _ in self._data), dtype=float, count=len(self._data))
            angles = np.fromiter((a for _, a in self._data), dtype=float, count=len(self._data))
            return _Snapshot(
                times=times,
                angles=angles,
                sign=int(self._direction),
                motion_type=self._type,
                params=self._params,
                is_static=self._is_static,
            )

    def _fit_double_curve(self, snap: _Snapshot) -> None:
        if snap.is_static:
            # A static target is treated as a small rune.
            with self._lock:
                self._type = MotionType.SMALL
            return

        if snap.motion_type is MotionType.BIG:
            small_init, big_init = _SMALL_INIT, snap.params
        elif snap.motion_type is MotionType.SMALL:
            small_init, big_init = snap.params, _BIG_INIT
        else:
            small_init, big_init = _SMALL_INIT, _BIG_INIT

        small_params, small_cost = _fit_small(small_init, snap)
        big_params, big_cost = _fit_big(big_init, snap)

        with self._lock:
            if small_cost < big_cost:
                self._params, self._type = small_params, MotionType.SMALL
            else:
                self._params, self._type = big_params, MotionType.BIG
        _log.debug("double curve fit: small cost %g, big cost %g", small_cost, big_cost)

    def _fit_curve(self, snap: _Snapshot) -> None:
        if snap.is_static:
            return
        if snap.motion_type is MotionType.BIG:
            params, _ = _fit_big(_BIG_INIT, snap)
        elif snap.motion_type is MotionType.SMALL:
            params, _ = _fit_small(_SMALL_INIT, snap)
        else:
            return
        with self._lock:
            self._params = params

    def _start_fitting(self) -> Future:
        job = self._fit_double_curve if self.auto_type_determined else self._fit_curve
        snap = self._snapshot()
        if self._synchronous:
            future: Future = Future()
            job(snap)
            future.set_result(None)
            return future
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="curve-fit")
        return self._executor.submit(job, snap)

    def _wait(self) -> None:
        if self._future is not None:
            wait_futures([self._future])

    # Public interface ------------------------------------------------------

    def update(self, time: float, angle: float) -> None:
        """Add a sample and, once enough are held, start a new fit if none is running."""
        with self._lock:
            self._data.append((float(time), float(angle)))
            if len(self._data) < self.QUEUE_LOWER_LIMIT:
                return
            if len(self._data) > self.QUEUE_UPPER_LIMIT:
                self._data.popleft()

            angle_diff = self._data[-1][1] - self._data[0][1]
            if abs(angle_diff) < _STATIC_THRESHOLD:
                self._is_static = True
                self._data.popleft()
            else:
                self._is_static = False
            self._direction = Direction.CLOCKWISE if angle_diff < 0 else Direction.ANTI_CLOCKWISE

        if self._future is None:
            # The first fit must finish before the first prediction is asked for.
            self._future = self._start_fitting()
            self._future.result()
        elif self._future.done():
            self._future = self._start_fitting()
        else:
            _log.warning("Fitting is in progress, do not start a new fitting")

    def predict(self, time: float) -> float:
        """Predicted angle at ``time``; the last angle if the target is static."""
        with self._lock:
            if self._is_static:
                if not self._data:
                    raise RuntimeError("no samples to predict from")
                return self._data[-1][1]
            sign = int(self._direction)
            p = self._params
            if self._type is MotionType.BIG:
                return float(big_rune_curve(time, p[0], p[1], p[2], p[3], p[4], sign))
            if self._type is MotionType.SMALL:
                return float(small_rune_curve(time, p[0], p[1], p[2], sign))
            return 0.0

    def reset(self) -> None:
        """Wait for any running fit, then forget all samples, the type and direction."""
        self._wait()
        self._future = None
        with self._lock:
            self._type = MotionType.UNKNOWN
            self._direction = Direction.UNKNOWN
            self._data.clear()

    def status_verified(self) -> bool:
        """Whether type and direction are known and a fit has been made."""
        with self._lock:
            return (
                self._type is not MotionType.UNKNOWN
                and self._direction is not Direction.UNKNOWN
                and self._future is not None
            )

    def set_type(self, motion_type: MotionType) -> None:
        """Force the motion type; ignored when the type is determined automatically."""
        motion_type = MotionType(motion_type)
        if self.type is motion_type or self.auto_type_determined:
            return
        self._wait()
        with self._lock:
            self._type = motion_type
            if motion_type is MotionType.BIG:
                self._params = _BIG_INIT
            elif motion_type is MotionType.SMALL:
                self._params = _SMALL_INIT

    def debug_text(self) -> str:
        """A readable form of the fitted speed curve."""
        with self._lock:
            p = self._params
            if self._type is MotionType.BIG:
                a, omega, b, d = p[0], p[1], p[2], p[4]
                return "V: {}( {:.2f} sin( {:.2f} (x {} {:.2f}) ) {} {:.2f} )".format(
                    "-" if self._direction is Direction.CLOCKWISE else " ",
                    a,
                    omega,
                    "+" if d > 0 else "-",
                    abs(d),
                    "+" if b > 0 else "-",
                    abs(b),
                )
            if self._type is MotionType.SMALL:
                v = 0.0 if self._is_static else p[0]
                return "V: {:.2f}".format(int(self._direction) * v)
            return "Unknown"

    def close(self) -> None:
        """Wait for any running fit and stop the background worker."""
        self._wait()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> CurveFitter:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()