"""Rotation helpers: Euler angles, rotation vectors and camera poses."""

from __future__ import annotations

import math
from enum import Enum
from typing import Sequence

import numpy as np

__all__ = [
    "EulerOrder",
    "euler_to_matrix",
    "matrix_to_euler",
    "get_rpy",
    "rodrigues",
    "pose_from_vectors",
    "distance_to_center",
]


class EulerOrder(Enum):
    """Order of elementary rotations."""

    XYZ = "XYZ"
    XZY = "XZY"
    YXZ = "YXZ"
    YZX = "YZX"
    ZXY = "ZXY"
    ZYX = "ZYX"


_AXIS_INDEX = {"X": 0, "Y": 1, "Z": 2}


def _axis_rotation(axis: int, angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    if axis == 0:
        return np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])
    if axis == 1:
        return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def euler_to_matrix(euler: Sequence[float], order: EulerOrder = EulerOrder.XYZ) -> np.ndarray:
    """Build a rotation matrix from (roll, pitch, yaw) about X, Y and Z.

    ``XYZ`` applies roll first, then pitch, then yaw (R = Rz * Ry * Rx).
    """
    r = _axis_rotation(0, float(euler[0]))
    p = _axis_rotation(1, float(euler[1]))
    y = _axis_rotation(2, float(euler[2]))
    products = {
        EulerOrder.XYZ: (y, p, r),
        EulerOrder.XZY: (p, y, r),
        EulerOrder.YXZ: (y, r, p),
        EulerOrder.YZX: (r, y, p),
        EulerOrder.ZXY: (p, r, y),
        EulerOrder.ZYX: (r, p, y),
    }
    a, b, c = products[EulerOrder(order)]
    return a @ b @ c


def _euler_angles(m: np.ndarray, a0: int, a1: int) -> np.ndarray:
    """Angles (t0, t1, t2) with m = R_a0(t0) R_a1(t1) R_a2(t2), t0 in [0, pi]."""
    odd = 0 if (a0 + 1) % 3 == a1 else 1
    i = a0
    j = (a0 + 1 + odd) % 3
    k = (a0 + 2 - odd) % 3

    t0 = math.atan2(m[j, k], m[k, k])
    c2 = math.hypot(m[i, i], m[i, j])
    if (odd and t0 < 0.0) or (not odd and t0 > 0.0):
        t0 = t0 - math.pi if t0 > 0.0 else t0 + math.pi
        t1 = math.atan2(-m[i, k], -c2)
    else:
        t1 = math.atan2(-m[i, k], c2)
    s1, c1 = math.sin(t0), math.cos(t0)
    t2 = math.atan2(s1 * m[k, i] - c1 * m[j, i], c1 * m[j, j] - s1 * m[k, j])
    result = np.array([t0, t1, t2])
    return result if odd else -result


def matrix_to_euler(matrix, order: EulerOrder = EulerOrder.XYZ) -> np.ndarray:
    """Decompose a rotation as successive rotations about the axes named by ``order``.

    The result satisfies ``matrix = R_first(a0) @ R_second(a1) @ R_third(a2)``.
    """
    m = np.asarray(matrix, dtype=float).reshape(3, 3)
    name = EulerOrder(order).value
    return _euler_angles(m, _AXIS_INDEX[name[0]], _AXIS_INDEX[name[1]])


def get_rpy(matrix) -> np.ndarray:
    """Return (roll, pitch, yaw) such that ``matrix = Rx(roll) Ry(pitch) Rz(yaw)``."""
    m = np.asarray(matrix, dtype=float).reshape(3, 3)
    yaw = math.atan2(m[0, 1], m[0, 0])
    c2 = math.hypot(m[2, 2], m[1, 2])
    pitch = math.atan2(-m[0, 2], c2)
    s1, c1 = math.sin(yaw), math.cos(yaw)
    roll = math.atan2(s1 * m[2, 0] - c1 * m[2, 1], c1 * m[1, 1] - s1 * m[1, 0])
    return -np.array([roll, pitch, yaw])


def rodrigues(rvec) -> np.ndarray:
    """Convert a rotation vector (axis times angle) to a rotation matrix."""
    r = np.asarray(rvec, dtype=float).reshape(3)
    theta = float(np.linalg.norm(r))
    if theta < np.finfo(float).eps:
        return np.eye(3)
    kx, ky, kz = r / theta
    k = np.array([[0.0, -kz, ky], [kz, 0.0, -kx], [-ky, kx, 0.0]])
    return np.eye(3) + math.sin(theta) * k + (1.0 - math.cos(theta)) * (k @ k)


def pose_from_vectors(rvec, tvec) -> np.ndarray:
    """Return ``[x, y, z, yaw, pitch, -roll]`` from a rotation and translation vector."""
    rmat = rodrigues(rvec)
    t = np.asarray(tvec, dtype=float).reshape(3)
    yaw = math.asin(float(np.clip(-rmat[2, 0], -1.0, 1.0)))
    pitch = math.atan2(rmat[2, 1], rmat[2, 2])
    roll = math.atan2(rmat[1, 0], rmat[0, 0])
    return np.array([t[0], t[1], t[2], yaw, pitch, -roll])


def distance_to_center(camera_matrix, image_point: Sequence[float]) -> float:
    """Distance in pixels from ``image_point`` to the principal point of the camera."""
    k = np.asarray(camera_matrix, dtype=float).reshape(3, 3)
    cx, cy = k[0, 2], k[1, 2]
    return math.hypot(float(image_point[0]) - cx, float(image_point[1]) - cy)