"""Extended Kalman filter with user-supplied models and Jacobians."""

from __future__ import annotations

from typing import Callable

import numpy as np

__all__ = ["ExtendedKalmanFilter"]

VecVecFunc = Callable[[np.ndarray], np.ndarray]
VecMatFunc = Callable[[np.ndarray], np.ndarray]
VoidMatFunc = Callable[[], np.ndarray]


class ExtendedKalmanFilter:
    """Extended Kalman filter.

    ``f`` and ``h`` are the process and observation functions, ``j_f`` and
    ``j_h`` their Jacobians, ``u_q`` returns the process noise covariance and
    ``u_r`` the measurement noise covariance for a given measurement.
    """

    def __init__(
        self,
        f: VecVecFunc,
        h: VecVecFunc,
        j_f: VecMatFunc,
        j_h: VecMatFunc,
        u_q: VoidMatFunc,
        u_r: VecMatFunc,
        p0,
    ) -> None:
        p = np.array(p0, dtype=float, copy=True)
        if p.ndim != 2 or p.shape[0] != p.shape[1]:
            raise ValueError("initial covariance must be a square matrix")
        self._f = f
        self._h = h
        self._jacobian_f = j_f
        self._jacobian_h = j_h
        self._update_q = u_q
        self._update_r = u_r
        self._n = p.shape[0]
        self._identity = np.eye(self._n)
        self._p_post = p
        self._p_pri: np.ndarray | None = None
        self._x_pri = np.zeros(self._n)
        self._x_post = np.zeros(self._n)

    @property
    def dim(self) -> int:
        """Dimension of the state vector."""
        return self._n

    @property
    def state(self) -> np.ndarray:
        """Current posterior state estimate."""
        return self._x_post.copy()

    @property
    def p_post(self) -> np.ndarray:
        """Current posterior error covariance."""
        return self._p_post.copy()

    def set_state(self, x0) -> None:
        """Set the posterior state."""
        x = np.asarray(x0, dtype=float).reshape(-1)
        if x.shape[0] != self._n:
            raise ValueError(f"state must have {self._n} elements, got {x.shape[0]}")
        self._x_post = x.copy()

    def predict(self) -> np.ndarray:
        """Propagate the state through the process model and return the prior."""
        jac_f = np.asarray(self._jacobian_f(self._x_post), dtype=float)
        q = np.asarray(self._update_q(), dtype=float)

        self._x_pri = np.asarray(self._f(self._x_post), dtype=float).reshape(-1)
        self._p_pri = jac_f @ self._p_post @ jac_f.T + q

        # Without a measurement before the next predict, the prior stands as posterior.
        self._x_post = self._x_pri.copy()
        self._p_post = self._p_pri.copy()
        return self._x_pri.copy()

    def update(self, z) -> np.ndarray:
        """Correct the prior with measurement ``z`` and return the posterior."""
        if self._p_pri is None:
            raise RuntimeError("predict() must be called before update()")
        measurement = np.asarray(z, dtype=float).reshape(-1)
        jac_h = np.asarray(self._jacobian_h(self._x_pri), dtype=float)
        r = np.asarray(self._update_r(measurement), dtype=float)

        innovation_cov = jac_h @ self._p_pri @ jac_h.T + r
        gain = self._p_pri @ jac_h.T @ np.linalg.inv(innovation_cov)
        predicted_z = np.asarray(self._h(self._x_pri), dtype=float).reshape(-1)
        self._x_post = self._x_pri + gain @ (measurement - predicted_z)
        self._p_post = (self._identity - gain @ jac_h) @ self._p_pri
        return self._x_post.copy()