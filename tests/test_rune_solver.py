import math

import numpy as np
import pytest

from runeaim.curve_fitter import ARM_LENGTH, DEG_72, CurveFitter, MotionType
from runeaim.rune_solver import (
    GimbalCmd,
    RuneSolver,
    RuneSolverParams,
    RuneTarget,
    TrackerState,
    normalize_angle,
    normalize_angle_positive,
    shortest_angular_distance,
)

CENTER_PX = (320.0, 240.0)
RADIUS_PX = 100.0


def _pose(translation=(6.0, 0.0, 0.0), yaw=0.0):
    t = np.eye(4)
    c, s = math.cos(yaw), math.sin(yaw)
    t[:3, :3] = [[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]]
    t[:3, 3] = translation
    return t


def _target(angle, stamp=0.0, is_lost=False, is_big=False):
    cx, cy = CENTER_PX
    ax = cx + RADIUS_PX * math.cos(angle)
    ay = cy - RADIUS_PX * math.sin(angle)
    pts = [(cx, cy), (ax - 5, ay + 5), (ax - 5, ay - 5), (ax + 5, ay - 5), (ax + 5, ay + 5)]
    return RuneTarget(stamp=stamp, pts=pts, is_lost=is_lost, is_big_rune=is_big)


def _solver(pose=None, **params):
    transform = _pose() if pose is None else pose
    p = RuneSolverParams(**params)
    return RuneSolver(p, lambda _t: transform)


def test_normalize_angle_ranges():
    for a in np.linspace(-20.0, 20.0, 81):
        n = normalize_angle(a)
        pos = normalize_angle_positive(a)
        assert -math.pi < n <= math.pi
        assert 0.0 <= pos < 2 * math.pi
        assert math.cos(n) == pytest.approx(math.cos(a), abs=1e-9)
        assert math.sin(pos) == pytest.approx(math.sin(a), abs=1e-9)


def test_shortest_angular_distance_wraps():
    d = shortest_angular_distance(0.1, 2 * math.pi - 0.1)
    assert d == pytest.approx(-0.2)
    assert abs(shortest_angular_distance(-3.0, 3.0)) < math.pi


def test_normal_angle_right_is_zero():
    solver = _solver()
    assert solver.normal_angle(_target(0.0)) == pytest.approx(0.0, abs=1e-12)


def test_normal_angle_matches_blade_angle():
    solver = _solver()
    for angle in (0.3, 1.5, 2.9, 4.0, 5.5):
        assert solver.normal_angle(_target(angle)) == pytest.approx(angle)


def test_normal_angle_rejects_wrong_point_count():
    solver = _solver()
    with pytest.raises(ValueError):
        solver.normal_angle(RuneTarget(stamp=0.0, pts=[(0, 0), (1, 1)]))


def test_init_lost_target_returns_zero():
    solver = _solver()
    assert solver.init(_target(1.0, is_lost=True)) == 0.0
    assert solver.tracker_state is TrackerState.LOST


def test_init_out_of_range_fails():
    solver = _solver(pose=_pose(translation=(20.0, 0.0, 0.0)))
    assert solver.init(_target(1.0)) == 0.0
    assert solver.tracker_state is TrackerState.LOST


def test_init_without_pose_solver_fails():
    solver = RuneSolver(RuneSolverParams())
    assert solver.init(_target(1.0)) == 0.0
    assert solver.tracker_state is TrackerState.LOST


def test_init_success():
    solver = _solver(pose=_pose(translation=(6.0, 1.0, 0.5), yaw=0.3))
    angle = solver.init(_target(1.2, stamp=10.0))
    assert angle == pytest.approx(1.2)
    assert solver.tracker_state is TrackerState.DETECTING
    np.testing.assert_allclose(solver.center_position(), [6.0, 1.0, 0.5])
    assert solver.ekf_state[3] == pytest.approx(0.3)
    assert solver.current_angle == pytest.approx(1.2)


def test_observed_angle_absorbs_blade_switch():
    solver = _solver()
    start = solver.init(_target(1.0))
    observed = solver.observed_angle(normalize_angle_positive(start + DEG_72 + 0.01))
    assert observed == pytest.approx(start + 0.01)


def test_observed_angle_small_step_is_continuous():
    solver = _solver()
    start = solver.init(_target(0.01))
    observed = solver.observed_angle(normalize_angle_positive(0.01 - 0.05))
    assert observed == pytest.approx(start - 0.05)


def test_target_position_is_on_arm_circle():
    solver = _solver(pose=_pose(translation=(6.0, -1.0, 0.4)))
    solver.init(_target(0.7))
    center = solver.center_position()
    for diff in (0.0, 0.5, 1.3, -2.0):
        pos = solver.target_position(diff)
        assert np.linalg.norm(pos - center) == pytest.approx(ARM_LENGTH)
        assert pos[0] == pytest.approx(center[0], abs=1e-12)


def test_target_position_rotates_with_angle_diff():
    solver = _solver()
    solver.init(_target(0.7))
    a = solver.target_position(0.0)
    b = solver.target_position(0.4)
    c = solver.target_position(0.4 + 2 * math.pi)
    assert not np.allclose(a, b)
    np.testing.assert_allclose(b, c, atol=1e-12)


def test_update_lost_too_long_returns_to_lost():
    solver = _solver(lost_time_thres=0.5)
    solver.init(_target(1.0, stamp=0.0))
    solver.update(_target(1.0, stamp=1.0, is_lost=True))
    assert solver.tracker_state is TrackerState.LOST


def test_update_lost_briefly_keeps_detecting():
    solver = _solver(lost_time_thres=0.5)
    solver.init(_target(1.0, stamp=0.0))
    solver.update(_target(1.0, stamp=0.2, is_lost=True))
    assert solver.tracker_state is TrackerState.DETECTING


def test_update_returns_continuous_angle():
    solver = _solver()
    start = solver.init(_target(0.02, stamp=0.0))
    observed = solver.update(_target(2 * math.pi - 0.02, stamp=0.02))
    assert observed == pytest.approx(start - 0.04)
    assert solver.last_observed_angle == pytest.approx(observed)


def test_predict_target_without_fit_stays_put():
    solver = _solver()
    solver.init(_target(1.0, stamp=5.0))
    angle, pos = solver.predict_target(5.3)
    assert angle == pytest.approx(solver.last_observed_angle)
    np.testing.assert_allclose(pos, solver.target_position(0.0))


def test_tracking_and_prediction_of_small_rune():
    params = RuneSolverParams(auto_type_determined=False)
    fitter = CurveFitter(MotionType.UNKNOWN, False, synchronous=True)
    transform = _pose()
    solver = RuneSolver(params, lambda _t: transform, curve_fitter=fitter)
    speed, dt = 1.045, 0.02
    solver.init(_target(0.5, stamp=0.0))
    for k in range(1, 60):
        solver.update(_target(0.5 + speed * k * dt, stamp=k * dt))
    assert solver.tracker_state is TrackerState.TRACKING
    last_time = 59 * dt
    angle, pos = solver.predict_target(last_time + 0.1)
    assert angle == pytest.approx(solver.last_observed_angle + speed * 0.1, abs=1e-2)
    assert np.linalg.norm(pos - solver.center_position()) == pytest.approx(ARM_LENGTH)
    fitter.close()


def test_solve_gimbal_cmd_fire_advice():
    solver = _solver()
    target = (6.0, 0.0, 0.5)
    first = solver.solve_gimbal_cmd(target, 0.0, 0.0)
    assert isinstance(first, GimbalCmd)
    assert first.yaw == pytest.approx(0.0)
    assert first.distance == pytest.approx(float(np.linalg.norm(target)))
    assert first.pitch > math.degrees(math.atan2(0.5, 6.0))

    aligned = solver.solve_gimbal_cmd(target, 0.0, math.radians(first.pitch))
    assert aligned.pitch_diff == pytest.approx(0.0, abs=1e-9)
    assert aligned.fire_advice is True

    off = solver.solve_gimbal_cmd(target, 0.5, math.radians(first.pitch))
    assert off.yaw_diff == pytest.approx(-math.degrees(0.5))
    assert off.fire_advice is False


def test_unknown_compensator_type_raises():
    with pytest.raises(ValueError):
        RuneSolver(RuneSolverParams(compensator_type="magic"))