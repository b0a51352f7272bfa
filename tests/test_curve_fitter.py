import math

import pytest

from runeaim.curve_fitter import (
    DEG_72,
    RUNE_OBJECT_POINTS,
    CurveFitter,
    Direction,
    MotionType,
    big_rune_curve,
    small_rune_curve,
)

BIG_TRUE = (0.9, 1.9, 2.09 - 0.9, 0.0, 0.0)


def _feed(fitter, func, n, dt):
    times = [k * dt for k in range(n)]
    for t in times:
        fitter.update(t, func(t))
    return times


def _small(t):
    return 1.045 * t + 0.3


def _big(t):
    return float(big_rune_curve(t, *BIG_TRUE, 1))


def test_constants_from_source():
    assert small_rune_curve(DEG_72, 1.0, 0.0, 0.0, 1) == pytest.approx(0.4 * math.pi)
    assert RUNE_OBJECT_POINTS[0] == (0.0, 0.0, 0.0)
    assert RUNE_OBJECT_POINTS[1] == pytest.approx((0.0, -0.5415, 0.186))
    assert len(RUNE_OBJECT_POINTS) == 5


def test_small_curve_sign_and_value():
    assert small_rune_curve(2.0, 1.0, 0.0, 0.0, 1) == pytest.approx(2.0)
    assert small_rune_curve(2.0, 1.5, 0.5, 0.25, -1) == pytest.approx(
        -small_rune_curve(2.0, 1.5, 0.5, 0.25, 1)
    )


@pytest.mark.parametrize("x", [0.0, 0.7, 2.3])
def test_big_curve_derivative_is_speed(x):
    a, omega, b, c, d = 0.8, 1.9, 1.2, 0.3, 0.1
    h = 1e-6
    slope = (big_rune_curve(x + h, a, omega, b, c, d, 1) - big_rune_curve(x - h, a, omega, b, c, d, 1)) / (2 * h)
    assert slope == pytest.approx(a * math.sin(omega * (x + d)) + b, rel=1e-5)
    assert big_rune_curve(x, a, omega, b, c, d, -1) == pytest.approx(-big_rune_curve(x, a, omega, b, c, d, 1))


def test_too_few_samples_do_not_fit():
    fitter = CurveFitter(MotionType.SMALL, synchronous=True)
    _feed(fitter, _small, CurveFitter.QUEUE_LOWER_LIMIT - 1, 0.01)
    assert not fitter.status_verified()
    assert fitter.direction is Direction.UNKNOWN
    assert len(fitter) == CurveFitter.QUEUE_LOWER_LIMIT - 1


def test_unknown_type_predicts_zero():
    fitter = CurveFitter(synchronous=True)
    assert fitter.predict(1.0) == 0.0
    assert fitter.debug_text() == "Unknown"


def test_small_rune_fit_anticlockwise():
    fitter = CurveFitter(MotionType.SMALL, synchronous=True)
    times = _feed(fitter, _small, 100, 0.01)
    assert fitter.status_verified()
    assert fitter.direction is Direction.ANTI_CLOCKWISE
    for t in (times[-1], times[-1] + 0.2):
        assert fitter.predict(t) == pytest.approx(_small(t), abs=1e-3)
    assert fitter.params[0] == pytest.approx(1.045, abs=1e-3)


def test_small_rune_fit_clockwise():
    fitter = CurveFitter(MotionType.SMALL, synchronous=True)
    times = _feed(fitter, lambda t: -_small(t), 100, 0.01)
    assert fitter.direction is Direction.CLOCKWISE
    assert fitter.predict(times[-1]) == pytest.approx(-_small(times[-1]), abs=1e-3)
    assert fitter.debug_text().startswith("V: -")


def test_big_rune_fit():
    fitter = CurveFitter(MotionType.BIG, synchronous=True)
    times = _feed(fitter, _big, 80, 0.05)
    assert fitter.type is MotionType.BIG
    for t in (times[-1], times[-10]):
        assert fitter.predict(t) == pytest.approx(_big(t), abs=0.02)
    text = fitter.debug_text()
    assert text.startswith("V:  (")
    assert "sin(" in text


def test_auto_type_chooses_small_for_linear_motion():
    fitter = CurveFitter(MotionType.UNKNOWN, auto_type_determined=True, synchronous=True)
    _feed(fitter, _small, 60, 0.02)
    assert fitter.type is MotionType.SMALL
    assert fitter.status_verified()


def test_auto_type_chooses_big_for_varying_speed():
    fitter = CurveFitter(MotionType.UNKNOWN, auto_type_determined=True, synchronous=True)
    times = _feed(fitter, _big, 80, 0.05)
    assert fitter.type is MotionType.BIG
    assert fitter.predict(times[-1]) == pytest.approx(_big(times[-1]), abs=0.05)


def test_set_type_ignored_when_automatic():
    fitter = CurveFitter(MotionType.UNKNOWN, auto_type_determined=True)
    fitter.set_type(MotionType.BIG)
    assert fitter.type is MotionType.UNKNOWN


def test_set_type_resets_parameters():
    fitter = CurveFitter(MotionType.SMALL)
    fitter.set_type(MotionType.BIG)
    assert fitter.type is MotionType.BIG
    assert fitter.params[:2] == (0.9125, 1.942)
    assert fitter.debug_text().startswith("V:  ( 0.91 sin( 1.94 (x - 0.00) )")


def test_static_target():
    fitter = CurveFitter(MotionType.UNKNOWN, auto_type_determined=True, synchronous=True)
    _feed(fitter, lambda t: 1.25, 70, 0.01)
    assert fitter.is_static
    assert fitter.type is MotionType.SMALL
    assert fitter.predict(100.0) == 1.25
    assert fitter.debug_text() == "V: 0.00"
    assert len(fitter) == CurveFitter.QUEUE_LOWER_LIMIT - 1


def test_queue_limit_and_reset_async():
    with CurveFitter(MotionType.SMALL) as fitter:
        _feed(fitter, _small, CurveFitter.QUEUE_UPPER_LIMIT + 20, 0.01)
        assert len(fitter) == CurveFitter.QUEUE_UPPER_LIMIT
        assert fitter.status_verified()
        fitter.reset()
        assert len(fitter) == 0
        assert fitter.type is MotionType.UNKNOWN
        assert fitter.direction is Direction.UNKNOWN
        assert not fitter.status_verified()