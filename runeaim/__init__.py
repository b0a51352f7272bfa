"""Detection decoding, rotation fitting, filtering and aiming maths for rotating rune targets."""

__version__ = "0.1.0"

__all__ = [
    "common",
    "mathutils",
    "url_resolver",
    "logger",
    "ekf",
    "trajectory",
    "rune_types",
    "rune_detector",
    "curve_fitter",
    "rune_solver",
]