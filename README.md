# runeaim

Maths for aiming at a rotating rune target: decoding the raw output of a
keypoint detection network into rune detections, fitting the rune's
rotation curve, filtering the position of its centre, and working out
gimbal angles with ballistic compensation.

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `runeaim.common`: `EnemyColor`, `VisionMode`, and `enemy_color_to_string` /
  `vision_mode_to_string`, which return the member name or `"UNKNOWN"`.
- `runeaim.mathutils`: `euler_to_matrix` and `matrix_to_euler` (axis order
  chosen with `EulerOrder`), `get_rpy`, `rodrigues` (rotation vector to
  matrix), `pose_from_vectors` (returns `[x, y, z, yaw, pitch, -roll]`) and
  `distance_to_center` (pixel distance to a camera's principal point).
- `runeaim.url_resolver`: `resolve_url` substitutes `${ROS_HOME}` (from
  `ROS_HOME`, else `$HOME/.ros`); `parse_url` classifies a URL as a `UrlType`;
  `get_resolved_path` turns `file:///...` and `package://name/...` into a
  `Path`, or returns `None` for an empty or invalid URL. Package share
  directories are looked up through `AMENT_PREFIX_PATH` unless a
  `share_lookup` callable is given; an unknown package raises
  `PackageNotFoundError`.
- `runeaim.logger`: `Logger` writes records at or above its level to a
  Markdown file (`<name>.log.md`, optionally in a dated directory and with a
  dated suffix, chosen with `LogOption`) and echoes every record to the
  console in colour. `LoggerPool`, `register_logger` and `get_logger` keep
  loggers by name; `get_logger` raises `LoggerNotFoundError` for an unknown
  name. `Writer` is the underlying appending file writer; it raises
  `WriteError` when the file cannot be written.
- `runeaim.ekf`: `ExtendedKalmanFilter`, built from process and observation
  functions, their Jacobians, noise covariance callables and an initial
  covariance; `set_state`, `predict` and `update`.
- `runeaim.trajectory`: `IdealCompensator` (no drag) and
  `ResistanceCompensator` (quadratic drag, Runge-Kutta integration), created
  with `create_compensator("ideal")` or `create_compensator("resistance")`.
  `compensate` returns a pitch in radians or `None`; `flying_time`,
  `calculate_trajectory` and `trajectory` (sampled every 3 cm) describe the
  flight.
- `runeaim.rune_types`: `RuneType`, `FeaturePoints` (R tag centre and four
  armor corners) and `RuneObject`.
- `runeaim.rune_detector`: `letterbox_geometry` (resize, padding and the
  matrix mapping network-input points back to the image),
  `generate_grids_and_strides`, `generate_proposals`, `nms_merge_sorted`
  and `decode_output`, which applies the confidence threshold, top-k,
  non-maximum suppression and the averaging of near-duplicate detections.
  The output array has one row per anchor (4725 rows for the default
  480x480 input and strides 8, 16, 32) and 15 columns: five keypoints,
  confidence, two colour scores, two class scores.
- `runeaim.curve_fitter`: `CurveFitter` collects (time, angle) samples and,
  from 50 samples on, fits either the small-rune linear curve or the
  big-rune sinusoidal-speed curve (`big_rune_curve`, `small_rune_curve`),
  in a background thread unless created with `synchronous=True`. With
  `auto_type_determined` both are fitted and the cheaper one is kept.
  `predict`, `status_verified`, `set_type`, `reset`, `debug_text`; `close()`
  or a `with` block stops the worker thread. The module also holds the
  rune's geometry constants (`ARM_LENGTH`, `RUNE_OBJECT_POINTS`, ...).
- `runeaim.rune_solver`: `RuneSolver` tracks a target through the
  `TrackerState`s `LOST`, `DETECTING` and `TRACKING`. Call `init(target)`
  while lost and `update(target)` otherwise, with `RuneTarget`s;
  `predict_target(timestamp)` returns the predicted angle and 3-D aim point,
  and `solve_gimbal_cmd(point, current_yaw, current_pitch)` returns a
  `GimbalCmd` in degrees with a fire advice. Angle helpers:
  `normalize_angle`, `normalize_angle_positive`, `shortest_angular_distance`.

## Examples

```python
import numpy as np
from runeaim.trajectory import create_compensator

compensator = create_compensator("ideal")
compensator.velocity = 28.0
target = np.array([6.0, 0.0, 1.0])
print(compensator.compensate(target), compensator.flying_time(target))
```

```python
from runeaim.curve_fitter import CurveFitter, MotionType

with CurveFitter(MotionType.SMALL) as fitter:
    for i in range(60):
        fitter.update(i * 0.01, 1.045 * i * 0.01)
    print(fitter.status_verified(), fitter.predict(1.0), fitter.debug_text())
```

```python
from runeaim.rune_detector import decode_output, letterbox_geometry

box = letterbox_geometry(1280, 1024)
detections = decode_output(network_output, box.transform, conf_threshold=0.5)
```

## What the package does not do

- It runs no neural network and touches no pixels: `letterbox_geometry`
  only computes the resize and padding, and `decode_output` expects an
  output array you obtained elsewhere. There is no image-based R tag
  search.
- It solves no perspective-n-point problem and knows no coordinate-frame
  tree. `RuneSolver` takes a `pose_solver` callable that returns the 4x4
  transform from the rune frame to the odometry frame; without one, every
  pose request fails and `init` / `update` return 0. The gimbal's current
  yaw and pitch are passed to `solve_gimbal_cmd` by the caller.
- It has no command, no message transport and no running service: it is a
  library to be called from your own loop.