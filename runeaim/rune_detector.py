"""Decoding of the rune keypoint network's output into rune detections."""

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import reduce
from typing import Iterable, NamedTuple, Sequence

import numpy as np

from runeaim.common import EnemyColor
from runeaim.rune_types import Box, FeaturePoints, RuneObject, RuneType

__all__ = [
    "INPUT_W",
    "INPUT_H",
    "DEFAULT_STRIDES",
    "GridAndStride",
    "Letterbox",
    "letterbox_geometry",
    "generate_grids_and_strides",
    "generate_proposals",
    "nms_merge_sorted",
    "decode_output",
]

INPUT_W = 480
INPUT_H = 480
NUM_CLASSES = 2
NUM_COLORS = 2
NUM_POINTS = 5
NUM_POINTS_2 = 2 * NUM_POINTS
MERGE_CONF_ERROR = 0.15
MERGE_MIN_IOU = 0.9
DEFAULT_STRIDES = (8, 16, 32)

# The network was trained with its colour labels swapped.
_DNN_COLOR_TO_ENEMY_COLOR = {0: EnemyColor.BLUE, 1: EnemyColor.RED}

_CONF_COL = NUM_POINTS_2
_COLOR_COLS = slice(NUM_POINTS_2 + 1, NUM_POINTS_2 + 1 + NUM_COLORS)
_CLASS_COLS = slice(NUM_POINTS_2 + 1 + NUM_COLORS, NUM_POINTS_2 + 1 + NUM_COLORS + NUM_CLASSES)
_ROW_WIDTH = NUM_POINTS_2 + 1 + NUM_COLORS + NUM_CLASSES


class GridAndStride(NamedTuple):
    """Grid cell and stride of one anchor."""

    grid0: int
    grid1: int
    stride: int


@dataclass(frozen=True)
class Letterbox:
    """How an image is scaled and padded to the network input size.

    ``transform`` maps points in the padded image back to the source image.
    """

    scale: float
    resize_w: int
    resize_h: int
    top: int
    bottom: int
    left: int
    right: int
    transform: np.ndarray


def _round(value: float) -> int:
    """Round half away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def letterbox_geometry(
    img_w: int, img_h: int, new_shape: Sequence[int] = (INPUT_W, INPUT_H)
) -> Letterbox:
    """Compute the resize, padding and back-projection for a ``img_w`` x ``img_h`` image."""
    if img_w <= 0 or img_h <= 0:
        raise ValueError("image dimensions must be positive")
    new_w, new_h = int(new_shape[0]), int(new_shape[1])
    scale = min(new_h / img_h, new_w / img_w)
    resize_h = _round(img_h * scale)
    resize_w = _round(img_w * scale)

    half_h = (new_h - resize_h) / 2
    half_w = (new_w - resize_w) / 2

    transform = np.array(
        [
            [1.0 / scale, 0.0, -half_w / scale],
            [0.0, 1.0 / scale, -half_h / scale],
            [0.0, 0.0, 1.0],
        ]
    )
    return Letterbox(
        scale=scale,
        resize_w=resize_w,
        resize_h=resize_h,
        top=_round(half_h - 0.1),
        bottom=_round(half_h + 0.1),
        left=_round(half_w - 0.1),
        right=_round(half_w + 0.1),
        transform=transform,
    )


def generate_grids_and_strides(
    target_w: int = INPUT_W, target_h: int = INPUT_H, strides: Iterable[int] = DEFAULT_STRIDES
) -> list[GridAndStride]:
    """List every anchor cell, stride by stride, row by row."""
    return [
        GridAndStride(g0, g1, stride)
        for stride in strides
        for g1 in range(target_h // stride)
        for g0 in range(target_w // stride)
    ]


def _bounding_rect(points: Iterable[tuple[float, float]]) -> Box:
    xs, ys = zip(*points)
    xmin, xmax = math.floor(min(xs)), math.floor(max(xs))
    ymin, ymax = math.floor(min(ys)), math.floor(max(ys))
    return (xmin, ymin, xmax - xmin + 1, ymax - ymin + 1)


def _area(box: Box) -> int:
    return box[2] * box[3]


def _intersection_area(a: Box, b: Box) -> int:
    x1, y1 = max(a[0], b[0]), max(a[1], b[1])
    w = min(a[0] + a[2], b[0] + b[2]) - x1
    h = min(a[1] + a[3], b[1] + b[3]) - y1
    if w <= 0 or h <= 0:
        return 0
    return w * h


def generate_proposals(
    output,
    transform,
    conf_threshold: float,
    grid_strides: Sequence[GridAndStride],
) -> list[RuneObject]:
    """Turn raw anchor rows into detections whose confidence reaches ``conf_threshold``."""
    buffer = np.asarray(output, dtype=float)
    if buffer.ndim != 2 or buffer.shape[1] < _ROW_WIDTH:
        raise ValueError(f"output must be a 2-D array with at least {_ROW_WIDTH} columns")
    if buffer.shape[0] < len(grid_strides):
        raise ValueError("output has fewer rows than there are anchors")
    matrix = np.asarray(transform, dtype=float).reshape(3, 3)

    proposals: list[RuneObject] = []
    for row, (grid0, grid1, stride) in zip(buffer, grid_strides):
        confidence = float(row[_CONF_COL])
        if confidence < conf_threshold:
            continue
        color_id = int(np.argmax(row[_COLOR_COLS]))
        class_id = int(np.argmax(row[_CLASS_COLS]))

        xs = (row[0:NUM_POINTS_2:2] + grid0) * stride
        ys = (row[1:NUM_POINTS_2:2] + grid1) * stride
        apex = matrix @ np.vstack([xs, ys, np.ones(NUM_POINTS)])
        r_center, bottom_left, top_left, top_right, bottom_right = (
            (float(apex[0, k]), float(apex[1, k])) for k in range(NUM_POINTS)
        )
        pts = FeaturePoints(
            r_center=r_center,
            bottom_left=bottom_left,
            top_left=top_left,
            top_right=top_right,
            bottom_right=bottom_right,
        )
        proposals.append(
            RuneObject(
                color=_DNN_COLOR_TO_ENEMY_COLOR[color_id],
                type=RuneType(class_id),
                prob=confidence,
                pts=pts,
                box=_bounding_rect(pts.to_list()),
            )
        )
    return proposals


def nms_merge_sorted(objects: Sequence[RuneObject], nms_threshold: float) -> list[int]:
    """Non-maximum suppression over objects sorted by descending probability.

    Returns the indices kept. A suppressed object that closely matches a kept one
    is recorded among its own ``pts.children`` with that kept object's points.
    """
    areas = [_area(obj.box) for obj in objects]
    indices: list[int] = []
    for i, a in enumerate(objects):
        keep = True
        for j in indices:
            b = objects[j]
            inter = _intersection_area(a.box, b.box)
            union = areas[i] + areas[j] - inter
            iou = inter / union if union else math.nan
            if iou > nms_threshold or math.isnan(iou):
                keep = False
                if (
                    a.type == b.type
                    and a.color == b.color
                    and iou > MERGE_MIN_IOU
                    and abs(a.prob - b.prob) < MERGE_CONF_ERROR
                ):
                    a.pts.children.append(
                        FeaturePoints(
                            r_center=b.pts.r_center,
                            bottom_right=b.pts.bottom_right,
                            top_right=b.pts.top_right,
                            top_left=b.pts.top_left,
                            bottom_left=b.pts.bottom_left,
                        )
                    )
        if keep:
            indices.append(i)
    return indices


def decode_output(
    output,
    transform,
    conf_threshold: float = 0.25,
    top_k: int = 128,
    nms_threshold: float = 0.3,
    grid_strides: Sequence[GridAndStride] | None = None,
) -> list[RuneObject]:
    """Decode a network output into final detections: threshold, top-k, NMS and merging."""
    anchors = generate_grids_and_strides() if grid_strides is None else grid_strides
    candidates = generate_proposals(output, transform, conf_threshold, anchors)
    candidates.sort(key=lambda obj: obj.prob, reverse=True)
    del candidates[max(top_k, 0):]

    results: list[RuneObject] = []
    for index in nms_merge_sorted(candidates, nms_threshold):
        obj = candidates[index]
        if obj.pts.children:
            count = len(obj.pts.children) + 1
            obj.pts = reduce(lambda acc, child: acc + child, obj.pts.children, obj.pts) / count
        results.append(obj)
    return results