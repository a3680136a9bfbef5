from typing import Sequence, Tuple

import numpy as np

from .types import TransformMeta


def reproject_boxes(boxes_cxcywh: np.ndarray, meta: TransformMeta, orig_w: float, orig_h: float) -> np.ndarray:
    """
    Map (N, 4) cxcywh boxes from letterboxed model space to (N, 4) xyxy boxes in
    the original image, each corner clamped to [0, orig_w] / [0, orig_h].

    Degenerate boxes produced by clamping are kept.
    """
    boxes = np.asarray(boxes_cxcywh, dtype=np.float64).reshape(-1, 4)

    x = (boxes[:, 0] - meta.pad_x) / meta.scale
    y = (boxes[:, 1] - meta.pad_y) / meta.scale
    bw = boxes[:, 2] / meta.scale
    bh = boxes[:, 3] / meta.scale

    out = np.empty_like(boxes)
    out[:, 0] = np.clip(x - bw / 2, 0.0, orig_w)
    out[:, 1] = np.clip(y - bh / 2, 0.0, orig_h)
    out[:, 2] = np.clip(x + bw / 2, 0.0, orig_w)
    out[:, 3] = np.clip(y + bh / 2, 0.0, orig_h)
    return out


def reproject(
    box_cxcywh: Sequence[float], meta: TransformMeta, orig_w: float, orig_h: float
) -> Tuple[float, float, float, float]:
    x1, y1, x2, y2 = reproject_boxes(np.asarray([box_cxcywh]), meta, orig_w, orig_h)[0]
    return float(x1), float(y1), float(x2), float(y2)


def forward_project(x: float, y: float, meta: TransformMeta) -> Tuple[float, float]:
    """Original image point -> letterboxed model-space point."""
    return x * meta.scale + meta.pad_x, y * meta.scale + meta.pad_y
