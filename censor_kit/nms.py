from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .types import Detection


@dataclass
class NMSConfig:
    iou_threshold: float = 0.45
    # None keeps every surviving detection.
    max_detections: Optional[int] = None


def iou_one_to_many(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    IoU of one xyxy box against (N, 4) xyxy boxes. Zero-area boxes, disjoint
    pairs and zero unions give 0.
    """
    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    box = np.asarray(box, dtype=np.float64)

    area = max(0.0, box[2] - box[0]) * max(0.0, box[3] - box[1])
    areas = np.maximum(0.0, boxes[:, 2] - boxes[:, 0]) * np.maximum(0.0, boxes[:, 3] - boxes[:, 1])

    w = np.maximum(0.0, np.minimum(box[2], boxes[:, 2]) - np.maximum(box[0], boxes[:, 0]))
    h = np.maximum(0.0, np.minimum(box[3], boxes[:, 3]) - np.maximum(box[1], boxes[:, 1]))
    inter = w * h
    union = area + areas - inter

    out = np.zeros_like(inter)
    np.divide(inter, union, out=out, where=union > 0)
    return out


def iou(a: Sequence[float], b: Sequence[float]) -> float:
    return float(iou_one_to_many(np.asarray(a), np.asarray([b]))[0])


def nms(
    boxes: np.ndarray,
    scores: np.ndarray,
    cfg: NMSConfig,
    class_ids: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Greedy NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of kept boxes in acceptance order (score descending).

    Ties in score keep their input order. With `class_ids`, a box is only
    suppressed by an accepted box of the same class; without, NMS is class-agnostic.
    """
    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    if boxes.shape[0] == 0:
        return np.empty((0,), dtype=np.int64)
    if class_ids is not None:
        class_ids = np.asarray(class_ids).reshape(-1)

    order = np.argsort(-scores, kind="stable")
    keep: List[int] = []

    while order.size > 0:
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break
        i = int(order[0])
        keep.append(i)
        rest = order[1:]

        overlap = iou_one_to_many(boxes[i], boxes[rest])
        suppressed = overlap > cfg.iou_threshold
        if class_ids is not None:
            suppressed &= class_ids[rest] == class_ids[i]
        order = rest[~suppressed]

    return np.array(keep, dtype=np.int64)


def suppress(
    detections: Sequence[Detection],
    iou_threshold: float,
    max_detections: Optional[int] = None,
) -> List[Detection]:
    """Per-class NMS over Detection values; output is in acceptance order."""
    if not detections:
        return []
    boxes = np.array([d.as_xyxy() for d in detections], dtype=np.float64)
    scores = np.array([d.score for d in detections], dtype=np.float64)
    class_ids = np.array([d.class_id for d in detections], dtype=np.int64)
    keep = nms(boxes, scores, NMSConfig(iou_threshold=iou_threshold, max_detections=max_detections), class_ids=class_ids)
    return [detections[int(i)] for i in keep]
