from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Union

import numpy as np

from .errors import ShapeMismatchError

# cx, cy, w, h, objectness
BOX_FEATURES = 5


class OutputLayout(str, Enum):
    """
    Memory layout of the raw detection tensor (after dropping the batch axis).

    - CHANNELS_FIRST: (5 + C, N), e.g. 85 x 8400
    - CHANNELS_LAST: (N, 5 + C)
    - AUTO: pick the axis whose size is 5 + C (channels-first wins a tie)
    """

    AUTO = "auto"
    CHANNELS_FIRST = "channels_first"
    CHANNELS_LAST = "channels_last"


@dataclass(frozen=True)
class DecodedPredictions:
    """
    Candidates that passed the confidence filter, still in model-input space.
    """

    boxes_cxcywh: np.ndarray
    scores: np.ndarray
    class_ids: np.ndarray

    def __len__(self) -> int:
        return int(self.scores.shape[0])

    @classmethod
    def empty(cls) -> "DecodedPredictions":
        return cls(
            boxes_cxcywh=np.zeros((0, 4), dtype=np.float64),
            scores=np.zeros((0,), dtype=np.float64),
            class_ids=np.zeros((0,), dtype=np.int64),
        )


def _apply_declared_shape(p: np.ndarray, declared_shape: Optional[Sequence[Optional[int]]]) -> np.ndarray:
    if declared_shape is None:
        return p
    dims = tuple(declared_shape)

    if p.ndim == 1 and len(dims) > 1:
        if any(d is None for d in dims):
            raise ShapeMismatchError(f"Cannot reshape flattened output to dynamic shape {dims}.")
        if int(np.prod(dims)) != p.size:
            raise ShapeMismatchError(f"Output has {p.size} values, declared shape {dims} needs {int(np.prod(dims))}.")
        return p.reshape(dims)

    k = min(p.ndim, len(dims))
    for got, want in zip(p.shape[-k:], dims[-k:]):
        if want is not None and int(got) != int(want):
            raise ShapeMismatchError(f"Output shape {p.shape} disagrees with declared shape {dims}.")
    return p


def _to_matrix(p: np.ndarray, num_features: int, layout: OutputLayout) -> np.ndarray:
    """Return the candidates as an (N, 5 + C) matrix."""
    if p.ndim == 3:
        if p.shape[0] != 1:
            raise ShapeMismatchError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
        p = p[0]
    if p.ndim != 2:
        raise ShapeMismatchError(f"Unsupported detection output shape: {p.shape}")

    rows, cols = p.shape
    if layout == OutputLayout.CHANNELS_FIRST:
        if rows != num_features:
            raise ShapeMismatchError(f"Expected {num_features} feature rows (channels-first), got shape {p.shape}.")
        return p.T
    if layout == OutputLayout.CHANNELS_LAST:
        if cols != num_features:
            raise ShapeMismatchError(f"Expected {num_features} feature columns (channels-last), got shape {p.shape}.")
        return p

    if rows == num_features:
        return p.T
    if cols == num_features:
        return p
    raise ShapeMismatchError(f"No axis of output shape {p.shape} matches 5 + num_classes = {num_features}.")


def decode(
    raw: np.ndarray,
    num_classes: int,
    conf_threshold: float,
    *,
    layout: Union[OutputLayout, str] = OutputLayout.AUTO,
    declared_shape: Optional[Sequence[Optional[int]]] = None,
    expected_boxes: Optional[int] = None,
) -> DecodedPredictions:
    """
    Decode a raw `[cx, cy, w, h, obj, class_scores...]` tensor into scored, classed boxes.

    final score per class = objectness * class score; the best class wins (ties go to
    the lowest class index) and candidates below `conf_threshold` are dropped.

    Args:
        raw: output of the inference adapter for a single image
        num_classes: size of the label vocabulary
        conf_threshold: minimum final score to keep (inclusive)
        layout: declared memory layout of `raw`
        declared_shape: adapter's declared output shape; required for flattened buffers
        expected_boxes: if set, the box axis must have exactly this many candidates
    """
    if num_classes < 1:
        raise ValueError("num_classes must be >= 1")

    num_features = BOX_FEATURES + int(num_classes)
    p = np.asarray(raw, dtype=np.float64)
    p = _apply_declared_shape(p, declared_shape)
    m = _to_matrix(p, num_features, OutputLayout(layout))

    if expected_boxes is not None and m.shape[0] != int(expected_boxes):
        raise ShapeMismatchError(f"Expected {expected_boxes} candidate boxes, got {m.shape[0]}.")
    if m.shape[0] == 0:
        return DecodedPredictions.empty()

    boxes = m[:, 0:4]
    objectness = m[:, 4]
    final = m[:, BOX_FEATURES:] * objectness[:, None]

    # argmax returns the first maximum, i.e. the lowest class index on ties.
    class_ids = np.argmax(final, axis=1)
    scores = final[np.arange(final.shape[0]), class_ids]

    keep = np.isfinite(boxes).all(axis=1) & np.isfinite(scores) & (scores >= conf_threshold)
    return DecodedPredictions(
        boxes_cxcywh=boxes[keep].copy(),
        scores=scores[keep],
        class_ids=class_ids[keep].astype(np.int64),
    )
