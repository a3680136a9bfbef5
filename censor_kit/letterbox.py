import math
from typing import Tuple

import numpy as np

from .errors import InvalidImageError
from .types import TransformMeta


def _as_bgr(image: np.ndarray, cv2) -> np.ndarray:
    if image is None or not hasattr(image, "shape"):
        raise InvalidImageError("image must be a NumPy array (BGR).")
    if image.ndim not in (2, 3):
        raise InvalidImageError(f"Expected image shape (H, W) or (H, W, C), got {image.shape}")

    h, w = image.shape[:2]
    if h <= 0 or w <= 0:
        raise InvalidImageError(f"Image width and height must be > 0, got {w}x{h}")

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    channels = image.shape[2]
    if channels == 3:
        return image
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    if channels == 1:
        return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2BGR)
    raise InvalidImageError(f"Unsupported channel count: {channels}")


def letterbox(
    image: np.ndarray,
    new_shape: Tuple[int, int] = (640, 640),
    color: Tuple[int, int, int] = (0, 0, 0),
) -> Tuple[np.ndarray, TransformMeta]:
    """
    Resize (aspect preserved, bilinear) and pad an image to exactly `new_shape`.

    Args:
        image: BGR (H, W, 3), grayscale (H, W) or BGRA (H, W, 4) array
        new_shape: target (width, height)
        color: fill color for the padding

    Returns:
        canvas: (target_h, target_w, 3) image
        meta: TransformMeta with scale and centered padding (floats, left/top)
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e

    if isinstance(new_shape, int):
        new_shape = (new_shape, new_shape)
    target_w, target_h = int(new_shape[0]), int(new_shape[1])
    if target_w <= 0 or target_h <= 0:
        raise ValueError(f"Target size must be positive, got {new_shape}")

    image = _as_bgr(image, cv2)
    h, w = image.shape[:2]

    scale = min(target_w / w, target_h / h)
    # w * (target_w / w) can land just under target_w in floating point.
    resized_w = min(target_w, max(1, int(math.floor(w * scale + 1e-6))))
    resized_h = min(target_h, max(1, int(math.floor(h * scale + 1e-6))))

    pad_x = (target_w - resized_w) / 2
    pad_y = (target_h - resized_h) / 2

    if (w, h) != (resized_w, resized_h):
        image = cv2.resize(image, (resized_w, resized_h), interpolation=cv2.INTER_LINEAR)

    # Odd padding puts the extra pixel on the right/bottom.
    left, top = int(math.floor(pad_x)), int(math.floor(pad_y))
    right, bottom = target_w - resized_w - left, target_h - resized_h - top
    canvas = cv2.copyMakeBorder(image, top, bottom, left, right, cv2.BORDER_CONSTANT, value=color)

    return canvas, TransformMeta(scale=scale, pad_x=pad_x, pad_y=pad_y, new_w=resized_w, new_h=resized_h)


def to_blob(canvas: np.ndarray) -> np.ndarray:
    """BGR canvas -> RGB float32 in [0, 1], NCHW with a batch axis of 1."""
    blob = canvas[:, :, ::-1].astype(np.float32) / 255.0
    return np.ascontiguousarray(np.transpose(blob, (2, 0, 1))[None, ...])
