"""
Detection runtime for media censoring: letterbox preprocessing, YOLO-style output
decoding, reprojection to image space and per-class NMS.

Core functionality depends only on NumPy and OpenCV; inference runtimes are
loaded by the backend that needs them.
"""

from .types import Detection, TransformMeta
from .errors import CensorKitError, DetectionError, InitError, InvalidImageError, ShapeMismatchError
from .letterbox import letterbox, to_blob
from .decode import DecodedPredictions, OutputLayout, decode
from .reproject import forward_project, reproject, reproject_boxes
from .nms import NMSConfig, iou, nms, suppress
from .metadata import load_class_names, load_labels
from .backends import CallableAdapter, InferenceAdapter
from .runtime import Detector, DetectorConfig, find_project_root, load_adapter, resolve_path

__all__ = [
    "Detection",
    "TransformMeta",
    "CensorKitError",
    "DetectionError",
    "InitError",
    "InvalidImageError",
    "ShapeMismatchError",
    "letterbox",
    "to_blob",
    "DecodedPredictions",
    "OutputLayout",
    "decode",
    "forward_project",
    "reproject",
    "reproject_boxes",
    "NMSConfig",
    "iou",
    "nms",
    "suppress",
    "load_class_names",
    "load_labels",
    "CallableAdapter",
    "InferenceAdapter",
    "Detector",
    "DetectorConfig",
    "find_project_root",
    "load_adapter",
    "resolve_path",
]
