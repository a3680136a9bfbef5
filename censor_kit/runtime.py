from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .backends.base import InferenceAdapter
from .decode import BOX_FEATURES, OutputLayout, decode
from .errors import DetectionError, InitError, InvalidImageError, ShapeMismatchError
from .letterbox import letterbox, to_blob
from .metadata import load_labels
from .nms import suppress
from .reproject import reproject_boxes
from .types import Detection

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery, used to resolve relative model paths.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against `root` if provided, else the project root.
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


def load_adapter(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    onnx_providers: Optional[Sequence[str]] = None,
    torch_device: str = "cpu",
    torch_output_shape: Optional[Sequence[Optional[int]]] = None,
) -> InferenceAdapter:
    """
    Open an inference adapter for a model on disk; backend inferred from the extension
    when not given (".onnx" -> onnxruntime, ".pt"/".ts"/".torchscript" -> torchscript).
    """

    resolved = resolve_path(model_path, root=root)
    chosen = backend
    if chosen is None:
        suffix = resolved.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        elif suffix in {".torchscript", ".ts", ".pt"}:
            chosen = "torchscript"
        else:
            raise ValueError(
                f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly."
            )

    chosen = chosen.lower()
    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeAdapter, OnnxRuntimeBackendConfig

        return OnnxRuntimeAdapter(resolved, OnnxRuntimeBackendConfig(providers=onnx_providers))

    if chosen == "torchscript":
        from .backends.torchscript_backend import TorchScriptAdapter, TorchScriptBackendConfig

        return TorchScriptAdapter(
            resolved,
            TorchScriptBackendConfig(device=torch_device, output_shape=torch_output_shape),
        )

    raise ValueError(f"Unsupported backend: {backend!r}")


@dataclass(frozen=True)
class DetectorConfig:
    input_size: Tuple[int, int] = (640, 640)
    fill_color: Tuple[int, int, int] = (0, 0, 0)
    conf_threshold: float = 0.25
    iou_threshold: float = 0.45
    layout: OutputLayout = OutputLayout.AUTO
    # Optional cap on detections kept per image after NMS.
    max_detections: Optional[int] = None

    def __post_init__(self) -> None:
        if len(self.input_size) != 2 or any(int(d) <= 0 for d in self.input_size):
            raise ValueError(f"input_size must be two positive ints, got {self.input_size}")
        if not (0.0 < self.conf_threshold < 1.0):
            raise ValueError("conf_threshold must be within (0, 1)")
        if not (0.0 < self.iou_threshold < 1.0):
            raise ValueError("iou_threshold must be within (0, 1)")
        if self.max_detections is not None and self.max_detections < 1:
            raise ValueError("max_detections must be >= 1 or None")


def _check_output_shape(shape: Optional[Sequence[Optional[int]]], num_classes: int, layout: OutputLayout) -> None:
    if shape is None:
        return
    num_features = BOX_FEATURES + num_classes
    dims = list(shape)
    if len(dims) == 3:
        dims = dims[1:]
    if len(dims) != 2:
        raise ShapeMismatchError(f"Unsupported declared output shape: {tuple(shape)}")

    rows, cols = dims
    if layout == OutputLayout.CHANNELS_FIRST:
        candidates = [rows]
    elif layout == OutputLayout.CHANNELS_LAST:
        candidates = [cols]
    else:
        candidates = [rows, cols]
    if any(d is None for d in candidates):
        return
    if num_features not in candidates:
        raise ShapeMismatchError(
            f"Declared output shape {tuple(shape)} does not fit {num_classes} classes (expected {num_features} features)."
        )


class Detector:
    """
    Letterbox -> inference -> decode -> reproject -> per-class NMS.

    Expects BGR images (OpenCV-style) and returns Detection values in original
    image coordinates. Only one image runs through the adapter at a time.
    """

    def __init__(self, cfg: DetectorConfig = DetectorConfig()):
        self.cfg = cfg
        self._adapter: Optional[InferenceAdapter] = None
        self._labels: List[str] = []
        self._run_lock = threading.Lock()
        self._config_lock = threading.Lock()
        self._conf_threshold = float(cfg.conf_threshold)
        self._iou_threshold = float(cfg.iou_threshold)

    @property
    def is_ready(self) -> bool:
        return self._adapter is not None

    @property
    def labels(self) -> List[str]:
        return list(self._labels)

    @property
    def thresholds(self) -> Tuple[float, float]:
        with self._config_lock:
            return self._conf_threshold, self._iou_threshold

    def initialize(
        self,
        model_path: Optional[PathLike] = None,
        *,
        adapter: Optional[InferenceAdapter] = None,
        labels: Optional[Sequence[str]] = None,
        labels_path: Optional[PathLike] = None,
        backend: Optional[str] = None,
        onnx_providers: Optional[Sequence[str]] = None,
    ) -> "Detector":
        """
        Load the label vocabulary and the model.

        Either `adapter` or `model_path` must be given, and either `labels` or `labels_path`.
        On success the detector owns the adapter and closes it in `release`; on failure
        a passed-in `adapter` is left open.

        Raises:
            InitError: on any load failure or a model/vocabulary mismatch
        """
        opened: Optional[InferenceAdapter] = None
        try:
            if labels is None:
                if labels_path is None:
                    raise ValueError("Either labels or labels_path is required.")
                labels = load_labels(resolve_path(labels_path))
            labels = [str(name) for name in labels]
            if not labels:
                raise ValueError("Label vocabulary is empty.")

            if adapter is None:
                if model_path is None:
                    raise ValueError("Either adapter or model_path is required.")
                adapter = opened = load_adapter(model_path, backend=backend, onnx_providers=onnx_providers)

            _check_output_shape(adapter.output_shape, len(labels), OutputLayout(self.cfg.layout))
            declared_input = adapter.input_size
            if declared_input is not None and tuple(declared_input) != tuple(self.cfg.input_size):
                raise ShapeMismatchError(
                    f"Model expects input {tuple(declared_input)}, detector configured for {tuple(self.cfg.input_size)}."
                )
        except Exception as exc:
            # A caller-supplied adapter stays open; the caller still owns it.
            if opened is not None:
                opened.close()
            raise InitError(f"Failed to initialize detector: {exc}") from exc

        self.release()
        with self._run_lock:
            self._adapter = adapter
            self._labels = list(labels)
        logger.info(
            "Detector initialized (classes=%d, input=%s, output_shape=%s)",
            len(self._labels),
            self.cfg.input_size,
            adapter.output_shape,
        )
        return self

    def update_config(self, confidence: float, iou: float) -> None:
        """Thresholds for subsequent detect calls; an in-flight call keeps its own."""
        if not (0.0 < confidence < 1.0):
            raise ValueError("confidence must be within (0, 1)")
        if not (0.0 < iou < 1.0):
            raise ValueError("iou must be within (0, 1)")
        with self._config_lock:
            self._conf_threshold = float(confidence)
            self._iou_threshold = float(iou)

    def detect(self, image_bgr: np.ndarray) -> List[Detection]:
        """
        Run the full pipeline on one image.

        Raises:
            DetectionError: wrapping InvalidImageError, ShapeMismatchError, InitError
                (not initialized) or an adapter failure; see `DetectionError.fatal`
        """
        try:
            return self._detect(image_bgr)
        except DetectionError:
            raise
        except Exception as exc:
            raise DetectionError(f"Detection failed: {exc}", cause=exc) from exc

    def _detect(self, image_bgr: np.ndarray) -> List[Detection]:
        conf_threshold, iou_threshold = self.thresholds

        if image_bgr is None or not hasattr(image_bgr, "shape") or image_bgr.ndim < 2:
            raise InvalidImageError("image_bgr must be a NumPy array (BGR).")
        orig_h, orig_w = image_bgr.shape[:2]

        with self._run_lock:
            adapter = self._adapter
            if adapter is None:
                raise InitError("Detector is not initialized.")
            labels = self._labels

            canvas, meta = letterbox(image_bgr, new_shape=self.cfg.input_size, color=self.cfg.fill_color)
            raw = adapter.run(to_blob(canvas))
            decoded = decode(
                raw,
                num_classes=len(labels),
                conf_threshold=conf_threshold,
                layout=self.cfg.layout,
                declared_shape=adapter.output_shape,
            )

        boxes = reproject_boxes(decoded.boxes_cxcywh, meta, orig_w, orig_h)
        candidates = [
            Detection(
                x1=float(x1),
                y1=float(y1),
                x2=float(x2),
                y2=float(y2),
                score=float(score),
                class_id=int(cls_id),
                class_name=labels[int(cls_id)] if 0 <= int(cls_id) < len(labels) else "N/A",
            )
            for (x1, y1, x2, y2), score, cls_id in zip(boxes, decoded.scores, decoded.class_ids)
        ]
        detections = suppress(candidates, iou_threshold, max_detections=self.cfg.max_detections)

        if logger.isEnabledFor(logging.DEBUG):
            top = ", ".join(f"{d.class_name}={d.score:.2f}" for d in detections[:5])
            logger.debug(
                "Top detections: %s; candidates=%d after NMS=%d meta=%s",
                top or "-",
                len(candidates),
                len(detections),
                meta,
            )
        return detections

    def release(self) -> None:
        """Close the adapter. Safe to call more than once."""
        with self._run_lock:
            adapter, self._adapter = self._adapter, None
        if adapter is not None:
            adapter.close()
            logger.info("Detector released.")
