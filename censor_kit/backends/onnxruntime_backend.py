from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence, Tuple, Union

import numpy as np

from .base import Shape, normalize_shape


PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name/output_name: override auto-selected I/O names if needed
    - num_threads: intra-op thread count (0 lets ORT decide)
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None
    num_threads: int = 4


def _pick(kind: str, name: Optional[str], nodes: Sequence[Any]) -> Any:
    if not nodes:
        raise ValueError(f"Model declares no {kind}s.")
    if name is None:
        return nodes[0]
    for node in nodes:
        if node.name == name:
            return node
    raise ValueError(f"{kind.capitalize()} {name!r} not found. Available: {[n.name for n in nodes]}")


class OnnxRuntimeAdapter:
    """
    Adapter over an `onnxruntime.InferenceSession`.

    Input and output shapes come from the model's declared I/O metadata, so a
    static (1, 84, 8400) export is checked against the label vocabulary before
    the first image is processed.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for ONNX models. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.is_file():
            raise FileNotFoundError(f"ONNX model not found: {self.model_path}")

        opts = ort.SessionOptions()
        if cfg.num_threads > 0:
            opts.intra_op_num_threads = int(cfg.num_threads)
        self.session = ort.InferenceSession(
            str(self.model_path),
            sess_options=opts,
            providers=list(cfg.providers) if cfg.providers is not None else None,
        )

        model_input = _pick("input", cfg.input_name, self.session.get_inputs())
        model_output = _pick("output", cfg.output_name, self.session.get_outputs())
        self.input_name = model_input.name
        self.output_name = model_output.name
        self._input_shape = normalize_shape(model_input.shape)
        self._output_shape = normalize_shape(model_output.shape)

    @property
    def output_shape(self) -> Optional[Shape]:
        return self._output_shape

    @property
    def input_size(self) -> Optional[Tuple[int, int]]:
        # NCHW -> (W, H)
        if self._input_shape is None or len(self._input_shape) != 4:
            return None
        h, w = self._input_shape[2:]
        if h is None or w is None:
            return None
        return w, h

    @property
    def providers_in_use(self) -> Sequence[str]:
        return tuple(self.session.get_providers()) if self.session is not None else ()

    @property
    def available_providers(self) -> Sequence[str]:
        return tuple(self._ort.get_available_providers())

    def run(self, blob: np.ndarray) -> np.ndarray:
        if self.session is None:
            raise RuntimeError("ONNX Runtime session has been closed.")
        (out,) = self.session.run([self.output_name], {self.input_name: blob})
        return out

    def close(self) -> None:
        # Dropping the last reference frees the session.
        self.session = None
