from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence, Tuple, Union

import numpy as np

from .base import Shape, normalize_shape


PathLike = Union[str, Path]


@dataclass(frozen=True)
class TorchScriptBackendConfig:
    """
    TorchScript settings. The runtime exposes no output metadata, so a model
    whose layout should be checked at initialize time needs `output_shape`
    (e.g. (1, 84, 8400)); leaving it None defers the check to the first call.
    """

    device: str = "cpu"
    half: bool = False
    # Position of the detection tensor when the model returns several outputs.
    output_index: int = 0
    output_shape: Optional[Sequence[Optional[int]]] = None


class TorchScriptAdapter:
    """Runs an exported `torch.jit` module (Ultralytics `format=torchscript`)."""

    def __init__(self, model_path: PathLike, cfg: TorchScriptBackendConfig = TorchScriptBackendConfig()):
        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("torch is required for TorchScript models. Install with `pip install torch`.") from e

        self._torch = torch
        self.model_path = Path(model_path)
        if not self.model_path.is_file():
            raise FileNotFoundError(f"TorchScript model not found: {self.model_path}")

        self.cfg = cfg
        self.device = torch.device(cfg.device)
        self._dtype = torch.float16 if cfg.half else torch.float32
        self._output_shape = normalize_shape(cfg.output_shape)

        self.model = torch.jit.load(str(self.model_path), map_location=self.device).eval()

    @property
    def output_shape(self) -> Optional[Shape]:
        return self._output_shape

    @property
    def input_size(self) -> Optional[Tuple[int, int]]:
        return None

    def _select_output(self, y: Any) -> Any:
        if isinstance(y, dict):
            y = list(y.values())
        if isinstance(y, (tuple, list)):
            if not 0 <= self.cfg.output_index < len(y):
                raise RuntimeError(f"Model returned {len(y)} outputs; output_index={self.cfg.output_index}")
            y = y[self.cfg.output_index]
        return y

    def run(self, blob: np.ndarray) -> np.ndarray:
        if self.model is None:
            raise RuntimeError("TorchScript model has been released.")
        torch = self._torch
        x = torch.from_numpy(np.ascontiguousarray(blob)).to(self.device, dtype=self._dtype)
        with torch.inference_mode():
            y = self._select_output(self.model(x))
        # float16 outputs are widened before leaving the device.
        return y.detach().float().cpu().numpy()

    def close(self) -> None:
        self.model = None
