from __future__ import annotations

from typing import Callable, Optional, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np


Shape = Tuple[Optional[int], ...]


@runtime_checkable
class InferenceAdapter(Protocol):
    """
    Contract the detector needs from a model runtime: NCHW float32 blob in,
    raw detection tensor out. Calls are not assumed to be thread-safe.
    """

    @property
    def output_shape(self) -> Optional[Shape]:
        """Declared output shape; `None` entries mark dynamic axes, `None` overall means undeclared."""

    @property
    def input_size(self) -> Optional[Tuple[int, int]]:
        """Static (width, height) expected by the model, if declared."""

    def run(self, blob: np.ndarray) -> np.ndarray: ...

    def close(self) -> None: ...


def normalize_shape(dims: Optional[Sequence[object]]) -> Optional[Shape]:
    """Turn runtime shape metadata (ints, symbolic names, None, -1) into ints/None."""
    if dims is None:
        return None
    out = []
    for d in dims:
        if isinstance(d, (int, np.integer)) and not isinstance(d, bool) and int(d) > 0:
            out.append(int(d))
        else:
            out.append(None)
    return tuple(out)


class CallableAdapter:
    """
    Adapter around a plain `fn(blob) -> ndarray`, e.g. a custom runtime or a test double.
    """

    def __init__(
        self,
        fn: Callable[[np.ndarray], np.ndarray],
        output_shape: Optional[Sequence[Optional[int]]] = None,
        input_size: Optional[Tuple[int, int]] = None,
    ) -> None:
        self._fn: Optional[Callable[[np.ndarray], np.ndarray]] = fn
        self._output_shape = normalize_shape(output_shape)
        self._input_size = input_size

    @property
    def output_shape(self) -> Optional[Shape]:
        return self._output_shape

    @property
    def input_size(self) -> Optional[Tuple[int, int]]:
        return self._input_size

    @property
    def closed(self) -> bool:
        return self._fn is None

    def run(self, blob: np.ndarray) -> np.ndarray:
        if self._fn is None:
            raise RuntimeError("Adapter has been closed.")
        return np.asarray(self._fn(blob))

    def close(self) -> None:
        self._fn = None
