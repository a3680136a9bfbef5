"""
Inference adapters for censor_kit.

Runtime-specific adapters (ONNX Runtime, TorchScript) import their runtime lazily
so pre/post-processing can be used without installing an inference engine.
"""

from __future__ import annotations

from .base import CallableAdapter, InferenceAdapter

__all__ = ["CallableAdapter", "InferenceAdapter"]
