"""
Gallery censoring layer built on top of `censor_kit`.

The detection runtime stays inside `censor_kit`; this package holds
- the censor configuration and its snapshot channel
- the classification policy (censored / verified / failed)
- the per-item detection cache and its re-evaluation on config changes
- batch orchestration over media items, reporting and the CLI runner
"""

from __future__ import annotations

from .cache import DetectionCache
from .config import (
    DEFAULT_CENSORED_CLASSES,
    DEFAULT_CONFIDENCE,
    DEFAULT_IOU,
    CensorConfig,
    ConfigChannel,
    load_censor_config,
)
from .media import IMAGE_EXTENSIONS, MediaItem, load_image, scan_media_dir
from .policy import ItemStatus, classify, should_censor
from .reporting import RunSummary, summarize, write_results_csv, write_results_json
from .service import CensorService, ItemResult, ReclassifyResult, ReclassifyWorker, reclassify_cache

__all__ = [
    "DetectionCache",
    "DEFAULT_CENSORED_CLASSES",
    "DEFAULT_CONFIDENCE",
    "DEFAULT_IOU",
    "CensorConfig",
    "ConfigChannel",
    "load_censor_config",
    "IMAGE_EXTENSIONS",
    "MediaItem",
    "load_image",
    "scan_media_dir",
    "ItemStatus",
    "classify",
    "should_censor",
    "RunSummary",
    "summarize",
    "write_results_csv",
    "write_results_json",
    "CensorService",
    "ItemResult",
    "ReclassifyResult",
    "ReclassifyWorker",
    "reclassify_cache",
]
