from __future__ import annotations

from enum import Enum
from typing import Iterable

from censor_kit.types import Detection

from .config import CensorConfig


class ItemStatus(str, Enum):
    CENSORED = "censored"
    VERIFIED = "verified"
    FAILED = "failed"


def should_censor(detections: Iterable[Detection], confidence_threshold: float, censored_classes: Iterable[str]) -> bool:
    """
    True iff some detection scores at least `confidence_threshold` and its class
    name (case-insensitive) is in `censored_classes`.

    Detections are taken as they are; they are not re-filtered or re-suppressed.
    """
    wanted = {str(name).lower() for name in censored_classes}
    if not wanted:
        return False
    return any(d.score >= confidence_threshold and d.class_name.lower() in wanted for d in detections)


def classify(detections: Iterable[Detection], config: CensorConfig) -> ItemStatus:
    if should_censor(detections, config.confidence_threshold, config.censored_classes):
        return ItemStatus.CENSORED
    return ItemStatus.VERIFIED
