from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.25
DEFAULT_IOU = 0.45
DEFAULT_CENSORED_CLASSES = frozenset({"person", "car", "bicycle", "motorcycle", "bus", "train", "truck"})


def _normalize_classes(classes: Iterable[str]) -> FrozenSet[str]:
    if isinstance(classes, str):
        raise ValueError("censored_classes must be a collection of strings, not a string")
    out = set()
    for name in classes:
        if not isinstance(name, str):
            raise ValueError("censored_classes must contain strings only")
        cleaned = name.strip().lower()
        if cleaned:
            out.add(cleaned)
    return frozenset(out)


@dataclass(frozen=True)
class CensorConfig:
    """
    Immutable snapshot of the censoring policy.

    The IoU threshold only matters when detections are produced; the policy
    decision uses the confidence threshold and the censored class set.
    """

    confidence_threshold: float = DEFAULT_CONFIDENCE
    iou_threshold: float = DEFAULT_IOU
    censored_classes: FrozenSet[str] = field(default=DEFAULT_CENSORED_CLASSES)

    def __post_init__(self) -> None:
        if not (0.0 < self.confidence_threshold < 1.0):
            raise ValueError("confidence_threshold must be within (0, 1)")
        if not (0.0 < self.iou_threshold < 1.0):
            raise ValueError("iou_threshold must be within (0, 1)")
        object.__setattr__(self, "censored_classes", _normalize_classes(self.censored_classes))

    def replace(self, **changes: Any) -> "CensorConfig":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": 1,
            "confidence_threshold": self.confidence_threshold,
            "iou_threshold": self.iou_threshold,
            "censored_classes": sorted(self.censored_classes),
        }


def _optional_number(payload: Dict[str, Any], key: str, default: float) -> float:
    if key not in payload:
        return default
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def load_censor_config(path: Path) -> CensorConfig:
    if not path.exists():
        raise FileNotFoundError(f"Censor config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid censor config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Censor config must be a JSON object")

    allowed = {"schema_version", "confidence_threshold", "iou_threshold", "censored_classes"}
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown censor config keys: {unknown}")

    schema_version = payload.get("schema_version", 1)
    if isinstance(schema_version, bool) or schema_version != 1:
        raise ValueError("censor config schema_version must be 1")

    classes = payload.get("censored_classes", sorted(DEFAULT_CENSORED_CLASSES))
    if not isinstance(classes, list) or not all(isinstance(c, str) for c in classes):
        raise ValueError("censored_classes must be a list of strings")

    return CensorConfig(
        confidence_threshold=_optional_number(payload, "confidence_threshold", DEFAULT_CONFIDENCE),
        iou_threshold=_optional_number(payload, "iou_threshold", DEFAULT_IOU),
        censored_classes=frozenset(classes),
    )


Subscriber = Callable[[CensorConfig], None]


class ConfigChannel:
    """
    Publish/subscribe channel of CensorConfig snapshots.

    Subscribers are called on the publishing thread, outside the channel lock,
    in subscription order. Deliveries never interleave, and every subscriber
    ends up having seen the latest snapshot last; intermediate snapshots may be
    skipped when publishes race.
    """

    def __init__(self, initial: Optional[CensorConfig] = None) -> None:
        self._lock = threading.Lock()
        # Reentrant so a subscriber may publish from its callback.
        self._delivery_lock = threading.RLock()
        self._current = initial if initial is not None else CensorConfig()
        self._version = 0
        self._subscribers: List[Subscriber] = []

    @property
    def current(self) -> CensorConfig:
        with self._lock:
            return self._current

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def subscribe(self, callback: Subscriber, *, replay: bool = False) -> Callable[[], None]:
        """Register `callback`; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)
            current = self._current

        if replay:
            callback(current)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def _is_latest(self, version: int) -> bool:
        with self._lock:
            return version == self._version

    def publish(self, config: CensorConfig) -> None:
        with self._lock:
            if config == self._current:
                return
            self._current = config
            self._version += 1
            version = self._version

        # Deliveries are serialized; a snapshot superseded before or during its
        # delivery stops there and the newer publish delivers instead.
        with self._delivery_lock:
            with self._lock:
                subscribers = list(self._subscribers)
            logger.debug("Config published (v%d): %s", version, config)
            for callback in subscribers:
                if not self._is_latest(version):
                    logger.debug("Config v%d superseded during delivery", version)
                    return
                try:
                    callback(config)
                except Exception:
                    logger.exception("Config subscriber %r failed", callback)

    def _update(self, **changes: Any) -> CensorConfig:
        updated = self.current.replace(**changes)
        self.publish(updated)
        return updated

    def set_confidence_threshold(self, value: float) -> CensorConfig:
        return self._update(confidence_threshold=float(value))

    def set_iou_threshold(self, value: float) -> CensorConfig:
        return self._update(iou_threshold=float(value))

    def set_censored_classes(self, classes: Iterable[str]) -> CensorConfig:
        return self._update(censored_classes=frozenset(classes))

    def toggle_class(self, class_name: str) -> CensorConfig:
        name = class_name.strip().lower()
        current = self.current.censored_classes
        updated = current - {name} if name in current else current | {name}
        return self._update(censored_classes=updated)
