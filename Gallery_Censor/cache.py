from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional, Tuple

from censor_kit.types import Detection

DetectionTuple = Tuple[Detection, ...]


class DetectionCache:
    """
    Process-wide map of media identity -> most recent detections.

    Entries are immutable tuples replaced whole under a lock, so a reader never
    sees a partially written entry.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, DetectionTuple] = {}

    def put(self, identity: str, detections: Iterable[Detection]) -> DetectionTuple:
        entry = tuple(detections)
        with self._lock:
            self._entries[identity] = entry
        return entry

    def get(self, identity: str) -> Optional[DetectionTuple]:
        with self._lock:
            return self._entries.get(identity)

    def evict(self, identity: str) -> bool:
        with self._lock:
            return self._entries.pop(identity, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def snapshot(self) -> Dict[str, DetectionTuple]:
        with self._lock:
            return dict(self._entries)

    def identities(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._entries
