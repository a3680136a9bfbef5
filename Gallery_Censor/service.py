from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from censor_kit.errors import DetectionError
from censor_kit.runtime import Detector
from censor_kit.types import Detection

from .cache import DetectionCache
from .config import CensorConfig, ConfigChannel
from .media import MediaItem
from .policy import ItemStatus, classify, should_censor

logger = logging.getLogger(__name__)

ImageSource = Union[np.ndarray, Callable[[], np.ndarray], MediaItem]
BatchItem = Union[Tuple[str, ImageSource], MediaItem]
ProgressCallback = Callable[[float], None]


@dataclass(frozen=True)
class ItemResult:
    identity: str
    detections: Tuple[Detection, ...]
    status: ItemStatus
    # Fraction of the batch completed once this item was committed.
    progress: float
    error: Optional[str] = None

    @property
    def censored(self) -> bool:
        return self.status == ItemStatus.CENSORED

    @property
    def failed(self) -> bool:
        return self.status == ItemStatus.FAILED


@dataclass(frozen=True)
class ReclassifyResult:
    config: CensorConfig
    verdicts: Dict[str, bool]


def reclassify_cache(cache: DetectionCache, config: CensorConfig) -> Dict[str, bool]:
    """Censorship verdict for every cached item under `config`, without redetection."""
    return {
        identity: should_censor(detections, config.confidence_threshold, config.censored_classes)
        for identity, detections in cache.snapshot().items()
    }


class ReclassifyWorker:
    """
    Background re-evaluation of the cache after configuration changes.

    Only the newest submitted config matters: a pending request is replaced, a
    pass in progress is abandoned once a newer config arrives, and a result is
    kept only if no newer config was submitted meanwhile. With `settle_s` > 0 a
    pass starts only after the config has been stable for that long.
    """

    def __init__(self, cache: DetectionCache, *, settle_s: float = 0.0) -> None:
        if settle_s < 0:
            raise ValueError("settle_s must be >= 0")
        self._cache = cache
        self._settle_s = float(settle_s)
        self._cond = threading.Condition()
        self._pending: Optional[CensorConfig] = None
        self._generation = 0
        self._busy = False
        self._stopped = False
        self._latest: Optional[ReclassifyResult] = None
        self._listeners: List[Callable[[ReclassifyResult], None]] = []
        self._thread = threading.Thread(target=self._loop, name="reclassify-worker", daemon=True)
        self._thread.start()

    @property
    def latest(self) -> Optional[ReclassifyResult]:
        with self._cond:
            return self._latest

    def add_listener(self, callback: Callable[[ReclassifyResult], None]) -> None:
        with self._cond:
            self._listeners.append(callback)

    def submit(self, config: CensorConfig) -> None:
        with self._cond:
            if self._stopped:
                return
            self._pending = config
            self._generation += 1
            self._cond.notify_all()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no request is pending or running. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._stopped or (self._pending is None and not self._busy), timeout)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        with self._cond:
            self._stopped = True
            self._pending = None
            self._cond.notify_all()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    def _is_current(self, generation: int) -> bool:
        with self._cond:
            return not self._stopped and generation == self._generation

    def _next_request(self) -> Optional[Tuple[CensorConfig, int]]:
        with self._cond:
            while self._pending is None and not self._stopped:
                self._cond.wait()
            if self._stopped:
                return None
            while self._settle_s > 0:
                generation = self._generation
                self._cond.wait(timeout=self._settle_s)
                if self._stopped:
                    return None
                if generation == self._generation:
                    break
            config, self._pending = self._pending, None
            self._busy = True
            return config, self._generation

    def _run_pass(self, config: CensorConfig, generation: int) -> Optional[Dict[str, bool]]:
        verdicts: Dict[str, bool] = {}
        for identity, detections in self._cache.snapshot().items():
            if not self._is_current(generation):
                logger.debug("Reclassification superseded after %d items", len(verdicts))
                return None
            verdicts[identity] = should_censor(detections, config.confidence_threshold, config.censored_classes)
        return verdicts

    def _loop(self) -> None:
        while True:
            request = self._next_request()
            if request is None:
                return
            config, generation = request
            result: Optional[ReclassifyResult] = None
            try:
                verdicts = self._run_pass(config, generation)
                with self._cond:
                    if verdicts is not None and generation == self._generation and not self._stopped:
                        result = ReclassifyResult(config=config, verdicts=verdicts)
                        self._latest = result
                    listeners = list(self._listeners)
                if result is not None:
                    logger.info(
                        "Reclassified %d cached items (%d censored)",
                        len(result.verdicts),
                        sum(result.verdicts.values()),
                    )
                    for callback in listeners:
                        try:
                            callback(result)
                        except Exception:
                            logger.exception("Reclassify listener %r failed", callback)
            finally:
                with self._cond:
                    self._busy = False
                    self._cond.notify_all()


def _as_pair(item: BatchItem) -> Tuple[str, ImageSource]:
    if isinstance(item, MediaItem):
        return item.identity, item
    identity, source = item
    return str(identity), source


def _resolve_image(source: ImageSource) -> np.ndarray:
    if isinstance(source, MediaItem):
        return source.load()
    if callable(source):
        return source()
    return source


class CensorService:
    """
    Runs detection over media items, caches the detections per item and keeps the
    censorship verdicts in line with the live configuration.

    One item at a time goes through the detector; the cache is written only after
    an item's pipeline succeeded.
    """

    def __init__(
        self,
        detector: Detector,
        *,
        channel: Optional[ConfigChannel] = None,
        cache: Optional[DetectionCache] = None,
        settle_s: float = 0.0,
        auto_reclassify: bool = True,
    ) -> None:
        self.detector = detector
        self.channel = channel if channel is not None else ConfigChannel()
        self.cache = cache if cache is not None else DetectionCache()
        self.worker: Optional[ReclassifyWorker] = ReclassifyWorker(self.cache, settle_s=settle_s) if auto_reclassify else None
        self._batch_lock = threading.Lock()
        self._released = False

        current = self.channel.current
        self.detector.update_config(current.confidence_threshold, current.iou_threshold)
        self._unsubscribe = self.channel.subscribe(self._on_config)

    def __enter__(self) -> "CensorService":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    @property
    def config(self) -> CensorConfig:
        return self.channel.current

    def _on_config(self, config: CensorConfig) -> None:
        self.detector.update_config(config.confidence_threshold, config.iou_threshold)
        if self.worker is not None:
            self.worker.submit(config)

    def update_config(self, confidence: float, iou: float, classes: Iterable[str]) -> CensorConfig:
        config = CensorConfig(
            confidence_threshold=float(confidence),
            iou_threshold=float(iou),
            censored_classes=frozenset(classes),
        )
        self.channel.publish(config)
        return config

    def detect(self, image: np.ndarray) -> List[Detection]:
        return self.detector.detect(image)

    def process_batch(
        self,
        items: Iterable[BatchItem],
        config: Optional[CensorConfig] = None,
        *,
        cancel: Optional[threading.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Iterator[ItemResult]:
        """
        Lazily process `items` in order, yielding one ItemResult per item.

        Each item is classified under the configuration current when it starts.
        Item-level failures yield a FAILED result and the batch continues; fatal
        DetectionErrors (model/vocabulary mismatch, detector not initialized) are
        raised. `cancel` is checked between items.
        """
        if config is not None:
            self.channel.publish(config)
        return self._run_batch([_as_pair(item) for item in items], cancel, on_progress)

    def _run_batch(
        self,
        items: Sequence[Tuple[str, ImageSource]],
        cancel: Optional[threading.Event],
        on_progress: Optional[ProgressCallback],
    ) -> Iterator[ItemResult]:
        total = len(items)
        logger.info("Batch started: %d items", total)
        if total == 0:
            if on_progress is not None:
                on_progress(1.0)
            return

        done = 0
        failed = 0
        for identity, source in items:
            if cancel is not None and cancel.is_set():
                logger.info("Batch cancelled after %d/%d items", done, total)
                return

            with self._batch_lock:
                result = self._process_item(identity, source, done + 1, total)
            done += 1
            if result.failed:
                failed += 1
            if on_progress is not None:
                on_progress(result.progress)
            yield result

        logger.info("Batch finished: %d items, %d failed", total, failed)

    def _process_item(self, identity: str, source: ImageSource, index: int, total: int) -> ItemResult:
        config = self.channel.current
        progress = index / total

        try:
            image = _resolve_image(source)
            detections = self.detector.detect(image)
        except DetectionError as exc:
            if exc.fatal:
                raise
            logger.warning("Detection failed for %s: %s", identity, exc)
            return ItemResult(identity=identity, detections=(), status=ItemStatus.FAILED, progress=progress, error=str(exc))
        except Exception as exc:
            logger.warning("Could not load %s: %s", identity, exc)
            return ItemResult(identity=identity, detections=(), status=ItemStatus.FAILED, progress=progress, error=str(exc))

        entry = self.cache.put(identity, detections)
        return ItemResult(identity=identity, detections=entry, status=classify(entry, config), progress=progress)

    def reclassify(self, config: Optional[CensorConfig] = None) -> Dict[str, bool]:
        """Recompute verdicts for all cached items; detections are reused as cached."""
        return reclassify_cache(self.cache, config or self.config)

    def evict(self, identity: str) -> bool:
        return self.cache.evict(identity)

    def release(self) -> None:
        """Stop re-evaluation and release the detector. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        self._unsubscribe()
        if self.worker is not None:
            self.worker.stop()
        self.detector.release()
