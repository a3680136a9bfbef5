from __future__ import annotations

import argparse
import logging
import signal
import threading
from pathlib import Path
from typing import List, Optional, Sequence

from tqdm import tqdm

from censor_kit import DetectionError, Detector, DetectorConfig, InitError, OutputLayout

from .config import DEFAULT_CENSORED_CLASSES, DEFAULT_CONFIDENCE, DEFAULT_IOU, CensorConfig, load_censor_config
from .media import scan_media_dir
from .reporting import summarize, write_results_csv, write_results_json
from .service import CensorService, ItemResult

logger = logging.getLogger(__name__)


def _parse_ort_providers(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    parts = [p.strip().strip("'\"`") for p in str(raw).split(",")]
    return [p for p in parts if p] or None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Classify gallery images as censored/verified with a YOLO detector.")
    parser.add_argument("--media-dir", required=True, help="Directory of images to classify.")
    parser.add_argument("--model", default="Models/yolo11n.onnx", help="Path to detector (.onnx/.pt/.torchscript).")
    parser.add_argument("--labels", default="Models/coco_labels.txt", help="Label file (one per line, or metadata.yaml names).")
    parser.add_argument("--backend", default=None, help="Force backend: onnxruntime / torchscript.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--imgsz", type=int, default=640, help="Letterbox input size (e.g., 640).")
    parser.add_argument(
        "--layout",
        default=OutputLayout.AUTO.value,
        choices=[layout.value for layout in OutputLayout],
        help="Memory layout of the model output.",
    )
    parser.add_argument("--config", default=None, help="Censor config JSON (thresholds + censored classes).")
    parser.add_argument("--conf", type=float, default=None, help=f"Confidence threshold (default {DEFAULT_CONFIDENCE}).")
    parser.add_argument("--iou", type=float, default=None, help=f"IoU threshold for NMS (default {DEFAULT_IOU}).")
    parser.add_argument(
        "--censor-class",
        action="append",
        default=None,
        help="Class name to censor (repeatable). Replaces the configured set.",
    )
    parser.add_argument("--out-dir", default="data", help="Directory for censor_results.json / .csv.")
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...).")
    return parser


def resolve_censor_config(args: argparse.Namespace) -> CensorConfig:
    """CLI flags > config file > defaults."""
    base = load_censor_config(Path(args.config)) if args.config else CensorConfig()
    return CensorConfig(
        confidence_threshold=float(args.conf) if args.conf is not None else base.confidence_threshold,
        iou_threshold=float(args.iou) if args.iou is not None else base.iou_threshold,
        censored_classes=frozenset(args.censor_class) if args.censor_class else base.censored_classes,
    )


def run(args: argparse.Namespace) -> int:
    if args.imgsz < 32:
        logger.error("--imgsz must be >= 32, got %d", args.imgsz)
        return 2
    try:
        config = resolve_censor_config(args)
    except (ValueError, FileNotFoundError) as exc:
        logger.error("Invalid censor config: %s", exc)
        return 2
    detector = Detector(
        DetectorConfig(
            input_size=(int(args.imgsz), int(args.imgsz)),
            conf_threshold=config.confidence_threshold,
            iou_threshold=config.iou_threshold,
            layout=OutputLayout(args.layout),
        )
    )
    try:
        detector.initialize(
            args.model,
            labels_path=args.labels,
            backend=args.backend,
            onnx_providers=_parse_ort_providers(args.onnx_providers),
        )
    except InitError as exc:
        logger.error("%s", exc)
        return 2

    unknown = sorted(config.censored_classes - {name.lower() for name in detector.labels})
    if unknown:
        logger.warning("Censored classes not in the label vocabulary (never matched): %s", unknown)

    items = scan_media_dir(args.media_dir)
    logger.info("Found %d images in %s", len(items), args.media_dir)

    cancel = threading.Event()

    def _on_sigint(signum, frame) -> None:
        logger.info("Stop requested; finishing the current item.")
        cancel.set()

    previous_handler = signal.signal(signal.SIGINT, _on_sigint)
    results: List[ItemResult] = []
    try:
        with CensorService(detector, auto_reclassify=False) as service:
            bar = tqdm(total=len(items), unit="img", disable=bool(args.no_progress))
            try:
                for result in service.process_batch(items, config, cancel=cancel):
                    results.append(result)
                    bar.update(1)
                    bar.set_postfix(censored=sum(r.censored for r in results), failed=sum(r.failed for r in results))
            finally:
                bar.close()
    except DetectionError as exc:
        logger.error("Fatal detection error: %s", exc)
        return 3
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    out_dir = Path(args.out_dir)
    json_path = write_results_json(out_dir=out_dir, results=results, config=config)
    csv_path = write_results_csv(out_dir=out_dir, results=results)

    summary = summarize(results)
    logger.info(
        "Done: %d items, %d censored, %d verified, %d failed%s",
        summary.total_items,
        summary.censored,
        summary.verified,
        summary.failed,
        " (cancelled)" if cancel.is_set() else "",
    )
    logger.info("Wrote %s and %s", json_path, csv_path)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return run(args)
