"""
Report writers for a censoring run: a JSON summary with per-item detections and
a flat CSV with one row per item.
"""

from __future__ import annotations

import csv
import json
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .config import CensorConfig
from .policy import ItemStatus
from .service import ItemResult


@dataclass(frozen=True)
class RunSummary:
    total_items: int
    censored: int
    verified: int
    failed: int


def summarize(results: Iterable[ItemResult]) -> RunSummary:
    results_list = list(results)
    counts = {status: 0 for status in ItemStatus}
    for r in results_list:
        counts[r.status] += 1
    return RunSummary(
        total_items=len(results_list),
        censored=counts[ItemStatus.CENSORED],
        verified=counts[ItemStatus.VERIFIED],
        failed=counts[ItemStatus.FAILED],
    )


def item_result_to_dict(r: ItemResult) -> Dict[str, Any]:
    return {
        "identity": r.identity,
        "status": r.status.value,
        "censored": r.censored,
        "error": r.error,
        "detections": [d.to_dict() for d in r.detections],
    }


def write_results_json(
    *,
    out_dir: Path,
    results: Iterable[ItemResult],
    config: CensorConfig,
    now: Optional[datetime] = None,
) -> Path:
    results_list = list(results)
    payload = {
        "generated_at": (now or datetime.now()).isoformat(timespec="seconds"),
        "config": config.to_dict(),
        "summary": asdict(summarize(results_list)),
        "items": [item_result_to_dict(r) for r in results_list],
    }
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / "censor_results.json"
    path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    return path


def write_results_csv(*, out_dir: Path, results: Iterable[ItemResult]) -> Path:
    rows: List[Dict[str, Any]] = []
    for r in results:
        top = max(r.detections, key=lambda d: d.score, default=None)
        rows.append(
            {
                "identity": r.identity,
                "status": r.status.value,
                "num_detections": len(r.detections),
                "top_class": top.class_name if top is not None else "",
                "top_score": f"{top.score:.4f}" if top is not None else "",
                "error": r.error or "",
            }
        )
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / "censor_results.csv"
    fieldnames = ["identity", "status", "num_detections", "top_class", "top_score", "error"]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)
    return path
