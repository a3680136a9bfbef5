from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Union

import cv2
import numpy as np

from censor_kit.errors import InvalidImageError

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp"})


@dataclass(frozen=True)
class MediaItem:
    identity: str
    path: Path
    date_added: datetime

    def load(self) -> np.ndarray:
        return load_image(self.path)


def load_image(path: Union[str, Path]) -> np.ndarray:
    """Decode an image file to a BGR array; undecodable files raise InvalidImageError."""
    path = Path(path)
    if not path.is_file():
        raise InvalidImageError(f"Image not found: {path}")
    # imdecode handles non-ASCII paths that imread can't open on Windows.
    data = np.fromfile(str(path), dtype=np.uint8)
    img = cv2.imdecode(data, cv2.IMREAD_COLOR) if data.size else None
    if img is None:
        raise InvalidImageError(f"Could not decode image: {path}")
    return img


def scan_media_dir(directory: Union[str, Path]) -> List[MediaItem]:
    """List image files directly inside `directory`, newest first. Missing directory -> []."""
    root = Path(directory)
    if not root.is_dir():
        return []

    files = [p for p in root.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS]
    files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    return [
        MediaItem(
            identity=str(p.resolve()),
            path=p,
            date_added=datetime.fromtimestamp(p.stat().st_mtime),
        )
        for p in files
    ]
