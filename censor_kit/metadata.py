from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Union


def load_class_names(metadata_path: Union[str, Path]) -> Dict[int, str]:
    """
    Load class names from either label file format:

    `metadata.yaml` style mapping:

        names:
          0: person
          1: bicycle
          ...

    or a plain text file with one label per line (e.g. `coco_labels.txt`),
    where the line number is the class id.

    This function intentionally avoids adding a PyYAML dependency.
    """

    with open(metadata_path, "r", encoding="utf-8") as f:
        lines = [raw.rstrip("\r\n") for raw in f]

    if not any(line.strip() == "names:" for line in lines):
        labels = [line.strip() for line in lines if line.strip()]
        return dict(enumerate(labels))

    names: Dict[int, str] = {}
    in_names = False
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line == "names:":
            in_names = True
            continue
        if not in_names:
            continue
        # A new top-level key ends the mapping.
        if not raw[:1].isspace() and not line[:1].isdigit():
            break

        # Parse "id: label"
        if ":" not in line:
            continue
        left, right = line.split(":", 1)
        left = left.strip()
        right = right.strip().strip("'").strip('"')
        if not left.isdigit():
            continue
        names[int(left)] = right

    return names


def load_labels(path: Union[str, Path]) -> List[str]:
    """
    Load the ordered label vocabulary: index i names class i.

    Raises:
        FileNotFoundError: if the file does not exist
        ValueError: if the file has no labels or the ids are not contiguous from 0
    """
    names = load_class_names(path)
    if not names:
        raise ValueError(f"No class labels found in {path}")
    if sorted(names) != list(range(len(names))):
        raise ValueError(f"Class ids in {path} must be contiguous from 0, got {sorted(names)}")
    return [names[i] for i in range(len(names))]
