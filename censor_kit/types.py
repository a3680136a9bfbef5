from dataclasses import dataclass
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class Detection:
    """
    One detected object in original image pixel coordinates (xyxy).

    `class_name` is derived from the label vocabulary and only used for display
    and policy matching; `class_id` is authoritative.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    score: float
    class_id: int
    class_name: str = "N/A"

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2

    @property
    def area(self) -> float:
        return max(0.0, self.x2 - self.x1) * max(0.0, self.y2 - self.y1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "box": [self.x1, self.y1, self.x2, self.y2],
            "score": self.score,
            "class_id": self.class_id,
            "class_name": self.class_name,
        }


@dataclass(frozen=True)
class TransformMeta:
    """
    Letterbox parameters needed to map model-space boxes back to the source image.
    """

    scale: float
    pad_x: float
    pad_y: float
    new_w: int
    new_h: int
