from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

import numpy as np


@dataclass(frozen=True)
class Candidate:
    """
    One decoded box in the model's coordinate space.

    Geometry is centre-form (x, y = box centre). Produced by the output decoder,
    filtered by the suppressor.
    """

    x: float
    y: float
    width: float
    height: float
    confidence: float
    class_id: int
    label: str

    @property
    def area(self) -> float:
        # From the corners, matching what IoU uses.
        x1, y1, x2, y2 = self.as_xyxy()
        return max(0.0, x2 - x1) * max(0.0, y2 - y1)

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        half_w = self.width / 2
        half_h = self.height / 2
        return self.x - half_w, self.y - half_h, self.x + half_w, self.y + half_h

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "class_id": self.class_id,
            "confidence": self.confidence,
            "bbox": {"x": self.x, "y": self.y, "width": self.width, "height": self.height},
        }


@dataclass(frozen=True)
class PreparedImage:
    # (1, 3, H, W) float32, planar RGB in [0, 1]
    blob: np.ndarray
    # (width, height) of the decoded source image
    orig_size: Tuple[int, int]
