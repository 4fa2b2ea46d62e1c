from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from .metadata import label_for
from .types import Candidate


LAYOUTS = ("predictions_first", "attributes_first")
SCORE_MODES = ("objectness", "objectness_x_class", "class_score")


@dataclass(frozen=True)
class DecoderConfig:
    """
    How to read one model's raw output.

    layout:
        "predictions_first" -> (1, N, A), one row per prediction slot
        "attributes_first"  -> (1, A, N), e.g. 84 x 8400 YOLOv8 exports
      This must match the deployed model's metadata; it is never guessed from
      the shape.

    score_mode:
        "objectness"         -> [cx, cy, w, h, obj, class_scores...], confidence = obj
        "objectness_x_class" -> same columns, confidence = obj * best class score
        "class_score"        -> [cx, cy, w, h, class_scores...], confidence = best class score
    """

    conf_threshold: float = 0.5
    layout: str = "predictions_first"
    score_mode: str = "objectness"

    def __post_init__(self) -> None:
        if self.layout not in LAYOUTS:
            raise ValueError(f"layout must be one of {LAYOUTS}, got {self.layout!r}")
        if self.score_mode not in SCORE_MODES:
            raise ValueError(f"score_mode must be one of {SCORE_MODES}, got {self.score_mode!r}")
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be in [0, 1]")


class OutputDecoder:
    """
    Raw model output -> confidence-filtered candidates, in emission order.
    """

    def __init__(self, cfg: DecoderConfig = DecoderConfig(), labels: Sequence[str] = ()):
        self.cfg = cfg
        self.labels = list(labels)

    def decode(self, raw: np.ndarray) -> List[Candidate]:
        boxes, scores, class_ids = self._decode_arrays(raw)

        # Strict early filter; NaN scores never pass.
        keep = np.nonzero(scores.astype(np.float64) >= self.cfg.conf_threshold)[0]

        return [
            Candidate(
                x=float(boxes[i, 0]),
                y=float(boxes[i, 1]),
                width=float(boxes[i, 2]),
                height=float(boxes[i, 3]),
                confidence=float(scores[i]),
                class_id=int(class_ids[i]),
                label=label_for(self.labels, int(class_ids[i])),
            )
            for i in keep
        ]

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _as_rows(self, raw: np.ndarray) -> np.ndarray:
        """
        Strip the batch axis and return a (N, A) view, one row per slot.
        """

        p = np.asarray(raw, dtype=np.float32)
        if p.ndim == 3:
            if p.shape[0] != 1:
                raise ValueError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
            p = p[0]
        if p.ndim != 2:
            raise ValueError(f"Unsupported output shape: {np.shape(raw)}")
        if self.cfg.layout == "attributes_first":
            p = p.T
        return p

    def _decode_arrays(self, raw: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Returns boxes (N, 4) as cx, cy, w, h, scores (N,), class_ids (N,).
        """

        p = self._as_rows(raw)
        n, attrs = p.shape
        mode = self.cfg.score_mode

        min_attrs = 6 if mode == "objectness_x_class" else 5
        if attrs < min_attrs:
            raise ValueError(
                f"{mode!r} output needs at least {min_attrs} attributes per prediction, got shape {np.shape(raw)}"
            )

        boxes = p[:, 0:4]
        if n == 0:
            return boxes, np.empty((0,), dtype=np.float32), np.empty((0,), dtype=np.int64)

        if mode == "class_score":
            class_scores = p[:, 4:]
            class_ids = np.argmax(class_scores, axis=1)
            scores = class_scores[np.arange(n), class_ids]
            return boxes, scores, class_ids

        objectness = p[:, 4]
        class_scores = p[:, 5:]
        if class_scores.shape[1] == 0:
            # Single-class export without class columns.
            return boxes, objectness, np.zeros((n,), dtype=np.int64)

        class_ids = np.argmax(class_scores, axis=1)
        if mode == "objectness_x_class":
            scores = objectness * class_scores[np.arange(n), class_ids]
        else:
            scores = objectness
        return boxes, scores, class_ids
