from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from .types import Candidate


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.4
    # Global suppression across classes. False suppresses within each class only.
    class_agnostic: bool = True
    max_detections: Optional[int] = None

    def __post_init__(self) -> None:
        # 0 would suppress disjoint boxes too (IoU 0 >= 0).
        if not 0.0 < self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be in (0, 1]")
        if self.max_detections is not None and self.max_detections < 1:
            raise ValueError("max_detections must be >= 1")


def corner_area(x1, y1, x2, y2):
    """Area of xyxy box(es); works on floats and NumPy arrays alike."""

    return np.maximum(0.0, x2 - x1) * np.maximum(0.0, y2 - y1)


def _iou_from_parts(inter, area_a, area_b):
    # Shared by box_iou and nms so both agree bit for bit at the threshold.
    union = area_a + area_b - inter
    iou = np.divide(inter, union, out=np.zeros_like(inter), where=union > 0)
    return np.minimum(iou, 1.0)


def box_iou(a: Candidate, b: Candidate) -> float:
    """
    Intersection-over-Union of two centre-form candidates.

    A zero union (both boxes degenerate) is defined as IoU 0. Areas come from
    the same corners as the overlap, so IoU(a, a) is exactly 1.
    """

    ax1, ay1, ax2, ay2 = a.as_xyxy()
    bx1, by1, bx2, by2 = b.as_xyxy()
    w = np.maximum(0.0, min(ax2, bx2) - max(ax1, bx1))
    h = np.maximum(0.0, min(ay2, by2) - max(ay1, by1))
    inter = np.asarray(w * h, dtype=np.float64)
    iou = _iou_from_parts(inter, corner_area(ax1, ay1, ax2, ay2), corner_area(bx1, by1, bx2, by2))
    return float(iou)


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of kept boxes, highest score first.

    Equal scores keep their input order (stable sort). A box whose IoU with a
    kept box is >= iou_threshold is suppressed.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    boxes = np.asarray(boxes, dtype=np.float64)
    x1 = boxes[:, 0]
    y1 = boxes[:, 1]
    x2 = boxes[:, 2]
    y2 = boxes[:, 3]
    areas = corner_area(x1, y1, x2, y2)

    order = np.argsort(-np.asarray(scores, dtype=np.float64), kind="stable")
    keep = []

    while order.size > 0:
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break
        i = order[0]
        keep.append(i)

        xx1 = np.maximum(x1[i], x1[order[1:]])
        yy1 = np.maximum(y1[i], y1[order[1:]])
        xx2 = np.minimum(x2[i], x2[order[1:]])
        yy2 = np.minimum(y2[i], y2[order[1:]])

        w = np.maximum(0.0, xx2 - xx1)
        h = np.maximum(0.0, yy2 - yy1)
        iou = _iou_from_parts(w * h, areas[i], areas[order[1:]])

        inds = np.where(iou < cfg.iou_threshold)[0]
        order = order[inds + 1]

    return np.array(keep, dtype=np.int64)


def suppress(
    candidates: Sequence[Candidate],
    iou_threshold: float,
    *,
    class_agnostic: bool = True,
    max_detections: Optional[int] = None,
) -> List[Candidate]:
    """
    Collapse overlapping candidates, keeping the most confident one per cluster.

    Pure and deterministic. The result is ordered by confidence (descending),
    ties in input order. With `class_agnostic=False` a box only suppresses boxes
    of its own class; the per-class survivors are merged by confidence.
    """

    cfg = NMSConfig(iou_threshold=iou_threshold, class_agnostic=class_agnostic, max_detections=max_detections)
    if not candidates:
        return []

    boxes = np.array([c.as_xyxy() for c in candidates], dtype=np.float64)
    scores = np.array([c.confidence for c in candidates], dtype=np.float64)

    if cfg.class_agnostic:
        keep_idx = nms(boxes, scores, cfg)
        return [candidates[i] for i in keep_idx]

    by_class: Dict[int, List[int]] = {}
    for i, c in enumerate(candidates):
        by_class.setdefault(c.class_id, []).append(i)

    kept: List[int] = []
    for idx in by_class.values():
        local = np.array(idx, dtype=np.int64)
        keep_local = nms(boxes[local], scores[local], cfg)
        kept.extend(local[keep_local].tolist())

    # Merge by confidence; sorting indices first keeps ties in input order.
    kept.sort()
    kept.sort(key=lambda i: -scores[i])
    if cfg.max_detections is not None:
        kept = kept[: cfg.max_detections]
    return [candidates[i] for i in kept]
