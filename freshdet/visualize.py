from __future__ import annotations

from typing import Iterable, Tuple

import numpy as np

from .types import Candidate


# Fresh classes in green tones, rotten in red tones, everything else yellow (BGR).
_FRESH_COLOR = (72, 200, 10)
_ROTTEN_COLOR = (40, 40, 230)
_OTHER_COLOR = (0, 212, 255)


def _color_for_label(label: str) -> Tuple[int, int, int]:
    lowered = label.lower()
    if lowered.startswith("fresh"):
        return _FRESH_COLOR
    if lowered.startswith("rotten"):
        return _ROTTEN_COLOR
    return _OTHER_COLOR


def draw_candidates(
    image_bgr: np.ndarray,
    candidates: Iterable[Candidate],
    *,
    show_score: bool = True,
    box_thickness: int = 2,
    font_scale: float = 0.5,
    font_thickness: int = 1,
) -> np.ndarray:
    """
    Draw boxes + labels on an OpenCV BGR image and return a copy.

    Candidates must be in the image's pixel space, e.g. draw on the image
    resized to the model input size.
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for draw_candidates(). Install with `pip install opencv-python-headless`.") from e

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    out = image_bgr.copy()
    h, w = out.shape[:2]

    for cand in candidates:
        x1, y1, x2, y2 = cand.as_xyxy()
        x1i = int(np.clip(round(x1), 0, w - 1))
        y1i = int(np.clip(round(y1), 0, h - 1))
        x2i = int(np.clip(round(x2), 0, w - 1))
        y2i = int(np.clip(round(y2), 0, h - 1))

        color = _color_for_label(cand.label)
        cv2.rectangle(out, (x1i, y1i), (x2i, y2i), color, thickness=box_thickness)

        label = f"{cand.label} {cand.confidence:.2f}" if show_score else cand.label

        (tw, th), baseline = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, font_scale, font_thickness)
        # Place label above the box if possible, else inside.
        y_text_top = y1i - th - baseline
        if y_text_top < 0:
            y_text_top = y1i

        x_text_right = min(x1i + tw, w - 1)
        y_text_bottom = min(y_text_top + th + baseline, h - 1)

        cv2.rectangle(out, (x1i, y_text_top), (x_text_right, y_text_bottom), color, thickness=-1)
        cv2.putText(
            out,
            label,
            (x1i, min(y_text_top + th, h - 1)),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            (255, 255, 255),
            thickness=font_thickness,
            lineType=cv2.LINE_AA,
        )

    return out
