from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

import numpy as np

from .errors import ImageDecodeError
from .types import PreparedImage


PathLike = Union[str, Path]

logger = logging.getLogger(__name__)


def _require_cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError(
            "OpenCV is required for image preprocessing. Install with `pip install opencv-python-headless`."
        ) from e
    return cv2


@dataclass(frozen=True)
class PreprocessConfig:
    # (width, height) the model was exported with.
    input_size: Tuple[int, int] = (640, 640)

    def __post_init__(self) -> None:
        w, h = self.input_size
        if w <= 0 or h <= 0:
            raise ValueError(f"input_size must be positive, got {self.input_size}")


class TensorPreparer:
    """
    Image file -> model-ready NCHW float32 blob.

    The blob is planar: every red value (row-major), then every green, then
    every blue. An interleaved layout would not fail at inference time, it
    would only produce garbage boxes.
    """

    def __init__(self, cfg: PreprocessConfig = PreprocessConfig()):
        self.cfg = cfg

    def load(self, image_path: PathLike) -> np.ndarray:
        """
        Decode `image_path` into an RGB (H, W, 3) uint8 array.

        Raises ImageDecodeError for missing, empty or undecodable files.
        """

        cv2 = _require_cv2()

        path = Path(image_path)
        if not path.is_file():
            raise ImageDecodeError(f"Image file not found: {path}")
        try:
            data = np.fromfile(str(path), dtype=np.uint8)
        except OSError as e:
            raise ImageDecodeError(f"Could not read image file: {path}") from e
        if data.size == 0:
            raise ImageDecodeError(f"Image file is empty: {path}")

        # IMREAD_COLOR drops alpha and expands grayscale to 3 channels.
        img = cv2.imdecode(data, cv2.IMREAD_COLOR)
        if img is None:
            raise ImageDecodeError(f"Not a decodable raster image: {path}")

        return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)

    def to_blob(self, image_rgb: np.ndarray) -> np.ndarray:
        cv2 = _require_cv2()

        if image_rgb is None or not hasattr(image_rgb, "shape"):
            raise TypeError("image_rgb must be a NumPy array (RGB).")

        img = np.asarray(image_rgb)
        if img.ndim == 2:
            img = np.repeat(img[:, :, None], 3, axis=2)
        if img.ndim != 3 or img.shape[2] not in (3, 4):
            raise ValueError(f"Expected image shape (H, W, 3|4), got {img.shape}")
        if img.shape[2] == 4:
            img = img[:, :, :3]

        w, h = self.cfg.input_size
        if (img.shape[1], img.shape[0]) != (w, h):
            img = cv2.resize(img, (w, h), interpolation=cv2.INTER_LINEAR)

        # normalize, HWC -> CHW, add batch
        blob = img.astype(np.float32) / 255.0
        blob = np.transpose(blob, (2, 0, 1))[None, ...]
        return np.ascontiguousarray(blob)

    def prepare(self, image_path: PathLike) -> PreparedImage:
        img = self.load(image_path)
        orig_h, orig_w = img.shape[:2]
        blob = self.to_blob(img)
        logger.debug("Prepared %s: original_size=%sx%s, blob_shape=%s", image_path, orig_w, orig_h, blob.shape)
        return PreparedImage(blob=blob, orig_size=(orig_w, orig_h))
