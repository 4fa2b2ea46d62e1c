"""
Detection core for FreshTrack: image -> tensor -> model -> candidates -> NMS.

Framework-agnostic: works with NumPy arrays emitted by ONNX Runtime or
TorchScript. OpenCV is used for image decoding and resizing.
"""

from .errors import DetectionError, ImageDecodeError, InferenceError, ModelLoadError
from .types import Candidate, PreparedImage
from .metadata import label_for, load_class_names
from .preprocess import PreprocessConfig, TensorPreparer
from .postprocess import DecoderConfig, OutputDecoder
from .nms import NMSConfig, box_iou, nms, suppress
from .runtime import DetectionPipeline, ModelHandle, discard_image, load_pipeline, resolve_path
from .visualize import draw_candidates

__all__ = [
    "DetectionError",
    "ImageDecodeError",
    "InferenceError",
    "ModelLoadError",
    "Candidate",
    "PreparedImage",
    "label_for",
    "load_class_names",
    "PreprocessConfig",
    "TensorPreparer",
    "DecoderConfig",
    "OutputDecoder",
    "NMSConfig",
    "box_iou",
    "nms",
    "suppress",
    "DetectionPipeline",
    "ModelHandle",
    "discard_image",
    "load_pipeline",
    "resolve_path",
    "draw_candidates",
]
