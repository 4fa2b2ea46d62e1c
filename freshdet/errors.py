"""
Error kinds raised by the detection pipeline.

- ImageDecodeError: the source image is missing, empty or not a raster image.
  Client-input problem, never retried.
- ModelLoadError: the model artifact (or its runtime) is missing or corrupt.
  Fatal at startup or first use.
- InferenceError: the execution engine failed for one request. The loaded
  model stays usable for later requests.
"""


class DetectionError(Exception):
    """Base class for pipeline failures."""


class ImageDecodeError(DetectionError):
    pass


class ModelLoadError(DetectionError):
    pass


class InferenceError(DetectionError):
    pass
