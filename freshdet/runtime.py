from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Union

import numpy as np

from .errors import InferenceError, ModelLoadError
from .nms import NMSConfig, suppress
from .postprocess import DecoderConfig, OutputDecoder
from .preprocess import PreprocessConfig, TensorPreparer
from .types import Candidate


PathLike = Union[str, Path]

logger = logging.getLogger(__name__)


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", ".git"),
) -> Path:
    """
    Best-effort project root discovery, so `models/best.onnx` resolves the same
    way regardless of the working directory the service was started from.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against `root` if provided, the project root
      (auto) otherwise.
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


def discard_image(image_path: PathLike) -> None:
    """
    Delete a transient image. Never raises: an already missing file is fine,
    any other failure is logged.
    """

    try:
        Path(image_path).unlink()
    except FileNotFoundError:
        logger.debug("Image already removed: %s", image_path)
    except OSError as e:
        logger.warning("Failed to delete image %s: %s", image_path, e)


class ModelHandle:
    """
    Lazily loaded, shared model executor.

    `loader` runs at most once, even when several requests hit a cold handle
    at the same time. The lock guards initialisation only; once loaded the
    backend is read without locking. A failed load is remembered and re-raised
    on every later call.
    """

    def __init__(self, loader: Callable[[], Any], *, name: Optional[str] = None):
        self._loader = loader
        self.name = name
        self._backend: Any = None
        self._error: Optional[ModelLoadError] = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._backend is not None

    def load(self) -> Any:
        backend = self._backend
        if backend is not None:
            return backend

        with self._lock:
            if self._backend is None:
                if self._error is not None:
                    # Fresh exception per call: the cached one is never raised.
                    raise ModelLoadError(str(self._error)) from self._error.__cause__
                try:
                    self._backend = self._loader()
                except ModelLoadError as e:
                    self._error = ModelLoadError(str(e))
                    self._error.__cause__ = e.__cause__
                    raise
                except Exception as e:
                    self._error = ModelLoadError(f"Cannot load model {self.name or '<unnamed>'}: {e}")
                    self._error.__cause__ = e
                    raise ModelLoadError(str(self._error)) from e
            return self._backend

    def infer(self, blob: np.ndarray) -> np.ndarray:
        return self.load().infer(blob)


class DetectionPipeline:
    """
    prepare tensor -> model -> decode -> suppress.

    `process` owns the image file it is given and deletes it on every exit
    path. `detect_array` runs the same stages over in-memory pixels.
    """

    def __init__(
        self,
        model: ModelHandle,
        *,
        labels: Sequence[str] = (),
        preprocess_cfg: PreprocessConfig = PreprocessConfig(),
        decoder_cfg: DecoderConfig = DecoderConfig(),
        nms_cfg: NMSConfig = NMSConfig(),
    ):
        self.model = model
        self.preparer = TensorPreparer(preprocess_cfg)
        self.decoder = OutputDecoder(decoder_cfg, labels=labels)
        self.nms_cfg = nms_cfg

    @property
    def labels(self) -> List[str]:
        return self.decoder.labels

    def process(self, image_path: PathLike) -> List[Candidate]:
        try:
            prep = self.preparer.prepare(image_path)
            return self._detect_blob(prep.blob)
        finally:
            discard_image(image_path)

    def detect_array(self, image_rgb: np.ndarray) -> List[Candidate]:
        return self._detect_blob(self.preparer.to_blob(image_rgb))

    def __call__(self, image_path: PathLike) -> List[Candidate]:
        return self.process(image_path)

    def _detect_blob(self, blob: np.ndarray) -> List[Candidate]:
        raw = self._run_model(blob)
        try:
            candidates = self.decoder.decode(raw)
        except ValueError as e:
            raise InferenceError(f"Unexpected model output: {e}") from e

        kept = suppress(
            candidates,
            self.nms_cfg.iou_threshold,
            class_agnostic=self.nms_cfg.class_agnostic,
            max_detections=self.nms_cfg.max_detections,
        )
        logger.info("Detection complete: %d candidates, %d kept", len(candidates), len(kept))
        return kept

    def _run_model(self, blob: np.ndarray) -> np.ndarray:
        try:
            return self.model.infer(blob)
        except InferenceError:
            logger.exception("Inference failed")
            raise
        except ModelLoadError as e:
            logger.error("Model not loaded: %s", e)
            raise InferenceError(f"Model not loaded: {e}") from e
        except Exception as e:
            logger.exception("Inference failed")
            raise InferenceError(f"Inference failed: {e}") from e


def _backend_loader(
    model_path: Path,
    backend: str,
    *,
    onnx_providers: Optional[Sequence[str]],
    torch_device: str,
) -> Callable[[], Any]:
    if backend == "onnxruntime":

        def load_onnx() -> Any:
            from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

            cfg = OnnxRuntimeBackendConfig()
            if onnx_providers is not None:
                cfg = OnnxRuntimeBackendConfig(providers=tuple(onnx_providers))
            return OnnxRuntimeBackend(model_path, cfg)

        return load_onnx

    if backend == "torchscript":

        def load_torchscript() -> Any:
            from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

            return TorchScriptBackend(model_path, TorchScriptBackendConfig(device=torch_device))

        return load_torchscript

    raise ValueError(f"Unsupported backend: {backend!r}")


def infer_backend(model_path: PathLike) -> str:
    suffix = Path(model_path).suffix.lower()
    if suffix == ".onnx":
        return "onnxruntime"
    if suffix in {".torchscript", ".ts", ".pt"}:
        return "torchscript"
    raise ValueError(f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly.")


def load_pipeline(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    labels: Sequence[str] = (),
    preprocess_cfg: PreprocessConfig = PreprocessConfig(),
    decoder_cfg: DecoderConfig = DecoderConfig(),
    nms_cfg: NMSConfig = NMSConfig(),
    onnx_providers: Optional[Sequence[str]] = None,
    torch_device: str = "cpu",
    eager: bool = False,
) -> DetectionPipeline:
    """
    Create a detection pipeline for a model on disk.

    The model is loaded on first use unless `eager` is set, in which case a
    ModelLoadError surfaces here.

    Args:
        model_path: path to the exported model; relative paths resolve against the project root
        backend: "onnxruntime" or "torchscript"; None infers it from the extension
        root: base directory for resolving relative model paths ("auto" uses best-effort project root)
    """

    resolved = resolve_path(model_path, root=root)
    chosen = (backend or infer_backend(resolved)).lower()

    handle = ModelHandle(
        _backend_loader(resolved, chosen, onnx_providers=onnx_providers, torch_device=torch_device),
        name=str(resolved),
    )
    if eager:
        handle.load()

    return DetectionPipeline(
        handle,
        labels=labels,
        preprocess_cfg=preprocess_cfg,
        decoder_cfg=decoder_cfg,
        nms_cfg=nms_cfg,
    )
