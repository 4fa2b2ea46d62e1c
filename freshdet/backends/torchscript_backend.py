from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np

from ..errors import InferenceError, ModelLoadError


PathLike = Union[str, Path]


@dataclass(frozen=True)
class TorchScriptBackendConfig:
    """
    Configuration for TorchScript inference.

    - device: "cpu" or "cuda" (if available)
    - half: cast input to float16 (only if the model expects it)
    - output_index: if the model returns multiple outputs, select this index
    """

    device: str = "cpu"
    half: bool = False
    output_index: int = 0


class TorchScriptBackend:
    """
    TorchScript backend using `torch.jit.load`, for models exported with
    `yolo export format=torchscript` instead of ONNX.
    """

    def __init__(self, model_path: PathLike, cfg: TorchScriptBackendConfig = TorchScriptBackendConfig()):
        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ModelLoadError("torch is required for the TorchScript backend. Install with `pip install torch`.") from e

        self._torch = torch
        self.model_path = Path(model_path)
        if not self.model_path.is_file():
            raise ModelLoadError(f"Model file not found: {self.model_path}")

        self.device = torch.device(cfg.device)
        self.half = cfg.half
        self.output_index = cfg.output_index

        try:
            model = torch.jit.load(str(self.model_path), map_location=self.device)
        except Exception as e:
            raise ModelLoadError(f"Cannot load TorchScript model at {self.model_path}: {e}") from e
        model.eval()
        self.model = model

    def infer(self, blob: np.ndarray) -> np.ndarray:
        torch = self._torch
        try:
            x = torch.as_tensor(blob, device=self.device)
            x = x.half() if self.half else x.float()
            x = x.contiguous()

            with torch.no_grad():
                y = self.model(x)

            if isinstance(y, (tuple, list)):
                y = y[self.output_index]
            if hasattr(y, "detach"):
                y = y.detach()
            return y.float().to("cpu").numpy()
        except Exception as e:
            raise InferenceError(f"TorchScript inference failed: {e}") from e
