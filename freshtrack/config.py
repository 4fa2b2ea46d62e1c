from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from freshdet.postprocess import LAYOUTS, SCORE_MODES


DATA_DIR = Path(__file__).resolve().parent / "data"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ServiceConfig:
    model_path: str = "models/best.onnx"
    backend: Optional[str] = None
    metadata_path: str = str(DATA_DIR / "metadata.yaml")
    storage_data_path: str = str(DATA_DIR / "storage_data.json")
    confidence_threshold: float = 0.5
    nms_threshold: float = 0.4
    class_agnostic_nms: bool = True
    input_size: int = 640
    output_layout: str = "predictions_first"
    score_mode: str = "objectness"
    upload_dir: str = "uploads"
    max_file_size: int = 10 * 1024 * 1024
    cors_origins: Tuple[str, ...] = field(default=("*",))
    host: str = "0.0.0.0"
    port: int = 3000
    preload_model: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be in [0, 1]")
        if not 0.0 < self.nms_threshold <= 1.0:
            raise ValueError("nms_threshold must be in (0, 1]")
        if self.input_size <= 0:
            raise ValueError("input_size must be > 0")
        if self.output_layout not in LAYOUTS:
            raise ValueError(f"output_layout must be one of {LAYOUTS}")
        if self.score_mode not in SCORE_MODES:
            raise ValueError(f"score_mode must be one of {SCORE_MODES}")
        if self.max_file_size <= 0:
            raise ValueError("max_file_size must be > 0")
        if not 0 < self.port < 65536:
            raise ValueError("port must be in 1..65535")
        if self.backend is not None and self.backend not in ("onnxruntime", "torchscript"):
            raise ValueError("backend must be 'onnxruntime' or 'torchscript'")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {LOG_LEVELS}")
        if not self.cors_origins:
            raise ValueError("cors_origins must not be empty")


_STR_KEYS = {
    "model_path",
    "backend",
    "metadata_path",
    "storage_data_path",
    "output_layout",
    "score_mode",
    "upload_dir",
    "host",
    "log_level",
}
_INT_KEYS = {"input_size", "max_file_size", "port"}
_FLOAT_KEYS = {"confidence_threshold", "nms_threshold"}
_BOOL_KEYS = {"class_agnostic_nms", "preload_model"}

ENV_KEYS = {
    "MODEL_PATH": "model_path",
    "MODEL_BACKEND": "backend",
    "METADATA_PATH": "metadata_path",
    "STORAGE_DATA_PATH": "storage_data_path",
    "CONFIDENCE_THRESHOLD": "confidence_threshold",
    "NMS_THRESHOLD": "nms_threshold",
    "CLASS_AGNOSTIC_NMS": "class_agnostic_nms",
    "INPUT_SIZE": "input_size",
    "OUTPUT_LAYOUT": "output_layout",
    "SCORE_MODE": "score_mode",
    "UPLOAD_DIR": "upload_dir",
    "MAX_FILE_SIZE": "max_file_size",
    "CORS_ORIGIN": "cors_origins",
    "HOST": "host",
    "PORT": "port",
    "PRELOAD_MODEL": "preload_model",
    "LOG_LEVEL": "log_level",
}


def _coerce(key: str, value: Any) -> Any:
    if key == "cors_origins":
        if isinstance(value, str):
            origins = tuple(o.strip() for o in value.split(",") if o.strip())
        elif isinstance(value, list) and all(isinstance(o, str) for o in value):
            origins = tuple(o.strip() for o in value if o.strip())
        else:
            raise ValueError("cors_origins must be a string or list of strings")
        return origins or ("*",)
    if key in _STR_KEYS:
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"{key} must be a non-empty string")
        return value.strip()
    if key in _BOOL_KEYS:
        if not isinstance(value, bool):
            raise ValueError(f"{key} must be a boolean")
        return value
    if key in _INT_KEYS:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} must be an integer")
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"{key} must be an integer")
        return int(value)
    if key in _FLOAT_KEYS:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} must be a number")
        return float(value)
    raise ValueError(f"Unsupported config key: {key}")


def _parse_env_value(key: str, raw: str) -> Any:
    """
    Environment variables are strings; turn them into the JSON-equivalent value
    so both sources share one validation path.
    """

    raw = raw.strip()
    if key in _BOOL_KEYS:
        lowered = raw.lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"{key} must be a boolean, got {raw!r}")
    if key in _INT_KEYS:
        try:
            return int(raw)
        except ValueError as exc:
            raise ValueError(f"{key} must be an integer, got {raw!r}") from exc
    if key in _FLOAT_KEYS:
        try:
            return float(raw)
        except ValueError as exc:
            raise ValueError(f"{key} must be a number, got {raw!r}") from exc
    return raw


def load_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Service config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid service config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Service config must be a JSON object")

    allowed = {f.name for f in fields(ServiceConfig)}
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown service config keys: {unknown}")

    return {key: _coerce(key, value) for key, value in payload.items() if value is not None}


def load_config(path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> ServiceConfig:
    """
    Defaults <- JSON config file <- environment variables.

    `path` defaults to $FRESHTRACK_CONFIG when set.
    """

    env = os.environ if env is None else env
    if path is None and env.get("FRESHTRACK_CONFIG"):
        path = Path(env["FRESHTRACK_CONFIG"])

    overrides: Dict[str, Any] = {}
    if path is not None:
        overrides.update(load_config_file(path))

    for env_key, key in ENV_KEYS.items():
        raw = env.get(env_key)
        if raw is None or not raw.strip():
            continue
        overrides[key] = _coerce(key, _parse_env_value(key, raw))

    return replace(ServiceConfig(), **overrides)
