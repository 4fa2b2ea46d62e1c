"""
FreshTrack service layer built on top of `freshdet`.

`freshdet` owns the detection core (tensor, decode, NMS). This package adds:
- service configuration (JSON file + environment)
- storage / shelf-life advice lookup
- the FastAPI app and its entrypoint
"""

from __future__ import annotations

from .config import ServiceConfig, load_config
from .detection import Detection, DetectionService, build_pipeline, build_service
from .storage import UNKNOWN_ITEM, StorageAdviceTable

__all__ = [
    "ServiceConfig",
    "load_config",
    "Detection",
    "DetectionService",
    "build_pipeline",
    "build_service",
    "UNKNOWN_ITEM",
    "StorageAdviceTable",
]
