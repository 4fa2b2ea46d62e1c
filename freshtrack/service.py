"""FastAPI application: upload a food photo, get detections with storage advice."""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from freshdet import ImageDecodeError, InferenceError, discard_image

from .config import ServiceConfig
from .detection import DetectionService, build_service

__version__ = "2.1.0"

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


class UploadTooLarge(Exception):
    pass


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    body: Dict[str, Any] = {"error": error}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


def _upload_suffix(filename: Optional[str]) -> str:
    suffix = Path(filename or "").suffix.lower()
    if 1 < len(suffix) <= 6 and suffix[1:].isalnum():
        return suffix
    return ""


async def _save_upload(upload: UploadFile, dest: Path, max_bytes: int) -> int:
    size = 0
    with open(dest, "wb") as f:
        while True:
            chunk = await upload.read(_CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > max_bytes:
                raise UploadTooLarge(f"Upload exceeds {max_bytes} bytes")
            await run_in_threadpool(f.write, chunk)
    return size


def create_app(config: ServiceConfig, service: Optional[DetectionService] = None) -> FastAPI:
    """
    Build the HTTP app. `service` defaults to one built from `config`; the model
    itself loads at startup when `config.preload_model` is set, else on the
    first request.
    """

    if service is None:
        service = build_service(config)
    upload_dir = Path(config.upload_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.preload_model:
            logger.info("Preloading detection model...")
            # ModelLoadError here aborts startup.
            await run_in_threadpool(service.preload)
            logger.info("Model ready.")
        yield

    app = FastAPI(title="FreshTrack Backend API", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials="*" not in config.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    @app.get("/")
    def index():
        return {
            "message": "FreshTrack Backend API",
            "version": __version__,
            "status": "Running",
            "endpoints": {
                "/api/detect": "POST - Detect food freshness in an uploaded image",
                "/api/storage/{item}": "GET - Get storage info for a specific item",
                "/api/storage": "GET - Get all storage data",
                "/health": "GET - Check API health",
            },
        }

    @app.get("/health")
    def health():
        return {"status": "OK", "timestamp": _timestamp()}

    @app.post("/api/detect")
    async def detect(image: Optional[UploadFile] = File(None)):
        if image is None:
            return _error(400, "No image file provided")
        if not (image.content_type or "").startswith("image/"):
            return _error(400, "Only image files are allowed!")

        upload_dir.mkdir(parents=True, exist_ok=True)
        path = upload_dir / f"image-{uuid.uuid4().hex}{_upload_suffix(image.filename)}"
        try:
            try:
                await _save_upload(image, path, config.max_file_size)
            except UploadTooLarge as e:
                return _error(413, "File too large", str(e))
            logger.info("Received image: %s -> %s", image.filename, path.name)

            detections = await run_in_threadpool(service.detect, path)
        except ImageDecodeError as e:
            logger.info("Rejected upload %s: %s", image.filename, e)
            return _error(400, "Invalid image", str(e))
        except InferenceError as e:
            logger.error("Detection error: %s", e)
            return _error(500, "Failed to process image", str(e))
        finally:
            # The pipeline already removed the file unless we never reached it.
            discard_image(path)

        enriched = [d.to_dict() for d in detections]
        logger.info("Detection complete: %d objects found", len(enriched))
        return {
            "success": True,
            "detections": enriched,
            "count": len(enriched),
            "timestamp": _timestamp(),
        }

    @app.get("/api/storage/{item}")
    def storage_item(item: str):
        data = service.storage.find(item)
        if data is None:
            return _error(404, "Item not found")
        return {"success": True, "item": item.lower(), "storage": data}

    @app.get("/api/storage")
    def storage_all():
        return {"success": True, "data": service.storage.all()}

    return app
