from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Union

from freshdet import (
    Candidate,
    DecoderConfig,
    DetectionPipeline,
    NMSConfig,
    PreprocessConfig,
    load_class_names,
    load_pipeline,
)

from .config import ServiceConfig
from .storage import StorageAdviceTable


PathLike = Union[str, Path]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Detection:
    candidate: Candidate
    storage: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        payload = self.candidate.to_dict()
        payload["storage"] = self.storage
        return payload


class DetectionService:
    """
    Runs the detection pipeline and joins each result with storage advice.
    """

    def __init__(self, pipeline: DetectionPipeline, storage: StorageAdviceTable):
        self.pipeline = pipeline
        self.storage = storage

    def detect(self, image_path: PathLike) -> List[Detection]:
        # The pipeline deletes image_path whatever the outcome.
        candidates = self.pipeline.process(image_path)
        return [Detection(candidate=c, storage=self.storage.lookup(c.label)) for c in candidates]

    def preload(self) -> None:
        self.pipeline.model.load()


def build_pipeline(config: ServiceConfig) -> DetectionPipeline:
    labels = load_class_names(config.metadata_path)
    logger.info("Loaded %d class labels from %s", len(labels), config.metadata_path)
    return load_pipeline(
        config.model_path,
        backend=config.backend,
        labels=labels,
        preprocess_cfg=PreprocessConfig(input_size=(config.input_size, config.input_size)),
        decoder_cfg=DecoderConfig(
            conf_threshold=config.confidence_threshold,
            layout=config.output_layout,
            score_mode=config.score_mode,
        ),
        nms_cfg=NMSConfig(iou_threshold=config.nms_threshold, class_agnostic=config.class_agnostic_nms),
    )


def build_service(config: ServiceConfig) -> DetectionService:
    return DetectionService(build_pipeline(config), StorageAdviceTable.from_json(config.storage_data_path))
