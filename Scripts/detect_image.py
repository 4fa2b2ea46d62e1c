from __future__ import annotations

import argparse
import json
from pathlib import Path

import cv2

from freshdet import (
    DecoderConfig,
    ImageDecodeError,
    NMSConfig,
    PreprocessConfig,
    draw_candidates,
    load_class_names,
    load_pipeline,
)
from freshdet.postprocess import LAYOUTS, SCORE_MODES
from freshtrack.config import DATA_DIR
from freshtrack.storage import StorageAdviceTable


def parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Run the food detector on a local image (the image is not deleted).")
    ap.add_argument("--image", required=True, help="Path to the input image.")
    ap.add_argument("--model", default="models/best.onnx", help="Exported model (.onnx or .torchscript).")
    ap.add_argument("--metadata", default=str(DATA_DIR / "metadata.yaml"), help="Label table (names: block).")
    ap.add_argument("--storage-data", default=str(DATA_DIR / "storage_data.json"))
    ap.add_argument("--imgsz", type=int, default=640, help="Model input size (square).")
    ap.add_argument("--conf", type=float, default=0.5)
    ap.add_argument("--iou", type=float, default=0.4)
    ap.add_argument("--layout", choices=LAYOUTS, default="predictions_first")
    ap.add_argument("--score-mode", choices=SCORE_MODES, default="objectness")
    ap.add_argument("--per-class-nms", action="store_true", help="Suppress only within the same class.")
    ap.add_argument("--save", default=None, help="Write an annotated copy (model input resolution) here.")
    ap.add_argument("--json", action="store_true", help="Print detections as JSON.")
    return ap.parse_args()


def main() -> int:
    args = parse_args()

    pipeline = load_pipeline(
        args.model,
        labels=load_class_names(args.metadata),
        preprocess_cfg=PreprocessConfig(input_size=(args.imgsz, args.imgsz)),
        decoder_cfg=DecoderConfig(conf_threshold=args.conf, layout=args.layout, score_mode=args.score_mode),
        nms_cfg=NMSConfig(iou_threshold=args.iou, class_agnostic=not args.per_class_nms),
    )
    storage = StorageAdviceTable.from_json(args.storage_data)

    try:
        image_rgb = pipeline.preparer.load(args.image)
    except ImageDecodeError as e:
        print(f"[ERROR] {e}")
        return 2

    candidates = pipeline.detect_array(image_rgb)

    if args.json:
        payload = [dict(c.to_dict(), storage=storage.lookup(c.label)) for c in candidates]
        print(json.dumps(payload, indent=2))
    else:
        print(f"{len(candidates)} detections")
        for c in candidates:
            advice = storage.lookup(c.label)
            print(f"{c.label:<20} {c.confidence:.2f}  xywh=({c.x:.1f}, {c.y:.1f}, {c.width:.1f}, {c.height:.1f})  -> {advice['storage']}")

    if args.save:
        resized = cv2.resize(image_rgb, (args.imgsz, args.imgsz), interpolation=cv2.INTER_LINEAR)
        vis = draw_candidates(cv2.cvtColor(resized, cv2.COLOR_RGB2BGR), candidates)
        out = Path(args.save)
        out.parent.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(str(out), vis)
        print(f"Saved: {out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
