import argparse
import logging

from censor_kit import Detector, DetectorConfig
from Gallery_Censor import CensorConfig, load_image, should_censor


def main() -> int:
    parser = argparse.ArgumentParser(description="Run detection on one image and print the censor decision.")
    parser.add_argument("image", help="Path to an input image.")
    parser.add_argument("--model", default="Models/yolo11n.onnx", help="Path to a YOLO model (.onnx/.pt).")
    parser.add_argument("--labels", default="Models/coco_labels.txt", help="Label file.")
    parser.add_argument("--imgsz", type=int, default=640, help="Letterbox input size (e.g., 640).")
    parser.add_argument("--conf", type=float, default=0.25, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=0.45, help="IoU threshold for NMS.")
    parser.add_argument("--censor-class", action="append", default=None, help="Class name to censor (repeatable).")
    parser.add_argument("--debug", action="store_true", help="Log pipeline details.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)

    config = CensorConfig(confidence_threshold=args.conf, iou_threshold=args.iou)
    if args.censor_class:
        config = config.replace(censored_classes=frozenset(args.censor_class))

    detector = Detector(
        DetectorConfig(input_size=(args.imgsz, args.imgsz), conf_threshold=args.conf, iou_threshold=args.iou)
    )
    detector.initialize(args.model, labels_path=args.labels)
    try:
        detections = detector.detect(load_image(args.image))
    finally:
        detector.release()

    for det in detections:
        print(det.class_name, f"{det.score:.3f}", det.as_xyxy())
    censored = should_censor(detections, config.confidence_threshold, config.censored_classes)
    print("censored" if censored else "verified")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
