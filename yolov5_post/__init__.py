"""
Post-processing for raw YOLOv5 detection-head outputs.

Takes the per-layer tensors of a YOLOv5 model exported without its `Detect`
decode, decodes anchor/grid offsets into pixel boxes, applies the confidence
threshold and greedy NMS, and returns detections per image of the batch.
Only depends on NumPy.
"""

from .types import BoundingBox, Detection, detections_to_array
from .boxes import box_iou, centered_box_to_ltrb
from .detection_set import DetectionSet
from .decode import YOLOV5_ANCHORS, YOLOV5_STRIDES, anchors_from_pixels, box_decode
from .nms import NMSConfig, nms
from .postprocess import Yolov5Postprocessor, Yolov5PostConfig
from .config import PostprocessFileConfig, load_postprocess_config

__all__ = [
    "BoundingBox",
    "Detection",
    "detections_to_array",
    "box_iou",
    "centered_box_to_ltrb",
    "DetectionSet",
    "YOLOV5_ANCHORS",
    "YOLOV5_STRIDES",
    "anchors_from_pixels",
    "box_decode",
    "NMSConfig",
    "nms",
    "Yolov5Postprocessor",
    "Yolov5PostConfig",
    "PostprocessFileConfig",
    "load_postprocess_config",
]
