from dataclasses import dataclass
from typing import Optional

import numpy as np

from .boxes import box_areas, box_iou
from .detection_set import DetectionSet

# Offset applied per class id so boxes of different classes never overlap.
# Must exceed any image dimension.
MAX_WH = 7680.0


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.45
    epsilon: float = 1e-5
    agnostic: bool = False
    max_detections: Optional[int] = 300


def nms(boxes: DetectionSet, cfg: NMSConfig = NMSConfig()) -> np.ndarray:
    """
    Greedy NumPy NMS over one image's DetectionSet.

    Repeatedly accepts the highest remaining score and drops every remaining
    box whose IoU with it is greater than `cfg.iou_threshold`. Unless
    `cfg.agnostic` is set, boxes are shifted by `class_id * MAX_WH` first so
    that suppression only happens within a class.

    Returns row indices in acceptance order (highest score first). Equal
    scores are accepted in row order.
    """

    if len(boxes) == 0:
        return np.empty((0,), dtype=np.int64)

    if cfg.agnostic:
        offset = np.zeros_like(boxes.classes)
    else:
        offset = boxes.classes * np.float32(MAX_WH)
    x1 = boxes.x1 + offset
    y1 = boxes.y1 + offset
    x2 = boxes.x2 + offset
    y2 = boxes.y2 + offset
    areas = box_areas(x1, y1, x2, y2)

    order = np.argsort(-boxes.scores, kind="stable")
    keep = []

    while order.size > 0:
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break
        i = order[0]
        keep.append(i)

        rest = order[1:]
        iou = box_iou(
            (x1[i], y1[i], x2[i], y2[i]),
            x1[rest],
            y1[rest],
            x2[rest],
            y2[rest],
            areas=areas[rest],
            epsilon=cfg.epsilon,
        )
        order = rest[iou <= cfg.iou_threshold]

    return np.array(keep, dtype=np.int64)
