from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class BoundingBox:
    top: float
    left: float
    bottom: float
    right: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.left, self.top, self.right, self.bottom


@dataclass(frozen=True)
class Detection:
    """
    Final detection record for one image.

    `index` is the row of the candidate inside that image's DetectionSet
    (after pre-NMS trimming, if any).
    """

    index: int
    box: BoundingBox
    score: float
    class_id: int

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.box.as_xyxy()


def detections_to_array(detections: Sequence[Detection]) -> np.ndarray:
    """
    Pack detections into the decoded YOLO layout (N, 6): [x1, y1, x2, y2, score, class_id].
    """

    if not detections:
        return np.zeros((0, 6), dtype=np.float32)
    return np.array(
        [(*d.as_xyxy(), d.score, d.class_id) for d in detections],
        dtype=np.float32,
    )
