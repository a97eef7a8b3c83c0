from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np

from .decode import MAX_DECODE_BOXES, box_decode, validate_anchor_table
from .detection_set import DetectionSet
from .nms import NMSConfig, nms
from .types import BoundingBox, Detection


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class Yolov5PostConfig:
    """
    Settings for YOLOv5 post processing.
    """

    conf_threshold: float = 0.25
    iou_threshold: float = 0.45
    # Added to the IoU denominator so zero-area boxes do not divide by zero.
    epsilon: float = 1e-5
    # If True, boxes of all classes suppress each other.
    agnostic: bool = False
    # Candidates kept per image while decoding; the rest are dropped.
    max_decode_boxes: int = MAX_DECODE_BOXES
    # Sets larger than this are trimmed to the top scores before NMS.
    max_nms_candidates: int = 30_000
    max_detections: int = 300
    # None infers the class count from the first input tensor.
    num_classes: Optional[int] = None
    # > 1 runs NMS for the images of a batch on a thread pool.
    max_workers: int = 1

    def __post_init__(self) -> None:
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be within [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be within [0, 1]")
        if self.epsilon < 0:
            raise ValueError("epsilon must be >= 0")
        if self.max_decode_boxes < 1:
            raise ValueError("max_decode_boxes must be >= 1")
        if self.max_nms_candidates < 1:
            raise ValueError("max_nms_candidates must be >= 1")
        if self.max_detections < 1:
            raise ValueError("max_detections must be >= 1")
        if self.num_classes is not None and self.num_classes < 1:
            raise ValueError("num_classes must be >= 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")


class Yolov5Postprocessor:
    """
    Post-process for YOLOv5 detection heads exported without the `Detect` decode.

    Input per call (batched): one array per detection layer, each shaped
    (batch, anchor, grid_y, grid_x, 5 + C) with channels
    [cx, cy, w, h, obj, class_scores...].

    Output: one list of `Detection` per image, ordered as NMS accepted them
    (highest score first). Boxes are in model input pixel coordinates.

    Anchors are (num_layers, num_anchors, 2) in grid units, use
    `anchors_from_pixels` for anchors taken from a model YAML.
    """

    def __init__(
        self,
        anchors: np.ndarray,
        strides: Sequence[float],
        cfg: Yolov5PostConfig = Yolov5PostConfig(),
    ):
        anchors = np.array(anchors, dtype=np.float32)
        validate_anchor_table(anchors, strides)
        anchors.setflags(write=False)

        self.anchors = anchors
        self.strides = tuple(float(s) for s in strides)
        self.cfg = cfg
        logger.info("Created %s", self)

    @classmethod
    def from_config_file(cls, path: PathLike) -> "Yolov5Postprocessor":
        from .config import load_postprocess_config

        loaded = load_postprocess_config(Path(path))
        return cls(loaded.anchors, loaded.strides, loaded.post)

    def __repr__(self) -> str:
        return (
            f"Yolov5Postprocessor(anchors={self.anchors.tolist()!r}, strides={list(self.strides)!r}, "
            f"cfg={self.cfg!r})"
        )

    def __str__(self) -> str:
        return (
            f"Yolov5Postprocessor(num_detection_layers={self.anchors.shape[0]}, "
            f"num_anchors={self.anchors.shape[1]}, strides={list(self.strides)})"
        )

    def __call__(self, inputs: Sequence[np.ndarray]) -> List[List[Detection]]:
        return self.eval(inputs, self.cfg.conf_threshold, self.cfg.iou_threshold)

    def eval(
        self,
        inputs: Sequence[np.ndarray],
        conf_threshold: float,
        iou_threshold: float,
        epsilon: Optional[float] = None,
        agnostic: Optional[bool] = None,
    ) -> List[List[Detection]]:
        """
        Decode, threshold and suppress a batch of raw outputs.

        Args:
            inputs: one raw tensor per detection layer
            conf_threshold: candidates need a score strictly above this
            iou_threshold: boxes overlapping an accepted box by more than this are dropped
            epsilon: IoU denominator stabiliser (config value if None)
            agnostic: class-agnostic NMS (config value if None)

        Returns:
            One list of detections per image, in batch order.
        """

        nms_cfg = NMSConfig(
            iou_threshold=float(iou_threshold),
            epsilon=self.cfg.epsilon if epsilon is None else float(epsilon),
            agnostic=self.cfg.agnostic if agnostic is None else bool(agnostic),
            max_detections=self.cfg.max_detections,
        )

        sets = box_decode(
            inputs,
            self.anchors,
            self.strides,
            float(conf_threshold),
            max_boxes=self.cfg.max_decode_boxes,
            num_classes=self.cfg.num_classes,
        )

        if self.cfg.max_workers > 1 and len(sets) > 1:
            with ThreadPoolExecutor(max_workers=self.cfg.max_workers) as executor:
                return list(executor.map(lambda s: self._suppress(s, nms_cfg), sets))
        return [self._suppress(s, nms_cfg) for s in sets]

    # ------------------------------------------------------------------ #
    # Helper internal
    # ------------------------------------------------------------------ #
    def _suppress(self, dset: DetectionSet, nms_cfg: NMSConfig) -> List[Detection]:
        if len(dset) > self.cfg.max_nms_candidates:
            logger.debug("trimming %d candidates to %d before NMS", len(dset), self.cfg.max_nms_candidates)
            dset.sort_by_score_and_trim(self.cfg.max_nms_candidates)

        keep = nms(dset, nms_cfg)
        return [
            Detection(
                index=int(i),
                box=BoundingBox(
                    top=float(dset.y1[i]),
                    left=float(dset.x1[i]),
                    bottom=float(dset.y2[i]),
                    right=float(dset.x2[i]),
                ),
                score=float(dset.scores[i]),
                class_id=int(dset.classes[i]),
            )
            for i in keep
        ]
