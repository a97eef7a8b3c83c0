"""
Decoding of raw YOLOv5 detection-head tensors into per-image candidate sets.

Each detection scale produces a tensor shaped
(batch, anchor_slot, grid_y, grid_x, 5 + num_classes) with channels
[box_cx, box_cy, box_w, box_h, objectness, class_0 ... class_{C-1}].

Boxes are decoded the way the YOLOv5 `Detect` head does it:

    xy = (raw_xy * 2 - 0.5 + grid) * stride
    wh = (raw_wh * 2) ** 2 * anchor * stride

Anchors are given in grid units (as stored in a YOLOv5 checkpoint) and are
scaled by the stride of their layer.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .boxes import centered_box_to_ltrb
from .detection_set import DetectionSet


logger = logging.getLogger(__name__)

# Stock YOLOv5 P3/P4/P5 anchors in pixels, (w, h) per slot.
YOLOV5_ANCHORS = np.array(
    [
        [[10, 13], [16, 30], [33, 23]],
        [[30, 61], [62, 45], [59, 119]],
        [[116, 90], [156, 198], [373, 326]],
    ],
    dtype=np.float32,
)
YOLOV5_STRIDES = (8.0, 16.0, 32.0)

NUM_BOX_CHANNELS = 5
MAX_DECODE_BOXES = 10_000


def anchors_from_pixels(pixel_anchors: np.ndarray, strides: Sequence[float]) -> np.ndarray:
    """
    Convert pixel anchors (as written in a model YAML) into grid units.
    """

    anchors = np.asarray(pixel_anchors, dtype=np.float32)
    validate_anchor_table(anchors, strides)
    return anchors / np.asarray(strides, dtype=np.float32)[:, None, None]


def validate_anchor_table(anchors: np.ndarray, strides: Sequence[float]) -> None:
    if anchors.ndim != 3:
        raise ValueError(f"anchors must be 3-D (num_scales, num_anchors, 2), got shape {anchors.shape}")
    if anchors.shape[2] != 2:
        raise ValueError(f"anchors' last dimension must be 2, got shape {anchors.shape}")
    if len(strides) != anchors.shape[0]:
        raise ValueError(
            f"strides must have one entry per detection layer: got {len(strides)} strides "
            f"for {anchors.shape[0]} anchor layers"
        )
    if any(float(s) <= 0 for s in strides):
        raise ValueError(f"strides must be > 0, got {list(strides)}")


def _check_inputs(
    inputs: Sequence[np.ndarray],
    anchors: np.ndarray,
    num_classes: Optional[int],
) -> Tuple[int, int]:
    """
    Validate per-scale tensors against the anchor table.

    Returns (batch_size, num_classes).
    """

    if len(inputs) != anchors.shape[0]:
        raise ValueError(f"Expected {anchors.shape[0]} input tensors (one per detection layer), got {len(inputs)}")

    batch_size: Optional[int] = None
    for scale, t in enumerate(inputs):
        if t.ndim != 5:
            raise ValueError(
                f"Input {scale}: expected shape (batch, anchor, grid_y, grid_x, 5 + num_classes), got {t.shape}"
            )
        if t.shape[1] != anchors.shape[1]:
            raise ValueError(f"Input {scale}: expected {anchors.shape[1]} anchor slots, got shape {t.shape}")

        channels = t.shape[4]
        if num_classes is None:
            if channels <= NUM_BOX_CHANNELS:
                raise ValueError(f"Input {scale}: expected at least one class channel, got shape {t.shape}")
            num_classes = channels - NUM_BOX_CHANNELS
        elif channels != NUM_BOX_CHANNELS + num_classes:
            raise ValueError(
                f"Input {scale}: expected {NUM_BOX_CHANNELS + num_classes} channels "
                f"(5 + {num_classes} classes), got shape {t.shape}"
            )

        if batch_size is None:
            batch_size = t.shape[0]
        elif t.shape[0] != batch_size:
            raise ValueError(f"Input {scale}: batch size {t.shape[0]} does not match {batch_size}")

    return int(batch_size or 0), int(num_classes or 0)


def _decode_scale(
    t: np.ndarray,
    anchors: np.ndarray,
    stride: float,
    conf_threshold: float,
) -> Tuple[np.ndarray, Tuple[np.ndarray, ...]]:
    """
    Decode one detection layer for the whole batch.

    Returns the batch index of every candidate and the candidate columns
    (x1, y1, x2, y2, scores, classes), ordered by batch, anchor, y, x, class.
    """

    objectness = t[..., 4]
    b, a, gy, gx = np.nonzero(objectness > conf_threshold)
    cells = t[b, a, gy, gx]  # (K, 5 + C)

    confs = cells[:, NUM_BOX_CHANNELS:] * cells[:, 4:5]
    rows, classes = np.nonzero(confs > conf_threshold)
    scores = confs[rows, classes]
    cells = cells[rows]
    b, a = b[rows], a[rows]
    gy = gy[rows].astype(np.float32)
    gx = gx[rows].astype(np.float32)

    anchor_wh = anchors * stride  # (A, 2)
    cy = (cells[:, 1] * 2.0 - 0.5 + gy) * stride
    cx = (cells[:, 0] * 2.0 - 0.5 + gx) * stride
    h = 4.0 * cells[:, 3] * cells[:, 3] * anchor_wh[a, 1]
    w = 4.0 * cells[:, 2] * cells[:, 2] * anchor_wh[a, 0]

    x1, y1, x2, y2 = centered_box_to_ltrb(cy, cx, w, h)
    return b, (x1, y1, x2, y2, scores, classes.astype(np.float32))


def box_decode(
    inputs: Sequence[np.ndarray],
    anchors: np.ndarray,
    strides: Sequence[float],
    conf_threshold: float,
    max_boxes: int = MAX_DECODE_BOXES,
    num_classes: Optional[int] = None,
) -> List[DetectionSet]:
    """
    Decode raw per-scale tensors into one DetectionSet per image.

    A candidate is emitted for every (cell, class) where objectness and
    class_conf * objectness are both strictly greater than `conf_threshold`.
    At most `max_boxes` candidates are kept per image; the rest are dropped.

    Raises:
        ValueError: if the tensors do not match the anchor table or each other.
    """

    anchors = np.asarray(anchors, dtype=np.float32)
    validate_anchor_table(anchors, strides)
    tensors = [np.asarray(t, dtype=np.float32) for t in inputs]
    batch_size, _ = _check_inputs(tensors, anchors, num_classes)

    sets = [DetectionSet.empty() for _ in range(batch_size)]
    images = np.arange(batch_size)

    for scale, (t, stride) in enumerate(zip(tensors, strides)):
        batch_idx, columns = _decode_scale(t, anchors[scale], float(stride), conf_threshold)
        starts = np.searchsorted(batch_idx, images, side="left")
        ends = np.searchsorted(batch_idx, images, side="right")

        for i in range(batch_size):
            room = max_boxes - len(sets[i])
            start, end = int(starts[i]), int(ends[i])
            if room <= 0 or start == end:
                continue
            if end - start > room:
                logger.debug(
                    "image %d: candidate cap %d reached at layer %d, dropping %d candidates",
                    i,
                    max_boxes,
                    scale,
                    end - start - room,
                )
                end = start + room
            sets[i].append(*(col[start:end] for col in columns))

    logger.debug("decoded candidates per image: %s", [len(s) for s in sets])
    return sets
