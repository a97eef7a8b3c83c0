from typing import Optional, Tuple

import numpy as np


def centered_box_to_ltrb(
    cy: np.ndarray,
    cx: np.ndarray,
    w: np.ndarray,
    h: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Convert a batch of center-form boxes into corner form.

    Inputs are 1-D arrays of center-y, center-x, width and height. Returns
    (x1, y1, x2, y2), i.e. (left, top, right, bottom), as float32 arrays.
    """

    cy = np.asarray(cy, dtype=np.float32).reshape(-1)
    cx = np.asarray(cx, dtype=np.float32).reshape(-1)
    w = np.asarray(w, dtype=np.float32).reshape(-1)
    h = np.asarray(h, dtype=np.float32).reshape(-1)

    lengths = {cy.shape[0], cx.shape[0], w.shape[0], h.shape[0]}
    if len(lengths) != 1:
        raise ValueError(
            f"Box components must have equal length, got cy={cy.shape[0]} cx={cx.shape[0]} "
            f"w={w.shape[0]} h={h.shape[0]}"
        )

    half_w = w * 0.5
    half_h = h * 0.5
    return cx - half_w, cy - half_h, cx + half_w, cy + half_h


def box_areas(x1: np.ndarray, y1: np.ndarray, x2: np.ndarray, y2: np.ndarray) -> np.ndarray:
    # Inverted boxes count as zero area.
    return np.maximum(0.0, x2 - x1) * np.maximum(0.0, y2 - y1)


def box_iou(
    box: Tuple[float, float, float, float],
    x1: np.ndarray,
    y1: np.ndarray,
    x2: np.ndarray,
    y2: np.ndarray,
    areas: Optional[np.ndarray] = None,
    epsilon: float = 1e-5,
) -> np.ndarray:
    """
    IoU of one xyxy box against many boxes given as coordinate columns.

    `epsilon` is added to the union so zero-area pairs give 0 instead of NaN.
    """

    bx1, by1, bx2, by2 = box
    box_area = max(0.0, bx2 - bx1) * max(0.0, by2 - by1)
    if areas is None:
        areas = box_areas(x1, y1, x2, y2)

    xx1 = np.maximum(bx1, x1)
    yy1 = np.maximum(by1, y1)
    xx2 = np.minimum(bx2, x2)
    yy2 = np.minimum(by2, y2)

    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    return inter / (box_area + areas - inter + epsilon)
