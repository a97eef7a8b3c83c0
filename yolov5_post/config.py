from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple

import numpy as np

from .decode import anchors_from_pixels, validate_anchor_table
from .postprocess import Yolov5PostConfig


@dataclass(frozen=True)
class PostprocessFileConfig:
    anchors: np.ndarray
    strides: Tuple[float, ...]
    post: Yolov5PostConfig


_FLOAT_KEYS = ("conf_threshold", "iou_threshold", "epsilon")
_INT_KEYS = ("max_decode_boxes", "max_nms_candidates", "max_detections", "num_classes", "max_workers")
_BOOL_KEYS = ("agnostic",)
_ANCHOR_UNITS = ("grid", "pixels")


def _require_number(payload: Dict[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _parse_anchors(payload: Dict[str, Any]) -> np.ndarray:
    if "anchors" not in payload:
        raise ValueError("Missing required key: anchors")
    try:
        anchors = np.array(payload["anchors"], dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise ValueError("anchors must be a nested list of numbers (num_layers, num_anchors, 2)") from exc
    return anchors


def _parse_strides(payload: Dict[str, Any]) -> Tuple[float, ...]:
    if "strides" not in payload:
        raise ValueError("Missing required key: strides")
    strides = payload["strides"]
    if not isinstance(strides, list) or any(isinstance(s, bool) or not isinstance(s, (int, float)) for s in strides):
        raise ValueError("strides must be a list of numbers")
    return tuple(float(s) for s in strides)


def load_postprocess_config(path: Path) -> PostprocessFileConfig:
    """
    Load anchors, strides and post-processing settings from a JSON file.

    Example:

        {
          "anchors": [[[10, 13], [16, 30], [33, 23]], ...],
          "anchor_units": "pixels",
          "strides": [8, 16, 32],
          "conf_threshold": 0.25,
          "iou_threshold": 0.45
        }

    `anchor_units` defaults to "grid". Keys not given keep the
    `Yolov5PostConfig` defaults.
    """

    if not path.exists():
        raise FileNotFoundError(f"Postprocess config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid postprocess config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Postprocess config must be a JSON object")

    allowed = {"anchors", "anchor_units", "strides", *_FLOAT_KEYS, *_INT_KEYS, *_BOOL_KEYS}
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown postprocess config keys: {unknown}")

    anchors = _parse_anchors(payload)
    strides = _parse_strides(payload)
    validate_anchor_table(anchors, strides)

    units = payload.get("anchor_units", "grid")
    if units not in _ANCHOR_UNITS:
        raise ValueError(f"anchor_units must be one of {list(_ANCHOR_UNITS)}, got {units!r}")
    if units == "pixels":
        anchors = anchors_from_pixels(anchors, strides)

    kwargs: Dict[str, Any] = {}
    for key in _FLOAT_KEYS:
        if key in payload:
            kwargs[key] = _require_number(payload, key)
    for key in _INT_KEYS:
        if key in payload and not (key == "num_classes" and payload[key] is None):
            kwargs[key] = _require_int(payload, key)
    for key in _BOOL_KEYS:
        if key in payload:
            if not isinstance(payload[key], bool):
                raise ValueError(f"{key} must be a boolean")
            kwargs[key] = payload[key]

    return PostprocessFileConfig(anchors=anchors, strides=strides, post=Yolov5PostConfig(**kwargs))
