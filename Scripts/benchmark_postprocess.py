from __future__ import annotations

import argparse
import statistics
import time
from dataclasses import dataclass
from typing import List

import numpy as np

from yolov5_post import (
    YOLOV5_ANCHORS,
    YOLOV5_STRIDES,
    NMSConfig,
    Yolov5PostConfig,
    Yolov5Postprocessor,
    anchors_from_pixels,
    box_decode,
    nms,
)


@dataclass(frozen=True)
class TimingSummary:
    n: int
    mean_ms: float
    p50_ms: float
    p90_ms: float
    p95_ms: float


def _percentile(sorted_values: List[float], q: float) -> float:
    if not sorted_values:
        raise ValueError("No values provided.")
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    # Linear interpolation between closest ranks.
    pos = (q / 100.0) * (len(sorted_values) - 1)
    lo = int(np.floor(pos))
    hi = int(np.ceil(pos))
    t = pos - lo
    return float(sorted_values[lo] * (1.0 - t) + sorted_values[hi] * t)


def _summarize_ms(values_s: List[float]) -> TimingSummary:
    ms_sorted = sorted(v * 1000.0 for v in values_s)
    return TimingSummary(
        n=len(ms_sorted),
        mean_ms=float(statistics.fmean(ms_sorted)),
        p50_ms=_percentile(ms_sorted, 50.0),
        p90_ms=_percentile(ms_sorted, 90.0),
        p95_ms=_percentile(ms_sorted, 95.0),
    )


def _format_summary(label: str, s: TimingSummary) -> str:
    return (
        f"{label}: n={s.n} mean={s.mean_ms:.3f}ms p50={s.p50_ms:.3f}ms "
        f"p90={s.p90_ms:.3f}ms p95={s.p95_ms:.3f}ms"
    )


def _synthetic_inputs(args: argparse.Namespace) -> List[np.ndarray]:
    """
    Random raw head outputs. `--positive-rate` controls the share of cells whose
    objectness is high enough to pass a typical confidence threshold.
    """

    rng = np.random.default_rng(args.seed)
    channels = 5 + int(args.classes)
    num_anchors = YOLOV5_ANCHORS.shape[1]
    tensors = []
    for stride in YOLOV5_STRIDES:
        grid = int(args.imgsz) // int(stride)
        t = rng.uniform(0.0, 1.0, size=(int(args.batch), num_anchors, grid, grid, channels)).astype(np.float32)
        positive = rng.uniform(0.0, 1.0, size=t.shape[:4]) < float(args.positive_rate)
        t[..., 4] = np.where(positive, rng.uniform(0.6, 1.0, size=t.shape[:4]), 0.01)
        tensors.append(t)
    return tensors


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Benchmark YOLOv5 raw-output post-processing (decode, NMS, full pipeline) on synthetic tensors."
    )
    parser.add_argument("--batch", type=int, default=1, help="Images per batch.")
    parser.add_argument("--imgsz", type=int, default=640, help="Model input size (e.g., 640).")
    parser.add_argument("--classes", type=int, default=80, help="Number of classes in the head output.")
    parser.add_argument("--positive-rate", type=float, default=0.01, help="Share of cells with high objectness.")
    parser.add_argument("--conf", type=float, default=0.25, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=0.45, help="IoU threshold for NMS.")
    parser.add_argument("--agnostic", action="store_true", help="Use class-agnostic NMS.")
    parser.add_argument("--workers", type=int, default=1, help="Threads for per-image NMS.")
    parser.add_argument("--warmup", type=int, default=5, help="Warmup iterations to run but not record.")
    parser.add_argument("--repeats", type=int, default=50, help="Recorded iterations.")
    parser.add_argument("--seed", type=int, default=0, help="Random seed for the synthetic tensors.")
    args = parser.parse_args()

    if args.batch < 1:
        raise ValueError("--batch must be >= 1")
    if args.imgsz < 32 or args.imgsz % 32 != 0:
        raise ValueError("--imgsz must be a multiple of 32 and >= 32")
    if args.classes < 1:
        raise ValueError("--classes must be >= 1")
    if not 0.0 <= args.positive_rate <= 1.0:
        raise ValueError("--positive-rate must be within [0, 1]")
    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")

    cfg = Yolov5PostConfig(
        conf_threshold=float(args.conf),
        iou_threshold=float(args.iou),
        agnostic=bool(args.agnostic),
        max_workers=int(args.workers),
    )
    anchors = anchors_from_pixels(YOLOV5_ANCHORS, YOLOV5_STRIDES)
    post = Yolov5Postprocessor(anchors, YOLOV5_STRIDES, cfg)
    nms_cfg = NMSConfig(iou_threshold=cfg.iou_threshold, epsilon=cfg.epsilon, agnostic=cfg.agnostic)
    inputs = _synthetic_inputs(args)

    t_decode: List[float] = []
    t_nms: List[float] = []
    t_full: List[float] = []
    candidates = 0
    kept = 0

    for it in range(int(args.warmup) + int(args.repeats)):
        t0 = time.perf_counter()
        sets = box_decode(inputs, post.anchors, post.strides, cfg.conf_threshold, max_boxes=cfg.max_decode_boxes)
        t1 = time.perf_counter()
        for s in sets:
            nms(s, nms_cfg)
        t2 = time.perf_counter()
        results = post(inputs)
        t3 = time.perf_counter()

        if it < int(args.warmup):
            continue
        t_decode.append(t1 - t0)
        t_nms.append(t2 - t1)
        t_full.append(t3 - t2)
        candidates = sum(len(s) for s in sets)
        kept = sum(len(r) for r in results)

    print(post)
    print(_format_summary("decode", _summarize_ms(t_decode)))
    print(_format_summary("nms", _summarize_ms(t_nms)))
    print(_format_summary("postprocess", _summarize_ms(t_full)))
    print(f"batch={args.batch} candidates={candidates} detections={kept}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
