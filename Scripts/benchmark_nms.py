from __future__ import annotations

import argparse
import logging
import statistics
import time
from dataclasses import dataclass
from typing import List

import numpy as np

from yolo_postproc import (
    DetectionPostprocessor,
    Layout,
    PostprocessConfig,
    RawOutput,
    ScoreCombination,
    load_postprocess_config,
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
    if q < 0.0 or q > 100.0:
        raise ValueError("q must be in [0, 100].")
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    # Linear interpolation between closest ranks.
    pos = (q / 100.0) * (len(sorted_values) - 1)
    lo = int(np.floor(pos))
    hi = int(np.ceil(pos))
    if lo == hi:
        return float(sorted_values[lo])
    t = pos - lo
    return float(sorted_values[lo] * (1.0 - t) + sorted_values[hi] * t)


def _summarize_ms(values_s: List[float]) -> TimingSummary:
    ms_sorted = sorted(v * 1000.0 for v in values_s)
    return TimingSummary(
        n=len(ms_sorted),
        mean_ms=float(statistics.fmean(ms_sorted)) if ms_sorted else 0.0,
        p50_ms=_percentile(ms_sorted, 50.0) if ms_sorted else 0.0,
        p90_ms=_percentile(ms_sorted, 90.0) if ms_sorted else 0.0,
        p95_ms=_percentile(ms_sorted, 95.0) if ms_sorted else 0.0,
    )


def _format_summary(label: str, s: TimingSummary) -> str:
    return (
        f"{label}: n={s.n} mean={s.mean_ms:.3f}ms p50={s.p50_ms:.3f}ms "
        f"p90={s.p90_ms:.3f}ms p95={s.p95_ms:.3f}ms"
    )


def synthetic_raw_output(cfg: PostprocessConfig, anchors: int, seed: int = 0) -> RawOutput:
    """
    Random (attrs, A) / (A, attrs) tensor shaped like a YOLO export for `cfg`.
    """

    rng = np.random.default_rng(seed)
    model_w, model_h = cfg.model_size
    cxcy = rng.uniform(0, [model_w, model_h], size=(anchors, 2))
    wh = rng.uniform(5, 80, size=(anchors, 2))
    cols = [cxcy, wh]
    if cfg.score_combination is ScoreCombination.OBJECTNESS:
        cols.append(rng.uniform(0.0, 1.0, size=(anchors, 1)))
    # Mostly low class scores, like a real frame.
    cols.append(rng.beta(0.5, 8.0, size=(anchors, cfg.num_classes)))
    rows = np.concatenate(cols, axis=1).astype(np.float32)

    if cfg.layout is Layout.ATTRIBUTE_MAJOR:
        return RawOutput.from_tensor(rows.T[None, ...], Layout.ATTRIBUTE_MAJOR)
    return RawOutput.from_tensor(rows[None, ...], Layout.ANCHOR_MAJOR)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Benchmark detector postprocess latency with NMS vs without NMS (top-K only)."
    )
    parser.add_argument("--config", default=None, help="Optional postprocess config JSON.")
    parser.add_argument("--anchors", type=int, default=8400, help="Synthetic anchor count (8400 for 640x640 YOLOv8).")
    parser.add_argument("--classes", type=int, default=80, help="Number of classes (ignored with --config).")
    parser.add_argument("--objectness", action="store_true", help="Synthesize an objectness row (ignored with --config).")
    parser.add_argument("--conf", type=float, default=0.25, help="Confidence threshold (ignored with --config).")
    parser.add_argument("--iou", type=float, default=0.45, help="IoU threshold for NMS (ignored with --config).")
    parser.add_argument("--max-det", type=int, default=50, help="Max detections to keep after NMS/top-K.")
    parser.add_argument("--target", type=int, nargs=2, default=(1280, 720), metavar=("W", "H"), help="Display size.")
    parser.add_argument("--warmup", type=int, default=10, help="Warmup iterations to run but not record.")
    parser.add_argument("--iterations", type=int, default=200, help="Recorded iterations.")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG shows per-stage counts).")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.anchors < 1:
        raise ValueError("--anchors must be >= 1")
    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.iterations < 1:
        raise ValueError("--iterations must be >= 1")
    if args.max_det < 1:
        raise ValueError("--max-det must be >= 1")

    if args.config:
        base = load_postprocess_config(args.config)
    else:
        base = PostprocessConfig(
            num_classes=int(args.classes),
            conf_threshold=float(args.conf),
            iou_threshold=float(args.iou),
            score_combination=ScoreCombination.OBJECTNESS if args.objectness else ScoreCombination.DIRECT,
            max_detections=int(args.max_det),
        )
    post_with_nms = DetectionPostprocessor(base)
    post_no_nms = DetectionPostprocessor(
        PostprocessConfig(
            num_classes=base.num_classes,
            conf_threshold=base.conf_threshold,
            iou_threshold=base.iou_threshold,
            layout=base.layout,
            score_combination=base.score_combination,
            model_size=base.model_size,
            max_detections=base.max_detections or int(args.max_det),
            apply_nms=False,
        )
    )

    raw = synthetic_raw_output(base, int(args.anchors))
    target = (int(args.target[0]), int(args.target[1]))

    t_nms: List[float] = []
    t_no: List[float] = []
    kept = 0
    for step in range(int(args.warmup) + int(args.iterations)):
        t0 = time.perf_counter()
        result = post_with_nms.process(raw, target_size=target)
        t1 = time.perf_counter()
        post_no_nms.process(raw, target_size=target)
        t2 = time.perf_counter()
        if not result.ok:
            raise RuntimeError(f"Postprocess failed: {result.error}")
        if step < int(args.warmup):
            continue
        t_nms.append(t1 - t0)
        t_no.append(t2 - t1)
        kept = len(result)

    print(_format_summary("postprocess_with_nms", _summarize_ms(t_nms)))
    print(_format_summary("postprocess_no_nms_topk", _summarize_ms(t_no)))
    print(f"anchors={raw.anchor_count} attributes={raw.attributes_per_anchor} kept={kept}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
