from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .errors import ConfigError
from .types import Candidates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.45
    max_detections: Optional[int] = None

    def __post_init__(self) -> None:
        if not (0.0 <= float(self.iou_threshold) <= 1.0):
            raise ConfigError(f"iou_threshold must be in [0, 1], got {self.iou_threshold!r}")
        if self.max_detections is not None and self.max_detections < 1:
            raise ConfigError("max_detections must be >= 1 when set")


def iou(box_a: Sequence[float], box_b: Sequence[float]) -> float:
    """
    Intersection over union of two corner-form boxes. 0.0 when the union is empty.
    """

    x1a, y1a, x2a, y2a = (float(v) for v in box_a)
    x1b, y1b, x2b, y2b = (float(v) for v in box_b)
    inter = max(0.0, min(x2a, x2b) - max(x1a, x1b)) * max(0.0, min(y2a, y2b) - max(y1a, y1b))
    area_a = (x2a - x1a) * (y2a - y1a)
    area_b = (x2b - x1b) * (y2b - y1b)
    union = area_a + area_b - inter
    if not union > 0:
        return 0.0
    return inter / union


def iou_one_to_many(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    Vectorized `iou` of one (4,) box against (N, 4) boxes.
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    xx1 = np.maximum(box[0], boxes[:, 0])
    yy1 = np.maximum(box[1], boxes[:, 1])
    xx2 = np.minimum(box[2], boxes[:, 2])
    yy2 = np.minimum(box[3], boxes[:, 3])

    w = np.maximum(0.0, xx2 - xx1)
    h = np.maximum(0.0, yy2 - yy1)
    inter = w * h
    area = (box[2] - box[0]) * (box[3] - box[1])
    areas = (boxes[:, 2] - boxes[:, 0]) * (boxes[:, 3] - boxes[:, 1])
    union = area + areas - inter
    out = np.zeros_like(inter)
    np.divide(inter, union, out=out, where=union > 0)
    return out


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of boxes to keep, highest score first.

    Equal scores keep their input order. A box is suppressed only when its IoU
    with an already selected box is strictly greater than `cfg.iou_threshold`.
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    if boxes.shape[0] == 0:
        return np.empty((0,), dtype=np.int64)

    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    scores = np.where(np.isnan(scores), -np.inf, scores)
    order = np.argsort(-scores, kind="stable")
    keep: List[int] = []

    while order.size > 0:
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break
        i = order[0]
        keep.append(int(i))

        overlaps = iou_one_to_many(boxes[i], boxes[order[1:]])
        order = order[1:][overlaps <= cfg.iou_threshold]

    return np.array(keep, dtype=np.int64)


def batched_nms(boxes: np.ndarray, scores: np.ndarray, class_ids: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Per-class NMS; survivors of every class merged by score (stable).
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    class_ids = np.asarray(class_ids)
    kept: List[int] = []
    per_class = NMSConfig(iou_threshold=cfg.iou_threshold)
    for cls in np.unique(class_ids):
        idx = np.where(class_ids == cls)[0]
        keep_local = nms(boxes[idx], scores[idx], per_class)
        kept.extend(idx[keep_local].tolist())

    if not kept:
        return np.empty((0,), dtype=np.int64)

    kept_arr = np.sort(np.array(kept, dtype=np.int64))
    s = scores[kept_arr]
    s = np.where(np.isnan(s), -np.inf, s)
    kept_arr = kept_arr[np.argsort(-s, kind="stable")]
    if cfg.max_detections is not None:
        kept_arr = kept_arr[: cfg.max_detections]
    return kept_arr


def suppress(candidates: Candidates, cfg: NMSConfig, class_agnostic: bool = True) -> Candidates:
    if len(candidates) == 0:
        return candidates
    if class_agnostic:
        keep_idx = nms(candidates.boxes, candidates.scores, cfg)
    else:
        keep_idx = batched_nms(candidates.boxes, candidates.scores, candidates.class_ids, cfg)
    out = candidates.select(keep_idx)
    logger.debug("nms (iou > %.3f suppressed): %d -> %d", cfg.iou_threshold, len(candidates), len(out))
    return out


def select_topk(candidates: Candidates, max_detections: Optional[int]) -> Candidates:
    """
    Top-K by score without suppression (stable on ties).
    """

    if max_detections is None or len(candidates) <= max_detections:
        return candidates
    order = np.argsort(-candidates.scores, kind="stable")[:max_detections]
    return candidates.select(order)
