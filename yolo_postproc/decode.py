"""
Decode detector outputs into corner-form candidates.

Two entry points:
- `decode_raw_output`: raw (4 + C) / (5 + C) per-anchor tensors, either layout
- `decode_presuppressed`: already-suppressed (boxes, scores, class_ids, valid_count)
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from .config import BoxOrder, Layout, PostprocessConfig, ScoreCombination
from .errors import ShapeError
from .types import Candidates, RawOutput

logger = logging.getLogger(__name__)


def cxcywh_to_xyxy(boxes: np.ndarray) -> np.ndarray:
    """
    (N, 4) center-form -> (N, 4) corner-form. Returns a new array.
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    cx, cy, w_box, h_box = boxes.T
    x1 = cx - w_box / 2
    y1 = cy - h_box / 2
    x2 = cx + w_box / 2
    y2 = cy + h_box / 2
    return np.stack([x1, y1, x2, y2], axis=1)


def _sanitize_scores(scores: np.ndarray) -> np.ndarray:
    # NaN / +-inf rank below every real score so they never pass the filter.
    return np.where(np.isfinite(scores), scores, -np.inf)


def resolve_layout(raw: RawOutput, cfg: PostprocessConfig) -> Layout:
    """
    The config layout, unless the output declares its own; a disagreement is a ShapeError.
    """

    if raw.layout is None:
        return cfg.layout
    try:
        layout = Layout(raw.layout)
    except ValueError as exc:
        raise ShapeError(f"Unknown layout: {raw.layout!r}") from exc
    if layout is not cfg.layout:
        raise ShapeError(f"RawOutput layout {layout.value} disagrees with configured layout {cfg.layout.value}")
    return layout


def _anchor_rows(raw: RawOutput, cfg: PostprocessConfig) -> np.ndarray:
    """
    Validate the declared shape and return an (A, attrs) view in anchor-major order.
    """

    attrs = int(raw.attributes_per_anchor)
    anchors = int(raw.anchor_count)
    if attrs < 4:
        raise ShapeError(f"attributes_per_anchor must be >= 4, got {attrs}")
    if anchors < 0:
        raise ShapeError(f"anchor_count must be >= 0, got {anchors}")

    expected = cfg.expected_attributes()
    if attrs != expected:
        raise ShapeError(
            f"attributes_per_anchor={attrs} does not match num_classes={cfg.num_classes} "
            f"with score_combination={cfg.score_combination.value} (expected {expected})"
        )

    buf = np.asarray(raw.buffer, dtype=np.float64).reshape(-1)
    if buf.size != anchors * attrs:
        raise ShapeError(
            f"Buffer length {buf.size} is inconsistent with anchor_count={anchors} x attributes_per_anchor={attrs}"
        )

    if resolve_layout(raw, cfg) is Layout.ANCHOR_MAJOR:
        return buf.reshape(anchors, attrs)
    return buf.reshape(attrs, anchors).T


def decode_raw_output(raw: RawOutput, cfg: PostprocessConfig) -> Candidates:
    """
    Decode a raw per-anchor tensor into corner-form candidates in model pixels.

    Per anchor: boxes are (cx, cy, w, h); the class with the highest score wins
    (first index on ties). With objectness, confidence = obj * best class score.

    Raises:
        ShapeError: declared shape inconsistent with the buffer or the config.
    """

    rows = _anchor_rows(raw, cfg)
    if rows.shape[0] == 0:
        return Candidates.empty()

    boxes = rows[:, 0:4]
    if cfg.score_combination is ScoreCombination.OBJECTNESS:
        objectness = _sanitize_scores(rows[:, 4])
        class_scores = _sanitize_scores(rows[:, 5:])
    else:
        objectness = None
        class_scores = _sanitize_scores(rows[:, 4:])

    # np.argmax returns the first occurrence of the maximum.
    class_ids = np.argmax(class_scores, axis=1)
    scores = class_scores[np.arange(class_scores.shape[0]), class_ids]
    if objectness is not None:
        with np.errstate(invalid="ignore"):
            scores = _sanitize_scores(objectness * scores)

    bad_box = ~np.all(np.isfinite(boxes), axis=1)
    if bad_box.any():
        scores = np.where(bad_box, -np.inf, scores)
        boxes = np.where(bad_box[:, None], 0.0, boxes)

    logger.debug("decoded %d anchors (%s, %s)", rows.shape[0], resolve_layout(raw, cfg).value, cfg.score_combination.value)
    return Candidates(boxes=cxcywh_to_xyxy(boxes), scores=scores, class_ids=class_ids.astype(np.int64))


def decode_presuppressed(
    boxes: Sequence,
    scores: Sequence[float],
    class_ids: Sequence[int],
    valid_count: int,
    cfg: PostprocessConfig,
) -> Candidates:
    """
    Accept the (boxes, scores, class_ids, valid_count) form emitted by detectors
    that run NMS themselves. Only the first `valid_count` rows are read.

    Raises:
        ShapeError: array lengths disagree or valid_count is out of range.
    """

    b = np.asarray(boxes, dtype=np.float64)
    s = np.asarray(scores, dtype=np.float64).reshape(-1)
    c = np.asarray(class_ids, dtype=np.float64).reshape(-1)

    if b.size % 4 != 0:
        raise ShapeError(f"boxes must hold 4 values per detection, got {b.size} values")
    b = b.reshape(-1, 4)
    n = b.shape[0]
    if s.shape[0] != n or c.shape[0] != n:
        raise ShapeError(f"boxes/scores/class_ids length mismatch: {n}/{s.shape[0]}/{c.shape[0]}")
    valid_count = int(valid_count)
    if valid_count < 0 or valid_count > n:
        raise ShapeError(f"valid_count={valid_count} out of range for {n} detections")

    b, s, c = b[:valid_count], s[:valid_count], c[:valid_count]
    if cfg.presuppressed_box_order is BoxOrder.YXYX:
        b = b[:, [1, 0, 3, 2]]
    else:
        b = b.copy()

    s = _sanitize_scores(s)
    bad_box = ~np.all(np.isfinite(b), axis=1)
    s = np.where(bad_box, -np.inf, s)
    b = np.where(bad_box[:, None], 0.0, b)

    in_range = np.isfinite(c) & (c >= 0) & (c < cfg.num_classes) & (c == np.floor(c))
    if not in_range.all():
        logger.debug("dropping %d pre-suppressed detections with unknown class ids", int((~in_range).sum()))
    c = np.where(in_range, c, 0).astype(np.int64)

    return Candidates(boxes=b[in_range], scores=s[in_range], class_ids=c[in_range])
