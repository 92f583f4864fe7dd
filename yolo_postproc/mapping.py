from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

from .types import Candidates, coerce_size

logger = logging.getLogger(__name__)


def scale_boxes(
    boxes: np.ndarray,
    source_size: Tuple[float, float],
    target_size: Tuple[float, float],
) -> np.ndarray:
    """
    Rescale corner-form boxes from source space to target space and clamp
    each coordinate into [0, target dimension]. Returns a new array.

    Args:
        boxes: (N, 4) xyxy in source coordinates
        source_size: (width, height) of the space the boxes live in, e.g. (640, 640)
            for model pixels or (1, 1) for normalized coordinates
        target_size: (width, height) of the display / frame
    """

    src_w, src_h = coerce_size(source_size, "source_size")
    dst_w, dst_h = coerce_size(target_size, "target_size")

    out = np.array(boxes, dtype=np.float64).reshape(-1, 4)
    out[:, [0, 2]] *= dst_w / src_w
    out[:, [1, 3]] *= dst_h / src_h

    out[:, [0, 2]] = np.clip(out[:, [0, 2]], 0.0, dst_w)
    out[:, [1, 3]] = np.clip(out[:, [1, 3]], 0.0, dst_h)
    return out


def map_to_target(
    candidates: Candidates,
    source_size: Tuple[float, float],
    target_size: Tuple[float, float],
) -> Candidates:
    """
    Scale + clamp, then drop boxes left with zero (or negative) width or height.
    """

    boxes = scale_boxes(candidates.boxes, source_size, target_size)
    w = boxes[:, 2] - boxes[:, 0]
    h = boxes[:, 3] - boxes[:, 1]
    keep = (w > 0) & (h > 0)

    out = Candidates(boxes=boxes[keep], scores=candidates.scores[keep], class_ids=candidates.class_ids[keep])
    if len(out) != len(candidates):
        logger.debug("dropped %d degenerate boxes after mapping", len(candidates) - len(out))
    return out
