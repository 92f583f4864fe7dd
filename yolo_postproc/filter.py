from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from .types import Candidates

logger = logging.getLogger(__name__)


def filter_by_confidence(candidates: Candidates, threshold: float) -> Candidates:
    """
    Keep candidates with score >= threshold, in input order.
    """

    keep = candidates.scores >= float(threshold)
    out = candidates.select(keep)
    logger.debug("confidence filter (>= %.3f): %d -> %d", threshold, len(candidates), len(out))
    return out


def filter_by_class(candidates: Candidates, class_ids: Optional[Sequence[int]]) -> Candidates:
    if class_ids is None:
        return candidates
    mask = np.isin(candidates.class_ids, np.array(list(class_ids), dtype=np.int64))
    return candidates.select(mask)
