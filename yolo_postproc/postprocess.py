from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .config import CoordinateSpace, PostprocessConfig
from .decode import decode_presuppressed, decode_raw_output
from .errors import ShapeError
from .filter import filter_by_class, filter_by_confidence
from .mapping import map_to_target
from .metadata import class_label
from .nms import NMSConfig, select_topk, suppress
from .types import Candidates, Detection, RawOutput

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostprocessResult:
    detections: List[Detection] = field(default_factory=list)
    error: Optional[ShapeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __len__(self) -> int:
        return len(self.detections)


class DetectionPostprocessor:
    """
    Raw detector output -> final detections in display coordinates.

    Stages (each returns new arrays, nothing is kept between calls):
    decode -> confidence filter -> class filter -> NMS (or top-K) -> map to target

    Safe to share between threads: the only shared state is the frozen config.
    """

    def __init__(self, cfg: PostprocessConfig = PostprocessConfig()):
        self.cfg = cfg
        self.nms_cfg = NMSConfig(iou_threshold=cfg.iou_threshold, max_detections=cfg.max_detections)

    def process(
        self,
        raw: RawOutput,
        target_size: Optional[Tuple[float, float]] = None,
    ) -> PostprocessResult:
        """
        Args:
            raw: one frame of detector output
            target_size: (width, height) to map boxes into; defaults to the model size

        A malformed `raw` gives an empty result carrying the ShapeError.
        """

        try:
            candidates = decode_raw_output(raw, self.cfg)
        except ShapeError as exc:
            logger.warning("Skipping frame: %s", exc)
            return PostprocessResult(detections=[], error=exc)

        # Clip to the model frame before NMS; the final scale + clamp then moves no edges.
        model_size = self.cfg.model_size
        candidates = map_to_target(self._filter(candidates), model_size, model_size)
        if self.cfg.apply_nms:
            candidates = suppress(candidates, self.nms_cfg, class_agnostic=self.cfg.class_agnostic_nms)
        else:
            candidates = select_topk(candidates, self.cfg.max_detections)

        return PostprocessResult(detections=self._finish(candidates, self.cfg.model_size, target_size))

    def process_decoded(
        self,
        boxes: Sequence,
        scores: Sequence[float],
        class_ids: Sequence[int],
        valid_count: int,
        target_size: Optional[Tuple[float, float]] = None,
    ) -> PostprocessResult:
        """
        Entry point for detectors that already ran NMS. Skips suppression.
        """

        try:
            candidates = decode_presuppressed(boxes, scores, class_ids, valid_count, self.cfg)
        except ShapeError as exc:
            logger.warning("Skipping frame: %s", exc)
            return PostprocessResult(detections=[], error=exc)

        candidates = select_topk(self._filter(candidates), self.cfg.max_detections)
        if self.cfg.presuppressed_space is CoordinateSpace.NORMALIZED:
            source_size: Tuple[float, float] = (1.0, 1.0)
            if target_size is None:
                target_size = self.cfg.model_size
        else:
            source_size = self.cfg.model_size
        return PostprocessResult(detections=self._finish(candidates, source_size, target_size))

    def label(self, detection: Detection) -> str:
        return class_label(detection.class_id, self.cfg.class_names)

    # ------------------------------------------------------------------ #
    # Helper internal
    # ------------------------------------------------------------------ #
    def _filter(self, candidates: Candidates) -> Candidates:
        candidates = filter_by_confidence(candidates, self.cfg.conf_threshold)
        return filter_by_class(candidates, self.cfg.class_ids)

    def _finish(
        self,
        candidates: Candidates,
        source_size: Tuple[float, float],
        target_size: Optional[Tuple[float, float]],
    ) -> List[Detection]:
        if target_size is None:
            target_size = self.cfg.model_size
        return map_to_target(candidates, source_size, target_size).to_detections()


def process(
    raw: RawOutput,
    cfg: PostprocessConfig,
    target_size: Optional[Tuple[float, float]] = None,
) -> PostprocessResult:
    return DetectionPostprocessor(cfg).process(raw, target_size=target_size)
