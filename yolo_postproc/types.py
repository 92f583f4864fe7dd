from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import numpy as np

from .config import Layout


@dataclass(frozen=True)
class Detection:
    """
    Final detection handed to a renderer. Box is corner-form (x1, y1, x2, y2).
    """

    x1: float
    y1: float
    x2: float
    y2: float
    score: float
    class_id: int

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2


@dataclass(frozen=True)
class Candidates:
    """
    Column view of detections between stages.

    boxes: (N, 4) corner-form, scores: (N,), class_ids: (N,)
    """

    boxes: np.ndarray
    scores: np.ndarray
    class_ids: np.ndarray

    @classmethod
    def empty(cls) -> "Candidates":
        return cls(
            boxes=np.zeros((0, 4), dtype=np.float64),
            scores=np.zeros((0,), dtype=np.float64),
            class_ids=np.zeros((0,), dtype=np.int64),
        )

    @classmethod
    def from_detections(cls, detections: Iterable[Detection]) -> "Candidates":
        dets = list(detections)
        if not dets:
            return cls.empty()
        return cls(
            boxes=np.array([d.as_xyxy() for d in dets], dtype=np.float64),
            scores=np.array([d.score for d in dets], dtype=np.float64),
            class_ids=np.array([d.class_id for d in dets], dtype=np.int64),
        )

    def __len__(self) -> int:
        return int(self.scores.shape[0])

    def select(self, index: np.ndarray) -> "Candidates":
        # fancy / boolean indexing copies
        return Candidates(
            boxes=self.boxes[index].reshape(-1, 4),
            scores=self.scores[index],
            class_ids=self.class_ids[index],
        )

    def to_detections(self) -> List[Detection]:
        return [
            Detection(
                x1=float(x1),
                y1=float(y1),
                x2=float(x2),
                y2=float(y2),
                score=float(score),
                class_id=int(cls_id),
            )
            for (x1, y1, x2, y2), score, cls_id in zip(self.boxes, self.scores, self.class_ids)
        ]


@dataclass(frozen=True)
class RawOutput:
    """
    Flat detector output plus the shape metadata needed to index it.

    Layouts:
    - anchor-major: [cx, cy, w, h, (obj,) s0, s1, ...] repeated per anchor
    - attribute-major: all cx, then all cy, ... (e.g. the (84, 8400) YOLOv8 export)

    `layout` None means "use the config layout"; when set it must agree with it.
    """

    buffer: np.ndarray
    anchor_count: int
    attributes_per_anchor: int
    layout: Optional[Layout] = None

    @classmethod
    def from_tensor(cls, preds: np.ndarray, layout: Layout) -> "RawOutput":
        """
        Wrap a single-image tensor: (A, attrs) for anchor-major, (attrs, A) for
        attribute-major. A leading batch axis of 1 is dropped.
        """

        layout = Layout(layout)
        p = np.asarray(preds)
        if p.ndim == 3:
            if p.shape[0] != 1:
                raise ValueError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
            p = p[0]
        if p.ndim != 2:
            raise ValueError(f"Expected a 2D tensor per image, got shape {p.shape}")

        if layout is Layout.ANCHOR_MAJOR:
            anchors, attrs = p.shape
        else:
            attrs, anchors = p.shape
        return cls(buffer=p.reshape(-1), anchor_count=int(anchors), attributes_per_anchor=int(attrs), layout=layout)

    @property
    def size(self) -> int:
        return int(np.asarray(self.buffer).size)


def coerce_size(size: Optional[Tuple[float, float]], name: str) -> Tuple[float, float]:
    if size is None or len(size) != 2:
        raise ValueError(f"{name} must be a (width, height) pair")
    w, h = float(size[0]), float(size[1])
    if not (w > 0 and h > 0):
        raise ValueError(f"{name} must be positive, got {size!r}")
    return w, h
