from __future__ import annotations

import json
import numbers
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from .errors import ConfigError


class Layout(str, Enum):
    ANCHOR_MAJOR = "anchor_major"
    ATTRIBUTE_MAJOR = "attribute_major"


class ScoreCombination(str, Enum):
    # max class score is the confidence
    DIRECT = "direct"
    # objectness * max class score
    OBJECTNESS = "objectness"


class BoxOrder(str, Enum):
    XYXY = "xyxy"
    YXYX = "yxyx"


class CoordinateSpace(str, Enum):
    PIXELS = "pixels"
    NORMALIZED = "normalized"


def _coerce_enum(enum_cls, value: Any, key: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = [m.value for m in enum_cls]
        raise ConfigError(f"{key} must be one of {allowed}, got {value!r}") from exc


@dataclass(frozen=True)
class PostprocessConfig:
    """
    Per-model post-processing settings. Resolve once per model, reuse every frame.
    """

    num_classes: int = 80
    conf_threshold: float = 0.25
    iou_threshold: float = 0.45
    layout: Layout = Layout.ATTRIBUTE_MAJOR
    score_combination: ScoreCombination = ScoreCombination.DIRECT
    # (width, height) of the model input
    model_size: Tuple[int, int] = (640, 640)
    # None = no cap
    max_detections: Optional[int] = None
    # If False, skip NMS and only keep top `max_detections` by score.
    apply_nms: bool = True
    # If False, runs per-class NMS then merges results by score.
    class_agnostic_nms: bool = True
    # Optional list of class IDs to keep; None keeps all.
    class_ids: Optional[Sequence[int]] = None
    presuppressed_box_order: BoxOrder = BoxOrder.XYXY
    presuppressed_space: CoordinateSpace = CoordinateSpace.PIXELS
    class_names: Optional[Mapping[int, str]] = None

    def __post_init__(self) -> None:
        if isinstance(self.num_classes, bool) or not isinstance(self.num_classes, numbers.Integral):
            raise ConfigError("num_classes must be an integer")
        if self.num_classes <= 0:
            raise ConfigError("num_classes must be > 0")
        for key in ("conf_threshold", "iou_threshold"):
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise ConfigError(f"{key} must be a number")
            # NaN fails both comparisons
            if not (0.0 <= float(value) <= 1.0):
                raise ConfigError(f"{key} must be in [0, 1], got {value!r}")
        if len(self.model_size) != 2 or any(v <= 0 for v in self.model_size):
            raise ConfigError(f"model_size must be a positive (width, height) pair, got {self.model_size!r}")
        if self.max_detections is not None:
            if isinstance(self.max_detections, bool) or not isinstance(self.max_detections, numbers.Integral):
                raise ConfigError("max_detections must be an integer")
            if self.max_detections < 1:
                raise ConfigError("max_detections must be >= 1 when set")

        # frozen: coercion goes through object.__setattr__; NumPy scalars become plain Python numbers
        object.__setattr__(self, "num_classes", int(self.num_classes))
        object.__setattr__(self, "conf_threshold", float(self.conf_threshold))
        object.__setattr__(self, "iou_threshold", float(self.iou_threshold))
        if self.max_detections is not None:
            object.__setattr__(self, "max_detections", int(self.max_detections))
        object.__setattr__(self, "layout", _coerce_enum(Layout, self.layout, "layout"))
        object.__setattr__(
            self, "score_combination", _coerce_enum(ScoreCombination, self.score_combination, "score_combination")
        )
        object.__setattr__(
            self,
            "presuppressed_box_order",
            _coerce_enum(BoxOrder, self.presuppressed_box_order, "presuppressed_box_order"),
        )
        object.__setattr__(
            self,
            "presuppressed_space",
            _coerce_enum(CoordinateSpace, self.presuppressed_space, "presuppressed_space"),
        )
        object.__setattr__(self, "model_size", (self.model_size[0], self.model_size[1]))
        if self.class_ids is not None:
            object.__setattr__(self, "class_ids", tuple(int(c) for c in self.class_ids))

    def expected_attributes(self) -> int:
        extra = 5 if self.score_combination is ScoreCombination.OBJECTNESS else 4
        return extra + self.num_classes


def _require_number(payload: Dict[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key} must be a number")
    return float(value)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key} must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ConfigError(f"{key} must be an integer")
    return int(value)


def _require_bool(payload: Dict[str, Any], key: str) -> bool:
    value = payload[key]
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be a boolean")
    return value


def config_from_dict(payload: Dict[str, Any]) -> PostprocessConfig:
    allowed = {
        "num_classes",
        "conf_threshold",
        "iou_threshold",
        "layout",
        "score_combination",
        "model_size",
        "max_detections",
        "apply_nms",
        "class_agnostic_nms",
        "class_ids",
        "presuppressed_box_order",
        "presuppressed_space",
        "class_names",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ConfigError(f"Unknown postprocess config keys: {unknown}")

    kwargs: Dict[str, Any] = {}
    for key in ("num_classes",):
        if key in payload:
            kwargs[key] = _require_int(payload, key)
    for key in ("conf_threshold", "iou_threshold"):
        if key in payload:
            kwargs[key] = _require_number(payload, key)
    for key in ("apply_nms", "class_agnostic_nms"):
        if key in payload:
            kwargs[key] = _require_bool(payload, key)
    for key in ("layout", "score_combination", "presuppressed_box_order", "presuppressed_space"):
        if key in payload:
            if not isinstance(payload[key], str):
                raise ConfigError(f"{key} must be a string")
            kwargs[key] = payload[key]

    if payload.get("max_detections") is not None:
        kwargs["max_detections"] = _require_int(payload, "max_detections")

    if "model_size" in payload:
        size = payload["model_size"]
        if isinstance(size, int) and not isinstance(size, bool):
            size = [size, size]
        if not isinstance(size, list) or len(size) != 2:
            raise ConfigError("model_size must be an integer or a [width, height] list")
        if any(isinstance(v, bool) or not isinstance(v, int) for v in size):
            raise ConfigError("model_size values must be integers")
        kwargs["model_size"] = (size[0], size[1])

    if payload.get("class_ids") is not None:
        ids = payload["class_ids"]
        if not isinstance(ids, list) or any(isinstance(v, bool) or not isinstance(v, int) for v in ids):
            raise ConfigError("class_ids must be a list of integers")
        kwargs["class_ids"] = ids

    if payload.get("class_names") is not None:
        names = payload["class_names"]
        if isinstance(names, list):
            names = {i: n for i, n in enumerate(names)}
        if not isinstance(names, dict):
            raise ConfigError("class_names must be a list or an object")
        parsed: Dict[int, str] = {}
        for k, v in names.items():
            if not str(k).isdigit() or not isinstance(v, str):
                raise ConfigError("class_names must map integer ids to strings")
            parsed[int(k)] = v
        kwargs["class_names"] = parsed

    return PostprocessConfig(**kwargs)


def load_postprocess_config(path: Path) -> PostprocessConfig:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Postprocess config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid postprocess config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Postprocess config must be a JSON object")
    return config_from_dict(payload)
