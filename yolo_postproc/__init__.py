"""
Detector output post-processing: decode, confidence filter, NMS, and mapping to
display coordinates.

Works on NumPy arrays, so any runtime (ONNX Runtime, TF.js exports converted to
NumPy, PyTorch tensors after `.detach().cpu().numpy()`) can feed it.
"""

from .config import (
    BoxOrder,
    CoordinateSpace,
    Layout,
    PostprocessConfig,
    ScoreCombination,
    config_from_dict,
    load_postprocess_config,
)
from .decode import cxcywh_to_xyxy, decode_presuppressed, decode_raw_output
from .errors import ConfigError, PostprocessError, ShapeError
from .filter import filter_by_class, filter_by_confidence
from .mapping import map_to_target, scale_boxes
from .metadata import COCO_CLASSES, class_label, coco_class_names, load_class_names
from .nms import NMSConfig, batched_nms, iou, nms, select_topk, suppress
from .postprocess import DetectionPostprocessor, PostprocessResult, process
from .types import Candidates, Detection, RawOutput

__all__ = [
    "BoxOrder",
    "CoordinateSpace",
    "Layout",
    "PostprocessConfig",
    "ScoreCombination",
    "config_from_dict",
    "load_postprocess_config",
    "cxcywh_to_xyxy",
    "decode_presuppressed",
    "decode_raw_output",
    "ConfigError",
    "PostprocessError",
    "ShapeError",
    "filter_by_class",
    "filter_by_confidence",
    "map_to_target",
    "scale_boxes",
    "COCO_CLASSES",
    "class_label",
    "coco_class_names",
    "load_class_names",
    "NMSConfig",
    "batched_nms",
    "iou",
    "nms",
    "select_topk",
    "suppress",
    "DetectionPostprocessor",
    "PostprocessResult",
    "process",
    "Candidates",
    "Detection",
    "RawOutput",
]
