from __future__ import annotations

from typing import Dict, Mapping, Optional

COCO_CLASSES = (
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck", "boat", "traffic light",
    "fire hydrant", "stop sign", "parking meter", "bench", "bird", "cat", "dog", "horse", "sheep", "cow",
    "elephant", "bear", "zebra", "giraffe", "backpack", "umbrella", "handbag", "tie", "suitcase", "frisbee",
    "skis", "snowboard", "sports ball", "kite", "baseball bat", "baseball glove", "skateboard", "surfboard",
    "tennis racket", "bottle", "wine glass", "cup", "fork", "knife", "spoon", "bowl", "banana", "apple",
    "sandwich", "orange", "broccoli", "carrot", "hot dog", "pizza", "donut", "cake", "chair", "couch",
    "potted plant", "bed", "dining table", "toilet", "tv", "laptop", "mouse", "remote", "keyboard",
    "cell phone", "microwave", "oven", "toaster", "sink", "refrigerator", "book", "clock", "vase",
    "scissors", "teddy bear", "hair drier", "toothbrush",
)


def coco_class_names() -> Dict[int, str]:
    return dict(enumerate(COCO_CLASSES))


def class_label(class_id: int, class_names: Optional[Mapping[int, str]] = None) -> str:
    """
    Human-readable label for a class id; unknown ids become "class {id}".
    """

    if class_names:
        name = class_names.get(int(class_id))
        if name:
            return name
    return f"class {int(class_id)}"


def _unquote(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    return text


def load_class_names(metadata_path: str) -> Dict[int, str]:
    """
    Read the `names:` mapping that Ultralytics-style exporters write next to
    the model (`metadata.yaml`), e.g.

        stride: 32
        names:
          0: person
          9: 'traffic light'

    Returns {class_id: name}, ready for `PostprocessConfig.class_names`.
    Other top-level keys are skipped; the block ends at the next one.
    """

    names: Dict[int, str] = {}
    section: Optional[str] = None

    with open(metadata_path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue

            key, sep, value = line.partition(":")
            top_level = not raw[:1].isspace()
            if top_level and not key.isdigit():
                section = key if not value.strip() else None
                continue
            if section != "names" or not sep or not key.strip().isdigit():
                continue
            names[int(key)] = _unquote(value)

    return names
