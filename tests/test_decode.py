import unittest

import numpy as np

from yolo_postproc.config import BoxOrder, Layout, PostprocessConfig, ScoreCombination
from yolo_postproc.decode import cxcywh_to_xyxy, decode_presuppressed, decode_raw_output, resolve_layout
from yolo_postproc.errors import ShapeError
from yolo_postproc.types import RawOutput


# 2 anchors, 3 classes: [cx, cy, w, h, s0, s1, s2]
ROWS = np.array(
    [
        [50, 60, 10, 20, 0.1, 0.9, 0.2],  # class 1 (0.9)
        [55, 66, 12, 18, 0.7, 0.1, 0.2],  # class 0 (0.7)
    ],
    dtype=np.float64,
)


class TestDecodeRawOutput(unittest.TestCase):
    def setUp(self) -> None:
        self.cfg = PostprocessConfig(num_classes=3, layout=Layout.ANCHOR_MAJOR)

    def _check_rows_result(self, cands) -> None:
        self.assertEqual(cands.boxes.shape, (2, 4))
        self.assertTrue(np.allclose(cands.boxes[0], [45, 50, 55, 70]))
        self.assertTrue(np.allclose(cands.boxes[1], [49, 57, 61, 75]))
        self.assertTrue(np.allclose(cands.scores, [0.9, 0.7]))
        self.assertEqual(cands.class_ids.tolist(), [1, 0])

    def test_anchor_major(self) -> None:
        raw = RawOutput(buffer=ROWS.reshape(-1), anchor_count=2, attributes_per_anchor=7, layout=Layout.ANCHOR_MAJOR)
        self._check_rows_result(decode_raw_output(raw, self.cfg))

    def test_attribute_major(self) -> None:
        raw = RawOutput(
            buffer=ROWS.T.reshape(-1), anchor_count=2, attributes_per_anchor=7, layout=Layout.ATTRIBUTE_MAJOR
        )
        self._check_rows_result(decode_raw_output(raw, self.cfg))

    def test_from_tensor_with_batch_axis(self) -> None:
        raw = RawOutput.from_tensor(ROWS.T[None, ...], Layout.ATTRIBUTE_MAJOR)
        self.assertEqual(raw.anchor_count, 2)
        self.assertEqual(raw.attributes_per_anchor, 7)
        self._check_rows_result(decode_raw_output(raw, self.cfg))

        with self.assertRaises(ValueError):
            RawOutput.from_tensor(np.zeros((2, 7, 2)), Layout.ATTRIBUTE_MAJOR)

    def test_layout_taken_from_config_when_unset(self) -> None:
        raw = RawOutput(buffer=ROWS.reshape(-1), anchor_count=2, attributes_per_anchor=7)
        self._check_rows_result(decode_raw_output(raw, self.cfg))

        attr_cfg = PostprocessConfig(num_classes=3, layout=Layout.ATTRIBUTE_MAJOR)
        raw = RawOutput(buffer=ROWS.T.reshape(-1), anchor_count=2, attributes_per_anchor=7)
        self._check_rows_result(decode_raw_output(raw, attr_cfg))

    def test_layout_disagreeing_with_config(self) -> None:
        raw = RawOutput(
            buffer=ROWS.T.reshape(-1), anchor_count=2, attributes_per_anchor=7, layout=Layout.ATTRIBUTE_MAJOR
        )
        with self.assertRaises(ShapeError):
            decode_raw_output(raw, self.cfg)
        self.assertIs(resolve_layout(raw, PostprocessConfig(num_classes=3)), Layout.ATTRIBUTE_MAJOR)

    def test_objectness_weighted(self) -> None:
        # 80 classes + objectness: 85 attributes
        row = np.full(85, 0.1, dtype=np.float64)
        row[0:4] = [320, 320, 64, 32]
        row[4] = 0.9
        row[5 + 3] = 0.8
        cfg = PostprocessConfig(
            num_classes=80, layout=Layout.ANCHOR_MAJOR, score_combination=ScoreCombination.OBJECTNESS
        )
        raw = RawOutput(buffer=row, anchor_count=1, attributes_per_anchor=85, layout=Layout.ANCHOR_MAJOR)
        cands = decode_raw_output(raw, cfg)
        self.assertEqual(len(cands), 1)
        self.assertAlmostEqual(float(cands.scores[0]), 0.72)
        self.assertEqual(int(cands.class_ids[0]), 3)
        self.assertTrue(np.allclose(cands.boxes[0], [288, 304, 352, 336]))

    def test_class_ties_pick_lowest_index(self) -> None:
        row = np.array([10, 10, 4, 4, 0.5, 0.2, 0.5], dtype=np.float64)
        raw = RawOutput(buffer=row, anchor_count=1, attributes_per_anchor=7, layout=Layout.ANCHOR_MAJOR)
        cands = decode_raw_output(raw, self.cfg)
        self.assertEqual(int(cands.class_ids[0]), 0)

    def test_non_finite_scores_rank_lowest(self) -> None:
        rows = np.array(
            [
                [10, 10, 4, 4, np.nan, 0.3, 0.1],
                [10, 10, 4, 4, np.inf, np.nan, -np.inf],
                [np.nan, 10, 4, 4, 0.9, 0.1, 0.1],
            ],
            dtype=np.float64,
        )
        raw = RawOutput(buffer=rows.reshape(-1), anchor_count=3, attributes_per_anchor=7, layout=Layout.ANCHOR_MAJOR)
        cands = decode_raw_output(raw, self.cfg)
        self.assertEqual(int(cands.class_ids[0]), 1)
        self.assertAlmostEqual(float(cands.scores[0]), 0.3)
        self.assertEqual(float(cands.scores[1]), -np.inf)
        # non-finite box coordinate
        self.assertEqual(float(cands.scores[2]), -np.inf)
        self.assertTrue(np.all(np.isfinite(cands.boxes)))

    def test_nan_objectness_rank_lowest(self) -> None:
        row = np.array([10, 10, 4, 4, np.nan, 0.2, 0.9], dtype=np.float64)
        cfg = PostprocessConfig(num_classes=2, layout=Layout.ANCHOR_MAJOR, score_combination="objectness")
        raw = RawOutput(buffer=row, anchor_count=1, attributes_per_anchor=7, layout=Layout.ANCHOR_MAJOR)
        self.assertEqual(float(decode_raw_output(raw, cfg).scores[0]), -np.inf)

    def test_empty_output(self) -> None:
        raw = RawOutput(buffer=np.zeros((0,)), anchor_count=0, attributes_per_anchor=7, layout=Layout.ANCHOR_MAJOR)
        self.assertEqual(len(decode_raw_output(raw, self.cfg)), 0)

    def test_buffer_length_mismatch(self) -> None:
        raw = RawOutput(buffer=np.zeros(15), anchor_count=2, attributes_per_anchor=7, layout=Layout.ANCHOR_MAJOR)
        with self.assertRaises(ShapeError):
            decode_raw_output(raw, self.cfg)

    def test_attribute_count_mismatch(self) -> None:
        raw = RawOutput(buffer=np.zeros(12), anchor_count=2, attributes_per_anchor=6, layout=Layout.ANCHOR_MAJOR)
        with self.assertRaises(ShapeError):
            decode_raw_output(raw, self.cfg)

        # objectness adds one attribute: 7 no longer fits 3 classes
        obj_cfg = PostprocessConfig(num_classes=3, score_combination=ScoreCombination.OBJECTNESS)
        raw = RawOutput(buffer=np.zeros(14), anchor_count=2, attributes_per_anchor=7)
        with self.assertRaises(ShapeError):
            decode_raw_output(raw, obj_cfg)

    def test_too_few_attributes(self) -> None:
        raw = RawOutput(buffer=np.zeros(6), anchor_count=2, attributes_per_anchor=3)
        with self.assertRaises(ShapeError):
            decode_raw_output(raw, self.cfg)

    def test_does_not_mutate_buffer(self) -> None:
        buf = ROWS.reshape(-1).copy()
        raw = RawOutput(buffer=buf, anchor_count=2, attributes_per_anchor=7, layout=Layout.ANCHOR_MAJOR)
        decode_raw_output(raw, self.cfg)
        self.assertTrue(np.array_equal(buf, ROWS.reshape(-1)))

    def test_cxcywh_to_xyxy(self) -> None:
        out = cxcywh_to_xyxy(np.array([[10, 20, 4, 6]]))
        self.assertEqual(out.tolist(), [[8.0, 17.0, 12.0, 23.0]])


class TestDecodePresuppressed(unittest.TestCase):
    def test_truncates_to_valid_count(self) -> None:
        cfg = PostprocessConfig(num_classes=80)
        boxes = [[0, 0, 10, 10], [5, 5, 20, 20], [0, 0, 0, 0]]
        cands = decode_presuppressed(boxes, [0.9, 0.8, 0.0], [1, 2, 0], 2, cfg)
        self.assertEqual(len(cands), 2)
        self.assertEqual(cands.class_ids.tolist(), [1, 2])
        self.assertEqual(cands.boxes.tolist(), [[0, 0, 10, 10], [5, 5, 20, 20]])

    def test_yxyx_reordered(self) -> None:
        cfg = PostprocessConfig(presuppressed_box_order=BoxOrder.YXYX)
        cands = decode_presuppressed([[0.1, 0.2, 0.5, 0.6]], [0.9], [0], 1, cfg)
        self.assertTrue(np.allclose(cands.boxes[0], [0.2, 0.1, 0.6, 0.5]))

    def test_unknown_class_ids_dropped(self) -> None:
        cfg = PostprocessConfig(num_classes=3)
        cands = decode_presuppressed(np.zeros((3, 4)), [0.9, 0.8, 0.7], [0, 3, -1], 3, cfg)
        self.assertEqual(cands.class_ids.tolist(), [0])

    def test_shape_errors(self) -> None:
        cfg = PostprocessConfig()
        with self.assertRaises(ShapeError):
            decode_presuppressed(np.zeros((2, 4)), [0.9], [0, 1], 2, cfg)
        with self.assertRaises(ShapeError):
            decode_presuppressed(np.zeros((2, 4)), [0.9, 0.8], [0, 1], 3, cfg)
        with self.assertRaises(ShapeError):
            decode_presuppressed(np.zeros(7), [0.9, 0.8], [0, 1], 2, cfg)


if __name__ == "__main__":
    unittest.main()
