import unittest

import numpy as np

from yolov5_post.postprocess import Yolov5PostConfig, Yolov5Postprocessor
from yolov5_post.types import BoundingBox, Detection, detections_to_array


def _cell(cx, cy, w, h, obj, *class_confs):
    return [cx, cy, w, h, obj, *class_confs]


class TestYolov5Postprocessor(unittest.TestCase):
    def setUp(self) -> None:
        # Single layer, one anchor of 1.25 grid units (10 px at stride 8).
        self.post = Yolov5Postprocessor(np.array([[[1.25, 1.25]]]), [8.0])

    def test_single_detection_record(self) -> None:
        t = np.zeros((1, 1, 1, 1, 6), dtype=np.float32)
        t[0, 0, 0, 0] = _cell(0.5, 0.5, 0.5, 0.5, 0.9, 0.9)
        results = self.post.eval([t], conf_threshold=0.5, iou_threshold=0.5)
        self.assertEqual(len(results), 1)
        self.assertEqual(len(results[0]), 1)
        det = results[0][0]
        self.assertEqual(det.index, 0)
        self.assertEqual(det.class_id, 0)
        self.assertAlmostEqual(det.score, 0.81, places=5)
        self.assertAlmostEqual(det.box.top, -1.0, places=5)
        self.assertAlmostEqual(det.box.left, -1.0, places=5)
        self.assertAlmostEqual(det.box.bottom, 9.0, places=5)
        self.assertAlmostEqual(det.box.right, 9.0, places=5)

    def test_overlapping_cells_are_suppressed(self) -> None:
        # Two neighbouring cells predicting the same 10 px box centred at (8, 8).
        t = np.zeros((1, 1, 1, 2, 6), dtype=np.float32)
        t[0, 0, 0, 0] = _cell(0.75, 0.5, 0.5, 0.5, 0.9, 1.0)
        t[0, 0, 0, 1] = _cell(0.25, 0.5, 0.5, 0.5, 0.6, 1.0)
        dets = self.post.eval([t], conf_threshold=0.25, iou_threshold=0.5)[0]
        self.assertEqual([d.index for d in dets], [0])
        self.assertAlmostEqual(dets[0].score, 0.9, places=5)

    def test_agnostic_override(self) -> None:
        t = np.zeros((1, 1, 1, 1, 7), dtype=np.float32)
        t[0, 0, 0, 0] = _cell(0.5, 0.5, 0.5, 0.5, 1.0, 0.9, 0.8)
        per_class = self.post.eval([t], 0.5, 0.5)[0]
        agnostic = self.post.eval([t], 0.5, 0.5, agnostic=True)[0]
        self.assertEqual([d.class_id for d in per_class], [0, 1])
        self.assertEqual([d.class_id for d in agnostic], [0])

    def test_batch_order_and_empty_images(self) -> None:
        t = np.zeros((3, 1, 1, 1, 6), dtype=np.float32)
        t[1, 0, 0, 0] = _cell(0.5, 0.5, 0.5, 0.5, 0.9, 0.9)
        results = self.post.eval([t], 0.5, 0.5)
        self.assertEqual([len(r) for r in results], [0, 1, 0])

    def test_all_empty_batch(self) -> None:
        t = np.zeros((2, 1, 3, 3, 6), dtype=np.float32)
        self.assertEqual(self.post.eval([t], 0.25, 0.45), [[], []])

    def test_results_sorted_by_score(self) -> None:
        rng = np.random.default_rng(1)
        t = rng.uniform(0, 1, size=(2, 1, 8, 8, 8)).astype(np.float32)
        for dets in self.post.eval([t], 0.3, 0.45):
            scores = [d.score for d in dets]
            self.assertEqual(scores, sorted(scores, reverse=True))

    def test_pre_nms_trim(self) -> None:
        t = np.zeros((1, 1, 1, 10, 6), dtype=np.float32)
        # Far apart boxes so NMS keeps everything left after trimming.
        for x in range(10):
            t[0, 0, 0, x] = _cell(0.5, 0.5, 0.1, 0.1, 0.5 + 0.04 * x, 1.0)
        post = Yolov5Postprocessor(np.array([[[1.25, 1.25]]]), [8.0], Yolov5PostConfig(max_nms_candidates=4))
        dets = post.eval([t], 0.25, 0.45)[0]
        self.assertEqual(len(dets), 4)
        # Trimmed set is stored in ascending score order, indices refer to it.
        self.assertEqual([d.index for d in dets], [3, 2, 1, 0])
        self.assertTrue(np.allclose([d.score for d in dets], [0.86, 0.82, 0.78, 0.74]))

    def test_thread_pool_matches_sequential(self) -> None:
        rng = np.random.default_rng(2)
        t = rng.uniform(0, 1, size=(4, 1, 6, 6, 9)).astype(np.float32)
        anchors = np.array([[[1.25, 1.25]]])
        seq = Yolov5Postprocessor(anchors, [8.0])
        par = Yolov5Postprocessor(anchors, [8.0], Yolov5PostConfig(max_workers=3))
        self.assertEqual(seq.eval([t], 0.3, 0.45), par.eval([t], 0.3, 0.45))

    def test_call_uses_config(self) -> None:
        t = np.zeros((1, 1, 1, 1, 6), dtype=np.float32)
        t[0, 0, 0, 0] = _cell(0.5, 0.5, 0.5, 0.5, 0.6, 0.6)
        low = Yolov5Postprocessor(np.array([[[1.0, 1.0]]]), [8.0], Yolov5PostConfig(conf_threshold=0.3))
        high = Yolov5Postprocessor(np.array([[[1.0, 1.0]]]), [8.0], Yolov5PostConfig(conf_threshold=0.4))
        self.assertEqual(len(low([t])[0]), 1)
        self.assertEqual(len(high([t])[0]), 0)

    def test_shape_error_fails_whole_call(self) -> None:
        with self.assertRaises(ValueError):
            self.post.eval([np.zeros((1, 2, 1, 1, 6), dtype=np.float32)], 0.5, 0.5)

    def test_invalid_anchor_table(self) -> None:
        with self.assertRaises(ValueError):
            Yolov5Postprocessor(np.ones((2, 3, 3)), [8.0, 16.0])
        with self.assertRaises(ValueError):
            Yolov5Postprocessor(np.ones((2, 3, 2)), [8.0])

    def test_anchors_are_read_only(self) -> None:
        with self.assertRaises(ValueError):
            self.post.anchors[0, 0, 0] = 3.0

    def test_str(self) -> None:
        post = Yolov5Postprocessor(np.ones((3, 3, 2)), [8, 16, 32])
        self.assertEqual(
            str(post),
            "Yolov5Postprocessor(num_detection_layers=3, num_anchors=3, strides=[8.0, 16.0, 32.0])",
        )

    def test_config_validation(self) -> None:
        with self.assertRaises(ValueError):
            Yolov5PostConfig(conf_threshold=1.5)
        with self.assertRaises(ValueError):
            Yolov5PostConfig(max_detections=0)
        with self.assertRaises(ValueError):
            Yolov5PostConfig(epsilon=-1.0)


class TestDetectionRecords(unittest.TestCase):
    def test_detections_to_array(self) -> None:
        dets = [
            Detection(index=3, box=BoundingBox(top=2.0, left=1.0, bottom=4.0, right=3.0), score=0.9, class_id=7),
        ]
        arr = detections_to_array(dets)
        self.assertEqual(arr.shape, (1, 6))
        self.assertTrue(np.allclose(arr[0], [1.0, 2.0, 3.0, 4.0, 0.9, 7.0]))
        self.assertEqual(detections_to_array([]).shape, (0, 6))

    def test_bounding_box_area_clamps(self) -> None:
        self.assertEqual(BoundingBox(top=5.0, left=5.0, bottom=0.0, right=10.0).area, 0.0)
        self.assertEqual(BoundingBox(top=0.0, left=0.0, bottom=2.0, right=3.0).area, 6.0)


if __name__ == "__main__":
    unittest.main()
