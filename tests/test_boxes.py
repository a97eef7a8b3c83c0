import unittest

import numpy as np

from yolov5_post.boxes import box_areas, box_iou, centered_box_to_ltrb


class TestCenteredBoxToLtrb(unittest.TestCase):
    def test_converts_center_form(self) -> None:
        cy = np.array([4.0, 50.0], dtype=np.float32)
        cx = np.array([4.0, 20.0], dtype=np.float32)
        w = np.array([10.0, 8.0], dtype=np.float32)
        h = np.array([10.0, 30.0], dtype=np.float32)
        x1, y1, x2, y2 = centered_box_to_ltrb(cy, cx, w, h)
        self.assertTrue(np.allclose(x1, [-1.0, 16.0]))
        self.assertTrue(np.allclose(y1, [-1.0, 35.0]))
        self.assertTrue(np.allclose(x2, [9.0, 24.0]))
        self.assertTrue(np.allclose(y2, [9.0, 65.0]))
        self.assertEqual(x1.dtype, np.float32)

    def test_empty_inputs(self) -> None:
        e = np.empty((0,), dtype=np.float32)
        out = centered_box_to_ltrb(e, e, e, e)
        self.assertEqual([o.shape for o in out], [(0,)] * 4)

    def test_length_mismatch_raises(self) -> None:
        with self.assertRaises(ValueError):
            centered_box_to_ltrb(np.zeros(3), np.zeros(3), np.zeros(2), np.zeros(3))


class TestBoxIou(unittest.TestCase):
    def test_identical_boxes(self) -> None:
        iou = box_iou((0.0, 0.0, 10.0, 10.0), np.array([0.0]), np.array([0.0]), np.array([10.0]), np.array([10.0]))
        self.assertAlmostEqual(float(iou[0]), 1.0, places=5)

    def test_partial_and_disjoint(self) -> None:
        x1 = np.array([5.0, 20.0])
        y1 = np.array([0.0, 20.0])
        x2 = np.array([15.0, 30.0])
        y2 = np.array([10.0, 30.0])
        iou = box_iou((0.0, 0.0, 10.0, 10.0), x1, y1, x2, y2, epsilon=0.0)
        # 50 overlap over 150 union.
        self.assertAlmostEqual(float(iou[0]), 1.0 / 3.0, places=6)
        self.assertEqual(float(iou[1]), 0.0)

    def test_symmetric(self) -> None:
        rng = np.random.default_rng(3)
        xy = rng.uniform(0, 100, size=(20, 2))
        wh = rng.uniform(-5, 40, size=(20, 2))
        boxes = np.concatenate([xy, xy + wh], axis=1)
        for a in boxes:
            for b in boxes:
                ab = box_iou(tuple(a), *(np.array([v]) for v in b))[0]
                ba = box_iou(tuple(b), *(np.array([v]) for v in a))[0]
                self.assertAlmostEqual(float(ab), float(ba), places=9)

    def test_zero_area_boxes_do_not_divide_by_zero(self) -> None:
        iou = box_iou((5.0, 5.0, 5.0, 5.0), np.array([5.0]), np.array([5.0]), np.array([5.0]), np.array([5.0]))
        self.assertEqual(float(iou[0]), 0.0)

    def test_inverted_boxes_have_zero_area(self) -> None:
        areas = box_areas(np.array([10.0, 0.0]), np.array([0.0, 0.0]), np.array([0.0, 4.0]), np.array([10.0, 5.0]))
        self.assertTrue(np.array_equal(areas, np.array([0.0, 20.0])))


if __name__ == "__main__":
    unittest.main()
