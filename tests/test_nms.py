import unittest

import numpy as np

from censor_kit.nms import NMSConfig, iou, nms, suppress
from censor_kit.types import Detection


def _det(box, score, class_id, name="obj") -> Detection:
    x1, y1, x2, y2 = box
    return Detection(x1=x1, y1=y1, x2=x2, y2=y2, score=score, class_id=class_id, class_name=name)


def _random_detections(seed: int, n: int = 60):
    rng = np.random.default_rng(seed)
    out = []
    for _ in range(n):
        x1, y1 = rng.uniform(0, 80, size=2)
        w, h = rng.uniform(5, 40, size=2)
        out.append(_det((x1, y1, x1 + w, y1 + h), float(rng.uniform(0.1, 1.0)), int(rng.integers(0, 3))))
    return out


class TestIoU(unittest.TestCase):
    def test_partial_overlap(self) -> None:
        self.assertAlmostEqual(iou((0, 0, 10, 10), (1, 1, 11, 11)), 81 / 119)

    def test_disjoint_and_touching_boxes(self) -> None:
        self.assertEqual(iou((0, 0, 10, 10), (20, 20, 30, 30)), 0.0)
        self.assertEqual(iou((0, 0, 10, 10), (10, 0, 20, 10)), 0.0)

    def test_zero_area_boxes(self) -> None:
        self.assertEqual(iou((5, 5, 5, 5), (5, 5, 5, 5)), 0.0)
        self.assertEqual(iou((0, 0, 0, 10), (0, 0, 10, 10)), 0.0)


class TestSuppress(unittest.TestCase):
    def test_person_person_dog_scenario(self) -> None:
        dets = [
            _det((0, 0, 10, 10), 0.9, 0, "person"),
            _det((1, 1, 11, 11), 0.85, 0, "person"),
            _det((50, 50, 60, 60), 0.6, 16, "dog"),
        ]
        kept = suppress(dets, iou_threshold=0.45)
        self.assertEqual(kept, [dets[0], dets[2]])

    def test_different_classes_never_suppress_each_other(self) -> None:
        dets = [_det((0, 0, 10, 10), 0.9, 0), _det((0, 0, 10, 10), 0.8, 1), _det((0, 0, 10, 10), 0.7, 2)]
        self.assertEqual(suppress(dets, iou_threshold=0.1), dets)

    def test_output_in_score_order(self) -> None:
        dets = [_det((0, 0, 1, 1), 0.3, 0), _det((5, 5, 6, 6), 0.9, 0), _det((9, 9, 10, 10), 0.6, 0)]
        self.assertEqual([d.score for d in suppress(dets, 0.5)], [0.9, 0.6, 0.3])

    def test_score_ties_keep_input_order(self) -> None:
        first = _det((0, 0, 10, 10), 0.8, 0, "a")
        second = _det((0, 0, 10, 10), 0.8, 0, "b")
        self.assertEqual(suppress([first, second], 0.5), [first])
        self.assertEqual(suppress([second, first], 0.5), [second])

    def test_iou_equal_to_threshold_is_kept(self) -> None:
        dets = [_det((0, 0, 2, 1), 0.9, 0), _det((0, 0, 1, 1), 0.8, 0)]
        self.assertEqual(len(suppress(dets, iou_threshold=0.5)), 2)
        self.assertEqual(len(suppress(dets, iou_threshold=0.49)), 1)

    def test_zero_area_boxes_are_kept(self) -> None:
        dets = [_det((5, 5, 5, 5), 0.9, 0), _det((5, 5, 5, 5), 0.8, 0)]
        self.assertEqual(len(suppress(dets, 0.1)), 2)

    def test_empty_input(self) -> None:
        self.assertEqual(suppress([], 0.45), [])

    def test_idempotent(self) -> None:
        for seed in range(5):
            once = suppress(_random_detections(seed), 0.45)
            twice = suppress(once, 0.45)
            self.assertEqual(once, twice)

    def test_no_same_class_pair_above_threshold(self) -> None:
        for seed in range(5):
            kept = suppress(_random_detections(seed), 0.3)
            for i, a in enumerate(kept):
                for b in kept[i + 1:]:
                    if a.class_id == b.class_id:
                        self.assertLessEqual(iou(a.as_xyxy(), b.as_xyxy()), 0.3)

    def test_max_detections(self) -> None:
        dets = [_det((i * 20, 0, i * 20 + 10, 10), 0.5 + i / 100, 0) for i in range(10)]
        kept = suppress(dets, 0.45, max_detections=3)
        self.assertEqual(kept, [dets[9], dets[8], dets[7]])


class TestNmsArrays(unittest.TestCase):
    def test_class_agnostic_without_class_ids(self) -> None:
        boxes = np.array([[0, 0, 10, 10], [1, 1, 11, 11], [50, 50, 60, 60]], dtype=np.float64)
        scores = np.array([0.9, 0.85, 0.6])
        keep = nms(boxes, scores, NMSConfig(iou_threshold=0.45))
        self.assertEqual(keep.tolist(), [0, 2])

    def test_per_class_with_class_ids(self) -> None:
        boxes = np.array([[0, 0, 10, 10], [1, 1, 11, 11]], dtype=np.float64)
        scores = np.array([0.85, 0.9])
        keep = nms(boxes, scores, NMSConfig(iou_threshold=0.45), class_ids=np.array([0, 1]))
        self.assertEqual(keep.tolist(), [1, 0])

    def test_empty(self) -> None:
        keep = nms(np.zeros((0, 4)), np.zeros((0,)), NMSConfig())
        self.assertEqual(keep.shape, (0,))


if __name__ == "__main__":
    unittest.main()
