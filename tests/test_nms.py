import itertools
import unittest

import numpy as np

from freshdet.nms import NMSConfig, box_iou, nms, suppress
from freshdet.types import Candidate


def cand(x, y, w, h, conf, class_id=0, label=None):
    return Candidate(
        x=float(x),
        y=float(y),
        width=float(w),
        height=float(h),
        confidence=float(conf),
        class_id=class_id,
        label=label or f"class_{class_id}",
    )


def random_candidates(rng, n, classes=3):
    out = []
    for _ in range(n):
        x, y = rng.uniform(0, 100, size=2)
        w, h = rng.uniform(5, 40, size=2)
        # Coarse confidences so ties happen.
        conf = round(float(rng.uniform(0.5, 1.0)), 1)
        out.append(cand(x, y, w, h, conf, class_id=int(rng.integers(0, classes))))
    return out


class TestBoxIou(unittest.TestCase):
    def test_identical_boxes(self) -> None:
        a = cand(10, 10, 4, 6, 0.9)
        self.assertEqual(box_iou(a, a), 1.0)

    def test_identical_normalized_boxes(self) -> None:
        for x, y, w, h in ((0.37, 0.5, 0.29, 0.33), (0.91, 0.61, 0.38, 0.29), (0.123, 0.456, 0.0789, 0.1011)):
            a = cand(x, y, w, h, 0.9)
            self.assertEqual(box_iou(a, a), 1.0)

    def test_never_above_one(self) -> None:
        rng = np.random.default_rng(29)
        for _ in range(500):
            x, y, w, h = rng.uniform(0.01, 1.0, size=4)
            a = cand(x, y, w, h, 0.9)
            self.assertLessEqual(box_iou(a, a), 1.0)
            self.assertLessEqual(box_iou(a, cand(x + 1e-9, y, w, h, 0.5)), 1.0)

    def test_symmetric(self) -> None:
        rng = np.random.default_rng(3)
        boxes = random_candidates(rng, 20)
        for a, b in itertools.combinations(boxes, 2):
            self.assertEqual(box_iou(a, b), box_iou(b, a))

    def test_disjoint_is_zero(self) -> None:
        a = cand(10, 10, 4, 4, 0.9)
        b = cand(30, 30, 4, 4, 0.8)
        self.assertEqual(box_iou(a, b), 0.0)

    def test_touching_edges_is_zero(self) -> None:
        a = cand(1, 1, 2, 2, 0.9)
        b = cand(3, 1, 2, 2, 0.8)
        self.assertEqual(box_iou(a, b), 0.0)

    def test_partial_overlap(self) -> None:
        # xyxy (0,0,3,1) and (1,0,4,1): inter 2, union 4
        a = cand(1.5, 0.5, 3, 1, 0.9)
        b = cand(2.5, 0.5, 3, 1, 0.8)
        self.assertAlmostEqual(box_iou(a, b), 0.5)

    def test_zero_area_boxes(self) -> None:
        a = cand(5, 5, 0, 0, 0.9)
        self.assertEqual(box_iou(a, a), 0.0)
        b = cand(5, 5, 0, 10, 0.9)
        self.assertEqual(box_iou(a, b), 0.0)


class TestNmsArray(unittest.TestCase):
    def test_keeps_highest_per_cluster(self) -> None:
        boxes = np.array(
            [
                [0, 0, 10, 10],
                [1, 1, 10, 10],
                [50, 50, 60, 60],
            ],
            dtype=np.float32,
        )
        scores = np.array([0.8, 0.9, 0.7], dtype=np.float32)
        keep = nms(boxes, scores, NMSConfig(iou_threshold=0.45))
        self.assertEqual(keep.tolist(), [1, 2])

    def test_empty(self) -> None:
        keep = nms(np.zeros((0, 4)), np.zeros((0,)), NMSConfig())
        self.assertEqual(keep.shape, (0,))

    def test_max_detections(self) -> None:
        boxes = np.array([[i * 20, 0, i * 20 + 10, 10] for i in range(5)], dtype=np.float32)
        scores = np.linspace(0.9, 0.5, 5)
        keep = nms(boxes, scores, NMSConfig(iou_threshold=0.5, max_detections=2))
        self.assertEqual(keep.tolist(), [0, 1])

    def test_invalid_config(self) -> None:
        with self.assertRaises(ValueError):
            NMSConfig(iou_threshold=-0.1)
        with self.assertRaises(ValueError):
            NMSConfig(iou_threshold=0.0)
        with self.assertRaises(ValueError):
            NMSConfig(max_detections=0)


class TestSuppress(unittest.TestCase):
    def test_empty_input(self) -> None:
        self.assertEqual(suppress([], 0.45), [])

    def test_overlapping_pair_keeps_higher(self) -> None:
        a = cand(50, 50, 100, 100, 0.6)
        b = cand(50, 50, 100, 100, 0.9)
        self.assertEqual(suppress([a, b], 0.45), [b])

    def test_identical_boxes_any_threshold_below_one(self) -> None:
        low = cand(20, 20, 10, 10, 0.4)
        high = cand(20, 20, 10, 10, 0.95)
        for k in (0.01, 0.1, 0.5, 0.99, 0.999999):
            self.assertEqual(suppress([low, high], k), [high])

    def test_disjoint_boxes_always_survive(self) -> None:
        a = cand(10, 10, 4, 4, 0.9)
        b = cand(30, 30, 4, 4, 0.8)
        for k in (0.01, 0.3, 1.0):
            self.assertEqual(suppress([b, a], k), [a, b])

    def test_exactly_at_threshold_is_suppressed(self) -> None:
        a = cand(1.5, 0.5, 3, 1, 0.9)
        b = cand(2.5, 0.5, 3, 1, 0.8)
        self.assertEqual(box_iou(a, b), 0.5)
        self.assertEqual(suppress([a, b], 0.5), [a])
        self.assertEqual(suppress([a, b], 0.500001), [a, b])

    def test_observed_iou_as_threshold_suppresses_normalized_boxes(self) -> None:
        rng = np.random.default_rng(23)
        checked = 0
        for _ in range(2000):
            x, y = rng.uniform(0.05, 0.95, size=2)
            w, h = rng.uniform(0.01, 0.5, size=2)
            dx, dy = rng.uniform(-0.3, 0.3, size=2)
            a = cand(round(x, 2), round(y, 2), round(w, 2), round(h, 2), 0.9)
            b = cand(round(x + dx, 2), round(y + dy, 2), round(w, 2), round(h, 2), 0.8)
            k = box_iou(a, b)
            if k <= 0.0:
                continue
            checked += 1
            self.assertEqual(suppress([a, b], k), [a], (a, b, k))
            self.assertEqual(suppress([b, a], k), [a], (a, b, k))
        self.assertGreater(checked, 100)

    def test_self_iou_is_a_valid_threshold(self) -> None:
        a = cand(0.37, 0.5, 0.29, 0.33, 0.9)
        b = cand(0.37, 0.5, 0.29, 0.33, 0.4)
        self.assertEqual(suppress([b, a], box_iou(a, a)), [a])

    def test_output_sorted_by_confidence(self) -> None:
        c = [cand(i * 50, 0, 10, 10, conf) for i, conf in enumerate([0.6, 0.9, 0.75])]
        out = suppress(c, 0.45)
        self.assertEqual([x.confidence for x in out], [0.9, 0.75, 0.6])

    def test_equal_confidence_keeps_decode_order(self) -> None:
        first = cand(50, 50, 20, 20, 0.8, label="first")
        second = cand(52, 50, 20, 20, 0.8, label="second")
        far = cand(200, 200, 20, 20, 0.8, label="far")
        self.assertEqual(suppress([first, second, far], 0.45), [first, far])
        self.assertEqual(suppress([second, first, far], 0.45), [second, far])
        self.assertEqual(suppress([far, first, second], 0.45), [far, first])

    def test_global_suppression_across_classes(self) -> None:
        fresh = cand(50, 50, 40, 40, 0.9, class_id=0, label="Fresh_Apple")
        rotten = cand(52, 50, 40, 40, 0.7, class_id=13, label="Rotten_Apple")
        self.assertEqual(suppress([fresh, rotten], 0.45), [fresh])

    def test_class_aware_suppression(self) -> None:
        fresh = cand(50, 50, 40, 40, 0.9, class_id=0, label="Fresh_Apple")
        fresh_dup = cand(51, 50, 40, 40, 0.8, class_id=0, label="Fresh_Apple")
        rotten = cand(52, 50, 40, 40, 0.85, class_id=13, label="Rotten_Apple")
        out = suppress([fresh, fresh_dup, rotten], 0.45, class_agnostic=False)
        self.assertEqual(out, [fresh, rotten])

    def test_class_aware_merge_is_stable_on_ties(self) -> None:
        a = cand(0, 0, 10, 10, 0.8, class_id=1)
        b = cand(100, 0, 10, 10, 0.8, class_id=0)
        c = cand(200, 0, 10, 10, 0.8, class_id=1)
        self.assertEqual(suppress([a, b, c], 0.45, class_agnostic=False), [a, b, c])

    def test_max_detections(self) -> None:
        c = [cand(i * 50, 0, 10, 10, 0.9 - i * 0.1) for i in range(4)]
        self.assertEqual(suppress(c, 0.45, max_detections=2), c[:2])
        self.assertEqual(suppress(c, 0.45, class_agnostic=False, max_detections=3), c[:3])

    def test_properties_on_random_inputs(self) -> None:
        rng = np.random.default_rng(11)
        for trial in range(20):
            boxes = random_candidates(rng, 40)
            for k in (0.2, 0.45, 0.7):
                kept = suppress(boxes, k)
                # No kept pair overlaps at or above the threshold.
                for a, b in itertools.combinations(kept, 2):
                    self.assertLess(box_iou(a, b), k)
                # Idempotent.
                self.assertEqual(suppress(kept, k), kept)
                # Every dropped box overlaps a kept box with >= confidence.
                for c in boxes:
                    if c in kept:
                        continue
                    self.assertTrue(any(box_iou(c, m) >= k and m.confidence >= c.confidence for m in kept))

    def test_class_aware_properties(self) -> None:
        rng = np.random.default_rng(5)
        boxes = random_candidates(rng, 60)
        kept = suppress(boxes, 0.45, class_agnostic=False)
        for a, b in itertools.combinations(kept, 2):
            if a.class_id == b.class_id:
                self.assertLess(box_iou(a, b), 0.45)
        self.assertEqual(suppress(kept, 0.45, class_agnostic=False), kept)

    def test_shuffle_insensitive_with_distinct_confidences(self) -> None:
        rng = np.random.default_rng(19)
        boxes = []
        confs = rng.permutation(np.linspace(0.5, 0.99, 30))
        for conf in confs:
            x, y = rng.uniform(0, 100, size=2)
            boxes.append(cand(x, y, 30, 30, conf))
        expected = suppress(boxes, 0.45)
        for _ in range(5):
            shuffled = [boxes[i] for i in rng.permutation(len(boxes))]
            self.assertEqual(suppress(shuffled, 0.45), expected)

    def test_pure(self) -> None:
        boxes = [cand(50, 50, 20, 20, 0.6), cand(51, 50, 20, 20, 0.9)]
        snapshot = list(boxes)
        suppress(boxes, 0.45)
        self.assertEqual(boxes, snapshot)


if __name__ == "__main__":
    unittest.main()
