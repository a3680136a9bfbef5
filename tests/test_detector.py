import unittest
from unittest import mock

import numpy as np

from censor_kit import CallableAdapter, DetectionError, Detector, DetectorConfig, InitError
from censor_kit.errors import InvalidImageError, ShapeMismatchError

LABELS = ["person", "car", "dog"]


def _output(rows, num_classes: int = len(LABELS)) -> np.ndarray:
    """Rows of (cx, cy, w, h, obj, class_id) -> (1, 5 + C, N) channels-first output."""
    out = np.zeros((len(rows), 5 + num_classes), dtype=np.float64)
    for i, (cx, cy, w, h, obj, cls) in enumerate(rows):
        out[i, :5] = (cx, cy, w, h, obj)
        out[i, 5 + cls] = 1.0
    return out.T[None]


# 640x480 image into a 640x640 input: scale 1, 80 px of padding above and below.
ROWS = [
    (100, 180, 20, 40, 0.9, 0),
    (101, 181, 20, 40, 0.8, 0),
    (300, 280, 50, 50, 0.6, 2),
    (500, 400, 10, 10, 0.1, 1),
]


class TestDetector(unittest.TestCase):
    def setUp(self) -> None:
        self.image = np.zeros((480, 640, 3), dtype=np.uint8)
        self.blobs = []

    def _detector(self, output=None, **adapter_kwargs) -> Detector:
        payload = _output(ROWS) if output is None else output

        def fn(blob: np.ndarray) -> np.ndarray:
            self.blobs.append(blob)
            return payload

        self.adapter = CallableAdapter(fn, **adapter_kwargs)
        detector = Detector(DetectorConfig()).initialize(adapter=self.adapter, labels=LABELS)
        self.addCleanup(detector.release)
        return detector

    def test_detections_in_original_coordinates(self) -> None:
        dets = self._detector().detect(self.image)
        self.assertEqual([d.class_name for d in dets], ["person", "dog"])
        self.assertEqual([d.class_id for d in dets], [0, 2])
        person, dog = dets
        self.assertAlmostEqual(person.score, 0.9)
        self.assertTrue(np.allclose(person.as_xyxy(), (90, 80, 110, 120)))
        self.assertTrue(np.allclose(dog.as_xyxy(), (275, 175, 325, 225)))

    def test_model_receives_nchw_blob(self) -> None:
        self._detector().detect(self.image)
        (blob,) = self.blobs
        self.assertEqual(blob.shape, (1, 3, 640, 640))
        self.assertEqual(blob.dtype, np.float32)

    def test_declared_output_shape_accepted(self) -> None:
        dets = self._detector(output_shape=(1, 8, 4)).detect(self.image)
        self.assertEqual(len(dets), 2)

    def test_update_config_applies_to_next_call(self) -> None:
        detector = self._detector()
        detector.update_config(0.7, 0.45)
        self.assertEqual(detector.thresholds, (0.7, 0.45))
        self.assertEqual([d.class_name for d in detector.detect(self.image)], ["person"])
        detector.update_config(0.25, 0.99)
        self.assertEqual([d.class_name for d in detector.detect(self.image)], ["person", "person", "dog"])

    def test_update_config_rejects_out_of_range(self) -> None:
        detector = self._detector()
        with self.assertRaises(ValueError):
            detector.update_config(0.0, 0.5)
        with self.assertRaises(ValueError):
            detector.update_config(0.5, 1.0)
        self.assertEqual(detector.thresholds, (0.25, 0.45))

    def test_not_initialized_is_fatal(self) -> None:
        with self.assertRaises(DetectionError) as ctx:
            Detector().detect(self.image)
        self.assertTrue(ctx.exception.fatal)
        self.assertIsInstance(ctx.exception.cause, InitError)

    def test_output_shape_mismatch_is_fatal(self) -> None:
        detector = self._detector(output=np.zeros((1, 9, 4)))
        with self.assertRaises(DetectionError) as ctx:
            detector.detect(self.image)
        self.assertTrue(ctx.exception.fatal)
        self.assertIsInstance(ctx.exception.cause, ShapeMismatchError)

    def test_zero_size_image_is_not_fatal(self) -> None:
        detector = self._detector()
        with self.assertRaises(DetectionError) as ctx:
            detector.detect(np.zeros((0, 10, 3), dtype=np.uint8))
        self.assertFalse(ctx.exception.fatal)
        self.assertIsInstance(ctx.exception.cause, InvalidImageError)
        self.assertEqual(self.blobs, [])

    def test_adapter_failure_is_not_fatal(self) -> None:
        def fn(blob: np.ndarray) -> np.ndarray:
            raise RuntimeError("device lost")

        detector = Detector().initialize(adapter=CallableAdapter(fn), labels=LABELS)
        self.addCleanup(detector.release)
        with self.assertRaises(DetectionError) as ctx:
            detector.detect(self.image)
        self.assertFalse(ctx.exception.fatal)
        self.assertIsInstance(ctx.exception.cause, RuntimeError)

    def test_declared_shape_mismatch_fails_initialize(self) -> None:
        adapter = CallableAdapter(lambda blob: blob, output_shape=(1, 84, 8400))
        detector = Detector()
        with self.assertRaises(InitError):
            detector.initialize(adapter=adapter, labels=LABELS)
        self.assertFalse(adapter.closed)
        self.assertFalse(detector.is_ready)

    def test_failed_initialize_closes_only_the_adapter_it_opened(self) -> None:
        loaded = CallableAdapter(lambda blob: blob, output_shape=(1, 84, 8400))
        with mock.patch("censor_kit.runtime.load_adapter", return_value=loaded) as load:
            with self.assertRaises(InitError):
                Detector().initialize("model.onnx", labels=LABELS)
        load.assert_called_once()
        self.assertTrue(loaded.closed)

    def test_caller_adapter_reusable_after_failed_initialize(self) -> None:
        adapter = CallableAdapter(lambda blob: _output(ROWS), input_size=(320, 320))
        with self.assertRaises(InitError):
            Detector().initialize(adapter=adapter, labels=LABELS)
        self.assertFalse(adapter.closed)

        detector = Detector(DetectorConfig(input_size=(320, 320))).initialize(adapter=adapter, labels=LABELS)
        self.addCleanup(detector.release)
        self.assertTrue(detector.is_ready)

    def test_input_size_mismatch_fails_initialize(self) -> None:
        adapter = CallableAdapter(lambda blob: blob, input_size=(320, 320))
        with self.assertRaises(InitError):
            Detector().initialize(adapter=adapter, labels=LABELS)

    def test_missing_labels_fails_initialize(self) -> None:
        with self.assertRaises(InitError):
            Detector().initialize(adapter=CallableAdapter(lambda blob: blob))
        with self.assertRaises(InitError):
            Detector().initialize(adapter=CallableAdapter(lambda blob: blob), labels=[])

    def test_missing_model_file_fails_initialize(self) -> None:
        with self.assertRaises(InitError):
            Detector().initialize("/nonexistent/model.bin", labels=LABELS)

    def test_release_is_idempotent(self) -> None:
        detector = self._detector()
        detector.release()
        detector.release()
        self.assertTrue(self.adapter.closed)
        self.assertFalse(detector.is_ready)
        with self.assertRaises(DetectionError) as ctx:
            detector.detect(self.image)
        self.assertTrue(ctx.exception.fatal)


if __name__ == "__main__":
    unittest.main()
