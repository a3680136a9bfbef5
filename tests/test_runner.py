import json
import tempfile
import unittest
from pathlib import Path

from Gallery_Censor.config import DEFAULT_CENSORED_CLASSES
from Gallery_Censor.runner import _parse_ort_providers, build_parser, resolve_censor_config, run


class TestRunner(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)

    def _args(self, *argv: str):
        return build_parser().parse_args(["--media-dir", str(self.root), *argv])

    def test_defaults(self) -> None:
        cfg = resolve_censor_config(self._args())
        self.assertEqual(cfg.confidence_threshold, 0.25)
        self.assertEqual(cfg.iou_threshold, 0.45)
        self.assertEqual(cfg.censored_classes, DEFAULT_CENSORED_CLASSES)

    def test_cli_overrides_file(self) -> None:
        path = self.root / "censor.json"
        path.write_text(
            json.dumps({"confidence_threshold": 0.4, "iou_threshold": 0.6, "censored_classes": ["dog"]}),
            encoding="utf-8",
        )
        cfg = resolve_censor_config(self._args("--config", str(path), "--conf", "0.7"))
        self.assertEqual(cfg.confidence_threshold, 0.7)
        self.assertEqual(cfg.iou_threshold, 0.6)
        self.assertEqual(cfg.censored_classes, frozenset({"dog"}))

        cfg = resolve_censor_config(self._args("--config", str(path), "--censor-class", "Car", "--censor-class", "bus"))
        self.assertEqual(cfg.censored_classes, frozenset({"car", "bus"}))

    def test_parse_ort_providers(self) -> None:
        self.assertIsNone(_parse_ort_providers(None))
        self.assertIsNone(_parse_ort_providers(" , "))
        self.assertEqual(
            _parse_ort_providers("'CUDAExecutionProvider', CPUExecutionProvider"),
            ["CUDAExecutionProvider", "CPUExecutionProvider"],
        )

    def test_bad_config_file_exit_code(self) -> None:
        bad = self.root / "bad.json"
        bad.write_text(json.dumps({"confidence": 0.4}), encoding="utf-8")
        for argv in (("--config", str(bad)), ("--config", str(self.root / "missing.json")), ("--conf", "1.5")):
            with self.subTest(argv=argv), self.assertLogs("Gallery_Censor.runner", level="ERROR"):
                self.assertEqual(run(self._args(*argv)), 2)

    def test_small_imgsz_exit_code(self) -> None:
        with self.assertLogs("Gallery_Censor.runner", level="ERROR"):
            self.assertEqual(run(self._args("--imgsz", "16")), 2)

    def test_init_failure_exit_code(self) -> None:
        args = self._args("--labels", str(self.root / "missing.txt"), "--out-dir", str(self.root / "out"))
        with self.assertLogs("Gallery_Censor.runner", level="ERROR"):
            self.assertEqual(run(args), 2)
        self.assertFalse((self.root / "out").exists())


if __name__ == "__main__":
    unittest.main()
