"""
MeshFlow — Detector Facade Tests
=================================
"""

from __future__ import annotations

import sys
import unittest
from pathlib import Path
from unittest.mock import patch

import numpy as np

# Add project root to path
_project_root = str(Path(__file__).resolve().parent.parent)
_tests_dir = str(Path(__file__).resolve().parent)
for _p in (_project_root, _tests_dir):
    if _p not in sys.path:
        sys.path.insert(0, _p)

from mesh_detector import FaceLandmarksDetector
from mesh_graph import ConfigurationError
from mesh_options import FaceLandmarksDetectorGraphOptions
from mesh_types import Image, NormalizedRect
from mesh_fakes import ABSENT_LOGIT, PRESENT_LOGIT, FakeSession, gray_image, make_resources


class TestFaceLandmarksDetector(unittest.TestCase):

    def setUp(self):
        self.session = FakeSession()
        self.detector = FaceLandmarksDetector(model_resources=make_resources(self.session))

    def tearDown(self):
        self.detector.release()

    def test_detect_numpy_frame(self):
        result = self.detector.detect(gray_image())
        self.assertTrue(result.presence)
        self.assertEqual(len(result.landmarks), 478)
        self.assertAlmostEqual(result.rect_next_frame.width, 0.75, places=5)

    def test_detect_bgr_frame_is_converted_to_rgb(self):
        frame = np.zeros((256, 256, 3), dtype=np.uint8)
        frame[:, :, 0] = 255  # blue in BGR
        self.detector.detect(frame)
        tensor = next(iter(self.session.feeds[0].values()))
        np.testing.assert_allclose(tensor[0, 128, 128], [0.0, 0.0, 1.0], atol=1e-6)

    def test_detect_accepts_image(self):
        result = self.detector.detect(Image(gray_image()), NormalizedRect.whole_image())
        self.assertTrue(result.presence)

    def test_detect_batch(self):
        rects = [NormalizedRect(0.3, 0.5, 0.4, 0.4), NormalizedRect(0.7, 0.5, 0.4, 0.4)]
        result = self.detector.detect_batch(gray_image(), rects)
        self.assertEqual(len(result), 2)
        self.assertEqual(result.presence, [True, True])

    def test_detect_after_release_raises(self):
        self.detector.release()
        with self.assertRaises(RuntimeError):
            self.detector.detect(gray_image())


class TestDetectorConstruction(unittest.TestCase):

    def test_requires_model_path_or_resources(self):
        with self.assertRaises(ConfigurationError):
            FaceLandmarksDetector()

    def test_loads_model_from_options_path(self):
        options = FaceLandmarksDetectorGraphOptions.from_config(
            {"model": {"path": "face.onnx"}}
        )
        with patch("mesh_detector.ModelResources.from_file",
                   return_value=make_resources()) as from_file:
            detector = FaceLandmarksDetector(options)
        from_file.assert_called_once_with("face.onnx", options.base_options.acceleration)
        detector.release()

    def test_worker_pool_keeps_batch_order(self):
        session = FakeSession(presence_logits=[PRESENT_LOGIT, ABSENT_LOGIT])
        options = FaceLandmarksDetectorGraphOptions(num_workers=3)
        rects = [NormalizedRect(0.5, 0.5, 0.5, 0.5)] * 6
        with FaceLandmarksDetector(options, make_resources(session)) as detector:
            result = detector.detect_batch(gray_image(), rects)
        self.assertEqual(len(result), 6)
        # Scores follow model call order, which a pool may shuffle;
        # each index must still be internally consistent.
        for i in range(6):
            self.assertEqual(result.presence[i], not result.landmarks[i].is_empty)
            self.assertEqual(result.presence[i], result.presence_score[i] >= 0.5)

    def test_from_config_dict(self):
        config = {
            "model": {"path": "/models/face.onnx"},
            "detector": {"min_detection_confidence": 0.7},
        }
        detector = FaceLandmarksDetector.from_config(config, model_resources=make_resources())
        self.assertEqual(detector.options.min_detection_confidence, 0.7)
        self.assertEqual(detector.options.base_options.model_asset_path, "/models/face.onnx")
        detector.release()

    def test_invalid_options_rejected(self):
        options = FaceLandmarksDetectorGraphOptions(min_detection_confidence=-0.1)
        with self.assertRaises(ConfigurationError):
            FaceLandmarksDetector(options, make_resources())


if __name__ == "__main__":
    unittest.main()
