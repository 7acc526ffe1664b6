"""
Unit tests for the image utilities.
"""

import tempfile
import unittest
from pathlib import Path

import cv2
import numpy as np

from darkhelp.utils.image_utils import (
    load_image,
    load_names,
    obj_id_to_color,
    parse_size,
    resize_keeping_aspect_ratio,
)


class TestResizeKeepingAspectRatio(unittest.TestCase):

    def test_landscape_into_square(self):
        image = np.zeros((480, 640, 3), dtype=np.uint8)
        resized = resize_keeping_aspect_ratio(image, (400, 400))
        self.assertEqual(resized.shape, (300, 400, 3))

    def test_portrait_into_square(self):
        image = np.zeros((640, 480, 3), dtype=np.uint8)
        resized = resize_keeping_aspect_ratio(image, (400, 400))
        self.assertEqual(resized.shape, (400, 300, 3))

    def test_enlarge(self):
        image = np.zeros((100, 200, 3), dtype=np.uint8)
        resized = resize_keeping_aspect_ratio(image, (1000, 1000))
        self.assertEqual(resized.shape, (500, 1000, 3))

    def test_same_size_is_unchanged(self):
        image = np.zeros((480, 640, 3), dtype=np.uint8)
        resized = resize_keeping_aspect_ratio(image, (640, 480))
        self.assertIs(resized, image)

    def test_never_exceeds_desired_size(self):
        image = np.zeros((333, 777, 3), dtype=np.uint8)
        for size in [(100, 100), (50, 300), (799, 21), (1, 1)]:
            with self.subTest(size=size):
                resized = resize_keeping_aspect_ratio(image, size)
                height, width = resized.shape[:2]
                self.assertLessEqual(width, size[0])
                self.assertLessEqual(height, size[1])
                self.assertGreaterEqual(min(width, height), 1)

    def test_grayscale(self):
        image = np.zeros((480, 640), dtype=np.uint8)
        resized = resize_keeping_aspect_ratio(image, (320, 320))
        self.assertEqual(resized.shape, (240, 320))

    def test_invalid_input(self):
        with self.assertRaises(ValueError):
            resize_keeping_aspect_ratio(np.zeros((0, 0, 3), dtype=np.uint8), (10, 10))
        with self.assertRaises(ValueError):
            resize_keeping_aspect_ratio(np.zeros((10, 10, 3), dtype=np.uint8), (0, 10))


class TestFiles(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_load_names(self):
        names_file = self.path / "coco.names"
        names_file.write_text("car\nperson  \ntraffic light\n\n")

        self.assertEqual(load_names(names_file), ["car", "person", "traffic light"])

    def test_load_names_missing(self):
        with self.assertRaises(FileNotFoundError):
            load_names(self.path / "missing.names")

    def test_load_image(self):
        image_path = self.path / "image.png"
        cv2.imwrite(str(image_path), np.full((20, 30, 3), 128, dtype=np.uint8))

        image = load_image(image_path)
        self.assertEqual(image.shape, (20, 30, 3))

    def test_load_image_missing(self):
        with self.assertRaises(FileNotFoundError):
            load_image(self.path / "missing.jpg")


class TestHelpers(unittest.TestCase):

    def test_obj_id_to_color_is_stable(self):
        self.assertEqual(obj_id_to_color(3), obj_id_to_color(3))
        for obj_id in range(20):
            color = obj_id_to_color(obj_id)
            self.assertEqual(len(color), 3)
            self.assertTrue(all(0 <= channel <= 255 for channel in color))

    def test_parse_size(self):
        self.assertEqual(parse_size("640x480"), (640, 480))
        self.assertEqual(parse_size("800X600"), (800, 600))

    def test_parse_size_invalid(self):
        for text in ("640", "ax480", "0x10", "10x-5"):
            with self.subTest(text=text):
                with self.assertRaises(ValueError):
                    parse_size(text)


if __name__ == "__main__":
    unittest.main()
