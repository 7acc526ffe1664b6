"""
Unit tests for the threaded video pipeline.

cv2.VideoCapture is replaced by an in-memory frame source and DarkHelp by a
stub, so the tests only exercise the threads and their handoff.
"""

import threading
import unittest
from unittest.mock import patch

import numpy as np

from darkhelp.config import settings
from darkhelp.streaming.slot_channel import SlotChannel
from darkhelp.streaming.video_pipeline import (
    AnnotatedFrame,
    CapturedFrame,
    DetectionWorker,
    FrameGrabber,
    VideoPipeline,
)


def make_frame(value: int) -> np.ndarray:
    return np.full((8, 8, 3), value, dtype=np.uint8)


class FakeCapture:
    """Stands in for cv2.VideoCapture."""

    def __init__(self, num_frames=5, opened=True):
        self.num_frames = num_frames  # None for an endless stream
        self.opened = opened
        self.frames_read = 0
        self.released = threading.Event()

    def isOpened(self):
        return self.opened

    def read(self):
        if self.num_frames is not None and self.frames_read >= self.num_frames:
            return False, None
        frame = make_frame(self.frames_read % 256)
        self.frames_read += 1
        return True, frame

    def release(self):
        self.released.set()


class FakeDarkHelp:
    """Records frames and returns one fake prediction per frame."""

    def __init__(self, fail_on=(), error=ValueError):
        self.fail_on = set(fail_on)
        self.error = error
        self.duration = 0.001
        self.seen = []
        self._image = None

    def predict(self, image):
        value = int(image[0, 0, 0])
        if value in self.fail_on:
            raise self.error(f"bad frame {value}")
        self.seen.append(value)
        self._image = image
        return [value]

    def annotate(self):
        return self._image.copy()

    def duration_string(self):
        return "1.000 milliseconds"


class PipelineTestCase(unittest.TestCase):

    def setUp(self):
        settings.reset()

    def tearDown(self):
        settings.reset()

    def patch_capture(self, capture):
        patcher = patch(
            "darkhelp.streaming.video_pipeline.cv2.VideoCapture", return_value=capture
        )
        video_capture = patcher.start()
        self.addCleanup(patcher.stop)
        return video_capture


class TestFrameGrabber(PipelineTestCase):

    def test_sends_every_frame_then_none(self):
        capture = FakeCapture(num_frames=3)
        self.patch_capture(capture)
        channel = SlotChannel(sync=True)

        grabber = FrameGrabber("clip.mp4", channel)
        grabber.start()

        received = []
        while True:
            item = channel.receive()
            if item is None:
                break
            received.append(item)

        grabber.stop()

        self.assertEqual([frame.frame_num for frame in received], [0, 1, 2])
        self.assertTrue(all(isinstance(f, CapturedFrame) for f in received))
        self.assertTrue(capture.released.is_set())
        self.assertEqual(grabber.frames_captured, 3)
        self.assertFalse(grabber.is_running())

    def test_open_failure(self):
        capture = FakeCapture(opened=False)
        self.patch_capture(capture)

        grabber = FrameGrabber(3, SlotChannel())
        with self.assertRaises(RuntimeError):
            grabber.start()
        self.assertTrue(capture.released.is_set())
        self.assertFalse(grabber.is_running())


class TestDetectionWorker(PipelineTestCase):

    def test_errors_are_counted_and_skipped(self):
        frames = SlotChannel(sync=True)
        results = SlotChannel(sync=True)
        darkhelp = FakeDarkHelp(fail_on={1})

        worker = DetectionWorker(darkhelp, frames, results)
        worker.start()

        def produce():
            for value in range(4):
                frames.send(CapturedFrame(frame_num=value, image=make_frame(value)))
            frames.send(None)

        producer = threading.Thread(target=produce, daemon=True)
        producer.start()

        delivered = []
        while True:
            item = results.receive()
            if item is None:
                break
            delivered.append(item)

        producer.join(timeout=1.0)
        worker.stop()

        self.assertEqual([a.frame_num for a in delivered], [0, 2, 3])
        self.assertTrue(all(isinstance(a, AnnotatedFrame) for a in delivered))
        self.assertEqual(delivered[0].predictions, [0])
        self.assertEqual(delivered[0].duration, 0.001)
        self.assertEqual(worker.frames_processed, 3)
        self.assertEqual(worker.errors, 1)

    def test_input_drained_when_loop_dies(self):
        class BrokenResults(SlotChannel):
            def send(self, value):
                if value is not None:
                    raise RuntimeError("display gone")
                super().send(value)

        frames = SlotChannel(sync=True)
        results = BrokenResults(sync=True)
        worker = DetectionWorker(FakeDarkHelp(), frames, results)

        with patch("threading.excepthook"):
            worker.start()
            for value in range(3):
                frames.send(CapturedFrame(frame_num=value, image=make_frame(value)))
            frames.send(None)

            self.assertIsNone(results.receive())
            worker.stop()

        self.assertEqual(worker.frames_processed, 1)
        self.assertEqual(worker.frames_skipped, 2)
        self.assertFalse(worker.is_running())


class TestVideoPipeline(PipelineTestCase):

    def test_sync_pipeline_delivers_every_frame(self):
        self.patch_capture(FakeCapture(num_frames=5))
        darkhelp = FakeDarkHelp()

        pipeline = VideoPipeline(darkhelp, "clip.mp4", sync_frames=True, sync_results=True)
        delivered = list(pipeline)
        pipeline.stop()

        self.assertEqual([a.frame_num for a in delivered], [0, 1, 2, 3, 4])
        self.assertEqual(darkhelp.seen, [0, 1, 2, 3, 4])
        np.testing.assert_array_equal(delivered[2].image, make_frame(2))

    def test_overwrite_pipeline_only_moves_forward(self):
        self.patch_capture(FakeCapture(num_frames=50))

        pipeline = VideoPipeline(FakeDarkHelp(), "clip.mp4")
        self.assertFalse(pipeline.frames.sync)
        self.assertFalse(pipeline.results.sync)

        frame_nums = [a.frame_num for a in pipeline]
        pipeline.stop()

        self.assertLessEqual(len(frame_nums), 50)
        self.assertEqual(frame_nums, sorted(set(frame_nums)))

    def test_unexpected_errors_keep_sync_grabber_moving(self):
        capture = FakeCapture(num_frames=4)
        self.patch_capture(capture)
        darkhelp = FakeDarkHelp(fail_on={0, 1, 2, 3}, error=RuntimeError)

        pipeline = VideoPipeline(darkhelp, "clip.mp4", sync_frames=True, sync_results=True)
        delivered = list(pipeline)
        pipeline.stop()

        self.assertEqual(delivered, [])
        self.assertEqual(pipeline.worker.errors, 4)
        self.assertEqual(pipeline.grabber.frames_captured, 4)
        self.assertTrue(capture.released.is_set())
        self.assertFalse(pipeline.grabber.is_running())
        self.assertFalse(pipeline.worker.is_running())

    def test_modes_come_from_settings(self):
        settings.stream.sync_frames = True
        settings.stream.sync_results = True

        pipeline = VideoPipeline(FakeDarkHelp(), "clip.mp4")
        self.assertTrue(pipeline.frames.sync)
        self.assertTrue(pipeline.results.sync)

    def test_stop_endless_stream(self):
        capture = FakeCapture(num_frames=None)
        self.patch_capture(capture)

        for sync in (False, True):
            with self.subTest(sync=sync):
                capture.released.clear()
                pipeline = VideoPipeline(
                    FakeDarkHelp(), 0, sync_frames=sync, sync_results=sync
                )

                delivered = 0
                for _ in pipeline:
                    delivered += 1
                    if delivered == 3:
                        break

                pipeline.stop()

                self.assertEqual(delivered, 3)
                self.assertTrue(capture.released.wait(timeout=1.0))
                self.assertFalse(pipeline.grabber.is_running())
                self.assertFalse(pipeline.worker.is_running())

    def test_open_failure(self):
        self.patch_capture(FakeCapture(opened=False))
        pipeline = VideoPipeline(FakeDarkHelp(), "missing.mp4")

        with self.assertRaises(RuntimeError):
            list(pipeline)

        # Nothing was started, nothing to stop
        pipeline.stop()
        self.assertFalse(pipeline.worker.is_running())


if __name__ == "__main__":
    unittest.main()
