"""
Video Pipeline

Runs DarkHelp on a video file or camera while keeping capture, detection
and display in separate threads.

Architecture:
- FrameGrabber thread reads frames and sends them to a SlotChannel
- DetectionWorker thread receives frames, runs predict() and annotate(),
  and sends AnnotatedFrame objects to a second SlotChannel
- The caller iterates the VideoPipeline to receive annotated frames

With overwrite channels (the default) a slow detector or display simply
skips frames instead of falling behind. None is sent through both
channels as the end-of-stream marker.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Iterator, Optional, Union

import cv2
import numpy as np

from darkhelp.config import settings
from darkhelp.detection.models import PredictionResult
from darkhelp.streaming.slot_channel import SlotChannel


logger = logging.getLogger(__name__)


@dataclass
class CapturedFrame:
    frame_num: int
    image: np.ndarray
    timestamp: float = field(default_factory=time.time)


@dataclass
class AnnotatedFrame:
    """
    Output of the detection thread for one captured frame.

    Attributes:
        frame_num: sequence number assigned by the FrameGrabber
        image: annotated copy of the captured frame
        predictions: the PredictionResults drawn on the image
        duration: how long predict() took (seconds)
    """

    frame_num: int
    image: np.ndarray
    predictions: list[PredictionResult]
    duration: float = 0.0


# =============================================================================
# FRAME GRABBER
# =============================================================================


class FrameGrabber:
    """
    Reads frames from cv2.VideoCapture and sends them into a SlotChannel.

    Threading:
        - start() opens the source and spawns the capture thread
        - stop() signals the thread to exit and waits for it
        - None is always sent when the thread exits
    """

    def __init__(self, source: Union[str, int], channel: SlotChannel):
        self.source = source
        self.channel = channel

        self._capture: Optional[cv2.VideoCapture] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._running = False

        self.frames_captured = 0

    def start(self) -> None:
        if self._running:
            logger.warning("Frame grabber already running")
            return

        self._capture = cv2.VideoCapture(self.source)
        if not self._capture.isOpened():
            self._capture.release()
            self._capture = None
            raise RuntimeError(f"Failed to open video source: {self.source}")

        self._stop_event.clear()
        self._running = True

        self._thread = threading.Thread(
            target=self._run, name="FrameGrabber", daemon=True
        )
        self._thread.start()

        logger.info("Started frame grabber for %s", self.source)

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return

        logger.info("Stopping frame grabber")

        self._stop_event.set()

        if self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None

        logger.info("Frame grabber stopped (frames=%d)", self.frames_captured)

    def request_stop(self) -> None:
        self._stop_event.set()

    def is_running(self) -> bool:
        return self._running

    def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                ok, image = self._capture.read()
                if not ok or image is None:
                    logger.info("End of video source %s", self.source)
                    break

                self.channel.send(CapturedFrame(frame_num=self.frames_captured, image=image))
                self.frames_captured += 1
        finally:
            self._capture.release()
            self._running = False
            self.channel.send(None)


# =============================================================================
# DETECTION WORKER
# =============================================================================


class DetectionWorker:
    """
    Receives CapturedFrames, runs the network and sends AnnotatedFrames.

    The worker keeps draining its input channel until it receives None, so a
    FrameGrabber blocked on a sync channel is never left waiting. After
    stop() frames are drained without running the network.
    """

    def __init__(self, darkhelp, frames: SlotChannel, results: SlotChannel):
        self.darkhelp = darkhelp
        self.frames = frames
        self.results = results

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._running = False

        self.frames_processed = 0
        self.frames_skipped = 0
        self.errors = 0

    def start(self) -> None:
        if self._running:
            logger.warning("Detection worker already running")
            return

        self._stop_event.clear()
        self._running = True

        self._thread = threading.Thread(
            target=self._run, name="DetectionWorker", daemon=True
        )
        self._thread.start()

        logger.info("Started detection worker")

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return

        logger.info("Stopping detection worker")
        self._stop_event.set()

        if self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None

        logger.info(
            "Detection worker stopped (processed=%d, skipped=%d, errors=%d)",
            self.frames_processed,
            self.frames_skipped,
            self.errors,
        )

    def request_stop(self) -> None:
        self._stop_event.set()

    def is_running(self) -> bool:
        return self._running

    def _run(self) -> None:
        end_of_stream = False
        try:
            while True:
                captured = self.frames.receive()
                if captured is None:
                    end_of_stream = True
                    break

                if self._stop_event.is_set():
                    self.frames_skipped += 1
                    continue

                annotated = self._process(captured)
                if annotated is not None:
                    self.results.send(annotated)
        finally:
            self._running = False
            self.results.send(None)
            if not end_of_stream:
                self._drain_frames()

    def _drain_frames(self) -> None:
        """Release a grabber blocked in send() after the loop exits early."""
        while self.frames.receive() is not None:
            self.frames_skipped += 1

    def _process(self, captured: CapturedFrame) -> Optional[AnnotatedFrame]:
        try:
            predictions = self.darkhelp.predict(captured.image)
            image = self.darkhelp.annotate()
        except (cv2.error, ValueError) as e:
            self.errors += 1
            logger.error("Detection failed on frame %d: %s", captured.frame_num, e)
            return None
        except Exception:
            self.errors += 1
            logger.exception("Unexpected error on frame %d", captured.frame_num)
            return None

        self.frames_processed += 1

        logger.debug(
            "Frame %d: %d predictions (%s)",
            captured.frame_num,
            len(predictions),
            self.darkhelp.duration_string(),
        )

        return AnnotatedFrame(
            frame_num=captured.frame_num,
            image=image,
            predictions=predictions,
            duration=self.darkhelp.duration,
        )


# =============================================================================
# VIDEO PIPELINE
# =============================================================================


class VideoPipeline:
    """
    Wires a FrameGrabber and a DetectionWorker together.

    Usage:
        pipeline = VideoPipeline(darkhelp, "traffic.mp4")
        for annotated in pipeline:
            cv2.imshow("DarkHelp", annotated.image)
            if cv2.waitKey(1) == 27:
                break
        pipeline.stop()
    """

    def __init__(
        self,
        darkhelp,
        source: Union[str, int],
        sync_frames: Optional[bool] = None,
        sync_results: Optional[bool] = None,
    ):
        if sync_frames is None:
            sync_frames = settings.stream.sync_frames
        if sync_results is None:
            sync_results = settings.stream.sync_results

        self.frames = SlotChannel(sync=sync_frames)
        self.results = SlotChannel(sync=sync_results)

        self.grabber = FrameGrabber(source, self.frames)
        self.worker = DetectionWorker(darkhelp, self.frames, self.results)

        self.join_timeout = settings.stream.join_timeout
        self._started = False
        self._finished = False

    def start(self) -> None:
        if self._started:
            return

        self.grabber.start()
        self.worker.start()

        self._started = True

    def __iter__(self) -> Iterator[AnnotatedFrame]:
        self.start()

        while not self._finished:
            annotated = self.results.receive()
            if annotated is None:
                self._finished = True
                break
            yield annotated

    def stop(self) -> None:
        if not self._started:
            return

        self.grabber.request_stop()
        self.worker.request_stop()
        self._drain_results()
        self.grabber.stop(timeout=self.join_timeout)
        self.worker.stop(timeout=self.join_timeout)

        self._started = False

    def _drain_results(self) -> None:
        """Consume results until the worker's end-of-stream marker."""
        while not self._finished:
            if self.results.receive() is None:
                self._finished = True
