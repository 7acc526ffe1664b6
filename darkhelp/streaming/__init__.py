"""
Streaming Stage

Moves frames and results between threads.

Components:
- slot_channel: single-slot replaceable object channel
- video_pipeline: capture thread, detection thread and their handoff
"""

from darkhelp.streaming.slot_channel import SlotChannel
from darkhelp.streaming.video_pipeline import (
    AnnotatedFrame,
    CapturedFrame,
    DetectionWorker,
    FrameGrabber,
    VideoPipeline,
)

__all__ = [
    "SlotChannel",
    "AnnotatedFrame",
    "CapturedFrame",
    "DetectionWorker",
    "FrameGrabber",
    "VideoPipeline",
]
