"""
DarkHelp

Simplified predict() / annotate() API over darknet networks run by OpenCV.

Usage:
    from darkhelp import DarkHelp

    darkhelp = DarkHelp("yolov3-tiny.cfg", "yolov3-tiny.weights", "coco.names")
    results = darkhelp.predict("dog.jpg")
    annotated = darkhelp.annotate()
"""

from darkhelp.config import settings
from darkhelp.detection import (
    BoundingBox,
    DarkHelp,
    PredictionResult,
    format_result,
    format_results,
)
from darkhelp.streaming import SlotChannel, VideoPipeline
from darkhelp.utils import load_names, resize_keeping_aspect_ratio

__version__ = "1.0.0"

__all__ = [
    "settings",
    "BoundingBox",
    "DarkHelp",
    "PredictionResult",
    "format_result",
    "format_results",
    "SlotChannel",
    "VideoPipeline",
    "load_names",
    "resize_keeping_aspect_ratio",
]
