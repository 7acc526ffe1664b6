"""
Detection Stage

Runs darknet networks on images through OpenCV's DNN module.

Components:
- models: Data structures (BoundingBox, RawDetection, PredictionResult)
- darknet_engine: network loading, forward pass and NMS
- darkhelp_detector: predict() / annotate() wrapper

Usage:
    from darkhelp.detection import DarkHelp, format_results

    darkhelp = DarkHelp("yolov3-tiny.cfg", "yolov3-tiny.weights", "coco.names")
    results = darkhelp.predict("dog.jpg")
    print(format_results(results))
"""

# Data models
from darkhelp.detection.models import (
    BoundingBox,
    PredictionResult,
    RawDetection,
    build_name,
    format_result,
    format_results,
)

# Detectors
from darkhelp.detection.darknet_engine import DarknetEngine
from darkhelp.detection.darkhelp_detector import DarkHelp


__all__ = [
    # Models
    "BoundingBox",
    "PredictionResult",
    "RawDetection",
    "build_name",
    "format_result",
    "format_results",
    # Detectors
    "DarknetEngine",
    "DarkHelp",
]
