import os
from dataclasses import dataclass, fields, is_dataclass
from pathlib import Path

import yaml
from dotenv import load_dotenv

load_dotenv()


@dataclass
class DetectionConfig:
    """Darknet network and prediction configuration."""

    threshold: float = 0.5  # Minimum class probability kept by predict()
    hierarchy_threshold: float = 0.5  # Minimum objectness for a candidate box
    nms_threshold: float = 0.45  # Non-maximal suppression overlap threshold
    default_input_size: int = 416  # Used when the .cfg has no width/height
    dnn_backend: str = "opencv"  # "opencv" or "cuda"
    dnn_target: str = "cpu"  # "cpu", "cuda" or "cuda_fp16"


@dataclass
class AnnotationConfig:
    """How annotate() labels predictions."""

    names_include_percentage: bool = True  # "dog 98%" instead of "dog"
    include_all_names: bool = True  # "car 80%, truck 60%" instead of "car 80%"
    font_scale: float = 0.5
    font_thickness: int = 1
    include_duration: bool = True  # Prediction time on the top-left
    include_timestamp: bool = False  # Wall clock on the bottom-left
    box_thickness: int = 2


@dataclass
class StreamConfig:
    """Video pipeline configuration."""

    sync_frames: bool = False  # Block capture until the detector takes the frame
    sync_results: bool = False  # Block the detector until results are consumed
    join_timeout: float = 5.0  # Seconds to wait for worker threads on stop()
    window_name: str = "DarkHelp"


class Settings:
    """
    Root settings container with Singleton Pattern.

    Sub-configurations:
    - detection: network thresholds and DNN backend
    - annotation: label and overlay options
    - stream: video pipeline options

    Environment variables (optionally from a .env file) override defaults:
    DARKHELP_THRESHOLD, DARKHELP_HIERARCHY_THRESHOLD, DARKHELP_NMS_THRESHOLD,
    DARKHELP_DNN_BACKEND, DARKHELP_DNN_TARGET, DARKHELP_SYNC_FRAMES,
    DARKHELP_SYNC_RESULTS.
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if Settings._initialized:
            return

        self.detection = DetectionConfig()
        self.annotation = AnnotationConfig()
        self.stream = StreamConfig()
        self._apply_environment()

        Settings._initialized = True

    def _apply_environment(self) -> None:
        detection = self.detection
        detection.threshold = float(
            os.getenv("DARKHELP_THRESHOLD", detection.threshold)
        )
        detection.hierarchy_threshold = float(
            os.getenv("DARKHELP_HIERARCHY_THRESHOLD", detection.hierarchy_threshold)
        )
        detection.nms_threshold = float(
            os.getenv("DARKHELP_NMS_THRESHOLD", detection.nms_threshold)
        )
        detection.dnn_backend = os.getenv("DARKHELP_DNN_BACKEND", detection.dnn_backend)
        detection.dnn_target = os.getenv("DARKHELP_DNN_TARGET", detection.dnn_target)

        sync_frames = os.getenv("DARKHELP_SYNC_FRAMES")
        if sync_frames is not None:
            self.stream.sync_frames = sync_frames.lower() in ("1", "true", "yes")

        sync_results = os.getenv("DARKHELP_SYNC_RESULTS")
        if sync_results is not None:
            self.stream.sync_results = sync_results.lower() in ("1", "true", "yes")

    def load_yaml(self, path) -> None:
        """
        Apply overrides from a YAML file.

        The file holds one mapping per sub-configuration, e.g.:

            detection:
              threshold: 0.25
            annotation:
              include_timestamp: true

        Unknown sections or keys, and non-mapping content, raise ValueError.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file must hold a mapping of sections: {path}")

        for section, values in data.items():
            if not isinstance(section, str) or section.startswith("_"):
                raise ValueError(f"Unknown config section: {section}")
            config = getattr(self, section, None)
            if not is_dataclass(config):
                raise ValueError(f"Unknown config section: {section}")

            values = values or {}
            if not isinstance(values, dict):
                raise ValueError(f"Config section [{section}] must be a mapping")

            known = {field.name for field in fields(config)}
            for key, value in values.items():
                if key not in known:
                    raise ValueError(f"Unknown key in [{section}]: {key}")
                setattr(config, key, value)

    def reset(self) -> None:
        """Restore defaults (plus environment overrides)."""
        self.detection = DetectionConfig()
        self.annotation = AnnotationConfig()
        self.stream = StreamConfig()
        self._apply_environment()


# Singleton instance - all modules import this same object
settings = Settings()
