import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Union

import cv2
import numpy as np

from darkhelp.config import settings
from darkhelp.detection.darknet_engine import DarknetEngine
from darkhelp.detection.models import (
    BoundingBox,
    PredictionResult,
    RawDetection,
    best_of,
    build_name,
)
from darkhelp.utils.image_utils import load_image, load_names, obj_id_to_color


logger = logging.getLogger(__name__)


class DarkHelp:
    """
    Load a darknet network once, then call predict() as often as needed.

        darkhelp = DarkHelp("mynetwork.cfg", "mynetwork.weights", "mynetwork.names")
        for filename in ("image_0.jpg", "image_1.jpg"):
            results = darkhelp.predict(filename)
            cv2.imshow("prediction", darkhelp.annotate())
            cv2.waitKey()

    Tunable attributes (threshold, names_include_percentage, annotation_*)
    are plain attributes and may be changed between calls.
    """

    def __init__(self, cfg_filename, weights_filename, names_filename=""):
        start_time = time.perf_counter()

        self.engine = DarknetEngine(cfg_filename, weights_filename)
        self.names: list[str] = load_names(names_filename) if names_filename else []

        detection = settings.detection
        annotation = settings.annotation

        self.threshold = detection.threshold
        self.hierarchy_threshold = detection.hierarchy_threshold
        self.non_maximal_suppression_threshold = detection.nms_threshold

        self.names_include_percentage = annotation.names_include_percentage
        self.include_all_names = annotation.include_all_names
        self.annotation_colours = self.get_default_annotation_colours()
        self.annotation_font_face = cv2.FONT_HERSHEY_SIMPLEX
        self.annotation_font_scale = annotation.font_scale
        self.annotation_font_thickness = annotation.font_thickness
        self.annotation_include_duration = annotation.include_duration
        self.annotation_include_timestamp = annotation.include_timestamp
        self.annotation_box_thickness = annotation.box_thickness

        self.prediction_results: list[PredictionResult] = []
        self.original_image: Union[np.ndarray, None] = None
        self.annotated_image: Union[np.ndarray, None] = None

        # Load time until the first predict() replaces it
        self.duration = time.perf_counter() - start_time

        logger.info(
            "DarkHelp ready (classes=%d, threshold=%.2f, nms=%.2f, load=%s)",
            len(self.names),
            self.threshold,
            self.non_maximal_suppression_threshold,
            self.duration_string(),
        )

    def predict(
        self, image: Union[str, Path, np.ndarray], new_threshold: float = -1.0
    ) -> list[PredictionResult]:
        """
        Use the network to find objects in an image.

        Args:
            image: filename to load, or an already loaded BGR image
            new_threshold: negative to keep the current threshold, otherwise
                a value in [0, 1] that replaces it

        Returns:
            One PredictionResult per object. Also kept in prediction_results,
            and the image in original_image.
        """
        self._apply_threshold(new_threshold)

        if isinstance(image, (str, Path)):
            image = load_image(image)
        if image is None or image.size == 0:
            raise ValueError("Cannot predict on an empty image")

        self.original_image = image
        self.annotated_image = None

        start_time = time.perf_counter()
        raw_detections = self.engine.detect(
            image,
            threshold=self.threshold,
            hierarchy_threshold=self.hierarchy_threshold,
            nms_threshold=self.non_maximal_suppression_threshold,
        )

        image_height, image_width = image.shape[:2]
        results = []
        for raw in raw_detections:
            result = self._to_prediction(raw, image_width, image_height)
            if result is not None:
                results.append(result)

        self.duration = time.perf_counter() - start_time
        self.prediction_results = results

        logger.debug(
            "Predicted %d objects in %dx%d image (%s)",
            len(results),
            image_width,
            image_height,
            self.duration_string(),
        )

        return results

    def annotate(self, new_threshold: float = -1.0) -> np.ndarray:
        """
        Draw the most recent predictions onto a copy of the most recent image.

        Lowering the threshold here does not bring back predictions that
        predict() already excluded with a higher threshold.
        """
        if self.original_image is None:
            raise RuntimeError("annotate() called before predict()")

        self._apply_threshold(new_threshold)

        annotated = self.original_image.copy()

        for pred in self.prediction_results:
            if pred.best_probability < self.threshold:
                continue
            self._draw_prediction(annotated, pred)

        if self.annotation_include_duration:
            self._draw_text_block(annotated, self.duration_string(), top=True)

        if self.annotation_include_timestamp:
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            self._draw_text_block(annotated, timestamp, top=False)

        self.annotated_image = annotated
        return annotated

    def duration_string(self) -> str:
        """Length of the last predict() (or network load) as readable text."""
        seconds = self.duration
        if seconds < 1e-6:
            return f"{seconds * 1e9:.0f} nanoseconds"
        if seconds <= 1e-3:
            return f"{seconds * 1e6:.3f} microseconds"
        if seconds <= 1.0:
            return f"{seconds * 1e3:.3f} milliseconds"
        return f"{seconds:.3f} seconds"

    @staticmethod
    def get_default_annotation_colours() -> list[tuple[int, int, int]]:
        """Bright colours for annotate(). OpenCV is BGR, so red is (0, 0, 255)."""
        return [
            (255, 0, 255),  # magenta
            (255, 0, 0),  # blue
            (0, 255, 0),  # green
            (0, 255, 255),  # yellow
            (0, 0, 255),  # red
            (255, 255, 0),  # cyan
        ]

    def _apply_threshold(self, new_threshold: float) -> None:
        if new_threshold < 0.0:
            return
        if new_threshold > 1.0:
            raise ValueError(
                f"Threshold must be -1 or in [0, 1], got {new_threshold}"
            )
        self.threshold = float(new_threshold)

    def _to_prediction(
        self, raw: RawDetection, image_width: int, image_height: int
    ) -> Union[PredictionResult, None]:
        probabilities = {
            int(class_id): float(probability)
            for class_id, probability in enumerate(raw.probabilities)
            if probability > 0.0 and probability >= self.threshold
        }

        best = best_of(probabilities)
        if best is None:
            return None
        best_class, best_probability = best

        if self.names and best_class >= len(self.names):
            logger.warning(
                "Class #%d has no name (names file lists %d classes)",
                best_class,
                len(self.names),
            )

        return PredictionResult(
            rect=BoundingBox.from_normalized(
                raw.mid_x, raw.mid_y, raw.width, raw.height, image_width, image_height
            ),
            mid_x=raw.mid_x,
            mid_y=raw.mid_y,
            width=raw.width,
            height=raw.height,
            all_probabilities=probabilities,
            best_class=best_class,
            best_probability=min(1.0, best_probability),
            name=build_name(
                probabilities,
                self.names,
                include_percentage=self.names_include_percentage,
                include_all_names=self.include_all_names,
            ),
        )

    def _colour_for(self, class_id: int) -> tuple[int, int, int]:
        if not self.annotation_colours:
            return obj_id_to_color(class_id)
        return tuple(self.annotation_colours[class_id % len(self.annotation_colours)])

    def _draw_prediction(self, image: np.ndarray, pred: PredictionResult) -> None:
        image_height, image_width = image.shape[:2]
        colour = self._colour_for(pred.best_class)
        rect = pred.rect

        cv2.rectangle(
            image,
            (rect.x, rect.y),
            (rect.x2, rect.y2),
            colour,
            self.annotation_box_thickness,
        )

        (text_width, text_height), baseline = cv2.getTextSize(
            pred.name,
            self.annotation_font_face,
            self.annotation_font_scale,
            self.annotation_font_thickness,
        )
        label_height = text_height + baseline + 2
        label_width = text_width + 2

        # Label sits above the box, or inside it when the box touches the top
        top = rect.y - label_height
        if top < 0:
            top = rect.y
        left = rect.x
        if left + label_width > image_width:
            left = max(0, image_width - label_width)
        if top + label_height > image_height:
            top = max(0, image_height - label_height)

        cv2.rectangle(
            image,
            (left, top),
            (left + label_width, top + label_height),
            colour,
            cv2.FILLED,
        )
        cv2.putText(
            image,
            pred.name,
            (left + 1, top + text_height + 1),
            self.annotation_font_face,
            self.annotation_font_scale,
            (0, 0, 0),
            self.annotation_font_thickness,
            cv2.LINE_AA,
        )

    def _draw_text_block(self, image: np.ndarray, text: str, top: bool) -> None:
        image_height = image.shape[0]
        (text_width, text_height), baseline = cv2.getTextSize(
            text,
            self.annotation_font_face,
            self.annotation_font_scale,
            self.annotation_font_thickness,
        )
        block_height = text_height + baseline + 4
        y = 0 if top else max(0, image_height - block_height)

        cv2.rectangle(
            image, (0, y), (text_width + 4, y + block_height), (0, 0, 0), cv2.FILLED
        )
        cv2.putText(
            image,
            text,
            (2, y + text_height + 2),
            self.annotation_font_face,
            self.annotation_font_scale,
            (255, 255, 255),
            self.annotation_font_thickness,
            cv2.LINE_AA,
        )
