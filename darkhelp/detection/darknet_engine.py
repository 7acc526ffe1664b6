import logging
from pathlib import Path

import cv2
import numpy as np

from darkhelp.config import settings
from darkhelp.detection.models import RawDetection


logger = logging.getLogger(__name__)


_BACKENDS = {
    "opencv": cv2.dnn.DNN_BACKEND_OPENCV,
    "cuda": cv2.dnn.DNN_BACKEND_CUDA,
}

_TARGETS = {
    "cpu": cv2.dnn.DNN_TARGET_CPU,
    "cuda": cv2.dnn.DNN_TARGET_CUDA,
    "cuda_fp16": cv2.dnn.DNN_TARGET_CUDA_FP16,
}


def read_input_size(cfg_filename, default: int = 416) -> tuple[int, int]:
    """
    Read the network input (width, height) from the [net] section of a .cfg.

    Darknet .cfg files repeat section names, so configparser cannot be used.
    """
    width = height = default
    in_net_section = False

    with open(cfg_filename, "r") as f:
        for raw_line in f:
            line = raw_line.split("#", 1)[0].strip()
            if not line:
                continue

            if line.startswith("["):
                if in_net_section:
                    break
                in_net_section = line.lower() in ("[net]", "[network]")
                continue

            if in_net_section and "=" in line:
                key, value = (part.strip() for part in line.split("=", 1))
                if key == "width":
                    width = int(value)
                elif key == "height":
                    height = int(value)

    return (width, height)


class DarknetEngine:
    """
    In-process boundary to the darknet network.

    OpenCV's DNN module loads the darknet .cfg/.weights pair, runs the
    forward pass and performs non-maximal suppression. This class only
    shapes inputs and decodes the YOLO output rows:

        [mid_x, mid_y, width, height, objectness, p(class 0), p(class 1), ...]
    """

    def __init__(self, cfg_filename, weights_filename):
        self.cfg_path = Path(cfg_filename)
        self.weights_path = Path(weights_filename)

        if not self.cfg_path.exists():
            raise FileNotFoundError(f"Network config not found: {self.cfg_path}")
        if not self.weights_path.exists():
            raise FileNotFoundError(f"Weights not found: {self.weights_path}")

        self.input_size = read_input_size(
            self.cfg_path, settings.detection.default_input_size
        )

        backend = settings.detection.dnn_backend
        target = settings.detection.dnn_target
        if backend not in _BACKENDS:
            raise ValueError(f"Unknown DNN backend: {backend}")
        if target not in _TARGETS:
            raise ValueError(f"Unknown DNN target: {target}")

        logger.info("Loading darknet network from %s", self.cfg_path)
        self.net = cv2.dnn.readNetFromDarknet(str(self.cfg_path), str(self.weights_path))
        self.net.setPreferableBackend(_BACKENDS[backend])
        self.net.setPreferableTarget(_TARGETS[target])
        self.output_names = list(self.net.getUnconnectedOutLayersNames())

        logger.info(
            "Darknet network ready (input=%dx%d, backend=%s, target=%s, outputs=%d)",
            self.input_size[0],
            self.input_size[1],
            backend,
            target,
            len(self.output_names),
        )

    def detect(
        self,
        image: np.ndarray,
        threshold: float,
        hierarchy_threshold: float,
        nms_threshold: float,
    ) -> list[RawDetection]:
        if image is None or image.size == 0:
            raise ValueError("Cannot run the network on an empty image")
        if image.ndim != 3 or image.shape[2] != 3:
            raise ValueError(f"Expected a 3-channel BGR image, got shape {image.shape}")

        blob = cv2.dnn.blobFromImage(
            image, 1.0 / 255.0, self.input_size, swapRB=True, crop=False
        )
        self.net.setInput(blob)
        outputs = self.net.forward(self.output_names)

        return self._parse_outputs(
            outputs, image.shape[1], image.shape[0], threshold, hierarchy_threshold, nms_threshold
        )

    def _parse_outputs(
        self,
        outputs,
        image_width: int,
        image_height: int,
        threshold: float,
        hierarchy_threshold: float,
        nms_threshold: float,
    ) -> list[RawDetection]:
        """
        Takes raw output rows from every YOLO layer
        Drops weak candidates and runs NMS on the best class score
        Returns the surviving candidates with all their class scores
        """
        candidates = []
        boxes = []
        scores = []

        for output in outputs:
            rows = np.asarray(output, dtype=np.float32)
            for row in rows.reshape(-1, rows.shape[-1]):
                objectness = float(row[4])
                if objectness < hierarchy_threshold:
                    continue

                probabilities = np.asarray(row[5:], dtype=np.float32)
                if probabilities.size == 0:
                    continue

                best = float(probabilities.max())
                if best < threshold:
                    continue

                mid_x, mid_y, width, height = (float(v) for v in row[:4])
                candidates.append(
                    RawDetection(
                        mid_x=mid_x,
                        mid_y=mid_y,
                        width=width,
                        height=height,
                        probabilities=probabilities,
                    )
                )
                boxes.append(
                    [
                        int((mid_x - width / 2.0) * image_width),
                        int((mid_y - height / 2.0) * image_height),
                        int(width * image_width),
                        int(height * image_height),
                    ]
                )
                scores.append(best)

        if not candidates:
            return []

        indices = cv2.dnn.NMSBoxes(boxes, scores, threshold, nms_threshold)
        # Older OpenCV versions return nested arrays, newer ones flat indices
        kept = np.array(indices, dtype=np.int64).flatten()

        logger.debug(
            "Kept %d of %d candidate boxes after NMS", len(kept), len(candidates)
        )

        return [candidates[i] for i in kept]
