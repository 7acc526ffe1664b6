import logging
from pathlib import Path

import cv2
import numpy as np


logger = logging.getLogger(__name__)


def resize_keeping_aspect_ratio(
    image: np.ndarray, desired_size: tuple[int, int]
) -> np.ndarray:
    """
    Resize an image so it fits within desired_size without distorting it.

    Args:
        image: BGR image (H, W, 3) or grayscale (H, W)
        desired_size: (width, height) that the result must not exceed

    Returns:
        The same image if it already has the desired size, otherwise a
        resized copy. A 640x480 image resized to (400, 400) becomes 400x300.
    """
    if image is None or image.size == 0:
        raise ValueError("Cannot resize an empty image")

    desired_width, desired_height = desired_size
    if desired_width <= 0 or desired_height <= 0:
        raise ValueError(f"Invalid desired size: {desired_width}x{desired_height}")

    height, width = image.shape[:2]
    if width == desired_width and height == desired_height:
        return image

    scale = min(desired_width / width, desired_height / height)
    new_width = min(desired_width, max(1, int(round(width * scale))))
    new_height = min(desired_height, max(1, int(round(height * scale))))

    if new_width == width and new_height == height:
        return image

    interpolation = cv2.INTER_AREA if scale < 1.0 else cv2.INTER_CUBIC
    return cv2.resize(image, (new_width, new_height), interpolation=interpolation)


def load_names(filename) -> list[str]:
    """Read class names, one per line, from a darknet .names file."""
    path = Path(filename)
    if not path.exists():
        raise FileNotFoundError(f"Names file not found: {path}")

    with open(path, "r") as f:
        names = [line.rstrip() for line in f]

    # A trailing newline at the end of the file is not a class
    while names and not names[-1]:
        names.pop()

    logger.info("Loaded %d class names from %s", len(names), path)
    return names


def load_image(filename) -> np.ndarray:
    path = Path(filename)
    image = cv2.imread(str(path))
    if image is None:
        raise FileNotFoundError(f"Failed to load image: {path}")
    return image


def obj_id_to_color(obj_id: int) -> tuple[int, int, int]:
    """Deterministic bright BGR colour for a class id."""
    colors = [(1, 0, 1), (0, 0, 1), (0, 1, 1), (0, 1, 0), (1, 1, 0), (1, 0, 0)]
    offset = obj_id * 123457 % 6
    color_scale = 150 + (obj_id * 123457) % 100
    b, g, r = colors[offset]
    return (b * color_scale, g * color_scale, r * color_scale)


def parse_size(text: str) -> tuple[int, int]:
    """Parse "640x480" into (640, 480)."""
    try:
        width, height = (int(part) for part in text.lower().split("x"))
    except ValueError:
        raise ValueError(f"Invalid size '{text}', expected WIDTHxHEIGHT") from None

    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid size '{text}', expected WIDTHxHEIGHT")
    return (width, height)
