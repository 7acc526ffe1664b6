"""
Detection Data Models

Defines data structures for prediction outputs.

Key Types:
- BoundingBox: 2D rectangle in image pixel coordinates (corner + size)
- RawDetection: one candidate box as decoded from the network output
- PredictionResult: one detected object, with every matching class
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np


@dataclass
class BoundingBox:
    x: int
    y: int
    width: int
    height: int

    def __post_init__(self):
        assert self.width >= 0, f"Invalid bbox: width={self.width} < 0"
        assert self.height >= 0, f"Invalid bbox: height={self.height} < 0"

    @property
    def x2(self) -> int:
        return self.x + self.width

    @property
    def y2(self) -> int:
        return self.y + self.height

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    @property
    def area(self) -> int:
        return self.width * self.height

    @classmethod
    def from_normalized(
        cls,
        mid_x: float,
        mid_y: float,
        width: float,
        height: float,
        image_width: int,
        image_height: int,
    ) -> "BoundingBox":
        """
        Convert normalized mid-point coordinates into a pixel rectangle.

        The result is clipped to the image. x2 and y2 are exclusive ends.
        """
        w = width * image_width
        h = height * image_height
        x1 = int(round(mid_x * image_width - w / 2.0))
        y1 = int(round(mid_y * image_height - h / 2.0))
        x2 = int(round(mid_x * image_width + w / 2.0))
        y2 = int(round(mid_y * image_height + h / 2.0))

        x1 = max(0, min(x1, image_width - 1))
        y1 = max(0, min(y1, image_height - 1))
        x2 = max(x1, min(x2, image_width))
        y2 = max(y1, min(y2, image_height))

        return cls(x=x1, y=y1, width=x2 - x1, height=y2 - y1)


@dataclass
class RawDetection:
    """
    Candidate box straight out of the network, after NMS.

    Attributes:
        mid_x, mid_y: normalized centre of the box
        width, height: normalized size of the box
        probabilities: per-class scores, one entry per class
    """

    mid_x: float
    mid_y: float
    width: float
    height: float
    probabilities: np.ndarray


@dataclass
class PredictionResult:
    """
    Single object found by DarkHelp.predict().

    Attributes:
        rect: where the object is in the original image (pixels)
        mid_x, mid_y, width, height: normalized values returned by darknet.
            mid_x/mid_y are the centre of the box, not the corner.
        all_probabilities: every class id whose probability passed the
            threshold, mapped to that probability. Zero entries are never stored.
        best_class: class id with the highest probability
        best_probability: the probability of best_class
        name: label used by annotate(), e.g. "car 80%, truck 60%"
    """

    rect: BoundingBox
    mid_x: float
    mid_y: float
    width: float
    height: float
    all_probabilities: dict[int, float] = field(default_factory=dict)
    best_class: int = 0
    best_probability: float = 0.0
    name: str = ""

    def __post_init__(self):
        assert (
            0.0 <= self.best_probability <= 1.0
        ), f"Probability must be in [0, 1], got {self.best_probability}"
        assert self.best_class >= 0, f"best_class must be >= 0, got {self.best_class}"

    def __str__(self) -> str:
        return format_result(self)


def class_label(class_id: int, names: list[str]) -> str:
    if 0 <= class_id < len(names):
        return names[class_id]
    return f"#{class_id}"


def build_name(
    probabilities: dict[int, float],
    names: list[str],
    include_percentage: bool = True,
    include_all_names: bool = True,
) -> str:
    """
    Build the label for one prediction.

    Classes are listed from most to least probable, e.g. "truck 96%, bus 60%".
    With include_all_names=False only the best class is named.
    """
    ordered = sorted(probabilities.items(), key=lambda item: (-item[1], item[0]))
    if not include_all_names:
        ordered = ordered[:1]

    parts = []
    for class_id, probability in ordered:
        label = class_label(class_id, names)
        if include_percentage:
            label += f" {int(100.0 * probability + 0.5)}%"
        parts.append(label)

    return ", ".join(parts)


def format_result(pred: PredictionResult) -> str:
    """
    One readable line for a prediction, mostly for logging.

    "G 85%, 2 12%" #19 prob=0.846418 x=509 y=600 w=28 h=37 entries=2 [ 2=0.122151 19=0.846418 ]
    """
    line = (
        f'"{pred.name}" #{pred.best_class} prob={pred.best_probability:.6g} '
        f"x={pred.rect.x} y={pred.rect.y} w={pred.rect.width} h={pred.rect.height} "
        f"entries={len(pred.all_probabilities)}"
    )

    if len(pred.all_probabilities) > 1:
        entries = " ".join(
            f"{class_id}={probability:.6g}"
            for class_id, probability in sorted(pred.all_probabilities.items())
        )
        line += f" [ {entries} ]"

    return line


def format_results(results: list[PredictionResult]) -> str:
    """Render every prediction of one image, one line each."""
    lines = [f"prediction results: {len(results)}"]
    for index, pred in enumerate(results, start=1):
        lines.append(f"-> {index}/{len(results)}: {format_result(pred)}")
    return "\n".join(lines)


def best_of(probabilities: dict[int, float]) -> Optional[tuple[int, float]]:
    """Highest (class_id, probability) pair, lowest id wins ties."""
    if not probabilities:
        return None
    return min(probabilities.items(), key=lambda item: (-item[1], item[0]))
