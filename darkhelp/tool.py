"""
DarkHelp command-line tool

Runs a darknet network on images or a video and shows the annotated results.

Usage:
    darkhelp yolov3-tiny.cfg yolov3-tiny.weights coco.names dog.jpg horses.jpg
    darkhelp net.cfg net.weights net.names traffic.mp4 --video
    darkhelp net.cfg net.weights net.names 0 --video           # first camera
    darkhelp net.cfg net.weights net.names *.jpg --no-display --output out/

Keys while displaying: ESC or q quits, any other key shows the next image.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

import cv2
from tqdm import tqdm

from darkhelp.config import settings
from darkhelp.detection.darkhelp_detector import DarkHelp
from darkhelp.detection.models import format_results
from darkhelp.streaming.video_pipeline import VideoPipeline
from darkhelp.utils.image_utils import parse_size, resize_keeping_aspect_ratio


logger = logging.getLogger(__name__)

QUIT_KEYS = (27, ord("q"))


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="darkhelp",
        description="Run a darknet network on images or video with OpenCV",
    )
    parser.add_argument("cfg", help="darknet network .cfg file")
    parser.add_argument("weights", help="darknet .weights file")
    parser.add_argument("names", help=".names file with one class per line")
    parser.add_argument("inputs", nargs="+", help="images, or one video/camera with --video")

    parser.add_argument("--config", type=Path, help="YAML file with setting overrides")
    parser.add_argument("--threshold", type=float, help="prediction threshold in [0, 1]")
    parser.add_argument("--nms", type=float, help="non-maximal suppression threshold in [0, 1]")
    parser.add_argument(
        "--no-percentage", action="store_true", help="do not add percentages to labels"
    )
    parser.add_argument(
        "--single-name", action="store_true", help="only name the most likely class"
    )
    parser.add_argument("--timestamp", action="store_true", help="stamp annotated images")
    parser.add_argument(
        "--no-duration", action="store_true", help="do not show the prediction time"
    )
    parser.add_argument(
        "--video", action="store_true", help="treat the input as a video file or camera index"
    )
    parser.add_argument(
        "--sync",
        action="store_true",
        help="process every video frame instead of skipping to the latest one",
    )
    parser.add_argument("--output", type=Path, help="directory for annotated images")
    parser.add_argument("--no-display", action="store_true", help="do not open any window")
    parser.add_argument("--resize", type=parse_size, help="fit annotated output in WxH")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging verbosity",
    )

    return parser.parse_args(argv)


def configure(darkhelp: DarkHelp, args: argparse.Namespace) -> None:
    """Apply command-line overrides to a loaded DarkHelp instance."""
    if args.threshold is not None:
        if not 0.0 <= args.threshold <= 1.0:
            raise ValueError(f"Threshold must be in [0, 1], got {args.threshold}")
        darkhelp.threshold = args.threshold
    if args.nms is not None:
        if not 0.0 <= args.nms <= 1.0:
            raise ValueError(f"NMS threshold must be in [0, 1], got {args.nms}")
        darkhelp.non_maximal_suppression_threshold = args.nms
    if args.no_percentage:
        darkhelp.names_include_percentage = False
    if args.single_name:
        darkhelp.include_all_names = False
    if args.timestamp:
        darkhelp.annotation_include_timestamp = True
    if args.no_duration:
        darkhelp.annotation_include_duration = False


class ImageRunner:
    """Predicts, prints, shows and writes one image at a time."""

    def __init__(self, darkhelp: DarkHelp, args: argparse.Namespace):
        self.darkhelp = darkhelp
        self.output_dir: Optional[Path] = args.output
        self.display = not args.no_display
        self.resize = args.resize

        if self.output_dir is not None:
            self.output_dir.mkdir(parents=True, exist_ok=True)

    def run(self, filenames: list[str]) -> int:
        failures = 0
        paths = [Path(filename) for filename in filenames]

        # Progress bar only when nothing else is drawn on screen
        iterator = paths if self.display else tqdm(paths, desc="Predicting", unit="image")

        for path in iterator:
            try:
                results = self.darkhelp.predict(path)
            except (FileNotFoundError, ValueError) as e:
                logger.error("%s", e)
                failures += 1
                continue

            print(f"{path}: {self.darkhelp.duration_string()}")
            print(format_results(results))

            annotated = self._finish(self.darkhelp.annotate())

            if self.output_dir is not None:
                output_path = self.output_dir / f"{path.stem}_annotated{path.suffix}"
                cv2.imwrite(str(output_path), annotated)
                logger.info("Saved %s", output_path)

            if self.display:
                cv2.imshow(settings.stream.window_name, annotated)
                if cv2.waitKey(0) & 0xFF in QUIT_KEYS:
                    break

        if self.display:
            cv2.destroyAllWindows()

        return 1 if failures else 0

    def _finish(self, image):
        if self.resize is None:
            return image
        return resize_keeping_aspect_ratio(image, self.resize)


def run_video(darkhelp: DarkHelp, args: argparse.Namespace) -> int:
    source = args.inputs[0]
    if source.isdigit():
        source = int(source)

    sync = True if args.sync else None
    pipeline = VideoPipeline(darkhelp, source, sync_frames=sync, sync_results=sync)

    writer = None
    frames_shown = 0

    try:
        for annotated in pipeline:
            image = annotated.image
            if args.resize is not None:
                image = resize_keeping_aspect_ratio(image, args.resize)

            logger.debug(
                "Frame %d: %d predictions", annotated.frame_num, len(annotated.predictions)
            )

            if args.output is not None:
                if writer is None:
                    args.output.mkdir(parents=True, exist_ok=True)
                    output_path = args.output / "annotated.avi"
                    height, width = image.shape[:2]
                    writer = cv2.VideoWriter(
                        str(output_path), cv2.VideoWriter_fourcc(*"MJPG"), 30.0, (width, height)
                    )
                    logger.info("Writing annotated video to %s", output_path)
                writer.write(image)

            frames_shown += 1

            if not args.no_display:
                cv2.imshow(settings.stream.window_name, image)
                if cv2.waitKey(1) & 0xFF in QUIT_KEYS:
                    break
    finally:
        pipeline.stop()
        if writer is not None:
            writer.release()
        if not args.no_display:
            cv2.destroyAllWindows()

    logger.info("Video finished (%d annotated frames)", frames_shown)
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.video and len(args.inputs) != 1:
        logger.error("--video expects exactly one input, got %d", len(args.inputs))
        return 2

    try:
        if args.config is not None:
            settings.load_yaml(args.config)
        darkhelp = DarkHelp(args.cfg, args.weights, args.names)
        configure(darkhelp, args)
    except (FileNotFoundError, ValueError, cv2.error) as e:
        logger.error("Startup failed: %s", e)
        return 1

    try:
        if args.video:
            return run_video(darkhelp, args)
        return ImageRunner(darkhelp, args).run(args.inputs)
    except RuntimeError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
