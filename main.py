#!/usr/bin/env python3
"""
posemimic - Main Entry Point

Drives a rigged character from webcam (or recorded) pose keypoints and
records the resulting bone rotations.
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

from posemimic.core import Config, FrameClock, RigLoadError, setup_logging, get_logger
from posemimic.export import AnimationRecorder
from posemimic.motion import RetargetResult
from posemimic.pose import PoseSource, ReplayPoseSource
from posemimic.rig import Rig, load_rig
from posemimic.session import AnimationLoop, RetargetSession


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Retarget live 2D pose keypoints onto a rigged character"
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default="config.yaml",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--rig", "-r",
        type=str,
        help="Character rig (.glb, .gltf or .yaml), overrides config"
    )
    parser.add_argument(
        "--input", "-i",
        type=str,
        help="Video file or 'webcam' (overrides config)"
    )
    parser.add_argument(
        "--replay",
        type=str,
        help="Replay recorded keypoints (JSON) instead of running the detector"
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        help="Output directory (overrides config)"
    )
    parser.add_argument(
        "--frames", "-n",
        type=int,
        help="Stop after this many ticks"
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Show the camera feed with detected keypoints"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    return parser.parse_args()


class PreviewRecorder(AnimationRecorder):
    """Recorder that also shows the detector input with keypoints drawn."""

    def __init__(self, config: Config, source, output_dir: Optional[str] = None):
        super().__init__(config, output_dir)
        self._source = source
        self._mirror = config.get("retarget.pose_space.mirror", True)
        self._threshold = config.get("retarget.pose_space.confidence_threshold", 0.2)

    def render(self, rig: Rig, result: Optional[RetargetResult]) -> None:
        import cv2
        from posemimic.pose.estimator_2d import draw_keypoints

        super().render(rig, result)

        image = self._source.latest_image
        if image is None:
            return
        overlay = draw_keypoints(
            image, self._source.last_frame, threshold=self._threshold, mirror=self._mirror
        )
        cv2.imshow("posemimic", cv2.cvtColor(overlay, cv2.COLOR_RGB2BGR))
        if cv2.waitKey(1) & 0xFF == ord("q"):
            self._source.close()


def main() -> int:
    """Main application entry point."""
    args = parse_args()

    config_path = Path(args.config)
    try:
        config = Config(str(config_path))
    except FileNotFoundError:
        print(f"Error: Config file not found: {config_path}")
        return 1

    log_level = "DEBUG" if args.debug else config.get("app.log_level", "INFO")
    setup_logging(level=log_level, log_file=config.get("app.log_file"))
    logger = get_logger("main")

    logger.info("=" * 50)
    logger.info(f"posemimic v{config.get('app.version', '0.1.0')}")
    logger.info("=" * 50)

    if args.input:
        config.set("video.source", args.input)
    if args.output:
        config.set("export.output_dir", args.output)

    try:
        rig = load_rig(args.rig or config.get("rig.path"))
    except RigLoadError as e:
        logger.error(f"Failed to load rig: {e}")
        return 1

    session = RetargetSession.from_config(config)
    if not session.load_rig(rig):
        logger.error("Character cannot be animated, aborting")
        return 1

    source: PoseSource
    if args.replay:
        try:
            source = ReplayPoseSource.from_file(args.replay)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load replay {args.replay}: {e}")
            return 1
        recorder = AnimationRecorder(config)
    else:
        from posemimic.pose.estimator_2d import MediaPipePoseSource

        source = MediaPipePoseSource(config)
        if not source.start():
            logger.error("Failed to start camera / pose detector")
            return 1
        recorder = PreviewRecorder(config, source) if args.preview else AnimationRecorder(config)

    # Tick at the rate the clip is exported at
    loop = AnimationLoop(source, session, recorder, clock=FrameClock(target_fps=recorder.fps))
    try:
        loop.run(max_frames=args.frames)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        loop.stop()

    try:
        recorder.export(config.get("export.filename", "retarget"))
    except ValueError as e:
        logger.warning(f"Nothing exported: {e}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
