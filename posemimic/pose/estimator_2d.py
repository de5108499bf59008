"""2D pose estimation using MediaPipe PoseLandmarker (Tasks API)"""

from enum import IntEnum
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Optional, Tuple, Union
import threading
import time
import urllib.request

import cv2
import numpy as np

import mediapipe as mp
from mediapipe.tasks import python as mp_tasks
from mediapipe.tasks.python import vision as mp_vision

from posemimic.core import get_logger, Config, Keypoint, KeypointFrame
from posemimic.video import VideoCapture


class LandmarkIndex(IntEnum):
    """MediaPipe Pose landmark indices."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


SKELETON_EDGES = [
    ("left_shoulder", "right_shoulder"),
    ("left_shoulder", "left_elbow"),
    ("left_elbow", "left_wrist"),
    ("right_shoulder", "right_elbow"),
    ("right_elbow", "right_wrist"),
    ("left_shoulder", "left_hip"),
    ("right_shoulder", "right_hip"),
    ("left_hip", "right_hip"),
    ("left_hip", "left_knee"),
    ("left_knee", "left_ankle"),
    ("right_hip", "right_knee"),
    ("right_knee", "right_ankle"),
]

MODEL_URL = "https://storage.googleapis.com/mediapipe-models/pose_landmarker/pose_landmarker_lite/float16/1/pose_landmarker_lite.task"
MODEL_PATH = Path.home() / ".cache" / "posemimic" / "pose_landmarker.task"


def download_model_if_needed(path: Path = MODEL_PATH) -> Path:
    """Download the pose landmarker model if not present."""
    logger = get_logger("pose.2d")
    path.parent.mkdir(parents=True, exist_ok=True)

    if not path.exists():
        logger.info(f"Downloading pose model to {path}...")
        urllib.request.urlretrieve(MODEL_URL, path)
        logger.info("Download complete")

    return path


class PoseEstimator2D:
    """
    Single-person pose detection producing pixel-space keypoint frames.

    Landmark visibility becomes keypoint confidence. MediaPipe's z is
    hip-relative in image-width units; it is scaled by the width so depth
    shares the pixel units of x and y.
    """

    def __init__(self, config: Optional[Config] = None):
        self.logger = get_logger("pose.2d")
        self.config = config or Config()

        pose_config = self.config.pose_estimation
        self._min_detection_confidence = pose_config.get("min_detection_confidence", 0.5)
        self._min_tracking_confidence = pose_config.get("min_tracking_confidence", 0.5)

        model_path = Path(pose_config.get("model_path") or download_model_if_needed())

        options = mp_vision.PoseLandmarkerOptions(
            base_options=mp_tasks.BaseOptions(model_asset_path=str(model_path)),
            running_mode=mp_vision.RunningMode.VIDEO,
            num_poses=1,
            min_pose_detection_confidence=self._min_detection_confidence,
            min_tracking_confidence=self._min_tracking_confidence,
            output_segmentation_masks=False
        )
        self._pose = mp_vision.PoseLandmarker.create_from_options(options)
        self._frame_count = 0
        self._last_timestamp_ms = -1

        self.logger.info(
            f"Initialized MediaPipe PoseLandmarker (detection={self._min_detection_confidence}, "
            f"tracking={self._min_tracking_confidence})"
        )

    def process(self, frame: np.ndarray, timestamp: float = 0.0) -> Optional[KeypointFrame]:
        """
        Detect keypoints in one RGB image.

        Returns:
            KeypointFrame in pixel coordinates, or None if no person was found
        """
        height, width = frame.shape[:2]
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=frame)

        # VIDEO mode requires strictly increasing timestamps
        timestamp_ms = max(int(timestamp * 1000), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = timestamp_ms

        frame_number = self._frame_count
        self._frame_count += 1

        results = self._pose.detect_for_video(mp_image, timestamp_ms)
        if not results.pose_landmarks:
            self.logger.debug(f"Frame {frame_number}: No pose detected")
            return None

        landmarks = results.pose_landmarks[0]
        keypoints = []
        for idx in LandmarkIndex:
            if idx >= len(landmarks):
                break
            landmark = landmarks[idx]
            visibility = getattr(landmark, "visibility", None)
            keypoints.append(Keypoint(
                name=idx.name.lower(),
                x=landmark.x * width,
                y=landmark.y * height,
                depth=landmark.z * width,
                confidence=float(visibility) if visibility is not None else 0.9,
            ))

        return KeypointFrame.from_list(keypoints, frame_number=frame_number, timestamp=timestamp)

    def close(self) -> None:
        self._pose.close()
        self.logger.info("Pose estimator closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class MediaPipePoseSource:
    """
    Runs capture and detection on a worker thread.

    Only the newest result is kept; `poll()` never waits, so a slow detector
    costs the animation loop stale poses, never stalls.
    """

    JOIN_TIMEOUT = 1.0

    def __init__(
        self,
        config: Optional[Config] = None,
        source: Optional[Union[str, int]] = None,
    ):
        self.logger = get_logger("pose.source.mediapipe")
        self.config = config or Config()
        self._capture = VideoCapture(self.config)
        self._source = source
        self._estimator: Optional[PoseEstimator2D] = None
        self._results: Queue = Queue(maxsize=1)
        self._latest_image: Optional[np.ndarray] = None
        self._last_frame: Optional[KeypointFrame] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._release_lock = threading.Lock()

    def start(self) -> bool:
        if not self._capture.open(self._source):
            return False
        self._estimator = PoseEstimator2D(self.config)
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="pose-detector", daemon=True)
        self._thread.start()
        self.logger.info("Pose detector thread started")
        return True

    def _run(self) -> None:
        try:
            self._detect_until_stopped()
        except Exception:
            self.logger.exception("Pose detector thread crashed")
        finally:
            # A close() that timed out left the teardown to this thread
            if self._stop_event.is_set():
                self._release()
        self.logger.info("Pose detector thread finished")

    def _detect_until_stopped(self) -> None:
        while not self._stop_event.is_set():
            captured = self._capture.read()
            if captured is None:
                if not self._capture.is_webcam:
                    break
                time.sleep(0.01)
                continue

            self._latest_image = captured.frame
            try:
                frame = self._estimator.process(captured.frame, captured.timestamp)
            except Exception as e:
                self.logger.error(f"Pose detection failed on frame {captured.frame_number}: {e!r}")
                continue

            if frame is not None:
                self._publish(frame)

    def _publish(self, frame: KeypointFrame) -> None:
        self._last_frame = frame
        try:
            self._results.get_nowait()
        except Empty:
            pass
        try:
            self._results.put_nowait(frame)
        except Full:
            self.logger.debug(f"Dropped keypoint frame {frame.frame_number}")

    def poll(self) -> Optional[KeypointFrame]:
        try:
            return self._results.get_nowait()
        except Empty:
            return None

    @property
    def latest_image(self) -> Optional[np.ndarray]:
        return self._latest_image

    @property
    def last_frame(self) -> Optional[KeypointFrame]:
        """Most recent detection, whether or not it has been polled."""
        return self._last_frame

    @property
    def exhausted(self) -> bool:
        """True once the worker has stopped (closed, or end of a video file)."""
        if self._stop_event.is_set():
            return True
        return self._thread is not None and not self._thread.is_alive() and self._results.empty()

    @property
    def frame_size(self) -> Tuple[int, int]:
        return self._capture.width, self._capture.height

    def close(self) -> None:
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout=self.JOIN_TIMEOUT)
            if thread.is_alive():
                self.logger.warning(
                    f"Pose detector thread still busy after {self.JOIN_TIMEOUT}s, "
                    "it releases the camera and detector when it exits"
                )
                return
        self._release()

    def _release(self) -> None:
        with self._release_lock:
            self._capture.close()
            if self._estimator is not None:
                self._estimator.close()
                self._estimator = None


def draw_keypoints(
    image: np.ndarray,
    frame: Optional[KeypointFrame],
    threshold: float = 0.2,
    joint_color: Tuple[int, int, int] = (0, 255, 0),
    bone_color: Tuple[int, int, int] = (255, 255, 255),
    mirror: bool = True,
) -> np.ndarray:
    """Overlay keypoints and skeleton edges on a copy of an RGB image."""
    output = image.copy()
    if frame is None:
        return output

    for start_name, end_name in SKELETON_EDGES:
        start, end = frame.get(start_name), frame.get(end_name)
        if start and end and start.confidence >= threshold and end.confidence >= threshold:
            cv2.line(output, (int(start.x), int(start.y)), (int(end.x), int(end.y)), bone_color, 2)

    for keypoint in frame.keypoints.values():
        if keypoint.confidence >= threshold:
            alpha = min(1.0, keypoint.confidence + 0.3)
            color = tuple(int(c * alpha) for c in joint_color)
            cv2.circle(output, (int(keypoint.x), int(keypoint.y)), 5, color, -1)

    if mirror:
        output = cv2.flip(output, 1)
    return output
