"""Frame input for the pose detector - a webcam or a video file"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from posemimic.core import get_logger, Config


VideoSource = Union[str, int]


@dataclass
class FrameResult:
    """One captured RGB image."""
    frame: np.ndarray
    frame_number: int
    timestamp: float  # Seconds; media time for files, wall time for cameras


class VideoCapture:
    """
    Reads RGB frames from a camera index or a video file.

    Video files report their own media timestamps, so replaying a clip gives
    the detector the same timing as the recording. Cameras are stamped with
    the time since `open()`.
    """

    def __init__(self, config: Optional[Config] = None):
        self.logger = get_logger("video.capture")
        self.config = config or Config()
        self._cap: Optional[cv2.VideoCapture] = None
        self._is_webcam = False
        self._frames_read = 0
        self._opened_at = 0.0

    def _resolve(self, source: Optional[VideoSource]) -> Tuple[VideoSource, bool]:
        if source is None:
            source = self.config.get("video.source", "webcam")
        if isinstance(source, int):
            return source, True
        if source == "webcam":
            return int(self.config.get("video.camera_id", 0)), True
        if str(source).isdigit():
            return int(source), True
        return str(source), False

    def open(self, source: Optional[VideoSource] = None) -> bool:
        """
        Open `source` ("webcam", a camera index, or a file path; config when None).

        Returns:
            True if frames can be read
        """
        self.close()
        target, is_webcam = self._resolve(source)

        if not is_webcam and not Path(target).is_file():
            self.logger.error(f"Video file not found: {target}")
            return False

        cap = cv2.VideoCapture(target)
        if is_webcam:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.get("video.width", 640))
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.get("video.height", 480))
        if not cap.isOpened():
            self.logger.error(f"Failed to open video source: {target}")
            cap.release()
            return False

        self._cap = cap
        self._is_webcam = is_webcam
        self._frames_read = 0
        self._opened_at = time.perf_counter()

        label = f"camera {target}" if is_webcam else Path(target).name
        self.logger.info(f"Opened {label}: {self.width}x{self.height} @ {self.fps:.1f} FPS")
        return True

    def read(self) -> Optional[FrameResult]:
        """Next frame, or None at end of file or on a camera hiccup."""
        if self._cap is None:
            return None

        ok, bgr = self._cap.read()
        if not ok or bgr is None:
            if not self._is_webcam:
                self.logger.info(f"End of video after {self._frames_read} frames")
            return None

        if self._is_webcam:
            timestamp = time.perf_counter() - self._opened_at
        else:
            timestamp = self._cap.get(cv2.CAP_PROP_POS_MSEC) / 1000.0

        result = FrameResult(
            frame=cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB),
            frame_number=self._frames_read,
            timestamp=timestamp,
        )
        self._frames_read += 1
        return result

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def _prop(self, prop: int) -> float:
        return self._cap.get(prop) if self._cap is not None else 0.0

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    @property
    def is_webcam(self) -> bool:
        return self._is_webcam

    @property
    def fps(self) -> float:
        return self._prop(cv2.CAP_PROP_FPS) or 30.0

    @property
    def width(self) -> int:
        return int(self._prop(cv2.CAP_PROP_FRAME_WIDTH))

    @property
    def height(self) -> int:
        return int(self._prop(cv2.CAP_PROP_FRAME_HEIGHT))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
