"""Pose source protocol and a file-backed replay source"""

import json
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Union, runtime_checkable

from posemimic.core import get_logger, KeypointFrame


logger = get_logger("pose.source")


@runtime_checkable
class PoseSource(Protocol):
    """Anything that can hand the animation loop a keypoint frame without blocking."""

    def poll(self) -> Optional[KeypointFrame]:
        """Latest unconsumed frame, or None if the detector has nothing new."""
        ...

    def close(self) -> None:
        ...


class ReplayPoseSource:
    """
    Replays recorded keypoint frames, one per poll.

    File format: {"frames": [{"frame": 0, "timestamp": 0.0,
    "keypoints": {"nose": {"x": .., "y": .., "depth": .., "confidence": ..}}}]}
    """

    def __init__(self, frames: Iterable[KeypointFrame], loop: bool = False):
        self._frames: List[KeypointFrame] = list(frames)
        self._loop = loop
        self._index = 0
        self._closed = False

    @classmethod
    def from_file(cls, path: Union[str, Path], loop: bool = False) -> "ReplayPoseSource":
        """
        Load a recording written by `save_keypoint_frames`.

        Raises:
            OSError: the file cannot be read
            ValueError: not JSON, or not laid out as keypoint frames
        """
        path = Path(path)
        with open(path, "r") as f:
            data = json.load(f)

        records = data.get("frames", []) if isinstance(data, dict) else data
        if not isinstance(records, list):
            raise ValueError(f"{path}: expected a list of keypoint frames")

        frames = []
        for index, record in enumerate(records):
            if not isinstance(record, dict):
                raise ValueError(f"{path}: frame {index} is not an object")
            try:
                frames.append(KeypointFrame.from_dict(record))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise ValueError(f"{path}: malformed frame {index}: {e!r}") from e
        logger.info(f"Loaded {len(frames)} keypoint frames from {path}")
        return cls(frames, loop=loop)

    def poll(self) -> Optional[KeypointFrame]:
        if self._closed or not self._frames:
            return None
        if self._index >= len(self._frames):
            if not self._loop:
                return None
            self._index = 0

        frame = self._frames[self._index]
        self._index += 1
        return frame

    @property
    def exhausted(self) -> bool:
        return self._closed or (not self._loop and self._index >= len(self._frames))

    def close(self) -> None:
        self._closed = True


def save_keypoint_frames(frames: Iterable[KeypointFrame], path: Union[str, Path]) -> Path:
    """Write frames in the format `ReplayPoseSource.from_file` reads."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump({"frames": [frame.to_dict() for frame in frames]}, f, indent=2)
    return path
