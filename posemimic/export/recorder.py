"""Animation recorder - captures the rig pose every tick and exports it as JSON"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol

import numpy as np

from posemimic.core import get_logger, Config
from posemimic.motion import RetargetResult
from posemimic.rig import Rig


class Renderer(Protocol):
    """Consumer that reads the rig once per tick, after retargeting."""

    def render(self, rig: Rig, result: Optional[RetargetResult]) -> None:
        ...


@dataclass
class RecordedFrame:
    tick: int
    source_frame: Optional[int]  # Keypoint frame applied this tick, None if held
    local_rotations: Dict[str, np.ndarray] = field(default_factory=dict)


class AnimationRecorder:
    """
    Renderer that records bone local rotations instead of drawing them.

    Every tick is recorded, including ticks where no new keypoints arrived,
    so the exported clip plays back at the loop rate.
    """

    def __init__(self, config: Optional[Config] = None, output_dir: Optional[str] = None):
        self.logger = get_logger("export.recorder")
        export_config = config.export if config is not None else {}

        self._output_dir = Path(output_dir or export_config.get("output_dir", "./output"))
        self._fps = float(export_config.get("fps", 30))
        self._frames: List[RecordedFrame] = []
        self._bone_names: List[str] = []

    def render(self, rig: Rig, result: Optional[RetargetResult]) -> None:
        if not self._bone_names:
            self._bone_names = rig.bone_names
        self._frames.append(RecordedFrame(
            tick=len(self._frames),
            source_frame=result.frame_number if result is not None else None,
            local_rotations=rig.local_rotations(),
        ))

    @property
    def frames(self) -> List[RecordedFrame]:
        return self._frames

    @property
    def fps(self) -> float:
        return self._fps

    def clear(self) -> None:
        self._frames.clear()
        self._bone_names = []

    def export(self, filename: str, clip_name: Optional[str] = None) -> Path:
        """
        Write the recorded clip to `<output_dir>/<filename>.json`.

        Raises:
            ValueError: nothing was recorded
        """
        if not self._frames:
            raise ValueError("No frames to export")

        self._output_dir.mkdir(parents=True, exist_ok=True)
        path = self._output_dir / f"{filename}.json"

        data = {
            "name": clip_name or filename,
            "fps": self._fps,
            "frame_count": len(self._frames),
            "duration": len(self._frames) / self._fps,
            "rotation_order": "wxyz",
            "skeleton": self._bone_names,
            "frames": [
                {
                    "frame": recorded.tick,
                    "timestamp": recorded.tick / self._fps,
                    "source_frame": recorded.source_frame,
                    "bones": {
                        name: {"local_rotation": rotation.tolist()}
                        for name, rotation in recorded.local_rotations.items()
                    },
                }
                for recorded in self._frames
            ],
        }

        with open(path, "w") as f:
            json.dump(data, f, indent=2)

        self.logger.info(f"Exported animation to {path}")
        self.logger.info(f"  Frames: {len(self._frames)}, Duration: {data['duration']:.2f}s")
        return path
