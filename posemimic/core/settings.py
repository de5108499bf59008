"""Immutable retargeting settings built from the `retarget` config section.

The scale and sensitivity defaults are empirical values tuned against a
640x480 webcam feed and a Mixamo character; treat them as starting points.
"""

from dataclasses import dataclass, field, replace
from typing import Mapping, Optional, Tuple

import numpy as np

from .config import Config


@dataclass(frozen=True)
class PoseSpaceSettings:
    """Pixel -> pose space transform and keypoint gating."""
    video_width: float = 640.0
    video_height: float = 480.0
    mirror: bool = True  # Preview is mirrored, detector input is not
    x_scale: float = 2.0
    y_scale: float = 2.0
    z_scale: float = 1.0
    confidence_threshold: float = 0.2

    # Shared depth origin, derived from the hips once per frame
    center_confidence_threshold: float = 0.3
    center_depth_scale: float = 0.002
    center_depth_fallback: float = 0.0

    def display_x(self, x: float) -> float:
        """Horizontal pixel coordinate as seen on the (possibly mirrored) preview."""
        return self.video_width - x if self.mirror else x


@dataclass(frozen=True)
class RetargetSettings:
    """Everything the retargeter needs, independent of global config."""
    pose_space: PoseSpaceSettings = field(default_factory=PoseSpaceSettings)
    rest_axis: Tuple[float, float, float] = (0.0, 1.0, 0.0)
    head_confidence_threshold: float = 0.3
    head_tilt_sensitivity: float = 0.003  # radians per pixel
    head_pan_sensitivity: float = 0.003
    neck_follow: float = 0.5

    @property
    def rest_axis_vector(self) -> np.ndarray:
        axis = np.asarray(self.rest_axis, dtype=np.float64)
        return axis / np.linalg.norm(axis)

    def with_pose_space(self, **changes) -> "RetargetSettings":
        return replace(self, pose_space=replace(self.pose_space, **changes))

    @classmethod
    def from_dict(cls, section: Optional[Mapping]) -> "RetargetSettings":
        """Build settings from a plain dict, ignoring unknown keys."""
        section = dict(section or {})
        pose_fields = PoseSpaceSettings.__dataclass_fields__
        pose_space = PoseSpaceSettings(**{
            k: v for k, v in section.get("pose_space", {}).items() if k in pose_fields
        })

        kwargs = {
            k: v for k, v in section.items()
            if k in cls.__dataclass_fields__ and k != "pose_space"
        }
        if "rest_axis" in kwargs:
            rest_axis = tuple(float(c) for c in kwargs["rest_axis"])
            if len(rest_axis) != 3 or not any(rest_axis):
                raise ValueError(f"rest_axis must be a non-zero 3-vector, got {kwargs['rest_axis']}")
            kwargs["rest_axis"] = rest_axis

        return cls(pose_space=pose_space, **kwargs)

    @classmethod
    def from_config(cls, config: Config) -> "RetargetSettings":
        return cls.from_dict(config.retarget)
