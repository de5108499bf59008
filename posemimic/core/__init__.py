"""Core systems - config, logging, timing, keypoints, quaternions"""

from .config import Config
from .logging import setup_logging, get_logger
from .timing import FrameTimer, FrameClock
from .errors import RetargetError, EmptyRigError, RigLoadError
from .settings import PoseSpaceSettings, RetargetSettings
from .keypoints import (
    Keypoint,
    KeypointFrame,
    JointKey,
    DEFAULT_BONE_MAPPING,
    BODY_KEYPOINT_NAMES,
    parse_bone_mapping,
)

__all__ = [
    "Config", "setup_logging", "get_logger",
    "FrameTimer", "FrameClock",
    "RetargetError", "EmptyRigError", "RigLoadError",
    "PoseSpaceSettings", "RetargetSettings",
    "Keypoint", "KeypointFrame", "JointKey",
    "DEFAULT_BONE_MAPPING", "BODY_KEYPOINT_NAMES", "parse_bone_mapping",
]
