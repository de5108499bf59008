"""Shared fixtures for posemimic tests."""

from pathlib import Path
from typing import Dict, Optional

import pytest

from posemimic.core import Config, DEFAULT_BONE_MAPPING, Keypoint, KeypointFrame, RetargetSettings
from posemimic.rig import Rig, RigRegistry, build_mixamo_rig, build_registry


def kp(name: str, x: float, y: float, confidence: float = 0.9, depth: Optional[float] = 0.0) -> Keypoint:
    return Keypoint(name=name, x=x, y=y, depth=depth, confidence=confidence)


REPO_CONFIG = Path(__file__).resolve().parent.parent / "config.yaml"

# Performer facing an unmirrored 640x480 camera in a loose T-pose
T_POSE_PIXELS: Dict[str, tuple] = {
    "nose": (320, 90),
    "left_shoulder": (380, 150),
    "right_shoulder": (260, 150),
    "left_elbow": (440, 150),
    "right_elbow": (200, 150),
    "left_wrist": (500, 140),
    "right_wrist": (140, 140),
    "left_hip": (350, 280),
    "right_hip": (290, 280),
    "left_knee": (355, 360),
    "right_knee": (285, 360),
    "left_ankle": (355, 440),
    "right_ankle": (285, 440),
}


def make_frame(frame_number: int = 0, confidence: float = 0.9, **overrides) -> KeypointFrame:
    """T-pose frame; keyword overrides replace or (with None) drop keypoints."""
    keypoints = {
        name: kp(name, x, y, confidence) for name, (x, y) in T_POSE_PIXELS.items()
    }
    for name, value in overrides.items():
        if value is None:
            keypoints.pop(name, None)
        else:
            keypoints[name] = value
    return KeypointFrame(frame_number=frame_number, timestamp=frame_number / 30.0, keypoints=keypoints)


@pytest.fixture(autouse=True)
def reset_config_singleton():
    Config._instance = None
    yield
    Config._instance = None


@pytest.fixture
def settings() -> RetargetSettings:
    return RetargetSettings()


@pytest.fixture
def mixamo_rig() -> Rig:
    return build_mixamo_rig()


@pytest.fixture
def registry(mixamo_rig: Rig) -> RigRegistry:
    return build_registry(mixamo_rig, DEFAULT_BONE_MAPPING)


@pytest.fixture
def t_pose_frame() -> KeypointFrame:
    return make_frame()
