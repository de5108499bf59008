"""Tests for pose-space direction and depth origin estimation."""

import dataclasses

import numpy as np
import pytest

from posemimic.core import KeypointFrame, PoseSpaceSettings
from posemimic.motion import estimate_center_depth, estimate_direction, to_pose_space

from conftest import kp


@pytest.fixture
def pose_space() -> PoseSpaceSettings:
    return PoseSpaceSettings()


def test_mirrored_upper_arm_direction(pose_space: PoseSpaceSettings):
    shoulder = kp("left_shoulder", 100, 100, confidence=0.9)
    elbow = kp("left_elbow", 150, 150, confidence=0.9)

    direction = estimate_direction(shoulder, elbow, 0.0, pose_space)

    expected = np.array([-0.15625, -100.0 / 480.0, 0.0])
    expected /= np.linalg.norm(expected)
    np.testing.assert_allclose(direction, expected, atol=1e-12)
    assert direction[0] < 0
    assert direction[1] < 0
    assert direction[2] == 0.0


def test_unmirrored_flips_x_only(pose_space: PoseSpaceSettings):
    settings = dataclasses.replace(pose_space, mirror=False)
    direction = estimate_direction(
        kp("left_shoulder", 100, 100), kp("left_elbow", 150, 150), 0.0, settings
    )
    assert direction[0] > 0
    assert direction[1] < 0


@pytest.mark.parametrize("low", ["from", "to", "both"])
def test_below_threshold_gives_none(pose_space: PoseSpaceSettings, low: str):
    a = kp("a", 10, 10, confidence=0.1 if low in ("from", "both") else 0.9)
    b = kp("b", 50, 90, confidence=0.1 if low in ("to", "both") else 0.9)
    assert estimate_direction(a, b, 0.0, pose_space) is None


def test_threshold_is_inclusive(pose_space: PoseSpaceSettings):
    a = kp("a", 10, 10, confidence=0.2)
    b = kp("b", 50, 90, confidence=0.2)
    assert estimate_direction(a, b, 0.0, pose_space) is not None


def test_missing_keypoint_gives_none(pose_space: PoseSpaceSettings):
    assert estimate_direction(None, kp("b", 1, 1), 0.0, pose_space) is None
    assert estimate_direction(kp("a", 1, 1), None, 0.0, pose_space) is None


def test_coincident_keypoints_give_none(pose_space: PoseSpaceSettings):
    a = kp("a", 200, 200, depth=0.1)
    b = kp("b", 200, 200, depth=0.1)
    assert estimate_direction(a, b, 0.0, pose_space) is None


def test_direction_is_unit_length(pose_space: PoseSpaceSettings):
    a = kp("a", 12, 400, depth=-0.3)
    b = kp("b", 610, 35, depth=0.2)
    direction = estimate_direction(a, b, 0.0, pose_space)
    assert np.linalg.norm(direction) == pytest.approx(1.0)


def test_depth_contributes_to_z(pose_space: PoseSpaceSettings):
    a = kp("a", 320, 240, depth=0.0)
    b = kp("b", 320, 240, depth=0.5)
    np.testing.assert_allclose(estimate_direction(a, b, 0.0, pose_space), [0.0, 0.0, 1.0])


def test_missing_depth_treated_as_zero(pose_space: PoseSpaceSettings):
    point = to_pose_space(kp("a", 320, 240, depth=None), 0.25, pose_space)
    np.testing.assert_allclose(point, [0.0, 0.0, 0.25])


def test_center_depth_does_not_change_direction(pose_space: PoseSpaceSettings):
    a = kp("a", 100, 300, depth=0.1)
    b = kp("b", 250, 120, depth=-0.2)
    near = estimate_direction(a, b, -3.0, pose_space)
    far = estimate_direction(a, b, 5.0, pose_space)
    np.testing.assert_allclose(near, far)


def _hips_frame(left_conf=0.9, right_conf=0.9, left_depth=-100.0, right_depth=-100.0) -> KeypointFrame:
    return KeypointFrame.from_list([
        kp("left_hip", 350, 280, confidence=left_conf, depth=left_depth),
        kp("right_hip", 290, 280, confidence=right_conf, depth=right_depth),
    ])


def test_center_depth_from_hips(pose_space: PoseSpaceSettings):
    assert estimate_center_depth(_hips_frame(), pose_space) == pytest.approx(0.2)


def test_center_depth_averages_hips(pose_space: PoseSpaceSettings):
    frame = _hips_frame(left_depth=-50.0, right_depth=150.0)
    assert estimate_center_depth(frame, pose_space) == pytest.approx(-0.1)


@pytest.mark.parametrize("frame", [
    _hips_frame(left_conf=0.3),
    _hips_frame(right_conf=0.1),
    _hips_frame(left_depth=None),
    KeypointFrame(),
])
def test_center_depth_fallback(pose_space: PoseSpaceSettings, frame: KeypointFrame):
    assert estimate_center_depth(frame, pose_space) == 0.0
    custom = dataclasses.replace(pose_space, center_depth_fallback=-1.5)
    assert estimate_center_depth(frame, custom) == -1.5
