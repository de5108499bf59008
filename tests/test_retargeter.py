"""Tests for the per-frame skeleton retarget pass."""

import numpy as np
import pytest

from posemimic.core import DEFAULT_BONE_MAPPING, JointKey, KeypointFrame
from posemimic.core.quaternion import (
    quat_angle_between, quat_conjugate, quat_from_axis_angle, quat_multiply, quat_rotate_vector,
)
from posemimic.motion import LIMB_SEGMENTS, SkeletonRetargeter, estimate_direction, orient
from posemimic.rig import RigRegistry, build_registry

from conftest import kp, make_frame


X_AXIS = np.array([1.0, 0.0, 0.0])
Y_AXIS = np.array([0.0, 1.0, 0.0])


@pytest.fixture
def retargeter(settings) -> SkeletonRetargeter:
    return SkeletonRetargeter(settings)


def _same_rotation(a, b) -> bool:
    return quat_angle_between(a, b) == pytest.approx(0.0, abs=1e-7)


def test_all_limbs_updated_on_full_frame(retargeter, registry, mixamo_rig, t_pose_frame):
    result = retargeter.retarget(t_pose_frame, registry, mixamo_rig)

    limb_bones = {registry.bone_name(joint_key) for joint_key, _, _ in LIMB_SEGMENTS}
    assert limb_bones <= set(result.updated)
    assert {"mixamorig:Head", "mixamorig:Neck"} <= set(result.updated)
    assert result.held == []
    assert set(result.rotations) == set(registry.bindings)


def test_limb_rest_axis_follows_keypoint_segment(retargeter, registry, mixamo_rig, t_pose_frame, settings):
    result = retargeter.retarget(t_pose_frame, registry, mixamo_rig)

    binding = registry.binding(JointKey.LEFT_ARM)
    parent_world = mixamo_rig.parent_world_rotation(binding.bone_name, result.rotations)
    arc = quat_multiply(quat_conjugate(binding.rest_rotation), result.rotations[binding.bone_name])
    pointing = quat_rotate_vector(parent_world, quat_rotate_vector(arc, Y_AXIS))

    target = estimate_direction(
        t_pose_frame.get("left_shoulder"), t_pose_frame.get("left_elbow"), 0.0, settings.pose_space
    )
    np.testing.assert_allclose(pointing, target, atol=1e-9)


def test_child_uses_parent_rotation_from_same_frame(retargeter, registry, mixamo_rig, settings):
    frame = make_frame(
        left_elbow=kp("left_elbow", 400, 230),
        left_wrist=kp("left_wrist", 470, 260),
    )
    result = retargeter.retarget(frame, registry, mixamo_rig)

    forearm = registry.binding(JointKey.LEFT_ELBOW)
    direction = estimate_direction(frame.get("left_elbow"), frame.get("left_wrist"), 0.0, settings.pose_space)
    # Parent world evaluated against this frame's upper arm, not the rig's stored pose
    parent_world = mixamo_rig.parent_world_rotation(forearm.bone_name, result.rotations)
    expected = orient(direction, forearm.rest_rotation, parent_world, Y_AXIS)

    np.testing.assert_allclose(result.rotations[forearm.bone_name], expected, atol=1e-12)

    stale_parent = mixamo_rig.parent_world_rotation(forearm.bone_name)
    stale = orient(direction, forearm.rest_rotation, stale_parent, Y_AXIS)
    assert not _same_rotation(result.rotations[forearm.bone_name], stale)


def test_unconfident_bone_holds_last_pose(retargeter, registry, mixamo_rig):
    first = retargeter.retarget(make_frame(frame_number=0), registry, mixamo_rig)

    second_frame = make_frame(
        frame_number=1,
        left_elbow=kp("left_elbow", 420, 210),
        left_wrist=kp("left_wrist", 480, 240, confidence=0.1),
    )
    second = retargeter.retarget(second_frame, registry, mixamo_rig, previous=first.rotations)

    forearm = registry.bone_name(JointKey.LEFT_ELBOW)
    upper_arm = registry.bone_name(JointKey.LEFT_ARM)
    assert forearm in second.held
    np.testing.assert_array_equal(second.rotations[forearm], first.rotations[forearm])
    assert upper_arm in second.updated
    assert not _same_rotation(second.rotations[upper_arm], first.rotations[upper_arm])


def test_empty_frame_keeps_previous_rotations(retargeter, registry, mixamo_rig):
    result = retargeter.retarget(KeypointFrame(frame_number=3), registry, mixamo_rig)

    assert result.updated == []
    assert result.torso is None
    for name, rest in registry.rest_rotations().items():
        np.testing.assert_allclose(result.rotations[name], rest)


def test_head_tilt_and_neck_follow(retargeter, registry, mixamo_rig, t_pose_frame):
    result = retargeter.retarget(t_pose_frame, registry, mixamo_rig)

    # Nose 60 px above the shoulder line, centred between the shoulders
    tilt = 60 * 0.003
    head = result.rotations["mixamorig:Head"]
    neck = result.rotations["mixamorig:Neck"]
    assert _same_rotation(head, quat_from_axis_angle(X_AXIS, tilt))
    assert _same_rotation(neck, quat_from_axis_angle(X_AXIS, tilt / 2))


def test_head_pan_is_applied_before_tilt(retargeter, registry, mixamo_rig):
    frame = make_frame(nose=kp("nose", 340, 90))
    result = retargeter.retarget(frame, registry, mixamo_rig)

    # Mirrored: nose 20 px right in the image is 20 px left on the preview
    expected = quat_multiply(
        quat_from_axis_angle(Y_AXIS, 20 * 0.003),
        quat_from_axis_angle(X_AXIS, 60 * 0.003),
    )
    assert _same_rotation(result.rotations["mixamorig:Head"], expected)


def test_head_held_when_nose_unconfident(retargeter, registry, mixamo_rig):
    frame = make_frame(nose=kp("nose", 320, 90, confidence=0.25))
    result = retargeter.retarget(frame, registry, mixamo_rig)

    assert {"mixamorig:Head", "mixamorig:Neck"} <= set(result.held)
    rest = registry.rest_rotations()
    np.testing.assert_allclose(result.rotations["mixamorig:Head"], rest["mixamorig:Head"])
    np.testing.assert_allclose(result.rotations["mixamorig:Neck"], rest["mixamorig:Neck"])


def test_head_held_when_shoulder_missing(retargeter, registry, mixamo_rig):
    result = retargeter.retarget(make_frame(right_shoulder=None), registry, mixamo_rig)
    assert "mixamorig:Head" in result.held
    assert registry.bone_name(JointKey.RIGHT_ARM) in result.held


def test_torso_lean_is_reported_not_applied(retargeter, registry, mixamo_rig):
    frame = make_frame(
        left_shoulder=kp("left_shoulder", 340, 150),
        right_shoulder=kp("right_shoulder", 220, 150),
    )
    result = retargeter.retarget(frame, registry, mixamo_rig)

    assert result.torso is not None
    assert result.torso.lean_angle == pytest.approx(np.arctan2(0.125, 260.0 / 480.0))
    assert np.linalg.norm(result.torso.direction) == pytest.approx(1.0)

    rest = registry.rest_rotations()
    for joint_key in (JointKey.HIPS, JointKey.CHEST):
        name = registry.bone_name(joint_key)
        assert name not in result.updated
        np.testing.assert_allclose(result.rotations[name], rest[name])


def test_upright_torso_has_no_lean(retargeter, registry, mixamo_rig, t_pose_frame):
    result = retargeter.retarget(t_pose_frame, registry, mixamo_rig)
    assert result.torso.lean_angle == pytest.approx(0.0)


def test_empty_registry_is_a_no_op(retargeter, mixamo_rig, t_pose_frame):
    for registry in (None, RigRegistry([], {})):
        result = retargeter.retarget(t_pose_frame, registry, mixamo_rig)
        assert result.rotations == {}
        assert result.updated == []
        assert result.frame_number == t_pose_frame.frame_number


def test_unbound_joint_is_skipped(retargeter, mixamo_rig, t_pose_frame):
    mapping = dict(DEFAULT_BONE_MAPPING)
    del mapping[JointKey.LEFT_ARM]
    registry = build_registry(mixamo_rig, mapping)

    result = retargeter.retarget(t_pose_frame, registry, mixamo_rig)

    assert "mixamorig:LeftArm" not in result.rotations
    assert "mixamorig:LeftForeArm" in result.updated


def test_to_animation_frame(retargeter, registry, mixamo_rig, t_pose_frame):
    frame = retargeter.retarget(t_pose_frame, registry, mixamo_rig).to_animation_frame()
    assert set(frame) == set(registry.bindings)
    assert all(len(q) == 4 and isinstance(q[0], float) for q in frame.values())
