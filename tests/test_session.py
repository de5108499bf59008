"""Tests for the retarget session and the animation loop."""

from typing import List, Optional

import numpy as np
import pytest

from posemimic.core import EmptyRigError, FrameClock, JointKey, KeypointFrame
from posemimic.export import AnimationRecorder
from posemimic.pose import PoseSource, ReplayPoseSource
from posemimic.rig import NodeKind, Rig, RigNode, build_mixamo_rig
from posemimic.session import AnimationLoop, RetargetSession

from conftest import kp, make_frame


class StubSource:
    """Pose source that returns queued items, None when empty."""

    def __init__(self, items=()):
        self.items: List = list(items)
        self.closed = 0

    def poll(self) -> Optional[KeypointFrame]:
        if not self.items:
            return None
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed += 1


class CountingRenderer:
    def __init__(self):
        self.calls = []

    def render(self, rig, result):
        self.calls.append(result)


def _props_rig() -> Rig:
    root = RigNode(name="Scene", kind=NodeKind.SCENE)
    root.add_child(RigNode(name="Lamp", kind=NodeKind.MESH))
    return Rig(root, name="props")


@pytest.fixture
def session(mixamo_rig) -> RetargetSession:
    session = RetargetSession()
    assert session.load_rig(mixamo_rig)
    return session


def test_stub_source_satisfies_protocol():
    assert isinstance(StubSource(), PoseSource)
    assert isinstance(ReplayPoseSource([]), PoseSource)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

def test_apply_writes_updated_bones_to_rig(session, t_pose_frame):
    result = session.apply(t_pose_frame)

    assert result is not None
    assert session.last_result is result
    for name in result.updated:
        np.testing.assert_allclose(session.rig.find(name).local_rotation, result.rotations[name])


def test_apply_without_rig_is_a_no_op(t_pose_frame):
    session = RetargetSession()
    assert not session.is_ready
    assert session.apply(t_pose_frame) is None


def test_rig_without_bones_disables_retargeting(t_pose_frame):
    session = RetargetSession()

    assert session.load_rig(_props_rig()) is False
    assert isinstance(session.error, EmptyRigError)
    assert session.rig is not None
    assert session.registry is None
    assert session.apply(t_pose_frame) is None


def test_replacing_valid_rig_with_empty_rig_drops_registry(session, t_pose_frame):
    session.apply(t_pose_frame)
    assert session.load_rig(_props_rig()) is False
    assert session.registry is None
    assert session.last_result is None
    assert session.apply(t_pose_frame) is None


def test_reload_discards_carried_rotations(session, t_pose_frame):
    session.apply(t_pose_frame)
    old_registry = session.registry

    new_rig = build_mixamo_rig()
    assert session.load_rig(new_rig)
    assert session.registry is not old_registry
    assert session.last_result is None

    # Forearm cannot be estimated, so it must fall back to the new rig's pose
    frame = make_frame(frame_number=1, left_wrist=kp("left_wrist", 500, 140, confidence=0.05))
    result = session.apply(frame)

    forearm = session.registry.binding(JointKey.LEFT_ELBOW)
    assert forearm.bone_name in result.held
    np.testing.assert_allclose(result.rotations[forearm.bone_name], forearm.rest_rotation)


def test_reloading_animated_rig_keeps_bind_pose(session):
    rig = session.rig
    arm = session.registry.binding(JointKey.LEFT_ARM)
    bind_pose = build_mixamo_rig().find(arm.bone_name).local_rotation
    arms_down = make_frame(
        left_elbow=kp("left_elbow", 380, 210),
        left_wrist=kp("left_wrist", 380, 270),
    )

    result = session.apply(arms_down)
    assert arm.bone_name in result.updated
    assert not np.allclose(rig.find(arm.bone_name).local_rotation, bind_pose)

    assert session.load_rig(rig)
    rebound = session.registry.binding(JointKey.LEFT_ARM)
    np.testing.assert_allclose(rebound.rest_rotation, bind_pose)

    # Same input after rebinding lands on the same pose
    again = session.apply(arms_down)
    np.testing.assert_allclose(again.rotations[arm.bone_name], result.rotations[arm.bone_name], atol=1e-9)


def test_rotations_carry_between_frames(session, t_pose_frame):
    first = session.apply(t_pose_frame)
    second = session.apply(make_frame(frame_number=1, left_wrist=None))

    forearm = session.registry.bone_name(JointKey.LEFT_ELBOW)
    np.testing.assert_array_equal(second.rotations[forearm], first.rotations[forearm])


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------

def test_tick_without_frame_renders_previous_pose(session):
    renderer = CountingRenderer()
    loop = AnimationLoop(StubSource(), session, renderer)

    assert loop.tick() is None
    assert loop.tick() is None

    assert renderer.calls == [None, None]
    assert loop.ticks == 2
    assert loop.skipped == 2
    assert loop.applied == 0


def test_tick_applies_available_frame(session, t_pose_frame):
    renderer = CountingRenderer()
    loop = AnimationLoop(StubSource([t_pose_frame]), session, renderer)

    result = loop.tick()

    assert result is not None
    assert renderer.calls == [result]
    assert loop.applied == 1


def test_source_error_skips_tick(session, t_pose_frame):
    loop = AnimationLoop(StubSource([RuntimeError("camera unplugged"), t_pose_frame]), session)

    assert loop.tick() is None
    assert loop.tick() is not None
    assert loop.skipped == 1
    assert loop.applied == 1


def test_unexpected_source_error_skips_tick(session, t_pose_frame):
    source = StubSource([KeyError("nose"), AttributeError("landmarks"), t_pose_frame])
    loop = AnimationLoop(source, session, clock=FrameClock(target_fps=1000))

    assert loop.run(max_frames=3) == 3
    assert loop.skipped == 2
    assert loop.applied == 1


def test_renderer_skipped_without_rig(t_pose_frame):
    renderer = CountingRenderer()
    loop = AnimationLoop(StubSource([t_pose_frame]), RetargetSession(), renderer)
    loop.tick()
    assert renderer.calls == []


def test_run_stops_when_replay_is_exhausted(session):
    source = ReplayPoseSource([make_frame(0), make_frame(1)])
    recorder = AnimationRecorder()
    loop = AnimationLoop(source, session, recorder, clock=FrameClock(target_fps=1000))

    ticks = loop.run()

    assert ticks == 2
    assert loop.applied == 2
    assert len(recorder.frames) == 2
    assert [f.source_frame for f in recorder.frames] == [0, 1]
    assert source.exhausted
    assert not loop.is_running


def test_run_honours_max_frames(session):
    source = ReplayPoseSource([make_frame(0)], loop=True)
    loop = AnimationLoop(source, session, clock=FrameClock(target_fps=1000))

    assert loop.run(max_frames=5) == 5
    assert loop.applied == 5


def test_stop_closes_source_once(session):
    source = StubSource()
    loop = AnimationLoop(source, session, clock=FrameClock(target_fps=1000))

    loop.run(max_frames=3)
    loop.stop()

    assert source.closed == 1
    assert loop.skipped == 3
