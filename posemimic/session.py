"""
Retarget session and animation loop.

The session owns the loaded character, its registry and the rotations applied
last tick. The loop is single-threaded: each tick polls the pose source
without waiting, retargets if a frame arrived, then hands the rig to the
renderer.
"""

from typing import Dict, Mapping, Optional

import numpy as np

from posemimic.core import (
    get_logger, Config, FrameClock, FrameTimer, JointKey, KeypointFrame,
    RetargetError, RetargetSettings, parse_bone_mapping,
)
from posemimic.export import Renderer
from posemimic.motion import RetargetResult, SkeletonRetargeter
from posemimic.pose import PoseSource
from posemimic.rig import Rig, RigRegistry, build_registry


class RetargetSession:
    """Explicit context for one character being driven by one performer."""

    def __init__(
        self,
        settings: Optional[RetargetSettings] = None,
        mapping: Optional[Mapping[JointKey, str]] = None,
    ):
        self.logger = get_logger("session")
        self.settings = settings or RetargetSettings()
        self._retargeter = SkeletonRetargeter(self.settings)
        self._mapping: Dict[JointKey, str] = dict(mapping) if mapping else parse_bone_mapping(None)

        self._rig: Optional[Rig] = None
        self._registry: Optional[RigRegistry] = None
        self._last_rotations: Dict[str, np.ndarray] = {}
        self._last_result: Optional[RetargetResult] = None
        self._error: Optional[RetargetError] = None

    @classmethod
    def from_config(cls, config: Config) -> "RetargetSession":
        return cls(
            settings=RetargetSettings.from_config(config),
            mapping=parse_bone_mapping(config.get("rig.bone_mapping")),
        )

    def load_rig(self, rig: Rig, mapping: Optional[Mapping[JointKey, str]] = None) -> bool:
        """
        Bind a (new) character. The previous registry and carried rotations
        are discarded in one step, after the new registry is complete.

        Returns:
            False if the rig cannot be animated; the session then ignores frames
        """
        if mapping is not None:
            self._mapping = dict(mapping)

        try:
            registry = build_registry(rig, self._mapping)
        except RetargetError as e:
            self.logger.error(f"{e}; retargeting disabled for '{rig.name}'")
            self._rig, self._registry, self._error = rig, None, e
            self._last_rotations = {}
            self._last_result = None
            return False

        self._rig, self._registry, self._error = rig, registry, None
        self._last_rotations = {}
        self._last_result = None
        self.logger.info(f"Character '{rig.name}' ready: {registry}")
        return True

    @property
    def is_ready(self) -> bool:
        return self._rig is not None and self._registry is not None

    @property
    def rig(self) -> Optional[Rig]:
        return self._rig

    @property
    def registry(self) -> Optional[RigRegistry]:
        return self._registry

    @property
    def error(self) -> Optional[RetargetError]:
        """Why the current rig cannot be animated, if it cannot."""
        return self._error

    @property
    def last_result(self) -> Optional[RetargetResult]:
        return self._last_result

    def apply(self, frame: KeypointFrame) -> Optional[RetargetResult]:
        """Retarget one frame onto the rig. No-op (None) without a valid registry."""
        if not self.is_ready:
            return None

        result = self._retargeter.retarget(frame, self._registry, self._rig, self._last_rotations)
        for name in result.updated:
            self._rig.set_local_rotation(name, result.rotations[name])

        self._last_rotations = result.rotations
        self._last_result = result
        return result


class AnimationLoop:
    """Frame-driven scheduler tying a pose source, a session and a renderer."""

    def __init__(
        self,
        source: PoseSource,
        session: RetargetSession,
        renderer: Optional[Renderer] = None,
        clock: Optional[FrameClock] = None,
    ):
        self.logger = get_logger("loop")
        self.source = source
        self.session = session
        self.renderer = renderer
        self.clock = clock or FrameClock()
        self.timer = FrameTimer()

        self._running = False
        self._closed = False
        self.ticks = 0
        self.applied = 0
        self.skipped = 0

    def tick(self) -> Optional[RetargetResult]:
        """
        One animation tick. Without a new keypoint frame the previous pose is
        rendered unchanged.
        """
        with self.timer.measure():
            return self._tick()

    def _tick(self) -> Optional[RetargetResult]:
        self.ticks += 1

        frame: Optional[KeypointFrame] = None
        try:
            frame = self.source.poll()
        except Exception as e:
            # Any source failure costs this tick only
            self.logger.error(f"Pose source failed on tick {self.ticks}: {e!r}", exc_info=True)

        result = self.session.apply(frame) if frame is not None else None
        if result is None:
            self.skipped += 1
        else:
            self.applied += 1

        if self.renderer is not None and self.session.rig is not None:
            self.renderer.render(self.session.rig, result)
        return result

    def run(self, max_frames: Optional[int] = None) -> int:
        """
        Tick at the clock's rate until stopped, `max_frames` ticks have run,
        or a finite source is exhausted.

        Returns:
            Number of ticks run
        """
        self._running = True
        self.clock.start()
        self.logger.info(f"Animation loop started at {self.clock.target_fps:.0f} FPS")

        try:
            while self._running:
                if max_frames is not None and self.clock.frame_count >= max_frames:
                    break
                self.clock.tick()
                self.tick()
                if getattr(self.source, "exhausted", False):
                    self.logger.info("Pose source exhausted")
                    break
                self.clock.wait_for_next_frame()
        finally:
            self.stop()

        self.logger.info(
            f"Animation loop stopped: {self.ticks} ticks, {self.applied} retargeted, "
            f"{self.skipped} held, avg {self.timer.average_frame_time * 1000:.2f} ms/tick"
        )
        return self.ticks

    def stop(self) -> None:
        """Stop ticking and shut down the pose source."""
        self._running = False
        if not self._closed:
            self.source.close()
            self._closed = True

    @property
    def is_running(self) -> bool:
        return self._running
