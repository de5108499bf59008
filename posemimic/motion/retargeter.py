"""
Skeleton retargeting - drive a bound rig from one keypoint frame.

Per frame:
1. A shared depth origin is derived from the hips.
2. Limb bones (upper arm, forearm, thigh, shin on both sides) are aimed at
   their keypoint segment, parents before children, each child reading the
   parent rotation already updated this frame.
3. Head pan/tilt come from the nose offset against the shoulder midpoint; the
   neck follows the head halfway.
4. A hip-to-shoulder lean is measured and reported. It is not applied to any
   bone: without torso IK the estimate is too rough to drive the spine.

Bones without a usable direction keep the rotation they had last frame.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from posemimic.core import get_logger, JointKey, KeypointFrame, RetargetSettings
from posemimic.core.quaternion import (
    quat_from_axis_angle, quat_multiply, quat_normalize, quat_slerp,
)
from posemimic.rig import Rig, RigRegistry
from .direction import estimate_center_depth, estimate_direction, is_confident, to_pose_space
from .orienter import orient


logger = get_logger("motion.retargeter")


# (bone driven, segment start keypoint, segment end keypoint)
LIMB_SEGMENTS: List[Tuple[JointKey, str, str]] = [
    (JointKey.LEFT_ARM, "left_shoulder", "left_elbow"),
    (JointKey.LEFT_ELBOW, "left_elbow", "left_wrist"),
    (JointKey.RIGHT_ARM, "right_shoulder", "right_elbow"),
    (JointKey.RIGHT_ELBOW, "right_elbow", "right_wrist"),
    (JointKey.LEFT_HIP, "left_hip", "left_knee"),
    (JointKey.LEFT_KNEE, "left_knee", "left_ankle"),
    (JointKey.RIGHT_HIP, "right_hip", "right_knee"),
    (JointKey.RIGHT_KNEE, "right_knee", "right_ankle"),
]

TILT_AXIS = np.array([1.0, 0.0, 0.0])
PAN_AXIS = np.array([0.0, 1.0, 0.0])


@dataclass
class TorsoEstimate:
    """Approximate upper-body lean, for diagnostics only."""
    hip_mid: np.ndarray  # pose space
    shoulder_mid: np.ndarray
    direction: np.ndarray  # unit, hips -> shoulders
    lean_angle: float  # radians from pose-space vertical, positive leaning towards +x


@dataclass
class RetargetResult:
    """Outcome of one retarget pass."""
    frame_number: int
    rotations: Dict[str, np.ndarray] = field(default_factory=dict)  # every bound bone
    updated: List[str] = field(default_factory=list)
    held: List[str] = field(default_factory=list)
    torso: Optional[TorsoEstimate] = None

    def to_animation_frame(self) -> Dict[str, List[float]]:
        """Bone name -> [qw, qx, qy, qz] for recorders and viewers."""
        return {name: [float(c) for c in q] for name, q in self.rotations.items()}


class SkeletonRetargeter:
    """
    Maps keypoint frames onto a rig through a registry.

    Holds no per-frame state; the caller passes in the rotations applied last
    frame and gets back the rotations for this one.
    """

    def __init__(self, settings: Optional[RetargetSettings] = None):
        self.settings = settings or RetargetSettings()
        self._rest_axis = self.settings.rest_axis_vector

    def retarget(
        self,
        frame: KeypointFrame,
        registry: Optional[RigRegistry],
        rig: Rig,
        previous: Optional[Mapping[str, np.ndarray]] = None,
    ) -> RetargetResult:
        """
        Compute local rotations for every bound bone.

        Args:
            frame: Keypoints for this tick
            registry: Bindings for the loaded rig; None or empty makes this a no-op
            rig: Hierarchy used for parent world rotations
            previous: Rotations applied last frame, by bone name

        Returns:
            RetargetResult with rotations for all bound bones
        """
        result = RetargetResult(frame_number=frame.frame_number)
        if registry is None or len(registry) == 0:
            return result

        pose_space = self.settings.pose_space

        working: Dict[str, np.ndarray] = rig.local_rotations()
        if previous:
            working.update({name: np.array(q, dtype=np.float64) for name, q in previous.items()})

        center_depth = estimate_center_depth(frame, pose_space)
        result.torso = self._estimate_torso(frame, center_depth)

        segments = [seg for seg in LIMB_SEGMENTS if registry.is_bound(seg[0])]
        segments.sort(key=lambda seg: rig.depth(registry.bone_name(seg[0])))

        for joint_key, start, end in segments:
            binding = registry.binding(joint_key)
            direction = estimate_direction(frame.get(start), frame.get(end), center_depth, pose_space)
            if direction is None:
                result.held.append(binding.bone_name)
                continue

            parent_world = rig.parent_world_rotation(binding.bone_name, working)
            working[binding.bone_name] = orient(
                direction, binding.rest_rotation, parent_world, self._rest_axis
            )
            result.updated.append(binding.bone_name)

        self._retarget_head(frame, registry, working, result)

        result.rotations = {
            binding.bone_name: working[binding.bone_name].copy() for binding in registry
        }

        if result.held:
            logger.debug(f"Frame {frame.frame_number}: holding {result.held}")
        return result

    def _retarget_head(
        self,
        frame: KeypointFrame,
        registry: RigRegistry,
        working: Dict[str, np.ndarray],
        result: RetargetResult,
    ) -> None:
        head = registry.binding(JointKey.HEAD)
        if head is None:
            return
        neck = registry.binding(JointKey.NECK)

        settings = self.settings
        pose_space = settings.pose_space
        nose = frame.get("nose")
        left_shoulder = frame.get("left_shoulder")
        right_shoulder = frame.get("right_shoulder")

        if not (
            is_confident(nose, settings.head_confidence_threshold)
            and is_confident(left_shoulder, pose_space.confidence_threshold)
            and is_confident(right_shoulder, pose_space.confidence_threshold)
        ):
            result.held.append(head.bone_name)
            if neck is not None:
                result.held.append(neck.bone_name)
            return

        shoulder_mid_x = (pose_space.display_x(left_shoulder.x) + pose_space.display_x(right_shoulder.x)) / 2.0
        shoulder_mid_y = (left_shoulder.y + right_shoulder.y) / 2.0

        # Linear in the pixel offset, no clamp
        tilt = -(nose.y - shoulder_mid_y) * settings.head_tilt_sensitivity
        pan = (shoulder_mid_x - pose_space.display_x(nose.x)) * settings.head_pan_sensitivity

        head_rotation = quat_multiply(
            quat_multiply(head.rest_rotation, quat_from_axis_angle(PAN_AXIS, pan)),
            quat_from_axis_angle(TILT_AXIS, tilt),
        )
        working[head.bone_name] = quat_normalize(head_rotation)
        result.updated.append(head.bone_name)

        if neck is not None:
            working[neck.bone_name] = quat_slerp(
                neck.rest_rotation, working[head.bone_name], settings.neck_follow
            )
            result.updated.append(neck.bone_name)

    def _estimate_torso(self, frame: KeypointFrame, center_depth: float) -> Optional[TorsoEstimate]:
        pose_space = self.settings.pose_space
        names = ("left_shoulder", "right_shoulder", "left_hip", "right_hip")
        keypoints = [frame.get(name) for name in names]
        if not all(is_confident(kp, pose_space.confidence_threshold) for kp in keypoints):
            return None

        points = [to_pose_space(kp, center_depth, pose_space) for kp in keypoints]
        shoulder_mid = (points[0] + points[1]) / 2.0
        hip_mid = (points[2] + points[3]) / 2.0

        spine = shoulder_mid - hip_mid
        length = np.linalg.norm(spine)
        if length < 1e-8:
            return None

        direction = spine / length
        return TorsoEstimate(
            hip_mid=hip_mid,
            shoulder_mid=shoulder_mid,
            direction=direction,
            lean_angle=float(np.arctan2(direction[0], direction[1])),
        )
