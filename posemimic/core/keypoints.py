"""Keypoint frames and the semantic joint set they are retargeted through.

Keypoints arrive in pixel coordinates from whatever detector feeds the
pipeline (MediaPipe, MoveNet, a replay file). Names follow the COCO/MoveNet
convention ("left_shoulder", "nose", ...), which MediaPipe shares for the
body landmarks used here.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional

from .logging import get_logger


logger = get_logger("keypoints")


@dataclass(frozen=True)
class Keypoint:
    """Single detected landmark in pixel space."""
    name: str
    x: float
    y: float
    depth: Optional[float]  # Relative depth, detector-specific units
    confidence: float  # 0-1

    @classmethod
    def from_dict(cls, name: str, data: Mapping) -> "Keypoint":
        depth = data.get("depth", data.get("z"))
        return cls(
            name=name,
            x=float(data["x"]),
            y=float(data["y"]),
            depth=None if depth is None else float(depth),
            confidence=float(data.get("confidence", data.get("score", 0.0))),
        )

    def to_dict(self) -> dict:
        return {
            "x": self.x,
            "y": self.y,
            "depth": self.depth,
            "confidence": self.confidence,
        }


@dataclass
class KeypointFrame:
    """One pose estimation result for a single tracked subject."""
    frame_number: int = 0
    timestamp: float = 0.0
    keypoints: Dict[str, Keypoint] = field(default_factory=dict)

    @classmethod
    def from_list(
        cls,
        keypoints: Iterable[Keypoint],
        frame_number: int = 0,
        timestamp: float = 0.0,
    ) -> "KeypointFrame":
        return cls(
            frame_number=frame_number,
            timestamp=timestamp,
            keypoints={kp.name: kp for kp in keypoints},
        )

    @classmethod
    def from_dict(cls, data: Mapping) -> "KeypointFrame":
        return cls(
            frame_number=int(data.get("frame", 0)),
            timestamp=float(data.get("timestamp", 0.0)),
            keypoints={
                name: Keypoint.from_dict(name, kp)
                for name, kp in data.get("keypoints", {}).items()
            },
        )

    def to_dict(self) -> dict:
        return {
            "frame": self.frame_number,
            "timestamp": self.timestamp,
            "keypoints": {name: kp.to_dict() for name, kp in self.keypoints.items()},
        }

    def get(self, name: str) -> Optional[Keypoint]:
        return self.keypoints.get(name)

    def __len__(self) -> int:
        return len(self.keypoints)


class JointKey(Enum):
    """Semantic rig locations the retargeter knows how to drive."""
    HIPS = "hips"
    CHEST = "chest"
    NECK = "neck"
    HEAD = "head"
    LEFT_SHOULDER = "left_shoulder"
    LEFT_ARM = "left_arm"
    LEFT_ELBOW = "left_elbow"
    LEFT_WRIST = "left_wrist"
    RIGHT_SHOULDER = "right_shoulder"
    RIGHT_ARM = "right_arm"
    RIGHT_ELBOW = "right_elbow"
    RIGHT_WRIST = "right_wrist"
    LEFT_HIP = "left_hip"
    LEFT_KNEE = "left_knee"
    LEFT_ANKLE = "left_ankle"
    RIGHT_HIP = "right_hip"
    RIGHT_KNEE = "right_knee"
    RIGHT_ANKLE = "right_ankle"


# Keys name the segment a bone follows, so "left_elbow" drives the forearm
# and "left_hip" the thigh.
DEFAULT_BONE_MAPPING: Dict[JointKey, str] = {
    JointKey.HIPS: "mixamorig:Hips",
    JointKey.LEFT_HIP: "mixamorig:LeftUpLeg",
    JointKey.LEFT_KNEE: "mixamorig:LeftLeg",
    JointKey.LEFT_ANKLE: "mixamorig:LeftFoot",
    JointKey.RIGHT_HIP: "mixamorig:RightUpLeg",
    JointKey.RIGHT_KNEE: "mixamorig:RightLeg",
    JointKey.RIGHT_ANKLE: "mixamorig:RightFoot",
    JointKey.CHEST: "mixamorig:Spine2",
    JointKey.NECK: "mixamorig:Neck",
    JointKey.HEAD: "mixamorig:Head",
    JointKey.LEFT_SHOULDER: "mixamorig:LeftShoulder",
    JointKey.LEFT_ARM: "mixamorig:LeftArm",
    JointKey.LEFT_ELBOW: "mixamorig:LeftForeArm",
    JointKey.LEFT_WRIST: "mixamorig:LeftHand",
    JointKey.RIGHT_SHOULDER: "mixamorig:RightShoulder",
    JointKey.RIGHT_ARM: "mixamorig:RightArm",
    JointKey.RIGHT_ELBOW: "mixamorig:RightForeArm",
    JointKey.RIGHT_WRIST: "mixamorig:RightHand",
}


# Body keypoints consumed by the retargeter
BODY_KEYPOINT_NAMES: List[str] = [
    "nose",
    "left_shoulder", "right_shoulder",
    "left_elbow", "right_elbow",
    "left_wrist", "right_wrist",
    "left_hip", "right_hip",
    "left_knee", "right_knee",
    "left_ankle", "right_ankle",
]


def parse_bone_mapping(raw: Optional[Mapping[str, str]]) -> Dict[JointKey, str]:
    """
    Build a JointKey -> bone name table from a config section.

    Unknown keys and empty values are reported and skipped. A missing or
    empty section yields the default Mixamo mapping.
    """
    if not raw:
        return dict(DEFAULT_BONE_MAPPING)

    mapping: Dict[JointKey, str] = {}
    for key, bone_name in raw.items():
        try:
            joint_key = JointKey(key)
        except ValueError:
            logger.warning(f"Ignoring unknown joint key in bone mapping: '{key}'")
            continue
        if not bone_name:
            logger.debug(f"Joint '{key}' has no bone assigned")
            continue
        mapping[joint_key] = str(bone_name)
    return mapping
