"""Retargeting core - direction estimation, bone orientation, skeleton pass"""

from .direction import estimate_direction, estimate_center_depth, to_pose_space, is_confident
from .orienter import orient
from .retargeter import (
    SkeletonRetargeter, RetargetResult, TorsoEstimate, LIMB_SEGMENTS,
)

__all__ = [
    "estimate_direction", "estimate_center_depth", "to_pose_space", "is_confident",
    "orient",
    "SkeletonRetargeter", "RetargetResult", "TorsoEstimate", "LIMB_SEGMENTS",
]
