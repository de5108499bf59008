"""
Direction estimation - keypoint pairs to unit vectors in pose space.

Coordinate systems:
- Pixel: x right, y down, origin top-left of the detector input frame
- Pose space: x right (as seen on the preview), y up, z from relative depth

Both endpoints of a segment go through the same transform, so the result only
depends on their offset, the per-axis scales and the shared depth origin.
"""

from typing import Optional

import numpy as np

from posemimic.core import Keypoint, KeypointFrame, PoseSpaceSettings


def is_confident(keypoint: Optional[Keypoint], threshold: float) -> bool:
    """True when the keypoint exists and meets the confidence threshold."""
    return keypoint is not None and keypoint.confidence >= threshold


def to_pose_space(
    keypoint: Keypoint,
    center_depth: float,
    settings: PoseSpaceSettings,
) -> np.ndarray:
    """Map one keypoint from pixel coordinates into pose space."""
    px = settings.display_x(keypoint.x)
    depth = keypoint.depth if keypoint.depth is not None else 0.0
    return np.array([
        (px / settings.video_width - 0.5) * settings.x_scale,
        (1.0 - keypoint.y / settings.video_height - 0.5) * settings.y_scale,
        depth * settings.z_scale + center_depth,
    ], dtype=np.float64)


def estimate_direction(
    from_keypoint: Optional[Keypoint],
    to_keypoint: Optional[Keypoint],
    center_depth: float,
    settings: PoseSpaceSettings,
) -> Optional[np.ndarray]:
    """
    Unit direction from one keypoint to another in pose space.

    Returns None when either keypoint is absent or below the confidence
    threshold, or when both map to the same point.
    """
    threshold = settings.confidence_threshold
    if not (is_confident(from_keypoint, threshold) and is_confident(to_keypoint, threshold)):
        return None

    delta = (
        to_pose_space(to_keypoint, center_depth, settings)
        - to_pose_space(from_keypoint, center_depth, settings)
    )
    length = np.linalg.norm(delta)
    if not np.isfinite(length) or length < 1e-8:
        return None
    return delta / length


def estimate_center_depth(frame: KeypointFrame, settings: PoseSpaceSettings) -> float:
    """
    Shared depth origin for a frame, from the average hip depth.

    Falls back to a constant when either hip is missing, unconfident or has no
    depth estimate.
    """
    left_hip = frame.get("left_hip")
    right_hip = frame.get("right_hip")
    threshold = settings.center_confidence_threshold

    if (
        left_hip is None or right_hip is None
        or left_hip.confidence <= threshold or right_hip.confidence <= threshold
        or left_hip.depth is None or right_hip.depth is None
    ):
        return settings.center_depth_fallback

    # Detector depth is negative towards the camera; flip so forward is +z
    return -((left_hip.depth + right_hip.depth) / 2.0) * settings.center_depth_scale
