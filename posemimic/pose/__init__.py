"""Pose sources.

The MediaPipe-backed source lives in `posemimic.pose.estimator_2d` and is
imported explicitly by callers that run a camera.
"""

from .source import PoseSource, ReplayPoseSource, save_keypoint_frames

__all__ = ["PoseSource", "ReplayPoseSource", "save_keypoint_frames"]
