"""Video input"""

from .capture import VideoCapture, FrameResult

__all__ = ["VideoCapture", "FrameResult"]
