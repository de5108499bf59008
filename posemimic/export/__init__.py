"""Animation output"""

from .recorder import AnimationRecorder, RecordedFrame, Renderer

__all__ = ["AnimationRecorder", "RecordedFrame", "Renderer"]
