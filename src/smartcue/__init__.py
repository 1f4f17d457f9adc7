"""
smartcue - Teleprompter core that scrolls on a timer or follows live speech.

Transcript fragments are aligned against the script by a streaming matcher,
and a motion controller turns the resulting progress (or a constant speed)
into a smooth on-screen offset, with manual drag and momentum on top.
"""

__version__ = "0.1.0"

from .matcher import AnchorMatcher, FuzzyMatcher, StreamMatcher, create_matcher
from .motion import DriveMode, MotionController, MotionUpdate
from .normalizer import Script, normalize
from .scheduler import AsyncioFrameScheduler, FrameScheduler, VirtualScheduler
from .session import SessionMode, TeleprompterSession

__all__ = [
    "normalize",
    "Script",
    "StreamMatcher",
    "AnchorMatcher",
    "FuzzyMatcher",
    "create_matcher",
    "DriveMode",
    "MotionController",
    "MotionUpdate",
    "FrameScheduler",
    "AsyncioFrameScheduler",
    "VirtualScheduler",
    "SessionMode",
    "TeleprompterSession",
]
