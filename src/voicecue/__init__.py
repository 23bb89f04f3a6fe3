"""
Voicecue - speech-following teleprompter tracking.

Follows a speaker's position in a Markdown script from a stream of
transcribed speech fragments, tolerating recognition errors, skipped
passages and re-read sentences.
"""

__version__ = "0.1.0"

from .coordinator import TrackingCoordinator, TrackingState, TrackingStatus, TrackingUpdate
from .matching_config import MatchingConfig, TrackingMode
from .server import WebServer
from .text_normalizer import extract_plain_text, split_for_display, tokenize_for_matching
from .threaded_tracker import ThreadedTracker
from .tracker import MatchDebugInfo, PositionTracker

__all__ = [
    "MatchDebugInfo",
    "MatchingConfig",
    "PositionTracker",
    "ThreadedTracker",
    "TrackingCoordinator",
    "TrackingMode",
    "TrackingState",
    "TrackingStatus",
    "TrackingUpdate",
    "WebServer",
    "extract_plain_text",
    "split_for_display",
    "tokenize_for_matching",
]
