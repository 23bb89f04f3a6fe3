# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Matching presets for the three tracking strictness modes.
"""

from dataclasses import dataclass
from enum import Enum


class TrackingMode(str, Enum):
    """How strictly spoken words must follow the script."""
    STRICT = "strict"
    MIXED = "mixed"
    LOOSE = "loose"


@dataclass(frozen=True)
class MatchingConfig:
    """Thresholds used by the position tracker for one tracking mode."""
    max_fuzzy_distance: int  # Max edit distance for a word to count as matched
    max_single_word_jump: int  # Forward jump always allowed
    max_phrase_jump: int  # Forward jump allowed with corroborating words
    acceptance_threshold: float  # Min confidence + proximity to commit
    min_phrase_confidence: float  # Confidence needed for a phrase jump
    look_forward_window: int  # Words searched ahead of the current position

    @classmethod
    def for_mode(cls, mode: TrackingMode) -> 'MatchingConfig':
        """Get the preset for a tracking mode."""
        return MATCHING_PRESETS[TrackingMode(mode)]


MATCHING_PRESETS: dict[TrackingMode, MatchingConfig] = {
    TrackingMode.STRICT: MatchingConfig(
        max_fuzzy_distance=1,
        max_single_word_jump=2,
        max_phrase_jump=8,
        acceptance_threshold=0.55,
        min_phrase_confidence=0.75,
        look_forward_window=12,
    ),
    TrackingMode.MIXED: MatchingConfig(
        max_fuzzy_distance=2,
        max_single_word_jump=5,
        max_phrase_jump=15,
        acceptance_threshold=0.40,
        min_phrase_confidence=0.60,
        look_forward_window=20,
    ),
    TrackingMode.LOOSE: MatchingConfig(
        max_fuzzy_distance=3,
        max_single_word_jump=10,
        max_phrase_jump=30,
        acceptance_threshold=0.25,
        min_phrase_confidence=0.40,
        look_forward_window=35,
    ),
}
