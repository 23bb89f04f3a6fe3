# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Script tracking module that aligns transcript fragments with the script.

Each fragment is scored against every start position in a window around the
current position. Scores combine fuzzy word similarity with a bonus for
staying close to where the speaker is expected to be, and forward jumps have
to be backed by enough matching words before they are accepted.

The tracker never raises on bad input: anything it cannot place is simply
"no match" and the position stays where it was.
"""

import logging
from dataclasses import dataclass, field

from .edit_distance import word_similarity
from .matching_config import MatchingConfig, TrackingMode
from .text_normalizer import (
    LINE_BREAK,
    split_for_display,
    tokenize_for_matching,
    tokenize_transcript_fragment,
)

logger = logging.getLogger(__name__)

# Words searched behind the current position (re-reading support)
LOOK_BACK_WINDOW: int = 3

# Matched words needed for a phrase jump (up to max_phrase_jump)
MIN_PHRASE_WORDS_FOR_JUMP: int = 2

# Evidence needed for jumps beyond max_phrase_jump
MIN_LARGE_JUMP_WORDS: int = 3
MIN_LARGE_JUMP_CONFIDENCE: float = 0.8


@dataclass(frozen=True)
class MatchDebugInfo:
    """Snapshot of the last match attempt. Display only."""
    transcribed_words: list[str]
    best_match_index: int | None
    best_confidence: float
    search_range: range  # Start indices searched
    script_words_in_range: list[str]
    proximity_bonus: float


@dataclass
class CandidateMatch:
    """A scored start position for the current fragment."""
    index: int
    confidence: float
    matched_words: int
    proximity_bonus: float = 0.0

    @property
    def score(self) -> float:
        """Combined score used to pick the best candidate."""
        return self.confidence + self.proximity_bonus


def proximity_bonus(distance: int) -> float:
    """Bonus for candidates close to the current position.

    Nearby positions get a boost, distant ones an increasing penalty.
    """
    if distance == 0:
        return 0.5
    if distance <= 2:
        return 0.3
    if distance <= 5:
        return 0.15
    if distance <= 10:
        return 0.05
    return -0.1 * (distance - 10) / 10


def is_jump_allowed(
    jump_distance: int,
    matched_words: int,
    confidence: float,
    config: MatchingConfig
) -> bool:
    """Check whether moving the cursor by jump_distance is allowed.

    Args:
        jump_distance: Candidate index minus current position
        matched_words: Number of fragment words that matched
        confidence: Match confidence for the candidate (0-1)
        config: Thresholds for the active tracking mode

    Returns:
        True if the candidate may be considered
    """
    # Going back is always fine - the speaker is re-reading
    if jump_distance < 0:
        return True

    if jump_distance <= config.max_single_word_jump:
        return True

    if jump_distance <= config.max_phrase_jump:
        return (matched_words >= MIN_PHRASE_WORDS_FOR_JUMP
                and confidence >= config.min_phrase_confidence)

    return (matched_words >= MIN_LARGE_JUMP_WORDS
            and confidence >= MIN_LARGE_JUMP_CONFIDENCE)


class PositionTracker:
    """
    Tracks position in a script based on transcript fragments.

    Holds the reference words (normalized, with LINE_BREAK markers), the
    parallel display words and the current cursor position. Not thread-safe:
    each call must complete before the next one starts (see ThreadedTracker
    for use from several threads).
    """

    _words: list[str]
    _display_words: list[str]
    _current_position: int
    _config: MatchingConfig
    _mode: TrackingMode
    last_debug_info: MatchDebugInfo | None

    def __init__(self, mode: TrackingMode = TrackingMode.MIXED) -> None:
        self._words = []
        self._display_words = []
        self._current_position = 0
        self._mode = TrackingMode(mode)
        self._config = MatchingConfig.for_mode(self._mode)
        self.last_debug_info = None

    def configure(self, mode: TrackingMode) -> None:
        """Switch to the matching preset for a tracking mode.

        Takes effect on the next match; the position is kept.
        """
        self._mode = TrackingMode(mode)
        self._config = MatchingConfig.for_mode(self._mode)
        logger.info("Tracker configured for %s mode", self._mode.value)

    def load_reference(self, plain_text: str) -> None:
        """Load the script text, replacing any previous script.

        Display and matching words are built with the same segmentation. If
        normalization dropped words (so the indices no longer line up), the
        display words are lowercased verbatim instead.
        """
        display_words: list[str] = split_for_display(plain_text)
        words: list[str] = tokenize_for_matching(plain_text)

        if len(display_words) != len(words):
            logger.warning(
                "Word count mismatch (display: %d, match: %d), "
                "falling back to lowercased display words",
                len(display_words), len(words)
            )
            words = [w.lower() for w in display_words]

        self._display_words = display_words
        self._words = words
        self._current_position = 0
        self.last_debug_info = None

        logger.info("Loaded script with %d words", len(self._words))

    def match(self, fragment: str) -> int | None:
        """
        Find where a transcript fragment was read from and move the cursor.

        Args:
            fragment: Raw transcribed text

        Returns:
            Index of the first matched script word, or None if the fragment
            could not be placed (the position is then unchanged)
        """
        spoken_words: list[str] = tokenize_transcript_fragment(fragment)

        search_start: int = max(0, self._current_position - LOOK_BACK_WINDOW)
        search_end: int = min(
            len(self._words),
            self._current_position + self._config.look_forward_window
        )

        if not spoken_words:
            logger.debug("No transcribed words to match")
            self._record_debug(spoken_words, search_start, search_end, None)
            return None

        if search_start >= search_end:
            logger.debug("Empty search range: %d..%d", search_start, search_end)
            self._record_debug(spoken_words, search_start, search_end, None)
            return None

        logger.debug(
            "Matching %s at position %d (searching %d..%d)",
            spoken_words, self._current_position, search_start, search_end - 1
        )

        best: CandidateMatch | None = None
        for index in range(search_start, search_end):
            if self._words[index] == LINE_BREAK:
                continue

            candidate: CandidateMatch = self._score_candidate(spoken_words, index)
            if candidate.matched_words == 0:
                continue

            jump_distance: int = index - self._current_position
            if not is_jump_allowed(
                jump_distance, candidate.matched_words,
                candidate.confidence, self._config
            ):
                logger.debug(
                    "Jump to %d rejected (distance: %d, matched: %d)",
                    index, jump_distance, candidate.matched_words
                )
                continue

            candidate.proximity_bonus = proximity_bonus(abs(jump_distance))
            logger.debug(
                "Position %d: conf=%.2f prox=%.2f final=%.2f words=%d",
                index, candidate.confidence, candidate.proximity_bonus,
                candidate.score, candidate.matched_words
            )

            # Ties keep the earlier (lower) index
            if best is None or candidate.score > best.score:
                best = candidate

        self._record_debug(spoken_words, search_start, search_end, best)

        if best is None or best.score <= self._config.acceptance_threshold:
            logger.debug("No match found above threshold")
            return None

        logger.debug(
            "Best match at %d (conf: %.2f, prox: %.2f, words: %d)",
            best.index, best.confidence, best.proximity_bonus, best.matched_words
        )
        self._current_position = best.index + best.matched_words
        return best.index

    def _score_candidate(self, spoken_words: list[str], start_index: int) -> CandidateMatch:
        """Score the fragment aligned to start at start_index.

        Line breaks in the script are skipped without consuming a spoken
        word. Confidence is normalized by the number of spoken words, so
        partial matches score proportionally lower.
        """
        total: float = 0.0
        matched: int = 0
        spoken_idx: int = 0
        script_idx: int = start_index

        while spoken_idx < len(spoken_words) and script_idx < len(self._words):
            script_word: str = self._words[script_idx]
            if script_word == LINE_BREAK:
                script_idx += 1
                continue

            similarity: float = word_similarity(
                spoken_words[spoken_idx], script_word,
                self._config.max_fuzzy_distance
            )
            if similarity > 0:
                total += similarity
                matched += 1

            spoken_idx += 1
            script_idx += 1

        if matched == 0:
            return CandidateMatch(start_index, 0.0, 0)
        return CandidateMatch(start_index, total / len(spoken_words), matched)

    def _record_debug(
        self,
        spoken_words: list[str],
        search_start: int,
        search_end: int,
        best: CandidateMatch | None
    ) -> None:
        """Refresh the debug snapshot for the last match attempt."""
        self.last_debug_info = MatchDebugInfo(
            transcribed_words=list(spoken_words),
            best_match_index=best.index if best else None,
            best_confidence=best.confidence if best else 0.0,
            search_range=range(search_start, max(search_start, search_end)),
            script_words_in_range=self._words[search_start:search_end],
            proximity_bonus=best.proximity_bonus if best else 0.0,
        )

    def set_position(self, index: int) -> None:
        """Move the cursor directly (e.g. manual scroll), clamped to the script."""
        self._current_position = max(0, min(index, len(self._words)))

    def reset(self) -> None:
        """Reset tracking to the beginning of the script."""
        self._current_position = 0
        self.last_debug_info = None

    @property
    def current_position(self) -> int:
        """Index of the next expected script word."""
        return self._current_position

    @property
    def words(self) -> list[str]:
        """Normalized script words (with LINE_BREAK markers)."""
        return list(self._words)

    @property
    def display_words(self) -> list[str]:
        """Script words as displayed, index-aligned with words."""
        return list(self._display_words)

    @property
    def word_count(self) -> int:
        """Number of tokens in the script, including line breaks."""
        return len(self._words)

    @property
    def mode(self) -> TrackingMode:
        """Active tracking mode."""
        return self._mode

    @property
    def config(self) -> MatchingConfig:
        """Active matching thresholds."""
        return self._config

    @property
    def progress(self) -> float:
        """Get overall progress through the script (0.0 to 1.0)."""
        if not self._words:
            return 0.0
        return self._current_position / len(self._words)
