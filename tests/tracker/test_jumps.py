# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for forward jumps (skipped passages) and backward re-reads.
"""

import pytest

from voicecue.matching_config import MatchingConfig, TrackingMode
from voicecue.tracker import LOOK_BACK_WINDOW, PositionTracker, is_jump_allowed, proximity_bonus

# Sixteen distinct words so every match position is unambiguous
ALPHABET: str = (
    "alpha bravo charlie delta echo foxtrot golf hotel "
    "india juliet kilo lima mike november oscar papa"
)


def make_tracker(mode: TrackingMode = TrackingMode.MIXED) -> PositionTracker:
    """Create a tracker with the alphabet script loaded."""
    tracker: PositionTracker = PositionTracker(mode)
    tracker.load_reference(ALPHABET)
    return tracker


class TestProximityBonus:
    """Tests for the distance bonus."""

    @pytest.mark.parametrize("distance,expected", [
        (0, 0.5),
        (1, 0.3),
        (2, 0.3),
        (3, 0.15),
        (5, 0.15),
        (6, 0.05),
        (10, 0.05),
        (12, -0.02),
        (20, -0.1),
    ])
    def test_bonus_values(self, distance: int, expected: float) -> None:
        assert proximity_bonus(distance) == pytest.approx(expected)

    def test_bonus_decreases_with_distance(self) -> None:
        bonuses: list[float] = [proximity_bonus(d) for d in range(40)]
        assert bonuses == sorted(bonuses, reverse=True)


class TestJumpAdmission:
    """Tests for the jump admission rules."""

    mixed: MatchingConfig = MatchingConfig.for_mode(TrackingMode.MIXED)

    def test_backward_always_allowed(self) -> None:
        assert is_jump_allowed(-3, 1, 0.1, self.mixed)

    def test_small_jump_allowed(self) -> None:
        assert is_jump_allowed(5, 1, 0.1, self.mixed)

    def test_phrase_jump_needs_two_words(self) -> None:
        assert not is_jump_allowed(12, 1, 1.0, self.mixed)
        assert is_jump_allowed(12, 2, 1.0, self.mixed)

    def test_phrase_jump_needs_confidence(self) -> None:
        assert not is_jump_allowed(12, 2, 0.5, self.mixed)
        assert is_jump_allowed(12, 2, 0.6, self.mixed)

    def test_large_jump_needs_strong_evidence(self) -> None:
        assert not is_jump_allowed(16, 2, 1.0, self.mixed)
        assert not is_jump_allowed(16, 3, 0.75, self.mixed)
        assert is_jump_allowed(16, 3, 0.8, self.mixed)


class TestForwardJumps:
    """Tests for skipping ahead in the script."""

    def test_single_word_cannot_jump_far(self) -> None:
        """One word alone is not enough to skip twelve words."""
        tracker: PositionTracker = make_tracker()
        assert tracker.match("mike") is None
        assert tracker.current_position == 0

    def test_phrase_can_jump(self) -> None:
        """Two matching words justify the jump."""
        tracker: PositionTracker = make_tracker()
        assert tracker.match("mike november") == 12
        assert tracker.current_position == 14
        info = tracker.last_debug_info
        assert info is not None
        assert info.proximity_bonus == pytest.approx(-0.02)

    def test_weak_phrase_cannot_jump(self) -> None:
        """Half the fragment matching is below the phrase confidence."""
        tracker: PositionTracker = make_tracker()
        assert tracker.match("mike november zulu zulu") is None
        assert tracker.current_position == 0

    def test_small_skip_with_one_word(self) -> None:
        """Skipping a couple of words needs no extra evidence."""
        tracker: PositionTracker = make_tracker()
        assert tracker.match("delta") == 3
        assert tracker.current_position == 4

    def test_strict_mode_limits_single_word_skip(self) -> None:
        tracker: PositionTracker = make_tracker(TrackingMode.STRICT)
        assert tracker.match("delta") is None
        tracker.configure(TrackingMode.MIXED)
        assert tracker.match("delta") == 3

    def test_beyond_look_forward_window(self) -> None:
        """Words further ahead than the window are never found."""
        tracker: PositionTracker = make_tracker(TrackingMode.STRICT)
        # Strict looks 12 words ahead: "mike" (12) is just outside
        assert tracker.match("mike november oscar") is None


class TestBacktracking:
    """Tests for re-reading recent words."""

    def test_reread_within_look_back(self) -> None:
        """Going back to repeat a phrase moves the cursor back."""
        tracker: PositionTracker = make_tracker()
        assert tracker.match("alpha bravo charlie") == 0
        assert tracker.match("delta echo") == 3
        assert tracker.current_position == 5

        assert tracker.match("charlie delta") == 2
        assert tracker.current_position == 4

    def test_reread_outside_look_back(self) -> None:
        """The search only reaches LOOK_BACK_WINDOW words behind."""
        tracker: PositionTracker = make_tracker()
        tracker.set_position(10)
        assert LOOK_BACK_WINDOW == 3
        assert tracker.match("alpha bravo") is None
        assert tracker.current_position == 10

    def test_tie_prefers_lower_index(self) -> None:
        """Equally good candidates either side resolve to the earlier one."""
        tracker: PositionTracker = PositionTracker()
        tracker.load_reference("alpha xray bravo charlie delta xray echo")
        tracker.set_position(3)
        assert tracker.match("xray") == 1
        assert tracker.current_position == 2
