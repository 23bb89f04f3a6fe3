# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Debug logging for tracking decisions.

Writes one log file:
- matches.log: every fragment submitted, the match outcome and position changes

Logging is disabled by default. Call enable() to turn it on.
"""

from datetime import datetime
from pathlib import Path

from .tracker import MatchDebugInfo

# Log files location (in the working directory)
LOG_DIR: Path = Path.cwd() / "logs"
MATCH_LOG: Path = LOG_DIR / "matches.log"

# Global flag to control whether debug logging is enabled
_ENABLED: bool = False  # pylint: disable=invalid-name


def enable() -> None:
    """Enable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = True


def disable() -> None:
    """Disable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = False


def is_enabled() -> bool:
    """Check if debug logging is enabled."""
    return _ENABLED


def _ensure_log_dir() -> None:
    """Create log directory if it doesn't exist."""
    LOG_DIR.mkdir(exist_ok=True)


def _timestamp() -> str:
    """Get current timestamp."""
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def clear_logs() -> None:
    """Clear the log file for a fresh session."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    with open(MATCH_LOG, 'w', encoding='utf-8') as f:
        f.write(
            f"=== New session started at {datetime.now().isoformat()} ===\n\n")


def log_match(
    fragment: str,
    match_index: int | None,
    position: int,
    debug_info: MatchDebugInfo | None
) -> None:
    """
    Log the outcome of matching one fragment.

    Args:
        fragment: The raw transcribed text
        match_index: Index of the matched script word, or None
        position: Tracker position after the match
        debug_info: Debug snapshot from the tracker
    """
    if not _ENABLED:
        return
    _ensure_log_dir()
    outcome: str = f"match={match_index:4d}" if match_index is not None else "no match "
    with open(MATCH_LOG, 'a', encoding='utf-8') as f:
        f.write(
            f"[{_timestamp()}] {outcome} pos={position:4d} "
            f"fragment=\"{fragment[-60:]}\"\n")
        if debug_info is not None:
            f.write(
                f"                 heard={debug_info.transcribed_words} "
                f"range={debug_info.search_range.start}..{debug_info.search_range.stop} "
                f"conf={debug_info.best_confidence:.2f} "
                f"prox={debug_info.proximity_bonus:.2f}\n")


def log_position_change(old_pos: int, new_pos: int, reason: str) -> None:
    """
    Log a position change.

    Args:
        old_pos: Previous position
        new_pos: New position
        reason: Why the position changed
    """
    if not _ENABLED:
        return
    _ensure_log_dir()
    with open(MATCH_LOG, 'a', encoding='utf-8') as f:
        f.write(
            f"[{_timestamp()}] POSITION CHANGE: {old_pos} -> {new_pos} ({reason})\n")
