# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Debug tool for replaying a transcript through the tracker.

This CLI tool takes a transcript file (one fragment per line) and a script
file, feeds each fragment to a PositionTracker, and outputs detailed
tracking information to help debug tracking issues.
"""

import argparse
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal, TextIO

from .config import parse_tracking_mode
from .matching_config import TrackingMode
from .text_normalizer import LINE_BREAK, extract_plain_text
from .tracker import PositionTracker

EventType = Literal["BACKTRACK", "FORWARD_JUMP",
                    "advance", "no_change", "no_match"]


@dataclass
class TrackingEvent:
    """A single tracking event during transcript replay."""
    transcript_line: int
    fragment: str
    match_index: int | None
    position_before: int
    position_after: int
    event_type: EventType
    details: str = ""


def load_transcript(path: Path) -> list[str]:
    """Load transcript file and extract transcript lines.

    Filters out metadata lines (starting with '===').
    Returns list of transcript text lines.
    """
    lines: list[str] = []
    with open(path, encoding='utf-8') as f:
        for line in f:
            stripped_line: str = line.strip()
            # Skip metadata lines and empty lines
            if stripped_line.startswith('===') or not stripped_line:
                continue
            lines.append(stripped_line)
    return lines


def load_script(path: Path) -> str:
    """Load script file content."""
    with open(path, encoding='utf-8') as f:
        return f.read()


def classify_event(
    match_index: int | None,
    position_before: int,
    position_after: int,
    max_single_word_jump: int
) -> EventType:
    """Classify what a match did to the position.

    Any move back counts as a backtrack; a forward match starting further
    ahead than a single-word jump allows counts as a forward jump.
    """
    if match_index is None:
        return "no_match"
    if match_index < position_before:
        return "BACKTRACK"
    if match_index - position_before > max_single_word_jump:
        return "FORWARD_JUMP"
    if position_after > position_before:
        return "advance"
    return "no_change"


def _word_at(tracker: PositionTracker, index: int) -> str:
    display_words: list[str] = tracker.display_words
    if index >= len(display_words):
        return "<END>"
    word: str = display_words[index]
    return "<LINE BREAK>" if word == LINE_BREAK else word


def replay_transcript(
    transcript_lines: list[str],
    script_text: str,
    output: TextIO,
    verbose: bool = False,
    mode: TrackingMode = TrackingMode.MIXED
) -> list[TrackingEvent]:
    """Replay transcript through tracker and log events.

    Args:
        transcript_lines: Lines of transcript text, one fragment each
        script_text: The script content (Markdown)
        output: File handle to write log output
        verbose: If True, log every fragment. If False, only log jumps/backtracks.
        mode: Tracking mode to replay with

    Returns:
        List of all tracking events
    """
    tracker: PositionTracker = PositionTracker(mode)
    tracker.load_reference(extract_plain_text(script_text))
    events: list[TrackingEvent] = []

    # Write header
    output.write("=" * 80 + "\n")
    output.write("TRANSCRIPT DEBUG LOG\n")
    output.write(f"Generated: {datetime.now().isoformat()}\n")
    output.write(f"Mode: {tracker.mode.value}\n")
    output.write(f"Script words: {tracker.word_count}\n")
    output.write(f"Transcript lines: {len(transcript_lines)}\n")
    output.write("=" * 80 + "\n\n")

    # Write script words reference
    output.write("SCRIPT WORDS (normalized):\n")
    output.write("-" * 40 + "\n")
    for i, word in enumerate(tracker.words):
        if word == LINE_BREAK:
            continue
        output.write(f"  [{i:4d}] {word}\n")
    output.write("\n" + "=" * 80 + "\n\n")

    output.write("TRACKING LOG:\n")
    output.write("-" * 40 + "\n")

    for line_num, line in enumerate(transcript_lines, start=1):
        line_display: str = f"--- Line {line_num}: \"{line[:60]}"
        line_display += '...' if len(line) > 60 else ''
        line_display += "\" ---"
        output.write(f"\n{line_display}\n")

        position_before: int = tracker.current_position
        match_index: int | None = tracker.match(line)
        position_after: int = tracker.current_position

        event_type: EventType = classify_event(
            match_index, position_before, position_after,
            tracker.config.max_single_word_jump
        )

        details: str = f"pos: {position_before} -> {position_after}"
        info = tracker.last_debug_info
        if info is not None:
            details += (f" conf={info.best_confidence:.2f}"
                        f" prox={info.proximity_bonus:.2f}")

        if event_type in ("BACKTRACK", "FORWARD_JUMP"):
            label: str = "BACKTRACK" if event_type == "BACKTRACK" else "FORWARD JUMP"
            output.write(f"  *** {label} DETECTED ***\n")
            output.write(
                f"      Position: {position_before} -> {position_after}\n")
            output.write(
                f"      Script word at match: \"{_word_at(tracker, match_index)}\"\n")
        elif verbose:
            if match_index is None:
                output.write(f"  [{position_before:4d}] no match ({details})\n")
            else:
                output.write(
                    f"  [{match_index:4d}] \"{_word_at(tracker, match_index)}\" "
                    f"({event_type}, {details})\n")

        events.append(TrackingEvent(
            transcript_line=line_num,
            fragment=line,
            match_index=match_index,
            position_before=position_before,
            position_after=position_after,
            event_type=event_type,
            details=details
        ))

    # Write summary
    output.write("\n" + "=" * 80 + "\n")
    output.write("SUMMARY:\n")
    output.write("-" * 40 + "\n")

    backtracks: list[TrackingEvent] = [
        e for e in events if e.event_type == "BACKTRACK"]
    forward_jumps: list[TrackingEvent] = [
        e for e in events if e.event_type == "FORWARD_JUMP"]
    advances: list[TrackingEvent] = [
        e for e in events if e.event_type == "advance"]
    misses: list[TrackingEvent] = [
        e for e in events if e.event_type == "no_match"]

    output.write(f"Total lines processed: {len(transcript_lines)}\n")
    output.write(
        f"Final position: {tracker.current_position} / {tracker.word_count}\n")
    output.write(f"Advances: {len(advances)}\n")
    output.write(f"No matches: {len(misses)}\n")
    output.write(f"Backtracks: {len(backtracks)}\n")
    output.write(f"Forward jumps: {len(forward_jumps)}\n")

    if backtracks:
        output.write("\nBacktrack events:\n")
        for e in backtracks:
            output.write(
                f"  Line {e.transcript_line}: -> position {e.position_after}\n")

    if forward_jumps:
        output.write("\nForward jump events:\n")
        for e in forward_jumps:
            output.write(
                f"  Line {e.transcript_line}: -> position {e.position_after}\n")

    return events


def main() -> None:
    """CLI entry point for debug transcript tool."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Debug transcript tracking by replaying a transcript through the tracker"
    )

    parser.add_argument(
        "transcript",
        type=Path,
        help="Path to transcript file (one fragment per line)"
    )

    parser.add_argument(
        "script",
        type=Path,
        help="Path to script file"
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output log file path (default: stdout)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log every fragment, not just jumps/backtracks"
    )

    parser.add_argument(
        "--mode",
        default=TrackingMode.MIXED.value,
        choices=[m.value for m in TrackingMode],
        help="Tracking mode (default: mixed)"
    )

    args: argparse.Namespace = parser.parse_args()
    mode: TrackingMode = parse_tracking_mode(args.mode) or TrackingMode.MIXED

    # Validate inputs
    if not args.transcript.exists():
        print(
            f"Error: Transcript file not found: {args.transcript}", file=sys.stderr)
        sys.exit(1)

    if not args.script.exists():
        print(f"Error: Script file not found: {args.script}", file=sys.stderr)
        sys.exit(1)

    # Load files
    try:
        transcript_lines: list[str] = load_transcript(args.transcript)
        script_text: str = load_script(args.script)
    except OSError as e:
        print(f"Error loading files: {e}", file=sys.stderr)
        sys.exit(1)

    if not transcript_lines:
        print("Error: No transcript lines found", file=sys.stderr)
        sys.exit(1)

    # Run replay
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            replay_transcript(
                transcript_lines, script_text, f, args.verbose, mode)
        print(f"Debug log written to: {args.output}")
    else:
        replay_transcript(
            transcript_lines, script_text, sys.stdout, args.verbose, mode)


if __name__ == "__main__":
    main()
