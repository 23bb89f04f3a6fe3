# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tracking coordinator.

Feeds transcript fragments to the PositionTracker and turns the outcomes into
a tracking status for the UI. A single missed fragment does not pause
tracking; only a run of consecutive misses does.

The coordinator is driven from one thread (or one event loop). Listeners are
called synchronously on that thread whenever the status or position changes.
"""

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from . import debug_log
from .matching_config import TrackingMode
from .text_normalizer import LINE_BREAK, extract_plain_text, tokenize_transcript_fragment
from .tracker import PositionTracker

logger = logging.getLogger(__name__)


class TrackingState(str, Enum):
    """Coarse tracking state shown by the status indicator."""
    IDLE = "idle"
    LOADING_MODEL = "loading_model"
    LISTENING = "listening"
    MATCHED = "matched"
    PAUSED = "paused"
    ERROR = "error"


@dataclass(frozen=True)
class TrackingStatus:
    """Tracking state, with a message for the error state."""
    state: TrackingState
    message: str | None = None

    @classmethod
    def error(cls, message: str) -> 'TrackingStatus':
        """Create an error status."""
        return cls(TrackingState.ERROR, message)

    def __str__(self) -> str:
        if self.message:
            return f"{self.state.value}({self.message})"
        return self.state.value


@dataclass
class TranscriptionLogEntry:
    """One transcribed fragment and what it matched."""
    text: str
    matched_index: int | None
    words_heard: list[str]
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class TrackingUpdate:
    """What listeners are told after every change."""
    status: TrackingStatus
    position: int  # Tracker cursor (next expected word)
    current_word_index: int  # Start of the last matched span
    debug_text: str = ""


TrackingListener = Callable[[TrackingUpdate], None]
ModelLoader = Callable[[], None]


class TrackingCoordinator:
    """
    Connects the transcript stream to the position tracker.

    Usage:
        coordinator = TrackingCoordinator(mode=TrackingMode.MIXED)
        coordinator.add_listener(on_update)
        coordinator.load_script(markdown_text)
        coordinator.start()
        coordinator.submit_fragment("the quick brown")
    """

    def __init__(
        self,
        mode: TrackingMode = TrackingMode.MIXED,
        pause_after_misses: int = 3,
        max_log_entries: int = 20,
        model_loader: ModelLoader | None = None
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            mode: Initial tracking mode
            pause_after_misses: Consecutive unmatched fragments before pausing
            max_log_entries: Number of transcription log entries to keep
            model_loader: Optional callable that loads the speech model on
                start(). Any exception it raises becomes an error status.
        """
        self.tracker: PositionTracker = PositionTracker(mode)
        self.pause_after_misses: int = max(1, pause_after_misses)
        self.model_loader: ModelLoader | None = model_loader

        self.status: TrackingStatus = TrackingStatus(TrackingState.IDLE)
        self.current_word_index: int = 0
        self.consecutive_misses: int = 0
        self.transcription_log: deque[TranscriptionLogEntry] = deque(
            maxlen=max_log_entries)
        self.last_transcription: str = ""
        self.last_match_debug: str = ""

        self.running: bool = False
        self.model_ready: bool = model_loader is None

        self._listeners: list[TrackingListener] = []

    # Listener registration

    def add_listener(self, listener: TrackingListener) -> None:
        """Register a callback for status and position changes."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: TrackingListener) -> None:
        """Unregister a callback."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        update: TrackingUpdate = self.snapshot()
        for listener in list(self._listeners):
            listener(update)

    def _set_state(self, state: TrackingState, message: str | None = None) -> None:
        new_status: TrackingStatus = TrackingStatus(state, message)
        if new_status != self.status:
            logger.info("Tracking status: %s -> %s", self.status, new_status)
        self.status = new_status

    def snapshot(self) -> TrackingUpdate:
        """Current status and position."""
        return TrackingUpdate(
            status=self.status,
            position=self.tracker.current_position,
            current_word_index=self.current_word_index,
            debug_text=self.last_match_debug
        )

    # Lifecycle

    def load_script(self, markup: str) -> None:
        """Load a Markdown script and start tracking from its beginning."""
        plain_text: str = extract_plain_text(markup)
        self.tracker.load_reference(plain_text)
        self.current_word_index = 0
        self.consecutive_misses = 0
        self.transcription_log.clear()
        self.last_transcription = ""
        self.last_match_debug = ""
        self._set_state(TrackingState.LISTENING if self.running else TrackingState.IDLE)
        debug_log.clear_logs()
        self._notify()

    def start(self) -> bool:
        """
        Start tracking.

        Loads the speech model first if a loader was given and it has not
        loaded yet.

        Returns:
            True if tracking is running, False if the model failed to load
        """
        if self.running:
            return True

        if not self.model_ready and self.model_loader is not None:
            self._set_state(TrackingState.LOADING_MODEL)
            self._notify()
            try:
                self.model_loader()
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error("Model loading failed: %s", e, exc_info=True)
                self._set_state(TrackingState.ERROR, str(e))
                self._notify()
                return False
            self.model_ready = True

        self.running = True
        self.consecutive_misses = 0
        self._set_state(TrackingState.LISTENING)
        self._notify()
        return True

    def stop(self) -> None:
        """Stop tracking and return to idle, clearing any error."""
        if not self.running and self.status.state == TrackingState.IDLE:
            return
        self.running = False
        self._set_state(TrackingState.IDLE)
        self._notify()

    def reset(self) -> None:
        """Go back to the beginning of the script."""
        self.tracker.reset()
        self.current_word_index = 0
        self.consecutive_misses = 0
        self.transcription_log.clear()
        self.last_match_debug = ""
        self._set_state(TrackingState.LISTENING if self.running else TrackingState.IDLE)
        self._notify()

    def set_mode(self, mode: TrackingMode) -> None:
        """Change tracking strictness for subsequent fragments."""
        self.tracker.configure(mode)

    def set_position(self, index: int) -> None:
        """Move the cursor manually (e.g. the user scrolled)."""
        old_position: int = self.tracker.current_position
        self.tracker.set_position(index)
        self.current_word_index = self.tracker.current_position
        debug_log.log_position_change(
            old_position, self.tracker.current_position, "manual")
        self._notify()

    def report_error(self, message: str) -> None:
        """Surface a transcription or model failure."""
        logger.error("Upstream error: %s", message)
        self._set_state(TrackingState.ERROR, message)
        self._notify()

    # Fragments

    def submit_fragment(self, text: str) -> int | None:
        """
        Match a transcribed fragment against the script.

        Args:
            text: Raw transcribed text

        Returns:
            Index of the matched script word, or None
        """
        if not self.running:
            logger.debug("Ignoring fragment while stopped: '%s'", text)
            return None

        cleaned: str = text.strip()
        if len(cleaned) <= 1:
            return None

        self.last_transcription = cleaned
        old_position: int = self.tracker.current_position
        match_index: int | None = self.tracker.match(cleaned)

        self.transcription_log.appendleft(TranscriptionLogEntry(
            text=cleaned,
            matched_index=match_index,
            words_heard=tokenize_transcript_fragment(cleaned)
        ))
        self.last_match_debug = self._format_debug()
        debug_log.log_match(
            cleaned, match_index, self.tracker.current_position,
            self.tracker.last_debug_info)

        if match_index is not None:
            self.current_word_index = match_index
            self.consecutive_misses = 0
            self._set_state(TrackingState.MATCHED)
            if self.tracker.current_position != old_position:
                debug_log.log_position_change(
                    old_position, self.tracker.current_position, "match")
        else:
            self.consecutive_misses += 1
            logger.debug(
                "No match for '%s' (%d consecutive)", cleaned, self.consecutive_misses)
            if (self.consecutive_misses >= self.pause_after_misses
                    and self.status.state in (TrackingState.LISTENING, TrackingState.MATCHED)):
                self._set_state(TrackingState.PAUSED)

        self._notify()
        return match_index

    def _format_debug(self) -> str:
        """Format the tracker's debug snapshot for display."""
        info = self.tracker.last_debug_info
        if info is None:
            return ""
        script_sample: str = ' '.join(
            [w for w in info.script_words_in_range if w != LINE_BREAK][:10])
        return (
            f"Heard: {' '.join(info.transcribed_words)}\n"
            f"Script[{info.search_range.start}...]: {script_sample}\n"
            f"Pos: {self.tracker.current_position} | "
            f"Conf: {info.best_confidence:.2f} | "
            f"Prox: {info.proximity_bonus:.2f}"
        )

    @property
    def word_count(self) -> int:
        """Number of tokens in the loaded script."""
        return self.tracker.word_count
