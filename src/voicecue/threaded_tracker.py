# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Threaded wrapper for PositionTracker.

A single worker thread owns the tracker and processes fragments and control
commands from one queue, in arrival order. Callers on any thread submit work
without blocking and read results from a result queue or the cached latest
result.
"""

import logging
import queue
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any

from .matching_config import TrackingMode
from .tracker import MatchDebugInfo, PositionTracker

logger = logging.getLogger(__name__)


@dataclass
class FragmentRequest:
    """A transcript fragment waiting to be matched."""
    text: str
    timestamp: float
    request_id: int


@dataclass
class MatchOutcome:
    """Result of matching one fragment."""
    match_index: int | None
    position: int
    debug_info: MatchDebugInfo | None
    request_id: int
    processing_time: float


@dataclass
class ControlCommand:
    """Control command for the worker thread."""
    command: str  # 'load_reference', 'configure', 'set_position', 'reset', 'shutdown'
    param: Any = None


class ThreadedTracker:
    """
    Thread-safe wrapper around PositionTracker.

    Features:
    - Non-blocking submit_fragment() that queues fragments
    - Backpressure: when the queue is full the oldest pending fragment is
      replaced by the new one
    - Control commands are processed in order with fragments
    - Cached latest result for immediate access

    Usage:
        tracker = ThreadedTracker(mode=TrackingMode.MIXED)
        tracker.load_reference(plain_text)
        tracker.submit_fragment("the quick brown")
        result = tracker.get_latest_result(timeout=1.0)
    """

    def __init__(
        self,
        mode: TrackingMode = TrackingMode.MIXED,
        max_queue_size: int = 10
    ):
        """
        Initialize the threaded tracker.

        Args:
            mode: Initial tracking mode
            max_queue_size: Maximum queue size before backpressure kicks in (default: 10)
        """
        self.mode = TrackingMode(mode)
        self.max_queue_size = max_queue_size

        # Pending work in arrival order, guarded by pending_cond
        self.pending: deque[FragmentRequest | ControlCommand] = deque()
        self.pending_cond = threading.Condition()
        self.result_queue: queue.Queue[MatchOutcome] = queue.Queue()

        # Thread control
        self.worker_thread: threading.Thread | None = None
        self.shutdown_flag = threading.Event()
        self.started = threading.Event()

        # Cached state (thread-safe with lock)
        self.state_lock = threading.Lock()
        self.latest_result: MatchOutcome | None = None
        self.request_counter = 0

        # Start worker thread
        self._start_worker()

        # Wait for worker to be ready
        self.started.wait(timeout=5.0)
        if not self.started.is_set():
            raise RuntimeError("Worker thread failed to start")

    def _start_worker(self) -> None:
        """Start the worker thread."""
        self.worker_thread = threading.Thread(
            target=self._worker_loop,
            name="TrackerWorker",
            daemon=True
        )
        self.worker_thread.start()

    def _worker_loop(self) -> None:
        """Main loop for the worker thread."""
        try:
            # The tracker lives on the worker thread only
            tracker = PositionTracker(self.mode)

            logger.info("ThreadedTracker worker started")
            self.started.set()

            while not self.shutdown_flag.is_set():
                # Timeout allows checking the shutdown flag
                item = self._next_request(timeout=0.1)
                if item is None:
                    continue

                try:
                    if isinstance(item, ControlCommand):
                        self._handle_control_command(tracker, item)
                    elif isinstance(item, FragmentRequest):
                        self._handle_fragment(tracker, item)
                except Exception as e:  # pylint: disable=broad-exception-caught
                    logger.error("Error in worker loop: %s", e, exc_info=True)

        finally:
            logger.info("ThreadedTracker worker stopped")

    def _next_request(self, timeout: float) -> FragmentRequest | ControlCommand | None:
        """Take the oldest pending item, waiting up to timeout for one."""
        with self.pending_cond:
            if not self.pending:
                self.pending_cond.wait(timeout)
            if not self.pending:
                return None
            return self.pending.popleft()

    def _handle_control_command(self, tracker: PositionTracker, cmd: ControlCommand) -> None:
        """Handle control commands."""
        if cmd.command == 'load_reference':
            tracker.load_reference(cmd.param)
            logger.debug("Reference loaded: %d words", tracker.word_count)

        elif cmd.command == 'configure':
            tracker.configure(cmd.param)

        elif cmd.command == 'set_position':
            tracker.set_position(cmd.param)
            logger.debug("Tracker moved to %d", tracker.current_position)

        elif cmd.command == 'reset':
            tracker.reset()
            logger.debug("Tracker reset")

        elif cmd.command == 'shutdown':
            self.shutdown_flag.set()

    def _handle_fragment(self, tracker: PositionTracker, req: FragmentRequest) -> None:
        """Match one fragment and publish the outcome."""
        start_time = time.time()

        match_index = tracker.match(req.text)

        result = MatchOutcome(
            match_index=match_index,
            position=tracker.current_position,
            debug_info=tracker.last_debug_info,
            request_id=req.request_id,
            processing_time=time.time() - start_time
        )

        with self.state_lock:
            self.latest_result = result

        # Put result in queue (non-blocking to avoid deadlock)
        try:
            self.result_queue.put_nowait(result)
        except queue.Full:
            # Drop oldest result and try again
            try:
                self.result_queue.get_nowait()
                self.result_queue.put_nowait(result)
            except (queue.Empty, queue.Full):
                pass

    def submit_fragment(self, text: str) -> bool:
        """
        Submit a transcript fragment for matching (non-blocking).

        Args:
            text: The transcribed text

        Returns:
            True if the fragment was queued, False if it was dropped
        """
        with self.state_lock:
            self.request_counter += 1
            request_id = self.request_counter

        request = FragmentRequest(
            text=text,
            timestamp=time.time(),
            request_id=request_id
        )

        with self.pending_cond:
            if len(self.pending) >= self.max_queue_size:
                # Queue is full - replace the oldest pending fragment.
                # Commands keep their place and are never dropped.
                oldest = next(
                    (item for item in self.pending if isinstance(item, FragmentRequest)),
                    None
                )
                if oldest is None:
                    logger.warning("Backpressure: dropping fragment (queue full of commands)")
                    return False
                self.pending.remove(oldest)
                logger.warning("Backpressure: replaced pending fragment %d", oldest.request_id)

            self.pending.append(request)
            self.pending_cond.notify()
        return True

    def _send_command(self, cmd: ControlCommand) -> None:
        """Queue a control command behind everything already pending."""
        with self.pending_cond:
            self.pending.append(cmd)
            self.pending_cond.notify()

    def pending_requests(self) -> list[FragmentRequest | ControlCommand]:
        """Snapshot of the work not yet taken by the worker, oldest first."""
        with self.pending_cond:
            return list(self.pending)

    def get_latest_result(self, timeout: float = 0) -> MatchOutcome | None:
        """
        Get the next tracking result.

        Args:
            timeout: How long to wait for a result (0 = don't wait)

        Returns:
            Next result or None if no result available
        """
        try:
            if timeout > 0:
                return self.result_queue.get(timeout=timeout)
            return self.result_queue.get_nowait()
        except queue.Empty:
            return None

    def get_cached_result(self) -> MatchOutcome | None:
        """
        Get the cached latest result without consuming from queue.

        Returns:
            Latest cached result or None
        """
        with self.state_lock:
            return self.latest_result

    def load_reference(self, plain_text: str) -> None:
        """Load new script text."""
        self._send_command(ControlCommand(command='load_reference', param=plain_text))

    def configure(self, mode: TrackingMode) -> None:
        """Change the tracking mode."""
        self.mode = TrackingMode(mode)
        self._send_command(ControlCommand(command='configure', param=self.mode))

    def set_position(self, word_index: int) -> None:
        """
        Move the cursor to a specific word index.

        Args:
            word_index: The script word index to move to
        """
        self._send_command(ControlCommand(command='set_position', param=word_index))

    def reset(self) -> None:
        """Reset tracker to the beginning."""
        self._send_command(ControlCommand(command='reset'))

    def shutdown(self) -> None:
        """Shutdown the worker thread."""
        self._send_command(ControlCommand(command='shutdown'))
        self.shutdown_flag.set()

        if self.worker_thread and self.worker_thread.is_alive():
            self.worker_thread.join(timeout=2.0)

    def __del__(self) -> None:
        """Cleanup on deletion."""
        self.shutdown()
