# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Debounce helper for bursts of edits (e.g. live script editing).

Only the last call in a burst runs, once the burst has been quiet for the
delay. Callbacks run on the event loop that scheduled them.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Delay a callback until calls stop arriving.

    Usage:
        debouncer = Debouncer(0.5, coordinator.load_script)
        debouncer.trigger(text)  # from inside a running event loop
    """

    def __init__(self, delay: float, callback: Callable[..., Any]) -> None:
        """
        Args:
            delay: Quiet period in seconds before the callback runs
            callback: Function called with the arguments of the last trigger()
        """
        self.delay: float = delay
        self.callback: Callable[..., Any] = callback
        self._handle: asyncio.TimerHandle | None = None
        self._args: tuple[Any, ...] = ()

    @property
    def pending(self) -> bool:
        """True if a call is waiting to run."""
        return self._handle is not None

    def trigger(self, *args: Any) -> None:
        """Schedule the callback, replacing any call still waiting.

        Must be called from a running event loop.
        """
        loop = asyncio.get_running_loop()
        self.cancel()
        self._args = args
        self._handle = loop.call_later(self.delay, self._fire)

    def flush(self) -> None:
        """Run a waiting call now."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._fire()

    def cancel(self) -> None:
        """Drop a waiting call without running it."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            self._args = ()

    def _fire(self) -> None:
        args = self._args
        self._handle = None
        self._args = ()
        try:
            self.callback(*args)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Debounced call failed: %s", e, exc_info=True)
