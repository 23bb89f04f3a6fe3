# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Web API for voicecue.

Accepts scripts, transcript fragments and control requests over HTTP and
WebSocket, and pushes tracking status updates to connected WebSocket clients.
Everything runs on the server's event loop, which is the only code that
touches the coordinator.
"""

import asyncio
import contextlib
import json
import logging
import math
from typing import Any

from aiohttp import web

from .config import parse_tracking_mode
from .coordinator import TrackingCoordinator, TrackingUpdate
from .debounce import Debouncer

logger = logging.getLogger(__name__)


class WebServer:
    """
    Serves the tracking API and manages WebSocket connections.
    """

    def __init__(
        self,
        coordinator: TrackingCoordinator,
        host: str = "127.0.0.1",
        port: int = 8000,
        reload_debounce_ms: int = 500
    ) -> None:
        self.coordinator: TrackingCoordinator = coordinator
        self.host: str = host
        self.port: int = port
        self.app: web.Application = web.Application()
        self.websockets: set[web.WebSocketResponse] = set()
        self.runner: web.AppRunner | None = None

        # Current state
        self.script_text: str = ""
        self.script_debouncer: Debouncer = Debouncer(
            max(0, reload_debounce_ms) / 1000.0, self._apply_script_edit)
        self._broadcast_tasks: set[asyncio.Task[None]] = set()

        self.coordinator.add_listener(self._on_tracking_update)
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up HTTP routes."""
        self.app.router.add_get('/status', self._handle_get_status)
        self.app.router.add_get('/ws', self._handle_websocket)
        self.app.router.add_post('/script', self._handle_script_upload)
        self.app.router.add_post('/fragment', self._handle_fragment)
        self.app.router.add_post('/error', self._handle_error)
        self.app.router.add_post('/mode', self._handle_mode)
        self.app.router.add_post('/position', self._handle_position)
        self.app.router.add_post('/reset', self._handle_reset)
        self.app.router.add_post('/start', self._handle_start)
        self.app.router.add_post('/stop', self._handle_stop)

    def status_payload(self, update: TrackingUpdate | None = None) -> dict[str, Any]:
        """Build the JSON status message for a tracking update."""
        if update is None:
            update = self.coordinator.snapshot()
        tracker = self.coordinator.tracker
        return {
            "type": "status",
            "state": update.status.state.value,
            "message": update.status.message,
            "running": self.coordinator.running,
            "mode": tracker.mode.value,
            "position": update.position,
            "wordIndex": update.current_word_index,
            "totalWords": tracker.word_count,
            "progress": tracker.progress,
            "lastTranscription": self.coordinator.last_transcription,
            "debugText": update.debug_text,
            "log": [
                {
                    "timestamp": entry.timestamp.isoformat(),
                    "text": entry.text,
                    "matchedIndex": entry.matched_index,
                    "wordsHeard": entry.words_heard,
                }
                for entry in self.coordinator.transcription_log
            ],
        }

    def _on_tracking_update(self, update: TrackingUpdate) -> None:
        """Coordinator listener: push the update to all clients."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Not on the event loop (e.g. before the server started)
            return
        task = loop.create_task(self.broadcast(self.status_payload(update)))
        self._broadcast_tasks.add(task)
        task.add_done_callback(self._broadcast_tasks.discard)

    # HTTP handlers

    @staticmethod
    def _error_response(message: str, status: int = 400) -> web.Response:
        return web.json_response({"status": "error", "message": message}, status=status)

    @staticmethod
    async def _read_json(request: web.Request) -> dict[str, Any] | None:
        """Parse a JSON object body, or None if the body is not one."""
        try:
            data = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        return data if isinstance(data, dict) else None

    def _ok(self, **extra: Any) -> web.Response:
        payload: dict[str, Any] = {"status": "ok"}
        payload.update(extra)
        payload["tracking"] = self.status_payload()
        return web.json_response(payload)

    async def _handle_get_status(self, request: web.Request) -> web.Response:
        """Current tracking status."""
        return web.json_response(self.status_payload())

    async def _handle_script_upload(self, request: web.Request) -> web.Response:
        """Handle script upload via POST."""
        data = await self._read_json(request)
        if data is None or not isinstance(data.get("text"), str):
            return self._error_response("Expected JSON body with a 'text' string")
        # An explicit upload supersedes any edit still waiting
        self.script_debouncer.cancel()
        self._apply_script_edit(data["text"])
        return self._ok(totalWords=self.coordinator.word_count)

    async def _handle_fragment(self, request: web.Request) -> web.Response:
        """Handle a transcribed fragment via POST."""
        data = await self._read_json(request)
        if data is None or not isinstance(data.get("text"), str):
            return self._error_response("Expected JSON body with a 'text' string")
        match_index = self.coordinator.submit_fragment(data["text"])
        return self._ok(matchIndex=match_index)

    async def _handle_error(self, request: web.Request) -> web.Response:
        """Handle an upstream transcription error report."""
        data = await self._read_json(request)
        if data is None:
            return self._error_response("Expected JSON body")
        message = str(data.get("message") or "Unknown error")
        self.coordinator.report_error(message)
        return self._ok()

    async def _handle_mode(self, request: web.Request) -> web.Response:
        """Change the tracking mode."""
        data = await self._read_json(request)
        if data is None:
            return self._error_response("Expected JSON body")
        mode = parse_tracking_mode(data.get("mode"))
        if mode is None:
            return self._error_response(f"Unknown tracking mode: {data.get('mode')!r}")
        self.coordinator.set_mode(mode)
        await self.broadcast(self.status_payload())
        return self._ok()

    async def _handle_position(self, request: web.Request) -> web.Response:
        """Move the cursor manually."""
        data = await self._read_json(request)
        word_index = self._parse_word_index(data)
        if word_index is None:
            return self._error_response("Expected JSON body with an integer 'wordIndex'")
        self.coordinator.set_position(word_index)
        return self._ok()

    async def _handle_reset(self, request: web.Request) -> web.Response:
        """Go back to the start of the script."""
        self.coordinator.reset()
        return self._ok()

    async def _handle_start(self, request: web.Request) -> web.Response:
        """Start tracking."""
        started = self.coordinator.start()
        if not started:
            return web.json_response(
                {
                    "status": "error",
                    "message": self.coordinator.status.message or "Failed to start",
                    "tracking": self.status_payload(),
                },
                status=500
            )
        return self._ok()

    async def _handle_stop(self, request: web.Request) -> web.Response:
        """Stop tracking."""
        self.coordinator.stop()
        return self._ok()

    @staticmethod
    def _parse_word_index(data: dict[str, Any] | None) -> int | None:
        if data is None:
            return None
        raw = data.get("wordIndex")
        # bool is an int subclass but never a valid index
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            return None
        # json accepts Infinity and NaN
        if not math.isfinite(raw):
            return None
        return int(raw)

    # WebSocket

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle WebSocket connections for real-time updates."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self.websockets.add(ws)
        logger.info("WebSocket connected. Total: %d", len(self.websockets))

        try:
            # Send current state
            init = self.status_payload()
            init["type"] = "init"
            init["script"] = self.script_text
            await ws.send_json(init)

            async for msg in ws:
                if msg.type == web.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError:
                        logger.warning("Ignoring malformed WebSocket message")
                        continue
                    if isinstance(data, dict):
                        await self._handle_ws_message(ws, data)
                elif msg.type == web.WSMsgType.ERROR:
                    logger.warning("WebSocket error: %s", ws.exception())
        finally:
            self.websockets.discard(ws)
            logger.info("WebSocket disconnected. Total: %d", len(self.websockets))

        return ws

    async def _handle_ws_message(self, ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle incoming WebSocket messages using dispatch pattern."""
        msg_type = data.get("type")
        if not msg_type:
            return

        # Message type to handler dispatch
        handlers = {
            "fragment": self._on_fragment_message,
            "script_edit": self._on_script_edit_message,
            "start": self._on_start_message,
            "stop": self._on_stop_message,
            "reset": self._on_reset_message,
            "set_position": self._on_set_position_message,
            "mode": self._on_mode_message,
        }

        handler = handlers.get(msg_type)
        if handler:
            await handler(ws, data)
        else:
            logger.warning("Unhandled WebSocket message: %s", msg_type)

    async def _on_fragment_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle a transcribed fragment."""
        self.coordinator.submit_fragment(str(data.get("text", "")))

    async def _on_script_edit_message(
        self,
        _ws: web.WebSocketResponse,
        data: dict[str, Any]
    ) -> None:
        """Handle a live script edit; reloads once edits pause."""
        self.script_debouncer.trigger(str(data.get("text", "")))

    async def _on_start_message(self, ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        """Handle start message."""
        if not self.coordinator.start():
            await ws.send_json({
                "type": "error",
                "message": self.coordinator.status.message or "Failed to start"
            })

    async def _on_stop_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        """Handle stop message."""
        self.coordinator.stop()

    async def _on_reset_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        """Handle reset message."""
        self.coordinator.reset()

    async def _on_set_position_message(
        self,
        ws: web.WebSocketResponse,
        data: dict[str, Any]
    ) -> None:
        """Handle jump to position message."""
        word_index = self._parse_word_index(data)
        if word_index is None:
            await ws.send_json({"type": "error", "message": "Invalid wordIndex"})
            return
        self.coordinator.set_position(word_index)

    async def _on_mode_message(self, ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle tracking mode change."""
        mode = parse_tracking_mode(data.get("mode"))
        if mode is None:
            await ws.send_json({
                "type": "error",
                "message": f"Unknown tracking mode: {data.get('mode')!r}"
            })
            return
        self.coordinator.set_mode(mode)
        await self.broadcast(self.status_payload())

    def _apply_script_edit(self, text: str) -> None:
        """Load new script text into the coordinator."""
        self.script_text = text
        self.coordinator.load_script(text)
        logger.info("Script loaded: %d words", self.coordinator.word_count)

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Send a message to all connected WebSocket clients."""
        if not self.websockets:
            return

        dead: set[web.WebSocketResponse] = set()
        for ws in list(self.websockets):
            try:
                await ws.send_json(message)
            except (ConnectionError, RuntimeError) as e:
                logger.warning("Error sending to WebSocket: %s", e)
                dead.add(ws)

        self.websockets -= dead

    async def start(self) -> None:
        """Start the web server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site: web.TCPSite = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        logger.info("Web server running at http://%s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Stop the web server."""
        self.script_debouncer.cancel()
        self.coordinator.remove_listener(self._on_tracking_update)

        # Close all WebSocket connections
        for ws in list(self.websockets):
            with contextlib.suppress(Exception):
                await ws.close()
        self.websockets.clear()

        if self.runner:
            await self.runner.cleanup()
            self.runner = None
