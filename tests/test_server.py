# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for the WebServer HTTP and WebSocket API.
"""

from aiohttp import web
from aiohttp.test_utils import AioHTTPTestCase

from voicecue.coordinator import TrackingCoordinator
from voicecue.matching_config import TrackingMode
from voicecue.server import WebServer

SCRIPT: str = (
    "alpha bravo charlie delta echo foxtrot golf hotel "
    "india juliet kilo lima mike november oscar papa"
)


class WebServerTestCase(AioHTTPTestCase):
    """Base case serving a fresh coordinator."""

    async def get_application(self) -> web.Application:
        self.coordinator = TrackingCoordinator()
        self.web_server = WebServer(self.coordinator, reload_debounce_ms=20)
        return self.web_server.app

    async def post_json(self, path: str, payload: dict) -> tuple[int, dict]:
        async with self.client.post(path, json=payload) as resp:
            return resp.status, await resp.json()


class TestHttpApi(WebServerTestCase):
    """Tests for the HTTP endpoints."""

    async def test_status_when_idle(self):
        async with self.client.get("/status") as resp:
            self.assertEqual(resp.status, 200)
            data = await resp.json()
        self.assertEqual(data["type"], "status")
        self.assertEqual(data["state"], "idle")
        self.assertEqual(data["totalWords"], 0)
        self.assertEqual(data["mode"], "mixed")
        self.assertFalse(data["running"])

    async def test_upload_script(self):
        status, data = await self.post_json("/script", {"text": SCRIPT})
        self.assertEqual(status, 200)
        self.assertEqual(data["status"], "ok")
        self.assertEqual(data["totalWords"], 16)
        self.assertEqual(self.web_server.script_text, SCRIPT)

    async def test_upload_script_bad_json(self):
        async with self.client.post("/script", data="not json") as resp:
            self.assertEqual(resp.status, 400)
            data = await resp.json()
        self.assertEqual(data["status"], "error")

    async def test_upload_script_missing_text(self):
        status, data = await self.post_json("/script", {"body": SCRIPT})
        self.assertEqual(status, 400)
        self.assertEqual(data["status"], "error")

    async def test_fragment_matches_when_running(self):
        await self.post_json("/script", {"text": SCRIPT})
        status, _ = await self.post_json("/start", {})
        self.assertEqual(status, 200)

        status, data = await self.post_json("/fragment", {"text": "alpha bravo"})
        self.assertEqual(status, 200)
        self.assertEqual(data["matchIndex"], 0)
        self.assertEqual(data["tracking"]["state"], "matched")
        self.assertEqual(data["tracking"]["position"], 2)
        self.assertEqual(data["tracking"]["log"][0]["text"], "alpha bravo")

    async def test_fragment_ignored_when_stopped(self):
        await self.post_json("/script", {"text": SCRIPT})
        status, data = await self.post_json("/fragment", {"text": "alpha bravo"})
        self.assertEqual(status, 200)
        self.assertIsNone(data["matchIndex"])
        self.assertEqual(data["tracking"]["position"], 0)

    async def test_set_mode(self):
        status, data = await self.post_json("/mode", {"mode": "loose"})
        self.assertEqual(status, 200)
        self.assertEqual(data["tracking"]["mode"], "loose")
        self.assertEqual(self.coordinator.tracker.mode, TrackingMode.LOOSE)

    async def test_set_unknown_mode(self):
        status, data = await self.post_json("/mode", {"mode": "sloppy"})
        self.assertEqual(status, 400)
        self.assertEqual(data["status"], "error")
        self.assertEqual(self.coordinator.tracker.mode, TrackingMode.MIXED)

    async def test_set_position(self):
        await self.post_json("/script", {"text": SCRIPT})
        status, data = await self.post_json("/position", {"wordIndex": 5})
        self.assertEqual(status, 200)
        self.assertEqual(data["tracking"]["position"], 5)
        self.assertEqual(data["tracking"]["wordIndex"], 5)

    async def test_set_position_invalid(self):
        status, _ = await self.post_json("/position", {"wordIndex": "five"})
        self.assertEqual(status, 400)
        status, _ = await self.post_json("/position", {"wordIndex": True})
        self.assertEqual(status, 400)

    async def test_set_position_not_finite(self):
        for body in ('{"wordIndex": Infinity}', '{"wordIndex": -Infinity}',
                     '{"wordIndex": NaN}'):
            async with self.client.post(
                    "/position", data=body,
                    headers={"Content-Type": "application/json"}) as resp:
                self.assertEqual(resp.status, 400)
                data = await resp.json()
            self.assertEqual(data["status"], "error")
        self.assertEqual(self.coordinator.tracker.current_position, 0)

    async def test_report_error(self):
        status, data = await self.post_json("/error", {"message": "mic unplugged"})
        self.assertEqual(status, 200)
        self.assertEqual(data["tracking"]["state"], "error")
        self.assertEqual(data["tracking"]["message"], "mic unplugged")

    async def test_reset_and_stop(self):
        await self.post_json("/script", {"text": SCRIPT})
        await self.post_json("/start", {})
        await self.post_json("/fragment", {"text": "alpha bravo charlie"})

        _, data = await self.post_json("/reset", {})
        self.assertEqual(data["tracking"]["position"], 0)
        self.assertEqual(data["tracking"]["state"], "listening")

        _, data = await self.post_json("/stop", {})
        self.assertEqual(data["tracking"]["state"], "idle")
        self.assertFalse(data["tracking"]["running"])


class TestStartFailure(AioHTTPTestCase):
    """Tests for a failing model loader."""

    async def get_application(self) -> web.Application:
        def failing_loader() -> None:
            raise RuntimeError("model missing")

        self.coordinator = TrackingCoordinator(model_loader=failing_loader)
        self.web_server = WebServer(self.coordinator)
        return self.web_server.app

    async def test_start_reports_error(self):
        async with self.client.post("/start", json={}) as resp:
            self.assertEqual(resp.status, 500)
            data = await resp.json()
        self.assertEqual(data["message"], "model missing")
        self.assertEqual(data["tracking"]["state"], "error")


class TestWebSocketApi(WebServerTestCase):
    """Tests for the WebSocket API."""

    async def test_init_message(self):
        self.web_server.script_text = "hello"
        async with self.client.ws_connect("/ws") as ws:
            msg = await ws.receive_json(timeout=1.0)
            self.assertEqual(msg["type"], "init")
            self.assertEqual(msg["script"], "hello")
            self.assertEqual(msg["state"], "idle")
            self.assertEqual(len(self.web_server.websockets), 1)

    async def test_start_and_fragment_push_status(self):
        self.coordinator.load_script(SCRIPT)
        async with self.client.ws_connect("/ws") as ws:
            await ws.receive_json(timeout=1.0)

            await ws.send_json({"type": "start"})
            msg = await ws.receive_json(timeout=1.0)
            self.assertEqual(msg["type"], "status")
            self.assertEqual(msg["state"], "listening")

            await ws.send_json({"type": "fragment", "text": "alpha bravo charlie"})
            msg = await ws.receive_json(timeout=1.0)
            self.assertEqual(msg["state"], "matched")
            self.assertEqual(msg["wordIndex"], 0)
            self.assertEqual(msg["position"], 3)

            await ws.send_json({"type": "set_position", "wordIndex": 10})
            msg = await ws.receive_json(timeout=1.0)
            self.assertEqual(msg["position"], 10)

            await ws.send_json({"type": "reset"})
            msg = await ws.receive_json(timeout=1.0)
            self.assertEqual(msg["position"], 0)

            await ws.send_json({"type": "stop"})
            msg = await ws.receive_json(timeout=1.0)
            self.assertEqual(msg["state"], "idle")

    async def test_script_edit_is_debounced(self):
        async with self.client.ws_connect("/ws") as ws:
            await ws.receive_json(timeout=1.0)

            await ws.send_json({"type": "script_edit", "text": "alpha"})
            await ws.send_json({"type": "script_edit", "text": "alpha bravo"})
            await ws.send_json({"type": "script_edit", "text": SCRIPT})

            msg = await ws.receive_json(timeout=1.0)
            self.assertEqual(msg["type"], "status")
            self.assertEqual(msg["totalWords"], 16)
            self.assertEqual(self.web_server.script_text, SCRIPT)
            self.assertFalse(self.web_server.script_debouncer.pending)

    async def test_mode_message(self):
        async with self.client.ws_connect("/ws") as ws:
            await ws.receive_json(timeout=1.0)

            await ws.send_json({"type": "mode", "mode": "strict"})
            msg = await ws.receive_json(timeout=1.0)
            self.assertEqual(msg["mode"], "strict")

            await ws.send_json({"type": "mode", "mode": "sloppy"})
            msg = await ws.receive_json(timeout=1.0)
            self.assertEqual(msg["type"], "error")
            self.assertEqual(self.coordinator.tracker.mode, TrackingMode.STRICT)

    async def test_unknown_and_malformed_messages_ignored(self):
        async with self.client.ws_connect("/ws") as ws:
            await ws.receive_json(timeout=1.0)

            await ws.send_str("not json")
            await ws.send_json({"type": "dance"})
            await ws.send_json({"type": "mode", "mode": "loose"})
            msg = await ws.receive_json(timeout=1.0)
            self.assertEqual(msg["mode"], "loose")
