# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Web server adapter between a rendering surface and a teleprompter session.

The rendering surface (a browser page or any WebSocket client) reports layout,
touch samples and recognized speech; the server runs the session on an
asyncio frame scheduler and broadcasts motion updates back. The speech
transport itself stays on the client side: only text arrives here.
"""

import asyncio
import contextlib
import json
import logging
from typing import Any

from aiohttp import web

from .config import (
    DEFAULT_CONFIG,
    PrompterSettings,
    coerce_display_settings,
    get_display_settings,
    get_motion_settings,
    get_tracking_settings,
    load_config,
    save_config,
    update_config_display,
)
from .motion import MotionUpdate
from .scheduler import AsyncioFrameScheduler, FrameScheduler
from .session import SessionMode, TeleprompterSession

logger = logging.getLogger(__name__)


def _number(data: dict[str, Any], key: str, default: float | None = None) -> float | None:
    """Read a numeric field from a message, tolerating strings and junk."""
    value = data.get(key, default)
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default
    return default


def _seconds(data: dict[str, Any], key: str = "t") -> float | None:
    """Read a millisecond timestamp field as seconds."""
    value = _number(data, key)
    return value / 1000.0 if value is not None else None


class WebServer:
    """
    Serves the session over HTTP and WebSocket.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8000,
        initial_settings: dict[str, Any] | None = None,
        tracking_settings: dict[str, Any] | None = None,
        motion_settings: dict[str, Any] | None = None,
        frame_rate: int = DEFAULT_CONFIG["frame_rate"],
        scheduler: FrameScheduler | None = None
    ) -> None:
        self.host: str = host
        self.port: int = port
        self.app: web.Application = web.Application()
        self.websockets: set[web.WebSocketResponse] = set()
        self.runner: web.AppRunner | None = None

        self.settings: PrompterSettings = get_display_settings(
            {"display": initial_settings or {}})  # type: ignore[typeddict-item]
        self.tracking = get_tracking_settings(
            {"tracking": tracking_settings or {}})  # type: ignore[typeddict-item]
        self.motion = get_motion_settings(
            {"motion": motion_settings or {}})  # type: ignore[typeddict-item]
        self.scheduler: FrameScheduler = scheduler or AsyncioFrameScheduler(
            frame_rate=frame_rate)

        self.script_text: str = ""
        self.session: TeleprompterSession | None = None
        self.layout: tuple[float, float] | None = None
        self._tasks: set[asyncio.Task[None]] = set()

        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up HTTP routes."""
        self.app.router.add_get('/ws', self._handle_websocket)
        self.app.router.add_get('/state', self._handle_get_state)
        self.app.router.add_post('/script', self._handle_script_upload)
        self.app.router.add_post('/settings', self._handle_settings)
        self.app.router.add_get('/settings', self._handle_get_settings)
        self.app.router.add_post('/save-config', self._handle_save_config)

    # --------------------------------------------------------------- session

    def load_script(self, text: str) -> TeleprompterSession:
        """Replace the session with one for a new script."""
        if self.session is not None:
            self.session.stop()
        self.script_text = text
        self.session = TeleprompterSession(
            text,
            self.scheduler,
            settings=dict(self.settings),
            tracking=dict(self.tracking),
            motion=dict(self.motion),
            listener=self._on_motion
        )
        if self.layout is not None:
            self.session.update_layout(*self.layout)
        logger.info("Script loaded: %d normalized characters", self.session.script.length)
        return self.session

    def _on_motion(self, update: MotionUpdate) -> None:
        """Forward controller updates to all clients."""
        message: dict[str, Any] = {"type": "motion"}
        message.update(update.to_dict())
        self._spawn(self.broadcast(message))

    def _spawn(self, coro: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def state(self) -> dict[str, Any]:
        """Current state for newly connected clients."""
        motion: dict[str, Any] | None = (
            self.session.snapshot().to_dict() if self.session else None
        )
        return {
            "script": self.script_text,
            "settings": self.settings,
            "mode": self.session.mode.value if self.session else self.settings["mode"],
            "motion": motion,
        }

    # -------------------------------------------------------------- websocket

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle WebSocket connections for real-time updates."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.websockets.add(ws)
        logger.info("WebSocket connected. Total: %d", len(self.websockets))

        try:
            init: dict[str, Any] = {"type": "init"}
            init.update(self.state())
            await ws.send_json(init)

            async for msg in ws:
                if msg.type == web.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError as e:
                        logger.warning("Ignoring malformed WebSocket message: %s", e)
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
        msg_type: object | None = data.get("type")
        if not msg_type:
            return

        handlers: dict[str, Any] = {
            "script": self._on_script_message,
            "settings": self._on_settings_message,
            "layout": self._on_layout_message,
            "start": self._on_start_message,
            "stop": self._on_stop_message,
            "pause": self._on_pause_message,
            "resume": self._on_resume_message,
            "toggle": self._on_toggle_message,
            "switch_mode": self._on_switch_mode_message,
            "rewind": self._on_rewind_message,
            "transcript": self._on_transcript_message,
            "recognition": self._on_recognition_message,
            "recognizer_restart": self._on_recognizer_restart_message,
            "touch_start": self._on_touch_start_message,
            "touch_move": self._on_touch_move_message,
            "touch_end": self._on_touch_end_message,
            "save_config": self._on_save_config_message,
        }

        handler = handlers.get(str(msg_type))
        if handler:
            await handler(ws, data)
        else:
            logger.warning("Unhandled WebSocket message: %s", msg_type)

    async def _on_script_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle script update message."""
        self.load_script(str(data.get("text", "")))
        await self.broadcast({"type": "script_updated", "script": self.script_text})

    async def _on_settings_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle settings update message."""
        changes = data.get("settings", {})
        if isinstance(changes, dict):
            await self._apply_settings(changes)

    async def _apply_settings(self, changes: dict[str, Any]) -> bool:
        """Validate and merge settings changes. Returns False if rejected."""
        try:
            changes = coerce_display_settings(changes)
            if "mode" in changes:
                changes["mode"] = SessionMode(changes["mode"]).value
            if self.session is not None:
                self.session.update_settings(changes)
        except ValueError as e:
            logger.warning("Rejected settings %s: %s", changes, e)
            return False
        self.settings.update(changes)  # type: ignore[typeddict-item]
        await self.broadcast({"type": "settings_updated", "settings": self.settings})
        return True

    async def _on_layout_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle measured layout extents from the rendering surface."""
        content = _number(data, "contentHeight", 0.0) or 0.0
        viewport = _number(data, "viewportHeight", 0.0) or 0.0
        if content < 0 or viewport < 0:
            logger.warning("Ignoring negative layout %s x %s", content, viewport)
            return
        self.layout = (content, viewport)
        if self.session is not None:
            self.session.update_layout(content, viewport)

    async def _on_start_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        if self.session is not None:
            self.session.start()

    async def _on_stop_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        if self.session is not None:
            self.session.stop(_number(data, "offset"))

    async def _on_pause_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        if self.session is not None:
            self.session.pause(_number(data, "offset"))

    async def _on_resume_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        if self.session is not None:
            self.session.resume()

    async def _on_toggle_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        if self.session is not None:
            self.session.toggle(_number(data, "offset"))

    async def _on_switch_mode_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        await self._apply_settings({"mode": str(data.get("mode", ""))})

    async def _on_rewind_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        if self.session is not None:
            self.session.rewind()

    async def _on_transcript_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle a recognized fragment (already a delta)."""
        if self.session is not None:
            self.session.feed_transcript(str(data.get("text", "")))

    async def _on_recognition_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle a cumulative recognizer result."""
        if self.session is not None:
            self.session.feed_recognition(str(data.get("text", "")))

    async def _on_recognizer_restart_message(
        self,
        _ws: web.WebSocketResponse,
        _data: dict[str, Any]
    ) -> None:
        if self.session is not None:
            self.session.recognizer_restarted()

    async def _on_touch_start_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        y = _number(data, "y")
        if self.session is not None and y is not None:
            self.session.touch_start(y, _seconds(data), _number(data, "offset"))

    async def _on_touch_move_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        y = _number(data, "y")
        if self.session is not None and y is not None:
            self.session.touch_move(y, _seconds(data))

    async def _on_touch_end_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        if self.session is not None:
            self.session.touch_end(_seconds(data))

    async def _on_save_config_message(self, ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        """Handle save config message."""
        success = self._save_display_config()
        await ws.send_json({"type": "config_saved", "success": success})

    def _save_display_config(self) -> bool:
        config = update_config_display(load_config(), self.settings)
        return save_config(config)

    # ------------------------------------------------------------------ http

    async def _handle_get_state(self, _request: web.Request) -> web.Response:
        return web.json_response(self.state())

    async def _handle_script_upload(self, request: web.Request) -> web.Response:
        """Handle script upload via POST."""
        try:
            data = await request.json()
        except json.JSONDecodeError:
            return web.json_response(
                {"status": "error", "message": "Invalid JSON"}, status=400)
        if not isinstance(data, dict):
            return web.json_response(
                {"status": "error", "message": "Expected an object"}, status=400)
        self.load_script(str(data.get("text", "")))
        await self.broadcast({"type": "script_updated", "script": self.script_text})
        return web.json_response({"status": "ok"})

    async def _handle_settings(self, request: web.Request) -> web.Response:
        """Handle settings update via POST."""
        try:
            data = await request.json()
        except json.JSONDecodeError:
            return web.json_response(
                {"status": "error", "message": "Invalid JSON"}, status=400)
        if not isinstance(data, dict):
            return web.json_response(
                {"status": "error", "message": "Expected an object"}, status=400)
        if not await self._apply_settings(data):
            return web.json_response(
                {"status": "error", "message": "Invalid settings"}, status=400)
        return web.json_response({"status": "ok", "settings": self.settings})

    async def _handle_get_settings(self, _request: web.Request) -> web.Response:
        return web.json_response(self.settings)

    async def _handle_save_config(self, _request: web.Request) -> web.Response:
        """Save current settings to config file."""
        if self._save_display_config():
            return web.json_response({"status": "ok", "message": "Settings saved"})
        return web.json_response(
            {"status": "error", "message": "Failed to save config"}, status=500)

    # ------------------------------------------------------------- lifecycle

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
        if self.session is not None:
            self.session.stop()

        for ws in list(self.websockets):
            with contextlib.suppress(Exception):
                await ws.close()
        self.websockets.clear()

        if self.runner:
            await self.runner.cleanup()
