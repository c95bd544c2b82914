"""HTTP API for the cortex chat panel.

Serves thread history as JSON and streams each chat request as
Server-Sent Events: ``thinking``, any ``tool_started`` /
``tool_completed`` pairs, then exactly one ``done`` or ``error``.
Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from aiohttp import web

from src.config import settings
from src.cortex.events import Done, Error, Thinking
from src.cortex.session import CortexChatSession
from src.cortex.store import StorageError
from src.llm.client import CompletionError

if TYPE_CHECKING:
    from src.cortex.events import CortexChatEvent

logger = logging.getLogger(__name__)

SESSION_KEY = web.AppKey("cortex_chat_session", CortexChatSession)

_PUBLIC_PATHS = frozenset({"/health"})


@web.middleware
async def _auth_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Require ``Authorization: Bearer <API_TOKEN>`` when a token is configured."""
    if settings.api_token and request.path not in _PUBLIC_PATHS:
        expected = f"Bearer {settings.api_token}"
        if request.headers.get("Authorization", "") != expected:
            logger.warning("API request rejected: bad token (path=%s)", request.path)
            return web.json_response({"error": "unauthorized"}, status=401)
    return await handler(request)


async def _health(request: web.Request) -> web.Response:
    """GET /health — basic liveness check."""
    return web.json_response({"status": "ok"})


async def _get_messages(request: web.Request) -> web.Response:
    """GET /api/cortex-chat/messages — one thread's history.

    Without ``thread_id`` the most recent thread is resumed; on an empty
    store a fresh thread ID is handed out with no messages.
    """
    session = request.app[SESSION_KEY]
    try:
        limit = int(request.query.get("limit", "50"))
    except ValueError:
        return web.json_response({"error": "limit must be an integer"}, status=400)

    try:
        thread_id = request.query.get("thread_id") or await session.store.latest_thread_id()
        if thread_id is None:
            return web.json_response({"thread_id": str(uuid.uuid4()), "messages": []})
        messages = await session.store.load_history(thread_id, limit)
    except StorageError:
        logger.exception("Failed to load cortex chat messages")
        return web.json_response({"error": "storage unavailable"}, status=500)

    return web.json_response({
        "thread_id": thread_id,
        "messages": [m.to_dict() for m in messages],
    })


async def _get_threads(request: web.Request) -> web.Response:
    """GET /api/cortex-chat/threads — recent threads, newest first."""
    session = request.app[SESSION_KEY]
    try:
        threads = await session.store.list_threads()
    except StorageError:
        logger.exception("Failed to list cortex chat threads")
        return web.json_response({"error": "storage unavailable"}, status=500)
    return web.json_response({"threads": [t.to_dict() for t in threads]})


async def _send(request: web.Request) -> web.StreamResponse:
    """POST /api/cortex-chat/send — run one request and stream its events."""
    session = request.app[SESSION_KEY]

    try:
        payload: dict[str, Any] = await request.json()
    except Exception:
        logger.warning("Cortex chat send: invalid JSON")
        return web.json_response({"error": "invalid JSON"}, status=400)

    thread_id = payload.get("thread_id")
    message = payload.get("message")
    channel_id = payload.get("channel_id") or None
    if not isinstance(thread_id, str) or not thread_id:
        return web.json_response({"error": "thread_id is required"}, status=400)
    if not isinstance(message, str) or not message.strip():
        return web.json_response({"error": "message is required"}, status=400)

    response = web.StreamResponse(
        headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        }
    )
    await response.prepare(request)

    finished = False

    async def emit(event: CortexChatEvent) -> None:
        nonlocal finished
        if finished:
            logger.warning("Dropping %s event after the stream finished", event.type)
            return
        finished = event.is_terminal
        try:
            await response.write(event.to_sse().encode("utf-8"))
        except ConnectionResetError:
            # The request still runs to completion and is saved.
            logger.debug("Client went away before %s event", event.type)

    await emit(Thinking())
    try:
        text = await session.send_message(thread_id, message, channel_id, on_event=emit)
    except (CompletionError, StorageError) as exc:
        await emit(Error(message=str(exc)))
    else:
        await emit(Done(full_text=text))

    await response.write_eof()
    return response


def create_web_app(session: CortexChatSession) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application(middlewares=[_auth_middleware])
    app[SESSION_KEY] = session
    app.router.add_get("/health", _health)
    app.router.add_get("/api/cortex-chat/messages", _get_messages)
    app.router.add_get("/api/cortex-chat/threads", _get_threads)
    app.router.add_post("/api/cortex-chat/send", _send)
    return app


class ApiServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self,
        session: CortexChatSession,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        self.session = session
        self.host = host or settings.api_host
        self.port = port or settings.api_port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for API requests."""
        if not settings.api_token:
            logger.warning("API_TOKEN empty — cortex chat API is unauthenticated")

        app = create_web_app(self.session)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Cortex chat API listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Cortex chat API stopped")
