from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool
from starlette.websockets import WebSocketState

from ...config import get_settings
from ...domain.errors import ClientDisconnect
from ...observability.metrics import ACTIVE_CONNECTIONS
from ...services.context_store import get_context_store
from ...services.correlator import correlate
from ...services.generation import GenerationClient
from ...services.relay import StreamRelay
from ..session import websocket_token

logger = logging.getLogger("companion.api.chat")

router = APIRouter(tags=["chat"])


class WebSocketConnection:
    """Adapts a Starlette WebSocket to the relay's receive/send contract."""

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket

    async def receive(self) -> str:
        try:
            message = await self._ws.receive()
        except RuntimeError as exc:
            raise ClientDisconnect(str(exc)) from exc
        if message["type"] == "websocket.disconnect":
            raise ClientDisconnect(f"client closed ({message.get('code', 1000)})")
        text = message.get("text")
        if text is None:
            text = (message.get("bytes") or b"").decode("utf-8", errors="replace")
        return text

    async def send(self, text: str) -> None:
        try:
            await self._ws.send_text(text)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            raise ClientDisconnect(str(exc) or exc.__class__.__name__) from exc


def get_generation(websocket: WebSocket) -> GenerationClient:
    http_client = getattr(websocket.app.state, "http_client", None)
    if http_client is None:
        raise RuntimeError("HTTP client not initialised; is the app lifespan running?")
    return GenerationClient.from_settings(http_client, get_settings())


async def _close_quietly(websocket: WebSocket, code: int) -> None:
    if websocket.application_state != WebSocketState.CONNECTED or websocket.client_state != WebSocketState.CONNECTED:
        return
    try:
        await websocket.close(code=code)
    except (RuntimeError, OSError) as exc:
        logger.debug("websocket_close_failed", extra={"err": str(exc)})


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket, generation: GenerationClient = Depends(get_generation)) -> None:
    settings = get_settings()
    origin = websocket.headers.get("origin")
    if not settings.origin_allowed(origin):
        logger.warning("Rejected WebSocket upgrade from origin %s", origin)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    state = await run_in_threadpool(correlate, websocket_token(websocket, settings), get_context_store())
    await websocket.accept()
    ACTIVE_CONNECTIONS.inc()
    logger.info("Connection %s established (context=%s)", state.connection_id, state.has_context)

    relay = StreamRelay(
        generation,
        WebSocketConnection(websocket),
        state,
        end_of_turn_marker=settings.end_of_turn_marker,
    )
    close_code = status.WS_1000_NORMAL_CLOSURE
    try:
        await relay.run()
    except Exception:
        logger.exception("Connection %s failed", state.connection_id)
        close_code = status.WS_1011_INTERNAL_ERROR
    finally:
        ACTIVE_CONNECTIONS.dec()
        await _close_quietly(websocket, close_code)
