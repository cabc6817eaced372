"""Per-connection turn processing: prompt composition and fragment relay.

One :class:`StreamRelay` drives one persistent connection. A reader task
queues inbound messages; the turn loop handles them strictly one at a time,
running each turn as a tracked task held in ``state.active_generation`` so a
client disconnect can cancel the upstream call instead of abandoning it.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator, Optional, Protocol, Union

from ..domain.errors import ClientDisconnect, UpstreamError
from ..domain.models import ConnectionPhase, ConnectionState
from ..observability.metrics import FRAGMENTS_RELAYED, TURNS

logger = logging.getLogger("companion.relay")

CONTEXT_PROMPT_TEMPLATE = "Based on the following context:\n\n{context}\n\n---\n\n{message}"

COMPLETED = "completed"
UPSTREAM_ERROR = "upstream_error"
CLIENT_DISCONNECT = "client_disconnect"
ERROR = "error"


class Connection(Protocol):
    async def receive(self) -> str: ...

    async def send(self, text: str) -> None: ...


class FragmentSource(Protocol):
    def stream(self, prompt: str) -> AsyncIterator[str]: ...


class _Closed:
    pass


_CLOSED = _Closed()


def compose_prompt(message: str, context: Optional[str]) -> str:
    # Stored context goes in front of every message for the connection's lifetime.
    if context:
        return CONTEXT_PROMPT_TEMPLATE.format(context=context, message=message)
    return message


class StreamRelay:
    def __init__(
        self,
        generation: FragmentSource,
        connection: Connection,
        state: ConnectionState,
        *,
        end_of_turn_marker: Optional[str] = None,
    ) -> None:
        self.generation = generation
        self.connection = connection
        self.state = state
        self.end_of_turn_marker = end_of_turn_marker or None
        self._inbox: "asyncio.Queue[Union[str, _Closed]]" = asyncio.Queue()
        self._disconnected = asyncio.Event()

    async def run(self) -> None:
        """Serve the connection until the client leaves or a send fails."""
        self.state.phase = ConnectionPhase.IDLE
        reader = asyncio.create_task(self._read_loop(), name=f"relay-reader-{self.state.connection_id}")
        try:
            await self._turn_loop()
        finally:
            self._cancel_active()
            reader.cancel()
            self.state.close()
            logger.info(
                "Connection %s closed after %s completed / %s failed turns",
                self.state.connection_id,
                self.state.turns_completed,
                self.state.turns_failed,
            )
            await asyncio.wait({reader})

    async def _read_loop(self) -> None:
        try:
            while True:
                message = await self.connection.receive()
                await self._inbox.put(message)
        except ClientDisconnect:
            logger.debug("client_disconnected", extra={"connection_id": self.state.connection_id})
        except Exception:
            logger.exception("Receive failed on connection %s", self.state.connection_id)
        finally:
            self._disconnected.set()
            self._cancel_active()
            self._inbox.put_nowait(_CLOSED)

    def _cancel_active(self) -> None:
        turn = self.state.active_generation
        if turn is not None and not turn.done():
            turn.cancel()

    async def _turn_loop(self) -> None:
        while True:
            message = await self._inbox.get()
            # Messages still queued when the client left are dropped unanswered.
            if isinstance(message, _Closed) or self._disconnected.is_set():
                return
            if not message.strip():
                continue

            turn = asyncio.create_task(self._run_turn(message), name=f"relay-turn-{self.state.connection_id}")
            self.state.active_generation = turn
            self.state.phase = ConnectionPhase.STREAMING
            try:
                await asyncio.wait({turn})
            finally:
                if not turn.done():
                    turn.cancel()
                self.state.active_generation = None

            outcome = CLIENT_DISCONNECT if turn.cancelled() else turn.result()
            TURNS.labels(outcome=outcome).inc()
            if outcome == CLIENT_DISCONNECT:
                return
            if outcome == COMPLETED:
                self.state.turns_completed += 1
            else:
                self.state.turns_failed += 1

            if self.end_of_turn_marker:
                try:
                    await self.connection.send(self.end_of_turn_marker)
                except ClientDisconnect:
                    return
            self.state.phase = ConnectionPhase.IDLE

    async def _run_turn(self, message: str) -> str:
        prompt = compose_prompt(message, self.state.context)
        sent = 0
        try:
            async with aclosing(self.generation.stream(prompt)) as fragments:
                async for fragment in fragments:
                    await self.connection.send(fragment)
                    sent += 1
                    FRAGMENTS_RELAYED.inc()
        except ClientDisconnect:
            logger.info(
                "Client left connection %s mid-turn after %s fragments",
                self.state.connection_id,
                sent,
            )
            return CLIENT_DISCONNECT
        except UpstreamError as exc:
            logger.warning(
                "upstream_turn_failed",
                extra={
                    "connection_id": self.state.connection_id,
                    "fragments": sent,
                    "status_code": exc.status_code,
                    "err": str(exc),
                },
            )
            return UPSTREAM_ERROR
        except Exception:
            logger.exception("Turn failed on connection %s", self.state.connection_id)
            return ERROR
        logger.debug("turn_completed", extra={"connection_id": self.state.connection_id, "fragments": sent})
        return COMPLETED
