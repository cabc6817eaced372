from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel


@dataclass(frozen=True)
class ExtractedContext:
    token: str
    text: str
    filename: Optional[str] = None
    stored_at: float = 0.0


class ConnectionPhase(str, Enum):
    ESTABLISHED = "established"
    IDLE = "idle"
    STREAMING = "streaming"
    CLOSED = "closed"


@dataclass
class ConnectionState:
    """Per-WebSocket state. ``context`` is fixed at establishment."""

    token: Optional[str] = None
    context: Optional[str] = None
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    phase: ConnectionPhase = ConnectionPhase.ESTABLISHED
    active_generation: Optional[asyncio.Task] = None
    turns_completed: int = 0
    turns_failed: int = 0

    @property
    def has_context(self) -> bool:
        return bool(self.context)

    @property
    def closed(self) -> bool:
        return self.phase is ConnectionPhase.CLOSED

    def close(self) -> None:
        self.phase = ConnectionPhase.CLOSED
        self.active_generation = None


class UploadResponse(BaseModel):
    filename: str
    characters: int
    message: str
