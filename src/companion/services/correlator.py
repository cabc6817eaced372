from __future__ import annotations

import logging
from typing import Optional

from ..domain.models import ConnectionState
from .context_store import ContextBackend

logger = logging.getLogger("companion.correlator")


def correlate(token: Optional[str], store: ContextBackend) -> ConnectionState:
    """Build the state for a new persistent connection.

    Copies the stored context for ``token`` (if any) into the returned state.
    A missing token or entry is the normal "nothing uploaded" path, and a
    failing store only costs the connection its context.
    """

    state = ConnectionState(token=token)
    if not token:
        logger.debug("correlation_skipped_no_token", extra={"connection_id": state.connection_id})
        return state
    try:
        stored = store.peek(token)
    except Exception as exc:
        logger.warning(
            "correlation_lookup_failed",
            extra={"connection_id": state.connection_id, "err": str(exc)},
        )
        return state
    if stored is None:
        logger.debug("correlation_miss", extra={"connection_id": state.connection_id})
        return state
    state.context = stored.text
    logger.info(
        "Correlated connection %s with uploaded context (%s chars)",
        state.connection_id,
        len(stored.text),
    )
    return state
