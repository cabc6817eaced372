from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..config import Settings
from ..domain.errors import UpstreamError

LOG = logging.getLogger("companion.llm")

_ERROR_BODY_LIMIT = 500


class GenerationClient:
    """Streams completions from an Ollama-compatible ``/api/generate`` endpoint."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        model: str,
        read_timeout: Optional[float] = 120.0,
        connect_timeout: float = 3.0,
    ) -> None:
        self._client = http_client
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._timeout = httpx.Timeout(connect_timeout, read=read_timeout)

    @classmethod
    def from_settings(cls, http_client: httpx.AsyncClient, settings: Settings) -> "GenerationClient":
        return cls(
            http_client,
            base_url=settings.upstream_url,
            model=settings.model,
            read_timeout=settings.upstream_read_timeout,
            connect_timeout=settings.upstream_connect_timeout,
        )

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {"model": self.model, "prompt": prompt, "stream": True}

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        """Yield response fragments in the order the backend produces them.

        Closing the generator early (or cancelling the task iterating it)
        closes the upstream response.

        Raises
        ------
        UpstreamError
            On a non-2xx status, a transport failure or an ``error`` line.
        """

        url = f"{self.base_url}/api/generate"
        produced = 0
        LOG.debug("upstream_stream_open", extra={"model": self.model, "base_url": self.base_url})
        try:
            async with self._client.stream("POST", url, json=self._payload(prompt), timeout=self._timeout) as resp:
                if not resp.is_success:
                    raw = await resp.aread()
                    text = raw.decode("utf-8", "ignore").strip()[:_ERROR_BODY_LIMIT]
                    message = f"HTTP {resp.status_code} from generation backend"
                    if text:
                        message = f"{message}: {text}"
                    raise UpstreamError(message, status_code=resp.status_code)
                async for line in resp.aiter_lines():
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if not isinstance(data, dict):
                        continue
                    if data.get("error"):
                        raise UpstreamError(
                            f"Generation backend error: {data['error']}",
                            status_code=resp.status_code,
                            fragments=produced,
                        )
                    token = data.get("response") or ""
                    if token:
                        produced += 1
                        yield token
                    if data.get("done"):
                        break
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Generation backend request failed: {exc}", fragments=produced) from exc
        LOG.debug("upstream_stream_done", extra={"model": self.model, "fragments": produced})
