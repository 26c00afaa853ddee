"""API client for the Metis API with SSE stream parsing.

Besides chat, the client implements the ``SessionStore`` protocol over
the sessions endpoints, so a ``Conversation`` can run on top of it.
"""

import json
import logging
from typing import Any, AsyncIterator

import httpx

from metis.infra.db.sessions import StoredSession

from .config import CLIConfig

logger = logging.getLogger(__name__)

MODEL_HEADER = "X-Metis-Model"
MODEL_ID_HEADER = "X-Metis-Model-Id"
METADATA_EVENT = "_metadata"
SSE_DATA_PREFIX = "data: "


def _error(message: str, code: str) -> dict[str, Any]:
    return {"type": "error", "message": message, "code": code}


class MetisAPIClient:
    """Client for the Metis chat and sessions API."""

    def __init__(self, config: CLIConfig, client: httpx.AsyncClient | None = None):
        self.config = config
        self.client = client or httpx.AsyncClient(timeout=config.timeout)

    # -- chat ---------------------------------------------------------------

    async def chat(
        self,
        messages: list[dict[str, Any]],
        session_id: str | None = None,
        dashboard: str | None = None,
    ) -> AsyncIterator[dict]:
        """Send the conversation and stream the reply's events.

        The first yielded item is a ``_metadata`` event carrying the
        serving model from the response headers.
        """
        payload: dict[str, Any] = {"messages": messages}
        if session_id:
            payload["sessionId"] = session_id
        if dashboard:
            payload["dashboard"] = dashboard

        try:
            async with self.client.stream(
                "POST",
                self.config.chat_url,
                json=payload,
                headers={"Accept": "text/event-stream"},
            ) as response:
                logger.debug("Response status: %s", response.status_code)
                logger.debug("Response headers: %s", dict(response.headers))

                if response.status_code == 503:
                    body = json.loads(await response.aread() or b"{}")
                    yield _error(
                        body.get("error", "Service unavailable."),
                        body.get("code", "UNAVAILABLE"),
                    )
                    return

                if response.status_code != 200:
                    error_text = await response.aread()
                    yield _error(
                        f"HTTP {response.status_code}: {error_text.decode()}",
                        "HTTP_ERROR",
                    )
                    return

                yield {
                    "type": METADATA_EVENT,
                    "model": response.headers.get(MODEL_HEADER),
                    "model_id": response.headers.get(MODEL_ID_HEADER),
                }

                buffer = ""
                async for chunk in response.aiter_text():
                    buffer += chunk
                    while "\n\n" in buffer:
                        block, buffer = buffer.split("\n\n", 1)
                        for line in block.split("\n"):
                            line = line.strip()
                            if not line.startswith(SSE_DATA_PREFIX):
                                continue
                            data = line[len(SSE_DATA_PREFIX) :]
                            try:
                                yield json.loads(data)
                            except json.JSONDecodeError as e:
                                logger.warning("Failed to parse SSE data %r: %s", data, e)

        except httpx.TimeoutException:
            yield _error("Request timed out.", "TIMEOUT")
        except httpx.ConnectError as e:
            yield _error(f"Connection error: {e}", "CONNECTION_ERROR")

    # -- SessionStore over HTTP -------------------------------------------------

    async def resume(self, dashboard: str) -> StoredSession | None:
        response = await self.client.get(
            self.config.sessions_url, params={"dashboard": dashboard}
        )
        response.raise_for_status()
        session = response.json().get("session")
        return StoredSession.model_validate(session) if session else None

    async def upsert(
        self, session_id: str, dashboard: str, messages: list[dict[str, Any]]
    ) -> None:
        response = await self.client.post(
            self.config.sessions_url,
            json={"id": session_id, "dashboard": dashboard, "messages": messages},
        )
        response.raise_for_status()

    async def close(self) -> None:
        await self.client.aclose()
