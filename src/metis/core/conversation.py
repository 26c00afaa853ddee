"""Client-side lifecycle of one dashboard conversation."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from metis.configs.system import DEFAULT_DASHBOARD
from metis.core.messages import ChatMessage, dump_messages
from metis.infra.db.sessions import SessionStore
from metis.infra.id_utils import new_session_id

logger = logging.getLogger(__name__)


class Conversation:
    """Resume, extend and clear the conversation of one dashboard.

    Works over any :class:`SessionStore`: the repository in-process, or an
    HTTP-backed store in the CLI.
    """

    def __init__(
        self,
        store: SessionStore,
        dashboard: str = DEFAULT_DASHBOARD,
        session_id: str | None = None,
    ) -> None:
        self._store = store
        self.dashboard = dashboard
        self.session_id = session_id or new_session_id()
        self.messages: list[ChatMessage] = []

    async def resume(self) -> bool:
        """Adopt the dashboard's latest session. ``False`` when there is none.

        A session with no messages was closed by :meth:`clear`; it is never
        written to again, so the freshly minted id is kept.
        """
        stored = await self._store.resume(self.dashboard)
        if stored is None or not stored.messages:
            return False
        messages: list[ChatMessage] = []
        for raw in stored.messages:
            try:
                messages.append(ChatMessage.model_validate(raw))
            except ValidationError:
                logger.warning("Skipping unreadable message in session %s.", stored.id)
        self.session_id = stored.id
        self.messages = messages
        return True

    def record(self, *messages: ChatMessage) -> None:
        self.messages.extend(messages)

    async def save(self) -> None:
        await self._store.upsert(
            self.session_id, self.dashboard, dump_messages(self.messages)
        )

    async def clear(self) -> str:
        """Start over under a fresh id.

        The old session is kept as history with an empty message list.
        Failing to write it is logged; the new id is minted regardless.
        """
        previous = self.session_id
        try:
            await self._store.upsert(previous, self.dashboard, [])
        except Exception:
            logger.warning("Could not empty session %s.", previous, exc_info=True)
        self.session_id = new_session_id()
        self.messages = []
        return self.session_id
