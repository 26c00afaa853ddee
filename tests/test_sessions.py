"""Tests for the SQLAlchemy session repository (SQLite in memory)."""

import asyncio

import pytest

from metis.infra.db import SessionRepository

DASHBOARD = "accurate-sales"


def _messages(*texts: str) -> list[dict]:
    return [
        {"id": f"msg_{i}", "role": "user", "parts": [{"type": "text", "text": t}]}
        for i, t in enumerate(texts)
    ]


@pytest.fixture
def repo(session_factory) -> SessionRepository:
    return SessionRepository(session_factory)


class TestSessionRepository:
    @pytest.mark.asyncio
    async def test_resume_without_sessions(self, repo):
        assert await repo.resume(DASHBOARD) is None

    @pytest.mark.asyncio
    async def test_upsert_then_resume(self, repo):
        await repo.upsert("metis_a", DASHBOARD, _messages("hello"))

        stored = await repo.resume(DASHBOARD)

        assert stored is not None
        assert stored.id == "metis_a"
        assert stored.dashboard == DASHBOARD
        assert stored.messages == _messages("hello")
        assert stored.created_at == stored.updated_at

    @pytest.mark.asyncio
    async def test_upsert_replaces_messages(self, repo):
        await repo.upsert("metis_a", DASHBOARD, _messages("one"))
        first = await repo.resume(DASHBOARD)
        await asyncio.sleep(0.01)

        await repo.upsert("metis_a", DASHBOARD, _messages("one", "two"))
        second = await repo.resume(DASHBOARD)

        assert second.messages == _messages("one", "two")
        assert second.created_at == first.created_at
        assert second.updated_at > first.updated_at

    @pytest.mark.asyncio
    async def test_repeated_upsert_is_idempotent(self, repo):
        await repo.upsert("metis_a", DASHBOARD, _messages("one"))
        first = await repo.resume(DASHBOARD)
        await asyncio.sleep(0.01)

        await repo.upsert("metis_a", DASHBOARD, _messages("one"))
        again = await repo.resume(DASHBOARD)

        assert again == first

    @pytest.mark.asyncio
    async def test_most_recently_updated_session_wins(self, repo):
        await repo.upsert("metis_old", DASHBOARD, _messages("old"))
        await asyncio.sleep(0.01)
        await repo.upsert("metis_new", DASHBOARD, _messages("new"))

        assert (await repo.resume(DASHBOARD)).id == "metis_new"

        await asyncio.sleep(0.01)
        await repo.upsert("metis_old", DASHBOARD, _messages("old", "again"))

        assert (await repo.resume(DASHBOARD)).id == "metis_old"

    @pytest.mark.asyncio
    async def test_dashboards_are_independent(self, repo):
        await repo.upsert("metis_a", DASHBOARD, _messages("sales"))
        await asyncio.sleep(0.01)
        await repo.upsert("metis_b", "stock-control", _messages("stock"))

        assert (await repo.resume(DASHBOARD)).id == "metis_a"
        assert (await repo.resume("stock-control")).id == "metis_b"
        assert await repo.resume("unknown") is None

    @pytest.mark.asyncio
    async def test_empty_message_list_is_stored(self, repo):
        await repo.upsert("metis_a", DASHBOARD, _messages("hello"))
        await asyncio.sleep(0.01)
        await repo.upsert("metis_a", DASHBOARD, [])

        stored = await repo.resume(DASHBOARD)
        assert stored.id == "metis_a"
        assert stored.messages == []
