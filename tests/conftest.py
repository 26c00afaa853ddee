"""Shared fixtures: in-memory SQLite engines, scripted chat models, fake stores."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import pytest
import pytest_asyncio
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessageChunk, BaseMessage
from langchain_core.outputs import ChatGenerationChunk, ChatResult
from langchain_core.tools import BaseTool
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from metis.configs.models import ModelCandidate
from metis.configs.prompt import PromptConfig
from metis.core.prompt import PromptComposer
from metis.core.query.tool import QueryDatabaseInput
from metis.infra.db import Base, StoredSession
from metis.infra.db.models import utcnow

SQLITE_MEMORY_URI = "sqlite+aiosqlite:///:memory:"

CANDIDATES = (
    ModelCandidate(id="org/first:free", name="First"),
    ModelCandidate(id="org/second:free", name="Second"),
    ModelCandidate(id="org/third:free", name="Third"),
)


# ---------------------------------------------------------------------------
# Databases
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def sqlite_engine():
    engine = create_async_engine(SQLITE_MEMORY_URI, poolclass=StaticPool)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(sqlite_engine):
    async with sqlite_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return async_sessionmaker(sqlite_engine, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Chat models
# ---------------------------------------------------------------------------


def tool_call(
    name: str, args: dict[str, Any] | str, call_id: str | None = None
) -> dict:
    """A scripted tool call; string ``args`` are sent as-is, unparsed."""
    return {"name": name, "args": args, "id": call_id}


class ScriptedChatModel(BaseChatModel):
    """Streams a fixed script, one entry per model turn.

    An entry is either answer text, a list of ``tool_call`` dicts, an
    exception raised before any output, or a ``(text, exception)`` pair
    that fails after the text.  The last entry repeats once the script
    runs out.
    """

    script: list[Any]
    calls: list[list[BaseMessage]] = Field(default_factory=list)
    bound_tools: list[Any] = Field(default_factory=list)

    @property
    def _llm_type(self) -> str:
        return "scripted"

    def bind_tools(self, tools, **kwargs):
        self.bound_tools = list(tools)
        return self

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        raise NotImplementedError

    async def _astream(
        self, messages, stop=None, run_manager=None, **kwargs
    ) -> AsyncIterator[ChatGenerationChunk]:
        self.calls.append(list(messages))
        turn = self.script[min(len(self.calls), len(self.script)) - 1]

        if isinstance(turn, BaseException):
            raise turn
        if isinstance(turn, tuple):
            text, error = turn
            yield ChatGenerationChunk(message=AIMessageChunk(content=text))
            raise error
        if isinstance(turn, str):
            for i, word in enumerate(turn.split(" ")):
                piece = word if i == 0 else " " + word
                yield ChatGenerationChunk(message=AIMessageChunk(content=piece))
            return
        yield ChatGenerationChunk(
            message=AIMessageChunk(
                content="",
                tool_call_chunks=[
                    {
                        "name": call["name"],
                        "args": (
                            call["args"]
                            if isinstance(call["args"], str)
                            else json.dumps(call["args"])
                        ),
                        "id": call["id"],
                        "index": i,
                    }
                    for i, call in enumerate(turn)
                ],
            )
        )


class StaticQueryTool(BaseTool):
    """Stands in for ``queryDatabase`` without a warehouse."""

    name: str = "queryDatabase"
    description: str = "Run one read-only SQL query."
    args_schema: type[BaseModel] = QueryDatabaseInput
    result: dict[str, Any] = Field(
        default_factory=lambda: {"success": True, "rows": [{"total": 1}]}
    )
    received: list[dict[str, Any]] = Field(default_factory=list)

    def _run(self, sql: str, purpose: str = "", **kwargs: Any) -> str:
        self.received.append({"sql": sql, "purpose": purpose})
        return json.dumps(self.result)

    async def _arun(self, sql: str, purpose: str = "", **kwargs: Any) -> str:
        return self._run(sql, purpose)


@pytest.fixture
def composer() -> PromptComposer:
    return PromptComposer(PromptConfig())


@pytest.fixture
def query_tool() -> StaticQueryTool:
    return StaticQueryTool()


# ---------------------------------------------------------------------------
# Session stores
# ---------------------------------------------------------------------------


class InMemorySessionStore:
    """Dict-backed ``SessionStore`` with optional injected failures."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.sessions: dict[str, StoredSession] = {}
        self.upserts: list[tuple[str, str, list[dict[str, Any]]]] = []
        self.fail_with = fail_with

    async def resume(self, dashboard: str) -> StoredSession | None:
        if self.fail_with is not None:
            raise self.fail_with
        matching = [s for s in self.sessions.values() if s.dashboard == dashboard]
        if not matching:
            return None
        return max(matching, key=lambda s: s.updated_at)

    async def upsert(
        self, session_id: str, dashboard: str, messages: list[dict[str, Any]]
    ) -> None:
        self.upserts.append((session_id, dashboard, messages))
        if self.fail_with is not None:
            raise self.fail_with
        now = utcnow()
        existing = self.sessions.get(session_id)
        self.sessions[session_id] = StoredSession(
            id=session_id,
            dashboard=dashboard,
            messages=messages,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )


@pytest.fixture
def memory_store() -> InMemorySessionStore:
    return InMemorySessionStore()
