"""Ordered multi-candidate fallback with a bounded tool loop.

``FallbackGateway.open`` tries candidates strictly in configuration
order.  A candidate is *served* as soon as its attempt produces a first
event (or finishes cleanly without one); anything raised before that
point moves on to the next candidate.  Once a candidate is served the
gateway is committed to it: failures later in the stream are not
retried, they surface to the SSE layer.

Each attempt is an explicit state machine::

    AWAITING_MODEL_TURN -> EXECUTING_TOOLS -> AWAITING_MODEL_TURN ...
                        -> DONE

The step counter lives in ``AttemptState``.  One step is one model turn;
when the budget is spent with tool results still unanswered, the attempt
ends with a ``StepBudgetEvent`` instead of another model turn.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from collections.abc import AsyncGenerator, Callable, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    BaseMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_core.tools import BaseTool

from metis.configs.models import ModelCandidate
from metis.core.messages import ChatMessage, to_langchain
from metis.core.metrics import CANDIDATE_ATTEMPTS_TOTAL, CANDIDATES_EXHAUSTED_TOTAL
from metis.core.prompt import DashboardContext, PromptComposer
from metis.infra.id_utils import generate_id
from metis.infra.telemetry import (
    ATTR_GATEWAY_CANDIDATE_INDEX,
    ATTR_GATEWAY_MODEL,
    ATTR_GATEWAY_OUTCOME,
    SPAN_GATEWAY_ATTEMPT,
    SPAN_GATEWAY_OPEN,
    tracer,
)

from .errors import (
    OUTCOME_SERVED,
    AttemptError,
    CandidatesExhausted,
    classify_backend_error,
)
from .models import (
    TOOL_STATUS_COMPLETED,
    TOOL_STATUS_ERROR,
    TOOL_STATUS_STARTED,
    ContentEvent,
    StepBudgetEvent,
    StreamEvent,
    ToolCallEvent,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 5
TOOL_CALL_ID_PREFIX = "call"

ModelFactory = Callable[[ModelCandidate], BaseChatModel]


# ---------------------------------------------------------------------------
# Attempt state
# ---------------------------------------------------------------------------


class Phase(enum.Enum):
    AWAITING_MODEL_TURN = "awaiting_model_turn"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


@dataclass(frozen=True)
class PendingCall:
    """A tool call requested by the model, possibly malformed."""

    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass
class AttemptState:
    messages: list[BaseMessage]
    step: int = 0
    phase: Phase = Phase.AWAITING_MODEL_TURN
    pending_calls: list[PendingCall] = field(default_factory=list)


@dataclass
class ServedStream:
    """The committed candidate and its event stream."""

    candidate: ModelCandidate
    index: int
    first_event: StreamEvent | None
    rest: AsyncGenerator[StreamEvent, None]

    async def events(self) -> AsyncGenerator[StreamEvent, None]:
        try:
            if self.first_event is not None:
                yield self.first_event
                async for event in self.rest:
                    yield event
        finally:
            await self.rest.aclose()

    async def aclose(self) -> None:
        await self.rest.aclose()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _chunk_text(chunk: AIMessageChunk) -> str:
    content = chunk.content
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def _finish_turn(reply: AIMessageChunk | None) -> tuple[AIMessage, list[PendingCall]]:
    """Turn the accumulated chunks into an ``AIMessage`` and its calls.

    Calls without a provider id get one, since every tool result must
    reference the call it answers.
    """
    if reply is None:
        return AIMessage(content=""), []

    calls: list[PendingCall] = []
    tool_calls: list[dict[str, Any]] = []
    for tc in reply.tool_calls:
        call_id = tc.get("id") or generate_id(TOOL_CALL_ID_PREFIX)
        calls.append(PendingCall(id=call_id, name=tc["name"], args=tc.get("args") or {}))
        tool_calls.append({"name": tc["name"], "args": tc.get("args") or {}, "id": call_id})

    invalid_tool_calls: list[dict[str, Any]] = []
    for itc in reply.invalid_tool_calls:
        call_id = itc.get("id") or generate_id(TOOL_CALL_ID_PREFIX)
        name = itc.get("name") or "unknown"
        calls.append(
            PendingCall(
                id=call_id,
                name=name,
                error=itc.get("error") or "Malformed tool arguments; send valid JSON.",
            )
        )
        invalid_tool_calls.append(
            {
                "name": name,
                "args": itc.get("args"),
                "id": call_id,
                "error": itc.get("error"),
            }
        )

    message = AIMessage(
        content=reply.content,
        id=reply.id,
        tool_calls=tool_calls,
        invalid_tool_calls=invalid_tool_calls,
    )
    return message, calls


def _error_result(message: str) -> str:
    return json.dumps({"success": False, "error": message}, ensure_ascii=False)


def _result_succeeded(output: str) -> bool:
    try:
        parsed = json.loads(output)
    except ValueError:
        return True
    return not (isinstance(parsed, dict) and parsed.get("success") is False)


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class FallbackGateway:
    """Serves a chat turn from the first candidate that produces output."""

    def __init__(
        self,
        candidates: Sequence[ModelCandidate],
        model_factory: ModelFactory,
        tool: BaseTool,
        composer: PromptComposer,
        *,
        max_steps: int = DEFAULT_MAX_STEPS,
    ) -> None:
        if not candidates:
            raise ValueError("At least one model candidate is required")
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self._candidates: tuple[ModelCandidate, ...] = tuple(candidates)
        self._model_factory = model_factory
        self._tool = tool
        self._composer = composer
        self._max_steps = max_steps

    @property
    def candidates(self) -> tuple[ModelCandidate, ...]:
        return self._candidates

    async def open(
        self,
        messages: list[ChatMessage],
        context: DashboardContext | None = None,
    ) -> ServedStream:
        """Commit to the first candidate that yields, or raise ``CandidatesExhausted``."""
        history: list[BaseMessage] = [
            SystemMessage(content=self._composer.compose(context)),
            *to_langchain(messages),
        ]
        errors: list[AttemptError] = []

        with tracer.start_as_current_span(SPAN_GATEWAY_OPEN):
            for index, candidate in enumerate(self._candidates):
                attempt = self._attempt(candidate, list(history))
                with tracer.start_as_current_span(SPAN_GATEWAY_ATTEMPT) as span:
                    span.set_attribute(ATTR_GATEWAY_MODEL, candidate.id)
                    span.set_attribute(ATTR_GATEWAY_CANDIDATE_INDEX, index)
                    try:
                        first: StreamEvent | None = await anext(attempt)
                    except StopAsyncIteration:
                        first = None
                    except asyncio.CancelledError:
                        await attempt.aclose()
                        raise
                    except Exception as exc:
                        outcome = classify_backend_error(exc)
                        span.set_attribute(ATTR_GATEWAY_OUTCOME, outcome)
                        span.record_exception(exc)
                        CANDIDATE_ATTEMPTS_TOTAL.labels(
                            model=candidate.id, outcome=outcome
                        ).inc()
                        errors.append(
                            AttemptError(
                                model_id=candidate.id,
                                outcome=outcome,
                                message=str(exc) or type(exc).__name__,
                            )
                        )
                        logger.warning(
                            "Candidate %s failed before output (%s): %s",
                            candidate.id,
                            outcome,
                            exc,
                        )
                        await attempt.aclose()
                        continue

                    span.set_attribute(ATTR_GATEWAY_OUTCOME, OUTCOME_SERVED)
                    CANDIDATE_ATTEMPTS_TOTAL.labels(
                        model=candidate.id, outcome=OUTCOME_SERVED
                    ).inc()
                    logger.info(
                        "Serving with %s (candidate %d of %d).",
                        candidate.id,
                        index + 1,
                        len(self._candidates),
                    )
                    return ServedStream(candidate, index, first, attempt)

        CANDIDATES_EXHAUSTED_TOTAL.inc()
        raise CandidatesExhausted(errors)

    # -- one candidate ------------------------------------------------------

    async def _attempt(
        self, candidate: ModelCandidate, messages: list[BaseMessage]
    ) -> AsyncGenerator[StreamEvent, None]:
        model = self._model_factory(candidate).bind_tools([self._tool])
        state = AttemptState(messages=messages)

        while state.phase is not Phase.DONE:
            if state.phase is Phase.AWAITING_MODEL_TURN:
                state.step += 1
                reply: AIMessageChunk | None = None
                async with aclosing(model.astream(state.messages)) as chunks:
                    async for chunk in chunks:
                        reply = chunk if reply is None else reply + chunk
                        text = _chunk_text(chunk)
                        if text:
                            yield ContentEvent(content=text)

                message, calls = _finish_turn(reply)
                state.messages.append(message)
                state.pending_calls = calls
                state.phase = Phase.EXECUTING_TOOLS if calls else Phase.DONE

            elif state.phase is Phase.EXECUTING_TOOLS:
                for call in state.pending_calls:
                    yield ToolCallEvent(
                        name=call.name,
                        status=TOOL_STATUS_STARTED,
                        arguments=call.args,
                        tool_call_id=call.id,
                    )
                    output = await self._run_tool(call)
                    ok = _result_succeeded(output)
                    state.messages.append(
                        ToolMessage(content=output, tool_call_id=call.id, name=call.name)
                    )
                    yield ToolCallEvent(
                        name=call.name,
                        status=TOOL_STATUS_COMPLETED if ok else TOOL_STATUS_ERROR,
                        result=output,
                        tool_call_id=call.id,
                    )
                state.pending_calls = []

                if state.step >= self._max_steps:
                    logger.info(
                        "Step budget of %d spent on %s without a final answer.",
                        self._max_steps,
                        candidate.id,
                    )
                    yield StepBudgetEvent(steps=state.step)
                    state.phase = Phase.DONE
                else:
                    state.phase = Phase.AWAITING_MODEL_TURN

    async def _run_tool(self, call: PendingCall) -> str:
        """Tool output as text; every failure becomes an error result."""
        if call.error is not None:
            return _error_result(call.error)
        if call.name != self._tool.name:
            return _error_result(
                f"Unknown tool '{call.name}'. Available: {self._tool.name}."
            )
        try:
            output = await self._tool.ainvoke(call.args)
        except Exception as exc:
            logger.warning("Tool %s raised: %s", call.name, exc, exc_info=True)
            return _error_result(f"Tool call failed: {exc}")
        return output if isinstance(output, str) else json.dumps(output, default=str)
