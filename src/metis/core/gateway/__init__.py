"""Fallback streaming gateway over ordered model candidates."""

from .errors import (  # noqa: F401
    AttemptError,
    CandidatesExhausted,
    classify_backend_error,
)
from .gateway import (  # noqa: F401
    AttemptState,
    FallbackGateway,
    ModelFactory,
    Phase,
    ServedStream,
)
from .llm import build_chat_model  # noqa: F401
from .models import (  # noqa: F401
    EVENT_TYPE_CONTENT,
    EVENT_TYPE_ERROR,
    EVENT_TYPE_STEP_BUDGET,
    EVENT_TYPE_TOOL_CALL,
    TOOL_STATUS_COMPLETED,
    TOOL_STATUS_ERROR,
    TOOL_STATUS_STARTED,
    VALID_EVENT_TYPES,
    VALID_TOOL_STATUSES,
    ContentEvent,
    ErrorEvent,
    StepBudgetEvent,
    StreamEvent,
    ToolCallEvent,
)
from .transcript import TranscriptBuilder  # noqa: F401
