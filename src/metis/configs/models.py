"""Model candidates for the fallback gateway.

Candidates are tried in the order they are configured. Every entry must
support tool calling, since the assistant answers through the
``queryDatabase`` tool.
"""

from pydantic import BaseModel, ConfigDict, Field


class ModelCandidate(BaseModel):
    """One backend in the fallback order."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Backend model id, e.g. 'qwen/qwen3-30b-a3b:free'")
    name: str = Field(description="Human-readable display name")
    provider: str = Field(default="", description="Provider label")
    free: bool = Field(default=False, description="Free-tier model")


DEFAULT_CANDIDATES: tuple[ModelCandidate, ...] = (
    ModelCandidate(
        id="google/gemini-2.0-flash-exp:free",
        name="Gemini 2.0 Flash",
        provider="Google",
        free=True,
    ),
    ModelCandidate(
        id="nvidia/llama-3.1-nemotron-70b-instruct:free",
        name="Nemotron 70B",
        provider="NVIDIA",
        free=True,
    ),
    ModelCandidate(
        id="qwen/qwen3-30b-a3b:free",
        name="Qwen3 30B",
        provider="Alibaba",
        free=True,
    ),
    ModelCandidate(
        id="meta-llama/llama-3.1-8b-instruct:free",
        name="Llama 3.1 8B",
        provider="Meta",
        free=True,
    ),
)


def display_name(
    model_id: str, candidates: tuple[ModelCandidate, ...] = DEFAULT_CANDIDATES
) -> str:
    """Return the display name for *model_id*.

    Unknown ids fall back to their last path segment without the
    ``:variant`` suffix (``"org/model-name:free"`` -> ``"model-name"``).
    """
    for candidate in candidates:
        if candidate.id == model_id:
            return candidate.name
    return model_id.rsplit("/", 1)[-1].split(":", 1)[0] or model_id
