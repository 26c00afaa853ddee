"""Chat model factory for one candidate."""

import logging

from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI

from metis.configs.models import ModelCandidate
from metis.configs.system import LLMConfig

logger = logging.getLogger(__name__)


def build_chat_model(candidate: ModelCandidate, config: LLMConfig) -> BaseChatModel:
    """Streaming ``ChatOpenAI`` for *candidate* on the shared endpoint.

    Client retries are off: a failing candidate is replaced by the next one.
    """
    headers: dict[str, str] = {}
    if config.referer:
        headers["HTTP-Referer"] = config.referer
    if config.title:
        headers["X-Title"] = config.title

    return ChatOpenAI(
        base_url=config.endpoint,
        api_key=config.api_key,
        model=candidate.id,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout=config.model_timeout.total_seconds(),
        max_retries=0,
        streaming=True,
        default_headers=headers or None,
    )
