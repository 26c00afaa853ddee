"""Per-request dependency that assembles the gateway."""

from functools import partial
from typing import Annotated

from fastapi import Depends

from metis.configs.config import AppConfig, get_app_config
from metis.core.prompt import PromptComposer
from metis.core.query.deps import get_query_tool
from metis.core.query.tool import QueryDatabaseTool

from .gateway import FallbackGateway
from .llm import build_chat_model


def get_gateway(
    config: Annotated[AppConfig, Depends(get_app_config)],
    tool: Annotated[QueryDatabaseTool, Depends(get_query_tool)],
) -> FallbackGateway:
    return FallbackGateway(
        config.models,
        partial(build_chat_model, config=config.llm),
        tool,
        PromptComposer(config.prompt, max_rows=config.query.max_rows),
        max_steps=config.assistant.max_steps,
    )
