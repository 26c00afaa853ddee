"""Centralized FastAPI dependency type aliases.

Route modules import these ``*Dep`` aliases instead of writing
``Annotated[T, Depends(get_xxx)]`` by hand.  Each alias maps to one
``get_*`` factory, which tests replace through
``app.dependency_overrides[get_xxx]``.
"""

from typing import Annotated

from fastapi import Depends

from metis.configs.config import (
    AppConfig,
    get_api_config,
    get_app_config,
    get_assistant_config,
)
from metis.configs.system import APIConfig, AssistantConfig
from metis.core.gateway import FallbackGateway
from metis.core.gateway.deps import get_gateway
from metis.infra.db import (
    SessionSaver,
    SessionStore,
    get_session_saver,
    get_session_store,
)

AppConfigDep = Annotated[AppConfig, Depends(get_app_config)]
APIConfigDep = Annotated[APIConfig, Depends(get_api_config)]
AssistantConfigDep = Annotated[AssistantConfig, Depends(get_assistant_config)]
GatewayDep = Annotated[FallbackGateway, Depends(get_gateway)]
SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]
SessionSaverDep = Annotated[SessionSaver, Depends(get_session_saver)]
