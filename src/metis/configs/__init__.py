"""Application configuration models and loaders."""

from .config import (  # noqa: F401
    AppConfig,
    get_api_config,
    get_app_config,
    get_assistant_config,
)
from .models import DEFAULT_CANDIDATES, ModelCandidate, display_name  # noqa: F401
from .prompt import PromptConfig  # noqa: F401
