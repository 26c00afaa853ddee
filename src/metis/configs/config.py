"""Configuration management using pydantic-settings.

**Not a singleton**: each call to ``get_app_config()`` re-reads config
from disk so that ConfigMap updates are picked up without restarting.

Priority order (highest first):

1. ConfigMap YAML (path from ``METIS_CONFIGMAP_FILE`` env var, hot-reloadable)
2. Environment variables (``METIS_`` prefix)
3. ``.env`` dotenv file
4. Static YAML (``configs/config.yaml``, baked into the Docker image)
5. Prompt YAML (``configs/prompt.yml``)
6. Init defaults / field defaults
7. File secrets
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from .models import DEFAULT_CANDIDATES, ModelCandidate
from .prompt import PromptConfig
from .system import (
    APIConfig,
    AssistantConfig,
    LLMConfig,
    LoggingConfig,
    QueryConfig,
    SessionConfig,
    ThirdPartyConfig,
    TracingConfig,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Path constants
# ---------------------------------------------------------------------------

CONFIG_PY_PATH = Path(__file__).resolve()
PROJECT_ROOT = CONFIG_PY_PATH.parent.parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "configs"

STATIC_CONFIG_FILE = CONFIG_DIR / "config.yaml"
PROMPT_CONFIG_FILE = CONFIG_DIR / "prompt.yml"

_configmap_env = os.environ.get("METIS_CONFIGMAP_FILE")
CONFIGMAP_CONFIG_FILE: Optional[Path] = Path(_configmap_env) if _configmap_env else None

DOTENV_FILE_PATH = PROJECT_ROOT / ".env"
ENV_DELIMITER = "__"
ENV_PREFIX = "METIS_"

DEFAULT_ENCODING = "utf-8"


# ---------------------------------------------------------------------------
# Application config (re-created on every call, not a singleton)
# ---------------------------------------------------------------------------


class AppConfig(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=DOTENV_FILE_PATH,
        env_file_encoding=DEFAULT_ENCODING,
        env_nested_delimiter=ENV_DELIMITER,
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        extra="ignore",
        yaml_file=STATIC_CONFIG_FILE,
        yaml_file_encoding=DEFAULT_ENCODING,
    )

    third_party: ThirdPartyConfig = Field(
        default_factory=ThirdPartyConfig,
        description="Database connection settings",
    )

    api: APIConfig = Field(
        default_factory=APIConfig,
        description="API configuration settings",
    )

    llm: LLMConfig = Field(
        default_factory=LLMConfig,
        description="OpenAI-compatible endpoint shared by all candidates",
    )

    models: tuple[ModelCandidate, ...] = Field(
        default=DEFAULT_CANDIDATES,
        min_length=1,
        description="Model candidates, tried strictly in this order",
    )

    assistant: AssistantConfig = Field(
        default_factory=AssistantConfig,
        description="Conversation loop settings",
    )

    query: QueryConfig = Field(
        default_factory=QueryConfig,
        description="Query guard settings",
    )

    session: SessionConfig = Field(
        default_factory=SessionConfig,
        description="Session persistence settings",
    )

    prompt: PromptConfig = Field(
        default_factory=PromptConfig,
        description="System prompt building blocks",
    )

    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging settings",
    )

    tracing: TracingConfig = Field(
        default_factory=TracingConfig,
        description="OpenTelemetry settings",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = []

        # 1. ConfigMap YAML, highest priority (hot-reloadable)
        if CONFIGMAP_CONFIG_FILE is not None and CONFIGMAP_CONFIG_FILE.is_file():
            sources.append(
                YamlConfigSettingsSource(
                    settings_cls,
                    yaml_file=CONFIGMAP_CONFIG_FILE,
                )
            )

        # 2-3. Env vars and dotenv
        sources.append(env_settings)
        sources.append(dotenv_settings)

        # 4. Static YAML (baked into image)
        sources.append(YamlConfigSettingsSource(settings_cls))

        # 5. Prompt YAML (separate file)
        sources.append(_PromptYamlSettingsSource(settings_cls))

        # 6-7. Init defaults and file secrets
        sources.append(init_settings)
        sources.append(file_secret_settings)

        return tuple(sources)


class _PromptYamlSettingsSource(PydanticBaseSettingsSource):
    """Loads the ``prompt`` section from ``configs/prompt.yml``."""

    def __init__(self, settings_cls: type[BaseSettings]) -> None:
        self.settings_cls = settings_cls

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        if not PROMPT_CONFIG_FILE.exists():
            return {}

        try:
            with open(PROMPT_CONFIG_FILE, encoding=DEFAULT_ENCODING) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError):
            logger.warning(
                "Ignoring unreadable prompt file %s", PROMPT_CONFIG_FILE, exc_info=True
            )
            return {}

        if isinstance(data, dict) and data:
            return {"prompt": data}
        return {}


def get_app_config() -> AppConfig:
    """Get the application configuration.

    Re-reads ``configs/config.yaml`` (and the ConfigMap override when
    present) on every call so that hot-reloaded values are picked up
    immediately.
    """
    return AppConfig()


# ---------------------------------------------------------------------------
# Narrow accessors, handy as FastAPI dependencies
# ---------------------------------------------------------------------------


def get_assistant_config() -> AssistantConfig:
    return get_app_config().assistant


def get_api_config() -> APIConfig:
    return get_app_config().api
