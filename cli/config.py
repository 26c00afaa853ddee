"""Configuration for the CLI tool."""

from pydantic import BaseModel, Field

from metis.configs.system import DEFAULT_DASHBOARD


class CLIConfig(BaseModel):
    """CLI configuration settings."""

    host: str = Field(default="localhost", description="Server host")
    port: int = Field(default=8080, description="Server port")
    api_prefix: str = Field(
        default="/api/metis", description="Path prefix of the Metis API"
    )
    dashboard: str = Field(
        default=DEFAULT_DASHBOARD, description="Dashboard whose session is resumed"
    )
    timeout: float = Field(default=300.0, description="HTTP timeout in seconds")

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def chat_url(self) -> str:
        return f"{self.base_url}{self.api_prefix}/chat"

    @property
    def sessions_url(self) -> str:
        return f"{self.base_url}{self.api_prefix}/sessions"
