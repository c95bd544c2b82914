"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Cortex chat configuration. All values come from environment variables."""

    # Anthropic
    anthropic_api_key: str = Field(default="")
    max_tokens: int = Field(default=4096)

    # Routing: model per process type (friendly name or full model ID)
    channel_model: str = Field(default="sonnet")
    branch_model: str = Field(default="sonnet")
    worker_model: str = Field(default="haiku")
    compactor_model: str = Field(default="haiku")
    cortex_model: str = Field(default="sonnet")

    # Database
    database_path: Path = Field(default=Path("data/cortex.db"))

    # Identity files (SOUL.md, IDENTITY.md, USER.md) and prompt templates
    config_dir: Path = Field(default=Path("config"))
    prompts_dir: Path = Field(default=Path(__file__).resolve().parent / "prompts")

    # Capabilities advertised to the cortex
    browser_enabled: bool = Field(default=False)
    brave_search_api_key: str = Field(default="")
    opencode_enabled: bool = Field(default=False)

    # Cortex chat
    cortex_history_limit: int = Field(default=100)
    channel_transcript_limit: int = Field(default=50)
    cortex_max_turns: int = Field(default=50)
    # 0 disables the timeout (the completion call may block indefinitely)
    cortex_request_timeout_seconds: float = Field(default=0)
    tool_result_preview_chars: int = Field(default=200)

    # HTTP API
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=19898)
    api_token: str = Field(default="")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    @property
    def web_search_enabled(self) -> bool:
        """Web search is available whenever a Brave key is configured."""
        return bool(self.brave_search_api_key.strip())


settings = Settings()
