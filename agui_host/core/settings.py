from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_AGENT_SYSTEM_PROMPT = (
    "You are a helpful assistant embedded in an interactive client. Answer clearly and "
    "concisely, ask a short follow-up question when the request is ambiguous, and use the "
    "tools the client offers when they help complete the task."
)


class Settings(BaseSettings):
    """Runtime configuration loaded from env vars and local env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = Field(default="local", alias="APP_ENV")
    log_level: str | None = Field(default=None, alias="LOG_LEVEL")

    agent_name: str = Field(default="agui-assistant", alias="AGENT_NAME")
    agent_model: str = Field(default="gpt-4o-mini", alias="AGENT_MODEL")
    agent_temperature: float = Field(default=0.0, alias="AGENT_TEMPERATURE")
    agent_system_prompt: str = Field(default=_DEFAULT_AGENT_SYSTEM_PROMPT, alias="AGENT_SYSTEM_PROMPT")
    agent_use_mock: bool = Field(default=False, alias="AGENT_USE_MOCK")
    agent_mock_messages_file: str = Field(default="mock-data/agent-messages.md", alias="AGENT_MOCK_MESSAGES_FILE")
    model_provider_base_url: str | None = Field(default=None, alias="MODEL_PROVIDER_BASE_URL")
    model_provider_api_key: str | None = Field(default=None, alias="MODEL_PROVIDER_API_KEY")
    agent_route_prefix: str = Field(default="", alias="AGENT_ROUTE_PREFIX")

    stream_state_redis_url: str | None = Field(default=None, alias="STREAM_STATE_REDIS_URL")
    stream_state_key_prefix: str = Field(default="agui:streaming-state", alias="STREAM_STATE_KEY_PREFIX")
    stream_state_retention_seconds: int = Field(default=24 * 60 * 60, alias="STREAM_STATE_RETENTION_SECONDS")

    @property
    def enable_swagger(self) -> bool:
        return self.app_env.lower() == "local"

    @property
    def effective_log_level(self) -> str:
        if self.log_level:
            return self.log_level.upper()
        return "DEBUG" if self.app_env.lower() == "local" else "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
