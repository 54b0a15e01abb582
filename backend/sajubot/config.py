from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = "development"
    database_url: str = "sqlite:///./sajubot.db"

    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Guards the conversation history endpoint (X-Internal-API-Key header)
    internal_api_key: str | None = None

    # OpenAI-compatible chat completions endpoint used for fortune text
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    openai_timeout_seconds: float = 30.0

    # Calendar date embedded in prompts and used for age calculation
    fortune_timezone: str = "Asia/Seoul"

    def required_credentials(self) -> dict[str, bool]:
        return {
            "openai": bool(self.openai_api_key),
            # The local SQLite default does not count as a configured datastore
            "database_url": "database_url" in self.model_fields_set and bool(self.database_url.strip()),
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
