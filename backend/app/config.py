from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

_env_path = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_env_path),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    DATABASE_URL: str
    LOG_LEVEL: str = "INFO"

    # Forces a specific admin read-flag column instead of probing the schema.
    ADMIN_READ_COLUMN: str | None = None

    CONVERSATION_ID_MAX_LENGTH: int = 120
    MESSAGE_MAX_LENGTH: int = 5000

    INBOX_DEFAULT_LIMIT: int = 20
    INBOX_MAX_LIMIT: int = 100
    THREAD_DEFAULT_LIMIT: int = 50
    THREAD_MAX_LIMIT: int = 200


settings = Settings()
