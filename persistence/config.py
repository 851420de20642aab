from typing import Optional
from urllib.parse import quote_plus
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # --- Database (SQLModel) ---
    DB_DIALECT: str = "sqlite"  # sqlite, postgresql+psycopg, mysql+pymysql, ...
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "root"
    DB_PASSWORD: str = "root"
    DB_NAME: str = "app.db"
    DB_ECHO: bool = False
    DB_COMMAND_TIMEOUT: Optional[int] = None  # seconds, None keeps the driver default

    @property
    def DATABASE_URL(self) -> str:
        if self.DB_DIALECT.startswith("sqlite"):
            return f"{self.DB_DIALECT}:///{self.DB_NAME}"
        safe_password = quote_plus(self.DB_PASSWORD)
        return f"{self.DB_DIALECT}://{self.DB_USER}:{safe_password}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # --- Repository batching ---
    REPOSITORY_BATCH_SIZE: int = 100  # create_many / update_many / delete_many save interval
    BULK_BATCH_SIZE: int = 1000  # rows per bulk insert/update/delete statement

    # --- Execution strategy (transient fault retry) ---
    RETRY_MAX_ATTEMPTS: int = 6
    RETRY_BASE_DELAY: float = 1.0
    RETRY_MAX_DELAY: float = 30.0

    # --- Logging ---
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False

    # --- Localization ---
    DEFAULT_CULTURE: str = "en"

    # --- Pydantic ---
    # Load env from project root .env; priority: env vars > .env > defaults
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )


# Singleton settings instance
settings = Settings()
