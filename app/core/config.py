from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Base
    APP_ENV: str = "dev"  # dev | test | prod
    APP_NAME: str = "Flashcards Content API"
    APP_VERSION: str = "0.1.0"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Security
    API_KEY: str = "change_me"

    # Database
    DATABASE_URL: str = "sqlite:///./flashcards.db"
    SQL_ECHO: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
