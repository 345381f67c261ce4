from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from enum import Enum
from pathlib import Path
from typing import List, Literal

class EnvironmentType(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"

class Settings(BaseSettings):
    # Basic Settings
    APP_NAME: str = "Interview Coach"
    ENVIRONMENT: EnvironmentType = EnvironmentType.DEVELOPMENT
    DEBUG: bool = True
    API_PREFIX: str = "/api"
    WEBSOCKET_PATH: str = "/ws/interview"
    
    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "DEBUG"
    
    # AI Settings
    OPENAI_API_KEY: str | None = None
    AI_MODEL: str = "gpt-4o-mini"
    ORACLE_TIMEOUT_SECONDS: float = 30.0
    ORACLE_RETRIES: int = 1

    # Interview Policy
    QUESTION_COUNT: int = 5
    INTRODUCTORY_QUESTION_COUNT: int = 0
    SCORING_STRICTNESS: Literal["strict", "balanced"] = "strict"
    MAX_SESSION_MINUTES: float | None = 30.0

    # Speech
    SPEECH_LANG: str = "en-US"
    VOICE_PREFERENCES: List[str] = ["en-IN", "Indian", "en-US", "en"]
    EMPTY_CAPTURE_GUARD_SECONDS: float = 0.5
    CAPTURE_RETRY_DELAY_SECONDS: float = 1.0
    CAPTURE_TEARDOWN_TIMEOUT_SECONDS: float = 2.0
    
    # Paths
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    RECORDS_PATH: Path = BASE_DIR / "data" / "interview_sessions.json"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra='ignore'
    )

@lru_cache
def get_settings() -> Settings:
    return Settings()
