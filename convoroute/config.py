from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Security: Read from .env, never hardcode secrets here
    OPENAI_API_KEY: Optional[str] = None

    # Model Configuration
    OPENAI_MODEL: str = "gpt-4o"

    # Generation Parameters
    LLM_TEMPERATURE: float = 0.0
    MAX_RETRIES: int = 2

    # Database Configuration (JSON column becomes JSONB on PostgreSQL)
    DATABASE_URL: str = "sqlite:///./convoroute.db"

    # Tool execution defaults (overridable per ToolManager and per call)
    TOOL_TIMEOUT_SECONDS: float = 30.0
    TOOL_RETRY_COUNT: int = 2
    TOOL_RETRY_BASE_DELAY: float = 1.0
    TOOL_RETRY_MAX_DELAY: float = 5.0

    LOG_LEVEL: str = "INFO"

    # Loads from a .env file in the root directory
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

# Singleton instance
settings = Settings()
