"""
Configuration settings for the ScriptWizard backend.
Loads environment variables and provides application-wide settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # Session owner used when the frontend sends no X-User-Id header
    DEFAULT_USER_ID: str = "demo"

    # Backend used for model identifiers that map to nothing known
    DEFAULT_BACKEND: str = "openai"

    # OpenAI Configuration
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4o"

    # Anthropic Configuration
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_BASE_URL: str = "https://api.anthropic.com"
    ANTHROPIC_MODEL: str = "claude-3-7-sonnet-20250219"
    ANTHROPIC_VERSION: str = "2023-06-01"

    # Ollama Configuration
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_LLM_MODEL: str = "qwen2.5:3b"

    # Timeouts (seconds)
    LLM_TIMEOUT: int = 300  # one provider HTTP call
    GENERATION_TIMEOUT: int = 600  # one whole iteration task

    # Scoring
    WORDS_PER_MINUTE: int = 150

    # Requested iteration count bounds for a script
    MIN_ITERATIONS: int = 1
    MAX_ITERATIONS: int = 4

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def get_allowed_origins(self) -> List[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]


# Global settings instance
settings = Settings()
