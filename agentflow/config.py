"""
Configuration settings for AgentFlow.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    APP_NAME: str = "AgentFlow"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8787
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "https://agentflow.pages.dev"]

    # Execution engine
    MAX_NODE_VISITS: int = 1000  # Ceiling on node executions per run
    NODE_TIMEOUT_SECONDS: float = 300.0
    NODE_MAX_RETRIES: int = 0
    NODE_RETRY_BACKOFF_SECONDS: float = 0.5
    SUBSCRIBER_QUEUE_SIZE: int = 1000

    # Execution log (empty = in-memory)
    EXECUTION_DB_PATH: Optional[str] = None

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Inference (Cloudflare Workers AI)
    DEFAULT_MODEL: str = "@cf/meta/llama-3.3-70b-instruct-fp8-fast"
    DEFAULT_TEMPERATURE: float = 0.7
    LLM_SYSTEM_PROMPT: str = "You are a helpful AI assistant in a workflow automation system."
    WORKERS_AI_BASE_URL: str = "https://api.cloudflare.com/client/v4"
    CLOUDFLARE_ACCOUNT_ID: Optional[str] = None
    CLOUDFLARE_API_TOKEN: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
