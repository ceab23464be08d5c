"""
Engine settings read from the environment
"""

import os
from typing import Optional

from pydantic import BaseModel, Field


class EngineSettings(BaseModel):
    """Endpoints and defaults for the collaborator clients"""

    tool_proxy_url: str = "http://localhost:3100"
    connector_url: str = "http://localhost:3200"
    llm_api_url: str = "http://llamacpp-api:8080"
    llm_model: Optional[str] = None
    llm_api_key: Optional[str] = None
    http_timeout: float = Field(30.0, gt=0)
    default_delay: float = Field(5.0, ge=0)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            tool_proxy_url=os.getenv("WORKFLOW_TOOL_PROXY_URL", "http://localhost:3100"),
            connector_url=os.getenv("WORKFLOW_CONNECTOR_URL", "http://localhost:3200"),
            llm_api_url=os.getenv("LLM_API_URL", "http://llamacpp-api:8080"),
            llm_model=os.getenv("LLM_MODEL") or None,
            llm_api_key=os.getenv("LLM_API_KEY") or None,
            http_timeout=float(os.getenv("WORKFLOW_HTTP_TIMEOUT", "30")),
            default_delay=float(os.getenv("WORKFLOW_DEFAULT_DELAY", "5")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


_settings: Optional[EngineSettings] = None


def get_settings() -> EngineSettings:
    """Process-wide settings, loaded on first use"""
    global _settings
    if _settings is None:
        _settings = EngineSettings.from_env()
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
