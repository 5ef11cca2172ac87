"""Support Chat — settings loaded from the environment."""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

PROVIDERS = ("openai", "gemini", "huggingface")

DEFAULT_MODELS: Dict[str, str] = {
    "openai": "gpt-3.5-turbo",
    "gemini": "gemini-1.5-flash",
    "huggingface": "microsoft/DialoGPT-medium",
}

DEFAULT_DB_PATH = os.path.join(os.path.dirname(__file__), "..", "chat.db")
DEFAULT_HUGGINGFACE_API_URL = "https://router.huggingface.co/hf-inference/models"


@dataclass
class Settings:
    llm_provider: str = "openai"
    llm_model: Optional[str] = None
    max_tokens: int = 500
    use_mock_ai: bool = False
    mock_delay_seconds: float = 1.0
    max_chat_history: int = 10
    llm_timeout_seconds: float = 30.0
    openai_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    huggingface_api_key: Optional[str] = None
    huggingface_api_url: str = DEFAULT_HUGGINGFACE_API_URL
    db_path: str = DEFAULT_DB_PATH
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    port: int = 3000
    log_level: str = "INFO"

    def __post_init__(self):
        self.llm_provider = self.llm_provider.lower()
        if self.llm_provider not in PROVIDERS:
            raise ValueError(
                f"Unknown LLM_PROVIDER {self.llm_provider!r}; expected one of {', '.join(PROVIDERS)}"
            )

    @property
    def model(self) -> str:
        """Configured model, or the selected provider's default."""
        return self.llm_model or DEFAULT_MODELS[self.llm_provider]

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_secret(name: str) -> Optional[str]:
    # An empty value in .env counts as unset.
    return os.getenv(name) or None


def load_settings() -> Settings:
    origins = os.getenv("CORS_ORIGINS", "*")
    return Settings(
        llm_provider=os.getenv("LLM_PROVIDER", "openai"),
        llm_model=os.getenv("LLM_MODEL") or None,
        max_tokens=int(os.getenv("MAX_TOKENS", "500")),
        use_mock_ai=_env_bool("USE_MOCK_AI"),
        mock_delay_seconds=float(os.getenv("MOCK_DELAY_SECONDS", "1.0")),
        max_chat_history=int(os.getenv("MAX_CHAT_HISTORY", "10")),
        llm_timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "30")),
        openai_api_key=_env_secret("OPENAI_API_KEY"),
        gemini_api_key=_env_secret("GEMINI_API_KEY"),
        huggingface_api_key=_env_secret("HUGGINGFACE_API_KEY"),
        huggingface_api_url=os.getenv("HUGGINGFACE_API_URL", DEFAULT_HUGGINGFACE_API_URL),
        db_path=os.getenv("CHAT_DB_PATH") or os.getenv("DB_PATH") or DEFAULT_DB_PATH,
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        port=int(os.getenv("PORT", "3000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
