"""Configuration management for the Bloom chat backend."""
import os
from dataclasses import dataclass, field
from typing import List, Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Model Configuration
DEFAULT_CHAT_MODEL = "llama-3.3-70b-versatile"
DEFAULT_MAX_TOKENS = 2000
DEFAULT_TEMPERATURE = 0.7

# Conversation Configuration
HISTORY_LIMIT = 10  # turns loaded into context
TITLE_MAX_LENGTH = 40

# Gateway Configuration
GATEWAY_CONNECT_TIMEOUT = 10.0  # seconds

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:3001"


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, built once at startup and passed to each component."""
    groq_api_key: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    chat_model: str = DEFAULT_CHAT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    history_limit: int = HISTORY_LIMIT
    gateway_connect_timeout: float = GATEWAY_CONNECT_TIMEOUT
    port: int = 8000
    log_level: str = "INFO"
    log_format: str = "text"
    cors_origins: List[str] = field(
        default_factory=lambda: DEFAULT_CORS_ORIGINS.split(",")
    )

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from the environment (and .env, if present)."""
        return cls(
            groq_api_key=os.getenv("GROQ_API_KEY"),
            supabase_url=os.getenv("SUPABASE_URL"),
            # Service role key is needed to verify user tokens server-side
            supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_KEY"),
            chat_model=os.getenv("CHAT_MODEL", DEFAULT_CHAT_MODEL),
            max_tokens=int(os.getenv("CHAT_MAX_TOKENS", str(DEFAULT_MAX_TOKENS))),
            temperature=float(os.getenv("CHAT_TEMPERATURE", str(DEFAULT_TEMPERATURE))),
            history_limit=int(os.getenv("HISTORY_LIMIT", str(HISTORY_LIMIT))),
            gateway_connect_timeout=float(
                os.getenv("GATEWAY_CONNECT_TIMEOUT", str(GATEWAY_CONNECT_TIMEOUT))
            ),
            port=int(os.getenv("PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "text").lower(),
            cors_origins=[
                origin.strip()
                for origin in os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
                if origin.strip()
            ],
        )
