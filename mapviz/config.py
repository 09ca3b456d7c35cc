"""Runtime configuration read from the environment (and ``.env``).

API keys never leave the server: the browser only ever sees the public
Mapbox token through ``/api/mapbox-token``.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

try:
    load_dotenv()
except Exception:
    pass  # Python 3.14+ compat

# Values shipped in example .env files; treated as unset
PLACEHOLDER_VALUES = {"", "YOUR_MAPBOX_TOKEN", "YOUR_GOOGLE_API_KEY", "YOUR_GROQ_API_KEY"}

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:8000",
]


def _env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name, default)
    if value is None or value.strip() in PLACEHOLDER_VALUES:
        return default if default not in PLACEHOLDER_VALUES else None
    return value.strip()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[CONFIG] {name}={raw!r} is not a number, using {default}")
        return default


@dataclass
class Settings:
    """Server settings. Build with ``Settings.from_env()`` or directly in tests."""

    mapbox_token: str | None = None
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash"
    groq_api_key: str | None = None
    groq_model: str = "llama-3.1-8b-instant"
    use_mock_data: bool = False
    redis_url: str | None = None
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    geocode_timeout: float = 4.0
    directions_timeout: float = 8.0
    llm_timeout: float = 5.0
    llm_proxy_timeout: float = 20.0

    @classmethod
    def from_env(cls) -> "Settings":
        origins = _env("CORS_ORIGINS")
        settings = cls(
            mapbox_token=_env("MAPBOX_TOKEN"),
            gemini_api_key=_env("GEMINI_API_KEY") or _env("GOOGLE_API_KEY"),
            gemini_model=_env("GEMINI_MODEL", "gemini-2.0-flash") or "gemini-2.0-flash",
            groq_api_key=_env("GROQ_API_KEY"),
            groq_model=_env("GROQ_MODEL", "llama-3.1-8b-instant") or "llama-3.1-8b-instant",
            use_mock_data=(os.getenv("USE_MOCK_DATA", "").strip().lower() == "true"),
            redis_url=_env("REDIS_URL"),
            cors_origins=(
                [o.strip() for o in origins.split(",") if o.strip()]
                if origins
                else list(DEFAULT_CORS_ORIGINS)
            ),
            geocode_timeout=_env_float("GEOCODE_TIMEOUT", 4.0),
            directions_timeout=_env_float("DIRECTIONS_TIMEOUT", 8.0),
            llm_timeout=_env_float("LLM_TIMEOUT", 5.0),
        )
        settings.log_status()
        return settings

    @property
    def mapbox_configured(self) -> bool:
        return bool(self.mapbox_token)

    @property
    def llm_configured(self) -> bool:
        return bool(self.gemini_api_key or self.groq_api_key)

    def log_status(self) -> None:
        if not self.mapbox_token:
            logger.error("[CONFIG] MAPBOX_TOKEN is not set; geocoding and directions will fail")
        elif not self.mapbox_token.startswith("pk."):
            logger.warning("[CONFIG] MAPBOX_TOKEN doesn't start with 'pk.'; make sure it's a public token")
        else:
            logger.info(f"[CONFIG] MAPBOX_TOKEN configured ({self.mapbox_token[:8]}...)")

        if not self.llm_configured:
            logger.warning("[CONFIG] No GEMINI_API_KEY or GROQ_API_KEY; NLP will use fallback rules")
        if self.use_mock_data:
            logger.info("[CONFIG] USE_MOCK_DATA enabled; LLM calls return canned results")


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
