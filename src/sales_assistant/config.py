"""
Configuration management for the sales voice assistant.

Loads environment variables and provides a strongly-typed configuration object.
Validates required keys at startup.
"""

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv
import structlog

load_dotenv()

logger = structlog.get_logger(__name__)


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


@dataclass(frozen=True)
class Config:
    """Strongly-typed configuration object."""

    # Server
    port: int = 7860
    log_level: str = "INFO"
    validate_model_on_startup: bool = True

    # LLM Provider (OpenAI/Groq)
    # - Default is OpenAI.
    # - Set LLM_PROVIDER=groq + GROQ_API_KEY/GROQ_MODEL to use Groq's OpenAI-compatible API.
    llm_provider: str = "openai"  # "openai" | "groq"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    support_model: str = "gpt-4o-mini"
    groq_api_key: str = ""
    groq_model: str = "llama-3.3-70b-versatile"

    # TTS
    # - openai: OpenAI Audio Speech API (voice selection is provider-side)
    # - http: JSON speech service returning base64 audio (honours voice ids)
    # - none: no audio, responses carry audio=null
    tts_provider: str = "openai"
    openai_tts_model: str = "tts-1"
    openai_tts_voice: str = "nova"
    tts_http_endpoint: str = ""
    tts_timeout_ms: int = 4000
    default_voice: str = "en-US-Wavenet-F"
    default_german_voice: str = "de-DE-Wavenet-B"

    # Corpus
    corpus_path: str = "data/sales_qa.json"

    # CRM sync (empty URL disables it)
    crm_webhook_url: str = ""
    crm_timeout_seconds: float = 5.0

    # Matching
    cache_max_size: int = 100
    cache_ttl_seconds: float = 300.0
    cache_min_similarity: float = 0.7
    partial_threshold: float = 0.6
    word_match_threshold: float = 0.4
    basic_category_threshold: float = 0.2
    basic_category_name: str = "Basic Sales Questions"
    early_accept_similarity: float = 0.7
    text_search_min_chars: int = 20
    scan_limit: int = 50

    # Pipeline timing (soft grace windows, seconds)
    db_grace_seconds: float = 1.0
    sentiment_timeout_seconds: float = 0.1
    highlights_grace_seconds: float = 0.25
    early_tts_min_words: int = 25
    early_tts_grace_seconds: float = 1.5

    # Generation
    sales_max_tokens: int = 250
    sales_temperature: float = 0.8
    support_max_tokens: int = 200
    support_temperature: float = 0.7
    max_history_turns: int = 5

    @property
    def llm_model(self) -> str:
        return self.groq_model if self.llm_provider == "groq" else self.openai_model

    def validate(self) -> None:
        """Validate that all required configuration is present."""
        missing = []

        provider = (self.llm_provider or "openai").strip().lower()
        if provider not in ("groq", "openai"):
            raise ConfigError(
                f"Invalid LLM_PROVIDER '{self.llm_provider}'. Expected 'openai' or 'groq'."
            )

        if provider == "openai":
            if not self.openai_api_key:
                missing.append("OPENAI_API_KEY")
            if not self.openai_model:
                missing.append("OPENAI_MODEL")

        if provider == "groq":
            if not self.groq_api_key:
                missing.append("GROQ_API_KEY")
            if not self.groq_model:
                missing.append("GROQ_MODEL")

        tts = (self.tts_provider or "openai").strip().lower()
        if tts not in ("openai", "http", "none"):
            raise ConfigError(
                f"Invalid TTS_PROVIDER '{self.tts_provider}'. Expected 'openai', 'http' or 'none'."
            )
        if tts == "openai" and not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if tts == "http" and not self.tts_http_endpoint:
            missing.append("TTS_HTTP_ENDPOINT")

        if missing:
            raise ConfigError(
                f"Missing required environment variables: {', '.join(sorted(set(missing)))}\n"
                "Please check your .env file."
            )

    def log_config(self) -> None:
        """Log configuration (without secrets)."""
        logger.info(
            "Configuration loaded",
            port=self.port,
            log_level=self.log_level,
            llm_provider=self.llm_provider,
            llm_model=self.llm_model,
            tts_provider=self.tts_provider,
            corpus_path=self.corpus_path,
            crm_sync_enabled=bool(self.crm_webhook_url),
            cache_max_size=self.cache_max_size,
            cache_ttl_seconds=self.cache_ttl_seconds,
            partial_threshold=self.partial_threshold,
            db_grace_seconds=self.db_grace_seconds,
            early_tts_min_words=self.early_tts_min_words,
            openai_key_set=bool(self.openai_api_key),
            groq_key_set=bool(self.groq_api_key),
        )


def _get_bool(key: str, default: bool = False) -> bool:
    """Get a boolean from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


def _get_int(key: str, default: int) -> int:
    """Get an integer from environment variable."""
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def _get_float(key: str, default: float) -> float:
    """Get a float from environment variable."""
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the application configuration.

    Uses lru_cache to ensure we only load config once.
    """
    config = Config(
        # Server
        port=_get_int("PORT", 7860),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        validate_model_on_startup=_get_bool("VALIDATE_MODEL_ON_STARTUP", True),

        # LLM Provider
        llm_provider=os.getenv("LLM_PROVIDER", "openai").strip().lower(),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        support_model=os.getenv("SUPPORT_MODEL", os.getenv("OPENAI_MODEL", "gpt-4o-mini")),
        groq_api_key=os.getenv("GROQ_API_KEY", ""),
        groq_model=os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile"),

        # TTS
        tts_provider=os.getenv("TTS_PROVIDER", "openai").strip().lower(),
        openai_tts_model=os.getenv("OPENAI_TTS_MODEL", "tts-1"),
        openai_tts_voice=os.getenv("OPENAI_TTS_VOICE", "nova"),
        tts_http_endpoint=os.getenv("TTS_HTTP_ENDPOINT", ""),
        tts_timeout_ms=_get_int("TTS_TIMEOUT_MS", 4000),
        default_voice=os.getenv("DEFAULT_VOICE", "en-US-Wavenet-F"),
        default_german_voice=os.getenv("DEFAULT_GERMAN_VOICE", "de-DE-Wavenet-B"),

        # Corpus
        corpus_path=os.getenv("CORPUS_PATH", "data/sales_qa.json"),

        # CRM
        crm_webhook_url=os.getenv("CRM_WEBHOOK_URL", ""),
        crm_timeout_seconds=_get_float("CRM_TIMEOUT_SECONDS", 5.0),

        # Matching
        cache_max_size=_get_int("MATCH_CACHE_MAX_SIZE", 100),
        cache_ttl_seconds=_get_float("MATCH_CACHE_TTL_SECONDS", 300.0),
        cache_min_similarity=_get_float("MATCH_CACHE_MIN_SIMILARITY", 0.7),
        partial_threshold=_get_float("MATCH_PARTIAL_THRESHOLD", 0.6),
        word_match_threshold=_get_float("MATCH_WORD_MATCH_THRESHOLD", 0.4),
        basic_category_threshold=_get_float("MATCH_BASIC_THRESHOLD", 0.2),
        basic_category_name=os.getenv("MATCH_BASIC_CATEGORY", "Basic Sales Questions"),
        early_accept_similarity=_get_float("MATCH_EARLY_ACCEPT", 0.7),
        text_search_min_chars=_get_int("MATCH_TEXT_SEARCH_MIN_CHARS", 20),
        scan_limit=_get_int("MATCH_SCAN_LIMIT", 50),

        # Pipeline timing
        db_grace_seconds=_get_float("PIPELINE_DB_GRACE_SECONDS", 1.0),
        sentiment_timeout_seconds=_get_float("PIPELINE_SENTIMENT_TIMEOUT_SECONDS", 0.1),
        highlights_grace_seconds=_get_float("PIPELINE_HIGHLIGHTS_GRACE_SECONDS", 0.25),
        early_tts_min_words=_get_int("PIPELINE_EARLY_TTS_MIN_WORDS", 25),
        early_tts_grace_seconds=_get_float("PIPELINE_EARLY_TTS_GRACE_SECONDS", 1.5),

        # Generation
        sales_max_tokens=_get_int("SALES_MAX_TOKENS", 250),
        sales_temperature=_get_float("SALES_TEMPERATURE", 0.8),
        support_max_tokens=_get_int("SUPPORT_MAX_TOKENS", 200),
        support_temperature=_get_float("SUPPORT_TEMPERATURE", 0.7),
        max_history_turns=_get_int("MAX_HISTORY_TURNS", 5),
    )

    return config


def init_config() -> Config:
    """
    Initialize and validate configuration.

    Call this at application startup to fail fast if config is invalid.
    """
    config = get_config()
    config.validate()
    config.log_config()
    return config
