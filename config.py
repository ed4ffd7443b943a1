import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from retry import RetryPolicy


class ConfigurationError(Exception):
    """Missing or unusable configuration. Fatal, never retried."""


DEFAULT_MODEL = "gpt-5"
DEFAULT_LANGUAGE = "Brazilian Portuguese"
DOCS_URL_PATTERN = re.compile(r"/document/d/([a-zA-Z0-9_-]+)")


def extract_document_id(value: str) -> str:
    """Accept either a bare document id or a full Google Docs URL."""
    value = (value or "").strip()
    if "docs.google.com" in value:
        match = DOCS_URL_PATTERN.search(value)
        if not match:
            raise ConfigurationError(f"Invalid Google Docs URL format: {value}")
        return match.group(1)
    return value


@dataclass(frozen=True)
class DocsConfig:
    """Where the source document lives and how to read it."""
    document_id: str = ""
    access_token: Optional[str] = None
    api_key: Optional[str] = None
    local_markdown_path: Optional[str] = None
    timeout: float = 30.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.access_token or self.api_key)


@dataclass(frozen=True)
class CompletionConfig:
    """Settings for the OpenAI-compatible completion endpoint."""
    api_key: str = ""
    base_url: Optional[str] = None
    model: str = DEFAULT_MODEL
    max_tokens: int = 4_000
    temperature: float = 0.3
    timeout: float = 90.0
    language: str = DEFAULT_LANGUAGE


@dataclass(frozen=True)
class AppConfig:
    docs: DocsConfig = field(default_factory=DocsConfig)
    completion: CompletionConfig = field(default_factory=CompletionConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    cache_dir: str = ".cache"
    verbose: bool = False

    def require_document(self) -> DocsConfig:
        """Docs settings, or ConfigurationError naming what to set."""
        if not self.docs.document_id:
            raise ConfigurationError(
                "No document configured. Set GOOGLE_DOCS_DOCUMENT_ID to a document id or URL."
            )
        if not self.docs.has_credentials:
            raise ConfigurationError(
                "No Google Docs credentials. Set GOOGLE_ACCESS_TOKEN or GOOGLE_API_KEY."
            )
        return self.docs

    def require_completion(self) -> CompletionConfig:
        if not self.completion.api_key:
            raise ConfigurationError(
                "No completion API key. Set OPENAI_API_KEY (and OPENAI_BASE_URL for a custom endpoint)."
            )
        return self.completion


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


def load_config(env_path: Optional[str] = ".env") -> AppConfig:
    """Build the configuration from the environment.

    Variables from `env_path` are loaded first without overriding anything
    already set in the process environment.
    """
    if env_path and Path(env_path).exists():
        load_dotenv(env_path, override=False)

    docs = DocsConfig(
        document_id=extract_document_id(os.getenv("GOOGLE_DOCS_DOCUMENT_ID", "")),
        access_token=os.getenv("GOOGLE_ACCESS_TOKEN") or None,
        api_key=os.getenv("GOOGLE_API_KEY") or None,
        local_markdown_path=os.getenv("LOCAL_MARKDOWN_PATH") or None,
        timeout=_env_number("GOOGLE_DOCS_TIMEOUT", 30.0, float),
    )

    completion = CompletionConfig(
        api_key=os.getenv("OPENAI_API_KEY", ""),
        base_url=os.getenv("OPENAI_BASE_URL") or None,
        model=os.getenv("OPENAI_MODEL") or DEFAULT_MODEL,
        max_tokens=_env_number("COMPLETION_MAX_TOKENS", 4_000, int),
        temperature=_env_number("COMPLETION_TEMPERATURE", 0.3, float),
        timeout=_env_number("COMPLETION_TIMEOUT", 90.0, float),
        language=os.getenv("CARDS_LANGUAGE") or DEFAULT_LANGUAGE,
    )

    try:
        retry = RetryPolicy(
            max_attempts=_env_number("RETRY_MAX_ATTEMPTS", 3, int),
            base_delay_ms=_env_number("RETRY_BASE_DELAY_MS", 1000, float),
            max_delay_ms=_env_number("RETRY_MAX_DELAY_MS", 10000, float),
            backoff_factor=_env_number("RETRY_BACKOFF_FACTOR", 2, float),
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid retry settings: {e}") from e

    return AppConfig(
        docs=docs,
        completion=completion,
        retry=retry,
        cache_dir=os.getenv("CACHE_DIR") or ".cache",
        verbose=_env_flag("EXTRACTOR_DEBUG"),
    )
