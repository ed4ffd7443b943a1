"""Shared fixtures: a reporter writing to memory and a retry policy that never sleeps."""

import io

import pytest

from console import Reporter
from retry import RetryPolicy


@pytest.fixture
def reporter():
    return Reporter(stream=io.StringIO(), error_stream=io.StringIO())


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fast_policy(sleeps):
    """Three attempts, jitter pinned to zero, sleeps recorded instead of taken."""
    return RetryPolicy(sleep=sleeps.append, jitter=lambda low, high: 0.0)


ENV_NAMES = (
    "GOOGLE_DOCS_DOCUMENT_ID", "GOOGLE_ACCESS_TOKEN", "GOOGLE_API_KEY", "LOCAL_MARKDOWN_PATH",
    "GOOGLE_DOCS_TIMEOUT", "OPENAI_API_KEY", "OPENAI_BASE_URL", "OPENAI_MODEL",
    "COMPLETION_MAX_TOKENS", "COMPLETION_TEMPERATURE", "COMPLETION_TIMEOUT", "CARDS_LANGUAGE",
    "RETRY_MAX_ATTEMPTS", "RETRY_BASE_DELAY_MS", "RETRY_MAX_DELAY_MS", "RETRY_BACKOFF_FACTOR",
    "CACHE_DIR", "EXTRACTOR_DEBUG",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Environment without any of the settings load_config reads."""
    # setenv first so values written by load_dotenv are undone after the test
    for name in ENV_NAMES:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch
