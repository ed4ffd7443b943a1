"""Google Docs document source."""

from typing import Any, Dict, Optional

import httpx

from cache import SnapshotCache
from config import ConfigurationError, DocsConfig
from console import Reporter
from locator import is_permission_error, read_local_document
from parser import convert_to_markdown, document_title
from retry import RetryPolicy
from schemas import NormalizedDocument

DOCS_API_URL = "https://docs.googleapis.com/v1/documents/{document_id}"


class DocsClient:
    """Fetches one document, flattens it, and falls back to local markdown
    when the API answers with a permission-class error.

    Example:
        client = DocsClient(config.require_document(), config.retry, reporter)
        document = client.read_document()
    """

    def __init__(
        self,
        config: DocsConfig,
        policy: Optional[RetryPolicy] = None,
        reporter: Optional[Reporter] = None,
        cache: Optional[SnapshotCache] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        if not config.document_id:
            raise ConfigurationError("GOOGLE_DOCS_DOCUMENT_ID is not set")
        if not config.has_credentials:
            raise ConfigurationError("Set GOOGLE_ACCESS_TOKEN or GOOGLE_API_KEY to read Google Docs")

        self.config = config
        self.policy = policy or RetryPolicy()
        self.reporter = (reporter or Reporter()).child("Docs")
        self.cache = cache
        self._http = http_client or httpx.Client(timeout=config.timeout)

    @property
    def url(self) -> str:
        return DOCS_API_URL.format(document_id=self.config.document_id)

    def _request_kwargs(self) -> Dict[str, Any]:
        headers = {"Accept": "application/json"}
        params = {}
        if self.config.access_token:
            headers["Authorization"] = f"Bearer {self.config.access_token}"
        else:
            params["key"] = self.config.api_key
        return {"headers": headers, "params": params}

    def _get_once(self) -> Dict[str, Any]:
        self.reporter.api_call("GET", f"docs/v1/documents/{self.config.document_id}")
        response = self._http.get(self.url, **self._request_kwargs())
        self.reporter.api_call("GET", f"docs/v1/documents/{self.config.document_id}", response.status_code)
        response.raise_for_status()
        return response.json()

    def fetch(self) -> Dict[str, Any]:
        """Raw `documents.get` payload, with retries on transient failures."""
        return self.policy.execute(self._get_once, self.reporter)

    def document_info(self) -> Dict[str, str]:
        payload = self.fetch()
        return {"title": document_title(payload), "document_id": self.config.document_id}

    def read_document(self) -> NormalizedDocument:
        """Read and normalize the configured document.

        Permission-class failures switch to the local markdown fallback;
        every other failure propagates unchanged.
        """
        self.reporter.info(f"Reading Google Docs document: {self.config.document_id}")
        try:
            payload = self.fetch()
        except Exception as e:
            if not is_permission_error(e):
                raise
            self.reporter.warning(
                "Permission denied accessing Google Docs. Searching for local markdown file..."
            )
            document = read_local_document(self.config.local_markdown_path, self.reporter)
        else:
            document = convert_to_markdown(payload)

        if self.cache:
            self.cache.save_document(document)

        self.reporter.success(f"Document read successfully: {document.title}")
        self.reporter.info(f"Content length: {len(document.normalized_text):,} characters")
        return document

    def close(self) -> None:
        self._http.close()
