"""Card generation pipeline orchestration."""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from cache import SnapshotCache
from config import AppConfig
from console import Reporter
from extractor import CardGenerator, ParseError, recover
from gdocs import DocsClient
from locator import read_local_document
from result import CardBatch
from schemas import NormalizedDocument


@dataclass
class PipelineMetrics:
    """Metrics collected during one run."""
    document_chars: int = 0
    reply_chars: int = 0
    cards_valid: int = 0
    cards_invalid: int = 0
    duration_seconds: float = 0.0
    document_source: str = ""


@dataclass
class PipelineResult:
    document: NormalizedDocument
    batch: CardBatch
    metrics: PipelineMetrics
    warnings: List[str] = field(default_factory=list)

    @property
    def cards(self):
        return self.batch.valid

    @property
    def is_partial(self) -> bool:
        """Some cards were usable, some were not."""
        return self.batch.is_partial


class PipelineError(Exception):
    """Raised when a run produced nothing usable."""
    def __init__(self, message: str, metrics: Optional[PipelineMetrics] = None):
        super().__init__(message)
        self.metrics = metrics


class CardPipeline:
    """document -> normalized text -> completion reply -> validated cards.

    Steps run strictly in sequence; the first failing step ends the run.
    """

    def __init__(
        self,
        config: AppConfig,
        reporter: Optional[Reporter] = None,
        docs_client: Optional[DocsClient] = None,
        generator: Optional[CardGenerator] = None,
        cache: Optional[SnapshotCache] = None,
    ):
        self.config = config
        self.reporter = reporter or Reporter(verbose=config.verbose)
        self.cache = cache or SnapshotCache(config.cache_dir, self.reporter.child("Cache"))
        self._docs_client = docs_client
        self._generator = generator
        self.metrics = PipelineMetrics()

    @property
    def docs_client(self) -> DocsClient:
        if self._docs_client is None:
            self._docs_client = DocsClient(
                self.config.require_document(),
                self.config.retry,
                self.reporter,
                cache=self.cache,
            )
        return self._docs_client

    @property
    def generator(self) -> CardGenerator:
        if self._generator is None:
            self._generator = CardGenerator(
                self.config.require_completion(),
                self.config.retry,
                self.reporter,
            )
        return self._generator

    def read_document(self, local_path: Optional[str] = None) -> NormalizedDocument:
        """Read from Google Docs, or straight from a local markdown file when asked."""
        if local_path is not None:
            document = read_local_document(
                local_path or self.config.docs.local_markdown_path,
                self.reporter.child("Local"),
            )
            self.cache.save_document(document)
            self.reporter.success(f"Local markdown file read successfully: {document.title}")
        else:
            document = self.docs_client.read_document()

        self.metrics.document_chars = len(document.normalized_text)
        self.metrics.document_source = document.source
        return document

    def load_document(self, path: Optional[str] = None) -> NormalizedDocument:
        """Normalized document from a snapshot (latest by default)."""
        document = self.cache.load_document(Path(path) if path else None)
        self.metrics.document_chars = len(document.normalized_text)
        self.metrics.document_source = document.source
        return document

    def generate(self, document: NormalizedDocument) -> CardBatch:
        """Completion call plus recovery; the raw reply is always snapshotted."""
        raw_reply = self.generator.request_cards(document.normalized_text)
        self.metrics.reply_chars = len(raw_reply)
        saved = self.cache.save_reply(raw_reply)
        try:
            return self.recover(raw_reply)
        except ParseError:
            if saved:
                self.reporter.error(f"Reply kept for inspection at: {self.cache.latest_reply_path}")
            raise

    def recover(self, raw_reply: str) -> CardBatch:
        reporter = self.reporter.child("Recover")
        batch = recover(raw_reply, reporter)

        self.metrics.cards_valid = len(batch.valid)
        self.metrics.cards_invalid = len(batch.invalid)
        if batch.is_empty:
            raise PipelineError(
                f"No valid cards recovered ({batch.invalid_summary() or 'reply was an empty array'})",
                metrics=self.metrics,
            )

        self.cache.save_cards(batch.valid)
        reporter.success(f"Recovered {len(batch.valid)} card(s)")
        return batch

    def run(self, local_path: Optional[str] = None) -> PipelineResult:
        """Execute the full pipeline."""
        start_time = time.time()
        try:
            self.reporter.step("Reading document", 1, 2)
            document = self.read_document(local_path)

            self.reporter.step("Generating cards", 2, 2)
            batch = self.generate(document)
        finally:
            self.metrics.duration_seconds = time.time() - start_time

        return PipelineResult(
            document=document,
            batch=batch,
            metrics=self.metrics,
            warnings=batch.warnings(),
        )

    def close(self) -> None:
        if self._docs_client is not None:
            self._docs_client.close()
