import json
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from console import Reporter
from parser import clean_title, extract_title, normalize
from schemas import NormalizedDocument, StructuredCard

DOCUMENT_PREFIX = "source_doc"
REPLY_PREFIX = "completion_reply"
CARDS_PREFIX = "cards"


class SnapshotCache:
    """Timestamped snapshots plus an overwritten `*_latest` copy of each.

    The latest copy is what the next command reads by default, so the most
    recent run is always found under a fixed name.
    """

    def __init__(self, directory: str = ".cache", reporter: Optional[Reporter] = None):
        self.directory = Path(directory)
        self.reporter = reporter or Reporter(prefix="Cache")

    def latest_path(self, prefix: str, suffix: str) -> Path:
        return self.directory / f"{prefix}_latest{suffix}"

    @property
    def latest_document_path(self) -> Path:
        return self.latest_path(DOCUMENT_PREFIX, ".md")

    @property
    def latest_reply_path(self) -> Path:
        return self.latest_path(REPLY_PREFIX, ".txt")

    @property
    def latest_cards_path(self) -> Path:
        return self.latest_path(CARDS_PREFIX, ".json")

    def _write(self, prefix: str, suffix: str, content: str) -> Optional[Path]:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
            path = self.directory / f"{prefix}_{timestamp}{suffix}"
            path.write_text(content, encoding="utf-8")
            self.latest_path(prefix, suffix).write_text(content, encoding="utf-8")
        except OSError as e:
            # a failed snapshot never fails the run
            self.reporter.warning(f"Failed to write {prefix} snapshot to {self.directory}: {e}")
            return None
        self.reporter.debug(f"Snapshot saved to: {path}")
        return path

    def save_document(self, document: NormalizedDocument) -> Optional[Path]:
        return self._write(DOCUMENT_PREFIX, ".md", document.normalized_text)

    def save_reply(self, raw_reply: str) -> Optional[Path]:
        return self._write(REPLY_PREFIX, ".txt", raw_reply)

    def save_cards(self, cards: List[StructuredCard]) -> Optional[Path]:
        payload = [card.to_json_dict() for card in cards]
        return self._write(CARDS_PREFIX, ".json", json.dumps(payload, indent=2, ensure_ascii=False))

    def load_document(self, path: Optional[Path] = None) -> NormalizedDocument:
        """Read a normalized document snapshot (latest by default)."""
        path = Path(path) if path else self.latest_document_path
        if not path.exists():
            raise FileNotFoundError(
                f"Document snapshot not found: {path}. Run the 'read' command first."
            )
        text = path.read_text(encoding="utf-8")
        title = clean_title(extract_title(text) or path.stem)
        return NormalizedDocument(
            title=title,
            raw_text=text,
            normalized_text=normalize(title, text),
            source="cache",
            path=str(path),
        )

    def load_cards(self, path: Optional[Path] = None) -> List[StructuredCard]:
        path = Path(path) if path else self.latest_cards_path
        if not path.exists():
            raise FileNotFoundError(f"Cards snapshot not found: {path}")
        data = json.loads(path.read_text(encoding="utf-8"))
        return [StructuredCard.model_validate(item) for item in data]
