"""Local markdown fallback for documents the remote API refuses to serve."""

import os
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from console import Reporter
from parser import clean_title, extract_title, normalize
from schemas import NormalizedDocument
from retry import status_code_of

DEFAULT_SEARCH_PATHS = (".", "docs", "documents", "markdown", "content", ".cache")

SKIP_DIRECTORIES = frozenset({
    "node_modules", "vendor", "venv", "env", "__pycache__", "site-packages", "dist", "build",
})

MARKDOWN_EXTENSION = ".md"

PERMISSION_PHRASES = (
    "permission denied",
    "access denied",
    "forbidden",
    "insufficient permissions",
)


class LocalDocumentNotFound(FileNotFoundError):
    """No local markdown candidate could be found."""


def is_permission_error(error: BaseException) -> bool:
    """True for 403-class failures, whatever layer reported them."""
    if status_code_of(error) == 403:
        return True
    if getattr(error, "code", None) in (403, "403"):
        return True
    message = str(error).lower()
    return any(phrase in message for phrase in PERMISSION_PHRASES)


def _scan(directory: Path) -> List[Path]:
    found = []
    try:
        entries = sorted(os.scandir(directory), key=lambda e: e.name)
    except OSError:
        return found
    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            if entry.name.startswith(".") or entry.name in SKIP_DIRECTORIES:
                continue
            found.extend(_scan(Path(entry.path)))
        elif entry.is_file() and entry.name.lower().endswith(MARKDOWN_EXTENSION):
            found.append(Path(entry.path))
    return found


def find_markdown_files(
    search_paths: Iterable[str] = DEFAULT_SEARCH_PATHS,
    root: Optional[Path] = None,
) -> List[Tuple[Path, float]]:
    """All markdown files under the search paths, newest first."""
    root = Path(root) if root is not None else Path.cwd()
    seen = set()
    candidates = []
    for search_path in search_paths:
        directory = root / search_path
        if not directory.is_dir():
            continue
        for path in _scan(directory):
            key = path.resolve()
            if key in seen:
                continue
            seen.add(key)
            candidates.append((path, path.stat().st_mtime))

    # stable sort keeps discovery order between files with equal mtimes
    candidates.sort(key=lambda item: item[1], reverse=True)
    return candidates


def locate(
    explicit_path: Optional[str] = None,
    search_paths: Iterable[str] = DEFAULT_SEARCH_PATHS,
    root: Optional[Path] = None,
    reporter: Optional[Reporter] = None,
) -> Optional[Path]:
    """Pick the local markdown file to use, or None when there is none."""
    if explicit_path:
        path = Path(explicit_path)
        if path.is_file():
            if reporter:
                reporter.info(f"Using configured local markdown file: {path}")
            return path
        if reporter:
            reporter.warning(f"Configured local markdown file not found: {path}")

    candidates = find_markdown_files(search_paths, root)
    if not candidates:
        return None

    if reporter:
        reporter.debug(f"Found {len(candidates)} markdown file(s), using the most recent")
    return candidates[0][0]


def load_local_document(path: Path) -> NormalizedDocument:
    content = Path(path).read_text(encoding="utf-8")
    title = clean_title(extract_title(content) or Path(path).stem)
    return NormalizedDocument(
        title=title,
        raw_text=content,
        normalized_text=normalize(title, content),
        source="local_markdown",
        path=str(path),
    )


def read_local_document(
    explicit_path: Optional[str] = None,
    reporter: Optional[Reporter] = None,
    root: Optional[Path] = None,
) -> NormalizedDocument:
    """Locate and normalize a local markdown substitute for the remote document."""
    if reporter:
        reporter.info("Searching for local markdown files...")
    path = locate(explicit_path, root=root, reporter=reporter)
    if path is None:
        raise LocalDocumentNotFound(
            "No local markdown files found. Put a .md file in the current directory "
            "(or docs/, documents/, markdown/, content/) or set LOCAL_MARKDOWN_PATH."
        )
    if reporter:
        reporter.info(f"Using local markdown file: {path}")
    return load_local_document(path)
