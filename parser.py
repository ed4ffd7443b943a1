import re
from typing import Any, Dict, List, Optional

from schemas import (
    Container, DocumentNode, ListMarker, NormalizedDocument, Paragraph, Table, TableCell,
    TableRow, TextRun,
)

UNTITLED = "Untitled Document"
HEADING_STYLE_PATTERN = re.compile(r"^HEADING_(\d)$")


# ---------------------------------------------------------------------------
# Tree walker
# ---------------------------------------------------------------------------

def flatten(node) -> str:
    """Flatten a document tree into markdown-like text.

    Children are flattened first, then the parent adds its own decoration
    (heading hashes, bullet dash, table pipes). Output depends only on the
    tree, so the same tree always yields the same text.
    """
    if isinstance(node, TextRun):
        return node.text or ""
    if isinstance(node, Paragraph):
        return _flatten_paragraph(node)
    if isinstance(node, Table):
        return _flatten_table(node)
    if isinstance(node, ListMarker):
        return _flatten_list_marker(node)
    if isinstance(node, Container):
        return _flatten_children(node.children)
    return ""


def _flatten_children(children: Optional[List[DocumentNode]]) -> str:
    return "".join(flatten(child) for child in children or [])


def _flatten_paragraph(paragraph: Paragraph) -> str:
    text = _flatten_children(paragraph.children)
    if paragraph.heading_level:
        text = "#" * paragraph.heading_level + " " + text
    if paragraph.is_bullet:
        text = "- " + text
    return text + "\n"


def _flatten_table(table: Table) -> str:
    if not table.rows:
        return ""
    lines = []
    for row in table.rows:
        cells = [_flatten_children(cell.children).strip() for cell in row.cells]
        lines.append("| " + " | ".join(cells) + " |\n")
    return "".join(lines) + "\n"


def _flatten_list_marker(marker: ListMarker) -> str:
    if marker.nesting_level is None:
        return ""
    return "  " * marker.nesting_level + "- "


# ---------------------------------------------------------------------------
# Docs API payload -> tree
# ---------------------------------------------------------------------------

def _heading_level(paragraph: Dict[str, Any]) -> Optional[int]:
    style = (paragraph.get("paragraphStyle") or {}).get("namedStyleType") or ""
    match = HEADING_STYLE_PATTERN.match(style)
    if not match:
        return None
    level = int(match.group(1))
    return level if 1 <= level <= 6 else None


def _build_paragraph(paragraph: Dict[str, Any]) -> Paragraph:
    return Paragraph(
        children=[_build_element(e) for e in paragraph.get("elements") or []],
        heading_level=_heading_level(paragraph),
        is_bullet=bool(paragraph.get("bullet")),
    )


def _build_table(table: Dict[str, Any]) -> Table:
    rows = []
    for row in table.get("tableRows") or []:
        cells = [
            TableCell(children=[_build_element(e) for e in cell.get("content") or []])
            for cell in row.get("tableCells") or []
        ]
        rows.append(TableRow(cells=cells))
    return Table(rows=rows)


def _build_list_marker(list_element: Dict[str, Any]) -> ListMarker:
    levels = (list_element.get("listProperties") or {}).get("nestingLevels")
    if levels is None:
        return ListMarker()
    first = levels[0] if levels and isinstance(levels[0], dict) else {}
    return ListMarker(nesting_level=first.get("nestingLevel") or 0)


def _build_element(element: Any) -> DocumentNode:
    """Convert one structural element; every absent field becomes empty."""
    if not isinstance(element, dict):
        return Container()

    parts: List[DocumentNode] = []
    if isinstance(element.get("textRun"), dict):
        parts.append(TextRun(text=element["textRun"].get("content") or ""))
    if isinstance(element.get("paragraph"), dict):
        parts.append(_build_paragraph(element["paragraph"]))
    if isinstance(element.get("table"), dict):
        parts.append(_build_table(element["table"]))
    if isinstance(element.get("list"), dict):
        parts.append(_build_list_marker(element["list"]))
    if isinstance(element.get("tableOfContents"), dict):
        parts.append(Container(children=[
            _build_element(e) for e in element["tableOfContents"].get("content") or []
        ]))
    if isinstance(element.get("elements"), list):
        parts.append(Container(children=[_build_element(e) for e in element["elements"]]))

    if len(parts) == 1:
        return parts[0]
    return Container(children=parts)


def build_tree(payload: Dict[str, Any]) -> Container:
    """Build the document tree from a `documents.get` response body."""
    content = ((payload or {}).get("body") or {}).get("content") or []
    return Container(children=[_build_element(element) for element in content])


def document_title(payload: Dict[str, Any]) -> str:
    return (payload or {}).get("title") or UNTITLED


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

def clean_title(title: Optional[str]) -> str:
    title = re.sub(r"\s+", " ", title or "").strip()
    return title or UNTITLED


def normalize(title: str, text: str) -> str:
    """Tidy whitespace and make sure the text opens with `# {title}`.

    Normalizing already-normalized text with the same title is a no-op. An
    empty body yields just `# {title}` without the blank line that separates
    heading and body, so that property holds for empty documents too.
    """
    title = clean_title(title)

    normalized = text or ""
    normalized = re.sub(r"\n{3,}", "\n\n", normalized)
    normalized = re.sub(r"[ \t]+", " ", normalized)
    normalized = re.sub(r"\n[ \t]+", "\n", normalized)
    # whitespace-only lines removed above can leave new runs of blank lines
    normalized = re.sub(r"\n{3,}", "\n\n", normalized)
    normalized = normalized.strip()

    heading = f"# {title}"
    if normalized.startswith(heading):
        return normalized
    if not normalized:
        return heading
    return f"{heading}\n\n{normalized}"


def extract_title(markdown: str) -> Optional[str]:
    """Text of the first top-level `# ` heading, if any."""
    match = re.search(r"^#[ \t]+(.+)$", markdown or "", re.MULTILINE)
    if match:
        title = match.group(1).strip()
        return title or None
    return None


def convert_to_markdown(payload: Dict[str, Any]) -> NormalizedDocument:
    """Flatten and normalize a Docs API payload in one go."""
    title = clean_title(document_title(payload))
    raw_text = flatten(build_tree(payload))
    return NormalizedDocument(
        title=title,
        raw_text=raw_text,
        normalized_text=normalize(title, raw_text),
        source="google_docs",
    )
