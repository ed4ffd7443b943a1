from typing import Annotated, List, Optional, Literal, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


# 1. DOCUMENT TREE (read-only, produced from the document API payload)
class TextRun(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text_run"] = "text_run"
    text: str = ""


class ListMarker(BaseModel):
    """List bullet placeholder; indented by nesting level when one is known."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["list_marker"] = "list_marker"
    nesting_level: Optional[int] = Field(None, ge=0)


class Paragraph(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["paragraph"] = "paragraph"
    children: List["DocumentNode"] = Field(default_factory=list)
    heading_level: Optional[int] = Field(None, ge=1, le=6, description="1-6 for HEADING_n styles")
    is_bullet: bool = False


class TableCell(BaseModel):
    model_config = ConfigDict(frozen=True)

    children: List["DocumentNode"] = Field(default_factory=list)


class TableRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    cells: List[TableCell] = Field(default_factory=list)


class Table(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["table"] = "table"
    rows: List[TableRow] = Field(default_factory=list)


class Container(BaseModel):
    """Generic grouping node (document body, nested elements, table of contents)."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["container"] = "container"
    children: List["DocumentNode"] = Field(default_factory=list)


DocumentNode = Annotated[
    Union[TextRun, Paragraph, Table, ListMarker, Container],
    Field(discriminator="kind"),
]

Paragraph.model_rebuild()
TableCell.model_rebuild()
TableRow.model_rebuild()
Table.model_rebuild()
Container.model_rebuild()


# 2. NORMALIZED DOCUMENT
class NormalizedDocument(BaseModel):
    """A document read once and normalized; `normalized_text` starts with `# {title}`."""
    model_config = ConfigDict(frozen=True)

    title: str
    raw_text: str
    normalized_text: str
    source: Literal["google_docs", "local_markdown", "cache"] = "google_docs"
    path: Optional[str] = Field(None, description="Local file the document was read from, if any")


# 3. CARDS
CardPriority = Literal[
    "Muito Baixa", "Baixa", "Média", "Alta", "Muito Alta",
    "Lowest", "Low", "Medium", "High", "Highest",
]

PRIORITY_LABELS: List[str] = list(CardPriority.__args__)

SUMMARY_MAX_LENGTH = 80


class StructuredCard(BaseModel):
    """One unit of work recovered from the completion reply (BDD style)."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    summary: str = Field(..., min_length=1, max_length=SUMMARY_MAX_LENGTH, description="Short story title")
    description: str = Field(..., min_length=1, description="Markdown description")
    acceptance_criteria: List[str] = Field(
        ...,
        alias="acceptanceCriteria",
        min_length=1,
        description="Given/When/Then statements, in order",
    )
    labels: Optional[List[str]] = None
    priority: Optional[CardPriority] = None
    story_points: Optional[Union[int, float]] = Field(None, alias="storyPoints")
    component: Optional[str] = None
    epic_link: Optional[str] = Field(None, alias="epicLink")
    linked_issues: Optional[List[str]] = Field(None, alias="linkedIssues")

    @field_validator("labels")
    @classmethod
    def _dedupe_labels(cls, labels: Optional[List[str]]) -> Optional[List[str]]:
        if labels is None:
            return None
        seen = []
        for label in labels:
            if label and label not in seen:
                seen.append(label)
        return seen

    def to_json_dict(self) -> dict:
        """camelCase dict, optional fields omitted when unset."""
        return self.model_dump(by_alias=True, exclude_none=True)
