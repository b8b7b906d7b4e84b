import uuid
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, model_validator


class Severity(str, Enum):
    CRITICAL = "Critical"
    MAJOR = "Major"
    MINOR = "Minor"


class Category(str, Enum):
    CITATIONS = "citations"
    REFERENCES = "references"
    FORMATTING = "formatting"
    STRUCTURE = "structure"
    TABLES = "tables"
    FIGURES = "figures"
    QUOTATIONS = "quotations"
    STATISTICAL = "statistical"


class FixAction(str, Enum):
    """
    Closed set of automated fix identifiers.
    Values are the identifiers exchanged with editors and fix services.
    """

    # Document formatting
    FIX_FONT = "fixFont"
    FIX_FONT_SIZE = "fixFontSize"
    FIX_LINE_SPACING = "fixLineSpacing"
    FIX_MARGINS = "fixMargins"
    FIX_INDENTATION = "fixIndentation"
    FIX_ALL_CAPS_HEADING = "fixAllCapsHeading"

    # Citations
    ADD_CITATION_COMMA = "addCitationComma"
    FIX_PARENTHETICAL_CONNECTOR = "fixParentheticalConnector"
    FIX_ET_AL_FORMATTING = "fixEtAlFormatting"
    ADD_PAGE_NUMBER = "addPageNumber"

    # References
    SORT_REFERENCES = "sortReferences"
    SORT_REFERENCES_BY_YEAR = "sortReferencesByYear"
    FIX_REFERENCE_INDENT = "fixReferenceIndent"
    FIX_REFERENCE_CONNECTOR = "fixReferenceConnector"
    FIX_AUTHOR_COMMA = "fixAuthorComma"
    FIX_AUTHOR_INITIALS = "fixAuthorInitials"
    FIX_PAGE_RANGE_DASH = "fixPageRangeDash"
    FIX_EDITION_FORMAT = "fixEditionFormat"
    REMOVE_PUBLISHER_LOCATION = "removePublisherLocation"
    REMOVE_RETRIEVED_FROM = "removeRetrievedFrom"
    ADD_REFERENCE_PERIOD = "addReferencePeriod"
    FORMAT_DOI = "formatDOI"
    FIX_BOOK_TITLE_CASE = "fixBookTitleCase"

    # Tables and figures
    FIX_TABLE_TITLE_CASE = "fixTableTitleCase"
    FIX_FIGURE_CAPTION_CASE = "fixFigureCaptionCase"
    FIX_TABLE_NOTE_FORMAT = "fixTableNoteFormat"
    REMOVE_TABLE_VERTICAL_LINES = "removeTableVerticalLines"

    # Quotations
    CONVERT_TO_BLOCK_QUOTE = "convertToBlockQuote"
    FIX_ELLIPSIS_FORMAT = "fixEllipsisFormat"
    ADD_SPACE_BEFORE_SIC = "addSpaceBeforeSic"
    REMOVE_ELLIPSIS_BRACKETS = "removeEllipsisBrackets"

    # Statistics
    FIX_STATISTIC_LEADING_ZERO = "fixStatisticLeadingZero"


class LocationType(str, Enum):
    PARAGRAPH = "paragraph"
    DOCUMENT = "document"


class IssueLocation(BaseModel):
    type: LocationType = LocationType.DOCUMENT
    paragraph_index: Optional[int] = None

    @classmethod
    def paragraph(cls, index: Optional[int]) -> "IssueLocation":
        if index is None:
            return cls(type=LocationType.DOCUMENT)
        return cls(type=LocationType.PARAGRAPH, paragraph_index=index)

    @classmethod
    def document(cls) -> "IssueLocation":
        return cls(type=LocationType.DOCUMENT)


class Issue(BaseModel):
    """
    A single APA compliance finding.

    When a rule can compute the exact substitution a fix performs it stores it
    in original_text / replacement_text; the fix applier uses them for
    text-level actions.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str
    description: str
    text: Optional[str] = Field(None, description="Offending excerpt, when there is one.")
    severity: Severity
    category: Category
    location: Optional[IssueLocation] = None
    has_fix: bool = False
    fix_action: Optional[FixAction] = None
    explanation: str = ""

    original_text: Optional[str] = None
    replacement_text: Optional[str] = None
    needs_reanalysis: bool = False

    @model_validator(mode="after")
    def _fix_consistency(self) -> "Issue":
        if self.has_fix and self.fix_action is None:
            raise ValueError(f"Issue '{self.title}' has has_fix=True but no fix_action")
        if self.fix_action is not None and not self.has_fix:
            raise ValueError(f"Issue '{self.title}' has fix_action but has_fix=False")
        return self

    @property
    def paragraph_index(self) -> Optional[int]:
        if self.location is None:
            return None
        return self.location.paragraph_index


# ---------------------------------------------------------------------------
# Paragraph change variants
# ---------------------------------------------------------------------------


class TextChange(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class FormattingChange(BaseModel):
    kind: Literal["formatting"] = "formatting"
    formatting: Dict[str, Any]


class RunsChange(BaseModel):
    kind: Literal["runs"] = "runs"
    runs: List[Any]


class IndexChange(BaseModel):
    kind: Literal["index"] = "index"
    index: int


ParagraphChange = Union[TextChange, FormattingChange, RunsChange, IndexChange]

_CHANGE_KEYS = ("text", "formatting", "runs", "index")


def changes_from_mapping(changes: Mapping[str, Any]) -> List[ParagraphChange]:
    """
    Convert a {"text": ..., "runs": ...} style mapping into change variants.
    Unknown keys are rejected rather than ignored.
    """
    unknown = set(changes) - set(_CHANGE_KEYS)
    if unknown:
        raise ValueError(f"Unknown paragraph change keys: {sorted(unknown)}")

    result: List[ParagraphChange] = []
    if "text" in changes:
        result.append(TextChange(text=changes["text"]))
    if "formatting" in changes:
        result.append(FormattingChange(formatting=changes["formatting"]))
    if "runs" in changes:
        result.append(RunsChange(runs=list(changes["runs"])))
    if "index" in changes:
        result.append(IndexChange(index=changes["index"]))
    return result
