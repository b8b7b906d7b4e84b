from apalint.document.model import (
    DocumentModel,
    DocumentSnapshot,
    DocumentStatistics,
    FormattingModel,
    IssueTracker,
    StructureModel,
)
from apalint.document.paragraph import ParagraphFormatting, ParagraphModel, RunModel

__all__ = [
    "DocumentModel",
    "DocumentSnapshot",
    "DocumentStatistics",
    "FormattingModel",
    "IssueTracker",
    "StructureModel",
    "ParagraphFormatting",
    "ParagraphModel",
    "RunModel",
]
