from importlib.metadata import PackageNotFoundError, version

from apalint.document import DocumentModel, ParagraphModel, RunModel
from apalint.fixes import apply_fix
from apalint.ingest import extract_docx
from apalint.models import FixAction, Issue
from apalint.rules import ComplianceEngine, compliance_score

try:
    __version__ = version("apalint")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = [
    "ComplianceEngine",
    "DocumentModel",
    "FixAction",
    "Issue",
    "ParagraphModel",
    "RunModel",
    "apply_fix",
    "compliance_score",
    "extract_docx",
    "__version__",
]
