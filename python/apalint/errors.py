"""
Error taxonomy for apalint.

Every error keeps its context as attributes so callers (and structlog)
can report it without parsing the message.
"""

from typing import Optional


class ApalintError(Exception):
    """Base class for all apalint errors."""


class InvalidArchive(ApalintError):
    """Input bytes are not a ZIP container holding word/document.xml."""

    def __init__(self, message: str, buffer_length: int = 0, filename: Optional[str] = None):
        super().__init__(message)
        self.buffer_length = buffer_length
        self.filename = filename


class MalformedXML(ApalintError):
    """A document part failed to parse. Only raised in strict extraction."""

    def __init__(self, part: str, detail: str):
        super().__init__(f"Malformed XML in {part}: {detail}")
        self.part = part
        self.detail = detail


class NotFound(ApalintError):
    """A DocumentModel operation referenced an unknown paragraph or issue id."""

    def __init__(self, kind: str, item_id: str, document_id: Optional[str] = None):
        super().__init__(f"{kind.capitalize()} not found: {item_id}")
        self.kind = kind
        self.item_id = item_id
        self.document_id = document_id


class UnsupportedFix(ApalintError):
    """The fix applier was asked for an action it does not know."""

    def __init__(self, fix_action: str):
        super().__init__(f"Unsupported fix action: {fix_action}")
        self.fix_action = fix_action
