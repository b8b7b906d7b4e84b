"""
Editable document model.

DocumentModel owns its paragraphs (id -> ParagraphModel plus an explicit
order), document-level formatting, extracted structure, styles, the issue
tracker and a bounded change log. `version` increases on every successful
mutation. Mutations are not synchronized; callers serialize edits to a single
document.

Paragraph edits are copy-on-write: the stored ParagraphModel is replaced, never
mutated in place, so a snapshot's shallow copy of the paragraph map keeps the
old paragraphs intact.
"""

import copy
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

import structlog

from apalint.document.paragraph import FontSpec, Indentation, ParagraphModel, Spacing
from apalint.errors import NotFound
from apalint.models import Category, IndexChange, Issue, ParagraphChange, RunsChange, Severity, TextChange
from apalint.rules.engine import ComplianceEngine
from apalint.rules.scoring import compliance_score, severity_counts

logger = structlog.get_logger(__name__)

MAX_CHANGE_LOG = 100


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Document-level parts
# ---------------------------------------------------------------------------


@dataclass
class Margins:
    top: Optional[float] = None
    bottom: Optional[float] = None
    left: Optional[float] = None
    right: Optional[float] = None


@dataclass
class FormattingModel:
    font: FontSpec = field(default_factory=FontSpec)
    spacing: Spacing = field(default_factory=Spacing)
    margins: Margins = field(default_factory=Margins)
    indentation: Indentation = field(default_factory=Indentation)
    compliance: Optional[Dict[str, Any]] = None

    @classmethod
    def from_data(cls, data: Optional[Mapping[str, Any]]) -> "FormattingModel":
        data = data or {}
        font = data.get("font") or {}
        spacing = data.get("spacing") or {}
        margins = data.get("margins") or {}
        indentation = data.get("indentation") or {}
        return cls(
            font=FontSpec(family=font.get("family"), size=font.get("size")),
            spacing=Spacing(line=spacing.get("line"), before=spacing.get("before"),
                            after=spacing.get("after"), line_rule=spacing.get("line_rule")),
            margins=Margins(**{k: margins.get(k) for k in ("top", "bottom", "left", "right")}),
            indentation=Indentation(**{k: indentation.get(k) for k in ("first_line", "left", "right", "hanging")}),
            compliance=data.get("compliance"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["font"] = {"family": self.font.family, "size": self.font.size}
        return data


@dataclass
class StructureModel:
    """Structural facts from the last extraction. Plain lists of records."""

    headings: List[Dict[str, Any]] = field(default_factory=list)
    sections: List[Dict[str, Any]] = field(default_factory=list)
    citations: List[Dict[str, Any]] = field(default_factory=list)
    references: List[Dict[str, Any]] = field(default_factory=list)
    tables: List[Dict[str, Any]] = field(default_factory=list)
    figures: List[Dict[str, Any]] = field(default_factory=list)
    italicized_text: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_data(cls, data: Optional[Mapping[str, Any]]) -> "StructureModel":
        data = data or {}
        return cls(**{name: list(data.get(name) or []) for name in cls.__dataclass_fields__})

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(asdict(self))


@dataclass
class StylesModel:
    styles: List[Dict[str, Any]] = field(default_factory=list)
    default_style: Optional[Dict[str, Any]] = None

    @classmethod
    def from_data(cls, data: Optional[Mapping[str, Any]]) -> "StylesModel":
        data = data or {}
        return cls(styles=list(data.get("styles") or []), default_style=data.get("default_style"))


@dataclass
class DocumentMetadata:
    filename: Optional[str] = None
    file_size: int = 0
    processor: Optional[str] = None
    processed_at: datetime = field(default_factory=_now)


# ---------------------------------------------------------------------------
# Issue tracker
# ---------------------------------------------------------------------------


class IssueTracker:
    """
    Issues keyed by id, plus a paragraph-id -> issue-ids index.
    Issues never point back at paragraphs.
    """

    def __init__(self):
        self.issues: Dict[str, Issue] = {}
        self.paragraph_issues: Dict[str, Set[str]] = {}
        self._issue_paragraph: Dict[str, str] = {}

    def add_issue(self, issue: Issue, paragraph_id: Optional[str] = None) -> Issue:
        self.issues[issue.id] = issue
        if paragraph_id is not None:
            self.paragraph_issues.setdefault(paragraph_id, set()).add(issue.id)
            self._issue_paragraph[issue.id] = paragraph_id
        return issue

    def get_issue(self, issue_id: str) -> Issue:
        try:
            return self.issues[issue_id]
        except KeyError:
            raise NotFound("issue", issue_id) from None

    def remove_issue(self, issue_id: str) -> Issue:
        issue = self.get_issue(issue_id)
        del self.issues[issue_id]
        paragraph_id = self._issue_paragraph.pop(issue_id, None)
        if paragraph_id is not None:
            ids = self.paragraph_issues.get(paragraph_id)
            if ids is not None:
                ids.discard(issue_id)
                if not ids:
                    del self.paragraph_issues[paragraph_id]
        return issue

    def get_issues_for_paragraph(self, paragraph_id: str) -> List[Issue]:
        return [self.issues[i] for i in self.paragraph_issues.get(paragraph_id, ()) if i in self.issues]

    def invalidate_paragraph_issues(self, paragraph_id: str) -> int:
        issues = self.get_issues_for_paragraph(paragraph_id)
        for issue in issues:
            issue.needs_reanalysis = True
        return len(issues)

    def remove_paragraph_issues(self, paragraph_id: str) -> int:
        ids = list(self.paragraph_issues.get(paragraph_id, ()))
        for issue_id in ids:
            self.remove_issue(issue_id)
        return len(ids)

    def get_all_issues(self) -> List[Issue]:
        return list(self.issues.values())

    def clear(self):
        self.issues.clear()
        self.paragraph_issues.clear()
        self._issue_paragraph.clear()

    def get_issue_stats(self) -> Dict[str, Any]:
        by_severity = {s.value: 0 for s in Severity}
        by_category = {c.value: 0 for c in Category}
        stale = 0
        for issue in self.issues.values():
            by_severity[issue.severity.value] += 1
            by_category[issue.category.value] += 1
            if issue.needs_reanalysis:
                stale += 1
        return {
            "total": len(self.issues),
            "by_severity": by_severity,
            "by_category": by_category,
            "needs_reanalysis": stale,
        }

    def clone(self) -> "IssueTracker":
        other = IssueTracker()
        other.issues = {k: v.model_copy(deep=True) for k, v in self.issues.items()}
        other.paragraph_issues = {k: set(v) for k, v in self.paragraph_issues.items()}
        other._issue_paragraph = dict(self._issue_paragraph)
        return other

    def __len__(self) -> int:
        return len(self.issues)


# ---------------------------------------------------------------------------
# Change log
# ---------------------------------------------------------------------------


@dataclass
class ChangeRecord:
    type: str
    description: str
    affected_paragraphs: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


class ChangeLog:
    """Append-only, bounded; the oldest record is evicted first."""

    def __init__(self, max_entries: int = MAX_CHANGE_LOG):
        self._records: Deque[ChangeRecord] = deque(maxlen=max_entries)

    def add(self, change_type: str, description: str, affected_paragraphs: Iterable[str] = (),
            **details) -> ChangeRecord:
        record = ChangeRecord(
            type=change_type,
            description=description,
            affected_paragraphs=list(affected_paragraphs),
            details=details,
        )
        self._records.append(record)
        return record

    def get_changes(self, since: Optional[datetime] = None) -> List[ChangeRecord]:
        if since is None:
            return list(self._records)
        return [r for r in self._records if r.timestamp > since]

    def get_last_change(self) -> Optional[ChangeRecord]:
        return self._records[-1] if self._records else None

    def __len__(self) -> int:
        return len(self._records)


# ---------------------------------------------------------------------------
# Snapshots and statistics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentStatistics:
    word_count: int
    char_count: int
    paragraph_count: int
    version: int
    last_modified: datetime


@dataclass
class DocumentSnapshot:
    version: int
    timestamp: datetime
    paragraphs: Dict[str, ParagraphModel]
    paragraph_order: List[str]
    formatting: FormattingModel
    issues: IssueTracker


# ---------------------------------------------------------------------------
# DocumentModel
# ---------------------------------------------------------------------------


class DocumentModel:
    def __init__(self, original_buffer: Optional[bytes] = None):
        self.id = uuid.uuid4().hex
        self.version = 1
        self.created = _now()
        self.last_modified = self.created

        self.paragraphs: Dict[str, ParagraphModel] = {}
        self.paragraph_order: List[str] = []

        self.formatting = FormattingModel()
        self.structure = StructureModel()
        self.styles = StylesModel()
        self.metadata = DocumentMetadata()
        self.issues = IssueTracker()
        self.change_log = ChangeLog()

        self.original_buffer = original_buffer
        self._stats_cache: Optional[DocumentStatistics] = None

    # --- Construction ---

    @classmethod
    def from_server_data(cls, extracted: Mapping[str, Any], original_buffer: Optional[bytes] = None) -> "DocumentModel":
        """
        Build a model from an extraction payload. Missing optional sections
        fall back to empty defaults.
        """
        doc = cls(original_buffer=original_buffer)
        formatting = extracted.get("formatting") or {}
        paragraph_records = formatting.get("paragraphs") or []

        if paragraph_records:
            paragraphs = [ParagraphModel.from_server_data(p, i) for i, p in enumerate(paragraph_records)]
        else:
            lines = [line for line in (extracted.get("text") or "").split("\n") if line.strip()]
            paragraphs = [ParagraphModel.from_text(line, i) for i, line in enumerate(lines)]

        for paragraph in paragraphs:
            doc.paragraphs[paragraph.id] = paragraph
            doc.paragraph_order.append(paragraph.id)

        doc.formatting = FormattingModel.from_data(formatting.get("document"))
        doc.structure = StructureModel.from_data(extracted.get("structure"))
        doc.styles = StylesModel.from_data(extracted.get("styles"))

        metadata = extracted.get("metadata") or {}
        doc.metadata = DocumentMetadata(
            filename=metadata.get("filename"),
            file_size=metadata.get("file_size") or (len(original_buffer) if original_buffer else 0),
            processor=metadata.get("processor"),
        )

        doc.change_log.add("document-created", "Document created from extraction", doc.paragraph_order)
        logger.info("Document model created", document_id=doc.id, paragraphs=len(paragraphs))
        return doc

    # --- Access ---

    def get_paragraph(self, paragraph_id: str) -> ParagraphModel:
        try:
            return self.paragraphs[paragraph_id]
        except KeyError:
            raise NotFound("paragraph", paragraph_id, self.id) from None

    def get_ordered_paragraphs(self) -> List[ParagraphModel]:
        return [self.paragraphs[pid] for pid in self.paragraph_order]

    def get_changed_paragraphs(self, since: datetime) -> List[ParagraphModel]:
        return [p for p in self.get_ordered_paragraphs() if p.has_changed_since(since)]

    # --- Mutation ---

    def _touch(self):
        self.version += 1
        self.last_modified = _now()
        self._stats_cache = None

    def update_paragraph(
        self,
        paragraph_id: str,
        changes: Union[ParagraphChange, List[ParagraphChange], Mapping[str, Any]],
    ) -> bool:
        paragraph = self.get_paragraph(paragraph_id)
        updated = paragraph.copy()
        if not updated.update(changes):
            return False

        self.paragraphs[paragraph_id] = updated
        self._touch()
        self.change_log.add(
            "paragraph-updated",
            f"Paragraph {updated.index} updated",
            [paragraph_id],
            old_text=paragraph.text,
            new_text=updated.text,
            changes=_describe_changes(changes),
        )
        self.issues.invalidate_paragraph_issues(paragraph_id)
        logger.debug("Paragraph updated", document_id=self.id, paragraph_id=paragraph_id, version=self.version)
        return True

    def apply_editor_changes(self, editor_doc: Union[Mapping[str, Any], List[Mapping[str, Any]]]) -> bool:
        """
        Reconcile the model with editor content by position.

        Existing paragraphs whose text differs are updated, extra nodes are
        appended and surplus trailing paragraphs are deleted with their issues.
        The whole pass is one `editor-sync` change.
        """
        if isinstance(editor_doc, Mapping):
            nodes = list(editor_doc.get("content") or [])
        else:
            nodes = list(editor_doc)
        nodes = [n for n in nodes if n.get("type", "paragraph") == "paragraph"]

        updated_ids: List[str] = []
        added_ids: List[str] = []
        removed_ids: List[str] = []

        for i, node in enumerate(nodes):
            incoming = ParagraphModel.from_editor_node(node, i)
            if i < len(self.paragraph_order):
                pid = self.paragraph_order[i]
                existing = self.paragraphs[pid]
                changes: List[ParagraphChange] = [IndexChange(index=i)]
                if existing.text != incoming.text:
                    changes = [TextChange(text=incoming.text), RunsChange(runs=incoming.get_runs()), IndexChange(index=i)]
                candidate = existing.copy()
                if candidate.update(changes):
                    self.paragraphs[pid] = candidate
                    updated_ids.append(pid)
            else:
                # Editor ids are reused only while they are unclaimed
                if incoming.id in self.paragraphs:
                    incoming = incoming.clone()
                self.paragraphs[incoming.id] = incoming
                self.paragraph_order.append(incoming.id)
                added_ids.append(incoming.id)

        for pid in self.paragraph_order[len(nodes):]:
            del self.paragraphs[pid]
            self.issues.remove_paragraph_issues(pid)
            removed_ids.append(pid)
        del self.paragraph_order[len(nodes):]

        if not (updated_ids or added_ids or removed_ids):
            return False

        for pid in updated_ids:
            self.issues.invalidate_paragraph_issues(pid)

        self._touch()
        self.change_log.add(
            "editor-sync",
            "Synchronized with editor content",
            updated_ids + added_ids + removed_ids,
            updated=len(updated_ids),
            added=len(added_ids),
            removed=len(removed_ids),
        )
        logger.debug(
            "Editor changes applied",
            document_id=self.id,
            updated=len(updated_ids),
            added=len(added_ids),
            removed=len(removed_ids),
        )
        return True

    # --- Snapshots ---

    def create_snapshot(self) -> DocumentSnapshot:
        return DocumentSnapshot(
            version=self.version,
            timestamp=_now(),
            paragraphs=dict(self.paragraphs),
            paragraph_order=list(self.paragraph_order),
            formatting=copy.deepcopy(self.formatting),
            issues=self.issues.clone(),
        )

    def restore_from_snapshot(self, snapshot: DocumentSnapshot):
        self.paragraphs = dict(snapshot.paragraphs)
        self.paragraph_order = list(snapshot.paragraph_order)
        self.formatting = copy.deepcopy(snapshot.formatting)
        self.issues = snapshot.issues.clone()

        self.version = snapshot.version + 1
        self.last_modified = _now()
        self._stats_cache = None
        self.change_log.add(
            "snapshot-restored",
            f"Restored snapshot from version {snapshot.version}",
            self.paragraph_order,
            snapshot_version=snapshot.version,
        )
        logger.info("Snapshot restored", document_id=self.id, snapshot_version=snapshot.version)

    # --- Views ---

    def get_statistics(self) -> DocumentStatistics:
        if self._stats_cache is not None and self._stats_cache.version == self.version:
            return self._stats_cache

        paragraphs = [p for p in self.get_ordered_paragraphs() if p.text.strip()]
        self._stats_cache = DocumentStatistics(
            word_count=sum(len(p.text.split()) for p in paragraphs),
            char_count=sum(len(p.text) for p in paragraphs),
            paragraph_count=len(paragraphs),
            version=self.version,
            last_modified=self.last_modified,
        )
        return self._stats_cache

    def get_plain_text(self) -> str:
        return "\n".join(p.text for p in self.get_ordered_paragraphs() if p.text)

    def get_formatted_html(self) -> str:
        inner = "".join(p.to_html() for p in self.get_ordered_paragraphs())
        return f'<div class="docx-document">{inner}</div>'

    def to_editor_content(self) -> Dict[str, Any]:
        return {"type": "doc", "content": [p.to_editor_node() for p in self.get_ordered_paragraphs()]}

    # --- Analysis ---

    def analysis_input(self) -> Tuple[str, Dict[str, Any], Dict[str, Any]]:
        """
        (text, structure, formatting) for the rule engine. Text has one line per
        paragraph, empty paragraphs included, so line numbers are paragraph
        indices.
        """
        paragraphs = self.get_ordered_paragraphs()
        text = "\n".join(p.text for p in paragraphs)
        formatting = {
            "document": self.formatting.to_dict(),
            "paragraphs": [p.to_payload() for p in paragraphs],
        }
        return text, self.structure.to_dict(), formatting

    def attach_issues(self, issues: Iterable[Issue]):
        """Replace tracked issues, mapping paragraph locations to paragraph ids."""
        self.issues.clear()
        for issue in issues:
            paragraph_id = None
            index = issue.paragraph_index
            if index is not None and 0 <= index < len(self.paragraph_order):
                paragraph_id = self.paragraph_order[index]
            self.issues.add_issue(issue, paragraph_id)

    def analyze(self, engine: Optional[ComplianceEngine] = None) -> List[Issue]:
        engine = engine or ComplianceEngine()
        issues = engine.validate(*self.analysis_input())
        self.attach_issues(issues)
        self.formatting.compliance = {
            "score": compliance_score(issues, engine.settings.weights),
            "counts": severity_counts(issues),
            "version": self.version,
        }
        logger.info("Document analyzed", document_id=self.id, issues=len(issues),
                    score=self.formatting.compliance["score"])
        return issues

    def __repr__(self) -> str:
        return f"DocumentModel(id={self.id!r}, version={self.version}, paragraphs={len(self.paragraph_order)})"


def _describe_changes(changes) -> List[str]:
    if isinstance(changes, Mapping):
        return sorted(changes)
    if isinstance(changes, (list, tuple)):
        return [c.kind for c in changes]
    return [changes.kind]
