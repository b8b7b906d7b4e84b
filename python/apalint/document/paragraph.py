"""
Paragraph and run models.

Runs are immutable: any change replaces the RunModel. Paragraphs mutate only
through ParagraphModel.update(), which reports whether anything changed.
"""

import copy
import html
import re
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import structlog

from apalint.models import (
    FormattingChange,
    IndexChange,
    ParagraphChange,
    RunsChange,
    TextChange,
    changes_from_mapping,
)

logger = structlog.get_logger(__name__)

_ALIGNMENTS = ("left", "right", "center", "justify")
_SENTENCE_END = re.compile(r"[.!?]+")


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Formatting value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FontSpec:
    family: Optional[str] = None
    size: Optional[float] = None
    bold: bool = False
    italic: bool = False
    underline: bool = False

    @classmethod
    def from_data(cls, data: Optional[Mapping[str, Any]]) -> "FontSpec":
        if not data:
            return cls()
        return cls(
            family=data.get("family"),
            size=data.get("size"),
            bold=bool(data.get("bold", False)),
            italic=bool(data.get("italic", False)),
            underline=bool(data.get("underline", False)),
        )


@dataclass
class Spacing:
    line: Optional[float] = None
    before: Optional[float] = None
    after: Optional[float] = None
    line_rule: Optional[str] = None


@dataclass
class Indentation:
    first_line: Optional[float] = None
    left: Optional[float] = None
    right: Optional[float] = None
    hanging: Optional[float] = None


@dataclass
class ParagraphFormatting:
    font: FontSpec = field(default_factory=FontSpec)
    spacing: Spacing = field(default_factory=Spacing)
    indentation: Indentation = field(default_factory=Indentation)
    alignment: Optional[str] = None
    style_name: Optional[str] = None

    @classmethod
    def from_data(cls, data: Optional[Mapping[str, Any]]) -> "ParagraphFormatting":
        data = data or {}
        spacing = data.get("spacing") or {}
        indentation = data.get("indentation") or {}
        alignment = data.get("alignment")
        if alignment not in _ALIGNMENTS:
            alignment = None
        return cls(
            font=FontSpec.from_data(data.get("font")),
            spacing=Spacing(
                line=spacing.get("line"),
                before=spacing.get("before"),
                after=spacing.get("after"),
                line_rule=spacing.get("line_rule"),
            ),
            indentation=Indentation(
                first_line=indentation.get("first_line"),
                left=indentation.get("left"),
                right=indentation.get("right"),
                hanging=indentation.get("hanging"),
            ),
            alignment=alignment,
            style_name=data.get("style_name"),
        )

    def merged(self, updates: Mapping[str, Any]) -> "ParagraphFormatting":
        """Return a copy with `updates` merged in one level deep."""
        current = self.to_dict()
        for key, value in updates.items():
            if isinstance(value, Mapping) and isinstance(current.get(key), dict):
                current[key] = {**current[key], **value}
            else:
                current[key] = value
        return ParagraphFormatting.from_data(current)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RunModel:
    text: str
    index: int = 0
    font: FontSpec = field(default_factory=FontSpec)
    color: Optional[str] = None
    highlight: Optional[str] = None
    id: str = field(default_factory=_new_id)

    @classmethod
    def from_server_data(cls, data: Mapping[str, Any], index: int = 0) -> "RunModel":
        return cls(
            text=data.get("text") or "",
            index=index,
            font=FontSpec.from_data(data.get("font")),
            color=data.get("color"),
            highlight=data.get("highlight"),
        )

    @classmethod
    def from_text(cls, text: str, font: Optional[FontSpec] = None, color: Optional[str] = None) -> "RunModel":
        return cls(text=text, font=font or FontSpec(), color=color)

    @classmethod
    def from_data(cls, data: Union["RunModel", Mapping[str, Any]], index: int = 0) -> "RunModel":
        if isinstance(data, RunModel):
            return replace(data, index=index)
        return cls.from_server_data(data, index)

    @classmethod
    def from_editor_text_node(cls, node: Mapping[str, Any], index: int = 0) -> "RunModel":
        """Build a run from an editor text node: {"text": ..., "marks": [{"type": "bold"}, ...]}."""
        marks = {m.get("type"): m.get("attrs") or {} for m in node.get("marks") or []}
        font_attrs = marks.get("font_formatting", {})
        return cls(
            text=node.get("text") or "",
            index=index,
            font=FontSpec(
                family=font_attrs.get("family"),
                size=font_attrs.get("size"),
                bold="bold" in marks,
                italic="italic" in marks,
                underline="underline" in marks,
            ),
            color=font_attrs.get("color"),
        )

    def clone(self) -> "RunModel":
        return replace(self, id=_new_id())

    def to_html(self) -> str:
        out = html.escape(self.text)
        if self.font.bold:
            out = f"<strong>{out}</strong>"
        if self.font.italic:
            out = f"<em>{out}</em>"
        if self.font.underline:
            out = f"<u>{out}</u>"

        styles = []
        if self.font.family:
            styles.append(f"font-family: {self.font.family}")
        if self.font.size:
            styles.append(f"font-size: {self.font.size}pt")
        if self.color:
            styles.append(f"color: #{self.color}" if not self.color.startswith("#") else f"color: {self.color}")
        if styles:
            out = f'<span style="{"; ".join(styles)}">{out}</span>'
        return out

    def to_editor_text_node(self) -> Dict[str, Any]:
        marks = []
        if self.font.bold:
            marks.append({"type": "bold"})
        if self.font.italic:
            marks.append({"type": "italic"})
        if self.font.underline:
            marks.append({"type": "underline"})
        if self.font.family or self.font.size or self.color:
            marks.append({
                "type": "font_formatting",
                "attrs": {"family": self.font.family, "size": self.font.size, "color": self.color},
            })
        node: Dict[str, Any] = {"type": "text", "text": self.text}
        if marks:
            node["marks"] = marks
        return node


# ---------------------------------------------------------------------------
# Paragraphs
# ---------------------------------------------------------------------------


@dataclass
class ParagraphStatistics:
    char_count: int
    char_count_no_spaces: int
    word_count: int
    sentence_count: int
    run_count: int


class ParagraphModel:
    """
    One paragraph: text, paragraph formatting and an ordered set of runs.

    Invariant: `text` equals the concatenation of run texts in `run_order`
    whenever runs exist.
    """

    def __init__(
        self,
        text: str = "",
        index: int = 0,
        formatting: Optional[ParagraphFormatting] = None,
        runs: Optional[Iterable[RunModel]] = None,
        paragraph_id: Optional[str] = None,
        original_data: Optional[Mapping[str, Any]] = None,
    ):
        self.id = paragraph_id or _new_id()
        self.index = index
        self.text = text
        self.formatting = formatting or ParagraphFormatting()
        self.runs: Dict[str, RunModel] = {}
        self.run_order: List[str] = []
        self.last_modified = _now()
        self.change_sequence = 0
        self.original_data = dict(original_data) if original_data else None

        if runs is not None:
            self._set_runs(runs)
        if self.run_order:
            self.text = "".join(r.text for r in self.get_runs())
        elif text:
            self._set_runs([RunModel.from_text(text, font=self.formatting.font)])

    # --- Construction ---

    @classmethod
    def from_server_data(cls, data: Mapping[str, Any], index: int = 0) -> "ParagraphModel":
        runs = [
            RunModel.from_server_data(r, i)
            for i, r in enumerate(r for r in data.get("runs") or [] if r.get("text"))
        ]
        text = data.get("text") or ""
        if runs:
            text = "".join(r.text for r in runs)
        return cls(
            text=text,
            index=index,
            formatting=ParagraphFormatting.from_data(data),
            runs=runs or None,
            original_data=data,
        )

    @classmethod
    def from_text(cls, text: str, index: int = 0) -> "ParagraphModel":
        return cls(text=text, index=index)

    @classmethod
    def from_editor_node(cls, node: Mapping[str, Any], index: int = 0) -> "ParagraphModel":
        """
        Build from an editor paragraph node:
        {"type": "paragraph", "attrs": {...}, "content": [text nodes]}.
        """
        runs = [
            RunModel.from_editor_text_node(child, i)
            for i, child in enumerate(c for c in node.get("content") or [] if c.get("text"))
        ]
        attrs = node.get("attrs") or {}
        formatting = ParagraphFormatting.from_data({
            "spacing": {
                "line": attrs.get("line_height"),
                "before": attrs.get("space_before"),
                "after": attrs.get("space_after"),
            },
            "indentation": {
                "first_line": attrs.get("first_line_indent"),
                "left": attrs.get("left_indent"),
            },
            "alignment": attrs.get("text_align"),
            "style_name": attrs.get("style_name"),
        })
        text = "".join(r.text for r in runs)
        paragraph = cls(text=text, index=index, formatting=formatting, runs=runs or None,
                        paragraph_id=attrs.get("id"))
        return paragraph

    # --- Runs ---

    def _set_runs(self, runs: Iterable[Union[RunModel, Mapping[str, Any]]]):
        self.runs = {}
        self.run_order = []
        for i, run in enumerate(r for r in runs if _run_text(r)):
            model = RunModel.from_data(run, i)
            self.runs[model.id] = model
            self.run_order.append(model.id)

    def get_runs(self) -> List[RunModel]:
        return [self.runs[rid] for rid in self.run_order]

    # --- Mutation ---

    def update(self, changes: Union[ParagraphChange, Sequence[ParagraphChange], Mapping[str, Any]]) -> bool:
        """
        Apply changes and return True if anything actually changed.

        A text change without an accompanying runs change regenerates a single
        run carrying the first existing run's font and color.
        """
        if isinstance(changes, Mapping):
            changes = changes_from_mapping(changes)
        elif not isinstance(changes, (list, tuple)):
            changes = [changes]

        has_runs_change = any(isinstance(c, RunsChange) for c in changes)
        changed = False

        for change in changes:
            if isinstance(change, TextChange):
                if change.text != self.text:
                    self.text = change.text
                    changed = True
                    if not has_runs_change:
                        first = self.get_runs()[0] if self.run_order else None
                        self._set_runs([RunModel.from_text(
                            change.text,
                            font=first.font if first else self.formatting.font,
                            color=first.color if first else None,
                        )])

            elif isinstance(change, FormattingChange):
                merged = self.formatting.merged(change.formatting)
                if merged != self.formatting:
                    self.formatting = merged
                    changed = True

            elif isinstance(change, RunsChange):
                before = [(r.text, r.font, r.color, r.highlight) for r in self.get_runs()]
                self._set_runs(change.runs)
                after = [(r.text, r.font, r.color, r.highlight) for r in self.get_runs()]
                if after != before:
                    changed = True
                run_text = "".join(r.text for r in self.get_runs())
                if run_text != self.text:
                    self.text = run_text
                    changed = True

            elif isinstance(change, IndexChange):
                if change.index != self.index:
                    self.index = change.index
                    changed = True

            else:
                raise TypeError(f"Unsupported paragraph change: {change!r}")

        if changed:
            self.last_modified = _now()
            self.change_sequence += 1
        return changed

    # --- Copies ---

    def copy(self) -> "ParagraphModel":
        """Same-id copy sharing the (immutable) runs."""
        other = ParagraphModel.__new__(ParagraphModel)
        other.id = self.id
        other.index = self.index
        other.text = self.text
        other.formatting = copy.deepcopy(self.formatting)
        other.runs = dict(self.runs)
        other.run_order = list(self.run_order)
        other.last_modified = self.last_modified
        other.change_sequence = self.change_sequence
        other.original_data = self.original_data
        return other

    def clone(self) -> "ParagraphModel":
        """Independent copy with fresh paragraph and run ids."""
        return ParagraphModel(
            text=self.text,
            index=self.index,
            formatting=copy.deepcopy(self.formatting),
            runs=[r.clone() for r in self.get_runs()],
            original_data=self.original_data,
        )

    # --- Views ---

    def has_changed_since(self, timestamp: datetime) -> bool:
        return self.last_modified > timestamp

    def get_statistics(self) -> ParagraphStatistics:
        return ParagraphStatistics(
            char_count=len(self.text),
            char_count_no_spaces=len(re.sub(r"\s", "", self.text)),
            word_count=len(self.text.split()),
            sentence_count=len([s for s in _SENTENCE_END.split(self.text) if s.strip()]),
            run_count=len(self.run_order),
        )

    def to_html(self) -> str:
        styles = []
        spacing = self.formatting.spacing
        indentation = self.formatting.indentation
        if spacing.line and spacing.line_rule in (None, "auto"):
            styles.append(f"line-height: {spacing.line}")
        if spacing.before:
            styles.append(f"margin-top: {spacing.before}pt")
        if spacing.after:
            styles.append(f"margin-bottom: {spacing.after}pt")
        if indentation.first_line:
            styles.append(f"text-indent: {indentation.first_line}in")
        if indentation.left:
            styles.append(f"margin-left: {indentation.left}in")
        if self.formatting.alignment:
            styles.append(f"text-align: {self.formatting.alignment}")

        style_attr = f' style="{"; ".join(styles)}"' if styles else ""
        inner = "".join(r.to_html() for r in self.get_runs()) or html.escape(self.text)
        return f'<p data-paragraph-id="{self.id}"{style_attr}>{inner}</p>'

    def to_editor_node(self) -> Dict[str, Any]:
        spacing = self.formatting.spacing
        indentation = self.formatting.indentation
        return {
            "type": "paragraph",
            "attrs": {
                "id": self.id,
                "line_height": spacing.line,
                "space_before": spacing.before,
                "space_after": spacing.after,
                "first_line_indent": indentation.first_line,
                "left_indent": indentation.left,
                "text_align": self.formatting.alignment,
                "style_name": self.formatting.style_name,
            },
            "content": [r.to_editor_text_node() for r in self.get_runs()],
        }

    def to_payload(self) -> Dict[str, Any]:
        """Same shape as an extractor paragraph record."""
        data = self.formatting.to_dict()
        data["text"] = self.text
        data["index"] = self.index
        data["heading_level"] = (self.original_data or {}).get("heading_level")
        data["runs"] = [
            {"text": r.text, "font": asdict(r.font), "color": r.color, "highlight": r.highlight}
            for r in self.get_runs()
        ]
        return data

    def __repr__(self) -> str:
        return f"ParagraphModel(id={self.id!r}, index={self.index}, text={self.text[:40]!r})"


def _run_text(run: Union[RunModel, Mapping[str, Any]]) -> str:
    if isinstance(run, RunModel):
        return run.text
    return run.get("text") or ""
