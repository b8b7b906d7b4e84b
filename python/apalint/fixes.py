"""
Applies automated fixes to DOCX bytes.

Every FixAction either has a handler here or is rejected with UnsupportedFix.
Formatting actions change paragraph, style, section or table properties.
Text actions replace an issue's original_text with its replacement_text,
across run boundaries, in every paragraph where it occurs.
"""

import re
from copy import deepcopy
from io import BytesIO
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import structlog
from docx import Document
from docx.enum.style import WD_STYLE_TYPE
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml.ns import qn
from docx.shared import Inches, Pt
from docx.text.paragraph import Paragraph

from apalint.config import ApaTargets
from apalint.errors import UnsupportedFix
from apalint.models import FixAction, Issue
from apalint.rules.references import reference_sort_key
from apalint.utils.docx import iter_all_paragraphs, iter_block_items, replace_text_in_paragraph, set_paragraph_text

logger = structlog.get_logger(__name__)

TEXT_ACTIONS = frozenset({
    FixAction.FIX_ALL_CAPS_HEADING,
    FixAction.ADD_CITATION_COMMA,
    FixAction.FIX_PARENTHETICAL_CONNECTOR,
    FixAction.FIX_ET_AL_FORMATTING,
    FixAction.ADD_PAGE_NUMBER,
    FixAction.FIX_REFERENCE_CONNECTOR,
    FixAction.FIX_AUTHOR_COMMA,
    FixAction.FIX_AUTHOR_INITIALS,
    FixAction.FIX_PAGE_RANGE_DASH,
    FixAction.FIX_EDITION_FORMAT,
    FixAction.REMOVE_PUBLISHER_LOCATION,
    FixAction.REMOVE_RETRIEVED_FROM,
    FixAction.ADD_REFERENCE_PERIOD,
    FixAction.FORMAT_DOI,
    FixAction.FIX_BOOK_TITLE_CASE,
    FixAction.FIX_TABLE_TITLE_CASE,
    FixAction.FIX_FIGURE_CAPTION_CASE,
    FixAction.FIX_TABLE_NOTE_FORMAT,
    FixAction.FIX_ELLIPSIS_FORMAT,
    FixAction.ADD_SPACE_BEFORE_SIC,
    FixAction.REMOVE_ELLIPSIS_BRACKETS,
    FixAction.FIX_STATISTIC_LEADING_ZERO,
})

# Text actions confined to the reference list
REFERENCE_TEXT_ACTIONS = frozenset({
    FixAction.FIX_REFERENCE_CONNECTOR,
    FixAction.FIX_AUTHOR_COMMA,
    FixAction.FIX_AUTHOR_INITIALS,
    FixAction.REMOVE_PUBLISHER_LOCATION,
    FixAction.REMOVE_RETRIEVED_FROM,
    FixAction.ADD_REFERENCE_PERIOD,
})

REFERENCES_HEADING_RE = re.compile(r"^\s*references\s*$", re.IGNORECASE)
SECTION_END_RE = re.compile(r"^\s*appendix\b", re.IGNORECASE)
_VERTICAL_SIDES = ("left", "right", "start", "end", "insideV")


def resolve_action(value: Union[str, FixAction]) -> FixAction:
    """Maps an identifier onto the closed FixAction set."""
    if isinstance(value, FixAction):
        return value
    try:
        return FixAction(value)
    except ValueError:
        logger.warning("Rejected unknown fix action", fix_action=value)
        raise UnsupportedFix(str(value)) from None


class FixApplier:
    def __init__(self, doc_stream: BytesIO, targets: Optional[ApaTargets] = None):
        self.doc = Document(doc_stream)
        self.targets = targets or ApaTargets()
        self._handlers: Dict[FixAction, Callable[..., int]] = {
            FixAction.FIX_FONT: self._fix_font,
            FixAction.FIX_FONT_SIZE: self._fix_font_size,
            FixAction.FIX_LINE_SPACING: self._fix_line_spacing,
            FixAction.FIX_MARGINS: self._fix_margins,
            FixAction.FIX_INDENTATION: self._fix_indentation,
            FixAction.FIX_REFERENCE_INDENT: self._fix_reference_indent,
            FixAction.SORT_REFERENCES: self._sort_references,
            FixAction.SORT_REFERENCES_BY_YEAR: self._sort_references,
            FixAction.CONVERT_TO_BLOCK_QUOTE: self._convert_to_block_quote,
            FixAction.REMOVE_TABLE_VERTICAL_LINES: self._remove_table_vertical_lines,
        }

    def supports(self, action: FixAction) -> bool:
        return action in self._handlers or action in TEXT_ACTIONS

    def apply(self, action: FixAction, original_text: Optional[str] = None,
              replacement_text: Optional[str] = None, value: Any = None) -> int:
        """
        Applies one fix and returns how many elements it changed.

        Raises:
            UnsupportedFix: the action has no handler.
            ValueError: a text action is missing its texts, or its text is
                        not in the document.
        """
        if action in TEXT_ACTIONS:
            if not original_text or replacement_text is None:
                raise ValueError(f"{action.value} needs original_text and replacement_text")
            scope = self._reference_paragraphs()[1] if action in REFERENCE_TEXT_ACTIONS else None
            changed = self._replace_text(original_text, replacement_text, scope)
            if not changed:
                raise ValueError(f"Text not found in document: {original_text!r}")
        elif action in self._handlers:
            changed = self._handlers[action](
                value=value, original_text=original_text, replacement_text=replacement_text
            )
        else:
            raise UnsupportedFix(action.value)

        logger.info("Applied fix", fix_action=action.value, changed=changed)
        return changed

    def save_to_stream(self) -> BytesIO:
        output = BytesIO()
        self.doc.save(output)
        output.seek(0)
        return output

    # -------------------------------------------------------------------------
    # Text
    # -------------------------------------------------------------------------

    def _replace_text(self, old: str, new: str, paragraphs: Optional[List[Paragraph]] = None) -> int:
        changed = 0
        if paragraphs is None:
            paragraphs = list(iter_all_paragraphs(self.doc))
        for paragraph in paragraphs:
            if old not in paragraph.text:
                continue
            # A replacement containing the original would match again
            while replace_text_in_paragraph(paragraph, old, new):
                changed += 1
                if old in new:
                    break
        return changed

    # -------------------------------------------------------------------------
    # Fonts, spacing, margins
    # -------------------------------------------------------------------------

    def _body_styles(self):
        for style in self.doc.styles:
            if style.type in (WD_STYLE_TYPE.PARAGRAPH, WD_STYLE_TYPE.CHARACTER):
                yield style

    def _fix_font(self, value=None, **_) -> int:
        family = value or self.targets.font_family
        changed = 0
        for style in self._body_styles():
            if style.name == "Normal" or style.font.name is not None:
                style.font.name = family
                changed += 1
        for paragraph in iter_all_paragraphs(self.doc):
            for run in paragraph.runs:
                run.font.name = family
                rfonts = run._element.rPr.rFonts
                rfonts.set(qn("w:eastAsia"), family)
                rfonts.set(qn("w:cs"), family)
                changed += 1
        return changed

    def _fix_font_size(self, value=None, **_) -> int:
        size = Pt(float(value or self.targets.font_size))
        changed = 0
        for style in self._body_styles():
            if style.name == "Normal" or style.font.size is not None:
                style.font.size = size
                changed += 1
        for paragraph in iter_all_paragraphs(self.doc):
            for run in paragraph.runs:
                run.font.size = size
                changed += 1
        return changed

    def _fix_line_spacing(self, value=None, **_) -> int:
        spacing = float(value or self.targets.line_spacing)
        self.doc.styles["Normal"].paragraph_format.line_spacing = spacing
        changed = 1
        for paragraph in iter_all_paragraphs(self.doc):
            paragraph.paragraph_format.line_spacing = spacing
            changed += 1
        return changed

    def _fix_margins(self, value=None, **_) -> int:
        margin = Inches(float(value or self.targets.margin_inches))
        for section in self.doc.sections:
            section.top_margin = margin
            section.bottom_margin = margin
            section.left_margin = margin
            section.right_margin = margin
        return len(self.doc.sections)

    # -------------------------------------------------------------------------
    # Indentation
    # -------------------------------------------------------------------------

    @staticmethod
    def _is_heading(paragraph: Paragraph) -> bool:
        style = paragraph.style
        return style is not None and (style.name or "").lower().startswith(("heading", "title"))

    def _top_level_paragraphs(self) -> List[Paragraph]:
        return [item for item in iter_block_items(self.doc) if isinstance(item, Paragraph)]

    def _reference_paragraphs(self):
        """Returns (heading, entries) for the References section, or (None, [])."""
        paragraphs = self._top_level_paragraphs()
        for i, paragraph in enumerate(paragraphs):
            if REFERENCES_HEADING_RE.match(paragraph.text):
                entries = []
                for candidate in paragraphs[i + 1:]:
                    if self._is_heading(candidate) or SECTION_END_RE.match(candidate.text):
                        break
                    if candidate.text.strip():
                        entries.append(candidate)
                return paragraph, entries
        return None, []

    def _fix_indentation(self, value=None, **_) -> int:
        indent = Inches(float(value or self.targets.first_line_indent))
        changed = 0
        for paragraph in self._top_level_paragraphs():
            if REFERENCES_HEADING_RE.match(paragraph.text):
                break
            if not paragraph.text.strip() or self._is_heading(paragraph):
                continue
            if paragraph.alignment == WD_ALIGN_PARAGRAPH.CENTER:
                continue
            paragraph.paragraph_format.first_line_indent = indent
            changed += 1
        return changed

    def _fix_reference_indent(self, value=None, **_) -> int:
        hanging = float(value or self.targets.first_line_indent)
        _, entries = self._reference_paragraphs()
        for paragraph in entries:
            paragraph.paragraph_format.left_indent = Inches(hanging)
            paragraph.paragraph_format.first_line_indent = Inches(-hanging)
        return len(entries)

    # -------------------------------------------------------------------------
    # Reference order
    # -------------------------------------------------------------------------

    def _sort_references(self, **_) -> int:
        heading, entries = self._reference_paragraphs()
        if heading is None or len(entries) < 2:
            return 0

        ordered = sorted(entries, key=lambda p: reference_sort_key(p.text.strip()))
        if [p._p for p in ordered] == [p._p for p in entries]:
            return 0

        anchor = heading._p
        for paragraph in ordered:
            anchor.addnext(paragraph._p)
            anchor = paragraph._p
        return len(ordered)

    # -------------------------------------------------------------------------
    # Block quotes
    # -------------------------------------------------------------------------

    def _convert_to_block_quote(self, original_text=None, replacement_text=None, **_) -> int:
        if not original_text:
            raise ValueError("convertToBlockQuote needs the quoted text as original_text")
        body = replacement_text if replacement_text is not None else original_text.strip("\"“”")

        for paragraph in iter_all_paragraphs(self.doc):
            text = paragraph.text
            position = text.find(original_text)
            if position < 0:
                continue

            before = text[:position].rstrip()
            after = text[position + len(original_text):]
            block = paragraph
            if before:
                # The quote moves into its own paragraph after the lead-in
                new_p = deepcopy(paragraph._p)
                paragraph._p.addnext(new_p)
                block = Paragraph(new_p, paragraph._parent)
                set_paragraph_text(paragraph, before)

            set_paragraph_text(block, body + after)
            block.paragraph_format.left_indent = Inches(self.targets.first_line_indent)
            block.paragraph_format.first_line_indent = Inches(0)
            return 1

        raise ValueError(f"Text not found in document: {original_text[:60]!r}")

    # -------------------------------------------------------------------------
    # Tables
    # -------------------------------------------------------------------------

    def _remove_table_vertical_lines(self, **_) -> int:
        changed = 0
        for table in self.doc.tables:
            tbl = table._tbl
            borders = tbl.find(f"{qn('w:tblPr')}/{qn('w:tblBorders')}")
            if borders is not None:
                for side in _VERTICAL_SIDES:
                    edge = borders.find(qn(f"w:{side}"))
                    if edge is not None:
                        for attr in list(edge.attrib):
                            del edge.attrib[attr]
                        edge.set(qn("w:val"), "nil")
                        changed += 1
            for cell_borders in tbl.iter(qn("w:tcBorders")):
                for side in _VERTICAL_SIDES:
                    edge = cell_borders.find(qn(f"w:{side}"))
                    if edge is not None:
                        cell_borders.remove(edge)
                        changed += 1
        return changed


def apply_fix(
    docx_bytes: bytes,
    issue_or_action: Union[Issue, FixAction, str],
    fix_value: Union[None, str, float, Mapping[str, Any]] = None,
    targets: Optional[ApaTargets] = None,
) -> bytes:
    """
    Applies a single fix and returns the new DOCX bytes.

    Args:
        docx_bytes: Source document.
        issue_or_action: An Issue carrying a fix_action, or a fix identifier.
        fix_value: Either a mapping with original_text / replacement_text
                   (overriding the issue's), or a scalar: the target value
                   for a formatting fix, or the page for addPageNumber.

    Raises:
        UnsupportedFix: the identifier is outside the FixAction set or has no
                        handler.
        ValueError: a text fix lacks the texts it needs.
    """
    if isinstance(issue_or_action, Issue):
        if issue_or_action.fix_action is None:
            raise UnsupportedFix(f"none (issue {issue_or_action.id})")
        action = issue_or_action.fix_action
        original = issue_or_action.original_text
        replacement = issue_or_action.replacement_text
    else:
        action = resolve_action(issue_or_action)
        original = replacement = None

    value = fix_value
    if isinstance(fix_value, Mapping):
        original = fix_value.get("original_text", original)
        replacement = fix_value.get("replacement_text", replacement)
        value = fix_value.get("value")

    if action == FixAction.ADD_PAGE_NUMBER and replacement is None and original and value is not None:
        replacement = f"{original.rstrip()[:-1]}, p. {value})"

    applier = FixApplier(BytesIO(docx_bytes), targets=targets)
    if not applier.supports(action):
        raise UnsupportedFix(action.value)
    applier.apply(action, original, replacement, value)
    return applier.save_to_stream().getvalue()
