"""
Document formatting rules. Values the extractor could not determine are null
and never produce an issue.
"""

from typing import Any, Dict, List, Optional

from apalint.config import ApaTargets
from apalint.models import Category, FixAction, Issue, Severity
from apalint.rules.common import document_formatting, make_issue, paragraph_formatting, structure_list

# Fonts rendered as Times New Roman by common word processors
TIMES_ALIASES = ("times new roman", "times", "liberation serif")
FONT_SIZE_TOLERANCE = 0.5


def check_formatting(text: str, structure: Optional[Dict[str, Any]] = None,
                     formatting: Optional[Dict[str, Any]] = None,
                     targets: Optional[ApaTargets] = None) -> List[Issue]:
    targets = targets or ApaTargets()
    document = document_formatting(formatting)
    issues: List[Issue] = []

    font = document.get("font") or {}
    family = font.get("family")
    if family and family.strip().lower() not in TIMES_ALIASES:
        issues.append(make_issue(
            "Incorrect font family",
            f'Document uses "{family}" instead of {targets.font_family}.',
            Severity.MAJOR,
            Category.FORMATTING,
            text=f"Font: {family}",
            fix_action=FixAction.FIX_FONT,
            explanation=f"APA 7 student papers use a legible font such as {targets.font_family} throughout.",
        ))

    size = font.get("size")
    if size is not None and abs(size - targets.font_size) > FONT_SIZE_TOLERANCE:
        issues.append(make_issue(
            "Incorrect font size",
            f"Font size is {size:g}pt instead of {targets.font_size:g}pt.",
            Severity.MAJOR,
            Category.FORMATTING,
            text=f"Font size: {size:g}pt",
            fix_action=FixAction.FIX_FONT_SIZE,
            explanation=f"Body text is set in {targets.font_size:g}-point type.",
        ))

    spacing = document.get("spacing") or {}
    line = spacing.get("line")
    if line is not None and abs(line - targets.line_spacing) > targets.line_spacing_tolerance:
        issues.append(make_issue(
            "Incorrect line spacing",
            f"Line spacing is {line:g} instead of double ({targets.line_spacing:g}).",
            Severity.MAJOR,
            Category.FORMATTING,
            text=f"Line spacing: {line:g}",
            fix_action=FixAction.FIX_LINE_SPACING,
            explanation="APA 7 Section 2.21: double-space the whole paper, including the reference list.",
        ))

    margins = document.get("margins") or {}
    wrong = []
    for side in ("top", "bottom", "left", "right"):
        actual = margins.get(side)
        if actual is not None and abs(actual - targets.margin_inches) > targets.margin_tolerance:
            wrong.append(f'{side}: {actual:g}" (should be {targets.margin_inches:g}")')
    if wrong:
        issues.append(make_issue(
            "Incorrect margins",
            f"Margins are not {targets.margin_inches:g} inch: {', '.join(wrong)}.",
            Severity.MAJOR,
            Category.FORMATTING,
            text=", ".join(wrong),
            fix_action=FixAction.FIX_MARGINS,
            explanation="APA 7 Section 2.22: use 1-inch margins on every side.",
        ))

    issues += _check_indentation(structure, formatting, targets)
    return issues


def _body_paragraphs(structure, formatting) -> List[Dict[str, Any]]:
    references_start = None
    for section in structure_list(structure, "sections"):
        if section.get("type") == "references" and section.get("paragraph_index") is not None:
            references_start = section["paragraph_index"]
            break

    body = []
    for paragraph in paragraph_formatting(formatting):
        if not (paragraph.get("text") or "").strip():
            continue
        if paragraph.get("heading_level") is not None:
            continue
        if paragraph.get("alignment") == "center":
            continue
        index = paragraph.get("index")
        if references_start is not None and index is not None and index >= references_start:
            continue
        body.append(paragraph)
    return body


def _check_indentation(structure, formatting, targets: ApaTargets) -> List[Issue]:
    measured = []
    for paragraph in _body_paragraphs(structure, formatting):
        indentation = paragraph.get("indentation") or {}
        if indentation.get("first_line") is None and indentation.get("left") is None:
            continue
        measured.append(paragraph)

    wrong = [
        p for p in measured
        if abs((p["indentation"].get("first_line") or 0) - targets.first_line_indent) > targets.indent_tolerance
    ]
    if not wrong:
        return []

    return [make_issue(
        "Incorrect paragraph indentation",
        f"{len(wrong)} of {len(measured)} paragraphs do not use a {targets.first_line_indent:g}-inch first-line indent.",
        Severity.MINOR,
        Category.FORMATTING,
        text=(wrong[0].get("text") or "")[:80],
        paragraph_index=wrong[0].get("index"),
        fix_action=FixAction.FIX_INDENTATION,
        explanation="Indent the first line of every body paragraph by 0.5 inch.",
    )]
