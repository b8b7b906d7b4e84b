"""
Table and figure rules.

A label is a line that is only "Table N" / "Figure N", optionally followed by
"." or ":" and the title. Every other "Table N" occurrence is a callout.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from apalint.models import Category, FixAction, Issue, Severity
from apalint.rules.common import (
    TextIndex,
    is_sentence_case,
    is_title_case,
    make_issue,
    structure_list,
    to_sentence_case,
    to_title_case,
)
from apalint.rules.references import find_references_section

LABEL_RE = re.compile(
    r"^[ \t]*(Table|Figure|TABLE|FIGURE)[ \t]+(\d+(?:\.\d+)?)(?:[ \t]*[.:][ \t]*(.*?))?[ \t]*$",
    re.MULTILINE,
)
MENTION_RE = re.compile(r"\b(Table|Figure|TABLE|FIGURE)s?\s+(\d+(?:\.\d+)?)")
NOTE_RE = re.compile(r"^[ \t]*(Notes?)\b[ \t]*([.:]?)", re.MULTILINE)
APPENDIX_RE = re.compile(r"(?:^|\n)[ \t]*appendix\b", re.IGNORECASE)
ADAPTED_RE = re.compile(r"\b(?:Adapted|Reprinted|Reproduced)\s+from\b", re.IGNORECASE)
COPYRIGHT_RE = re.compile(r"copyright|©|permission|CC[ -]BY|public domain", re.IGNORECASE)

_CATEGORIES = {"table": Category.TABLES, "figure": Category.FIGURES}


@dataclass
class Label:
    kind: str
    number: str
    start: int
    end: int
    title: Optional[str]
    title_start: Optional[int]
    note: Optional[re.Match]
    following: str


def _find_labels(text: str) -> List[Label]:
    labels = []
    matches = list(LABEL_RE.finditer(text))
    for i, match in enumerate(matches):
        block_end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        following = text[match.end():block_end]

        title = (match.group(3) or "").strip() or None
        title_start = match.start(3) if title else None
        if title is None:
            for line_match in re.finditer(r"[^\n]+", following):
                line = line_match.group(0).strip()
                if not line:
                    continue
                if not NOTE_RE.match(line):
                    title = line
                    title_start = match.end() + line_match.start() + line_match.group(0).index(line)
                break

        # The note belongs to this label when it appears in the next few lines
        note = NOTE_RE.search("\n".join(following.split("\n")[:8]))

        labels.append(Label(
            kind=match.group(1).lower(),
            number=match.group(2),
            start=match.start(),
            end=match.end(),
            title=title,
            title_start=title_start,
            note=note,
            following=following,
        ))
    return labels


def check_tables_and_figures(text: str, structure: Optional[Dict[str, Any]] = None,
                             formatting: Optional[Dict[str, Any]] = None) -> List[Issue]:
    index = TextIndex(text)
    labels = _find_labels(text)
    label_spans = [(l.start, l.end) for l in labels]
    mentions = [
        m for m in MENTION_RE.finditer(text)
        if not any(start <= m.start() < end for start, end in label_spans)
    ]

    references = find_references_section(text)
    references_start = references.start() if references else None
    appendix = APPENDIX_RE.search(text)
    appendix_start = appendix.start() if appendix else None

    issues: List[Issue] = []
    for kind in ("table", "figure"):
        kind_labels = [l for l in labels if l.kind == kind]
        kind_mentions = [m for m in mentions if m.group(1).lower() == kind]
        issues += _check_numbering(kind, kind_labels, kind_mentions, index)
        issues += _check_titles(kind, kind_labels, index)
        issues += _check_callouts(kind, kind_labels, kind_mentions, index)
        issues += _check_placement(kind, kind_labels, references_start, appendix_start, index)
        issues += _check_notes(kind, kind_labels, index)

    issues += _check_structure(structure, labels, index)
    return issues


def _check_numbering(kind: str, labels: List[Label], mentions: List[re.Match], index: TextIndex) -> List[Issue]:
    if labels:
        ordered = [(l.number, l.start) for l in sorted(labels, key=lambda l: l.start)]
    else:
        ordered = [(m.group(2), m.start()) for m in mentions]

    sequence = []
    seen: Set[str] = set()
    for number, position in ordered:
        if number not in seen:
            seen.add(number)
            sequence.append((number, position))

    name = kind.capitalize()
    expected = 1
    for number, position in sequence:
        # Sub-numbered items (2.1) follow their own scheme
        if "." in number:
            continue
        if int(number) != expected:
            return [make_issue(
                f"{name} numbering out of sequence",
                f"{name} {number} appears where {name} {expected} was expected.",
                Severity.MAJOR,
                _CATEGORIES[kind],
                text=f"{name} {number}",
                paragraph_index=index.paragraph_at(position),
                explanation=f"Number {kind}s consecutively in the order they are first mentioned.",
            )]
        expected += 1
    return []


def _check_titles(kind: str, labels: List[Label], index: TextIndex) -> List[Issue]:
    issues: List[Issue] = []
    name = kind.capitalize()
    missing_reported = False
    case_reported = False

    for label in labels:
        if not label.title:
            if not missing_reported:
                missing_reported = True
                issues.append(make_issue(
                    f"{name} missing title",
                    f"{name} {label.number} has no title.",
                    Severity.MAJOR,
                    _CATEGORIES[kind],
                    text=f"{name} {label.number}",
                    paragraph_index=index.paragraph_at(label.start),
                    explanation=f"Every {kind} has a bold number line followed by an italic title in title case.",
                ))
            continue

        if case_reported:
            continue

        if kind == "table" and not is_title_case(label.title):
            case_reported = True
            issues.append(make_issue(
                "Table title not in title case",
                f'Table {label.number} title should be in title case: "{to_title_case(label.title)}".',
                Severity.MINOR,
                Category.TABLES,
                text=label.title,
                paragraph_index=index.paragraph_at(label.title_start or label.start),
                fix_action=FixAction.FIX_TABLE_TITLE_CASE,
                explanation="APA 7 Section 7.11: table titles use title case.",
                original_text=label.title,
                replacement_text=to_title_case(label.title),
            ))
        elif kind == "figure" and not is_sentence_case(label.title):
            case_reported = True
            issues.append(make_issue(
                "Figure caption not in sentence case",
                f'Figure {label.number} caption should be in sentence case: "{to_sentence_case(label.title)}".',
                Severity.MINOR,
                Category.FIGURES,
                text=label.title,
                paragraph_index=index.paragraph_at(label.title_start or label.start),
                fix_action=FixAction.FIX_FIGURE_CAPTION_CASE,
                explanation="Figure captions are written in sentence case.",
                original_text=label.title,
                replacement_text=to_sentence_case(label.title),
            ))
    return issues


def _check_callouts(kind: str, labels: List[Label], mentions: List[re.Match], index: TextIndex) -> List[Issue]:
    if not labels:
        return []

    issues: List[Issue] = []
    name = kind.capitalize()

    for label in labels:
        if not any(m.group(2) == label.number and m.start() < label.start for m in mentions):
            issues.append(make_issue(
                f"{name} not referenced in text",
                f"{name} {label.number} appears before (or without) a callout in the text.",
                Severity.MAJOR,
                _CATEGORIES[kind],
                text=f"{name} {label.number}",
                paragraph_index=index.paragraph_at(label.start),
                explanation=f"Refer to every {kind} in the text before it appears.",
            ))
            break

    known = {l.number for l in labels}
    reported: Set[str] = set()
    for mention in mentions:
        number = mention.group(2)
        if number not in known and number not in reported:
            reported.add(number)
            issues.append(make_issue(
                f"Reference to non-existent {kind}",
                f"The text refers to {name} {number}, which does not exist.",
                Severity.CRITICAL,
                _CATEGORIES[kind],
                text=mention.group(0),
                paragraph_index=index.paragraph_at(mention.start()),
                explanation=f"Every {kind} callout must point to a {kind} in the document.",
            ))
    return issues


def _check_placement(kind: str, labels: List[Label], references_start: Optional[int],
                     appendix_start: Optional[int], index: TextIndex) -> List[Issue]:
    name = kind.capitalize()
    for label in labels:
        in_appendix = appendix_start is not None and label.start >= appendix_start
        in_references = (references_start is not None and label.start >= references_start
                         and not (in_appendix and appendix_start > references_start))
        if in_references:
            return [make_issue(
                f"{name} in references section",
                f"{name} {label.number} sits inside the reference list.",
                Severity.MAJOR,
                _CATEGORIES[kind],
                text=f"{name} {label.number}",
                paragraph_index=index.paragraph_at(label.start),
                explanation=f"Place {kind}s in the body after their first callout, or in an appendix.",
            )]
        if in_appendix:
            return [make_issue(
                f"{name} in appendix numbered as body {kind}",
                f"{name} {label.number} is in an appendix but uses body numbering.",
                Severity.MINOR,
                _CATEGORIES[kind],
                text=f"{name} {label.number}",
                paragraph_index=index.paragraph_at(label.start),
                explanation=f"Appendix {kind}s are numbered with the appendix letter: {name} A1.",
            )]
    return []


def _check_notes(kind: str, labels: List[Label], index: TextIndex) -> List[Issue]:
    issues: List[Issue] = []
    name = kind.capitalize()

    for label in labels:
        note = label.note
        if note is None:
            continue
        if note.group(1) != "Note" or note.group(2) != ".":
            original = note.group(0).strip()
            issues.append(make_issue(
                f"Incorrect {kind} note format",
                f'{name} notes begin with "Note." in italics.',
                Severity.MINOR,
                _CATEGORIES[kind],
                text=original,
                paragraph_index=index.paragraph_at(label.end + note.start()),
                fix_action=FixAction.FIX_TABLE_NOTE_FORMAT,
                explanation="APA 7 Section 7.14: general notes start with the word Note followed by a period.",
                original_text=original,
                replacement_text="Note.",
            ))
            break

    if kind == "figure":
        for label in labels:
            block = "\n".join(label.following.split("\n")[:8])
            if ADAPTED_RE.search(block) and not COPYRIGHT_RE.search(block):
                issues.append(make_issue(
                    "Missing copyright attribution",
                    f"Figure {label.number} is adapted or reprinted but gives no copyright statement.",
                    Severity.MINOR,
                    Category.FIGURES,
                    text=f"Figure {label.number}",
                    paragraph_index=index.paragraph_at(label.start),
                    explanation="Reprinted or adapted figures need a copyright attribution in the note.",
                ))
                break
    return issues


def _check_structure(structure: Optional[Dict[str, Any]], labels: List[Label], index: TextIndex) -> List[Issue]:
    issues: List[Issue] = []
    tables = structure_list(structure, "tables")
    figures = structure_list(structure, "figures")

    ruled = [t for t in tables if t.get("has_vertical_lines")]
    if ruled:
        issues.append(make_issue(
            "Vertical lines in table",
            f"{len(ruled)} table(s) use vertical borders.",
            Severity.MINOR,
            Category.TABLES,
            paragraph_index=ruled[0].get("paragraph_index"),
            fix_action=FixAction.REMOVE_TABLE_VERTICAL_LINES,
            explanation="APA tables use horizontal rules only.",
        ))

    table_labels = {l.number for l in labels if l.kind == "table"}
    if len(tables) > len(table_labels):
        issues.append(make_issue(
            "Table without label",
            f"The document has {len(tables)} table(s) but {len(table_labels)} table label(s).",
            Severity.MAJOR,
            Category.TABLES,
            explanation="Each table needs a bold \"Table N\" label and an italic title above it.",
        ))

    figure_labels = {l.number for l in labels if l.kind == "figure"}
    if len(figures) > len(figure_labels):
        issues.append(make_issue(
            "Figure without label",
            f"The document has {len(figures)} figure(s) but {len(figure_labels)} figure label(s).",
            Severity.MAJOR,
            Category.FIGURES,
            explanation="Each figure needs a bold \"Figure N\" label and an italic title above it.",
        ))
    return issues
