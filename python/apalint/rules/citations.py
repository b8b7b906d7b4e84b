"""
In-text citation rules.

Each issue type is reported once per document, anchored on its first
occurrence; the description carries the total count.
"""

import re
from typing import Any, Dict, List, Optional

from apalint.models import Category, FixAction, Issue, Severity
from apalint.rules.common import TextIndex, make_issue

_NAME = r"[A-Z][A-Za-z'\-]+"
_YEAR = r"(?:\d{4}[a-z]?|n\.d\.)"

MISSING_COMMA_RE = re.compile(
    rf"\(({_NAME}(?:\s+(?:&|and)\s+{_NAME})*(?:\s+et\s+al\.)?)\s+({_YEAR})\)"
)
PARENTHETICAL_RE = re.compile(rf"\(([^()]*?[A-Za-z][^()]*?),\s*({_YEAR})(?:,\s*[^()]*)?\)")
NARRATIVE_AMPERSAND_RE = re.compile(rf"\b({_NAME}(?:,\s+{_NAME})*,?\s+&\s+{_NAME})\s+\(({_YEAR})\)")
ET_AL_COMMA_RE = re.compile(r",\s+et\s+al\.")
QUOTE_CITATION_RE = re.compile(
    rf"[\"“][^\"“”]{{3,}}[\"”]\s*\(([^()]+?,\s*{_YEAR})\)"
)


def check_citations(text: str, structure: Optional[Dict[str, Any]] = None,
                    formatting: Optional[Dict[str, Any]] = None) -> List[Issue]:
    issues: List[Issue] = []
    index = TextIndex(text)

    # Missing comma between author and year: (Smith 2020)
    matches = list(MISSING_COMMA_RE.finditer(text))
    if matches:
        first = matches[0]
        fixed = f"({first.group(1)}, {first.group(2)})"
        issues.append(make_issue(
            "Missing comma in citation",
            f'Parenthetical citations separate author and year with a comma: "{fixed}". '
            f"Found {len(matches)} citation(s) without it.",
            Severity.MINOR,
            Category.CITATIONS,
            text=first.group(0),
            paragraph_index=index.paragraph_at(first.start()),
            fix_action=FixAction.ADD_CITATION_COMMA,
            explanation="APA 7 Section 8.11: (Author, Year).",
            original_text=first.group(0),
            replacement_text=fixed,
        ))

    parenthetical = list(PARENTHETICAL_RE.finditer(text))

    # "and" inside parentheses
    with_and = [m for m in parenthetical if re.search(r"\sand\s", m.group(1))]
    if with_and:
        first = with_and[0]
        fixed = re.sub(r"\sand\s", " & ", first.group(0))
        issues.append(make_issue(
            "Use & in parenthetical citations",
            f'Join author names with "&" inside parentheses: "{fixed}". '
            f"Found {len(with_and)} citation(s).",
            Severity.MINOR,
            Category.CITATIONS,
            text=first.group(0),
            paragraph_index=index.paragraph_at(first.start()),
            fix_action=FixAction.FIX_PARENTHETICAL_CONNECTOR,
            explanation="APA 7 Section 8.17: use an ampersand in parenthetical citations and \"and\" in narrative ones.",
            original_text=first.group(0),
            replacement_text=fixed,
        ))

    # Comma before et al.
    et_al = [m for m in parenthetical if ET_AL_COMMA_RE.search(m.group(1))]
    if et_al:
        first = et_al[0]
        fixed = ET_AL_COMMA_RE.sub(" et al.", first.group(0), count=1)
        issues.append(make_issue(
            "Incorrect et al. formatting",
            f'No comma goes between the author and "et al.": "{fixed}".',
            Severity.MINOR,
            Category.CITATIONS,
            text=first.group(0),
            paragraph_index=index.paragraph_at(first.start()),
            fix_action=FixAction.FIX_ET_AL_FORMATTING,
            explanation="APA 7 Section 8.17: (Author et al., Year).",
            original_text=first.group(0),
            replacement_text=fixed,
        ))

    # Ampersand in narrative citations
    narrative = NARRATIVE_AMPERSAND_RE.search(text)
    if narrative:
        issues.append(make_issue(
            "Use \"and\" in narrative citations",
            f'Spell out "and" when authors are named in running text: "{narrative.group(0)}".',
            Severity.MINOR,
            Category.CITATIONS,
            text=narrative.group(0),
            paragraph_index=index.paragraph_at(narrative.start()),
            explanation="APA 7 Section 8.17: the ampersand is only used inside parentheses.",
        ))

    # Direct quotations need a page (or paragraph) locator
    unlocated = [m for m in QUOTE_CITATION_RE.finditer(text)
                 if not re.search(r"\b(?:pp?\.|para\.|paras\.)", m.group(1))]
    if unlocated:
        first = unlocated[0]
        issues.append(make_issue(
            "Direct quote missing page number",
            f"Quotations must cite a page or paragraph number, e.g. ({first.group(1)}, p. 12). "
            f"Found {len(unlocated)} quotation(s) without one.",
            Severity.MAJOR,
            Category.CITATIONS,
            text=first.group(0)[:120],
            paragraph_index=index.paragraph_at(first.start()),
            fix_action=FixAction.ADD_PAGE_NUMBER,
            explanation="APA 7 Section 8.13: direct quotations include a locator.",
            original_text=f"({first.group(1)})",
        ))

    return issues
