"""
Heading structure rules.
"""

from typing import Any, Dict, List, Optional

from apalint.models import Category, FixAction, Issue, Severity
from apalint.rules.common import make_issue, structure_list, to_title_case, words


def check_structure(text: str, structure: Optional[Dict[str, Any]] = None,
                    formatting: Optional[Dict[str, Any]] = None) -> List[Issue]:
    headings = structure_list(structure, "headings")
    issues: List[Issue] = []

    previous = None
    for heading in headings:
        level = heading.get("level")
        if level is None:
            continue
        if previous is not None and level > previous["level"] + 1:
            issues.append(make_issue(
                "Improper heading hierarchy",
                f"Heading level {level} follows level {previous['level']}.",
                Severity.MAJOR,
                Category.STRUCTURE,
                text=f'"{heading.get("text")}" (Level {level}) after "{previous.get("text")}" (Level {previous["level"]})',
                paragraph_index=heading.get("paragraph_index"),
                explanation="APA 7 Section 2.27: headings descend one level at a time.",
            ))
        previous = heading

    for heading in headings:
        heading_text = (heading.get("text") or "").strip()
        tokens = words(heading_text)
        if len("".join(tokens)) < 4 or not heading_text.isupper():
            continue
        replacement = to_title_case(heading_text)
        issues.append(make_issue(
            "Heading in all capital letters",
            f'Write headings in title case: "{replacement}".',
            Severity.MINOR,
            Category.STRUCTURE,
            text=heading_text,
            paragraph_index=heading.get("paragraph_index"),
            fix_action=FixAction.FIX_ALL_CAPS_HEADING,
            explanation="APA 7 headings use title case, never all capitals.",
            original_text=heading_text,
            replacement_text=replacement,
        ))
    return issues
