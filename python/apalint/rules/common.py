"""
Shared helpers for rule modules.
"""

import bisect
import re
from typing import Any, Dict, List, Mapping, Optional

from apalint.models import Category, FixAction, Issue, IssueLocation, Severity

# Words kept lowercase in APA title case unless they start the title.
SMALL_WORDS = frozenset(
    "a an and as at but by for if in nor of on or so the to up yet with".split()
)

_WORD_RE = re.compile(r"[A-Za-z][A-Za-z'\-]*")


def make_issue(
    title: str,
    description: str,
    severity: Severity,
    category: Category,
    *,
    text: Optional[str] = None,
    paragraph_index: Optional[int] = None,
    fix_action: Optional[FixAction] = None,
    explanation: str = "",
    original_text: Optional[str] = None,
    replacement_text: Optional[str] = None,
) -> Issue:
    return Issue(
        title=title,
        description=description,
        text=text,
        severity=severity,
        category=category,
        location=IssueLocation.paragraph(paragraph_index),
        has_fix=fix_action is not None,
        fix_action=fix_action,
        explanation=explanation,
        original_text=original_text,
        replacement_text=replacement_text,
    )


class TextIndex:
    """
    Maps character offsets in the analysed text to paragraph indices.
    Text is one paragraph per line, so this is a line lookup.
    """

    def __init__(self, text: str):
        self.text = text
        self._starts = [0]
        for i, ch in enumerate(text):
            if ch == "\n":
                self._starts.append(i + 1)

    def paragraph_at(self, offset: int) -> int:
        return max(0, bisect.bisect_right(self._starts, offset) - 1)

    def paragraph_of(self, needle: str, start: int = 0) -> Optional[int]:
        pos = self.text.find(needle, start)
        if pos < 0:
            return None
        return self.paragraph_at(pos)


def structure_list(structure: Optional[Mapping[str, Any]], key: str) -> List[Dict[str, Any]]:
    if not structure:
        return []
    return list(structure.get(key) or [])


def document_formatting(formatting: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Accepts either the full formatting payload or just its `document` part."""
    if not formatting:
        return {}
    if "document" in formatting:
        return formatting.get("document") or {}
    return dict(formatting)


def paragraph_formatting(formatting: Optional[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    if not formatting:
        return []
    return list(formatting.get("paragraphs") or [])


def words(text: str) -> List[str]:
    return _WORD_RE.findall(text)


def is_title_case(title: str) -> bool:
    """Major words capitalized; small words may stay lowercase except first."""
    tokens = words(title)
    for i, word in enumerate(tokens):
        if i > 0 and word.lower() in SMALL_WORDS:
            continue
        if not word[0].isupper():
            return False
    return True


def is_sentence_case(text: str, max_capital_ratio: float = 0.3) -> bool:
    """
    First word capitalized and at most `max_capital_ratio` of the remaining
    words capitalized (proper nouns are allowed).
    """
    tokens = words(text)
    if not tokens:
        return True
    if not tokens[0][0].isupper():
        return False
    rest = [w for w in tokens[1:] if w.lower() not in SMALL_WORDS]
    if not rest:
        return True
    capitalized = sum(1 for w in rest if w[0].isupper())
    return capitalized / len(rest) <= max_capital_ratio


def to_title_case(title: str) -> str:
    def fix(match):
        word = match.group(0)
        if match.start() > 0 and word.lower() in SMALL_WORDS:
            return word.lower()
        if word.isupper() and len(word) > 1:
            word = word.lower()
        return word[0].upper() + word[1:]

    return _WORD_RE.sub(fix, title)


def to_sentence_case(text: str) -> str:
    result = []
    for i, match in enumerate(_WORD_RE.finditer(text)):
        word = match.group(0)
        # Acronyms survive
        if i > 0 and not (word.isupper() and len(word) > 1):
            word = word.lower()
        elif i == 0:
            word = word[0].upper() + word[1:]
        result.append((match.start(), match.end(), word))

    out = text
    for start, end, word in reversed(result):
        out = out[:start] + word + out[end:]
    return out
