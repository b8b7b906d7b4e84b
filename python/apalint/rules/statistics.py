"""
Statistical reporting rules.
"""

import re
from typing import Any, Dict, List, Optional

from apalint.models import Category, FixAction, Issue, Severity
from apalint.rules.common import TextIndex, make_issue, structure_list

SYMBOL_NAMES = {
    "M": "mean",
    "SD": "standard deviation",
    "N": "total sample size",
    "n": "sample size",
    "p": "probability",
    "r": "correlation",
    "t": "t test",
    "F": "F test",
    "df": "degrees of freedom",
    "χ2": "chi-square",
}

SYMBOL_RE = re.compile(
    r"(?<![A-Za-z])(SD|df|χ2|[MNnprtF])\s*(?:\([\d,\s.]+\)\s*)?[=<>≤≥]\s*-?[\d.]+"
)
LEADING_ZERO_RE = re.compile(r"(?<![A-Za-z])([pr])\s*([=<>≤≥])\s*(-?)0(\.\d+)")
P_ZERO_RE = re.compile(r"(?<![A-Za-z])p\s*=\s*0?\.0+(?!\d*[1-9])")

# Italic spans this close to a symbol count as italicizing it
ITALIC_PROXIMITY = 10


def check_statistics(text: str, structure: Optional[Dict[str, Any]] = None,
                     formatting: Optional[Dict[str, Any]] = None) -> List[Issue]:
    index = TextIndex(text)
    italic_spans = structure_list(structure, "italicized_text")
    issues: List[Issue] = []

    reported = set()
    for match in SYMBOL_RE.finditer(text):
        symbol = match.group(1)
        if symbol in reported:
            continue
        if _is_italicized(symbol, match.start(1), italic_spans):
            continue
        reported.add(symbol)
        issues.append(make_issue(
            f"Statistical symbol '{symbol}' not italicized",
            f"'{symbol}' ({SYMBOL_NAMES[symbol]}) should be italicized.",
            Severity.MINOR,
            Category.STATISTICAL,
            text=match.group(0),
            paragraph_index=index.paragraph_at(match.start()),
            explanation=f"APA 7 Section 6.45: italicize statistical symbols, e.g. *{symbol}* = value.",
        ))

    zero_reported = set()
    for match in LEADING_ZERO_RE.finditer(text):
        symbol = match.group(1)
        if symbol in zero_reported:
            continue
        zero_reported.add(symbol)
        replacement = f"{symbol} {match.group(2)} {match.group(3)}{match.group(4)}"
        issues.append(make_issue(
            "Leading zero in statistic",
            f"Values of {symbol} cannot exceed 1, so drop the leading zero: \"{replacement}\".",
            Severity.MINOR,
            Category.STATISTICAL,
            text=match.group(0),
            paragraph_index=index.paragraph_at(match.start()),
            fix_action=FixAction.FIX_STATISTIC_LEADING_ZERO,
            explanation="APA 7 Section 6.36: no zero before the decimal point for p values and correlations.",
            original_text=match.group(0),
            replacement_text=replacement,
        ))

    p_zero = P_ZERO_RE.search(text)
    if p_zero:
        issues.append(make_issue(
            "Impossible p value",
            "A p value is never exactly zero; report it as p < .001.",
            Severity.MINOR,
            Category.STATISTICAL,
            text=p_zero.group(0),
            paragraph_index=index.paragraph_at(p_zero.start()),
            explanation="Report very small p values as p < .001.",
        ))

    return issues


def _is_italicized(symbol: str, position: int, spans: List[Dict[str, Any]]) -> bool:
    for span in spans:
        span_text = span.get("text") or ""
        if symbol not in span_text:
            continue
        start = span.get("position")
        if start is None:
            continue
        if start - ITALIC_PROXIMITY <= position <= start + len(span_text) + ITALIC_PROXIMITY:
            return True
    return False
