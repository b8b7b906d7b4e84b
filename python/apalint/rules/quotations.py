"""
Direct quotation rules: length thresholds, ellipses, brackets, integration.
"""

import re
from typing import Any, Dict, List, Optional

from apalint.config import ApaTargets
from apalint.models import Category, FixAction, Issue, Severity
from apalint.rules.common import TextIndex, make_issue

QUOTE_RE = re.compile(r"[\"“]([^\"“”]+)[\"”]")
TRAILING_CITATION_RE = re.compile(r"^\s*\([^)]+\)")
DOT_RUN_RE = re.compile(r"(?<!\.)\.{2,}(?!\.)")
LEADING_ELLIPSIS_RE = re.compile(r"^\s*(?:\.\.\.|…|\. \. \.)")
SIC_RE = re.compile(r"(\S)\[sic\]")
BRACKET_RE = re.compile(r"\[([^\]]+)\]")
BRACKETED_ELLIPSIS_RE = re.compile(r"\[(?:\.\.\.|…|\. \. \.)\]")
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
SIGNAL_PHRASES = ("states", "argues", "notes", "writes", "according to", "said", "explained")


def check_quotations(text: str, structure: Optional[Dict[str, Any]] = None,
                     formatting: Optional[Dict[str, Any]] = None,
                     targets: Optional[ApaTargets] = None) -> List[Issue]:
    targets = targets or ApaTargets()
    index = TextIndex(text)
    quotes = list(QUOTE_RE.finditer(text))

    issues: List[Issue] = []
    issues += _check_length(text, quotes, index, targets)
    issues += _check_ellipses(quotes, index)
    issues += _check_brackets(quotes, index)
    issues += _check_integration(text, quotes, index)
    return issues


def _check_length(text: str, quotes: List[re.Match], index: TextIndex, targets: ApaTargets) -> List[Issue]:
    issues: List[Issue] = []
    block_reported = False
    citation_reported = False
    advisory_reported = False

    for quote in quotes:
        word_count = len(quote.group(1).split())
        paragraph = index.paragraph_at(quote.start())

        if word_count >= targets.block_quote_words:
            if not block_reported:
                block_reported = True
                issues.append(make_issue(
                    "Long quote incorrectly formatted with quotation marks",
                    f"This quote has {word_count} words; quotes of {targets.block_quote_words} words "
                    "or more are set as indented block quotes without quotation marks.",
                    Severity.MAJOR,
                    Category.QUOTATIONS,
                    text=quote.group(0)[:100],
                    paragraph_index=paragraph,
                    fix_action=FixAction.CONVERT_TO_BLOCK_QUOTE,
                    explanation="APA 7 Section 8.27: block quotations are indented 0.5 inch with no quotation marks.",
                    original_text=quote.group(0),
                    replacement_text=quote.group(1),
                ))
            if not citation_reported and not TRAILING_CITATION_RE.match(text[quote.end():quote.end() + 120]):
                citation_reported = True
                issues.append(make_issue(
                    "Block quote missing citation",
                    "A long quotation must be followed by its citation.",
                    Severity.MAJOR,
                    Category.QUOTATIONS,
                    text=quote.group(0)[:100],
                    paragraph_index=paragraph,
                    explanation="Place the parenthetical citation after the final punctuation of a block quote.",
                ))
        elif word_count >= targets.long_quote_words and not advisory_reported:
            advisory_reported = True
            issues.append(make_issue(
                "Long inline quote",
                f"This quote has {word_count} words. Consider paraphrasing or shortening it.",
                Severity.MINOR,
                Category.QUOTATIONS,
                text=quote.group(0)[:100],
                paragraph_index=paragraph,
                explanation="Quotes approaching 40 words read better paraphrased.",
            ))
    return issues


def _check_ellipses(quotes: List[re.Match], index: TextIndex) -> List[Issue]:
    issues: List[Issue] = []
    reported = set()

    for quote in quotes:
        body = quote.group(1)
        paragraph = index.paragraph_at(quote.start())

        for run in DOT_RUN_RE.finditer(body):
            dots = run.group(0)
            if dots == "...":
                continue
            key = "four-dots" if len(dots) == 4 else "format"
            if key in reported:
                continue
            reported.add(key)
            if key == "four-dots":
                issues.append(make_issue(
                    "Four-dot ellipsis",
                    "A sentence-ending omission is a period followed by a three-dot ellipsis.",
                    Severity.MINOR,
                    Category.QUOTATIONS,
                    text=body[max(0, run.start() - 20):run.end() + 20],
                    paragraph_index=paragraph,
                    fix_action=FixAction.FIX_ELLIPSIS_FORMAT,
                    explanation="Write an omission between sentences as \". ...\".",
                    original_text=dots,
                    replacement_text=". ...",
                ))
            else:
                issues.append(make_issue(
                    "Incorrect ellipsis format",
                    f'Use three periods for an ellipsis, not "{dots}".',
                    Severity.MINOR,
                    Category.QUOTATIONS,
                    text=body[max(0, run.start() - 20):run.end() + 20],
                    paragraph_index=paragraph,
                    fix_action=FixAction.FIX_ELLIPSIS_FORMAT,
                    explanation="An ellipsis is three periods: ...",
                    original_text=dots,
                    replacement_text="...",
                ))

        if "leading" not in reported and LEADING_ELLIPSIS_RE.match(body):
            reported.add("leading")
            issues.append(make_issue(
                "Unnecessary ellipsis at start of quote",
                "Do not open a quotation with an ellipsis.",
                Severity.MINOR,
                Category.QUOTATIONS,
                text=body[:50],
                paragraph_index=paragraph,
                explanation="APA 7 Section 8.31: an ellipsis is not used at the beginning or end of a quotation.",
            ))
    return issues


def _check_brackets(quotes: List[re.Match], index: TextIndex) -> List[Issue]:
    issues: List[Issue] = []
    reported = set()

    for quote in quotes:
        body = quote.group(1)
        paragraph = index.paragraph_at(quote.start())

        sic = SIC_RE.search(body)
        if sic and "sic" not in reported:
            reported.add("sic")
            issues.append(make_issue(
                "Missing space before [sic]",
                "Put a space between the error and [sic].",
                Severity.MINOR,
                Category.QUOTATIONS,
                text=body[max(0, sic.start() - 20):sic.end()],
                paragraph_index=paragraph,
                fix_action=FixAction.ADD_SPACE_BEFORE_SIC,
                explanation="Write: the word [sic].",
                original_text=sic.group(0),
                replacement_text=f"{sic.group(1)} [sic]",
            ))

        for bracket in BRACKET_RE.finditer(body):
            content = bracket.group(1)
            if content == "sic" or BRACKETED_ELLIPSIS_RE.fullmatch(bracket.group(0)):
                continue
            if len(content) > 20 and "long-insertion" not in reported:
                reported.add("long-insertion")
                issues.append(make_issue(
                    "Long bracketed insertion",
                    "Bracketed insertions in quotes should be brief.",
                    Severity.MINOR,
                    Category.QUOTATIONS,
                    text=bracket.group(0)[:50],
                    paragraph_index=paragraph,
                    explanation="Brackets clarify a word or two; longer explanations belong outside the quote.",
                ))

        bracketed_ellipsis = BRACKETED_ELLIPSIS_RE.search(body)
        if bracketed_ellipsis and "bracketed-ellipsis" not in reported:
            reported.add("bracketed-ellipsis")
            issues.append(make_issue(
                "Ellipsis in brackets",
                "APA does not place ellipses in brackets.",
                Severity.MINOR,
                Category.QUOTATIONS,
                text=bracketed_ellipsis.group(0),
                paragraph_index=paragraph,
                fix_action=FixAction.REMOVE_ELLIPSIS_BRACKETS,
                explanation="Use a plain ellipsis: ...",
                original_text=bracketed_ellipsis.group(0),
                replacement_text="...",
            ))
    return issues


def _check_integration(text: str, quotes: List[re.Match], index: TextIndex) -> List[Issue]:
    issues: List[Issue] = []

    sentences = SENTENCE_SPLIT_RE.split(text)
    for i, sentence in enumerate(sentences):
        stripped = sentence.strip()
        if i == 0 or not stripped.startswith(("\"", "“")) or len(stripped) <= 20:
            continue
        previous = sentences[i - 1]
        if not any(phrase in previous for phrase in SIGNAL_PHRASES):
            issues.append(make_issue(
                "Floating quotation",
                "A quotation appears without a signal phrase introducing it.",
                Severity.MINOR,
                Category.QUOTATIONS,
                text=stripped[:50],
                paragraph_index=index.paragraph_of(stripped[:30]),
                explanation="Introduce quotations: \"Smith (2023) noted that ...\".",
            ))
            break

    paragraphs = max(1, sum(1 for line in text.split("\n") if line.strip()))
    if quotes and len(quotes) / paragraphs > 2:
        issues.append(make_issue(
            "Excessive use of direct quotes",
            f"Average of {len(quotes) / paragraphs:.1f} quotes per paragraph.",
            Severity.MINOR,
            Category.QUOTATIONS,
            text=f"{len(quotes)} quotes in {paragraphs} paragraphs",
            explanation="Prefer paraphrase; keep direct quotes for wording that matters.",
        ))
    return issues
