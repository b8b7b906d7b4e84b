"""
Reference list rules.

The references section runs from a line reading "References" up to an
"Appendix" line or the end of the text. Entries are rebuilt from its lines:
a line starting with a capital letter opens a new entry once the current one
already has its parenthesised date.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from apalint.models import Category, FixAction, Issue, Severity
from apalint.rules.common import TextIndex, is_sentence_case, make_issue, structure_list, to_sentence_case

REFERENCES_SECTION_RE = re.compile(
    r"(?:^|\n)[ \t]*references[ \t]*(?:\n|\Z)([\s\S]*?)(?=\n[ \t]*appendix\b|\Z)",
    re.IGNORECASE,
)
BODY_CITATION_RE = re.compile(r"\([^()]*[A-Za-z][^()]*,\s*(?:\d{4}[a-z]?|n\.d\.)[^()]*\)")
CROSS_CITATION_RE = re.compile(
    r"\(([A-Za-z][A-Za-z\s&.,'\-]+?)(?:,?\s+et\s+al\.)?(?:,\s+)?(\d{4}[a-z]?|n\.d\.)\)"
)

FIRST_AUTHOR_RE = re.compile(r"^([A-Z][\w'\-]+(?:[ \-][A-Z][\w'\-]+)?),")
YEAR_RE = re.compile(r"\((\d{4}[a-z]?|n\.d\.)[^)]*\)")

JOURNAL_RE = re.compile(r"\d+\s*\(\d+\),?\s*\d+[-–]\d+")
EDITED_RE = re.compile(r"\([^)]*Eds?\.\)")
EDITION_RE = re.compile(r"\((\d+)(?:st|nd|rd|th)\s+[Ee]d(?:ition)?\.?\)")
PUBLISHER_HINT_RE = re.compile(r"\b(?:Press|Publishing|Publishers?|Books)\b")
PUBLISHER_LOCATION_RE = re.compile(r"\b(?:[A-Z][a-z]+(?: [A-Z][a-z]+)*,\s+[A-Z]{2}|New York|London):\s+(?=[A-Z])")

AUTHOR_OK_RE = re.compile(r"^[A-Z][\w'\-]+(?:[ \-][A-Z][\w'\-]+)?,\s+[A-Z]\.(?:[\s\-]*[A-Z]\.)*")
FULL_NAME_RE = re.compile(r"^[A-Z][\w'\-]+,\s+[A-Z][a-z]+")
MISSING_AUTHOR_COMMA_RE = re.compile(r"^([A-Z][\w'\-]+)(\s+[A-Z]\.)")
MISSING_INITIAL_PERIOD_RE = re.compile(r"^([A-Z][\w'\-]+,\s+)((?:[A-Z](?:\s+|(?=[,(])))+)")
AUTHOR_NAME_RE = re.compile(r"[A-Z][\w'\-]+,\s+[A-Z]\.")

DOI_RE = re.compile(
    r"(?:https?://)?(?:dx\.)?doi\.org/(\S+?)[.,;]?(?=\s|$)|\bdoi:\s*(\S+?)[.,;]?(?=\s|$)",
    re.IGNORECASE,
)
VALID_DOI_PREFIX_RE = re.compile(r"^10\.\d{4,}")
VOLATILE_SOURCE_RE = re.compile(r"wikipedia|wiki|news|blog|press release", re.IGNORECASE)

MAX_CROSS_CHECK_ISSUES = 3


@dataclass
class ReferenceEntry:
    text: str
    offset: int
    lines: List[str] = field(default_factory=list)
    first_author: str = ""
    year: Optional[str] = None
    type: str = "other"
    indentation: Optional[str] = None

    @property
    def has_multiple_authors(self) -> bool:
        return "&" in self.text or len(AUTHOR_NAME_RE.findall(self.text)) > 1


# =============================================================================
# PARSING
# =============================================================================


def find_references_section(text: str) -> Optional[re.Match]:
    return REFERENCES_SECTION_RE.search(text)


def parse_reference_entries(section_text: str, base_offset: int = 0) -> List[ReferenceEntry]:
    entries: List[ReferenceEntry] = []
    current: List[str] = []
    current_offset = base_offset

    def flush():
        if current:
            entries.append(_build_entry(current, current_offset))

    pos = base_offset
    for line in section_text.split("\n"):
        stripped = line.strip()
        line_offset = pos + (len(line) - len(line.lstrip()))
        pos += len(line) + 1

        if not stripped:
            flush()
            current = []
            continue

        if current and stripped[0].isupper() and "(" in " ".join(current):
            flush()
            current = []

        if not current:
            current_offset = line_offset
        current.append(line)

    flush()
    return entries


def _build_entry(lines: List[str], offset: int) -> ReferenceEntry:
    text = " ".join(line.strip() for line in lines)
    author = FIRST_AUTHOR_RE.match(text)
    year = YEAR_RE.search(text)

    if len(lines) <= 1:
        indentation = "single-line"
    else:
        first = len(lines[0]) - len(lines[0].lstrip())
        second = len(lines[1]) - len(lines[1].lstrip())
        indentation = "hanging" if second > first else "no-hanging"

    return ReferenceEntry(
        text=text,
        offset=offset,
        lines=list(lines),
        first_author=author.group(1) if author else (text.split()[0].rstrip(",.") if text.split() else ""),
        year=year.group(1) if year else None,
        type=detect_reference_type(text),
        indentation=indentation,
    )


def detect_reference_type(text: str) -> str:
    if JOURNAL_RE.search(text):
        return "journal"
    if re.search(r"\bIn\s+[A-Z]", text) and EDITED_RE.search(text):
        return "chapter"
    if EDITED_RE.search(text) or EDITION_RE.search(text) or PUBLISHER_HINT_RE.search(text):
        return "book"
    if "http" in text or "doi" in text.lower():
        return "online"
    return "other"


def _year_key(year: Optional[str]) -> Tuple[int, str]:
    if not year or year == "n.d.":
        return (-1, "")
    return (int(year[:4]), year[4:])


def reference_sort_key(text: str) -> Tuple[str, Tuple[int, str]]:
    """APA reference list order: first author's surname, then year."""
    entry = _build_entry([text], 0)
    return (entry.first_author.lower(), _year_key(entry.year))


# =============================================================================
# RULE
# =============================================================================


def check_references(text: str, structure: Optional[Dict[str, Any]] = None,
                     formatting: Optional[Dict[str, Any]] = None) -> List[Issue]:
    index = TextIndex(text)
    section = find_references_section(text)
    body_text = text[: section.start()] if section else text
    has_citations = bool(BODY_CITATION_RE.search(body_text))

    if section is None:
        if not has_citations:
            return []
        return [make_issue(
            "Missing references section",
            "The document cites sources but has no References section.",
            Severity.CRITICAL,
            Category.REFERENCES,
            explanation="APA 7 Section 9.1: every cited work must appear in a reference list titled \"References\".",
        )]

    entries = parse_reference_entries(section.group(1), section.start(1))
    if not entries:
        return [make_issue(
            "Empty references section",
            "The References heading is present but no entries follow it.",
            Severity.CRITICAL,
            Category.REFERENCES,
            paragraph_index=index.paragraph_at(section.start(1)),
            explanation="Add a reference entry for every source cited in the text.",
        )]

    _apply_detected_indentation(entries, structure_list(structure, "references"))
    italics = structure_list(structure, "italicized_text")

    issues: List[Issue] = []
    issues += check_order(entries, index)
    issues += check_hanging_indent(entries, index)
    issues += check_entry_formatting(entries, italics, index)
    issues += check_doi_and_urls(entries, index)
    issues += cross_check_citations(body_text, entries, index)
    issues += check_duplicates(entries, index)
    return issues


def _apply_detected_indentation(entries: List[ReferenceEntry], records: List[Dict[str, Any]]):
    """Prefer paragraph indentation from the extractor over whitespace guesses."""
    by_text = {r.get("text", "").strip(): r for r in records}
    for entry in entries:
        record = by_text.get(entry.text)
        if record is not None and "hanging" in record:
            entry.indentation = "hanging" if record["hanging"] else "no-hanging"


def check_order(entries: List[ReferenceEntry], index: TextIndex) -> List[Issue]:
    issues: List[Issue] = []
    alphabetical_reported = False
    chronological_reported = False

    for prev, cur in zip(entries, entries[1:]):
        prev_name = prev.first_author.lower()
        cur_name = cur.first_author.lower()
        if not prev_name or not cur_name:
            continue

        if cur_name < prev_name and not alphabetical_reported:
            alphabetical_reported = True
            issues.append(make_issue(
                "References not in alphabetical order",
                f'"{cur.first_author}" should come before "{prev.first_author}".',
                Severity.MAJOR,
                Category.REFERENCES,
                text=f"{cur.first_author} ({cur.year})",
                paragraph_index=index.paragraph_at(cur.offset),
                fix_action=FixAction.SORT_REFERENCES,
                explanation="APA 7 Section 9.44: order entries alphabetically by the first author's surname.",
            ))
        elif cur_name == prev_name and not chronological_reported:
            if _year_key(cur.year) < _year_key(prev.year):
                chronological_reported = True
                issues.append(make_issue(
                    "Same author references not in chronological order",
                    f"{cur.first_author}'s works should be ordered by year, oldest first.",
                    Severity.MINOR,
                    Category.REFERENCES,
                    text=f"{prev.year} comes before {cur.year}",
                    paragraph_index=index.paragraph_at(cur.offset),
                    fix_action=FixAction.SORT_REFERENCES_BY_YEAR,
                    explanation="APA 7 Section 9.46: one author's works are ordered by year; "
                                "same-year works take suffixes a, b, c in title order.",
                ))
    return issues


def check_hanging_indent(entries: List[ReferenceEntry], index: TextIndex) -> List[Issue]:
    missing = [e for e in entries if e.indentation == "no-hanging" and len(e.text) > 80]
    if len(missing) <= len(entries) * 0.3:
        return []
    return [make_issue(
        "Missing hanging indent in references",
        "Reference entries need a 0.5\" hanging indent for lines after the first.",
        Severity.MINOR,
        Category.REFERENCES,
        text=f"{len(missing)} of {len(entries)} references lack a hanging indent",
        paragraph_index=index.paragraph_at(missing[0].offset),
        fix_action=FixAction.FIX_REFERENCE_INDENT,
        explanation="APA 7 Section 2.24: reference entries use a 0.5-inch hanging indent.",
    )]


def _is_italicized(fragment: str, entry: ReferenceEntry, italics: List[Dict[str, Any]], index: TextIndex) -> bool:
    entry_paragraph = index.paragraph_at(entry.offset)
    for item in italics:
        italic_text = (item.get("text") or "").strip()
        if not italic_text or not (italic_text in fragment or fragment in italic_text):
            continue
        if item.get("paragraph_index") is not None:
            if item["paragraph_index"] == entry_paragraph:
                return True
        elif item.get("position") is not None:
            if entry.offset <= item["position"] <= entry.offset + len(entry.text) + len(entry.lines):
                return True
        else:
            return True
    return False


def _validate_author_format(entry: ReferenceEntry, index: TextIndex) -> Optional[Issue]:
    text = entry.text
    paragraph = index.paragraph_at(entry.offset)

    if not AUTHOR_OK_RE.match(text):
        if FULL_NAME_RE.match(text):
            return make_issue(
                "Full first names instead of initials",
                "Use initials instead of full first names in references.",
                Severity.MAJOR,
                Category.REFERENCES,
                text=text[:50],
                paragraph_index=paragraph,
                explanation="Author names use initials: Smith, J. D., not Smith, John David.",
            )

        match = MISSING_AUTHOR_COMMA_RE.match(text)
        if match:
            return make_issue(
                "Missing comma after author surname",
                "The author surname should be followed by a comma.",
                Severity.MINOR,
                Category.REFERENCES,
                text=text[:50],
                paragraph_index=paragraph,
                fix_action=FixAction.FIX_AUTHOR_COMMA,
                explanation="Format: Lastname, F. M., not Lastname F. M.",
                original_text=match.group(0),
                replacement_text=f"{match.group(1)},{match.group(2)}",
            )

        match = MISSING_INITIAL_PERIOD_RE.match(text)
        if match:
            initials = re.findall(r"[A-Z]", match.group(2))
            fixed = match.group(1) + " ".join(f"{i}." for i in initials)
            trailing = " " if match.group(2).endswith(" ") else ""
            return make_issue(
                "Missing periods after author initials",
                "Each initial should be followed by a period.",
                Severity.MINOR,
                Category.REFERENCES,
                text=text[:50],
                paragraph_index=paragraph,
                fix_action=FixAction.FIX_AUTHOR_INITIALS,
                explanation="Format: Smith, J. D., not Smith, J D",
                original_text=match.group(0),
                replacement_text=fixed + trailing,
            )

    if len(AUTHOR_NAME_RE.findall(text)) > 20:
        return make_issue(
            "Too many authors listed",
            "For 21 or more authors list the first 19, an ellipsis, then the final author.",
            Severity.MINOR,
            Category.REFERENCES,
            text=text[:50],
            paragraph_index=paragraph,
            explanation="APA 7 Section 9.8.",
        )
    return None


def _validate_by_type(entry: ReferenceEntry, italics: List[Dict[str, Any]], index: TextIndex) -> List[Tuple[str, Issue]]:
    """Type-specific checks, tagged with a key so each kind is reported once."""
    found: List[Tuple[str, Issue]] = []
    text = entry.text
    paragraph = index.paragraph_at(entry.offset)

    if entry.type == "journal":
        journal = re.search(r"\)\.\s+[^.]+\.\s+([^,.]+),\s*\d+", text) or re.search(r"\)\.\s+([^,]+),\s*\d+", text)
        journal_name = journal.group(1).strip() if journal else None
        if journal_name and len(journal_name) > 3 and not _is_italicized(journal_name, entry, italics, index):
            found.append(("journal-italics", make_issue(
                "Journal name not italicized",
                "Journal names must be italicized in references.",
                Severity.MAJOR,
                Category.REFERENCES,
                text=journal_name,
                paragraph_index=paragraph,
                explanation="APA 7 Section 9.25: italicize the periodical name and volume number.",
            )))

        volume = re.search(r",\s*(\d+)\s*(?:\(|,)", text)
        if volume and not any(
            volume.group(1) in (i.get("text") or "") and (journal_name is None or journal_name in (i.get("context") or ""))
            for i in italics
        ):
            found.append(("volume-italics", make_issue(
                "Volume number not italicized",
                "Journal volume numbers should be italicized.",
                Severity.MINOR,
                Category.REFERENCES,
                text=text[max(0, volume.start() - 10): volume.end() + 10],
                paragraph_index=paragraph,
                explanation="Only the volume is italic: 45(3), where 45 is italic and (3) is not.",
            )))

        issue_number = re.search(r"\d+\((\d+)\)", text)
        if issue_number and any(f"({issue_number.group(1)})" in (i.get("text") or "") for i in italics):
            found.append(("issue-italics", make_issue(
                "Issue number incorrectly italicized",
                "Issue numbers in parentheses should not be italicized.",
                Severity.MINOR,
                Category.REFERENCES,
                text=issue_number.group(0),
                paragraph_index=paragraph,
                explanation="Only the volume is italic: 45(3), where 45 is italic and (3) is not.",
            )))

        pages = re.search(r",\s*(\d+)-(\d+)", text)
        if pages:
            hyphenated = f"{pages.group(1)}-{pages.group(2)}"
            found.append(("page-dash", make_issue(
                "Hyphen instead of en dash in page range",
                "Use an en dash (–), not a hyphen (-), in page ranges.",
                Severity.MINOR,
                Category.REFERENCES,
                text=hyphenated,
                paragraph_index=paragraph,
                fix_action=FixAction.FIX_PAGE_RANGE_DASH,
                explanation="Page ranges use an en dash: 123–456.",
                original_text=hyphenated,
                replacement_text=f"{pages.group(1)}–{pages.group(2)}",
            )))

    elif entry.type == "book":
        title_match = re.search(r"\)\.\s+([^.]+)\.", text)
        if title_match:
            title = title_match.group(1).strip()
            edition_free = EDITION_RE.sub("", title).strip()
            if len(edition_free) > 3 and not _is_italicized(edition_free, entry, italics, index):
                found.append(("book-italics", make_issue(
                    "Book title not italicized",
                    "Book titles must be italicized in references.",
                    Severity.MAJOR,
                    Category.REFERENCES,
                    text=edition_free[:50],
                    paragraph_index=paragraph,
                    explanation="APA 7 Section 9.29: italicize the book title.",
                )))

            title_words = edition_free.split()
            capitalized = [w for w in title_words if len(w) > 3 and w[0].isupper()]
            if title_words and len(capitalized) > len(title_words) * 0.5 and not is_sentence_case(edition_free):
                found.append(("book-case", make_issue(
                    "Book title not in sentence case",
                    "Book titles use sentence case, not title case.",
                    Severity.MINOR,
                    Category.REFERENCES,
                    text=edition_free[:50],
                    paragraph_index=paragraph,
                    fix_action=FixAction.FIX_BOOK_TITLE_CASE,
                    explanation="Sentence case: 'The psychology of learning', not 'The Psychology of Learning'.",
                    original_text=edition_free,
                    replacement_text=to_sentence_case(edition_free),
                )))

        edition = EDITION_RE.search(text)
        if edition:
            number = int(edition.group(1))
            suffix = "th" if 10 <= number % 100 <= 20 else {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")
            expected = f"({number}{suffix} ed.)"
            if edition.group(0) != expected:
                found.append(("edition-format", make_issue(
                    "Incorrect edition format",
                    f"Format the edition as '{expected}'.",
                    Severity.MINOR,
                    Category.REFERENCES,
                    text=edition.group(0),
                    paragraph_index=paragraph,
                    fix_action=FixAction.FIX_EDITION_FORMAT,
                    explanation="Editions are abbreviated: (2nd ed.), (3rd ed.).",
                    original_text=edition.group(0),
                    replacement_text=expected,
                )))

        location = PUBLISHER_LOCATION_RE.search(text)
        if location:
            found.append(("publisher-location", make_issue(
                "Publisher location included",
                "APA 7 no longer includes the publisher location.",
                Severity.MINOR,
                Category.REFERENCES,
                text=text[:60],
                paragraph_index=paragraph,
                fix_action=FixAction.REMOVE_PUBLISHER_LOCATION,
                explanation="Give the publisher name only.",
                original_text=location.group(0),
                replacement_text="",
            )))

    return found


def check_entry_formatting(entries: List[ReferenceEntry], italics: List[Dict[str, Any]],
                           index: TextIndex) -> List[Issue]:
    issues: List[Issue] = []
    reported: Set[str] = set()

    for entry in entries:
        paragraph = index.paragraph_at(entry.offset)

        if "author-format" not in reported:
            author_issue = _validate_author_format(entry, index)
            if author_issue is not None:
                issues.append(author_issue)
                reported.add("author-format")

        if entry.year is None and "year" not in reported:
            reported.add("year")
            issues.append(make_issue(
                "Missing year in reference",
                "Reference entry is missing its publication year.",
                Severity.MAJOR,
                Category.REFERENCES,
                text=entry.text[:60],
                paragraph_index=paragraph,
                explanation="Every reference gives the year in parentheses after the author(s); use (n.d.) when unknown.",
            ))

        for key, issue in _validate_by_type(entry, italics, index):
            if key not in reported:
                reported.add(key)
                issues.append(issue)

        if (entry.type == "journal" and "missing-doi" not in reported
                and not re.search(r"https?://|doi:", entry.text, re.IGNORECASE)):
            reported.add("missing-doi")
            issues.append(make_issue(
                "Missing DOI or URL in journal article",
                "Journal articles should include a DOI or stable URL when one exists.",
                Severity.MINOR,
                Category.REFERENCES,
                text=entry.text[:60],
                paragraph_index=paragraph,
                explanation="APA 7 Section 9.34: include a DOI for every work that has one.",
            ))

        if "connector" not in reported and entry.has_multiple_authors and ", and " in entry.text:
            reported.add("connector")
            issues.append(make_issue(
                "Incorrect connector in reference",
                "Use '&' instead of 'and' before the last author.",
                Severity.MINOR,
                Category.REFERENCES,
                text=entry.text[:60],
                paragraph_index=paragraph,
                fix_action=FixAction.FIX_REFERENCE_CONNECTOR,
                explanation="Reference lists join the last two authors with an ampersand.",
                original_text=", and ",
                replacement_text=", & ",
            ))

        ends_with_link = re.search(r"(?:https?://|doi:)\S+$", entry.text)
        if ("period" not in reported and not entry.text.endswith(".") and not ends_with_link
                and not re.search(r"\)\.?$", entry.text)):
            reported.add("period")
            tail = entry.text[-30:]
            issues.append(make_issue(
                "Missing period at end of reference",
                "Reference entries end with a period.",
                Severity.MINOR,
                Category.REFERENCES,
                text=tail,
                paragraph_index=paragraph,
                fix_action=FixAction.ADD_REFERENCE_PERIOD,
                explanation="Each element of a reference ends with a period, except a final DOI or URL.",
                original_text=tail,
                replacement_text=tail + ".",
            ))

    return issues


def check_doi_and_urls(entries: List[ReferenceEntry], index: TextIndex) -> List[Issue]:
    issues: List[Issue] = []
    reported: Set[str] = set()

    for entry in entries:
        text = entry.text
        paragraph = index.paragraph_at(entry.offset)

        if "Retrieved from" in text and "retrieved" not in reported:
            reported.add("retrieved")
            start = text.index("Retrieved from")
            issues.append(make_issue(
                "Outdated 'Retrieved from' phrase",
                "APA 7 no longer puts 'Retrieved from' before URLs.",
                Severity.MINOR,
                Category.REFERENCES,
                text=text[start:start + 60],
                paragraph_index=paragraph,
                fix_action=FixAction.REMOVE_RETRIEVED_FROM,
                explanation="Omit 'Retrieved from' unless a retrieval date is also needed.",
                original_text="Retrieved from ",
                replacement_text="",
            ))

        doi_match = DOI_RE.search(text)
        if doi_match:
            doi = doi_match.group(1) or doi_match.group(2)
            if doi and not VALID_DOI_PREFIX_RE.match(doi) and "invalid-doi" not in reported:
                reported.add("invalid-doi")
                issues.append(make_issue(
                    "Invalid DOI format",
                    "The DOI appears malformed.",
                    Severity.MAJOR,
                    Category.REFERENCES,
                    text=doi_match.group(0),
                    paragraph_index=paragraph,
                    explanation="DOIs start with '10.' followed by a registrant code of four or more digits.",
                ))

            matched = doi_match.group(0).rstrip(".,;")
            if not matched.startswith("https://doi.org/") and "doi-format" not in reported:
                reported.add("doi-format")
                issues.append(make_issue(
                    "DOI not formatted as hyperlink",
                    "Present DOIs as https://doi.org/ links.",
                    Severity.MINOR,
                    Category.REFERENCES,
                    text=matched,
                    paragraph_index=paragraph,
                    fix_action=FixAction.FORMAT_DOI,
                    explanation="Format DOIs as https://doi.org/10.xxxx/xxxxx",
                    original_text=matched,
                    replacement_text=f"https://doi.org/{doi}",
                ))

        if ("http" in text and "doi" not in text.lower() and "retrieval-date" not in reported
                and VOLATILE_SOURCE_RE.search(text) and "Retrieved" not in text):
            reported.add("retrieval-date")
            issues.append(make_issue(
                "Missing retrieval date",
                "Online sources whose content changes need a retrieval date.",
                Severity.MINOR,
                Category.REFERENCES,
                text=text[:60],
                paragraph_index=paragraph,
                explanation="Add 'Retrieved Month Day, Year, from' before the URL for changing content.",
            ))

    return issues


def _citation_first_author(author_part: str) -> str:
    author = author_part.strip().rstrip(",")
    return re.split(r"\s*(?:,|&|\band\b)\s*", author)[0].strip()


def cross_check_citations(body_text: str, entries: List[ReferenceEntry], index: TextIndex) -> List[Issue]:
    issues: List[Issue] = []

    citations: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for match in CROSS_CITATION_RE.finditer(body_text):
        author = _citation_first_author(match.group(1))
        key = (author.lower(), match.group(2))
        if key not in citations:
            citations[key] = {"author": author, "year": match.group(2), "full": match.group(0), "start": match.start()}

    references: Dict[Tuple[str, str], ReferenceEntry] = {}
    for entry in entries:
        if entry.first_author and entry.year:
            references.setdefault((entry.first_author.lower(), entry.year), entry)

    missing = []
    for key, citation in citations.items():
        if key in references:
            continue
        prefix = key[0][:3]
        if not any(ref_author.startswith(prefix) and ref_year == key[1] for ref_author, ref_year in references):
            missing.append(citation)

    for citation in missing[:MAX_CROSS_CHECK_ISSUES]:
        issues.append(make_issue(
            "Citation without reference",
            f'Citation "{citation["full"]}" has no matching entry in References.',
            Severity.CRITICAL,
            Category.REFERENCES,
            text=citation["full"],
            paragraph_index=index.paragraph_at(citation["start"]),
            explanation="Every in-text citation needs a corresponding reference entry.",
        ))

    orphaned = []
    for (ref_author, ref_year), entry in references.items():
        prefix = ref_author[:3]
        if not any(cit_author.startswith(prefix) and cit_year == ref_year for cit_author, cit_year in citations):
            orphaned.append(entry)

    for entry in orphaned[:MAX_CROSS_CHECK_ISSUES]:
        issues.append(make_issue(
            "Orphaned reference",
            f"Reference for {entry.first_author} ({entry.year}) is not cited in the text.",
            Severity.MAJOR,
            Category.REFERENCES,
            text=entry.text[:60],
            paragraph_index=index.paragraph_at(entry.offset),
            explanation="Only works cited in the text belong in the reference list.",
        ))

    return issues


def check_duplicates(entries: List[ReferenceEntry], index: TextIndex) -> List[Issue]:
    issues: List[Issue] = []
    seen: Dict[Tuple[str, str], ReferenceEntry] = {}

    for entry in entries:
        if not entry.first_author or not entry.year:
            continue
        key = (entry.first_author.lower(), entry.year.lower())
        existing = seen.get(key)
        if existing is None:
            seen[key] = entry
            continue
        if " ".join(entry.text.split()).lower() != " ".join(existing.text.split()).lower():
            issues.append(make_issue(
                "Possible duplicate reference",
                f"Multiple references for {entry.first_author} ({entry.year}).",
                Severity.MAJOR,
                Category.REFERENCES,
                text=entry.text[:60],
                paragraph_index=index.paragraph_at(entry.offset),
                explanation="Distinguish same-author, same-year works with suffixes: 2020a, 2020b.",
            ))
    return issues
