"""
Tests for apalint.fixes: applying automated fixes to DOCX bytes.
"""

from io import BytesIO

import pytest
from docx import Document
from docx.oxml import parse_xml
from docx.oxml.ns import qn
from docx.shared import Inches, Pt

from apalint.errors import UnsupportedFix
from apalint.fixes import TEXT_ACTIONS, FixApplier, apply_fix, resolve_action
from apalint.ingest import extract_docx
from apalint.models import Category, FixAction, Issue, IssueLocation, Severity
from apalint.rules.citations import check_citations

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _doc_to_bytes(doc):
    buf = BytesIO()
    doc.save(buf)
    return buf.getvalue()


def _open(data):
    return Document(BytesIO(data))


def _texts(data):
    return [p.text for p in _open(data).paragraphs]


def _paper_with_references(entries, body="Body paragraph (Adams, 2020)."):
    doc = Document()
    doc.add_heading("Method", level=1)
    doc.add_paragraph(body)
    doc.add_heading("References", level=1)
    for entry in entries:
        doc.add_paragraph(entry)
    return doc


# ---------------------------------------------------------------------------
# Action resolution
# ---------------------------------------------------------------------------

def test_resolve_action_accepts_identifiers():
    assert resolve_action("fixFont") == FixAction.FIX_FONT
    assert resolve_action(FixAction.FORMAT_DOI) == FixAction.FORMAT_DOI


def test_unknown_action_is_rejected():
    data = _doc_to_bytes(Document())
    with pytest.raises(UnsupportedFix) as exc_info:
        apply_fix(data, "notAFix")
    assert exc_info.value.fix_action == "notAFix"


def test_issue_without_fix_is_rejected():
    issue = Issue(
        title="Improper heading hierarchy",
        description="Level 3 after level 1",
        severity=Severity.MAJOR,
        category=Category.STRUCTURE,
        location=IssueLocation.document(),
    )
    with pytest.raises(UnsupportedFix):
        apply_fix(_doc_to_bytes(Document()), issue)


def test_every_action_is_supported():
    applier = FixApplier(BytesIO(_doc_to_bytes(Document())))
    assert all(applier.supports(action) for action in FixAction)


# ---------------------------------------------------------------------------
# Text fixes
# ---------------------------------------------------------------------------

def test_text_fix_across_runs_keeps_first_run_formatting():
    doc = Document()
    p = doc.add_paragraph()
    lead = p.add_run("As shown (Smith ")
    lead.bold = True
    p.add_run("2020) this holds.")

    result = apply_fix(
        _doc_to_bytes(doc),
        "addCitationComma",
        {"original_text": "(Smith 2020)", "replacement_text": "(Smith, 2020)"},
    )

    paragraph = _open(result).paragraphs[0]
    assert paragraph.text == "As shown (Smith, 2020) this holds."
    assert paragraph.runs[0].bold is True


def test_text_fix_from_issue():
    doc = Document()
    doc.add_paragraph("First (Smith and Jones, 2020).")
    doc.add_paragraph("Again (Smith and Jones, 2020).")
    issue = next(i for i in check_citations("First (Smith and Jones, 2020).")
                 if i.fix_action == FixAction.FIX_PARENTHETICAL_CONNECTOR)

    result = apply_fix(_doc_to_bytes(doc), issue)

    assert _texts(result) == ["First (Smith & Jones, 2020).", "Again (Smith & Jones, 2020)."]


def test_text_fix_reaches_table_cells():
    doc = Document()
    table = doc.add_table(rows=1, cols=1)
    table.cell(0, 0).text = "p = 0.05"

    result = apply_fix(
        _doc_to_bytes(doc),
        FixAction.FIX_STATISTIC_LEADING_ZERO,
        {"original_text": "p = 0.05", "replacement_text": "p = .05"},
    )
    assert _open(result).tables[0].cell(0, 0).text == "p = .05"


def test_text_fix_requires_texts():
    data = _doc_to_bytes(Document())
    for action in sorted(TEXT_ACTIONS, key=lambda a: a.value)[:3]:
        with pytest.raises(ValueError):
            apply_fix(data, action)


def test_text_fix_with_missing_text_raises():
    doc = Document()
    doc.add_paragraph("Nothing to change here.")
    with pytest.raises(ValueError, match="not found"):
        apply_fix(_doc_to_bytes(doc), "formatDOI",
                  {"original_text": "doi:10.1/x", "replacement_text": "https://doi.org/10.1/x"})


def test_reference_text_fix_is_scoped_to_reference_list():
    doc = _paper_with_references(["Smith J. (2020). Title of work. Academic Press."],
                                 body="We thank Smith J. for comments.")

    result = apply_fix(_doc_to_bytes(doc), "fixAuthorComma",
                       {"original_text": "Smith J.", "replacement_text": "Smith, J."})

    texts = _texts(result)
    assert texts[1] == "We thank Smith J. for comments."
    assert texts[3] == "Smith, J. (2020). Title of work. Academic Press."


def test_add_page_number_with_value():
    doc = Document()
    doc.add_paragraph('She wrote that "memory is reconstructive" (Loftus, 1996).')
    data = _doc_to_bytes(doc)
    issue = next(i for i in check_citations(doc.paragraphs[0].text) if i.fix_action == FixAction.ADD_PAGE_NUMBER)

    result = apply_fix(data, issue, 12)
    assert _texts(result) == ['She wrote that "memory is reconstructive" (Loftus, 1996, p. 12).']

    with pytest.raises(ValueError):
        apply_fix(data, issue)


# ---------------------------------------------------------------------------
# Formatting fixes
# ---------------------------------------------------------------------------

def test_fix_font_and_size():
    doc = Document()
    run = doc.add_paragraph().add_run("Body text.")
    run.font.name = "Arial"
    run.font.size = Pt(11)
    data = _doc_to_bytes(doc)

    fixed = _open(apply_fix(apply_fix(data, "fixFont"), "fixFontSize"))

    run = fixed.paragraphs[0].runs[0]
    assert run.font.name == "Times New Roman"
    assert run.font.size == Pt(12)
    assert fixed.styles["Normal"].font.name == "Times New Roman"
    assert fixed.styles["Normal"].font.size == Pt(12)


def test_fix_font_size_uses_value():
    doc = Document()
    doc.add_paragraph().add_run("Body text.")
    fixed = _open(apply_fix(_doc_to_bytes(doc), "fixFontSize", "11"))
    assert fixed.paragraphs[0].runs[0].font.size == Pt(11)


def test_fix_line_spacing():
    doc = Document()
    doc.add_paragraph("Body.").paragraph_format.line_spacing = 1.0

    fixed = _open(apply_fix(_doc_to_bytes(doc), "fixLineSpacing"))

    assert fixed.paragraphs[0].paragraph_format.line_spacing == 2.0
    payload = extract_docx(_doc_to_bytes(fixed))
    assert payload["formatting"]["document"]["spacing"]["line"] == 2.0


def test_fix_margins():
    doc = Document()
    for section in doc.sections:
        section.left_margin = section.right_margin = Inches(1.5)
    doc.add_paragraph("Body.")

    fixed = _open(apply_fix(_doc_to_bytes(doc), "fixMargins"))

    section = fixed.sections[0]
    assert section.left_margin == Inches(1)
    assert section.right_margin == Inches(1)
    assert section.top_margin == Inches(1)


def test_fix_indentation_skips_headings_and_references():
    doc = _paper_with_references(["Adams, B. (2020). Title. Academic Press."])
    fixed = _open(apply_fix(_doc_to_bytes(doc), "fixIndentation"))

    heading, body, references, entry = fixed.paragraphs
    assert body.paragraph_format.first_line_indent == Inches(0.5)
    assert heading.paragraph_format.first_line_indent is None
    assert entry.paragraph_format.first_line_indent is None


def test_fix_reference_indent():
    doc = _paper_with_references(["Adams, B. (2020). Title.", "Baker, C. (2019). Other."])
    fixed = _open(apply_fix(_doc_to_bytes(doc), "fixReferenceIndent"))

    for entry in fixed.paragraphs[3:]:
        assert entry.paragraph_format.left_indent == Inches(0.5)
        assert entry.paragraph_format.first_line_indent == Inches(-0.5)
    assert fixed.paragraphs[1].paragraph_format.left_indent is None


# ---------------------------------------------------------------------------
# Structural fixes
# ---------------------------------------------------------------------------

def test_sort_references():
    doc = _paper_with_references([
        "Zimmer, K. (2019). Late title. Academic Press.",
        "Smith, J. (2021). Newer work. Academic Press.",
        "Adams, B. (2020). Early title. Academic Press.",
        "Smith, J. (2019). Older work. Academic Press.",
    ])
    doc.add_heading("Appendix", level=1)
    doc.add_paragraph("Extra material.")

    result = apply_fix(_doc_to_bytes(doc), "sortReferences")

    assert _texts(result) == [
        "Method",
        "Body paragraph (Adams, 2020).",
        "References",
        "Adams, B. (2020). Early title. Academic Press.",
        "Smith, J. (2019). Older work. Academic Press.",
        "Smith, J. (2021). Newer work. Academic Press.",
        "Zimmer, K. (2019). Late title. Academic Press.",
        "Appendix",
        "Extra material.",
    ]


def test_sorted_references_are_left_alone():
    doc = _paper_with_references(["Adams, B. (2020). A.", "Baker, C. (2019). B."])
    applier = FixApplier(BytesIO(_doc_to_bytes(doc)))
    assert applier.apply(FixAction.SORT_REFERENCES) == 0


def test_convert_to_block_quote_splits_lead_in():
    quote = '"' + " ".join(f"word{i}" for i in range(40)) + '"'
    body = quote.strip('"')
    doc = Document()
    doc.add_paragraph(f"Smith argues that {quote} (Smith, 2020, p. 4).")
    doc.add_paragraph("Next paragraph.")

    result = apply_fix(_doc_to_bytes(doc), "convertToBlockQuote",
                       {"original_text": quote, "replacement_text": body})

    fixed = _open(result)
    assert [p.text for p in fixed.paragraphs] == [
        "Smith argues that",
        f"{body} (Smith, 2020, p. 4).",
        "Next paragraph.",
    ]
    block = fixed.paragraphs[1]
    assert block.paragraph_format.left_indent == Inches(0.5)
    assert block.paragraph_format.first_line_indent == 0


def test_convert_to_block_quote_missing_text():
    doc = Document()
    doc.add_paragraph("No quotes here.")
    with pytest.raises(ValueError):
        apply_fix(_doc_to_bytes(doc), "convertToBlockQuote", {"original_text": '"absent quote"'})


def test_remove_table_vertical_lines():
    doc = Document()
    doc.add_paragraph("Table 1")
    table = doc.add_table(rows=2, cols=2)
    table._tbl.tblPr.append(parse_xml(
        f'<w:tblBorders xmlns:w="{W_NS}"><w:top w:val="single" w:sz="4"/>'
        f'<w:left w:val="single" w:sz="4"/><w:insideV w:val="single" w:sz="4"/>'
        f'<w:insideH w:val="single" w:sz="4"/></w:tblBorders>'
    ))
    table.cell(0, 0)._tc.get_or_add_tcPr().append(parse_xml(
        f'<w:tcBorders xmlns:w="{W_NS}"><w:right w:val="single"/><w:bottom w:val="single"/></w:tcBorders>'
    ))
    data = _doc_to_bytes(doc)
    assert extract_docx(data)["structure"]["tables"][0]["has_vertical_lines"] is True

    result = apply_fix(data, "removeTableVerticalLines")

    assert extract_docx(result)["structure"]["tables"][0]["has_vertical_lines"] is False
    tbl = _open(result).tables[0]._tbl
    borders = tbl.tblPr.find(qn("w:tblBorders"))
    assert borders.find(qn("w:left")).get(qn("w:val")) == "nil"
    assert borders.find(qn("w:top")).get(qn("w:val")) == "single"
    assert borders.find(qn("w:insideH")).get(qn("w:val")) == "single"
    cell_borders = tbl.find(f".//{qn('w:tcBorders')}")
    assert cell_borders.find(qn("w:right")) is None
    assert cell_borders.find(qn("w:bottom")) is not None
