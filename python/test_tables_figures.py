"""
Tests for apalint.rules.tables_figures: labels, titles, callouts and notes.
"""

from apalint.models import Category, FixAction, Severity
from apalint.rules.tables_figures import check_tables_and_figures


def _titled(issues, title):
    return [i for i in issues if i.title == title]


# ---------------------------------------------------------------------------
# Numbering
# ---------------------------------------------------------------------------

def test_numbering_gap_reported_once():
    text = (
        "As Table 1 and Table 3 show.\n"
        "Table 1\nDemographic Characteristics\n"
        "Table 3\nOutcome Measures"
    )
    issues = check_tables_and_figures(text)

    assert len(issues) == 1
    assert issues[0].title == "Table numbering out of sequence"
    assert issues[0].text == "Table 3"
    assert issues[0].severity == Severity.MAJOR
    assert issues[0].paragraph_index == 3


def test_numbering_falls_back_to_mentions_without_labels():
    issues = check_tables_and_figures("Table 2 shows one thing. Later Table 1 shows another.")

    assert [i.title for i in issues] == ["Table numbering out of sequence"]
    assert issues[0].text == "Table 2"


def test_sub_numbered_tables_are_skipped():
    text = "See Table 1 and Table 2.1.\nTable 1\nMain Results\nTable 2.1\nSupplementary Results"
    assert _titled(check_tables_and_figures(text), "Table numbering out of sequence") == []


# ---------------------------------------------------------------------------
# Titles
# ---------------------------------------------------------------------------

def test_table_title_case_fix():
    text = "See Table 1.\nTable 1\nmeans and standard deviations"
    issues = _titled(check_tables_and_figures(text), "Table title not in title case")

    assert len(issues) == 1
    assert issues[0].fix_action == FixAction.FIX_TABLE_TITLE_CASE
    assert issues[0].original_text == "means and standard deviations"
    assert issues[0].replacement_text == "Means and Standard Deviations"
    assert issues[0].paragraph_index == 2


def test_inline_title_after_label():
    text = "See Table 1.\nTable 1: Sample Sizes by Group"
    assert check_tables_and_figures(text) == []


def test_figure_caption_sentence_case_fix():
    text = "Figure 1 shows growth.\nFigure 1\nThe Growth Of Learning Over Time"
    issues = _titled(check_tables_and_figures(text), "Figure caption not in sentence case")

    assert len(issues) == 1
    assert issues[0].category == Category.FIGURES
    assert issues[0].replacement_text == "The growth of learning over time"


def test_missing_title():
    text = "See Table 1.\nTable 1"
    issues = _titled(check_tables_and_figures(text), "Table missing title")
    assert len(issues) == 1


# ---------------------------------------------------------------------------
# Callouts
# ---------------------------------------------------------------------------

def test_table_without_callout():
    text = "Table 1\nSample Sizes\nThe table above lists groups."
    issues = _titled(check_tables_and_figures(text), "Table not referenced in text")

    assert len(issues) == 1
    assert issues[0].paragraph_index == 0


def test_callout_to_missing_table_is_critical():
    text = "See Table 1 and Table 4.\nTable 1\nSample Sizes"
    issues = _titled(check_tables_and_figures(text), "Reference to non-existent table")

    assert len(issues) == 1
    assert issues[0].severity == Severity.CRITICAL
    assert issues[0].text == "Table 4"


# ---------------------------------------------------------------------------
# Placement and notes
# ---------------------------------------------------------------------------

def test_table_in_references_section():
    text = (
        "Body cites (Doe, 2020) and Table 1.\n"
        "References\n"
        "Doe, J. (2020). Title.\n"
        "Table 1\nSample Sizes"
    )
    assert len(_titled(check_tables_and_figures(text), "Table in references section")) == 1


def test_table_in_appendix_with_body_numbering():
    text = "See Table 1.\nAppendix\nTable 1\nSample Sizes"
    issues = _titled(check_tables_and_figures(text), "Table in appendix numbered as body table")

    assert len(issues) == 1
    assert issues[0].severity == Severity.MINOR


def test_note_format_fix():
    text = "See Table 1.\nTable 1\nSample Sizes\nNotes: values are means."
    issues = _titled(check_tables_and_figures(text), "Incorrect table note format")

    assert len(issues) == 1
    assert issues[0].original_text == "Notes:"
    assert issues[0].replacement_text == "Note."
    assert issues[0].paragraph_index == 3


def test_correct_note_is_fine():
    text = "See Table 1.\nTable 1\nSample Sizes\nNote. Values are means."
    assert check_tables_and_figures(text) == []


def test_adapted_figure_without_copyright():
    text = "Figure 1 shows it.\nFigure 1\nGrowth over time\nNote. Adapted from Smith (2020)."
    assert len(_titled(check_tables_and_figures(text), "Missing copyright attribution")) == 1

    licensed = text + " Copyright 2020 by the APA."
    assert _titled(check_tables_and_figures(licensed), "Missing copyright attribution") == []


# ---------------------------------------------------------------------------
# Extracted structure
# ---------------------------------------------------------------------------

def test_vertical_lines_from_structure():
    text = "See Table 1.\nTable 1\nSample Sizes"
    structure = {"tables": [{"has_vertical_lines": True, "paragraph_index": 1}]}
    issues = check_tables_and_figures(text, structure)

    assert [i.title for i in issues] == ["Vertical lines in table"]
    assert issues[0].fix_action == FixAction.REMOVE_TABLE_VERTICAL_LINES
    assert issues[0].paragraph_index == 1


def test_more_tables_than_labels():
    text = "See Table 1.\nTable 1\nSample Sizes"
    structure = {"tables": [{"has_vertical_lines": False}, {"has_vertical_lines": False}]}
    issues = _titled(check_tables_and_figures(text, structure), "Table without label")

    assert len(issues) == 1
    assert issues[0].severity == Severity.MAJOR
