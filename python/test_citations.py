"""
Tests for apalint.rules.citations: in-text citation checks.
"""

from apalint.models import FixAction, Severity
from apalint.rules.citations import check_citations


def _by_action(issues, action):
    return [i for i in issues if i.fix_action == action]


def test_missing_comma_reported_once_with_fix():
    issues = check_citations("As shown (Smith 2020) this holds.")

    comma = _by_action(issues, FixAction.ADD_CITATION_COMMA)
    assert len(comma) == 1
    issue = comma[0]
    assert issue.severity == Severity.MINOR
    assert issue.has_fix is True
    assert issue.original_text == "(Smith 2020)"
    assert issue.replacement_text == "(Smith, 2020)"
    assert issue.paragraph_index == 0


def test_missing_comma_counts_all_occurrences_in_one_issue():
    text = "First (Smith 2020).\nSecond (Jones & Lee 2019).\nThird (Brown et al. 2018)."
    comma = _by_action(check_citations(text), FixAction.ADD_CITATION_COMMA)

    assert len(comma) == 1
    assert "Found 3 citation(s)" in comma[0].description


def test_correct_citations_produce_no_issues():
    text = (
        "Prior work (Smith, 2020) and (Jones & Lee, 2019) agree.\n"
        "Brown et al. (2018) and Smith and Jones (2021) disagree (Brown et al., 2018, p. 4)."
    )
    assert check_citations(text) == []


def test_and_inside_parentheses():
    issues = check_citations("This was tested (Smith and Jones, 2020).")
    connector = _by_action(issues, FixAction.FIX_PARENTHETICAL_CONNECTOR)

    assert len(connector) == 1
    assert connector[0].replacement_text == "(Smith & Jones, 2020)"


def test_comma_before_et_al():
    issues = check_citations("Results replicated (Brown, et al., 2018).")
    et_al = _by_action(issues, FixAction.FIX_ET_AL_FORMATTING)

    assert len(et_al) == 1
    assert et_al[0].original_text == "(Brown, et al., 2018)"
    assert et_al[0].replacement_text == "(Brown et al., 2018)"


def test_ampersand_in_narrative_citation():
    issues = check_citations("Smith & Jones (2020) found an effect.")

    assert [i.title for i in issues] == ['Use "and" in narrative citations']
    assert issues[0].has_fix is False


def test_quote_without_page_number():
    text = 'She wrote that "memory is reconstructive" (Loftus, 1996).'
    issues = _by_action(check_citations(text), FixAction.ADD_PAGE_NUMBER)

    assert len(issues) == 1
    assert issues[0].severity == Severity.MAJOR
    assert issues[0].original_text == "(Loftus, 1996)"


def test_quote_with_page_number_is_fine():
    text = 'She wrote that "memory is reconstructive" (Loftus, 1996, p. 12).'
    assert _by_action(check_citations(text), FixAction.ADD_PAGE_NUMBER) == []


def test_paragraph_index_follows_lines():
    text = "Intro line.\nAnother line.\nEvidence (Smith 2020)."
    comma = _by_action(check_citations(text), FixAction.ADD_CITATION_COMMA)
    assert comma[0].paragraph_index == 2
