"""
Tests for apalint.document: the editable document model.
"""

from datetime import datetime, timedelta, timezone

import pytest

from apalint.document import DocumentModel, ParagraphModel, RunModel
from apalint.document.paragraph import FontSpec
from apalint.errors import NotFound
from apalint.models import (
    Category,
    FormattingChange,
    IndexChange,
    Issue,
    IssueLocation,
    RunsChange,
    Severity,
    TextChange,
    changes_from_mapping,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _record(text, index, runs=None, heading_level=None):
    return {
        "index": index,
        "text": text,
        "font": {"family": "Times New Roman", "size": 12},
        "spacing": {"line": 2.0, "before": None, "after": None, "line_rule": "auto"},
        "indentation": {"first_line": 0.5, "left": None, "right": None, "hanging": None},
        "alignment": None,
        "style_name": None,
        "heading_level": heading_level,
        "runs": runs if runs is not None else [
            {"text": text, "font": {"family": "Times New Roman", "size": 12, "bold": False,
                                    "italic": False, "underline": False}},
        ],
    }


def _payload(texts):
    return {
        "text": "\n".join(texts),
        "formatting": {
            "document": {
                "font": {"family": "Times New Roman", "size": 12},
                "spacing": {"line": 2.0, "before": None, "after": None, "line_rule": "auto"},
                "margins": {"top": 1.0, "bottom": 1.0, "left": 1.0, "right": 1.0},
                "indentation": {"first_line": 0.5, "left": None, "right": None, "hanging": None},
            },
            "paragraphs": [_record(t, i) for i, t in enumerate(texts)],
        },
        "structure": {},
        "styles": {},
        "metadata": {"filename": "paper.docx", "file_size": 1234, "processor": "apalint"},
    }


def _issue(paragraph_index=None):
    return Issue(
        title="Example",
        description="Example issue",
        severity=Severity.MINOR,
        category=Category.FORMATTING,
        location=IssueLocation.paragraph(paragraph_index),
    )


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def test_from_server_data_builds_ordered_paragraphs():
    doc = DocumentModel.from_server_data(_payload(["First.", "Second.", "Third."]))

    paragraphs = doc.get_ordered_paragraphs()
    assert [p.text for p in paragraphs] == ["First.", "Second.", "Third."]
    assert [p.index for p in paragraphs] == [0, 1, 2]
    assert doc.version == 1
    assert doc.metadata.filename == "paper.docx"
    assert doc.formatting.font.family == "Times New Roman"
    assert doc.change_log.get_last_change().type == "document-created"


def test_from_server_data_without_formatting_uses_text_lines():
    doc = DocumentModel.from_server_data({"text": "One\n\nTwo"})
    assert [p.text for p in doc.get_ordered_paragraphs()] == ["One", "Two"]
    assert doc.structure.headings == []


def test_paragraph_text_is_concatenation_of_runs():
    runs = [
        {"text": "Smith ", "font": {"bold": True}},
        {"text": "", "font": {}},
        {"text": "argued.", "font": {"italic": True}},
    ]
    paragraph = ParagraphModel.from_server_data(_record("ignored", 0, runs=runs))

    assert paragraph.text == "Smith argued."
    assert len(paragraph.get_runs()) == 2
    assert paragraph.text == "".join(r.text for r in paragraph.get_runs())


def test_from_editor_node_reads_marks_and_attrs():
    node = {
        "type": "paragraph",
        "attrs": {"id": "p-1", "line_height": 2.0, "first_line_indent": 0.5, "text_align": "center"},
        "content": [
            {"type": "text", "text": "Bold", "marks": [{"type": "bold"}]},
            {"type": "text", "text": " plain"},
        ],
    }
    paragraph = ParagraphModel.from_editor_node(node, 3)

    assert paragraph.id == "p-1"
    assert paragraph.text == "Bold plain"
    assert paragraph.get_runs()[0].font.bold is True
    assert paragraph.formatting.alignment == "center"
    assert paragraph.formatting.indentation.first_line == 0.5


# ---------------------------------------------------------------------------
# Paragraph updates
# ---------------------------------------------------------------------------

def test_text_change_regenerates_single_run_with_first_run_font():
    font = FontSpec(family="Arial", size=11, bold=True)
    paragraph = ParagraphModel(runs=[RunModel.from_text("Old ", font=font), RunModel.from_text("text")])

    assert paragraph.update(TextChange(text="New text")) is True

    runs = paragraph.get_runs()
    assert len(runs) == 1
    assert runs[0].text == "New text"
    assert runs[0].font == font
    assert paragraph.change_sequence == 1


def test_runs_change_sets_text_from_runs():
    paragraph = ParagraphModel.from_text("Before")
    changed = paragraph.update(RunsChange(runs=[RunModel.from_text("After "), RunModel.from_text("runs")]))

    assert changed is True
    assert paragraph.text == "After runs"


def test_formatting_change_merges_one_level():
    paragraph = ParagraphModel.from_text("Body")
    paragraph.update(FormattingChange(formatting={"indentation": {"first_line": 0.5}}))
    paragraph.update({"formatting": {"indentation": {"left": 1.0}}})

    assert paragraph.formatting.indentation.first_line == 0.5
    assert paragraph.formatting.indentation.left == 1.0


def test_unknown_change_keys_are_rejected():
    paragraph = ParagraphModel.from_text("Body")
    with pytest.raises(ValueError):
        paragraph.update({"colour": "red"})


def test_update_paragraph_bumps_version_and_logs():
    doc = DocumentModel.from_server_data(_payload(["First.", "Second."]))
    pid = doc.paragraph_order[1]

    assert doc.update_paragraph(pid, {"text": "Changed."}) is True

    assert doc.version == 2
    assert doc.get_paragraph(pid).text == "Changed."
    record = doc.change_log.get_last_change()
    assert record.type == "paragraph-updated"
    assert record.affected_paragraphs == [pid]
    assert record.details["old_text"] == "Second."


def test_noop_update_returns_false_and_keeps_version():
    doc = DocumentModel.from_server_data(_payload(["Same text."]))
    pid = doc.paragraph_order[0]
    changes_before = len(doc.change_log)

    assert doc.update_paragraph(pid, {"text": "Same text."}) is False
    assert doc.version == 1
    assert len(doc.change_log) == changes_before


def test_version_strictly_increases_across_mutations():
    doc = DocumentModel.from_server_data(_payload(["a", "b"]))
    versions = [doc.version]
    for i, text in enumerate(["x", "y", "z"]):
        doc.update_paragraph(doc.paragraph_order[i % 2], {"text": text})
        versions.append(doc.version)
    assert versions == sorted(set(versions))


def test_get_paragraph_unknown_id_raises_not_found():
    doc = DocumentModel.from_server_data(_payload(["a"]))
    with pytest.raises(NotFound) as exc_info:
        doc.get_paragraph("missing")
    assert exc_info.value.kind == "paragraph"
    assert exc_info.value.document_id == doc.id

    with pytest.raises(NotFound):
        doc.update_paragraph("missing", {"text": "x"})


def test_update_marks_paragraph_issues_for_reanalysis():
    doc = DocumentModel.from_server_data(_payload(["First.", "Second."]))
    doc.attach_issues([_issue(0), _issue(1), _issue()])
    pid = doc.paragraph_order[0]

    doc.update_paragraph(pid, {"text": "Rewritten."})

    stale = [i for i in doc.issues.get_all_issues() if i.needs_reanalysis]
    assert len(stale) == 1
    assert stale[0].paragraph_index == 0
    assert doc.issues.get_issue_stats()["needs_reanalysis"] == 1


# ---------------------------------------------------------------------------
# Statistics and snapshots
# ---------------------------------------------------------------------------

def test_statistics_are_cached_per_version():
    doc = DocumentModel.from_server_data(_payload(["One two three.", "Four five."]))

    stats = doc.get_statistics()
    assert stats.word_count == 5
    assert stats.paragraph_count == 2
    assert doc.get_statistics() is stats

    doc.update_paragraph(doc.paragraph_order[0], {"text": "One."})
    fresh = doc.get_statistics()
    assert fresh is not stats
    assert fresh.word_count == 3
    assert fresh.version == doc.version


def test_snapshot_survives_later_edits():
    doc = DocumentModel.from_server_data(_payload(["Original."]))
    pid = doc.paragraph_order[0]
    snapshot = doc.create_snapshot()

    doc.update_paragraph(pid, {"text": "Edited."})
    assert snapshot.paragraphs[pid].text == "Original."


def test_restore_from_snapshot_moves_version_forward():
    doc = DocumentModel.from_server_data(_payload(["Original."]))
    pid = doc.paragraph_order[0]
    snapshot = doc.create_snapshot()
    doc.update_paragraph(pid, {"text": "Edited once."})
    doc.update_paragraph(pid, {"text": "Edited twice."})
    stats = doc.get_statistics()

    doc.restore_from_snapshot(snapshot)

    assert doc.version == snapshot.version + 1
    assert doc.get_paragraph(pid).text == "Original."
    assert doc.get_statistics() is not stats
    assert doc.change_log.get_last_change().type == "snapshot-restored"


# ---------------------------------------------------------------------------
# Editor sync and views
# ---------------------------------------------------------------------------

def test_apply_editor_changes_updates_appends_and_removes():
    doc = DocumentModel.from_server_data(_payload(["Keep.", "Change me.", "Drop me."]))
    kept, changed, dropped = doc.paragraph_order
    doc.attach_issues([_issue(2)])

    editor_doc = {
        "type": "doc",
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": "Keep."}]},
            {"type": "paragraph", "content": [{"type": "text", "text": "Changed."}]},
        ],
    }
    assert doc.apply_editor_changes(editor_doc) is True

    assert doc.paragraph_order == [kept, changed]
    assert doc.get_paragraph(changed).text == "Changed."
    assert dropped not in doc.paragraphs
    assert len(doc.issues) == 0
    assert doc.change_log.get_last_change().type == "editor-sync"

    editor_doc["content"].append({"type": "paragraph", "content": [{"type": "text", "text": "New."}]})
    doc.apply_editor_changes(editor_doc)
    assert [p.text for p in doc.get_ordered_paragraphs()] == ["Keep.", "Changed.", "New."]


def test_apply_identical_editor_content_is_noop():
    doc = DocumentModel.from_server_data(_payload(["One.", "Two."]))
    version = doc.version
    assert doc.apply_editor_changes(doc.to_editor_content()) is False
    assert doc.version == version


def test_views():
    doc = DocumentModel.from_server_data(_payload(["Alpha <b>", "", "Beta"]))

    assert doc.get_plain_text() == "Alpha <b>\nBeta"

    html = doc.get_formatted_html()
    assert html.startswith('<div class="docx-document">')
    assert f'data-paragraph-id="{doc.paragraph_order[0]}"' in html
    assert "Alpha &lt;b&gt;" in html

    content = doc.to_editor_content()
    assert content["type"] == "doc"
    assert content["content"][2]["content"][0]["text"] == "Beta"


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def test_analyze_attaches_issues_and_scores():
    doc = DocumentModel.from_server_data(_payload(["Prior work exists (Doe, 2021)."]))

    issues = doc.analyze()

    assert [i.title for i in issues] == ["Missing references section"]
    assert doc.formatting.compliance["score"] == 92
    assert doc.formatting.compliance["counts"]["Critical"] == 1
    assert len(doc.issues) == 1


def test_analysis_input_has_one_line_per_paragraph():
    doc = DocumentModel.from_server_data(_payload(["Method", "", "Body text."]))
    doc.paragraphs[doc.paragraph_order[0]].original_data["heading_level"] = 1

    text, structure, formatting = doc.analysis_input()

    assert text == "Method\n\nBody text."
    assert isinstance(structure, dict)
    assert formatting["document"]["font"]["family"] == "Times New Roman"
    assert [p["index"] for p in formatting["paragraphs"]] == [0, 1, 2]
    assert formatting["paragraphs"][0]["heading_level"] == 1
    assert formatting["paragraphs"][2]["heading_level"] is None


# ---------------------------------------------------------------------------
# Copies and change tracking
# ---------------------------------------------------------------------------

def test_copy_keeps_id_and_isolates_updates():
    paragraph = ParagraphModel.from_text("Original")
    other = paragraph.copy()

    assert other.id == paragraph.id
    other.update({"text": "Edited"})

    assert paragraph.text == "Original"
    assert other.text == "Edited"


def test_clone_gets_fresh_ids():
    paragraph = ParagraphModel(runs=[RunModel.from_text("One "), RunModel.from_text("two")])
    other = paragraph.clone()

    assert other.id != paragraph.id
    assert other.text == paragraph.text
    assert not set(other.run_order) & set(paragraph.run_order)


def test_changes_from_mapping_orders_variants():
    changes = changes_from_mapping({"index": 2, "text": "x"})

    assert [type(c) for c in changes] == [TextChange, IndexChange]
    assert changes[0].text == "x"
    with pytest.raises(ValueError):
        changes_from_mapping({"bogus": 1})


def test_get_changed_paragraphs_since_timestamp():
    doc = DocumentModel.from_server_data(_payload(["First.", "Second.", "Third."]))
    for paragraph in doc.get_ordered_paragraphs():
        paragraph.last_modified -= timedelta(seconds=1)
    since = datetime.now(timezone.utc) - timedelta(milliseconds=500)

    assert doc.get_changed_paragraphs(since) == []

    pid = doc.paragraph_order[1]
    doc.update_paragraph(pid, {"text": "Changed."})

    assert [p.id for p in doc.get_changed_paragraphs(since)] == [pid]


def test_statistics_skip_empty_paragraphs():
    doc = DocumentModel.from_server_data(_payload(["One two", "", "  ", "Three"]))

    stats = doc.get_statistics()

    assert stats.paragraph_count == 2
    assert stats.word_count == 3
    assert stats.char_count == len("One two") + len("Three")


def test_editor_insert_in_middle_of_round_tripped_content():
    doc = DocumentModel.from_server_data(_payload(["Alpha", "Beta"]))
    alpha, beta = doc.paragraph_order
    content = doc.to_editor_content()["content"]
    inserted = {"type": "paragraph", "content": [{"type": "text", "text": "Inserted"}]}

    assert doc.apply_editor_changes([content[0], inserted, content[1]]) is True

    assert doc.get_plain_text() == "Alpha\nInserted\nBeta"
    assert len(doc.paragraph_order) == len(set(doc.paragraph_order)) == 3
    assert set(doc.paragraph_order) == set(doc.paragraphs)
    assert doc.paragraph_order[:2] == [alpha, beta]
    assert doc.get_paragraph(beta).text == "Inserted"

    doc.apply_editor_changes([content[0]])
    assert doc.paragraph_order == [alpha]
    assert doc.get_plain_text() == "Alpha"
