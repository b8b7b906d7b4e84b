"""
Low-level helpers for WordprocessingML.

The first half works on raw lxml elements and is used by the extractor.
The second half works on python-docx objects and is used by the fix applier.
"""

from typing import Dict, Iterator, Optional, Union

import structlog
from docx.document import Document as DocumentObject
from docx.oxml.ns import qn
from docx.table import Table, _Cell
from docx.text.paragraph import Paragraph
from docx.text.run import Run

from apalint.utils.units import half_points_to_points, parse_measure

logger = structlog.get_logger(__name__)

W = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"

# Wrappers whose runs are part of the visible paragraph text.
_RUN_CONTAINERS = {f"{W}hyperlink", f"{W}ins", f"{W}smartTag", f"{W}fldSimple", f"{W}sdtContent"}


# ---------------------------------------------------------------------------
# lxml (read side)
# ---------------------------------------------------------------------------


def w_attr(element, name: str) -> Optional[str]:
    """Read a w:-namespaced attribute from an element that may be None."""
    if element is None:
        return None
    return element.get(f"{W}{name}")


def is_toggle_on(element) -> bool:
    """
    OOXML toggle properties (<w:b/>, <w:i/>) are on unless w:val says otherwise.
    """
    if element is None:
        return False
    val = element.get(f"{W}val")
    return val is None or val.lower() not in ("0", "false", "off", "none")


def iter_run_elements(p_elem) -> Iterator:
    """
    Yields w:r elements of a paragraph in document order, descending into
    hyperlinks, insertions and similar wrappers. Deleted runs are skipped.
    """
    for child in p_elem:
        if child.tag == f"{W}r":
            yield child
        elif child.tag in _RUN_CONTAINERS:
            yield from iter_run_elements(child)
        elif child.tag == f"{W}sdt":
            content = child.find(f"{W}sdtContent")
            if content is not None:
                yield from iter_run_elements(content)


def run_element_text(r_elem) -> str:
    """
    Visible text of a run. Tabs become "\\t"; breaks become a space so that
    one paragraph always stays one line of extracted text.
    """
    text = ""
    for child in r_elem:
        if child.tag == f"{W}t":
            text += child.text or ""
        elif child.tag == f"{W}tab":
            text += "\t"
        elif child.tag in (f"{W}br", f"{W}cr"):
            text += " "
        elif child.tag == f"{W}noBreakHyphen":
            text += "-"
    return text


def paragraph_element_text(p_elem) -> str:
    return "".join(run_element_text(r) for r in iter_run_elements(p_elem))


def run_properties(r_elem) -> Dict:
    """Explicit character formatting of a run. Absent properties are None."""
    rpr = r_elem.find(f"{W}rPr")
    if rpr is None:
        return {"family": None, "size": None, "bold": False, "italic": False, "underline": False,
                "color": None, "highlight": None}

    fonts = rpr.find(f"{W}rFonts")
    family = w_attr(fonts, "ascii") or w_attr(fonts, "hAnsi")

    half_points = parse_measure(w_attr(rpr.find(f"{W}sz"), "val"))
    size = half_points_to_points(half_points) if half_points is not None else None

    underline_val = w_attr(rpr.find(f"{W}u"), "val")

    return {
        "family": family,
        "size": size,
        "bold": is_toggle_on(rpr.find(f"{W}b")),
        "italic": is_toggle_on(rpr.find(f"{W}i")),
        "underline": rpr.find(f"{W}u") is not None and underline_val != "none",
        "color": w_attr(rpr.find(f"{W}color"), "val"),
        "highlight": w_attr(rpr.find(f"{W}highlight"), "val"),
    }


def has_drawing(p_elem) -> bool:
    return p_elem.find(f".//{W}drawing") is not None or p_elem.find(f".//{W}pict") is not None


# ---------------------------------------------------------------------------
# python-docx (write side)
# ---------------------------------------------------------------------------


def iter_block_items(parent) -> Iterator[Union[Paragraph, Table]]:
    """
    Yields Paragraph or Table objects in the order they appear in the XML.
    Supports Document and Cell objects. Recursion is left to the caller.
    """
    if isinstance(parent, DocumentObject):
        parent_elm = parent.element.body
    elif isinstance(parent, _Cell):
        parent_elm = parent._tc
    else:
        raise ValueError(f"Unsupported parent type for iteration: {type(parent)}")

    for child in parent_elm.iterchildren():
        if child.tag == qn("w:p"):
            yield Paragraph(child, parent)
        elif child.tag == qn("w:tbl"):
            yield Table(child, parent)


def iter_all_paragraphs(parent) -> Iterator[Paragraph]:
    """Every paragraph under parent, including those nested in table cells."""
    for item in iter_block_items(parent):
        if isinstance(item, Paragraph):
            yield item
        else:
            seen = set()
            for row in item.rows:
                for cell in row.cells:
                    # Merged cells are yielded once per grid column
                    if cell._tc in seen:
                        continue
                    seen.add(cell._tc)
                    yield from iter_all_paragraphs(cell)


def _has_special_content(run: Run) -> bool:
    """
    True if the run holds elements other than text and properties
    (drawings, field chars, comment references) that text edits would destroy.
    """
    safe_tags = {qn("w:t"), qn("w:tab"), qn("w:br"), qn("w:cr"), qn("w:rPr")}
    return any(child.tag not in safe_tags for child in run._element)


def replace_text_in_paragraph(paragraph: Paragraph, old: str, new: str) -> bool:
    """
    Replaces the first occurrence of `old` in the paragraph's run text.

    A match inside one run edits that run only. A match spanning runs is
    written into the first spanned run (keeping its formatting) and removed
    from the others. Returns False when the text is not found or touches a
    run with special content.
    """
    if not old:
        return False
    runs = list(paragraph.runs)
    texts = [r.text for r in runs]
    full = "".join(texts)
    start = full.find(old)
    if start < 0:
        return False
    end = start + len(old)

    offset = 0
    touched = []
    for i, text in enumerate(texts):
        run_start, run_end = offset, offset + len(text)
        if run_end > start and run_start < end:
            touched.append((i, run_start))
        offset = run_end

    if not touched:
        return False
    if any(_has_special_content(runs[i]) for i, _ in touched):
        logger.warning("Skipping replacement across special run content", text=old)
        return False

    first_idx, first_start = touched[0]
    last_idx, last_start = touched[-1]
    head = texts[first_idx][: start - first_start]
    tail = texts[last_idx][end - last_start:]

    runs[first_idx].text = head + new + (tail if first_idx == last_idx else "")
    if first_idx != last_idx:
        for i, _ in touched[1:-1]:
            runs[i].text = ""
        runs[last_idx].text = tail
    return True


def set_paragraph_text(paragraph: Paragraph, text: str):
    """Rewrite a paragraph's text into its first run and drop the other runs."""
    runs = paragraph.runs
    if not runs:
        paragraph.add_run(text)
        return
    runs[0].text = text
    for run in runs[1:]:
        if not _has_special_content(run):
            paragraph._p.remove(run._r)
