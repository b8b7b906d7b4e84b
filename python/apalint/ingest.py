"""
DOCX extraction.

Reads word/document.xml (and word/styles.xml when present) straight from the
ZIP container with lxml and produces a JSON-serializable payload:

    {text, formatting: {document, paragraphs}, structure, styles,
     metadata, degraded, warnings}

One body paragraph is one line of `text`, so paragraph indices double as line
numbers for the rule engine.
"""

import re
from collections import Counter
from io import BytesIO
from typing import Any, Callable, Dict, List, Optional
from zipfile import BadZipFile, ZipFile

import structlog
from lxml import etree

from apalint.errors import InvalidArchive, MalformedXML
from apalint.utils.docx import (
    W,
    has_drawing,
    iter_run_elements,
    paragraph_element_text,
    run_element_text,
    run_properties,
    w_attr,
)
from apalint.utils.units import (
    half_points_to_points,
    line_to_multiple,
    parse_measure,
    twips_to_inches,
    twips_to_points,
)

logger = structlog.get_logger(__name__)

ZIP_SIGNATURE = b"PK\x03\x04"
DOCUMENT_PART = "word/document.xml"
STYLES_PART = "word/styles.xml"
PROCESSOR = "apalint"

HEADING_RE = re.compile(r"heading\s*(\d+)", re.IGNORECASE)
CITATION_RE = re.compile(r"\(([^)]+),\s*(\d{4})[^)]*\)")
APPENDIX_RE = re.compile(r"^appendix(?:\s+[a-z0-9]+)?\.?$")

_ALIGNMENT_MAP = {"both": "justify", "distribute": "justify", "start": "left", "end": "right"}


def extract_docx(
    data: bytes,
    filename: Optional[str] = None,
    *,
    strict: bool = False,
    batch_size: int = 200,
    on_batch: Optional[Callable[[int], None]] = None,
) -> Dict[str, Any]:
    """
    Extracts text, formatting, structure and styles from DOCX bytes.

    Args:
        data: Raw .docx bytes.
        filename: Only used for metadata.
        strict: Raise MalformedXML instead of returning a degraded result
                when document.xml does not parse.
        batch_size: Paragraphs processed between on_batch calls.
        on_batch: Called with the running paragraph count after each batch,
                  letting a cooperative scheduler interleave other work.

    Raises:
        InvalidArchive: data is not a ZIP archive containing word/document.xml.
    """
    if not data or not data.startswith(ZIP_SIGNATURE):
        raise InvalidArchive("Input is not a ZIP archive", buffer_length=len(data or b""), filename=filename)

    try:
        with ZipFile(BytesIO(data)) as zf:
            names = set(zf.namelist())
            if DOCUMENT_PART not in names:
                raise InvalidArchive(f"Archive has no {DOCUMENT_PART}", buffer_length=len(data), filename=filename)
            document_xml = zf.read(DOCUMENT_PART)
            styles_xml = zf.read(STYLES_PART) if STYLES_PART in names else None
    except BadZipFile as e:
        logger.error(f"Unreadable archive: {e}", filename=filename)
        raise InvalidArchive(f"Unreadable archive: {e}", buffer_length=len(data), filename=filename) from e

    warnings: List[str] = []
    metadata = {"filename": filename, "file_size": len(data), "processor": PROCESSOR, "paragraph_count": 0}

    styles = _empty_styles()
    if styles_xml is not None:
        try:
            styles = _extract_styles(etree.fromstring(styles_xml))
        except etree.XMLSyntaxError as e:
            if strict:
                raise MalformedXML(STYLES_PART, str(e)) from e
            logger.warning("Ignoring malformed styles part", error=str(e), filename=filename)
            warnings.append(f"{STYLES_PART} could not be parsed: {e}")

    try:
        root = etree.fromstring(document_xml)
    except etree.XMLSyntaxError as e:
        if strict:
            raise MalformedXML(DOCUMENT_PART, str(e)) from e
        logger.warning("Degraded extraction: malformed document part", error=str(e), filename=filename)
        warnings.append(f"{DOCUMENT_PART} could not be parsed: {e}")
        text = _salvage_text(document_xml)
        return {
            "text": text,
            "formatting": {"document": _empty_document_formatting(), "paragraphs": []},
            "structure": _empty_structure(),
            "styles": styles,
            "metadata": metadata,
            "degraded": True,
            "warnings": warnings,
        }

    body = root.find(f"{W}body")
    if body is None:
        warnings.append("Document has no body")
        body = etree.Element(f"{W}body")

    style_names = {s["id"]: s["name"] for s in styles["styles"] if s.get("id")}

    paragraphs: List[Dict[str, Any]] = []
    structure = _empty_structure()
    lines: List[str] = []
    offset = 0
    in_references = False

    for child in body:
        if child.tag == f"{W}tbl":
            structure["tables"].append(_table_record(child, len(structure["tables"]), len(paragraphs)))
            continue
        if child.tag != f"{W}p":
            continue

        index = len(paragraphs)
        record = _paragraph_record(child, index, style_names)
        text = record["text"]
        paragraphs.append(record)
        lines.append(text)

        _collect_structure(structure, child, record, offset)

        normalized = text.strip().lower()
        if normalized == "references":
            in_references = True
            structure["sections"].append({"type": "references", "title": text.strip(), "paragraph_index": index})
        elif APPENDIX_RE.match(normalized):
            in_references = False
            structure["sections"].append({"type": "appendix", "title": text.strip(), "paragraph_index": index})
        elif in_references:
            if record["heading_level"] is not None:
                in_references = False
            elif text.strip():
                indentation = record["indentation"]
                hanging = bool(indentation["hanging"]) or (indentation["first_line"] or 0) < 0
                structure["references"].append({"text": text.strip(), "paragraph_index": index, "hanging": hanging})

        offset += len(text) + 1

        if on_batch is not None and len(paragraphs) % batch_size == 0:
            on_batch(len(paragraphs))

    if on_batch is not None and len(paragraphs) % batch_size:
        on_batch(len(paragraphs))

    document_formatting = _document_formatting(body, paragraphs, styles)
    metadata["paragraph_count"] = len(paragraphs)

    logger.info(
        "Extracted document",
        filename=filename,
        paragraphs=len(paragraphs),
        tables=len(structure["tables"]),
        citations=len(structure["citations"]),
    )

    return {
        "text": "\n".join(lines),
        "formatting": {"document": document_formatting, "paragraphs": paragraphs},
        "structure": structure,
        "styles": styles,
        "metadata": metadata,
        "degraded": False,
        "warnings": warnings,
    }


# =============================================================================
# PARAGRAPHS
# =============================================================================


def _paragraph_record(p_elem, index: int, style_names: Dict[str, str]) -> Dict[str, Any]:
    ppr = p_elem.find(f"{W}pPr")
    runs = []
    for r in iter_run_elements(p_elem):
        text = run_element_text(r)
        if not text:
            continue
        props = run_properties(r)
        runs.append({
            "text": text,
            "font": {k: props[k] for k in ("family", "size", "bold", "italic", "underline")},
            "color": props["color"],
            "highlight": props["highlight"],
        })

    first_font = runs[0]["font"] if runs else {}
    style_id = w_attr(ppr.find(f"{W}pStyle") if ppr is not None else None, "val")
    style_name = style_names.get(style_id, style_id) if style_id else None

    return {
        "index": index,
        "text": "".join(r["text"] for r in runs),
        "font": {"family": first_font.get("family"), "size": first_font.get("size")},
        "spacing": _spacing(ppr),
        "indentation": _indentation(ppr),
        "alignment": _alignment(ppr),
        "style_name": style_name,
        "style_id": style_id,
        "heading_level": _heading_level(style_id, style_name),
        "runs": runs,
    }


def _spacing(ppr) -> Dict[str, Any]:
    spacing = ppr.find(f"{W}spacing") if ppr is not None else None
    if spacing is None:
        return {"line": None, "before": None, "after": None, "line_rule": None}

    line = parse_measure(w_attr(spacing, "line"))
    rule = w_attr(spacing, "lineRule")
    before = parse_measure(w_attr(spacing, "before"))
    after = parse_measure(w_attr(spacing, "after"))

    if line is None:
        line_value = None
    elif rule in (None, "auto"):
        line_value = line_to_multiple(line)
    else:
        line_value = twips_to_points(line)

    return {
        "line": line_value,
        "before": twips_to_points(before) if before is not None else None,
        "after": twips_to_points(after) if after is not None else None,
        "line_rule": rule or ("auto" if line is not None else None),
    }


def _indentation(ppr) -> Dict[str, Any]:
    ind = ppr.find(f"{W}ind") if ppr is not None else None
    values = {}
    for key, attrs in (
        ("first_line", ("firstLine",)),
        ("hanging", ("hanging",)),
        ("left", ("left", "start")),
        ("right", ("right", "end")),
    ):
        raw = None
        for attr in attrs:
            raw = parse_measure(w_attr(ind, attr))
            if raw is not None:
                break
        values[key] = twips_to_inches(raw) if raw is not None else None
    return values


def _alignment(ppr) -> Optional[str]:
    val = w_attr(ppr.find(f"{W}jc") if ppr is not None else None, "val")
    if val is None:
        return None
    val = _ALIGNMENT_MAP.get(val, val)
    return val if val in ("left", "right", "center", "justify") else None


def _heading_level(style_id: Optional[str], style_name: Optional[str]) -> Optional[int]:
    for candidate in (style_id, style_name):
        if candidate:
            match = HEADING_RE.search(candidate)
            if match:
                return int(match.group(1))
    return None


def _collect_structure(structure: Dict[str, List], p_elem, record: Dict[str, Any], offset: int):
    index = record["index"]
    text = record["text"]

    if record["heading_level"] is not None and text.strip():
        structure["headings"].append({"text": text.strip(), "level": record["heading_level"], "paragraph_index": index})

    for match in CITATION_RE.finditer(text):
        structure["citations"].append({
            "text": match.group(0),
            "author": match.group(1).strip(),
            "year": match.group(2),
            "paragraph_index": index,
        })

    if has_drawing(p_elem):
        structure["figures"].append({"index": len(structure["figures"]), "paragraph_index": index})

    # Merge consecutive italic runs into spans
    position = 0
    span: Optional[Dict[str, Any]] = None
    for run in record["runs"]:
        if run["font"]["italic"]:
            if span is None:
                span = {"text": "", "paragraph_index": index, "position": offset + position, "context": text}
            span["text"] += run["text"]
        elif span is not None:
            structure["italicized_text"].append(span)
            span = None
        position += len(run["text"])
    if span is not None:
        structure["italicized_text"].append(span)


def _table_record(tbl, index: int, paragraph_index: int) -> Dict[str, Any]:
    rows = tbl.findall(f"{W}tr")
    columns = max((len(r.findall(f"{W}tc")) for r in rows), default=0)

    has_vertical = False
    borders = tbl.find(f"{W}tblPr/{W}tblBorders")
    if borders is not None:
        for side in ("left", "right", "insideV", "start", "end"):
            val = w_attr(borders.find(f"{W}{side}"), "val")
            if val not in (None, "nil", "none"):
                has_vertical = True
                break

    return {
        "index": index,
        "paragraph_index": paragraph_index,
        "rows": len(rows),
        "columns": columns,
        "has_vertical_lines": has_vertical,
        "first_cell_text": _first_cell_text(tbl),
    }


def _first_cell_text(tbl) -> str:
    cell = tbl.find(f"{W}tr/{W}tc")
    if cell is None:
        return ""
    return " ".join(paragraph_element_text(p) for p in cell.findall(f"{W}p")).strip()


# =============================================================================
# DOCUMENT DEFAULTS
# =============================================================================


def _most_common(values):
    values = [v for v in values if v is not None]
    if not values:
        return None
    return Counter(values).most_common(1)[0][0]


def _document_formatting(body, paragraphs: List[Dict[str, Any]], styles: Dict[str, Any]) -> Dict[str, Any]:
    """
    Document-wide values: the most common explicit value among non-empty
    paragraphs, falling back to the default style for fonts.
    """
    body_paragraphs = [p for p in paragraphs if p["text"].strip()]
    default_font = (styles.get("default_style") or {}).get("font") or {}

    family = _most_common(p["font"]["family"] for p in body_paragraphs) or default_font.get("family")
    size = _most_common(p["font"]["size"] for p in body_paragraphs) or default_font.get("size")

    auto_lines = [p["spacing"]["line"] for p in body_paragraphs if p["spacing"]["line_rule"] in (None, "auto")]

    formatting = _empty_document_formatting()
    formatting["font"] = {"family": family, "size": size}
    formatting["spacing"]["line"] = _most_common(auto_lines)
    formatting["spacing"]["line_rule"] = "auto" if formatting["spacing"]["line"] is not None else None
    formatting["indentation"]["first_line"] = _most_common(
        p["indentation"]["first_line"] for p in body_paragraphs if p["heading_level"] is None
    )
    formatting["indentation"]["hanging"] = _most_common(p["indentation"]["hanging"] for p in body_paragraphs)
    formatting["margins"] = _margins(body)
    return formatting


def _margins(body) -> Dict[str, Optional[float]]:
    sect = body.find(f"{W}sectPr")
    if sect is None:
        # Section properties may be carried by the last paragraph instead
        found = body.findall(f".//{W}pPr/{W}sectPr")
        sect = found[-1] if found else None
    pg_mar = sect.find(f"{W}pgMar") if sect is not None else None

    margins = {}
    for side in ("top", "bottom", "left", "right"):
        raw = parse_measure(w_attr(pg_mar, side))
        margins[side] = twips_to_inches(raw) if raw is not None else None
    return margins


# =============================================================================
# STYLES
# =============================================================================


def _extract_styles(root) -> Dict[str, Any]:
    styles = []
    default_style = None

    doc_defaults = root.find(f"{W}docDefaults/{W}rPrDefault/{W}rPr")
    default_font = _style_font(doc_defaults)

    for style in root.findall(f"{W}style"):
        name_el = style.find(f"{W}name")
        entry = {
            "id": w_attr(style, "styleId"),
            "name": w_attr(name_el, "val"),
            "type": w_attr(style, "type"),
            "based_on": w_attr(style.find(f"{W}basedOn"), "val"),
            "font": _style_font(style.find(f"{W}rPr")),
        }
        styles.append(entry)
        if entry["type"] == "paragraph" and w_attr(style, "default") in ("1", "true"):
            default_style = entry

    if default_style is not None:
        merged = {k: default_style["font"].get(k) or default_font.get(k) for k in ("family", "size")}
        default_style = {**default_style, "font": merged}
    elif default_font.get("family") or default_font.get("size"):
        default_style = {"id": None, "name": None, "type": "paragraph", "based_on": None, "font": default_font}

    return {"styles": styles, "default_style": default_style}


def _style_font(rpr) -> Dict[str, Any]:
    if rpr is None:
        return {"family": None, "size": None}
    fonts = rpr.find(f"{W}rFonts")
    size = parse_measure(w_attr(rpr.find(f"{W}sz"), "val"))
    return {
        "family": w_attr(fonts, "ascii") or w_attr(fonts, "hAnsi"),
        "size": half_points_to_points(size) if size else None,
    }


# =============================================================================
# EMPTY / DEGRADED RESULTS
# =============================================================================


def _empty_document_formatting() -> Dict[str, Any]:
    return {
        "font": {"family": None, "size": None},
        "spacing": {"line": None, "before": None, "after": None, "line_rule": None},
        "margins": {"top": None, "bottom": None, "left": None, "right": None},
        "indentation": {"first_line": None, "left": None, "right": None, "hanging": None},
    }


def _empty_structure() -> Dict[str, List]:
    return {
        "headings": [],
        "sections": [],
        "citations": [],
        "references": [],
        "tables": [],
        "figures": [],
        "italicized_text": [],
    }


def _empty_styles() -> Dict[str, Any]:
    return {"styles": [], "default_style": None}


def _salvage_text(document_xml: bytes) -> str:
    """Best-effort paragraph text from a broken document part."""
    parser = etree.XMLParser(recover=True)
    try:
        root = etree.fromstring(document_xml, parser)
    except etree.XMLSyntaxError:
        return ""
    if root is None:
        return ""
    return "\n".join(paragraph_element_text(p) for p in root.iter(f"{W}p"))
