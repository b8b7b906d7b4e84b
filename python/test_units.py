"""
Tests for apalint.utils.units: OOXML measurement conversion.
"""

from docx.oxml import parse_xml
from docx.oxml.ns import nsdecls

from apalint.utils.docx import run_properties
from apalint.utils.units import (
    half_points_to_points,
    inches_to_twips,
    line_to_multiple,
    parse_measure,
    points_to_half_points,
    twips_to_inches,
    twips_to_points,
)


def test_twips_to_inches():
    assert twips_to_inches(1440) == 1.0
    assert twips_to_inches(720) == 0.5
    assert twips_to_inches(2160) == 1.5


def test_twips_to_points():
    assert twips_to_points(240) == 12.0
    assert twips_to_points(20) == 1.0


def test_half_points_to_points():
    assert half_points_to_points(24) == 12.0
    assert half_points_to_points(23) == 11.5


def test_line_to_multiple():
    assert line_to_multiple(480) == 2.0
    assert line_to_multiple(240) == 1.0
    assert line_to_multiple(360) == 1.5


def test_missing_or_zero_converts_to_zero():
    for convert in (twips_to_inches, twips_to_points, half_points_to_points, line_to_multiple):
        assert convert(None) == 0
        assert convert(0) == 0


def test_inverse_conversions():
    assert inches_to_twips(1) == 1440
    assert inches_to_twips(0.5) == 720
    assert points_to_half_points(12) == 24
    assert points_to_half_points(11.5) == 23


def test_parse_measure():
    assert parse_measure("1440") == 1440
    assert parse_measure("-720") == -720
    assert parse_measure("480.0") == 480
    assert parse_measure(None) is None
    assert parse_measure("auto") is None


def test_run_properties_font_size_in_points():
    def run(size):
        return parse_xml(f'<w:r {nsdecls("w")}><w:rPr><w:sz w:val="{size}"/></w:rPr><w:t>x</w:t></w:r>')

    assert run_properties(run("23"))["size"] == 11.5
    assert run_properties(run("24"))["size"] == 12
    assert run_properties(run("auto"))["size"] is None
