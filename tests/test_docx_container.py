"""Tests for DOCX reading, embedding and generation."""

import io
import zipfile

import pytest
from lxml import etree

from biomark.constants import ZERO_BIT_MARKER
from biomark.data_models import WatermarkRecord
from biomark.docx_container import (
    W,
    create_docx_from_text,
    embed_payload_in_docx,
    is_docx_package,
    read_docx_text,
)
from biomark.exceptions import PackageFormatError
from biomark.watermark import encode, extract_marker_stream, strip_markers

from .conftest import CUSTOM_STYLES_XML, build_docx


def read_part(package_bytes, name):
    with zipfile.ZipFile(io.BytesIO(package_bytes)) as package:
        return package.read(name)


@pytest.fixture
def payload():
    return encode(WatermarkRecord("1a2b3c", "0a0b0c0d", 1700000000000, "7fa3"))


class TestReadAndCreate:
    def test_runs_are_joined_and_paragraphs_separated(self, sample_docx):
        assert read_docx_text(sample_docx) == (
            "Quarterly report for the board.\n"
            "Revenue grew twelve percent while costs stayed flat.\n"
            "   \n"
            "The audit committee approved the statements."
        )

    def test_generated_package_round_trips_text(self):
        text = "line one\r\nline <two> & \"three\"\n\n  indented"
        package = create_docx_from_text(text)

        assert is_docx_package(package)
        assert read_docx_text(package) == "line one\nline <two> & \"three\"\n\n  indented"

    def test_generated_package_parts(self):
        with zipfile.ZipFile(io.BytesIO(create_docx_from_text("hi"))) as package:
            names = set(package.namelist())
        assert {
            "[Content_Types].xml",
            "_rels/.rels",
            "word/document.xml",
            "word/styles.xml",
            "word/_rels/document.xml.rels",
        } <= names

    def test_control_characters_are_cleaned(self):
        package = create_docx_from_text("a\x0bb\x01c\x0cd")
        assert read_docx_text(package) == "a bc d"

    def test_generated_text_keeps_markers(self, payload):
        package = create_docx_from_text("Hello" + payload + " world")
        assert extract_marker_stream(read_docx_text(package)) == payload


class TestPackageErrors:
    def test_not_a_zip(self):
        assert not is_docx_package(b"plain text")
        with pytest.raises(PackageFormatError):
            read_docx_text(b"plain text")

    def test_missing_main_part(self):
        output = io.BytesIO()
        with zipfile.ZipFile(output, "w") as package:
            package.writestr("other.xml", "<a/>")
        with pytest.raises(PackageFormatError) as excinfo:
            read_docx_text(output.getvalue())
        assert excinfo.value.context["part"] == "word/document.xml"
        assert excinfo.value.error_code == "PACKAGE_001"

    def test_malformed_markup(self):
        output = io.BytesIO()
        with zipfile.ZipFile(output, "w") as package:
            package.writestr("word/document.xml", "<w:document><unclosed>")
        with pytest.raises(PackageFormatError):
            embed_payload_in_docx(output.getvalue(), ZERO_BIT_MARKER * 8)


class TestEmbed:
    def test_payload_is_recoverable_and_invisible(self, sample_docx, payload, rng):
        secured = embed_payload_in_docx(sample_docx, payload, rng)
        text = read_docx_text(secured)

        assert extract_marker_stream(text) == payload
        assert strip_markers(text) == read_docx_text(sample_docx)

    def test_other_parts_are_copied(self, sample_docx, payload, rng):
        secured = embed_payload_in_docx(sample_docx, payload, rng)
        assert read_part(secured, "word/styles.xml") == CUSTOM_STYLES_XML
        assert read_part(secured, "[Content_Types].xml") == read_part(
            sample_docx, "[Content_Types].xml"
        )

    def test_formatting_is_kept(self, sample_docx, payload, rng):
        secured = embed_payload_in_docx(sample_docx, payload, rng)
        root = etree.fromstring(read_part(secured, "word/document.xml"))
        assert len(root.findall(f".//{W}b")) == 7

    def test_whitespace_only_document_gets_hidden_paragraph(self, payload, rng):
        package = build_docx([["   "]])
        secured = embed_payload_in_docx(package, payload, rng)

        root = etree.fromstring(read_part(secured, "word/document.xml"))
        body = root.find(f"{W}body")
        assert [etree.QName(child).localname for child in body] == ["p", "p", "sectPr"]
        assert body[1].findtext(f".//{W}t") == payload
        assert extract_marker_stream(read_docx_text(secured)) == payload

    def test_existing_markers_are_replaced(self, sample_docx, payload, rng):
        first = embed_payload_in_docx(sample_docx, ZERO_BIT_MARKER * 64, rng)
        second = embed_payload_in_docx(first, payload, rng)
        assert extract_marker_stream(read_docx_text(second)) == payload

    def test_empty_payload_returns_input(self, sample_docx):
        assert embed_payload_in_docx(sample_docx, "") is sample_docx
