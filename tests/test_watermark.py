"""Tests for the zero-width watermark codec."""

import pytest

from biomark.constants import BYTE_DELIMITER, ONE_BIT_MARKER, ZERO_BIT_MARKER
from biomark.data_models import WatermarkRecord
from biomark.watermark import (
    WatermarkCodec,
    compact_payload,
    contains_watermark,
    decode,
    encode,
    extract_marker_stream,
    strip_markers,
)


def markers_for(payload):
    """Marker stream for an arbitrary payload string."""
    return BYTE_DELIMITER.join(
        "".join(ONE_BIT_MARKER if bit == "1" else ZERO_BIT_MARKER for bit in format(ord(c), "08b"))
        for c in payload
    )


@pytest.fixture
def record():
    return WatermarkRecord(
        identity_hash="test123",
        vault_secret="testsecret",
        timestamp=1700000000000,
        content_hash="7fa3",
    )


class TestEncode:
    def test_compact_payload(self, record):
        assert compact_payload(record) == (
            '{"f":"test123","s":"testsecret","t":1700000000000,"c":"7fa3"}'
        )

    def test_stream_shape(self, record):
        payload = compact_payload(record)
        stream = WatermarkCodec().encode(record)

        bits = [c for c in stream if c in (ZERO_BIT_MARKER, ONE_BIT_MARKER)]
        assert len(bits) == 8 * len(payload)
        assert stream.count(BYTE_DELIMITER) == len(payload) - 1
        assert not stream.endswith(BYTE_DELIMITER)
        assert strip_markers(stream) == ""

    def test_first_byte_encodes_opening_brace(self, record):
        stream = encode(record)
        first = stream.split(BYTE_DELIMITER)[0]
        assert first == markers_for("{")

    def test_legacy_record_omits_content_hash(self):
        legacy = WatermarkRecord("ab", "00", 5)
        assert compact_payload(legacy) == '{"f":"ab","s":"00","t":5}'

    def test_non_ascii_is_escaped(self):
        payload = compact_payload(WatermarkRecord("\u00e9", "00", 1, "c"))
        assert payload.isascii()
        assert "\\u00e9" in payload


class TestDecode:
    def test_round_trip(self, record):
        codec = WatermarkCodec()
        assert codec.decode(codec.encode(record)) == record

    def test_legacy_round_trip(self):
        legacy = WatermarkRecord("ab", "00", 5)
        decoded = decode(encode(legacy))
        assert decoded == legacy
        assert decoded.content_hash is None
        assert not decoded.has_integrity_data

    def test_empty_content_hash_counts_as_legacy(self):
        decoded = decode(encode(WatermarkRecord("ab", "00", 5, "")))
        assert decoded.content_hash == ""
        assert not decoded.has_integrity_data

    def test_empty_stream(self):
        assert decode("") is None

    def test_leading_visible_character_means_no_watermark(self, record):
        assert decode("x" + encode(record)) is None

    def test_trailing_text_ends_the_scan(self, record):
        assert decode(encode(record) + "visible tail") == record

    def test_truncated_bits(self, record):
        stream = encode(record)
        assert decode(stream[:-1]) is None

    def test_invalid_json(self):
        assert decode(markers_for("not json")) is None

    def test_missing_required_field(self):
        assert decode(markers_for('{"f":"a","s":"b"}')) is None

    def test_wrong_field_types(self):
        assert decode(markers_for('{"f":1,"s":"b","t":1}')) is None
        assert decode(markers_for('{"f":"a","s":"b","t":"1"}')) is None
        assert decode(markers_for('{"f":"a","s":"b","t":true}')) is None

    def test_json_that_is_not_an_object(self):
        assert decode(markers_for("[1,2,3]")) is None


class TestTextHelpers:
    def test_extract_and_strip(self, record):
        stream = encode(record)
        text = "Hello" + stream[:40] + " world" + stream[40:]
        assert strip_markers(text) == "Hello world"
        assert extract_marker_stream(text) == stream
        assert contains_watermark(text)

    def test_plain_text_has_no_watermark(self):
        assert not contains_watermark("Just some text")
        assert not contains_watermark("Stray\u200bmarker")
