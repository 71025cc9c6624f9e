"""
Zero-width watermark codec for the BIOMARK system.

A ``WatermarkRecord`` is serialized to compact JSON and every character's
8-bit code is written as invisible marker characters:

    bit 0      U+200B ZERO WIDTH SPACE
    bit 1      U+200C ZERO WIDTH NON-JOINER
    delimiter  U+200D ZERO WIDTH JOINER (between bytes, not after the last)

The resulting stream carries no visible glyphs and can be scattered through
a document's text. Decoding takes the markers in document order, so the
stream survives being split into chunks as long as their order is kept.
"""

import json
from typing import Any, Dict, Optional

import structlog

from .constants import (
    BITS_PER_CHAR,
    BYTE_DELIMITER,
    COMPACT_FIELD_NAMES,
    ONE_BIT_MARKER,
    WATERMARK_MARKERS,
    ZERO_BIT_MARKER,
)
from .data_models import WatermarkRecord

# Initialize structured logger
logger = structlog.get_logger(__name__)

_BIT_TO_MARKER = {"0": ZERO_BIT_MARKER, "1": ONE_BIT_MARKER}
_MARKER_TO_BIT = {ZERO_BIT_MARKER: "0", ONE_BIT_MARKER: "1"}
_REQUIRED_FIELDS = ("identity_hash", "vault_secret", "timestamp")
_STRIP_TABLE = {ord(marker): None for marker in WATERMARK_MARKERS}


def compact_payload(record: WatermarkRecord) -> str:
    """
    Compact JSON form of ``record``.

    Keys appear in the order ``f``, ``s``, ``t``, ``c``; ``c`` is left out
    for legacy records without a content hash.

    Examples
    --------
    >>> compact_payload(WatermarkRecord("ab", "01020304", 1700000000000, "7fa3"))
    '{"f":"ab","s":"01020304","t":1700000000000,"c":"7fa3"}'
    """
    compact: Dict[str, Any] = {
        COMPACT_FIELD_NAMES["identity_hash"]: record.identity_hash,
        COMPACT_FIELD_NAMES["vault_secret"]: record.vault_secret,
        COMPACT_FIELD_NAMES["timestamp"]: record.timestamp,
    }
    if record.content_hash is not None:
        compact[COMPACT_FIELD_NAMES["content_hash"]] = record.content_hash

    return json.dumps(compact, separators=(",", ":"), ensure_ascii=True)


def _parse_compact(payload: str) -> Optional[WatermarkRecord]:
    try:
        compact = json.loads(payload)
    except ValueError:
        return None

    if not isinstance(compact, dict):
        return None

    names = COMPACT_FIELD_NAMES
    if any(names[field] not in compact for field in _REQUIRED_FIELDS):
        return None

    identity_hash = compact[names["identity_hash"]]
    vault_secret = compact[names["vault_secret"]]
    timestamp = compact[names["timestamp"]]
    content_hash = compact.get(names["content_hash"])

    if not isinstance(identity_hash, str) or not isinstance(vault_secret, str):
        return None
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        return None
    if content_hash is not None and not isinstance(content_hash, str):
        return None

    return WatermarkRecord(
        identity_hash=identity_hash,
        vault_secret=vault_secret,
        timestamp=int(timestamp),
        content_hash=content_hash,
    )


class WatermarkCodec:
    """
    Encode records to marker streams and back.

    Examples
    --------
    >>> codec = WatermarkCodec()
    >>> record = WatermarkRecord("test123", "testsecret", 1700000000000, "7fa3")
    >>> codec.decode(codec.encode(record)) == record
    True
    """

    def encode(self, record: WatermarkRecord) -> str:
        """
        Serialize ``record`` into an invisible marker stream.

        Returns
        -------
        str
            ``8 * len(compact_payload(record))`` bit markers with a delimiter
            between consecutive bytes.
        """
        payload = compact_payload(record)
        groups = [
            "".join(_BIT_TO_MARKER[bit] for bit in format(ord(char), "08b"))
            for char in payload
        ]
        stream = BYTE_DELIMITER.join(groups)

        logger.debug(
            "Watermark encoded",
            payload_chars=len(payload),
            bits=len(payload) * BITS_PER_CHAR,
            stream_length=len(stream),
        )

        return stream

    def decode(self, stream: str) -> Optional[WatermarkRecord]:
        """
        Parse a marker stream back into a record.

        Delimiters are skipped. A character that is not a marker before the
        first marker means there is no watermark; after markers it ends the
        scan.

        Returns
        -------
        Optional[WatermarkRecord]
            The record, or ``None`` if the stream is empty, its bit count is
            not a multiple of eight, or the payload is not a valid record.
        """
        bits = []
        seen_marker = False
        for char in stream:
            if char in _MARKER_TO_BIT:
                bits.append(_MARKER_TO_BIT[char])
                seen_marker = True
            elif char == BYTE_DELIMITER:
                seen_marker = True
            elif not seen_marker:
                return None
            else:
                break

        if not bits or len(bits) % BITS_PER_CHAR:
            logger.debug("Watermark stream rejected", bits=len(bits))
            return None

        bit_string = "".join(bits)
        payload = "".join(
            chr(int(bit_string[i : i + BITS_PER_CHAR], 2))
            for i in range(0, len(bit_string), BITS_PER_CHAR)
        )

        record = _parse_compact(payload)
        if record is None:
            logger.debug("Watermark payload rejected", payload_chars=len(payload))
        return record


def strip_markers(text: str) -> str:
    """Remove every watermark marker, leaving the user-visible text."""
    return text.translate(_STRIP_TABLE)


def extract_marker_stream(text: str) -> str:
    """All watermark markers of ``text`` in document order."""
    return "".join(char for char in text if char in WATERMARK_MARKERS)


def contains_watermark(text: str) -> bool:
    """True when ``text`` carries a decodable watermark."""
    return decode(extract_marker_stream(text)) is not None


_default_codec = WatermarkCodec()


def encode(record: WatermarkRecord) -> str:
    """Encode ``record`` with the default codec."""
    return _default_codec.encode(record)


def decode(stream: str) -> Optional[WatermarkRecord]:
    """Decode ``stream`` with the default codec."""
    return _default_codec.decode(stream)
