"""Shared fixtures: synthetic fingerprints, documents and seeded randomness."""

import io
import random
import zipfile
from typing import List
from xml.sax.saxutils import escape

import cv2
import numpy as np
import pytest
import structlog

from biomark.data_models import PixelBuffer
from biomark.service import BiometricWatermarkService

WORD_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"

FIXED_TIMESTAMP = 1700000000000

SAMPLE_TEXT = (
    "Quarterly report for the board.\n"
    "Revenue grew twelve percent while operating costs stayed flat.\n"
    "The audit committee approved the statements without exceptions."
)

CUSTOM_STYLES_XML = (
    b'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    b'<w:styles xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
    b'<w:style w:type="paragraph" w:styleId="Heading1"><w:name w:val="heading 1"/></w:style>'
    b"</w:styles>"
)


def encode_png(image: np.ndarray) -> bytes:
    success, encoded = cv2.imencode(".png", image)
    assert success
    return encoded.tobytes()


def ridge_bar_image(
    bar_rows: List[int],
    width: int = 64,
    height: int = 100,
    start: int = 10,
    stop: int = 49,
    thickness: int = 3,
) -> np.ndarray:
    """Black image with white horizontal bars; each bar thins to one ridge line."""
    image = np.zeros((height, width), dtype=np.uint8)
    for row in bar_rows:
        image[row : row + thickness, start : stop + 1] = 255
    return image


def sinusoid_image(size: int = 200, period: int = 8) -> np.ndarray:
    x = np.arange(size)
    row = 128 + 100 * np.sin(2 * np.pi * x / period)
    return np.tile(np.rint(row), (size, 1)).astype(np.uint8)


def gray_buffer(image: np.ndarray) -> PixelBuffer:
    height, width = image.shape
    return PixelBuffer(width=width, height=height, channels=image[:, :, np.newaxis].copy())


def build_docx(paragraphs: List[List[str]], styles_xml: bytes = CUSTOM_STYLES_XML) -> bytes:
    """DOCX package whose paragraphs are made of the given runs."""
    body = []
    for runs in paragraphs:
        run_xml = "".join(
            f'<w:r><w:rPr><w:b/></w:rPr><w:t xml:space="preserve">{escape(text)}</w:t></w:r>'
            for text in runs
        )
        body.append(f"<w:p>{run_xml}</w:p>")

    document_xml = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
        f'<w:document xmlns:w="{WORD_NS}"><w:body>'
        + "".join(body)
        + '<w:sectPr><w:pgSz w:w="12240" w:h="15840"/></w:sectPr>'
        "</w:body></w:document>"
    )

    output = io.BytesIO()
    with zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as package:
        package.writestr(
            "[Content_Types].xml",
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
            '<Default Extension="xml" ContentType="application/xml"/></Types>',
        )
        package.writestr("word/document.xml", document_xml)
        package.writestr("word/styles.xml", styles_xml)
    return output.getvalue()


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    structlog.reset_defaults()


@pytest.fixture
def owner_fingerprint_png() -> bytes:
    return encode_png(ridge_bar_image([10 + 10 * k for k in range(8)]))


@pytest.fixture
def other_fingerprint_png() -> bytes:
    return encode_png(ridge_bar_image([12 + 11 * k for k in range(7)], start=14, stop=45))


@pytest.fixture
def sparse_fingerprint_png() -> bytes:
    return encode_png(ridge_bar_image([10 + 15 * k for k in range(5)]))


@pytest.fixture
def uniform_png() -> bytes:
    return encode_png(np.full((200, 200), 200, dtype=np.uint8))


@pytest.fixture
def sinusoid_png() -> bytes:
    return encode_png(sinusoid_image())


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def sample_text() -> str:
    return SAMPLE_TEXT


@pytest.fixture
def sample_docx() -> bytes:
    return build_docx(
        [
            ["Quarterly ", "report for ", "the board."],
            ["Revenue grew twelve percent ", "while costs stayed flat."],
            ["   "],
            ["The audit committee approved the statements."],
        ]
    )


@pytest.fixture
def service() -> BiometricWatermarkService:
    return BiometricWatermarkService(
        enforce_quality_gate=False,
        rng=random.Random(42),
        clock=lambda: FIXED_TIMESTAMP,
    )
