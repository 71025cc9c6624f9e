"""
DOCX package handling for the BIOMARK system.

A DOCX file is a zip package whose main part, ``word/document.xml``, holds
the text in ``w:t`` elements. The watermark payload is appended to a few of
those text nodes so the visible document, its formatting and every other
package part stay untouched. When a package cannot be used, a minimal one is
generated from plain text instead.
"""

import io
import random
import re
import zipfile
from typing import List, Optional

import structlog
from lxml import etree

from .constants import (
    DOCX_MAIN_PART,
    PAGE_HEIGHT_TWIPS,
    PAGE_MARGIN_TWIPS,
    PAGE_WIDTH_TWIPS,
    WORD_NAMESPACE,
)
from .distribution import assign_chunks
from .exceptions import PackageFormatError
from .watermark import strip_markers

# Initialize structured logger
logger = structlog.get_logger(__name__)

W = "{%s}" % WORD_NAMESPACE
XML_SPACE = "{http://www.w3.org/XML/1998/namespace}space"

_WORD_CHARACTER = re.compile(r"\w")

# Control characters XML 1.0 cannot carry; form feed and vertical tab
# become spaces, the rest are dropped
_XML_WHITESPACE_CONTROLS = re.compile("[\x0b\x0c]")
_XML_INVALID_CONTROLS = re.compile("[\x00-\x08\x0e-\x1f\ufffe\uffff]")

CONTENT_TYPES_XML = """<?xml version="1.0" encoding="UTF-8"?>
<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">
  <Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>
  <Default Extension="xml" ContentType="application/xml"/>
  <Override PartName="/word/document.xml" ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>
  <Override PartName="/word/styles.xml" ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.styles+xml"/>
</Types>"""

ROOT_RELS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">
  <Relationship Id="rId1" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" Target="word/document.xml"/>
</Relationships>"""

DOCUMENT_RELS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">
  <Relationship Id="rId1" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/styles" Target="styles.xml"/>
</Relationships>"""

STYLES_XML = """<?xml version="1.0" encoding="UTF-8"?>
<w:styles xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">
  <w:style w:type="paragraph" w:default="1" w:styleId="Normal">
    <w:name w:val="Normal"/>
    <w:qFormat/>
    <w:rsid w:val="00000000"/>
    <w:pPr>
      <w:spacing w:after="160"/>
    </w:pPr>
    <w:rPr>
      <w:sz w:val="24"/>
    </w:rPr>
  </w:style>
</w:styles>"""


def _open_package(package_bytes: bytes) -> zipfile.ZipFile:
    try:
        package = zipfile.ZipFile(io.BytesIO(package_bytes))
    except (zipfile.BadZipFile, ValueError) as e:
        raise PackageFormatError(f"Invalid DOCX package: {str(e)}")

    if DOCX_MAIN_PART not in package.namelist():
        package.close()
        raise PackageFormatError(
            f"Invalid DOCX file: missing {DOCX_MAIN_PART}", part=DOCX_MAIN_PART
        )

    return package


def _parse_main_part(package: zipfile.ZipFile) -> etree._Element:
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        return etree.fromstring(package.read(DOCX_MAIN_PART), parser=parser)
    except (etree.XMLSyntaxError, zipfile.BadZipFile, KeyError) as e:
        raise PackageFormatError(
            f"Malformed document markup: {str(e)}", part=DOCX_MAIN_PART
        )


def _serialize(root: etree._Element) -> bytes:
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", standalone=True)


def is_docx_package(data: bytes) -> bool:
    """True when ``data`` is a zip archive containing a main document part."""
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as package:
            return DOCX_MAIN_PART in package.namelist()
    except (zipfile.BadZipFile, ValueError):
        return False


def _candidate_nodes(root: etree._Element) -> List[etree._Element]:
    candidates = []
    for node in root.iter(W + "t"):
        text = node.text or ""
        if text.strip() and _WORD_CHARACTER.search(text):
            candidates.append(node)
    return candidates


def _append_invisible_paragraph(root: etree._Element) -> etree._Element:
    body = root.find(W + "body")
    if body is None:
        raise PackageFormatError("Document has no body element", part=DOCX_MAIN_PART)

    paragraph = etree.Element(W + "p")
    run = etree.SubElement(paragraph, W + "r")
    text_node = etree.SubElement(run, W + "t")
    text_node.set(XML_SPACE, "preserve")

    if len(body) and body[-1].tag == W + "sectPr":
        body[-1].addprevious(paragraph)
    else:
        body.append(paragraph)

    return text_node


def embed_payload_in_docx(
    package_bytes: bytes, payload: str, rng: Optional[random.Random] = None
) -> bytes:
    """
    Append payload chunks to text nodes of a DOCX package.

    Parameters
    ----------
    package_bytes : bytes
        The source package.
    payload : str
        Invisible marker stream.
    rng : Optional[random.Random], default=None
        Slot selection randomness.

    Returns
    -------
    bytes
        A new package; every part other than the main document is copied
        byte for byte. Markers left by an earlier watermark are removed
        from the text nodes first.

    Raises
    ------
    PackageFormatError
        If the package is not a zip, lacks ``word/document.xml`` or its
        markup is malformed.
    """
    if not payload:
        return package_bytes

    with _open_package(package_bytes) as source:
        root = _parse_main_part(source)

        for node in root.iter(W + "t"):
            if node.text:
                node.text = strip_markers(node.text)

        candidates = _candidate_nodes(root)
        synthesized = not candidates
        if synthesized:
            candidates = [_append_invisible_paragraph(root)]

        plan = assign_chunks(len(candidates), payload, rng)
        for index, chunk in plan:
            node = candidates[index]
            node.text = (node.text or "") + chunk

        document_xml = _serialize(root)

        output = io.BytesIO()
        with zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as target:
            for info in source.infolist():
                if info.filename == DOCX_MAIN_PART:
                    target.writestr(info, document_xml)
                else:
                    target.writestr(info, source.read(info))

    logger.debug(
        "Payload embedded in DOCX",
        candidate_nodes=len(candidates),
        slots_used=len(plan),
        synthesized_paragraph=synthesized,
        payload_length=len(payload),
    )

    return output.getvalue()


def xml_safe_text(text: str) -> str:
    """Drop characters XML 1.0 cannot carry; form feed and vertical tab become spaces."""
    return _XML_INVALID_CONTROLS.sub("", _XML_WHITESPACE_CONTROLS.sub(" ", text))


def build_document_xml(text: str) -> bytes:
    """Main document part with one preserved-space paragraph per line."""
    root = etree.Element(W + "document", nsmap={"w": WORD_NAMESPACE})
    body = etree.SubElement(root, W + "body")

    for line in text.replace("\r\n", "\n").split("\n"):
        paragraph = etree.SubElement(body, W + "p")
        run = etree.SubElement(paragraph, W + "r")
        text_node = etree.SubElement(run, W + "t")
        text_node.set(XML_SPACE, "preserve")
        text_node.text = xml_safe_text(line)

    section = etree.SubElement(body, W + "sectPr")
    page_size = etree.SubElement(section, W + "pgSz")
    page_size.set(W + "w", str(PAGE_WIDTH_TWIPS))
    page_size.set(W + "h", str(PAGE_HEIGHT_TWIPS))

    margins = etree.SubElement(section, W + "pgMar")
    for side in ("top", "right", "bottom", "left"):
        margins.set(W + side, str(PAGE_MARGIN_TWIPS))
    margins.set(W + "header", "720")
    margins.set(W + "footer", "720")
    margins.set(W + "gutter", "0")

    return _serialize(root)


def create_docx_from_text(text: str) -> bytes:
    """
    Generate a minimal DOCX package holding ``text``.

    The package opens in word processors and contains content types,
    relationships, the main document and a single "Normal" style.
    """
    output = io.BytesIO()
    with zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as package:
        package.writestr("[Content_Types].xml", CONTENT_TYPES_XML)
        package.writestr("_rels/.rels", ROOT_RELS_XML)
        package.writestr(DOCX_MAIN_PART, build_document_xml(text))
        package.writestr("word/styles.xml", STYLES_XML)
        package.writestr("word/_rels/document.xml.rels", DOCUMENT_RELS_XML)

    logger.debug("Minimal DOCX package generated", text_length=len(text))

    return output.getvalue()


def read_docx_text(package_bytes: bytes) -> str:
    """
    Text of every ``w:t`` node in document order.

    Runs of one paragraph are joined directly; text from different
    paragraphs is separated by a newline.

    Raises
    ------
    PackageFormatError
        If the package or its main part cannot be read.
    """
    with _open_package(package_bytes) as package:
        root = _parse_main_part(package)

    parts = []
    current_paragraph = None
    for node in root.iter(W + "t"):
        paragraph = next(node.iterancestors(W + "p"), None)
        if parts and paragraph is not current_paragraph:
            parts.append("\n")
        current_paragraph = paragraph
        parts.append(node.text or "")

    return "".join(parts)
