"""
Document format detection and reading for the BIOMARK system.

Formats are inferred from the MIME type and the file name only; no content
sniffing takes place. Legacy ``.doc`` files are treated as word-processor
documents but can never be patched in place, so they are always regenerated
as DOCX.
"""

from pathlib import PurePath
from typing import Optional, Tuple

import structlog

from .constants import (
    DOCX_EXTENSIONS,
    DOCX_MIME,
    DOWNLOAD_PREFIX,
    LEGACY_DOC_EXTENSION,
    MSWORD_MIME,
    TEXT_MIME,
)
from .data_models import DocumentFormat
from .docx_container import read_docx_text, xml_safe_text
from .exceptions import PackageFormatError

# Initialize structured logger
logger = structlog.get_logger(__name__)

_EXTENSIONS = {DocumentFormat.TXT: "txt", DocumentFormat.DOCX: "docx"}
_MIME_TYPES = {DocumentFormat.TXT: TEXT_MIME, DocumentFormat.DOCX: DOCX_MIME}


def detect_format(file_name: str, mime_type: Optional[str] = None) -> DocumentFormat:
    """
    Decide whether a document is plain text or a word-processor package.

    Examples
    --------
    >>> detect_format("report.DOCX")
    <DocumentFormat.DOCX: 'docx'>
    >>> detect_format("notes", "application/msword")
    <DocumentFormat.DOCX: 'docx'>
    >>> detect_format("notes.md")
    <DocumentFormat.TXT: 'txt'>
    """
    if mime_type in (DOCX_MIME, MSWORD_MIME):
        return DocumentFormat.DOCX

    if (file_name or "").lower().endswith(DOCX_EXTENSIONS):
        return DocumentFormat.DOCX

    return DocumentFormat.TXT


def is_legacy_doc(file_name: str) -> bool:
    return (file_name or "").lower().endswith(LEGACY_DOC_EXTENSION)


def decode_text(data: bytes) -> str:
    """UTF-8 decode with the byte order mark dropped and bad bytes replaced."""
    return data.decode("utf-8-sig", errors="replace")


def read_document(
    data: bytes, file_name: str, mime_type: Optional[str] = None
) -> Tuple[str, DocumentFormat]:
    """
    Extract the plain text of a document.

    Parameters
    ----------
    data : bytes
        Raw document bytes.
    file_name : str
        Original file name.
    mime_type : Optional[str], default=None
        MIME type reported by the caller, if any.

    Returns
    -------
    Tuple[str, DocumentFormat]
        The text and the detected format. A word-processor file whose
        package cannot be read falls back to its bytes decoded as text, with
        the characters a regenerated package cannot hold removed, and still
        reports DOCX.
    """
    document_format = detect_format(file_name, mime_type)

    if document_format is DocumentFormat.TXT:
        return decode_text(data), document_format

    try:
        text = read_docx_text(data)
    except PackageFormatError as e:
        logger.warning(
            "Failed to parse DOCX package, falling back to raw text",
            file_name=file_name,
            error=str(e),
        )
        text = xml_safe_text(decode_text(data))

    return text, document_format


def build_download_name(file_name: str, document_format: DocumentFormat) -> str:
    """
    File name of a secured artifact.

    Examples
    --------
    >>> build_download_name("contract.doc", DocumentFormat.DOCX)
    'encrypted_contract.docx'
    >>> build_download_name("notes.txt", DocumentFormat.TXT)
    'encrypted_notes.txt'
    """
    base = PurePath(file_name or "document").stem or "document"
    return f"{DOWNLOAD_PREFIX}{base}.{_EXTENSIONS[document_format]}"


def mime_type_for(document_format: DocumentFormat) -> str:
    return _MIME_TYPES[document_format]
