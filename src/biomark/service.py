"""
Encryption and verification orchestrator for the BIOMARK system.

``BiometricWatermarkService`` chains the pipeline components:

Encryption
    fingerprint -> minutiae -> Fuzzy Vault -> document text -> content hash
    -> watermark record -> marker stream -> scattered payload -> artifact

Verification
    document text -> watermark record -> content integrity check
    -> fingerprint minutiae -> identity check -> decision

Each run moves through an explicit sequence of states that is logged as it
advances. A failure aborts the run: ``encrypt`` raises a typed
``BiomarkError`` and returns no partial artifact, ``verify_detailed``
records the failure and the last state reached. The service holds no
per-call state, so one instance can serve concurrent calls as long as the
injected RNG is safe to share.
"""

import random
import time
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

import structlog

from .data_models import (
    DocumentFormat,
    MinutiaPoint,
    SecuredArtifact,
    VerificationResult,
    WatermarkRecord,
)
from .distribution import distribute
from .docx_container import create_docx_from_text, embed_payload_in_docx, read_docx_text
from .documents import build_download_name, is_legacy_doc, mime_type_for, read_document
from .exceptions import (
    BiomarkError,
    IdentityMismatchError,
    InputFileError,
    IntegrityMismatchError,
    PackageFormatError,
    WatermarkAbsentError,
)
from .feature_extraction import MinutiaeExtractor, load_pixel_buffer
from .fuzzy_vault import FuzzyVaultGenerator
from .quality_assessment import FingerprintQualityGate
from .utils import hash_content, hash_minutiae, timer
from .watermark import WatermarkCodec, extract_marker_stream, strip_markers

# Initialize structured logger
logger = structlog.get_logger(__name__)

PathLike = Union[str, Path]


class EncryptionState(str, Enum):
    IDLE = "idle"
    FINGERPRINT_PROCESSED = "fingerprint_processed"
    VAULT_GENERATED = "vault_generated"
    CONTENT_READ = "content_read"
    WATERMARK_ASSEMBLED = "watermark_assembled"
    EMBEDDED = "embedded"
    PACKAGED = "packaged"


class VerificationState(str, Enum):
    IDLE = "idle"
    DOCUMENT_READ = "document_read"
    WATERMARK_EXTRACTED = "watermark_extracted"
    INTEGRITY_CHECKED = "integrity_checked"
    FINGERPRINT_PROCESSED = "fingerprint_processed"
    DECIDED = "decided"


def _current_time_ms() -> int:
    return int(time.time() * 1000)


def read_input_file(path: PathLike, kind: str) -> bytes:
    """Read an input file, raising ``InputFileError`` when it is missing."""
    file_path = Path(path)
    if not file_path.is_file():
        raise InputFileError(f"{kind} file not found: {file_path}", path=str(file_path))

    try:
        return file_path.read_bytes()
    except OSError as e:
        raise InputFileError(
            f"Failed to read {kind.lower()} file: {str(e)}", path=str(file_path)
        )


class BiometricWatermarkService:
    """
    Bind documents to a fingerprint owner and verify them later.

    Parameters
    ----------
    extractor : Optional[MinutiaeExtractor], default=None
        Minutiae extractor.
    vault_generator : Optional[FuzzyVaultGenerator], default=None
        Vault generator; built with ``rng`` when omitted.
    codec : Optional[WatermarkCodec], default=None
        Watermark codec.
    quality_gate : Optional[FingerprintQualityGate], default=None
        Statistical fingerprint quality gate.
    enforce_quality_gate : bool, default=True
        Reject fingerprints that fail the quality gate before extraction.
    rng : Optional[random.Random], default=None
        Randomness for vault generation and payload placement. A CSPRNG is
        used when omitted.
    clock : Optional[Callable[[], int]], default=None
        Returns the current time in milliseconds since the epoch.

    Examples
    --------
    >>> service = BiometricWatermarkService()
    >>> artifact = service.encrypt(fingerprint_png, b"Quarterly report", "report.txt")
    >>> artifact.file_name
    'encrypted_report.txt'
    >>> service.verify(fingerprint_png, artifact.data, artifact.file_name)
    True
    """

    def __init__(
        self,
        extractor: Optional[MinutiaeExtractor] = None,
        vault_generator: Optional[FuzzyVaultGenerator] = None,
        codec: Optional[WatermarkCodec] = None,
        quality_gate: Optional[FingerprintQualityGate] = None,
        enforce_quality_gate: bool = True,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.rng = rng
        self.extractor = extractor or MinutiaeExtractor()
        self.vault_generator = vault_generator or FuzzyVaultGenerator(rng=rng)
        self.codec = codec or WatermarkCodec()
        self.quality_gate = quality_gate or FingerprintQualityGate()
        self.enforce_quality_gate = enforce_quality_gate
        self.clock = clock or _current_time_ms

        logger.info(
            "BiometricWatermarkService initialized",
            enforce_quality_gate=enforce_quality_gate,
            seeded_rng=rng is not None,
        )

    @staticmethod
    def _advance(pipeline: str, state: Enum) -> Enum:
        logger.info("Pipeline state changed", pipeline=pipeline, state=state.value)
        return state

    def _process_fingerprint(self, fingerprint: bytes) -> List[MinutiaPoint]:
        buffer = load_pixel_buffer(fingerprint, source="fingerprint")
        if self.enforce_quality_gate:
            self.quality_gate.check(buffer)
        return self.extractor.extract(buffer)

    def _package(
        self,
        document: bytes,
        file_name: str,
        document_format: DocumentFormat,
        watermarked_text: str,
        payload: str,
    ) -> Tuple[bytes, str]:
        if document_format is DocumentFormat.TXT:
            return watermarked_text.encode("utf-8"), watermarked_text

        if is_legacy_doc(file_name):
            logger.info("Legacy .doc input, regenerating DOCX package", file_name=file_name)
            return create_docx_from_text(watermarked_text), watermarked_text

        try:
            data = embed_payload_in_docx(document, payload, rng=self.rng)
            return data, read_docx_text(data)
        except PackageFormatError as e:
            logger.warning(
                "Failed to preserve DOCX formatting, falling back to regenerated file",
                file_name=file_name,
                error=str(e),
            )
            return create_docx_from_text(watermarked_text), watermarked_text

    @timer
    def encrypt(
        self,
        fingerprint: bytes,
        document: bytes,
        file_name: str,
        mime_type: Optional[str] = None,
    ) -> SecuredArtifact:
        """
        Watermark a document with the owner's fingerprint.

        Parameters
        ----------
        fingerprint : bytes
            Encoded fingerprint image.
        document : bytes
            Raw document bytes.
        file_name : str
            Original document file name; selects the format together with
            ``mime_type``.
        mime_type : Optional[str], default=None
            MIME type of the document, if known.

        Returns
        -------
        SecuredArtifact
            The secured document and the data embedded in it.

        Raises
        ------
        ImageLoadError
            If the fingerprint cannot be decoded.
        QualityError
            If the fingerprint fails the quality gate or yields too few
            minutiae.
        BiomarkError
            For any other failure during the run.
        """
        pipeline = "encrypt"
        state = EncryptionState.IDLE
        logger.info("Starting document encryption", file_name=file_name, mime_type=mime_type)

        try:
            minutiae = self._process_fingerprint(fingerprint)
            state = self._advance(pipeline, EncryptionState.FINGERPRINT_PROCESSED)

            vault = self.vault_generator.generate(minutiae)
            state = self._advance(pipeline, EncryptionState.VAULT_GENERATED)

            text, document_format = read_document(document, file_name, mime_type)
            visible = strip_markers(text)
            state = self._advance(pipeline, EncryptionState.CONTENT_READ)

            record = WatermarkRecord(
                identity_hash=hash_minutiae(minutiae),
                vault_secret=vault.secret_hex,
                timestamp=self.clock(),
                content_hash=hash_content(visible),
            )
            payload = self.codec.encode(record)
            state = self._advance(pipeline, EncryptionState.WATERMARK_ASSEMBLED)

            watermarked_text = distribute(visible, payload, rng=self.rng)
            state = self._advance(pipeline, EncryptionState.EMBEDDED)

            data, watermarked_text = self._package(
                document, file_name, document_format, watermarked_text, payload
            )
            state = self._advance(pipeline, EncryptionState.PACKAGED)

        except Exception as e:
            logger.error(
                "Document encryption failed",
                file_name=file_name,
                state=state.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            if isinstance(e, BiomarkError):
                raise
            raise BiomarkError(
                f"Unexpected error during encryption: {str(e)}",
                context={"state": state.value},
                error_code="PIPELINE_001",
            ) from e

        artifact = SecuredArtifact(
            data=data,
            file_name=build_download_name(file_name, document_format),
            mime_type=mime_type_for(document_format),
            format=document_format,
            watermarked_text=watermarked_text,
            record=record,
            vault=vault,
        )

        logger.info(
            "Document encryption completed",
            file_name=artifact.file_name,
            format=document_format.value,
            hidden_chars=artifact.hidden_char_count,
            minutiae=len(minutiae),
        )

        return artifact

    @timer
    def verify_detailed(
        self,
        fingerprint: bytes,
        document: bytes,
        file_name: str,
        mime_type: Optional[str] = None,
    ) -> VerificationResult:
        """
        Check a secured document against a fingerprint.

        The content integrity check runs before the fingerprint is
        processed and only when the record carries a content hash.

        Returns
        -------
        VerificationResult
            ``verified`` plus the last state reached, the decoded record and
            the failure (``WatermarkAbsentError``, ``IntegrityMismatchError``,
            ``IdentityMismatchError``, ``QualityError``, ...) if any.
        """
        pipeline = "verify"
        state = VerificationState.IDLE
        record: Optional[WatermarkRecord] = None
        logger.info("Starting document verification", file_name=file_name)

        try:
            text, _ = read_document(document, file_name, mime_type)
            state = self._advance(pipeline, VerificationState.DOCUMENT_READ)

            record = self.codec.decode(extract_marker_stream(text))
            if record is None:
                raise WatermarkAbsentError()
            state = self._advance(pipeline, VerificationState.WATERMARK_EXTRACTED)

            if record.has_integrity_data:
                actual_hash = hash_content(strip_markers(text))
                if actual_hash != record.content_hash:
                    raise IntegrityMismatchError(record.content_hash, actual_hash)
            else:
                logger.info("Watermark carries no content hash, integrity check skipped")
            state = self._advance(pipeline, VerificationState.INTEGRITY_CHECKED)

            minutiae = self._process_fingerprint(fingerprint)
            state = self._advance(pipeline, VerificationState.FINGERPRINT_PROCESSED)

            identity_hash = hash_minutiae(minutiae)
            if identity_hash != record.identity_hash:
                raise IdentityMismatchError(record.identity_hash, identity_hash)
            state = self._advance(pipeline, VerificationState.DECIDED)

        except Exception as e:
            failure = e
            if not isinstance(e, BiomarkError):
                failure = BiomarkError(
                    f"Unexpected error during verification: {str(e)}",
                    context={"state": state.value},
                    error_code="PIPELINE_001",
                )
            logger.warning(
                "Document verification failed",
                file_name=file_name,
                state=state.value,
                failure=type(failure).__name__,
                error=str(failure),
            )
            return VerificationResult(
                verified=False, state=state.value, failure=failure, record=record
            )

        logger.info("Document verified", file_name=file_name)
        return VerificationResult(verified=True, state=state.value, record=record)

    def verify(
        self,
        fingerprint: bytes,
        document: bytes,
        file_name: str,
        mime_type: Optional[str] = None,
    ) -> bool:
        """True only when the watermark, content and owner all check out."""
        return self.verify_detailed(fingerprint, document, file_name, mime_type).verified

    def encrypt_file(
        self, fingerprint_path: PathLike, document_path: PathLike
    ) -> SecuredArtifact:
        """Read both inputs from disk and run :meth:`encrypt`."""
        fingerprint = read_input_file(fingerprint_path, "Fingerprint")
        document = read_input_file(document_path, "Document")
        return self.encrypt(fingerprint, document, Path(document_path).name)

    def verify_file(
        self, fingerprint_path: PathLike, document_path: PathLike
    ) -> VerificationResult:
        """Read both inputs from disk and run :meth:`verify_detailed`."""
        fingerprint = read_input_file(fingerprint_path, "Fingerprint")
        document = read_input_file(document_path, "Document")
        return self.verify_detailed(fingerprint, document, Path(document_path).name)

    @staticmethod
    def visible_text(text: str) -> str:
        """Watermarked text with every marker removed."""
        return strip_markers(text)

    def inspect(
        self, document: bytes, file_name: str, mime_type: Optional[str] = None
    ) -> Optional[WatermarkRecord]:
        """Decode the watermark of a document without any checks."""
        text, _ = read_document(document, file_name, mime_type)
        return self.codec.decode(extract_marker_stream(text))
