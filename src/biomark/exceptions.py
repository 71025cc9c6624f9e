"""
Custom exception classes for the BIOMARK system.

Every failure the pipeline can report is a subclass of ``BiomarkError`` and
carries a machine-readable error code plus context describing what was
expected and what was found. The orchestrator surfaces these to its caller
unchanged; ``verify`` keeps them in the verification result.
"""

from typing import Optional, Dict, Any, List


class BiomarkError(Exception):
    """
    Base exception class for all BIOMARK related errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    context : dict, optional
        Additional context information about the error.
    error_code : str, optional
        Unique error code for programmatic handling.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message = message
        self.context = context or {}
        self.error_code = error_code
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return a formatted string representation of the error."""
        parts = [self.message]

        if self.error_code:
            parts.append(f"[Error Code: {self.error_code}]")

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"[Context: {context_str}]")

        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the exception to a dictionary for structured logging.

        Returns
        -------
        dict
            Dictionary representation of the exception.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
        }


class ImageLoadError(BiomarkError):
    """Exception raised when a fingerprint image cannot be decoded."""

    def __init__(self, message: str, source: Optional[str] = None, **kwargs) -> None:
        context = kwargs.get("context", {})
        if source:
            context["source"] = source
        super().__init__(message, context, kwargs.get("error_code", "IMAGE_001"))


class QualityError(BiomarkError):
    """
    Exception raised when a fingerprint sample is not usable.

    This covers both too few minutiae after normalization and a failed
    statistical quality gate. It is not a system error; it means the sample
    has to be recaptured.
    """

    def __init__(
        self,
        message: str,
        detected: Optional[int] = None,
        required: Optional[int] = None,
        failing_checks: Optional[List[str]] = None,
        **kwargs,
    ) -> None:
        context = kwargs.get("context", {})
        if detected is not None:
            context["detected"] = detected
        if required is not None:
            context["required"] = required
        if failing_checks:
            context["failing_checks"] = failing_checks
        self.detected = detected
        self.required = required
        self.failing_checks = list(failing_checks or [])
        super().__init__(message, context, kwargs.get("error_code", "QUALITY_001"))


class PackageFormatError(BiomarkError):
    """
    Exception raised for a word-processor package that cannot be used.

    Raised for corrupt archives, a missing main document part or malformed
    document markup.
    """

    def __init__(self, message: str, part: Optional[str] = None, **kwargs) -> None:
        context = kwargs.get("context", {})
        if part:
            context["part"] = part
        super().__init__(message, context, kwargs.get("error_code", "PACKAGE_001"))


class WatermarkAbsentError(BiomarkError):
    """Exception raised when a document carries no decodable watermark."""

    def __init__(self, message: str = "No watermark found in document", **kwargs) -> None:
        super().__init__(
            message, kwargs.get("context"), kwargs.get("error_code", "WATERMARK_001")
        )


class VerificationError(BiomarkError):
    """Base class for watermark checks that ran and did not match."""

    def __init__(
        self,
        message: str,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.get("context", {})
        if expected is not None:
            context["expected"] = expected
        if actual is not None:
            context["actual"] = actual
        super().__init__(message, context, kwargs.get("error_code"))


class IntegrityMismatchError(VerificationError):
    """Exception raised when the visible content no longer matches its hash."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            "Content integrity check failed: document has been tampered with",
            expected=expected,
            actual=actual,
            error_code="VERIFY_001",
        )


class IdentityMismatchError(VerificationError):
    """Exception raised when the fingerprint does not belong to the owner."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            "Fingerprint does not match the watermark owner",
            expected=expected,
            actual=actual,
            error_code="VERIFY_002",
        )


class InputFileError(BiomarkError):
    """Exception raised when an input file cannot be read from disk."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs) -> None:
        context = kwargs.get("context", {})
        if path:
            context["path"] = path
        super().__init__(message, context, kwargs.get("error_code", "FILE_001"))


class ConfigurationError(BiomarkError):
    """
    Exception raised for configuration-related errors.

    This includes invalid configuration values read from the environment
    or a .env file.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key
        if config_value:
            context["config_value"] = config_value

        super().__init__(message, context, kwargs.get("error_code", "CONFIG_001"))
