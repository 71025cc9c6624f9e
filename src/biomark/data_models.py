"""
Data models for the BIOMARK system.

This module defines the value types that flow through the encryption and
verification pipelines. All of them are created and consumed within a single
``encrypt`` or ``verify`` call; none of them is persisted by the library.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, List, Tuple

import numpy as np

from .constants import LUMA_WEIGHTS, WATERMARK_MARKERS


class MinutiaType(str, Enum):
    """Kind of ridge feature a minutia describes."""

    ENDING = "ending"
    BIFURCATION = "bifurcation"


class DocumentFormat(str, Enum):
    """Container format of a source document or secured artifact."""

    TXT = "txt"
    DOCX = "docx"


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """
    Decoded raster image.

    Parameters
    ----------
    width : int
        Image width in pixels.
    height : int
        Image height in pixels.
    channels : np.ndarray
        ``uint8`` array of shape ``(height, width, C)`` with C in {1, 3, 4}.
        Colour images are stored in RGB(A) order. The array is made
        read-only on construction; processing stages work on derived copies.
    """

    width: int
    height: int
    channels: np.ndarray

    def __post_init__(self) -> None:
        if self.channels.ndim != 3:
            raise ValueError("channels must have shape (height, width, C)")

        if self.channels.shape[:2] != (self.height, self.width):
            raise ValueError(
                f"channels shape {self.channels.shape[:2]} does not match "
                f"{(self.height, self.width)}"
            )

        if self.channels.shape[2] not in (1, 3, 4):
            raise ValueError(f"Unsupported channel count: {self.channels.shape[2]}")

        self.channels.setflags(write=False)

    @property
    def channel_count(self) -> int:
        return int(self.channels.shape[2])

    def luminance(self) -> np.ndarray:
        """
        Unrounded grayscale image as ``float64``.

        Single-channel images are returned as is; colour images use the
        BT.601 luma weights on the R, G and B channels (alpha is ignored).
        """
        if self.channel_count == 1:
            return self.channels[:, :, 0].astype(np.float64)

        r_weight, g_weight, b_weight = LUMA_WEIGHTS
        rgb = self.channels.astype(np.float64)
        return r_weight * rgb[:, :, 0] + g_weight * rgb[:, :, 1] + b_weight * rgb[:, :, 2]


@dataclass(frozen=True)
class MinutiaPoint:
    """
    A ridge ending or bifurcation.

    Parameters
    ----------
    x : int
        Column of the skeleton pixel.
    y : int
        Row of the skeleton pixel.
    angle : float
        Ridge direction in degrees, in (-180, 180].
    type : MinutiaType
        Ending or bifurcation.
    """

    x: int
    y: int
    angle: float
    type: MinutiaType

    def distance_to(self, other: "MinutiaPoint") -> float:
        return float(np.hypot(self.x - other.x, self.y - other.y))

    def to_dict(self) -> Dict[str, Any]:
        return {"x": self.x, "y": self.y, "angle": self.angle, "type": self.type.value}


@dataclass(frozen=True)
class FuzzyVault:
    """
    Fuzzy Vault hiding a secret as points on a polynomial over GF(251).

    Parameters
    ----------
    points : Tuple[Tuple[int, int], ...]
        Genuine and chaff points, shuffled. Both coordinates lie in [0, 250].
    secret : bytes
        The secret whose bytes are the polynomial coefficients.
    polynomial_coefficients : Tuple[int, ...]
        Coefficients, lowest degree first.
    """

    points: Tuple[Tuple[int, int], ...]
    secret: bytes
    polynomial_coefficients: Tuple[int, ...]

    @property
    def secret_hex(self) -> str:
        return self.secret.hex()

    @property
    def degree(self) -> int:
        return len(self.polynomial_coefficients) - 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "points": [list(point) for point in self.points],
            "secret": self.secret_hex,
            "polynomialCoefficients": list(self.polynomial_coefficients),
        }


@dataclass(frozen=True)
class WatermarkRecord:
    """
    The record embedded in the invisible channel of a secured document.

    Parameters
    ----------
    identity_hash : str
        Rolling hash of the owner's minutiae.
    vault_secret : str
        Hex encoded Fuzzy Vault secret.
    timestamp : int
        Creation time in milliseconds since the epoch.
    content_hash : Optional[str], default=None
        Rolling hash of the normalized visible text. ``None`` marks a legacy
        record produced before integrity checking existed.
    """

    identity_hash: str
    vault_secret: str
    timestamp: int
    content_hash: Optional[str] = None

    @property
    def has_integrity_data(self) -> bool:
        return bool(self.content_hash)

    def to_dict(self) -> Dict[str, Any]:
        """Full field names; an absent content hash is reported as ``""``."""
        return {
            "identityHash": self.identity_hash,
            "vaultSecret": self.vault_secret,
            "timestamp": self.timestamp,
            "contentHash": self.content_hash or "",
        }


@dataclass(frozen=True)
class SecuredArtifact:
    """
    Output of an encryption run.

    Parameters
    ----------
    data : bytes
        UTF-8 text or a DOCX archive, depending on ``format``.
    file_name : str
        Suggested file name, ``encrypted_<base>.<ext>``.
    mime_type : str
        MIME type matching ``format``.
    format : DocumentFormat
        Container format of ``data``.
    watermarked_text : str
        Extracted document text with the invisible channel interleaved.
    record : WatermarkRecord
        The embedded record.
    vault : FuzzyVault
        The vault generated for this run. It is not embedded in the document.
    """

    data: bytes
    file_name: str
    mime_type: str
    format: DocumentFormat
    watermarked_text: str
    record: WatermarkRecord
    vault: FuzzyVault

    @property
    def hidden_char_count(self) -> int:
        return sum(1 for char in self.watermarked_text if char in WATERMARK_MARKERS)


@dataclass
class QualityMetrics:
    """Statistical fingerprint image quality metrics."""

    contrast: float
    clarity: float
    ridge_coverage: float
    ridge_frequency: float
    signal_to_noise: float
    quality_score: float
    width: int
    height: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contrast": self.contrast,
            "clarity": self.clarity,
            "ridge_coverage": self.ridge_coverage,
            "ridge_frequency": self.ridge_frequency,
            "signal_to_noise": self.signal_to_noise,
            "quality_score": self.quality_score,
            "width": self.width,
            "height": self.height,
        }


@dataclass
class QualityReport:
    """
    Quality gate outcome for one fingerprint sample.

    Parameters
    ----------
    metrics : QualityMetrics
        Measured metrics.
    failing_checks : List[str], default_factory=list
        Human-readable labels of the checks that failed.
    passed : bool, default=True
        Whether the number of failing checks is within tolerance.
    """

    metrics: QualityMetrics
    failing_checks: List[str] = field(default_factory=list)
    passed: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metrics": self.metrics.to_dict(),
            "failing_checks": list(self.failing_checks),
            "passed": self.passed,
        }


@dataclass
class VerificationResult:
    """
    Detailed outcome of a verification run.

    ``verify`` only exposes ``verified``; the failure is kept here so callers
    and tests can tell tampering from a wrong owner or a missing watermark.
    """

    verified: bool
    state: str
    failure: Optional[Exception] = None
    record: Optional[WatermarkRecord] = None

    @property
    def failure_kind(self) -> Optional[str]:
        if self.failure is None:
            return None
        return type(self.failure).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verified": self.verified,
            "state": self.state,
            "failure_kind": self.failure_kind,
            "failure": str(self.failure) if self.failure is not None else None,
            "record": self.record.to_dict() if self.record is not None else None,
        }
