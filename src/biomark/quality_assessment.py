"""
Fingerprint quality gate for the BIOMARK system.

This module rejects images that are unlikely to be usable fingerprints
before any minutiae are extracted. It computes five fast statistical
metrics on the unrounded grayscale image and compares each one against a
fixed threshold:

- contrast: population standard deviation of the gray levels
- clarity: variance of the 4-neighbour Laplacian (sharpness)
- ridge coverage: share of dark (ridge ink) pixels
- ridge frequency: average number of ink/background transitions per row
- signal-to-noise: mean over standard deviation of the Sobel magnitude

A single failing check is tolerated; two or more reject the sample.
"""

from typing import Dict, List, Optional

import numpy as np
import structlog
from scipy import ndimage

from .constants import (
    MAX_ALLOWED_FAILING_CHECKS,
    QUALITY_SCORE_CAP,
    QUALITY_THRESHOLDS,
    RIDGE_INK_THRESHOLD,
)
from .data_models import PixelBuffer, QualityMetrics, QualityReport
from .exceptions import QualityError
from .feature_extraction import load_pixel_buffer
from .utils import safe_divide, timer

# Initialize structured logger
logger = structlog.get_logger(__name__)

_LAPLACIAN_KERNEL = np.array([[0, 1, 0], [1, -4, 1], [0, 1, 0]], dtype=np.float64)
_SOBEL_X_KERNEL = np.array([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]], dtype=np.float64) / 4
_SOBEL_Y_KERNEL = np.array([[-1, -2, -1], [0, 0, 0], [1, 2, 1]], dtype=np.float64) / 4

# Minimum variance used for the signal-to-noise ratio
_MIN_VARIANCE = 1e-6


def _interior(image: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    return ndimage.correlate(image, kernel, mode="nearest")[1:-1, 1:-1]


def compute_contrast(gray: np.ndarray) -> float:
    return float(gray.std()) if gray.size else 0.0


def compute_clarity(gray: np.ndarray) -> float:
    """Variance of the Laplacian over interior pixels, never negative."""
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return 0.0

    laplacian = _interior(gray, _LAPLACIAN_KERNEL)
    variance = float(np.mean(laplacian**2) - np.mean(laplacian) ** 2)
    return max(variance, 0.0)


def compute_ridge_pattern(gray: np.ndarray) -> Dict[str, float]:
    """
    Ridge coverage and frequency from the ink mask.

    Only rows with ink at ``x >= 1`` count towards the frequency average.
    """
    ink = gray < RIDGE_INK_THRESHOLD
    coverage = safe_divide(float(np.count_nonzero(ink)), float(max(ink.size, 1)))

    if ink.shape[1] < 2:
        return {"ridge_coverage": coverage, "ridge_frequency": 0.0}

    transitions = np.count_nonzero(ink[:, 1:] != ink[:, :-1], axis=1)
    rows_with_ink = ink[:, 1:].any(axis=1)

    frequency = safe_divide(
        float(transitions[rows_with_ink].sum()), float(np.count_nonzero(rows_with_ink))
    )
    return {"ridge_coverage": coverage, "ridge_frequency": frequency}


def compute_signal_to_noise(gray: np.ndarray) -> float:
    """Mean over standard deviation of the interior Sobel gradient magnitude."""
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return 0.0

    magnitude = np.hypot(_interior(gray, _SOBEL_X_KERNEL), _interior(gray, _SOBEL_Y_KERNEL))
    mean = float(magnitude.mean())
    variance = float(np.mean(magnitude**2)) - mean * mean
    return mean / float(np.sqrt(max(variance, _MIN_VARIANCE)))


class FingerprintQualityGate:
    """
    Statistical fingerprint quality assessment.

    Parameters
    ----------
    thresholds : Optional[Dict[str, float]], default=None
        Overrides for ``QUALITY_THRESHOLDS`` entries.
    max_failing_checks : int, default=MAX_ALLOWED_FAILING_CHECKS
        Number of failing checks still accepted.

    Examples
    --------
    >>> gate = FingerprintQualityGate()
    >>> report = gate.assess(buffer)
    >>> report.passed, report.failing_checks
    (True, [])
    """

    def __init__(
        self,
        thresholds: Optional[Dict[str, float]] = None,
        max_failing_checks: int = MAX_ALLOWED_FAILING_CHECKS,
    ) -> None:
        self.thresholds = dict(QUALITY_THRESHOLDS)
        if thresholds:
            unknown = set(thresholds) - set(QUALITY_THRESHOLDS)
            if unknown:
                raise ValueError(f"Unknown quality thresholds: {sorted(unknown)}")
            self.thresholds.update(thresholds)

        self.max_failing_checks = max_failing_checks

        logger.info(
            "FingerprintQualityGate initialized",
            thresholds=self.thresholds,
            max_failing_checks=max_failing_checks,
        )

    def measure(self, buffer: PixelBuffer) -> QualityMetrics:
        """Compute all metrics and the composite quality score."""
        gray = buffer.luminance()

        contrast = compute_contrast(gray)
        clarity = compute_clarity(gray)
        ridge = compute_ridge_pattern(gray)
        signal_to_noise = compute_signal_to_noise(gray)

        t = self.thresholds
        normalized = [
            min(contrast / t["contrast"], QUALITY_SCORE_CAP),
            min(clarity / t["clarity"], QUALITY_SCORE_CAP),
            1.0 if self._coverage_ok(ridge["ridge_coverage"]) else 0.0,
            1.0 if self._frequency_ok(ridge["ridge_frequency"]) else 0.0,
            min(signal_to_noise / t["signal_to_noise"], QUALITY_SCORE_CAP),
        ]

        return QualityMetrics(
            contrast=contrast,
            clarity=clarity,
            ridge_coverage=ridge["ridge_coverage"],
            ridge_frequency=ridge["ridge_frequency"],
            signal_to_noise=signal_to_noise,
            quality_score=sum(normalized) / len(normalized),
            width=buffer.width,
            height=buffer.height,
        )

    def _coverage_ok(self, coverage: float) -> bool:
        t = self.thresholds
        return t["ridge_coverage_min"] <= coverage <= t["ridge_coverage_max"]

    def _frequency_ok(self, frequency: float) -> bool:
        t = self.thresholds
        return t["ridge_frequency_min"] <= frequency <= t["ridge_frequency_max"]

    def failing_checks(self, metrics: QualityMetrics) -> List[str]:
        """Labels of every check the metrics do not meet."""
        t = self.thresholds
        failing = []

        if metrics.contrast < t["contrast"]:
            failing.append("insufficient contrast")
        if metrics.clarity < t["clarity"]:
            failing.append("blurry ridges")
        if not self._coverage_ok(metrics.ridge_coverage):
            failing.append("poor ridge coverage")
        if not self._frequency_ok(metrics.ridge_frequency):
            failing.append("ridge flow irregularities")
        if metrics.signal_to_noise < t["signal_to_noise"]:
            failing.append("noisy background")

        return failing

    @timer
    def assess(self, buffer: PixelBuffer) -> QualityReport:
        """
        Measure a sample and decide whether it passes.

        Parameters
        ----------
        buffer : PixelBuffer
            Decoded fingerprint image.

        Returns
        -------
        QualityReport
            Metrics, failing check labels and the pass/fail decision.
        """
        metrics = self.measure(buffer)
        failing = self.failing_checks(metrics)
        passed = len(failing) <= self.max_failing_checks

        logger.info(
            "Fingerprint quality assessment completed",
            quality_score=metrics.quality_score,
            failing_checks=failing,
            passed=passed,
            image_size=(metrics.width, metrics.height),
        )

        return QualityReport(metrics=metrics, failing_checks=failing, passed=passed)

    def check(self, buffer: PixelBuffer) -> QualityReport:
        """
        Like :meth:`assess` but raise when the sample is rejected.

        Raises
        ------
        QualityError
            If more checks fail than tolerated.
        """
        report = self.assess(buffer)
        if not report.passed:
            raise QualityError(
                f"Fingerprint not identified ({', '.join(report.failing_checks)})",
                failing_checks=report.failing_checks,
                context={"quality_score": round(report.metrics.quality_score, 3)},
            )
        return report


# Convenience function for standalone use
def assess_fingerprint_quality(data: bytes) -> QualityReport:
    """
    Convenience function to assess encoded fingerprint image bytes.

    Raises
    ------
    ImageLoadError
        If the image cannot be decoded.
    """
    gate = FingerprintQualityGate()
    return gate.assess(load_pixel_buffer(data))
