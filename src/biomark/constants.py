"""
Constants and configuration parameters for the BIOMARK system.

This module centralizes every algorithmic parameter of the pipeline. Values
that end up inside watermarks (field size, encoding weights, marker
characters) must not change, or previously secured documents stop verifying.
"""

from typing import Dict, Final

# =============================================================================
# Image Preprocessing
# =============================================================================

# ITU-R BT.601 luma weights for grayscale conversion
LUMA_WEIGHTS: Final[tuple] = (0.299, 0.587, 0.114)

# Contrast stretch around mid-gray
CONTRAST_PIVOT: Final[int] = 128
CONTRAST_GAIN: Final[float] = 1.5

# Median filter kernel size (pixels)
MEDIAN_KERNEL_SIZE: Final[int] = 3

# Binarization threshold; strictly brighter pixels become foreground
BINARIZATION_THRESHOLD: Final[int] = 128

# Upper bound on thinning passes
THINNING_MAX_ITERATIONS: Final[int] = 50

# Neighbour count bounds for removing a pixel during thinning
THINNING_MIN_NEIGHBORS: Final[int] = 2
THINNING_MAX_NEIGHBORS: Final[int] = 6

# =============================================================================
# Minutiae Extraction
# =============================================================================

MIN_MINUTIAE: Final[int] = 12
MAX_MINUTIAE: Final[int] = 80

# Minimum Euclidean distance (pixels) between two kept minutiae
MIN_MINUTIA_DISTANCE: Final[float] = 5.0

# Neighbour counts that classify a skeleton pixel
ENDING_NEIGHBOR_COUNT: Final[int] = 1
BIFURCATION_NEIGHBOR_COUNT: Final[int] = 3

# =============================================================================
# Fuzzy Vault
# =============================================================================

# Prime field size, GF(251)
FIELD_PRIME: Final[int] = 251

# Number of secret bytes (polynomial degree = SECRET_LENGTH - 1)
SECRET_LENGTH: Final[int] = 4

# Minimum number of points in a vault; chaff pads up to this size
VAULT_SIZE: Final[int] = 5

# Minutia -> field element encoding weights
MINUTIA_X_WEIGHT: Final[int] = 1000
MINUTIA_Y_WEIGHT: Final[int] = 10

# =============================================================================
# Watermark Encoding
# =============================================================================

ZERO_BIT_MARKER: Final[str] = "\u200b"  # ZERO WIDTH SPACE
ONE_BIT_MARKER: Final[str] = "\u200c"  # ZERO WIDTH NON-JOINER
BYTE_DELIMITER: Final[str] = "\u200d"  # ZERO WIDTH JOINER

WATERMARK_MARKERS: Final[frozenset] = frozenset(
    (ZERO_BIT_MARKER, ONE_BIT_MARKER, BYTE_DELIMITER)
)

BITS_PER_CHAR: Final[int] = 8

# Compact field names used inside the embedded record
COMPACT_FIELD_NAMES: Final[Dict[str, str]] = {
    "identity_hash": "f",
    "vault_secret": "s",
    "timestamp": "t",
    "content_hash": "c",
}

# =============================================================================
# Payload Distribution
# =============================================================================

# Payload characters carried per slot before another slot is requested
PAYLOAD_CHARS_PER_SLOT: Final[int] = 32

# Maximum share of candidate slots that may carry payload
MAX_SLOT_FRACTION: Final[float] = 0.3

# Minimum chunk size appended to a slot
MIN_CHUNK_SIZE: Final[int] = 8

# =============================================================================
# Fingerprint Quality Gate
# =============================================================================

QUALITY_THRESHOLDS: Final[Dict[str, float]] = {
    "contrast": 20.0,
    "clarity": 30.0,
    "ridge_coverage_min": 0.12,
    "ridge_coverage_max": 0.9,
    "ridge_frequency_min": 2.0,
    "ridge_frequency_max": 60.0,
    "signal_to_noise": 0.75,
}

# Gray level below which a pixel counts as ridge ink
RIDGE_INK_THRESHOLD: Final[int] = 140

# Cap applied to normalized metrics in the composite quality score
QUALITY_SCORE_CAP: Final[float] = 1.4

MAX_ALLOWED_FAILING_CHECKS: Final[int] = 1

# =============================================================================
# Documents
# =============================================================================

DOCX_MIME: Final[str] = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)
MSWORD_MIME: Final[str] = "application/msword"
TEXT_MIME: Final[str] = "text/plain"

DOCX_EXTENSIONS: Final[tuple] = (".docx", ".doc")
LEGACY_DOC_EXTENSION: Final[str] = ".doc"

WORD_NAMESPACE: Final[str] = (
    "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
)
DOCX_MAIN_PART: Final[str] = "word/document.xml"

# Secured artifact file name prefix
DOWNLOAD_PREFIX: Final[str] = "encrypted_"

# US Letter page and one-inch margins, in twentieths of a point
PAGE_WIDTH_TWIPS: Final[int] = 12240
PAGE_HEIGHT_TWIPS: Final[int] = 15840
PAGE_MARGIN_TWIPS: Final[int] = 1440

# =============================================================================
# Hashing
# =============================================================================

# Unicode space separators, line terminators and the byte order mark; used
# for tokenizing text and normalizing content before hashing
WHITESPACE_CLASS: Final[str] = (
    "[\t\n\u000b\u000c\r \u00a0\u1680\u2000-\u200a"
    "\u2028\u2029\u202f\u205f\u3000\ufeff]"
)
