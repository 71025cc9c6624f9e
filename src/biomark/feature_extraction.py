"""
Fingerprint minutiae extraction for the BIOMARK system.

This module decodes fingerprint images and turns them into a bounded, well
spread set of minutiae (ridge endings and bifurcations). The pipeline is a
chain of small stages, each exposed as a module-level function so it can be
inspected and tested on its own:

    grayscale -> contrast stretch -> median filter -> binarize
    -> thinning -> classification -> spatial normalization

Every stage returns a new array; the decoded ``PixelBuffer`` is never
modified. The extraction is deterministic: the same image always yields the
same minutiae in the same order, which the identity hash relies on.
"""

import math
from typing import List, Optional

import cv2
import numpy as np
import structlog
from scipy import ndimage

from .constants import (
    BIFURCATION_NEIGHBOR_COUNT,
    BINARIZATION_THRESHOLD,
    CONTRAST_GAIN,
    CONTRAST_PIVOT,
    ENDING_NEIGHBOR_COUNT,
    MAX_MINUTIAE,
    MEDIAN_KERNEL_SIZE,
    MIN_MINUTIA_DISTANCE,
    MIN_MINUTIAE,
    THINNING_MAX_ITERATIONS,
    THINNING_MAX_NEIGHBORS,
    THINNING_MIN_NEIGHBORS,
)
from .data_models import MinutiaPoint, MinutiaType, PixelBuffer
from .exceptions import ImageLoadError, QualityError
from .utils import timer

# Initialize structured logger
logger = structlog.get_logger(__name__)

# 8-neighbourhood kernels; the centre pixel never contributes
_NEIGHBOR_KERNEL = np.array([[1, 1, 1], [1, 0, 1], [1, 1, 1]], dtype=np.int32)
_DX_KERNEL = np.array([[-1, 0, 1], [-1, 0, 1], [-1, 0, 1]], dtype=np.int32)
_DY_KERNEL = np.array([[-1, -1, -1], [0, 0, 0], [1, 1, 1]], dtype=np.int32)


def load_pixel_buffer(data: bytes, source: Optional[str] = None) -> PixelBuffer:
    """
    Decode encoded image bytes into a ``PixelBuffer``.

    Parameters
    ----------
    data : bytes
        PNG, JPEG, BMP, TIFF or any other format OpenCV can decode.
    source : Optional[str], default=None
        Name of the originating file, used in error context only.

    Returns
    -------
    PixelBuffer
        8-bit buffer in RGB(A) channel order, or a single gray channel.

    Raises
    ------
    ImageLoadError
        If the bytes are empty or cannot be decoded.

    Examples
    --------
    >>> with open("thumb.png", "rb") as handle:
    ...     buffer = load_pixel_buffer(handle.read())
    >>> buffer.width, buffer.height
    (256, 288)
    """
    if not data:
        raise ImageLoadError("Image data is empty", source=source)

    try:
        encoded = np.frombuffer(data, dtype=np.uint8)
        image = cv2.imdecode(encoded, cv2.IMREAD_UNCHANGED)
    except cv2.error as e:
        raise ImageLoadError(f"OpenCV failed to decode image: {str(e)}", source=source)

    if image is None or image.size == 0:
        raise ImageLoadError(
            "Failed to decode image. File may be corrupted or invalid format",
            source=source,
        )

    if image.dtype == np.uint16:
        image = (image >> 8).astype(np.uint8)
    elif image.dtype != np.uint8:
        raise ImageLoadError(
            f"Unsupported image sample type: {image.dtype}", source=source
        )

    if image.ndim == 2:
        image = image[:, :, np.newaxis]
    elif image.shape[2] == 3:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    elif image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    else:
        raise ImageLoadError(
            f"Unsupported channel count: {image.shape[2]}", source=source
        )

    height, width = image.shape[:2]
    logger.debug(
        "Image decoded",
        source=source,
        width=width,
        height=height,
        channels=image.shape[2],
    )

    return PixelBuffer(width=width, height=height, channels=np.ascontiguousarray(image))


def to_grayscale(buffer: PixelBuffer) -> np.ndarray:
    """Luma per pixel rounded half up, as ``uint8``."""
    luminance = buffer.luminance()
    return np.clip(np.floor(luminance + 0.5), 0, 255).astype(np.uint8)


def enhance_contrast(gray: np.ndarray) -> np.ndarray:
    """
    Stretch contrast around mid-gray.

    ``v' = clamp((v - 128) * 1.5 + 128)`` with ties rounded to even.
    """
    stretched = (gray.astype(np.float64) - CONTRAST_PIVOT) * CONTRAST_GAIN + CONTRAST_PIVOT
    return np.clip(np.rint(stretched), 0, 255).astype(np.uint8)


def reduce_noise(image: np.ndarray) -> np.ndarray:
    """
    3x3 median filter over interior pixels.

    The one pixel border keeps its input value. Images smaller than the
    kernel are returned unchanged (as a copy).
    """
    height, width = image.shape
    if height < MEDIAN_KERNEL_SIZE or width < MEDIAN_KERNEL_SIZE:
        return image.copy()

    filtered = cv2.medianBlur(np.ascontiguousarray(image), MEDIAN_KERNEL_SIZE)
    filtered[0, :] = image[0, :]
    filtered[-1, :] = image[-1, :]
    filtered[:, 0] = image[:, 0]
    filtered[:, -1] = image[:, -1]
    return filtered


def binarize(image: np.ndarray, threshold: int = BINARIZATION_THRESHOLD) -> np.ndarray:
    """Foreground (1) where the pixel is strictly brighter than ``threshold``."""
    return (image > threshold).astype(np.uint8)


def skeletonize(
    binary: np.ndarray, max_iterations: int = THINNING_MAX_ITERATIONS
) -> np.ndarray:
    """
    Thin foreground ridges to one pixel width.

    Interior foreground pixels are visited in row-major order and removed in
    place, so later pixels in the same pass already see earlier removals. A
    pixel is removed when it has between 2 and 6 foreground neighbours and
    exactly one background-to-foreground transition walking its neighbours
    cyclically N, NE, E, SE, S, SW, W, NW. Passes repeat until nothing
    changes or ``max_iterations`` is reached.

    Parameters
    ----------
    binary : np.ndarray
        2-D array of 0/1 values.
    max_iterations : int, default=THINNING_MAX_ITERATIONS
        Upper bound on the number of passes.

    Returns
    -------
    np.ndarray
        Thinned 0/1 ``uint8`` array of the same shape.
    """
    height, width = binary.shape
    if height < 3 or width < 3:
        return binary.astype(np.uint8)

    pixels = bytearray((binary != 0).astype(np.uint8).tobytes())
    offsets = (-width, -width + 1, 1, width + 1, width, width - 1, -1, -width - 1)

    passes = 0
    for passes in range(1, max_iterations + 1):
        grid = np.frombuffer(bytes(pixels), dtype=np.uint8).reshape(height, width)
        interior = np.zeros((height, width), dtype=bool)
        interior[1:-1, 1:-1] = grid[1:-1, 1:-1] != 0

        changed = False
        for index in np.flatnonzero(interior).tolist():
            ring = [pixels[index + offset] for offset in offsets]
            neighbors = sum(ring)
            if neighbors < THINNING_MIN_NEIGHBORS or neighbors > THINNING_MAX_NEIGHBORS:
                continue

            transitions = sum(1 for i in range(8) if not ring[i - 1] and ring[i])
            if transitions == 1:
                pixels[index] = 0
                changed = True

        if not changed:
            break

    logger.debug("Thinning completed", passes=passes, width=width, height=height)

    return np.frombuffer(bytes(pixels), dtype=np.uint8).reshape(height, width).copy()


def classify_minutiae(skeleton: np.ndarray) -> List[MinutiaPoint]:
    """
    Find ridge endings and bifurcations on a thinned image.

    Only pixels at least one pixel away from the border are considered. A
    foreground pixel with exactly one foreground neighbour is an ending,
    with exactly three a bifurcation. The angle points along the summed
    neighbour offsets. Candidates come out in row-major order.
    """
    foreground = (skeleton != 0).astype(np.int32)
    height, width = foreground.shape
    if height < 3 or width < 3:
        return []

    neighbor_counts = ndimage.correlate(foreground, _NEIGHBOR_KERNEL, mode="constant", cval=0)
    sum_dx = ndimage.correlate(foreground, _DX_KERNEL, mode="constant", cval=0)
    sum_dy = ndimage.correlate(foreground, _DY_KERNEL, mode="constant", cval=0)

    candidates = np.zeros((height, width), dtype=bool)
    candidates[1:-1, 1:-1] = True
    candidates &= foreground == 1
    candidates &= (neighbor_counts == ENDING_NEIGHBOR_COUNT) | (
        neighbor_counts == BIFURCATION_NEIGHBOR_COUNT
    )

    minutiae = []
    for y, x in zip(*np.nonzero(candidates)):
        minutia_type = (
            MinutiaType.ENDING
            if neighbor_counts[y, x] == ENDING_NEIGHBOR_COUNT
            else MinutiaType.BIFURCATION
        )
        angle = math.atan2(int(sum_dy[y, x]), int(sum_dx[y, x])) * (180 / math.pi)
        minutiae.append(MinutiaPoint(x=int(x), y=int(y), angle=angle, type=minutia_type))

    return minutiae


def normalize_minutiae(
    candidates: List[MinutiaPoint],
    min_distance: float = MIN_MINUTIA_DISTANCE,
    max_count: int = MAX_MINUTIAE,
) -> List[MinutiaPoint]:
    """
    Greedy spatial filter over candidates in their given order.

    A candidate is kept when it lies at least ``min_distance`` pixels from
    every point kept so far; selection stops after ``max_count`` points.
    """
    kept: List[MinutiaPoint] = []
    for candidate in candidates:
        if len(kept) >= max_count:
            break
        if all(
            math.hypot(candidate.x - point.x, candidate.y - point.y) >= min_distance
            for point in kept
        ):
            kept.append(candidate)
    return kept


class MinutiaeExtractor:
    """
    Fingerprint image to minutiae pipeline.

    Parameters
    ----------
    min_minutiae : int, default=MIN_MINUTIAE
        Fewest normalized minutiae accepted from one sample.
    max_minutiae : int, default=MAX_MINUTIAE
        Most minutiae kept from one sample.
    min_distance : float, default=MIN_MINUTIA_DISTANCE
        Minimum distance in pixels between kept minutiae.

    Examples
    --------
    >>> extractor = MinutiaeExtractor()
    >>> minutiae = extractor.extract(load_pixel_buffer(png_bytes))
    >>> len(minutiae) >= 12
    True
    """

    def __init__(
        self,
        min_minutiae: int = MIN_MINUTIAE,
        max_minutiae: int = MAX_MINUTIAE,
        min_distance: float = MIN_MINUTIA_DISTANCE,
    ) -> None:
        if min_minutiae < 1 or max_minutiae < min_minutiae:
            raise ValueError(
                f"Invalid minutiae bounds: min={min_minutiae}, max={max_minutiae}"
            )

        self.min_minutiae = min_minutiae
        self.max_minutiae = max_minutiae
        self.min_distance = min_distance

        logger.info(
            "MinutiaeExtractor initialized",
            min_minutiae=min_minutiae,
            max_minutiae=max_minutiae,
            min_distance=min_distance,
        )

    def preprocess(self, buffer: PixelBuffer) -> np.ndarray:
        """Run every stage up to and including thinning."""
        gray = to_grayscale(buffer)
        enhanced = enhance_contrast(gray)
        filtered = reduce_noise(enhanced)
        return skeletonize(binarize(filtered))

    @timer
    def extract(self, buffer: PixelBuffer) -> List[MinutiaPoint]:
        """
        Extract normalized minutiae from a decoded image.

        Parameters
        ----------
        buffer : PixelBuffer
            Decoded fingerprint image.

        Returns
        -------
        List[MinutiaPoint]
            Between ``min_minutiae`` and ``max_minutiae`` points, pairwise at
            least ``min_distance`` apart, in scan order.

        Raises
        ------
        QualityError
            If fewer than ``min_minutiae`` points survive normalization.
        """
        logger.debug(
            "Starting minutiae extraction", width=buffer.width, height=buffer.height
        )

        skeleton = self.preprocess(buffer)
        candidates = classify_minutiae(skeleton)
        minutiae = normalize_minutiae(candidates, self.min_distance, self.max_minutiae)

        if len(minutiae) < self.min_minutiae:
            logger.warning(
                "Insufficient minutiae detected",
                candidates=len(candidates),
                detected=len(minutiae),
                required=self.min_minutiae,
            )
            raise QualityError(
                f"Insufficient minutiae detected: {len(minutiae)} < {self.min_minutiae}. "
                "Please provide a clearer fingerprint image",
                detected=len(minutiae),
                required=self.min_minutiae,
            )

        logger.info(
            "Minutiae extraction completed",
            candidates=len(candidates),
            minutiae=len(minutiae),
            endings=sum(1 for m in minutiae if m.type is MinutiaType.ENDING),
            bifurcations=sum(1 for m in minutiae if m.type is MinutiaType.BIFURCATION),
        )

        return minutiae

    def extract_from_bytes(
        self, data: bytes, source: Optional[str] = None
    ) -> List[MinutiaPoint]:
        """Decode ``data`` and extract its minutiae."""
        return self.extract(load_pixel_buffer(data, source=source))


# Convenience function for standalone use
def extract_minutiae(data: bytes) -> List[MinutiaPoint]:
    """
    Convenience function to extract minutiae from encoded image bytes.

    Raises
    ------
    ImageLoadError
        If the image cannot be decoded.
    QualityError
        If the image yields too few minutiae.
    """
    extractor = MinutiaeExtractor()
    return extractor.extract_from_bytes(data)
