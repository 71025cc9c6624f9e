"""
Utility functions and decorators for the BIOMARK system.

This module provides the timing decorator, logging setup and the hashing
helpers shared by the encryption and verification pipelines.

The identity and content hashes are a 32-bit rolling checksum
(``h = 31 * h + c`` wrapped to a signed 32-bit integer). It detects
accidental edits and casual tampering but it is not a cryptographic digest:
collisions are easy to construct and occur by chance with probability around
2**-32 per comparison. It is kept because existing watermarks embed it.
"""

import functools
import logging
import math
import re
import sys
import time
from decimal import Decimal
from typing import Any, Callable, Iterable, TypeVar, Union

import structlog

from .constants import WHITESPACE_CLASS

# Initialize structured logger
logger = structlog.get_logger(__name__)

# Type variable for generic decorators
F = TypeVar("F", bound=Callable[..., Any])

_WHITESPACE_RUN = re.compile(f"{WHITESPACE_CLASS}+")
_LEADING_WHITESPACE = re.compile(f"^{WHITESPACE_CLASS}+")
_TRAILING_WHITESPACE = re.compile(f"{WHITESPACE_CLASS}+$")

_INT32_MASK = 0xFFFFFFFF
_INT32_SIGN = 0x80000000


def timer(func: F) -> F:
    """
    Decorator to measure and log function execution time.

    Parameters
    ----------
    func : Callable
        Function to be timed.

    Returns
    -------
    Callable
        Wrapped function with timing capability.

    Examples
    --------
    >>> @timer
    ... def slow_function():
    ...     time.sleep(1)
    ...     return "done"
    >>> result = slow_function()  # Logs execution time
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()

        try:
            result = func(*args, **kwargs)
            execution_time = (time.perf_counter() - start_time) * 1000

            logger.debug(
                "Function execution completed",
                function_name=func.__name__,
                module=func.__module__,
                execution_time_ms=execution_time,
                success=True,
            )

            return result

        except Exception as e:
            execution_time = (time.perf_counter() - start_time) * 1000

            logger.error(
                "Function execution failed",
                function_name=func.__name__,
                module=func.__module__,
                execution_time_ms=execution_time,
                error=str(e),
                error_type=type(e).__name__,
                success=False,
            )

            raise

    return wrapper


def configure_logging(level: str = "INFO") -> None:
    """
    Configure structlog to drop events below ``level`` and log to stderr.

    Parameters
    ----------
    level : str, default="INFO"
        One of DEBUG, INFO, WARNING, ERROR, CRITICAL.
    """
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Perform safe division with default value for zero denominator.

    Examples
    --------
    >>> safe_divide(10, 2)
    5.0
    >>> safe_divide(10, 0)
    0.0
    """
    if denominator == 0:
        return default
    return numerator / denominator


def utf16_code_units(text: str) -> Iterable[int]:
    """Yield the UTF-16 code units of ``text`` (surrogate pairs for astral chars)."""
    encoded = text.encode("utf-16-le", errors="surrogatepass")
    for index in range(0, len(encoded), 2):
        yield encoded[index] | (encoded[index + 1] << 8)


def rolling_hash(text: str) -> str:
    """
    32-bit rolling hash of ``text`` as lowercase hex.

    Each UTF-16 code unit ``c`` updates ``h = (h << 5) - h + c``, wrapped to a
    signed 32-bit integer; the result is ``abs(h)`` in hex. The minimum
    signed value maps to ``"80000000"``.

    Examples
    --------
    >>> rolling_hash("abc")
    '17862'
    >>> rolling_hash("")
    '0'
    """
    value = 0
    for unit in utf16_code_units(text):
        value = ((value << 5) - value + unit) & _INT32_MASK

    if value & _INT32_SIGN:
        value -= 1 << 32

    return format(abs(value), "x")


def format_number(value: Union[int, float]) -> str:
    """
    Render a number the way it appears inside hashed minutiae tuples.

    Integral values carry no fractional part (``45.0`` renders as ``"45"``),
    other values use the shortest round-tripping decimal form, and exponent
    notation only appears outside ``[1e-7, 1e21)``.
    """
    if isinstance(value, int):
        return str(value)

    if math.isnan(value):
        return "NaN"

    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"

    if value == 0:
        return "0"

    text = repr(value)

    if value.is_integer() and abs(value) < 1e21:
        if abs(value) < 2**53:
            return str(int(value))
        return format(Decimal(text), "f")

    if "e" not in text:
        return text

    mantissa, exponent_text = text.split("e")
    exponent = int(exponent_text)
    if -7 < exponent < 21:
        return format(Decimal(text), "f")

    sign = "+" if exponent > 0 else "-"
    return f"{mantissa}e{sign}{abs(exponent)}"


def normalize_whitespace(text: str) -> str:
    """Trim ``text`` and collapse every whitespace run to a single space."""
    trimmed = _TRAILING_WHITESPACE.sub("", _LEADING_WHITESPACE.sub("", text))
    return _WHITESPACE_RUN.sub(" ", trimmed)


def hash_minutiae(minutiae: Iterable[Any]) -> str:
    """
    Identity hash of a minutiae set.

    Tuples ``x,y,angle,type`` are joined with ``|`` in extraction order and
    fed to :func:`rolling_hash`.
    """
    data = "|".join(
        f"{m.x},{m.y},{format_number(m.angle)},{m.type.value}" for m in minutiae
    )
    return rolling_hash(data)


def hash_content(content: str) -> str:
    """Content hash of visible text after whitespace normalization."""
    return rolling_hash(normalize_whitespace(content))


def split_whitespace_tokens(text: str) -> list:
    """
    Split ``text`` into alternating word and whitespace tokens.

    Separators are kept so that ``"".join(tokens) == text``; a leading
    separator produces an empty first token.
    """
    return re.split(f"({WHITESPACE_CLASS}+)", text)


def is_whitespace_token(token: str) -> bool:
    return bool(token) and _WHITESPACE_RUN.fullmatch(token) is not None
