"""
Scatter an invisible payload through plain text.

The payload is split into a few chunks that are appended directly after
randomly chosen words, so no single location in the document holds the
whole watermark. Because every chunk is made of zero-width markers and
chunks keep their order, concatenating the markers of the result in
document order yields the original payload again.

The slot rules here are shared with the DOCX distributor.
"""

import math
import random
import secrets
from typing import List, Optional, Sequence, Tuple

import structlog

from .constants import MAX_SLOT_FRACTION, MIN_CHUNK_SIZE, PAYLOAD_CHARS_PER_SLOT
from .utils import is_whitespace_token, split_whitespace_tokens

# Initialize structured logger
logger = structlog.get_logger(__name__)


def determine_slot_count(candidate_count: int, payload_length: int) -> int:
    """
    Number of candidate slots that receive a chunk.

    Enough slots to carry the payload in 32 character pieces, but never more
    than 30 percent of the candidates (and always at least one).

    Examples
    --------
    >>> determine_slot_count(100, 500)
    16
    >>> determine_slot_count(10, 500)
    3
    >>> determine_slot_count(1, 500)
    1
    """
    max_slots = max(1, math.floor(candidate_count * MAX_SLOT_FRACTION))
    min_slots = max(1, math.ceil(payload_length / PAYLOAD_CHARS_PER_SLOT))
    return min(candidate_count, max(1, min(max_slots, min_slots)))


def select_slots(
    candidate_count: int, slot_count: int, rng: Optional[random.Random] = None
) -> List[int]:
    """Pick ``slot_count`` distinct candidate positions uniformly, ascending."""
    if slot_count >= candidate_count:
        return list(range(candidate_count))

    rng = rng if rng is not None else secrets.SystemRandom()
    return sorted(rng.sample(range(candidate_count), slot_count))


def chunk_payload(payload: str, slot_count: int) -> List[str]:
    """
    Split ``payload`` into at most ``slot_count`` ordered chunks.

    Chunks hold ``max(8, ceil(len / slot_count))`` characters; whatever is
    left after the last slot is appended to the final chunk.
    """
    if not payload or slot_count < 1:
        return []

    chunk_size = max(MIN_CHUNK_SIZE, math.ceil(len(payload) / slot_count))
    chunks = []
    cursor = 0
    for _ in range(slot_count):
        if cursor >= len(payload):
            break
        chunk = payload[cursor : cursor + chunk_size]
        cursor += len(chunk)
        chunks.append(chunk)

    if cursor < len(payload):
        chunks[-1] += payload[cursor:]

    return chunks


def assign_chunks(
    candidate_count: int, payload: str, rng: Optional[random.Random] = None
) -> List[Tuple[int, str]]:
    """
    Plan where each payload chunk goes.

    Returns
    -------
    List[tuple]
        ``(candidate_index, chunk)`` pairs in ascending candidate order.
    """
    slot_count = determine_slot_count(candidate_count, len(payload))
    slots = select_slots(candidate_count, slot_count, rng)
    return list(zip(slots, chunk_payload(payload, len(slots))))


def distribute(text: str, payload: str, rng: Optional[random.Random] = None) -> str:
    """
    Append payload chunks after randomly selected words of ``text``.

    Parameters
    ----------
    text : str
        Visible carrier text.
    payload : str
        Invisible marker stream to embed.
    rng : Optional[random.Random], default=None
        Slot selection randomness; ``secrets.SystemRandom()`` when omitted.

    Returns
    -------
    str
        ``text`` with the payload interleaved. Text without any word gets
        the payload prepended; an empty payload leaves ``text`` unchanged.
    """
    if not payload:
        return text

    tokens = split_whitespace_tokens(text)
    word_indexes: Sequence[int] = [
        i for i, token in enumerate(tokens) if token and not is_whitespace_token(token)
    ]

    if not word_indexes:
        logger.debug("No word slots available, prepending payload", text_length=len(text))
        return payload + text

    plan = assign_chunks(len(word_indexes), payload, rng)
    for candidate, chunk in plan:
        tokens[word_indexes[candidate]] += chunk

    logger.debug(
        "Payload distributed",
        word_slots=len(word_indexes),
        slots_used=len(plan),
        payload_length=len(payload),
    )

    return "".join(tokens)
