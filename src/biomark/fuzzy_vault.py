"""
Fuzzy Vault generation and unlocking for the BIOMARK system.

A random secret is used as the coefficient vector of a polynomial over
GF(251). Each minutia is mapped to a field element ``x`` and stored as the
genuine point ``(x, P(x))``; chaff points that lie off the polynomial pad
the vault and everything is shuffled. Anyone presenting enough minutiae that
map onto genuine x values can interpolate the polynomial back and recover
the secret; chaff cannot be told apart from genuine points without them.

Randomness comes from an injected ``random.Random`` compatible handle. The
default is ``secrets.SystemRandom()``; tests pass a seeded ``random.Random``.
"""

import math
import random
import secrets
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from . import finite_field
from .constants import (
    FIELD_PRIME,
    MINUTIA_X_WEIGHT,
    MINUTIA_Y_WEIGHT,
    SECRET_LENGTH,
    VAULT_SIZE,
)
from .data_models import FuzzyVault, MinutiaPoint, MinutiaType
from .utils import timer

# Initialize structured logger
logger = structlog.get_logger(__name__)


def encode_minutia(minutia: MinutiaPoint) -> int:
    """
    Map a minutia to a non-zero field element.

    ``(x * 1000 + y * 10 + floor(angle) + type_bit) mod 251``, where the type
    bit is 1 for bifurcations; a result of 0 becomes 1.

    Examples
    --------
    >>> encode_minutia(MinutiaPoint(x=1, y=0, angle=0.0, type=MinutiaType.ENDING))
    247
    """
    type_bit = 1 if minutia.type is MinutiaType.BIFURCATION else 0
    value = (
        minutia.x * MINUTIA_X_WEIGHT
        + minutia.y * MINUTIA_Y_WEIGHT
        + math.floor(minutia.angle)
        + type_bit
    ) % FIELD_PRIME
    return max(1, value)


class FuzzyVaultGenerator:
    """
    Generate and unlock Fuzzy Vaults over GF(251).

    Parameters
    ----------
    rng : Optional[random.Random], default=None
        Source of randomness for secrets, chaff and shuffling. Defaults to
        ``secrets.SystemRandom()``.
    secret_length : int, default=SECRET_LENGTH
        Number of secret bytes; the polynomial has degree ``secret_length - 1``.
    vault_size : int, default=VAULT_SIZE
        Minimum number of points in a vault. Chaff is added until it is reached.

    Examples
    --------
    >>> generator = FuzzyVaultGenerator(rng=random.Random(7))
    >>> vault = generator.generate(minutiae)
    >>> generator.unlock(vault, minutiae) == vault.secret_hex
    True
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        secret_length: int = SECRET_LENGTH,
        vault_size: int = VAULT_SIZE,
    ) -> None:
        if secret_length < 1:
            raise ValueError(f"secret_length must be at least 1, got {secret_length}")

        if vault_size > FIELD_PRIME:
            raise ValueError(
                f"vault_size cannot exceed the field size {FIELD_PRIME}, got {vault_size}"
            )

        self.rng = rng if rng is not None else secrets.SystemRandom()
        self.secret_length = secret_length
        self.vault_size = vault_size

        logger.info(
            "FuzzyVaultGenerator initialized",
            secret_length=secret_length,
            vault_size=vault_size,
            field_prime=FIELD_PRIME,
        )

    def generate_secret(self) -> bytes:
        """Random secret whose bytes are valid field elements."""
        return bytes(self.rng.randrange(FIELD_PRIME) for _ in range(self.secret_length))

    def _draw_chaff(
        self, coefficients: Sequence[int], used_x: set
    ) -> Tuple[int, int]:
        available_x = [x for x in range(FIELD_PRIME) if x not in used_x]
        x = available_x[self.rng.randrange(len(available_x))]

        genuine_y = finite_field.evaluate(coefficients, x)
        y = self.rng.randrange(FIELD_PRIME - 1)
        if y >= genuine_y:
            y += 1

        return x, y

    def _shuffle(self, points: List[Tuple[int, int]]) -> None:
        for i in range(len(points) - 1, 0, -1):
            j = self.rng.randrange(i + 1)
            points[i], points[j] = points[j], points[i]

    @timer
    def generate(self, minutiae: Sequence[MinutiaPoint]) -> FuzzyVault:
        """
        Lock a fresh random secret with the given minutiae.

        Parameters
        ----------
        minutiae : Sequence[MinutiaPoint]
            Normalized minutiae of the owner. All of them become genuine
            points, even beyond ``vault_size``.

        Returns
        -------
        FuzzyVault
            Shuffled genuine and chaff points plus the secret.
        """
        secret = self.generate_secret()
        coefficients = tuple(byte % FIELD_PRIME for byte in secret)

        points: List[Tuple[int, int]] = []
        used_x = set()
        for minutia in minutiae:
            x = encode_minutia(minutia)
            points.append((x, finite_field.evaluate(coefficients, x)))
            used_x.add(x)

        genuine_count = len(points)
        while len(points) < self.vault_size:
            x, y = self._draw_chaff(coefficients, used_x)
            points.append((x, y))
            used_x.add(x)

        self._shuffle(points)

        logger.info(
            "Fuzzy vault generated",
            genuine_points=genuine_count,
            chaff_points=len(points) - genuine_count,
            distinct_x=len(used_x),
            degree=len(coefficients) - 1,
        )

        return FuzzyVault(
            points=tuple(points),
            secret=secret,
            polynomial_coefficients=coefficients,
        )

    def unlock(
        self, vault: FuzzyVault, minutiae: Sequence[MinutiaPoint]
    ) -> Optional[str]:
        """
        Recover the hex secret from a vault with a query minutiae set.

        Parameters
        ----------
        vault : FuzzyVault
            Vault to unlock. Its points and its coefficient count are used;
            the stored secret is not.
        minutiae : Sequence[MinutiaPoint]
            Query minutiae.

        Returns
        -------
        Optional[str]
            The secret as hex, or ``None`` when fewer points matched than
            the vault has coefficients or the matched points do not lie on
            one polynomial of the vault's degree.
        """
        vault_points: Dict[int, set] = {}
        for x, y in vault.points:
            vault_points.setdefault(x, set()).add(y)

        matched: Dict[int, int] = {}
        for minutia in minutiae:
            x = encode_minutia(minutia)
            candidates = vault_points.get(x)
            if not candidates:
                continue
            if len(candidates) > 1:
                logger.warning("Vault holds conflicting points for one x", x=x)
                return None
            matched[x] = next(iter(candidates))

        degree_bound = len(vault.polynomial_coefficients)
        if not degree_bound or len(matched) < degree_bound:
            logger.info(
                "Vault unlock failed: insufficient matching points",
                matched=len(matched),
                required=degree_bound,
            )
            return None

        try:
            coefficients = finite_field.lagrange_interpolate(sorted(matched.items()))
        except ZeroDivisionError:
            logger.warning("Vault unlock failed: degenerate interpolation")
            return None

        if any(coefficients[degree_bound:]):
            logger.info(
                "Vault unlock failed: matched points are inconsistent",
                matched=len(matched),
            )
            return None

        logger.info("Vault unlocked", matched=len(matched))
        return bytes(coefficients[:degree_bound]).hex()


# Convenience functions for simple usage
def generate_vault(minutiae: Sequence[MinutiaPoint]) -> FuzzyVault:
    """Generate a vault with default settings and a CSPRNG."""
    generator = FuzzyVaultGenerator()
    return generator.generate(minutiae)


def unlock_vault(vault: FuzzyVault, minutiae: Sequence[MinutiaPoint]) -> Optional[str]:
    """Unlock a vault generated with default settings."""
    generator = FuzzyVaultGenerator()
    return generator.unlock(vault, minutiae)
