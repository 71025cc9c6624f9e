"""
Configuration management for the BIOMARK command-line tool.

This module handles configuration loading from environment variables and
.env files. The core pipeline never reads it; only the CLI consults these
values to build a service and set up logging.
"""

import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

from .exceptions import ConfigurationError

# Load environment variables from .env file if it exists
load_dotenv()

# =============================================================================
# Output Configuration
# =============================================================================
# Directory secured artifacts are written to when --output-dir is not given
OUTPUT_PATH: Path = Path(os.getenv("OUTPUT_PATH", str(Path.cwd())))

# =============================================================================
# Logging Configuration
# =============================================================================
# Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# =============================================================================
# Pipeline Configuration
# =============================================================================
# Reject fingerprint samples that fail the statistical quality gate
ENFORCE_QUALITY_GATE: bool = (
    os.getenv("ENFORCE_QUALITY_GATE", "true").lower() == "true"
)

# Seed for the pipeline RNG; leave unset in production so a CSPRNG is used
RANDOM_SEED: Optional[int] = None
if seed_str := os.getenv("RANDOM_SEED"):
    try:
        RANDOM_SEED = int(seed_str)
    except ValueError:
        raise ConfigurationError(
            "RANDOM_SEED must be an integer",
            config_key="RANDOM_SEED",
            config_value=seed_str,
        )

# =============================================================================
# Development and Debugging Configuration
# =============================================================================
# Log at DEBUG level unless --log-level is given explicitly
DEBUG_MODE: bool = os.getenv("DEBUG_MODE", "false").lower() == "true"


# =============================================================================
# Configuration Validation
# =============================================================================
def validate_configuration() -> bool:
    """
    Validate the current configuration settings.

    Returns
    -------
    bool
        True if configuration is valid.

    Raises
    ------
    ConfigurationError
        If any configuration parameter is invalid.
    """
    errors = []

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if LOG_LEVEL not in valid_log_levels:
        errors.append(f"LOG_LEVEL must be one of {valid_log_levels}")

    if OUTPUT_PATH.exists() and not OUTPUT_PATH.is_dir():
        errors.append(f"OUTPUT_PATH is not a directory: {OUTPUT_PATH}")

    if RANDOM_SEED is not None and RANDOM_SEED < 0:
        errors.append("RANDOM_SEED cannot be negative")

    if errors:
        raise ConfigurationError(
            "Configuration validation failed:\n"
            + "\n".join(f"- {error}" for error in errors)
        )

    return True


def get_config_summary() -> dict:
    """
    Get a summary of the current configuration.

    Returns
    -------
    dict
        Dictionary containing key configuration parameters.
    """
    return {
        "output_path": str(OUTPUT_PATH),
        "pipeline": {
            "enforce_quality_gate": ENFORCE_QUALITY_GATE,
            "seeded": RANDOM_SEED is not None,
        },
        "logging": {
            "level": LOG_LEVEL,
        },
        "debug_mode": DEBUG_MODE,
    }
