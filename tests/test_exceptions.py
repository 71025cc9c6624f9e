"""Tests for error formatting and configuration helpers."""

from biomark import config
from biomark.exceptions import (
    BiomarkError,
    IdentityMismatchError,
    IntegrityMismatchError,
    QualityError,
    VerificationError,
)


def test_error_string_includes_code_and_context():
    error = BiomarkError("Something failed", context={"step": 2}, error_code="X_001")
    assert str(error) == "Something failed [Error Code: X_001] [Context: step=2]"
    assert error.to_dict() == {
        "error_type": "BiomarkError",
        "message": "Something failed",
        "error_code": "X_001",
        "context": {"step": 2},
    }


def test_verification_errors_carry_hashes():
    integrity = IntegrityMismatchError("abc", "def")
    identity = IdentityMismatchError("111", "222")

    assert isinstance(integrity, VerificationError)
    assert integrity.context == {"expected": "abc", "actual": "def"}
    assert integrity.error_code == "VERIFY_001"
    assert identity.error_code == "VERIFY_002"


def test_quality_error_context():
    error = QualityError("too few", detected=3, required=12)
    assert error.context == {"detected": 3, "required": 12}
    assert error.failing_checks == []


def test_configuration_summary():
    assert config.validate_configuration()
    summary = config.get_config_summary()
    assert set(summary) == {"output_path", "pipeline", "logging", "debug_mode"}
    assert summary["logging"]["level"] in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
