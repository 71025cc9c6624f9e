"""Tests for the command-line interface."""

import json

import pytest

from biomark import config
from biomark.cli import EXIT_ERROR, EXIT_NOT_VERIFIED, EXIT_OK, BiomarkCLI


@pytest.fixture
def cli():
    return BiomarkCLI()


@pytest.fixture
def workspace(tmp_path, owner_fingerprint_png, other_fingerprint_png, sample_text):
    (tmp_path / "owner.png").write_bytes(owner_fingerprint_png)
    (tmp_path / "other.png").write_bytes(other_fingerprint_png)
    (tmp_path / "report.txt").write_text(sample_text, encoding="utf-8")
    return tmp_path


def encrypt(cli, workspace):
    return cli.run_from_args(
        [
            "encrypt",
            "--fingerprint", str(workspace / "owner.png"),
            "--document", str(workspace / "report.txt"),
            "--output-dir", str(workspace / "out"),
            "--no-quality-gate",
        ]
    )


def test_encrypt_writes_secured_document(cli, workspace, capsys):
    assert encrypt(cli, workspace) == EXIT_OK
    assert (workspace / "out" / "encrypted_report.txt").is_file()
    assert "Secured document" in capsys.readouterr().out


def test_verify_owner_and_stranger(cli, workspace, capsys):
    encrypt(cli, workspace)
    secured = str(workspace / "out" / "encrypted_report.txt")

    assert cli.run_from_args(
        ["verify", "--fingerprint", str(workspace / "owner.png"), "--document", secured, "--no-quality-gate"]
    ) == EXIT_OK
    assert cli.run_from_args(
        ["verify", "--fingerprint", str(workspace / "other.png"), "--document", secured, "--no-quality-gate"]
    ) == EXIT_NOT_VERIFIED
    assert "IdentityMismatchError" in capsys.readouterr().out


def test_inspect(cli, workspace, capsys):
    encrypt(cli, workspace)
    capsys.readouterr()

    secured = str(workspace / "out" / "encrypted_report.txt")
    assert cli.run_from_args(["inspect", "--document", secured]) == EXIT_OK
    record = json.loads(capsys.readouterr().out)
    assert set(record) == {"identityHash", "vaultSecret", "timestamp", "contentHash"}

    assert cli.run_from_args(["inspect", "--document", str(workspace / "report.txt")]) == EXIT_NOT_VERIFIED


def test_quality(cli, tmp_path, sinusoid_png, uniform_png, capsys):
    (tmp_path / "ridges.png").write_bytes(sinusoid_png)
    (tmp_path / "flat.png").write_bytes(uniform_png)

    assert cli.run_from_args(["quality", "--fingerprint", str(tmp_path / "ridges.png")]) == EXIT_OK
    assert json.loads(capsys.readouterr().out)["passed"] is True
    assert cli.run_from_args(["quality", "--fingerprint", str(tmp_path / "flat.png")]) == EXIT_NOT_VERIFIED


def test_missing_file_is_an_error(cli, tmp_path, capsys):
    code = cli.run_from_args(
        ["verify", "--fingerprint", str(tmp_path / "nope.png"), "--document", str(tmp_path / "nope.txt")]
    )
    assert code == EXIT_ERROR
    assert "not found" in capsys.readouterr().err


@pytest.mark.parametrize(
    "debug_mode, argv, expected",
    [
        (False, ["inspect", "--document", "x.txt"], "WARNING"),
        (True, ["inspect", "--document", "x.txt"], "DEBUG"),
        (True, ["--log-level", "ERROR", "inspect", "--document", "x.txt"], "ERROR"),
    ],
)
def test_log_level_resolution(cli, monkeypatch, debug_mode, argv, expected):
    monkeypatch.setattr(config, "DEBUG_MODE", debug_mode)
    monkeypatch.setattr(config, "LOG_LEVEL", "WARNING")

    args = cli.parser.parse_args(argv)
    assert cli._resolve_log_level(args) == expected
