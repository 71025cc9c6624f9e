import argparse
import json
import random
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from . import config
from .exceptions import BiomarkError
from .feature_extraction import load_pixel_buffer
from .quality_assessment import FingerprintQualityGate
from .service import BiometricWatermarkService, read_input_file
from .utils import configure_logging

# Initialize structured logger
logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_VERIFIED = 2
EXIT_INTERRUPTED = 130


class BiomarkCLI:
    """Main command-line interface for the BIOMARK system."""

    def __init__(self) -> None:
        self.parser = self._create_argument_parser()

    def _create_argument_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        parser = argparse.ArgumentParser(
            prog="biomark",
            description="BIOMARK - Fingerprint-bound invisible document watermarking",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "--log-level",
            choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            default=None,
            help="Logging level. Default: LOG_LEVEL from the environment.",
        )

        subparsers = parser.add_subparsers(dest="command", required=True)
        self._add_encrypt_command(subparsers)
        self._add_verify_command(subparsers)
        self._add_inspect_command(subparsers)
        self._add_quality_command(subparsers)

        return parser

    @staticmethod
    def _add_quality_gate_flag(command_parser: argparse.ArgumentParser) -> None:
        command_parser.add_argument(
            "--no-quality-gate",
            action="store_true",
            help="Skip the statistical fingerprint quality gate.",
        )

    def _add_encrypt_command(self, subparsers) -> None:
        """Add the 'encrypt' command and its arguments."""
        encrypt_parser = subparsers.add_parser(
            "encrypt", help="Watermark a TXT or DOCX document with a fingerprint."
        )
        encrypt_parser.add_argument("--fingerprint", required=True, type=Path)
        encrypt_parser.add_argument("--document", required=True, type=Path)
        encrypt_parser.add_argument(
            "--output-dir",
            type=Path,
            default=None,
            help="Directory for the secured document. Default: OUTPUT_PATH.",
        )
        self._add_quality_gate_flag(encrypt_parser)

    def _add_verify_command(self, subparsers) -> None:
        """Add the 'verify' command and its arguments."""
        verify_parser = subparsers.add_parser(
            "verify", help="Check a secured document against a fingerprint."
        )
        verify_parser.add_argument("--fingerprint", required=True, type=Path)
        verify_parser.add_argument("--document", required=True, type=Path)
        self._add_quality_gate_flag(verify_parser)

    def _add_inspect_command(self, subparsers) -> None:
        inspect_parser = subparsers.add_parser(
            "inspect", help="Print the watermark record embedded in a document."
        )
        inspect_parser.add_argument("--document", required=True, type=Path)

    def _add_quality_command(self, subparsers) -> None:
        quality_parser = subparsers.add_parser(
            "quality", help="Report fingerprint image quality metrics."
        )
        quality_parser.add_argument("--fingerprint", required=True, type=Path)

    def _resolve_log_level(self, args: argparse.Namespace) -> str:
        if args.log_level:
            return args.log_level
        return "DEBUG" if config.DEBUG_MODE else config.LOG_LEVEL

    def _build_service(self, args: argparse.Namespace) -> BiometricWatermarkService:
        rng = random.Random(config.RANDOM_SEED) if config.RANDOM_SEED is not None else None
        enforce = config.ENFORCE_QUALITY_GATE and not getattr(args, "no_quality_gate", False)
        return BiometricWatermarkService(enforce_quality_gate=enforce, rng=rng)

    def _execute_encrypt_command(self, args: argparse.Namespace) -> int:
        service = self._build_service(args)
        artifact = service.encrypt_file(args.fingerprint, args.document)

        output_dir = args.output_dir or config.OUTPUT_PATH
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / artifact.file_name
        output_path.write_bytes(artifact.data)

        logger.info("Secured document written", path=str(output_path))

        print(f"Secured document: {output_path}")
        print(f"  Format:          {artifact.format.value}")
        print(f"  Hidden chars:    {artifact.hidden_char_count}")
        print(f"  Identity hash:   {artifact.record.identity_hash}")
        print(f"  Content hash:    {artifact.record.content_hash}")
        return EXIT_OK

    def _execute_verify_command(self, args: argparse.Namespace) -> int:
        service = self._build_service(args)
        result = service.verify_file(args.fingerprint, args.document)

        if result.verified:
            print("VERIFIED: document is intact and belongs to this fingerprint")
            return EXIT_OK

        print(f"NOT VERIFIED ({result.failure_kind}): {result.failure}")
        return EXIT_NOT_VERIFIED

    def _execute_inspect_command(self, args: argparse.Namespace) -> int:
        service = self._build_service(args)
        document = read_input_file(args.document, "Document")
        record = service.inspect(document, args.document.name)

        if record is None:
            print("No watermark found in document")
            return EXIT_NOT_VERIFIED

        print(json.dumps(record.to_dict(), indent=2))
        return EXIT_OK

    def _execute_quality_command(self, args: argparse.Namespace) -> int:
        fingerprint = read_input_file(args.fingerprint, "Fingerprint")
        report = FingerprintQualityGate().assess(
            load_pixel_buffer(fingerprint, source=str(args.fingerprint))
        )

        print(json.dumps(report.to_dict(), indent=2))
        return EXIT_OK if report.passed else EXIT_NOT_VERIFIED

    def run_from_args(self, args_list: Optional[List[str]] = None) -> int:
        """Run the CLI with provided arguments."""
        try:
            args = self.parser.parse_args(args_list)
            config.validate_configuration()
            configure_logging(self._resolve_log_level(args))

            commands = {
                "encrypt": self._execute_encrypt_command,
                "verify": self._execute_verify_command,
                "inspect": self._execute_inspect_command,
                "quality": self._execute_quality_command,
            }
            command = commands.get(args.command)
            if command is None:
                self.parser.print_help()
                return EXIT_ERROR

            return command(args)

        except BiomarkError as e:
            logger.error("A known application error occurred", **e.to_dict())
            print(f"\n[ERROR] {e}", file=sys.stderr)
            return EXIT_ERROR
        except OSError as e:
            logger.error("File system error", error=str(e))
            print(f"\n[ERROR] {e}", file=sys.stderr)
            return EXIT_ERROR
        except KeyboardInterrupt:
            print("\nOperation cancelled by user.", file=sys.stderr)
            return EXIT_INTERRUPTED


def main() -> int:
    """Main entry point for the CLI."""
    cli = BiomarkCLI()
    return cli.run_from_args()


if __name__ == "__main__":
    sys.exit(main())
