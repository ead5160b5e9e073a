#!/usr/bin/env python3
"""
Command Line Interface

Runs the CCCD pipeline or the quality gate on image files and prints the
result as JSON.

Exit codes: 0 when the record is format-valid (or the image passes the
quality gate), 1 otherwise, 2 on decode, engine or configuration errors.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .config import LogLevel, configure_logging, init_config
from .enhancement import EnhancementMode
from .exceptions import CCCDParserError
from .image_io import load_image
from .kyc import derive_verification_status
from .pipeline import CCCDPipeline
from .quality import ImageQualityChecker

# Configure logging
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="cccd-parser",
        description="Extract identity fields from Vietnamese CCCD photos"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config", "-c",
        help="Path to a JSON configuration file"
    )
    parser.add_argument(
        "--env",
        choices=["development", "testing", "production"],
        help="Configuration environment (default: CCCD_ENV or development)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--output", "-o",
        help="Write the JSON result to this file instead of stdout"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # extract
    extract = subparsers.add_parser("extract", help="Run the full extraction pipeline")
    extract.add_argument("front", help="Path to the front side image")
    extract.add_argument("--back", "-b", help="Path to the back side image")
    extract.add_argument(
        "--number-only",
        action="store_true",
        help="Only read the 12-digit ID number"
    )
    extract.add_argument(
        "--mode", "-m",
        choices=[m.value for m in EnhancementMode if m != EnhancementMode.SELECTION],
        help="Enhancement variant (default from configuration)"
    )
    extract.add_argument(
        "--enforce-quality",
        action="store_true",
        help="Stop when the front image fails the quality gate"
    )

    # quality
    quality = subparsers.add_parser("quality", help="Run the image quality gate")
    quality.add_argument("image", help="Path to the image")

    return parser


def _emit(payload: Dict[str, Any], output: Optional[str]):
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if output:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text + "\n", encoding="utf-8")
        logger.info(f"Result written to {path}")
    else:
        print(text)


def run_extract(args: argparse.Namespace, pipeline: CCCDPipeline) -> int:
    mode = EnhancementMode.from_string(args.mode) if args.mode else None
    result = pipeline.process_sync(
        args.front,
        args.back,
        number_only=args.number_only,
        mode=mode,
        enforce_quality_gate=True if args.enforce_quality else None
    )
    payload = result.to_dict()
    payload["verification_status"] = derive_verification_status(
        result.confidence_score, pipeline.config.validation.verification_threshold
    ).value
    _emit(payload, args.output)
    return EXIT_OK if result.format_valid else EXIT_INVALID


def run_quality(args: argparse.Namespace, checker: ImageQualityChecker) -> int:
    report = checker.check(load_image(args.image))
    _emit(report.to_dict(), args.output)
    return EXIT_OK if report.passed else EXIT_INVALID


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = init_config(config_file=args.config, environment=args.env)
        if args.verbose:
            config.logging.level = LogLevel.DEBUG
        configure_logging(config.logging)

        if args.command == "extract":
            return run_extract(args, CCCDPipeline(config))
        return run_quality(args, ImageQualityChecker(config.quality))

    except CCCDParserError as e:
        logger.error(f"{e.error_code}: {e.message}")
        print(json.dumps({"error": e.to_dict()}, ensure_ascii=False), file=sys.stderr)
        return EXIT_ERROR
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
