# File: ormgen/cli.py
"""
ORMGen - Command-Line Interface
================================

Front end for ahead-of-time generation, built on the standard-library
``argparse`` module.

Usage examples::

    # Generate entity modules for SQLite
    python -m ormgen --schema schema.yaml --output ./generated

    # PostgreSQL statements, every identifier quoted, verbose
    ormgen -s schema.json -o ./out --dialect postgresql --quote-identifiers -v

    # Validate only (no file output)
    ormgen -s schema.yaml --validate-only

Exit codes:
    0   success
    1   validation error
    2   generation error
    3   export error
    4   input/argument error
    130 interrupted
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Sequence

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("ormgen")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_VALIDATION_ERROR: int = 1
EXIT_GENERATION_ERROR: int = 2
EXIT_EXPORT_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4
EXIT_INTERRUPTED: int = 130


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the ``ormgen`` logger based on verbosity level.

    Args:
        verbosity: -1 = ERROR, 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    elif verbosity == 0:
        level = logging.WARNING
    else:
        level = logging.ERROR

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )
    )

    root_logger: logging.Logger = logging.getLogger("ormgen")
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    from ormgen import __version__
    from ormgen.models import DatabaseDialect

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="ormgen",
        description=(
            "ORMGen: declarative entities to CRUD repositories and query builders.\n\n"
            "Reads an entity schema (JSON/YAML) and writes one Python module per "
            "entity with its model, select builder, precompiled SQL and repository."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s -s schema.yaml -o ./generated\n"
            "  %(prog)s -s schema.json -o ./out --dialect postgresql -v\n"
            "  %(prog)s -s schema.yaml --validate-only\n"
        ),
    )

    parser.add_argument("--version", action="version", version=f"ORMGen v{__version__}")

    parser.add_argument(
        "-s", "--schema",
        type=str,
        required=True,
        metavar="PATH",
        help="Path to the schema definition file (JSON or YAML).",
    )
    parser.add_argument(
        "-o", "--output",
        type=str,
        default=None,
        metavar="DIR",
        help="Output directory (defaults to config.output_dir of the schema file).",
    )

    mode_group = parser.add_argument_group("operation modes")
    mode_group.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Only validate the schema without generating code.",
    )

    config_group = parser.add_argument_group("configuration overrides")
    config_group.add_argument(
        "--dialect",
        type=str,
        default=None,
        choices=[d.value for d in DatabaseDialect],
        help="Dialect the precompiled statements are rendered for.",
    )
    config_group.add_argument(
        "--package-name",
        type=str,
        default=None,
        metavar="NAME",
        help="Python package the entity modules are written into.",
    )
    config_group.add_argument(
        "--quote-identifiers",
        action="store_true",
        default=None,
        help="Quote every table and column name, not only reserved words.",
    )

    behaviour_group = parser.add_argument_group("behaviour flags")
    behaviour_group.add_argument(
        "--clean",
        action="store_true",
        default=False,
        help="Clean output directory before generation.",
    )
    behaviour_group.add_argument(
        "--fail-on-warnings",
        action="store_true",
        default=False,
        help="Treat validation warnings as errors.",
    )
    behaviour_group.add_argument(
        "--no-manifest",
        action="store_true",
        default=False,
        help="Do not write manifest.json.",
    )

    verbosity_group = parser.add_argument_group("verbosity")
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all output except errors.",
    )

    return parser


def _build_config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Build a config override dictionary from CLI arguments."""
    overrides: Dict[str, Any] = {}
    if args.dialect is not None:
        overrides["dialect"] = args.dialect
    if args.package_name is not None:
        overrides["package_name"] = args.package_name
    if args.quote_identifiers:
        overrides["quote_identifiers"] = True
    if args.output is not None:
        overrides["output_dir"] = args.output
    return overrides


def _exit_code_for(report: Any) -> int:
    if report.success:
        return EXIT_SUCCESS
    if report.input_errors:
        return EXIT_INPUT_ERROR
    if report.validation_errors:
        return EXIT_VALIDATION_ERROR
    if report.generation_errors:
        return EXIT_GENERATION_ERROR
    if report.export_errors:
        return EXIT_EXPORT_ERROR
    return EXIT_GENERATION_ERROR


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------


def _run_validate_only(schema_path: Path, args: argparse.Namespace) -> int:
    from ormgen.generator import GenerationReport, ORMGenerator

    logger.info("Running validation-only mode for: %s", schema_path)
    generator: ORMGenerator = ORMGenerator(fail_on_warnings=args.fail_on_warnings)
    report: GenerationReport = generator.validate_from_file(
        schema_path, config_overrides=_build_config_overrides(args) or None
    )
    if not args.quiet:
        print(report.summary())
    return _exit_code_for(report)


def _run_generation(schema_path: Path, args: argparse.Namespace) -> int:
    from ormgen.generator import GenerationReport, ORMGenerator

    generator: ORMGenerator = ORMGenerator(
        fail_on_warnings=args.fail_on_warnings,
        clean_output=args.clean,
        generate_manifest=not args.no_manifest,
    )
    output_dir: Optional[Path] = Path(args.output).resolve() if args.output else None
    report: GenerationReport = generator.generate_from_file(
        schema_path=schema_path,
        output_dir=output_dir,
        config_overrides=_build_config_overrides(args) or None,
    )
    if not args.quiet:
        print(report.summary())
    return _exit_code_for(report)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Parse *argv*, run the requested mode and return the exit code."""
    parser: argparse.ArgumentParser = _build_parser()
    try:
        args: argparse.Namespace = parser.parse_args(argv)
    except SystemExit as exc:
        # --help / --version exit 0; usage errors map onto the input error code
        return EXIT_SUCCESS if exc.code in (0, None) else EXIT_INPUT_ERROR

    _setup_logging(-1 if args.quiet else args.verbose)

    schema_path: Path = Path(args.schema).resolve()
    if not schema_path.is_file():
        logger.error("Schema file not found: %s", schema_path)
        return EXIT_INPUT_ERROR

    logger.info("Schema:  %s", schema_path)
    logger.info("Output:  %s", args.output or "(from config)")

    try:
        if args.validate_only:
            exit_code: int = _run_validate_only(schema_path, args)
        else:
            exit_code = _run_generation(schema_path, args)
    except KeyboardInterrupt:
        logger.error("Interrupted.")
        return EXIT_INTERRUPTED

    if exit_code == EXIT_SUCCESS:
        logger.info("Completed successfully.")
    else:
        logger.error("Failed with exit code %d.", exit_code)
    return exit_code


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """Main CLI entry point; exits the process with the run's exit code."""
    sys.exit(run(argv))


def main() -> None:
    """Console-script entry point."""
    cli_main()


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "EXIT_EXPORT_ERROR",
    "EXIT_GENERATION_ERROR",
    "EXIT_INPUT_ERROR",
    "EXIT_INTERRUPTED",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_ERROR",
    "cli_main",
    "main",
    "run",
]

logger.debug("ormgen.cli loaded.")
