# File: ormgen/generator.py
"""
ORMGen - Ahead-of-Time Generation Pipeline (Orchestrator)
==========================================================

Connects every phase of ahead-of-time generation:

    Schema file -> Parse -> Validation -> Entity build -> Templates -> Export

The ``ORMGenerator`` class provides both a programmatic API and the backend
for the CLI.

Workflow::

    1. Load the schema from a JSON/YAML file (or accept in-memory objects).
    2. Parse into ``SchemaDefinition`` + ``GenerationConfig`` (models.py).
    3. Run the full validation pipeline (validators.py).
    4. Build one immutable ``Entity`` per definition.
    5. Feed the entities to ``TemplateGenerator`` (templates.py).
    6. Hand the generated files to ``ProjectExporter`` (exporters.py).
    7. Return a ``GenerationReport`` with metrics and status.

Error handling strategy:
    - Validation errors are collected and surfaced, never swallowed.
    - A validation failure stops the pipeline before any file is written.
    - Export errors are recorded on the report.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError as PydanticValidationError

from ormgen.exceptions import ORMGenError
from ormgen.exporters import ExportManifest, ExportResult, ProjectExporter
from ormgen.models import Entity, GenerationConfig, SchemaDefinition
from ormgen.templates import TemplateGenerator
from ormgen.utils import Timer, count_lines
from ormgen.validators import ValidationResult, build_entity, validate_full

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("ormgen.generator")

# Top-level keys accepted for the generation settings section
_CONFIG_KEYS: Tuple[str, ...] = ("config", "generation_config", "generator_config")


# ---------------------------------------------------------------------------
# Generation report
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class GenerationStepMetric:
    """Timing and outcome for a single pipeline step."""

    step_name: str = ""
    success: bool = True
    elapsed_seconds: float = 0.0
    detail: str = ""


@dataclass(slots=True)
class GenerationReport:
    """
    Report produced by every ``ORMGenerator`` entry point.

    ``input_errors`` are problems reading or parsing the schema file; the
    CLI maps each error category onto its own exit code.
    """

    success: bool = False
    project_name: str = ""
    output_directory: str = ""
    dialect: str = ""

    # Metrics
    total_files: int = 0
    total_bytes: int = 0
    total_lines: int = 0
    total_entities_processed: int = 0
    total_elapsed_seconds: float = 0.0

    # Sub-reports
    step_metrics: List[GenerationStepMetric] = field(default_factory=list)
    input_errors: List[str] = field(default_factory=list)
    validation_errors: List[str] = field(default_factory=list)
    validation_warnings: List[str] = field(default_factory=list)
    generation_errors: List[str] = field(default_factory=list)
    export_errors: List[str] = field(default_factory=list)

    manifest: Optional[ExportManifest] = None

    def summary(self) -> str:
        """Return a human-readable summary string."""
        rule: str = "=" * 60
        thin: str = "-" * 60
        status: str = "SUCCESS" if self.success else "FAILED"
        lines: List[str] = [
            rule,
            "  ORMGen: Generation Report",
            rule,
            f"  Status:             {status}",
            f"  Project:            {self.project_name}",
            f"  Dialect:            {self.dialect}",
            f"  Output:             {self.output_directory}",
            f"  Entities processed: {self.total_entities_processed}",
            f"  Files generated:    {self.total_files}",
            f"  Total lines:        {self.total_lines:,}",
            f"  Total bytes:        {self.total_bytes:,}",
            f"  Total time:         {self.total_elapsed_seconds:.3f}s",
            thin,
        ]

        if self.step_metrics:
            lines.append("  Pipeline Steps:")
            for step in self.step_metrics:
                mark: str = "ok" if step.success else "!!"
                lines.append(
                    f"    [{mark}] {step.step_name:<24s} "
                    f"{step.elapsed_seconds:>7.3f}s  {step.detail}"
                )

        sections: Tuple[Tuple[str, List[str], str], ...] = (
            ("Input Errors", self.input_errors, "x"),
            ("Validation Errors", self.validation_errors, "x"),
            ("Validation Warnings", self.validation_warnings, "!"),
            ("Generation Errors", self.generation_errors, "x"),
            ("Export Errors", self.export_errors, "x"),
        )
        for title, entries, mark in sections:
            if entries:
                lines.append(thin)
                lines.append(f"  {title} ({len(entries)}):")
                lines.extend(f"    {mark} {entry}" for entry in entries)

        lines.append(rule)
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Schema loader helpers
# ---------------------------------------------------------------------------


def _load_json_file(path: Path) -> Dict[str, Any]:
    """Load and parse a JSON file. Raises ValueError on parse errors."""
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object at top level, got {type(data).__name__}.")
    return data


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load and parse a YAML file. Raises ValueError on parse errors."""
    try:
        data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping at top level, got {type(data).__name__}.")
    return data


def load_schema_file(path: Path) -> Dict[str, Any]:
    """
    Load a schema definition file (JSON or YAML), dispatching on extension.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file can't be parsed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")
    if not path.is_file():
        raise ValueError(f"Schema path is not a file: {path}")

    suffix: str = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return _load_yaml_file(path)
    if suffix == ".json":
        return _load_json_file(path)

    logger.info("Unknown extension '%s'; trying JSON then YAML.", suffix)
    try:
        return _load_json_file(path)
    except ValueError:
        return _load_yaml_file(path)


def parse_raw_schema(raw: Dict[str, Any]) -> Tuple[SchemaDefinition, GenerationConfig]:
    """
    Parse a raw dictionary (from JSON/YAML) into pydantic models.

    Expected top-level keys:
        - ``entities``: list of entity definitions (required)
        - ``config`` (or ``generation_config``): generation settings
        - ``metadata``: free-form mapping kept on the schema

    Raises:
        ValueError: If required keys are missing or shape validation fails.
    """
    entities: Any = raw.get("entities")
    if entities is None and isinstance(raw.get("schema"), dict):
        entities = raw["schema"].get("entities")
    if not isinstance(entities, list):
        raise ValueError(
            "Cannot find entity definitions in input. "
            "Expected a top-level 'entities' list."
        )

    config_data: Dict[str, Any] = {}
    for key in _CONFIG_KEYS:
        if key in raw:
            config_data = raw[key] or {}
            break
    else:
        logger.info("No generation config found in input; using defaults.")

    try:
        schema: SchemaDefinition = SchemaDefinition.model_validate(
            {"entities": entities, "metadata": raw.get("metadata") or {}}
        )
    except PydanticValidationError as exc:
        raise ValueError(f"Schema validation failed: {exc}") from exc

    try:
        config: GenerationConfig = GenerationConfig.model_validate(config_data)
    except PydanticValidationError as exc:
        raise ValueError(f"Config validation failed: {exc}") from exc

    return schema, config


def _apply_overrides(raw: Dict[str, Any], overrides: Dict[str, Any]) -> None:
    key: str = next((k for k in _CONFIG_KEYS if k in raw), "config")
    section: Dict[str, Any] = dict(raw.get(key) or {})
    section.update(overrides)
    raw[key] = section


# ---------------------------------------------------------------------------
# ORMGenerator: master orchestrator
# ---------------------------------------------------------------------------


class ORMGenerator:
    """
    Pipeline orchestrator for ahead-of-time code generation.

    Usage::

        generator = ORMGenerator()
        report = generator.generate_from_file(
            schema_path=Path("schema.yaml"),
            output_dir=Path("./generated"),
        )
        print(report.summary())

    The generator is reusable: create once, call ``generate()`` many times.
    """

    def __init__(
        self,
        *,
        fail_on_warnings: bool = False,
        clean_output: bool = False,
        generate_manifest: bool = True,
    ) -> None:
        """
        Args:
            fail_on_warnings: Treat validation warnings as errors.
            clean_output: Wipe the output directory before writing.
            generate_manifest: Write ``manifest.json`` next to the package.
        """
        self._fail_on_warnings: bool = fail_on_warnings
        self._clean_output: bool = clean_output
        self._generate_manifest: bool = generate_manifest

        logger.debug(
            "ORMGenerator initialised: fail_on_warnings=%s, clean=%s, manifest=%s.",
            fail_on_warnings,
            clean_output,
            generate_manifest,
        )

    # -----------------------------------------------------------------
    # Public: file entry points
    # -----------------------------------------------------------------

    def load(
        self,
        schema_path: Path,
        report: GenerationReport,
        config_overrides: Optional[Dict[str, Any]] = None,
    ) -> Optional[Tuple[SchemaDefinition, GenerationConfig]]:
        """Load and parse a schema file, recording the steps on *report*."""
        with Timer("load_schema") as t_load:
            try:
                raw: Dict[str, Any] = load_schema_file(schema_path)
            except (FileNotFoundError, ValueError) as exc:
                self._fail_input(report, "Load Schema File", t_load.elapsed, exc)
                return None
        report.step_metrics.append(GenerationStepMetric(
            step_name="Load Schema File",
            elapsed_seconds=t_load.elapsed,
            detail=f"from {schema_path.name}",
        ))
        logger.info("Loaded schema file: %s (%d top-level keys).", schema_path, len(raw))

        with Timer("parse_schema") as t_parse:
            try:
                if config_overrides:
                    _apply_overrides(raw, config_overrides)
                schema, config = parse_raw_schema(raw)
            except ValueError as exc:
                self._fail_input(report, "Parse Schema", t_parse.elapsed, exc)
                return None
        report.project_name = config.project_name
        report.dialect = str(config.dialect)
        report.step_metrics.append(GenerationStepMetric(
            step_name="Parse Schema",
            elapsed_seconds=t_parse.elapsed,
            detail=f"{schema.entity_count} entities parsed",
        ))
        schema.source_file = str(schema_path)
        return schema, config

    def validate_from_file(
        self,
        schema_path: Path,
        *,
        config_overrides: Optional[Dict[str, Any]] = None,
    ) -> GenerationReport:
        """Load, parse and validate without generating anything."""
        started: float = time.perf_counter()
        report: GenerationReport = GenerationReport()
        loaded = self.load(schema_path, report, config_overrides)
        if loaded is not None:
            self._step_validate(*loaded, report)
        return self._finalise_report(report, time.perf_counter() - started)

    def generate_from_file(
        self,
        schema_path: Path,
        output_dir: Optional[Path] = None,
        *,
        config_overrides: Optional[Dict[str, Any]] = None,
    ) -> GenerationReport:
        """
        Full pipeline: load file -> validate -> generate -> export.

        ``output_dir`` defaults to the ``output_dir`` of the loaded config.
        """
        started: float = time.perf_counter()
        report: GenerationReport = GenerationReport()
        loaded = self.load(schema_path, report, config_overrides)
        if loaded is None:
            return self._finalise_report(report, time.perf_counter() - started)
        schema, config = loaded
        target: Path = Path(output_dir) if output_dir is not None else Path(config.output_dir)
        return self._run_pipeline(schema, config, target, report, started)

    # -----------------------------------------------------------------
    # Public: in-memory entry point
    # -----------------------------------------------------------------

    def generate(
        self,
        schema: SchemaDefinition,
        config: GenerationConfig,
        output_dir: Path,
    ) -> GenerationReport:
        """Full pipeline from pre-parsed schema and config objects."""
        report: GenerationReport = GenerationReport(
            project_name=config.project_name,
            dialect=str(config.dialect),
        )
        return self._run_pipeline(schema, config, output_dir, report, time.perf_counter())

    # -----------------------------------------------------------------
    # Internal: master pipeline
    # -----------------------------------------------------------------

    def _run_pipeline(
        self,
        schema: SchemaDefinition,
        config: GenerationConfig,
        output_dir: Path,
        report: GenerationReport,
        started: float,
    ) -> GenerationReport:
        report.output_directory = str(output_dir.resolve())

        if not self._step_validate(schema, config, report):
            return self._finalise_report(report, time.perf_counter() - started)

        generated_files: Dict[str, str] = self._step_generate(schema, config, report)
        if not generated_files:
            report.generation_errors.append("No files were generated; aborting export.")
            return self._finalise_report(report, time.perf_counter() - started)

        self._step_export(generated_files, config, output_dir, report)
        return self._finalise_report(report, time.perf_counter() - started)

    # -----------------------------------------------------------------
    # Pipeline step: Validation
    # -----------------------------------------------------------------

    def _step_validate(
        self,
        schema: SchemaDefinition,
        config: GenerationConfig,
        report: GenerationReport,
    ) -> bool:
        """Returns True when generation may proceed."""
        with Timer("validation") as t:
            result: ValidationResult = validate_full(schema, config)

        report.validation_errors.extend(str(e) for e in result.errors)
        report.validation_warnings.extend(str(w) for w in result.warnings)

        if result.has_errors:
            detail: str = f"{result.error_count} error(s)"
        elif result.warning_count:
            detail = f"{result.warning_count} warning(s)"
        else:
            detail = "all checks passed"

        passed: bool = result.is_valid and not (self._fail_on_warnings and result.warning_count)
        report.step_metrics.append(GenerationStepMetric(
            step_name="Validate Schema",
            success=passed,
            elapsed_seconds=t.elapsed,
            detail=detail,
        ))

        if result.has_errors:
            for err in result.errors:
                logger.error("  x %s", err)
            return False

        for warn in result.warnings:
            logger.warning("  ! %s", warn)
        if not passed:
            report.validation_errors.append("Warnings are treated as errors.")
            return False

        logger.info(
            "Validation passed: %d entities validated in %.3fs.",
            schema.entity_count,
            t.elapsed,
        )
        return True

    # -----------------------------------------------------------------
    # Pipeline step: Code generation
    # -----------------------------------------------------------------

    def _step_generate(
        self,
        schema: SchemaDefinition,
        config: GenerationConfig,
        report: GenerationReport,
    ) -> Dict[str, str]:
        generated_files: Dict[str, str] = {}

        with Timer("code_generation") as t:
            try:
                entities: List[Entity] = [build_entity(d) for d in schema.entities]
                descriptions: Dict[str, Optional[str]] = {
                    d.name: d.description for d in schema.entities
                }
                generated_files = TemplateGenerator(config).generate_all(entities, descriptions)
            except (ORMGenError, ValueError) as exc:
                error_msg: str = f"Fatal generation error: {type(exc).__name__}: {exc}"
                report.generation_errors.append(error_msg)
                logger.error(error_msg, exc_info=True)

        total_lines: int = sum(count_lines(c) for c in generated_files.values())
        report.total_entities_processed = schema.entity_count if generated_files else 0

        detail_str: str = (
            f"{len(generated_files)} files, ~{total_lines:,} lines, "
            f"{report.total_entities_processed} entities"
        )
        report.step_metrics.append(GenerationStepMetric(
            step_name="Code Generation",
            success=not report.generation_errors,
            elapsed_seconds=t.elapsed,
            detail=detail_str,
        ))
        logger.info("Code generation complete: %s in %.3fs.", detail_str, t.elapsed)
        return generated_files

    # -----------------------------------------------------------------
    # Pipeline step: Export
    # -----------------------------------------------------------------

    def _step_export(
        self,
        generated_files: Dict[str, str],
        config: GenerationConfig,
        output_dir: Path,
        report: GenerationReport,
    ) -> None:
        with Timer("export") as t:
            exporter: ProjectExporter = ProjectExporter(
                config=config,
                output_dir=output_dir,
                clean_before_export=self._clean_output,
                atomic_writes=True,
                generate_manifest=self._generate_manifest,
            )
            export_result: ExportResult = exporter.export(generated_files)

        report.total_files = export_result.manifest.total_files
        report.total_bytes = export_result.manifest.total_bytes
        report.total_lines = export_result.manifest.total_lines
        report.export_errors.extend(export_result.errors)
        report.manifest = export_result.manifest

        report.step_metrics.append(GenerationStepMetric(
            step_name="Export to Filesystem",
            success=export_result.success,
            elapsed_seconds=t.elapsed,
            detail=(
                f"{export_result.manifest.total_files} files, "
                f"{export_result.manifest.total_bytes:,} bytes"
            ),
        ))

    # -----------------------------------------------------------------
    # Internal: report helpers
    # -----------------------------------------------------------------

    @staticmethod
    def _fail_input(
        report: GenerationReport,
        step_name: str,
        elapsed: float,
        exc: Exception,
    ) -> None:
        report.input_errors.append(str(exc))
        report.step_metrics.append(GenerationStepMetric(
            step_name=step_name,
            success=False,
            elapsed_seconds=elapsed,
            detail=str(exc).splitlines()[0] if str(exc) else type(exc).__name__,
        ))
        logger.error("%s failed: %s", step_name, exc)

    @staticmethod
    def _finalise_report(report: GenerationReport, total_elapsed: float) -> GenerationReport:
        report.total_elapsed_seconds = total_elapsed
        report.success = not (
            report.input_errors
            or report.validation_errors
            or report.generation_errors
            or report.export_errors
        )
        return report


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "GenerationReport",
    "GenerationStepMetric",
    "ORMGenerator",
    "load_schema_file",
    "parse_raw_schema",
]

logger.debug("ormgen.generator loaded.")
