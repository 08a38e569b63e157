# infra_aspects/cli.py
"""
Command-line host for the aspect engine.

The engine only produces a DiagnosticsReport; reading the tree from disk,
rendering the report and mapping the verdict to an exit code happen here:

    0  the run passed (no error-severity violations)
    1  the run failed
    2  the tree, configuration or a policy is broken; no verdict was reached
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import click
import yaml

from infra_aspects.core.config import (
    AspectConfig,
    build_engine,
    config_base_dir,
    load_config,
    parse_config,
    read_config_file,
    validate_aspect_config,
)
from infra_aspects.core.errors import AspectError, ConfigurationError, StructuralError
from infra_aspects.core.governance.findings import DiagnosticsReport, Severity
from infra_aspects.core.governance.tree import ResourceTree, build_tree

logger = logging.getLogger(__name__)

EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_BROKEN = 2

_SEVERITY_MARKERS = {
    Severity.ERROR: "ERROR",
    Severity.WARNING: "WARN ",
}


def load_tree(path: Path) -> ResourceTree:
    """Read a YAML or JSON tree description and build it."""
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise StructuralError(f"Cannot parse tree file {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise StructuralError(f"Cannot read tree file {path}: {exc}") from exc
    if isinstance(raw, dict) and "resources" in raw:
        raw = raw["resources"]
    return build_tree(raw)


def render_text(report: DiagnosticsReport, verbose: bool = False) -> str:
    lines: List[str] = []
    for violation in report.violations:
        marker = _SEVERITY_MARKERS[violation.severity]
        lines.append(f"[{marker}] {violation.rule_id} {violation.path}: {violation.message}")
    if verbose:
        for entry in report.audit:
            where = entry.suppression_path or "all resources"
            lines.append(
                f"[SUPPR] {entry.rule_id} {entry.path}: suppressed for {where} ({entry.reason})"
            )
    summary = report.summary()
    verdict = "PASSED" if report.passed else "FAILED"
    lines.append(
        f"{verdict}: {summary['errors']} errors, {summary['warnings']} warnings, "
        f"{summary['suppressed']} suppressed across {summary['nodes_visited']} nodes"
    )
    return "\n".join(lines)


def render_json(report: DiagnosticsReport) -> str:
    payload: Any = report.model_dump(mode="json")
    payload["summary"] = report.summary()
    return json.dumps(payload, indent=2)


@click.group()
@click.option("--log-level", default="WARNING", show_default=True, help="Python logging level")
def cli(log_level: str) -> None:
    """Policy aspects for infrastructure resource trees."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("tree_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="YAML aspect configuration")
@click.option("--strict/--no-strict", default=None, help="Report every finding as an error")
@click.option("--verbose", is_flag=True, default=False, help="Also print suppressed findings")
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text",
              show_default=True)
def check(
    tree_file: Path,
    config_file: Optional[Path],
    strict: Optional[bool],
    verbose: bool,
    output_format: str,
) -> None:
    """Run the configured policies over TREE_FILE."""
    try:
        config: AspectConfig = load_config(str(config_file)) if config_file else parse_config({})
        overrides = {}
        if strict is not None:
            overrides["strict"] = strict
        if verbose:
            overrides["verbose"] = True
        if overrides:
            config = config.model_copy(update=overrides)
        engine = build_engine(config)
        tree = load_tree(tree_file)
        report = engine.run(tree)
    except AspectError as exc:
        logger.error(f"Aspect run aborted: {exc}")
        click.echo(f"error: {exc}", err=True)
        raise click.exceptions.Exit(EXIT_BROKEN)

    if output_format == "json":
        click.echo(render_json(report))
    else:
        click.echo(render_text(report, verbose=config.verbose))
    raise click.exceptions.Exit(EXIT_PASSED if report.passed else EXIT_FAILED)


@cli.command("validate-config")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate_config(config_file: Path) -> None:
    """Check CONFIG_FILE without running any policy."""
    try:
        raw = read_config_file(str(config_file))
    except ConfigurationError as exc:
        click.echo(f"error: {exc}", err=True)
        raise click.exceptions.Exit(EXIT_BROKEN)
    result = validate_aspect_config(raw, base_dir=config_base_dir(str(config_file)))
    for message in result["errors"]:
        click.echo(f"error: {message}", err=True)
    for message in result["warnings"]:
        click.echo(f"warning: {message}")
    if not result["valid"]:
        raise click.exceptions.Exit(EXIT_BROKEN)
    click.echo("configuration ok")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
