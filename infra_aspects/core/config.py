# infra_aspects/core/config.py
"""
Aspect configuration – which policies run, with which suppressions, how strictly.

Configuration is usually kept in a YAML file next to the infrastructure code:

    required_tags: [Project, Environment, ManagedBy, Documentation]
    exclude_resource_types: [log-group]
    strict: false
    verbose: false
    catalog_file: rules.yaml        # optional, replaces the built-in rules
    rules: []                       # optional, appended to the catalog
    suppressions:
      - rule_id: server-access-logs-disabled
        reason: Access logs are shipped by the platform team
      - rule_id: missing-documentation-tag
        path: /app/legacy-bucket
        reason: Imported resource, tagged by the owning team

``INFRA_ASPECTS_STRICT`` in the environment overrides ``strict``.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError

from infra_aspects.constants import (
    DEFAULT_REQUIRED_TAGS,
    FALSY_ENV_VALUES,
    STRICT_ENV_VAR,
    TRUTHY_ENV_VALUES,
)
from infra_aspects.core.errors import ConfigurationError
from infra_aspects.core.governance.catalog import RuleCatalog
from infra_aspects.core.governance.engine import AspectEngine
from infra_aspects.core.governance.policies import CompliancePolicy, Policy, TagPolicy
from infra_aspects.core.governance.suppressions import SuppressionRegistry

logger = logging.getLogger(__name__)


class AspectConfig(BaseModel):
    required_tags: Tuple[str, ...] = DEFAULT_REQUIRED_TAGS
    exclude_resource_types: Tuple[str, ...] = ()
    strict: bool = False
    verbose: bool = False
    compliance: bool = Field(True, description="Run the best-practice catalog")
    catalog_file: Optional[str] = None
    rules: List[Dict[str, Any]] = Field(default_factory=list)
    suppressions: List[Dict[str, Any]] = Field(default_factory=list)
    max_workers: Optional[int] = Field(None, ge=1)

    class Config:
        frozen = True
        extra = "forbid"


def strict_from_env(default: bool) -> bool:
    value = os.getenv(STRICT_ENV_VAR)
    if value is None or value == "":
        return default
    normalized = value.strip().lower()
    if normalized in TRUTHY_ENV_VALUES:
        return True
    if normalized in FALSY_ENV_VALUES:
        return False
    raise ConfigurationError(
        f"{STRICT_ENV_VAR}={value!r} is not a boolean; "
        f"use one of {', '.join(TRUTHY_ENV_VALUES + FALSY_ENV_VALUES)}"
    )


def parse_config(data: Optional[Mapping[str, Any]]) -> AspectConfig:
    """Validate a raw mapping into an AspectConfig, applying the env override."""
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}")
    try:
        config = AspectConfig(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid aspect configuration: {exc}") from exc
    strict = strict_from_env(config.strict)
    if strict != config.strict:
        logger.info(f"{STRICT_ENV_VAR} overrides strict={config.strict} -> {strict}")
        config = config.model_copy(update={"strict": strict})
    return config


def read_config_file(path: str) -> Any:
    """Read the raw YAML content of a configuration file."""
    if not os.path.exists(path):
        raise ConfigurationError(f"Configuration file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Cannot parse configuration {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"Cannot read configuration {path}: {exc}") from exc


def config_base_dir(path: str) -> str:
    """Directory that relative paths inside the config file ``path`` refer to."""
    return os.path.dirname(os.path.abspath(path))


def resolve_config_paths(config: AspectConfig, base_dir: str) -> AspectConfig:
    """Make a relative ``catalog_file`` relative to ``base_dir``."""
    if config.catalog_file and not os.path.isabs(config.catalog_file):
        config = config.model_copy(update={"catalog_file": os.path.join(base_dir, config.catalog_file)})
    return config


def load_config(path: str) -> AspectConfig:
    """Load and validate a YAML configuration file."""
    return resolve_config_paths(parse_config(read_config_file(path)), config_base_dir(path))


def build_catalog(config: AspectConfig) -> RuleCatalog:
    catalog = RuleCatalog.from_yaml(config.catalog_file) if config.catalog_file else RuleCatalog.default()
    if config.rules:
        catalog = catalog.extended(RuleCatalog.from_records(config.rules))
    return catalog


def build_policies(config: AspectConfig) -> List[Policy]:
    """Tag policy first, then the compliance catalog: this is the reporting order."""
    policies: List[Policy] = []
    if config.required_tags:
        policies.append(
            TagPolicy(
                required_tags=config.required_tags,
                exclude_resource_types=frozenset(config.exclude_resource_types),
            )
        )
    if config.compliance:
        policies.append(CompliancePolicy(catalog=build_catalog(config)))
    return policies


def build_engine(config: AspectConfig) -> AspectEngine:
    """Assemble an engine; every configuration error surfaces here, before any run."""
    return AspectEngine(
        build_policies(config),
        suppressions=SuppressionRegistry.from_records(config.suppressions),
        strict=config.strict,
        verbose=config.verbose,
        max_workers=config.max_workers,
    )


def validate_aspect_config(config: dict, base_dir: Optional[str] = None) -> dict:
    """
    Validate an aspect configuration without building an engine.

    Args:
        config: Raw configuration mapping (as loaded from YAML)
        base_dir: Directory of the config file; relative catalog paths are
                  resolved against it exactly as ``load_config`` does

    Returns:
        Dictionary with keys:
            - valid: bool
            - warnings: list of warning messages
            - errors: list of error messages (if invalid)
    """
    warnings: List[str] = []
    errors: List[str] = []

    try:
        parsed = parse_config(config)
    except ConfigurationError as exc:
        return {"valid": False, "errors": [str(exc)], "warnings": warnings}
    if base_dir is not None:
        parsed = resolve_config_paths(parsed, base_dir)

    if parsed.catalog_file and not os.path.exists(parsed.catalog_file):
        errors.append(f"Rule catalog not found: {parsed.catalog_file}")

    try:
        registry = SuppressionRegistry.from_records(parsed.suppressions)
    except ConfigurationError as exc:
        errors.append(str(exc))
        registry = SuppressionRegistry()

    known_rules = set()
    if not errors:
        try:
            for policy in build_policies(parsed):
                known_rules.update(policy.rule_ids())
        except ConfigurationError as exc:
            errors.append(str(exc))

    if not errors:
        for rule_id in registry.rule_ids():
            if rule_id not in known_rules:
                warnings.append(f"Suppression for '{rule_id}' can never fire: no policy emits that rule")

    if not parsed.required_tags and not parsed.compliance:
        warnings.append("No policies enabled; every run will pass")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
    }


__all__ = [
    "AspectConfig",
    "parse_config",
    "read_config_file",
    "config_base_dir",
    "resolve_config_paths",
    "load_config",
    "build_catalog",
    "build_policies",
    "build_engine",
    "strict_from_env",
    "validate_aspect_config",
]
