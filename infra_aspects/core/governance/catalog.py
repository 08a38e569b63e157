# infra_aspects/core/governance/catalog.py
"""
Rule Catalog – best-practice checks expressed as data.

Each rule names a property of the node (dotted path into ``Node.properties``)
and a condition it must satisfy. The catalog is injected into the compliance
policy, so rules can be added or tuned from YAML without touching the engine.

The built-in defaults mirror a handful of the AwsSolutions checks for the
resource kinds the infrastructure declares (buckets, tables, databases,
distributions, functions, API gateways). They are deliberately shallow: the
engine only routes their findings, it does not judge whether a rule is right.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from infra_aspects.constants import is_valid_rule_id
from infra_aspects.core.errors import ConfigurationError
from infra_aspects.core.governance.tree import freeze_value

logger = logging.getLogger(__name__)

_MISSING = object()


class RuleOperator(str, Enum):
    EXISTS = "exists"
    TRUTHY = "truthy"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    ONE_OF = "one_of"


class ComplianceRule(BaseModel):
    """One named check over a node's properties."""
    rule_id: str
    description: str
    property: str = Field(..., description="Dotted path into the node properties")
    operator: RuleOperator = RuleOperator.EXISTS
    value: Any = Field(None, validate_default=True)
    resource_types: Tuple[str, ...] = Field(default=(), description="Kinds the rule applies to; empty = all")
    force_error: bool = False
    message: Optional[str] = None

    class Config:
        frozen = True
        extra = "forbid"

    @field_validator("rule_id")
    def validate_rule_id(cls, v: str) -> str:
        if not is_valid_rule_id(v):
            raise ValueError(f"Malformed rule id: {v!r}")
        return v

    @field_validator("property")
    def validate_property(cls, v: str) -> str:
        if not v or any(not part for part in v.split(".")):
            raise ValueError(f"Malformed property path: {v!r}")
        return v

    @field_validator("value")
    def validate_value(cls, v: Any, info) -> Any:
        # Compared against frozen node properties, so freeze the same way
        if info.data.get("operator") == RuleOperator.ONE_OF:
            if not isinstance(v, (list, tuple, set, frozenset)):
                raise ValueError("one_of rules need a list value")
            return tuple(freeze_value(item) for item in v)
        return freeze_value(v)

    def applies_to(self, resource_type: str) -> bool:
        return not self.resource_types or resource_type in self.resource_types

    def is_satisfied(self, properties: Mapping[str, Any]) -> bool:
        actual = resolve_property(properties, self.property)
        if self.operator == RuleOperator.EXISTS:
            return actual is not _MISSING and actual is not None
        if self.operator == RuleOperator.TRUTHY:
            return actual is not _MISSING and bool(actual)
        if self.operator == RuleOperator.EQUALS:
            return actual is not _MISSING and actual == self.value
        if self.operator == RuleOperator.NOT_EQUALS:
            return actual is _MISSING or actual != self.value
        # ONE_OF
        return actual is not _MISSING and actual in self.value


def resolve_property(properties: Any, dotted: str) -> Any:
    """Follow ``a.b.0.c`` through mappings and lists; ``_MISSING`` if any hop fails."""
    current = properties
    for part in dotted.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


DEFAULT_RULES: Tuple[Dict[str, Any], ...] = (
    {
        "rule_id": "encryption-at-rest-missing",
        "description": "Data stores must declare server-side encryption.",
        "property": "encryption",
        "resource_types": ("storage-bucket", "table", "database"),
    },
    {
        "rule_id": "public-access-not-blocked",
        "description": "Buckets must block all public access.",
        "property": "blockPublicAccess",
        "operator": "truthy",
        "resource_types": ("storage-bucket",),
        "force_error": True,
    },
    {
        "rule_id": "server-access-logs-disabled",
        "description": "Buckets should write server access logs.",
        "property": "serverAccessLogs",
        "resource_types": ("storage-bucket",),
    },
    {
        "rule_id": "ssl-not-enforced",
        "description": "Buckets must reject requests that do not use TLS.",
        "property": "enforceSSL",
        "operator": "equals",
        "value": True,
        "resource_types": ("storage-bucket",),
    },
    {
        "rule_id": "point-in-time-recovery-disabled",
        "description": "Tables should enable point-in-time recovery.",
        "property": "pointInTimeRecovery",
        "operator": "equals",
        "value": True,
        "resource_types": ("table",),
    },
    {
        "rule_id": "backup-retention-missing",
        "description": "Managed databases should retain automated backups.",
        "property": "backupRetention",
        "resource_types": ("database",),
    },
    {
        "rule_id": "outdated-tls-policy",
        "description": "Distributions must negotiate TLS 1.2 or newer with viewers.",
        "property": "minimumProtocolVersion",
        "operator": "one_of",
        "value": ["TLSv1.2_2019", "TLSv1.2_2021"],
        "resource_types": ("distribution",),
    },
    {
        "rule_id": "function-runtime-unpinned",
        "description": "Functions should pin an explicit runtime.",
        "property": "runtime",
        "resource_types": ("function",),
    },
    {
        "rule_id": "api-access-logging-disabled",
        "description": "API stages should have access logging enabled.",
        "property": "accessLogging",
        "operator": "truthy",
        "resource_types": ("api-gateway",),
    },
)


class RuleCatalog:
    """Ordered, id-unique collection of ComplianceRules."""

    def __init__(self, rules: Iterable[ComplianceRule] = ()):
        self._rules: Dict[str, ComplianceRule] = {}
        for rule in rules:
            if rule.rule_id in self._rules:
                raise ConfigurationError(f"Duplicate rule id in catalog: {rule.rule_id}")
            self._rules[rule.rule_id] = rule

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> RuleCatalog:
        if isinstance(records, (str, bytes, Mapping)):
            raise ConfigurationError("Rule catalog must be a sequence of rule records")
        rules: List[ComplianceRule] = []
        for position, record in enumerate(records):
            if isinstance(record, ComplianceRule):
                rules.append(record)
                continue
            if not isinstance(record, Mapping):
                raise ConfigurationError(f"Rule #{position} is not a mapping: {record!r}")
            try:
                rules.append(ComplianceRule(**record))
            except ValidationError as exc:
                raise ConfigurationError(f"Invalid rule #{position}: {exc}") from exc
        return cls(rules)

    @classmethod
    def from_yaml(cls, path: str) -> RuleCatalog:
        """Load a YAML file holding a list of rules or ``{rules: [...]}``."""
        if not os.path.exists(path):
            raise ConfigurationError(f"Rule catalog not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Cannot parse rule catalog {path}: {exc}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigurationError(f"Cannot read rule catalog {path}: {exc}") from exc
        if isinstance(raw, Mapping):
            raw = raw.get("rules")
        catalog = cls.from_records(raw or [])
        logger.info(f"Loaded {len(catalog)} compliance rules from {path}")
        return catalog

    @classmethod
    def default(cls) -> RuleCatalog:
        return cls.from_records(DEFAULT_RULES)

    def extended(self, rules: Iterable[ComplianceRule]) -> RuleCatalog:
        """New catalog with ``rules`` appended; ids must stay unique."""
        return RuleCatalog(list(self) + list(rules))

    def rules_for(self, resource_type: str) -> List[ComplianceRule]:
        return [rule for rule in self._rules.values() if rule.applies_to(resource_type)]

    def get(self, rule_id: str) -> Optional[ComplianceRule]:
        return self._rules.get(rule_id)

    def rule_ids(self) -> List[str]:
        return list(self._rules)

    def __iter__(self) -> Iterator[ComplianceRule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules


__all__ = [
    "RuleOperator",
    "ComplianceRule",
    "RuleCatalog",
    "DEFAULT_RULES",
    "resolve_property",
]
