# infra_aspects/core/governance/suppressions.py
"""
Suppression Registry – justified exemptions for individual rules.

A suppression without a path silences a rule everywhere; one with a path
silences it for that exact node only. When both exist for the same rule the
node-specific one wins, which matters for the audit trail: the engine records
which suppression actually fired.

The registry is filled once at configuration time and only read afterwards.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from infra_aspects.constants import PATH_SEPARATOR, is_valid_rule_id
from infra_aspects.core.errors import ConfigurationError
from infra_aspects.core.governance.findings import SuppressionScope

logger = logging.getLogger(__name__)


class Suppression(BaseModel):
    rule_id: str
    path: Optional[str] = None
    reason: str

    class Config:
        frozen = True
        extra = "forbid"

    @field_validator("rule_id")
    def validate_rule_id(cls, v: str) -> str:
        if not is_valid_rule_id(v):
            raise ValueError(f"Malformed rule id: {v!r}")
        return v

    @field_validator("path")
    def validate_path(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith(PATH_SEPARATOR):
            raise ValueError(f"Suppression path must be absolute (start with '{PATH_SEPARATOR}'): {v!r}")
        return v

    @field_validator("reason")
    def validate_reason(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Suppression reason must not be empty")
        return v

    @property
    def scope(self) -> SuppressionScope:
        return SuppressionScope.GLOBAL if self.path is None else SuppressionScope.RESOURCE


class SuppressionRegistry:
    """Immutable-after-load lookup from (rule id, path) to a Suppression."""

    def __init__(self, suppressions: Iterable[Suppression] = ()):
        self._entries: Dict[Tuple[str, Optional[str]], Suppression] = {}
        for suppression in suppressions:
            self._add(suppression)

    def _add(self, suppression: Suppression) -> None:
        key = (suppression.rule_id, suppression.path)
        if key in self._entries:
            where = suppression.path or "<all resources>"
            raise ConfigurationError(f"Duplicate suppression for rule '{suppression.rule_id}' at {where}")
        self._entries[key] = suppression

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> SuppressionRegistry:
        """Load suppressions from ``{rule_id, path?, reason}`` records, in order."""
        if records is None:
            return cls()
        if isinstance(records, (str, bytes, Mapping)):
            raise ConfigurationError("Suppressions must be a sequence of records")
        suppressions: List[Suppression] = []
        for position, record in enumerate(records):
            if isinstance(record, Suppression):
                suppressions.append(record)
                continue
            if not isinstance(record, Mapping):
                raise ConfigurationError(f"Suppression #{position} is not a mapping: {record!r}")
            data = dict(record)
            # cdk-nag style records use "id" for the rule
            if "id" in data and "rule_id" not in data:
                data["rule_id"] = data.pop("id")
            try:
                suppressions.append(Suppression(**data))
            except ValidationError as exc:
                raise ConfigurationError(f"Invalid suppression #{position}: {exc}") from exc
        registry = cls(suppressions)
        logger.debug(f"Loaded {len(registry)} suppressions")
        return registry

    @classmethod
    def from_yaml(cls, path: str) -> SuppressionRegistry:
        """Load a YAML file holding a list of records or ``{suppressions: [...]}``."""
        if not os.path.exists(path):
            raise ConfigurationError(f"Suppression file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Cannot parse suppression file {path}: {exc}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigurationError(f"Cannot read suppression file {path}: {exc}") from exc
        if isinstance(raw, Mapping):
            raw = raw.get("suppressions")
        return cls.from_records(raw or [])

    def match(self, rule_id: str, path: str) -> Optional[Suppression]:
        """Node-specific suppression first, then the global one for the rule."""
        return self._entries.get((rule_id, path)) or self._entries.get((rule_id, None))

    def rule_ids(self) -> List[str]:
        return sorted({rule_id for rule_id, _ in self._entries})

    def __iter__(self) -> Iterator[Suppression]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"SuppressionRegistry({len(self)} suppressions)"


__all__ = ["Suppression", "SuppressionRegistry"]
