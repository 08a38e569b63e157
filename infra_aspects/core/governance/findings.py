# infra_aspects/core/governance/findings.py
"""
Findings, violations and the diagnostics report.

A Finding is what a policy says about one node: a rule id and a message,
with no severity. The engine turns surviving findings into Violations and
decides the severity itself; the only say a policy has is ``force_error``
for findings that must never be downgraded to a warning.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from infra_aspects.constants import is_valid_rule_id


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class SuppressionScope(str, Enum):
    """Which kind of suppression matched a finding."""
    RESOURCE = "resource"
    GLOBAL = "global"


class Finding(BaseModel):
    """Unclassified potential problem raised by a policy for one node."""
    rule_id: str
    message: str
    force_error: bool = False

    class Config:
        frozen = True
        extra = "forbid"

    @field_validator("rule_id")
    def validate_rule_id(cls, v: str) -> str:
        if not is_valid_rule_id(v):
            raise ValueError(f"Malformed rule id: {v!r}")
        return v


class Violation(BaseModel):
    """A finding that survived suppression and received a severity."""
    rule_id: str
    path: str
    resource_type: str
    severity: Severity
    message: str

    class Config:
        frozen = True
        extra = "forbid"

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR


class SuppressionAuditEntry(BaseModel):
    """Record of a finding that was hidden by a suppression."""
    rule_id: str
    path: str
    resource_type: str
    message: str
    scope: SuppressionScope
    reason: str
    suppression_path: Optional[str] = None

    class Config:
        frozen = True
        extra = "forbid"


class DiagnosticsReport(BaseModel):
    """
    Result of one engine run.

    ``passed`` reflects the absence of error-severity violations, not the
    absence of violations: a lenient run full of warnings still passes.
    """
    violations: Tuple[Violation, ...] = ()
    suppressed_count: int = Field(0, ge=0)
    passed: bool = True
    audit: Tuple[SuppressionAuditEntry, ...] = ()
    strict: bool = False
    nodes_visited: int = Field(0, ge=0)

    class Config:
        frozen = True
        extra = "forbid"

    @property
    def errors(self) -> List[Violation]:
        return [v for v in self.violations if v.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[Violation]:
        return [v for v in self.violations if v.severity == Severity.WARNING]

    @property
    def total_findings(self) -> int:
        return len(self.violations) + self.suppressed_count

    def by_rule(self) -> Dict[str, List[Violation]]:
        grouped: Dict[str, List[Violation]] = {}
        for violation in self.violations:
            grouped.setdefault(violation.rule_id, []).append(violation)
        return grouped

    def summary(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "strict": self.strict,
            "nodes_visited": self.nodes_visited,
            "errors": len(self.errors),
            "warnings": len(self.warnings),
            "suppressed": self.suppressed_count,
        }


__all__ = [
    "Severity",
    "SuppressionScope",
    "Finding",
    "Violation",
    "SuppressionAuditEntry",
    "DiagnosticsReport",
]
