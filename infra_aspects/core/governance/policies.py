# infra_aspects/core/governance/policies.py
"""
Policies – pluggable per-node rules.

A policy is anything implementing ``evaluate(node) -> list of Finding``.
Policies must be pure functions of the node: the engine may call them from
several threads and relies on them holding no state between nodes.

Concrete policies:
    - TagPolicy: required documentation tags on taggable resources.
    - CompliancePolicy: best-practice checks driven by a RuleCatalog.
    - FunctionPolicy: wraps a plain callable, for ad-hoc rule families.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple

from infra_aspects.constants import (
    COMPLIANCE_POLICY_ID,
    MISSING_DOCUMENTATION_TAG,
    TAG_POLICY_ID,
)
from infra_aspects.core.errors import ConfigurationError
from infra_aspects.core.governance.catalog import RuleCatalog
from infra_aspects.core.governance.findings import Finding
from infra_aspects.core.governance.tree import Node

# -----------------------------------------------------------------------------
# Type Aliases for Readability
# -----------------------------------------------------------------------------
EvalResult = List[Finding]


# -----------------------------------------------------------------------------
# Abstract Policy
# -----------------------------------------------------------------------------
class Policy(ABC):
    """Abstract base for all policies. Evaluates one node and returns findings."""

    policy_id: str

    @abstractmethod
    def evaluate(self, node: Node) -> EvalResult:
        """Return list of findings. Empty list means the node satisfies the policy."""
        pass

    def rule_ids(self) -> FrozenSet[str]:
        """Rule ids this policy can emit (used to spot suppressions that never fire)."""
        return frozenset()


# -----------------------------------------------------------------------------
# Tag Policy
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class TagPolicy(Policy):
    """Every taggable resource must carry each of the required documentation tags."""
    required_tags: Tuple[str, ...]
    exclude_resource_types: FrozenSet[str] = frozenset()
    policy_id: str = TAG_POLICY_ID

    def __post_init__(self):
        required = tuple(self.required_tags)
        if any(not isinstance(tag, str) or not tag for tag in required):
            raise ConfigurationError(f"Required tags must be non-empty strings: {required!r}")
        if len(set(required)) != len(required):
            raise ConfigurationError(f"Required tags contain duplicates: {required!r}")
        object.__setattr__(self, "required_tags", required)
        object.__setattr__(self, "exclude_resource_types", frozenset(self.exclude_resource_types))

    def evaluate(self, node: Node) -> EvalResult:
        # Scope exclusion, not suppression: nothing is raised for these nodes
        if not node.taggable or node.type in self.exclude_resource_types:
            return []
        return [
            Finding(
                rule_id=MISSING_DOCUMENTATION_TAG,
                message=f"Resource '{node.path}' ({node.type}) is missing documentation tag '{tag}'",
            )
            for tag in self.required_tags
            if tag not in node.tags
        ]

    def rule_ids(self) -> FrozenSet[str]:
        return frozenset({MISSING_DOCUMENTATION_TAG})


# -----------------------------------------------------------------------------
# Compliance Policy
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class CompliancePolicy(Policy):
    """Runs every catalog rule that applies to the node's type, in catalog order."""
    catalog: RuleCatalog = field(default_factory=RuleCatalog.default)
    policy_id: str = COMPLIANCE_POLICY_ID

    def evaluate(self, node: Node) -> EvalResult:
        findings: EvalResult = []
        for rule in self.catalog.rules_for(node.type):
            if rule.is_satisfied(node.properties):
                continue
            text = rule.message or rule.description
            findings.append(
                Finding(
                    rule_id=rule.rule_id,
                    message=f"Resource '{node.path}' ({node.type}) fails {rule.rule_id}: {text}",
                    force_error=rule.force_error,
                )
            )
        return findings

    def rule_ids(self) -> FrozenSet[str]:
        return frozenset(self.catalog.rule_ids())


# -----------------------------------------------------------------------------
# Function Policy
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class FunctionPolicy(Policy):
    """Adapter turning ``fn(node) -> iterable of Finding`` into a Policy."""
    policy_id: str
    fn: Callable[[Node], Iterable[Finding]]
    emits: FrozenSet[str] = frozenset()

    def evaluate(self, node: Node) -> EvalResult:
        return list(self.fn(node))

    def rule_ids(self) -> FrozenSet[str]:
        return frozenset(self.emits)


def policy_from_function(
    policy_id: str,
    fn: Callable[[Node], Iterable[Finding]],
    emits: Optional[Iterable[str]] = None,
) -> Policy:
    """Build a policy from a plain function, e.g. for project-specific checks."""
    return FunctionPolicy(policy_id=policy_id, fn=fn, emits=frozenset(emits or ()))


__all__ = [
    "Policy",
    "TagPolicy",
    "CompliancePolicy",
    "FunctionPolicy",
    "policy_from_function",
    "EvalResult",
]
