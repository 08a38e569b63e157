# infra_aspects/core/governance/__init__.py
"""
Policy-aspect engine: resource tree, policies, suppressions and the engine.
"""

from .tree import Node, ResourceTree, build_tree, apply_tags
from .findings import (
    Severity,
    SuppressionScope,
    Finding,
    Violation,
    SuppressionAuditEntry,
    DiagnosticsReport,
)
from .catalog import ComplianceRule, RuleCatalog, RuleOperator
from .policies import (
    Policy,
    TagPolicy,
    CompliancePolicy,
    FunctionPolicy,
    policy_from_function,
)
from .suppressions import Suppression, SuppressionRegistry
from .engine import AspectEngine, run

__all__ = [
    # Tree
    "Node",
    "ResourceTree",
    "build_tree",
    "apply_tags",

    # Findings
    "Severity",
    "SuppressionScope",
    "Finding",
    "Violation",
    "SuppressionAuditEntry",
    "DiagnosticsReport",

    # Policies
    "ComplianceRule",
    "RuleCatalog",
    "RuleOperator",
    "Policy",
    "TagPolicy",
    "CompliancePolicy",
    "FunctionPolicy",
    "policy_from_function",

    # Suppressions
    "Suppression",
    "SuppressionRegistry",

    # Engine
    "AspectEngine",
    "run",
]
