"""
Infra Aspects - policy-aspect engine for infrastructure resource trees.

This package provides:
- An immutable resource tree built from declarative records
- Pluggable policies (documentation tags, best-practice rule catalog)
- Justified suppressions with an audit trail
- A strict/lenient verdict suitable for failing a build
"""

__version__ = "1.0.0"

# ============================================================================
# ERRORS
# ============================================================================

from .core.errors import (
    AspectError,
    StructuralError,
    ConfigurationError,
    PolicyDefect,
)

# ============================================================================
# RESOURCE TREE
# ============================================================================

from .core.governance import (
    Node,
    ResourceTree,
    build_tree,
    apply_tags,
)

# ============================================================================
# POLICIES, SUPPRESSIONS, ENGINE
# ============================================================================

from .core.governance import (
    Severity,
    SuppressionScope,
    Finding,
    Violation,
    SuppressionAuditEntry,
    DiagnosticsReport,
    ComplianceRule,
    RuleCatalog,
    RuleOperator,
    Policy,
    TagPolicy,
    CompliancePolicy,
    FunctionPolicy,
    policy_from_function,
    Suppression,
    SuppressionRegistry,
    AspectEngine,
    run,
)

# ============================================================================
# CONFIGURATION
# ============================================================================

from .core.config import (
    AspectConfig,
    load_config,
    parse_config,
    build_engine,
    validate_aspect_config,
)

# ============================================================================
# TOP-LEVEL EXPORTS
# ============================================================================

__all__ = [
    # Version
    "__version__",

    # Errors
    "AspectError",
    "StructuralError",
    "ConfigurationError",
    "PolicyDefect",

    # Tree
    "Node",
    "ResourceTree",
    "build_tree",
    "apply_tags",

    # Findings & report
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

    # Configuration
    "AspectConfig",
    "load_config",
    "parse_config",
    "build_engine",
    "validate_aspect_config",
]
