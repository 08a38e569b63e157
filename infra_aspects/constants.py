# infra_aspects/constants.py
"""
Engine limits and well-known identifiers shared by the tree builder,
the policies and the suppression registry.
"""

import re
from typing import Final, Pattern, Tuple

# ============================================================================
# RULE IDENTIFIERS
# ============================================================================

MISSING_DOCUMENTATION_TAG: Final[str] = "missing-documentation-tag"

# Rule ids are plain tokens such as "encryption-at-rest-missing" or "AwsSolutions-S1"
RULE_ID_PATTERN: Final[Pattern[str]] = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:-]*$")

# ============================================================================
# RESOURCE TREE
# ============================================================================

PATH_SEPARATOR: Final[str] = "/"
MAX_TREE_DEPTH: Final[int] = 256

# Kinds that cannot carry tags at all (outputs, metadata records, deployment helpers)
DEFAULT_NON_TAGGABLE_TYPES: Final[Tuple[str, ...]] = (
    "deployment-output",
    "metadata",
    "bucket-deployment",
)

# ============================================================================
# POLICY DEFAULTS
# ============================================================================

DEFAULT_REQUIRED_TAGS: Final[Tuple[str, ...]] = ("Project", "Environment", "ManagedBy", "Documentation")
TAG_POLICY_ID: Final[str] = "documentation-tags"
COMPLIANCE_POLICY_ID: Final[str] = "best-practice-checks"

# ============================================================================
# ENVIRONMENT
# ============================================================================

STRICT_ENV_VAR: Final[str] = "INFRA_ASPECTS_STRICT"
TRUTHY_ENV_VALUES: Final[Tuple[str, ...]] = ("1", "true", "yes", "on")
FALSY_ENV_VALUES: Final[Tuple[str, ...]] = ("0", "false", "no", "off")


def is_valid_rule_id(rule_id: object) -> bool:
    """True when ``rule_id`` is a non-empty token usable as a catalog key."""
    return isinstance(rule_id, str) and bool(RULE_ID_PATTERN.match(rule_id))


__all__ = [
    "MISSING_DOCUMENTATION_TAG",
    "RULE_ID_PATTERN",
    "PATH_SEPARATOR",
    "MAX_TREE_DEPTH",
    "DEFAULT_NON_TAGGABLE_TYPES",
    "DEFAULT_REQUIRED_TAGS",
    "TAG_POLICY_ID",
    "COMPLIANCE_POLICY_ID",
    "STRICT_ENV_VAR",
    "TRUTHY_ENV_VALUES",
    "FALSY_ENV_VALUES",
    "is_valid_rule_id",
]
