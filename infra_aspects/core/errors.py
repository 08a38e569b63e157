# infra_aspects/core/errors.py
"""
Fatal error taxonomy of the aspect engine.

Compliance findings are never raised; they are returned as data inside a
DiagnosticsReport. The exceptions below signal that no trustworthy report
can be produced at all.
"""

from typing import Optional


class AspectError(RuntimeError):
    """Base class for every fatal engine error."""
    pass


class StructuralError(AspectError):
    """Malformed resource tree (duplicate path, cycle, dangling parent)."""
    pass


class ConfigurationError(AspectError):
    """Invalid suppression, rule catalog, policy registration or config file."""
    pass


class PolicyDefect(ConfigurationError):
    """
    A policy raised (or returned garbage) instead of returning findings.

    A defective policy is a broken configuration of the engine, so callers that
    only catch ConfigurationError still stop on it.
    """

    def __init__(self, policy_id: str, path: str, detail: Optional[str] = None):
        self.policy_id = policy_id
        self.path = path
        self.detail = detail
        message = f"Policy '{policy_id}' failed while evaluating '{path}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


__all__ = [
    "AspectError",
    "StructuralError",
    "ConfigurationError",
    "PolicyDefect",
]
