# infra_aspects/core/governance/engine.py
"""
Aspect Engine – walks a resource tree and turns policy findings into a verdict.

For every node (pre-order, children in declaration order) each registered
policy is evaluated in registration order. Findings then go through the
suppression registry: a node-specific suppression wins over a global one,
and either way the match is written to the audit trail instead of the
visible report. What is left becomes a Violation whose severity is decided
here, never by the policy:

    force_error finding  -> error
    strict run           -> error
    otherwise            -> warning

The run passes iff no error-severity violation remains.

A policy that raises is a programming defect, not a finding. The run is
aborted with PolicyDefect and no report is returned, because a truncated
report would silently hide every finding after the failure point.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from infra_aspects.core.errors import ConfigurationError, PolicyDefect
from infra_aspects.core.governance.findings import (
    DiagnosticsReport,
    Finding,
    Severity,
    SuppressionAuditEntry,
    Violation,
)
from infra_aspects.core.governance.policies import Policy
from infra_aspects.core.governance.suppressions import SuppressionRegistry
from infra_aspects.core.governance.tree import Node, ResourceTree

logger = logging.getLogger(__name__)

NodeFindings = Tuple[Node, List[Tuple[Policy, Finding]]]


class AspectEngine:
    """
    Reusable engine configuration: policies, suppressions and mode flags.

    The engine holds no state between runs; ``run`` may be called any number
    of times, on any trees, and returns an independent report each time.
    """

    def __init__(
        self,
        policies: Sequence[Policy],
        suppressions: Optional[SuppressionRegistry] = None,
        strict: bool = False,
        verbose: bool = False,
        max_workers: Optional[int] = None,
    ):
        self._policies: Tuple[Policy, ...] = _validate_policies(policies)
        if suppressions is not None and not isinstance(suppressions, SuppressionRegistry):
            suppressions = SuppressionRegistry.from_records(suppressions)
        self._suppressions = suppressions if suppressions is not None else SuppressionRegistry()
        if max_workers is not None and max_workers < 1:
            raise ConfigurationError(f"max_workers must be a positive integer, got {max_workers}")
        self.strict = bool(strict)
        self.verbose = bool(verbose)
        self.max_workers = max_workers
        logger.debug(
            f"Initialized AspectEngine with {len(self._policies)} policies, "
            f"{len(self._suppressions)} suppressions, strict={self.strict}"
        )

    @property
    def policies(self) -> Tuple[Policy, ...]:
        return self._policies

    @property
    def suppressions(self) -> SuppressionRegistry:
        return self._suppressions

    def run(self, tree: ResourceTree) -> DiagnosticsReport:
        if not isinstance(tree, ResourceTree):
            raise ConfigurationError(f"Expected a ResourceTree, got {type(tree).__name__}")

        logger.info(
            f"Running {len(self._policies)} policies over {len(tree)} nodes "
            f"(strict={self.strict})"
        )
        violations: List[Violation] = []
        audit: List[SuppressionAuditEntry] = []
        visited = 0

        for node, findings in self._evaluate_all(tree):
            visited += 1
            for policy, finding in findings:
                suppression = self._suppressions.match(finding.rule_id, node.path)
                if suppression is not None:
                    audit.append(
                        SuppressionAuditEntry(
                            rule_id=finding.rule_id,
                            path=node.path,
                            resource_type=node.type,
                            message=finding.message,
                            scope=suppression.scope,
                            reason=suppression.reason,
                            suppression_path=suppression.path,
                        )
                    )
                    log = logger.info if self.verbose else logger.debug
                    log(
                        f"Suppressed {finding.rule_id} from {policy.policy_id} at {node.path} "
                        f"({suppression.scope.value}): {suppression.reason}"
                    )
                    continue
                violations.append(self._classify(node, finding))

        passed = not any(v.severity == Severity.ERROR for v in violations)
        report = DiagnosticsReport(
            violations=tuple(violations),
            suppressed_count=len(audit),
            passed=passed,
            audit=tuple(audit),
            strict=self.strict,
            nodes_visited=visited,
        )
        logger.info(
            f"Run finished: {len(report.errors)} errors, {len(report.warnings)} warnings, "
            f"{report.suppressed_count} suppressed, passed={passed}"
        )
        return report

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------
    def _classify(self, node: Node, finding: Finding) -> Violation:
        severity = Severity.ERROR if (finding.force_error or self.strict) else Severity.WARNING
        return Violation(
            rule_id=finding.rule_id,
            path=node.path,
            resource_type=node.type,
            severity=severity,
            message=finding.message,
        )

    def _evaluate_all(self, tree: ResourceTree) -> Iterator[NodeFindings]:
        if self.max_workers is None or self.max_workers == 1:
            for node in tree.walk():
                yield node, self._evaluate_node(node)
            return
        # map() yields in submission order, so the pre-order is preserved and
        # the first defect raised is the same one a sequential run would hit
        nodes = list(tree.walk())
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            yield from zip(nodes, pool.map(self._evaluate_node, nodes))

    def _evaluate_node(self, node: Node) -> List[Tuple[Policy, Finding]]:
        collected: List[Tuple[Policy, Finding]] = []
        for policy in self._policies:
            try:
                findings = policy.evaluate(node)
                findings = list(findings) if findings is not None else None
            except Exception as e:
                logger.error(f"Policy {policy.policy_id} raised on {node.path}: {e}", exc_info=True)
                raise PolicyDefect(policy.policy_id, node.path, f"{type(e).__name__}: {e}") from e
            if findings is None:
                raise PolicyDefect(policy.policy_id, node.path, "returned None instead of a list of findings")
            for finding in findings:
                if not isinstance(finding, Finding):
                    raise PolicyDefect(
                        policy.policy_id, node.path, f"returned {type(finding).__name__} instead of Finding"
                    )
                collected.append((policy, finding))
        return collected


def _validate_policies(policies: Iterable[Policy]) -> Tuple[Policy, ...]:
    registered: List[Policy] = []
    seen_instances = set()
    seen_ids = set()
    for policy in policies:
        if not isinstance(policy, Policy):
            raise ConfigurationError(f"Not a Policy: {policy!r}")
        if id(policy) in seen_instances:
            raise ConfigurationError(f"Policy instance registered twice: {policy.policy_id}")
        if policy.policy_id in seen_ids:
            raise ConfigurationError(f"Duplicate policy id: {policy.policy_id}")
        seen_instances.add(id(policy))
        seen_ids.add(policy.policy_id)
        registered.append(policy)
    return tuple(registered)


def run(
    tree: ResourceTree,
    policies: Sequence[Policy],
    suppressions: Optional[SuppressionRegistry] = None,
    strict: bool = False,
) -> DiagnosticsReport:
    """Single-call entry point: configure an engine and run it once."""
    return AspectEngine(policies, suppressions=suppressions, strict=strict).run(tree)


__all__ = ["AspectEngine", "run"]
