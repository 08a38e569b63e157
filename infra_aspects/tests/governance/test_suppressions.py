import os
import tempfile

import pytest
import yaml
from infra_aspects.core.errors import ConfigurationError
from infra_aspects.core.governance.findings import SuppressionScope
from infra_aspects.core.governance.suppressions import Suppression, SuppressionRegistry


def test_registry_prefers_node_specific_suppression():
    registry = SuppressionRegistry.from_records([
        {"rule_id": "R", "reason": "global waiver"},
        {"rule_id": "R", "path": "/a/b", "reason": "specific waiver"},
    ])
    specific = registry.match("R", "/a/b")
    assert specific.reason == "specific waiver"
    assert specific.scope == SuppressionScope.RESOURCE

    elsewhere = registry.match("R", "/a/c")
    assert elsewhere.reason == "global waiver"
    assert elsewhere.scope == SuppressionScope.GLOBAL

    assert registry.match("OTHER", "/a/b") is None


def test_path_suppression_matches_exact_path_only():
    registry = SuppressionRegistry.from_records([{"rule_id": "R", "path": "/a", "reason": "x"}])
    assert registry.match("R", "/a") is not None
    assert registry.match("R", "/a/b") is None


@pytest.mark.parametrize("record", [
    {"rule_id": "R", "reason": ""},
    {"rule_id": "R", "reason": "   "},
    {"rule_id": "R"},
    {"rule_id": "", "reason": "x"},
    {"rule_id": "has space", "reason": "x"},
    {"rule_id": "R", "path": "relative/path", "reason": "x"},
    {"rule_id": "R", "reason": "x", "expires": "2025-01-01"},
])
def test_invalid_records_rejected_at_load_time(record):
    with pytest.raises(ConfigurationError):
        SuppressionRegistry.from_records([record])


def test_duplicate_suppression_rejected():
    with pytest.raises(ConfigurationError, match="Duplicate suppression"):
        SuppressionRegistry.from_records([
            {"rule_id": "R", "path": "/a", "reason": "one"},
            {"rule_id": "R", "path": "/a", "reason": "two"},
        ])


def test_cdk_nag_style_id_key_accepted():
    registry = SuppressionRegistry.from_records([
        {"id": "AwsSolutions-S1", "reason": "S3 access logging not required for demo buckets"},
    ])
    assert registry.match("AwsSolutions-S1", "/any/where") is not None
    assert registry.rule_ids() == ["AwsSolutions-S1"]


def test_registry_accepts_suppression_objects_and_keeps_order():
    first = Suppression(rule_id="B", reason="b")
    second = Suppression(rule_id="A", path="/x", reason="a")
    registry = SuppressionRegistry.from_records([first, second])
    assert list(registry) == [first, second]
    assert len(registry) == 2


def test_records_must_be_a_sequence():
    with pytest.raises(ConfigurationError):
        SuppressionRegistry.from_records({"rule_id": "R", "reason": "x"})
    with pytest.raises(ConfigurationError):
        SuppressionRegistry.from_records(["R"])


def test_registry_from_yaml():
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        yaml.dump({
            'suppressions': [
                {'rule_id': 'missing-documentation-tag', 'path': '/root/child', 'reason': 'tracked externally'},
            ]
        }, f)
        temp_path = f.name

    registry = SuppressionRegistry.from_yaml(temp_path)
    assert registry.match("missing-documentation-tag", "/root/child").reason == "tracked externally"
    os.unlink(temp_path)


def test_registry_from_missing_yaml():
    with pytest.raises(ConfigurationError, match="not found"):
        SuppressionRegistry.from_yaml("/nonexistent/suppressions.yaml")
