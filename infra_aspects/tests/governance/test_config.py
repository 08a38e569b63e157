import os
import tempfile

import pytest
import yaml
from infra_aspects.constants import DEFAULT_REQUIRED_TAGS, STRICT_ENV_VAR
from infra_aspects.core.config import (
    build_engine,
    build_policies,
    load_config,
    parse_config,
    validate_aspect_config,
)
from infra_aspects.core.errors import ConfigurationError
from infra_aspects.core.governance.policies import CompliancePolicy, TagPolicy
from infra_aspects.core.governance.tree import build_tree


@pytest.fixture(autouse=True)
def clear_strict_env(monkeypatch):
    monkeypatch.delenv(STRICT_ENV_VAR, raising=False)


def test_defaults():
    config = parse_config({})
    assert config.required_tags == DEFAULT_REQUIRED_TAGS
    assert config.strict is False
    assert config.verbose is False
    policies = build_policies(config)
    assert isinstance(policies[0], TagPolicy)
    assert isinstance(policies[1], CompliancePolicy)


def test_unknown_keys_rejected():
    with pytest.raises(ConfigurationError):
        parse_config({"strictness": True})


def test_env_overrides_strict(monkeypatch):
    monkeypatch.setenv(STRICT_ENV_VAR, "true")
    assert parse_config({"strict": False}).strict is True
    monkeypatch.setenv(STRICT_ENV_VAR, "0")
    assert parse_config({"strict": True}).strict is False


def test_compliance_can_be_disabled():
    policies = build_policies(parse_config({"compliance": False, "required_tags": ["Owner"]}))
    assert len(policies) == 1
    assert policies[0].required_tags == ("Owner",)


def test_load_config_and_run():
    with tempfile.TemporaryDirectory() as tmp:
        catalog_path = os.path.join(tmp, "rules.yaml")
        with open(catalog_path, "w") as f:
            yaml.dump({
                "rules": [
                    {"rule_id": "owner-email", "description": "Owner contact required",
                     "property": "contact", "resource_types": ["storage-bucket"]},
                ]
            }, f)
        config_path = os.path.join(tmp, "aspects.yaml")
        with open(config_path, "w") as f:
            yaml.dump({
                "required_tags": ["Owner", "Purpose"],
                "catalog_file": "rules.yaml",
                "suppressions": [
                    {"rule_id": "missing-documentation-tag", "path": "/root/child",
                     "reason": "tracked externally"},
                ],
            }, f)

        config = load_config(config_path)
        assert config.catalog_file == catalog_path
        engine = build_engine(config)

    tree = build_tree({
        "id": "root",
        "taggable": False,
        "children": [{"id": "child", "type": "storage-bucket", "tags": {"Owner": "team-x"}}],
    })
    report = engine.run(tree)
    assert [v.rule_id for v in report.violations] == ["owner-email"]
    assert report.suppressed_count == 1
    assert report.passed is True


def test_invalid_suppression_in_config_fails_engine_build():
    config = parse_config({"suppressions": [{"rule_id": "ssl-not-enforced", "reason": ""}]})
    with pytest.raises(ConfigurationError):
        build_engine(config)


def test_load_config_missing_file():
    with pytest.raises(ConfigurationError, match="not found"):
        load_config("/nonexistent/aspects.yaml")


def test_validate_config_warns_about_dead_suppressions():
    result = validate_aspect_config({
        "suppressions": [
            {"rule_id": "ssl-not-enforced", "reason": "bucket policy enforces TLS"},
            {"rule_id": "AwsSolutions-S1", "reason": "copied from another project"},
        ]
    })
    assert result["valid"] is True
    assert len(result["warnings"]) == 1
    assert "AwsSolutions-S1" in result["warnings"][0]


def test_validate_config_reports_errors():
    result = validate_aspect_config({"suppressions": [{"rule_id": "R", "reason": ""}]})
    assert result["valid"] is False
    assert result["errors"]

    result = validate_aspect_config({"catalog_file": "/nonexistent/rules.yaml"})
    assert result["valid"] is False

    result = validate_aspect_config({"required_tags": ["Owner", "Owner"]})
    assert result["valid"] is False


def test_validate_config_warns_when_nothing_runs():
    result = validate_aspect_config({"required_tags": [], "compliance": False})
    assert result["valid"] is True
    assert "No policies enabled" in result["warnings"][0]


def test_env_rejects_unknown_strict_values(monkeypatch):
    monkeypatch.setenv(STRICT_ENV_VAR, "ture")
    with pytest.raises(ConfigurationError, match=STRICT_ENV_VAR):
        parse_config({})
    result = validate_aspect_config({})
    assert result["valid"] is False


def test_validate_config_resolves_catalog_like_load_config():
    with tempfile.TemporaryDirectory() as tmp:
        with open(os.path.join(tmp, "rules.yaml"), "w") as f:
            yaml.dump({"rules": [{"rule_id": "r1", "description": "d", "property": "p"}]}, f)
        raw = {"catalog_file": "rules.yaml"}

        assert validate_aspect_config(raw, base_dir=tmp)["valid"] is True
        assert validate_aspect_config(raw, base_dir=os.path.join(tmp, "elsewhere"))["valid"] is False


def test_undecodable_files_are_configuration_errors():
    with tempfile.TemporaryDirectory() as tmp:
        config_path = os.path.join(tmp, "aspects.yaml")
        catalog_path = os.path.join(tmp, "rules.yaml")
        for path in (config_path, catalog_path):
            with open(path, "wb") as f:
                f.write(b"required_tags: [\xff\xfe]\n")

        with pytest.raises(ConfigurationError):
            load_config(config_path)
        with pytest.raises(ConfigurationError):
            build_engine(parse_config({"catalog_file": catalog_path}))
