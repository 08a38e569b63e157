import pytest
from infra_aspects.core.errors import ConfigurationError, StructuralError
from infra_aspects.core.governance.tree import (
    Node,
    ResourceTree,
    apply_tags,
    build_tree,
)


@pytest.fixture
def stack_source():
    return {
        "id": "app",
        "type": "stack",
        "children": [
            {
                "id": "assets",
                "type": "storage-bucket",
                "tags": {"Owner": "team-x"},
                "properties": {"encryption": "S3_MANAGED"},
                "children": [
                    {"id": "policy", "type": "bucket-policy"},
                ],
            },
            {"id": "events", "type": "table"},
            {"id": "website-url", "type": "deployment-output"},
        ],
    }


def test_build_nested_tree_paths_and_order(stack_source):
    tree = build_tree(stack_source)
    paths = [node.path for node in tree.walk()]
    assert paths == [
        "/app",
        "/app/assets",
        "/app/assets/policy",
        "/app/events",
        "/app/website-url",
    ]
    assert len(tree) == 5
    assert tree.root().id == "app"
    assert tree.find("/app/assets").tags == {"Owner": "team-x"}
    assert tree.find("/app/assets").properties == {"encryption": "S3_MANAGED"}
    assert "/app/events" in tree
    assert tree.find("/app/missing") is None


def test_default_taggability_follows_resource_kind(stack_source):
    tree = build_tree(stack_source)
    assert tree.find("/app/assets").taggable is True
    assert tree.find("/app/website-url").taggable is False


def test_explicit_taggable_flag_wins():
    tree = build_tree({"id": "root", "children": [{"id": "out", "type": "deployment-output", "taggable": True}]})
    assert tree.find("/root/out").taggable is True
    assert tree.root().type == "construct"


def test_duplicate_sibling_ids_rejected():
    source = {"id": "root", "children": [{"id": "a"}, {"id": "a"}]}
    with pytest.raises(StructuralError, match="Duplicate node path"):
        build_tree(source)


def test_same_id_under_different_parents_is_allowed():
    source = {
        "id": "root",
        "children": [
            {"id": "a", "children": [{"id": "x"}]},
            {"id": "b", "children": [{"id": "x"}]},
        ],
    }
    tree = build_tree(source)
    assert "/root/a/x" in tree and "/root/b/x" in tree


def test_recursive_nested_source_is_a_cycle():
    root = {"id": "root", "children": []}
    root["children"].append(root)
    with pytest.raises(StructuralError, match="Cyclic"):
        build_tree(root)


@pytest.mark.parametrize("bad_id", ["", None, "a/b", 7])
def test_invalid_ids_rejected(bad_id):
    with pytest.raises(StructuralError):
        build_tree({"id": "root", "children": [{"id": bad_id}]})


def test_unknown_fields_rejected():
    with pytest.raises(StructuralError, match="Unknown node fields"):
        build_tree({"id": "root", "colour": "blue"})


def test_non_string_tag_value_rejected():
    with pytest.raises(StructuralError):
        build_tree({"id": "root", "tags": {"Owner": None}})


def test_flat_records_build_same_tree_as_nested():
    records = [
        {"id": "app", "type": "stack"},
        {"id": "assets", "parent": "app", "type": "storage-bucket"},
        {"id": "events", "parent": "app", "type": "table"},
        {"id": "policy", "parent": "assets", "type": "bucket-policy"},
    ]
    tree = build_tree(records)
    assert [n.path for n in tree.walk()] == [
        "/app",
        "/app/assets",
        "/app/assets/policy",
        "/app/events",
    ]


def test_flat_records_use_ref_for_repeated_ids():
    records = [
        {"id": "root"},
        {"id": "a", "parent": "root"},
        {"id": "b", "parent": "root"},
        {"id": "x", "ref": "a-x", "parent": "a"},
        {"id": "x", "ref": "b-x", "parent": "b"},
    ]
    tree = build_tree(records)
    assert len(tree) == 5
    assert tree.find("/root/b/x") is not None


def test_flat_dangling_parent_rejected():
    records = [{"id": "root"}, {"id": "a", "parent": "ghost"}]
    with pytest.raises(StructuralError, match="unknown parent"):
        build_tree(records)


def test_flat_cycle_rejected():
    records = [
        {"id": "root"},
        {"id": "a", "parent": "b"},
        {"id": "b", "parent": "a"},
    ]
    with pytest.raises(StructuralError, match="Cyclic"):
        build_tree(records)


def test_flat_self_parent_rejected():
    with pytest.raises(StructuralError, match="own parent"):
        build_tree([{"id": "root"}, {"id": "a", "parent": "a"}])


def test_flat_requires_exactly_one_root():
    with pytest.raises(StructuralError, match="Multiple root"):
        build_tree([{"id": "r1"}, {"id": "r2"}])
    with pytest.raises(StructuralError, match="No root"):
        build_tree([{"id": "a", "parent": "b"}, {"id": "b", "parent": "a"}])


def test_flat_duplicate_reference_rejected():
    with pytest.raises(StructuralError, match="Duplicate node reference"):
        build_tree([{"id": "root"}, {"id": "a", "parent": "root"}, {"id": "a", "parent": "root"}])


def test_unsupported_source_rejected():
    with pytest.raises(StructuralError):
        build_tree("not a tree")


def test_hand_built_tree_with_inconsistent_path_rejected():
    child = Node(id="a", path="/elsewhere/a")
    root = Node(id="root", path="/root", children=(child,))
    with pytest.raises(StructuralError, match="does not match"):
        ResourceTree(root)


def test_nodes_are_immutable(stack_source):
    tree = build_tree(stack_source)
    with pytest.raises(Exception):
        tree.root().type = "changed"


def test_node_tags_and_properties_are_read_only(stack_source):
    tree = build_tree(stack_source)
    bucket = tree.find("/app/assets")
    with pytest.raises(TypeError):
        bucket.tags["Purpose"] = "sneaky"
    with pytest.raises(TypeError):
        bucket.properties["encryption"] = None
    assert bucket.tags == {"Owner": "team-x"}


def test_build_tree_snapshots_nested_properties():
    source = {
        "id": "root",
        "properties": {"encryption": {"kms": "alias/data"}, "rules": [{"enabled": True}]},
    }
    tree = build_tree(source)
    source["properties"]["encryption"]["kms"] = None
    source["properties"]["rules"].append({"enabled": False})

    props = tree.root().properties
    assert props["encryption"]["kms"] == "alias/data"
    assert len(props["rules"]) == 1
    with pytest.raises(TypeError):
        props["encryption"]["kms"] = None


def test_apply_tags_result_cannot_leak_into_input(stack_source):
    tree = build_tree(stack_source)
    tagged = apply_tags(tree, "/app/assets", {"Purpose": "Static assets"})
    with pytest.raises(TypeError):
        tagged.find("/app/events").tags["Leak"] = "y"
    with pytest.raises(TypeError):
        tagged.find("/app/assets").tags["Leak"] = "y"
    assert tree.find("/app/events").tags == {}
    assert tree.find("/app/assets").tags == {"Owner": "team-x"}


def test_dumped_tree_can_be_rebuilt(stack_source):
    tree = build_tree(stack_source)
    rebuilt = build_tree(tree.root().model_dump())
    assert [n.path for n in rebuilt.walk()] == [n.path for n in tree.walk()]
    assert rebuilt.find("/app/assets").tags == {"Owner": "team-x"}
    assert isinstance(tree.root().model_dump()["children"][0]["tags"], dict)


def test_apply_tags_to_subtree_is_pure(stack_source):
    tree = build_tree(stack_source)
    tagged = apply_tags(tree, "/app/assets", {"Purpose": "Static assets", "Owner": "ignored"})

    assert tagged.find("/app/assets").tags == {"Owner": "team-x", "Purpose": "Static assets"}
    assert tagged.find("/app/assets/policy").tags == {"Purpose": "Static assets", "Owner": "ignored"}
    assert tagged.find("/app/events").tags == {}
    # input tree untouched
    assert tree.find("/app/assets").tags == {"Owner": "team-x"}
    assert tree.find("/app/assets/policy").tags == {}


def test_apply_tags_skips_non_taggable_and_filtered_types(stack_source):
    tree = build_tree(stack_source)
    tagged = apply_tags(tree, "/app", {"Project": "Summit"}, exclude_resource_types=["table"])
    assert tagged.find("/app").tags == {"Project": "Summit"}
    assert tagged.find("/app/events").tags == {}
    assert tagged.find("/app/website-url").tags == {}

    only_buckets = apply_tags(tree, "/app", {"Project": "Summit"}, include_resource_types=["storage-bucket"])
    assert only_buckets.find("/app/assets").tags["Project"] == "Summit"
    assert only_buckets.find("/app").tags == {}


def test_apply_tags_overwrite(stack_source):
    tree = build_tree(stack_source)
    tagged = apply_tags(tree, "/app/assets", {"Owner": "team-y"}, overwrite=True)
    assert tagged.find("/app/assets").tags == {"Owner": "team-y"}


def test_apply_tags_unknown_path_and_bad_tags(stack_source):
    tree = build_tree(stack_source)
    with pytest.raises(StructuralError):
        apply_tags(tree, "/app/nowhere", {"Owner": "x"})
    with pytest.raises(ConfigurationError):
        apply_tags(tree, "/app", {"": "x"})
