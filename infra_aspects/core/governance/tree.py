# infra_aspects/core/governance/tree.py
"""
Resource Tree – immutable snapshot of declared infrastructure objects.

The tree is built once from declarative records and never mutated afterwards.
Every structural problem (duplicate path, cyclic or dangling parent reference,
malformed identifier) is detected here, before any policy runs, so that a
traversal can never fail half way for structural reasons.

Two source shapes are accepted:
    - a nested mapping, each record carrying its ``children`` inline;
    - a flat sequence of records linked through ``parent`` references.

Tagging a whole subtree is a pure transformation (``apply_tags``) that returns
a new tree. Tags and properties are deep-copied into read-only containers when
a Node is created, so neither the caller nor a policy can change a built tree.
"""

from __future__ import annotations

import copy
from collections import defaultdict
from types import MappingProxyType
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from pydantic import BaseModel, Field, ValidationError, field_serializer, field_validator

from infra_aspects.constants import (
    DEFAULT_NON_TAGGABLE_TYPES,
    MAX_TREE_DEPTH,
    PATH_SEPARATOR,
)
from infra_aspects.core.errors import ConfigurationError, StructuralError

DEFAULT_NODE_TYPE = "construct"

_NODE_FIELDS = {"id", "path", "type", "tags", "taggable", "properties", "children"}
_FLAT_FIELDS = (_NODE_FIELDS - {"children", "path"}) | {"ref", "parent"}

# -----------------------------------------------------------------------------
# Read-only snapshots
# -----------------------------------------------------------------------------
def freeze_value(value: Any) -> Any:
    """Deep-copy ``value`` into read-only containers (mappings, tuples, frozensets)."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze_value(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze_value(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze_value(item) for item in value)
    return copy.deepcopy(value)


def thaw_value(value: Any) -> Any:
    """Inverse of ``freeze_value`` for serialization: plain dicts and lists."""
    if isinstance(value, Mapping):
        return {key: thaw_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [thaw_value(item) for item in value]
    return value


# -----------------------------------------------------------------------------
# Node
# -----------------------------------------------------------------------------
class Node(BaseModel):
    """One declared infrastructure object."""
    id: str = Field(..., description="Identifier, unique among siblings")
    path: str = Field(..., description="Slash-joined identifiers from the root")
    type: str = Field(DEFAULT_NODE_TYPE, description="Provider resource kind, opaque to the engine")
    tags: Dict[str, str] = Field(default_factory=dict, validate_default=True)
    taggable: bool = True
    properties: Dict[str, Any] = Field(
        default_factory=dict, validate_default=True, description="Opaque provider properties"
    )
    children: Tuple[Node, ...] = ()

    class Config:
        frozen = True
        extra = "forbid"

    @field_validator("tags", "properties")
    def snapshot_mapping(cls, v: Dict[str, Any]) -> Mapping[str, Any]:
        return freeze_value(v)

    @field_serializer("tags", "properties")
    def serialize_mapping(self, v: Mapping[str, Any]) -> Dict[str, Any]:
        return thaw_value(v)

    @property
    def is_leaf(self) -> bool:
        return not self.children


Node.model_rebuild()


def join_path(parent_path: str, node_id: str) -> str:
    return f"{parent_path}{PATH_SEPARATOR}{node_id}"


# -----------------------------------------------------------------------------
# Tree
# -----------------------------------------------------------------------------
class ResourceTree:
    """
    Read-only view over a root Node with a path index.

    Construction re-checks the structural invariants so that trees assembled
    by hand (not through ``build_tree``) are held to the same rules.
    """

    def __init__(self, root: Node):
        if not isinstance(root, Node):
            raise StructuralError(f"Tree root must be a Node, got {type(root).__name__}")
        self._root = root
        self._index: Dict[str, Node] = {}

        if root.path != join_path("", root.id):
            raise StructuralError(f"Root path '{root.path}' does not match its id '{root.id}'")

        for node in self.walk():
            if node.path in self._index:
                raise StructuralError(f"Duplicate node path: {node.path}")
            self._index[node.path] = node
            for child in node.children:
                expected = join_path(node.path, child.id)
                if child.path != expected:
                    raise StructuralError(
                        f"Node path '{child.path}' does not match its position '{expected}'"
                    )

    def root(self) -> Node:
        return self._root

    def walk(self) -> Iterator[Node]:
        """Pre-order traversal, children in declaration order."""
        stack: List[Node] = [self._root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def find(self, path: str) -> Optional[Node]:
        return self._index.get(path)

    def __iter__(self) -> Iterator[Node]:
        return self.walk()

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, path: object) -> bool:
        return path in self._index

    def __repr__(self) -> str:
        return f"ResourceTree(root={self._root.path!r}, nodes={len(self)})"


# -----------------------------------------------------------------------------
# Building
# -----------------------------------------------------------------------------
def build_tree(source: Any) -> ResourceTree:
    """
    Build a ResourceTree from declarative records.

    Args:
        source: A nested mapping (root record with inline ``children``) or a
                flat sequence of records linked by ``parent`` references.

    Raises:
        StructuralError: on any malformed input; nothing is built partially.
    """
    if isinstance(source, Mapping):
        root = _build_node(source, parent_path="", depth=0, ancestors=frozenset())
    elif isinstance(source, Sequence) and not isinstance(source, (str, bytes)):
        root = _build_node(_nest_flat_records(source), parent_path="", depth=0, ancestors=frozenset())
    else:
        raise StructuralError(
            f"Tree source must be a mapping or a sequence of records, got {type(source).__name__}"
        )
    return ResourceTree(root)


def _validate_id(node_id: Any, where: str) -> str:
    if not isinstance(node_id, str) or not node_id:
        raise StructuralError(f"Node at {where} has a missing or empty id")
    if PATH_SEPARATOR in node_id:
        raise StructuralError(f"Node id '{node_id}' at {where} must not contain '{PATH_SEPARATOR}'")
    return node_id


def _build_node(record: Any, parent_path: str, depth: int, ancestors: frozenset) -> Node:
    where = parent_path or PATH_SEPARATOR
    if not isinstance(record, Mapping):
        raise StructuralError(f"Child of {where} is not a mapping: {record!r}")
    if id(record) in ancestors:
        raise StructuralError(f"Cyclic node reference below {where}")
    if depth > MAX_TREE_DEPTH:
        raise StructuralError(f"Tree deeper than {MAX_TREE_DEPTH} levels at {where}")

    unknown = set(record) - _NODE_FIELDS
    if unknown:
        raise StructuralError(f"Unknown node fields at {where}: {sorted(unknown)}")

    node_id = _validate_id(record.get("id"), where)
    path = join_path(parent_path, node_id)
    if "path" in record and record["path"] != path:
        raise StructuralError(f"Declared path '{record['path']}' does not match computed path '{path}'")

    raw_children = record.get("children") or ()
    if isinstance(raw_children, (str, bytes, Mapping)) or not isinstance(raw_children, Iterable):
        raise StructuralError(f"Children of {path} must be a sequence")
    inner_ancestors = ancestors | {id(record)}
    children = tuple(
        _build_node(child, path, depth + 1, inner_ancestors) for child in raw_children
    )

    node_type = record.get("type") or DEFAULT_NODE_TYPE
    taggable = record.get("taggable")
    if taggable is None:
        taggable = node_type not in DEFAULT_NON_TAGGABLE_TYPES

    try:
        return Node(
            id=node_id,
            path=path,
            type=node_type,
            tags=dict(record.get("tags") or {}),
            taggable=taggable,
            properties=dict(record.get("properties") or {}),
            children=children,
        )
    except (ValidationError, TypeError, ValueError) as exc:
        raise StructuralError(f"Invalid node {path}: {exc}") from exc


def _nest_flat_records(records: Sequence[Any]) -> Dict[str, Any]:
    """Turn parent-linked records into the nested shape, checking every link."""
    by_ref: Dict[str, Mapping[str, Any]] = {}
    for position, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise StructuralError(f"Record #{position} is not a mapping: {record!r}")
        unknown = set(record) - _FLAT_FIELDS
        if unknown:
            raise StructuralError(f"Unknown fields in record #{position}: {sorted(unknown)}")
        ref = record.get("ref", record.get("id"))
        if not isinstance(ref, str) or not ref:
            raise StructuralError(f"Record #{position} has no usable id/ref")
        if ref in by_ref:
            raise StructuralError(f"Duplicate node reference: {ref}")
        by_ref[ref] = record

    roots: List[str] = []
    children_of: Dict[str, List[str]] = defaultdict(list)
    for ref, record in by_ref.items():
        parent = record.get("parent")
        if parent is None:
            roots.append(ref)
        elif parent == ref:
            raise StructuralError(f"Node '{ref}' is its own parent")
        elif parent not in by_ref:
            raise StructuralError(f"Node '{ref}' references unknown parent '{parent}'")
        else:
            children_of[parent].append(ref)

    if not roots:
        raise StructuralError("No root record found (every record has a parent)")
    if len(roots) > 1:
        raise StructuralError(f"Multiple root records: {roots}")

    reached: Set[str] = set()

    def nest(ref: str, depth: int) -> Dict[str, Any]:
        if depth > MAX_TREE_DEPTH:
            raise StructuralError(f"Tree deeper than {MAX_TREE_DEPTH} levels at '{ref}'")
        reached.add(ref)
        record = by_ref[ref]
        nested = {key: value for key, value in record.items() if key not in ("ref", "parent")}
        nested["children"] = [nest(child, depth + 1) for child in children_of[ref]]
        return nested

    nested_root = nest(roots[0], 0)
    unreached = [ref for ref in by_ref if ref not in reached]
    if unreached:
        raise StructuralError(f"Cyclic parent references among: {unreached}")
    return nested_root


# -----------------------------------------------------------------------------
# Subtree tagging
# -----------------------------------------------------------------------------
def apply_tags(
    tree: ResourceTree,
    path: str,
    tags: Mapping[str, str],
    include_resource_types: Iterable[str] = (),
    exclude_resource_types: Iterable[str] = (),
    overwrite: bool = False,
) -> ResourceTree:
    """
    Return a new tree where every taggable node at or below ``path`` carries ``tags``.

    Tags already present on a node are kept unless ``overwrite`` is set.
    Subtrees outside ``path`` are shared with the input tree.
    """
    if tree.find(path) is None:
        raise StructuralError(f"Cannot tag unknown path: {path}")
    for key, value in tags.items():
        if not isinstance(key, str) or not key or not isinstance(value, str):
            raise ConfigurationError(f"Tags must map non-empty strings to strings, got {key!r}: {value!r}")

    include = set(include_resource_types)
    exclude = set(exclude_resource_types)
    prefix = path + PATH_SEPARATOR

    def eligible(node: Node) -> bool:
        if not node.taggable or node.type in exclude:
            return False
        return not include or node.type in include

    def retag(node: Node) -> Node:
        if node.path == path or node.path.startswith(prefix):
            update: Dict[str, Any] = {"children": tuple(retag(child) for child in node.children)}
            if eligible(node):
                merged = {**node.tags, **tags} if overwrite else {**tags, **node.tags}
                # model_copy skips validation, so snapshot here
                update["tags"] = freeze_value(merged)
            return node.model_copy(update=update)
        if path.startswith(node.path + PATH_SEPARATOR):
            return node.model_copy(update={"children": tuple(retag(child) for child in node.children)})
        return node

    return ResourceTree(retag(tree.root()))


__all__ = [
    "Node",
    "ResourceTree",
    "build_tree",
    "apply_tags",
    "join_path",
    "freeze_value",
    "thaw_value",
    "DEFAULT_NODE_TYPE",
]
