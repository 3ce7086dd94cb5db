from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol

from mat.core.snapshot import HierarchyEntry
from mat.db.models.term import ROOT

NODE_PREFIX = "node_"


class TermLike(Protocol):
    id: int
    name: str
    description: Optional[str]
    parent_id: int
    weight: int


@dataclass
class TreeNode:
    term_id: int
    name: str
    description: str = ""
    weight: int = 0
    parent_id: int = ROOT
    children: list["TreeNode"] = field(default_factory=list)

    @property
    def node_id(self) -> str:
        return f"{NODE_PREFIX}{self.term_id}"


def to_tree(terms: Iterable[TermLike]) -> list[TreeNode]:
    """ Build the nested forest from a flat term set.
    Siblings sort by weight; equal weights keep the order the terms were listed in. Terms whose parent is neither ROOT
    nor in the set are unreachable and left out.
    """
    by_parent: dict[int, list[tuple[int, int, TreeNode]]] = {}
    for order, t in enumerate(terms):
        parent_id = t.parent_id or ROOT
        node = TreeNode(
            term_id=t.id,
            name=t.name,
            description=t.description or "",
            weight=t.weight or 0,
            parent_id=parent_id,
        )
        by_parent.setdefault(parent_id, []).append((node.weight, order, node))

    def attach(parent_id: int, ancestors: frozenset) -> list[TreeNode]:
        group = sorted(by_parent.get(parent_id, []), key=lambda g: (g[0], g[1]))
        out = []
        for _, _, node in group:
            # A cycle in stored data would recurse forever; cut it at the repeat
            if node.term_id in ancestors:
                continue
            node.children = attach(node.term_id, ancestors | {node.term_id})
            out.append(node)
        return out

    return attach(ROOT, frozenset())


def to_flat_hierarchy(tree: Iterable[TreeNode], parent_id: int = ROOT) -> list[HierarchyEntry]:
    """ Flatten a forest in pre-order. Weights are each node's current position among its siblings, so the result
    reflects the visual order of the given tree rather than the stored weights.
    """
    out: list[HierarchyEntry] = []
    for pos, node in enumerate(tree):
        out.append(HierarchyEntry(id=node.term_id, parent_id=parent_id, weight=pos))
        out.extend(to_flat_hierarchy(node.children, node.term_id))
    return out


def to_json(tree: Iterable[TreeNode]) -> list[dict[str, Any]]:
    """ Encode a forest in the node shape the tree endpoint serves. """
    return [
        {
            "id": node.node_id,
            "text": node.name,
            "data": {"term_id": node.term_id, "description": node.description, "weight": node.weight},
            "children": to_json(node.children),
        }
        for node in tree
    ]


def from_json(data: Iterable[dict[str, Any]], parent_id: int = ROOT) -> list[TreeNode]:
    """ Decode the endpoint node shape back into TreeNodes. """
    out = []
    for raw in data or []:
        payload = raw.get("data") or {}
        term_id = payload.get("term_id")
        if term_id is None:
            term_id = _term_id_from_node_id(raw.get("id"))
        node = TreeNode(
            term_id=int(term_id),
            name=raw.get("text", ""),
            description=payload.get("description") or "",
            weight=int(payload.get("weight") or 0),
            parent_id=parent_id,
        )
        node.children = from_json(raw.get("children") or [], node.term_id)
        out.append(node)
    return out


def parent_options(tree: Iterable[TreeNode], prefix: str = "-- ") -> list[tuple[int, str]]:
    """ Depth-first (term_id, label) pairs for a parent picker, each level indented by one more prefix. """
    options: list[tuple[int, str]] = []

    def walk(nodes, indent):
        for node in nodes:
            options.append((node.term_id, indent + node.name))
            walk(node.children, indent + prefix)

    walk(tree, "")
    return options


def _term_id_from_node_id(node_id: Any) -> int:
    text = str(node_id or "")
    if text.startswith(NODE_PREFIX):
        text = text[len(NODE_PREFIX):]
    try:
        return int(text)
    except ValueError:
        raise ValueError(f"Cannot read a term id from node id {node_id!r}") from None
