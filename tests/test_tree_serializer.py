from dataclasses import dataclass
from typing import Optional

import pytest

from mat.core.tree_serializer import (
    TreeNode, to_tree, to_flat_hierarchy, to_json, from_json, parent_options, NODE_PREFIX
)
from mat.db.models import ROOT


@dataclass
class T:
    """ Plain stand-in for a stored term. """
    id: int
    name: str
    parent_id: int = ROOT
    weight: int = 0
    description: Optional[str] = None


@pytest.fixture()
def terms():
    # Listed in id order, weights deliberately out of order
    return [
        T(1, "Events", weight=1),
        T(2, "Directories", weight=0),
        T(3, "2024", parent_id=1, weight=1),
        T(4, "2023", parent_id=1, weight=0),
        T(5, "Summer", parent_id=3, weight=0, description="June to August"),
    ]


def _shape(nodes):
    return [(n.name, _shape(n.children)) for n in nodes]


def test_to_tree_nests_and_sorts_by_weight(terms):
    tree = to_tree(terms)
    assert _shape(tree) == [
        ("Directories", []),
        ("Events", [("2023", []), ("2024", [("Summer", [])])]),
    ]
    summer = tree[1].children[1].children[0]
    assert summer.parent_id == 3
    assert summer.description == "June to August"


def test_equal_weights_keep_listing_order():
    tree = to_tree([T(7, "b"), T(3, "a"), T(9, "c")])
    assert [n.name for n in tree] == ["b", "a", "c"]


def test_orphans_are_omitted():
    tree = to_tree([T(1, "Root"), T(2, "Lost", parent_id=99), T(3, "Under lost", parent_id=2)])
    assert _shape(tree) == [("Root", [])]


def test_stored_cycle_does_not_recurse_forever():
    # 1 -> 2 -> 1 hangs off nothing reachable; 3 is a normal root
    tree = to_tree([T(1, "A", parent_id=2), T(2, "B", parent_id=1), T(3, "C")])
    assert _shape(tree) == [("C", [])]


def test_to_tree_is_idempotent(terms):
    assert to_tree(terms) == to_tree(terms)


def test_flat_hierarchy_reproduces_parents_and_positions(terms):
    flat = to_flat_hierarchy(to_tree(terms))
    # Pre-order with weights as sibling positions
    assert [(e.id, e.parent_id, e.weight) for e in flat] == [
        (2, ROOT, 0),
        (1, ROOT, 1),
        (4, 1, 0),
        (3, 1, 1),
        (5, 3, 0),
    ]


def test_flat_hierarchy_renumbers_gapped_weights():
    flat = to_flat_hierarchy(to_tree([T(1, "a", weight=5), T(2, "b", weight=10), T(3, "c", weight=10)]))
    assert [(e.id, e.weight) for e in flat] == [(1, 0), (2, 1), (3, 2)]


def test_json_node_shape(terms):
    data = to_json(to_tree(terms))
    events = data[1]
    assert events["id"] == f"{NODE_PREFIX}1"
    assert events["text"] == "Events"
    assert events["data"] == {"term_id": 1, "description": "", "weight": 1}
    assert [c["id"] for c in events["children"]] == ["node_4", "node_3"]


def test_json_round_trip(terms):
    tree = to_tree(terms)
    assert from_json(to_json(tree)) == tree


def test_from_json_reads_term_id_from_node_id():
    nodes = from_json([{"id": "node_12", "text": "Only id", "children": [{"id": "node_13", "text": "Kid"}]}])
    assert nodes[0].term_id == 12
    assert nodes[0].children[0].term_id == 13
    assert nodes[0].children[0].parent_id == 12


def test_from_json_bad_node_id():
    with pytest.raises(ValueError):
        from_json([{"id": "folder_x", "text": "?"}])


def test_parent_options_indent_by_depth(terms):
    assert parent_options(to_tree(terms)) == [
        (2, "Directories"),
        (1, "Events"),
        (4, "-- 2023"),
        (3, "-- 2024"),
        (5, "-- -- Summer"),
    ]


def test_tree_node_id():
    assert TreeNode(term_id=8, name="x").node_id == "node_8"
