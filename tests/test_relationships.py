import pytest

from sixgate.services import entities, relationships
from sixgate.store import RowStore


class UntouchableStore(RowStore):
    def select(self, table, filters, limit=None, *, order_by=None):
        raise AssertionError("store must not be touched")

    def insert(self, table, row):
        raise AssertionError("store must not be touched")


@pytest.fixture
def graph(server_db, tenants):
    ids = {}
    for name in ("A", "B", "C", "D", "E", "X"):
        ids[name] = entities.create_entity(tenants.a, "node", name)["entity"]["id"]

    def link(src, dst, kind="refers"):
        result = relationships.create_relationship(tenants.a, ids[src], ids[dst], kind)
        assert result["status"] == "created"

    link("A", "B")
    link("A", "C", "owns")
    link("B", "D")
    link("C", "E")
    link("X", "A")
    return ids


def _pairs(result, ids):
    names = {value: key for key, value in ids.items()}
    return [
        (names[edge["from_entity_id"]], names[edge["to_entity_id"]], edge["level"])
        for edge in result["relationships"]
    ]


def test_depth_one_outgoing(graph, tenants):
    result = relationships.search_relationships(tenants.a, graph["A"])
    assert result["status"] == "ok"
    assert sorted(_pairs(result, graph)) == [("A", "B", 1), ("A", "C", 1)]


def test_depth_two_appends_next_hop(graph, tenants):
    result = relationships.search_relationships(tenants.a, graph["A"], depth=2)
    assert sorted(_pairs(result, graph)) == [
        ("A", "B", 1),
        ("A", "C", 1),
        ("B", "D", 2),
        ("C", "E", 2),
    ]
    assert result["level_counts"] == {"1": 2, "2": 2}


def test_level_two_ignores_type_filter(graph, tenants):
    result = relationships.search_relationships(tenants.a, graph["A"], relationship_type="owns", depth=2)
    assert _pairs(result, graph) == [("A", "C", 1), ("C", "E", 2)]


def test_incoming_and_both(graph, tenants):
    incoming = relationships.search_relationships(tenants.a, graph["A"], direction="incoming")
    assert _pairs(incoming, graph) == [("X", "A", 1)]

    both = relationships.search_relationships(tenants.a, graph["A"], direction="both")
    assert sorted(_pairs(both, graph)) == [("A", "B", 1), ("A", "C", 1), ("X", "A", 1)]


def test_level_two_edges_are_not_deduplicated(server_db, tenants):
    a = entities.create_entity(tenants.a, "node", "A")["entity"]["id"]
    b = entities.create_entity(tenants.a, "node", "B")["entity"]["id"]
    relationships.create_relationship(tenants.a, a, b, "peer")
    relationships.create_relationship(tenants.a, b, a, "peer")

    result = relationships.search_relationships(tenants.a, a, direction="both", depth=2)
    back_edges = [edge for edge in result["relationships"] if edge["from_entity_id"] == b]
    assert [edge["level"] for edge in back_edges] == [1, 2]
    assert back_edges[0]["id"] == back_edges[1]["id"]


def test_depth_over_limit_rejected_before_store_access(tenants):
    result = relationships.search_relationships(tenants.a, "any-id", depth=3, store=UntouchableStore())
    assert result["guardrail"] == "FANOUT_LIMIT"
    assert "page" in result["correction"]
    assert result["details"]["max_depth"] == 2


def test_invalid_direction(tenants):
    result = relationships.search_relationships(tenants.a, "any-id", direction="sideways", store=UntouchableStore())
    assert result["field"] == "direction"


def test_start_entity_must_belong_to_tenant(graph, tenants):
    result = relationships.search_relationships(tenants.b, graph["A"])
    assert result["guardrail"] == "ORG_SCOPE_VIOLATION"


def test_create_relationship_guards(server_db, tenants):
    a = entities.create_entity(tenants.a, "node", "A")["entity"]["id"]
    z = entities.create_entity(tenants.b, "node", "Z")["entity"]["id"]

    self_edge = relationships.create_relationship(tenants.a, a, a, "self")
    assert self_edge["error_type"] == "invalid_value"

    cross = relationships.create_relationship(tenants.a, a, z, "refers")
    assert cross["guardrail"] == "ORG_SCOPE_VIOLATION"
