from unittest import mock

import pytest
import requests

from mat.core.errors import ValidationError, NotFound, CycleError, ConflictError, TransportError
from mat.db.models import ROOT
from mat.sync.client import HttpTransport, SyncClient, DEFAULT_TIMEOUT_S


@pytest.fixture()
def vocab(make_vocabulary):
    return make_vocabulary("directory", "Directories")


# --- In-process transport

def test_round_trip_through_endpoint(vocab, client):
    a = client.create_term("directory", "A", description="first")
    b = client.create_term("directory", "B", parent_id=a)
    c = client.create_term("directory", "C")

    tree = client.list_tree("directory")
    assert [(n.term_id, n.name) for n in tree] == [(a, "A"), (c, "C")]
    assert [n.term_id for n in tree[0].children] == [b]
    assert tree[0].description == "first"

    data = client.get_term(a)
    assert (data["name"], data["vid"], data["version"]) == ("A", "directory", 1)


def test_update_move_delete(vocab, client, store):
    a = client.create_term("directory", "A")
    b = client.create_term("directory", "B")

    client.update_term(a, name="Renamed", version=1)
    assert store.get_term(a).name == "Renamed"

    client.move_term(b, ROOT, {b: 0, a: 1})
    assert [store.get_term(t).weight for t in (b, a)] == [0, 1]

    client.delete_term(b)
    assert [t.id for t in store.list_terms("directory")] == [a]


def test_apply_hierarchy_returns_changed(vocab, client, store):
    a = client.create_term("directory", "A")
    b = client.create_term("directory", "B")
    value = f'{{"selected_id":{b},"hierarchy":[{{"id":{b},"parent_id":{a},"weight":0}}]}}'
    assert client.apply_hierarchy("directory", value) == 1
    assert store.get_term(b).parent_id == a


@pytest.mark.parametrize("call, exc", [
    (lambda c, ids: c.create_term("directory", " "), ValidationError),
    (lambda c, ids: c.create_term("missing", "X"), NotFound),
    (lambda c, ids: c.list_tree("missing"), NotFound),
    (lambda c, ids: c.get_term(999), NotFound),
    (lambda c, ids: c.move_term(ids[0], ids[1], {}), CycleError),
    (lambda c, ids: c.update_term(ids[0], name="x", version=7), ConflictError),
])
def test_failures_map_to_domain_errors(vocab, client, call, exc):
    parent = client.create_term("directory", "Parent")
    child = client.create_term("directory", "Child", parent_id=parent)
    with pytest.raises(exc):
        call(client, (parent, child))


# --- HTTP transport

def _response(status, body=None, json_error=False):
    resp = mock.Mock(status_code=status)
    if json_error:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


@pytest.fixture()
def http_session():
    return mock.Mock(spec=requests.Session)


def test_http_builds_urls_and_timeout(http_session):
    http_session.request.return_value = _response(200, {"success": True, "id": "node_5", "term_id": 5})
    client = SyncClient(HttpTransport("http://localhost:8765/", session=http_session))

    assert client.create_term("event", "Weddings") == 5

    http_session.request.assert_called_once_with(
        "POST", "http://localhost:8765/directory/create-term",
        json={"name": "Weddings", "description": "", "parent": 0, "weight": None, "vocabulary_id": "event",
              "parent_id": 0},
        timeout=DEFAULT_TIMEOUT_S,
    )


def test_http_get_routes(http_session):
    http_session.request.return_value = _response(200, [])
    transport = HttpTransport("http://srv", timeout=2.5, session=http_session)
    assert SyncClient(transport).list_tree("event") == []
    http_session.request.assert_called_with("GET", "http://srv/taxonomy/event/api", json=None, timeout=2.5)

    SyncClient(transport).list_tree("a b/c")
    http_session.request.assert_called_with("GET", "http://srv/taxonomy/a%20b%2Fc/api", json=None, timeout=2.5)


def test_http_move_sends_string_keys(http_session):
    http_session.request.return_value = _response(200, {"success": True})
    SyncClient(HttpTransport("http://srv", session=http_session)).move_term(3, 0, {3: 0, 4: 1})
    _, kwargs = http_session.request.call_args
    assert kwargs["json"] == {"term_id": 3, "parent_id": 0, "weights": {"3": 0, "4": 1}}


def test_http_timeout_is_transport_error(http_session):
    http_session.request.side_effect = requests.Timeout("slow")
    client = SyncClient(HttpTransport("http://srv", timeout=1, session=http_session))
    with pytest.raises(TransportError, match="timed out"):
        client.delete_term(1)


def test_http_connection_error_is_transport_error(http_session):
    http_session.request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(TransportError):
        SyncClient(HttpTransport("http://srv", session=http_session)).get_term(1)


def test_http_non_json_body_is_transport_error(http_session):
    http_session.request.return_value = _response(502, json_error=True)
    with pytest.raises(TransportError, match="502"):
        SyncClient(HttpTransport("http://srv", session=http_session)).get_term(1)


@pytest.mark.parametrize("status, body, exc", [
    (409, {"success": False, "error": "cycle!", "code": "cycle"}, CycleError),
    (409, {"success": False, "error": "stale"}, ConflictError),
    (404, {"success": False, "error": "gone"}, NotFound),
    (400, {"success": False, "error": "bad"}, ValidationError),
    (500, {"success": False, "error": "boom"}, TransportError),
    (200, {"success": False, "error": "soft failure", "code": "validation"}, ValidationError),
])
def test_http_failure_mapping(http_session, status, body, exc):
    http_session.request.return_value = _response(status, body)
    with pytest.raises(exc, match=body["error"]):
        SyncClient(HttpTransport("http://srv", session=http_session)).delete_term(1)


def test_unknown_operation(http_session):
    with pytest.raises(ValueError):
        HttpTransport("http://srv", session=http_session).call("explode")
