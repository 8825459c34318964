"""Tests for the remote gateways -- local directory and REST."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from conftest import OWNER, make_note

from notesync.gateway import (
    LocalGateway,
    NotFoundError,
    RemoteError,
    RestGateway,
    TransientError,
    UnconfiguredError,
    create_gateway,
    normalize_for_remote,
)
from notesync.models import RemoteBackendType, RemoteConfig


def _response(status: int = 200, body=None, reason: str = "OK") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.reason = reason
    resp.content = b"" if body is None else b"x"
    resp.json.return_value = body
    return resp


# ---------------------------------------------------------------------------
# Local directory gateway
# ---------------------------------------------------------------------------


@pytest.fixture
def local_gateway(tmp_path: Path) -> LocalGateway:
    target = tmp_path / "shared"
    target.mkdir()
    return LocalGateway(RemoteConfig(local_path=target), tmp_path)


class TestLocalGateway:
    """Directory-backed remote."""

    def test_available_only_when_target_exists(self, tmp_path: Path):
        gw = LocalGateway(RemoteConfig(local_path=tmp_path / "missing"), tmp_path)
        assert gw.available() is False
        with pytest.raises(TransientError):
            gw.fetch_all(OWNER)

    def test_default_target_under_home(self, tmp_path: Path):
        gw = LocalGateway(RemoteConfig(), tmp_path)
        assert gw.target == tmp_path / "remote"

    def test_create_and_fetch(self, local_gateway: LocalGateway):
        local_gateway.create(make_note("n1", title="A", body="x", synced=False))
        fetched = local_gateway.fetch_one("n1", OWNER)
        assert fetched.title == "A"
        assert fetched.synced is None

    def test_create_is_upsert(self, local_gateway: LocalGateway):
        local_gateway.create(make_note("n1", body="v1"))
        local_gateway.create(make_note("n1", body="v2"))
        assert [n.body for n in local_gateway.fetch_all(OWNER)] == ["v2"]

    def test_create_fills_placeholders(self, local_gateway: LocalGateway):
        stored = local_gateway.create(make_note("n1"))
        assert stored.title == "Untitled"
        assert stored.body == " "

    def test_fetch_one_scoped_by_owner(self, local_gateway: LocalGateway):
        local_gateway.create(make_note("n1", title="A"))
        assert local_gateway.fetch_one("n1", "bob") is None
        assert local_gateway.fetch_one("missing", OWNER) is None

    def test_fetch_all_filters_owner_newest_created_first(self, local_gateway: LocalGateway):
        older = make_note("old", title="o")
        newer = make_note("new", title="n").model_copy(
            update={"created_at": make_note("x", modified=5).modified_at}
        )
        local_gateway.create(older)
        local_gateway.create(newer)
        local_gateway.create(make_note("bobs", owner_id="bob", title="b"))
        assert [n.id for n in local_gateway.fetch_all(OWNER)] == ["new", "old"]

    def test_update_changes_mutable_fields_only(self, local_gateway: LocalGateway):
        local_gateway.create(make_note("n1", title="A", body="x"))
        changed = make_note("n1", title="B", body="y", modified=3).model_copy(
            update={"created_at": make_note("z", modified=99).modified_at}
        )
        stored = local_gateway.update(changed)
        assert (stored.title, stored.body) == ("B", "y")
        assert stored.modified_at == changed.modified_at
        assert stored.created_at != changed.created_at

    def test_update_missing_raises_not_found(self, local_gateway: LocalGateway):
        with pytest.raises(NotFoundError):
            local_gateway.update(make_note("ghost", title="x"))

    def test_delete_and_delete_again(self, local_gateway: LocalGateway):
        local_gateway.create(make_note("n1", title="A"))
        local_gateway.delete("n1", OWNER)
        local_gateway.delete("n1", OWNER)
        assert local_gateway.fetch_all(OWNER) == []

    def test_ping(self, local_gateway: LocalGateway, tmp_path: Path):
        ok, message = local_gateway.ping()
        assert ok is True
        assert "successful" in message

        missing = LocalGateway(RemoteConfig(local_path=tmp_path / "nope"), tmp_path)
        ok, message = missing.ping()
        assert ok is False
        assert "not configured" in message

    def test_ids_cannot_escape_the_collection(self, local_gateway: LocalGateway, tmp_path: Path):
        local_gateway.create(make_note("../../outside", title="A"))
        assert not (tmp_path / "outside.json").exists()
        assert not (local_gateway.target / "outside.json").exists()
        assert local_gateway.fetch_one("../../outside", OWNER).title == "A"

    def test_similar_ids_do_not_collide(self, local_gateway: LocalGateway):
        local_gateway.create(make_note("a/b", body="first"))
        local_gateway.create(make_note("a_b", body="second"))
        assert local_gateway.fetch_one("a/b", OWNER).body == "first"
        assert len(local_gateway.fetch_all(OWNER)) == 2


def test_normalize_keeps_real_content():
    note = make_note("n", title="T", body="B")
    assert normalize_for_remote(note) == note


# ---------------------------------------------------------------------------
# REST gateway
# ---------------------------------------------------------------------------


@pytest.fixture
def rest_config(monkeypatch) -> RemoteConfig:
    monkeypatch.setenv("NOTESYNC_API_KEY", "secret")
    return RemoteConfig(
        backend=RemoteBackendType.REST,
        base_url="https://api.example.com/rest/v1/",
    )


@pytest.fixture
def session() -> MagicMock:
    return MagicMock(spec=requests.Session)


@pytest.fixture
def rest(rest_config: RemoteConfig, session: MagicMock) -> RestGateway:
    return RestGateway(rest_config, session=session)


class TestRestGatewayRequests:
    """What goes over the wire."""

    def test_unconfigured_without_key(self, monkeypatch, session: MagicMock):
        monkeypatch.delenv("NOTESYNC_API_KEY", raising=False)
        gw = RestGateway(
            RemoteConfig(backend=RemoteBackendType.REST, base_url="https://x"),
            session=session,
        )
        assert gw.available() is False
        with pytest.raises(UnconfiguredError):
            gw.fetch_all(OWNER)
        session.request.assert_not_called()

    def test_unconfigured_without_url(self, rest_config: RemoteConfig, session: MagicMock):
        gw = RestGateway(rest_config.model_copy(update={"base_url": None}), session=session)
        assert gw.available() is False

    def test_fetch_all_filters_and_orders(self, rest: RestGateway, session: MagicMock):
        row = make_note("n1", title="A").wire()
        session.request.return_value = _response(200, [row])

        notes = rest.fetch_all(OWNER)

        assert [n.id for n in notes] == ["n1"]
        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert method == "GET"
        assert url == "https://api.example.com/rest/v1/notes"
        assert kwargs["params"] == {"owner_id": f"eq.{OWNER}", "order": "created_at.desc"}
        assert kwargs["headers"]["apikey"] == "secret"
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["timeout"] == 10.0

    def test_fetch_one_empty_is_none(self, rest: RestGateway, session: MagicMock):
        session.request.return_value = _response(200, [])
        assert rest.fetch_one("n1", OWNER) is None
        assert session.request.call_args.kwargs["params"] == {
            "id": "eq.n1",
            "owner_id": f"eq.{OWNER}",
        }

    def test_fetch_one_404_is_none(self, rest: RestGateway, session: MagicMock):
        session.request.return_value = _response(404, {"message": "gone"}, "Not Found")
        assert rest.fetch_one("n1", OWNER) is None

    def test_create_sends_wire_form_with_placeholders(self, rest: RestGateway, session: MagicMock):
        note = make_note("n1", synced=False)
        session.request.return_value = _response(201, [normalize_for_remote(note).wire()])

        rest.create(note)

        kwargs = session.request.call_args.kwargs
        assert session.request.call_args.args[0] == "POST"
        assert "synced" not in kwargs["json"]
        assert kwargs["json"]["title"] == "Untitled"
        assert kwargs["json"]["body"] == " "
        assert "return=representation" in kwargs["headers"]["Prefer"]

    def test_update_sends_mutable_fields(self, rest: RestGateway, session: MagicMock):
        note = make_note("n1", title="T", body="B", modified=2)
        session.request.return_value = _response(200, [note.wire()])

        rest.update(note)

        kwargs = session.request.call_args.kwargs
        assert session.request.call_args.args[0] == "PATCH"
        assert set(kwargs["json"]) == {"title", "body", "modified_at"}
        assert kwargs["params"]["id"] == "eq.n1"

    def test_update_with_no_rows_is_not_found(self, rest: RestGateway, session: MagicMock):
        session.request.return_value = _response(200, [])
        with pytest.raises(NotFoundError):
            rest.update(make_note("n1", title="T"))

    def test_delete_404_is_success(self, rest: RestGateway, session: MagicMock):
        session.request.return_value = _response(404, None, "Not Found")
        rest.delete("n1", OWNER)
        assert session.request.call_args.args[0] == "DELETE"


class TestRestGatewayFailures:
    """HTTP and network failures map onto the remote error taxonomy."""

    @pytest.mark.parametrize("status", [500, 502, 503, 429])
    def test_server_errors_are_transient(self, rest: RestGateway, session: MagicMock, status: int):
        session.request.return_value = _response(status, None, "Oops")
        with pytest.raises(TransientError):
            rest.fetch_all(OWNER)

    def test_client_error_is_remote_error(self, rest: RestGateway, session: MagicMock):
        session.request.return_value = _response(400, {"message": "bad column"}, "Bad Request")
        with pytest.raises(RemoteError, match="bad column") as excinfo:
            rest.fetch_all(OWNER)
        assert not isinstance(excinfo.value, TransientError)

    def test_404_on_write_is_not_found(self, rest: RestGateway, session: MagicMock):
        session.request.return_value = _response(404, None, "Not Found")
        with pytest.raises(NotFoundError):
            rest.create(make_note("n1", title="x"))

    def test_connection_error_is_transient(self, rest: RestGateway, session: MagicMock):
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(TransientError):
            rest.fetch_all(OWNER)

    def test_timeout_is_transient(self, rest: RestGateway, session: MagicMock):
        session.request.side_effect = requests.Timeout("slow")
        with pytest.raises(TransientError):
            rest.create(make_note("n1"))

    def test_non_json_success_body_is_transient(self, rest: RestGateway, session: MagicMock):
        resp = _response(200, None)
        resp.content = b"<html>Sign in to the hotel wifi</html>"
        resp.json.side_effect = ValueError("Expecting value")
        session.request.return_value = resp

        with pytest.raises(TransientError, match="non-JSON"):
            rest.fetch_all(OWNER)
        with pytest.raises(TransientError):
            rest.create(make_note("n1", title="x"))

    def test_ping_reports_failure(self, rest: RestGateway, session: MagicMock):
        session.request.side_effect = requests.ConnectionError("refused")
        ok, message = rest.ping()
        assert ok is False
        assert "rest" in message


class TestFactory:
    def test_creates_local(self, tmp_path: Path):
        assert isinstance(create_gateway(RemoteConfig(), tmp_path), LocalGateway)

    def test_creates_rest(self, tmp_path: Path, rest_config: RemoteConfig):
        assert isinstance(create_gateway(rest_config, tmp_path), RestGateway)
