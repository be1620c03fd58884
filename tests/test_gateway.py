"""Session gateway routing over a real websocket (FastAPI TestClient)."""
import pytest
from fastapi.testclient import TestClient

from tableread.app import create_app
from tableread.catalogue import ScriptCatalogue
from tableread.config import Settings
from tableread.constants import CODE_ALPHABET, KICK_REASON

from .conftest import script_from


@pytest.fixture
def catalogue():
    return ScriptCatalogue([
        script_from([
            {"type": "dialogue", "character": "Lead", "text": "First line."},
            {"type": "dialogue", "character": "Sidekick", "text": "Second line."},
        ], title="Two Hander"),
        script_from([
            {"type": "dialogue", "character": "Solo", "text": "Alone."},
        ], characters=("Solo",), title="Monologue"),
    ])


@pytest.fixture
def client(tmp_path, catalogue):
    settings = Settings(static_dir=tmp_path / "no-frontend", auto_advance_delay=0.05)
    app = create_app(settings, catalogue)
    with TestClient(app) as c:
        yield c


def _drain(ws, *types):
    """Receive one message per expected type, asserting the order."""
    received = [ws.receive_json() for _ in types]
    assert [m["type"] for m in received] == list(types)
    return received


def _assert_silent(ws):
    """Nothing was queued for *ws*: the next reply is the pong to our ping."""
    ws.send_json({"type": "ping"})
    assert ws.receive_json() == {"type": "pong"}


def _create(client, name="Amy", script_index=0):
    cm = client.websocket_connect("/ws")
    ws = cm.__enter__()
    ws.send_json({"type": "create_room", "name": name, "script_index": script_index})
    reply = ws.receive_json()
    assert reply["type"] == "room_created"
    return cm, ws, reply


def _join(client, code, name):
    cm = client.websocket_connect("/ws")
    ws = cm.__enter__()
    ws.send_json({"type": "join_room", "code": code, "name": name})
    reply = ws.receive_json()
    assert reply["type"] == "joined"
    return cm, ws, reply


def test_ping_gets_pong(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_create_room_replies_with_code_and_summary(client):
    cm, host, reply = _create(client, script_index=1)
    try:
        assert len(reply["code"]) == 4
        assert all(ch in CODE_ALPHABET for ch in reply["code"])
        assert reply["you"]["name"] == "Amy"
        assert reply["script"]["title"] == "Monologue"
        assert reply["script"]["characters"] == [{"name": "Solo", "difficulty": None, "line_count": 1}]
    finally:
        cm.__exit__(None, None, None)


def test_create_room_falls_back_to_first_script(client):
    cm, host, reply = _create(client, script_index=42)
    try:
        assert reply["script"]["title"] == "Two Hander"
    finally:
        cm.__exit__(None, None, None)


def test_validation_errors_go_to_requester_only(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "create_room", "name": "   "})
        assert ws.receive_json() == {"type": "error", "request": "create_room", "message": "Please enter your name."}
        ws.send_json({"type": "join_room", "code": "ZZZZ", "name": "Ben"})
        reply = ws.receive_json()
        assert reply["type"] == "error"
        assert reply["message"] == "Room not found. Check your code and try again."
        ws.send_json({"type": "join_room", "code": {"not": "a code"}, "name": "Ben"})
        assert ws.receive_json()["type"] == "error"


def test_join_broadcasts_roster_and_assignments(client):
    host_cm, host, created = _create(client)
    code = created["code"]
    ben_cm, ben, joined = _join(client, code.lower(), "  Ben ")
    try:
        assert joined["ok"] is True
        assert joined["name"] == "Ben"
        assert joined["assignments"] == {"Lead": None, "Sidekick": None}

        for ws in (host, ben):
            player_list, assignments, complete = _drain(ws, "player_list", "assignments", "casting_complete")
            assert [(p["name"], p["is_host"]) for p in player_list["players"]] == [("Amy", True), ("Ben", False)]
            assert complete["complete"] is False
    finally:
        ben_cm.__exit__(None, None, None)
        host_cm.__exit__(None, None, None)


def test_full_performance_flow(client):
    host_cm, host, created = _create(client)
    ben_cm, ben, _ = _join(client, created["code"], "Ben")
    try:
        _drain(host, "player_list", "assignments", "casting_complete")
        _drain(ben, "player_list", "assignments", "casting_complete")

        host.send_json({"type": "claim_character", "character": "Lead"})
        _drain(host, "assignments", "casting_complete")
        _drain(ben, "assignments", "casting_complete")

        # Only the host may start, and only with a full cast; both are silent drops.
        ben.send_json({"type": "start_performance"})
        host.send_json({"type": "start_performance"})
        _assert_silent(ben)
        _assert_silent(host)

        ben.send_json({"type": "claim_character", "character": "Sidekick"})
        _, complete = _drain(ben, "assignments", "casting_complete")
        assert complete["complete"] is True
        _drain(host, "assignments", "casting_complete")

        host.send_json({"type": "start_performance"})
        started, beat = _drain(ben, "performance_started", "beat")
        assert started["title"] == "Two Hander"
        assert beat["index"] == 0 and beat["total"] == 2
        assert beat["active_player"] == "Amy"
        _drain(host, "performance_started", "beat")

        # Ben does not own beat 0.
        ben.send_json({"type": "beat_done"})
        _assert_silent(ben)

        host.send_json({"type": "beat_done"})
        (beat,) = _drain(ben, "beat")
        assert beat["index"] == 1 and beat["active_player"] == "Ben"
        _drain(host, "beat")

        ben.send_json({"type": "beat_done"})
        _drain(ben, "performance_ended")
        _drain(host, "performance_ended")

        # Joining a finished room is refused.
        with client.websocket_connect("/ws") as late:
            late.send_json({"type": "join_room", "code": created["code"], "name": "Cat"})
            assert late.receive_json()["message"] == "Performance already started."
            # The room state is reported ahead of a missing name.
            late.send_json({"type": "join_room", "code": created["code"], "name": "  "})
            assert late.receive_json()["message"] == "Performance already started."
    finally:
        ben_cm.__exit__(None, None, None)
        host_cm.__exit__(None, None, None)


def test_privileged_actions_from_player_are_dropped(client):
    host_cm, host, created = _create(client)
    ben_cm, ben, _ = _join(client, created["code"], "Ben")
    try:
        _drain(host, "player_list", "assignments", "casting_complete")
        _drain(ben, "player_list", "assignments", "casting_complete")

        # A client-declared role is ignored.
        ben.send_json({"type": "force_assign", "character": "Lead", "to_player": "Ben", "role": "host"})
        ben.send_json({"type": "boot_player", "player_name": "Ben"})
        _assert_silent(ben)
        _assert_silent(host)
    finally:
        ben_cm.__exit__(None, None, None)
        host_cm.__exit__(None, None, None)


def test_force_assign_by_name_and_clear(client):
    host_cm, host, created = _create(client)
    ben_cm, ben, _ = _join(client, created["code"], "Ben")
    try:
        _drain(host, "player_list", "assignments", "casting_complete")
        _drain(ben, "player_list", "assignments", "casting_complete")

        host.send_json({"type": "force_assign", "character": "Sidekick", "to_player": "Ben"})
        assignments, _ = _drain(ben, "assignments", "casting_complete")
        assert assignments["assignments"] == {"Lead": None, "Sidekick": "Ben"}
        _drain(host, "assignments", "casting_complete")

        host.send_json({"type": "force_assign", "character": "Sidekick", "to_player": "Nobody"})
        _assert_silent(host)

        # No target key at all names nobody, so the assignment stands.
        host.send_json({"type": "force_assign", "character": "Sidekick"})
        _assert_silent(host)
        _assert_silent(ben)

        host.send_json({"type": "force_assign", "character": "Sidekick", "to_player": None})
        assignments, _ = _drain(host, "assignments", "casting_complete")
        assert assignments["assignments"]["Sidekick"] is None
        _drain(ben, "assignments", "casting_complete")
    finally:
        ben_cm.__exit__(None, None, None)
        host_cm.__exit__(None, None, None)


def test_boot_sends_addressed_kick(client):
    host_cm, host, created = _create(client)
    ben_cm, ben, _ = _join(client, created["code"], "Ben")
    cat_cm, cat, _ = _join(client, created["code"], "Cat")
    try:
        _drain(host, "player_list", "assignments", "casting_complete")
        _drain(ben, "player_list", "assignments", "casting_complete")
        _drain(host, "player_list", "assignments", "casting_complete")
        _drain(ben, "player_list", "assignments", "casting_complete")
        _drain(cat, "player_list", "assignments", "casting_complete")

        host.send_json({"type": "boot_player", "player_name": "Ben"})
        assert ben.receive_json() == {"type": "kicked", "reason": KICK_REASON}

        player_list, _, _ = _drain(cat, "player_list", "assignments", "casting_complete")
        assert [p["name"] for p in player_list["players"]] == ["Amy", "Cat"]
        _drain(host, "player_list", "assignments", "casting_complete")
        _assert_silent(cat)
    finally:
        cat_cm.__exit__(None, None, None)
        ben_cm.__exit__(None, None, None)
        host_cm.__exit__(None, None, None)


def test_host_disconnect_closes_room(client):
    host_cm, host, created = _create(client)
    ben_cm, ben, _ = _join(client, created["code"], "Ben")
    try:
        _drain(ben, "player_list", "assignments", "casting_complete")
        host_cm.__exit__(None, None, None)

        assert ben.receive_json() == {"type": "host_left"}
        # The room is gone: actions are dropped and the code no longer resolves.
        ben.send_json({"type": "claim_character", "character": "Lead"})
        _assert_silent(ben)
        assert client.get("/healthz").json() == {"status": "ok", "rooms": 0}

        # A stranded player may start over in a new room.
        ben.send_json({"type": "create_room", "name": "Ben"})
        assert ben.receive_json()["type"] == "room_created"
    finally:
        ben_cm.__exit__(None, None, None)


def test_connection_cannot_hold_two_rooms(client):
    host_cm, host, created = _create(client)
    try:
        host.send_json({"type": "create_room", "name": "Amy"})
        assert host.receive_json()["message"] == "You are already in a room."
        host.send_json({"type": "join_room", "code": created["code"], "name": "Amy"})
        assert host.receive_json()["message"] == "You are already in a room."
    finally:
        host_cm.__exit__(None, None, None)


def test_junk_frames_are_ignored(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        ws.send_bytes(b"\x00\x01")
        ws.send_json(["a", "list"])
        ws.send_json({"type": "mystery"})
        ws.send_json({"type": "beat_done"})
        _assert_silent(ws)


def test_script_listing_endpoint(client):
    listings = client.get("/api/scripts").json()
    assert [s["title"] for s in listings] == ["Two Hander", "Monologue"]
    first = listings[0]
    assert first["id"] == 0
    assert first["beat_count"] == 2
    assert first["characters"] == [
        {"name": "Lead", "line_count": 1, "difficulty": None},
        {"name": "Sidekick", "line_count": 1, "difficulty": None},
    ]


def test_empty_catalogue_reports_no_scripts(tmp_path):
    app = create_app(Settings(static_dir=tmp_path / "none"), ScriptCatalogue([]))
    with TestClient(app) as c, c.websocket_connect("/ws") as ws:
        ws.send_json({"type": "create_room", "name": "Amy"})
        assert ws.receive_json()["message"] == "No scripts available."


def test_static_frontend_served_without_cache(tmp_path, catalogue):
    static = tmp_path / "public"
    static.mkdir()
    (static / "index.html").write_text("<h1>Table Read</h1>")
    app = create_app(Settings(static_dir=static), catalogue)
    with TestClient(app) as c:
        resp = c.get("/")
        assert resp.status_code == 200
        assert "Table Read" in resp.text
        assert resp.headers["cache-control"] == "no-cache, no-store, must-revalidate"
        # API routes still win over the catch-all mount.
        assert c.get("/api/scripts").status_code == 200


def test_binary_frame_keeps_room_open(client):
    host_cm, host, created = _create(client)
    try:
        host.send_bytes(b"\x89PNG")
        _assert_silent(host)
        assert client.get("/healthz").json() == {"status": "ok", "rooms": 1}
        host.send_json({"type": "create_room", "name": "Amy"})
        assert host.receive_json()["message"] == "You are already in a room."
    finally:
        host_cm.__exit__(None, None, None)
