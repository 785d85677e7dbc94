"""
tests/test_router.py — Role registry and message routing.
"""

import json

import pytest

from panel_relay.core import MessageRouter, Role, RouteOutcome

from conftest import FakeServerSocket


async def _join(router: MessageRouter, role: str | None = None):
    sock = FakeServerSocket()
    conn = await router.connect(sock)
    if role:
        await router.handle(conn, json.dumps({"type": "client.register", "clientType": role}))
    sock.sent.clear()
    return sock, conn


# ─── Connect / disconnect ─────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_connect_sends_hello(router):
    sock = FakeServerSocket()
    conn = await router.connect(sock)
    hello = sock.frames()[0]
    assert hello["type"] == "server.hello"
    assert hello["clientId"] == conn.id
    assert isinstance(hello["timestamp"], int)
    assert conn.role is Role.UNKNOWN
    assert conn.id in router.registry


@pytest.mark.asyncio
async def test_disconnect_removes_connection(router):
    _, conn = await _join(router, "remote")
    router.disconnect(conn)
    assert conn.id not in router.registry
    assert len(router.registry) == 0
    router.disconnect(conn)


# ─── Registration ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_remote_register_requests_full_state_from_every_main(router):
    main_a, _ = await _join(router, "main")
    main_b, _ = await _join(router, "main")
    remote, conn = await _join(router)

    outcome = await router.handle(conn, json.dumps({"type": "client.register", "clientType": "remote"}))

    assert outcome is RouteOutcome.REGISTERED
    assert conn.role is Role.REMOTE
    for main in (main_a, main_b):
        assert main.frames() == [{"type": "server.requestFullState", "targetClientId": conn.id}]
    assert remote.sent == []


@pytest.mark.asyncio
async def test_role_is_write_once(router):
    main, conn = await _join(router, "main")
    other_main, _ = await _join(router, "main")

    outcome = await router.handle(conn, json.dumps({"type": "client.register", "clientType": "remote"}))

    assert outcome is RouteOutcome.REJECTED
    assert conn.role is Role.MAIN
    assert other_main.sent == []

    remote, remote_conn = await _join(router, "remote")
    main.sent.clear()
    await router.handle(remote_conn, json.dumps({"type": "global.stopAll"}))
    assert main.types() == ["global.stopAll"]


@pytest.mark.asyncio
async def test_invalid_client_type_leaves_role_unknown(router):
    sock, conn = await _join(router)
    outcome = await router.handle(conn, json.dumps({"type": "client.register", "clientType": "tablet"}))
    assert outcome is RouteOutcome.MALFORMED
    assert conn.role is Role.UNKNOWN
    assert sock.types() == ["error"]
    assert conn.assign_role(Role.REMOTE)


@pytest.mark.asyncio
async def test_main_joining_late_serves_waiting_remotes(router):
    await _join(router, "remote")
    main, conn = await _join(router)
    await router.handle(conn, json.dumps({"type": "client.register", "clientType": "main"}))
    assert main.frames() == [{"type": "server.requestFullState"}]


@pytest.mark.asyncio
async def test_remote_can_request_resync(router):
    main, _ = await _join(router, "main")
    _, remote_conn = await _join(router, "remote")
    main.sent.clear()

    outcome = await router.handle(remote_conn, json.dumps({"type": "server.requestFullState"}))

    assert outcome is RouteOutcome.DELIVERED
    assert main.frames() == [{"type": "server.requestFullState", "targetClientId": remote_conn.id}]


# ─── Routing ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_remote_command_reaches_every_main_and_no_remote(router):
    mains = [await _join(router, "main") for _ in range(2)]
    remotes = [await _join(router, "remote") for _ in range(2)]
    for sock, _ in mains:
        sock.sent.clear()
    sender_sock, sender = remotes[0]

    raw = json.dumps({"type": "panel.toggle", "panel": "panel-1"})
    outcome = await router.handle(sender, raw)

    assert outcome is RouteOutcome.DELIVERED
    for sock, _ in mains:
        assert sock.sent == [raw]
    for sock, _ in remotes:
        assert sock.sent == []


@pytest.mark.asyncio
async def test_main_event_reaches_remotes_verbatim(router):
    main, main_conn = await _join(router, "main")
    remote_a, _ = await _join(router, "remote")
    remote_b, _ = await _join(router, "remote")
    main.sent.clear()

    raw = '{"type": "panel_created", "id": "panel-1", "title": "Bass", "code": "", "extra": {"x": 1}}'
    outcome = await router.handle(main_conn, raw)

    assert outcome is RouteOutcome.DELIVERED
    assert remote_a.sent == [raw]
    assert remote_b.sent == [raw]
    assert main.sent == []


@pytest.mark.asyncio
async def test_main_event_from_remote_is_rejected(router):
    main, _ = await _join(router, "main")
    other, _ = await _join(router, "remote")
    _, rogue = await _join(router, "remote")
    main.sent.clear()

    outcome = await router.handle(rogue, json.dumps({"type": "full_state", "panels": []}))

    assert outcome is RouteOutcome.REJECTED
    assert main.sent == []
    assert other.sent == []


@pytest.mark.asyncio
async def test_unknown_type_falls_back_to_main(router):
    main, _ = await _join(router, "main")
    remote, remote_conn = await _join(router, "remote")
    main.sent.clear()

    outcome = await router.handle(remote_conn, json.dumps({"type": "panel.explode"}))

    assert outcome is RouteOutcome.UNROUTABLE
    assert main.types() == ["panel.explode"]
    assert remote.sent == []


@pytest.mark.asyncio
async def test_command_without_main_is_dropped_silently(router):
    remote, conn = await _join(router, "remote")
    outcome = await router.handle(conn, json.dumps({"type": "global.stopAll"}))
    assert outcome is RouteOutcome.NO_AUTHORITY
    assert remote.sent == []


@pytest.mark.asyncio
async def test_metronome_is_forwarded_to_remotes(router):
    _, main_conn = await _join(router, "main")
    remote, _ = await _join(router, "remote")
    for step in range(4):
        await router.handle(main_conn, json.dumps({"type": "metronome.step", "step": step}))
    assert [f["step"] for f in remote.frames()] == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_closed_sockets_are_skipped(router):
    _, main_conn = await _join(router, "main")
    alive, _ = await _join(router, "remote")
    dead, _ = await _join(router, "remote")
    dead.close()

    sent = await router.broadcast_raw('{"type": "state.update"}', role=Role.REMOTE)

    assert sent == 1
    assert alive.types() == ["state.update"]
    assert dead.sent == []


@pytest.mark.asyncio
async def test_failing_send_does_not_break_fan_out(router):
    class Exploding(FakeServerSocket):
        async def send_text(self, data):
            raise ConnectionResetError("gone")

    _, main_conn = await _join(router, "main")
    boom = Exploding()
    boom_conn = await router.connect(boom)
    boom_conn.assign_role(Role.REMOTE)
    ok, _ = await _join(router, "remote")

    outcome = await router.handle(main_conn, json.dumps({"type": "panel_deleted", "panel": "p1"}))

    assert outcome is RouteOutcome.DELIVERED
    assert ok.types() == ["panel_deleted"]


# ─── Malformed input ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["{oops", '{"panel": 1}', "[]", b"\x00\x01"])
async def test_malformed_frames_answer_error_and_keep_connection(router, raw):
    main, _ = await _join(router, "main")
    sock, conn = await _join(router, "remote")

    outcome = await router.handle(conn, raw)

    assert outcome is RouteOutcome.MALFORMED
    assert sock.types() == ["error"]
    assert main.sent == []
    assert conn.id in router.registry

    await router.handle(conn, json.dumps({"type": "global.updateAll"}))
    assert main.types() == ["global.updateAll"]


# ─── Façade sync ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_sync_panels_replaces_facade_table(router):
    router.panels.create("Old")
    _, conn = await _join(router, "main")
    panels = [
        {"id": "master-panel", "title": "Master"},
        {"id": "panel-1", "title": "Drums", "code": "s('bd')", "playing": True},
        {"title": "no id"},
    ]

    outcome = await router.handle(conn, json.dumps({"type": "client.syncPanels", "panels": panels}))

    assert outcome is RouteOutcome.SYNCED
    assert [p["id"] for p in router.panels.list()] == ["panel-1"]
    assert router.panels.get("panel-1")["playing"] is True


@pytest.mark.asyncio
async def test_sync_panels_requires_a_list(router):
    sock, conn = await _join(router, "main")
    outcome = await router.handle(conn, json.dumps({"type": "client.syncPanels", "panels": {"a": 1}}))
    assert outcome is RouteOutcome.MALFORMED
    assert sock.types() == ["error"]
