import json

import pytest

from tgvoice.runtime.hub import SignalingHub
from tgvoice.runtime.presence import PresenceRegistry
from tgvoice.runtime.relay import SignalingRelay
from tgvoice.schemas.ws import PeerJoinedOut
from tgvoice.services.identity_service import AuthenticationError, Identity

from conftest import FakeConnection


def _resolver(init_data: str) -> Identity:
    if init_data == "bad":
        raise AuthenticationError("invalid initData signature")
    return Identity(id=500, display_name="verified", is_verified=True)


@pytest.fixture
def hub(registry: PresenceRegistry) -> SignalingHub:
    return SignalingHub(registry, resolver=_resolver)


async def _send(hub: SignalingHub, conn: FakeConnection, **msg) -> None:
    await hub.dispatch(conn, json.dumps(msg))


async def _join(hub, conn, room_id, user_id, name=""):
    await hub.connect(conn)
    await _send(hub, conn, type="join_room", room_id=room_id, user_id=user_id, display_name=name)


async def test_ice_candidate_reaches_target_verbatim(hub):
    one, two = FakeConnection("c1"), FakeConnection("c2")
    await _join(hub, one, "general", 1, "one")
    await _join(hub, two, "general", 2, "two")

    candidate = {"candidate": "candidate:1 1 UDP 2122252543 10.0.0.1 54321 typ host", "sdpMid": "0", "sdpMLineIndex": 0}
    await _send(hub, one, type="ice_candidate", target=2, payload=candidate)

    received = two.of_type("ice_candidate")
    assert len(received) == 1
    assert received[0]["from"] == 1
    assert received[0]["payload"] == candidate
    assert received[0]["from_connection"] == "c1"
    assert one.of_type("ice_candidate") == []


async def test_join_notifies_others_and_returns_roommates(hub):
    a, b = FakeConnection("a"), FakeConnection("b")
    await _join(hub, a, "general", 1, "alice")
    assert a.of_type("roommates") == [{"type": "roommates", "room_id": "general", "users": []}]

    await _join(hub, b, "general", 2, "bob")

    assert b.of_type("roommates")[0]["users"] == [
        {"user_id": 1, "display_name": "alice", "connection_id": "a"}
    ]
    assert a.of_type("peer_joined") == [
        {"type": "peer_joined", "room_id": "general", "user_id": 2, "display_name": "bob", "connection_id": "b"}
    ]
    assert b.of_type("peer_joined") == []


async def test_disconnect_sends_one_peer_left_per_remaining_member(hub, registry):
    a, b, c = FakeConnection("a"), FakeConnection("b"), FakeConnection("c")
    await _join(hub, a, "r1", 1)
    await _send(hub, a, type="join_room", room_id="r2", user_id=1)
    await _join(hub, b, "r1", 2)
    await _join(hub, c, "r2", 3)

    await hub.disconnect(a)

    assert b.of_type("peer_left") == [{"type": "peer_left", "room_id": "r1", "user_id": 1, "connection_id": "a"}]
    assert c.of_type("peer_left") == [{"type": "peer_left", "room_id": "r2", "user_id": 1, "connection_id": "a"}]
    assert registry.snapshot() == {"r1": [2], "r2": [3]}


async def test_leave_broadcasts_peer_left(hub, registry):
    a, b = FakeConnection("a"), FakeConnection("b")
    await _join(hub, a, "r", 1)
    await _join(hub, b, "r", 2)

    await _send(hub, a, type="leave_room", room_id="r", user_id=1)
    await _send(hub, a, type="leave_room", room_id="r", user_id=1)

    assert len(b.of_type("peer_left")) == 1
    assert registry.snapshot() == {"r": [2]}


async def test_signal_to_absent_user_is_dropped_silently(hub):
    a = FakeConnection("a")
    await _join(hub, a, "r", 1)
    before = list(a.sent)

    await _send(hub, a, type="session_offer", target=99, payload={"sdp": "v=0"})

    assert a.sent == before


async def test_relay_returns_false_without_raising(registry):
    relay = SignalingRelay(registry)
    assert await relay.relay("session_offer", 404, {"sdp": "v=0"}, 1) is False


async def test_offer_and_answer_round_trip(hub):
    a, b = FakeConnection("a"), FakeConnection("b")
    await _join(hub, a, "r", 1)
    await _join(hub, b, "r", 2)

    offer = {"type": "offer", "sdp": "v=0\r\no=- 1 2 IN IP4 127.0.0.1\r\n"}
    await _send(hub, a, type="session_offer", target=2, payload=offer)
    await _send(hub, b, type="session_answer", target=1, payload={"type": "answer", "sdp": "v=0"})

    assert b.of_type("session_offer")[0]["payload"] == offer
    assert a.of_type("session_answer")[0]["from"] == 2


async def test_set_muted_broadcasts_to_room_except_sender(hub):
    a, b, c = FakeConnection("a"), FakeConnection("b"), FakeConnection("c")
    await _join(hub, a, "r", 1)
    await _join(hub, b, "r", 2)
    await _join(hub, c, "other", 3)

    await _send(hub, a, type="set_muted", room_id="r", is_muted=True)

    assert b.of_type("mute_state_changed") == [
        {"type": "mute_state_changed", "room_id": "r", "user_id": 1, "is_muted": True}
    ]
    assert a.of_type("mute_state_changed") == []
    assert c.of_type("mute_state_changed") == []


async def test_broadcast_survives_a_failing_connection(registry):
    relay = SignalingRelay(registry)
    ok, broken = FakeConnection("ok"), FakeConnection("broken", fail=True)
    registry.join("r", 1, ok)
    registry.join("r", 2, broken)

    msg = PeerJoinedOut(room_id="r", user_id=3, display_name="x", connection_id="z")
    assert await relay.broadcast_to_room("r", msg) == 1
    assert len(ok.of_type("peer_joined")) == 1


async def test_authenticate_with_init_data_uses_resolved_identity(hub, registry):
    conn = FakeConnection("c")
    await hub.connect(conn)
    await _send(hub, conn, type="authenticate", user_id=1, display_name="claimed", init_data="signed")

    assert registry.user_of(conn) == (500, "verified")
    assert registry.lookup(500) is conn
    assert registry.lookup(1) is None


async def test_authenticate_with_bad_init_data_raises(hub):
    conn = FakeConnection("c")
    await hub.connect(conn)
    with pytest.raises(AuthenticationError):
        await _send(hub, conn, type="authenticate", init_data="bad")


async def test_join_keeps_authenticated_display_name(hub, registry):
    a, b = FakeConnection("a"), FakeConnection("b")
    await hub.connect(a)
    await _send(hub, a, type="authenticate", user_id=1, display_name="alice")
    await _send(hub, a, type="join_room", room_id=7, user_id=1)
    await _join(hub, b, "7", 2, "bob")

    assert b.of_type("roommates")[0]["users"][0]["display_name"] == "alice"


@pytest.mark.parametrize(
    "raw, detail_prefix",
    [
        ("not json", "message must be valid JSON"),
        ("[1, 2]", "message must be a JSON object"),
        ('{"type": "dance"}', "unknown message type"),
        ('{"type": "join_room", "room_id": "r"}', "invalid join_room"),
        ('{"type": "authenticate"}', "authenticate requires"),
    ],
)
async def test_bad_frames_answered_with_error(hub, raw, detail_prefix):
    conn = FakeConnection()
    await hub.connect(conn)
    await hub.dispatch(conn, raw)

    [err] = conn.of_type("error")
    assert err["detail"].startswith(detail_prefix)


async def test_unsigned_join_cannot_take_over_verified_user(hub, registry):
    victim, peer, impostor = FakeConnection("victim"), FakeConnection("peer"), FakeConnection("impostor")
    await hub.connect(victim)
    await _send(hub, victim, type="authenticate", init_data="signed")
    await _send(hub, victim, type="join_room", room_id="r", user_id=500)
    await _join(hub, peer, "r", 2, "peer")

    await _join(hub, impostor, "r", 500, "impostor")
    await _send(hub, impostor, type="authenticate", user_id=500, display_name="impostor")

    assert len(impostor.of_type("error")) == 2
    assert impostor.of_type("roommates") == []
    assert peer.of_type("peer_joined") == []
    assert registry.lookup(500) is victim
    assert registry.membership("r", 500).connection is victim

    # Offers addressed to the verified user still reach the verified socket
    await _send(hub, peer, type="session_offer", target=500, payload={"sdp": "v=0"})
    assert len(victim.of_type("session_offer")) == 1
    assert impostor.of_type("session_offer") == []


async def test_verified_connection_cannot_join_as_someone_else(hub, registry):
    conn = FakeConnection("c")
    await hub.connect(conn)
    await _send(hub, conn, type="authenticate", init_data="signed")
    await _send(hub, conn, type="join_room", room_id="r", user_id=7)

    [err] = conn.of_type("error")
    assert err["detail"] == "cannot join as user 7"
    assert registry.snapshot() == {}
    assert registry.user_of(conn) == (500, "verified")


async def test_verified_user_can_be_claimed_after_disconnect(hub, registry):
    old, new = FakeConnection("old"), FakeConnection("new")
    await hub.connect(old)
    await _send(hub, old, type="authenticate", init_data="signed")
    await hub.disconnect(old)

    await _join(hub, new, "r", 500, "again")

    assert new.of_type("error") == []
    assert registry.lookup(500) is new


async def test_leave_for_another_users_membership_is_ignored(hub, registry):
    a, b = FakeConnection("a"), FakeConnection("b")
    await _join(hub, a, "r", 1)
    await _join(hub, b, "r", 2)

    await _send(hub, b, type="leave_room", room_id="r", user_id=1)

    assert registry.snapshot() == {"r": [1, 2]}
    assert a.of_type("peer_left") == []
    assert b.of_type("peer_left") == []


async def test_rejoin_from_new_socket_retires_old_connection(hub, registry):
    old, new, peer = FakeConnection("old"), FakeConnection("new"), FakeConnection("peer")
    await _join(hub, old, "r", 1, "alice")
    await _join(hub, peer, "r", 2, "bob")

    await _join(hub, new, "r", 1, "alice")

    assert [m["type"] for m in peer.sent] == ["roommates", "peer_left", "peer_joined"]
    assert peer.of_type("peer_left") == [{"type": "peer_left", "room_id": "r", "user_id": 1, "connection_id": "old"}]
    assert peer.of_type("peer_joined")[0]["connection_id"] == "new"
    assert [u["user_id"] for u in new.of_type("roommates")[0]["users"]] == [2]

    # The retired socket closing later doesn't announce alice again
    await hub.disconnect(old)
    assert len(peer.of_type("peer_left")) == 1
    assert registry.snapshot() == {"r": [1, 2]}


async def test_set_muted_from_non_member_is_ignored(hub):
    a, b = FakeConnection("a"), FakeConnection("b")
    outsider, anonymous = FakeConnection("outsider"), FakeConnection("anonymous")
    await _join(hub, a, "r", 1)
    await _join(hub, b, "r", 2)
    await _join(hub, outsider, "other", 3)
    await hub.connect(anonymous)

    await _send(hub, outsider, type="set_muted", room_id="r", is_muted=True)
    await _send(hub, anonymous, type="set_muted", room_id="r", is_muted=True)

    assert a.of_type("mute_state_changed") == []
    assert b.of_type("mute_state_changed") == []
