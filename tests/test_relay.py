import asyncio

import pytest

from fakes import LoopbackSocket
from screenlink.errors import RoutingError
from screenlink.models.messages import (
    JoinRoom,
    RequestConnection,
    SendAnswer,
    SendCandidate,
    SendOffer,
)
from screenlink.persistence.room_repository import InMemoryRoomRepository
from screenlink.service.relay import SignalingRelay
from screenlink.service.room_registry import RoomRegistry


def make_relay() -> SignalingRelay:
    return SignalingRelay(RoomRegistry(InMemoryRoomRepository()))


def drain(socket: LoopbackSocket) -> list[dict]:
    frames = []
    while not socket.inbox.empty():
        frames.append(socket.inbox.get_nowait())
    return frames


async def attach(relay):
    socket = LoopbackSocket()
    participant = await relay.attach(socket)
    return participant, socket


def test_attach_sends_welcome_with_assigned_id() -> None:
    async def scenario():
        relay = make_relay()
        participant, socket = await attach(relay)

        assert participant.id.startswith("p_")
        assert drain(socket) == [{"type": "welcome", "participantId": participant.id}]
        assert relay.get(participant.id) is participant

    asyncio.run(scenario())


def test_join_notifies_others_but_not_the_joiner() -> None:
    async def scenario():
        relay = make_relay()
        host, host_sock = await attach(relay)
        guest, guest_sock = await attach(relay)
        drain(host_sock), drain(guest_sock)

        await relay.handle_incoming_message(host, JoinRoom(room_code="482913"))
        assert drain(host_sock) == [{"type": "room-joined", "roomCode": "482913",
                                     "participantId": host.id, "role": "host"}]

        await relay.handle_incoming_message(guest, JoinRoom(room_code="482913"))
        assert drain(guest_sock) == [{"type": "room-joined", "roomCode": "482913",
                                      "participantId": guest.id, "role": "guest"}]
        assert drain(host_sock) == [{"type": "participant-joined", "participantId": guest.id}]

    asyncio.run(scenario())


def test_request_connection_is_broadcast_to_the_rest_of_the_room() -> None:
    async def scenario():
        relay = make_relay()
        peers = [await attach(relay) for _ in range(3)]
        for participant, _ in peers:
            await relay.handle_incoming_message(participant, JoinRoom(room_code="r1"))
        for _, socket in peers:
            drain(socket)

        requester, requester_sock = peers[2]
        await relay.handle_incoming_message(requester, RequestConnection(room_code="r1"))

        assert drain(requester_sock) == []
        for _, socket in peers[:2]:
            assert drain(socket) == [{"type": "connection-requested", "requesterId": requester.id}]

    asyncio.run(scenario())


def test_offer_answer_and_candidate_are_forwarded_untouched() -> None:
    async def scenario():
        relay = make_relay()
        host, host_sock = await attach(relay)
        guest, guest_sock = await attach(relay)
        other, other_sock = await attach(relay)
        for participant in (host, guest, other):
            await relay.handle_incoming_message(participant, JoinRoom(room_code="r1"))
        for socket in (host_sock, guest_sock, other_sock):
            drain(socket)

        offer = {"sdp": "v=0\r\no=- 1 1 IN IP4 0.0.0.0\r\n", "type": "offer", "extra": [1, 2]}
        answer = {"sdp": "v=0\r\n", "type": "answer"}
        cand = {"candidate": "candidate:1 1 udp 1 10.0.0.1 9 typ host", "sdpMid": "0", "sdpMLineIndex": 0}

        await relay.handle_incoming_message(host, SendOffer(room_code="r1", target_id=guest.id, description=offer))
        await relay.handle_incoming_message(host, SendCandidate(room_code="r1", target_id=guest.id, candidate=cand))
        await relay.handle_incoming_message(guest, SendAnswer(room_code="r1", target_id=host.id, description=answer))

        assert drain(guest_sock) == [
            {"type": "offer", "senderId": host.id, "description": offer},
            {"type": "ice-candidate", "senderId": host.id, "candidate": cand},
        ]
        assert drain(host_sock) == [{"type": "answer", "senderId": guest.id, "description": answer}]
        assert drain(other_sock) == []

    asyncio.run(scenario())


def test_messages_for_targets_outside_the_room_are_rejected() -> None:
    async def scenario():
        relay = make_relay()
        host, _ = await attach(relay)
        stranger, stranger_sock = await attach(relay)
        await relay.handle_incoming_message(host, JoinRoom(room_code="r1"))
        await relay.handle_incoming_message(stranger, JoinRoom(room_code="r2"))
        drain(stranger_sock)

        with pytest.raises(RoutingError):
            await relay.handle_incoming_message(
                host, SendOffer(room_code="r1", target_id=stranger.id, description={}))
        with pytest.raises(RoutingError):
            await relay.handle_incoming_message(
                stranger, SendOffer(room_code="r1", target_id=host.id, description={}))
        with pytest.raises(RoutingError):
            await relay.handle_incoming_message(stranger, RequestConnection(room_code="r1"))
        assert drain(stranger_sock) == []

    asyncio.run(scenario())


def test_host_disconnect_deletes_room_without_notifying_members() -> None:
    async def scenario():
        relay = make_relay()
        host, host_sock = await attach(relay)
        guest, guest_sock = await attach(relay)
        await relay.handle_incoming_message(host, JoinRoom(room_code="r1"))
        await relay.handle_incoming_message(guest, JoinRoom(room_code="r1"))
        drain(guest_sock)

        await relay.detach(host)

        assert await relay.registry.get("r1") is None
        assert relay.get(host.id) is None
        assert drain(guest_sock) == []
        with pytest.raises(RoutingError):
            await relay.handle_incoming_message(guest, RequestConnection(room_code="r1"))

    asyncio.run(scenario())


def test_delivery_to_a_closed_socket_is_not_fatal() -> None:
    async def scenario():
        relay = make_relay()
        host, host_sock = await attach(relay)
        guest, guest_sock = await attach(relay)
        await relay.handle_incoming_message(host, JoinRoom(room_code="r1"))
        await relay.handle_incoming_message(guest, JoinRoom(room_code="r1"))
        guest_sock.closed = True

        await relay.handle_incoming_message(
            host, SendOffer(room_code="r1", target_id=guest.id, description={"sdp": "", "type": "offer"}))

    asyncio.run(scenario())


def test_shutdown_closes_every_socket() -> None:
    async def scenario():
        relay = make_relay()
        _, first = await attach(relay)
        _, second = await attach(relay)

        await relay.shutdown()

        assert first.closed and second.closed

    asyncio.run(scenario())
