import asyncio

import fakeredis
import pytest

from backend import InMemoryRoomBackend, RedisRoomBackend, build_room_backend
from errors import MalformedIdentifier, RoomCapacityExceeded, RoomNotFound
from redis_keys import REDIS_META_KEY
from registry import RoomRegistry, is_valid_room_id

from conftest import RecordingSession, SequenceRandom


@pytest.mark.parametrize("room_id", ["000000", "482913", "999999"])
def test_valid_room_ids(room_id):
    assert is_valid_room_id(room_id)


@pytest.mark.parametrize("room_id", ["", "12345", "1234567", "12a456", " 12345", "１２３４５６", None, 123456])
def test_invalid_room_ids(room_id):
    assert not is_valid_room_id(room_id)


def test_created_ids_are_six_digits_and_unique(registry):
    created = [registry.create_room() for _ in range(200)]
    assert all(is_valid_room_id(room_id) for room_id in created)
    assert len(set(created)) == len(created)
    assert set(registry.rooms) == set(created)


def test_leading_zeros_are_kept(clock):
    registry = RoomRegistry(backend=InMemoryRoomBackend(), rng=SequenceRandom([42]), clock=clock)
    assert registry.create_room() == "000042"


def test_collision_is_retried(clock):
    registry = RoomRegistry(
        backend=InMemoryRoomBackend(),
        rng=SequenceRandom([482913, 482913, 482913, 7]),
        clock=clock,
    )
    assert registry.create_room() == "482913"
    assert registry.create_room() == "000007"


def test_exhausted_attempts_raise(clock):
    registry = RoomRegistry(
        backend=InMemoryRoomBackend(),
        max_attempts=3,
        rng=SequenceRandom([1, 1, 1, 1]),
        clock=clock,
    )
    registry.create_room()
    with pytest.raises(RoomCapacityExceeded):
        registry.create_room()


def test_new_room_is_empty(registry):
    room = registry.lookup_room(registry.create_room())
    assert room.snapshot == ""
    assert room.session_count == 0


def test_lookup_unknown_room(registry):
    with pytest.raises(RoomNotFound):
        registry.lookup_room("000000")


@pytest.mark.parametrize("room_id", ["abc", "12345", None, "1234567"])
def test_lookup_rejects_malformed_identifier_before_lookup(registry, room_id):
    with pytest.raises(MalformedIdentifier):
        registry.lookup_room(room_id)


def test_room_exists(registry):
    room_id = registry.create_room()
    assert registry.room_exists(room_id)
    assert not registry.room_exists("not-a-room")


def test_empty_room_reaped_after_grace_period(registry, clock):
    room_id = registry.create_room()
    clock.advance(59)
    assert not registry.reap(room_id)
    clock.advance(2)
    assert registry.reap(room_id)
    assert not registry.room_exists(room_id)


def test_occupied_room_is_not_reaped(registry, clock):
    room_id = registry.create_room()
    room = registry.lookup_room(room_id)
    asyncio.run(room.hub.join(RecordingSession("a")))
    clock.advance(3600)
    assert registry.reap_idle() == []
    assert registry.room_exists(room_id)


def test_grace_period_restarts_when_last_session_leaves(registry, clock):
    room_id = registry.create_room()
    room = registry.lookup_room(room_id)
    session = RecordingSession("a")
    asyncio.run(room.hub.join(session))
    clock.advance(3600)
    asyncio.run(room.hub.leave(session))
    clock.advance(30)
    assert registry.reap_idle() == []
    clock.advance(31)
    assert registry.reap_idle() == [room_id]


def test_lookup_restarts_idle_clock(registry, clock):
    room_id = registry.create_room()
    clock.advance(59)
    registry.lookup_room(room_id)
    clock.advance(59)
    assert not registry.reap(room_id)


def test_reaped_identifier_can_be_reissued(clock):
    registry = RoomRegistry(
        backend=InMemoryRoomBackend(),
        idle_seconds=10,
        rng=SequenceRandom([5, 5]),
        clock=clock,
    )
    assert registry.create_room() == "000005"
    clock.advance(11)
    assert registry.reap("000005")
    assert registry.create_room() == "000005"


def test_redis_backend_reserves_with_set_nx():
    backend = RedisRoomBackend(fakeredis.FakeRedis(decode_responses=True))
    assert backend.reserve("123456")
    assert not backend.reserve("123456")
    assert backend.is_reserved("123456")
    backend.release("123456")
    assert not backend.is_reserved("123456")


def test_redis_backend_prevents_collision_across_instances(clock):
    server = fakeredis.FakeServer()
    first = RoomRegistry(
        backend=RedisRoomBackend(fakeredis.FakeRedis(server=server, decode_responses=True)),
        rng=SequenceRandom([482913]),
        clock=clock,
    )
    second = RoomRegistry(
        backend=RedisRoomBackend(fakeredis.FakeRedis(server=server, decode_responses=True)),
        rng=SequenceRandom([482913, 100]),
        clock=clock,
    )
    assert first.create_room() == "482913"
    assert second.create_room() == "000100"


def test_redis_reservation_refreshed_and_released(clock):
    redis_client = fakeredis.FakeRedis(decode_responses=True)
    registry = RoomRegistry(
        backend=RedisRoomBackend(redis_client, ttl=300),
        idle_seconds=10,
        rng=SequenceRandom([77]),
        clock=clock,
    )
    room_id = registry.create_room()
    key = REDIS_META_KEY.format(slug=room_id)
    assert 0 < redis_client.ttl(key) <= 300

    registry.reap_idle()
    assert redis_client.exists(key)

    clock.advance(11)
    assert registry.reap_idle() == [room_id]
    assert not redis_client.exists(key)


def test_unknown_backend_kind():
    with pytest.raises(ValueError):
        build_room_backend("sqlite")
