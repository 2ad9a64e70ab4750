import asyncio
import json

import pytest

from errors import PersistenceFailure
from persistence import SnapshotWriter
from redis_keys import REDIS_ROOMS_KEY

ROOM_RECORD = {
    "roomId": "AB12",
    "id": "AB12",
    "challenge": {"title": "Sum of numbers"},
    "phase": "waiting",
    "started": False,
    "users": [{"email": "p1@example.com", "userData": {"email": "p1@example.com"}}],
}


def test_backend_saves_and_loads_rooms(backend, fake_redis):
    backend.save_rooms([ROOM_RECORD])
    assert json.loads(fake_redis.data[REDIS_ROOMS_KEY]) == [ROOM_RECORD]
    assert backend.load_rooms() == [ROOM_RECORD]


def test_backend_load_without_snapshot(backend):
    assert backend.load_rooms() is None


@pytest.mark.parametrize("stored", ["{not json", '{"roomId": "AB12"}'])
def test_backend_rejects_malformed_snapshot(backend, fake_redis, stored):
    fake_redis.data[REDIS_ROOMS_KEY] = stored
    with pytest.raises(PersistenceFailure):
        backend.load_rooms()


def test_backend_wraps_redis_errors(backend, fake_redis):
    fake_redis.fail = True
    with pytest.raises(PersistenceFailure):
        backend.save_rooms([])
    with pytest.raises(PersistenceFailure):
        backend.load_rooms()
    assert backend.ping() is False


def test_flush_writes_only_latest_snapshot(backend, fake_redis):
    writer = SnapshotWriter(backend)
    writer.schedule([])
    writer.schedule([ROOM_RECORD])

    assert asyncio.run(writer.flush()) is True
    assert fake_redis.writes == 1
    assert json.loads(fake_redis.data[REDIS_ROOMS_KEY]) == [ROOM_RECORD]
    assert writer.pending is None
    assert asyncio.run(writer.flush()) is True
    assert fake_redis.writes == 1


def test_failed_write_is_dropped_not_raised(backend, fake_redis):
    writer = SnapshotWriter(backend)
    fake_redis.fail = True
    writer.schedule([ROOM_RECORD])

    assert asyncio.run(writer.flush()) is False
    assert writer.pending is None
    assert REDIS_ROOMS_KEY not in fake_redis.data


def test_background_task_writes_scheduled_snapshots(backend, fake_redis):
    async def scenario():
        writer = SnapshotWriter(backend)
        writer.start()
        assert writer.running
        writer.schedule([ROOM_RECORD])
        for _ in range(100):
            if REDIS_ROOMS_KEY in fake_redis.data:
                break
            await asyncio.sleep(0.01)
        await writer.stop()
        assert not writer.running

    asyncio.run(scenario())
    assert json.loads(fake_redis.data[REDIS_ROOMS_KEY]) == [ROOM_RECORD]


def test_stop_flushes_pending_snapshot(backend, fake_redis):
    async def scenario():
        writer = SnapshotWriter(backend)
        writer.schedule([ROOM_RECORD])
        await writer.stop()

    asyncio.run(scenario())
    assert json.loads(fake_redis.data[REDIS_ROOMS_KEY]) == [ROOM_RECORD]


def test_load_falls_back_to_empty(backend, fake_redis):
    writer = SnapshotWriter(backend)
    assert asyncio.run(writer.load()) == []

    fake_redis.data[REDIS_ROOMS_KEY] = "{not json"
    assert asyncio.run(writer.load()) == []

    fake_redis.fail = True
    assert asyncio.run(writer.load()) == []

    fake_redis.fail = False
    fake_redis.data[REDIS_ROOMS_KEY] = json.dumps([ROOM_RECORD])
    assert asyncio.run(writer.load()) == [ROOM_RECORD]


def test_coordinator_snapshot_survives_restart(coordinator, connect, backend):
    c1, c2, c3 = connect(), connect(), connect()
    active = coordinator.create_room()
    waiting = coordinator.create_room()
    coordinator.create_room()
    coordinator.join_room(c1.connection_id, active.id, {"email": "p1@example.com"})
    coordinator.join_room(c2.connection_id, active.id, {"email": "p2@example.com"})
    coordinator.join_room(c3.connection_id, waiting.id, {"email": "p3@example.com"})

    asyncio.run(coordinator.persistence.flush())
    records = asyncio.run(SnapshotWriter(backend).load())

    coordinator.restore(records)
    rooms = {room.id: room for room in coordinator.store}
    assert set(rooms) == {"AB12", "room1", "room2"}
    assert rooms["AB12"].phase.value == "active"
    assert rooms["room1"].phase.value == "waiting"
    assert rooms["AB12"].challenge == active.challenge
    for room in rooms.values():
        assert all(member.connection_id is None for member in room.members.values())
    assert coordinator.presence.room_of("p3@example.com") == "room1"
    assert coordinator.presence.lookup(c3.connection_id) is None
