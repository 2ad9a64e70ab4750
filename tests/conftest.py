import itertools
import json

import pytest
import redis

from backend import RedisBackend
from broadcast import Broadcaster
from connections import ConnectionRegistry
from coordinator import RoomCoordinator
from persistence import SnapshotWriter
from presence import PresenceTracker
from store import RoomStore

CHALLENGE = {"title": "Sum of numbers", "testCases": [{"input": "10", "expectedOutput": "55"}]}


class FakeRedis:
    """Dict-backed stand-in for the few redis.Redis calls the backend makes."""

    def __init__(self):
        self.data = {}
        self.fail = False
        self.writes = 0

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("redis is down")

    def ping(self):
        self._check()
        return True

    def get(self, key):
        self._check()
        return self.data.get(key)

    def set(self, key, value):
        self._check()
        self.writes += 1
        self.data[key] = value
        return True


class RecordingConnection:
    """Connection double that keeps every message it is sent."""

    def __init__(self, connection_id):
        self.connection_id = connection_id
        self.messages = []

    def send(self, message):
        self.messages.append(message)

    def types(self):
        return [message["type"] for message in self.messages]

    def payloads(self, kind):
        return [message["payload"] for message in self.messages if message["type"] == kind]

    def last(self, kind):
        found = self.payloads(kind)
        assert found, f"no {kind} in {self.types()}"
        return found[-1]

    def clear(self):
        self.messages.clear()


class BrokenConnection(RecordingConnection):
    def send(self, message):
        raise RuntimeError("socket is gone")


@pytest.fixture()
def fake_redis():
    return FakeRedis()


@pytest.fixture()
def backend(fake_redis):
    return RedisBackend(client=fake_redis)


@pytest.fixture()
def coordinator(backend):
    registry = ConnectionRegistry()
    room_ids = itertools.chain(["AB12"], (f"room{n}" for n in itertools.count(1)))
    return RoomCoordinator(
        store=RoomStore(),
        registry=registry,
        presence=PresenceTracker(),
        broadcaster=Broadcaster(registry),
        persistence=SnapshotWriter(backend),
        challenge_factory=lambda: dict(CHALLENGE),
        room_id_factory=lambda: next(room_ids),
    )


@pytest.fixture()
def connect(coordinator):
    """Open a recording connection on the coordinator."""
    counter = itertools.count(1)

    def _connect(connection_id=None):
        connection = RecordingConnection(connection_id or f"conn{next(counter)}")
        coordinator.connect(connection)
        return connection

    return _connect


def send(coordinator, connection, kind, **payload):
    coordinator.handle_message(connection.connection_id, json.dumps({"type": kind, "payload": payload}))


def user(email, name=None):
    return {"email": email, "fullName": name or email.split("@")[0].title()}
