import pytest

from errors import RoomFull, RoomNotFound
from schemas.rooms import Outcome, Phase, Room
from store import RoomStore


def _room_with(store, room_id, *emails, started=False):
    room = store.create(room_id, {"title": room_id})
    for n, email in enumerate(emails):
        room.add_member(email, {"email": email}, f"conn-{room_id}-{n}")
    if started:
        room.start()
    return room


def test_room_capacity_is_two():
    room = Room(id="AB12")
    room.add_member("a@example.com", {}, "c1")
    room.add_member("b@example.com", {}, "c2")
    with pytest.raises(RoomFull):
        room.add_member("c@example.com", {}, "c3")
    assert len(room.members) == 2


def test_phase_transitions_are_one_way():
    room = Room(id="AB12")
    with pytest.raises(ValueError):
        room.end(Outcome(winner="a", loser="b", reason="opponent_left"))
    room.start()
    with pytest.raises(ValueError):
        room.start()
    room.end(Outcome(winner="a", loser="b", reason="opponent_left"))
    assert room.phase == Phase.ENDED
    with pytest.raises(ValueError):
        room.end(Outcome(winner="b", loser="a", reason="opponent_left"))
    assert room.outcome.winner == "a"


def test_create_rejects_duplicate_ids():
    store = RoomStore()
    store.create("AB12", None)
    with pytest.raises(ValueError):
        store.create("AB12", None)


def test_require_raises_for_missing_and_non_string_ids():
    store = RoomStore()
    with pytest.raises(RoomNotFound):
        store.require("AB12")
    assert store.get(["AB12"]) is None
    assert store.get(None) is None


def test_archive_moves_room_to_history():
    store = RoomStore()
    room = _room_with(store, "AB12", "a@example.com", "b@example.com", started=True)
    leaver = room.remove_member("b@example.com")

    record = store.archive(room, Outcome(winner="a@example.com", loser="b@example.com", reason="opponent_left"), departed=leaver)

    assert "AB12" not in store
    assert store.history("AB12") is record
    assert record.users == [{"email": "a@example.com"}, {"email": "b@example.com"}]
    assert record.challenge == {"title": "AB12"}
    assert record.model_dump(by_alias=True)["outcome"] == {
        "winner": "a@example.com",
        "loser": "b@example.com",
        "reason": "opponent_left",
    }


def test_summaries_report_member_counts():
    store = RoomStore()
    _room_with(store, "AB12", "a@example.com")
    _room_with(store, "CD34")
    summaries = [s.model_dump(by_alias=True) for s in store.summaries()]
    assert summaries == [
        {"roomId": "AB12", "userCount": 1, "challenge": {"title": "AB12"}},
        {"roomId": "CD34", "userCount": 0, "challenge": {"title": "CD34"}},
    ]


def test_snapshot_round_trip_clears_connections():
    store = RoomStore()
    _room_with(store, "AB12", "a@example.com", "b@example.com", started=True)
    _room_with(store, "CD34", "c@example.com")
    _room_with(store, "EF56")

    snapshot = store.snapshot()
    assert all("connection" not in str(record) for record in snapshot)

    restored = RoomStore()
    restored.restore(snapshot)

    assert [room.id for room in restored] == ["AB12", "CD34", "EF56"]
    assert restored.get("AB12").phase == Phase.ACTIVE
    assert restored.get("CD34").phase == Phase.WAITING
    assert restored.get("EF56").challenge == {"title": "EF56"}
    assert list(restored.get("AB12").members) == ["a@example.com", "b@example.com"]
    for room in restored:
        assert all(member.connection_id is None for member in room.members.values())
    assert restored.get("AB12").started_at == store.get("AB12").started_at


def test_restore_accepts_records_without_phase():
    store = RoomStore()
    store.restore([
        {"roomId": "AB12", "challenge": {}, "started": True, "users": [
            {"email": "a@example.com", "userData": {"email": "a@example.com"}},
            {"email": "b@example.com", "userData": {"email": "b@example.com"}},
        ]},
        {"id": "CD34", "challenge": {}, "started": False, "users": []},
    ])
    assert store.get("AB12").phase == Phase.ACTIVE
    assert store.get("CD34").phase == Phase.WAITING


def test_restore_skips_unreadable_records():
    store = RoomStore()
    store.restore([
        {"roomId": "AB12", "users": []},
        {"users": []},
        {"roomId": "BAD1", "phase": "sideways"},
        {"roomId": "BAD2", "phase": "ended"},
        {"roomId": "BAD3", "users": [{"email": "a"}, {"email": "b"}, {"email": "c"}]},
        {"roomId": "BAD4", "users": [{"userData": {}}]},
        "garbage",
    ])
    assert [room.id for room in store] == ["AB12"]
