"""RoomRegistry 단위 테스트."""

import random
import threading

from walkie.signaling import RoomRegistry


def test_join_creates_room_and_returns_snapshot_with_joiner(registry):
    assert registry.join("lobby", "p1") == {"p1"}
    assert registry.join("lobby", "p2") == {"p1", "p2"}
    assert registry.members_of("lobby") == {"p1", "p2"}


def test_duplicate_join_is_idempotent(registry):
    registry.join("lobby", "p1")
    registry.join("lobby", "p1")
    assert registry.members_of("lobby") == {"p1"}


def test_last_leave_removes_room(registry):
    registry.join("lobby", "p1")
    registry.leave("lobby", "p1")
    assert not registry.has_room("lobby")
    assert registry.members_of("lobby") == set()
    assert registry.get_room_list() == []


def test_leave_unknown_room_or_participant_is_noop(registry):
    registry.leave("nowhere", "p1")
    registry.join("lobby", "p1")
    registry.leave("lobby", "ghost")
    assert registry.members_of("lobby") == {"p1"}


def test_members_of_returns_copy(registry):
    registry.join("lobby", "p1")
    snapshot = registry.members_of("lobby")
    snapshot.add("intruder")
    assert registry.members_of("lobby") == {"p1"}

    returned = registry.join("lobby", "p2")
    returned.clear()
    assert registry.members_of("lobby") == {"p1", "p2"}


def test_membership_matches_model_for_random_sequences():
    rng = random.Random(1234)
    participants = [f"p{i}" for i in range(6)]
    rooms = ["a", "b"]

    for _ in range(50):
        registry = RoomRegistry()
        model = {room: set() for room in rooms}
        for _ in range(40):
            room = rng.choice(rooms)
            participant = rng.choice(participants)
            if rng.random() < 0.6:
                registry.join(room, participant)
                model[room].add(participant)
            else:
                registry.leave(room, participant)
                model[room].discard(participant)

            for name in rooms:
                assert registry.members_of(name) == model[name]
                assert registry.has_room(name) == bool(model[name])


def test_concurrent_join_and_leave_keeps_invariant(registry):
    def worker(index: int):
        participant = f"p{index}"
        for _ in range(200):
            registry.join("busy", participant)
            registry.leave("busy", participant)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert not registry.has_room("busy")
    assert registry.rooms == {}


def test_room_list_snapshot(registry):
    registry.join("lobby", "p2")
    registry.join("lobby", "p1")
    registry.join("kitchen", "p3")

    rooms = {entry["room"]: entry for entry in registry.get_room_list()}
    assert rooms["lobby"] == {"room": "lobby", "members": ["p1", "p2"], "count": 2}
    assert rooms["kitchen"]["count"] == 1
