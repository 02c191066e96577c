import json

import pytest

from backend import InMemoryRoomBackend
from registry import RoomRegistry


class SequenceRandom:
    """Stands in for random.Random, returning preset draws in order."""

    def __init__(self, draws):
        self.draws = list(draws)

    def randrange(self, stop):
        value = self.draws.pop(0)
        assert 0 <= value < stop
        return value


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingSession:
    """Hub member that keeps every frame it is handed."""

    def __init__(self, session_id):
        self.session_id = session_id
        self.frames = []

    def deliver(self, frame):
        self.frames.append(json.loads(frame))

    @property
    def contents(self):
        return [frame["content"] for frame in self.frames]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return RoomRegistry(backend=InMemoryRoomBackend(), idle_seconds=60, clock=clock)
