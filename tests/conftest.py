import fakeredis
import pytest
from fastapi.testclient import TestClient

from app import create_app
from backend import RoomStore, FileStore, PresenceTracker
from clock import Clock
from registry import RoomRegistry
from room_codes import RoomCodeGenerator


class FakeTime:
    """Wall clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedCodeGenerator(RoomCodeGenerator):
    """Hands out the given codes first, then random ones."""

    def __init__(self, codes):
        super().__init__()
        self.codes = list(codes)
        self.calls = 0

    def generate(self) -> str:
        self.calls += 1
        if self.codes:
            return self.codes.pop(0)
        return super().generate()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def clock(fake_time):
    return Clock(source=fake_time)


@pytest.fixture
def file_store(redis_client, clock):
    return FileStore(redis_client, clock, tombstone_retention=300)


@pytest.fixture
def presence(redis_client, clock):
    return PresenceTracker(redis_client, clock, ttl=15)


@pytest.fixture
def registry(redis_client, clock, file_store, presence):
    return RoomRegistry(RoomStore(redis_client, clock), file_store, presence, ScriptedCodeGenerator([]))


@pytest.fixture
def room_id(registry):
    return registry.create_room()


@pytest.fixture
def client(redis_client):
    app = create_app(
        redis_client=redis_client,
        code_generator=ScriptedCodeGenerator(["MONK-AB3X"]),
        heartbeat_interval=30,
        sweep_interval=0,
    )
    with TestClient(app) as test_client:
        yield test_client
