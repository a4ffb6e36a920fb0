import threading
import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, Settings
from schemas import RoomState, RoomSettings, ContestantCreate
from core.room_store import RoomStore
from core.auction_timer import AuctionTimer
from core.room_manager import RoomManager
from core.auction_manager import AuctionManager

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeRepository:
    """In-memory persistence: stores deep copies so the store cannot share objects with it."""

    def __init__(self):
        self.rooms: Dict[str, RoomState] = {}
        self.load_calls = 0
        self.save_calls = 0
        self.fail_saves = False
        self.load_delay: Optional[threading.Event] = None
        self.save_delays: List[float] = []

    def load_room(self, room_id):
        self.load_calls += 1
        if self.load_delay is not None:
            self.load_delay.wait(timeout=2)
        room = self.rooms.get(room_id)
        return room.model_copy(deep=True) if room else None

    def upsert_room(self, state, deadline=None):
        if self.save_delays:
            time.sleep(self.save_delays.pop(0))
        if self.fail_saves:
            raise RuntimeError("database is down")
        if deadline is not None and time.monotonic() > deadline:
            raise TimeoutError("deadline passed, not committing")
        self.save_calls += 1
        self.rooms[state.id] = state.model_copy(deep=True)


class RecordingMessenger:
    def __init__(self):
        self.published: List[tuple] = []
        self.direct: List[tuple] = []

    async def publish_to_room(self, room_id, message):
        self.published.append((room_id, message))

    async def send_to_connection(self, connection_id, message):
        self.direct.append((connection_id, message))

    def states(self, room_id):
        return [m["data"] for r, m in self.published if r == room_id and m["type"] == "room:state"]

    def ticks(self, room_id):
        return [m["data"] for r, m in self.published if r == room_id and m["type"] == "auction:tick"]


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)

    def at(self, seconds: float):
        self.now = T0 + timedelta(seconds=seconds)


def build_engine(tick_interval: float = 3600.0, clock: Optional[FakeClock] = None):
    """
    Wire store, timer and managers around fakes.

    Must be called inside the running event loop. The default tick interval
    is long enough that timers never fire on their own unless a test asks.
    """
    repository = FakeRepository()
    messenger = RecordingMessenger()
    clock = clock or FakeClock()
    store = RoomStore(repository, timeout=2.0)
    timer = AuctionTimer(messenger, tick_interval=tick_interval)
    rooms = RoomManager(store, messenger, default_settings=RoomSettings())
    auctions = AuctionManager(store, messenger, timer, clock=clock)
    return SimpleNamespace(
        repository=repository,
        messenger=messenger,
        clock=clock,
        store=store,
        timer=timer,
        rooms=rooms,
        auctions=auctions,
    )


def cast(*names):
    return [ContestantCreate(name=n, bio=f"{n} bio") for n in names]


@pytest.fixture
def sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=sqlite_engine)


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        database_url="sqlite://",
        cast_file=str(tmp_path / "missing_cast.json"),
        tick_interval_seconds=3600.0,
    )
