"""Shared test fixtures: a throwaway SQLite file, recreated for every test."""
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="gridchat-tests-")
DB_PATH = os.path.join(_DB_DIR, "test.db")

# Must be set before gridchat.config is first imported.
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{DB_PATH}"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from gridchat.database import async_session, create_tables  # noqa: E402
from gridchat.models.championship import Championship  # noqa: E402
from gridchat.models.chat_room import ChatRoom, RoomType  # noqa: E402
from gridchat.models.member import Member  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_database():
    """Start every test from an empty database file."""
    if os.path.exists(DB_PATH):
        os.remove(DB_PATH)
    yield


@pytest_asyncio.fixture
async def db():
    await create_tables()
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def alice(db):
    member = Member(display_name="Alice Apex", gamertag="apex_alice", is_admin=True)
    db.add(member)
    await db.commit()
    return member


@pytest_asyncio.fixture
async def bob(db):
    member = Member(display_name="Bob Brakes", gamertag="late_braker")
    db.add(member)
    await db.commit()
    return member


@pytest_asyncio.fixture
async def general_room(db):
    room = ChatRoom(name="General Discussion", type=RoomType.GENERAL.value)
    db.add(room)
    await db.commit()
    return room


@pytest_asyncio.fixture
async def championship(db):
    champ = Championship(name="GT3 Sprint Cup", season="2026 S1")
    db.add(champ)
    await db.commit()
    return champ
