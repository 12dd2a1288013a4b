from __future__ import annotations

import json
import os
import uuid
from typing import Any

# Settings are read at import time; point them at test values first.
os.environ["DATABASE_URL_ASYNC"] = "sqlite+aiosqlite://"
os.environ["BOT_TOKEN"] = "123456:TEST-BOT-TOKEN"
os.environ["AUTH_MODE"] = "enforced"
os.environ["FRONTEND_DIR"] = "__no_frontend__"

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tgvoice.core import get_db, settings
from tgvoice.core.security import sign_init_data
from tgvoice.main import app
from tgvoice.models import Base
from tgvoice.runtime.presence import PresenceRegistry


BOT_TOKEN = os.environ["BOT_TOKEN"]


class FakeConnection:
    """In-memory Connection that records everything sent to it."""

    def __init__(self, name: str | None = None, *, fail: bool = False):
        self.connection_id = name or str(uuid.uuid4())
        self.sent: list[dict[str, Any]] = []
        self.fail = fail

    async def send(self, message: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionResetError("socket gone")
        self.sent.append(message)

    def of_type(self, msg_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == msg_type]


def signed_init_data(user_id: int, username: str = "", **user_fields: Any) -> str:
    user = {"id": user_id, "username": username, **user_fields}
    return sign_init_data(
        {"auth_date": "1700000000", "query_id": "AAHdF6IQAAAAAN0XohDhrOrc", "user": json.dumps(user)},
        BOT_TOKEN,
    )


@pytest.fixture
def registry() -> PresenceRegistry:
    return PresenceRegistry()


@pytest.fixture
def bot_token() -> str:
    assert settings.BOT_TOKEN == BOT_TOKEN
    return BOT_TOKEN


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def api_client(db_engine):
    Session = async_sessionmaker(db_engine, expire_on_commit=False, class_=AsyncSession)

    async def _get_db():
        async with Session() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
