from __future__ import annotations

import asyncio

import pytest

from db import Database
from scripts import create_tables


class FakeDatabase:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.events = []

    async def open(self) -> None:
        self.events.append("open")

    async def create_schema(self) -> None:
        self.events.append("create_schema")
        if self.fail:
            raise ConnectionError("server closed the connection")

    async def close(self) -> None:
        self.events.append("close")


def test_applies_schema_and_closes_pool(monkeypatch) -> None:
    fake = FakeDatabase()
    monkeypatch.setattr(Database, "from_settings", classmethod(lambda cls: fake))

    asyncio.run(create_tables.main())

    assert fake.events == ["open", "create_schema", "close"]


def test_closes_pool_when_ddl_fails(monkeypatch) -> None:
    fake = FakeDatabase(fail=True)
    monkeypatch.setattr(Database, "from_settings", classmethod(lambda cls: fake))

    with pytest.raises(ConnectionError):
        asyncio.run(create_tables.main())

    assert fake.events == ["open", "create_schema", "close"]
