from __future__ import annotations

import asyncio

import pytest

from assessrec.db import engine as engine_module
from assessrec.models.record import AssessmentRecord
from assessrec.repos import provider
from assessrec.repos.pg_record_repo import PgRecordRepo
from assessrec.repos.record_repo import InMemoryRecordRepo


class FakeSession:
    def __init__(self) -> None:
        self.committed = False
        self.rolled_back = False
        self.closed = False

    async def __aenter__(self) -> FakeSession:
        return self

    async def __aexit__(self, *exc) -> None:
        self.closed = True

    async def commit(self) -> None:
        self.committed = True

    async def rollback(self) -> None:
        self.rolled_back = True


@pytest.fixture
def fake_factory(monkeypatch):
    sessions: list[FakeSession] = []

    def _factory() -> FakeSession:
        session = FakeSession()
        sessions.append(session)
        return session

    monkeypatch.setattr(engine_module, "async_session_factory", _factory)
    return sessions


def test_without_database_scopes_share_the_memory_repo(monkeypatch) -> None:
    monkeypatch.setattr(engine_module, "async_session_factory", None)
    monkeypatch.setattr(provider, "memory_repo", InMemoryRecordRepo())

    async def _run() -> AssessmentRecord | None:
        async with provider.record_repo_scope() as repo:
            assert isinstance(repo, InMemoryRecordRepo)
            await repo.insert([AssessmentRecord(assessment_id=5, user_id=7)])
        async with provider.record_repo_scope() as repo:
            return await repo.get(5, 7)

    assert asyncio.run(_run()) is not None


def test_database_scope_commits_on_success(fake_factory) -> None:
    async def _run() -> None:
        async with provider.record_repo_scope() as repo:
            assert isinstance(repo, PgRecordRepo)

    asyncio.run(_run())
    (session,) = fake_factory
    assert session.committed
    assert not session.rolled_back
    assert session.closed


def test_database_scope_rolls_back_on_error(fake_factory) -> None:
    async def _run() -> None:
        async with provider.record_repo_scope():
            raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        asyncio.run(_run())
    (session,) = fake_factory
    assert session.rolled_back
    assert not session.committed


def test_lifespan_without_backends_is_a_no_op(monkeypatch) -> None:
    monkeypatch.setattr(engine_module, "engine", None)

    async def _run() -> bool:
        async with provider.lifespan_backends():
            return True

    assert asyncio.run(_run())
