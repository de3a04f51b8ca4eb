from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from opaca.crud import SQLAlchemyUnitOfWork
from opaca.exceptions import StorageError


def _session(in_transaction: bool = False) -> AsyncMock:
    session = AsyncMock(spec=AsyncSession)
    session.in_transaction = MagicMock(return_value=in_transaction)
    session.begin = AsyncMock()
    return session


def _factory(session: AsyncMock) -> MagicMock:
    return MagicMock(return_value=session)


@pytest.mark.asyncio()
async def test_commit_then_hooks():
    session = _session()
    calls = []

    async def hook():
        calls.append(session.commit.await_count)

    async with SQLAlchemyUnitOfWork(session_factory=_factory(session)) as uow:
        uow.on_commit(hook)
        assert calls == []

    session.commit.assert_awaited_once()
    assert calls == [1]


@pytest.mark.asyncio()
async def test_rollback_on_exception_skips_hooks():
    session = _session(in_transaction=True)
    hook = AsyncMock()

    with pytest.raises(ValueError, match="Boom"):
        async with SQLAlchemyUnitOfWork(session_factory=_factory(session)) as uow:
            uow.on_commit(hook)
            raise ValueError("Boom")

    session.commit.assert_not_awaited()
    session.rollback.assert_awaited_once()
    hook.assert_not_awaited()
    session.close.assert_awaited_once()


@pytest.mark.asyncio()
async def test_commit_failure_becomes_storage_error():
    session = _session(in_transaction=True)
    session.commit.side_effect = OperationalError("COMMIT", {}, Exception("disk full"))

    with pytest.raises(StorageError):
        async with SQLAlchemyUnitOfWork(session_factory=_factory(session)):
            pass

    session.rollback.assert_awaited_once()
    session.close.assert_awaited_once()


@pytest.mark.asyncio()
async def test_failing_hook_is_logged_not_raised(caplog):
    session = _session()

    async def hook():
        raise RuntimeError("sink down")

    async with SQLAlchemyUnitOfWork(session_factory=_factory(session)) as uow:
        uow.on_commit(hook)

    assert "Error in on_commit hook" in caplog.text


@pytest.mark.asyncio()
async def test_session_is_created_and_closed():
    session = _session()
    factory = _factory(session)

    async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
        assert uow.session is session
        session.begin.assert_awaited_once()

    factory.assert_called_once_with()
    session.close.assert_awaited_once()


def test_session_before_enter():
    uow = SQLAlchemyUnitOfWork(session_factory=_factory(_session()))
    with pytest.raises(StorageError, match="not yet created"):
        uow.session  # noqa: B018
