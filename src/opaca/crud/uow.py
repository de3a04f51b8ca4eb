"""
Request-scoped unit of work over a SQLAlchemy ``AsyncSession``.

Commit happens BEFORE ``on_commit`` callbacks run, so best-effort audit
delivery and after-hooks only ever observe committed rows.
"""

from __future__ import annotations

import contextlib
import logging
from collections import deque
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import StorageError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType

    from sqlalchemy.ext.asyncio import AsyncSession

    AsyncSessionFactory = Callable[[], AsyncSession]

logger = logging.getLogger("opaca.uow")


class SQLAlchemyUnitOfWork:
    """
    Unit of Work using a SQLAlchemy ``AsyncSession``.

    Usage::

        async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
            ...

    The UoW creates the session on enter and closes it on exit.
    """

    def __init__(self, session_factory: AsyncSessionFactory) -> None:
        self._session: AsyncSession | None = None
        self._session_factory = session_factory
        self._on_commit_hooks: deque[Callable[[], Awaitable[Any]]] = deque()

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise StorageError("Session not yet created. Ensure __aenter__ was called.")
        return self._session

    def on_commit(self, callback: Callable[[], Awaitable[Any]]) -> None:
        """Register an async callback to run after a successful commit."""
        self._on_commit_hooks.append(callback)

    async def trigger_commit_hooks(self) -> None:
        while self._on_commit_hooks:
            callback = self._on_commit_hooks.popleft()
            try:
                await callback()
            except Exception as exc:
                logger.error("Error in on_commit hook: %s", exc, exc_info=True)

    async def __aenter__(self) -> SQLAlchemyUnitOfWork:
        try:
            self._session = self._session_factory()
            if not self.session.in_transaction():
                await self.session.begin()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to open unit of work: {e}") from e
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        try:
            if exc_type is None:
                await self.commit()
                await self.trigger_commit_hooks()
            else:
                self._on_commit_hooks.clear()
                await self.rollback()
        finally:
            if self._session is not None:
                await self._session.close()

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            with contextlib.suppress(SQLAlchemyError):
                await self.rollback()
            raise StorageError(f"Failed to commit transaction: {e}") from e

    async def rollback(self) -> None:
        try:
            if self.session.in_transaction():
                await self.session.rollback()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to rollback transaction: {e}") from e
