"""Unit of work spanning one database transaction.

Every engine operation runs inside a :class:`UnitOfWork`. The state change,
its interrupts, notifications and audit events are committed together, and
side effects that must not happen for a rolled back change (pushing to live
listeners, waking the signal worker) are queued as after-commit callbacks.
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from litestar_hil.db.repositories import (
    AuditEventRepository,
    InterruptRepository,
    NotificationRepository,
    ResumeSignalRepository,
    TaskExecutionRepository,
    WorkflowInstanceRepository,
)
from litestar_hil.exceptions import ConflictError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

__all__ = ["UnitOfWork"]

logger = logging.getLogger(__name__)


class UnitOfWork:
    """Async context manager owning a session and its repositories.

    Commits when the block exits normally and rolls back otherwise. Optimistic
    concurrency failures and unique constraint violations are reported as
    :class:`~litestar_hil.exceptions.ConflictError`.

    Example:
        >>> async with UnitOfWork(session_maker, resource="task", resource_id=task_id) as uow:
        ...     task = await uow.tasks.get(task_id)
        ...     task.status = TaskStatus.IN_PROGRESS
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        resource: str = "record",
        resource_id: str | UUID | None = None,
    ) -> None:
        """Initialize the unit of work.

        Args:
            session_maker: Factory for the session of this transaction.
            resource: Resource named in a ConflictError.
            resource_id: Identifier named in a ConflictError.
        """
        self._session_maker = session_maker
        self._resource = resource
        self._resource_id = resource_id
        self._session: AsyncSession | None = None
        self._after_commit: list[Callable[[], Any]] = []

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            msg = "UnitOfWork is not active. Use it as an async context manager."
            raise RuntimeError(msg)
        return self._session

    async def __aenter__(self) -> UnitOfWork:
        self._session = self._session_maker()
        session = self._session
        self.workflows = WorkflowInstanceRepository(session=session)
        self.tasks = TaskExecutionRepository(session=session)
        self.interrupts = InterruptRepository(session=session)
        self.notifications = NotificationRepository(session=session)
        self.audit_events = AuditEventRepository(session=session)
        self.signals = ResumeSignalRepository(session=session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if exc is None:
                await self.commit()
                return
            await self.session.rollback()
            self._after_commit.clear()
            if isinstance(exc, (StaleDataError, IntegrityError)):
                raise self._conflict() from exc
        finally:
            await self.session.close()
            self._session = None

    def after_commit(self, callback: Callable[[], Awaitable[Any] | Any]) -> None:
        """Queue a callback to run once the transaction has committed.

        Callbacks are isolated from each other and from the operation: a
        failing callback is logged and never propagates.

        Args:
            callback: Sync or async callable without arguments.
        """
        self._after_commit.append(callback)

    async def flush(self) -> None:
        """Flush pending changes, reporting concurrency failures as conflicts."""
        try:
            await self.session.flush()
        except (StaleDataError, IntegrityError) as exc:
            raise self._conflict() from exc

    async def commit(self) -> None:
        """Commit the transaction and run the queued after-commit callbacks.

        May be called inside the block to persist work before raising an
        error the caller should still see.
        """
        try:
            await self.session.commit()
        except (StaleDataError, IntegrityError) as exc:
            await self.session.rollback()
            self._after_commit.clear()
            raise self._conflict() from exc

        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("After-commit callback %r failed", callback)

    def _conflict(self) -> ConflictError:
        logger.info("Concurrent modification of %s %s", self._resource, self._resource_id or "")
        return ConflictError(self._resource, self._resource_id)
