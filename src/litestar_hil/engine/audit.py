"""Append-only audit recorder.

Audit events are written into the caller's unit of work, so a change and its
audit entry commit or roll back together. A failed audit write fails the
whole operation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from litestar_hil.core.metadata import validate_metadata
from litestar_hil.db.models import AuditEventModel
from litestar_hil.db.repositories import AuditEventRepository

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from litestar_hil.core.types import Actor, AuditAction
    from litestar_hil.db.uow import UnitOfWork

__all__ = ["AuditRecorder"]


class AuditRecorder:
    """Records audit events and reads them back."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime],
    ) -> None:
        self._session_maker = session_maker
        self._clock = clock

    def record(
        self,
        uow: UnitOfWork,
        *,
        actor: Actor,
        action: AuditAction,
        event_type: str,
        resource_type: str,
        resource_id: UUID,
        workflow_id: UUID | None = None,
        event_data: Mapping[str, Any] | None = None,
    ) -> AuditEventModel:
        """Add an audit event to the unit of work.

        Args:
            uow: The unit of work the audited change belongs to.
            actor: Who made the change.
            action: Audit verb.
            event_type: Dotted event name; selects the metadata whitelist.
            resource_type: Kind of the changed resource.
            resource_id: Identifier of the changed resource.
            workflow_id: Workflow the change belongs to.
            event_data: Event metadata.

        Returns:
            The pending audit event.

        Raises:
            MetadataValidationError: If ``event_data`` violates the whitelist.
        """
        event = AuditEventModel(
            actor_type=actor.type,
            actor_id=actor.id,
            actor_name=actor.name,
            event_type=event_type,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            workflow_id=workflow_id,
            event_data=validate_metadata(event_type, event_data),
            created_at=self._clock(),
        )
        uow.session.add(event)
        return event

    def record_batch(
        self,
        uow: UnitOfWork,
        *,
        actor: Actor,
        action: AuditAction,
        event_type: str,
        workflow_id: UUID,
        task_ids: Sequence[UUID],
        event_data: Mapping[str, Any] | None = None,
    ) -> AuditEventModel:
        """Add one audit event covering a batch of task changes.

        The event is recorded against the workflow and lists every affected
        task ID under ``task_ids``.

        Args:
            uow: The unit of work the audited change belongs to.
            actor: Who made the change.
            action: Audit verb.
            event_type: Dotted event name.
            workflow_id: The workflow whose tasks changed.
            task_ids: Every task the batch touched.
            event_data: Additional event metadata.

        Returns:
            The pending audit event.
        """
        data = dict(event_data or {})
        data["task_ids"] = [str(task_id) for task_id in task_ids]
        data["task_count"] = len(task_ids)
        return self.record(
            uow,
            actor=actor,
            action=action,
            event_type=event_type,
            resource_type="workflow",
            resource_id=workflow_id,
            workflow_id=workflow_id,
            event_data=data,
        )

    async def list_events(
        self,
        *,
        resource_type: str | None = None,
        resource_id: UUID | None = None,
        workflow_id: UUID | None = None,
        event_type: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[Sequence[AuditEventModel], int]:
        """List audit events, oldest first.

        Returns:
            Tuple of (events, total_count).
        """
        async with self._session_maker() as session:
            repo = AuditEventRepository(session=session)
            return await repo.find_events(
                resource_type=resource_type,
                resource_id=resource_id,
                workflow_id=workflow_id,
                event_type=event_type,
                limit=limit,
                offset=offset,
            )
