"""Best-effort audit trail for circulation mutations.

Mutating operations queue an ``AuditEvent`` on the SQLAlchemy session.
Queued events are handed to their sink only after the surrounding
transaction commits and are discarded on rollback, so the trail never
records a loan that was not persisted. A sink that raises is logged and
ignored. Auditing never fails the operation it describes.
"""

import logging
from datetime import datetime
from typing import Any, Protocol

import logfire
from pydantic import BaseModel, Field
from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_PENDING_KEY = "pending_audit_events"


class AuditEvent(BaseModel):
    action: str
    actor_email: str
    branch_id: int | None = None
    meta: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=datetime.now)


class AuditSink(Protocol):
    def emit(self, audit_event: AuditEvent) -> None: ...


class LogfireAuditSink:
    """Ships audit events as Logfire logs and mirrors them to stdlib logging."""

    def emit(self, audit_event: AuditEvent) -> None:
        logfire.info(
            "audit {action}",
            action=audit_event.action,
            actor=audit_event.actor_email,
            branch_id=audit_event.branch_id,
            meta=audit_event.meta,
        )
        logger.info(
            "audit %s by %s (branch=%s) %s",
            audit_event.action,
            audit_event.actor_email,
            audit_event.branch_id,
            audit_event.meta,
        )


class _SinkStore:
    sink: AuditSink = LogfireAuditSink()


def get_audit_sink() -> AuditSink:
    return _SinkStore.sink


def set_audit_sink(sink: AuditSink) -> None:
    _SinkStore.sink = sink


def emit_audit(sink: AuditSink, audit_event: AuditEvent) -> None:
    try:
        sink.emit(audit_event)
    except Exception:
        logger.exception("Audit sink failed for %s", audit_event.action)


def queue_audit(session: Session, sink: AuditSink, audit_event: AuditEvent) -> None:
    """Emit ``audit_event`` once the session's current transaction commits."""
    if not event.contains(session, "after_commit", _flush_pending):
        event.listen(session, "after_commit", _flush_pending)
        event.listen(session, "after_soft_rollback", _discard_pending)
    session.info.setdefault(_PENDING_KEY, []).append((sink, audit_event))


def _flush_pending(session: Session) -> None:
    for sink, audit_event in session.info.pop(_PENDING_KEY, []):
        emit_audit(sink, audit_event)


def _discard_pending(session: Session, previous_transaction) -> None:  # noqa: ARG001
    dropped = session.info.pop(_PENDING_KEY, [])
    if dropped:
        logger.debug("Discarded %d audit event(s) after rollback", len(dropped))
