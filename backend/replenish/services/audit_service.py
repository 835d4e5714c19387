# Overview: Append-only audit sink for state transitions and stock alerts.

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import AuditEvent
from ..time_utils import utcnow
"""
Audit trail invariants

- Append-only: no updates/deletes of existing events.
- No domain logic here; callers decide what to record.
- Events are written inside the same DB transaction as the change they
  record (flush, never commit).
- occurred_at is business time; created_at is system time (DB default).
"""


def append_audit_event(
    *,
    action: str,
    entity_type: str,
    entity_id,
    actor=None,
    from_status: str | None = None,
    to_status: str | None = None,
    note: Optional[str] = None,
    payload: dict | None = None,
    occurred_at: Optional[datetime] = None,
) -> AuditEvent:
    ev = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        from_status=from_status,
        to_status=to_status,
        actor_id=actor.id if actor is not None else None,
        actor_name=actor.name if actor is not None else None,
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True, default=str) if payload else None,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_audit_events(
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
    action: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[AuditEvent], int]:
    query = db.session.query(AuditEvent)

    if entity_type:
        query = query.filter(AuditEvent.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditEvent.entity_id == str(entity_id))
    if action:
        query = query.filter(AuditEvent.action == action)

    total = query.count()
    events = (
        query.order_by(AuditEvent.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return events, total


def transitions_for(entity_type: str, entity_id) -> list[tuple[str | None, str | None]]:
    """Status edges recorded for an entity, oldest first."""
    rows = (
        db.session.query(AuditEvent.from_status, AuditEvent.to_status)
        .filter(
            AuditEvent.entity_type == entity_type,
            AuditEvent.entity_id == str(entity_id),
            AuditEvent.to_status.isnot(None),
        )
        .order_by(AuditEvent.id.asc())
        .all()
    )
    return [(r.from_status, r.to_status) for r in rows]
