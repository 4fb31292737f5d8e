from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from . import models, schemas

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 500


def create_audit_event(
    db: Session,
    *,
    company_id: str,
    data: schemas.AuditEventCreate,
) -> models.AuditEvent:
    event = models.AuditEvent(
        company_id=company_id,
        entity_type=data.entity_type,
        entity_id=data.entity_id,
        action=data.action,
        description=data.description,
        actor_user_id=data.actor_user_id,
        actor_name=data.actor_name,
        actor_email=data.actor_email,
        actor_role=data.actor_role,
        before=data.before,
        after=data.after,
        metadata_json=data.metadata,
    )
    if data.occurred_at is not None:
        event.occurred_at = data.occurred_at
    db.add(event)
    db.flush()
    return event


def _role_value(role: Any) -> Optional[str]:
    if role is None:
        return None
    return role.value if hasattr(role, "value") else str(role)


def log_event(
    db: Session,
    *,
    company_id: str,
    actor: Any,
    entity_type: str,
    entity_id: Optional[str],
    action: str,
    description: Optional[str] = None,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    metadata: Optional[dict] = None,
    critical: bool = False,
) -> Optional[models.AuditEvent]:
    """
    Best-effort audit event logger.

    `actor` is the acting User (or None for system actions); its name,
    email and role are copied onto the event.

    The write runs inside a SAVEPOINT so a failing insert does not poison
    the caller's transaction.
    - For critical actions (movement create/cancel, imports), raise on failure.
    - For non-critical actions, log warning and continue.
    """
    data = schemas.AuditEventCreate(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        description=description,
        actor_user_id=getattr(actor, "id", None),
        actor_name=getattr(actor, "full_name", None),
        actor_email=getattr(actor, "email", None),
        actor_role=_role_value(getattr(actor, "role", None)),
        before=before,
        after=after,
        metadata=metadata,
    )
    try:
        with db.begin_nested():
            return create_audit_event(db, company_id=company_id, data=data)
    except Exception:
        logger.warning(
            "Failed to log audit event",
            exc_info=True,
            extra={
                "company_id": company_id,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
                "critical": critical,
            },
        )
        if critical:
            raise
        return None


def _start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min).replace(tzinfo=timezone.utc)


def _end_of_day(value: date) -> datetime:
    return datetime.combine(value, time(23, 59, 59)).replace(tzinfo=timezone.utc)


def list_audit_events(
    db: Session,
    *,
    company_id: str,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = DEFAULT_LIST_LIMIT,
) -> Sequence[models.AuditEvent]:
    query = db.query(models.AuditEvent).filter(models.AuditEvent.company_id == company_id)
    if date_from:
        query = query.filter(models.AuditEvent.occurred_at >= _start_of_day(date_from))
    if date_to:
        query = query.filter(models.AuditEvent.occurred_at <= _end_of_day(date_to))
    if user_id:
        query = query.filter(models.AuditEvent.actor_user_id == user_id)
    if action:
        query = query.filter(models.AuditEvent.action == action)
    if entity_type:
        query = query.filter(models.AuditEvent.entity_type == entity_type)
    if entity_id:
        query = query.filter(models.AuditEvent.entity_id == entity_id)
    return query.order_by(models.AuditEvent.occurred_at.desc()).limit(limit).all()


def list_actions(db: Session, *, company_id: str) -> List[str]:
    rows = (
        db.query(models.AuditEvent.action)
        .filter(models.AuditEvent.company_id == company_id)
        .distinct()
        .all()
    )
    return sorted(action for (action,) in rows if action)


def list_actors(db: Session, *, company_id: str) -> List[schemas.AuditActor]:
    rows: List[Tuple[Optional[str], Optional[str]]] = (
        db.query(models.AuditEvent.actor_user_id, models.AuditEvent.actor_name)
        .filter(
            models.AuditEvent.company_id == company_id,
            models.AuditEvent.actor_user_id.isnot(None),
        )
        .distinct()
        .all()
    )
    actors: dict[str, str] = {}
    for user_id, name in rows:
        actors.setdefault(user_id, name or "")
    return sorted(
        (schemas.AuditActor(id=user_id, name=name) for user_id, name in actors.items()),
        key=lambda actor: actor.name.lower(),
    )
