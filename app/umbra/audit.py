import json
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.umbra.models import AuditEvent, User

MAX_EVENTS = 500


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append an audit event to the session; the caller's commit persists it with the change it describes.
    Works outside a request (cron scripts), where request id and client IP stay empty.
    """
    in_request = has_request_context()
    ev = AuditEvent(
        request_id=request_id or (getattr(g, "request_id", None) if in_request else None),
        client_ip=request.remote_addr if in_request else None,
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        # default=str keeps dates and Decimals in metadata serializable
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
    )
    s.add(ev)
    return ev


def recent_events(
    s: Session,
    *,
    action: str | None = None,
    entity_type: str | None = None,
    actor_user_id: int | None = None,
    limit: int = 100,
) -> list[AuditEvent]:
    """Newest first. `action` matches as a substring, so "user." lists every user action."""
    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if actor_user_id:
        q = q.filter(AuditEvent.actor_user_id == actor_user_id)
    limit = min(max(limit, 1), MAX_EVENTS)
    return q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(limit).all()
