"""
survey_review/audit.py

Audit helpers for survey review commands.

Goals:
- Capture WHO changed WHICH survey, with BEFORE/AFTER block snapshots.
- Store a username snapshot so the trail survives user renames.
- Store the client IP when the change comes from an HTTP request.

IMPORTANT:
- log_action() only ADDS an AuditLog row to the current SQLAlchemy session.
  The caller controls the transaction (commit/rollback).
- The actor is passed in explicitly (ReviewContext); nothing here reads the
  logged-in user.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Optional

from flask import has_request_context, request

from .extensions import db
from .models import AuditLog
from .security import ReviewContext


def _safe_str(value: Any) -> Optional[str]:
    """
    Convert a value to a stable string for JSON and DB storage.

    Decimal/date/enum values all have a usable str(); None stays None.
    """
    if value is None:
        return None
    return str(getattr(value, "value", value))


def serialize_model(instance: Any, columns: Iterable[str] | None = None) -> Dict[str, Optional[str]]:
    """
    Snapshot scalar column values of a model instance (relationships excluded).

    When `columns` is given only those columns are captured.
    """
    names = list(columns) if columns is not None else [c.name for c in instance.__table__.columns]
    return {name: _safe_str(getattr(instance, name)) for name in names}


def log_action(
    entity: Any,
    action: str,
    *,
    actor: ReviewContext | None = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an AuditLog entry to the current db session.

    Parameters:
        entity: SQLAlchemy model instance with .id (flushed)
        action: e.g. REVIEW_BLOCK / APPROVE_ALL / REOPEN
        actor: who performed it (optional for system actions)
        before/after: dict snapshots
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    entry = AuditLog(
        user_id=actor.user_id if actor else None,
        username_snapshot=actor.username if actor else None,
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=str(action),
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)
    return entry
