import hashlib
import json
from typing import Any, Optional

from sqlalchemy.orm import Session

from fiscal_ledger.models import AuditEvent


def _hash_payload(payload: dict[str, Any]) -> str:
    encoded = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def record_audit_event(
    db: Session,
    *,
    company_id: int,
    user_id: Optional[int],
    entity_type: str,
    entity_id: int,
    action: str,
    payload: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    event = AuditEvent(
        company_id=company_id,
        user_id=user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        after_hash=_hash_payload(payload) if payload is not None else None,
        event_metadata=json.dumps(payload, sort_keys=True, default=str) if payload is not None else None,
    )
    db.add(event)
    return event
