from __future__ import annotations
from typing import Any, Dict, Optional
from flask_jwt_extended import get_jwt_identity
from erp.models.audit import AuditLog


def _current_actor() -> int:
    try:
        ident = get_jwt_identity()
    except RuntimeError:
        return 0  # no verified JWT in this request (e.g. self-registration)
    return int(ident) if ident is not None else 0


def add_audit(session, action: str, entity: Optional[str] = None, entity_id: Optional[Any] = None,
              meta: Optional[Dict[str, Any]] = None, actor_user_id: Optional[int] = None):
    """Stage an audit log entry in ``session``.

    Parameters:
      action: short action code e.g. ROLE.CREATE, ITEM.UPDATE, STOCK.ADJUST
      entity: optional entity name (Role, Item, etc.)
      entity_id: optional primary key (stored as string)
      meta: additional JSON-safe dictionary (shallow copied)
      actor_user_id: overrides the JWT identity
    """
    log = AuditLog(
        actor_user_id=actor_user_id if actor_user_id is not None else _current_actor(),
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
