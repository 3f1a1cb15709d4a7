"""Idempotent seeding of permission rows and the built-in roles.

``bootstrap_authz`` is the one multi-row write of the access layer: permission
rows, the three built-in roles and the first user's Administrator assignment
are committed together or not at all.
"""
from __future__ import annotations
import logging
from typing import Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from erp.constants.permissions import ADMIN_ROLE, ALL_PERMISSION_CODES, BUILTIN_ROLES, BUILTIN_ROLE_NAMES
from erp.models.authz import Permission, Role, RolePermission, User, UserRole

log = logging.getLogger(__name__)


def ensure_permission_rows(session) -> Dict[str, Permission]:
    """Create any missing ``permissions`` rows; returns code -> Permission. Does not commit."""
    existing = {p.code: p for p in session.execute(select(Permission)).scalars().all()}
    for code in ALL_PERMISSION_CODES:
        if code.value not in existing:
            perm = Permission(code=code.value, module=code.module, description=code.value)
            session.add(perm)
            existing[code.value] = perm
    session.flush()
    return existing


def builtin_roles_exist(session) -> bool:
    count = session.execute(select(func.count(Role.id)).where(Role.name.in_(BUILTIN_ROLE_NAMES))).scalar_one()
    return count > 0


def bootstrap_authz(session, first_user: Optional[User] = None) -> bool:
    """Seed built-in roles and make ``first_user`` an Administrator, once.

    Returns True when this call seeded, False when the roles already existed or a
    concurrent call won the race. ``first_user`` must already be committed; the
    session is committed (or rolled back) by this function.
    """
    if first_user is not None and first_user.id is None:
        raise ValueError('first_user must be persisted before bootstrapping roles')
    if builtin_roles_exist(session):
        return False
    try:
        perms = ensure_permission_rows(session)
        for preset in BUILTIN_ROLES:
            role = Role(name=preset.name, is_system=True, is_default=preset.is_default)
            session.add(role)
            session.flush()
            for code in sorted(preset.permissions, key=lambda c: c.value):
                session.add(RolePermission(role_id=role.id, permission_id=perms[code.value].id))
            if first_user is not None and preset is ADMIN_ROLE:
                session.add(UserRole(user_id=first_user.id, role_id=role.id))
        session.commit()
    except IntegrityError:
        session.rollback()
        log.info('Built-in roles were created concurrently; skipping bootstrap')
        return False
    if first_user is not None:
        log.info('Seeded built-in roles; user %s is the initial Administrator', first_user.id)
    else:
        log.info('Seeded built-in roles')
    return True


def sync_builtin_role_permissions(session) -> int:
    """Grant codes added to a built-in preset after the role was first seeded. Does not commit."""
    perms = ensure_permission_rows(session)
    added = 0
    for preset in BUILTIN_ROLES:
        role = session.execute(select(Role).where(Role.name == preset.name)).scalar_one_or_none()
        if not role:
            continue
        current = {rp.permission.code for rp in role.permissions}
        for code in sorted(preset.permissions, key=lambda c: c.value):
            if code.value not in current:
                session.add(RolePermission(role=role, permission=perms[code.value]))
                added += 1
    session.flush()
    return added

__all__ = ['ensure_permission_rows', 'builtin_roles_exist', 'bootstrap_authz', 'sync_builtin_role_permissions']
