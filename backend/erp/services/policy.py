"""Permission resolution and gating.

The pure functions (``resolve_permissions``, ``authorize``, ``authorize_any``,
``required_permission``, ``gate``) work on in-memory values only. The helpers
below them load a user's roles through an explicit session and memoise the
result on ``flask.g`` for the current request; nothing is cached across
requests, so role changes apply on the next call without a fresh login.
"""
from __future__ import annotations
from dataclasses import dataclass
import logging
from typing import FrozenSet, Iterable, List, Optional, Sequence, Union

from flask import abort, g
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import select

from erp.constants.permissions import ADMIN_ROLE, PermissionCode, RouteRule, parse_permission_code
from erp.models.authz import Permission, Role, RolePermission, User, UserRole

log = logging.getLogger(__name__)

CodeLike = Union[PermissionCode, str]


@dataclass(frozen=True)
class RoleGrant:
    name: str
    permission_codes: FrozenSet[str]


def _coerce(code: CodeLike) -> Optional[PermissionCode]:
    if isinstance(code, PermissionCode):
        return code
    return parse_permission_code(code)


def resolve_permissions(roles: Iterable) -> FrozenSet[PermissionCode]:
    """Union of every role's permission codes.

    Accepts anything exposing ``permission_codes`` (``RoleGrant`` or the ORM ``Role``).
    Unknown codes are dropped so the result stays inside the closed enumeration.
    """
    effective = set()
    for role in roles:
        for raw in role.permission_codes:
            code = _coerce(raw)
            if code is None:
                log.debug('Ignoring unknown permission code %r on role %r', raw, getattr(role, 'name', None))
                continue
            effective.add(code)
    return frozenset(effective)


def authorize(effective: FrozenSet[PermissionCode], required: CodeLike) -> bool:
    code = _coerce(required)
    if code is None:
        return False
    return code in effective


def authorize_any(effective: FrozenSet[PermissionCode], required: Sequence[CodeLike]) -> bool:
    # An empty requirement list never grants access.
    return any(authorize(effective, code) for code in required)


def required_permission(path: str, rules: Sequence[RouteRule]) -> Optional[PermissionCode]:
    for rule in rules:
        if rule.pattern.search(path):
            return rule.permission
    return None


def gate(path: str, effective: FrozenSet[PermissionCode], rules: Sequence[RouteRule]) -> bool:
    """Decide whether ``path`` is reachable. Paths without a rule are allowed."""
    needed = required_permission(path, rules)
    if needed is None:
        return True
    return authorize(effective, needed)


# --- persistence-backed helpers ---

def load_role_grants(session, user_id: int) -> List[RoleGrant]:
    rows = session.execute(
        select(Role.name, Permission.code)
        .join(UserRole, UserRole.role_id == Role.id)
        .join(User, User.id == UserRole.user_id)
        .outerjoin(RolePermission, RolePermission.role_id == Role.id)
        .outerjoin(Permission, Permission.id == RolePermission.permission_id)
        .where(UserRole.user_id == user_id, User.is_active.is_(True))
    ).all()
    by_role = {}
    for role_name, code in rows:
        codes = by_role.setdefault(role_name, set())
        if code is not None:
            codes.add(code)
    return [RoleGrant(name=name, permission_codes=frozenset(codes)) for name, codes in by_role.items()]


def compute_effective_permissions(session, user_id: int) -> FrozenSet[PermissionCode]:
    return resolve_permissions(load_role_grants(session, user_id))


def current_user_id() -> int:
    # identity stored as string in JWT
    return int(get_jwt_identity())


def reset_permission_cache():
    """before_request hook; ``g`` can outlive a single request when an app context is reused."""
    g.pop('_erp_permissions', None)


def current_permissions() -> FrozenSet[PermissionCode]:
    """Effective permissions of the authenticated caller; assumes the JWT was verified."""
    cached = g.get('_erp_permissions')
    if cached is not None:
        return cached
    from erp import get_db
    perms = compute_effective_permissions(get_db(), current_user_id())
    g._erp_permissions = perms
    return perms


def has_permissions(*codes: CodeLike) -> bool:
    perms = current_permissions()
    return all(authorize(perms, c) for c in codes)


def has_any_permission(*codes: CodeLike) -> bool:
    return authorize_any(current_permissions(), list(codes))


def count_admin_users(session) -> int:
    admin_role = session.execute(select(Role).where(Role.name == ADMIN_ROLE.name)).scalar_one_or_none()
    if not admin_role:
        return 0
    user_ids = session.execute(select(UserRole.user_id).where(UserRole.role_id == admin_role.id)).scalars().all()
    return len(set(user_ids))


def assert_not_removing_last_admin(session, target_user_id: int, new_role_ids: set[int]):
    """Abort with 400 if replacing the user's roles would leave no Administrator."""
    admin_role = session.execute(select(Role).where(Role.name == ADMIN_ROLE.name)).scalar_one_or_none()
    if not admin_role:
        return
    if admin_role.id in new_role_ids:
        return
    had_admin = session.execute(
        select(UserRole).where(UserRole.user_id == target_user_id, UserRole.role_id == admin_role.id)
    ).scalar_one_or_none() is not None
    if had_admin and count_admin_users(session) <= 1:
        abort(400, description='Cannot remove last Administrator role')
