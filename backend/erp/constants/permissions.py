"""Central permission codes, built-in role presets and the route permission table.
Extend cautiously; never rename codes silently. Add a new code and migrate role grants instead.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
import re
from typing import FrozenSet, List, Pattern, Tuple


class PermissionCode(str, Enum):
    DASHBOARD_VIEW = 'core:dashboard:view'
    USERS_MANAGE = 'admin:users:manage'
    ROLES_MANAGE = 'admin:roles:manage'
    STORES_MANAGE = 'admin:stores:manage'
    ITEMS_VIEW = 'catalog:items:view'
    ITEMS_EDIT = 'catalog:items:edit'
    CATEGORIES_VIEW = 'catalog:categories:view'
    CATEGORIES_EDIT = 'catalog:categories:edit'
    INVENTORY_VIEW = 'inventory:stock:view'
    INVENTORY_ADJUST = 'inventory:stock:adjust'
    SALES_VIEW = 'sales:orders:view'
    SALES_CREATE = 'sales:orders:create'
    POS_ACCESS = 'pos:terminal:access'

    def __str__(self) -> str:
        return self.value

    @property
    def module(self) -> str:
        return self.value.split(':', 1)[0]


ALL_PERMISSION_CODES: Tuple[PermissionCode, ...] = tuple(PermissionCode)
_CODES_BY_VALUE = {c.value: c for c in PermissionCode}


def parse_permission_code(raw: str):
    """Return the PermissionCode for ``raw`` or None when it is not a known code."""
    return _CODES_BY_VALUE.get(raw)


@dataclass(frozen=True)
class BuiltinRole:
    key: str
    name: str
    permissions: FrozenSet[PermissionCode]
    is_default: bool = False


ADMIN_ROLE = BuiltinRole(
    key='ADMIN',
    name='Administrator',
    permissions=frozenset(ALL_PERMISSION_CODES),
    is_default=True,
)

MANAGER_ROLE = BuiltinRole(
    key='MANAGER',
    name='Store Manager',
    permissions=frozenset({
        PermissionCode.DASHBOARD_VIEW,
        PermissionCode.ITEMS_VIEW,
        PermissionCode.ITEMS_EDIT,
        PermissionCode.CATEGORIES_VIEW,
        PermissionCode.CATEGORIES_EDIT,
        PermissionCode.INVENTORY_VIEW,
        PermissionCode.INVENTORY_ADJUST,
        PermissionCode.SALES_VIEW,
        PermissionCode.SALES_CREATE,
        PermissionCode.POS_ACCESS,
    }),
)

POS_USER_ROLE = BuiltinRole(
    key='POS_USER',
    name='POS Operator',
    permissions=frozenset({
        PermissionCode.ITEMS_VIEW,
        PermissionCode.CATEGORIES_VIEW,
        PermissionCode.INVENTORY_VIEW,
        PermissionCode.SALES_CREATE,
        PermissionCode.POS_ACCESS,
    }),
)

BUILTIN_ROLES: Tuple[BuiltinRole, ...] = (ADMIN_ROLE, MANAGER_ROLE, POS_USER_ROLE)
BUILTIN_ROLE_NAMES: Tuple[str, ...] = tuple(r.name for r in BUILTIN_ROLES)


@dataclass(frozen=True)
class RouteRule:
    pattern: Pattern[str]
    permission: PermissionCode


def _rule(expr: str, permission: PermissionCode) -> RouteRule:
    return RouteRule(re.compile(expr), permission)


# Evaluated top to bottom, first match wins. More specific prefixes must come first.
ROUTE_PERMISSIONS: List[RouteRule] = [
    _rule(r'^/catalog/items', PermissionCode.ITEMS_VIEW),
    _rule(r'^/catalog/categories', PermissionCode.CATEGORIES_VIEW),
    _rule(r'^/inventory', PermissionCode.INVENTORY_VIEW),
    _rule(r'^/iam/users', PermissionCode.USERS_MANAGE),
    _rule(r'^/iam/roles', PermissionCode.ROLES_MANAGE),
    _rule(r'^/iam/permissions', PermissionCode.ROLES_MANAGE),
    _rule(r'^/admin', PermissionCode.DASHBOARD_VIEW),
    _rule(r'^/pos', PermissionCode.POS_ACCESS),
    _rule(r'^/sales', PermissionCode.SALES_VIEW),
    _rule(r'^/store', PermissionCode.SALES_VIEW),
]

__all__ = [
    'PermissionCode', 'ALL_PERMISSION_CODES', 'parse_permission_code', 'BuiltinRole',
    'ADMIN_ROLE', 'MANAGER_ROLE', 'POS_USER_ROLE', 'BUILTIN_ROLES', 'BUILTIN_ROLE_NAMES',
    'RouteRule', 'ROUTE_PERMISSIONS',
]
