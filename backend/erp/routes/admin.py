from flask import Blueprint
from sqlalchemy import select, func
from erp.constants.permissions import PermissionCode
from erp.decorators.auth import require_any_permission
from erp.models.authz import User, Role
from erp.models.catalog import Category, Item
from erp.models.inventory import Store
from erp.routes.inventory import store_rollups, totals_json
from erp.services.inventory import aggregate_global
from erp import get_db

admin_bp = Blueprint('admin', __name__)


def _count(session, model) -> int:
    return session.execute(select(func.count(model.id))).scalar_one()


@admin_bp.get('/summary')
@require_any_permission(PermissionCode.DASHBOARD_VIEW, PermissionCode.INVENTORY_VIEW)
def summary():
    """Dashboard figures: record counts plus inventory totals across all stores."""
    session = get_db()
    pairs = store_rollups(session)
    return {
        'counts': {
            'users': _count(session, User),
            'roles': _count(session, Role),
            'stores': _count(session, Store),
            'categories': _count(session, Category),
            'items': _count(session, Item),
        },
        'inventory': totals_json(aggregate_global(r for _, r in pairs)),
    }
