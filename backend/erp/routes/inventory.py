from __future__ import annotations
from flask import Blueprint, current_app
from sqlalchemy.exc import IntegrityError
from erp.decorators.auth import require_permissions
from erp.constants.permissions import PermissionCode
from erp.errors import UniqueConflict, unique_violation_field
from erp.models.inventory import Store
from erp.schemas.inventory import StoreForm, StockAdjustmentForm
from erp.services.audit import add_audit
from erp.services.inventory import GlobalTotals, StoreRollup, aggregate_global, aggregate_store
from erp.services.policy import has_permissions
from erp.services.stock import apply_adjustment, load_store_lines
from erp.utils.formatters import format_money, format_quantity
from erp.utils.validation import echo_values, form_payload, parse_form
from erp import get_db

inv_bp = Blueprint('inventory', __name__)

STORE_UNIQUE_MESSAGES = {'code': 'Code must be unique.', 'name': 'Name must be unique.'}


def _store_json(s: Store):
    return {'id': s.id, 'code': s.code, 'name': s.name, 'city': s.city, 'state': s.state, 'location': s.location}


def _rollup_json(r: StoreRollup):
    return {
        'sku_count': r.sku_count,
        'on_hand': format_quantity(r.on_hand),
        'reserved': format_quantity(r.reserved),
        'stock_value': format_money(r.stock_value),
        'low_stock': [
            {'item_id': e.item_id, 'name': e.name, 'sku': e.sku, 'available': format_quantity(e.available)}
            for e in r.low_stock
        ],
    }


def totals_json(t: GlobalTotals):
    return {
        'sku_count': t.sku_count,
        'on_hand': format_quantity(t.on_hand),
        'reserved': format_quantity(t.reserved),
        'stock_value': format_money(t.stock_value),
        'low_stock': t.low_stock,
    }


def store_rollups(session):
    """(store, rollup) pairs using the configured low-stock threshold and list size."""
    threshold = current_app.config['LOW_STOCK_THRESHOLD']
    limit = current_app.config['LOW_STOCK_LIMIT']
    return [(store, aggregate_store(lines, threshold, limit)) for store, lines in load_store_lines(session)]


@inv_bp.get('/stores')
@require_permissions(PermissionCode.INVENTORY_VIEW)
def list_stores():
    session = get_db()
    pairs = store_rollups(session)
    totals = aggregate_global(r for _, r in pairs)
    return {
        'data': [dict(_store_json(s), summary=_rollup_json(r)) for s, r in pairs],
        'totals': totals_json(totals),
        'low_stock_threshold': current_app.config['LOW_STOCK_THRESHOLD'],
        'can_adjust': has_permissions(PermissionCode.INVENTORY_ADJUST),
    }


@inv_bp.post('/stores')
@require_permissions(PermissionCode.STORES_MANAGE)
def create_store():
    session = get_db()
    data = form_payload()
    form = parse_form(StoreForm, data)
    store = Store(code=form.code, name=form.name, city=form.city, state=form.state)
    session.add(store)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        field = unique_violation_field(e, 'stores', STORE_UNIQUE_MESSAGES.keys())
        if field is None:
            raise
        raise UniqueConflict(field, STORE_UNIQUE_MESSAGES[field], echo_values(data, StoreForm.model_fields.keys()))
    add_audit(session, 'STORE.CREATE', entity='Store', entity_id=store.id, meta={'code': store.code, 'name': store.name})
    session.commit()
    current_app.logger.info('Created store %s (%s)', store.id, store.code)
    return _store_json(store), 201


@inv_bp.post('/adjustments')
@require_permissions(PermissionCode.INVENTORY_ADJUST)
def adjust_stock():
    session = get_db()
    data = form_payload()
    form = parse_form(StockAdjustmentForm, data)
    record = apply_adjustment(session, form, echo_values(data, StockAdjustmentForm.model_fields.keys()))
    session.commit()
    return {
        'id': record.id,
        'store_id': record.store_id,
        'item_id': record.item_id,
        'quantity': format_quantity(record.quantity),
        'reserved': format_quantity(record.reserved),
        'available': format_quantity(record.quantity - record.reserved),
    }, 201
