from __future__ import annotations
from flask import Blueprint, request, abort, current_app
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from erp.decorators.auth import require_permissions
from erp.constants.permissions import PermissionCode
from erp.errors import UniqueConflict, unique_violation_field
from erp.models.catalog import Category, Item
from erp.schemas.catalog import CategoryForm, ItemForm
from erp.services.audit import add_audit
from erp.services.catalog import apply_item_form, category_exists, item_form_values
from erp.services.inventory import aggregate_item, available
from erp.services.stock import load_item_lines
from erp.utils.formatters import format_money, format_percent, format_quantity
from erp.utils.listing import paginate, build_list_payload
from erp.utils.sorting import apply_multi_sort
from erp.utils.validation import checkbox, echo_values, form_payload, parse_form
from erp import get_db

cat_bp = Blueprint('catalog', __name__)

CATEGORY_UNIQUE_MESSAGES = {'slug': 'Slug must be unique.', 'name': 'Name must be unique.'}
ITEM_UNIQUE_MESSAGES = {'sku': 'SKU must be unique.', 'barcode': 'BARCODE must be unique.'}


def _category_json(c: Category):
    return {
        'id': c.id,
        'name': c.name,
        'slug': c.slug,
        'description': c.description,
        'parent_id': c.parent_id,
        'parent_name': c.parent.name if c.parent else None,
        'is_active': c.is_active,
    }


def _item_json(i: Item):
    return {
        'id': i.id,
        'sku': i.sku,
        'barcode': i.barcode,
        'name': i.name,
        'description': i.description,
        'category_id': i.category_id,
        'category': i.category.name if i.category else None,
        'base_price': format_money(i.base_price),
        'cost_price': format_money(i.cost_price),
        'tax_rate': format_percent(i.tax_rate),
        'track_inventory': i.track_inventory,
        'is_serialized': i.is_serialized,
    }


def _unique_conflict(exc: IntegrityError, table: str, messages: dict, values: dict):
    field = unique_violation_field(exc, table, messages.keys())
    if field is None:
        # not a uniqueness problem we know how to attribute
        raise exc
    return UniqueConflict(field, messages[field], values)


# --- Categories ---

@cat_bp.get('/categories')
@require_permissions(PermissionCode.CATEGORIES_VIEW)
def list_categories():
    session = get_db()
    stmt = select(Category).options(selectinload(Category.parent))
    if 'active' in request.args:
        stmt = stmt.where(Category.is_active.is_(checkbox(request.args.get('active'))))
    stmt = apply_multi_sort(stmt, request.args.get('sort') or 'name', {
        'name': Category.name,
        'slug': Category.slug,
        'updated_at': Category.updated_at,
        'id': Category.id,
    }, Category.id)
    rows, total, limit, offset = paginate(session, stmt)
    return build_list_payload([_category_json(c) for c in rows], total, limit, offset)


@cat_bp.post('/categories')
@require_permissions(PermissionCode.CATEGORIES_EDIT)
def create_category():
    session = get_db()
    data = form_payload()
    form = parse_form(CategoryForm, data, context={'category_exists': category_exists(session)})
    category = Category(
        name=form.name,
        slug=form.slug,
        description=form.description,
        parent_id=form.parent_id,
        is_active=form.is_active,
    )
    session.add(category)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise _unique_conflict(e, 'categories', CATEGORY_UNIQUE_MESSAGES,
                               echo_values(data, CategoryForm.model_fields.keys()))
    add_audit(session, 'CATEGORY.CREATE', entity='Category', entity_id=category.id,
              meta={'name': category.name, 'slug': category.slug})
    session.commit()
    current_app.logger.info('Created category %s (%s)', category.id, category.slug)
    return _category_json(category), 201


# --- Items ---

@cat_bp.get('/items')
@require_permissions(PermissionCode.ITEMS_VIEW)
def list_items():
    session = get_db()
    stmt = select(Item).options(selectinload(Item.category))
    if q := (request.args.get('q') or '').strip():
        like = f'%{q}%'
        stmt = stmt.where(or_(Item.name.ilike(like), Item.sku.ilike(like), Item.barcode.ilike(like)))
    if category_id := request.args.get('category_id'):
        try:
            stmt = stmt.where(Item.category_id == int(category_id))
        except ValueError:
            abort(400, description='category_id must be int')
    stmt = apply_multi_sort(stmt, request.args.get('sort') or 'name', {
        'name': Item.name,
        'sku': Item.sku,
        'base_price': Item.base_price,
        'updated_at': Item.updated_at,
        'id': Item.id,
    }, Item.id)
    rows, total, limit, offset = paginate(session, stmt)
    return build_list_payload([_item_json(i) for i in rows], total, limit, offset)


@cat_bp.post('/items')
@require_permissions(PermissionCode.ITEMS_EDIT)
def create_item():
    session = get_db()
    data = form_payload()
    form = parse_form(ItemForm, data, context={'category_exists': category_exists(session)})
    item = Item()
    apply_item_form(item, form)
    session.add(item)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise _unique_conflict(e, 'items', ITEM_UNIQUE_MESSAGES, echo_values(data, ItemForm.model_fields.keys()))
    add_audit(session, 'ITEM.CREATE', entity='Item', entity_id=item.id, meta={'sku': item.sku, 'name': item.name})
    session.commit()
    current_app.logger.info('Created item %s (%s)', item.id, item.sku)
    return _item_json(item), 201


@cat_bp.get('/items/<int:item_id>')
@require_permissions(PermissionCode.ITEMS_VIEW)
def get_item(item_id: int):
    session = get_db()
    item = session.get(Item, item_id)
    if not item:
        abort(404)
    records = load_item_lines(session, item)
    summary = aggregate_item([line for _, line in records], base_price=item.base_price)
    return {
        'item': _item_json(item),
        'form': item_form_values(item),
        'stock': [
            {
                'store_id': inv.store_id,
                'store': inv.store.name,
                'location': inv.store.location,
                'quantity': format_quantity(line.quantity),
                'reserved': format_quantity(line.reserved),
                'available': format_quantity(available(line)),
            }
            for inv, line in records
        ],
        'totals': {
            'on_hand': format_quantity(summary.on_hand),
            'reserved': format_quantity(summary.reserved),
            'stock_value': format_money(summary.stock_value),
        },
    }


@cat_bp.put('/items/<int:item_id>')
@require_permissions(PermissionCode.ITEMS_EDIT)
def update_item(item_id: int):
    session = get_db()
    item = session.get(Item, item_id)
    if not item:
        abort(404)
    data = form_payload()
    form = parse_form(ItemForm, data, context={'category_exists': category_exists(session)})
    changes = apply_item_form(item, form)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise _unique_conflict(e, 'items', ITEM_UNIQUE_MESSAGES, echo_values(data, ItemForm.model_fields.keys()))
    if changes:
        add_audit(session, 'ITEM.UPDATE', entity='Item', entity_id=item.id, meta={'changes': changes})
    session.commit()
    session.expire(item, ['category'])
    return {'item': _item_json(item), 'form': item_form_values(item)}
