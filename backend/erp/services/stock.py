"""Loading stock snapshots for the aggregator and applying stock adjustments."""
from __future__ import annotations
import logging
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Tuple

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from erp.errors import FieldValidationError
from erp.models.catalog import Item
from erp.models.inventory import Inventory, Store
from erp.schemas.inventory import StockAdjustmentForm
from erp.services.audit import add_audit
from erp.services.inventory import StockLine
from erp.utils.formatters import format_quantity, to_decimal
from erp.utils.validation import MAX_QUANTITY

log = logging.getLogger(__name__)


def load_store_lines(session) -> List[Tuple[Store, List[StockLine]]]:
    """Every store (by name) with its stock lines, items eagerly loaded."""
    stores = session.execute(
        select(Store)
        .options(selectinload(Store.inventories).selectinload(Inventory.item))
        .order_by(Store.name.asc(), Store.id.asc())
        .execution_options(populate_existing=True)
    ).scalars().all()
    return [(store, [StockLine.from_record(inv, inv.item) for inv in store.inventories]) for store in stores]


def load_item_lines(session, item: Item) -> List[Tuple[Inventory, StockLine]]:
    rows = session.execute(
        select(Inventory)
        .options(selectinload(Inventory.store))
        .where(Inventory.item_id == item.id)
        .order_by(Inventory.updated_at.desc(), Inventory.id.desc())
        .execution_options(populate_existing=True)
    ).scalars().all()
    return [(inv, StockLine.from_record(inv, item)) for inv in rows]


def apply_adjustment(session, form: StockAdjustmentForm, values: Mapping[str, Any]) -> Inventory:
    """Apply a signed change to one stock record, creating it on first receipt.

    Keeps 0 <= reserved <= quantity on write. Raises FieldValidationError; does not commit.
    """
    fields: Dict[str, str] = {}
    store = session.get(Store, form.store_id)
    if store is None:
        fields['store_id'] = 'Invalid store'
    item = session.get(Item, form.item_id)
    if item is None:
        fields['item_id'] = 'Invalid item'
    elif not item.track_inventory:
        fields['item_id'] = 'Inventory is not tracked for this item'
    if form.quantity_delta == 0 and form.reserved_delta == 0:
        fields.setdefault('quantity_delta', 'Adjustment must change quantity or reserved')
    if fields:
        raise FieldValidationError(fields, values)

    record = session.execute(
        select(Inventory).where(Inventory.store_id == store.id, Inventory.item_id == item.id)
    ).scalar_one_or_none()
    before_qty = to_decimal(record.quantity) if record else Decimal('0')
    before_res = to_decimal(record.reserved) if record else Decimal('0')
    quantity = before_qty + form.quantity_delta
    reserved = before_res + form.reserved_delta

    if quantity < 0:
        fields['quantity_delta'] = 'Quantity cannot go below zero'
    elif quantity > MAX_QUANTITY:
        fields['quantity_delta'] = f'Quantity cannot exceed {MAX_QUANTITY}'
    if reserved < 0:
        fields['reserved_delta'] = 'Reserved cannot go below zero'
    elif reserved > quantity:
        fields['reserved_delta'] = 'Reserved cannot exceed quantity'
    if fields:
        raise FieldValidationError(fields, values)

    if record is None:
        record = Inventory(store_id=store.id, item_id=item.id, quantity=quantity, reserved=reserved)
        session.add(record)
        session.flush()
    else:
        record.quantity = quantity
        record.reserved = reserved

    add_audit(session, 'STOCK.ADJUST', entity='Inventory', entity_id=record.id, meta={
        'store_id': store.id,
        'item_id': item.id,
        'reason': form.reason,
        'changes': {
            'quantity': {'before': format_quantity(before_qty), 'after': format_quantity(quantity)},
            'reserved': {'before': format_quantity(before_res), 'after': format_quantity(reserved)},
        },
    })
    log.info('Stock adjusted store=%s item=%s qty %s->%s reserved %s->%s',
             store.id, item.id, before_qty, quantity, before_res, reserved)
    return record

__all__ = ['load_store_lines', 'load_item_lines', 'apply_adjustment']
