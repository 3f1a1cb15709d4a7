from __future__ import annotations
from typing import Any, Callable, Dict

from erp.models.catalog import Category, Item
from erp.schemas.catalog import ItemForm
from erp.utils.formatters import format_money

ITEM_FIELDS = ('sku', 'barcode', 'name', 'description', 'category_id', 'base_price', 'cost_price',
               'tax_rate', 'track_inventory', 'is_serialized')


def category_exists(session) -> Callable[[int], bool]:
    """Existence check handed to the schemas through the validation context."""
    return lambda category_id: session.get(Category, category_id) is not None


def item_form_values(item: Item) -> Dict[str, Any]:
    """Values that pre-fill the item edit form.

    Money is fixed to two places so a saved item reads back exactly as it was
    submitted (``400`` is shown as ``400.00``).
    """
    return {
        'sku': item.sku,
        'barcode': item.barcode or '',
        'name': item.name,
        'description': item.description or '',
        'category_id': item.category_id,
        'base_price': format_money(item.base_price),
        'cost_price': format_money(item.cost_price),
        'tax_rate': format_money(item.tax_rate),
        'track_inventory': bool(item.track_inventory),
        'is_serialized': bool(item.is_serialized),
    }


def apply_item_form(item: Item, form: ItemForm) -> Dict[str, Dict[str, Any]]:
    """Copy validated values onto ``item``; returns the changed fields as before/after strings."""
    changes = {}
    for name in ITEM_FIELDS:
        new = getattr(form, name)
        old = getattr(item, name)
        if old != new:
            changes[name] = {'before': None if old is None else str(old), 'after': None if new is None else str(new)}
            setattr(item, name, new)
    return changes

__all__ = ['category_exists', 'item_form_values', 'apply_item_form', 'ITEM_FIELDS']
