"""Per-store stock rollups.

Everything here is a pure fold over an already loaded snapshot of stock lines.
Quantities and prices are ``Decimal``. ``available`` may go negative when a
record reserves more than it holds; the rollups clamp each line at zero before
summing so one bad record cannot drag a store's on-hand or value below zero,
while the low-stock ranking keeps the raw figure (most depleted first).
"""
from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Tuple

from erp.utils.formatters import to_decimal

ZERO = Decimal('0')


@dataclass(frozen=True)
class StockLine:
    store_id: int
    item_id: int
    name: str
    sku: Optional[str]
    quantity: Decimal
    reserved: Decimal
    base_price: Decimal = ZERO
    track_inventory: bool = True

    @classmethod
    def from_record(cls, inventory, item) -> 'StockLine':
        """Build a line from ORM ``Inventory`` + ``Item`` rows (item may be missing)."""
        return cls(
            store_id=inventory.store_id,
            item_id=inventory.item_id,
            name=item.name if item is not None else 'Unknown item',
            sku=item.sku if item is not None else None,
            quantity=to_decimal(inventory.quantity),
            reserved=to_decimal(inventory.reserved),
            base_price=to_decimal(item.base_price if item is not None else None),
            track_inventory=bool(item.track_inventory) if item is not None else False,
        )


@dataclass(frozen=True)
class LowStockEntry:
    item_id: int
    name: str
    sku: Optional[str]
    available: Decimal


@dataclass(frozen=True)
class StoreRollup:
    sku_count: int = 0
    on_hand: Decimal = ZERO
    reserved: Decimal = ZERO
    stock_value: Decimal = ZERO
    low_stock: Tuple[LowStockEntry, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class GlobalTotals:
    sku_count: int = 0
    on_hand: Decimal = ZERO
    reserved: Decimal = ZERO
    stock_value: Decimal = ZERO
    low_stock: int = 0


@dataclass(frozen=True)
class ItemStockSummary:
    on_hand: Decimal = ZERO
    reserved: Decimal = ZERO
    stock_value: Decimal = ZERO


def available(line) -> Decimal:
    return to_decimal(line.quantity) - to_decimal(line.reserved)


def _sellable(line) -> Decimal:
    return max(available(line), ZERO)


def aggregate_store(lines: Iterable[StockLine], low_stock_threshold, low_stock_limit: int = 5) -> StoreRollup:
    threshold = to_decimal(low_stock_threshold)
    tracked = [line for line in lines if line.track_inventory]

    on_hand = sum((_sellable(line) for line in tracked), ZERO)
    reserved = sum((to_decimal(line.reserved) for line in tracked), ZERO)
    stock_value = sum((_sellable(line) * to_decimal(line.base_price) for line in tracked), ZERO)

    low = [
        LowStockEntry(item_id=line.item_id, name=line.name, sku=line.sku, available=available(line))
        for line in tracked
        if available(line) <= threshold
    ]
    low.sort(key=lambda e: (e.available, e.name, e.item_id))

    return StoreRollup(
        sku_count=len(tracked),
        on_hand=on_hand,
        reserved=reserved,
        stock_value=stock_value,
        low_stock=tuple(low[:max(low_stock_limit, 0)]),
    )


def aggregate_global(rollups: Iterable[StoreRollup]) -> GlobalTotals:
    sku_count = 0
    on_hand = reserved = stock_value = ZERO
    low_stock = 0
    for r in rollups:
        sku_count += r.sku_count
        on_hand += r.on_hand
        reserved += r.reserved
        stock_value += r.stock_value
        low_stock += len(r.low_stock)
    return GlobalTotals(sku_count=sku_count, on_hand=on_hand, reserved=reserved,
                        stock_value=stock_value, low_stock=low_stock)


def aggregate_item(lines: Sequence[StockLine], base_price=None) -> ItemStockSummary:
    """Totals for one item across stores; ``base_price`` overrides the per-line price."""
    on_hand = ZERO
    reserved = ZERO
    stock_value = ZERO
    for line in lines:
        sellable = _sellable(line)
        price = to_decimal(base_price if base_price is not None else line.base_price)
        on_hand += sellable
        reserved += to_decimal(line.reserved)
        stock_value += sellable * price
    return ItemStockSummary(on_hand=on_hand, reserved=reserved, stock_value=stock_value)


__all__ = [
    'StockLine', 'LowStockEntry', 'StoreRollup', 'GlobalTotals', 'ItemStockSummary',
    'available', 'aggregate_store', 'aggregate_global', 'aggregate_item',
]
