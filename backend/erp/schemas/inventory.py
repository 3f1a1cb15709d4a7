from __future__ import annotations
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from erp.utils.validation import MAX_QUANTITY, bounded_text, decimal_value, matches, optional_text, required_id

STORE_CODE_PATTERN = r'[A-Z0-9-]+'


class StoreForm(BaseModel):
    model_config = ConfigDict(extra='ignore', validate_default=True)

    code: str = ''
    name: str = ''
    city: Optional[str] = None
    state: Optional[str] = None

    @field_validator('code', mode='before')
    @classmethod
    def _code(cls, v):
        code = bounded_text(v, 'Code', 2, 16).upper()
        return matches(code, STORE_CODE_PATTERN, 'Code can only contain letters, numbers, and hyphens')

    @field_validator('name', mode='before')
    @classmethod
    def _name(cls, v):
        return bounded_text(v, 'Name', 2, 80)

    @field_validator('city', 'state', mode='before')
    @classmethod
    def _place(cls, v, info):
        return optional_text(v, info.field_name.capitalize(), 80)


class StockAdjustmentForm(BaseModel):
    """Signed change to one stock record; the resulting record is checked by the stock service."""
    model_config = ConfigDict(extra='ignore', validate_default=True)

    store_id: int = None  # type: ignore[assignment]
    item_id: int = None  # type: ignore[assignment]
    quantity_delta: Decimal = None  # type: ignore[assignment]
    reserved_delta: Decimal = Decimal('0')
    reason: Optional[str] = None

    @field_validator('store_id', mode='before')
    @classmethod
    def _store(cls, v):
        return required_id(v, 'Store', 'Invalid store')

    @field_validator('item_id', mode='before')
    @classmethod
    def _item(cls, v):
        return required_id(v, 'Item', 'Invalid item')

    @field_validator('quantity_delta', mode='before')
    @classmethod
    def _quantity(cls, v):
        return decimal_value(v, 'Quantity change', limit=MAX_QUANTITY)

    @field_validator('reserved_delta', mode='before')
    @classmethod
    def _reserved(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return Decimal('0')
        return decimal_value(v, 'Reserved change', limit=MAX_QUANTITY)

    @field_validator('reason', mode='before')
    @classmethod
    def _reason(cls, v):
        return optional_text(v, 'Reason', 200)


__all__ = ['StoreForm', 'StockAdjustmentForm', 'STORE_CODE_PATTERN']
