from __future__ import annotations
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

from erp.utils.validation import (
    bounded_text, checkbox, matches, money_value, optional_id, optional_text,
)

SLUG_PATTERN = r'[a-z0-9-]+'


def _lookup_ok(info: ValidationInfo, key: str, value: int) -> bool:
    """Run the existence check passed in via validation context, if any."""
    check = (info.context or {}).get(key)
    return True if check is None else bool(check(value))


class CategoryForm(BaseModel):
    # validate_default so missing fields get the same messages as blank ones
    model_config = ConfigDict(extra='ignore', validate_default=True)

    name: str = ''
    slug: str = ''
    description: Optional[str] = None
    parent_id: Optional[int] = None
    is_active: bool = True

    @field_validator('name', mode='before')
    @classmethod
    def _name(cls, v):
        return bounded_text(v, 'Name', 2, 80)

    @field_validator('slug', mode='before')
    @classmethod
    def _slug(cls, v):
        slug = bounded_text(v, 'Slug', 2, 80)
        return matches(slug, SLUG_PATTERN, 'Slug can only contain lowercase letters, numbers, and hyphens')

    @field_validator('description', mode='before')
    @classmethod
    def _description(cls, v):
        return optional_text(v, 'Description', 300)

    @field_validator('parent_id', mode='before')
    @classmethod
    def _parent(cls, v, info: ValidationInfo):
        parent_id = optional_id(v, 'Invalid parent category')
        if parent_id is not None and not _lookup_ok(info, 'category_exists', parent_id):
            raise PydanticCustomError('invalid_id', 'Invalid parent category')
        return parent_id

    @field_validator('is_active', mode='before')
    @classmethod
    def _active(cls, v):
        return checkbox(v)


class ItemForm(BaseModel):
    """Create/update payload for catalog items. Field order matters: base_price before cost_price."""
    # validate_default so missing fields get the same messages as blank ones
    model_config = ConfigDict(extra='ignore', validate_default=True)

    sku: str = ''
    barcode: Optional[str] = None
    name: str = ''
    description: Optional[str] = None
    category_id: Optional[int] = None
    base_price: Decimal = None  # type: ignore[assignment]
    cost_price: Decimal = None  # type: ignore[assignment]
    tax_rate: Decimal = None  # type: ignore[assignment]
    track_inventory: bool = True
    is_serialized: bool = False

    @field_validator('sku', mode='before')
    @classmethod
    def _sku(cls, v):
        return bounded_text(v, 'SKU', 1, 64)

    @field_validator('barcode', mode='before')
    @classmethod
    def _barcode(cls, v):
        return optional_text(v, 'Barcode', 64)

    @field_validator('name', mode='before')
    @classmethod
    def _name(cls, v):
        return bounded_text(v, 'Name', 1, 120)

    @field_validator('description', mode='before')
    @classmethod
    def _description(cls, v):
        return optional_text(v, 'Description', 600)

    @field_validator('category_id', mode='before')
    @classmethod
    def _category(cls, v, info: ValidationInfo):
        category_id = optional_id(v, 'Invalid category')
        if category_id is not None and not _lookup_ok(info, 'category_exists', category_id):
            raise PydanticCustomError('invalid_id', 'Invalid category')
        return category_id

    @field_validator('base_price', mode='before')
    @classmethod
    def _base_price(cls, v):
        return money_value(v, 'Base price')

    @field_validator('cost_price', mode='before')
    @classmethod
    def _cost_price(cls, v):
        return money_value(v, 'Cost price')

    @field_validator('cost_price')
    @classmethod
    def _cost_not_above_base(cls, v, info: ValidationInfo):
        base = info.data.get('base_price')
        if base is not None and v > base:
            raise PydanticCustomError('cost_above_base', 'Cost price cannot exceed base price')
        return v

    @field_validator('tax_rate', mode='before')
    @classmethod
    def _tax_rate(cls, v):
        return money_value(v, 'Tax rate', maximum=Decimal('100'), maximum_message='Tax rate must be 100 or below')

    @field_validator('track_inventory', 'is_serialized', mode='before')
    @classmethod
    def _flags(cls, v):
        return checkbox(v)


__all__ = ['CategoryForm', 'ItemForm', 'SLUG_PATTERN']
