"""Reusable validation helpers for form/JSON payloads.

Schemas live in ``erp.schemas``; the field helpers below raise
``PydanticCustomError`` so the messages reach the caller verbatim. ``parse_form``
collects every issue and reports the first message per field.
"""
from __future__ import annotations
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

from flask import request
from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticCustomError

from erp.errors import FieldValidationError
from erp.utils.formatters import quantize_money

M = TypeVar('M', bound=BaseModel)

TRUTHY = {'true', 'on', '1', 'yes'}

# largest values the Numeric(12, 2) price and Numeric(14, 3) quantity columns hold
MAX_MONEY = Decimal('9999999999.99')
MAX_QUANTITY = Decimal('99999999999.999')


def form_payload() -> Dict[str, Any]:
    """Request body as a flat dict: JSON object if sent, otherwise form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def echo_values(data: Mapping[str, Any], fields) -> Dict[str, Any]:
    out = {}
    for name in fields:
        value = data.get(name)
        if isinstance(value, str):
            value = value.strip()
        out[name] = value
    return out


def parse_form(schema: Type[M], data: Mapping[str, Any], *, context: Optional[Dict[str, Any]] = None) -> M:
    try:
        return schema.model_validate(dict(data), context=context or {})
    except ValidationError as exc:
        fields: Dict[str, str] = {}
        for issue in exc.errors():
            loc = issue.get('loc') or ()
            field = str(loc[0]) if loc else 'form'
            fields.setdefault(field, issue['msg'])
        raise FieldValidationError(fields, echo_values(data, schema.model_fields.keys()))


# --- field helpers (used from ``mode='before'`` validators) ---

def _error(kind: str, message: str) -> PydanticCustomError:
    return PydanticCustomError(kind, message)


def clean_text(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip()


def bounded_text(value: Any, label: str, min_len: int, max_len: int, *, required_message: Optional[str] = None) -> str:
    text = clean_text(value)
    if len(text) < min_len:
        if min_len <= 1:
            raise _error('required', required_message or f'{label} is required')
        raise _error('too_short', f'{label} must be at least {min_len} characters')
    if len(text) > max_len:
        raise _error('too_long', f'{label} must be {max_len} characters or less')
    return text


def optional_text(value: Any, label: str, max_len: int) -> Optional[str]:
    text = clean_text(value)
    if not text:
        return None
    if len(text) > max_len:
        raise _error('too_long', f'{label} must be {max_len} characters or less')
    return text


def matches(text: str, pattern: str, message: str) -> str:
    if not re.fullmatch(pattern, text):
        raise _error('pattern', message)
    return text


def optional_id(value: Any, message: str) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise _error('invalid_id', message)
    try:
        parsed = int(str(value).strip())
    except ValueError:
        raise _error('invalid_id', message)
    if parsed <= 0:
        raise _error('invalid_id', message)
    return parsed


def required_id(value: Any, label: str, message: str) -> int:
    parsed = optional_id(value, message)
    if parsed is None:
        raise _error('required', f'{label} is required')
    return parsed


def decimal_value(value: Any, label: str, *, limit: Optional[Decimal] = None) -> Decimal:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise _error('required', f'{label} is required')
    if isinstance(value, bool):
        raise _error('decimal_type', f'{label} must be a number')
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise _error('decimal_type', f'{label} must be a number')
    if not parsed.is_finite():
        raise _error('decimal_type', f'{label} must be a number')
    if limit is not None and abs(parsed) > limit:
        raise _error('too_large', f'{label} is too large')
    return parsed


def money_value(value: Any, label: str, *, maximum: Optional[Decimal] = None, maximum_message: Optional[str] = None) -> Decimal:
    amount = decimal_value(value, label)
    if amount < 0:
        raise _error('negative', f'{label} cannot be negative')
    if maximum is None:
        maximum = MAX_MONEY
    if amount > maximum:
        raise _error('too_large', maximum_message or f'{label} must be {maximum} or below')
    return quantize_money(amount)


def checkbox(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY


__all__ = [
    'form_payload', 'parse_form', 'echo_values', 'clean_text', 'bounded_text', 'optional_text', 'matches',
    'optional_id', 'required_id', 'decimal_value', 'money_value', 'checkbox', 'MAX_MONEY', 'MAX_QUANTITY',
]
