"""Decimal helpers and display formatting.

Money leaves the system as strings fixed to two places (ROUND_HALF_UP);
quantities are printed without insignificant trailing zeros.
"""
from __future__ import annotations
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

TWO_PLACES = Decimal('0.01')


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError('bool is not a numeric amount')
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        # go through str so 0.1 stays 0.1
        return Decimal(str(value))
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f'not a decimal number: {value!r}')


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_money(value) -> str:
    return f'{quantize_money(value):f}'


def format_quantity(value) -> str:
    d = to_decimal(value)
    if d == d.to_integral_value():
        return f'{d.quantize(Decimal(1)):f}'
    return f'{d.normalize():f}'


def format_percent(value) -> str:
    """Tax rates are stored as percentages (18.00 means 18%)."""
    return f'{quantize_money(value):f}%'

__all__ = ['to_decimal', 'quantize_money', 'format_money', 'format_quantity', 'format_percent', 'TWO_PLACES']
