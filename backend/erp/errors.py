"""Error taxonomy shared by routes and services.

Validation and uniqueness problems are field-addressable and answered with 422.
Not-found uses werkzeug's ``NotFound`` (404) and permission denials use 403 via
``abort``; anything else is turned into an opaque 500 by the app error handler.
"""
from __future__ import annotations
import re
from typing import Any, Dict, Iterable, Mapping, Optional

from sqlalchemy.exc import IntegrityError


class FieldValidationError(Exception):
    status_code = 422
    title = 'Unprocessable Entity'

    def __init__(self, fields: Mapping[str, str], values: Optional[Mapping[str, Any]] = None,
                 detail: str = 'Validation failed'):
        super().__init__(detail)
        self.fields: Dict[str, str] = dict(fields)
        self.values: Dict[str, Any] = dict(values or {})
        self.detail = detail

    def to_payload(self) -> Dict[str, Any]:
        return {
            'error': {
                'status': self.status_code,
                'title': self.title,
                'detail': self.detail,
                'fields': self.fields,
            },
            'values': self.values,
        }


class UniqueConflict(FieldValidationError):
    def __init__(self, field: str, message: str, values: Optional[Mapping[str, Any]] = None):
        super().__init__({field: message}, values, detail='Unique constraint violated')
        self.field = field


def unique_violation_field(exc: IntegrityError, table: str, fields: Iterable[str]) -> Optional[str]:
    """Return which of ``fields`` a unique-constraint failure points at, if any.

    Understands SQLite ("UNIQUE constraint failed: items.sku") and PostgreSQL
    ("... constraint "uq_items_sku" ... Key (sku)=(X)") messages.
    """
    message = str(getattr(exc, 'orig', None) or exc)
    for field in fields:
        patterns = (
            rf'\b{re.escape(table)}\.{re.escape(field)}\b',
            rf'\buq_{re.escape(table)}_{re.escape(field)}\b',
            rf'Key \({re.escape(field)}\)=',
        )
        if any(re.search(p, message) for p in patterns):
            return field
    return None


__all__ = ['FieldValidationError', 'UniqueConflict', 'unique_violation_field']
