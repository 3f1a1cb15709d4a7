from __future__ import annotations
from typing import List

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic_core import PydanticCustomError

from erp.constants.permissions import parse_permission_code
from erp.utils.validation import bounded_text, clean_text, matches

EMAIL_PATTERN = r'[^@\s]+@[^@\s]+\.[^@\s]+'
MIN_PASSWORD_LENGTH = 8


class RegisterForm(BaseModel):
    model_config = ConfigDict(extra='ignore', validate_default=True)

    name: str = ''
    email: str = ''
    password: str = ''

    @field_validator('name', mode='before')
    @classmethod
    def _name(cls, v):
        return bounded_text(v, 'Name', 1, 128)

    @field_validator('email', mode='before')
    @classmethod
    def _email(cls, v):
        email = bounded_text(v, 'Email', 1, 128).lower()
        return matches(email, EMAIL_PATTERN, 'Email address is invalid')

    @field_validator('password', mode='before')
    @classmethod
    def _password(cls, v):
        # not stripped: whitespace is a legal password character
        raw = '' if v is None else str(v)
        if len(raw) < MIN_PASSWORD_LENGTH:
            raise PydanticCustomError('too_short', f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
        return raw


class RoleForm(BaseModel):
    model_config = ConfigDict(extra='ignore', validate_default=True)

    name: str = ''
    permissions: List[str] = []

    @field_validator('name', mode='before')
    @classmethod
    def _name(cls, v):
        return bounded_text(v, 'Name', 2, 64)

    @field_validator('permissions', mode='before')
    @classmethod
    def _permissions(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [part for part in v.split(',')]
        if not isinstance(v, (list, tuple)):
            raise PydanticCustomError('type', 'Permissions must be a list of codes')
        codes = sorted({clean_text(c) for c in v if clean_text(c)})
        unknown = [c for c in codes if parse_permission_code(c) is None]
        if unknown:
            raise PydanticCustomError('unknown_code', f'Unknown permission codes: {", ".join(unknown)}')
        return codes


__all__ = ['RegisterForm', 'RoleForm', 'MIN_PASSWORD_LENGTH']
