"""Environment-driven defaults for the application factory.

Values are read once per ``create_app`` call; a ``config`` dict passed to the
factory wins over anything found in the environment.
"""
from __future__ import annotations
import os
from typing import Any, Dict

DEFAULT_LOW_STOCK_THRESHOLD = 5
DEFAULT_LOW_STOCK_LIMIT = 5


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f'{name} must be an integer, got {raw!r}')


def load_settings() -> Dict[str, Any]:
    return {
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', 'dev-secret-change-me-0123456789abcdef'),
        'DATABASE_URL': os.getenv('DATABASE_URL', 'sqlite:///dev.db'),
        'LOW_STOCK_THRESHOLD': _int_env('LOW_STOCK_THRESHOLD', DEFAULT_LOW_STOCK_THRESHOLD),
        'LOW_STOCK_LIMIT': _int_env('LOW_STOCK_LIMIT', DEFAULT_LOW_STOCK_LIMIT),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO').upper(),
    }

__all__ = ['load_settings', 'DEFAULT_LOW_STOCK_THRESHOLD', 'DEFAULT_LOW_STOCK_LIMIT']
