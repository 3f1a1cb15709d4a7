from __future__ import annotations
from typing import Tuple
from flask import request, abort
from sqlalchemy import Select, func, select
from erp.config.pagination import normalize_pagination


def page_params() -> Tuple[int, int]:
    try:
        return normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))


def paginate(session, stmt: Select):
    """Run ``stmt`` for the requested page; returns (rows, total, limit, offset)."""
    limit, offset = page_params()
    total = session.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
    rows = session.execute(stmt.offset(offset).limit(limit)).scalars().all()
    return rows, total, limit, offset


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }
