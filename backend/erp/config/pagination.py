DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def normalize_pagination(limit_raw, offset_raw):
    """Parse ``limit``/``offset`` query values; oversize limits are capped, malformed ones raise ValueError."""
    try:
        limit = int(limit_raw) if limit_raw not in (None, '') else DEFAULT_LIMIT
        offset = int(offset_raw) if offset_raw not in (None, '') else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    if limit < 1:
        raise ValueError('limit must be at least 1')
    if offset < 0:
        raise ValueError('offset cannot be negative')
    return min(limit, MAX_LIMIT), offset
