from functools import wraps
from flask import abort, current_app, request
from flask_jwt_extended import verify_jwt_in_request
from erp.services.policy import current_permissions, has_any_permission, has_permissions, required_permission, authorize


def require_permissions(*codes):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if not has_permissions(*codes):
                abort(403, description='Missing permission')
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_any_permission(*codes):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if not has_any_permission(*codes):
                abort(403, description='Missing permission')
            return fn(*args, **kwargs)
        return wrapper
    return outer


def enforce_route_permissions():
    """before_request hook applying the ordered route table; unlisted paths pass through."""
    if request.method == 'OPTIONS':
        return None
    needed = required_permission(request.path, current_app.config['ROUTE_PERMISSIONS'])
    if needed is None:
        return None
    # 401 when unauthenticated, handled by flask-jwt-extended
    verify_jwt_in_request()
    if not authorize(current_permissions(), needed):
        current_app.logger.info('Route %s denied: missing %s', request.path, needed.value)
        abort(403, description='Missing permission')
    return None
