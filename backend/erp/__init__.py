from flask import Flask, current_app
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging

from .config.settings import load_settings
from .errors import FieldValidationError

load_dotenv()

jwt = JWTManager()


def _auth_error(detail: str):
    return {'error': {'status': 401, 'title': 'Unauthorized', 'detail': detail}}, 401


@jwt.unauthorized_loader
def _missing_token(reason):
    return _auth_error(reason)


@jwt.invalid_token_loader
def _invalid_token(reason):
    return _auth_error(reason)


@jwt.expired_token_loader
def _expired_token(jwt_header, jwt_payload):
    return _auth_error('Token has expired')

DB_EXTENSION_KEY = 'erp.db'


class Database:
    """Engine + session registry owned by a single app instance."""

    def __init__(self, url: str):
        if url.endswith(':memory:'):
            # Ensure a single shared in-memory SQLite database across all sessions
            self.engine = create_engine(
                url,
                echo=False,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(url, echo=False, future=True)
        self.session = scoped_session(sessionmaker(bind=self.engine, expire_on_commit=False, autoflush=False))

    def create_all(self):
        from .models.authz import Base
        import erp.models.catalog  # noqa: F401
        import erp.models.inventory  # noqa: F401
        import erp.models.audit  # noqa: F401
        Base.metadata.create_all(self.engine)

    def dispose(self):
        self.session.remove()
        self.engine.dispose()


def create_app(config: Optional[Dict[str, Any]] = None):
    app = Flask(__name__)

    app.config.update(load_settings())
    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    logging.getLogger('erp').setLevel(app.config['LOG_LEVEL'])
    app.logger.setLevel(app.config['LOG_LEVEL'])

    from .constants.permissions import ROUTE_PERMISSIONS
    app.config.setdefault('ROUTE_PERMISSIONS', ROUTE_PERMISSIONS)

    app.extensions[DB_EXTENSION_KEY] = Database(app.config['DATABASE_URL'])

    jwt.init_app(app)

    from .decorators.auth import enforce_route_permissions
    from .services.policy import reset_permission_cache
    app.before_request(reset_permission_cache)
    app.before_request(enforce_route_permissions)

    from .routes.iam import iam_bp
    from .routes.catalog import cat_bp
    from .routes.inventory import inv_bp
    from .routes.admin import admin_bp
    app.register_blueprint(iam_bp, url_prefix='/iam')
    app.register_blueprint(cat_bp, url_prefix='/catalog')
    app.register_blueprint(inv_bp, url_prefix='/inventory')
    app.register_blueprint(admin_bp, url_prefix='/admin')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    @app.teardown_appcontext
    def remove_session(exc=None):
        get_database(app).session.remove()

    @app.errorhandler(FieldValidationError)
    def handle_field_errors(e):  # type: ignore
        get_db().rollback()
        return e.to_payload(), e.status_code

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        app.logger.exception('Unhandled exception')
        try:
            get_db().rollback()
        except Exception:
            app.logger.warning('Rollback after unhandled exception failed', exc_info=True)
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Something went wrong. Please try again.'
            }
        }, 500

    return app


def get_database(app: Optional[Flask] = None) -> Database:
    return (app or current_app).extensions[DB_EXTENSION_KEY]


def get_db():
    return get_database().session()
