import os, sys, pytest
# Ensure backend directory is on path so 'erp' can be imported without installing
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from erp import create_app, get_database

TEST_CONFIG = {
    'TESTING': True,
    'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
    'JWT_SECRET_KEY': 'test-secret-key-with-at-least-32-bytes!',
    'LOW_STOCK_THRESHOLD': 5,
    'LOW_STOCK_LIMIT': 5,
}


def _make_app(**overrides):
    app = create_app(dict(TEST_CONFIG, **overrides))
    with app.app_context():
        get_database(app).create_all()
    return app


@pytest.fixture(scope='session')
def app_instance():
    yield _make_app()


@pytest.fixture(autouse=True)
def app_ctx(app_instance):
    # test bodies use get_db() directly, which resolves through current_app
    with app_instance.app_context():
        yield


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def fresh_app():
    """Isolated app with its own empty in-memory database (first-user scenarios)."""
    app = _make_app()
    with app.app_context():
        yield app
    get_database(app).dispose()


@pytest.fixture()
def fresh_client(fresh_app):
    return fresh_app.test_client()
