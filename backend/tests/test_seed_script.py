import importlib.util
import os
import pytest
from sqlalchemy import select
from erp import create_app, get_database, get_db
from erp.models.authz import Role, User
from erp.services.policy import load_role_grants

SCRIPT = os.path.join(os.path.dirname(__file__), '..', 'scripts', 'seed_authz.py')


@pytest.fixture()
def seed_script(tmp_path, monkeypatch):
    spec = importlib.util.spec_from_file_location('seed_authz', SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    url = f"sqlite:///{tmp_path / 'seed.db'}"
    monkeypatch.setenv('DATABASE_URL', url)
    monkeypatch.setenv('JWT_SECRET_KEY', 'test-secret-key-with-at-least-32-bytes!')
    monkeypatch.delenv('SEED_ADMIN_EMAIL', raising=False)
    monkeypatch.delenv('SEED_ADMIN_PASSWORD', raising=False)
    return module, url


def _inspect(url, fn):
    app = create_app({'DATABASE_URL': url, 'JWT_SECRET_KEY': 'test-secret-key-with-at-least-32-bytes!'})
    try:
        with app.app_context():
            return fn(get_db())
    finally:
        get_database(app).dispose()


def test_seed_creates_roles_and_initial_admin(seed_script, monkeypatch, capsys):
    module, url = seed_script
    monkeypatch.setenv('SEED_ADMIN_EMAIL', 'Boss@Shop.local')
    monkeypatch.setenv('SEED_ADMIN_PASSWORD', 'long-enough')
    module.main([])
    out = capsys.readouterr().out
    assert '[DONE] Built-in roles created: True' in out
    assert 'Created initial Administrator boss@shop.local' in out

    def check(session):
        user = session.execute(select(User).where(User.email == 'boss@shop.local')).scalar_one()
        return [g.name for g in load_role_grants(session, user.id)]
    assert _inspect(url, check) == ['Administrator']


def test_admin_created_after_roles_still_gets_administrator(seed_script, monkeypatch, capsys):
    module, url = seed_script
    module.main([])
    assert _inspect(url, lambda s: s.execute(select(User)).scalars().all()) == []

    monkeypatch.setenv('SEED_ADMIN_EMAIL', 'late@shop.local')
    monkeypatch.setenv('SEED_ADMIN_PASSWORD', 'long-enough')
    module.main([])
    out = capsys.readouterr().out
    assert 'Built-in roles created: False' in out
    assert 'Created initial Administrator late@shop.local' in out

    def check(session):
        user = session.execute(select(User).where(User.email == 'late@shop.local')).scalar_one()
        roles = session.execute(select(Role.name).order_by(Role.id)).scalars().all()
        return [g.name for g in load_role_grants(session, user.id)], roles
    grants, roles = _inspect(url, check)
    assert grants == ['Administrator']
    assert roles == ['Administrator', 'Store Manager', 'POS Operator']


def test_dry_run_writes_nothing(seed_script, capsys):
    module, url = seed_script
    module.main(['--dry-run'])
    assert 'Built-in roles would be created: True' in capsys.readouterr().out
    assert _inspect(url, lambda s: s.execute(select(Role)).scalars().all()) == []
