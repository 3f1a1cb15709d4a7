import re
from erp import create_app, get_db
from erp.constants.permissions import PermissionCode, RouteRule
from erp.models.authz import User
from test_utils_seed import auth_headers, ensure_role, ensure_user, ensure_user_role_assignment, seed_user_with_perms

P = PermissionCode


def test_matched_route_without_token_is_401(client):
    resp = client.get('/catalog/items')
    assert resp.status_code == 401
    assert resp.get_json()['error']['status'] == 401


def test_matched_route_with_bad_token_is_401(client):
    resp = client.get('/inventory/stores', headers={'Authorization': 'Bearer not-a-jwt'})
    assert resp.status_code == 401
    assert resp.get_json()['error']['title'] == 'Unauthorized'


def test_missing_permission_is_403(client):
    seed_user_with_perms('gate-pos@test.local', 'GatePosOnly', [P.POS_ACCESS])
    headers = auth_headers(client, 'gate-pos@test.local')
    resp = client.get('/catalog/items', headers=headers)
    assert resp.status_code == 403
    body = resp.get_json()
    assert body['error']['status'] == 403
    assert body['error']['detail'] == 'Missing permission'


def test_gated_prefix_without_endpoint(client):
    seed_user_with_perms('gate-pos2@test.local', 'GatePosOnly', [P.POS_ACCESS])
    headers = auth_headers(client, 'gate-pos2@test.local')
    # rule passes, then there is simply no such endpoint
    assert client.get('/pos', headers=headers).status_code == 404
    # sales rule denies before routing
    assert client.get('/sales/orders', headers=headers).status_code == 403


def test_unmatched_route_is_open(client):
    resp = client.get('/healthz')
    assert resp.status_code == 200
    assert resp.get_json() == {'status': 'ok'}


def test_role_change_applies_without_new_login(client):
    user = ensure_user('gate-late@test.local')
    headers = auth_headers(client, 'gate-late@test.local')
    assert client.get('/catalog/categories', headers=headers).status_code == 403
    ensure_user_role_assignment(user, ensure_role('GateCategoryViewer', [P.CATEGORIES_VIEW]))
    assert client.get('/catalog/categories', headers=headers).status_code == 200


def test_deactivated_user_loses_permissions(client):
    user = seed_user_with_perms('gate-off@test.local', 'GateCategoryViewer', [P.CATEGORIES_VIEW])
    headers = auth_headers(client, 'gate-off@test.local')
    assert client.get('/catalog/categories', headers=headers).status_code == 200
    session = get_db()
    session.get(User, user.id).is_active = False
    session.commit()
    assert client.get('/catalog/categories', headers=headers).status_code == 403


def test_permissions_are_per_request(client):
    seed_user_with_perms('gate-a@test.local', 'GateCategoryViewer', [P.CATEGORIES_VIEW])
    ensure_user('gate-b@test.local')
    a = auth_headers(client, 'gate-a@test.local')
    b = auth_headers(client, 'gate-b@test.local')
    assert client.get('/catalog/categories', headers=a).status_code == 200
    assert client.get('/catalog/categories', headers=b).status_code == 403
    assert client.get('/catalog/categories', headers=a).status_code == 200


def test_route_table_is_configurable():
    app = create_app({
        'TESTING': True,
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'JWT_SECRET_KEY': 'test-secret-key-with-at-least-32-bytes!',
        'ROUTE_PERMISSIONS': [RouteRule(re.compile(r'^/healthz'), P.DASHBOARD_VIEW)],
    })
    assert app.test_client().get('/healthz').status_code == 401


def test_any_permission_decorator(fresh_app):
    from erp.decorators.auth import require_any_permission

    @fresh_app.get('/reports/daily')
    @require_any_permission(P.SALES_VIEW, P.DASHBOARD_VIEW)
    def daily_report():
        return {'ok': True}

    client = fresh_app.test_client()
    seed_user_with_perms('any-sales@test.local', 'AnySales', [P.SALES_VIEW])
    ensure_user('any-none@test.local')
    assert client.get('/reports/daily', headers=auth_headers(client, 'any-sales@test.local')).status_code == 200
    assert client.get('/reports/daily', headers=auth_headers(client, 'any-none@test.local')).status_code == 403
    assert client.get('/reports/daily').status_code == 401
