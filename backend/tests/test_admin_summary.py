from conftest import TEST_CONFIG
from erp import create_app, get_database
from erp.constants.permissions import ROUTE_PERMISSIONS, PermissionCode as P
from test_utils_seed import auth_headers, seed_user_with_perms


def test_dashboard_summary_counts_and_inventory(fresh_client):
    reg = fresh_client.post('/iam/auth/register', json={'name': 'Owner', 'email': 'owner@shop.local', 'password': 'long-enough'})
    assert reg.status_code == 201
    token = fresh_client.post('/iam/auth/login', json={'email': 'owner@shop.local', 'password': 'long-enough'}).get_json()['access_token']
    headers = {'Authorization': f'Bearer {token}'}

    store = fresh_client.post('/inventory/stores', json={'code': 'HQ', 'name': 'Head Office'}, headers=headers).get_json()
    item = fresh_client.post('/catalog/items', json={
        'sku': 'SUM-1', 'name': 'Summary Item', 'base_price': '25', 'cost_price': '10', 'tax_rate': '5',
    }, headers=headers)
    assert item.status_code == 201, item.get_json()
    adj = fresh_client.post('/inventory/adjustments', json={
        'store_id': store['id'], 'item_id': item.get_json()['id'], 'quantity_delta': '4', 'reserved_delta': '1',
    }, headers=headers)
    assert adj.status_code == 201, adj.get_json()

    resp = fresh_client.get('/admin/summary', headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['counts'] == {'users': 1, 'roles': 3, 'stores': 1, 'categories': 0, 'items': 1}
    assert body['inventory'] == {
        'sku_count': 1, 'on_hand': '3', 'reserved': '1', 'stock_value': '75.00', 'low_stock': 1,
    }


def test_dashboard_requires_permission(fresh_client):
    fresh_client.post('/iam/auth/register', json={'name': 'Owner', 'email': 'owner@shop.local', 'password': 'long-enough'})
    fresh_client.post('/iam/auth/register', json={'name': 'Guest', 'email': 'guest@shop.local', 'password': 'long-enough'})
    token = fresh_client.post('/iam/auth/login', json={'email': 'guest@shop.local', 'password': 'long-enough'}).get_json()['access_token']
    resp = fresh_client.get('/admin/summary', headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 403


def test_summary_accepts_dashboard_or_inventory_view():
    # the /admin prefix rule is dropped so the endpoint decorator alone decides
    rules = [r for r in ROUTE_PERMISSIONS if r.pattern.pattern != r'^/admin']
    app = create_app(dict(TEST_CONFIG, ROUTE_PERMISSIONS=rules))
    with app.app_context():
        get_database(app).create_all()
        client = app.test_client()
        seed_user_with_perms('sum-stock@test.local', 'SummaryStock', [P.INVENTORY_VIEW])
        seed_user_with_perms('sum-pos@test.local', 'SummaryPos', [P.POS_ACCESS])
        assert client.get('/admin/summary', headers=auth_headers(client, 'sum-stock@test.local')).status_code == 200
        assert client.get('/admin/summary', headers=auth_headers(client, 'sum-pos@test.local')).status_code == 403
        assert client.get('/admin/summary').status_code == 401
    get_database(app).dispose()


def test_default_route_table_still_requires_dashboard_view(client):
    seed_user_with_perms('sum-stock-only@test.local', 'SummaryStockOnly', [P.INVENTORY_VIEW])
    resp = client.get('/admin/summary', headers=auth_headers(client, 'sum-stock-only@test.local'))
    assert resp.status_code == 403
