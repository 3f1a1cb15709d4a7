from decimal import Decimal
from sqlalchemy import select
from erp import get_db
from erp.constants.permissions import PermissionCode
from erp.models.audit import AuditLog
from erp.models.inventory import Inventory
from test_utils_seed import (
    auth_headers, ensure_item, ensure_store, seed_user_with_builtin_role, seed_user_with_perms, set_stock,
)


def _stores_by_code(body):
    return {s['code']: s for s in body['data']}


def test_store_rollups_and_totals(client):
    seed_user_with_builtin_role('inv-pos@test.local', 'POS Operator')
    headers = auth_headers(client, 'inv-pos@test.local')
    store = ensure_store('ROLL-1', 'Rollup Store', city='Pune')
    a = ensure_item('ROLL-A', 'Roll A', base_price='50')
    b = ensure_item('ROLL-B', 'Roll B', base_price='20')
    untracked = ensure_item('ROLL-SVC', 'Roll Service', base_price='10', track_inventory=False)
    set_stock(store, a, 10, 2)
    set_stock(store, b, 3, 5)
    set_stock(store, untracked, 0, 4)

    resp = client.get('/inventory/stores', headers=headers)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['can_adjust'] is False
    assert body['low_stock_threshold'] == 5
    summary = _stores_by_code(body)['ROLL-1']['summary']
    assert summary == {
        'sku_count': 2,
        'on_hand': '8',
        'reserved': '7',
        'stock_value': '400.00',
        'low_stock': [{'item_id': b.id, 'name': 'Roll B', 'sku': 'ROLL-B', 'available': '-2'}],
    }
    assert _stores_by_code(body)['ROLL-1']['location'] == 'Pune'
    assert body['totals']['sku_count'] >= 2


def test_manager_can_adjust_and_receive_new_stock(client):
    seed_user_with_builtin_role('inv-mgr@test.local', 'Store Manager')
    headers = auth_headers(client, 'inv-mgr@test.local')
    store = ensure_store('ADJ-1', 'Adjust Store')
    item = ensure_item('ADJ-ITEM', 'Adjustable', base_price='12.5')
    assert client.get('/inventory/stores', headers=headers).get_json()['can_adjust'] is True

    first = client.post('/inventory/adjustments', json={
        'store_id': store.id, 'item_id': item.id, 'quantity_delta': '6', 'reason': 'Initial receipt',
    }, headers=headers)
    assert first.status_code == 201, first.get_json()
    assert first.get_json()['quantity'] == '6'
    assert first.get_json()['reserved'] == '0'

    second = client.post('/inventory/adjustments', json={
        'store_id': store.id, 'item_id': item.id, 'quantity_delta': '-1.5', 'reserved_delta': '2',
    }, headers=headers)
    assert second.status_code == 201, second.get_json()
    assert second.get_json()['available'] == '2.5'

    summary = _stores_by_code(client.get('/inventory/stores', headers=headers).get_json())['ADJ-1']['summary']
    assert summary['on_hand'] == '2.5'
    assert summary['stock_value'] == '31.25'

    audits = get_db().execute(
        select(AuditLog).where(AuditLog.action == 'STOCK.ADJUST', AuditLog.entity_id == str(first.get_json()['id'])).order_by(AuditLog.id)
    ).scalars().all()
    assert len(audits) == 2
    assert audits[0].meta['changes']['quantity'] == {'before': '0', 'after': '6'}


def test_adjustment_keeps_reserved_within_quantity(client):
    seed_user_with_builtin_role('inv-mgr@test.local', 'Store Manager')
    headers = auth_headers(client, 'inv-mgr@test.local')
    store = ensure_store('ADJ-2', 'Guard Store')
    item = ensure_item('GUARD-ITEM', 'Guarded')
    set_stock(store, item, 3, 1)

    cases = [
        ({'quantity_delta': '-4'}, 'quantity_delta', 'Quantity cannot go below zero'),
        ({'quantity_delta': '0', 'reserved_delta': '-2'}, 'reserved_delta', 'Reserved cannot go below zero'),
        ({'quantity_delta': '0', 'reserved_delta': '3'}, 'reserved_delta', 'Reserved cannot exceed quantity'),
        ({'quantity_delta': '0'}, 'quantity_delta', 'Adjustment must change quantity or reserved'),
        ({'quantity_delta': 'lots'}, 'quantity_delta', 'Quantity change must be a number'),
        ({}, 'quantity_delta', 'Quantity change is required'),
    ]
    for extra, field, message in cases:
        payload = dict({'store_id': store.id, 'item_id': item.id}, **extra)
        resp = client.post('/inventory/adjustments', json=payload, headers=headers)
        assert resp.status_code == 422, (extra, resp.get_json())
        assert resp.get_json()['error']['fields'][field] == message

    inv = get_db().execute(select(Inventory).where(Inventory.store_id == store.id, Inventory.item_id == item.id)).scalar_one()
    get_db().refresh(inv)
    assert (inv.quantity, inv.reserved) == (Decimal('3'), Decimal('1'))


def test_adjustment_rejects_unknown_refs_and_untracked_items(client):
    seed_user_with_builtin_role('inv-mgr@test.local', 'Store Manager')
    headers = auth_headers(client, 'inv-mgr@test.local')
    store = ensure_store('ADJ-3', 'Ref Store')
    service = ensure_item('SVC-ONLY', 'Gift wrap', track_inventory=False)

    resp = client.post('/inventory/adjustments', json={'store_id': 99999, 'item_id': 99999, 'quantity_delta': '1'}, headers=headers)
    assert resp.status_code == 422
    assert resp.get_json()['error']['fields'] == {'store_id': 'Invalid store', 'item_id': 'Invalid item'}

    resp = client.post('/inventory/adjustments', json={'store_id': store.id, 'item_id': service.id, 'quantity_delta': '1'}, headers=headers)
    assert resp.get_json()['error']['fields'] == {'item_id': 'Inventory is not tracked for this item'}

    resp = client.post('/inventory/adjustments', json={'store_id': 'abc', 'quantity_delta': '1'}, headers=headers)
    fields = resp.get_json()['error']['fields']
    assert fields['store_id'] == 'Invalid store'
    assert fields['item_id'] == 'Item is required'


def test_pos_operator_cannot_adjust(client):
    seed_user_with_builtin_role('inv-pos@test.local', 'POS Operator')
    headers = auth_headers(client, 'inv-pos@test.local')
    store = ensure_store('ADJ-4', 'Pos Store')
    item = ensure_item('POS-ITEM', 'Pos Item')
    resp = client.post('/inventory/adjustments', json={'store_id': store.id, 'item_id': item.id, 'quantity_delta': '1'}, headers=headers)
    assert resp.status_code == 403
    assert get_db().execute(
        select(Inventory).where(Inventory.store_id == store.id, Inventory.item_id == item.id)
    ).scalar_one_or_none() is None


def test_create_store(client):
    seed_user_with_perms('stores-admin@test.local', 'StoreAdmin', [PermissionCode.STORES_MANAGE, PermissionCode.INVENTORY_VIEW])
    headers = auth_headers(client, 'stores-admin@test.local')
    resp = client.post('/inventory/stores', json={'code': 'blr-01', 'name': 'Bangalore Central', 'city': 'Bengaluru', 'state': 'KA'}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    assert resp.get_json()['code'] == 'BLR-01'
    assert resp.get_json()['location'] == 'Bengaluru, KA'

    dup = client.post('/inventory/stores', json={'code': 'BLR-01', 'name': 'Other'}, headers=headers)
    assert dup.get_json()['error']['fields'] == {'code': 'Code must be unique.'}
    bad = client.post('/inventory/stores', json={'code': 'blr 01', 'name': 'X'}, headers=headers)
    assert bad.get_json()['error']['fields'] == {
        'code': 'Code can only contain letters, numbers, and hyphens',
        'name': 'Name must be at least 2 characters',
    }


def test_store_creation_requires_permission(client):
    seed_user_with_builtin_role('inv-mgr@test.local', 'Store Manager')
    headers = auth_headers(client, 'inv-mgr@test.local')
    assert client.post('/inventory/stores', json={'code': 'NOPE', 'name': 'Nope Store'}, headers=headers).status_code == 403


def test_adjustment_rejects_values_beyond_column_range(client):
    seed_user_with_builtin_role('inv-mgr@test.local', 'Store Manager')
    headers = auth_headers(client, 'inv-mgr@test.local')
    store = ensure_store('ADJ-5', 'Big Store')
    item = ensure_item('BIG-ITEM', 'Bulk')
    set_stock(store, item, '99999999999', 0)

    resp = client.post('/inventory/adjustments', json={'store_id': store.id, 'item_id': item.id, 'quantity_delta': '1e30'}, headers=headers)
    assert resp.status_code == 422
    assert resp.get_json()['error']['fields'] == {'quantity_delta': 'Quantity change is too large'}

    resp = client.post('/inventory/adjustments', json={'store_id': store.id, 'item_id': item.id, 'quantity_delta': '1'}, headers=headers)
    assert resp.status_code == 422
    assert resp.get_json()['error']['fields'] == {'quantity_delta': 'Quantity cannot exceed 99999999999.999'}
