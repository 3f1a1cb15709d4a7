from sqlalchemy.exc import IntegrityError
from erp.errors import FieldValidationError, UniqueConflict, unique_violation_field
from test_utils_seed import auth_headers, seed_user_with_builtin_role


def test_unknown_path_returns_error_json(client):
    resp = client.get('/non-existent-path')
    # Flask default 404 should be wrapped by error handler
    assert resp.status_code == 404
    body = resp.get_json()
    assert body['error']['status'] == 404
    assert 'detail' in body['error']


def test_internal_error_shape(client, monkeypatch):
    seed_user_with_builtin_role('err-admin@test.local', 'Administrator')
    headers = auth_headers(client, 'err-admin@test.local')
    # Monkeypatch AFTER login so auth works; only break roles listing
    import erp.routes.iam as iam_mod

    def boom(*a, **k):
        raise RuntimeError('explode')
    monkeypatch.setattr(iam_mod, 'paginate', boom)
    resp = client.get('/iam/roles', headers=headers)
    assert resp.status_code == 500
    body = resp.get_json()
    assert body['error'] == {
        'status': 500,
        'title': 'Internal Server Error',
        'detail': 'Something went wrong. Please try again.',
    }
    assert 'explode' not in resp.get_data(as_text=True)


def test_field_validation_payload():
    err = FieldValidationError({'sku': 'SKU is required'}, {'sku': ''})
    assert err.to_payload() == {
        'error': {'status': 422, 'title': 'Unprocessable Entity', 'detail': 'Validation failed', 'fields': {'sku': 'SKU is required'}},
        'values': {'sku': ''},
    }
    conflict = UniqueConflict('slug', 'Slug must be unique.')
    assert conflict.status_code == 422
    assert conflict.to_payload()['error']['detail'] == 'Unique constraint violated'


def _integrity(message):
    return IntegrityError('INSERT ...', {}, Exception(message))


def test_unique_violation_field_sqlite_and_postgres_messages():
    assert unique_violation_field(_integrity('UNIQUE constraint failed: items.barcode'), 'items', ['sku', 'barcode']) == 'barcode'
    pg = 'duplicate key value violates unique constraint "uq_items_sku"\nDETAIL:  Key (sku)=(A-1) already exists.'
    assert unique_violation_field(_integrity(pg), 'items', ['sku', 'barcode']) == 'sku'
    assert unique_violation_field(_integrity('UNIQUE constraint failed: categories.slug'), 'items', ['sku']) is None
    assert unique_violation_field(_integrity('NOT NULL constraint failed: items.name'), 'items', ['sku', 'barcode']) is None
