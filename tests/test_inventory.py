"""
Tests for inventory items, stock movements and the manager read-only rule.
"""
import pytest

from yarn_erp.extensions import db
from yarn_erp.models.audit_log import AuditLog
from yarn_erp.models.inventory import InventoryItem, StockLog


def _payload(**overrides):
    body = {
        'productName': 'Combed Cotton 40s',
        'rawMaterial': 'Cotton',
        'effectiveYarn': 95.5,
        'count': '40s',
        'initialQuantity': 1000,
        'costPerKg': 250,
        'category': 'Cotton Yarn',
    }
    body.update(overrides)
    return body


def _create(client, headers, **overrides):
    return client.post('/api/inventory', headers=headers, json=_payload(**overrides))


class TestInventoryModel:

    def _item(self, **kwargs):
        values = dict(product_name='P', raw_material='Cotton', effective_yarn=90, count='30s',
                      initial_quantity=100, current_quantity=100, cost_per_kg=10, status='Available')
        values.update(kwargs)
        item = InventoryItem(**values)
        db.session.add(item)
        db.session.flush()
        return item

    def test_recalculate_value_and_status(self, app):
        item = self._item()
        item.recalculate()
        assert item.total_value == 1000.0

        item.current_quantity = 0
        item.recalculate()
        assert item.status == 'Out of Stock'

        item.current_quantity = 5
        item.recalculate()
        assert item.status == 'Available'

    def test_low_stock(self, app):
        assert self._item(current_quantity=9).is_low_stock is True
        assert self._item(current_quantity=10).is_low_stock is False

    def test_movement_rejects_overdraw(self, app):
        item = self._item()
        with pytest.raises(ValueError):
            item.apply_movement('out', 150)
        with pytest.raises(ValueError):
            item.apply_movement('in', 0)

    def test_spoilage_writes_log(self, app):
        item = self._item()
        log = item.apply_movement('spoilage', 20, reason='Damp')
        db.session.commit()
        assert item.current_quantity == 80
        assert log.type == 'spoilage'
        assert log.reason == 'Damp'


class TestInventoryAPI:

    def test_create_sets_current_and_value(self, client, auth_headers):
        resp = _create(client, auth_headers)
        assert resp.status_code == 201
        data = resp.get_json()['data']
        assert data['currentQuantity'] == 1000
        assert data['totalValue'] == 250000.0
        assert data['status'] == 'Available'
        assert AuditLog.query.filter_by(product_id=f"inventory:{data['id']}", action='create').count() == 1

    def test_create_missing_fields(self, client, auth_headers):
        body = _payload()
        del body['count']
        assert client.post('/api/inventory', headers=auth_headers, json=body).status_code == 400

    def test_negative_cost(self, client, auth_headers):
        assert _create(client, auth_headers, costPerKg=-5).status_code == 400

    def test_list_filters_and_search(self, client, auth_headers):
        _create(client, auth_headers)
        _create(client, auth_headers, productName='Viscose 30s', rawMaterial='Viscose', category='Viscose Yarn',
                batchNumber='B-77')

        def names(query):
            resp = client.get(f'/api/inventory{query}', headers=auth_headers)
            return [i['productName'] for i in resp.get_json()['data']]

        assert names('?category=Viscose%20Yarn') == ['Viscose 30s']
        assert names('?search=b-77') == ['Viscose 30s']
        assert len(names('')) == 2

    def test_update_audits_changed_fields(self, client, auth_headers):
        item_id = _create(client, auth_headers).get_json()['data']['id']
        resp = client.put(f'/api/inventory/{item_id}', headers=auth_headers, json={'costPerKg': 300})
        assert resp.get_json()['data']['totalValue'] == 300000.0

        logs = AuditLog.query.filter_by(product_id=f'inventory:{item_id}', action='update').all()
        assert [log.field for log in logs] == ['cost_per_kg']

    def test_update_cannot_set_quantity_directly(self, client, auth_headers):
        item_id = _create(client, auth_headers).get_json()['data']['id']
        resp = client.put(f'/api/inventory/{item_id}', headers=auth_headers,
                          json={'currentQuantity': 5, 'costPerKg': 300})
        assert resp.status_code == 400

        item = db.session.get(InventoryItem, item_id)
        assert item.current_quantity == 1000
        assert item.cost_per_kg == 250
        assert StockLog.query.filter_by(inventory_id=item_id).count() == 0

    def test_invalid_status(self, client, auth_headers):
        item_id = _create(client, auth_headers).get_json()['data']['id']
        resp = client.put(f'/api/inventory/{item_id}', headers=auth_headers, json={'status': 'Lost'})
        assert resp.status_code == 400

    def test_delete(self, client, auth_headers):
        item_id = _create(client, auth_headers).get_json()['data']['id']
        assert client.delete(f'/api/inventory/{item_id}', headers=auth_headers).status_code == 200
        assert db.session.get(InventoryItem, item_id) is None

    def test_yarn_balance(self, client, auth_headers):
        _create(client, auth_headers)
        _create(client, auth_headers, productName='Other', initialQuantity=500)
        data = client.get('/api/inventory/metrics/balance', headers=auth_headers).get_json()['data']
        assert data == [{'effectiveYarn': 95.5, 'currentQuantity': 1500.0, 'totalValue': 375000.0, 'items': 2}]


class TestStockMovements:

    def test_stock_in_out_spoilage(self, client, auth_headers):
        item_id = _create(client, auth_headers).get_json()['data']['id']

        resp = client.post(f'/api/inventory/{item_id}/stock-in', headers=auth_headers,
                           json={'quantity': 200, 'source': 'Spinning'})
        assert resp.status_code == 201
        assert resp.get_json()['data']['item']['currentQuantity'] == 1200

        resp = client.post(f'/api/inventory/{item_id}/stock-out', headers=auth_headers,
                           json={'quantity': 700, 'usagePurpose': 'Knitting'})
        assert resp.get_json()['data']['log']['usagePurpose'] == 'Knitting'

        resp = client.post(f'/api/inventory/{item_id}/spoilage', headers=auth_headers,
                           json={'quantity': 50, 'reason': 'Moisture'})
        assert resp.get_json()['data']['item']['currentQuantity'] == 450

        logs = client.get(f'/api/inventory/{item_id}/logs', headers=auth_headers).get_json()['data']
        assert sorted(log['type'] for log in logs) == ['in', 'out', 'spoilage']

    def test_stock_out_more_than_available(self, client, auth_headers):
        item_id = _create(client, auth_headers).get_json()['data']['id']
        resp = client.post(f'/api/inventory/{item_id}/stock-out', headers=auth_headers, json={'quantity': 5000})
        assert resp.status_code == 400
        assert 'Insufficient stock' in resp.get_json()['error']
        assert StockLog.query.count() == 0
        assert db.session.get(InventoryItem, item_id).current_quantity == 1000

    def test_stock_out_to_zero_marks_out_of_stock(self, client, auth_headers):
        item_id = _create(client, auth_headers).get_json()['data']['id']
        resp = client.post(f'/api/inventory/{item_id}/stock-out', headers=auth_headers, json={'quantity': 1000})
        assert resp.get_json()['data']['item']['status'] == 'Out of Stock'

    def test_quantity_required(self, client, auth_headers):
        item_id = _create(client, auth_headers).get_json()['data']['id']
        assert client.post(f'/api/inventory/{item_id}/stock-in', headers=auth_headers, json={}).status_code == 400


class TestManagerReadOnly:

    def test_manager_can_read(self, client, auth_headers, manager_headers):
        item_id = _create(client, auth_headers).get_json()['data']['id']
        assert client.get('/api/inventory', headers=manager_headers).status_code == 200
        assert client.get(f'/api/inventory/{item_id}', headers=manager_headers).status_code == 200

    def test_manager_cannot_write(self, client, auth_headers, manager_headers):
        item_id = _create(client, auth_headers).get_json()['data']['id']
        assert _create(client, manager_headers).status_code == 403
        assert client.put(f'/api/inventory/{item_id}', headers=manager_headers, json={'costPerKg': 1}).status_code == 403
        assert client.post(f'/api/inventory/{item_id}/stock-out', headers=manager_headers,
                           json={'quantity': 1}).status_code == 403
        assert client.delete(f'/api/inventory/{item_id}', headers=manager_headers).status_code == 403
