"""
Tests for the inventory Excel/CSV import.
"""
import io

import pandas as pd
import pytest

from yarn_erp.models.inventory import InventoryItem
from yarn_erp.services.import_service import InventoryImportService

HEADER = 'Product Name,Raw Material,Effective Yarn,Count,Initial Quantity,Cost Per Kg,Batch Number'

CSV = (
    f'{HEADER}\n'
    'Combed Cotton,Cotton,95.5,40s,1000,250,B-1\n'
    'Viscose Blend,Viscose,90,30s,500,180,B-2\n'
    'Broken Row,Cotton,,40s,100,10,B-3\n'
).encode('utf-8')


def _upload(client, headers, content, filename='stock.csv', query=''):
    return client.post(
        f'/api/inventory/import{query}',
        headers=headers,
        data={'file': (io.BytesIO(content), filename)},
        content_type='multipart/form-data'
    )


@pytest.fixture
def service():
    return InventoryImportService()


class TestImportService:

    def test_detect_format(self, service):
        assert service.detect_format('STOCK.XLSX') == ('excel', '.xlsx')
        assert service.detect_format('stock.csv') == ('csv', '.csv')
        assert service.detect_format('stock.pdf') == (None, None)

    def test_semicolon_csv(self, service):
        content = 'Product Name;Raw Material;Effective Yarn;Count;Initial Quantity\nA;Cotton;90,5;40s;10\n'
        df, result = service.parse_file(content.encode('utf-8'), 'stock.csv')
        assert result.missing_columns == []
        valid, result = service.validate(df, result)
        assert valid[0]['effective_yarn'] == 90.5

    def test_missing_columns(self, service):
        df, result = service.parse_file(b'Product Name,Count\nA,40s\n', 'stock.csv')
        assert result.is_valid is False
        assert 'Raw Material' in result.missing_columns

    def test_row_errors_reported_with_line_number(self, service, app):
        df, result = service.parse_file(CSV, 'stock.csv')
        valid, result = service.validate(df, result)
        assert len(valid) == 2
        assert result.rows_with_errors == 1
        assert result.errors[0].row == 4
        assert result.errors[0].column == 'Effective Yarn'

    def test_unknown_status_is_warning(self, service):
        content = f'{HEADER},Status\nA,Cotton,90,40s,10,1,B-9,Lost\n'.encode('utf-8')
        df, result = service.parse_file(content, 'stock.csv')
        valid, result = service.validate(df, result)
        assert len(valid) == 1
        assert valid[0]['status'] is None
        assert result.rows_with_warnings == 1

    def test_execute_updates_by_batch(self, service, app):
        df, result = service.parse_file(CSV, 'stock.csv')
        valid, _ = service.validate(df, result)
        assert service.execute(valid) == {'created': 2, 'updated': 0}
        assert service.execute(valid) == {'created': 0, 'updated': 2}
        assert InventoryItem.query.count() == 2


class TestImportRoute:

    def test_dry_run_does_not_write(self, client, auth_headers):
        resp = _upload(client, auth_headers, CSV, query='?dryRun=true')
        assert resp.status_code == 200
        data = resp.get_json()['data']
        assert data['imported'] is None
        assert data['validation']['validRows'] == 2
        assert InventoryItem.query.count() == 0

    def test_import_creates_items(self, client, auth_headers):
        data = _upload(client, auth_headers, CSV).get_json()['data']
        assert data['imported'] == {'created': 2, 'updated': 0}

        item = InventoryItem.query.filter_by(batch_number='B-1').one()
        assert item.current_quantity == 1000.0
        assert item.total_value == 250000.0

    def test_excel_file(self, client, auth_headers):
        buffer = io.BytesIO()
        pd.DataFrame([{
            'Product Name': 'Combed Cotton', 'Raw Material': 'Cotton', 'Effective Yarn': 95.5,
            'Count': '40s', 'Initial Quantity': 300
        }]).to_excel(buffer, index=False)

        resp = _upload(client, auth_headers, buffer.getvalue(), filename='stock.xlsx')
        assert resp.get_json()['data']['imported']['created'] == 1

    def test_missing_columns_422(self, client, auth_headers):
        resp = _upload(client, auth_headers, b'Product Name,Count\nA,40s\n')
        assert resp.status_code == 422
        assert resp.get_json()['validation']['missingColumns'] == ['Raw Material', 'Effective Yarn', 'Initial Quantity']

    def test_unsupported_extension(self, client, auth_headers):
        assert _upload(client, auth_headers, b'whatever', filename='stock.pdf').status_code == 422

    def test_file_required(self, client, auth_headers):
        resp = client.post('/api/inventory/import', headers=auth_headers, data={},
                           content_type='multipart/form-data')
        assert resp.status_code == 400

    def test_manager_forbidden(self, client, manager_headers):
        assert _upload(client, manager_headers, CSV).status_code == 403
