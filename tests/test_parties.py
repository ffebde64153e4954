"""
Tests for parties and the per-party order aggregation.
"""
import io
from datetime import date

import pandas as pd
import pytest

from yarn_erp.extensions import db
from yarn_erp.models.dyeing import DyeingRecord
from yarn_erp.models.party import Party


@pytest.fixture
def orders(app):
    """Three dyeing orders for two parties; one arrived, one reprocessing."""
    db.session.add_all([
        DyeingRecord(yarn_type='Cotton', party_name='Sri Textiles', dyeing_firm='Colour House', quantity=100,
                     sent_date=date(2025, 4, 1), expected_arrival_date=date(2025, 4, 10),
                     arrival_date=date(2025, 4, 9)),
        DyeingRecord(yarn_type='Cotton', party_name='Sri Textiles', dyeing_firm='Colour House', quantity=50,
                     sent_date=date(2025, 4, 5), expected_arrival_date=date(2025, 4, 15),
                     is_reprocessing=True),
        DyeingRecord(yarn_type='Viscose', party_name='Kumar Mills', dyeing_firm='Aqua Dyers', quantity=80,
                     sent_date=date(2025, 5, 1), expected_arrival_date=date(2025, 5, 10)),
    ])
    db.session.commit()


class TestPartyModel:

    def test_contact_validation(self):
        assert Party.is_valid_contact('+91 98765 43210') is True
        assert Party.is_valid_contact(None) is True
        assert Party.is_valid_contact('call me') is False

    def test_archive_and_restore(self, app):
        party = Party(name='Sri Textiles')
        party.archive()
        assert party.is_archived is True
        assert party.archived_at is not None
        party.restore()
        assert party.is_archived is False
        assert party.archived_at is None


class TestPartyAPI:

    def test_create_and_duplicate(self, client, auth_headers):
        resp = client.post('/api/parties', headers=auth_headers,
                           json={'name': 'Sri Textiles', 'contact': '044-2345678'})
        assert resp.status_code == 201
        resp = client.post('/api/parties', headers=auth_headers, json={'name': 'Sri Textiles'})
        assert resp.status_code == 409

    def test_invalid_contact(self, client, auth_headers):
        resp = client.post('/api/parties', headers=auth_headers, json={'name': 'X', 'contact': 'abc'})
        assert resp.status_code == 400

    def test_non_string_name_or_contact(self, client, auth_headers):
        assert client.post('/api/parties', headers=auth_headers, json={'name': 12}).status_code == 400
        resp = client.post('/api/parties', headers=auth_headers, json={'name': 'X', 'contact': 9876543210})
        assert resp.status_code == 400

    def test_archive_hides_from_list(self, client, auth_headers):
        party_id = client.post('/api/parties', headers=auth_headers,
                               json={'name': 'Sri Textiles'}).get_json()['data']['id']
        client.post(f'/api/parties/{party_id}/archive', headers=auth_headers)

        assert client.get('/api/parties', headers=auth_headers).get_json()['data'] == []
        archived = client.get('/api/parties/archived', headers=auth_headers).get_json()['data']
        assert [p['name'] for p in archived] == ['Sri Textiles']
        with_archived = client.get('/api/parties?includeArchived=true', headers=auth_headers).get_json()['data']
        assert len(with_archived) == 1

        client.post(f'/api/parties/{party_id}/restore', headers=auth_headers)
        assert len(client.get('/api/parties', headers=auth_headers).get_json()['data']) == 1

    def test_update_and_delete(self, client, auth_headers):
        party_id = client.post('/api/parties', headers=auth_headers,
                               json={'name': 'Sri Textiles'}).get_json()['data']['id']
        resp = client.put(f'/api/parties/{party_id}', headers=auth_headers, json={'address': 'Tiruppur'})
        assert resp.get_json()['data']['address'] == 'Tiruppur'
        assert client.delete(f'/api/parties/{party_id}', headers=auth_headers).status_code == 200
        assert db.session.get(Party, party_id) is None


class TestPartyAggregation:

    def test_summary(self, client, auth_headers, orders):
        data = client.get('/api/parties/summary', headers=auth_headers).get_json()['data']
        assert [s['partyName'] for s in data] == ['Kumar Mills', 'Sri Textiles']
        sri = data[1]
        assert sri['totalOrders'] == 2
        assert sri['pendingOrders'] == 1
        assert sri['totalYarn'] == 150.0
        assert sri['pendingYarn'] == 50.0
        assert sri['reprocessingYarn'] == 50.0
        assert sri['arrivedYarn'] == 100.0
        assert sri['firstOrder'] == '2025-04-01'
        assert sri['lastOrder'] == '2025-04-05'

    def test_summary_date_range(self, client, auth_headers, orders):
        data = client.get('/api/parties/summary?startDate=2025-04-30', headers=auth_headers).get_json()['data']
        assert [s['partyName'] for s in data] == ['Kumar Mills']

    def test_names_merge_registered_and_ordering(self, client, auth_headers, orders):
        client.post('/api/parties', headers=auth_headers, json={'name': 'Alpha Knits'})
        party_id = client.post('/api/parties', headers=auth_headers,
                               json={'name': 'Kumar Mills'}).get_json()['data']['id']
        client.post(f'/api/parties/{party_id}/archive', headers=auth_headers)

        names = client.get('/api/parties/names', headers=auth_headers).get_json()['data']
        assert names == ['Alpha Knits', 'Sri Textiles']

    def test_statistics(self, client, auth_headers, orders):
        client.post('/api/parties', headers=auth_headers, json={'name': 'Sri Textiles'})
        data = client.get('/api/parties/statistics', headers=auth_headers).get_json()['data']
        assert data['totalParties'] == 1
        assert data['totalOrders'] == 3
        assert data['totalYarn'] == 230.0
        assert data['pendingYarn'] == 130.0

    def test_details(self, client, auth_headers, orders):
        data = client.get('/api/parties/Sri%20Textiles/details', headers=auth_headers).get_json()['data']
        assert data['party'] is None
        assert data['summary']['totalOrders'] == 2
        assert [o['sentDate'] for o in data['orders']] == ['2025-04-05', '2025-04-01']

        assert client.get('/api/parties/Nobody/details', headers=auth_headers).status_code == 404

    def test_export_csv(self, client, auth_headers, orders):
        resp = client.get('/api/parties/export?format=csv', headers=auth_headers)
        assert resp.status_code == 200
        assert resp.mimetype == 'text/csv'
        df = pd.read_csv(io.StringIO(resp.get_data(as_text=True)))
        assert list(df['partyName']) == ['Kumar Mills', 'Sri Textiles']
        assert list(df['totalYarn']) == [80.0, 150.0]

    def test_export_json_and_bad_format(self, client, auth_headers, orders):
        resp = client.get('/api/parties/export', headers=auth_headers)
        assert resp.mimetype == 'application/json'
        assert resp.headers['Content-Disposition'] == 'attachment; filename=parties.json'
        assert len(resp.get_json()) == 2
        assert client.get('/api/parties/export?format=xml', headers=auth_headers).status_code == 400
