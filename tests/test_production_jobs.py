"""
Tests for production jobs, their lifecycle and the production machine master.
"""
from datetime import date, timedelta

import pytest

from yarn_erp.extensions import db
from yarn_erp.models.dyeing import DyeingRecord
from yarn_erp.models.production_job import Machine, ProductionJob

JOBS = '/api/production/jobs'
MACHINES = '/api/production/machines'


def _job(client, headers, **overrides):
    body = {'productType': 'Dyed Cotton', 'quantity': 500, 'partyName': 'Sri Textiles'}
    body.update(overrides)
    return client.post(JOBS, headers=headers, json=body)


@pytest.fixture
def machine(app):
    machine = Machine(machine_id='WD-01', machine_name='Winder 1', machine_type='winding', capacity=800)
    db.session.add(machine)
    db.session.commit()
    return machine


class TestJobIds:

    def test_sequential_ids(self, client, auth_headers):
        assert _job(client, auth_headers).get_json()['data']['jobId'] == 'JB-001'
        assert _job(client, auth_headers).get_json()['data']['jobId'] == 'JB-002'

    def test_next_id_skips_foreign_formats(self, app):
        db.session.add_all([
            ProductionJob(job_id='JB-009', product_type='x', quantity=1),
            ProductionJob(job_id='LEGACY-77', product_type='x', quantity=1),
        ])
        db.session.commit()
        assert ProductionJob.next_job_id() == 'JB-010'


class TestJobLifecycle:

    def test_create_defaults(self, client, auth_headers):
        resp = _job(client, auth_headers)
        assert resp.status_code == 201
        data = resp.get_json()['data']
        assert data['status'] == 'pending'
        assert data['priority'] == 'medium'
        assert data['unit'] == 'kg'

    def test_validation(self, client, auth_headers):
        assert client.post(JOBS, headers=auth_headers, json={'quantity': 5}).status_code == 400
        assert _job(client, auth_headers, quantity=0).status_code == 400
        assert _job(client, auth_headers, priority='asap').status_code == 400
        assert _job(client, auth_headers, qualityGrade='Z').status_code == 400
        assert _job(client, auth_headers, defectPercentage=120).status_code == 400
        assert _job(client, auth_headers, machineId=999).status_code == 404

    def test_start_and_complete(self, client, auth_headers, machine):
        job_id = _job(client, auth_headers).get_json()['data']['id']

        resp = client.post(f'{JOBS}/{job_id}/start', headers=auth_headers,
                           json={'machineId': machine.id, 'workerName': 'Ravi'})
        data = resp.get_json()['data']
        assert data['status'] == 'in_progress'
        assert data['startDate'] is not None
        assert data['machine']['machineId'] == 'WD-01'

        resp = client.post(f'{JOBS}/{job_id}/complete', headers=auth_headers, json={
            'hourlyEfficiency': [80, 90, 85.5],
            'downtime': [{'minutes': 15, 'reason': 'Yarn break'}, {'minutes': 30}],
            'qualityGrade': 'A'
        })
        data = resp.get_json()['data']
        assert data['status'] == 'completed'
        assert data['actualEfficiency'] == 85.17
        assert data['totalDowntime'] == 45.0
        assert data['qualityGrade'] == 'A'
        assert data['endDate'] is not None

    def test_invalid_transitions(self, client, auth_headers):
        job_id = _job(client, auth_headers).get_json()['data']['id']
        assert client.post(f'{JOBS}/{job_id}/complete', headers=auth_headers, json={}).status_code == 400

        client.post(f'{JOBS}/{job_id}/start', headers=auth_headers)
        assert client.post(f'{JOBS}/{job_id}/start', headers=auth_headers).status_code == 400

    def test_complete_requires_lists(self, client, auth_headers):
        job_id = _job(client, auth_headers).get_json()['data']['id']
        client.post(f'{JOBS}/{job_id}/start', headers=auth_headers)
        resp = client.post(f'{JOBS}/{job_id}/complete', headers=auth_headers, json={'hourlyEfficiency': 80})
        assert resp.status_code == 400

    def test_status_patch(self, client, auth_headers):
        job_id = _job(client, auth_headers).get_json()['data']['id']
        resp = client.patch(f'{JOBS}/{job_id}/status', headers=auth_headers, json={'status': 'on_hold'})
        assert resp.get_json()['data']['status'] == 'on_hold'
        resp = client.patch(f'{JOBS}/{job_id}/status', headers=auth_headers, json={'status': 'paused'})
        assert resp.status_code == 400

    def test_update_and_delete(self, client, auth_headers):
        job_id = _job(client, auth_headers).get_json()['data']['id']
        resp = client.put(f'{JOBS}/{job_id}', headers=auth_headers, json={'priority': 'urgent', 'shade': 'Red'})
        assert resp.get_json()['data']['priority'] == 'urgent'
        assert client.delete(f'{JOBS}/{job_id}', headers=auth_headers).status_code == 200
        assert client.get(f'{JOBS}/{job_id}', headers=auth_headers).status_code == 404

    def test_overdue_flag(self, client, auth_headers):
        yesterday = (date.today() - timedelta(days=1)).isoformat()
        assert _job(client, auth_headers, dueDate=yesterday).get_json()['data']['isOverdue'] is True


class TestJobListing:

    def test_pagination_shape(self, client, auth_headers):
        for _ in range(3):
            _job(client, auth_headers)
        body = client.get(f'{JOBS}?limit=2', headers=auth_headers).get_json()
        assert body['success'] is True
        assert body['total'] == 3
        assert body['totalPages'] == 2
        assert body['page'] == 1
        assert [j['jobId'] for j in body['data']] == ['JB-003', 'JB-002']

    def test_filters_and_search(self, client, auth_headers):
        _job(client, auth_headers, priority='high')
        _job(client, auth_headers, partyName='Kumar Mills', workerName='Ravi')

        def job_ids(query):
            return [j['jobId'] for j in client.get(f'{JOBS}{query}', headers=auth_headers).get_json()['data']]

        assert job_ids('?priority=high') == ['JB-001']
        assert job_ids('?search=ravi') == ['JB-002']
        assert job_ids('?status=completed') == []

    def test_jobs_by_party(self, client, auth_headers):
        _job(client, auth_headers)
        _job(client, auth_headers, partyName='Kumar Mills')
        data = client.get(f'{JOBS}/party/Kumar%20Mills', headers=auth_headers).get_json()['data']
        assert [j['partyName'] for j in data] == ['Kumar Mills']


class TestJobFromDyeing:

    def test_prefills_from_order(self, client, auth_headers):
        record = DyeingRecord(yarn_type='Viscose', party_name='Kumar Mills', dyeing_firm='Aqua Dyers',
                              quantity=320, shade='Maroon', count='30s',
                              sent_date=date(2025, 5, 1), expected_arrival_date=date(2025, 5, 10))
        db.session.add(record)
        db.session.commit()

        resp = client.post(f'{JOBS}/from-dyeing', headers=auth_headers,
                           json={'dyeingOrderId': record.id, 'priority': 'high'})
        assert resp.status_code == 201
        data = resp.get_json()['data']
        assert data['productType'] == 'Dyed Viscose'
        assert data['quantity'] == 320
        assert data['shade'] == 'Maroon'
        assert data['count'] == '30s'
        assert data['priority'] == 'high'
        assert data['dyeingOrderId'] == record.id

    def test_missing_order(self, client, auth_headers):
        resp = client.post(f'{JOBS}/from-dyeing', headers=auth_headers, json={'dyeingOrderId': 404})
        assert resp.status_code == 404


class TestProductionDashboard:

    def test_counts(self, client, auth_headers, machine):
        _job(client, auth_headers)
        job_id = _job(client, auth_headers, dueDate=(date.today() - timedelta(days=2)).isoformat()) \
            .get_json()['data']['id']
        client.post(f'{JOBS}/{job_id}/start', headers=auth_headers)

        data = client.get('/api/production/dashboard', headers=auth_headers).get_json()['data']
        assert data['totalJobs'] == 2
        assert data['byStatus']['pending'] == 1
        assert data['byStatus']['in_progress'] == 1
        assert data['byStatus']['completed'] == 0
        assert data['overdueJobs'] == 1
        assert data['activeMachines'] == 1


class TestMachineMaster:

    def test_create_and_duplicate(self, client, auth_headers):
        resp = client.post(MACHINES, headers=auth_headers, json={'machineId': 'PK-01', 'machineName': 'Packer'})
        assert resp.status_code == 201
        assert resp.get_json()['data']['status'] == 'active'
        resp = client.post(MACHINES, headers=auth_headers, json={'machineId': 'PK-01', 'machineName': 'Again'})
        assert resp.status_code == 409

    def test_status_filter_and_update(self, client, auth_headers, machine):
        resp = client.put(f'{MACHINES}/{machine.id}', headers=auth_headers, json={'status': 'maintenance'})
        assert resp.get_json()['data']['status'] == 'maintenance'
        assert client.put(f'{MACHINES}/{machine.id}', headers=auth_headers,
                          json={'status': 'broken'}).status_code == 400

        active = client.get(f'{MACHINES}?status=active', headers=auth_headers).get_json()['data']
        assert active == []

    def test_delete_blocked_while_job_runs(self, client, auth_headers, machine):
        job_id = _job(client, auth_headers, machineId=machine.id).get_json()['data']['id']
        client.post(f'{JOBS}/{job_id}/start', headers=auth_headers)
        assert client.delete(f'{MACHINES}/{machine.id}', headers=auth_headers).status_code == 409

        client.patch(f'{JOBS}/{job_id}/status', headers=auth_headers, json={'status': 'on_hold'})
        assert client.delete(f'{MACHINES}/{machine.id}', headers=auth_headers).status_code == 200
        assert db.session.get(ProductionJob, job_id).machine_id is None
