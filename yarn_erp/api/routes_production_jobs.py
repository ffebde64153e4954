"""
Production jobs API and the production machine master.
"""
from flask import Blueprint, request
from sqlalchemy import func, or_

from yarn_erp.extensions import db
from yarn_erp.models.production_job import (
    Machine, ProductionJob, JOB_STATUSES, JOB_PRIORITIES, MACHINE_STATUSES
)
from yarn_erp.models.dyeing import DyeingRecord
from yarn_erp.models.count_product import QUALITY_GRADES
from yarn_erp.utils.auth import token_required
from yarn_erp.utils.error_utils import (
    APIError, ErrorCodes, handle_errors, success_response, validate_required, not_found, log_operation
)
from yarn_erp.utils.request_utils import (
    get_json_body, pick, has_any, parse_date, parse_number, get_pagination, paginated
)

production_bp = Blueprint('production', __name__, url_prefix='/api/production')

TEXT_FIELDS = {
    'productType': 'product_type',
    'unit': 'unit',
    'workerName': 'worker_name',
    'workerId': 'worker_id',
    'partyName': 'party_name',
    'yarnType': 'yarn_type',
    'shade': 'shade',
    'count': 'count',
    'notes': 'notes',
}


def _get_job(job_id):
    job = db.session.get(ProductionJob, job_id)
    if not job:
        raise not_found('Production job', job_id)
    return job


def _get_machine(machine_id):
    machine = db.session.get(Machine, machine_id)
    if not machine:
        raise not_found('Machine', machine_id)
    return machine


def _apply_job(job, data):
    for key, attr in TEXT_FIELDS.items():
        if has_any(data, key, attr):
            setattr(job, attr, pick(data, key, attr))

    if 'quantity' in data:
        quantity = parse_number(data['quantity'], 'quantity', allow_none=False)
        if quantity <= 0:
            raise APIError('quantity must be greater than 0', 400)
        job.quantity = quantity

    if has_any(data, 'machineId', 'machine_id'):
        machine_id = pick(data, 'machineId', 'machine_id')
        job.machine_id = _get_machine(int(machine_id)).id if machine_id not in (None, '') else None

    if 'priority' in data:
        if data['priority'] not in JOB_PRIORITIES:
            raise APIError(f"priority must be one of {', '.join(JOB_PRIORITIES)}", 400)
        job.priority = data['priority']

    if has_any(data, 'dueDate', 'due_date'):
        job.due_date = parse_date(pick(data, 'dueDate', 'due_date'), 'dueDate')

    if has_any(data, 'qualityGrade', 'quality_grade'):
        grade = pick(data, 'qualityGrade', 'quality_grade')
        if grade and grade not in QUALITY_GRADES:
            raise APIError(f"qualityGrade must be one of {', '.join(QUALITY_GRADES)}", 400)
        job.quality_grade = grade

    if has_any(data, 'defectPercentage', 'defect_percentage'):
        defect = parse_number(pick(data, 'defectPercentage', 'defect_percentage'), 'defectPercentage', minimum=0)
        if defect is not None and defect > 100:
            raise APIError('defectPercentage cannot exceed 100', 400)
        job.defect_percentage = defect


def _new_job(data):
    validate_required(data, ['productType', 'quantity'])
    job = ProductionJob(job_id=ProductionJob.next_job_id(), status='pending', priority='medium', unit='kg')
    _apply_job(job, data)
    return job


# =============================================================================
# JOBS
# =============================================================================

@production_bp.route('/jobs', methods=['GET'])
@handle_errors
@token_required
def list_jobs():
    """
    Paginated jobs.
    Query params: status, priority, machineId, partyName, search, page, limit
    """
    query = ProductionJob.query
    if request.args.get('status'):
        query = query.filter(ProductionJob.status == request.args['status'])
    if request.args.get('priority'):
        query = query.filter(ProductionJob.priority == request.args['priority'])
    if request.args.get('machineId'):
        query = query.filter(ProductionJob.machine_id == request.args.get('machineId', type=int))
    if request.args.get('partyName'):
        query = query.filter(ProductionJob.party_name == request.args['partyName'])

    search = request.args.get('search', '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            ProductionJob.job_id.ilike(pattern),
            ProductionJob.product_type.ilike(pattern),
            ProductionJob.party_name.ilike(pattern),
            ProductionJob.worker_name.ilike(pattern)
        ))

    page, limit = get_pagination()
    total = query.count()
    jobs = query.order_by(ProductionJob.created_at.desc(), ProductionJob.id.desc()) \
        .offset((page - 1) * limit).limit(limit).all()

    body = paginated([j.to_dict() for j in jobs], total, page, limit, items_key='data')
    body['success'] = True
    return body, 200


@production_bp.route('/jobs/<int:job_id>', methods=['GET'])
@handle_errors
@token_required
def get_job(job_id):
    return success_response(data=_get_job(job_id).to_dict())


@production_bp.route('/jobs', methods=['POST'])
@handle_errors
@token_required
def create_job():
    job = _new_job(get_json_body())
    db.session.add(job)
    db.session.commit()

    log_operation('create_production_job', job=job.job_id)
    return success_response(data=job.to_dict(), message='Production job created', status_code=201)


@production_bp.route('/jobs/from-dyeing', methods=['POST'])
@handle_errors
@token_required
def create_job_from_dyeing():
    """Creates a job pre-filled from a dyeing order."""
    data = get_json_body()
    validate_required(data, ['dyeingOrderId'])

    record = db.session.get(DyeingRecord, int(data['dyeingOrderId']))
    if not record:
        raise not_found('Dyeing order', data['dyeingOrderId'])

    payload = {
        'productType': data.get('productType') or f'Dyed {record.yarn_type}',
        'quantity': data.get('quantity') or record.quantity,
        'partyName': record.party_name,
        'yarnType': record.yarn_type,
        'shade': record.shade,
        'count': record.count,
    }
    payload.update({k: v for k, v in data.items() if k not in ('dyeingOrderId', 'productType', 'quantity')})

    job = _new_job(payload)
    job.dyeing_order_id = record.id
    db.session.add(job)
    db.session.commit()

    log_operation('create_job_from_dyeing', job=job.job_id, dyeing_order=record.id)
    return success_response(data=job.to_dict(), status_code=201)


@production_bp.route('/jobs/<int:job_id>', methods=['PUT'])
@handle_errors
@token_required
def update_job(job_id):
    job = _get_job(job_id)
    _apply_job(job, get_json_body())
    db.session.commit()
    return success_response(data=job.to_dict())


@production_bp.route('/jobs/<int:job_id>', methods=['DELETE'])
@handle_errors
@token_required
def delete_job(job_id):
    job = _get_job(job_id)
    db.session.delete(job)
    db.session.commit()
    return success_response(message='Production job deleted')


@production_bp.route('/jobs/<int:job_id>/status', methods=['PATCH'])
@handle_errors
@token_required
def update_job_status(job_id):
    job = _get_job(job_id)
    data = get_json_body()
    status = data.get('status')
    if status not in JOB_STATUSES:
        raise APIError(f"status must be one of {', '.join(JOB_STATUSES)}", 400)

    job.status = status
    db.session.commit()
    return success_response(data=job.to_dict())


@production_bp.route('/jobs/<int:job_id>/start', methods=['POST'])
@handle_errors
@token_required
def start_job(job_id):
    job = _get_job(job_id)
    data = request.get_json(silent=True) or {}
    if has_any(data, 'machineId', 'workerName', 'workerId'):
        _apply_job(job, data)

    job.start()
    db.session.commit()
    log_operation('start_job', job=job.job_id)
    return success_response(data=job.to_dict(), message='Production job started')


@production_bp.route('/jobs/<int:job_id>/complete', methods=['POST'])
@handle_errors
@token_required
def complete_job(job_id):
    """
    Body: {hourlyEfficiency: [..], downtime: [{minutes, reason}], qualityGrade?, defectPercentage?}
    """
    job = _get_job(job_id)
    data = request.get_json(silent=True) or {}

    hourly = data.get('hourlyEfficiency') or []
    downtime = data.get('downtime') or []
    if not isinstance(hourly, list) or not isinstance(downtime, list):
        raise APIError('hourlyEfficiency and downtime must be lists', 400)

    _apply_job(job, {k: v for k, v in data.items() if k in ('qualityGrade', 'defectPercentage', 'notes')})
    job.complete(hourly, downtime)
    db.session.commit()

    log_operation('complete_job', job=job.job_id, efficiency=job.actual_efficiency, downtime=job.total_downtime)
    return success_response(data=job.to_dict(), message='Production job completed')


@production_bp.route('/jobs/party/<path:party_name>', methods=['GET'])
@handle_errors
@token_required
def jobs_by_party(party_name):
    jobs = ProductionJob.query.filter_by(party_name=party_name).order_by(ProductionJob.created_at.desc()).all()
    return success_response(data=[j.to_dict() for j in jobs])


@production_bp.route('/dashboard', methods=['GET'])
@handle_errors
@token_required
def dashboard():
    by_status = dict(db.session.query(ProductionJob.status, func.count(ProductionJob.id))
                     .group_by(ProductionJob.status).all())
    overdue = sum(1 for job in ProductionJob.query.filter(
        ProductionJob.status.notin_(('completed', 'cancelled')),
        ProductionJob.due_date.isnot(None)
    ) if job.is_overdue)

    return success_response(data={
        'totalJobs': sum(by_status.values()),
        'byStatus': {status: by_status.get(status, 0) for status in JOB_STATUSES},
        'overdueJobs': overdue,
        'activeMachines': Machine.query.filter_by(status='active').count()
    })


# =============================================================================
# MACHINE MASTER
# =============================================================================

def _apply_machine(machine, data):
    if has_any(data, 'machineId', 'machine_id'):
        code = str(pick(data, 'machineId', 'machine_id')).strip()
        query = Machine.query.filter(Machine.machine_id == code)
        if machine.id is not None:
            query = query.filter(Machine.id != machine.id)
        if query.first():
            raise APIError(f'Machine {code} already exists', 409, code=ErrorCodes.DUPLICATE[0])
        machine.machine_id = code
    if has_any(data, 'machineName', 'machine_name'):
        machine.machine_name = pick(data, 'machineName', 'machine_name')
    if has_any(data, 'machineType', 'machine_type'):
        machine.machine_type = pick(data, 'machineType', 'machine_type')
    if 'capacity' in data:
        machine.capacity = parse_number(data['capacity'], 'capacity', minimum=0)
    if 'status' in data:
        if data['status'] not in MACHINE_STATUSES:
            raise APIError(f"status must be one of {', '.join(MACHINE_STATUSES)}", 400)
        machine.status = data['status']


@production_bp.route('/machines', methods=['GET'])
@handle_errors
@token_required
def list_machines():
    query = Machine.query
    if request.args.get('status'):
        query = query.filter_by(status=request.args['status'])
    return success_response(data=[m.to_dict() for m in query.order_by(Machine.machine_id).all()])


@production_bp.route('/machines', methods=['POST'])
@handle_errors
@token_required
def create_machine():
    data = get_json_body()
    validate_required(data, ['machineId', 'machineName'])

    machine = Machine()
    _apply_machine(machine, data)
    db.session.add(machine)
    db.session.commit()
    return success_response(data=machine.to_dict(), status_code=201)


@production_bp.route('/machines/<int:machine_id>', methods=['PUT'])
@handle_errors
@token_required
def update_machine(machine_id):
    machine = _get_machine(machine_id)
    _apply_machine(machine, get_json_body())
    db.session.commit()
    return success_response(data=machine.to_dict())


@production_bp.route('/machines/<int:machine_id>', methods=['DELETE'])
@handle_errors
@token_required
def delete_machine(machine_id):
    machine = _get_machine(machine_id)
    if any(job.status == 'in_progress' for job in machine.jobs):
        raise APIError('Machine has jobs in progress', 409, code=ErrorCodes.CONFLICT[0])

    for job in machine.jobs:
        job.machine_id = None
    db.session.delete(machine)
    db.session.commit()
    return success_response(message='Machine deleted')
