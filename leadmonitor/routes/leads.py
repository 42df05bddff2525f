"""
Lead routes — list, inspect and work leads; bulk cleanup.
"""
import logging

from flask import Blueprint, current_app, jsonify, request

from leadmonitor.errors import InvalidArgument, NotFound

logger = logging.getLogger('routes.leads')

bp = Blueprint('leads', __name__)


def _store():
    return current_app.extensions['lead_store']


def _optional_number(data, key, cast):
    value = data.get(key)
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise InvalidArgument(f'{key} must be a number')
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f'{key} must be a number')


def _bulk_filters():
    data = request.get_json(silent=True) or {}
    return dict(
        min_score=_optional_number(data, 'min_score', int),
        max_age_days=_optional_number(data, 'max_age_days', float),
        status=data.get('status') or None,
    )


@bp.route('/api/leads')
def list_leads():
    """Analyzed leads, best score first. Filters: status, min_score, limit."""
    limit = request.args.get('limit', 100, type=int)
    min_score = request.args.get('min_score', 0, type=int)
    status = request.args.get('status') or None

    leads = _store().query(status=status, min_score=min_score, analyzed_only=True, limit=limit)
    return jsonify({'success': True, 'count': len(leads), 'leads': leads})


@bp.route('/api/leads/<lead_id>')
def get_lead(lead_id):
    lead = _store().get(lead_id)
    if lead is None:
        raise NotFound('Lead not found')
    return jsonify({'success': True, 'lead': lead})


@bp.route('/api/leads/<lead_id>', methods=['PATCH'])
def update_lead(lead_id):
    """Set the workflow status (and optionally notes) of a lead."""
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if not status:
        return jsonify({'error': 'Status is required'}), 400

    notes = data.get('notes')
    if notes is not None and not isinstance(notes, str):
        raise InvalidArgument('notes must be a string')

    if not _store().set_status(lead_id, status, notes):
        raise NotFound('Lead not found')
    return jsonify({'success': True, 'message': 'Lead updated successfully'})


@bp.route('/api/leads/bulk-delete/preview', methods=['POST'])
def preview_bulk_delete():
    """How many posts a bulk delete with these filters would remove."""
    filters = _bulk_filters()
    count = _store().preview_bulk_delete(**filters)
    return jsonify({'success': True, 'count': count, 'filters': filters})


@bp.route('/api/leads/bulk-delete', methods=['POST'])
def bulk_delete():
    """Delete posts matching all given filters; at least one filter is required."""
    filters = _bulk_filters()
    deleted = _store().bulk_delete(**filters)
    logger.info("Bulk delete via API removed %d posts", deleted)
    return jsonify({'success': True, 'deleted': deleted, 'filters': filters})
