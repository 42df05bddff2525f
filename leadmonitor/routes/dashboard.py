"""
Dashboard routes — health checks, upstream circuit breakers, database stats.
"""
import logging
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

logger = logging.getLogger('routes.dashboard')

bp = Blueprint('dashboard', __name__)


@bp.route('/health')
def health_check():
    """Liveness probe."""
    return jsonify({"status": "healthy"}), 200


@bp.route('/api/health')
def api_health():
    """Monitor status plus circuit breaker state for every upstream."""
    breakers = current_app.extensions['breakers']
    scheduler = current_app.extensions['scheduler']
    return jsonify({
        'status': 'ok',
        'monitoring': scheduler.status(),
        'services': {name: cb.get_health() for name, cb in breakers.items()},
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })


@bp.route('/api/health/<service>/reset', methods=['POST'])
def reset_circuit(service):
    """Manually close a tripped circuit breaker."""
    breaker = current_app.extensions['breakers'].get(service)
    if breaker is None:
        return jsonify({'error': f'Unknown service: {service}'}), 404
    breaker.reset()
    return jsonify({'ok': True, 'service': service, 'state': breaker.state})


@bp.route('/api/stats')
def get_stats():
    """Post counts, average AI score and lead status breakdown."""
    store = current_app.extensions['lead_store']
    stats = store.stats()
    stats['status_breakdown'] = store.status_breakdown()
    return jsonify({'success': True, 'stats': stats})
