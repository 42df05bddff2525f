"""
Monitor routes — scheduler status, manual trigger, live config, SSE lead stream.
"""
import json
import logging

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from leadmonitor.errors import NotFound

logger = logging.getLogger('routes.monitor')

bp = Blueprint('monitor', __name__)

KEEPALIVE_SECONDS = 15

# JSON body key → MonitoringConfig field
_CONFIG_FIELDS = {
    'keywords': 'keywords',
    'partitions': 'partitions',
    'subreddits': 'partitions',
    'interval': 'interval',
    'limit': 'limit',
    'min_score': 'min_score',
}


def _scheduler():
    return current_app.extensions['scheduler']


@bp.route('/api/monitoring/status')
def monitoring_status():
    return jsonify({'success': True, **_scheduler().status()})


@bp.route('/api/monitoring/search', methods=['POST'])
def trigger_search():
    """Start a search cycle in the background and return immediately."""
    started = _scheduler().trigger('manual')
    return jsonify({
        'success': True,
        'message': 'Manual search started' if started else 'Search already running',
        'started': started,
    }), 202


@bp.route('/api/monitoring/config', methods=['PATCH'])
def update_config():
    """Merge a partial config over the live one. Not written back to disk."""
    data = request.get_json(silent=True) or {}
    changes = {}
    for key, field in _CONFIG_FIELDS.items():
        if key in data and data[key] is not None:
            changes[field] = data[key]

    config = _scheduler().update_config(**changes)
    return jsonify({'success': True, 'message': 'Configuration updated', 'config': config.to_dict()})


@bp.route('/api/partitions/<name>')
def partition_info(name):
    """Subreddit metadata (title, subscribers, active users)."""
    info = current_app.extensions['reddit'].partition_info(name)
    if info is None:
        raise NotFound(f'Subreddit r/{name} not found or unavailable')
    return jsonify({'success': True, 'partition': info})


@bp.route('/stream/leads')
def stream_leads():
    """SSE stream: one `data:` frame per NEW_LEAD event, keepalive comments in between."""
    broker = current_app.extensions['broker']
    sub = broker.subscribe()

    def generate():
        try:
            yield ": connected\n\n"
            while not sub.closed:
                event = sub.get(timeout=KEEPALIVE_SECONDS)
                if event is None:
                    yield ": keepalive\n\n"
                    continue
                yield f"data: {json.dumps(event.to_dict())}\n\n"
        finally:
            broker.unsubscribe(sub)

    return Response(
        stream_with_context(generate()),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
    )
