"""
Flask application factory.

Builds the monitoring pipeline (Reddit client, scorer, lead store, event
broker, scheduler), hangs it off app.extensions and registers the blueprints.
"""
import atexit
import logging

from flask import Flask, jsonify

from leadmonitor.errors import InvalidArgument, NotFound, StorageFailure, UpstreamUnavailable

logger = logging.getLogger('leadmonitor')


def _register_error_handlers(app):
    """Domain errors become JSON responses with status codes, never tracebacks."""

    @app.errorhandler(InvalidArgument)
    def _invalid(e):
        return jsonify({'error': str(e)}), 400

    @app.errorhandler(NotFound)
    def _not_found(e):
        return jsonify({'error': str(e)}), 404

    @app.errorhandler(UpstreamUnavailable)
    def _upstream(e):
        return jsonify({'error': str(e)}), 502

    @app.errorhandler(StorageFailure)
    def _storage(e):
        logger.error("Storage failure: %s", e)
        return jsonify({'error': 'Storage failure', 'message': str(e)}), 500


def build_pipeline(monitoring_config=None, redis_client=None, openai_client=None,
                   session_factory=None):
    """Wire the pipeline components. Every collaborator can be swapped in tests."""
    from leadmonitor import extensions
    from leadmonitor.config import MONITORING_CONFIG
    from leadmonitor.pipeline.monitor_config import load_monitoring_config
    from leadmonitor.pipeline.scheduler import MonitoringScheduler
    from leadmonitor.services.circuit_breaker import build_breakers
    from leadmonitor.services.fanout import LeadEventBroker
    from leadmonitor.services.lead_store import LeadStore
    from leadmonitor.services.reddit import RedditClient
    from leadmonitor.services.scorer import ScoringClient

    if monitoring_config is None:
        monitoring_config = load_monitoring_config(MONITORING_CONFIG)
    if redis_client is None:
        redis_client = extensions.redis_client
    if openai_client is None:
        openai_client = extensions.openai_client

    breakers = build_breakers(redis_client)
    store = LeadStore(session_factory=session_factory)
    reddit = RedditClient(breaker=breakers['reddit'])
    scorer = ScoringClient(client=openai_client, breaker=breakers['openai'])
    broker = LeadEventBroker()
    scheduler = MonitoringScheduler(
        source=reddit,
        scorer=scorer,
        store=store,
        publish=broker.publish,
        config=monitoring_config,
    )
    return {
        'breakers': breakers,
        'lead_store': store,
        'reddit': reddit,
        'scorer': scorer,
        'broker': broker,
        'scheduler': scheduler,
    }


def create_app(start_monitor=None, pipeline=None):
    """Create and configure the Flask application."""
    from leadmonitor.logging_config import configure_logging
    from leadmonitor.config import MONITOR_AUTOSTART

    app = Flask(__name__)

    configure_logging(app)
    _register_error_handlers(app)

    if pipeline is None:
        from leadmonitor.database import init_db
        init_db()
        pipeline = build_pipeline()
    app.extensions.update(pipeline)

    from leadmonitor.routes.dashboard import bp as dashboard_bp
    from leadmonitor.routes.leads import bp as leads_bp
    from leadmonitor.routes.monitor import bp as monitor_bp

    app.register_blueprint(dashboard_bp)
    app.register_blueprint(leads_bp)
    app.register_blueprint(monitor_bp)

    if start_monitor is None:
        start_monitor = MONITOR_AUTOSTART
    if start_monitor:
        scheduler = pipeline['scheduler']
        store = pipeline['lead_store']
        scheduler.start(run_immediately=True)

        def _shutdown():
            scheduler.stop()
            store.close()

        atexit.register(_shutdown)

    return app
