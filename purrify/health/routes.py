"""Health routes: /health probe, /api/health summary, /api/health/detailed report."""
from flask import jsonify

from . import health_bp
from .checks import run_health_checks, failure_report, logger
from database import ping_db

NO_CACHE = 'no-cache, no-store, must-revalidate'


def _no_cache(body, status_code):
    response = jsonify(body)
    response.status_code = status_code
    response.headers['Cache-Control'] = NO_CACHE
    return response


@health_bp.route('/health')
def health_check():
    """Orchestrator probe.

    Kept lightweight, runs every few seconds per worker. Only checks DB connectivity.
    """
    checks = {}

    try:
        checks['database'] = ping_db()
    except Exception as e:
        checks['database'] = False
        logger.error(f'Health check - database failed: {e}')

    status = 'healthy' if checks.get('database') else 'unhealthy'
    return _no_cache({
        'status': status,
        'checks': checks,
        'service': 'purrify',
    }, 200 if status == 'healthy' else 503)


def _report(detailed):
    try:
        body, status_code = run_health_checks(detailed=detailed)
    except Exception as e:
        logger.exception(f'Health check error: {e}')
        body, status_code = failure_report(e)
    return _no_cache(body, status_code)


@health_bp.route('/api/health')
def api_health():
    return _report(detailed=False)


@health_bp.route('/api/health/detailed')
def api_health_detailed():
    return _report(detailed=True)
