"""
Health Checks

Status helpers and the individual probes behind /api/health.

Each probe returns a check dict:
    {'status': 'healthy'|'degraded'|'unhealthy', 'response_time': ms,
     'error': str (optional), 'details': dict (optional)}
"""

import os
import sys
import time
import platform
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import psutil

from core.config import AppConfig, REQUIRED_ENV_VARS, integration_status
from core.utils.logging_config import get_logger
from core.utils.numbers import round_half_up
from crm.repositories import StatsRepository
from database import ping_db

logger = get_logger('purrify.health')

HEALTHY = 'healthy'
DEGRADED = 'degraded'
UNHEALTHY = 'unhealthy'

HTTP_STATUS = {HEALTHY: 200, DEGRADED: 207, UNHEALTHY: 503}

HEALTH_CONFIG = {
    HEALTHY: {'label': 'Healthy', 'color': 'green', 'icon': '✓'},
    DEGRADED: {'label': 'Degraded', 'color': 'yellow', 'icon': '⚠'},
    UNHEALTHY: {'label': 'Unhealthy', 'color': 'red', 'icon': '✗'},
}

# Lower sorts first; unknown checks go last
HEALTH_PRIORITIES = {
    'database': 1,
    'external': 2,
    'memory': 3,
    'environment': 4,
    'storage': 5,
    'network': 6,
}

START_TIME = time.time()

_MB = 1024 * 1024


# ============== Status helpers ==============

def calculate_overall_health(checks: Dict[str, Dict]) -> str:
    statuses = [check.get('status') for check in checks.values()]
    if UNHEALTHY in statuses:
        return UNHEALTHY
    if DEGRADED in statuses:
        return DEGRADED
    return HEALTHY


def get_health_from_response_time(response_time: float, degraded_threshold: float = 1000,
                                  unhealthy_threshold: float = 2000) -> str:
    if response_time > unhealthy_threshold:
        return UNHEALTHY
    if response_time > degraded_threshold:
        return DEGRADED
    return HEALTHY


def get_memory_health(used: float, total: float, degraded_threshold: float = 0.7,
                      unhealthy_threshold: float = 0.9) -> str:
    if not total:
        return HEALTHY
    usage = used / total
    if usage > unhealthy_threshold:
        return UNHEALTHY
    if usage > degraded_threshold:
        return DEGRADED
    return HEALTHY


def create_health_check(status: str, response_time: float, error: Optional[str] = None,
                        details: Optional[Dict] = None) -> Dict:
    check = {'status': status, 'response_time': round(response_time, 1)}
    if error:
        check['error'] = error
    if details is not None:
        check['details'] = details
    return check


def validate_environment(required_vars) -> Tuple[bool, List[str]]:
    missing = [name for name in required_vars if not os.environ.get(name)]
    return not missing, missing


def get_health_config(status: str) -> Dict:
    return HEALTH_CONFIG[status]


def sort_health_checks_by_priority(checks: Dict[str, Dict]) -> List[Tuple[str, Dict]]:
    return sorted(checks.items(), key=lambda item: HEALTH_PRIORITIES.get(item[0], 999))


# ============== Formatting ==============

def format_response_time(ms: float) -> str:
    if ms < 1000:
        return f'{round_half_up(ms)}ms'
    return f'{round_half_up(ms / 1000, 1):.1f}s'


def format_memory_usage(num_bytes: float) -> str:
    mb = num_bytes / _MB
    if mb < 1024:
        return f'{round_half_up(mb)}MB'
    return f'{round_half_up(mb / 1024, 1):.1f}GB'


def format_uptime(milliseconds: float) -> str:
    seconds = int(milliseconds // 1000)
    minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400
    if days > 0:
        return f'{days}d {hours % 24}h {minutes % 60}m'
    if hours > 0:
        return f'{hours}h {minutes % 60}m'
    if minutes > 0:
        return f'{minutes}m {seconds % 60}s'
    return f'{seconds}s'


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


# ============== Probes ==============

def check_database(config: AppConfig, with_counts: bool = False) -> Dict:
    """Ping latency graded against the configured thresholds; optional table counts."""
    start = time.perf_counter()
    try:
        if not ping_db():
            return create_health_check(UNHEALTHY, _elapsed_ms(start), error='Database unreachable')
        details = {'queries': StatsRepository().count_rows()} if with_counts else None
    except Exception as e:
        logger.error(f'Health check - database failed: {e}')
        return create_health_check(UNHEALTHY, _elapsed_ms(start), error=str(e))

    elapsed = _elapsed_ms(start)
    status = get_health_from_response_time(elapsed, config.HEALTH_DEGRADED_MS, config.HEALTH_UNHEALTHY_MS)
    return create_health_check(status, elapsed, details=details)


def check_memory(config: AppConfig, detailed: bool = False) -> Dict:
    """Process RSS against MEMORY_LIMIT_MB, or against total system memory when unset."""
    start = time.perf_counter()
    info = psutil.Process().memory_info()
    system = psutil.virtual_memory()
    limit = config.MEMORY_LIMIT_MB * _MB if config.MEMORY_LIMIT_MB else system.total

    details = {
        'usage_mb': round(info.rss / _MB),
        'limit_mb': round(limit / _MB),
        'usage': format_memory_usage(info.rss),
    }
    if detailed:
        details.update({
            'rss_mb': round(info.rss / _MB),
            'vms_mb': round(info.vms / _MB),
            'system_percent': system.percent,
        })
    return create_health_check(get_memory_health(info.rss, limit), _elapsed_ms(start), details=details)


def check_environment(config: AppConfig, required_vars=REQUIRED_ENV_VARS, detailed: bool = False) -> Dict:
    start = time.perf_counter()
    is_valid, missing = validate_environment(required_vars)
    details = {'environment': config.ENVIRONMENT, 'region': config.REGION}
    if detailed:
        cpu = psutil.Process().cpu_times()
        details.update({
            'python_version': platform.python_version(),
            'platform': sys.platform,
            'cpu_usage': {'user': cpu.user, 'system': cpu.system},
        })
    if missing:
        details['missing_env_vars'] = missing
        logger.warning(f'Health check - missing environment variables: {", ".join(missing)}')
    status = HEALTHY if is_valid else UNHEALTHY
    error = f'{len(missing)} required variable(s) missing' if missing else None
    return create_health_check(status, _elapsed_ms(start), error=error, details=details)


def check_external() -> Dict:
    """Integration credentials are reported, never called."""
    start = time.perf_counter()
    return create_health_check(HEALTHY, _elapsed_ms(start), details={'configured': integration_status()})


# ============== Reports ==============

def _base_report(config: AppConfig) -> Dict:
    uptime_ms = (time.time() - START_TIME) * 1000
    return {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'uptime': round(uptime_ms),
        'uptime_human': format_uptime(uptime_ms),
        'version': config.APP_VERSION,
    }


def run_health_checks(detailed: bool = False, config: Optional[AppConfig] = None) -> Tuple[Dict, int]:
    """Run every probe and return (body, http_status)."""
    config = config or AppConfig.from_env()
    checks = {
        'database': check_database(config, with_counts=detailed),
        'memory': check_memory(config, detailed=detailed),
        'environment': check_environment(config, detailed=detailed),
    }
    if detailed:
        checks['external'] = check_external()

    status = calculate_overall_health(checks)
    body = {
        'status': status,
        **_base_report(config),
        'checks': checks,
        'issues': [name for name, check in sort_health_checks_by_priority(checks)
                   if check['status'] != HEALTHY],
    }
    if detailed:
        body['build'] = {
            'commit': config.BUILD_COMMIT,
            'branch': config.BUILD_BRANCH,
            'build_date': config.BUILD_DATE or datetime.fromtimestamp(START_TIME, timezone.utc).isoformat(),
        }
    return body, HTTP_STATUS[status]


def failure_report(error: Exception, config: Optional[AppConfig] = None) -> Tuple[Dict, int]:
    """Body for an unexpected exception inside the health routine. Always 503."""
    config = config or AppConfig()
    return {
        'status': UNHEALTHY,
        **_base_report(config),
        'checks': {'database': create_health_check(UNHEALTHY, 0, error=str(error))},
        'issues': ['database'],
        'error': 'Health check failed',
    }, HTTP_STATUS[UNHEALTHY]
