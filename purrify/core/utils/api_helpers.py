"""Shared API utilities — decorators, error helpers, rate limiter, request validation."""
import math
import time
import logging
from collections import defaultdict, namedtuple
from functools import wraps

from flask import jsonify, request, make_response
from flask_login import current_user

logger = logging.getLogger('purrify.api')


# ============== Decorators ==============

def admin_required(f):
    """Decorator requiring authentication + admin role."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        if not current_user.is_admin:
            return jsonify({'success': False, 'error': 'Permission denied'}), 403
        return f(*args, **kwargs)
    return decorated


def api_login_required(f):
    """Like @login_required but returns JSON 401 instead of redirect."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated


# ============== Request Validation ==============

def get_json_or_error():
    """Get JSON from request body with null check.

    Returns (data, error_response) tuple. Caller pattern:
        data, error = get_json_or_error()
        if error:
            return error
    """
    data = request.get_json(silent=True)
    if data is None:
        return None, (jsonify({
            'success': False,
            'error': 'Invalid or missing JSON body',
        }), 400)
    return data, None


def get_int_arg(name, default, minimum=None, maximum=None):
    """Read an integer query arg, clamped to [minimum, maximum]."""
    value = request.args.get(name, default, type=int)
    if value is None:
        value = default
    if minimum is not None:
        value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


# ============== Error Handling ==============

def error_response(message, status_code=400, toast=False):
    """JSON error body. With toast=True the message is also surfaced as an error toast."""
    body = {'success': False, 'error': message}
    if toast:
        body['toast'] = {'type': 'error', 'message': message}
    return jsonify(body), status_code


def safe_error_response(e, status_code=500):
    """Return error response without leaking DB internals.

    - ValueError/KeyError: returns str(e) as 400 (business validation, safe to expose)
    - Everything else: logs full exception, returns generic message
    """
    if isinstance(e, KeyError):
        return jsonify({'success': False, 'error': str(e.args[0]) if e.args else 'Not found'}), 400
    if isinstance(e, ValueError):
        return jsonify({'success': False, 'error': str(e)}), 400

    logger.exception('Unhandled error in API route')
    return jsonify({'success': False, 'error': 'An internal error occurred'}), status_code


# ============== Rate Limiter ==============

RateLimitResult = namedtuple('RateLimitResult', ['success', 'limit', 'remaining', 'reset'])

# Requests per window, keyed by endpoint category
RATE_LIMITS = {
    'default': {'interval': 60, 'limit': 60},
    'auth': {'interval': 60, 'limit': 5},
    'email': {'interval': 60, 'limit': 10},
    'shipments': {'interval': 60, 'limit': 30},
    'webhooks': {'interval': 60, 'limit': 100},
}


class RateLimiter:
    """Simple in-memory sliding-window rate limiter.

    Per-worker state (3 gunicorn workers = 3 separate states).
    """

    def __init__(self, clock=time.time):
        self._requests = defaultdict(list)
        self._clock = clock

    def _recent(self, key, window_seconds, now):
        window_start = now - window_seconds
        recent = [ts for ts in self._requests[key] if ts > window_start]
        self._requests[key] = recent
        return recent

    def is_allowed(self, key, max_requests=10, window_seconds=60):
        """Check if request is allowed.

        Args:
            key: String identifier (user_id, IP address, etc.)
            max_requests: Max requests per window
            window_seconds: Window duration in seconds

        Returns:
            (is_allowed: bool, retry_after: int) tuple
        """
        now = self._clock()
        recent = self._recent(key, window_seconds, now)

        if len(recent) >= max_requests:
            oldest = min(recent)
            retry_after = int(oldest + window_seconds - now) + 1
            return False, max(1, retry_after)

        recent.append(now)
        return True, 0

    def check(self, key, limit=10, interval=60):
        """Like is_allowed() but reports limit/remaining/reset (epoch seconds) for headers."""
        now = self._clock()
        recent = self._recent(key, interval, now)

        if len(recent) >= limit:
            return RateLimitResult(False, limit, 0, math.ceil(min(recent) + interval))

        recent.append(now)
        return RateLimitResult(True, limit, limit - len(recent), math.ceil(now + interval))

    def reset(self, key=None):
        if key is None:
            self._requests.clear()
        else:
            self._requests.pop(key, None)


_limiter = RateLimiter()


def rate_limit_headers(result):
    return {
        'X-RateLimit-Limit': str(result.limit),
        'X-RateLimit-Remaining': str(result.remaining),
        'X-RateLimit-Reset': str(result.reset),
    }


def _apply_headers(response, headers):
    for name, value in headers.items():
        response.headers[name] = value


def client_identifier():
    """IP + truncated user agent, so clients behind one NAT are told apart."""
    forwarded = request.headers.get('X-Forwarded-For', '')
    ip = forwarded.split(',')[0].strip() or request.remote_addr or 'unknown'
    user_agent = request.headers.get('User-Agent', '')
    return f'{ip}:{user_agent[:50]}'


def rate_limited(category='default', limiter=None):
    """Decorator applying a RATE_LIMITS category to a route.

    Over-limit requests get 429; every response carries X-RateLimit-* headers.
    """
    config = RATE_LIMITS[category]

    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            result = (limiter or _limiter).check(
                f'{category}:{client_identifier()}', config['limit'], config['interval']
            )
            headers = rate_limit_headers(result)
            if not result.success:
                logger.warning(f'Rate limit exceeded for {category}: {client_identifier()}')
                response = jsonify({
                    'success': False,
                    'error': f'Too many requests. Limit: {result.limit} per minute.',
                })
                response.status_code = 429
                _apply_headers(response, headers)
                return response

            response = make_response(f(*args, **kwargs))
            _apply_headers(response, headers)
            return response
        return decorated
    return decorator
