import sys
import os
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from datetime import timedelta
from flask import Flask, request, jsonify

# Structured logging
from core.utils.logging_config import setup_logging, get_logger
logger = setup_logging(level=os.environ.get('LOG_LEVEL', 'INFO'))
app_logger = get_logger('purrify.app')
app_logger.info('Purrify app module loading...')
from flask_compress import Compress
from flask_login import LoginManager
from core.auth.models import User
from core.auth.repositories import UserRepository
from core.config import AppConfig, validate_required_env

config = AppConfig.from_env()

_user_repo = UserRepository()

app = Flask(__name__)

# Secret key: required in production, dev fallback only when FLASK_DEBUG=true or TESTING
_secret_key = os.environ.get('FLASK_SECRET_KEY', os.environ.get('SECRET_KEY'))
if not _secret_key:
    if config.DEBUG or config.TESTING:
        _secret_key = 'dev-secret-key-for-local-only'
        app_logger.warning('Using development secret key — set FLASK_SECRET_KEY for production')
    else:
        raise RuntimeError('FLASK_SECRET_KEY environment variable is required')
app.secret_key = _secret_key

if not (config.DEBUG or config.TESTING):
    validate_required_env()

# Flask-Compress for gzip/brotli compression
compress = Compress()
compress.init_app(app)

# Flask-Login setup
login_manager = LoginManager()
login_manager.init_app(app)

# Remember Me cookie configuration (30 days)
app.config['REMEMBER_COOKIE_DURATION'] = timedelta(days=30)
app.config['REMEMBER_COOKIE_SECURE'] = not config.DEBUG
app.config['REMEMBER_COOKIE_HTTPONLY'] = True
app.config['REMEMBER_COOKIE_SAMESITE'] = 'Lax'

# Session cookie hardening
app.config['SESSION_COOKIE_SECURE'] = not config.DEBUG
app.config['SESSION_COOKIE_HTTPONLY'] = True
app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'

# ============== Blueprint Registrations ==============

from core.auth import auth_bp
app.register_blueprint(auth_bp)

from crm import crm_bp
app.register_blueprint(crm_bp)

from analytics import analytics_bp
app.register_blueprint(analytics_bp)

from health import health_bp
app.register_blueprint(health_bp)

app_logger.info(f'Purrify startup complete — {len(app.url_map._rules)} routes registered')

# ============== Global Error Handlers ==============

@app.errorhandler(404)
def handle_404(e):
    if request.path.startswith('/api/'):
        return jsonify({'success': False, 'error': 'Not found'}), 404
    return e

@app.errorhandler(405)
def handle_405(e):
    return jsonify({'success': False, 'error': 'Method not allowed'}), 405

@app.errorhandler(500)
def handle_500(e):
    app_logger.exception('Unhandled 500 error')
    if request.path.startswith('/api/'):
        return jsonify({'success': False, 'error': 'An internal error occurred'}), 500
    return e

# ============== Database & Background Scheduler ==============

if not config.TESTING:
    from database import init_db
    init_db()

    try:
        from tasks.scheduler import start_scheduler
        start_scheduler()
    except Exception as e:
        app_logger.warning(f'Failed to start background scheduler: {e}')


# ============== Flask-Login ==============

_user_cache = {}
_USER_CACHE_TTL = 60  # seconds

@login_manager.user_loader
def load_user(user_id):
    """Load user by ID for Flask-Login (cached per-worker, 60s TTL)."""
    import time
    uid = int(user_id)
    now = time.time()
    cached = _user_cache.get(uid)
    if cached and (now - cached[1]) < _USER_CACHE_TTL:
        return cached[0]

    user_data = _user_repo.get_by_id(uid)
    if user_data:
        user = User(user_data)
        _user_cache[uid] = (user, now)
        return user
    _user_cache.pop(uid, None)
    return None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'success': False, 'error': 'Authentication required'}), 401


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    app.run(debug=config.DEBUG, host='0.0.0.0', port=port)
