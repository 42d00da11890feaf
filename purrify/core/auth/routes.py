"""Auth routes: JSON session login/logout and current-user lookup."""
import logging

from flask import jsonify
from flask_login import login_required, login_user, logout_user, current_user

from . import auth_bp
from .models import User
from .repositories import UserRepository
from core.utils.api_helpers import get_json_or_error, error_response, safe_error_response, rate_limited

logger = logging.getLogger('purrify.auth')

_user_repo = UserRepository()


@auth_bp.route('/api/auth/login', methods=['POST'])
@rate_limited('auth')
def api_login():
    data, error = get_json_or_error()
    if error:
        return error

    email = (data.get('email') or '').strip()
    password = data.get('password') or ''
    if not email or not password:
        return error_response('Please enter both email and password.')

    try:
        user_data = _user_repo.authenticate(email, password)
    except Exception as e:
        return safe_error_response(e)

    if not user_data:
        logger.warning(f'Failed login attempt for {email}')
        return error_response('Invalid email or password.', 401)

    user = User(user_data)
    login_user(user, remember=bool(data.get('remember')))
    _user_repo.update_last_login(user.id)
    logger.info(f'User {email} logged in')
    return jsonify({'success': True, 'user': user.to_dict()})


@auth_bp.route('/api/auth/logout', methods=['POST'])
@login_required
def api_logout():
    logger.info(f'User {current_user.email} logged out')
    logout_user()
    return jsonify({'success': True})


@auth_bp.route('/api/auth/current-user')
def api_current_user():
    """Get current user info for UI."""
    if current_user.is_authenticated:
        return jsonify({'authenticated': True, 'user': current_user.to_dict()})
    return jsonify({'authenticated': False})
