"""Analytics API routes — read-only dashboards over CRM data."""

import logging
from flask import jsonify, request
from flask_login import login_required

from . import analytics_bp
from .services import AnalyticsService
from core.utils.api_helpers import get_int_arg, error_response, safe_error_response

logger = logging.getLogger('purrify.analytics.routes')

_service = AnalyticsService()

_PERIOD_TYPES = ('day', 'week', 'month')


@analytics_bp.route('/api/analytics/dashboard', methods=['GET'])
@login_required
def api_dashboard():
    """Headline metrics. Query: period_days (default 30)."""
    try:
        period_days = get_int_arg('period_days', 30, minimum=1, maximum=365)
        return jsonify(_service.dashboard_metrics(period_days))
    except Exception as e:
        return safe_error_response(e)


@analytics_bp.route('/api/analytics/sales', methods=['GET'])
@login_required
def api_sales():
    try:
        return jsonify(_service.sales_analytics())
    except Exception as e:
        return safe_error_response(e)


@analytics_bp.route('/api/analytics/customers', methods=['GET'])
@login_required
def api_customers():
    try:
        return jsonify(_service.customer_analytics())
    except Exception as e:
        return safe_error_response(e)


@analytics_bp.route('/api/analytics/financial', methods=['GET'])
@login_required
def api_financial():
    try:
        return jsonify(_service.financial_analytics())
    except Exception as e:
        return safe_error_response(e)


@analytics_bp.route('/api/analytics/operational', methods=['GET'])
@login_required
def api_operational():
    try:
        return jsonify(_service.operational_analytics())
    except Exception as e:
        return safe_error_response(e)


@analytics_bp.route('/api/analytics/revenue', methods=['GET'])
@login_required
def api_revenue():
    """Revenue series. Query: period=day|week|month, forecast=N periods ahead (0-12)."""
    period = request.args.get('period', 'month')
    if period not in _PERIOD_TYPES:
        return error_response(f'period must be one of: {", ".join(_PERIOD_TYPES)}')
    try:
        forecast = get_int_arg('forecast', 0, minimum=0, maximum=12)
        return jsonify(_service.revenue_series(period, forecast))
    except Exception as e:
        return safe_error_response(e)
