"""Purrify CRM — customers, deal pipeline, invoices, shipments and email templates.

All routes require login plus the can_access_crm flag.
"""
from flask import Blueprint

crm_bp = Blueprint('crm', __name__)

from . import routes  # noqa: E402, F401
