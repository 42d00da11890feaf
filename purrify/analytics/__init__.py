"""Purrify analytics — dashboard, sales, customer (RFM), financial and operational reports."""
from flask import Blueprint

analytics_bp = Blueprint('analytics', __name__)

from . import routes  # noqa: E402, F401
