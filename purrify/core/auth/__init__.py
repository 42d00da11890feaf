"""Purrify authentication module.

Session login for the JSON API (Flask-Login).
"""
from flask import Blueprint

auth_bp = Blueprint('auth', __name__)

from . import routes  # noqa: E402, F401
