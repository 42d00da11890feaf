"""Purrify core platform module.

Shared infrastructure used by every section:
- Base repository over the database connection pool
- Authentication (users, CRM access flag)
- Configuration, logging, API helpers and exports
"""
