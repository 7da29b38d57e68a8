"""
REST API module for driftfix.

HTTP trigger for the migration runner.
"""

from driftfix.service.api.routes import setup_routes

__all__ = ["setup_routes"]
