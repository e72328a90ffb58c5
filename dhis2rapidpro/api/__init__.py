"""FastAPI application for the bridge.

This module contains:
- Webhook endpoint for RapidPro
- Management endpoints (dashboard, health, pipeline triggers)
- Operator login/logout pages
"""

from dhis2rapidpro.api.app import create_app, register_routes

__all__ = [
    "create_app",
    "register_routes",
]
