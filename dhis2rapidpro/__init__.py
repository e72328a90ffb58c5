"""DHIS2-to-RapidPro synchronization bridge.

This package contains:
- Webhook token authentication (store, provisioner, verifier)
- Route access policy for management and webhook paths
- The FastAPI application exposing the webhook and management endpoints
- Startup connection tests for DHIS2 and RapidPro
"""

__version__ = "1.0.0"
