"""Request authentication for the bridge.

This module provides:
- TokenStore: persistence of the single webhook token digest
- TokenProvisioner: lazy generation and one-time disclosure of the token
- WebhookTokenVerifier: constant-time verification of presented tokens
- AccessPolicy: ordered path rules selecting the authentication scheme
- ManagementAuthenticator: basic and session authentication for operators
- CsrfProtection: cookie-based CSRF tokens
- SecurityFilterMiddleware: applies all of the above to each request
"""

from dhis2rapidpro.security.csrf import CsrfProtection
from dhis2rapidpro.security.management_auth import (
    ManagementAuthenticator,
    OperatorCredentials,
)
from dhis2rapidpro.security.middleware import SecurityFilterMiddleware
from dhis2rapidpro.security.policy import (
    AccessPolicy,
    AuthScheme,
    RouteDecision,
    RouteRule,
    build_access_policy,
)
from dhis2rapidpro.security.token_store import TokenStore
from dhis2rapidpro.security.tokens import TokenProvisioner, generate_token, hash_token
from dhis2rapidpro.security.webhook_auth import WebhookTokenVerifier, extract_credential

__all__ = [
    # Token lifecycle
    "TokenStore",
    "TokenProvisioner",
    "generate_token",
    "hash_token",
    # Verification
    "WebhookTokenVerifier",
    "extract_credential",
    # Policy
    "AccessPolicy",
    "AuthScheme",
    "RouteDecision",
    "RouteRule",
    "build_access_policy",
    # Management
    "ManagementAuthenticator",
    "OperatorCredentials",
    "CsrfProtection",
    "SecurityFilterMiddleware",
]
