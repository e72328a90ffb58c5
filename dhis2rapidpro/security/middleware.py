"""Security filter middleware.

Classifies every request with the access policy, then runs, in order:
CSRF check, authentication for the matched scheme, and the endpoint.
Rejections are produced here and never reach the endpoints.
"""

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from dhis2rapidpro.errors import AuthenticationError, UnauthenticatedError
from dhis2rapidpro.schemas import ErrorResponse
from dhis2rapidpro.security.csrf import CsrfProtection
from dhis2rapidpro.security.management_auth import (
    BASIC_REALM,
    ManagementAuthenticator,
    login_redirect_url,
    prefers_html,
)
from dhis2rapidpro.security.policy import AccessPolicy, AuthScheme, RouteDecision
from dhis2rapidpro.security.webhook_auth import WebhookTokenVerifier

logger = structlog.get_logger(__name__)


def unauthorized_response(www_authenticate: str) -> JSONResponse:
    """Build the 401 response shared by every authentication failure."""
    return JSONResponse(
        status_code=401,
        content=ErrorResponse(error="Unauthorized").model_dump(),
        headers={"WWW-Authenticate": www_authenticate},
    )


def forbidden_response(message: str) -> JSONResponse:
    """Build a 403 response."""
    return JSONResponse(
        status_code=403,
        content=ErrorResponse(error=message).model_dump(),
    )


class SecurityFilterMiddleware(BaseHTTPMiddleware):
    """Applies the access policy to every request."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        policy: AccessPolicy,
        csrf: CsrfProtection,
        webhook_verifier: WebhookTokenVerifier | None = None,
        management_authenticator: ManagementAuthenticator | None = None,
    ) -> None:
        super().__init__(app)
        self.policy = policy
        self.csrf = csrf
        self.webhook_verifier = webhook_verifier
        self.management_authenticator = management_authenticator

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process security for each request."""
        path = request.url.path
        decision = self.policy.classify(path)
        request.state.access_rule = decision.rule
        request.state.principal = None
        request.state.csrf_token = None

        csrf_token: str | None = None
        csrf_issued = False
        if decision.csrf_required:
            csrf_token, csrf_issued = self.csrf.load_or_issue(request)
            request.state.csrf_token = csrf_token
            if not await self.csrf.is_valid(request):
                logger.warning(
                    "csrf_token_rejected",
                    path=path,
                    method=request.method,
                    rule=decision.rule,
                )
                response: Response = forbidden_response("Invalid CSRF token")
                return self._finish(response, decision, csrf_token, csrf_issued)

        try:
            request.state.principal = await self._authenticate(request, decision)
        except AuthenticationError as e:
            logger.info(
                "request_rejected",
                path=path,
                rule=decision.rule,
                error_type=type(e).__name__,
                reason=e.details.get("reason"),
            )
            response = self._reject(request, decision, e)
        else:
            response = await call_next(request)

        return self._finish(response, decision, csrf_token, csrf_issued)

    async def _authenticate(self, request: Request, decision: RouteDecision) -> str | None:
        if decision.scheme is AuthScheme.TOKEN:
            if self.webhook_verifier is None:
                raise UnauthenticatedError(path=request.url.path, details={"reason": "not_configured"})
            return await self.webhook_verifier.verify(
                request.headers.get("Authorization"), path=request.url.path
            )

        if decision.scheme is AuthScheme.SESSION:
            if self.management_authenticator is None:
                raise UnauthenticatedError(path=request.url.path, details={"reason": "not_configured"})
            if decision.authentication_entry:
                return self.management_authenticator.read_session(request)
            return self.management_authenticator.require(request)

        return None

    def _reject(
        self, request: Request, decision: RouteDecision, error: AuthenticationError
    ) -> Response:
        if decision.scheme is AuthScheme.TOKEN:
            return unauthorized_response("Token")

        if isinstance(error, UnauthenticatedError) and prefers_html(request):
            return RedirectResponse(login_redirect_url(request), status_code=302)
        return unauthorized_response(f'Basic realm="{BASIC_REALM}"')

    def _finish(
        self,
        response: Response,
        decision: RouteDecision,
        csrf_token: str | None,
        csrf_issued: bool,
    ) -> Response:
        if decision.rule == "management":
            response.headers["X-Frame-Options"] = "SAMEORIGIN"
        if csrf_issued and csrf_token is not None:
            self.csrf.attach(response, csrf_token)
        return response
