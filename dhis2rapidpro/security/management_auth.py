"""Operator authentication for management paths.

An operator authenticates either with HTTP basic credentials on each request
or once through the login form, which issues a signed session cookie.
"""

import base64
import binascii
import secrets
from dataclasses import dataclass
from urllib.parse import quote

import structlog
from fastapi import Request, Response
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from dhis2rapidpro.errors import InvalidCredentialError, UnauthenticatedError

logger = structlog.get_logger(__name__)

SESSION_COOKIE_NAME = "DHIS2RAPIDPRO_SESSION"
SESSION_SALT = "dhis2rapidpro.management.session"

BASIC_REALM = "Realm"
DEFAULT_SUCCESS_PATH = "/management/dashboard"


@dataclass(frozen=True)
class OperatorCredentials:
    """The single operator account guarding management paths."""

    username: str
    password: str

    def check(self, username: str, password: str) -> bool:
        """Compare a username/password pair in constant time."""
        username_ok = secrets.compare_digest(username.encode("utf-8"), self.username.encode("utf-8"))
        password_ok = secrets.compare_digest(password.encode("utf-8"), self.password.encode("utf-8"))
        return username_ok and password_ok


def parse_basic_authorization(authorization: str | None) -> tuple[str, str] | None:
    """Decode an HTTP basic Authorization header.

    Args:
        authorization: Raw header value.

    Returns:
        Tuple of (username, password), or None if the header is absent or
        not a well-formed basic credential.
    """
    if not authorization:
        return None

    parts = authorization.strip().split(None, 1)
    if len(parts) != 2 or parts[0].lower() != "basic":
        return None

    try:
        decoded = base64.b64decode(parts[1], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, sep, password = decoded.partition(":")
    if not sep:
        return None
    return username, password


def safe_redirect_target(target: str | None) -> str:
    """Restrict a post-login redirect to a local path."""
    if not target or not target.startswith("/") or target.startswith("//") or "\\" in target:
        return DEFAULT_SUCCESS_PATH
    return target


def prefers_html(request: Request) -> bool:
    """Check whether the client is a browser expecting HTML."""
    return "text/html" in request.headers.get("accept", "")


def login_redirect_url(request: Request) -> str:
    """Build the login URL that returns the operator to the current path."""
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    return f"/login?next={quote(target, safe='')}"


class ManagementAuthenticator:
    """Authenticates operators by basic credentials or session cookie."""

    def __init__(
        self,
        credentials: OperatorCredentials,
        *,
        secret_key: str | None = None,
        max_age_seconds: int = 1800,
        secure_cookie: bool = False,
    ) -> None:
        """Initialize the authenticator.

        Args:
            credentials: Operator account.
            secret_key: Key signing session cookies. A random key is used if
                not provided, so sessions end when the process restarts.
            max_age_seconds: Session lifetime.
            secure_cookie: Mark the session cookie Secure (HTTPS only).
        """
        self.credentials = credentials
        self.max_age_seconds = max_age_seconds
        self.secure_cookie = secure_cookie
        self._serializer = URLSafeTimedSerializer(
            secret_key or secrets.token_urlsafe(32), salt=SESSION_SALT
        )
        self._logger = logger.bind(component="management_authenticator")

    def authenticate(self, request: Request) -> str | None:
        """Resolve the operator behind a request.

        Basic credentials take precedence over the session cookie.

        Args:
            request: Incoming request.

        Returns:
            The operator username, or None if the request carries no
            credentials at all.

        Raises:
            InvalidCredentialError: If basic credentials are present but wrong.
        """
        basic = parse_basic_authorization(request.headers.get("Authorization"))
        if basic is not None:
            username, password = basic
            if self.credentials.check(username, password):
                return username
            self._logger.warning("management_basic_auth_failed", path=request.url.path)
            raise InvalidCredentialError(path=request.url.path, details={"scheme": "basic"})

        return self.read_session(request)

    def require(self, request: Request) -> str:
        """Like authenticate, but a missing principal is an error.

        Raises:
            UnauthenticatedError: If the request carries no credentials.
            InvalidCredentialError: If basic credentials are present but wrong.
        """
        principal = self.authenticate(request)
        if principal is None:
            raise UnauthenticatedError(path=request.url.path)
        return principal

    def read_session(self, request: Request) -> str | None:
        """Read the operator from the session cookie, if valid."""
        cookie = request.cookies.get(SESSION_COOKIE_NAME)
        if not cookie:
            return None

        try:
            data = self._serializer.loads(cookie, max_age=self.max_age_seconds)
        except SignatureExpired:
            self._logger.info("management_session_expired")
            return None
        except BadSignature:
            self._logger.warning("management_session_invalid")
            return None

        username = data.get("sub") if isinstance(data, dict) else None
        if username != self.credentials.username:
            return None
        return username

    def login(self, username: str, password: str) -> str | None:
        """Check form credentials and issue a session value.

        Returns:
            Signed session value, or None if the credentials are wrong.
        """
        if not self.credentials.check(username, password):
            self._logger.warning("management_login_failed")
            return None
        self._logger.info("management_login_succeeded", username=username)
        return self._serializer.dumps({"sub": username})

    def start_session(self, response: Response, session_value: str) -> None:
        """Set the session cookie on a response."""
        response.set_cookie(
            SESSION_COOKIE_NAME,
            session_value,
            max_age=self.max_age_seconds,
            path="/",
            httponly=True,
            secure=self.secure_cookie,
            samesite="lax",
        )

    def end_session(self, response: Response) -> None:
        """Clear the session cookie on a response."""
        response.delete_cookie(SESSION_COOKIE_NAME, path="/")
