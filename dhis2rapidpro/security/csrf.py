"""Cookie-based CSRF protection.

The token lives in a cookie readable by JavaScript (``XSRF-TOKEN``). State
changing requests must echo it in the ``X-XSRF-TOKEN`` header or, for HTML
forms, in the ``_csrf`` field.
"""

import secrets

from fastapi import Request, Response

CSRF_COOKIE_NAME = "XSRF-TOKEN"
CSRF_HEADER_NAME = "X-XSRF-TOKEN"
CSRF_FORM_FIELD = "_csrf"

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})


def generate_csrf_token() -> str:
    """Generate a CSRF token."""
    return secrets.token_urlsafe(32)


async def read_form(request: Request) -> dict[str, str]:
    """Read the text fields of a urlencoded or multipart form.

    The raw body is cached before parsing so that the endpoint behind the
    middleware still receives it.

    Args:
        request: Incoming request.

    Returns:
        Text fields by name; empty if the body is not a form.
    """
    await request.body()
    form = await request.form()
    return {name: value for name, value in form.items() if isinstance(value, str)}


class CsrfProtection:
    """Issues and checks CSRF tokens for the paths that require them."""

    def __init__(self, *, secure_cookie: bool = False) -> None:
        """Initialize CSRF protection.

        Args:
            secure_cookie: Mark the token cookie Secure (HTTPS only).
        """
        self.secure_cookie = secure_cookie

    def load_or_issue(self, request: Request) -> tuple[str, bool]:
        """Return the request's CSRF token, issuing one if it has none.

        Args:
            request: Incoming request.

        Returns:
            Tuple of (token, newly_issued).
        """
        existing = request.cookies.get(CSRF_COOKIE_NAME)
        if existing:
            return existing, False
        return generate_csrf_token(), True

    async def is_valid(self, request: Request) -> bool:
        """Check the CSRF token echoed by an unsafe request.

        Safe methods always pass.

        Args:
            request: Incoming request.

        Returns:
            True if the request may proceed.
        """
        if request.method.upper() in SAFE_METHODS:
            return True

        expected = request.cookies.get(CSRF_COOKIE_NAME)
        if not expected:
            return False

        actual = request.headers.get(CSRF_HEADER_NAME)
        if not actual:
            actual = (await read_form(request)).get(CSRF_FORM_FIELD)
        if not actual:
            return False

        return secrets.compare_digest(actual.encode("utf-8"), expected.encode("utf-8"))

    def attach(self, response: Response, token: str) -> None:
        """Set the CSRF cookie on a response."""
        response.set_cookie(
            CSRF_COOKIE_NAME,
            token,
            path="/",
            httponly=False,
            secure=self.secure_cookie,
            samesite="lax",
        )
