"""Form login and logout pages for operators."""

from html import escape

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from dhis2rapidpro.security.csrf import CSRF_FORM_FIELD, read_form
from dhis2rapidpro.security.management_auth import (
    DEFAULT_SUCCESS_PATH,
    ManagementAuthenticator,
    safe_redirect_target,
)
from dhis2rapidpro.security.policy import LOGIN_PATH, LOGOUT_PATH

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Login"], include_in_schema=False)

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
<h2>{title}</h2>
{message}
<form method="post" action="{action}">
{fields}
<input type="hidden" name="{csrf_field}" value="{csrf_token}">
<button type="submit">{button}</button>
</form>
</body>
</html>
"""

LOGIN_FIELDS = """<p><label for="username">Username</label>
<input type="text" id="username" name="username" autofocus></p>
<p><label for="password">Password</label>
<input type="password" id="password" name="password"></p>
<input type="hidden" name="next" value="{next}">"""


def _render(request: Request, *, title: str, action: str, fields: str, button: str, message: str) -> HTMLResponse:
    return HTMLResponse(
        PAGE_TEMPLATE.format(
            title=title,
            message=message,
            action=action,
            fields=fields,
            csrf_field=CSRF_FORM_FIELD,
            csrf_token=escape(request.state.csrf_token or ""),
            button=button,
        )
    )


def _authenticator(request: Request) -> ManagementAuthenticator | None:
    return request.app.state.management_authenticator


@router.get(LOGIN_PATH, response_class=HTMLResponse, response_model=None)
async def login_page(request: Request) -> HTMLResponse | RedirectResponse:
    """Render the login form."""
    if _authenticator(request) is None:
        return RedirectResponse(DEFAULT_SUCCESS_PATH, status_code=302)

    message = ""
    if "error" in request.query_params:
        message = "<p>Bad credentials</p>"
    elif "logout" in request.query_params:
        message = "<p>You have been signed out</p>"

    next_path = escape(request.query_params.get("next", ""))
    return _render(
        request,
        title="Please sign in",
        action=LOGIN_PATH,
        fields=LOGIN_FIELDS.format(next=next_path),
        button="Sign in",
        message=message,
    )


@router.post(LOGIN_PATH)
async def login(request: Request) -> RedirectResponse:
    """Check the submitted credentials and start a session."""
    authenticator = _authenticator(request)
    if authenticator is None:
        return RedirectResponse(DEFAULT_SUCCESS_PATH, status_code=302)

    form = await read_form(request)
    session_value = authenticator.login(form.get("username", ""), form.get("password", ""))
    if session_value is None:
        return RedirectResponse(f"{LOGIN_PATH}?error", status_code=302)

    response = RedirectResponse(safe_redirect_target(form.get("next")), status_code=302)
    authenticator.start_session(response, session_value)
    return response


@router.get(LOGOUT_PATH, response_class=HTMLResponse)
async def logout_page(request: Request) -> HTMLResponse:
    """Render the logout confirmation form."""
    return _render(
        request,
        title="Are you sure you want to log out?",
        action=LOGOUT_PATH,
        fields="",
        button="Log Out",
        message="",
    )


@router.post(LOGOUT_PATH)
async def logout(request: Request) -> RedirectResponse:
    """End the operator session."""
    response = RedirectResponse(f"{LOGIN_PATH}?logout", status_code=302)
    authenticator = _authenticator(request)
    if authenticator is not None:
        authenticator.end_session(response)
        logger.info("management_logout", principal=request.state.principal)
    return response
