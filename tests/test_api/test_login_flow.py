"""Tests for the form login and logout flow."""

import pytest
from fastapi.testclient import TestClient

from dhis2rapidpro.api import create_app
from dhis2rapidpro.security.csrf import CSRF_COOKIE_NAME, CSRF_FORM_FIELD
from dhis2rapidpro.security.management_auth import SESSION_COOKIE_NAME

OPERATOR_USERNAME = "admin"
OPERATOR_PASSWORD = "district-s3cret"


@pytest.fixture
def client(make_settings, token_store):
    """Client for an app with management authentication."""
    return TestClient(create_app(make_settings(), token_store=token_store))


def csrf_token(client: TestClient) -> str:
    """Fetch the login page and return the CSRF token it issued."""
    response = client.get("/login")
    assert response.status_code == 200
    return client.cookies[CSRF_COOKIE_NAME]


def login(client: TestClient, password: str = OPERATOR_PASSWORD, next_path: str = ""):
    return client.post(
        "/login",
        data={
            "username": OPERATOR_USERNAME,
            "password": password,
            "next": next_path,
            CSRF_FORM_FIELD: csrf_token(client),
        },
        follow_redirects=False,
    )


class TestLoginPage:
    """Tests for GET /login."""

    def test_form_carries_csrf_token(self, client):
        """Test that the form embeds the token from the cookie."""
        response = client.get("/login")

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        token = client.cookies[CSRF_COOKIE_NAME]
        assert f'name="{CSRF_FORM_FIELD}" value="{token}"' in response.text

    def test_error_message(self, client):
        """Test the bad credentials message."""
        assert "Bad credentials" in client.get("/login?error").text

    def test_logout_message(self, client):
        """Test the signed out message."""
        assert "You have been signed out" in client.get("/login?logout").text

    def test_next_is_escaped(self, client):
        """Test that the next parameter cannot inject markup."""
        response = client.get('/login?next="><script>')

        assert "<script>" not in response.text


class TestLogin:
    """Tests for POST /login."""

    def test_session_grants_dashboard(self, client):
        """Test that a session cookie from the form opens the dashboard."""
        response = login(client)

        assert response.status_code == 302
        assert response.headers["location"] == "/management/dashboard"
        assert SESSION_COOKIE_NAME in response.cookies

        dashboard = client.get("/management/dashboard")
        assert dashboard.status_code == 200
        assert dashboard.json()["principal"] == OPERATOR_USERNAME

    def test_redirects_to_next(self, client):
        """Test that a local next path is honoured."""
        response = login(client, next_path="/management/health")

        assert response.headers["location"] == "/management/health"

    def test_external_next_ignored(self, client):
        """Test that external redirect targets are refused."""
        response = login(client, next_path="https://evil.example/")

        assert response.headers["location"] == "/management/dashboard"

    def test_bad_credentials(self, client):
        """Test that a wrong password goes back to the form."""
        response = login(client, password="wrong")

        assert response.status_code == 302
        assert response.headers["location"] == "/login?error"
        assert SESSION_COOKIE_NAME not in response.cookies
        assert client.get("/management/dashboard").status_code == 401

    def test_login_requires_csrf_token(self, client):
        """Test that the login form is CSRF protected."""
        client.get("/login")

        response = client.post(
            "/login",
            data={"username": OPERATOR_USERNAME, "password": OPERATOR_PASSWORD},
            follow_redirects=False,
        )

        assert response.status_code == 403
        assert SESSION_COOKIE_NAME not in response.cookies


class TestLogout:
    """Tests for the logout flow."""

    def test_confirmation_page(self, client):
        """Test that GET /logout asks for confirmation."""
        response = client.get("/logout")

        assert response.status_code == 200
        assert "Log Out" in response.text

    def test_logout_ends_session(self, client):
        """Test that POST /logout clears the session."""
        login(client)
        assert client.get("/management/dashboard").status_code == 200

        response = client.post(
            "/logout",
            data={CSRF_FORM_FIELD: client.cookies[CSRF_COOKIE_NAME]},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/login?logout"
        assert client.get("/management/dashboard").status_code == 401


class TestMultipartForms:
    """Tests for login and logout submitted as multipart/form-data."""

    def test_login(self, client):
        """Test that a multipart login starts a session."""
        response = client.post(
            "/login",
            files={
                "username": (None, OPERATOR_USERNAME),
                "password": (None, OPERATOR_PASSWORD),
                "next": (None, ""),
                CSRF_FORM_FIELD: (None, csrf_token(client)),
            },
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/management/dashboard"
        assert SESSION_COOKIE_NAME in response.cookies
        assert client.get("/management/dashboard").status_code == 200

    def test_logout(self, client):
        """Test that a multipart logout carrying the token ends the session."""
        login(client)
        assert client.get("/management/dashboard").status_code == 200

        response = client.post(
            "/logout",
            files={CSRF_FORM_FIELD: (None, client.cookies[CSRF_COOKIE_NAME])},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/login?logout"
        assert client.get("/management/dashboard").status_code == 401

    def test_logout_with_forged_token(self, client):
        """Test that a multipart logout with a wrong token is refused."""
        login(client)

        response = client.post(
            "/logout",
            files={CSRF_FORM_FIELD: (None, "forged")},
            follow_redirects=False,
        )

        assert response.status_code == 403
        assert client.get("/management/dashboard").status_code == 200


class TestLoginWithoutManagementAuth:
    """Tests for the login page when MANAGEMENT_AUTH=none."""

    def test_login_redirects_to_dashboard(self, make_settings, token_store):
        """Test that there is nothing to log in to."""
        settings = make_settings(MANAGEMENT_AUTH="none", MANAGEMENT_PASSWORD=None)
        client = TestClient(create_app(settings, token_store=token_store))

        response = client.get("/login", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/management/dashboard"
