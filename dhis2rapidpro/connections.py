"""Startup connection tests for DHIS2 and RapidPro.

Before the bridge serves traffic it checks that both platforms are reachable
with the configured credentials. A failed check terminates start-up with a
message telling the operator which setting to look at.
"""

from typing import Any, NoReturn

import httpx
import structlog

from dhis2rapidpro.config import Settings
from dhis2rapidpro.errors import ApplicationTerminatedError

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class ConnectionTester:
    """Checks connectivity to DHIS2 and RapidPro.

    Example:
        tester = ConnectionTester(settings)
        await tester.run()
    """

    def __init__(
        self,
        settings: Settings,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the tester.

        Args:
            settings: Application settings with the platform URLs and credentials.
            timeout: Timeout per HTTP request.
            transport: Optional httpx transport (used to stub the platforms).
        """
        self.settings = settings
        self.timeout = timeout
        self.transport = transport
        self._logger = logger.bind(component="connection_tester")

    def terminate(self, shutdown_message: str) -> NoReturn:
        """Abort start-up.

        Raises:
            ApplicationTerminatedError: Always.
        """
        self._logger.error("connection_test_failed", shutdown_message=shutdown_message)
        raise ApplicationTerminatedError(shutdown_message)

    def _client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport, **kwargs)

    async def run(self) -> None:
        """Run both connection tests."""
        await self.test_dhis2_connection()
        await self.test_rapidpro_connection()

    async def test_dhis2_connection(self) -> str:
        """Check that DHIS2 answers the system info request.

        Returns:
            The DHIS2 version.
        """
        api_url = self.settings.DHIS2_API_URL
        if not api_url:
            self.terminate("Missing DHIS2 API URL. Are you sure that you set `DHIS2_API_URL`?")

        headers: dict[str, str] = {"Accept": "application/json"}
        auth: httpx.BasicAuth | None = None
        if self.settings.DHIS2_API_PAT:
            headers["Authorization"] = f"ApiToken {self.settings.DHIS2_API_PAT}"
        elif self.settings.DHIS2_API_USERNAME and self.settings.DHIS2_API_PASSWORD:
            auth = httpx.BasicAuth(self.settings.DHIS2_API_USERNAME, self.settings.DHIS2_API_PASSWORD)

        url = f"{api_url.rstrip('/')}/system/info"
        try:
            async with self._client(headers=headers, auth=auth) as client:
                response = await client.get(url)
        except httpx.RequestError as e:
            self.terminate(
                "Connection error during DHIS2 connection test. Are you sure that "
                "`DHIS2_API_URL` is set correctly? Hint: check your firewall settings. "
                f"Error message => {e}"
            )

        if response.status_code != 200:
            self.terminate(
                "Unexpected HTTP response code during DHIS2 connection test. Are you sure that "
                "`DHIS2_API_URL` is set correctly and the credentials are valid? Hint: check your "
                f"firewall settings. Error message => Response code: {response.status_code}. "
                f"URL: {response.url}"
            )

        version = _json_field(response, "version")
        if version is None:
            self.terminate(
                "Unexpected JSON response during DHIS2 connection test: expecting system info "
                "version. Are you sure that `DHIS2_API_URL` is set correctly and the right version "
                f"of DHIS is installed? JSON response => {response.text}"
            )

        self._logger.info("dhis2_connection_ok", version=version)
        return version

    async def test_rapidpro_connection(self) -> str:
        """Check that RapidPro answers the workspace request.

        Returns:
            The RapidPro workspace UUID.
        """
        api_token = self.settings.RAPIDPRO_API_TOKEN
        if not api_token:
            self.terminate(
                "Missing RapidPro API token. Are you sure that you set `RAPIDPRO_API_TOKEN`?"
            )

        api_url = self.settings.RAPIDPRO_API_URL
        if not api_url:
            self.terminate("Missing RapidPro API URL. Are you sure that you set `RAPIDPRO_API_URL`?")

        url = f"{api_url.rstrip('/')}/workspace.json"
        try:
            async with self._client(headers={"Authorization": f"Token {api_token}"}) as client:
                response = await client.get(url)
        except httpx.RequestError as e:
            self.terminate(
                "Connection error during RapidPro connection test. Are you sure that "
                "`RAPIDPRO_API_URL` is set correctly? Hint: check your firewall settings. "
                f"Error message => {e}"
            )

        if response.status_code != 200:
            self.terminate(
                "Unexpected HTTP response code during RapidPro connection test. Are you sure that "
                "`RAPIDPRO_API_URL` is set correctly and the credentials are valid? "
                f"Response code: {response.status_code}. Response body: {response.text}"
            )

        workspace_uuid = _json_field(response, "uuid")
        if workspace_uuid is None:
            self.terminate(
                "Unexpected JSON response during RapidPro connection test: expecting workspace "
                "UUID. Are you sure that `RAPIDPRO_API_URL` is set correctly and the right version "
                f"of RapidPro is installed? JSON response => {response.text}"
            )

        self._logger.info("rapidpro_connection_ok", workspace_uuid=workspace_uuid)
        return workspace_uuid


def _json_field(response: httpx.Response, name: str) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict) or body.get(name) is None:
        return None
    return str(body[name])
