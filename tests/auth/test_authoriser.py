"""Tests for the authorising user agent.

High-impact scenarios covering the token lifecycle:
- Device Flow: user prompt, polling while authorisation is pending, success
- Saved tokens: used directly, or refreshed first when near expiry
- Refresh: scheduled, triggered early, and after a 401
- Failures: parked with guidance until a retry trigger
- Authorization Code Grant Flow against the simulator
"""

import asyncio
import time
from urllib.parse import parse_qs

import httpx
import pytest

from hcapi.auth.authoriser import AuthorisingUserAgent
from hcapi.auth.models import AbsoluteToken, AwaitingUser, Failed, Success, TokenResponse
from hcapi.auth.storage import JsonFileStore, TokenStore
from hcapi.models import HomeAppliancesWrapper
from hcapi.transport.errors import AuthorisationError, StatusCodeError
from hcapi.transport.models import Request
from tests.conftest import (
    CLIENT_ID,
    FakeServer,
    FakeSleep,
    api_error,
    empty_response,
    json_response,
    oauth_error,
    token_body,
    wait_until,
)

DEVICE_AUTHORIZATION = {
    "device_code": "device-code-1",
    "user_code": "WXYZ-1234",
    "verification_uri": "https://verify.home-connect.com/",
    "verification_uri_complete": "https://verify.home-connect.com/?user_code=WXYZ-1234",
    "expires_in": 600,
    "interval": 5,
}
EMPTY_APPLIANCES = {"data": {"homeappliances": []}}


def saved_token(access_token: str, expires_in: float) -> AbsoluteToken:
    response = TokenResponse(
        access_token=access_token,
        refresh_token=f"refresh-{access_token}",
        expires_in=int(expires_in),
        scope="IdentifyAppliance Monitor Control Settings",
    )
    return AbsoluteToken.from_response(response, now=time.time())


class AuthoriserTest:
    @pytest.fixture(autouse=True)
    async def setup_authoriser(self, config, server: FakeServer, tmp_path):
        self.config = config
        self.server = server
        self.token_store = TokenStore(JsonFileStore(tmp_path))
        self.sleep = FakeSleep(block_from=10)
        self.server.add("GET", "/api/homeappliances", json_response(200, EMPTY_APPLIANCES))
        self.ua = self.make_user_agent(config)
        yield
        await self.ua.close()

    def make_user_agent(self, config) -> AuthorisingUserAgent:
        ua = AuthorisingUserAgent(config, self.token_store, self.server.transport(config))
        ua._sleep = self.sleep
        return ua

    def token_requests(self) -> list[dict[str, list[str]]]:
        return [
            parse_qs(request.content.decode())
            for request in self.server.requests_to("POST", "/security/oauth/token")
        ]


class TestDeviceFlow(AuthoriserTest):
    async def test_pending_authorisation_is_polled_until_success(self):
        # Arrange
        self.server.add(
            "POST", "/security/oauth/device_authorization", json_response(200, DEVICE_AUTHORIZATION)
        )
        self.server.add(
            "POST",
            "/security/oauth/token",
            oauth_error(400, "authorization_pending", "Waiting for the user"),
            oauth_error(400, "authorization_pending", "Waiting for the user"),
            json_response(200, token_body("access-1")),
        )
        statuses = []

        async def observe():
            async for status in self.ua.status:
                statuses.append(status)

        observer = asyncio.create_task(observe())

        # Act
        result = await self.ua.get(HomeAppliancesWrapper, "/api/homeappliances")

        # Assert
        observer.cancel()
        assert result.data.homeappliances == []
        awaiting = [status for status in statuses if isinstance(status, AwaitingUser)]
        assert awaiting[0].verification_uri == DEVICE_AUTHORIZATION["verification_uri_complete"]
        assert awaiting[0].user_code == "WXYZ-1234"
        assert awaiting[0].expires_at == pytest.approx(time.time() + 600, abs=5)
        assert self.ua.status.current == Success()

        polls = self.token_requests()
        assert len(polls) == 3
        assert all(poll["grant_type"] == ["device_code"] for poll in polls)
        assert all(poll["device_code"] == ["device-code-1"] for poll in polls)
        assert len([delay for delay in self.sleep.delays if 4 < delay <= 5]) == 2

        data_request = self.server.requests_to("GET", "/api/homeappliances")[0]
        assert data_request.headers["authorization"] == "Bearer access-1"
        assert (await self.token_store.load_token(CLIENT_ID)).access_token == "access-1"

    async def test_slow_down_lengthens_poll_interval(self):
        # Arrange
        self.ua._polling_device_code = True
        request = Request(method="POST", path="/security/oauth/token")
        err = StatusCodeError(
            request, httpx.Response(400), '{"error": "slow_down", "error_description": "Slow down"}'
        )

        # Act
        retry = self.ua.can_retry(err)

        # Assert
        assert retry is True
        assert self.ua.device_flow_poll_interval == 10
        assert 9 < self.ua.retry_delay <= 10

    async def test_other_bad_requests_are_not_retried(self):
        # Arrange
        self.ua._polling_device_code = True
        request = Request(method="POST", path="/security/oauth/token")
        err = StatusCodeError(
            request, httpx.Response(400), '{"error": "expired_token", "error_description": "Late"}'
        )

        # Act & Assert
        assert self.ua.can_retry(err) is False


class TestSavedToken(AuthoriserTest):
    async def test_valid_saved_token_is_used_without_requests(self):
        # Arrange
        await self.token_store.save_token(CLIENT_ID, saved_token("access-saved", 24 * 3600))

        # Act
        await self.ua.get(HomeAppliancesWrapper, "/api/homeappliances")

        # Assert
        assert self.token_requests() == []
        data_request = self.server.requests_to("GET", "/api/homeappliances")[0]
        assert data_request.headers["authorization"] == "Bearer access-saved"
        assert self.ua.scopes == ["IdentifyAppliance", "Monitor", "Control", "Settings"]

    async def test_token_near_expiry_is_refreshed_before_use(self):
        # Arrange
        old = saved_token("access-old", 30 * 60)
        await self.token_store.save_token(CLIENT_ID, old)
        self.server.add("POST", "/security/oauth/token", json_response(200, token_body("access-new")))

        # Act
        await self.ua.get(HomeAppliancesWrapper, "/api/homeappliances")

        # Assert
        refreshes = self.token_requests()
        assert len(refreshes) == 1
        assert refreshes[0]["grant_type"] == ["refresh_token"]
        assert refreshes[0]["refresh_token"] == ["refresh-access-old"]
        assert self.server.requests_to("POST", "/security/oauth/device_authorization") == []

        data_request = self.server.requests_to("GET", "/api/homeappliances")[0]
        assert data_request.headers["authorization"] == "Bearer access-new"
        saved = await self.token_store.load_token(CLIENT_ID)
        assert saved.access_token == "access-new"
        assert saved.access_expires > old.access_expires

    async def test_failed_refresh_of_saved_token_falls_back_to_device_flow(self):
        # Arrange
        await self.token_store.save_token(CLIENT_ID, saved_token("access-old", 60))
        self.server.add(
            "POST", "/security/oauth/device_authorization", json_response(200, DEVICE_AUTHORIZATION)
        )
        self.server.add(
            "POST",
            "/security/oauth/token",
            oauth_error(401, "invalid_grant", "Refresh token revoked"),
            json_response(200, token_body("access-device")),
        )

        # Act
        await self.ua.get(HomeAppliancesWrapper, "/api/homeappliances")

        # Assert
        assert len(self.server.requests_to("POST", "/security/oauth/device_authorization")) == 1
        assert self.ua.token.access_token == "access-device"


class TestRefresh(AuthoriserTest):
    @pytest.fixture(autouse=True)
    async def setup_saved_token(self, setup_authoriser):
        self.old = saved_token("access-old", 24 * 3600)
        await self.token_store.save_token(CLIENT_ID, self.old)

    async def test_triggered_refresh_produces_later_expiry(self):
        # Arrange
        self.server.add("POST", "/security/oauth/token", json_response(200, token_body("access-new", expires_in=2 * 86400)))
        await self.ua.wait_authorised()

        # Act
        self.ua.trigger_refresh()
        await self.ua.wait_authorised()

        # Assert
        assert self.ua.token.access_token == "access-new"
        assert self.ua.token.access_expires > self.old.access_expires
        assert (await self.token_store.load_token(CLIENT_ID)).access_token == "access-new"

    async def test_unauthorised_response_refreshes_and_retries(self):
        # Arrange
        self.server.replace(
            "GET",
            "/api/homeappliances",
            api_error(401, "invalid_token", "The access token expired"),
            json_response(200, EMPTY_APPLIANCES),
        )
        self.server.add("POST", "/security/oauth/token", json_response(200, token_body("access-new")))

        # Act
        await self.ua.get(HomeAppliancesWrapper, "/api/homeappliances")

        # Assert
        first, second = self.server.requests_to("GET", "/api/homeappliances")
        assert first.headers["authorization"] == "Bearer access-old"
        assert second.headers["authorization"] == "Bearer access-new"

    async def test_failed_refresh_is_retried(self):
        # Arrange
        self.server.add(
            "POST",
            "/security/oauth/token",
            oauth_error(400, "invalid_request", "Try again"),
            json_response(200, token_body("access-new")),
        )
        await self.ua.wait_authorised()

        # Act
        self.ua.trigger_refresh()
        await self.ua.wait_authorised()

        # Assert
        assert len(self.token_requests()) == 2
        assert self.ua.refresh_retry_delay in self.sleep.delays
        assert self.ua.token.access_token == "access-new"


class TestFailure(AuthoriserTest):
    async def test_configuration_error_parks_with_guidance(self):
        # Arrange
        self.server.add(
            "POST",
            "/security/oauth/device_authorization",
            oauth_error(400, "unauthorized_client", "Invalid client id"),
            json_response(200, DEVICE_AUTHORIZATION),
        )
        self.server.add("POST", "/security/oauth/token", json_response(200, token_body("access-1")))

        # Act
        with pytest.raises(AuthorisationError, match="Not authorised"):
            await self.ua.get(HomeAppliancesWrapper, "/api/homeappliances")

        # Assert
        status = self.ua.status.current
        assert isinstance(status, Failed)
        assert status.retryable is False
        assert any("developer.home-connect.com" in line for line in status.help)
        assert self.server.requests_to("GET", "/api/homeappliances") == []

    async def test_user_retry_restarts_authorisation(self):
        # Arrange
        self.server.add(
            "POST",
            "/security/oauth/device_authorization",
            oauth_error(400, "expired_token", "Too late"),
            json_response(200, DEVICE_AUTHORIZATION),
        )
        self.server.add("POST", "/security/oauth/token", json_response(200, token_body("access-1")))
        self.ua.start()
        await wait_until(lambda: isinstance(self.ua.status.current, Failed))
        assert self.ua.status.current.retryable is True

        # Act
        self.ua.retry_authorisation()
        await wait_until(lambda: self.ua.status.current == Success())

        # Assert
        await self.ua.get(HomeAppliancesWrapper, "/api/homeappliances")
        assert len(self.server.requests_to("POST", "/security/oauth/device_authorization")) == 2

    async def test_token_saved_elsewhere_ends_parking(self):
        # Arrange
        self.server.add(
            "POST",
            "/security/oauth/device_authorization",
            oauth_error(400, "access_denied", "Denied"),
        )
        self.ua.start()
        await wait_until(lambda: isinstance(self.ua.status.current, Failed))

        # Act
        other = TokenStore(JsonFileStore(self.config.persist_dir))
        await other.save_token(CLIENT_ID, saved_token("access-elsewhere", 24 * 3600))
        await wait_until(lambda: self.ua.status.current == Success(), iterations=2000)

        # Assert
        assert self.ua.token.access_token == "access-elsewhere"

    async def test_unsaveable_token_parks_and_fails_requests(self, tmp_path):
        # Arrange
        blocked = tmp_path / "blocked"
        blocked.write_text("not a directory")
        self.token_store = TokenStore(JsonFileStore(blocked))
        await self.ua.close()
        self.ua = self.make_user_agent(self.config)
        self.server.add(
            "POST", "/security/oauth/device_authorization", json_response(200, DEVICE_AUTHORIZATION)
        )
        self.server.add("POST", "/security/oauth/token", json_response(200, token_body("access-1")))

        # Act
        with pytest.raises(AuthorisationError, match="Not authorised"):
            await asyncio.wait_for(self.ua.get(HomeAppliancesWrapper, "/api/homeappliances"), 5)

        # Assert
        status = self.ua.status.current
        assert isinstance(status, Failed)
        assert status.retryable is True
        assert status.error == "FileExistsError"
        assert self.ua.token is None
        assert self.server.requests_to("GET", "/api/homeappliances") == []


class TestCodeGrantFlow(AuthoriserTest):
    @pytest.fixture(autouse=True)
    async def setup_simulator(self, setup_authoriser):
        await self.ua.close()
        self.config = self.config.model_copy(update={"simulator": True})
        self.ua = self.make_user_agent(self.config)

    async def test_code_exchanged_for_token(self):
        # Arrange
        self.server.add(
            "GET",
            "/security/oauth/authorize",
            empty_response(302, {"location": "https://simulator.home-connect.com/callback?code=abc&state=s1"}),
        )
        self.server.add("POST", "/security/oauth/token", json_response(200, token_body("access-sim")))

        # Act
        await self.ua.get(HomeAppliancesWrapper, "/api/homeappliances")

        # Assert
        authorize = self.server.requests_to("GET", "/security/oauth/authorize")[0]
        assert authorize.url.params["client_id"] == CLIENT_ID
        assert authorize.url.params["response_type"] == "code"
        assert authorize.url.params["user"] == "me"

        (token_request,) = self.token_requests()
        assert token_request["grant_type"] == ["authorization_code"]
        assert token_request["code"] == ["abc"]
        assert token_request["redirect_uri"] == ["https://simulator.home-connect.com/callback?state=s1"]
        assert self.ua.token.access_token == "access-sim"

    async def test_redirect_error_is_reported(self):
        # Arrange
        url = httpx.URL("https://example.com/callback?error=access_denied&error_description=Denied")

        # Act & Assert
        with pytest.raises(AuthorisationError) as exc_info:
            self.ua.parse_authorisation_response(url)
        assert str(exc_info.value) == "Home Connect API Redirect Error: Denied [access_denied]"

    async def test_redirect_without_code_fails_validation(self):
        # Arrange
        url = httpx.URL("https://example.com/callback?state=s1")

        # Act & Assert
        with pytest.raises(AuthorisationError, match="Validation of redirect_uri failed"):
            self.ua.parse_authorisation_response(url)
