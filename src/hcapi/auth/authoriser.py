"""OAuth2 authorisation for the Home Connect API.

Implements the Device Flow (interactive, the default) and the Authorization
Code Grant Flow (simulator only), persists the resulting tokens, refreshes
them before they expire, and attaches the bearer header to every data
request.

Authorisation runs as a single background task::

    obtain token ──► refresh loop ─► refresh ─► refresh ─► ...
        │  ▲
        ▼  │ retry trigger (saved token changed / user asked to retry)
      parked (status Failed)

A failed attempt to obtain a token never ends the task. It parks until a
retry trigger fires, publishing a ``Failed`` status with guidance in the
meantime. Refresh failures are retried every few seconds for as long as it
takes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Mapping
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from hcapi.auth.help import device_flow_help
from hcapi.auth.models import (
    AbsoluteToken,
    AccessTokenRequest,
    AuthorisationCodeResponse,
    AwaitingUser,
    Busy,
    DeviceAccessTokenRequest,
    DeviceAuthorisationRequest,
    DeviceAuthorisationResponse,
    Failed,
    RefreshTokenRequest,
    RetryTrigger,
    Success,
    TokenResponse,
)
from hcapi.auth.status import StatusChannel
from hcapi.auth.storage import StoredTokenError, TokenStore
from hcapi.config import ClientConfig
from hcapi.settings import (
    AUTH_PATH_PREFIX,
    AUTHORIZE_PATH,
    DEVICE_AUTHORIZATION_PATH,
    TOKEN_PATH,
)
from hcapi.transport.errors import APIError, AuthorisationError, StatusCodeError
from hcapi.transport.http_core import TransportCore
from hcapi.transport.models import Request
from hcapi.transport.user_agent import APIUserAgent
from hcapi.utils import format_duration, log_error

logger = logging.getLogger(__name__)

# Token errors that need a configuration change rather than another attempt
CONFIGURATION_ERRORS = frozenset({"invalid_client", "unauthorized_client"})


class AuthorisingUserAgent(APIUserAgent):
    """User agent that obtains, refreshes and applies OAuth2 access tokens.

    Every request outside ``/security/oauth/`` waits for the client to be
    authorised. The "authorised" condition is a future that is replaced
    (re-armed) whenever a new token is being obtained or refreshed, so a
    caller only ever waits for the attempt that was current when it started.
    """

    # Refresh this long before the access token expires (seconds)
    refresh_window = 60 * 60.0

    # Delays between retrying failed operations (seconds)
    refresh_retry_delay = 6.0
    poll_persist_delay = 3.0

    # Device Flow polling (normally set by the server) and prompt logging (seconds)
    device_flow_poll_interval = 5.0
    device_flow_log_interval = 12.0

    def __init__(
        self,
        config: ClientConfig,
        token_store: TokenStore,
        transport: TransportCore | None = None,
    ) -> None:
        """Initialize the authorising user agent.

        Authorisation starts lazily, on the first data request or an explicit
        call to ``start``.

        Args:
            config: Client configuration
            token_store: Persistent store for tokens
            transport: Transport to issue requests through, mainly for tests
        """
        super().__init__(config, transport)
        self._token_store = token_store
        self.status = StatusChannel()
        self._token: AbsoluteToken | None = None
        self._authorised: asyncio.Future[None] | None = None
        self._refresh_now: asyncio.Future[None] | None = None
        self._user_retry: asyncio.Future[RetryTrigger] | None = None
        self._polling_device_code = False
        self._task: asyncio.Task | None = None

    # ================================
    # Public interface
    # ================================

    def start(self) -> None:
        """Start the background authorisation task (if not already running)."""
        if self._task is None:
            self._arm_authorised()
            self._task = asyncio.create_task(self._run(), name="hcapi-authorise")

    @property
    def token(self) -> AbsoluteToken | None:
        return self._token

    @property
    def scopes(self) -> list[str]:
        """Scopes that have been (or will be) authorised."""
        return self._token.scopes if self._token else list(self.config.scopes)

    @property
    def authorization_header(self) -> str | None:
        return f"Bearer {self._token.access_token}" if self._token else None

    async def wait_authorised(self) -> None:
        """Wait for the current (re)authorisation to complete.

        Raises:
            Exception: Whatever ended the current attempt to obtain a token
        """
        self.start()
        assert self._authorised is not None
        await asyncio.shield(self._authorised)

    def retry_authorisation(self) -> None:
        """Abandon the current attempt (or a failure) and start afresh.

        Used when the user asks for a new Device Flow code. Has no effect once
        the client is authorised.
        """
        if self._user_retry is not None and not self._user_retry.done():
            logger.info("Authorisation retry requested")
            self._user_retry.set_result(RetryTrigger.USER_REQUESTED)

    def trigger_refresh(self) -> None:
        """Refresh the access token now instead of waiting for it to near expiry."""
        if self._refresh_now is not None and not self._refresh_now.done():
            logger.warning("Triggering early token refresh")
            self._arm_authorised()
            self._refresh_now.set_result(None)

    async def close(self) -> None:
        """Stop authorisation and close the transport."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await super().close()

    # ================================
    # Request hooks
    # ================================

    async def prepare_request(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: str | None = None,
        idempotent: bool | None = None,
    ) -> Request:
        """Build the Request, adding the bearer header to data requests."""
        request = await super().prepare_request(
            method, path, headers=headers, body=body, idempotent=idempotent
        )
        if path.startswith(AUTH_PATH_PREFIX):
            return request

        try:
            await self.wait_authorised()
        except Exception as err:
            raise AuthorisationError(request, None, f"Not authorised ({err})") from err
        assert self.authorization_header is not None
        return request.with_headers(authorization=self.authorization_header)

    def can_retry(self, err: BaseException) -> bool:
        """Add authorisation cases to the standard retry rules.

        A pending Device Flow authorisation is polled again after the poll
        interval. A 401 for a request that used the current token triggers a
        refresh before the standard rules decide.
        """
        if isinstance(err, AuthorisationError):
            return False

        if isinstance(err, StatusCodeError):
            if err.status_code == 400 and self._polling_device_code:
                if err.key == "authorization_pending":
                    self.retry_delay = self.device_flow_poll_interval
                    return True
                if err.key == "slow_down":
                    self.device_flow_poll_interval += 5
                    self.retry_delay = self.device_flow_poll_interval
                    return True
            elif err.status_code == 401:
                used = err.request.authorization
                if used is not None and used == self.authorization_header:
                    self.trigger_refresh()

        return super().can_retry(err)

    # ================================
    # Authorisation task
    # ================================

    def _arm_authorised(self) -> asyncio.Future[None]:
        """Return the pending "authorised" future, creating a new one if needed."""
        if self._authorised is None or self._authorised.done():
            self._authorised = asyncio.get_running_loop().create_future()
        return self._authorised

    async def _run(self) -> None:
        await self._obtain_access_token()
        self.status.publish(Success())

        while True:
            assert self._token is not None
            self._refresh_now = asyncio.get_running_loop().create_future()
            wait = self._token.expires_in() - self.refresh_window
            logger.debug(f"Next token refresh in {format_duration(wait)}")
            sleeper = asyncio.ensure_future(self._sleep(max(wait, 0)))
            try:
                await asyncio.wait({sleeper, self._refresh_now}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                sleeper.cancel()
            self._refresh_now = None

            logger.info("Refreshing access token")
            authorised = self._arm_authorised()
            await self._refresh_access_token()
            authorised.set_result(None)
            logger.info("Successfully refreshed access token")

    async def _obtain_access_token(self) -> None:
        """Obtain the first token, parking after failures until a retry trigger."""
        watcher: asyncio.Task | None = None
        try:
            while True:
                authorised = self._arm_authorised()
                self.status.publish(Busy())
                logger.info("Attempting authorisation")
                self._user_retry = asyncio.get_running_loop().create_future()

                saved = await self._load_saved_token()
                try:
                    if saved is not None and await self._use_saved_token(saved):
                        break

                    if watcher is None or watcher.done():
                        watcher = asyncio.create_task(self._watch_token(saved))
                    flow = asyncio.create_task(self._authorisation_flow())
                    trigger = await self._first_signal(flow, watcher, self._user_retry)
                    if trigger is None:
                        await self._save_token(flow.result())
                        logger.info("Successfully authorised")
                        break
                except Exception as err:
                    # A token that could not be saved is not adopted
                    self._token = None
                    if watcher is None or watcher.done():
                        watcher = asyncio.create_task(self._watch_token(saved))
                    trigger = await self._park(err, authorised, watcher)
                logger.info(f"Restarting authorisation ({trigger.value})")
        finally:
            if watcher is not None:
                watcher.cancel()
            self._user_retry = None

        assert self._authorised is not None
        if not self._authorised.done():
            self._authorised.set_result(None)

    async def _first_signal(
        self,
        flow: asyncio.Task,
        watcher: asyncio.Task,
        user_retry: asyncio.Future[RetryTrigger],
    ) -> RetryTrigger | None:
        """Wait for the flow to finish or a retry trigger to fire, whichever is first.

        If several complete in the same iteration of the event loop, a
        finished flow takes priority, then a changed saved token, then a user
        request.

        Returns:
            None if the flow finished successfully, otherwise the trigger

        Raises:
            Exception: Whatever the flow raised
        """
        try:
            await asyncio.wait({flow, watcher, user_retry}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not flow.done():
                flow.cancel()
                try:
                    await flow
                except asyncio.CancelledError:
                    pass

        if not flow.cancelled():
            flow.result()
            return None
        if watcher.done():
            return watcher.result()
        return user_retry.result()

    async def _park(
        self,
        err: Exception,
        authorised: asyncio.Future[None],
        watcher: asyncio.Task,
    ) -> RetryTrigger:
        """Report a failed attempt and wait for a reason to try again."""
        log_error(logger, "API authorisation", err)

        help = device_flow_help(err, self.config.client_id) if not self.config.simulator else None
        if help is not None:
            help.log(logger)
        retryable = not (isinstance(err, StatusCodeError) and err.key in CONFIGURATION_ERRORS)
        self.status.publish(
            Failed(
                retryable=retryable,
                error=type(err).__name__,
                message=str(err),
                help=tuple(help.lines()) if help else (),
            )
        )

        if not authorised.done():
            authorised.set_exception(err)
            # Callers may not be waiting, so mark the exception as retrieved
            authorised.exception()

        logger.error("Authorisation attempt abandoned; waiting for a retry trigger")
        assert self._user_retry is not None
        await asyncio.wait({watcher, self._user_retry}, return_when=asyncio.FIRST_COMPLETED)
        if watcher.done():
            return watcher.result()
        return self._user_retry.result()

    async def _load_saved_token(self) -> AbsoluteToken | None:
        try:
            return await self._token_store.load_token(self.config.client_id)
        except StoredTokenError as err:
            logger.info(f"Unable to use saved API authorisation ({err})")
            return None

    async def _use_saved_token(self, saved: AbsoluteToken) -> bool:
        """Adopt a saved token, refreshing it first if it is near expiry.

        Returns:
            True if a usable token is now held

        Raises:
            OSError: If the refreshed token could not be saved
        """
        if saved.expires_in() > self.refresh_window:
            logger.info("Using saved access token")
            self._token = saved
            return True

        logger.info("Saved access token has expired or is due for refresh")
        try:
            response = await self._refresh_request(saved.refresh_token)
        except APIError as err:
            logger.info(f"Unable to refresh saved access token ({err})")
            return False
        await self._save_token(response)
        logger.info("Successfully refreshed access token")
        return True

    async def _watch_token(self, old: AbsoluteToken | None) -> RetryTrigger:
        """Wait until the saved token for this client is changed by someone else."""
        while True:
            await self._sleep(self.poll_persist_delay)
            try:
                token = await self._token_store.load_token(self.config.client_id)
            except StoredTokenError:
                continue
            if old is None or token.access_token != old.access_token:
                logger.info("Saved access token has been updated")
                return RetryTrigger.TOKEN_CHANGED

    async def _refresh_access_token(self) -> None:
        """Refresh the current token, retrying until it succeeds."""
        assert self._token is not None
        while True:
            try:
                response = await self._refresh_request(self._token.refresh_token)
                await self._save_token(response)
                return
            except (APIError, OSError) as err:
                log_error(logger, "API token refresh", err)
                await self._sleep(self.refresh_retry_delay)

    async def _save_token(self, response: TokenResponse) -> None:
        """Adopt a new token and persist it for this client."""
        logger.debug(f"Access token expires in {format_duration(response.expires_in)}")
        self._token = AbsoluteToken.from_response(response)
        await self._token_store.save_token(self.config.client_id, self._token)

    # ================================
    # Flows
    # ================================

    async def _authorisation_flow(self) -> TokenResponse:
        if self.config.simulator:
            logger.info("Requesting authorisation using the Code Grant Flow")
            return await self.authorisation_code_grant_flow()
        logger.info("Requesting authorisation using the Device Flow")
        return await self.device_flow()

    async def device_flow(self) -> TokenResponse:
        """Obtain a token with user interaction on another device (RFC 8628)."""
        response = await self.post(
            DeviceAuthorisationResponse,
            DEVICE_AUTHORIZATION_PATH,
            DeviceAuthorisationRequest(
                client_id=self.config.client_id, scope=" ".join(self.config.scopes)
            ).to_form_data(),
        )
        if response.interval:
            self.device_flow_poll_interval = float(response.interval)

        expires_at = time.time() + response.expires_in if response.expires_in else None
        self.status.publish(
            AwaitingUser(
                verification_uri=response.verification_uri_complete or response.verification_uri,
                user_code=response.user_code,
                expires_at=expires_at,
            )
        )

        expiry = f", expires in {format_duration(response.expires_in)}" if response.expires_in else ""
        logger.debug(
            "Waiting for completion of Home Connect authorisation"
            f" (poll every {format_duration(self.device_flow_poll_interval)}{expiry})..."
        )
        prompt = asyncio.create_task(self._log_prompt(response, expires_at))
        self._polling_device_code = True
        try:
            return await self.post(
                TokenResponse,
                TOKEN_PATH,
                DeviceAccessTokenRequest(
                    client_id=self.config.client_id,
                    device_code=response.device_code,
                    client_secret=self.config.client_secret,
                ).to_form_data(),
            )
        finally:
            self._polling_device_code = False
            prompt.cancel()

    async def _log_prompt(
        self, response: DeviceAuthorisationResponse, expires_at: float | None
    ) -> None:
        while True:
            within = f" within {format_duration(expires_at - time.time())}" if expires_at else ""
            logger.info(
                f"Please authorise access to your appliances{within} using the associated"
                " Home Connect or SingleKey ID email address by visiting:"
            )
            if response.verification_uri_complete:
                logger.info(f"    {response.verification_uri_complete}")
            else:
                logger.info(
                    f"    {response.verification_uri} and enter code {response.user_code}"
                )
            await self._sleep(self.device_flow_log_interval)

    async def authorisation_code_grant_flow(self) -> TokenResponse:
        """Obtain a token without user interaction (simulator only)."""
        query = {
            "client_id": self.config.client_id,
            "response_type": "code",
            "scope": " ".join(self.config.scopes),
            "user": "me",
        }
        redirect = await self.get_redirect(f"{AUTHORIZE_PATH}?{urlencode(query)}")
        code = self.parse_authorisation_response(redirect)

        redirect_uri = str(redirect.copy_remove_param("code"))
        logger.debug(f"Using authorisation code and redirect {redirect_uri} to request token")
        return await self.post(
            TokenResponse,
            TOKEN_PATH,
            AccessTokenRequest(
                client_id=self.config.client_id,
                code=code.code,
                redirect_uri=redirect_uri,
                client_secret=self.config.client_secret,
            ).to_form_data(),
        )

    def parse_authorisation_response(self, url: httpx.URL) -> AuthorisationCodeResponse:
        """Extract the authorisation code from a redirect URL.

        Raises:
            AuthorisationError: If the redirect reports an error or has no code
        """
        params = dict(url.params)
        request = Request(method="GET", path=url.raw_path.decode("ascii"))

        if "error" in params:
            raise AuthorisationError(
                request,
                None,
                "Home Connect API Redirect Error:"
                f" {params.get('error_description', 'No description')} [{params['error']}]",
            )

        try:
            response = AuthorisationCodeResponse.model_validate(params)
        except ValidationError as e:
            errors = [
                f"redirect_uri.{'.'.join(str(p) for p in err['loc'])} {err['msg']}"
                for err in e.errors()
            ]
            self.log_validation(
                logging.ERROR,
                "Unexpected structure of Home Connect API redirect_uri",
                None,
                errors,
                params,
            )
            raise AuthorisationError(request, None, "Validation of redirect_uri failed") from e

        if response.model_extra:
            self.log_validation(
                logging.WARNING,
                "Unexpected name-value pairs in Home Connect API redirect_uri",
                None,
                [f"redirect_uri.{name} is not expected" for name in response.model_extra],
                params,
            )
        return response

    async def _refresh_request(self, refresh_token: str) -> TokenResponse:
        return await self.post(
            TokenResponse,
            TOKEN_PATH,
            RefreshTokenRequest(
                refresh_token=refresh_token, client_secret=self.config.client_secret
            ).to_form_data(),
        )
