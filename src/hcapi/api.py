"""Typed access to the Home Connect API."""

from __future__ import annotations

import logging
import re
from typing import AsyncIterator

from hcapi.auth.authoriser import AuthorisingUserAgent
from hcapi.auth.status import StatusChannel
from hcapi.auth.storage import JsonFileStore, TokenStore
from hcapi.config import ClientConfig
from hcapi.events import EventStream, StreamEvent
from hcapi.models import (
    Command,
    CommandsWrapper,
    HomeAppliance,
    HomeAppliancesWrapper,
    HomeApplianceWrapper,
    Option,
    OptionsWrapper,
    OptionWrapper,
    Program,
    ProgramDefinition,
    ProgramDefinitionWrapper,
    Programs,
    ProgramsWrapper,
    ProgramWrapper,
    Setting,
    SettingsWrapper,
    SettingWrapper,
    Status,
    StatusesWrapper,
    StatusWrapper,
    Value,
)
from hcapi.settings import APPLIANCES_PATH
from hcapi.transport.http_core import TransportCore
from hcapi.values.catalogue import Catalogue
from hcapi.values.reporter import UnknownValueReporter
from hcapi.values.validator import KeyValueValidator

logger = logging.getLogger(__name__)

_ROW_COLUMN_SCOPE = re.compile(r"^([^-]+)-([^-]+)$")


def _options_body(options: list[Option] | None) -> list[dict]:
    return [
        option.model_dump(include={"key", "value", "unit"}, exclude_none=True)
        for option in options or []
    ]


class HomeConnectAPI:
    """Client for one Home Connect application (client identifier).

    Authorisation starts on the first request. Every value returned passes
    through the key/value validator, so unrecognised keys and values are
    logged and reported but never cause a call to fail.

    Example:
        async with HomeConnectAPI(ClientConfig.from_env()) as api:
            for appliance in await api.get_appliances():
                print(appliance.name, await api.get_status(appliance.haId))
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: TransportCore | None = None,
        catalogue: Catalogue | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration
            transport: Transport to issue requests through, mainly for tests
            catalogue: Recognised keys and values (defaults to the built-in one)
        """
        self.config = config
        store = JsonFileStore(config.persist_dir)
        self.ua = AuthorisingUserAgent(config, TokenStore(store), transport)
        self.reporter = UnknownValueReporter(config.client_id, store)
        self.validator = KeyValueValidator(catalogue, self.reporter)
        self._events = EventStream(self.ua, self.validator)
        self._started = False

    async def start(self) -> None:
        """Restore previously seen keys/values and begin authorisation."""
        if self._started:
            return
        self._started = True
        await self.reporter.restore()
        self.ua.start()

    async def close(self) -> None:
        """Stop background activity and release the HTTP connection pool."""
        await self._events.close()
        await self.reporter.close()
        await self.ua.close()

    async def __aenter__(self) -> HomeConnectAPI:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ================================
    # Authorisation
    # ================================

    @property
    def authorisation_status(self) -> StatusChannel:
        return self.ua.status

    def retry_authorisation(self) -> None:
        """Start a fresh authorisation attempt (for example a new Device Flow code)."""
        self.ua.retry_authorisation()

    def has_scope(self, scope: str) -> bool:
        """Check whether a scope has been authorised.

        A scope such as ``Oven-Control`` is also covered by the row scope
        ``Oven`` and the column scope ``Control``.
        """
        scopes = self.ua.scopes
        if scope in scopes:
            return True
        parsed = _ROW_COLUMN_SCOPE.match(scope)
        if parsed:
            row, column = parsed.groups()
            if row in scopes or column in scopes:
                return True
        return False

    # ================================
    # Appliances
    # ================================

    async def get_appliances(self) -> list[HomeAppliance]:
        response = await self.ua.get(HomeAppliancesWrapper, APPLIANCES_PATH)
        appliances = response.data.homeappliances
        self.reporter.set_appliances(appliances)
        return appliances

    async def get_appliance(self, haid: str) -> HomeAppliance:
        response = await self.ua.get(HomeApplianceWrapper, f"{APPLIANCES_PATH}/{haid}")
        self.reporter.set_appliances([response.data])
        return response.data

    # ================================
    # Programs
    # ================================

    async def get_programs(self, haid: str) -> Programs:
        response = await self.ua.get(ProgramsWrapper, f"{APPLIANCES_PATH}/{haid}/programs")
        return self.validator.programs(haid, response.data)

    async def get_available_programs(self, haid: str) -> Programs:
        response = await self.ua.get(
            ProgramsWrapper, f"{APPLIANCES_PATH}/{haid}/programs/available"
        )
        return self.validator.programs(haid, response.data)

    async def get_available_program(self, haid: str, program_key: str) -> ProgramDefinition:
        response = await self.ua.get(
            ProgramDefinitionWrapper,
            f"{APPLIANCES_PATH}/{haid}/programs/available/{program_key}",
        )
        return self.validator.program_definition(haid, response.data)

    async def get_active_program(self, haid: str) -> Program:
        response = await self.ua.get(ProgramWrapper, f"{APPLIANCES_PATH}/{haid}/programs/active")
        return self.validator.program(haid, response.data, "Program.active")

    async def set_active_program(
        self, haid: str, program_key: str, options: list[Option] | None = None
    ) -> None:
        """Start a program."""
        body = {"data": {"key": program_key, "options": _options_body(options)}}
        await self.ua.put(f"{APPLIANCES_PATH}/{haid}/programs/active", body)

    async def stop_active_program(self, haid: str) -> None:
        await self.ua.delete(f"{APPLIANCES_PATH}/{haid}/programs/active")

    async def get_active_program_options(self, haid: str) -> list[Option]:
        response = await self.ua.get(
            OptionsWrapper, f"{APPLIANCES_PATH}/{haid}/programs/active/options"
        )
        return self.validator.options(haid, response.data.options)

    async def set_active_program_options(self, haid: str, options: list[Option]) -> None:
        body = {"data": {"options": _options_body(options)}}
        await self.ua.put(f"{APPLIANCES_PATH}/{haid}/programs/active/options", body)

    async def get_active_program_option(self, haid: str, option_key: str) -> Option:
        response = await self.ua.get(
            OptionWrapper, f"{APPLIANCES_PATH}/{haid}/programs/active/options/{option_key}"
        )
        return self.validator.option(haid, response.data)

    async def set_active_program_option(self, haid: str, option_key: str, value: Value) -> None:
        body = {"data": {"key": option_key, "value": value}}
        await self.ua.put(
            f"{APPLIANCES_PATH}/{haid}/programs/active/options/{option_key}", body
        )

    async def get_selected_program(self, haid: str) -> Program:
        response = await self.ua.get(
            ProgramWrapper, f"{APPLIANCES_PATH}/{haid}/programs/selected"
        )
        return self.validator.program(haid, response.data, "Program.selected")

    async def set_selected_program(
        self, haid: str, program_key: str, options: list[Option] | None = None
    ) -> None:
        body = {"data": {"key": program_key, "options": _options_body(options)}}
        await self.ua.put(f"{APPLIANCES_PATH}/{haid}/programs/selected", body)

    async def get_selected_program_options(self, haid: str) -> list[Option]:
        response = await self.ua.get(
            OptionsWrapper, f"{APPLIANCES_PATH}/{haid}/programs/selected/options"
        )
        return self.validator.options(haid, response.data.options)

    async def set_selected_program_options(self, haid: str, options: list[Option]) -> None:
        body = {"data": {"options": _options_body(options)}}
        await self.ua.put(f"{APPLIANCES_PATH}/{haid}/programs/selected/options", body)

    async def get_selected_program_option(self, haid: str, option_key: str) -> Option:
        response = await self.ua.get(
            OptionWrapper, f"{APPLIANCES_PATH}/{haid}/programs/selected/options/{option_key}"
        )
        return self.validator.option(haid, response.data)

    async def set_selected_program_option(
        self, haid: str, option_key: str, value: Value
    ) -> None:
        body = {"data": {"key": option_key, "value": value}}
        await self.ua.put(
            f"{APPLIANCES_PATH}/{haid}/programs/selected/options/{option_key}", body
        )

    # ================================
    # Status and settings
    # ================================

    async def get_status(self, haid: str) -> list[Status]:
        response = await self.ua.get(StatusesWrapper, f"{APPLIANCES_PATH}/{haid}/status")
        return self.validator.statuses(haid, response.data.status)

    async def get_status_specific(self, haid: str, status_key: str) -> Status:
        response = await self.ua.get(
            StatusWrapper, f"{APPLIANCES_PATH}/{haid}/status/{status_key}"
        )
        return self.validator.status(haid, response.data)

    async def get_settings(self, haid: str) -> list[Setting]:
        response = await self.ua.get(SettingsWrapper, f"{APPLIANCES_PATH}/{haid}/settings")
        return self.validator.settings(haid, response.data.settings)

    async def get_setting(self, haid: str, setting_key: str) -> Setting:
        response = await self.ua.get(
            SettingWrapper, f"{APPLIANCES_PATH}/{haid}/settings/{setting_key}"
        )
        return self.validator.setting(haid, response.data)

    async def set_setting(self, haid: str, setting_key: str, value: Value) -> None:
        body = {"data": {"key": setting_key, "value": value}}
        await self.ua.put(f"{APPLIANCES_PATH}/{haid}/settings/{setting_key}", body)

    # ================================
    # Commands
    # ================================

    async def get_commands(self, haid: str) -> list[Command]:
        response = await self.ua.get(CommandsWrapper, f"{APPLIANCES_PATH}/{haid}/commands")
        return self.validator.commands(haid, response.data.commands)

    async def set_command(self, haid: str, command_key: str, value: Value = True) -> None:
        body = {"data": {"key": command_key, "value": value}}
        await self.ua.put(f"{APPLIANCES_PATH}/{haid}/commands/{command_key}", body)

    # ================================
    # Events
    # ================================

    async def events(self, haid: str | None = None) -> AsyncIterator[StreamEvent]:
        """Events for one appliance (or all of them), excluding keep-alives.

        ``StreamStart`` and ``StreamStop`` are always included, since they
        concern every appliance.
        """
        async for event in self._events.subscribe():
            if event.event == "KEEP-ALIVE":
                continue
            event_id = getattr(event, "id", None)
            if haid is None or event_id is None or event_id == haid:
                yield event
