"""Tests for the typed Home Connect API client.

- Data requests authorised with the saved token
- Request bodies in the API's ``{"data": ...}`` envelope
- Responses checked against the key/value catalogue
- Event subscriptions filtered by appliance
"""

import json
import time

import pytest

from hcapi.api import HomeConnectAPI
from hcapi.auth.models import AbsoluteToken
from hcapi.auth.storage import JsonFileStore, TokenStore
from hcapi.events import StreamStart, StreamStop
from hcapi.models import Option
from hcapi.settings import APPLIANCES_PATH
from tests.conftest import CLIENT_ID, HAID, FakeSleep, empty_response, json_response, stream_response

APPLIANCE_PATH = f"{APPLIANCES_PATH}/{HAID}"

APPLIANCE = {
    "haId": HAID,
    "name": "Oven",
    "type": "Oven",
    "brand": "Siemens",
    "vib": "HB678GBS6B",
    "enumber": "HB678GBS6B/58",
    "connected": True,
}


class APITest:
    @pytest.fixture(autouse=True)
    async def setup_api(self, config, server, tmp_path):
        # Arrange
        token = AbsoluteToken(
            refresh_token="refresh-saved",
            access_token="access-saved",
            access_expires=int((time.time() + 86400) * 1000),
            scopes=["IdentifyAppliance", "Monitor", "Oven-Settings", "Control"],
        )
        await TokenStore(JsonFileStore(tmp_path)).save_token(CLIENT_ID, token)
        self.server = server
        self.api = HomeConnectAPI(config, transport=server.transport(config))
        self.api.ua._sleep = FakeSleep()
        await self.api.start()
        yield
        await self.api.close()

    def request_body(self, method: str, path: str) -> dict:
        return json.loads(self.server.requests_to(method, path)[-1].content)


class TestAuthorisation(APITest):
    async def test_saved_token_used_for_data_requests(self):
        # Arrange
        self.server.add("GET", APPLIANCES_PATH, json_response(200, {"data": {"homeappliances": []}}))

        # Act
        appliances = await self.api.get_appliances()

        # Assert
        assert appliances == []
        request = self.server.requests_to("GET", APPLIANCES_PATH)[0]
        assert request.headers["authorization"] == "Bearer access-saved"
        assert request.headers["accept"] == "application/vnd.bsh.sdk.v1+json"
        assert self.api.authorisation_status.current.state.value == "success"

    @pytest.mark.parametrize(
        "scope, expected",
        [
            ("Monitor", True),
            ("Oven-Settings", True),
            ("Oven-Control", True),
            ("Dishwasher-Monitor", True),
            ("Washer-Settings", False),
            ("Settings", False),
        ],
    )
    async def test_row_and_column_scopes(self, scope, expected):
        # Arrange
        await self.api.ua.wait_authorised()

        # Act & Assert
        assert self.api.has_scope(scope) is expected


class TestAppliances(APITest):
    async def test_appliances_described_in_reports(self):
        # Arrange
        self.server.add(
            "GET", APPLIANCES_PATH, json_response(200, {"data": {"homeappliances": [APPLIANCE]}})
        )

        # Act
        appliances = await self.api.get_appliances()

        # Assert
        assert appliances[0].haId == HAID
        assert self.api.reporter.make_appliance_description([HAID], "long") == "Siemens Oven HB678GBS6B/58"

    async def test_status_values_checked(self):
        # Arrange
        self.server.add(
            "GET",
            f"{APPLIANCE_PATH}/status",
            json_response(
                200,
                {
                    "data": {
                        "status": [
                            {"key": "BSH.Common.Status.DoorState", "value": "BSH.Common.EnumType.DoorState.Open"},
                            {"key": "BSH.Common.Status.Mystery", "value": 7},
                        ]
                    }
                },
            ),
        )

        # Act
        statuses = await self.api.get_status(HAID)

        # Assert
        assert [s.value for s in statuses] == ["BSH.Common.EnumType.DoorState.Open", 7]
        assert "BSH.Common.Status.Mystery" in self.api.reporter.groups["Status"].keys


class TestWrites(APITest):
    async def test_command_body(self):
        # Arrange
        path = f"{APPLIANCE_PATH}/commands/BSH.Common.Command.PauseProgram"
        self.server.add("PUT", path, empty_response())

        # Act
        await self.api.set_command(HAID, "BSH.Common.Command.PauseProgram")

        # Assert
        assert self.request_body("PUT", path) == {
            "data": {"key": "BSH.Common.Command.PauseProgram", "value": True}
        }
        request = self.server.requests_to("PUT", path)[0]
        assert request.headers["content-type"] == "application/vnd.bsh.sdk.v1+json"

    async def test_active_program_with_options(self):
        # Arrange
        path = f"{APPLIANCE_PATH}/programs/active"
        self.server.add("PUT", path, empty_response())
        options = [
            Option(key="Cooking.Oven.Option.SetpointTemperature", value=200, unit="°C", name="Temperature"),
            Option(key="BSH.Common.Option.Duration", value=1800),
        ]

        # Act
        await self.api.set_active_program(HAID, "Cooking.Oven.Program.HeatingMode.HotAir", options)

        # Assert
        assert self.request_body("PUT", path) == {
            "data": {
                "key": "Cooking.Oven.Program.HeatingMode.HotAir",
                "options": [
                    {"key": "Cooking.Oven.Option.SetpointTemperature", "value": 200, "unit": "°C"},
                    {"key": "BSH.Common.Option.Duration", "value": 1800},
                ],
            }
        }

    async def test_setting_body(self):
        # Arrange
        path = f"{APPLIANCE_PATH}/settings/BSH.Common.Setting.ChildLock"
        self.server.add("PUT", path, empty_response())

        # Act
        await self.api.set_setting(HAID, "BSH.Common.Setting.ChildLock", False)

        # Assert
        assert self.request_body("PUT", path) == {
            "data": {"key": "BSH.Common.Setting.ChildLock", "value": False}
        }

    async def test_stop_program(self):
        # Arrange
        path = f"{APPLIANCE_PATH}/programs/active"
        self.server.add("DELETE", path, empty_response())

        # Act
        await self.api.stop_active_program(HAID)

        # Assert
        assert len(self.server.requests_to("DELETE", path)) == 1


class TestEvents(APITest):
    async def test_events_filtered_by_appliance(self):
        # Arrange
        self.server.add(
            "GET",
            f"{APPLIANCES_PATH}/events",
            stream_response(
                "event: KEEP-ALIVE\ndata:\n\n",
                "event: DISCONNECTED\nid: BOSCH-OTHER-000000000001\ndata:\n\n",
                f"event: CONNECTED\nid: {HAID}\ndata:\n\n",
            ),
        )
        events = self.api.events(HAID)

        # Act
        received = [await anext(events) for _ in range(3)]
        await events.aclose()

        # Assert
        assert isinstance(received[0], StreamStart)
        assert received[1].event == "CONNECTED"
        assert received[1].id == HAID
        assert isinstance(received[2], StreamStop)
