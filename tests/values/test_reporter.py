"""Tests for the unrecognised key/value reporter.

- Enum literals sharing a type prefix merged into one synthesised type
- Summary deferred until every flagged key has a known type
- Each signature reported only once
- Registry persisted and restored across sessions
"""

import asyncio
import logging

import pytest

from hcapi.auth.storage import JsonFileStore
from hcapi.models import HomeAppliance
from hcapi.values.reporter import (
    PROGRAM_KEY,
    REPORT_COMMENT,
    RESTORED_HAID,
    UnknownValueReporter,
    ValueInfo,
    ValueLiteral,
    is_compatible_version,
)
from tests.conftest import CLIENT_ID, HAID, wait_until

APPLIANCE = HomeAppliance(
    haId=HAID,
    name="Oven",
    type="Oven",
    brand="Siemens",
    vib="HB678GBS6B",
    enumber="HB678GBS6B/58",
    connected=True,
)


class ReporterTest:
    @pytest.fixture(autouse=True)
    async def setup_reporter(self, tmp_path):
        self.store = JsonFileStore(tmp_path)
        self.reporter = UnknownValueReporter(
            CLIENT_ID, self.store, version="0.4.0", summary_delay=3600
        )
        yield
        await self.reporter.close()


class TestEnumMerging(ReporterTest):
    async def test_literals_with_same_type_prefix_are_merged(self):
        # Arrange
        self.reporter.add_key(HAID, "Option", None, "Foo.Bar.Option.First", False)
        self.reporter.add_value(HAID, "Foo.Bar.Option.First", "Foo.Bar.EnumType.X.A", True)
        self.reporter.add_key(HAID, "Option", None, "Foo.Bar.Option.Second", False)
        self.reporter.add_value(HAID, "Foo.Bar.Option.Second", "Foo.Bar.EnumType.X.B", True)

        # Act
        lines = self.reporter.report_lines()

        # Assert
        first = self.reporter.keys["Foo.Bar.Option.First"].value
        second = self.reporter.keys["Foo.Bar.Option.Second"].value
        assert first is second
        assert set(first.values) == {"Foo.Bar.EnumType.X.A", "Foo.Bar.EnumType.X.B"}
        assert lines.count("export type X =") == 1
        assert "    'Foo.Bar.EnumType.X.A'" + f" // {REPORT_COMMENT}" in lines
        assert "  | 'Foo.Bar.EnumType.X.B';" + f" // {REPORT_COMMENT}" in lines

    async def test_settings_are_reported_as_enums(self):
        # Arrange
        key = "BSH.Common.Setting.Mystery"
        self.reporter.add_key(HAID, "Setting", None, key, True)
        self.reporter.add_value(HAID, key, "BSH.Common.EnumType.Mystery.On", False)
        self.reporter.add_value(HAID, key, "BSH.Common.EnumType.Mystery.Off", False)

        # Act
        lines = self.reporter.report_lines()

        # Assert
        assert "// Enumerated types" not in lines
        assert "export interface SettingValues {" in lines
        assert any(f"'{key}'?:" in line and f"Mystery; // {REPORT_COMMENT}" in line for line in lines)

    async def test_reported_enum_literal_in_setting_uses_enum_syntax(self):
        # Arrange
        key = "BSH.Common.Setting.Mystery"
        self.reporter.add_key(HAID, "Setting", None, key, False)
        self.reporter.add_value(HAID, key, "BSH.Common.EnumType.Mystery.On", False)
        self.reporter.add_value(HAID, key, "BSH.Common.EnumType.Mystery.Off", True)

        # Act
        lines = self.reporter.report_lines()

        # Assert
        assert "// Enumerated types" in lines
        assert "export enum Mystery {" in lines
        assert any(line.strip().startswith("Off") and REPORT_COMMENT in line for line in lines)
        assert any(line.strip().startswith("On") and line.endswith("'BSH.Common.EnumType.Mystery.On'") for line in lines)

    async def test_incompatible_types_cannot_be_merged(self):
        # Arrange
        to = ValueInfo(type="Int")
        source = ValueInfo(values={"a.b": ValueLiteral("a.b", False)})

        # Act & Assert
        with pytest.raises(ValueError, match="non-enum"):
            self.reporter.merge_enum_value(to, source)


class TestTypeNames(ReporterTest):
    async def test_api_type_names(self):
        # Act & Assert
        assert self.reporter.make_type(ValueInfo(type="Double")) == "number"
        assert self.reporter.make_type(ValueInfo(type="Boolean")) == "boolean"
        assert self.reporter.make_type(ValueInfo(type="BSH.Common.EnumType.PowerState")) == "PowerState"
        assert self.reporter.make_type(ValueInfo(type="Cooking.Oven.Option.FastPreHeat")) == "FastPreHeat"

    async def test_program_key_literals(self):
        # Arrange
        value = ValueInfo(values={"Cooking.Oven.Program.HeatingMode.AirFry": ValueLiteral("x", True)})

        # Act & Assert
        assert self.reporter.make_type(value) == PROGRAM_KEY

    async def test_free_text_is_a_string(self):
        # Arrange
        value = ValueInfo(values={"My Map": ValueLiteral("My Map", False)})

        # Act & Assert
        assert self.reporter.make_type(value) == "string"

    async def test_mixed_primitives(self):
        # Arrange
        value = ValueInfo(
            values={"1": ValueLiteral(1, False), "true": ValueLiteral(True, False)}
        )

        # Act & Assert
        assert self.reporter.get_typeof(value) == "number | boolean"
        assert self.reporter.get_typeof(None) == "unknown"

    async def test_enum_names(self):
        # Act & Assert
        assert self.reporter.make_enum_name("Foo.Bar.EnumType.X") == "X"
        assert self.reporter.make_enum_name("Dishcare.Dishwasher.Status.Door.States") == "DoorStates"


class TestSummary(ReporterTest):
    async def test_summary_deferred_until_types_known(self, caplog):
        # Arrange
        caplog.set_level(logging.INFO)
        key = "BSH.Common.Status.Mystery"
        self.reporter.add_key(HAID, "Status", None, key, True)

        # Act
        deferred = await self.reporter.summarise()
        self.reporter.add_value(HAID, key, 3, False)
        reported = await self.reporter.summarise()

        # Assert
        assert deferred is False
        assert "Delaying report" in caplog.text
        assert reported is True
        assert "Please report these" in caplog.text
        assert self.reporter.pending == set()
        assert f"Status.{key}" in self.reporter.reported

    async def test_signatures_reported_only_once(self):
        # Arrange
        key = "BSH.Common.Status.Mystery"
        self.reporter.add_key(HAID, "Status", None, key, True)
        self.reporter.add_value(HAID, key, 3, False)
        await self.reporter.summarise()

        # Act
        self.reporter.add_key(HAID, "Status", None, key, True)

        # Assert
        assert self.reporter.pending == set()

    async def test_summary_logged_after_quiet_period(self, caplog):
        # Arrange
        caplog.set_level(logging.WARNING)
        reporter = UnknownValueReporter(CLIENT_ID, version="0.4.0", summary_delay=0.01)

        # Act
        reporter.add_key(HAID, "Option", None, "Foo.Option.A", True)
        reporter.add_value(HAID, "Foo.Option.A", 1, False)
        await wait_until(lambda: reporter.pending == set())

        # Assert
        assert "Foo.Option.A" in caplog.text
        assert "=" * 10 in caplog.text
        await reporter.close()

    async def test_new_signature_restarts_timer(self):
        # Arrange
        reporter = UnknownValueReporter(CLIENT_ID, version="0.4.0", summary_delay=3600)
        reporter.add_value(HAID, "Foo.Option.A", 1, True)
        first = reporter._timer

        # Act
        reporter.add_value(HAID, "Foo.Option.A", 2, True)
        await asyncio.sleep(0.01)

        # Assert
        assert first.cancelled()
        assert reporter._timer is not first
        await reporter.close()

    async def test_issue_link_describes_appliances(self):
        # Arrange
        self.reporter.set_appliances([APPLIANCE])
        self.reporter.add_value(HAID, "Foo.Option.A", 1, True)

        # Act
        short = self.reporter.make_appliance_description([HAID], "short")
        long = self.reporter.make_appliance_description([HAID], "long")
        url = self.reporter.make_issue_url("Title here", long)

        # Assert
        assert short == "HB678GBS6B/58"
        assert long == "Siemens Oven HB678GBS6B/58"
        assert "template=key_value.yml" in url
        assert "title=Title+here" in url
        assert "version=0.4.0" in url

    async def test_unknown_appliances_are_counted(self):
        # Act & Assert
        assert self.reporter.make_appliance_description(["a", "b"], "short") == "2 appliances"
        assert self.reporter.make_appliance_description(["b", "a"], "long") == "a and b"


class TestPersistence(ReporterTest):
    async def test_keys_and_values_restored_in_new_session(self):
        # Arrange
        self.reporter.add_key(HAID, "Option", None, "Foo.Option.A", False)
        self.reporter.add_value(HAID, "Foo.Option.A", True, False)
        await self.reporter.write_persist()
        restored = UnknownValueReporter(CLIENT_ID, self.store, version="0.4.3")

        # Act
        await restored.restore()

        # Assert
        assert "Foo.Option.A" in restored.groups["Option"].keys
        literal = restored.keys["Foo.Option.A"].value.values["true"]
        assert literal.value is True
        assert literal.report is False
        assert restored.pending == set()

    async def test_incompatible_version_is_ignored(self):
        # Arrange
        self.reporter.add_key(HAID, "Option", None, "Foo.Option.A", False)
        await self.reporter.write_persist()
        restored = UnknownValueReporter(CLIENT_ID, self.store, version="0.5.0")

        # Act
        await restored.restore()

        # Assert
        assert restored.keys == {}

    async def test_clients_are_persisted_separately(self):
        # Arrange
        self.reporter.add_key(HAID, "Option", None, "Foo.Option.A", False)
        await self.reporter.write_persist()
        other = UnknownValueReporter("B" * 64, self.store, version="0.4.0")

        # Act
        await other.restore()

        # Assert
        assert other.keys == {}
        assert RESTORED_HAID not in other._appliance_reports

    @pytest.mark.parametrize(
        "saved, current, expected",
        [
            ("0.4.0", "0.4.2", True),
            ("0.4.2", "0.4.0", False),
            ("0.3.9", "0.4.0", False),
            ("1.2.0", "1.5.1", True),
            ("1.2.0", "2.0.0", False),
            ("", "1.0.0", False),
        ],
    )
    async def test_version_compatibility(self, saved, current, expected):
        # Act & Assert
        assert is_compatible_version(saved, current) is expected
