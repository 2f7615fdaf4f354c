"""Key/value checks for API responses and events.

Checking never fails a call. Unrecognised keys, program keys and enum
literals, and values of the wrong type, are logged (each distinct key or
literal at most once per day) and passed to the reporter. The checked object
is always returned unchanged.
"""

from __future__ import annotations

import json
import logging
import time

from pydantic import BaseModel

from hcapi.models import (
    Command,
    Event,
    EventData,
    Option,
    OptionDefinition,
    Program,
    ProgramDefinition,
    Programs,
    Setting,
    Status,
    Value,
)
from hcapi.values.catalogue import EVENT_GROUPS, Catalogue, ValueSpec
from hcapi.values.reporter import PROGRAM_KEY, UnknownValueReporter

logger = logging.getLogger(__name__)

# Minimum interval between logging the same unrecognised key or literal (seconds)
REPORT_INTERVAL = 24 * 60 * 60.0


class KeyValueValidator:
    """Check keys and values against a catalogue.

    Args:
        catalogue: Recognised keys and value types
        reporter: Registry that records every key and value seen
    """

    def __init__(
        self,
        catalogue: Catalogue | None = None,
        reporter: UnknownValueReporter | None = None,
    ) -> None:
        self.catalogue = catalogue or Catalogue()
        self.reporter = reporter
        self._next_report: dict[str, float] = {}

    # ================================
    # Programs
    # ================================

    def programs(self, haid: str, programs: Programs) -> Programs:
        for index, program in enumerate(programs.programs):
            self.is_program(haid, logging.INFO, f"Programs.programs[{index}]", program, program.key)
        if programs.selected is not None and programs.selected.key:
            self.program(haid, programs.selected, "Programs.selected")
        if programs.active is not None and programs.active.key:
            self.program(haid, programs.active, "Programs.active")
        return programs

    def program_definition(self, haid: str, program: ProgramDefinition) -> ProgramDefinition:
        self.is_program(haid, logging.INFO, "ProgramDefinition", program, program.key)
        for index, option in enumerate(program.options or []):
            self._add_detail(haid, option)
            self.is_key(
                haid, "Option", None, logging.INFO,
                f"ProgramDefinition.options[{index}]", option, option.key,
            )
        return program

    def program(self, haid: str, program: Program, type: str = "Program") -> Program:
        if program.key:
            self.is_program(haid, logging.INFO, type, program, program.key)
        if program.options:
            self.options(haid, program.options)
        return program

    # ================================
    # Options, statuses, settings and commands
    # ================================

    def options(self, haid: str, options: list[Option]) -> list[Option]:
        return [self.option(haid, option) for option in options]

    def option(self, haid: str, option: Option) -> Option:
        self._check(haid, "Option", None, logging.INFO, "Option", option, option.key, option.value)
        return option

    def statuses(self, haid: str, statuses: list[Status]) -> list[Status]:
        return [self.status(haid, status) for status in statuses]

    def status(self, haid: str, status: Status) -> Status:
        self._add_detail(haid, status)
        self._check(
            haid, "Status", None, logging.WARNING, "Status", status, status.key, status.value
        )
        return status

    def settings(self, haid: str, settings: list[Setting]) -> list[Setting]:
        return [self.setting(haid, setting) for setting in settings]

    def setting(self, haid: str, setting: Setting) -> Setting:
        self._add_detail(haid, setting)
        self._check(
            haid, "Setting", None, logging.WARNING, "Setting", setting, setting.key, setting.value
        )
        return setting

    def commands(self, haid: str, commands: list[Command]) -> list[Command]:
        for command in commands:
            self.is_key(haid, "Command", None, logging.WARNING, "Command", command, command.key)
            # Commands carry no value but are always invoked with true
            if self.reporter is not None:
                self.reporter.add_value(haid, command.key, True, False)
        return commands

    # ================================
    # Events
    # ================================

    def event(self, event: Event) -> Event:
        """Check the items of an appliance event.

        Connection events map to a single constant key, NOTIFY events to the
        option and setting keys (plus the selected and active program), STATUS
        events to the status keys, and EVENT events to the present-state keys.
        """
        group = EVENT_GROUPS.get(event.event)
        if group is None or not event.data:
            return event
        haid = event.id or ""
        name = f"{event.event} Event.data"
        if isinstance(event.data, EventData):
            for index, item in enumerate(event.data.items):
                self._check(
                    haid, "Event", event.event, logging.INFO,
                    f"{name}.items[{index}]", item, item.key, item.value, group,
                )
        else:
            item = event.data
            self._check(
                haid, "Event", event.event, logging.INFO, name, item, item.key, item.value, group
            )
        return event

    # ================================
    # Checks
    # ================================

    def is_program(
        self, haid: str, level: int, name: str, json_obj: BaseModel, literal: str
    ) -> bool:
        """Test whether a program key is recognised."""
        known = self.catalogue.is_program(literal)
        if self.reporter is not None:
            self.reporter.add_value(haid, PROGRAM_KEY, literal, not known)
        if known:
            return True
        if self._due(literal):
            self.log_validation(level, f"Unrecognised {name} literal", name, json_obj, [literal])
        return False

    def is_key(
        self,
        haid: str,
        group: str,
        sub_group: str | None,
        level: int,
        name: str,
        json_obj: BaseModel,
        key: str,
        catalogue_group: str | None = None,
    ) -> ValueSpec | None:
        """Test whether a key is recognised.

        Returns:
            The expected value type, or None if the key is unrecognised
        """
        spec = self.catalogue.lookup(catalogue_group or group, key)
        if self.reporter is not None:
            self.reporter.add_key(haid, group, sub_group, key, spec is None)
        if spec is not None:
            return spec
        if self._due(key):
            self.log_validation(level, f"Unrecognised {name}", name, json_obj, [key])
        return None

    def is_value(
        self,
        haid: str,
        spec: ValueSpec,
        level: int,
        name: str,
        json_obj: BaseModel,
        key: str,
        value: Value,
    ) -> bool:
        """Test whether a value has the type expected for its key."""
        valid = self.catalogue.accepts(spec, value)
        if self.reporter is not None:
            self.reporter.add_value(haid, key, value, not valid)
        if valid:
            return True
        if not self._due(f"{key}={value!r}"):
            return False
        self.log_validation(
            level,
            f"Mismatched type for {name} value",
            name,
            json_obj,
            [f"{value!r} (type {type(value).__name__})", f"{key} expected {spec.describe()}"],
        )
        return False

    def _check(
        self,
        haid: str,
        group: str,
        sub_group: str | None,
        level: int,
        name: str,
        json_obj: BaseModel,
        key: str,
        value: Value,
        catalogue_group: str | None = None,
    ) -> None:
        spec = self.is_key(haid, group, sub_group, level, name, json_obj, key, catalogue_group)
        if spec is not None:
            self.is_value(haid, spec, logging.ERROR, name, json_obj, key, value)
        elif self.reporter is not None:
            self.reporter.add_value(haid, key, value, False)

    def _add_detail(self, haid: str, detail: OptionDefinition | Status | Setting) -> None:
        """Pass the API's own description of a key's values to the reporter."""
        if self.reporter is None:
            return
        self.reporter.add_detail(detail.key, detail.type)
        constraints = detail.constraints
        if constraints is not None:
            self.reporter.add_value(haid, detail.key, constraints.default, False)
            for allowed in constraints.allowedvalues or []:
                self.reporter.add_value(haid, detail.key, allowed, False)

    def _due(self, literal: str) -> bool:
        """Whether an unrecognised key or literal should be logged now."""
        now = time.monotonic()
        due = literal not in self._next_report or self._next_report[literal] <= now
        self._next_report[literal] = now + REPORT_INTERVAL
        return due

    def log_validation(
        self, level: int, message: str, name: str, json_obj: BaseModel, details: list[str]
    ) -> None:
        logger.log(level, f"{message} in Home Connect API:")
        for line in details:
            logger.log(level, f"    {line}")
        logger.debug(f"Received {name} (reformatted)")
        text = json.dumps(json_obj.model_dump(mode="json", exclude_none=True), indent=4)
        for line in text.split("\n"):
            logger.debug(f"    {line}")
