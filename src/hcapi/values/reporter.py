"""Reporting of unrecognised keys and values.

Every key and value seen in API responses is recorded, whether or not it
is recognised, so that a report can describe complete types. Unrecognised
ones are flagged. After a quiet period (the first report usually follows
several closely spaced requests) a single summary is logged, containing
type declarations for the affected keys and a link for submitting them
upstream.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Literal
from urllib.parse import urlencode

from hcapi.auth.storage import JsonFileStore
from hcapi.models import HomeAppliance, Value
from hcapi.settings import CLIENT_VERSION, NEW_ISSUE_URL
from hcapi.utils import columns, format_list, log_error, plural

logger = logging.getLogger(__name__)

# Longer than the one minute rate-limit interval (seconds)
SUMMARY_DELAY = 2 * 60.0

REPORT_COMMENT = "(unrecognised)"

# API value type names that are not enumerations
TYPE_MAP = {
    "String": "string",
    "Double": "number",
    "Int": "number",
    "Boolean": "boolean",
}

RESTORED_HAID = "Restored from previous session"

# Registry key for program keys (they are values rather than keys)
PROGRAM_KEY = "ProgramKey"


@dataclass
class ValueLiteral:
    value: Value
    report: bool


@dataclass
class ValueInfo:
    """Type of the values for one or more keys.

    ``type`` is the API type name (an enum name or ``String``, ``Double``,
    ``Int`` or ``Boolean``) when the API has described it.
    """

    type: str | None = None
    values: dict[str, ValueLiteral] = field(default_factory=dict)


@dataclass
class KeyInfo:
    key: str
    value: ValueInfo | None = None
    report: bool = False


@dataclass
class Group:
    keys: dict[str, KeyInfo] = field(default_factory=dict)


def _literal_text(value: Value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _typeof(value: Value) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    return "string"


def _version_tuple(version: str) -> tuple[int, ...]:
    return tuple(int(part) for part in re.findall(r"\d+", version)[:3])


def is_compatible_version(saved: str, current: str) -> bool:
    """Caret compatibility: same leading non-zero component and not newer."""
    saved_parts, current_parts = _version_tuple(saved), _version_tuple(current)
    if not saved_parts or saved_parts > current_parts:
        return False
    for saved_part, current_part in zip(saved_parts, current_parts):
        if saved_part != current_part:
            return False
        if saved_part != 0:
            return True
    return True


class UnknownValueReporter:
    """Registry of observed keys and values, and reporter of unrecognised ones.

    Flagged ``key.value`` signatures are collected in a pending set. Each new
    signature restarts a single debounce timer; when it fires the registry is
    persisted and, if the types of all flagged keys are known, the summary is
    logged and the pending signatures move to the reported set (so the same
    drift is never reported twice).
    """

    def __init__(
        self,
        client_id: str,
        store: JsonFileStore | None = None,
        *,
        version: str = CLIENT_VERSION,
        summary_delay: float = SUMMARY_DELAY,
        issue_url: str = NEW_ISSUE_URL,
    ) -> None:
        self.persist_key = f"key-value {client_id}"
        self._store = store
        self._version = version
        self._summary_delay = summary_delay
        self._issue_url = issue_url

        self._appliances: dict[str, HomeAppliance] = {}
        self._appliance_reports: set[str] = set()
        self.groups: dict[str, Group] = {}
        self.keys: dict[str, KeyInfo] = {}

        self.reported: set[str] = set()
        self.pending: set[str] = set()
        self._timer: asyncio.Task | None = None

    # ================================
    # Registry
    # ================================

    def set_appliances(self, appliances: list[HomeAppliance]) -> None:
        """Update the appliance descriptions used in reports."""
        for appliance in appliances:
            self._appliances[appliance.haId] = appliance

    def add_detail(self, key: str, type: str | None) -> None:
        """Record the API's type name for a key (if it provided one)."""
        if type is None:
            return
        if key not in self.keys:
            self.keys[key] = KeyInfo(key, ValueInfo(type=type))
        elif self.keys[key].value is None:
            self.keys[key].value = ValueInfo(type=type)
        elif self.keys[key].value.type is None:
            self.keys[key].value.type = type

    def add_key(
        self, haid: str, group: str, sub_group: str | None, key: str, report: bool
    ) -> None:
        """Record a key seen in a group, flagging it if unrecognised.

        Args:
            haid: Appliance that reported the key
            group: Group name such as ``Option`` or ``Event``
            sub_group: Optional qualifier, such as the event type ``NOTIFY``
            key: The key
            report: Whether the key is unrecognised
        """
        if sub_group:
            group += sub_group[:1].upper() + sub_group[1:].lower()

        this_group = self.groups.setdefault(group, Group())
        this_key = this_group.keys.get(key)
        if this_key is None:
            this_key = self.keys.setdefault(key, KeyInfo(key, report=report))
            this_group.keys[key] = this_key

        if report:
            this_key.report = True
            self._appliance_reports.add(haid)
            self.schedule_summary(group, key)

    def add_value(self, haid: str, key: str, value: Value, report: bool) -> None:
        """Record a value seen for a key (also used for program keys).

        ``None`` values are ignored.
        """
        if value is None:
            return

        this_key = self.keys.setdefault(key, KeyInfo(key))
        if this_key.value is None:
            this_key.value = ValueInfo()
        text = _literal_text(value)
        literal = this_key.value.values.setdefault(text, ValueLiteral(value, report))

        if report:
            this_key.report = True
            literal.report = True
            self._appliance_reports.add(haid)
            self.schedule_summary(key, text)

    # ================================
    # Scheduling
    # ================================

    def schedule_summary(self, key: str, value: str) -> None:
        """Add a signature to the pending report and restart the debounce timer."""
        signature = f"{key}.{value}"
        if signature in self.reported:
            return
        self.pending.add(signature)

        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.create_task(self._summary_after_delay())

    async def _summary_after_delay(self) -> None:
        await asyncio.sleep(self._summary_delay)
        try:
            await self.summarise()
        except Exception as err:
            log_error(logger, "Reporting unrecognised keys/values", err)

    async def summarise(self) -> bool:
        """Persist the registry and log the report if it is complete.

        Returns:
            True if a report was logged
        """
        await self.write_persist()

        unknown = self.get_unknown_types()
        if unknown:
            logger.info("Delaying report of unrecognised keys/values until these types are known:")
            for key in unknown:
                logger.info(f"    {key}")
                logger.debug(f"    {self.keys[key]}")
            return False

        self.log_summary()
        self.reported |= self.pending
        self.pending.clear()
        return True

    async def close(self) -> None:
        """Cancel any pending report."""
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

    def get_unknown_types(self) -> list[str]:
        """Flagged keys whose value type cannot yet be determined."""
        return sorted(
            key.key
            for key in self.keys.values()
            if key.report and self.get_typeof(key.value) == "unknown"
        )

    # ================================
    # Report
    # ================================

    def report_lines(self) -> list[str]:
        """Build the type declarations for the report."""
        self.merge_same_enums()

        lines: list[str] = []
        report_values = [
            value
            for value in self.get_values_of_enum_type()
            if any(literal.report for literal in value.values.values())
        ]
        report_unions = [value for value in report_values if not self.is_enum_preferred(value)]
        if report_unions:
            lines += ["", "// Union types"]
            for value in report_unions:
                lines += self.make_value_union(value)
        report_enums = [value for value in report_values if self.is_enum_preferred(value)]
        if report_enums:
            lines += ["", "// Enumerated types"]
            for value in report_enums:
                lines += self.make_value_enum(value)

        lines.append("")
        for group_name in sorted(self.groups):
            if any(key.report for key in self.groups[group_name].keys.values()):
                lines += [*self.make_group_interface(group_name), ""]
        return lines

    def log_summary(self) -> None:
        lines = self.report_lines()

        appliances = sorted(self._appliance_reports)
        title = f"HomeConnect API unexpected values ({self.make_appliance_description(appliances, 'short')})"
        issue_url = self.make_issue_url(title, self.make_appliance_description(appliances, "long"))

        logger.warning("Home Connect API returned keys/values that are unrecognised by this client")
        logger.warning("Please report these by creating a new issue using this link:")
        logger.warning(f"    {issue_url}")
        logger.warning("Most of the issue fields will be filled-in appropriately.")
        logger.warning('Just paste the following into the "Log File" field and submit the issue:')

        delimiter = "=" * max(len(line) for line in lines)
        logger.warning(delimiter)
        for line in lines:
            logger.warning(line)
        logger.warning(delimiter)

    def make_group_interface(self, group_name: str) -> list[str]:
        group = self.groups[group_name]
        properties = []
        for key_name in sorted(group.keys):
            key = group.keys[key_name]
            line = f"{self.make_type(key.value)};"
            if key.report:
                line += f" // {REPORT_COMMENT}"
            properties.append([f"'{key.key}'?:", line])
        return [
            f"// {group_name}",
            f"export interface {group_name}Values {{",
            *(f"    {line}" for line in columns(properties)),
            "}",
        ]

    def make_value_union(self, value: ValueInfo) -> list[str]:
        literals = sorted(value.values)
        lines = []
        for index, literal in enumerate(literals):
            line = ("    " if index == 0 else "  | ") + f"'{literal}'"
            if index == len(literals) - 1:
                line += ";"
            if value.values[literal].report:
                line += f" // {REPORT_COMMENT}"
            lines.append(line)
        return [f"export type {self.make_type(value)} =", *lines]

    def make_value_enum(self, value: ValueInfo) -> list[str]:
        literals = sorted(value.values)
        rows = []
        for index, literal in enumerate(literals):
            line = f"= '{literal}'"
            if index != len(literals) - 1:
                line += ","
            if value.values[literal].report:
                line += f" // {REPORT_COMMENT}"
            rows.append([re.sub(r"^.*\.", "", literal), line])
        return [
            f"export enum {self.make_type(value)} {{",
            *(f"    {line}" for line in columns(rows)),
            "}",
        ]

    def make_type(self, value: ValueInfo | None) -> str:
        """Name the type of a value.

        Uses the API's type name if known. Otherwise string literals that all
        look like program keys are ``ProgramKey``, and literals sharing a
        common dotted prefix are named after it. Anything else falls back to
        the primitive types of the literals.
        """
        if value is not None and value.type:
            return TYPE_MAP.get(value.type) or self.make_enum_name(value.type)

        literals_type = self.get_typeof(value)
        if value is not None and literals_type == "string":
            literals = list(value.values)
            if all(".Program." in literal for literal in literals):
                return PROGRAM_KEY
            is_string = any(re.search(r"[ :]", literal) for literal in literals)
            types = [self.make_enum_name(re.sub(r"\.[^.]*$", "", literal)) for literal in literals]
            if not is_string and all(name == types[0] for name in types):
                return types[0]
        return literals_type

    def is_enum_type(self, value: ValueInfo) -> bool | None:
        """Whether a value is an enum (None if it cannot be determined)."""
        if value.type:
            return value.type not in TYPE_MAP
        if re.search(r"\b(boolean|number)\b", self.get_typeof(value)):
            return False
        return None

    @staticmethod
    def get_typeof(value: ValueInfo | None) -> str:
        """Primitive types of the literals seen, e.g. ``"string | number"``."""
        types: list[str] = []
        for literal in (value.values.values() if value else []):
            type_name = _typeof(literal.value)
            if type_name not in types:
                types.append(type_name)
        return " | ".join(types) if types else "unknown"

    def merge_same_enums(self) -> None:
        """Merge values that resolve to the same enum name."""
        enums: dict[str, ValueInfo] = {}
        for key in list(self.keys.values()):
            value = key.value
            name = self.make_type(value)
            if value is not None and name not in ("string", "number", "boolean", "unknown"):
                existing = enums.setdefault(name, value)
                if existing is not value:
                    self.merge_enum_value(existing, value)

    def merge_enum_value(self, to: ValueInfo, source: ValueInfo) -> None:
        """Move the literals of ``source`` into ``to`` and repoint its keys."""
        for value in (to, source):
            if value.type and value.type in TYPE_MAP:
                raise ValueError(f"Cannot merge non-enum type {value.type}")
        if to.type and source.type and to.type != source.type:
            raise ValueError(f"Cannot merge enum types {to.type} and {source.type}")

        for text, literal in source.values.items():
            merged = to.values.setdefault(text, literal)
            if literal.report:
                merged.report = True

        for key in self.keys.values():
            if key.value is source:
                key.value = to

    @staticmethod
    def make_enum_name(type: str) -> str:
        name = re.sub(r"^.*(EnumType|Option|Setting|Status)\.", "", type)
        return name.replace(".", "")

    def make_issue_url(self, title: str, appliances: str) -> str:
        params = urlencode({"title": title, "version": self._version, "appliance": appliances})
        return f"{self._issue_url}&{params}"

    def make_appliance_description(
        self, haids: list[str], style: Literal["short", "long"] = "long"
    ) -> str:
        """Describe the appliances that reported unrecognised keys/values."""
        if all(haid in self._appliances for haid in haids):
            descriptions = []
            for haid in haids:
                appliance = self._appliances[haid]
                if style == "short":
                    descriptions.append(appliance.enumber)
                else:
                    descriptions.append(f"{appliance.brand} {appliance.type} {appliance.enumber}")
            return format_list(descriptions)
        if style == "short":
            return plural(len(haids), "appliance")
        return format_list(sorted(haids))

    def get_values_of_enum_type(self) -> list[ValueInfo]:
        """Distinct values that are (or might be) enums, sorted by type name."""
        values: list[ValueInfo] = []
        for key in self.keys.values():
            value = key.value
            if (
                value is not None
                and self.is_enum_type(value) is not False
                and value.values
                and not any(value is seen for seen in values)
            ):
                values.append(value)
        return sorted(values, key=self.make_type)

    def is_enum_preferred(self, value: ValueInfo) -> bool:
        """Events, settings and states read better as enums than unions."""
        return any(
            re.search(r"\.(Event|Setting|State)\.", key.key)
            for key in self.keys.values()
            if key.value is value
        )

    # ================================
    # Persistence
    # ================================

    async def restore(self) -> None:
        """Restore keys and values seen in previous sessions."""
        if self._store is None:
            return
        try:
            saved = await self._store.get_item(self.persist_key)
        except (OSError, ValueError) as err:
            log_error(logger, "Read keys/values", err)
            return
        if not isinstance(saved, dict) or not saved.get("version"):
            return
        if not is_compatible_version(saved["version"], self._version):
            logger.debug(f"Ignoring keys/values saved by version {saved['version']}")
            return

        keys = saved.get("keys", [])
        values = saved.get("values", [])
        for item in keys:
            self.add_key(RESTORED_HAID, item["group"], None, item["key"], False)
        for item in values:
            self.add_value(RESTORED_HAID, item["key"], item["value"], False)
        logger.debug(f"Restored {plural(len(keys), 'key')} and {plural(len(values), 'value')}")

    async def write_persist(self) -> None:
        """Save the keys and values that have been seen."""
        if self._store is None:
            return
        snapshot = {
            "keys": [
                {"group": group_name, "key": key}
                for group_name, group in self.groups.items()
                for key in group.keys
            ],
            "values": [
                {"key": key.key, "value": literal.value}
                for key in self.keys.values()
                for literal in (key.value.values.values() if key.value else [])
            ],
            "version": self._version,
        }
        try:
            await self._store.set_item(self.persist_key, snapshot)
        except OSError as err:
            log_error(logger, "Write keys/values", err)
