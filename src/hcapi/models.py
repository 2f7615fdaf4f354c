"""Response shapes returned by the Home Connect API.

These models check structure only (field presence and primitive types). The
meaning of individual keys and values is checked separately against the
key/value catalogue, so that unknown keys never cause a request to fail.

Every model tolerates extra fields; ``extra_fields`` lists them so the caller
can log them without rejecting the response.
"""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict

Value = Union[str, int, float, bool, None]


class APIModel(BaseModel):
    """Base for all response models."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


def extra_fields(model: BaseModel, path: str = "response") -> list[str]:
    """List the paths of all fields not declared by a model (recursively).

    Args:
        model: A validated model instance
        path: Name used for the root of the reported paths

    Returns:
        Paths such as ``"response.data.colour"``
    """
    found = [f"{path}.{name}" for name in (model.model_extra or {})]
    for name in type(model).model_fields:
        found.extend(_extra_fields_of(getattr(model, name), f"{path}.{name}"))
    return found


def _extra_fields_of(value: object, path: str) -> list[str]:
    if isinstance(value, BaseModel):
        return extra_fields(value, path)
    if isinstance(value, list):
        found = []
        for index, item in enumerate(value):
            found.extend(_extra_fields_of(item, f"{path}[{index}]"))
        return found
    return []


# ================================
# Common
# ================================


class Constraints(APIModel):
    min: float | None = None
    max: float | None = None
    stepsize: float | None = None
    allowedvalues: list[str] | None = None
    displayvalues: list[str] | None = None
    access: Literal["read", "readWrite"] | None = None
    default: Value = None
    liveupdate: bool | None = None


class ErrorDetail(APIModel):
    key: str
    description: str | None = None
    developerMessage: str | None = None
    value: str | None = None


class ErrorResponse(APIModel):
    """API error body (excluding authorisation errors)."""

    error: ErrorDetail


# ================================
# Appliances
# ================================


class HomeAppliance(APIModel):
    haId: str
    name: str
    type: str
    brand: str
    vib: str
    enumber: str
    connected: bool


class HomeAppliances(APIModel):
    homeappliances: list[HomeAppliance]


class HomeAppliancesWrapper(APIModel):
    data: HomeAppliances


class HomeApplianceWrapper(APIModel):
    data: HomeAppliance


# ================================
# Programs
# ================================


class ProgramConstraints(APIModel):
    available: bool | None = None
    execution: Literal["none", "selectonly", "startonly", "selectandstart"] | None = None


class Option(APIModel):
    key: str
    name: str | None = None
    value: Value
    unit: str | None = None
    displayvalue: str | None = None


class ProgramListEntry(APIModel):
    key: str
    name: str | None = None
    constraints: ProgramConstraints | None = None


class Program(APIModel):
    key: str | None = None
    name: str | None = None
    options: list[Option] | None = None


class Programs(APIModel):
    programs: list[ProgramListEntry]
    selected: Program | None = None
    active: Program | None = None


class ProgramsWrapper(APIModel):
    data: Programs


class ProgramWrapper(APIModel):
    data: Program


class OptionDefinition(APIModel):
    key: str
    name: str | None = None
    type: str
    unit: str | None = None
    constraints: Constraints | None = None


class ProgramDefinition(APIModel):
    key: str
    name: str | None = None
    options: list[OptionDefinition] | None = None


class ProgramDefinitionWrapper(APIModel):
    data: ProgramDefinition


class Options(APIModel):
    options: list[Option]


class OptionsWrapper(APIModel):
    data: Options


class OptionWrapper(APIModel):
    data: Option


# ================================
# Status, settings and commands
# ================================


class Status(APIModel):
    key: str
    name: str | None = None
    value: Value
    displayvalue: str | None = None
    unit: str | None = None
    type: str | None = None
    constraints: Constraints | None = None


class Statuses(APIModel):
    status: list[Status]


class StatusesWrapper(APIModel):
    data: Statuses


class StatusWrapper(APIModel):
    data: Status


class Setting(APIModel):
    key: str
    name: str | None = None
    type: str | None = None
    value: Value
    displayvalue: str | None = None
    unit: str | None = None
    constraints: Constraints | None = None


class Settings(APIModel):
    settings: list[Setting]


class SettingsWrapper(APIModel):
    data: Settings


class SettingWrapper(APIModel):
    data: Setting


class Command(APIModel):
    key: str
    name: str | None = None
    description: str | None = None


class Commands(APIModel):
    commands: list[Command]


class CommandsWrapper(APIModel):
    data: Commands


# ================================
# Events
# ================================

EventKind = Literal[
    "KEEP-ALIVE",
    "CONNECTED",
    "DISCONNECTED",
    "PAIRED",
    "DEPAIRED",
    "STATUS",
    "EVENT",
    "NOTIFY",
]

CONNECTION_EVENTS = ("CONNECTED", "DISCONNECTED", "PAIRED", "DEPAIRED")
DATA_EVENTS = ("STATUS", "EVENT", "NOTIFY")


class EventItem(APIModel):
    key: str
    name: str | None = None
    uri: str | None = None
    timestamp: int | None = None
    level: Literal["critical", "alert", "warning", "hint", "info"] | None = None
    handling: Literal["none", "acknowledge", "decision"] | None = None
    value: Value = None
    displayvalue: str | None = None
    unit: str | None = None


class EventData(APIModel):
    items: list[EventItem]
    haId: str | None = None


class Event(APIModel):
    """A single record received from the event stream.

    Connection events carry no data (or an empty string); data events carry a
    list of key/value items.
    """

    event: EventKind
    id: str | None = None
    data: EventItem | EventData | Literal[""] | None = None

    @property
    def items(self) -> list[EventItem]:
        """Key/value items carried by the event (possibly a single bare item)."""
        if isinstance(self.data, EventData):
            return self.data.items
        if isinstance(self.data, EventItem):
            return [self.data]
        return []
