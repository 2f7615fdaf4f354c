"""Guidance for Device Flow authorisation failures.

The token endpoint reports most configuration mistakes as a 400 response with
an OAuth error key. These are translated into instructions the user can act
on instead of a raw error message.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Literal

from hcapi.transport.errors import StatusCodeError
from hcapi.utils import columns

logger = logging.getLogger(__name__)

ClientAction = Literal["create", "modify", "set"]

ERRORS_DOC_URL = "https://api-docs.home-connect.com/authorization?#authorization-errors"
SUPPORT_URL = "https://developer.home-connect.com/support/contact"
CREATE_APPLICATION_URL = "https://developer.home-connect.com/applications/add"
EDIT_APPLICATION_URL = "https://developer.home-connect.com/applications/{client_id}/edit"


@dataclass
class ClientGuide:
    action: Literal["create", "modify"]
    uri: str
    settings: dict[str, str]


@dataclass
class AuthHelp:
    """Structured help for an authorisation failure."""

    prescript: list[str] = field(default_factory=list)
    client: ClientGuide | None = None
    postscript: list[str] = field(default_factory=list)

    def lines(self) -> list[str]:
        """Render the help as plain text lines."""
        text = list(self.prescript)
        if self.client:
            verb = "Create a new" if self.client.action == "create" else "Edit the"
            text += [f"{verb} application:", f"    {self.client.uri}"]
            text.append("Ensure that the application settings are configured as follows:")
            rows = [[name, value] for name, value in self.client.settings.items()]
            text += [f"    {line}" for line in columns(rows)]
        text += self.postscript
        text += [
            "Descriptions of authorisation error messages can be found in the"
            " Home Connect API documentation:",
            f"    {ERRORS_DOC_URL}",
            "For additional support contact the Home Connect Developer team:",
            f"    {SUPPORT_URL}",
        ]
        return text

    def log(self, target: logging.Logger = logger) -> None:
        for line in self.lines():
            target.warning(line)


def device_flow_help(err: BaseException, client_id: str) -> AuthHelp | None:
    """Build help for a failed Device Flow request.

    Args:
        err: The exception that ended the Device Flow
        client_id: The configured client identifier

    Returns:
        Help, or None if the failure was not a 400 response
    """
    if not isinstance(err, StatusCodeError) or err.status_code != 400:
        return None

    help = AuthHelp()
    action = _decode_error(help, err, client_id)
    if action in ("create", "modify"):
        help.client = _client_settings_guide(action, client_id)
        help.postscript.append(
            "Accurately copy the Client ID value (64 hexadecimal characters) from the"
            " Home Connect Developer Program site to the client_id setting."
        )
    help.postscript.append(
        "Note that applications created or edited on the Home Connect Developer Program"
        " site often take several minutes to propagate to the authorisation servers."
        " If you think the configuration is correct, then wait 15 minutes and try again"
        " before seeking help elsewhere or reporting an issue."
    )
    return help


def _decode_error(help: AuthHelp, err: StatusCodeError, client_id: str) -> ClientAction | None:
    key = err.key
    if key == "access_denied":
        help.prescript.append(
            "The specified Home Connect or SingleKey ID account cannot currently be used."
            " Check that it works correctly in the Home Connect app. It may be necessary"
            " to convert a Home Connect account to a SingleKey ID, or accept new terms of"
            " use within the app."
        )
    elif key == "expired_token":
        help.prescript += [
            "Authorisation of the Home Connect or SingleKey ID took too long."
            " Visit the provided web link and complete authorisation quickly.",
            "Pay careful attention to any error messages displayed on the"
            " Home Connect / SingleKey ID web pages.",
        ]
    elif key == "invalid_client":
        help.prescript.append(
            "Client Secret is not required with Device Flow authorisation."
            " Remove the client_secret setting (or set it to the correct value)."
        )
    elif key == "unauthorized_client":
        return _decode_unauthorized_client(help, err.description, client_id)
    return None


def _decode_unauthorized_client(
    help: AuthHelp, description: str | None, client_id: str
) -> ClientAction | None:
    if description == "Invalid client id":
        if len(client_id) != 64:
            help.prescript.append(
                "The Client ID should be 64 hexadecimal characters, but the value"
                f" specified for client_id is {len(client_id)} characters long."
            )
            return "set"
        if not re.fullmatch(r"[0-9A-Fa-f]+", client_id):
            help.prescript.append(
                "The Client ID should be 64 hexadecimal characters, but the value"
                " specified for client_id includes non-hexadecimal characters."
            )
            return "set"
        help.prescript.append(
            "The configured Client ID does not appear to be a valid Home Connect application."
        )
        return "modify"

    if description == "request rejected by client authorization authority (developer portal)":
        help.prescript.append(
            "The configured Client ID does not appear to be a valid Home Connect application."
            " If it was created recently then it may still be propagating to the"
            " authorisation servers."
        )
        return "modify"

    if description == "client not authorized for this oauth flow (grant_type)":
        help.prescript.append(
            "The configured Client ID has been incorrectly configured with the OAuth Flow"
            ' set to "Authorization Code Grant Flow". Create a new application using'
            ' "Device Flow" instead. This setting cannot be changed after the application'
            " has been created."
        )
        return "create"
    return None


def _client_settings_guide(action: Literal["create", "modify"], client_id: str) -> ClientGuide:
    settings = {
        "Home Connect User Account": "Same as the Home Connect or SingleKey ID email address",
        "Success Redirect": "Leave blank",
        "One Time Token": "Not ticked",
        "Status": "Enabled",
        "Client Secret Always Required": "No",
    }
    if action == "create":
        settings["OAuth Flow"] = 'Set to "Device Flow"'
        uri = CREATE_APPLICATION_URL
    else:
        uri = EDIT_APPLICATION_URL.format(client_id=client_id)
    return ClientGuide(action=action, uri=uri, settings=settings)
