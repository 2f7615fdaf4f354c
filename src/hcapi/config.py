"""Client configuration.

The configuration is an explicit object passed to the client; nothing here reads
configuration files. ``ClientConfig.from_env`` is a convenience for scripts that
keep credentials in the environment (or a ``.env`` file).
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from hcapi.settings import API_SCOPES, CHINA_URL, PRODUCTION_URL, SIMULATOR_URL

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in _TRUE_VALUES


class ClientConfig(BaseModel):
    """Settings for a single Home Connect client identifier.

    Attributes:
        client_id: Application identifier from the developer portal.
        client_secret: Only needed for the Authorization Code Grant Flow.
        simulator: Use the appliance simulator (and the silent code flow).
        china: Use the China region endpoint.
        language: Value of the ``accept-language`` header.
        scopes: Scopes requested during authorisation.
        log_headers: Emit request/response headers as debug records.
        log_bodies: Emit request/response bodies as debug records.
        persist_dir: Directory holding persisted tokens and key/value history.
    """

    client_id: str
    client_secret: str | None = None
    simulator: bool = False
    china: bool = False
    language: str = "en-GB"
    scopes: list[str] = Field(default_factory=lambda: list(API_SCOPES))
    log_headers: bool = False
    log_bodies: bool = False
    persist_dir: Path = Path(".hcapi")

    @field_validator("client_id")
    @classmethod
    def validate_client_id(cls, v: str) -> str:
        """Strip surrounding whitespace and reject empty identifiers."""
        v = v.strip()
        if not v:
            raise ValueError("client_id must not be empty")
        return v

    @field_validator("client_secret")
    @classmethod
    def validate_client_secret(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None

    @property
    def base_url(self) -> str:
        """Service endpoint selected by the deployment flags."""
        if self.simulator:
            return SIMULATOR_URL
        if self.china:
            return CHINA_URL
        return PRODUCTION_URL

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Build a configuration from ``HC_*`` environment variables.

        Loads a ``.env`` file first if one is present.

        Raises:
            ValueError: If ``HC_CLIENT_ID`` is missing
        """
        load_dotenv()

        client_id = os.getenv("HC_CLIENT_ID")
        if not client_id:
            raise ValueError("Missing required environment variable: HC_CLIENT_ID")

        debug = _env_flag("HC_DEBUG")
        values: dict = {
            "client_id": client_id,
            "client_secret": os.getenv("HC_CLIENT_SECRET"),
            "simulator": _env_flag("HC_SIMULATOR"),
            "china": _env_flag("HC_CHINA"),
            "log_headers": debug,
            "log_bodies": debug,
        }
        if os.getenv("HC_LANGUAGE"):
            values["language"] = os.getenv("HC_LANGUAGE")
        if os.getenv("HC_PERSIST_DIR"):
            values["persist_dir"] = Path(os.environ["HC_PERSIST_DIR"])
        return cls(**values)
