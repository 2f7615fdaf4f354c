"""Request description shared by the transport, retry and authorisation layers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Mapping

from hcapi.settings import IDEMPOTENT_METHODS


@dataclass(frozen=True)
class Request:
    """A single HTTP request as issued to the API.

    Immutable once issued. A retry builds a new instance from the same
    method, path and options.
    """

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str | None = None
    idempotent: bool | None = None

    def __post_init__(self) -> None:
        # Header names are compared case-insensitively by the API
        object.__setattr__(
            self, "headers", {k.lower(): v for k, v in self.headers.items()}
        )
        if self.idempotent is None:
            object.__setattr__(
                self, "idempotent", self.method.upper() in IDEMPOTENT_METHODS
            )

    def with_headers(self, **headers: str) -> Request:
        """Return a copy with additional (or replaced) headers."""
        return replace(self, headers={**self.headers, **headers})

    @property
    def authorization(self) -> str | None:
        return self.headers.get("authorization")
