"""Observable authorisation status."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from hcapi.auth.models import AuthorisationStatus, Busy

logger = logging.getLogger(__name__)


class StatusChannel:
    """Holds the current authorisation status and notifies observers of changes.

    Exactly one status is current at any time. Observers either read
    ``current`` or wait for transitions; a slow observer sees the latest
    status rather than every intermediate one.
    """

    def __init__(self, initial: AuthorisationStatus | None = None) -> None:
        self._current: AuthorisationStatus = initial or Busy()
        self._version = 0
        self._changed = asyncio.Event()

    @property
    def current(self) -> AuthorisationStatus:
        return self._current

    @property
    def version(self) -> int:
        """Number of transitions published so far."""
        return self._version

    def publish(self, status: AuthorisationStatus) -> None:
        """Make ``status`` current and wake every waiting observer."""
        if status == self._current:
            return
        logger.debug(f"Authorisation status {status.state.value}")
        self._current = status
        self._version += 1
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    async def wait_for_change(self, since: int | None = None) -> AuthorisationStatus:
        """Wait until the status changes.

        Args:
            since: Version previously observed; returns immediately if the
                channel has already moved on from it

        Returns:
            The new current status
        """
        if since is not None and since != self._version:
            return self._current
        await self._changed.wait()
        return self._current

    async def __aiter__(self) -> AsyncIterator[AuthorisationStatus]:
        """Yield the current status, then each subsequent one."""
        version = self._version
        yield self._current
        while True:
            status = await self.wait_for_change(version)
            version = self._version
            yield status
