"""File-based persistence for tokens and other client state.

Each key is stored as one JSON file under the persistence directory. Writes go
to a temporary file that is then renamed over the original, so readers (in
this or another process) never see a partially written file. Files are
chmod 0600 (owner-only read/write).
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import stat
import tempfile
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from hcapi.auth.models import AbsoluteToken

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"

_tokens_adapter = TypeAdapter(dict[str, AbsoluteToken])


class StoredTokenError(Exception):
    """Raised when no usable saved token exists for a client."""

    pass


class JsonFileStore:
    """Key/value store holding one JSON document per key."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        name = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return self.directory / f"{name}.json"

    async def get_item(self, key: str) -> Any | None:
        """Read the value for a key, or None if it has never been written.

        Raises:
            ValueError: If the stored file is not valid JSON
        """
        return await asyncio.to_thread(self._read, self._path(key))

    async def set_item(self, key: str, value: Any) -> None:
        """Replace the value for a key."""
        await asyncio.to_thread(self._write, self._path(key), value)

    @staticmethod
    def _read(path: Path) -> Any | None:
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _write(self, path: Path, value: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2)
            os.chmod(temp_name, stat.S_IRUSR | stat.S_IWUSR)
            os.replace(temp_name, path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise


class TokenStore:
    """Saved tokens for any number of clients, keyed by client identifier.

    All clients share a single stored map. Saving a token re-reads the map
    and replaces only the entry for that client, so tokens saved by other
    clients (or other processes) are preserved.
    """

    def __init__(self, store: JsonFileStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()

    async def load_tokens(self) -> dict[str, AbsoluteToken]:
        """Read all saved tokens.

        Raises:
            StoredTokenError: If nothing is saved or the data is incompatible
        """
        try:
            saved = await self._store.get_item(TOKEN_KEY)
        except (OSError, ValueError) as e:
            raise StoredTokenError(f"Unable to read saved authorisation data: {e}") from e
        if not saved:
            raise StoredTokenError("No saved authorisation data found")
        try:
            return _tokens_adapter.validate_python(saved)
        except ValidationError as e:
            raise StoredTokenError("Incompatible saved authorisation data") from e

    async def load_token(self, client_id: str) -> AbsoluteToken:
        """Read the saved token for one client.

        Raises:
            StoredTokenError: If there is no usable token for this client
        """
        tokens = await self.load_tokens()
        token = tokens.get(client_id)
        if token is None:
            raise StoredTokenError("No saved authorisation for this client")
        return token

    async def save_token(self, client_id: str, token: AbsoluteToken) -> None:
        """Save (or replace) the token for one client."""
        async with self._lock:
            try:
                tokens = await self.load_tokens()
            except StoredTokenError as e:
                logger.debug(f"Failed to load saved authorisation tokens: {e}")
                tokens = {}
            tokens[client_id] = token
            await self._store.set_item(
                TOKEN_KEY, {cid: t.to_storage() for cid, t in tokens.items()}
            )
        logger.debug("Authorisation token saved")
