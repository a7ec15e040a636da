from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from auth.models import TokenPair
from rowt.constants import LOGGER


class TokenStore(ABC):
    @abstractmethod
    async def get(self) -> TokenPair | None:
        raise NotImplementedError

    @abstractmethod
    async def set(self, pair: TokenPair) -> None:
        raise NotImplementedError

    @abstractmethod
    async def clear(self) -> None:
        raise NotImplementedError


class MemoryTokenStore(TokenStore):
    def __init__(self, pair: TokenPair | None = None) -> None:
        self._pair = pair

    async def get(self) -> TokenPair | None:
        return self._pair

    async def set(self, pair: TokenPair) -> None:
        self._pair = pair

    async def clear(self) -> None:
        self._pair = None


class FileTokenStore(TokenStore):
    def __init__(self, path: str | Path = ".rowt_tokens.json") -> None:
        self._path = Path(path)

    async def get(self) -> TokenPair | None:
        payload = self._read()
        if payload is None:
            return None

        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        # A half-written or mistyped pair is treated as no pair at all.
        if not isinstance(access_token, str) or not access_token:
            return None
        if not isinstance(refresh_token, str) or not refresh_token:
            return None
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    async def set(self, pair: TokenPair) -> None:
        self._write(pair.to_payload())

    async def clear(self) -> None:
        self._path.unlink(missing_ok=True)

    def _read(self) -> dict | None:
        if not self._path.exists():
            return None

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except ValueError as error:
            LOGGER.warning("Ignoring unreadable token store file %s: %s", self._path, error)
            return None
        if not isinstance(raw, dict):
            LOGGER.warning(
                "Ignoring token store file %s; expected top-level JSON object.", self._path
            )
            return None
        return raw

    def _write(self, payload: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
