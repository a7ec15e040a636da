from __future__ import annotations

from dataclasses import dataclass

from rowt.errors import RowtError


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str

    @classmethod
    def from_payload(cls, payload: dict) -> "TokenPair":
        if not isinstance(payload, dict):
            raise RowtError("Invalid token response.")

        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        if not isinstance(access_token, str) or not access_token:
            raise RowtError("Invalid token response: missing access_token.")
        if not isinstance(refresh_token, str) or not refresh_token:
            raise RowtError("Invalid token response: missing refresh_token.")

        return cls(access_token=access_token, refresh_token=refresh_token)

    def to_payload(self) -> dict[str, str]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
        }
