from __future__ import annotations

import httpx

from auth.models import TokenPair
from rowt.constants import LOGIN_PATH, LOGOUT_PATH, REFRESH_PATH
from rowt.errors import RefreshFailedError, RowtError
from rowt.http import raise_for_status


async def _token_request(
    client: httpx.AsyncClient,
    path: str,
    payload: dict,
) -> httpx.Response:
    # Token endpoints are never signed: the caller's access token is the
    # thing being replaced or revoked.
    response = await client.post(path, json=payload)
    return raise_for_status(response)


async def exchange_credentials(
    client: httpx.AsyncClient,
    email: str,
    password: str,
) -> tuple[TokenPair, dict]:
    response = await _token_request(
        client, LOGIN_PATH, {"email": email, "password": password}
    )
    data = response.json()
    if not isinstance(data, dict):
        raise RowtError("Invalid login response.")
    return TokenPair.from_payload(data.get("tokens")), data.get("user") or {}


async def refresh_tokens(client: httpx.AsyncClient, refresh_token: str) -> TokenPair:
    try:
        response = await _token_request(
            client, REFRESH_PATH, {"refresh_token": refresh_token}
        )
        return TokenPair.from_payload(response.json())
    except (RowtError, ValueError) as error:
        raise RefreshFailedError(f"Token refresh rejected: {error}") from error


async def revoke_tokens(client: httpx.AsyncClient, pair: TokenPair | None) -> None:
    payload = {
        "access_token": pair.access_token if pair else None,
        "refresh_token": pair.refresh_token if pair else None,
    }
    await _token_request(client, LOGOUT_PATH, payload)
