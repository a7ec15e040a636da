from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from .constants import LOGGER
from .errors import APIError, UnauthenticatedError

if TYPE_CHECKING:
    from auth.session import RefreshCoordinator


def _friendly_error_message(status_code: int) -> str:
    if status_code == 401:
        return "Authentication failed. Your Rowt session may have expired."
    if status_code == 403:
        return "You don't have permission to perform this action."
    if status_code == 404:
        return "The requested resource was not found on Rowt."
    if status_code == 429:
        return "Rate limit exceeded. Please try again later."
    if status_code >= 500:
        return "Rowt API is experiencing issues. Please try again later."
    return f"Rowt API request failed with status {status_code}."


def _error_payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text}


def raise_for_status(response: httpx.Response) -> httpx.Response:
    if response.status_code < 400:
        return response

    payload = _error_payload(response)
    message = _friendly_error_message(response.status_code)
    if response.status_code == 401:
        raise UnauthenticatedError(message)
    raise APIError(response.status_code, message, payload)


def build_log_hooks(logger: logging.Logger | None = None) -> dict[str, list]:
    log = logger or LOGGER

    async def log_request(request: httpx.Request) -> None:
        log.info("Rowt API request %s %s", request.method, request.url)

    async def log_response(response: httpx.Response) -> None:
        log.info(
            "Rowt API response %s %s -> %s",
            response.request.method,
            response.request.url,
            response.status_code,
        )
        if response.status_code >= 400:
            body = await response.aread()
            text = body.decode("utf-8", errors="replace")
            if len(text) > 1000:
                text = text[:1000] + "...<truncated>"
            log.warning("Rowt API error body: %s", text)

    return {"request": [log_request], "response": [log_response]}


class SessionPipeline:
    """Sign, send and gatekeep calls against the Rowt API.

    Every authenticated call goes through :meth:`request`. A 401 on the first
    attempt parks the call on the refresh coordinator and re-sends it once with
    the refreshed access token; a 401 on that retry is terminal. A call whose
    token was already replaced by a finished refresh is re-sent with the stored
    token instead.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        coordinator: "RefreshCoordinator",
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._coordinator = coordinator
        self._logger = logger or LOGGER

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def sign(self, request: httpx.Request, access_token: str | None = None) -> None:
        token = access_token or await self._coordinator.access_token()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"

    async def send(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: Any = None,
        access_token: str | None = None,
        signed: bool = True,
    ) -> httpx.Response:
        request = self._client.build_request(method, url, json=json, params=params)
        if signed:
            await self.sign(request, access_token)
        return await self._client.send(request)

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: Any = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        sent_token = await self._coordinator.access_token() if authenticated else None
        response = await self.send(
            method,
            url,
            json=json,
            params=params,
            access_token=sent_token,
            signed=authenticated,
        )
        if not authenticated or response.status_code != 401:
            return raise_for_status(response)

        await response.aclose()
        current_token = await self._coordinator.access_token()
        if (
            not self._coordinator.refresh_in_progress
            and current_token
            and current_token != sent_token
        ):
            # A refresh settled while this call was in flight.
            self._logger.info("401 from %s %s, token already refreshed", method, url)
            access_token = current_token
        else:
            self._logger.info("401 from %s %s, waiting for token refresh", method, url)
            access_token = await self._coordinator.on_auth_failure()

        self._logger.info("Retrying %s %s with refreshed token", method, url)
        retried = await self.send(
            method, url, json=json, params=params, access_token=access_token
        )
        if retried.status_code == 401:
            raise UnauthenticatedError(
                "Request was rejected again after refreshing the access token."
            )
        return raise_for_status(retried)
