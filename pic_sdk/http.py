"""HTTP client for the PocketIC server control plane."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final

import aiohttp

from .errors import (
    DecodeError,
    ServerBusyError,
    ServerConnectionError,
    ServerRequestTimeoutError,
    ServerResponseError,
    UnknownStateError,
)

_LOGGER = logging.getLogger(__name__)

POLLING_INTERVAL: Final = 0.01
DEFAULT_PROCESSING_TIMEOUT: Final = 30.0

JSON_HEADERS: Final = {"Content-Type": "application/json"}
BLOB_HEADERS: Final = {"Content-Type": "application/octet-stream"}


@dataclass(frozen=True)
class HttpResponse:
    """Fully read HTTP response."""

    status: int
    reason: str
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        if not self.body:
            return None
        try:
            return json.loads(self.body)
        except ValueError as err:
            raise DecodeError(f"Response body is not JSON (status {self.status})") from err


@dataclass(frozen=True)
class _Processing:
    """The server accepted the request and is still working on it."""

    state_label: str
    op_id: str


def _processing_metadata(payload: Any) -> _Processing | None:
    if (
        isinstance(payload, Mapping)
        and isinstance(payload.get("state_label"), str)
        and isinstance(payload.get("op_id"), str)
    ):
        return _Processing(payload["state_label"], payload["op_id"])
    return None


def _json_payload(response: HttpResponse) -> Any:
    try:
        return response.json()
    except DecodeError:
        if response.status >= 400:
            raise ServerResponseError(
                response.status, response.text() or response.reason or "unexpected error"
            ) from None
        raise


def interpret_json_response(response: HttpResponse, payload: Any) -> Any:
    """Map one JSON response onto a result, a processing marker or an error.

    Status mapping:
    - ``{state_label, op_id}`` with 409: busy, terminal for this attempt
    - ``{state_label, op_id}`` with 2xx or 404: still processing
    - ``{state_label, op_id}`` with any other status: unknown state
    - 409 without metadata: busy
    - other 4xx/5xx: response error with the server message when present
    - anything else: success, payload returned as-is
    """
    processing = _processing_metadata(payload)
    if processing is not None:
        if response.status == 409:
            _LOGGER.warning(
                "PocketIC instance busy (state %s, op %s)",
                processing.state_label,
                processing.op_id,
            )
            raise ServerBusyError(response.status, processing.state_label, processing.op_id)
        if response.ok or response.status == 404:
            return processing
        raise UnknownStateError(response.status)

    if response.status == 409:
        _LOGGER.warning("PocketIC instance busy")
        raise ServerBusyError(response.status, None, None)

    if response.status >= 400:
        if isinstance(payload, Mapping) and isinstance(payload.get("message"), str):
            _LOGGER.error("PocketIC server encountered an error: %s", payload["message"])
            raise ServerResponseError(response.status, payload["message"])
        raise ServerResponseError(response.status, response.reason or "unexpected error")

    return payload


class PicHttpClient:
    """HTTP client wrapper for the PocketIC server.

    Every public call is bounded by ``processing_timeout`` (seconds). Requests
    the server answers with processing metadata are long-polled on
    ``/read_graph/{state_label}/{op_id}`` at a fixed interval within that
    same budget.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str,
        *,
        processing_timeout: float = DEFAULT_PROCESSING_TIMEOUT,
        polling_interval: float = POLLING_INTERVAL,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._processing_timeout = processing_timeout
        self._polling_interval = polling_interval

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def processing_timeout(self) -> float:
        return self._processing_timeout

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
        timeout: float | None = None,
    ) -> HttpResponse:
        """Perform one HTTP exchange, aborting it when the timeout fires first.

        Raises:
            ServerRequestTimeoutError: If no response arrived within the timeout.
            ServerConnectionError: If the network request failed.
        """
        budget = self._processing_timeout if timeout is None else timeout
        _LOGGER.debug("%s %s", method, path)
        try:
            return await asyncio.wait_for(
                self._send(method, path, headers, body), timeout=max(budget, 0)
            )
        except TimeoutError as err:
            _LOGGER.warning("%s %s timed out after %.3fs", method, path, budget)
            raise ServerRequestTimeoutError() from err
        except aiohttp.ClientError as err:
            raise ServerConnectionError(f"{method} {path} failed: {err}") from err

    async def _send(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | None,
        body: bytes | None,
    ) -> HttpResponse:
        async with self._session.request(
            method,
            self._url(path),
            headers=dict(headers or {}),
            data=body,
        ) as resp:
            payload = await resp.read()
            return HttpResponse(status=resp.status, reason=resp.reason or "", body=payload)

    async def json_get(
        self, path: str, *, headers: Mapping[str, str] | None = None
    ) -> Any:
        """GET a JSON resource, following the processing protocol."""
        return await self._json_exchange("GET", path, headers, None)

    async def json_post(
        self,
        path: str,
        body: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """POST a JSON body, following the processing protocol."""
        encoded = None if body is None else json.dumps(body).encode("utf-8")
        return await self._json_exchange("POST", path, headers, encoded)

    async def _json_exchange(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | None,
        body: bytes | None,
    ) -> Any:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._processing_timeout
        merged = {**(headers or {}), **JSON_HEADERS}

        response = await self.request(
            method, path, headers=merged, body=body, timeout=deadline - loop.time()
        )
        while True:
            outcome = interpret_json_response(response, _json_payload(response))
            if not isinstance(outcome, _Processing):
                return outcome

            _LOGGER.debug(
                "%s %s processing (state %s, op %s)",
                method,
                path,
                outcome.state_label,
                outcome.op_id,
            )
            await asyncio.sleep(self._polling_interval)
            remaining = deadline - loop.time()
            if remaining <= 0:
                _LOGGER.warning("%s %s still processing at timeout", method, path)
                raise ServerRequestTimeoutError()
            response = await self.request(
                "GET",
                f"/read_graph/{outcome.state_label}/{outcome.op_id}",
                headers=JSON_HEADERS,
                timeout=remaining,
            )

    async def upload_blob(self, blob: bytes) -> str:
        """Upload raw bytes to the blob store and return the hex blob id."""
        response = await self.request(
            "POST", "/blobstore", headers=BLOB_HEADERS, body=blob
        )
        if not response.ok:
            raise ServerResponseError(
                response.status, response.text() or response.reason or "unexpected error"
            )
        return response.text()

    async def delete(self, path: str) -> None:
        """DELETE a resource."""
        response = await self.request("DELETE", path)
        if response.status >= 400 and response.status != 404:
            raise ServerResponseError(response.status, response.reason or "unexpected error")
