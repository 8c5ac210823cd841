"""Tests for the PocketIC HTTP transport and its long-poll protocol."""

from __future__ import annotations

import asyncio
import json
import logging
from unittest.mock import MagicMock

import aiohttp
import pytest

from pic_sdk.errors import (
    DecodeError,
    ServerBusyError,
    ServerConnectionError,
    ServerRequestTimeoutError,
    ServerResponseError,
    UnknownStateError,
)
from pic_sdk.http import PicHttpClient

from .conftest import BASE_URL, create_mock_response

PROCESSING = {"state_label": "abc", "op_id": "op-1"}


def _slow_response() -> MagicMock:
    response = create_mock_response(status=200, json_data={})

    async def slow_read() -> bytes:
        await asyncio.sleep(10)
        return b"{}"

    response.read.side_effect = slow_read
    return response


class TestRequest:
    """Single HTTP exchanges."""

    async def test_json_post_sends_body(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        """JSON bodies are serialized and sent with a JSON content type."""
        mock_session.request.return_value = create_mock_response(
            status=200, json_data={"ok": True}
        )

        result = await http_client.json_post("/instances/0/update/tick", {"a": 1})

        assert result == {"ok": True}
        call = mock_session.request.call_args
        assert call.args == ("POST", f"{BASE_URL}/instances/0/update/tick")
        assert json.loads(call.kwargs["data"]) == {"a": 1}
        assert call.kwargs["headers"]["Content-Type"] == "application/json"

    async def test_trailing_slash_in_base_url(self, mock_session: MagicMock) -> None:
        client = PicHttpClient(mock_session, f"{BASE_URL}/")
        mock_session.request.return_value = create_mock_response(status=200, json_data=[])

        await client.json_get("/instances")

        assert mock_session.request.call_args.args[1] == f"{BASE_URL}/instances"

    async def test_empty_body_is_none(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        mock_session.request.return_value = create_mock_response(status=200)

        assert await http_client.json_get("/instances/0/read/get_subnet") is None

    async def test_invalid_json_success(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        """A 2xx response that is not JSON is a decoding failure."""
        mock_session.request.return_value = create_mock_response(
            status=200, text_data="<html>"
        )

        with pytest.raises(DecodeError):
            await http_client.json_get("/instances/0/read/get_time")

    async def test_timeout(self, mock_session: MagicMock) -> None:
        """The request is abandoned when the timer fires first."""
        client = PicHttpClient(mock_session, BASE_URL, processing_timeout=0.05)
        mock_session.request.return_value = _slow_response()

        with pytest.raises(ServerRequestTimeoutError):
            await client.json_get("/instances/0/read/get_time")

    async def test_connection_error(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        mock_session.request.side_effect = aiohttp.ClientConnectionError("refused")

        with pytest.raises(ServerConnectionError, match="refused"):
            await http_client.json_get("/instances/0/read/get_time")


class TestStatusMapping:
    """Interpretation of status codes and processing metadata."""

    async def test_busy(self, mock_session: MagicMock, http_client: PicHttpClient) -> None:
        """A 409 with processing metadata is a busy error and is not retried."""
        mock_session.request.return_value = create_mock_response(
            status=409, json_data=PROCESSING, reason="Conflict"
        )

        with pytest.raises(ServerBusyError) as exc_info:
            await http_client.json_post("/instances/0/update/tick", {})

        assert exc_info.value.state_label == "abc"
        assert exc_info.value.op_id == "op-1"
        assert mock_session.request.call_count == 1

    async def test_busy_without_metadata(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        mock_session.request.return_value = create_mock_response(
            status=409, json_data={}, reason="Conflict"
        )

        with pytest.raises(ServerBusyError):
            await http_client.json_post("/instances/0/update/tick", {})

    async def test_busy_is_logged(
        self,
        mock_session: MagicMock,
        http_client: PicHttpClient,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        mock_session.request.return_value = create_mock_response(
            status=409, json_data=PROCESSING, reason="Conflict"
        )

        with caplog.at_level(logging.WARNING, logger="pic_sdk.http"):
            with pytest.raises(ServerBusyError):
                await http_client.json_post("/instances/0/update/tick", {})

        assert any(
            r.levelno == logging.WARNING and "busy" in r.getMessage() for r in caplog.records
        )

    async def test_server_message(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        """Error responses carry the server supplied message."""
        mock_session.request.return_value = create_mock_response(
            status=400,
            json_data={"message": "Canister not found"},
            reason="Bad Request",
        )

        with pytest.raises(ServerResponseError) as exc_info:
            await http_client.json_post("/instances/0/read/get_cycles", {})

        assert exc_info.value.status == 400
        assert exc_info.value.server_message == "Canister not found"
        assert str(exc_info.value) == "Server error with code 400: Canister not found"

    async def test_reason_without_message(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        """Without a server message the status text is used."""
        mock_session.request.return_value = create_mock_response(
            status=502, reason="Bad Gateway"
        )

        with pytest.raises(ServerResponseError, match="Bad Gateway"):
            await http_client.json_get("/instances/0/read/get_time")

    async def test_plain_text_error(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        mock_session.request.return_value = create_mock_response(
            status=500, text_data="instance panicked", reason="Internal Server Error"
        )

        with pytest.raises(ServerResponseError, match="instance panicked"):
            await http_client.json_get("/instances/0/read/get_time")

    async def test_unknown_state(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        """Processing metadata under an unexpected status is an unknown state."""
        mock_session.request.return_value = create_mock_response(
            status=500, json_data=PROCESSING
        )

        with pytest.raises(UnknownStateError):
            await http_client.json_get("/instances/0/read/get_time")


class TestLongPoll:
    """The still-processing protocol."""

    async def test_converges(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        """Processing responses are polled until a terminal response arrives."""
        mock_session.request.side_effect = [
            create_mock_response(status=202, json_data=PROCESSING),
            create_mock_response(status=404, json_data=PROCESSING),
            create_mock_response(status=200, json_data={"nanos_since_epoch": 5}),
        ]

        result = await http_client.json_post("/instances/0/update/tick", {})

        assert result == {"nanos_since_epoch": 5}
        calls = mock_session.request.call_args_list
        assert len(calls) == 3
        assert calls[1].args == ("GET", f"{BASE_URL}/read_graph/abc/op-1")
        assert calls[2].args == ("GET", f"{BASE_URL}/read_graph/abc/op-1")

    async def test_poll_error_surfaces(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        mock_session.request.side_effect = [
            create_mock_response(status=200, json_data=PROCESSING),
            create_mock_response(status=500, json_data={"message": "boom"}),
        ]

        with pytest.raises(ServerResponseError, match="boom"):
            await http_client.json_post("/instances/0/update/tick", {})

    async def test_never_terminates(self, mock_session: MagicMock) -> None:
        """A call still processing when the budget runs out times out."""
        client = PicHttpClient(
            mock_session, BASE_URL, processing_timeout=0.05, polling_interval=0.01
        )
        mock_session.request.side_effect = lambda *args, **kwargs: create_mock_response(
            status=200, json_data=PROCESSING
        )

        with pytest.raises(ServerRequestTimeoutError):
            await client.json_post("/instances/0/update/tick", {})

        assert mock_session.request.call_count > 1


class TestBlobsAndDelete:
    async def test_upload_blob(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        mock_session.request.return_value = create_mock_response(
            status=200, text_data="deadbeef"
        )

        assert await http_client.upload_blob(b"\x00\x01") == "deadbeef"

        call = mock_session.request.call_args
        assert call.args == ("POST", f"{BASE_URL}/blobstore")
        assert call.kwargs["data"] == b"\x00\x01"
        assert call.kwargs["headers"]["Content-Type"] == "application/octet-stream"

    async def test_upload_blob_failure(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        mock_session.request.return_value = create_mock_response(
            status=413, text_data="too large", reason="Payload Too Large"
        )

        with pytest.raises(ServerResponseError, match="too large"):
            await http_client.upload_blob(b"\x00")

    async def test_delete_tolerates_missing(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        mock_session.request.return_value = create_mock_response(
            status=404, reason="Not Found"
        )

        await http_client.delete("/instances/0")

        assert mock_session.request.call_args.args == ("DELETE", f"{BASE_URL}/instances/0")

    async def test_delete_failure(
        self, mock_session: MagicMock, http_client: PicHttpClient
    ) -> None:
        mock_session.request.return_value = create_mock_response(
            status=500, reason="Internal Server Error"
        )

        with pytest.raises(ServerResponseError):
            await http_client.delete("/instances/0")
