"""Pytest configuration and fixtures for pic_sdk tests."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from pic_sdk.http import PicHttpClient

BASE_URL = "http://127.0.0.1:8080"


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    import aiohttp

    return MagicMock(spec=aiohttp.ClientSession)


@pytest.fixture
def http_client(mock_session: MagicMock) -> PicHttpClient:
    """PicHttpClient with a short timeout over the mock session."""
    return PicHttpClient(
        mock_session, BASE_URL, processing_timeout=1.0, polling_interval=0
    )


def create_mock_response(
    status: int = 200,
    json_data: Any = None,
    text_data: str | None = None,
    read_data: bytes | None = None,
    reason: str = "OK",
) -> AsyncMock:
    """Create a configured mock response.

    Args:
        status: HTTP status code
        json_data: Data serialized as the JSON body
        text_data: Raw text body
        read_data: Raw body bytes
        reason: HTTP reason phrase

    Returns:
        Configured AsyncMock response usable as an async context manager
    """
    response = AsyncMock()
    response.status = status
    response.reason = reason

    if read_data is None:
        if json_data is not None:
            read_data = json.dumps(json_data).encode()
        elif text_data is not None:
            read_data = text_data.encode()
        else:
            read_data = b""
    response.read.return_value = read_data

    response.__aenter__.return_value = response
    response.__aexit__.return_value = None

    return response
