"""
Shared fixtures for Omi MCP tests.

HTTP is faked by replacing ``OmiClient.session.request`` with a mock that
returns real ``requests.Response`` objects, so raise_for_status() and header
handling behave exactly as they do against the live API.
"""

import json
import pytest
import requests
from unittest.mock import MagicMock

from omi_mcp.client import OmiClient


def make_response(status_code=200, body=None, headers=None, url="https://api.omi.me/v1/test"):
    """Build a requests.Response with a JSON body and headers."""
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    response._content = b"" if body is None else json.dumps(body).encode("utf-8")
    response.headers.update(headers or {})
    return response


@pytest.fixture
def client():
    """OmiClient whose HTTP layer is a MagicMock."""
    omi_client = OmiClient(api_token="test-token", api_url="https://api.omi.me/v1")
    omi_client.session.request = MagicMock(return_value=make_response(200, []))
    return omi_client


@pytest.fixture
def respond(client):
    """Set the next response(s) returned by the fake HTTP layer."""
    def _respond(*responses):
        if len(responses) == 1:
            client.session.request.return_value = responses[0]
            client.session.request.side_effect = None
        else:
            client.session.request.side_effect = list(responses)
    return _respond


def last_call(client):
    """Return (method, url, kwargs) of the last HTTP call."""
    args, kwargs = client.session.request.call_args
    return args[0], args[1], kwargs
