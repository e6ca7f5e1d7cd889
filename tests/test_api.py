# tests/test_api.py
from unittest.mock import MagicMock

import pytest
import requests

from conftest import FakeResponse
from detailing.api import Api, ApiError, ApiSession
from detailing.config import ApiConfig


def make_session(response=None, error=None):
    http = MagicMock()
    if error is not None:
        http.request.side_effect = error
    else:
        http.request.return_value = response
    return ApiSession(http, "http://backend/api", 5.0), http


def test_get_drops_none_params_and_builds_url():
    api, http = make_session(FakeResponse(200, [{"id": 1}]))

    assert api.get("/orders/calendar", params={"start": "a", "masterId": None}) == [{"id": 1}]
    http.request.assert_called_once_with(
        "GET",
        "http://backend/api/orders/calendar",
        params={"start": "a"},
        json=None,
        timeout=5.0,
    )


def test_empty_body_returns_none():
    api, _ = make_session(FakeResponse(200, None))
    assert api.put("/orders/1", json={"id": 1}) is None


def test_http_error_carries_status_code():
    api, _ = make_session(FakeResponse(403, {"message": "forbidden"}))

    with pytest.raises(ApiError) as exc:
        api.get("/users")
    assert exc.value.status_code == 403
    assert exc.value.is_unauthorized


def test_transport_failure_becomes_api_error():
    api, _ = make_session(error=requests.ConnectionError("refused"))

    with pytest.raises(ApiError) as exc:
        api.get("/users")
    assert exc.value.status_code is None
    assert not exc.value.is_unauthorized


def test_malformed_json_becomes_api_error():
    api, _ = make_session(FakeResponse(200, ValueError("bad json"), content=b"<html>"))

    with pytest.raises(ApiError, match="Malformed JSON"):
        api.get("/orders/1")


def test_connect_sets_bearer_header_only_with_token():
    client = Api(ApiConfig("http://backend/api"))

    anonymous = client.connect()
    authorized = client.connect("abc")
    try:
        assert "Authorization" not in anonymous.headers
        assert authorized.headers["Authorization"] == "Bearer abc"
        assert authorized.headers["Content-Type"] == "application/json"
    finally:
        anonymous.close()
        authorized.close()
