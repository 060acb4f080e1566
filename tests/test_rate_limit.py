import pytest
from starlette.requests import Request

from docgate.rate_limit import rate_limit_key


def make_request(authorization=None, client=("198.51.100.7", 1234)):
    headers = [(b"authorization", authorization.encode())] if authorization else []
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "client": client})


def test_api_key_keyed_by_display_prefix():
    key = "ak_live_" + "ab12cd34" + "0" * 56
    assert rate_limit_key(make_request(f"Bearer {key}")) == "key:ak_live_ab12cd34"


def test_signed_token_keyed_by_hash():
    first = rate_limit_key(make_request("Bearer header.payload.sig"))
    second = rate_limit_key(make_request("bearer header.payload.sig"))
    assert first == second
    assert first.startswith("tok:")
    assert "payload" not in first


def test_anonymous_keyed_by_ip():
    assert rate_limit_key(make_request()) == "ip:198.51.100.7"
    assert rate_limit_key(make_request("Basic abc")) == "ip:198.51.100.7"


@pytest.mark.parametrize("settings_overrides", [{"rate_limit_enabled": True, "rate_limit_requests_per_minute": 2}])
async def test_requests_over_the_limit_are_refused(client):
    statuses = [(await client.get("/api/v1/operations")).status_code for _ in range(3)]
    assert statuses == [200, 200, 429]


@pytest.mark.parametrize("settings_overrides", [{"rate_limit_enabled": True, "rate_limit_requests_per_minute": 2}])
async def test_health_endpoints_are_not_limited(client):
    statuses = [(await client.get("/live")).status_code for _ in range(3)]
    assert statuses == [200, 200, 200]


@pytest.mark.parametrize("settings_overrides", [{"rate_limit_enabled": False, "rate_limit_requests_per_minute": 1}])
async def test_disabled_limiter_lets_everything_through(client):
    statuses = [(await client.get("/api/v1/operations")).status_code for _ in range(3)]
    assert statuses == [200, 200, 200]
