"""Unit tests for rate-limit keying."""

import pytest
from libs.auth.models import AuthUser
from libs.common.rate_limit import _get_user_or_ip
from starlette.requests import Request


def _request(headers=None, user=None) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/orders/x/authorize-pickup",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": ("10.0.0.9", 1234),
        "state": {},
    }
    request = Request(scope)
    if user is not None:
        request.state.user = user
    return request


@pytest.mark.unit
def test_authenticated_requests_are_limited_per_user():
    user = AuthUser(user_id="seller-1", role="donor_seller")

    assert _get_user_or_ip(_request(user=user)) == "user:seller-1"


@pytest.mark.unit
def test_anonymous_requests_fall_back_to_client_ip():
    assert _get_user_or_ip(_request()) == "ip:10.0.0.9"
    assert (
        _get_user_or_ip(_request(headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}))
        == "ip:203.0.113.7"
    )
