import base64
import sys
from pathlib import Path
from urllib.parse import parse_qs

import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from hammock.core import auth
from hammock.core.errors import AuthError
from hammock.models import (
    BasicAuthentication,
    NoAuthentication,
    OAuth2Authentication,
    authentication_from_dict,
    authentication_to_dict,
)


def _oauth2() -> OAuth2Authentication:
    return OAuth2Authentication(
        token_url="http://auth.local/token",
        client_id="client",
        client_secret="secret",
        grant_type="client_credentials",
        scope="read write",
    )


def _main_request() -> httpx.Request:
    return httpx.Request("GET", "http://api.local/things")


def test_none_and_basic_need_no_auxiliary_request():
    assert auth.prepare(NoAuthentication()) is None
    assert auth.prepare(BasicAuthentication(username="u", password="p")) is None


def test_none_apply_is_noop():
    req = _main_request()
    auth.apply(NoAuthentication(), req)
    assert "Authorization" not in req.headers


def test_basic_apply_sets_header():
    req = _main_request()
    auth.apply(BasicAuthentication(username="joe", password="pa:ss"), req)

    expected = base64.b64encode(b"joe:pa:ss").decode()
    assert req.headers["Authorization"] == f"Basic {expected}"


def test_oauth2_prepare_builds_form_post():
    req = auth.prepare(_oauth2())

    assert req.method == "POST"
    assert str(req.url) == "http://auth.local/token"
    assert req.headers["Content-Type"] == "application/x-www-form-urlencoded"
    form = parse_qs(req.read().decode())
    assert form == {
        "client_id": ["client"],
        "client_secret": ["secret"],
        "grant_type": ["client_credentials"],
        "scope": ["read write"],
    }


def test_oauth2_apply_sets_bearer_token():
    req = _main_request()
    res = httpx.Response(200, json={"access_token": "abc123", "token_type": "bearer"})

    auth.apply(_oauth2(), req, res)

    assert req.headers["Authorization"] == "Bearer abc123"


def test_oauth2_apply_rejects_error_status():
    req = _main_request()
    res = httpx.Response(500, text="boom")

    with pytest.raises(AuthError):
        auth.apply(_oauth2(), req, res)
    assert "Authorization" not in req.headers


@pytest.mark.parametrize("body", [b"<html>nope</html>", b'{"token": "x"}', b""])
def test_oauth2_apply_rejects_malformed_token_response(body):
    req = _main_request()
    res = httpx.Response(200, content=body)

    with pytest.raises(AuthError):
        auth.apply(_oauth2(), req, res)
    assert "Authorization" not in req.headers


def test_oauth2_apply_requires_response():
    with pytest.raises(AuthError):
        auth.apply(_oauth2(), _main_request(), None)


def test_authentication_envelope():
    assert authentication_to_dict(NoAuthentication()) == {"Type": "none"}
    dumped = authentication_to_dict(_oauth2())
    assert dumped["Type"] == "oauth2"
    assert dumped["Data"]["TokenURL"] == "http://auth.local/token"

    assert authentication_from_dict(dumped) == _oauth2()
    assert isinstance(authentication_from_dict({"Type": "basic", "Data": {"Username": "u"}}), BasicAuthentication)
    assert isinstance(authentication_from_dict({"Type": "mystery"}), NoAuthentication)
    assert isinstance(authentication_from_dict(None), NoAuthentication)
