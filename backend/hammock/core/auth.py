import base64
import logging
from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from hammock.core.errors import AuthError
from hammock.models import Authentication, BasicAuthentication, NoAuthentication, OAuth2Authentication

logger = logging.getLogger(__name__)


class TokenResponse(BaseModel):
    access_token: str


def prepare(auth: Authentication) -> Optional[httpx.Request]:
    """
    Build the auxiliary request a scheme needs before the main exchange, if any.
    Only OAuth2 needs one: a form-encoded token request.
    """
    if isinstance(auth, OAuth2Authentication):
        form = {
            "client_id": auth.client_id,
            "client_secret": auth.client_secret,
            "grant_type": auth.grant_type,
            "scope": auth.scope,
        }
        try:
            return httpx.Request(
                "POST",
                auth.token_url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as ex:
            raise AuthError(f"invalid token URL '{auth.token_url}': {ex}") from ex
    return None


def apply(auth: Authentication, request: httpx.Request, response: Optional[httpx.Response] = None):
    """
    Attach credentials to the main request. `response` is the reply to the
    request returned by prepare(), when there was one. On failure the request
    is left untouched.
    """
    if isinstance(auth, NoAuthentication):
        return

    if isinstance(auth, BasicAuthentication):
        token_source = f"{auth.username}:{auth.password}"
        token = base64.b64encode(token_source.encode()).decode()
        request.headers["Authorization"] = f"Basic {token}"
        return

    if isinstance(auth, OAuth2Authentication):
        if response is None:
            raise AuthError("no token response to apply")
        if not response.is_success:
            raise AuthError(f"failed to acquire token: HTTP {response.status_code}")
        try:
            token = TokenResponse.model_validate_json(response.read())
        except (ValidationError, httpx.HTTPError) as ex:
            raise AuthError(f"malformed token response: {ex}") from ex
        logger.debug("acquired OAuth2 token from %s", auth.token_url)
        request.headers["Authorization"] = f"Bearer {token.access_token}"
        return

    raise AuthError(f"unsupported authentication type: {type(auth).__name__}")
