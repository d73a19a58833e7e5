import json
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from hammock.core.errors import BodyParseError


class BodyParser(ABC):
    @abstractmethod
    def parse_bytes(self, body: bytes) -> str:
        """Format raw body content, returning display text."""

    def parse(self, response: httpx.Response) -> str:
        try:
            data = response.read()
        except httpx.HTTPError as ex:
            raise BodyParseError(f"could not read response body: {ex}") from ex
        return self.parse_bytes(data)


class JSONBodyParser(BodyParser):
    def parse_bytes(self, body: bytes) -> str:
        try:
            data = json.loads(body)
        except ValueError as ex:
            raise BodyParseError(f"invalid JSON: {ex}") from ex
        return json.dumps(data, indent=2, ensure_ascii=False)


class NoopBodyParser(BodyParser):
    def parse_bytes(self, body: bytes) -> str:
        if isinstance(body, str):
            return body
        return body.decode("utf-8", errors="replace")


_noop = NoopBodyParser()
_json = JSONBodyParser()


def get_body_parser(content_type: Optional[str]) -> BodyParser:
    if content_type and "application/json" in content_type.lower():
        return _json
    return _noop


def get_response_parser(response: httpx.Response) -> BodyParser:
    return get_body_parser(response.headers.get("content-type"))


def format_request_body(item) -> str:
    """
    Reformat a request's body according to its content type. The stored payload
    is only replaced once formatting succeeds.
    """
    body = item.request_body
    if body is None:
        return ""
    formatted = get_body_parser(body.content_type).parse_bytes(body.payload.encode("utf-8"))
    body.payload = formatted
    return formatted
