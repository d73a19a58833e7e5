"""
Single-flight execution of collection requests.

The manager runs each exchange as an asyncio task on the caller's event loop.
The loop is the owning control thread: the completion handler is called from
that task, so it may touch the collection tree directly. The manager itself
never reads the tree after send_request() returns; it works from the
httpx.Request it built at that point.
"""
import asyncio
import enum
import logging
import time
from typing import Callable, Optional, Union

import httpx

from hammock.core import auth
from hammock.core.errors import (
    AuthError,
    InvalidRequestError,
    RequestCancelledError,
    RequestInProgressError,
    TransportError,
)
from hammock.models import CollectionItem, HttpResult, NoAuthentication

logger = logging.getLogger(__name__)

RequestHandler = Callable[[CollectionItem, HttpResult], None]


class ExchangeState(str, enum.Enum):
    IDLE = "idle"
    PENDING = "pending"


class RequestManager:
    def __init__(
        self,
        handler: RequestHandler,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Union[float, httpx.Timeout, None] = 30.0,
        verify_ssl: bool = True,
    ):
        self.handler = handler
        self._transport = transport
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._state = ExchangeState.IDLE
        self._generation = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ExchangeState:
        return self._state

    @property
    def pending(self) -> bool:
        return self._state is ExchangeState.PENDING

    def send_request(self, item: CollectionItem) -> int:
        """
        Start sending `item` in the background and return the generation token
        assigned to the exchange. Must be called from a running event loop.

        Raises RequestInProgressError if an exchange is already outstanding and
        InvalidRequestError if the request cannot be built.
        """
        if self.pending:
            raise RequestInProgressError("request in progress")
        if item.is_group:
            raise InvalidRequestError(f"'{item.name}' is a group and cannot be sent")

        request = self._build_request(item)
        auth_scheme = item.authentication.model_copy()
        loop = asyncio.get_running_loop()

        self._generation += 1
        generation = self._generation
        self._state = ExchangeState.PENDING
        start_time = time.time()
        self._task = loop.create_task(self._run(item, request, auth_scheme, generation, start_time))
        logger.info("sending %s %s (generation %d)", request.method, request.url, generation)
        return generation

    def cancel_current(self):
        if not self.pending:
            return
        logger.info("cancelling generation %d", self._generation)
        if self._task is not None:
            self._task.cancel()
        self._state = ExchangeState.IDLE

    async def aclose(self):
        task = self._task
        self.cancel_current()
        if task is not None and not task.done():
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _build_request(self, item: CollectionItem) -> httpx.Request:
        try:
            url = httpx.URL(item.url)
        except httpx.InvalidURL as ex:
            raise InvalidRequestError(f"invalid URL '{item.url}': {ex}") from ex
        if url.scheme not in ("http", "https") or not url.host:
            raise InvalidRequestError(f"invalid URL '{item.url}': expected an absolute http(s) URL")

        # copy so the saved item never picks up transport-level headers
        headers = [(key, value) for key, values in item.headers.items() for value in values]
        content = None
        if item.request_body is not None:
            headers = [(k, v) for k, v in headers if k.lower() != "content-type"]
            headers.append(("Content-Type", item.request_body.content_type))
            content = item.request_body.payload.encode("utf-8")

        try:
            return httpx.Request(item.method or "GET", url, headers=headers, content=content)
        except (ValueError, TypeError) as ex:
            raise InvalidRequestError(f"cannot build request: {ex}") from ex

    async def _run(self, item, request, auth_scheme, generation, start_time):
        response = None
        payload = b""
        payload_error = None
        error = None

        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self._timeout,
                verify=self._verify_ssl,
            ) as client:
                if not isinstance(auth_scheme, NoAuthentication):
                    await self._authenticate(client, auth_scheme, request)

                response = await client.send(request, stream=True)
                try:
                    payload = await response.aread()
                except httpx.HTTPError as ex:
                    payload_error = ex
                finally:
                    await response.aclose()
        except asyncio.CancelledError:
            error = RequestCancelledError("request cancelled")
        except AuthError as ex:
            error = ex
        except httpx.HTTPError as ex:
            error = TransportError(str(ex) or type(ex).__name__)
            error.__cause__ = ex
        except Exception as ex:
            # still report through the handler so the manager does not stay pending
            logger.exception("unexpected error while sending '%s'", item.name)
            error = TransportError(f"unexpected error: {ex}")
            error.__cause__ = ex

        result = HttpResult(
            response=response,
            payload=payload,
            payload_error=payload_error,
            error=error,
            start_time=start_time,
            end_time=time.time(),
        )
        self._deliver(item, result, generation)

    async def _authenticate(self, client: httpx.AsyncClient, auth_scheme, request: httpx.Request):
        try:
            aux_request = auth.prepare(auth_scheme)
            aux_response = None
            if aux_request is not None:
                aux_response = await client.send(aux_request)
            auth.apply(auth_scheme, request, aux_response)
        except httpx.HTTPError as ex:
            raise AuthError(f"authentication exchange failed: {ex}") from ex

    def _deliver(self, item: CollectionItem, result: HttpResult, generation: int):
        if generation != self._generation:
            logger.debug("discarding result of stale generation %d", generation)
            return
        if result.cancelled:
            logger.info("request '%s' cancelled", item.name)
        elif result.error is not None:
            logger.error("request '%s' failed: %s", item.name, result.error)
        else:
            logger.info("request '%s' completed: HTTP %d in %.0f ms", item.name, result.status_code, result.duration_ms)

        self._task = None
        self._state = ExchangeState.IDLE
        try:
            self.handler(item, result)
        except Exception:
            logger.exception("completion handler failed for request '%s'", item.name)
