import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from starlette.datastructures import Headers, MutableHeaders

from http_test_server.errors import BodyNotAllowedError

logger = logging.getLogger(__name__)

ASGISend = Callable[[dict], Awaitable[None]]

# Bodies up to this size are sent in a single message with a content-length header.
# Larger bodies are streamed to the client as they are written.
DEFAULT_FLUSH_THRESHOLD = 4096


def body_allowed_for_status(status_code: int) -> bool:
    if 100 <= status_code <= 199:
        return False
    return status_code not in (204, 304)


class ResponseSink(Protocol):
    @property
    def headers(self) -> MutableHeaders: ...

    def write_header(self, status_code: int) -> None: ...

    async def write(self, data: bytes) -> int: ...


@dataclass(frozen=True)
class RecordedResponse:
    status_code: int
    headers: Headers
    body: bytes


class ResponseRecorder:
    """
    A ResponseSink which keeps the written response in memory.

    The first call to write_header wins, later calls are ignored. The header map
    is snapshotted when the status code is written.
    """

    def __init__(self):
        self._headers = MutableHeaders()
        self._snapshot: Headers | None = None
        self.status_code = 200
        self.body = bytearray()
        self.wrote_header = False

    @property
    def headers(self) -> MutableHeaders:
        return self._headers

    def write_header(self, status_code: int) -> None:
        if self.wrote_header:
            return
        self.status_code = status_code
        self.wrote_header = True
        self._snapshot = Headers(raw=list(self._headers.raw))

    async def write(self, data: bytes) -> int:
        if not self.wrote_header:
            self.write_header(200)
        self.body.extend(data)
        return len(data)

    def result(self) -> RecordedResponse:
        headers = self._snapshot if self._snapshot is not None else Headers(raw=list(self._headers.raw))
        return RecordedResponse(status_code=self.status_code, headers=headers, body=bytes(self.body))


class ASGIResponseSink:
    """
    A ResponseSink which writes the response to the client connection through an ASGI send callable.

    The status and headers are only sent with the first chunk of body, so the first
    call to write_header wins and the headers are frozen at that point. finish() must
    be called once the handler is done to complete the response.
    """

    def __init__(self, send: ASGISend, flush_threshold: int = DEFAULT_FLUSH_THRESHOLD):
        self._send = send
        self._flush_threshold = flush_threshold
        self._headers = MutableHeaders()
        self._frozen_headers: list[tuple[bytes, bytes]] = []
        self._status_code: int | None = None
        self._buffer = bytearray()
        self._started = False
        self._finished = False

    @property
    def headers(self) -> MutableHeaders:
        return self._headers

    def write_header(self, status_code: int) -> None:
        if self._status_code is not None:
            logger.warning(
                "Superfluous write_header call with status %s (status %s already written)",
                status_code,
                self._status_code,
            )
            return
        self._status_code = status_code
        self._frozen_headers = list(self._headers.raw)

    async def write(self, data: bytes) -> int:
        if self._status_code is None:
            self.write_header(200)
        if self._finished:
            raise RuntimeError("response already finished")
        if not data:
            return 0
        if not body_allowed_for_status(self._status_code):
            raise BodyNotAllowedError(self._status_code)

        self._buffer.extend(data)
        if len(self._buffer) > self._flush_threshold:
            await self._flush(more_body=True)
        return len(data)

    async def finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        if self._status_code is None:
            self.write_header(200)
        await self._flush(more_body=False)

    async def _flush(self, more_body: bool):
        if not self._started:
            headers = self._frozen_headers
            # the whole body is known, let the client know its length
            known_length = not more_body and body_allowed_for_status(self._status_code)
            if known_length and "content-length" not in Headers(raw=headers):
                headers = headers + [(b"content-length", str(len(self._buffer)).encode("latin-1"))]
            # mark as started before sending so a failed start is never sent twice
            self._started = True
            await self._send({"type": "http.response.start", "status": self._status_code, "headers": headers})

        body = bytes(self._buffer)
        self._buffer.clear()
        await self._send({"type": "http.response.body", "body": body, "more_body": more_body})


class MultiSinkResponseWriter:
    """
    Writes a response to multiple ResponseSinks at once.

    Put the recorder first so the response is always recorded, even when writing
    to the client connection fails.
    """

    _sinks: list[ResponseSink]

    def __init__(self, *sinks: ResponseSink):
        self._sinks = list(sinks)

    @property
    def headers(self) -> MutableHeaders:
        if self._sinks:
            return self._sinks[0].headers
        # not attached to anything
        return MutableHeaders()

    def add_header(self, key: str, value: str):
        for sink in self._sinks:
            sink.headers.append(key, value)

    def set_header(self, key: str, value: str):
        for sink in self._sinks:
            sink.headers[key] = value

    def write_header(self, status_code: int):
        for sink in self._sinks:
            sink.write_header(status_code)

    async def write(self, data: bytes) -> int:
        # stop at the first failure, remaining sinks are not attempted
        written = 0
        for sink in self._sinks:
            written = await sink.write(data)
        return written
