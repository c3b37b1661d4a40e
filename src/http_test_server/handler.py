import logging
import time
from typing import Awaitable, Callable

from fastapi import Request

from http_test_server.errors import BodyReadError, FormParseError, HTTPTestServerError, ResponseWriteError
from http_test_server.forms import has_form_body, parse_form
from http_test_server.metrics import server_metrics
from http_test_server.models import PredefinedResponse, ServerRecord
from http_test_server.queues import RecordStore, ResponseQueue
from http_test_server.writers import (
    ASGIResponseSink,
    ASGISend,
    MultiSinkResponseWriter,
    ResponseRecorder,
    ResponseSink,
)

logger = logging.getLogger(__name__)

ASGIReceive = Callable[[], Awaitable[dict]]


class TeeReceive:
    """
    Wraps an ASGI receive callable and copies the body of every request message into a buffer
    """

    def __init__(self, receive: ASGIReceive, buffer: bytearray):
        self._receive = receive
        self._buffer = buffer

    async def __call__(self) -> dict:
        message = await self._receive()
        if message["type"] == "http.request":
            self._buffer.extend(message.get("body", b""))
        return message


class ExchangeHandler:
    """
    ASGI application serving predefined responses and recording every exchange.

    Every handled request adds exactly one record to the record store. When the handler
    fails to read the request, parse its form data or write the predefined response,
    the record gets the error and the client gets a 500 response with the error as text body.
    """

    def __init__(self, responses: ResponseQueue, records: RecordStore):
        self._responses = responses
        self._records = records

    @property
    def responses(self) -> ResponseQueue:
        return self._responses

    @property
    def records(self) -> RecordStore:
        return self._records

    async def __call__(self, scope: dict, receive: ASGIReceive, send: ASGISend):
        if scope["type"] != "http":
            logger.debug("Ignoring unsupported ASGI scope type: %s", scope["type"])
            return

        live_sink = ASGIResponseSink(send)
        record = await self.handle(scope, receive, live_sink)
        try:
            await live_sink.finish()
        # pylint: disable-next=broad-exception-caught
        except Exception as e:
            logger.warning("Failed to complete the response for record %s: %r", record.record_id, e)

    async def handle(self, scope: dict, receive: ASGIReceive, live_sink: ResponseSink) -> ServerRecord:
        start_time = time.perf_counter()

        recorder = ResponseRecorder()
        request_body = bytearray()
        request = Request(scope, TeeReceive(receive, request_body))
        record = ServerRecord(request=request, response=recorder, request_body=request_body)
        logger.debug("⚡ Handling request %s: %s %s", record.record_id, request.method, request.url.path)

        # The recorder goes first so the response is recorded even if writing to the client fails
        writer = MultiSinkResponseWriter(recorder, live_sink)

        try:
            await self._read_body(request)
            record.form, record.post_form = await self._parse_form(request)
            response = self._responses.next()
            await self._write_response(writer, response)
        except HTTPTestServerError as e:
            await self._handle_internal_error(writer, record, e)
        else:
            self._records.append(record)
            logger.debug("📼 Recorded request %s (status %s)", record.record_id, recorder.status_code)

        attributes = {"method": request.method, "status_code": recorder.status_code}
        server_metrics.counter_requests.add(1, attributes)
        server_metrics.histogram_latency.record(time.perf_counter() - start_time, attributes)
        return record

    async def _read_body(self, request: Request):
        # form bodies are consumed while parsing the form
        if has_form_body(request):
            return
        try:
            await request.body()
        # pylint: disable-next=broad-exception-caught
        except Exception as e:
            raise BodyReadError(e) from e

    async def _parse_form(self, request: Request):
        try:
            return await parse_form(request)
        # pylint: disable-next=broad-exception-caught
        except Exception as e:
            raise FormParseError(e) from e

    async def _write_response(self, writer: MultiSinkResponseWriter, response: PredefinedResponse):
        try:
            for key, values in response.headers.items():
                for value in values:
                    writer.add_header(key, value)
            writer.write_header(response.status)
            if response.body:
                await writer.write(response.body)
        # pylint: disable-next=broad-exception-caught
        except Exception as e:
            raise ResponseWriteError(e) from e

    async def _handle_internal_error(
        self, writer: MultiSinkResponseWriter, record: ServerRecord, error: HTTPTestServerError
    ):
        record.server_error = error
        self._records.append(record)
        logger.warning("⚠️ Failed to handle request %s: %s", record.record_id, error)
        server_metrics.counter_errors.add(1, {"stage": type(error).__name__})

        # When the failure happened while writing the response, the status and headers may
        # already be written: this is a best effort attempt which may not reach the client.
        writer.set_header("Content-Type", "text/plain")
        writer.write_header(500)
        try:
            await writer.write(str(error).encode("utf-8", errors="surrogateescape"))
        # pylint: disable-next=broad-exception-caught
        except Exception as e:
            logger.warning("Failed to write the error response for request %s: %r", record.record_id, e)
