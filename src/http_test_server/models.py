import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Sequence

import nanoid
from fastapi import Request
from starlette.datastructures import ImmutableMultiDict

from http_test_server.writers import ResponseRecorder


def _merge_headers(
    defaults: Mapping[str, Sequence[str]], headers: Mapping[str, Sequence[str]] | None
) -> dict[str, Sequence[str]]:
    # header names are case insensitive, an override replaces the default whatever its case
    merged = dict(defaults)
    for key, values in (headers or {}).items():
        for existing in [name for name in merged if name.lower() == key.lower()]:
            del merged[existing]
        merged[key] = values
    return merged


@dataclass(frozen=True)
class PredefinedResponse:
    """
    A canned response served by the test server

    status: HTTP status code to return
    headers: headers to return, each header name maps to the list of its values.
        Copied into a read-only mapping of tuples so the response cannot change once built
    body: body to return, may be empty
    """

    status: int = 200
    headers: Mapping[str, Sequence[str]] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self):
        frozen = MappingProxyType({key: tuple(values) for key, values in self.headers.items()})
        object.__setattr__(self, "headers", frozen)
        object.__setattr__(self, "body", bytes(self.body))

    @staticmethod
    def text(
        text: str,
        *,
        status: int = 200,
        headers: Mapping[str, Sequence[str]] | None = None,
        encoding: str = "utf-8",
    ) -> "PredefinedResponse":
        merged = _merge_headers({"Content-Type": [f"text/plain; charset={encoding}"]}, headers)
        return PredefinedResponse(status=status, headers=merged, body=text.encode(encoding))

    @staticmethod
    def json(
        obj: Any,
        *,
        status: int = 200,
        headers: Mapping[str, Sequence[str]] | None = None,
    ) -> "PredefinedResponse":
        merged = _merge_headers({"Content-Type": ["application/json"]}, headers)
        body = json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        return PredefinedResponse(status=status, headers=merged, body=body)


def not_found_response() -> PredefinedResponse:
    # served when no predefined responses are available
    return PredefinedResponse(status=404)


@dataclass
class ServerRecord:
    """
    A request received by the test server and the response it sent back

    request: the received request. The body stream is consumed by the test server,
        use request_body to get a copy of the body
    response: recorder holding the status, headers and body that were written. Never None
    request_body: copy of the request body, empty when the request had no body. Never None
    form: query string and form body values, form body values first
    post_form: form body values only
    server_error: None unless the test server failed to handle the request, in which case
        it wraps the error that occurred (see __cause__)
    """

    request: Request
    response: ResponseRecorder = field(default_factory=ResponseRecorder)
    request_body: bytearray = field(default_factory=bytearray)
    form: ImmutableMultiDict = field(default_factory=ImmutableMultiDict)
    post_form: ImmutableMultiDict = field(default_factory=ImmutableMultiDict)
    server_error: Exception | None = None
    record_id: str = field(default_factory=lambda: nanoid.generate(size=10))
