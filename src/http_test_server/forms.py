import re
from urllib.parse import unquote_plus

from fastapi import Request
from starlette.datastructures import ImmutableMultiDict

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# methods whose body is parsed as form data
FORM_BODY_METHODS = ["POST", "PUT", "PATCH"]

MAX_FORM_SIZE = 10 << 20

_invalid_escape = re.compile(r"%(?![0-9A-Fa-f]{2}).{0,2}", re.DOTALL)


def _media_type(request: Request) -> str:
    content_type = request.headers.get("content-type", "")
    return content_type.split(";")[0].strip().lower()


def has_form_body(request: Request) -> bool:
    """
    Returns True when the request body is consumed by parse_form rather than read up front
    """
    return request.method in FORM_BODY_METHODS and _media_type(request) == FORM_CONTENT_TYPE


def _unescape(value: str) -> str:
    match = _invalid_escape.search(value)
    if match:
        raise ValueError(f'invalid URL escape "{match.group(0)}"')
    # bytes that are not valid UTF-8 are kept as surrogates, use
    # value.encode("utf-8", "surrogateescape") to get them back
    return unquote_plus(value, errors="surrogateescape")


def parse_query(query: str) -> list[tuple[str, str]]:
    """
    Parses a URL encoded query string into a list of (key, value) pairs.

    Pairs are separated by '&' only: a ';' in a pair is an error, as is a malformed
    percent escape. A pair without '=' has an empty value.
    """
    pairs = []
    for part in query.split("&"):
        if not part:
            continue
        if ";" in part:
            raise ValueError("invalid semicolon separator in query")
        key, _, value = part.partition("=")
        pairs.append((_unescape(key), _unescape(value)))
    return pairs


async def parse_form(request: Request) -> tuple[ImmutableMultiDict, ImmutableMultiDict]:
    """
    Parses the request query string and, for form requests, the form body.

    Returns (form, post_form) where form holds the form body values followed by the
    query string values and post_form holds the form body values only.
    """
    body_pairs = []
    if has_form_body(request):
        body = await request.body()
        if len(body) > MAX_FORM_SIZE:
            raise ValueError("http: POST too large")
        body_pairs = parse_query(body.decode("utf-8", errors="surrogateescape"))

    query_pairs = parse_query(request.scope.get("query_string", b"").decode("utf-8", errors="surrogateescape"))
    return ImmutableMultiDict(body_pairs + query_pairs), ImmutableMultiDict(body_pairs)
