from starlette.datastructures import MutableHeaders


class FakeSink:
    """A ResponseSink recording calls, optionally failing on write"""

    def __init__(self, name: str, calls: list, fail_with: Exception | None = None, written: int | None = None):
        self._name = name
        self._calls = calls
        self._fail_with = fail_with
        self._written = written
        self._headers = MutableHeaders()

    @property
    def headers(self) -> MutableHeaders:
        return self._headers

    def write_header(self, status_code: int) -> None:
        self._calls.append((self._name, "write_header", status_code))

    async def write(self, data: bytes) -> int:
        self._calls.append((self._name, "write", data))
        if self._fail_with:
            raise self._fail_with
        return len(data) if self._written is None else self._written


class FakeSend:
    """An ASGI send callable keeping the sent messages"""

    def __init__(self):
        self.messages = []

    async def __call__(self, message: dict):
        self.messages.append(message)
