import threading
from collections import deque

from http_test_server.models import PredefinedResponse, ServerRecord, not_found_response


class ResponseQueue:
    """
    Predefined responses served in a FIFO fashion.

    The last remaining response is never removed and is served indefinitely.
    When the queue is empty a 404 response with an empty body is served.
    """

    _responses: deque[PredefinedResponse]

    def __init__(self, lock: "threading.Lock | None" = None):
        self._responses = deque()
        self._lock = lock or threading.Lock()

    def push(self, response: PredefinedResponse):
        with self._lock:
            self._responses.append(response)

    def next(self) -> PredefinedResponse:
        with self._lock:
            if not self._responses:
                return not_found_response()
            if len(self._responses) == 1:
                return self._responses[0]
            return self._responses.popleft()

    def clear(self):
        with self._lock:
            self._responses.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._responses)


class RecordStore:
    """
    Server records, appended and popped in a FIFO fashion.
    """

    _records: deque[ServerRecord]

    def __init__(self, lock: "threading.Lock | None" = None):
        self._records = deque()
        self._lock = lock or threading.Lock()

    def append(self, record: ServerRecord):
        with self._lock:
            self._records.append(record)

    def pop(self) -> ServerRecord | None:
        with self._lock:
            if not self._records:
                return None
            return self._records.popleft()

    def clear(self):
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
