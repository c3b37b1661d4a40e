class HTTPTestServerError(Exception):
    """
    Base class for the errors raised while the test server handles a request.

    The error that caused the failure is available as __cause__
    """


class BodyReadError(HTTPTestServerError):
    def __init__(self, cause: Exception):
        super().__init__(f"test server failed to read the request body: {cause}")


class FormParseError(HTTPTestServerError):
    def __init__(self, cause: Exception):
        super().__init__(f"test server failed to parse query string and form data: {cause}")


class ResponseWriteError(HTTPTestServerError):
    def __init__(self, cause: Exception):
        super().__init__(f"test server failed to write the predefined response: {cause}")


class BodyNotAllowedError(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"response status code {status_code} does not allow body")
        self.status_code = status_code
