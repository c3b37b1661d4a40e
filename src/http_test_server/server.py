import logging
import threading
import time

import requests
import uvicorn

from http_test_server.config import ServerConfig
from http_test_server.handler import ExchangeHandler
from http_test_server.models import PredefinedResponse, ServerRecord
from http_test_server.queues import RecordStore, ResponseQueue

logger = logging.getLogger(__name__)


class UvicornTestServer(uvicorn.Server):
    """
    A subclass of Uvicorn's Server class that allows running the server in a separate thread
    to enable running the server in-process during tests.

    The listening socket is bound before the thread starts so that port 0 resolves to a free port
    which is known as soon as start() returns.
    """

    def __init__(
        self,
        app,
        config: ServerConfig,
        ssl_certfile: str | None = None,
        ssl_keyfile: str | None = None,
    ):
        uvconfig = uvicorn.Config(
            app,
            host=config.host,
            port=config.port,
            loop="asyncio",
            lifespan="off",
            log_level=config.log_level,
            ssl_certfile=ssl_certfile,
            ssl_keyfile=ssl_keyfile,
        )
        super().__init__(uvconfig)
        self._startup_timeout = config.startup_timeout
        self._socket = None
        self._port: int | None = None
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int | None:
        return self._port

    @property
    def is_ssl(self) -> bool:
        return self.config.is_ssl

    def start(self):
        if self._thread is not None:
            raise RuntimeError("server already started")

        self._socket = self.config.bind_socket()
        self._port = self._socket.getsockname()[1]
        self._thread = threading.Thread(target=self.run, kwargs={"sockets": [self._socket]}, daemon=True)
        self._thread.start()

        deadline = time.monotonic() + self._startup_timeout
        while not self.started:
            if not self._thread.is_alive():
                self._socket.close()
                raise RuntimeError("server failed to start")
            if time.monotonic() > deadline:
                self.stop()
                raise TimeoutError(f"server did not start within {self._startup_timeout} seconds")
            time.sleep(1e-3)

    def stop(self):
        if self._thread is None:
            return
        self.should_exit = True
        self._thread.join()
        self._socket.close()


class HTTPTestServer:
    """
    HTTP test server used to mock real HTTP servers.

    Predefined responses are served in a FIFO fashion until only one is left, this last
    response is then served indefinitely. When no predefined responses are available the
    server replies with an empty 404 response.

    Each request received by the server is recorded, with a copy of its body and the
    response the server sent. Records are popped in a FIFO fashion.

    The response and record queues are shared with the server thread and guarded by a lock.
    """

    def __init__(self, config: ServerConfig | None = None):
        self._config = config or ServerConfig()
        lock = threading.Lock()
        self._responses = ResponseQueue(lock)
        self._records = RecordStore(lock)
        self._handler = ExchangeHandler(self._responses, self._records)
        self._server: UvicornTestServer | None = None
        self._ssl_certfile: str | None = None

    @property
    def config(self) -> ServerConfig:
        return self._config

    @property
    def underlying_server(self) -> UvicornTestServer | None:
        return self._server

    @property
    def base_url(self) -> str:
        """
        The test server base URL of form http://ipaddr:port with no trailing slash
        """
        if self._server is None:
            raise RuntimeError("test server not started")
        scheme = "https" if self._server.is_ssl else "http"
        host = self._config.host
        if ":" in host:
            host = f"[{host}]"
        return f"{scheme}://{host}:{self._server.port}"

    def start(self):
        self._start()

    def start_tls(self, certfile: str | None = None, keyfile: str | None = None):
        """
        Start the test server with TLS activated.

        certfile and keyfile default to the ssl_certfile and ssl_keyfile configuration values
        """
        certfile = certfile or self._config.ssl_certfile
        keyfile = keyfile or self._config.ssl_keyfile
        if not certfile or not keyfile:
            raise ValueError("A certificate file and a key file are required to start the test server with TLS")
        self._start(certfile, keyfile)

    def _start(self, ssl_certfile: str | None = None, ssl_keyfile: str | None = None):
        if self._server is not None:
            raise RuntimeError("test server can only be started once")

        self._server = UvicornTestServer(self._handler, self._config, ssl_certfile, ssl_keyfile)
        self._server.start()
        self._ssl_certfile = ssl_certfile
        logger.info("🚀 Test server listening on %s", self.base_url)

    def close(self):
        if self._server is None:
            return
        self._server.stop()
        logger.info("🛑 Test server on port %s closed", self._server.port)

    def client(self) -> requests.Session:
        """
        Returns a requests Session for the test server, which trusts the server certificate
        when TLS is enabled. Proxy settings from the environment are ignored.
        """
        session = requests.Session()
        session.trust_env = False
        if self._ssl_certfile:
            session.verify = self._ssl_certfile
        return session

    def push_response(self, response: PredefinedResponse):
        self._responses.push(response)

    def pop_record(self) -> ServerRecord | None:
        """
        Pop the oldest server record, None is returned when no record is available
        """
        return self._records.pop()

    def clear_responses(self):
        self._responses.clear()

    def clear_records(self):
        self._records.clear()

    def clear(self):
        self.clear_responses()
        self.clear_records()

    @property
    def response_count(self) -> int:
        return len(self._responses)

    @property
    def record_count(self) -> int:
        return len(self._records)

    def __enter__(self) -> "HTTPTestServer":
        if self._server is None:
            self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
