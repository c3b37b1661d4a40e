from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseSettings):
    """
    Configuration for the test server

    host: address to bind to
    port: port to listen on, 0 picks a free port
    ssl_certfile/ssl_keyfile: certificate and key used by start_tls
    log_level: log level of the underlying uvicorn server
    startup_timeout: seconds to wait for the server to accept connections
    """

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    host: str = Field(default="127.0.0.1", alias="HTTP_TEST_SERVER_HOST")
    port: int = Field(default=0, alias="HTTP_TEST_SERVER_PORT", ge=0, le=65535)
    ssl_certfile: str | None = Field(default=None, alias="HTTP_TEST_SERVER_SSL_CERTFILE")
    ssl_keyfile: str | None = Field(default=None, alias="HTTP_TEST_SERVER_SSL_KEYFILE")
    log_level: str = Field(
        default="warning",
        alias="HTTP_TEST_SERVER_LOG_LEVEL",
        pattern="^(critical|error|warning|info|debug|trace)$",
    )
    startup_timeout: float = Field(default=5, alias="HTTP_TEST_SERVER_STARTUP_TIMEOUT", gt=0)
