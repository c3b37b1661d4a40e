# imports here allow aggregating types under http_test_server
# pylint: disable=useless-import-alias
from .config import ServerConfig as ServerConfig
from .errors import BodyNotAllowedError as BodyNotAllowedError
from .errors import BodyReadError as BodyReadError
from .errors import FormParseError as FormParseError
from .errors import HTTPTestServerError as HTTPTestServerError
from .errors import ResponseWriteError as ResponseWriteError
from .handler import ExchangeHandler as ExchangeHandler
from .models import PredefinedResponse as PredefinedResponse
from .models import ServerRecord as ServerRecord
from .server import HTTPTestServer as HTTPTestServer
from .server import UvicornTestServer as UvicornTestServer
