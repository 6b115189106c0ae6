from importlib.metadata import version

from .app import App
from .config import Config
from .context import RequestContext
from .dispatcher import Dispatcher, Response
from .errors import (
    ConfigurationError,
    DuplicateRouteError,
    MethodNotAllowedError,
    RouteNotFoundError,
    WaypointError,
)
from .result import Fail, Ok
from .types import HTTPMethod

__all__ = [
    "App",
    "Config",
    "ConfigurationError",
    "Dispatcher",
    "DuplicateRouteError",
    "Fail",
    "HTTPMethod",
    "MethodNotAllowedError",
    "Ok",
    "RequestContext",
    "Response",
    "RouteNotFoundError",
    "WaypointError",
    "__version__",
]

__version__ = version("waypoint")
