"""waypoint exception hierarchy.

Registration errors surface to the caller of the registration API.
Per-request errors are caught by the Dispatcher and turned into responses.
"""


class WaypointError(Exception):
    """Base for all waypoint-specific errors."""


class ConfigurationError(WaypointError):
    """Raised when a configuration value cannot be used."""


class DuplicateRouteError(WaypointError):
    """The same pattern is already registered for the same method."""

    def __init__(self, pattern: str, method: str) -> None:
        self.pattern = pattern
        self.method = method
        super().__init__(f"route {method} {pattern} is already registered")


class RouteNotFoundError(WaypointError):
    """404: no registered route matched the request."""

    status = 404

    def __init__(self, method: str, path: str) -> None:
        self.method = method
        self.path = path
        super().__init__(f"no route for {method} {path}")


class MethodNotAllowedError(WaypointError):
    """405: the request method is not a recognized HTTP method."""

    status = 405

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"unrecognized method {method!r}")
