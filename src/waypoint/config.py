"""Dispatcher configuration.

Config is a frozen dataclass: immutable after creation, no string-key dict
lookups. Override what you need::

    config = Config(allow_origin="https://example.com", preflight_max_age_seconds=600)

or load overrides from the environment with ``Config.from_env()``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any

from waypoint.errors import ConfigurationError, MethodNotAllowedError
from waypoint.types import HTTPMethod

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})
_BOOL_FIELDS = frozenset(
    {"serialize_output_as_json", "auto_handle_preflight", "auto_add_allow_origin"}
)


@dataclass(frozen=True, slots=True)
class Config:
    """Output and preflight settings for a Dispatcher."""

    # Output
    serialize_output_as_json: bool = True
    default_content_type: str = "application/json; charset=utf-8"

    # Preflight (OPTIONS) handling
    auto_handle_preflight: bool = True
    preflight_max_age_seconds: int = 3600
    allowed_headers: tuple[str, ...] = ("Content-Type", "Authorization")
    allowed_methods: tuple[HTTPMethod, ...] = field(
        default=(HTTPMethod.GET, HTTPMethod.POST, HTTPMethod.DELETE, HTTPMethod.OPTIONS)
    )

    # Origin
    allow_origin: str = "*"
    auto_add_allow_origin: bool = True

    def validate(self) -> None:
        """Raise ConfigurationError for values the Dispatcher cannot use."""
        if self.preflight_max_age_seconds < 0:
            msg = (
                f"preflight_max_age_seconds must be >= 0, "
                f"got {self.preflight_max_age_seconds}"
            )
            raise ConfigurationError(msg)
        for method in self.allowed_methods:
            if not isinstance(method, HTTPMethod):
                msg = f"allowed_methods must contain HTTPMethod values, got {method!r}"
                raise ConfigurationError(msg)

    @classmethod
    def from_env(
        cls, prefix: str = "WAYPOINT_", environ: Mapping[str, str] | None = None
    ) -> Config:
        """Build a Config from ``<prefix><FIELD_NAME>`` environment variables.

        Unset variables keep their defaults. Lists are comma separated.
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(prefix + f.name.upper())
            if raw is None:
                continue
            overrides[f.name] = _convert(f.name, raw.strip())
        config = cls(**overrides)
        config.validate()
        return config


def _convert(name: str, raw: str) -> Any:
    if name in _BOOL_FIELDS:
        value = raw.lower()
        if value in _TRUE:
            return True
        if value in _FALSE:
            return False
        msg = f"{name} must be a boolean, got {raw!r}"
        raise ConfigurationError(msg)
    if name == "preflight_max_age_seconds":
        try:
            return int(raw)
        except ValueError as e:
            msg = f"{name} must be an integer, got {raw!r}"
            raise ConfigurationError(msg) from e
    if name == "allowed_headers":
        return tuple(h.strip() for h in raw.split(",") if h.strip())
    if name == "allowed_methods":
        try:
            return tuple(
                HTTPMethod.parse(m.strip().upper())
                for m in raw.split(",")
                if m.strip()
            )
        except MethodNotAllowedError as e:
            msg = f"{name} contains unknown method {e.method!r}"
            raise ConfigurationError(msg) from e
    return raw
