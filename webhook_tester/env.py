"""Environment variables understood by the application."""

from __future__ import annotations

import os
from enum import Enum


class EnvVariable(str, Enum):
    """Names of the environment variables the application reads."""

    LISTEN_ADDR = "LISTEN_ADDR"  # IP address for listening
    LISTEN_PORT = "LISTEN_PORT"  # port number for listening
    PUBLIC_DIR = "PUBLIC_DIR"  # directory with public resources
    MAX_SESSION_REQUESTS = "MAX_REQUESTS"  # maximum stored requests per session
    SESSION_TTL = "SESSION_TTL"  # session lifetime
    STORAGE_DRIVER_NAME = "STORAGE_DRIVER"  # storage driver name
    PUBSUB_DRIVER = "PUBSUB_DRIVER"  # pub/sub driver name
    WEBSOCKET_MAX_CLIENTS = "WS_MAX_CLIENTS"  # maximal websocket clients
    WEBSOCKET_MAX_LIFETIME = "WS_MAX_LIFETIME"  # maximal single websocket lifetime
    REDIS_DSN = "REDIS_DSN"  # URL-like redis connection string

    def __str__(self) -> str:
        return self.value

    def lookup(self) -> str | None:
        """Return the variable's value (possibly empty), or None when it is not set."""
        return os.environ.get(self.value)