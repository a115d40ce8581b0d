"""Application configuration and Go-style duration helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum


class StorageDriver(str, Enum):
    """Supported storage backends."""

    MEMORY = "memory"
    REDIS = "redis"

    def __str__(self) -> str:
        return self.value


class PubSubDriver(str, Enum):
    """Supported publish/subscribe backends."""

    MEMORY = "memory"
    REDIS = "redis"

    def __str__(self) -> str:
        return self.value


@dataclass
class WebSocketsConfig:
    """Websocket limits; zero values mean unlimited."""

    max_clients: int = 0
    max_lifetime: timedelta = timedelta(0)


@dataclass
class Config:
    """Runtime settings shared by the HTTP handlers."""

    max_requests: int = 0
    session_ttl: timedelta = timedelta(0)
    ignore_header_prefixes: list[str] = field(default_factory=list)
    max_request_body_size: int = 0  # bytes, zero means unlimited
    storage_driver: StorageDriver = StorageDriver.MEMORY
    pubsub_driver: PubSubDriver = PubSubDriver.MEMORY
    web_sockets: WebSocketsConfig = field(default_factory=WebSocketsConfig)


_NS_PER_US = 1_000
_NS_PER_MS = 1_000_000
_NS_PER_S = 1_000_000_000
_NS_PER_M = 60 * _NS_PER_S
_NS_PER_H = 60 * _NS_PER_M
_MAX_NS = 2**63 - 1

_UNITS = {
    "ns": 1,
    "us": _NS_PER_US,
    "µs": _NS_PER_US,
    "μs": _NS_PER_US,
    "ms": _NS_PER_MS,
    "s": _NS_PER_S,
    "m": _NS_PER_M,
    "h": _NS_PER_H,
}

_COMPONENT = re.compile(r"(\d*)(?:\.(\d*))?(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``1h30m`` or ``1.5s``; raise ValueError if malformed."""
    rest = text
    negative = False
    if rest[:1] in ("-", "+"):
        negative = rest[0] == "-"
        rest = rest[1:]

    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f'invalid duration "{text}"')

    total_ns = 0
    pos = 0
    while pos < len(rest):
        match = _COMPONENT.match(rest, pos)
        if match is None:
            raise ValueError(f'invalid duration "{text}"')
        whole, fraction, unit = match.groups()
        if not whole and not fraction:
            raise ValueError(f'invalid duration "{text}"')
        scale = _UNITS[unit]
        total_ns += int(whole or "0") * scale
        if fraction:
            total_ns += int(fraction) * scale // 10 ** len(fraction)
        if total_ns > _MAX_NS:
            raise ValueError(f'invalid duration "{text}"')
        pos = match.end()

    value = timedelta(microseconds=total_ns // _NS_PER_US)
    return -value if negative else value


def _with_fraction(amount: int, unit: int) -> str:
    whole, rest = divmod(amount, unit)
    if not rest:
        return str(whole)
    digits = str(rest).rjust(len(str(unit)) - 1, "0").rstrip("0")
    return f"{whole}.{digits}"


def format_duration(value: timedelta) -> str:
    """Render a duration the way the command line shows it, e.g. ``168h0m0s``."""
    ns = ((value.days * 86400 + value.seconds) * 1_000_000 + value.microseconds) * _NS_PER_US
    sign = "-" if ns < 0 else ""
    ns = abs(ns)

    if ns == 0:
        return "0s"

    if ns < _NS_PER_S:
        if ns < _NS_PER_US:
            text = f"{ns}ns"
        elif ns < _NS_PER_MS:
            text = _with_fraction(ns, _NS_PER_US) + "µs"
        else:
            text = _with_fraction(ns, _NS_PER_MS) + "ms"
        return sign + text

    hours, rest = divmod(ns, _NS_PER_H)
    minutes, rest = divmod(rest, _NS_PER_M)
    text = _with_fraction(rest, _NS_PER_S) + "s"
    if hours or minutes:
        text = f"{minutes}m" + text
    if hours:
        text = f"{hours}h" + text
    return sign + text