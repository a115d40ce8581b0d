"""Options of the ``serve`` command: parsing, environment overrides and validation."""

from __future__ import annotations

import argparse
import ipaddress
import os
import re
import sys
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Sequence
from urllib.parse import urlsplit

from .config import Config, PubSubDriver, StorageDriver, WebSocketsConfig, parse_duration
from .env import EnvVariable

DEFAULT_LISTEN_IP = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_MAX_REQUESTS = 128
DEFAULT_SESSION_TTL = timedelta(hours=168)
DEFAULT_MAX_REQUEST_BODY_SIZE = 64 * 1024
DEFAULT_REDIS_DSN = "redis://127.0.0.1:6379/0"

_REDIS_SCHEMES = ("redis", "rediss", "unix")


def default_public_dir() -> str:
    """The ``web`` directory next to the running program."""
    program = os.path.abspath(sys.argv[0]) if sys.argv and sys.argv[0] else os.getcwd()
    return os.path.join(os.path.dirname(program), "web")


def _parse_uint(text: str, bits: int) -> int:
    if not re.fullmatch(r"\d+", text):
        raise ValueError("invalid syntax")
    value = int(text)
    if value >= 2**bits:
        raise ValueError("value out of range")
    return value


def _parse_redis_dsn(dsn: str) -> None:
    scheme = urlsplit(dsn).scheme
    if scheme not in _REDIS_SCHEMES:
        raise ValueError(f"redis: invalid URL scheme: {scheme}")


def _uint_flag(bits: int, flag: str) -> Callable[[str], int]:
    def convert(text: str) -> int:
        try:
            return _parse_uint(text, bits)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f'invalid argument "{text}" for "{flag}" flag: {exc}') from None

    return convert


def _duration_flag(flag: str) -> Callable[[str], timedelta]:
    def convert(text: str) -> timedelta:
        try:
            return parse_duration(text)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f'invalid argument "{text}" for "{flag}" flag: {exc}') from None

    return convert


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise ValueError(message)


def _build_parser() -> _Parser:
    parser = _Parser(prog="serve", add_help=False)
    parser.add_argument("-l", "--listen", dest="listen_ip")
    parser.add_argument("-p", "--port", type=_uint_flag(16, "-p, --port"))
    parser.add_argument("--public", dest="public_dir")
    parser.add_argument("--max-requests", type=_uint_flag(16, "--max-requests"))
    parser.add_argument("--session-ttl", type=_duration_flag("--session-ttl"))
    parser.add_argument("--ignore-header-prefix", action="append")
    parser.add_argument("--max-request-body-size", type=_uint_flag(32, "--max-request-body-size"))
    parser.add_argument("--redis-dsn")
    parser.add_argument("--storage-driver")
    parser.add_argument("--pubsub-driver")
    parser.add_argument("--ws-max-clients", type=_uint_flag(32, "--ws-max-clients"))
    parser.add_argument("--ws-max-lifetime", type=_duration_flag("--ws-max-lifetime"))
    return parser


@dataclass
class ServeFlags:
    """Settings of the HTTP server; environment variables win over flags."""

    listen_ip: str = DEFAULT_LISTEN_IP
    port: int = DEFAULT_PORT
    public_dir: str = field(default_factory=default_public_dir)  # empty disables static files
    max_requests: int = DEFAULT_MAX_REQUESTS
    session_ttl: timedelta = DEFAULT_SESSION_TTL
    ignore_header_prefix: list[str] = field(default_factory=list)
    max_request_body_size: int = DEFAULT_MAX_REQUEST_BODY_SIZE
    redis_dsn: str = DEFAULT_REDIS_DSN
    storage_driver: str = StorageDriver.MEMORY.value
    pubsub_driver: str = PubSubDriver.MEMORY.value
    ws_max_clients: int = 0
    ws_max_lifetime: timedelta = timedelta(0)

    @classmethod
    def from_args(cls, argv: Sequence[str]) -> ServeFlags:
        """Build flags from command-line arguments; raise ValueError on bad ones."""
        parsed = _build_parser().parse_args(list(argv))
        flags = cls()
        for name, value in vars(parsed).items():
            if value is None:
                continue
            if name == "ignore_header_prefix":
                value = [part for item in value for part in item.split(",")]
            setattr(flags, name, value)
        return flags

    def override_using_env(self) -> None:
        """Apply environment variables; raise ValueError on malformed values."""
        value = EnvVariable.LISTEN_ADDR.lookup()
        if value is not None:
            self.listen_ip = value

        value = EnvVariable.LISTEN_PORT.lookup()
        if value is not None:
            try:
                self.port = _parse_uint(value, 16)
            except ValueError:
                raise ValueError(f"wrong TCP port environment variable [{value}] value") from None

        value = EnvVariable.PUBLIC_DIR.lookup()
        if value is not None:
            self.public_dir = value

        value = EnvVariable.MAX_SESSION_REQUESTS.lookup()
        if value is not None:
            try:
                self.max_requests = _parse_uint(value, 16)
            except ValueError:
                raise ValueError(f"wrong maximum session requests [{value}] value") from None

        value = EnvVariable.SESSION_TTL.lookup()
        if value is not None:
            try:
                self.session_ttl = parse_duration(value)
            except ValueError:
                raise ValueError(f"wrong session lifetime [{value}] period") from None

        value = EnvVariable.REDIS_DSN.lookup()
        if value is not None:
            self.redis_dsn = value

        value = EnvVariable.STORAGE_DRIVER_NAME.lookup()
        if value is not None:
            self.storage_driver = value

        value = EnvVariable.PUBSUB_DRIVER.lookup()
        if value is not None:
            self.pubsub_driver = value

        value = EnvVariable.WEBSOCKET_MAX_CLIENTS.lookup()
        if value is not None:
            try:
                self.ws_max_clients = _parse_uint(value, 32)
            except ValueError:
                raise ValueError(f"wrong maximal websocket clients count [{value}] value") from None

        value = EnvVariable.WEBSOCKET_MAX_LIFETIME.lookup()
        if value is not None:
            try:
                self.ws_max_lifetime = parse_duration(value)
            except ValueError:
                raise ValueError(f"wrong maximal single websocket lifetime [{value}] period") from None

    def _check_redis_dsn(self) -> None:
        try:
            _parse_redis_dsn(self.redis_dsn)
        except ValueError as exc:
            raise ValueError(f"wrong redis DSN [{self.redis_dsn}]: {exc}") from None

    def validate(self) -> None:
        """Raise ValueError when a setting cannot be used."""
        try:
            ipaddress.ip_address(self.listen_ip)
        except ValueError:
            raise ValueError(f"wrong IP address [{self.listen_ip}] for listening") from None

        if self.public_dir and not os.path.isdir(self.public_dir):
            raise ValueError(f"wrong public assets directory [{self.public_dir}] path")

        if self.storage_driver == StorageDriver.REDIS.value:
            self._check_redis_dsn()
        elif self.storage_driver != StorageDriver.MEMORY.value:
            raise ValueError(f"unsupported storage driver: {self.storage_driver}")

        if self.pubsub_driver == PubSubDriver.REDIS.value:
            self._check_redis_dsn()
        elif self.pubsub_driver != PubSubDriver.MEMORY.value:
            raise ValueError(f"unsupported pub/sub driver: {self.pubsub_driver}")

    def to_config(self) -> Config:
        """Build the application configuration (call after ``validate``)."""
        return Config(
            max_requests=self.max_requests,
            session_ttl=self.session_ttl,
            ignore_header_prefixes=list(self.ignore_header_prefix),
            max_request_body_size=self.max_request_body_size,
            storage_driver=StorageDriver(self.storage_driver),
            pubsub_driver=PubSubDriver(self.pubsub_driver),
            web_sockets=WebSocketsConfig(
                max_clients=self.ws_max_clients,
                max_lifetime=self.ws_max_lifetime,
            ),
        )