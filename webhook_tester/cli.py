"""Command line interface: ``serve``, ``version`` and ``healthcheck`` commands."""

from __future__ import annotations

import os
import platform
import sys
from importlib.metadata import PackageNotFoundError, version as _dist_version
from typing import Any, Sequence

import click

from .checkers import HealthChecker
from .env import EnvVariable
from .logger import new_logger
from .serve_flags import ServeFlags

DEFAULT_APP_NAME = "webhook-tester"


def _app_version() -> str:
    try:
        return _dist_version("webhook-tester")
    except PackageNotFoundError:
        return "unknown"


class _AliasedGroup(click.Group):
    """A group whose commands may be called by aliases; unknown names are reported plainly."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.aliases: dict[str, str] = {}

    def add_aliases(self, command: str, *aliases: str) -> None:
        for alias in aliases:
            self.aliases[alias] = command

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        return super().get_command(ctx, self.aliases.get(cmd_name, cmd_name))

    def resolve_command(self, ctx: click.Context, args: list[str]) -> Any:
        name = args[0]
        command = self.get_command(ctx, name)
        if command is None:
            raise click.UsageError(f'unknown command "{name}" for "{ctx.info_name}"', ctx)
        return command.name, command, args[1:]


def _version_command(ver: str) -> click.Command:
    @click.command("version", help="Display application version")
    def version_cmd() -> None:
        click.echo(f"app version:\t{ver} (python {platform.python_version()})")

    return version_cmd


def _healthcheck_command() -> click.Command:
    @click.command(
        "healthcheck",
        hidden=True,
        help="Health checker for the HTTP server. Use case - docker healthcheck.",
    )
    @click.option(
        "-p", "--port",
        type=click.IntRange(0, 65535),
        default=8080,
        show_default=True,
        help=f"TCP port number [${EnvVariable.LISTEN_PORT}]",
    )
    @click.pass_context
    def healthcheck_cmd(ctx: click.Context, port: int) -> None:
        env_port = EnvVariable.LISTEN_PORT.lookup()
        if env_port:
            if env_port.isdigit() and int(env_port) <= 0xFFFF:
                port = int(env_port)
            else:
                raise click.ClickException(f"wrong TCP port environment variable [{env_port}] value")

        checker = (ctx.obj or {}).get("health_checker") or HealthChecker()
        try:
            checker.check(port)
        except Exception as exc:  # noqa: BLE001
            raise click.ClickException(str(exc)) from exc

    return healthcheck_cmd


def _serve_command() -> click.Command:
    @click.command(
        "serve",
        help="Start HTTP server. Environment variables have higher priority than flags.",
        context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
    )
    @click.argument("args", nargs=-1, type=click.UNPROCESSED)
    @click.pass_context
    def serve_cmd(ctx: click.Context, args: tuple[str, ...]) -> None:
        try:
            flags = ServeFlags.from_args(args)
            flags.override_using_env()
            flags.validate()
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc

        obj = ctx.obj or {}
        runner = obj.get("serve")
        if runner is None:
            raise click.ClickException("no storage and pub/sub backends are available to serve with")
        runner(flags, obj.get("log"))

    return serve_cmd


def build_cli(app_name: str) -> click.Group:
    """Create the root command with its subcommands."""

    @click.group(name=app_name, cls=_AliasedGroup, invoke_without_command=True)
    @click.option("-v", "--verbose", is_flag=True, default=False, help="verbose output")
    @click.option("--debug", is_flag=True, default=False, help="debug output")
    @click.option("--log-json", is_flag=True, default=False, help="logs in JSON format")
    @click.pass_context
    def root(ctx: click.Context, verbose: bool, debug: bool, log_json: bool) -> None:
        obj = ctx.ensure_object(dict)
        obj["log"] = new_logger(verbose, debug, log_json)
        if ctx.invoked_subcommand is None:
            click.echo(ctx.get_help())

    group: _AliasedGroup = root  # type: ignore[assignment]
    group.add_command(_version_command(_app_version()))
    group.add_command(_serve_command())
    group.add_command(_healthcheck_command())
    group.add_aliases("version", "v", "ver")
    group.add_aliases("serve", "s", "server")
    group.add_aliases("healthcheck", "chk", "health", "check")
    return group


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line; return the exit code."""
    app_name = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else DEFAULT_APP_NAME
    app = build_cli(app_name or DEFAULT_APP_NAME)
    args = list(sys.argv[1:] if argv is None else argv)

    def report(message: str) -> None:
        click.echo(click.style(message, fg="bright_red", bold=True), err=True)

    try:
        result = app.main(args=args, prog_name=app.name, standalone_mode=False)
    except click.ClickException as exc:
        report(exc.format_message())
        return 1
    except click.Abort:
        return 1
    except Exception as exc:  # noqa: BLE001
        report(str(exc))
        return 1
    return result if isinstance(result, int) else 0


if __name__ == "__main__":
    sys.exit(main())