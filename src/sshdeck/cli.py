from __future__ import annotations

import asyncio
import contextlib
import functools
import json
import os
import signal
import sys
from typing import TYPE_CHECKING, Any

import click
from pydantic import ValidationError

from sshdeck.core.prober import ConnectivityProber
from sshdeck.core.registry import SessionRegistry
from sshdeck.logging import configure_logging
from sshdeck.models import AuthType, ConnectionConfig
from sshdeck.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator

    from sshdeck.core.session import Session


def connection_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Shared target and credential options."""

    @click.argument("target")
    @click.option("-p", "--port", type=int, default=22, show_default=True)
    @click.option("-i", "--identity", "private_key_path", type=str, default=None, help="Private key file.")
    @click.option(
        "--password",
        envvar="SSHDECK_PASSWORD",
        default=None,
        help="Password, or key passphrase with --identity (env: SSHDECK_PASSWORD).",
    )
    @click.option("--ask-password", is_flag=True, help="Prompt for the password.")
    @functools.wraps(func)
    def wrapper(
        target: str,
        port: int,
        private_key_path: str | None,
        password: str | None,
        ask_password: bool,
        **kwargs: Any,
    ) -> Any:
        if ask_password:
            password = click.prompt("Password", hide_input=True)
        config = build_config(target, port, password, private_key_path)
        return func(config, **kwargs)

    return wrapper


def build_config(target: str, port: int, password: str | None, private_key_path: str | None) -> ConnectionConfig:
    """Build a config from ``user@host`` plus options."""
    username, sep, host = target.rpartition("@")
    if not sep:
        username, host = os.environ.get("USER", ""), target
    if private_key_path:
        auth_type: AuthType | None = AuthType.PRIVATE_KEY
    elif password:
        auth_type = AuthType.PASSWORD
    else:
        auth_type = None
    try:
        return ConnectionConfig(
            host=host,
            port=port,
            username=username,
            auth_type=auth_type,
            password=password,
            private_key_path=private_key_path,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="TARGET") from e


def run_with_session(
    config: ConnectionConfig,
    action: Callable[[Session], Awaitable[int]],
) -> None:
    """Connect, run ``action`` and exit with its status."""
    settings = Settings()
    configure_logging(settings)

    async def _run() -> int:
        async with SessionRegistry(settings) as registry:
            result = await registry.create(config)
            if not result.success or result.session_id is None:
                click.echo(result.error, err=True)
                return 1
            session = registry.get(result.session_id)
            if session is None:
                click.echo("Connection closed during setup", err=True)
                return 1
            return await action(session)

    sys.exit(asyncio.run(_run()))


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def cli() -> None:
    """sshdeck command line interface."""


@cli.command("probe")
@connection_options
@click.option("--json", "as_json", is_flag=True, help="Print the raw result.")
def probe(config: ConnectionConfig, as_json: bool) -> None:
    """Check whether TARGET's SSH service answers."""
    settings = Settings()
    configure_logging(settings)
    result = asyncio.run(ConnectivityProber(settings).test(config))
    if as_json:
        click.echo(json.dumps(result.to_dict()))
    elif result.reachable:
        click.echo(f"{config.host}:{config.port} reachable")
    else:
        click.echo(f"{config.host}:{config.port} unreachable\n{result.error}", err=True)
    sys.exit(0 if result.reachable else 1)


@cli.command("exec")
@connection_options
@click.argument("command")
@click.option("--timeout", type=float, default=None, help="Seconds before the command is killed.")
def exec_command(config: ConnectionConfig, command: str, timeout: float | None) -> None:
    """Run COMMAND on TARGET and print its output."""

    async def _action(session: Session) -> int:
        result = await session.execute_command(command, timeout=timeout)
        if result.output:
            click.echo(result.output, nl=False)
        if not result.success:
            click.echo(result.error, err=True)
            return 1
        return 0

    run_with_session(config, _action)


@cli.command("get")
@connection_options
@click.argument("remote_path")
@click.argument("local_path", required=False)
def get(config: ConnectionConfig, remote_path: str, local_path: str | None) -> None:
    """Download REMOTE_PATH (default destination: the downloads directory)."""

    async def _action(session: Session) -> int:
        result = await session.download_file(remote_path, local_path)
        click.echo(result.output if result.success else result.error, err=not result.success)
        return 0 if result.success else 1

    run_with_session(config, _action)


@cli.command("put")
@connection_options
@click.argument("local_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("remote_path")
def put(config: ConnectionConfig, local_path: str, remote_path: str) -> None:
    """Upload LOCAL_PATH to REMOTE_PATH."""

    async def _action(session: Session) -> int:
        result = await session.upload_file(local_path, remote_path)
        click.echo(result.output if result.success else result.error, err=not result.success)
        return 0 if result.success else 1

    run_with_session(config, _action)


@cli.command("ls")
@connection_options
@click.argument("remote_path", default=".")
@click.option("-a", "--all", "show_hidden", is_flag=True, help="Include hidden entries.")
def ls(config: ConnectionConfig, remote_path: str, show_hidden: bool) -> None:
    """List a remote directory."""

    async def _action(session: Session) -> int:
        result = await session.list_directory(remote_path)
        if not result.success:
            click.echo(result.error, err=True)
            return 1
        for entry in result.entries:
            if entry.hidden and not show_hidden:
                continue
            suffix = "/" if entry.kind == "directory" else ""
            click.echo(f"{entry.permissions:<10} {entry.size:>10} {entry.name}{suffix}")
        return 0

    run_with_session(config, _action)


@cli.command("shell")
@connection_options
def shell(config: ConnectionConfig) -> None:
    """Open an interactive shell on TARGET."""
    run_with_session(config, interactive_shell)


async def interactive_shell(session: Session) -> int:
    """Bridge the local terminal to the session's shell channel."""
    if not session.shell_ready:
        click.echo("Shell could not be started", err=True)
        return 1

    loop = asyncio.get_running_loop()
    stream = session.subscribe()
    stdin_fd = sys.stdin.fileno()
    stdout = sys.stdout.buffer

    def _on_stdin() -> None:
        data = os.read(stdin_fd, 4096)
        if not data or not session.write_to_shell(data):
            stream.close()

    def _on_winch() -> None:
        size = os.get_terminal_size(stdin_fd)
        session.resize_terminal(size.columns, size.lines)

    with _raw_terminal(stdin_fd):
        with contextlib.suppress(OSError):
            _on_winch()
        loop.add_reader(stdin_fd, _on_stdin)
        loop.add_signal_handler(signal.SIGWINCH, _on_winch)
        try:
            async for chunk in stream:
                stdout.write(chunk)
                stdout.flush()
        finally:
            loop.remove_reader(stdin_fd)
            loop.remove_signal_handler(signal.SIGWINCH)
            stream.close()
    return 0


@contextlib.contextmanager
def _raw_terminal(fd: int) -> Iterator[None]:
    if not os.isatty(fd):
        yield
        return

    import termios
    import tty

    saved = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
