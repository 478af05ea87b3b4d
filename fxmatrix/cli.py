"""fxmatrix CLI — command line interface."""

import asyncio
import sys

import click
from rich.console import Console

from . import __version__
from .config import load_settings
from .errors import ConfigError, SessionError

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="fxmatrix")
@click.option("--database-dir", type=click.Path(file_okay=False), default=None,
              help="Session store + log directory (env: FX_DATABASE_DIR)")
@click.option("--proxy", default=None, help="Proxy URL for all outgoing traffic (env: FX_PROXY)")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, database_dir, proxy, debug):
    """fxmatrix — X/Twitter embeds for Matrix rooms."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {"database_dir": database_dir, "proxy": proxy}
    ctx.obj["debug"] = debug


def _load_settings(ctx):
    """Load settings from the environment plus the group options."""
    try:
        return load_settings(**ctx.obj["overrides"])
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)


# ── Login ────────────────────────────────────────────────────

@cli.command()
@click.option("--homeserver", required=True, help="Homeserver URL or server name")
@click.option("--username", default=None)
@click.option("--password", default=None)
@click.option("--login-token", default=None, help="SSO login token")
@click.pass_context
def login(ctx, homeserver, username, password, login_token):
    """Log in and store a fresh session (wipes the database dir)."""
    from .main import setup_logging
    from .session import login as do_login

    settings = _load_settings(ctx)
    setup_logging(settings, debug=ctx.obj["debug"], log_to_file=False)

    console.print(f"[bold blue]Connecting to {homeserver}[/bold blue]")
    try:
        data = asyncio.run(do_login(settings, homeserver, username, password, login_token))
    except SessionError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(f"[green]✓ Logged in as {data.user_id} (device {data.device_id})[/green]")


# ── Run ──────────────────────────────────────────────────────

@cli.command()
@click.pass_context
def run(ctx):
    """Run the bot until Ctrl+C or the shutdown command."""
    from .main import run as do_run, setup_logging

    settings = _load_settings(ctx)
    setup_logging(settings, debug=ctx.obj["debug"])

    console.print("[bold blue]Starting fxmatrix...[/bold blue]")
    try:
        asyncio.run(do_run(settings))
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    except KeyboardInterrupt:
        pass
    console.print("[dim]Stopped.[/dim]")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
