"""CLI interface for the Bili CLI using Typer."""

import asyncio
import dataclasses
import logging
from typing import Optional

import qrcode
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from bili.exceptions import BiliError, NotLoggedInError
from bili.models import AuthEvent, BiliUser, Config, Runtime, SessionStatus
from bili.session import SessionManager, create_session_manager
from bili.storage import Storage

app = typer.Typer(help="Sign in to Bilibili from your terminal")
console = Console()

STATUS_STYLES = {
    SessionStatus.GENERATING: "dim",
    SessionStatus.AWAITING_SCAN: "cyan",
    SessionStatus.SCANNED: "yellow",
    SessionStatus.SUCCEEDED: "green bold",
    SessionStatus.EXPIRED: "red",
    SessionStatus.FAILED: "red bold",
    SessionStatus.IDLE: "dim",
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def render_qr(data: str) -> str:
    """Render data as a terminal QR code using half-block characters."""
    qr = qrcode.QRCode(border=2, error_correction=qrcode.constants.ERROR_CORRECT_L)
    qr.add_data(data)
    qr.make(fit=True)
    matrix = qr.get_matrix()

    # Two module rows per text line
    if len(matrix) % 2:
        matrix.append([False] * len(matrix[0]))

    lines = []
    for top, bottom in zip(matrix[0::2], matrix[1::2]):
        line = []
        for upper, lower in zip(top, bottom):
            if upper and lower:
                line.append("█")
            elif upper:
                line.append("▀")
            elif lower:
                line.append("▄")
            else:
                line.append(" ")
        lines.append("".join(line))
    return "\n".join(lines)


def _handle_error(e: BiliError) -> None:
    """Print a user-friendly error and exit."""
    console.print(f"[red]{e.message}[/red]")
    raise typer.Exit(1)


def _print_event(event: AuthEvent) -> None:
    style = STATUS_STYLES.get(event.status, "white")
    console.print(f"[{style}]{event.message}[/{style}]")


async def _run_login(manager: SessionManager) -> SessionStatus:
    unsubscribe = manager.subscribe(_print_event)
    try:
        session = await manager.start_login()
        if session is None:
            return manager.status

        console.print(render_qr(session.login_url), highlight=False)
        console.print(f"Or open: [cyan]{session.login_url}[/cyan]")
        console.print("[dim]Open Bilibili app → Tap profile → Scan icon (top right)[/dim]")

        await manager.wait()
        return manager.status
    finally:
        unsubscribe()
        await manager.aclose()


@app.command()
def login() -> None:
    """Sign in by scanning a QR code with the Bilibili app."""
    storage = Storage()
    config = storage.get_config()
    manager = create_session_manager(config, storage)

    if config.runtime == Runtime.BROWSER:
        console.print("[yellow]Browser runtime: the session will not be saved.[/yellow]")

    try:
        status = asyncio.run(_run_login(manager))
    except KeyboardInterrupt:
        console.print("[yellow]Login cancelled.[/yellow]")
        raise typer.Exit(1)

    if status != SessionStatus.SUCCEEDED:
        raise typer.Exit(1)

    if manager.credential is None:
        console.print("[yellow]Logged in, but no session cookies were returned. "
                      "You will need to sign in again next time.[/yellow]")


@app.command()
def logout() -> None:
    """Sign out and forget the saved session."""
    manager = create_session_manager(storage=Storage())

    async def _logout() -> None:
        try:
            await manager.logout()
        finally:
            await manager.aclose()

    asyncio.run(_logout())
    console.print("[green]Logged out.[/green]")


def _user_table(user: BiliUser) -> Table:
    table = Table(show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("UID", str(user.mid))
    table.add_row("Name", user.uname)
    table.add_row("VIP", "[magenta]yes[/magenta]" if user.vip else "no")
    return table


@app.command()
def status() -> None:
    """Show the signed-in user, if any."""
    manager = create_session_manager(storage=Storage())

    async def _status() -> BiliUser | None:
        try:
            return await manager.check_login_status()
        finally:
            await manager.aclose()

    try:
        user = asyncio.run(_status())
        if user is None:
            raise NotLoggedInError()
        console.print(_user_table(user))
    except NotLoggedInError as e:
        _handle_error(e)



def _config_table(config: Config) -> Table:
    table = Table(show_header=False)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("runtime", config.runtime.value)
    table.add_row("proxy_base", config.proxy_base or "[dim](none)[/dim]")
    table.add_row("poll_interval", f"{config.poll_interval:g}s")
    table.add_row("timeout", f"{config.timeout:g}s")
    return table


@app.command("config")
def config_command(
    runtime: Optional[Runtime] = typer.Option(None, "--runtime", help="Host runtime to log in from"),
    proxy_base: Optional[str] = typer.Option(
        None, "--proxy-base", help="Passport proxy for the browser runtime (empty to clear)"
    ),
) -> None:
    """Show the saved settings, or change them."""
    storage = Storage()
    # Environment overrides are not written back to the file
    config = storage.get_config(environ={})

    if runtime is not None or proxy_base is not None:
        config = dataclasses.replace(
            config,
            runtime=runtime or config.runtime,
            proxy_base=config.proxy_base if proxy_base is None else proxy_base or None,
        )
        storage.save_config(config)
        console.print(f"[green]Saved:[/green] {storage.config_path}")

    console.print(_config_table(config))


if __name__ == "__main__":
    app()
