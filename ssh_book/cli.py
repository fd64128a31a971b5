from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator
from pathlib import Path

import pydantic
import typer
from InquirerPy import inquirer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .config import StoreConfig
from .errors import SshBookError
from .models import Group, Server
from .ssh import connect, open_in_terminal
from .storage import RecordStore


class OrderCommands(typer.core.TyperGroup):
    """Custom group to sort commands alphabetically in help."""

    def list_commands(self, ctx):
        return sorted(super().list_commands(ctx))


app = typer.Typer(
    help="SSH Book: server bookmarks organized in groups.",
    cls=OrderCommands,
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    data_dir: Path | None = typer.Option(
        None, "--data-dir", envvar="SSH_BOOK_DATA_DIR", help="Directory holding data.json"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    setup_logging(verbose)
    ctx.obj = RecordStore(StoreConfig.resolve(data_dir))


def _store(ctx: typer.Context) -> RecordStore:
    return ctx.obj


@contextlib.contextmanager
def _report_errors() -> Iterator[None]:
    try:
        yield
    except (SshBookError, pydantic.ValidationError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1) from e


@contextlib.contextmanager
def _cancellable() -> Iterator[None]:
    try:
        yield
    except (KeyboardInterrupt, typer.Abort):
        console.print("\n[dim]Cancelled.[/dim]")
        raise typer.Exit(0)


def _select(message: str, choices: list[tuple[str, str]]) -> str:
    """Interactive pick; returns the value of the chosen (label, value) pair."""
    labels = [label for label, _ in choices]
    with _cancellable():
        picked = inquirer.select(
            message=message,
            choices=labels,
            cycle=True,
            vi_mode=False,
            instruction="↑↓ navigate, search by name",
        ).execute()
    return dict(choices)[picked]


def _resolve_group(store: RecordStore, query: str | None) -> Group:
    with _report_errors():
        if query is not None:
            group = store.find_group(query)
            if not group:
                console.print("[red]Group not found[/red]")
                raise typer.Exit(1)
            return group
        groups = store.list_groups()
    if not groups:
        console.print("[yellow]No groups found. Add one: ssh-book group-add NAME[/yellow]")
        raise typer.Exit(1)
    if len(groups) == 1:
        return groups[0]
    group_id = _select(
        "Select group:",
        [(f"{g.name}  ({g.id[:8]})", g.id) for g in sorted(groups, key=lambda x: x.name.lower())],
    )
    return next(g for g in groups if g.id == group_id)


def _resolve_server(store: RecordStore, query: str | None, action: str) -> Server:
    with _report_errors():
        if query is not None:
            srv = store.find_server(query)
            if not srv:
                console.print("[red]Server not found[/red]")
                raise typer.Exit(1)
            return srv
        servers = store.list_servers()
    if not servers:
        console.print("[yellow]No servers found. Add one: ssh-book add[/yellow]")
        raise typer.Exit(1)
    server_id = _select(
        f"Select server to {action}:",
        [(f"{s.display()}  ({s.id[:8]})", s.id) for s in sorted(servers, key=lambda x: x.name.lower())],
    )
    return next(s for s in servers if s.id == server_id)


def _print_servers(groups: list[Group], servers: list[Server]) -> None:
    """Print servers table."""
    names = {g.id: g.name for g in groups}
    table = Table(title="Servers")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Group")
    table.add_column("Name", style="bold")
    table.add_column("Connection")
    table.add_column("Auth", justify="center", no_wrap=True)

    for s in servers:
        table.add_row(s.id[:8], names.get(s.group_id, "?"), s.name, f"{s.username}@{s.host}:{s.port}", s.auth_type)

    console.print(table)


@app.command("list", help="Show list of servers. Alias: ls")
@app.command("ls", hidden=True)
def list_servers(ctx: typer.Context, group: str | None = typer.Option(None, "--group", "-g", help="Only this group")):
    """Show list of servers."""
    store = _store(ctx)
    with _report_errors():
        data = store.load()
    servers = data.servers
    if group is not None:
        grp = _resolve_group(store, group)
        servers = [s for s in servers if s.group_id == grp.id]
    if not servers:
        console.print("[yellow]No servers found. Add one: ssh-book add[/yellow]")
        return
    _print_servers(data.groups, servers)


@app.command("groups", help="Show list of groups.")
def list_groups(ctx: typer.Context):
    with _report_errors():
        data = _store(ctx).load()
    if not data.groups:
        console.print("[yellow]No groups found. Add one: ssh-book group-add NAME[/yellow]")
        return
    table = Table(title="Groups")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("Servers", justify="right")
    for g in data.groups:
        count = sum(1 for s in data.servers if s.group_id == g.id)
        table.add_row(g.id[:8], g.name, str(count))
    console.print(table)


@app.command("group-add", help="Add a new group.")
def group_add(ctx: typer.Context, name: str = typer.Argument(..., help="Group name")):
    with _report_errors():
        group = _store(ctx).create_group(name)
    console.print(f"[green]Added group:[/green] {group.name}  (id: {group.id})")


@app.command("group-rename", help="Rename a group.")
def group_rename(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="ID/name/partial name"),
    new_name: str = typer.Argument(..., help="New group name"),
):
    store = _store(ctx)
    group = _resolve_group(store, query)
    with _report_errors():
        store.update_group(group.model_copy(update={"name": new_name}))
    console.print("[green]Saved.[/green]")


@app.command("group-rm", help="Remove a group and all of its servers.")
def group_remove(
    ctx: typer.Context,
    query: str | None = typer.Argument(None, help="ID/name/partial name (optional)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
):
    store = _store(ctx)
    group = _resolve_group(store, query)
    with _report_errors():
        count = len(store.servers_in_group(group.id))
    with _cancellable():
        if not yes and not typer.confirm(f"Remove group '{group.name}' and its {count} server(s)?"):
            raise typer.Exit(1)
    with _report_errors():
        store.delete_group(group.id)
    console.print(f"[green]Removed group and {count} server(s).[/green]")


@app.command("add", help="Add a new server. Alias: a")
@app.command("a", hidden=True)
def add_server(
    ctx: typer.Context,
    name: str | None = typer.Option(None, prompt=True, help="Server name"),
    host: str | None = typer.Option(None, prompt=True),
    port: int = typer.Option(22, prompt=True),
    username: str | None = typer.Option(None, prompt=True),
    key_path: str | None = typer.Option(None, "--key", help="Authenticate with this private key"),
    group: str | None = typer.Option(None, "--group", "-g", help="Group ID/name"),
):
    """Add a new server."""
    store = _store(ctx)
    grp = _resolve_group(store, group)
    with _report_errors():
        server = Server(
            name=name,
            host=host,
            port=port,
            username=username,
            auth_type="key" if key_path else "password",
            auth_info=key_path or "",
            group_id=grp.id,
        )
        server = store.create_server(server)
    console.print(f"[green]Added:[/green] {escape(server.display())}  (id: {server.id})")


@app.command("edit", help="Edit a server. Alias: e")
@app.command("e", hidden=True)
def edit(ctx: typer.Context, query: str = typer.Argument(..., help="ID/name/partial name")):
    """Edit a server."""
    store = _store(ctx)
    srv = _resolve_server(store, query, "edit")

    with _cancellable():
        name = typer.prompt("Name", default=srv.name)
        host = typer.prompt("Host", default=srv.host)
        port = typer.prompt("Port", default=srv.port, type=int)
        username = typer.prompt("Username", default=srv.username)
        key_path = typer.prompt("Key path (empty for password)", default=srv.auth_info, show_default=True)

    updated = srv.model_copy(
        update={
            "name": name,
            "host": host,
            "port": port,
            "username": username,
            "auth_type": "key" if key_path else "password",
            "auth_info": key_path,
        }
    )
    with _report_errors():
        store.update_server(Server.model_validate(updated.model_dump()))
    console.print("[green]Saved.[/green]")


@app.command("move", help="Move a server to another group.")
def move(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server ID/name/partial name"),
    group: str = typer.Argument(..., help="Target group ID/name"),
):
    store = _store(ctx)
    srv = _resolve_server(store, query, "move")
    grp = _resolve_group(store, group)
    with _report_errors():
        store.update_server(srv.model_copy(update={"group_id": grp.id}))
    console.print(f"[green]Moved to {grp.name}.[/green]")


@app.command("remove", help="Remove a server. Alias: rm")
@app.command("rm", hidden=True)
def remove(
    ctx: typer.Context,
    query: str | None = typer.Argument(None, help="ID/name/partial name (optional)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
):
    """Remove a server."""
    store = _store(ctx)
    srv = _resolve_server(store, query, "remove")
    with _cancellable():
        if not yes and not typer.confirm(f"Remove '{srv.name}' ({srv.username}@{srv.host}:{srv.port})?"):
            raise typer.Exit(1)
    with _report_errors():
        store.delete_server(srv.id)
    console.print("[green]Removed.[/green]")


@app.command("connect", help="Connect to a server. Alias: c")
@app.command("c", hidden=True)
def connect_cmd(
    ctx: typer.Context,
    query: str | None = typer.Argument(None, help="ID/name/partial name (optional)"),
    terminal: bool = typer.Option(False, "--terminal", "-t", help="Open in a new terminal window"),
):
    """Connect to a server."""
    srv = _resolve_server(_store(ctx), query, "connect")
    if terminal:
        with _report_errors():
            open_in_terminal(srv)
        return
    raise typer.Exit(connect(srv))


@app.command("export", help="Export groups and servers to a JSON file. Alias: ex")
@app.command("ex", hidden=True)
def export_cmd(
    ctx: typer.Context,
    output: Path = typer.Argument(..., help="Output file path (e.g., backup.json)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Overwrite without asking"),
):
    """Export the dataset to a JSON file."""
    if output.exists() and not yes:
        with _cancellable():
            if not typer.confirm(f"File '{output}' already exists. Overwrite?", default=False):
                console.print("[dim]Cancelled.[/dim]")
                raise typer.Exit(0)
    with _report_errors():
        data = _store(ctx).export_data(output)
    console.print(
        f"[green]✓ Exported {len(data.groups)} group(s), {len(data.servers)} server(s) to:[/green] {output.absolute()}"
    )


@app.command("import", help="Import groups and servers from a JSON file. Alias: im")
@app.command("im", hidden=True)
def import_cmd(
    ctx: typer.Context,
    input_file: Path = typer.Argument(..., help="Input file path (e.g., backup.json)"),
    merge: bool = typer.Option(False, "--merge", help="Keep existing records; same IDs are updated"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
):
    """Import a dataset from a JSON file."""
    store = _store(ctx)
    if not input_file.exists():
        console.print(f"[red]File not found:[/red] {input_file}")
        raise typer.Exit(1)

    with _report_errors():
        existing = store.load()
    if existing.servers or existing.groups:
        if merge:
            console.print("[cyan]Merge mode:[/cyan] existing records are kept, same IDs are updated.")
        else:
            console.print("[red]Replace mode:[/red] all existing records will be deleted!")
    with _cancellable():
        if not yes and not typer.confirm("Continue with import?", default=False):
            console.print("[dim]Cancelled.[/dim]")
            raise typer.Exit(0)

    with _report_errors():
        data = store.import_data(input_file, merge=merge)
    console.print(f"[green]✓ Import done.[/green] Groups: {len(data.groups)}, servers: {len(data.servers)}")


def main():
    app()


if __name__ == "__main__":
    main()
