"""CLI application for mdvault using Rich and Typer."""

import asyncio
import importlib
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from mdvault.config import DEBUG, MDVAULT_PATH, setup_logging
from mdvault.errors import ConfigurationError, VaultError
from mdvault.plugin import PluginConfig
from mdvault.vault import Vault

DEFAULT_PLUGINS = "mdvault.plugins.reddit:plugins"

app = typer.Typer(
    name="mdvault",
    help="mdvault CLI - typed tables stored as markdown files",
    no_args_is_help=True,
)

console = Console()


def load_plugins(spec: str) -> list[PluginConfig]:
    """
    Import plugins from a "module:attribute" path.

    The attribute may be a single PluginConfig or a sequence of them.

    Raises:
        ConfigurationError: If the path cannot be imported or holds no plugins
    """
    module_name, _, attribute = spec.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(f"Plugin path {spec!r} must look like 'module:attribute'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import plugin module {module_name!r}: {e}") from e
    try:
        loaded = getattr(module, attribute)
    except AttributeError as e:
        raise ConfigurationError(f"Module {module_name!r} has no attribute {attribute!r}") from e

    if isinstance(loaded, PluginConfig):
        return [loaded]
    plugins = list(loaded) if isinstance(loaded, (list, tuple)) else []
    if not plugins or not all(isinstance(p, PluginConfig) for p in plugins):
        raise ConfigurationError(f"{spec!r} is not a plugin or a list of plugins")
    return plugins


def _open_vault(ctx: typer.Context) -> Vault:
    return Vault(ctx.obj["vault_path"], load_plugins(ctx.obj["plugins"]))


def _run(ctx: typer.Context, action) -> Any:
    """Open the vault, run an async action against it, report vault errors."""
    try:
        vault = _open_vault(ctx)
        result = action(vault)
        if isinstance(result, Coroutine):
            result = asyncio.run(result)
        return result
    except VaultError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    vault: Optional[str] = typer.Option(
        None,
        "--vault",
        "-v",
        help="Path to vault directory (default: ~/.mdvault or $MDVAULT_PATH)",
    ),
    plugins: str = typer.Option(
        DEFAULT_PLUGINS,
        "--plugins",
        "-p",
        help="Plugins to load, as module:attribute",
    ),
    debug: bool = typer.Option(
        DEBUG,
        "--debug",
        "-d",
        help="Enable debug logging (default: $MDVAULT_DEBUG)",
    ),
):
    """Manage a vault of typed markdown records."""
    setup_logging(debug=debug)

    ctx.obj = {
        "vault_path": Path(vault).expanduser() if vault else MDVAULT_PATH,
        "plugins": plugins,
    }


@app.command()
def init(ctx: typer.Context):
    """Create the directory of every table."""
    paths = _run(ctx, lambda vault: vault.ensure_structure())
    for path in paths:
        console.print(f"[dim]{path}[/dim]")
    console.print(f"[green]Initialized {len(paths)} tables in {ctx.obj['vault_path']}[/green]")


@app.command()
def stats(ctx: typer.Context):
    """Show record counts per table."""
    result = _run(ctx, lambda vault: vault.stats())

    table = Table(title="Vault Stats", show_header=True, header_style="bold cyan")
    table.add_column("Table", style="green")
    table.add_column("Records", justify="right")

    for name, count in result.table_stats.items():
        table.add_row(name, str(count))

    console.print(table)
    console.print(
        f"[dim]{result.plugins} plugins | {result.tables} tables | "
        f"{result.total_records} records[/dim]"
    )


@app.command()
def describe(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Table mirror name (reddit_posts) or plugin.table"),
):
    """Describe one table: fields, methods and record count."""
    info = _run(ctx, lambda vault: vault.describe(name))

    fields = Table(show_header=True, header_style="bold cyan")
    fields.add_column("Field", style="green")
    fields.add_column("Type")
    fields.add_column("Options")

    for field_name, definition in info["fields"].items():
        options = [k for k in ("required", "unique") if definition.get(k)]
        if "default" in definition:
            options.append(f"default={definition['default']!r}")
        if definition.get("references"):
            options.append(f"-> {definition['references']}")
        fields.add_row(field_name, definition["type"], ", ".join(options))

    console.print(
        Panel.fit(
            f"[bold]{info['name']}[/bold]\n"
            f"[dim]{info['path']}[/dim]\n\n"
            f"Records: {info['record_count']}\n"
            f"Methods: {', '.join(info['methods']) or '-'}",
            title=f"{info['plugin']}.{info['table']}",
            border_style="blue",
        )
    )
    console.print(fields)


@app.command()
def export(
    ctx: typer.Context,
    format: str = typer.Option("json", "--format", "-f", help="json, sql or markdown"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to a file"),
):
    """Export the vault."""
    text = _run(ctx, lambda vault: vault.export(format))

    if output is None:
        typer.echo(text)
        return

    try:
        output.write_text(text, encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Error: cannot write {output}: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Exported {format} to {output}[/green]")


@app.command()
def refresh(ctx: typer.Context):
    """Re-read every record from disk."""
    total = _run(ctx, lambda vault: vault.refresh())
    console.print(f"[green]Read {total} records[/green]")


def main():
    """Entry point for the mdvault console script."""
    app()


if __name__ == "__main__":
    main()
