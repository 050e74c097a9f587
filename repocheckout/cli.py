"""CLI commands for repocheckout."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from repocheckout.errors import CheckoutError
from repocheckout.models.settings import SyncSettings
from repocheckout.sources.api import GitHubApiClient
from repocheckout.sync import cleanup as cleanup_source
from repocheckout.sync import get_source

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _split_repository(repository: str) -> tuple[str, str]:
    owner, _, name = repository.partition("/")
    if not owner or not name or "/" in name:
        raise click.BadParameter("Expected OWNER/NAME", param_hint="REPOSITORY")
    return owner, name


def _read_optional(path: str | None) -> str | None:
    return Path(path).read_text() if path else None


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """repocheckout - Check out a repository at a branch, tag, pull request or commit."""
    ctx.ensure_object(dict)
    _configure_logging(verbose)


@main.command()
@click.argument("repository")
@click.argument("path", type=click.Path(file_okay=False))
@click.option("--ref", default=None, help="Branch, tag or fully qualified ref")
@click.option("--commit", default=None, help="Commit SHA to check out")
@click.option("--depth", "fetch_depth", type=int, default=None, help="Fetch depth (0 = all history)")
@click.option("--clean/--no-clean", default=None, help="Clean an existing working directory")
@click.option(
    "--submodules",
    type=click.Choice(["none", "true", "recursive"]),
    default=None,
    help="Check out submodules",
)
@click.option("--lfs/--no-lfs", default=None, help="Download Git LFS files")
@click.option("--ssh-key-file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Private SSH key used to fetch")
@click.option("--known-hosts-file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Extra known_hosts entries")
@click.option("--ssh-strict/--no-ssh-strict", default=None, help="Strict host key checking")
@click.option("--persist-credentials/--no-persist-credentials", default=None,
              help="Leave credentials in the local git config")
@click.option("--safe-directory/--no-safe-directory", default=None,
              help="Add the path to safe.directory in a temporary global config")
@click.option("--server-url", default=None, help="Server URL (defaults to $GITHUB_SERVER_URL)")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="YAML settings file; command line options win")
def sync(
    repository: str,
    path: str,
    ref: str | None,
    commit: str | None,
    fetch_depth: int | None,
    clean: bool | None,
    submodules: str | None,
    lfs: bool | None,
    ssh_key_file: str | None,
    known_hosts_file: str | None,
    ssh_strict: bool | None,
    persist_credentials: bool | None,
    safe_directory: bool | None,
    server_url: str | None,
    config_path: str | None,
) -> None:
    """Sync REPOSITORY (OWNER/NAME) into PATH."""
    owner, name = _split_repository(repository)
    values: dict[str, Any] = {
        "repository_owner": owner,
        "repository_name": name,
        "repository_path": path,
        "ref": ref,
        "commit": commit,
        "fetch_depth": fetch_depth,
        "clean": clean,
        "submodules": submodules,
        "lfs": lfs,
        "ssh_key": _read_optional(ssh_key_file),
        "ssh_known_hosts": _read_optional(known_hosts_file),
        "ssh_strict": ssh_strict,
        "persist_credentials": persist_credentials,
        "set_safe_directory": safe_directory,
        "server_url": server_url,
    }

    try:
        if config_path:
            settings = SyncSettings.from_yaml(Path(config_path), **values)
        else:
            settings = SyncSettings(**{k: v for k, v in values.items() if v is not None})
        result = asyncio.run(get_source(settings))
    except (CheckoutError, ValidationError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1) from e

    table = Table(title="Sync Result")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Path", str(result.repository_path))
    table.add_row("Ref", result.ref or "-")
    table.add_row("Commit", result.commit or "-")
    table.add_row("Method", result.method)
    console.print(table)


@main.command()
@click.argument("path", type=click.Path(file_okay=False))
def cleanup(path: str) -> None:
    """Remove credentials persisted into PATH."""
    try:
        asyncio.run(cleanup_source(path))
    except CheckoutError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1) from e
    console.print(f"[green]Removed credentials from {path}[/green]")


@main.command("default-branch")
@click.argument("repository")
@click.option("--server-url", default=None, help="Server URL (defaults to $GITHUB_SERVER_URL)")
@click.option("--token", envvar="GITHUB_TOKEN", default="", help="API token (defaults to $GITHUB_TOKEN)")
def default_branch(repository: str, server_url: str | None, token: str) -> None:
    """Print the default branch of REPOSITORY (OWNER/NAME)."""
    owner, name = _split_repository(repository)

    async def run() -> str:
        async with GitHubApiClient(token, server_url) as client:
            return await client.get_default_branch(owner, name)

    try:
        branch = asyncio.run(run())
    except CheckoutError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1) from e
    console.print(branch)


if __name__ == "__main__":
    main()
