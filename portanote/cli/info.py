"""Info command for Portanote CLI."""

from __future__ import annotations

from dataclasses import fields

import click

from ..config import PortanoteConfig, resolve_output_folder
from ..html.css import collect_enabled_snippets, read_appearance
from ._common import get_app

_SECRET_KEYS = frozenset({"pdf_api_key"})


@click.command(name="info")
@click.pass_context
def info(ctx: click.Context) -> None:
    """Display vault, device and export configuration."""

    app = get_app(ctx)
    config: PortanoteConfig = app.config
    vault = app.vault

    notes = [file for file in vault.files() if file.extension == "md"]
    theme = read_appearance(vault).get("cssTheme") or "(default)"
    snippets = collect_enabled_snippets(vault).snippet_paths

    click.echo("Portanote vault info:\n")
    click.echo(f"  Vault         : {vault.root}")
    click.echo(f"  Notes         : {len(notes)}")
    click.echo(f"  Files         : {len(vault.files())}")
    click.echo(f"  Theme         : {theme}")
    click.echo(f"  CSS snippets  : {', '.join(snippets) if snippets else '(none)'}")
    click.echo(f"  Device        : {app.device.id} ({app.device.type_label})")
    click.echo(f"  Output folder : {resolve_output_folder(config.export, app.device.id)}")
    click.echo("\nConfiguration:\n")
    click.echo(_format_config(config))


def _format_config(config: PortanoteConfig) -> str:
    def quote(value: str | None) -> str:
        if value is None:
            return '""'
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'

    def render(value: object) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str):
            return quote(value)
        items = ", ".join(f"{quote(k)} = {quote(v)}" for k, v in dict(value).items())
        return "{ " + items + " }" if items else "{}"

    lines = [
        "[portanote]",
        f"vault_dir = {quote(str(config.vault_dir))}",
        "",
        "[export]",
    ]
    for item in fields(config.export):
        value = getattr(config.export, item.name)
        if item.name in _SECRET_KEYS and value:
            value = "********"
        lines.append(f"{item.name} = {render(value)}")
    return "\n".join(lines)


def register(cli: click.Group) -> None:
    """Register the command with the root CLI group."""

    cli.add_command(info)
