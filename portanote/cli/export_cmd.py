"""Export command for Portanote CLI."""

from __future__ import annotations

import re

import click

from ..exporters import ExportError
from ..interaction import ClickNotifier, ClickPrompter, DefaultsPrompter
from ..services.export import (
    ExportContext,
    ExportRequest,
    export_note,
    get_export_format_descriptions,
)
from ._common import PortanoteCliError, get_app

LINE_RANGE_RE = re.compile(r"^\s*(\d+)\s*(?:-\s*(\d+))?\s*$")


def _parse_lines(value: str | None) -> tuple[int, int] | None:
    if value is None:
        return None
    match = LINE_RANGE_RE.match(value)
    if match is None:
        raise PortanoteCliError(f"Invalid line range '{value}'. Use START-END.")
    start = int(match.group(1))
    end = int(match.group(2) or start)
    if start < 1 or end < start:
        raise PortanoteCliError(f"Invalid line range '{value}'. Use START-END.")
    return start, end


@click.command(name="export")
@click.argument("note", required=False)
@click.option(
    "-l",
    "--list-formats",
    "list_formats",
    is_flag=True,
    help="List available export formats and exit.",
)
@click.option(
    "-f",
    "--format",
    "export_format",
    type=str,
    default="html",
    show_default=True,
    metavar="FORMAT",
    help="Export format identifier.",
)
@click.option(
    "-d",
    "--dest",
    "destination",
    type=str,
    default=None,
    help="Destination folder; absolute, or relative to the vault. Skips the prompt.",
)
@click.option(
    "--in-vault",
    is_flag=True,
    help="Always write inside the vault, even if the folder is absolute.",
)
@click.option(
    "-y",
    "--yes",
    "accept_defaults",
    is_flag=True,
    help="Accept every default instead of prompting.",
)
@click.option(
    "--lines",
    "line_range",
    metavar="START-END",
    default=None,
    help="Export only this line range of the note.",
)
@click.pass_context
def export(
    ctx: click.Context,
    note: str | None,
    list_formats: bool,
    export_format: str,
    destination: str | None,
    in_vault: bool,
    accept_defaults: bool,
    line_range: str | None,
) -> None:
    """Export NOTE (a vault path or link name) as HTML, Markdown or PDF."""

    app = get_app(ctx)

    if list_formats:
        try:
            descriptions = get_export_format_descriptions()
        except ExportError as exc:
            raise PortanoteCliError(str(exc)) from exc

        if not descriptions:
            click.echo("No export formats are available.")
        else:
            click.echo("Available export formats:\n")
            for fmt, desc in descriptions:
                if desc:
                    click.echo(f"  - {fmt}: {desc}")
                else:
                    click.echo(f"  - {fmt}")
        ctx.exit(0)

    if note is None:
        raise PortanoteCliError("Missing argument 'NOTE'.")

    request = ExportRequest(
        note=note,
        format_id=export_format,
        lines=_parse_lines(line_range),
        output_folder=destination,
        in_vault=in_vault,
    )
    context = ExportContext(
        config=app.config,
        vault=app.vault,
        device=app.device,
        prompter=DefaultsPrompter() if accept_defaults else ClickPrompter(),
        notifier=ClickNotifier(),
    )

    try:
        export_note(context, request)
    except ExportError as exc:
        raise PortanoteCliError(str(exc)) from exc


def register(cli: click.Group) -> None:
    """Register the command with the root CLI group."""

    cli.add_command(export)
