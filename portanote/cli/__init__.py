"""Portanote CLI package."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import click

from . import config_cmd, export_cmd, info
from ._common import CONTEXT_SETTINGS, PortanoteCliError

__all__ = ["cli", "main", "PortanoteCliError"]

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "-c",
    "--config",
    "config_path_opt",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to configuration TOML file.",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Log progress (repeat for debug output).",
)
@click.pass_context
def cli(ctx: click.Context, config_path_opt: Path | None, verbose: int) -> None:
    """Portanote command group."""

    ctx.ensure_object(dict)
    invoked = ctx.invoked_subcommand

    if invoked is None:
        click.echo(ctx.command.get_help(ctx))
        ctx.exit(0)

    _configure_logging(verbose)
    ctx.obj["config_path"] = config_path_opt


for register_command in (
    config_cmd.register,
    export_cmd.register,
    info.register,
):
    register_command(cli)


def main(argv: Sequence[str] | None = None) -> int:
    args = list(argv) if argv is not None else None
    try:
        return cli.main(args=args, prog_name="pn", standalone_mode=False)
    except click.ClickException as exc:
        click.echo(str(exc), err=True)
        return 1
    except click.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except SystemExit as exc:
        return int(exc.code)
