"""User interaction seams: prompts that may be canceled, and notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar

import click

if TYPE_CHECKING:  # pragma: no cover - type check only
    from .pdf import PdfOptions

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class PromptResult(Generic[T]):
    """Outcome of a prompt: an accepted value, or a cancellation."""

    accepted: bool
    value: T | None = None

    @classmethod
    def accept(cls, value: T) -> "PromptResult[T]":
        return cls(accepted=True, value=value)

    @classmethod
    def cancel(cls) -> "PromptResult[T]":
        return cls(accepted=False)

    @property
    def canceled(self) -> bool:
        return not self.accepted


class Prompter(Protocol):
    """Asks the user for export decisions."""

    def choose_output_folder(self, default: str) -> PromptResult[str]: ...

    def pdf_options(self, defaults: "PdfOptions") -> PromptResult["PdfOptions"]: ...


class Notifier(Protocol):
    """Shows user-facing status messages."""

    def notify(self, message: str) -> None: ...


class DefaultsPrompter:
    """Accept every default without asking; used for non-interactive runs."""

    def __init__(self, output_folder: str | None = None) -> None:
        self.output_folder = output_folder

    def choose_output_folder(self, default: str) -> PromptResult[str]:
        return PromptResult.accept(self.output_folder or default)

    def pdf_options(self, defaults: "PdfOptions") -> PromptResult["PdfOptions"]:
        return PromptResult.accept(defaults)


class ClickPrompter:
    """Terminal prompts; Ctrl-C cancels and a blank folder answer keeps the default."""

    def choose_output_folder(self, default: str) -> PromptResult[str]:
        try:
            value = click.prompt("Export folder", default=default, show_default=True)
        except click.Abort:
            return PromptResult.cancel()
        return PromptResult.accept(str(value).strip() or default)

    def pdf_options(self, defaults: "PdfOptions") -> PromptResult["PdfOptions"]:
        try:
            width = click.prompt("Page width (px)", default=defaults.width, type=click.IntRange(1))
            height = click.prompt(
                "Page height (px)", default=defaults.height, type=click.IntRange(1)
            )
            wait_for = click.prompt(
                "Wait for selector", default=defaults.wait_for, show_default=False
            )
            timeout = click.prompt(
                "Timeout (ms)", default=defaults.timeout, type=click.IntRange(0)
            )
        except click.Abort:
            return PromptResult.cancel()
        return PromptResult.accept(
            replace(
                defaults,
                width=width,
                height=height,
                wait_for=str(wait_for).strip(),
                timeout=timeout,
            )
        )


class ClickNotifier:
    """Echo notifications to the terminal."""

    def __init__(self, *, err: bool = False) -> None:
        self.err = err

    def notify(self, message: str) -> None:
        logger.info(message)
        click.echo(message, err=self.err)


__all__ = [
    "ClickNotifier",
    "ClickPrompter",
    "DefaultsPrompter",
    "Notifier",
    "PromptResult",
    "Prompter",
]
