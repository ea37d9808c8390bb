"""Export services for Portanote."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import click
from bs4 import BeautifulSoup

from ..config import (
    DEFAULT_OUTPUT_FOLDER,
    ExportSettings,
    PortanoteConfig,
    normalize_external_path,
    remember_output_folder,
    resolve_output_folder,
    vault_export_folder,
)
from ..device import DeviceInfo
from ..exporters import ExportError
from ..html.banner import generate_banner
from ..html.css import (
    MULTI_COLUMN_FIX_CSS,
    collect_css_text,
    collect_enabled_snippets,
    discover_stylesheets,
    inline_asset_urls,
    local_fetcher,
    normalize_css_for_export,
    read_appearance,
)
from ..html.document import HtmlDocumentBuilder, HtmlDocumentParts, ensure_templates
from ..html.dom import (
    copy_local_assets,
    inline_local_images,
    trim_multi_column_callouts,
    wait_for_idle,
)
from ..interaction import Notifier, Prompter
from ..markdown.embeds import normalize_image_embeds
from ..markdown.links import LinkResolver
from ..markdown.passes import export_markdown
from ..notes_frontmatter import export_base_name, frontmatter_classes, parse_document
from ..output import AssetRelocator, OutputInfo, prepare_output_paths
from ..pdf import PdfApiClient, PdfOptions
from ..plugins import (
    ExportContribution,
    PluginRegistrationError,
    find_banner_provider,
    load_export_contributions,
    reset_plugin_manager_cache,
)
from ..rendering import MarkdownRenderer, Renderer
from ..vault import StorageError, Vault, VaultFile

logger = logging.getLogger(__name__)

IDLE_MS = 250
FIRST_WAIT_CEILING_MS = 3000
SECOND_WAIT_CEILING_MS = 2000

FORMAT_LABELS = {"html": "HTML", "markdown": "Markdown", "pdf": "PDF"}


@dataclass(slots=True, frozen=True)
class ExportRequest:
    """One note to export in one format.

    ``lines`` selects an inclusive, 1-based line range of the note;
    ``output_folder`` skips the folder prompt.
    """

    note: str
    format_id: str
    lines: tuple[int, int] | None = None
    output_folder: str | None = None
    in_vault: bool = False


@dataclass(slots=True, frozen=True)
class ExportOutcome:
    """What an export produced: a written path, or a cancellation."""

    path: str | None = None
    display_path: str | None = None
    canceled: bool = False

    @classmethod
    def cancel(cls) -> "ExportOutcome":
        return cls(canceled=True)


@dataclass(slots=True)
class ExportContext:
    """Collaborators shared by every exporter during one run."""

    config: PortanoteConfig
    vault: Vault
    device: DeviceInfo
    prompter: Prompter
    notifier: Notifier
    renderer: Renderer | None = None
    pdf_client_factory: Callable[..., PdfApiClient] = PdfApiClient
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic
    launcher: Callable[[str], object] | None = None
    resolver: LinkResolver = field(init=False)

    def __post_init__(self) -> None:
        self.resolver = LinkResolver(self.vault)

    @property
    def settings(self) -> ExportSettings:
        return self.config.export


@dataclass(slots=True, frozen=True)
class SourceNote:
    """The note being exported and the text selected for export."""

    file: VaultFile
    text: str
    metadata: dict


def clear_export_registry_cache() -> None:
    """Reset cached exporter discovery (primarily for testing)."""

    reset_plugin_manager_cache()


def _load_export_registry() -> dict[str, ExportContribution]:
    try:
        return load_export_contributions()
    except PluginRegistrationError as exc:
        raise ExportError(str(exc)) from exc


def get_export_format_choices() -> list[str]:
    """Return the list of available export format identifiers."""

    return sorted(_load_export_registry().keys())


def get_export_format_descriptions() -> list[tuple[str, str]]:
    """Return tuples of ``(format_id, description)`` for available exporters."""

    registry = _load_export_registry()
    return sorted(
        ((fmt, contrib.description) for fmt, contrib in registry.items()),
        key=lambda item: item[0],
    )


def _select_lines(text: str, lines: tuple[int, int] | None) -> str:
    if lines is None:
        return text
    start, end = lines
    if start < 1 or end < start:
        raise ExportError(f"Invalid line range: {start}-{end}")
    return "\n".join(text.split("\n")[start - 1 : end])


def find_note(vault: Vault, note: str) -> VaultFile:
    """Locate ``note`` by vault path, filesystem path, or link text."""

    candidate = Path(note).expanduser()
    if candidate.is_absolute():
        try:
            note = candidate.resolve().relative_to(vault.root.resolve()).as_posix()
        except ValueError as exc:
            raise ExportError(f"{note} is not inside the vault {vault.root}") from exc

    file = vault.get_file(note) or vault.get_first_linkpath_dest(note, "")
    if file is None or file.extension != "md":
        raise ExportError(f"Note not found: {note}")
    return file


def load_source(context: ExportContext, request: ExportRequest) -> SourceNote:
    file = find_note(context.vault, request.note)
    raw = context.vault.read(file)
    metadata = parse_document(raw).metadata
    return SourceNote(file=file, text=_select_lines(raw, request.lines), metadata=metadata)


def choose_output(context: ExportContext, request: ExportRequest) -> OutputInfo | None:
    """Ask for (or take) the destination folder; ``None`` when canceled."""

    default = (
        normalize_external_path(resolve_output_folder(context.settings, context.device.id))
        or DEFAULT_OUTPUT_FOLDER
    )
    if request.output_folder is not None:
        chosen = normalize_external_path(request.output_folder)
    else:
        answer = context.prompter.choose_output_folder(default)
        chosen = normalize_external_path(answer.value) if answer.accepted else None
    if not chosen:
        return None

    context.config = remember_output_folder(context.config, context.device.id, chosen)
    if request.in_vault:
        chosen = vault_export_folder(chosen)
    return prepare_output_paths(context.vault, chosen)


def _render_container(context: ExportContext, source: SourceNote) -> BeautifulSoup:
    """Render the note and wait for the surface to settle."""

    renderer = context.renderer or MarkdownRenderer(context.vault)
    body = parse_document(source.text).body
    normalized = normalize_image_embeds(context.resolver, body, source.file.path)
    surface = renderer.render(normalized, source.file.path)

    wait_for_idle(
        surface.snapshot,
        timeout_ms=FIRST_WAIT_CEILING_MS,
        idle_ms=IDLE_MS,
        clock=context.clock,
        sleep=context.sleep,
    )
    delay_ms = context.settings.post_process_delay_ms
    if delay_ms > 0:
        context.sleep(delay_ms / 1000)
        wait_for_idle(
            surface.snapshot,
            timeout_ms=SECOND_WAIT_CEILING_MS,
            idle_ms=IDLE_MS,
            clock=context.clock,
            sleep=context.sleep,
        )

    trim_multi_column_callouts(surface.container)
    # Post-processing works on a copy so the live surface stays untouched.
    return BeautifulSoup(surface.html, "html.parser")


def _collect_css(context: ExportContext, banner_css: str) -> str:
    settings = context.settings
    vault = context.vault
    if settings.include_css:
        sheets = discover_stylesheets(vault, context.config)
        snippets = collect_enabled_snippets(vault)
        # Stylesheet text comes back normalized; snippets and the banner join here.
        css_raw = "\n".join(
            [
                collect_css_text(sheets),
                normalize_css_for_export(snippets.css_text),
                MULTI_COLUMN_FIX_CSS,
                normalize_css_for_export(banner_css),
            ]
        )
    else:
        css_raw = normalize_css_for_export(banner_css)
    if not settings.inline_local_assets:
        return css_raw

    obsidian_dir = vault.root / vault.config_dir
    base_dirs = [obsidian_dir / "snippets", vault.root]
    theme = read_appearance(vault).get("cssTheme")
    if isinstance(theme, str) and theme.strip():
        base_dirs.insert(0, obsidian_dir / "themes" / theme.strip())
    return inline_asset_urls(css_raw, local_fetcher(*base_dirs))


def build_html(
    context: ExportContext,
    source: SourceNote,
    output: OutputInfo,
    *,
    templates_dir: Path,
) -> str:
    """Produce the standalone HTML document for ``source``."""

    settings = context.settings
    container = _render_container(context, source)

    if settings.inline_local_assets:
        inline_local_images(container, context.vault, context.resolver, source.file.path)
    if settings.copy_assets:
        output.ensure_assets_folder()
        copy_local_assets(
            container,
            context.resolver,
            source.file.path,
            AssetRelocator(context.vault, output),
        )

    banner = generate_banner(
        context.vault,
        context.resolver,
        source.file,
        source.metadata,
        find_banner_provider(context.config),
    )
    css_text = _collect_css(context, banner.css if banner else "")

    classes = " ".join(frontmatter_classes(source.metadata))
    ensure_templates(templates_dir)
    builder = HtmlDocumentBuilder(templates_dir)
    return builder.build(
        HtmlDocumentParts(
            title=source.file.basename,
            body_html=container.decode_contents(),
            css_text=css_text,
            html_class=context.config.html_class,
            body_class=context.config.body_class,
            extra_body_class=classes,
            preview_class=classes,
            banner_html=banner.html if banner else "",
        )
    )


def export_markdown_note(context: ExportContext, request: ExportRequest) -> ExportOutcome:
    source = load_source(context, request)
    output = choose_output(context, request)
    if output is None:
        return ExportOutcome.cancel()

    settings = context.settings
    relocator = None
    if settings.copy_assets:
        output.ensure_assets_folder()
        relocator = AssetRelocator(context.vault, output)
    markdown = export_markdown(context.vault, source.text, source.file.path, settings, relocator)

    base_name = export_base_name(
        source.metadata, source.file.basename, settings.frontmatter_export_key
    )
    out_path = output.join(f"{base_name}.md")
    output.write_file(out_path, markdown)
    return ExportOutcome(path=out_path, display_path=output.display_path(context.vault, out_path))


def export_html_note(
    context: ExportContext,
    request: ExportRequest,
    *,
    templates_dir: Path,
) -> ExportOutcome:
    source = load_source(context, request)
    output = choose_output(context, request)
    if output is None:
        return ExportOutcome.cancel()

    html = build_html(context, source, output, templates_dir=templates_dir)
    settings = context.settings
    base_name = export_base_name(
        source.metadata,
        source.file.basename,
        settings.frontmatter_export_key,
        settings.pdf_frontmatter_export_key,
    )
    out_path = output.join(f"{base_name}.html")
    output.write_file(out_path, html)
    return ExportOutcome(path=out_path, display_path=output.display_path(context.vault, out_path))


def export_pdf_note(
    context: ExportContext,
    request: ExportRequest,
    *,
    templates_dir: Path,
) -> ExportOutcome:
    settings = context.settings
    if not settings.pdf_api_url or not settings.pdf_api_key:
        raise ExportError("Set pdf_api_url and pdf_api_key in the [export] settings first.")

    source = load_source(context, request)
    output = choose_output(context, request)
    if output is None:
        return ExportOutcome.cancel()

    html = build_html(context, source, output, templates_dir=templates_dir)

    defaults = PdfOptions(
        width=settings.pdf_width,
        height=settings.pdf_height,
        wait_for=settings.pdf_wait_for_selector,
        timeout=settings.pdf_timeout_ms,
    )
    answer = context.prompter.pdf_options(defaults)
    if answer.canceled or answer.value is None:
        return ExportOutcome.cancel()

    base_name = export_base_name(
        source.metadata, source.file.basename, settings.frontmatter_export_key
    )
    filename = f"{base_name}.pdf"
    client = context.pdf_client_factory(settings.pdf_api_url, settings.pdf_api_key)
    pdf_bytes = client.render(html, filename, answer.value, on_status=context.notifier.notify)

    out_path = output.join(filename)
    output.write_binary_file(out_path, pdf_bytes)
    return ExportOutcome(path=out_path, display_path=output.display_path(context.vault, out_path))


def _open_after_export(context: ExportContext, display_path: str) -> None:
    launcher = context.launcher or (lambda path: click.launch(path, locate=True))
    try:
        launcher(display_path)
    except Exception:  # noqa: BLE001 - revealing the file is best effort
        logger.debug("Could not reveal %s", display_path, exc_info=True)


def export_note(context: ExportContext, request: ExportRequest) -> ExportOutcome:
    """Export one note through the plugin registered for ``request.format_id``."""

    formats = _load_export_registry()
    format_lower = request.format_id.lower()

    contribution = formats.get(format_lower)
    if contribution is None:
        available = ", ".join(sorted(formats))
        if available:
            raise ExportError(
                f"Unknown export format: {request.format_id}. Available: {available}."
            )
        raise ExportError("No export plugins are available.")

    label = FORMAT_LABELS.get(format_lower, contribution.format_id)
    context.notifier.notify(f"Exporting {request.note} as {label}...")
    try:
        outcome = contribution.formatter(context=context, request=request)
    except StorageError as exc:
        context.notifier.notify(f"Export failed: {exc}")
        raise ExportError(str(exc)) from exc
    except ExportError as exc:
        context.notifier.notify(f"Export failed: {exc}")
        raise
    except Exception as exc:
        context.notifier.notify(f"Export failed: {exc}")
        raise ExportError(
            f"Exporter '{contribution.format_id}' raised an unexpected error: {exc}"
        ) from exc

    if outcome.canceled:
        context.notifier.notify("Export canceled.")
        return outcome

    display_path = outcome.display_path or outcome.path or ""
    context.notifier.notify(f"Exported {label}: {display_path}")
    if context.settings.open_after_export and display_path:
        _open_after_export(context, display_path)
    return outcome


__all__ = [
    "ExportContext",
    "ExportOutcome",
    "ExportRequest",
    "SourceNote",
    "build_html",
    "choose_output",
    "clear_export_registry_cache",
    "export_html_note",
    "export_markdown_note",
    "export_note",
    "export_pdf_note",
    "find_note",
    "get_export_format_choices",
    "get_export_format_descriptions",
    "load_source",
]
