"""End-to-end export flows through the registered exporters."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from portanote.config import DEFAULT_SETTINGS, PortanoteConfig
from portanote.device import DeviceInfo
from portanote.exporters import ExportError
from portanote.interaction import DefaultsPrompter, PromptResult
from portanote.plugins import manager as plugin_manager
from portanote.plugins.builtin import html as html_plugin
from portanote.services import export as export_service
from portanote.services.export import ExportContext, ExportRequest, export_note


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[str] = []

    def notify(self, message: str) -> None:
        self.messages.append(message)


class CancelingPrompter:
    def choose_output_folder(self, default: str) -> PromptResult[str]:
        return PromptResult.cancel()

    def pdf_options(self, defaults):
        return PromptResult.cancel()


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


class FakePdfClient:
    instances: list["FakePdfClient"] = []

    def __init__(self, api_url: str, api_key: str) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.rendered: list[tuple[str, str, object]] = []
        FakePdfClient.instances.append(self)

    def render(self, html: str, filename: str, options, *, on_status=None) -> bytes:
        self.rendered.append((html, filename, options))
        if on_status:
            on_status("Downloading PDF...")
        return b"%PDF-1.7"


@pytest.fixture(autouse=True)
def reset_export_registry(tmp_path: Path, monkeypatch):
    """Keep plugin discovery and template location isolated per test."""

    export_service.clear_export_registry_cache()
    plugin_manager.reset_plugin_manager_cache()
    monkeypatch.setattr(
        html_plugin,
        "_current_config",
        html_plugin.HtmlPluginConfig(templates_root=tmp_path / "cfg"),
    )
    FakePdfClient.instances = []
    yield
    export_service.clear_export_registry_cache()
    plugin_manager.reset_plugin_manager_cache()


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    path = tmp_path / "cfg"
    path.mkdir()
    return path


def make_context(
    vault,
    vault_root: Path,
    config_dir: Path,
    *,
    prompter=None,
    settings=DEFAULT_SETTINGS,
    launcher=None,
) -> ExportContext:
    clock = FakeClock()
    config = PortanoteConfig(
        vault_dir=vault_root,
        export=settings,
        source_path=config_dir / "config.toml",
    )
    return ExportContext(
        config=config,
        vault=vault,
        device=DeviceInfo(id="dev1", type="linux", type_label="Linux"),
        prompter=prompter or DefaultsPrompter(),
        notifier=RecordingNotifier(),
        pdf_client_factory=FakePdfClient,
        sleep=clock.sleep,
        clock=clock,
        launcher=launcher,
    )


def test_format_choices_list_builtin_exporters() -> None:
    assert export_service.get_export_format_choices() == ["html", "markdown", "pdf"]


def test_markdown_export_writes_file_and_remembers_folder(
    vault, vault_root: Path, config_dir: Path, write_file
) -> None:
    write_file("Index.md", "---\nexport_name: Custom\n---\nHello [[Other]]")
    write_file("Other.md", "other")
    context = make_context(vault, vault_root, config_dir, prompter=DefaultsPrompter("Out"))

    outcome = export_note(context, ExportRequest(note="Index", format_id="markdown"))

    assert outcome.path == "Out/Custom.md"
    written = (vault_root / "Out/Custom.md").read_text(encoding="utf-8")
    assert "Hello [Other](assets/Other.md)" in written
    assert written.startswith("---\nexport_name: Custom\n---\n")
    assert context.notifier.messages == [
        "Exporting Index as Markdown...",
        f"Exported Markdown: {vault_root / 'Out/Custom.md'}",
    ]
    state = json.loads((config_dir / "state.json").read_text(encoding="utf-8"))
    assert state["output_folder_by_device"] == {"dev1": "Out"}
    assert context.config.export.output_folder_by_device["dev1"] == "Out"


def test_markdown_export_of_selected_lines(
    vault, vault_root: Path, config_dir: Path, write_file
) -> None:
    write_file("Index.md", "one\ntwo\nthree\nfour")
    context = make_context(vault, vault_root, config_dir)

    outcome = export_note(
        context,
        ExportRequest(note="Index.md", format_id="markdown", lines=(2, 3), output_folder="Sel"),
    )

    assert outcome.path == "Sel/Index.md"
    assert (vault_root / "Sel/Index.md").read_text(encoding="utf-8") == "two\nthree"


def test_html_export_is_standalone(vault, vault_root: Path, config_dir: Path, write_file) -> None:
    write_file("pic.png", b"PNG")
    write_file(
        "Index.md",
        "---\ncssclasses: wide\nexport_name: Plain\npdf_name: Fancy\n---\n"
        "# Title\n\n![[pic.png]]\n\n> [!note] Heads\n> body text\n",
    )
    settings = DEFAULT_SETTINGS.with_overrides(pdf_frontmatter_export_key="pdf_name")
    context = make_context(vault, vault_root, config_dir, settings=settings)

    outcome = export_note(context, ExportRequest(note="Index", format_id="html"))

    assert outcome.path == "Exports/Fancy.html"
    html = (vault_root / "Exports/Fancy.html").read_text(encoding="utf-8")
    assert "<title>Index</title>" in html
    assert "data:image/png;base64,UE5H" in html
    assert 'data-callout="note"' in html
    assert "[[" not in html
    assert "wide" in html
    assert "<style>" in html
    assert (config_dir / "templates" / "document.html").exists()


def test_html_export_normalizes_snippet_platform_rules(
    vault, vault_root: Path, config_dir: Path, write_file
) -> None:
    write_file("Index.md", "# Title\n")
    write_file(
        ".obsidian/snippets/device.css",
        "body.is-phone .snippet-only { color: red; }\n"
        "body:not(.is-mobile):not(.is-ios) .keep { color: blue; }\n",
    )
    context = make_context(vault, vault_root, config_dir)

    export_note(context, ExportRequest(note="Index", format_id="html"))

    html = (vault_root / "Exports/Index.html").read_text(encoding="utf-8")
    assert ".snippet-only" not in html
    assert "/* phone rule removed */" in html
    assert "body .keep { color: blue; }" in html
    assert ":not(.is-" not in html


def test_absolute_destination_writes_outside_vault(
    vault, vault_root: Path, config_dir: Path, tmp_path: Path, write_file
) -> None:
    write_file("Index.md", "body")
    target = tmp_path / "external"
    context = make_context(vault, vault_root, config_dir)

    outcome = export_note(
        context, ExportRequest(note="Index", format_id="markdown", output_folder=str(target))
    )

    assert outcome.display_path == str(target / "Index.md")
    assert (target / "Index.md").read_text(encoding="utf-8") == "body"


def test_in_vault_flag_falls_back_for_absolute_folder(
    vault, vault_root: Path, config_dir: Path, tmp_path: Path, write_file
) -> None:
    write_file("Index.md", "body")
    context = make_context(vault, vault_root, config_dir)

    outcome = export_note(
        context,
        ExportRequest(
            note="Index", format_id="markdown", output_folder=str(tmp_path / "x"), in_vault=True
        ),
    )

    assert outcome.path == "Exports/Index.md"


def test_pdf_export_uses_service_client(vault, vault_root: Path, config_dir: Path, write_file) -> None:
    write_file("Index.md", "---\nexport_name: Report\n---\n# Title\n")
    settings = DEFAULT_SETTINGS.with_overrides(
        pdf_api_url="https://pdf.example.com", pdf_api_key="secret", pdf_width=800
    )
    context = make_context(vault, vault_root, config_dir, settings=settings)

    outcome = export_note(context, ExportRequest(note="Index", format_id="pdf"))

    assert outcome.path == "Exports/Report.pdf"
    assert (vault_root / "Exports/Report.pdf").read_bytes() == b"%PDF-1.7"
    client = FakePdfClient.instances[0]
    assert (client.api_url, client.api_key) == ("https://pdf.example.com", "secret")
    html, filename, options = client.rendered[0]
    assert filename == "Report.pdf"
    assert options.width == 800
    assert "<h1" in html
    assert "Downloading PDF..." in context.notifier.messages


def test_pdf_export_requires_credentials(vault, vault_root: Path, config_dir: Path, write_file) -> None:
    write_file("Index.md", "body")
    context = make_context(vault, vault_root, config_dir)

    with pytest.raises(ExportError, match="pdf_api_url"):
        export_note(context, ExportRequest(note="Index", format_id="pdf"))

    assert context.notifier.messages[-1].startswith("Export failed: Set pdf_api_url")
    assert not (vault_root / "Exports").exists()


def test_canceled_prompt_writes_nothing(vault, vault_root: Path, config_dir: Path, write_file) -> None:
    write_file("Index.md", "body")
    context = make_context(vault, vault_root, config_dir, prompter=CancelingPrompter())

    outcome = export_note(context, ExportRequest(note="Index", format_id="html"))

    assert outcome.canceled
    assert context.notifier.messages[-1] == "Export canceled."
    assert not (vault_root / "Exports").exists()
    assert not (config_dir / "state.json").exists()


def test_unknown_format_lists_available(vault, vault_root: Path, config_dir: Path) -> None:
    context = make_context(vault, vault_root, config_dir)

    with pytest.raises(ExportError, match="Available: html, markdown, pdf"):
        export_note(context, ExportRequest(note="Index", format_id="docx"))


def test_missing_note_is_reported(vault, vault_root: Path, config_dir: Path) -> None:
    context = make_context(vault, vault_root, config_dir)

    with pytest.raises(ExportError, match="Note not found: Ghost"):
        export_note(context, ExportRequest(note="Ghost", format_id="markdown"))

    assert context.notifier.messages[-1] == "Export failed: Note not found: Ghost"


def test_open_after_export_reveals_file(vault, vault_root: Path, config_dir: Path, write_file) -> None:
    write_file("Index.md", "body")
    opened: list[str] = []
    settings = DEFAULT_SETTINGS.with_overrides(open_after_export=True)
    context = make_context(
        vault, vault_root, config_dir, settings=settings, launcher=opened.append
    )

    export_note(context, ExportRequest(note="Index", format_id="markdown"))

    assert opened == [str(vault_root / "Exports/Index.md")]
