"""Tests for the 'pn export' and 'pn info' CLI subcommands."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner
from portanote import cli
from portanote.plugins import manager as plugin_manager
from portanote.plugins.builtin import html as html_plugin


@pytest.fixture(autouse=True)
def isolate_plugins(monkeypatch) -> None:
    plugin_manager.reset_plugin_manager_cache()
    # Bootstrap rebinds the module level config; restore it afterwards.
    monkeypatch.setattr(html_plugin, "_current_config", html_plugin._current_config)
    yield
    plugin_manager.reset_plugin_manager_cache()


def _write_config(base_dir: Path, extra: str = "") -> Path:
    vault_dir = base_dir / "vault"
    vault_dir.mkdir(parents=True, exist_ok=True)
    (vault_dir / "Index.md").write_text("# Index\nline two\nline three\n", encoding="utf-8")
    config_path = base_dir / "config.toml"
    config_path.write_text(
        f'[portanote]\nvault_dir = "vault"\ndevice_id = "ci"\n{extra}', encoding="utf-8"
    )
    return config_path


def test_list_formats(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(cli.cli, ["-c", str(config_path), "export", "--list-formats"])

    assert result.exit_code == 0, result.output
    assert "Available export formats:" in result.output
    assert "  - html: " in result.output
    assert "  - markdown: " in result.output
    assert "  - pdf: " in result.output


def test_export_markdown_with_defaults(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(
        cli.cli,
        ["-c", str(config_path), "export", "Index", "-f", "markdown", "--yes", "--dest", "Out"],
    )

    assert result.exit_code == 0, result.output
    exported = tmp_path / "vault" / "Out" / "Index.md"
    assert exported.read_text(encoding="utf-8") == "# Index\nline two\nline three\n"
    assert "Exporting Index as Markdown..." in result.output
    assert f"Exported Markdown: {exported}" in result.output
    assert (tmp_path / "state.json").exists()
    assert (tmp_path / "templates" / "document.html").exists()


def test_blank_folder_answer_keeps_default(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(
        cli.cli, ["-c", str(config_path), "export", "Index", "-f", "markdown"], input="\n"
    )

    assert result.exit_code == 0, result.output
    assert "Export folder [Exports]:" in result.output
    assert (tmp_path / "vault" / "Exports" / "Index.md").exists()


def test_typed_folder_answer_is_used(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(
        cli.cli,
        ["-c", str(config_path), "export", "Index", "-f", "markdown"],
        input="  Typed  \n",
    )

    assert result.exit_code == 0, result.output
    assert (tmp_path / "vault" / "Typed" / "Index.md").exists()


def test_aborted_folder_prompt_cancels(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(
        cli.cli, ["-c", str(config_path), "export", "Index", "-f", "markdown"], input=""
    )

    assert result.exit_code == 0, result.output
    assert "Export canceled." in result.output
    assert not (tmp_path / "vault" / "Exports").exists()


def test_export_line_range(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(
        cli.cli,
        ["-c", str(config_path), "export", "Index", "-f", "markdown", "-y", "--lines", "2-3"],
    )

    assert result.exit_code == 0, result.output
    exported = tmp_path / "vault" / "Exports" / "Index.md"
    assert exported.read_text(encoding="utf-8") == "line two\nline three"


def test_export_rejects_bad_line_range(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(
        cli.cli, ["-c", str(config_path), "export", "Index", "-y", "--lines", "5-2"]
    )

    assert result.exit_code == 1
    assert "Invalid line range '5-2'" in result.output


def test_export_unknown_format(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(
        cli.cli, ["-c", str(config_path), "export", "Index", "-f", "docx", "-y"]
    )

    assert result.exit_code == 1
    assert "Unknown export format: docx" in result.output


def test_missing_config_is_reported(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        cli.cli, ["-c", str(tmp_path / "missing.toml"), "export", "Index"]
    )

    assert result.exit_code == 1
    assert "Configuration not found" in result.output


def test_missing_vault_is_reported(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('[portanote]\nvault_dir = "nowhere"\n', encoding="utf-8")

    result = CliRunner().invoke(cli.cli, ["-c", str(config_path), "info"])

    assert result.exit_code == 1
    assert "Vault directory not found" in result.output


def test_info_masks_pdf_key(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path, '\n[export]\npdf_api_url = "https://pdf.example.com"\npdf_api_key = "s3cret"\n'
    )

    result = CliRunner().invoke(cli.cli, ["-c", str(config_path), "info"])

    assert result.exit_code == 0, result.output
    assert "Notes         : 1" in result.output
    assert "Device        : ci (" in result.output
    assert 'pdf_api_key = "********"' in result.output
    assert "s3cret" not in result.output


def test_main_returns_error_code(tmp_path: Path, capsys) -> None:
    code = cli.main(["-c", str(tmp_path / "missing.toml"), "info"])

    assert code == 1
    assert "Configuration not found" in capsys.readouterr().err
