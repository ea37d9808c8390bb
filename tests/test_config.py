from __future__ import annotations

import json
import textwrap
from pathlib import Path

import pytest
from portanote.config import (
    DEFAULT_OUTPUT_FOLDER,
    STATE_FILENAME,
    ConfigError,
    InvalidConfigError,
    MissingConfigError,
    PortanoteConfig,
    bootstrap_config_file,
    deep_merge,
    load_config,
    normalize_external_path,
    remember_output_folder,
    resolve_output_folder,
    vault_export_folder,
)


def write_config(tmp_path: Path, content: str) -> Path:
    config_file = tmp_path / "config.toml"
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(textwrap.dedent(content), encoding="utf-8")
    return config_file


def test_vault_dir_is_relative_to_config_dir(tmp_path: Path) -> None:
    config_path = write_config(
        tmp_path / "nested",
        """
        [portanote]
        vault_dir = "vault"
        """,
    )

    config = load_config(config_path)
    assert config.vault_dir == (tmp_path / "nested" / "vault").resolve()
    assert config.source_path == config_path
    assert config.config_dir == config_path.parent


def test_load_config_success(tmp_path: Path) -> None:
    config_path = write_config(
        tmp_path,
        """
        [portanote]
        vault_dir = "/srv/notes"
        device_id = " laptop "
        stylesheets = ["theme.css"]
        body_class = " theme-dark "

        [export]
        copy_assets = false
        pdf_width = 800
        md_dataview_mode = "remove"

        [export.output_folder_by_device]
        laptop = "Exports/Laptop"

        [plugins.portanote-builtin-html]
        templates_root = "tpl"
        """,
    )

    config = load_config(config_path)
    assert isinstance(config, PortanoteConfig)
    assert config.vault_dir == Path("/srv/notes").resolve()
    assert config.device_id == "laptop"
    assert config.stylesheets == ("theme.css",)
    assert config.body_class == "theme-dark"
    assert config.export.copy_assets is False
    assert config.export.pdf_width == 800
    assert config.export.md_dataview_mode == "remove"
    assert config.export.output_folder_by_device == {"laptop": "Exports/Laptop"}
    assert config.export.include_css is True
    assert config.plugins == {"portanote-builtin-html": {"templates_root": "tpl"}}


def test_load_config_missing_file(tmp_path: Path) -> None:
    missing = tmp_path / "missing.toml"
    with pytest.raises(MissingConfigError):
        load_config(missing)


@pytest.mark.parametrize(
    "content",
    [
        "[portanote]\n",
        '[portanote]\nvault_dir = "v"\n[export]\nunknown_key = 1\n',
        '[portanote]\nvault_dir = "v"\n[export]\ncopy_assets = "yes"\n',
        '[portanote]\nvault_dir = "v"\n[export]\npdf_width = -1\n',
        '[portanote]\nvault_dir = "v"\n[export]\nmd_dataview_mode = "hide"\n',
        '[portanote]\nvault_dir = "v"\nstylesheets = "a.css"\n',
        "not toml = = =\n",
    ],
)
def test_load_config_rejects_invalid(tmp_path: Path, content: str) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(content, encoding="utf-8")

    with pytest.raises(InvalidConfigError):
        load_config(config_path)


def test_remembered_folder_overrides_config(tmp_path: Path) -> None:
    config_path = write_config(
        tmp_path,
        """
        [portanote]
        vault_dir = "vault"

        [export.output_folder_by_device]
        desk = "FromConfig"
        """,
    )
    (tmp_path / STATE_FILENAME).write_text(
        json.dumps({"output_folder_by_device": {"desk": "Remembered"}}), encoding="utf-8"
    )

    config = load_config(config_path)

    assert resolve_output_folder(config.export, "desk") == "Remembered"


def test_remember_output_folder_persists_per_device(tmp_path: Path) -> None:
    config = PortanoteConfig(vault_dir=tmp_path, source_path=tmp_path / "config.toml")

    updated = remember_output_folder(config, "desk", "  Reports ")

    assert updated.export.output_folder == "Reports"
    assert resolve_output_folder(updated.export, "desk") == "Reports"
    assert resolve_output_folder(updated.export, "other") == "Reports"
    state = json.loads((tmp_path / STATE_FILENAME).read_text(encoding="utf-8"))
    assert state == {"output_folder_by_device": {"desk": "Reports"}}


def test_resolve_output_folder_fallbacks() -> None:
    config = PortanoteConfig(vault_dir=Path("."))
    settings = config.export.with_overrides(
        output_folder=" ", output_folder_by_device={"desk": "  "}
    )

    assert resolve_output_folder(settings, "desk") == DEFAULT_OUTPUT_FOLDER
    assert resolve_output_folder(settings, None) == DEFAULT_OUTPUT_FOLDER


def test_path_helpers() -> None:
    assert normalize_external_path("  ") is None
    assert normalize_external_path(None) is None
    assert normalize_external_path("Users/me/out") == "/Users/me/out"
    assert normalize_external_path(" Exports ") == "Exports"
    assert vault_export_folder("/abs/out") == DEFAULT_OUTPUT_FOLDER
    assert vault_export_folder("C:\\out") == DEFAULT_OUTPUT_FOLDER
    assert vault_export_folder("Sub/Folder/") == "Sub/Folder"


def test_deep_merge_keeps_nested_defaults() -> None:
    merged = deep_merge({"a": {"x": 1, "y": 2}, "b": [1]}, {"a": {"y": 3}, "b": [2]})

    assert merged == {"a": {"x": 1, "y": 3}, "b": [2]}


def test_bootstrap_config_file_creates_loadable_config(tmp_path: Path) -> None:
    path = tmp_path / "cfg" / "config.toml"

    assert bootstrap_config_file(path) is True
    assert bootstrap_config_file(path) is False
    config = load_config(path)
    assert config.export.md_dataview_mode == "placeholder"


def test_config_errors_share_base() -> None:
    assert issubclass(MissingConfigError, ConfigError)
    assert issubclass(InvalidConfigError, ConfigError)
