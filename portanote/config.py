"""Configuration management for Portanote."""

from __future__ import annotations

import json
import re
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping

DEFAULT_CONFIG_DIR = Path("~/.config/portanote").expanduser()
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"
STATE_FILENAME = "state.json"
DEFAULT_OUTPUT_FOLDER = "Exports"

DATAVIEW_MODES = ("keep", "remove", "placeholder")


class ConfigError(RuntimeError):
    """Base error for configuration related issues."""


class MissingConfigError(ConfigError):
    """Raised when the configuration file cannot be found."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Configuration file not found at {path}")
        self.path = path


class InvalidConfigError(ConfigError):
    """Raised when the configuration file misses required keys or values."""


@dataclass(slots=True, frozen=True)
class ExportSettings:
    """Immutable snapshot of the export options used by one export run."""

    output_folder: str = DEFAULT_OUTPUT_FOLDER
    output_folder_by_device: Mapping[str, str] = field(default_factory=dict)
    include_css: bool = True
    copy_assets: bool = True
    open_after_export: bool = False
    frontmatter_export_key: str = "export_name"
    pdf_frontmatter_export_key: str = ""
    pdf_api_url: str = ""
    pdf_api_key: str = ""
    pdf_width: int = 1920
    pdf_height: int = 1080
    pdf_timeout_ms: int = 60000
    pdf_wait_for_selector: str = ""
    inline_local_assets: bool = True
    post_process_delay_ms: int = 100
    md_expand_embeds: bool = True
    md_convert_callouts: bool = True
    md_convert_wikilinks: bool = True
    md_dataview_mode: str = "placeholder"
    md_dataview_placeholder: str = "> Dataview output omitted"

    def with_overrides(self, **changes: Any) -> "ExportSettings":
        return replace(self, **changes)


DEFAULT_SETTINGS = ExportSettings()


@dataclass(slots=True)
class PortanoteConfig:
    """In-memory representation of the Portanote configuration file."""

    vault_dir: Path
    export: ExportSettings = DEFAULT_SETTINGS
    device_id: str | None = None
    stylesheets: tuple[str, ...] = ()
    html_class: str = ""
    body_class: str = ""
    plugins: dict[str, dict[str, Any]] = field(default_factory=dict)
    source_path: Path | None = None

    @property
    def config_dir(self) -> Path:
        if self.source_path is not None:
            return self.source_path.parent
        return DEFAULT_CONFIG_DIR


def deep_merge(defaults: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``overrides`` into ``defaults``.

    Nested mappings are merged recursively so new default keys survive;
    any other value (lists included) replaces the default outright.
    """

    result = dict(defaults)
    for key, override in overrides.items():
        default = result.get(key)
        if isinstance(override, Mapping) and isinstance(default, Mapping):
            result[key] = deep_merge(default, override)
        else:
            result[key] = override
    return result


def _settings_as_dict(settings: ExportSettings) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for item in fields(settings):
        value = getattr(settings, item.name)
        data[item.name] = dict(value) if isinstance(value, Mapping) else value
    return data


def parse_export_settings(raw: Mapping[str, Any] | None) -> ExportSettings:
    """Build ``ExportSettings`` from a raw ``[export]`` table."""

    merged = deep_merge(_settings_as_dict(DEFAULT_SETTINGS), raw or {})
    known = {item.name: item for item in fields(ExportSettings)}
    unknown = sorted(set(merged) - set(known))
    if unknown:
        raise InvalidConfigError(f"Unknown export settings: {', '.join(unknown)}")

    for name, default in _settings_as_dict(DEFAULT_SETTINGS).items():
        value = merged[name]
        if isinstance(default, bool):
            if not isinstance(value, bool):
                raise InvalidConfigError(f"'{name}' must be a boolean")
        elif isinstance(default, int):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidConfigError(f"'{name}' must be a non-negative integer")
        elif isinstance(default, str):
            if not isinstance(value, str):
                raise InvalidConfigError(f"'{name}' must be a string")
        elif isinstance(default, dict):
            if not isinstance(value, dict) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in value.items()
            ):
                raise InvalidConfigError(f"'{name}' must be a table of strings")

    mode = merged["md_dataview_mode"]
    if mode not in DATAVIEW_MODES:
        raise InvalidConfigError(
            f"'md_dataview_mode' must be one of: {', '.join(DATAVIEW_MODES)}"
        )

    return ExportSettings(**merged)


def load_config(path: Path | None = None) -> PortanoteConfig:
    """Load configuration from ``path`` or the default location.

    Parameters
    ----------
    path:
        Optional location of the configuration file. When ``None`` the default
        path (``~/.config/portanote/config.toml``) is used.

    Raises
    ------
    MissingConfigError
        If the file cannot be found.
    InvalidConfigError
        If mandatory settings are missing or malformed.
    """

    config_path = (path or DEFAULT_CONFIG_PATH).expanduser()
    if not config_path.exists():
        raise MissingConfigError(config_path)

    with config_path.open("rb") as fh:
        try:
            raw = tomllib.load(fh)
        except tomllib.TOMLDecodeError as exc:
            raise InvalidConfigError(f"Invalid TOML in {config_path}: {exc}") from exc

    section = raw.get("portanote")
    if not isinstance(section, dict):
        raise InvalidConfigError("'portanote' section is required and must be a table")

    config_dir = config_path.parent

    vault_raw = section.get("vault_dir")
    if not isinstance(vault_raw, str) or not vault_raw.strip():
        raise InvalidConfigError("'vault_dir' is required and must be a non-empty string")
    # Relative vault paths are resolved against the configuration directory.
    vault_path = Path(vault_raw.strip()).expanduser()
    vault_dir = (vault_path if vault_path.is_absolute() else config_dir / vault_path).resolve()

    device_id = section.get("device_id")
    if device_id is not None and (not isinstance(device_id, str) or not device_id.strip()):
        raise InvalidConfigError("'device_id' must be a non-empty string when provided")

    stylesheets_raw = section.get("stylesheets", [])
    if not isinstance(stylesheets_raw, list) or not all(
        isinstance(item, str) for item in stylesheets_raw
    ):
        raise InvalidConfigError("'stylesheets' must be a list of strings")

    html_class = section.get("html_class", "")
    body_class = section.get("body_class", "")
    if not isinstance(html_class, str) or not isinstance(body_class, str):
        raise InvalidConfigError("'html_class' and 'body_class' must be strings")

    export_raw = raw.get("export", {})
    if not isinstance(export_raw, dict):
        raise InvalidConfigError("'export' must be a table when provided")
    export = parse_export_settings(export_raw)

    state = load_state(config_dir)
    remembered = state.get("output_folder_by_device")
    if isinstance(remembered, dict):
        # The folder last picked on a device wins over the config file.
        merged_folders = {
            **export.output_folder_by_device,
            **{k: v for k, v in remembered.items() if isinstance(v, str)},
        }
        export = export.with_overrides(output_folder_by_device=merged_folders)

    plugins_section = raw.get("plugins")
    plugins: dict[str, dict[str, Any]] = {}
    if isinstance(plugins_section, dict):
        for key, value in plugins_section.items():
            plugins[key] = dict(value) if isinstance(value, dict) else {}

    return PortanoteConfig(
        vault_dir=vault_dir,
        export=export,
        device_id=device_id.strip() if isinstance(device_id, str) else None,
        stylesheets=tuple(stylesheets_raw),
        html_class=html_class.strip(),
        body_class=body_class.strip(),
        plugins=plugins,
        source_path=config_path,
    )


def load_state(config_dir: Path) -> dict[str, Any]:
    """Return persisted per-device state, or an empty mapping."""

    state_path = config_dir / STATE_FILENAME
    if not state_path.exists():
        return {}
    try:
        data = json.loads(state_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def normalize_external_path(value: str | None) -> str | None:
    """Trim a user supplied folder, restoring a dropped leading slash."""

    if not value:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    if not trimmed.startswith("/") and re.match(r"^Users/", trimmed, re.IGNORECASE):
        return f"/{trimmed}"
    return trimmed


def vault_export_folder(raw: str) -> str:
    """Return a folder usable inside the vault; absolute paths fall back."""

    trimmed = (raw or DEFAULT_OUTPUT_FOLDER).strip()
    if not trimmed:
        return DEFAULT_OUTPUT_FOLDER
    if trimmed.startswith("/") or re.match(r"^[A-Za-z]:\\", trimmed):
        return DEFAULT_OUTPUT_FOLDER
    return trimmed.strip("/")


def resolve_output_folder(settings: ExportSettings, device_id: str | None) -> str:
    """Return the export folder for ``device_id``, falling back to the global one."""

    if device_id:
        device_folder = settings.output_folder_by_device.get(device_id, "")
        if device_folder.strip():
            return device_folder.strip()
    return settings.output_folder.strip() or DEFAULT_OUTPUT_FOLDER


def remember_output_folder(
    config: PortanoteConfig, device_id: str | None, folder: str
) -> PortanoteConfig:
    """Persist ``folder`` as the device's export folder and return updated config."""

    trimmed = folder.strip() or DEFAULT_OUTPUT_FOLDER
    by_device = dict(config.export.output_folder_by_device)
    if device_id:
        by_device[device_id] = trimmed
        config_dir = config.config_dir
        state = load_state(config_dir)
        stored = state.get("output_folder_by_device")
        stored = dict(stored) if isinstance(stored, dict) else {}
        stored[device_id] = trimmed
        state["output_folder_by_device"] = stored
        config_dir.mkdir(parents=True, exist_ok=True)
        (config_dir / STATE_FILENAME).write_text(
            json.dumps(state, indent=2, sort_keys=True), encoding="utf-8"
        )

    config.export = config.export.with_overrides(
        output_folder=trimmed, output_folder_by_device=by_device
    )
    return config


def bootstrap_config_file(path: Path) -> bool:
    """Create a default config file if missing.

    Returns True when the file was created, False if it already existed.
    """

    if path.exists():
        return False

    config_dir = path.parent
    config_dir.mkdir(parents=True, exist_ok=True)
    default_content = (
        "[portanote]\n"
        'vault_dir = "~/notes"\n'
        "\n"
        "[export]\n"
        'output_folder = "Exports"\n'
        'md_dataview_mode = "placeholder"\n'
    )
    path.write_text(default_content, encoding="utf-8")
    return True
