"""Device identity used to key per-device export settings."""

from __future__ import annotations

import logging
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEVICE_ID_FILENAME = "device-id"

DEVICE_TYPE_LABELS = {
    "macos": "Mac",
    "windows": "Windows",
    "linux": "Linux",
}


@dataclass(slots=True, frozen=True)
class DeviceInfo:
    """Identity of the machine running the export."""

    id: str
    type: str
    type_label: str


def detect_device_type(platform: str | None = None) -> str:
    value = platform or sys.platform
    if value == "darwin":
        return "macos"
    if value.startswith("win"):
        return "windows"
    return "linux"


def resolve_device_id(config_dir: Path, configured: str | None = None) -> str:
    """Return the configured id, else the persisted one, else a new persisted id."""

    if configured:
        return configured

    id_path = config_dir / DEVICE_ID_FILENAME
    if id_path.exists():
        stored = id_path.read_text(encoding="utf-8").strip()
        if stored:
            return stored

    device_id = str(uuid.uuid4())
    try:
        config_dir.mkdir(parents=True, exist_ok=True)
        id_path.write_text(device_id + "\n", encoding="utf-8")
    except OSError as exc:
        logger.warning("Could not persist device id to %s: %s", id_path, exc)
    return device_id


def resolve_device_info(
    config_dir: Path,
    configured_id: str | None = None,
    *,
    platform: str | None = None,
) -> DeviceInfo:
    device_type = detect_device_type(platform)
    return DeviceInfo(
        id=resolve_device_id(config_dir, configured_id),
        type=device_type,
        type_label=DEVICE_TYPE_LABELS.get(device_type, device_type),
    )


__all__ = [
    "DEVICE_ID_FILENAME",
    "DeviceInfo",
    "detect_device_type",
    "resolve_device_id",
    "resolve_device_info",
]
