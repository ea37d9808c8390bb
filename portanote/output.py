"""Export destinations and relocation of referenced assets."""

from __future__ import annotations

import logging
import os

from .vault import NativeStorage, Storage, Vault, VaultFile, normalize_path

logger = logging.getLogger(__name__)

ASSETS_DIRNAME = "assets"


class OutputInfo:
    """One export destination: a folder plus its ``assets`` sub-folder.

    Absolute folders are written through the native filesystem; anything
    else is a folder inside the vault.
    """

    def __init__(self, storage: Storage, folder: str) -> None:
        self.storage = storage
        self.folder = folder
        self.is_external = bool(getattr(storage, "is_external", False))
        self.assets_path = storage.join(folder, ASSETS_DIRNAME)

    def ensure_folder(self) -> None:
        self.storage.mkdir(self.folder)

    def ensure_assets_folder(self) -> None:
        self.storage.mkdir(self.assets_path)

    def write_file(self, path: str, text: str) -> None:
        self.storage.write(path, text)

    def write_binary_file(self, path: str, data: bytes) -> None:
        self.storage.write_binary(path, data)

    def join(self, name: str) -> str:
        return self.storage.join(self.folder, name)

    def display_path(self, vault: Vault, path: str) -> str:
        """Absolute filesystem path for messages and ``open after export``."""

        if self.is_external:
            return path
        return str(vault.root / path)


def prepare_output_paths(vault: Vault, folder: str) -> OutputInfo:
    """Create the destination folder and return its ``OutputInfo``."""

    if os.path.isabs(folder):
        info = OutputInfo(NativeStorage(), os.path.normpath(folder))
    else:
        info = OutputInfo(vault.storage, normalize_path(folder))
    info.ensure_folder()
    return info


class AssetRelocator:
    """Copy vault files under the output's assets folder, keeping their vault path."""

    def __init__(self, vault: Vault, output: OutputInfo) -> None:
        self.vault = vault
        self.output = output

    def copy(self, file: VaultFile) -> str:
        """Copy ``file`` and return its reference relative to the output document."""

        data = self.vault.read_binary(file)
        parts = file.path.split("/")
        target = self.output.storage.join(self.output.assets_path, *parts)
        self.output.storage.write_binary(target, data)
        logger.debug("Copied asset %s -> %s", file.path, target)
        if self.output.is_external:
            relative = os.path.relpath(target, self.output.assets_path)
            return f"{ASSETS_DIRNAME}/{relative.replace(os.sep, '/')}"
        return f"{ASSETS_DIRNAME}/{file.path}"


__all__ = ["ASSETS_DIRNAME", "AssetRelocator", "OutputInfo", "prepare_output_paths"]
