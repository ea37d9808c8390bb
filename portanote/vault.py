"""Storage backends and link index for a note vault."""

from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Protocol


CONFIG_DIRNAME = ".obsidian"


class StorageError(RuntimeError):
    """Raised when reading or writing through a storage backend fails."""


@dataclass(slots=True, frozen=True)
class VaultFile:
    """A file addressed by its vault-relative, slash separated path."""

    path: str

    @property
    def name(self) -> str:
        return posixpath.basename(self.path)

    @property
    def basename(self) -> str:
        stem, _ = posixpath.splitext(self.name)
        return stem

    @property
    def extension(self) -> str:
        _, ext = posixpath.splitext(self.name)
        return ext[1:].lower()

    @property
    def parent(self) -> str:
        return posixpath.dirname(self.path)


class Storage(Protocol):
    """Read/write access to files, addressed by backend specific paths."""

    def read(self, path: str) -> str: ...

    def read_binary(self, path: str) -> bytes: ...

    def write(self, path: str, text: str) -> None: ...

    def write_binary(self, path: str, data: bytes) -> None: ...

    def list(self, directory: str) -> list[str]: ...

    def mkdir(self, path: str) -> None: ...

    def exists(self, path: str) -> VaultFile | None: ...

    def join(self, *parts: str) -> str: ...


def normalize_path(path: str) -> str:
    """Collapse separators and strip leading/trailing slashes from a vault path."""

    cleaned = path.replace("\\", "/")
    parts = [part for part in cleaned.split("/") if part and part != "."]
    return "/".join(parts)


class VaultStorage:
    """Storage rooted at the vault directory, addressed by relative paths."""

    is_external = False

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _full(self, path: str) -> Path:
        relative = normalize_path(path)
        full = (self.root / relative).resolve()
        root = self.root.resolve()
        if full != root and root not in full.parents:
            raise StorageError(f"Path escapes the vault: {path}")
        return full

    def read(self, path: str) -> str:
        try:
            return self._full(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc

    def read_binary(self, path: str) -> bytes:
        try:
            return self._full(path).read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc

    def write(self, path: str, text: str) -> None:
        target = self._full(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}") from exc

    def write_binary(self, path: str, data: bytes) -> None:
        target = self._full(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}") from exc

    def list(self, directory: str) -> list[str]:
        folder = self._full(directory)
        if not folder.is_dir():
            raise StorageError(f"Not a folder: {directory}")
        prefix = normalize_path(directory)
        return sorted(
            posixpath.join(prefix, child.name) if prefix else child.name
            for child in folder.iterdir()
            if child.is_file()
        )

    def mkdir(self, path: str) -> None:
        try:
            self._full(path).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to create folder {path}: {exc}") from exc

    def exists(self, path: str) -> VaultFile | None:
        try:
            full = self._full(path)
        except StorageError:
            return None
        if full.is_file():
            return VaultFile(normalize_path(path))
        return None

    def join(self, *parts: str) -> str:
        return normalize_path("/".join(parts))


class NativeStorage:
    """Storage on the native filesystem, addressed by absolute paths."""

    is_external = True

    def read(self, path: str) -> str:
        try:
            return Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc

    def read_binary(self, path: str) -> bytes:
        try:
            return Path(path).read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc

    def write(self, path: str, text: str) -> None:
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}") from exc

    def write_binary(self, path: str, data: bytes) -> None:
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}") from exc

    def list(self, directory: str) -> list[str]:
        try:
            return sorted(
                os.path.join(directory, entry.name)
                for entry in os.scandir(directory)
                if entry.is_file()
            )
        except OSError as exc:
            raise StorageError(f"Failed to list {directory}: {exc}") from exc

    def mkdir(self, path: str) -> None:
        try:
            Path(path).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to create folder {path}: {exc}") from exc

    def exists(self, path: str) -> VaultFile | None:
        if Path(path).is_file():
            return VaultFile(path)
        return None

    def join(self, *parts: str) -> str:
        return os.path.join(*parts)


class Vault:
    """A note vault: relative storage plus a link index over its files."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self.storage = VaultStorage(self.root)
        self._files: list[VaultFile] | None = None

    @property
    def config_dir(self) -> str:
        return CONFIG_DIRNAME

    def files(self) -> list[VaultFile]:
        """Return every file of the vault, excluding the config directory."""

        if self._files is None:
            self._files = sorted(self._walk(), key=lambda item: item.path)
        return self._files

    def _walk(self) -> Iterator[VaultFile]:
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            relative_dir = Path(dirpath).relative_to(self.root).as_posix()
            for filename in filenames:
                if filename.startswith("."):
                    continue
                if relative_dir in ("", "."):
                    yield VaultFile(filename)
                else:
                    yield VaultFile(f"{relative_dir}/{filename}")

    def get_file(self, path: str) -> VaultFile | None:
        return self.storage.exists(path)

    def read(self, file: VaultFile) -> str:
        return self.storage.read(file.path)

    def read_binary(self, file: VaultFile) -> bytes:
        return self.storage.read_binary(file.path)

    def get_first_linkpath_dest(self, linkpath: str, source_path: str) -> VaultFile | None:
        """Resolve a link path the way the host's link index does.

        A path relative to the source note's folder wins, then an exact
        vault path, then the shortest vault path whose trailing segments
        match. Comparison is case-insensitive and ``.md`` is implied when
        the link has no extension.
        """

        cleaned = normalize_path(linkpath.strip())
        if not cleaned:
            return None

        candidates = [cleaned]
        if not posixpath.splitext(cleaned)[1]:
            candidates.insert(0, f"{cleaned}.md")
        else:
            candidates.append(f"{cleaned}.md")

        source_dir = posixpath.dirname(normalize_path(source_path))
        by_lower = {item.path.lower(): item for item in self.files()}

        for candidate in candidates:
            if source_dir:
                relative = posixpath.normpath(posixpath.join(source_dir, candidate))
                found = by_lower.get(relative.lower())
                if found is not None:
                    return found
            found = by_lower.get(candidate.lower())
            if found is not None:
                return found

        for candidate in candidates:
            suffix = "/" + candidate.lower()
            matches = [item for item in self.files() if item.path.lower().endswith(suffix)]
            if matches:
                return min(matches, key=lambda item: (item.path.count("/"), item.path))
        return None


__all__ = [
    "CONFIG_DIRNAME",
    "NativeStorage",
    "Storage",
    "StorageError",
    "Vault",
    "VaultFile",
    "VaultStorage",
    "normalize_path",
]
