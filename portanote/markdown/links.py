"""Cross-reference parsing and resolution against the vault link index."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union
from urllib.parse import unquote

if TYPE_CHECKING:  # pragma: no cover - type check only
    from ..vault import Vault, VaultFile

IMAGE_EXTENSIONS = frozenset(
    {"png", "jpg", "jpeg", "gif", "svg", "webp", "bmp", "tif", "tiff"}
)

_UNESCAPED_PIPE = re.compile(r"(?<!\\)\|")


@dataclass(slots=True, frozen=True)
class CrossReference:
    """A parsed ``target[#heading|^block][|alias]`` token."""

    raw_target: str
    heading: str | None = None
    block_id: str | None = None
    alias: str | None = None

    @property
    def suffix_text(self) -> str:
        """The raw text after the ``#``/``^`` marker, or an empty string."""

        if self.heading is not None:
            return self.heading
        if self.block_id is not None:
            return self.block_id
        return ""

    @property
    def anchor(self) -> str:
        """Link fragment for this reference: ``#slug``, ``#^block`` or empty."""

        if self.heading:
            return f"#{slugify_heading(self.heading)}"
        if self.block_id:
            return f"#^{self.block_id}"
        return ""


@dataclass(slots=True, frozen=True)
class NotFound:
    """The reference matched no file in the vault."""


@dataclass(slots=True, frozen=True)
class ExternalFile:
    """The reference points at a non-Markdown file (media, PDF, ...)."""

    file: "VaultFile"

    @property
    def path(self) -> str:
        return self.file.path

    @property
    def extension(self) -> str:
        return self.file.extension

    @property
    def is_image(self) -> bool:
        return self.file.extension in IMAGE_EXTENSIONS


@dataclass(slots=True, frozen=True)
class Note:
    """The reference points at a Markdown note."""

    file: "VaultFile"

    @property
    def path(self) -> str:
        return self.file.path


ResolvedTarget = Union[NotFound, ExternalFile, Note]


def parse_cross_reference(token: str) -> CrossReference:
    """Split a wiki-link body into file part, heading/block and alias.

    The alias follows the first unescaped ``|``. In the remainder the first
    ``#`` or ``^`` (whichever comes first) starts the heading or block id.
    """

    parts = _UNESCAPED_PIPE.split(token, maxsplit=1)
    target = parts[0].strip()
    alias = parts[1].strip() if len(parts) > 1 else None

    marker = re.search(r"[#^]", target)
    if marker is None:
        return CrossReference(raw_target=target, alias=alias or None)

    file_part = target[: marker.start()]
    rest = target[marker.start() + 1 :]
    if marker.group() == "#":
        return CrossReference(raw_target=file_part, heading=rest, alias=alias or None)
    return CrossReference(raw_target=file_part, block_id=rest, alias=alias or None)


def slugify_heading(text: str) -> str:
    slug = text.strip().lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    return re.sub(r"-+", "-", slug)


def format_link_target(target: str) -> str:
    """Wrap a link destination in angle brackets when Markdown requires it."""

    if not target:
        return target
    if target.startswith("<") and target.endswith(">"):
        return target
    if re.search(r"\s|[()]", target):
        return f"<{target}>"
    return target


def normalize_link_target(target: str) -> str:
    """Strip angle brackets and percent-decoding from a link destination."""

    trimmed = target.strip()
    if trimmed.startswith("<") and trimmed.endswith(">"):
        trimmed = trimmed[1:-1]
    return unquote(trimmed)


class LinkResolver:
    """Resolve cross-references relative to a source note."""

    def __init__(self, vault: "Vault") -> None:
        self.vault = vault

    def resolve_file(self, file_part: str, source_path: str) -> "VaultFile | None":
        cleaned = file_part.strip()
        if not cleaned:
            return None
        return self.vault.get_first_linkpath_dest(cleaned, source_path)

    def resolve(self, reference: CrossReference, source_path: str) -> ResolvedTarget:
        if not reference.raw_target.strip() and reference.suffix_text:
            # ``[[#Heading]]`` and ``[[^block]]`` point into the source note.
            file = self.vault.get_file(source_path)
        else:
            file = self.resolve_file(reference.raw_target, source_path)
        if file is None:
            return NotFound()
        if file.extension != "md":
            return ExternalFile(file)
        return Note(file)

    def resolve_link_text(self, link_text: str, source_path: str) -> "VaultFile | None":
        """Resolve a plain link destination, ignoring any fragment or alias."""

        base = link_text.split("#", 1)[0].split("|", 1)[0]
        return self.resolve_file(base, source_path)


def missing_embed(raw: str) -> str:
    return f"> Missing embed: {raw}"


def missing_heading(heading: str) -> str:
    return f"> Missing heading: {heading}"


def missing_block(block_id: str) -> str:
    return f"> Missing block: ^{block_id}"


__all__ = [
    "CrossReference",
    "ExternalFile",
    "IMAGE_EXTENSIONS",
    "LinkResolver",
    "Note",
    "NotFound",
    "ResolvedTarget",
    "format_link_target",
    "missing_block",
    "missing_embed",
    "missing_heading",
    "normalize_link_target",
    "parse_cross_reference",
    "slugify_heading",
]
