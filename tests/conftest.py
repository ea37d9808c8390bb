from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from portanote.vault import Vault

WriteFile = Callable[[str, "str | bytes"], Path]


@pytest.fixture
def vault_root(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def write_file(vault_root: Path) -> WriteFile:
    """Write a text or binary file at a vault-relative path."""

    def _write(relative: str, content: str | bytes) -> Path:
        target = vault_root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content, encoding="utf-8")
        return target

    return _write


@pytest.fixture
def vault(vault_root: Path) -> Vault:
    return Vault(vault_root)
