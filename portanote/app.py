"""Application bootstrap and context container for Portanote."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .config import ConfigError, PortanoteConfig, load_config
from .device import DeviceInfo, resolve_device_info
from .plugins import BootstrapContext, build_settings_getter, run_bootstrap
from .vault import Vault

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    """Aggregates core services for the CLI lifecycle."""

    config: PortanoteConfig
    vault: Vault
    device: DeviceInfo


def bootstrap(config_path: Path | None) -> AppContext:
    """Load configuration, resolve the device identity and open the vault."""

    # Defer error mapping to the CLI, which knows how to present messages.
    config = load_config(config_path)

    if not config.vault_dir.is_dir():
        raise ConfigError(f"Vault directory not found: {config.vault_dir}")
    vault = Vault(config.vault_dir)

    device = resolve_device_info(config.config_dir, config.device_id)
    logger.debug("Running as device %s (%s)", device.id, device.type_label)

    bootstrap_context = BootstrapContext(
        config=config, get_settings=build_settings_getter(config)
    )
    bootstrap_errors = run_bootstrap(bootstrap_context)
    if bootstrap_errors:
        first_error = bootstrap_errors[0]
        raise ConfigError(f"Plugin bootstrap failed: {first_error}") from first_error

    return AppContext(config=config, vault=vault, device=device)
