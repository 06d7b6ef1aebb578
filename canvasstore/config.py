"""
Configuration management for canvas stores.

The configuration is stored as a TOML file in the store directory.
It names the blob backend, its parameters, and the cache TTL.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w

from .cache import DEFAULT_TTL

CONFIG_FILENAME = "canvasstore.toml"
CONFIG_VERSION = 1

# Environment overrides
STORE_PATH_ENV = "CANVASSTORE_PATH"
GCS_TOKEN_ENV = "CANVASSTORE_GCS_TOKEN"


@dataclass
class BackendConfig:
    """Which blob backend to use and how to reach it."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    backend: BackendConfig = field(default_factory=lambda: BackendConfig("local"))
    cache_ttl: float = DEFAULT_TTL

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path() -> Path:
    """Store directory from CANVASSTORE_PATH, else ~/.canvasstore."""
    env_path = os.environ.get(STORE_PATH_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".canvasstore"


def resolve_store_path(store_path: Optional[Path] = None) -> Path:
    """Explicit path wins over the environment and the default."""
    if store_path is not None:
        return Path(store_path).expanduser()
    return get_default_store_path()


def create_default_config(store_path: Path) -> StoreConfig:
    """A local-disk store keeping its data under {store}/data."""
    return StoreConfig(
        path=store_path,
        backend=BackendConfig("local", {"root": str(store_path / "data")}),
    )


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Validate version
    version = data.get("store", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    backend_section = data.get("backend", {"name": "local"})
    name = backend_section.get("name")
    if not name:
        raise ValueError(f"Config {config_path} has a [backend] section without a name")

    ttl = data.get("cache", {}).get("ttl", DEFAULT_TTL)
    if not isinstance(ttl, (int, float)) or ttl < 0:
        raise ValueError(f"Invalid cache ttl: {ttl!r}")

    return StoreConfig(
        path=store_path,
        version=version,
        created=data.get("store", {}).get("created", ""),
        backend=BackendConfig(
            name=name,
            params={k: v for k, v in backend_section.items() if k != "name"},
        ),
        cache_ttl=float(ttl),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    backend = {"name": config.backend.name}
    backend.update(config.backend.params)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "backend": backend,
        "cache": {"ttl": config.cache_ttl},
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = create_default_config(store_path)
        save_config(config)
        return config
