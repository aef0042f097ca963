"""
Catalog loader — reads a catalog YAML file into a validated Catalog.

Resolution order for the catalog file:
    --catalog PATH  >  CONVERGE_CATALOG env var  >  built-in catalog
    for the platform (converge/catalogs/<platform>.yml)

Paths inside the catalog (``dest``, artifact ``path``) have ``~`` and
``$VAR`` expanded here, once, so that nothing downstream touches the
environment.
"""

from __future__ import annotations

import logging
import os
import platform as _platform
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from converge.core.errors import ConfigurationError
from converge.core.models.catalog import Catalog

logger = logging.getLogger(__name__)

CATALOG_ENV_VAR = "CONVERGE_CATALOG"
STATE_DIR_ENV_VAR = "CONVERGE_STATE_DIR"

BUILTIN_CATALOG_DIR = Path(__file__).resolve().parent.parent.parent / "catalogs"

# platform.system() → built-in catalog name
_PLATFORM_CATALOGS = {
    "Darwin": "macos",
    "Linux": "ubuntu",
}

# Catalog name → platform tag used by Unit.platforms
PLATFORM_TAGS = {
    "macos": "macos",
    "ubuntu": "linux",
}


def detect_platform() -> str:
    """Name of the built-in catalog matching the running OS.

    Raises:
        ConfigurationError: On an OS with no built-in catalog.
    """
    system = _platform.system()
    name = _PLATFORM_CATALOGS.get(system)
    if name is None:
        raise ConfigurationError(
            f"No built-in catalog for platform '{system}'. Pass --catalog explicitly."
        )
    return name


def builtin_catalog_path(name: str) -> Path:
    """Path of a built-in catalog by platform name."""
    return BUILTIN_CATALOG_DIR / f"{name}.yml"


def list_builtin_catalogs() -> list[str]:
    if not BUILTIN_CATALOG_DIR.is_dir():
        return []
    return sorted(p.stem for p in BUILTIN_CATALOG_DIR.glob("*.yml"))


def resolve_catalog_path(
    path: Path | None = None,
    platform: str | None = None,
) -> Path:
    """Pick the catalog file to load (see module docstring)."""
    if path is not None:
        return path

    env_path = os.environ.get(CATALOG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()

    return builtin_catalog_path(platform or detect_platform())


def default_state_dir() -> Path:
    """Directory holding the run lock and the audit ledger."""
    env_dir = os.environ.get(STATE_DIR_ENV_VAR)
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".local" / "state" / "converge"


def expand_path(value: str) -> str:
    """Expand ``~`` and ``$VAR`` references in a catalog path."""
    if not value:
        return value
    return os.path.expanduser(os.path.expandvars(value))


def _expand_paths(data: dict[str, Any]) -> dict[str, Any]:
    for unit in data.get("units") or []:
        if isinstance(unit, dict) and unit.get("dest"):
            unit["dest"] = expand_path(str(unit["dest"]))
    for artifact in data.get("artifacts") or []:
        if isinstance(artifact, dict) and artifact.get("path"):
            artifact["path"] = expand_path(str(artifact["path"]))
    return data


def parse_catalog(data: Any, source: str = "<memory>") -> Catalog:
    """Validate an already-parsed mapping into a Catalog.

    Raises:
        ConfigurationError: If the data is not a valid catalog.
    """
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Expected a YAML mapping in {source}, got {type(data).__name__}"
        )

    try:
        catalog = Catalog.model_validate(_expand_paths(data))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid catalog {source}: {e}") from e

    tag = PLATFORM_TAGS.get(catalog.platform)
    if tag:
        catalog = catalog.for_platform(tag)
    return catalog


def load_catalog(
    path: Path | None = None,
    platform: str | None = None,
) -> Catalog:
    """Load and validate a catalog.

    Args:
        path: Explicit catalog file. If None, see ``resolve_catalog_path``.
        platform: Built-in catalog name to use when no path is given.

    Returns:
        Validated, immutable Catalog.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid.
    """
    path = resolve_catalog_path(path, platform)

    if not path.is_file():
        raise ConfigurationError(f"Catalog file not found: {path}")

    logger.debug("Loading catalog from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    catalog = parse_catalog(data, source=str(path))
    logger.info(
        "Loaded catalog '%s' with %d units, %d artifacts",
        catalog.platform or path.stem, len(catalog.units), len(catalog.artifacts),
    )
    return catalog
