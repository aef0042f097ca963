"""
Installer backends — one per source kind, behind a common contract.

    from converge.adapters import default_registry
"""

from converge.adapters.base import Backend
from converge.adapters.mock import MockBackend
from converge.adapters.registry import BackendRegistry, default_registry

__all__ = ["Backend", "BackendRegistry", "MockBackend", "default_registry"]
