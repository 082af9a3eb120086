"""
Gallery application layer.

This package contains:
- create_gallery: Wires catalog, downloads, auth, inference and lifecycle
- Config: CLI argument parsing and configuration
"""

from .app import Gallery, UnavailableBackend, create_gallery, main, main_sync, run
from .config import (
    add_args,
    check_config,
    config_to_dict,
    get_config,
    setup_logging,
)

__all__ = [
    "Gallery",
    "UnavailableBackend",
    "create_gallery",
    "run",
    "main",
    "main_sync",
    "add_args",
    "check_config",
    "config_to_dict",
    "get_config",
    "setup_logging",
]
