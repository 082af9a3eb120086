"""
Gallery configuration management.
"""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import Any


def add_args(parser: argparse.ArgumentParser) -> None:
    """
    Add gallery arguments to the parser.

    Arguments can be overridden by environment variables.
    """

    parser.add_argument(
        "--data_dir",
        type=str,
        help="Directory for the model list cache, job store, token and models.",
        default=os.environ.get("GALLERY_DATA_DIR", "./gallery_data"),
    )

    parser.add_argument(
        "--allowlist.url",
        dest="allowlist_url",
        type=str,
        help="Model allow-list URL (overrides the versioned default).",
        default=os.environ.get("ALLOWLIST_URL", ""),
    )

    parser.add_argument(
        "--allowlist.version",
        dest="allowlist_version",
        type=str,
        help="Model allow-list version to fetch.",
        default=os.environ.get("ALLOWLIST_VERSION", "1.0.4"),
    )

    parser.add_argument(
        "--allowlist.test_path",
        dest="allowlist_test_path",
        type=str,
        help="Local allow-list file to use instead of the network.",
        default=os.environ.get("ALLOWLIST_TEST_PATH", ""),
    )

    parser.add_argument(
        "--allowlist.refresh_minutes",
        dest="allowlist_refresh_minutes",
        type=int,
        help="Minutes between model list refreshes (0 disables).",
        default=int(os.environ.get("ALLOWLIST_REFRESH_MINUTES", "0")),
    )

    parser.add_argument(
        "--hf.endpoint",
        dest="hf_endpoint",
        type=str,
        help="Hugging Face endpoint used to build model URLs.",
        default=os.environ.get("HF_ENDPOINT", "https://huggingface.co"),
    )

    parser.add_argument(
        "--auth.client_id",
        dest="auth_client_id",
        type=str,
        help="OAuth client id registered with Hugging Face.",
        default=os.environ.get("HF_CLIENT_ID", ""),
    )

    parser.add_argument(
        "--auth.redirect_uri",
        dest="auth_redirect_uri",
        type=str,
        help="OAuth redirect URI registered with Hugging Face.",
        default=os.environ.get("HF_REDIRECT_URI", ""),
    )

    parser.add_argument(
        "--auth.scope",
        dest="auth_scope",
        type=str,
        help="OAuth scope to request.",
        default=os.environ.get("HF_SCOPE", "read-repos"),
    )

    parser.add_argument(
        "--download.max_concurrent",
        dest="download_max_concurrent",
        type=int,
        help="Maximum number of concurrent model downloads.",
        default=int(os.environ.get("DOWNLOAD_MAX_CONCURRENT", "2")),
    )

    parser.add_argument(
        "--download.timeout",
        dest="download_timeout",
        type=float,
        help="Read timeout in seconds for download requests.",
        default=float(os.environ.get("DOWNLOAD_TIMEOUT", "60")),
    )

    parser.add_argument(
        "--log_level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level.",
        default=os.environ.get("LOG_LEVEL", "INFO"),
    )

    # Actions
    parser.add_argument(
        "--list",
        action="store_true",
        help="List tasks, models and their download status.",
    )

    parser.add_argument(
        "--download",
        action="append",
        default=[],
        metavar="NAME",
        help="Download the named model (repeatable).",
    )

    parser.add_argument(
        "--delete",
        action="append",
        default=[],
        metavar="NAME",
        help="Delete the named model's files (repeatable).",
    )

    parser.add_argument(
        "--logout",
        action="store_true",
        help="Forget the stored access token.",
    )


def get_config(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse arguments and return configuration."""
    parser = argparse.ArgumentParser(
        description="Edge Gallery model manager",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    add_args(parser)
    config = parser.parse_args(argv)

    # Convert paths to Path objects
    config.data_dir = Path(config.data_dir)

    return config


def check_config(config: argparse.Namespace) -> None:
    """
    Validate configuration.

    Raises:
        ValueError: If configuration is invalid.
    """
    if config.download_max_concurrent < 1:
        raise ValueError("--download.max_concurrent must be at least 1")

    if config.download_timeout <= 0:
        raise ValueError("--download.timeout must be positive")

    if config.allowlist_refresh_minutes < 0:
        raise ValueError("--allowlist.refresh_minutes must not be negative")

    if bool(config.auth_client_id) != bool(config.auth_redirect_uri):
        raise ValueError(
            "--auth.client_id and --auth.redirect_uri must be set together "
            "(or set HF_CLIENT_ID and HF_REDIRECT_URI env vars)"
        )


def config_to_dict(config: argparse.Namespace) -> dict[str, Any]:
    """Convert config to dictionary for logging."""
    return {
        "data_dir": str(config.data_dir),
        "allowlist_url": config.allowlist_url,
        "allowlist_version": config.allowlist_version,
        "allowlist_test_path": config.allowlist_test_path,
        "allowlist_refresh_minutes": config.allowlist_refresh_minutes,
        "hf_endpoint": config.hf_endpoint,
        "auth_client_id": "***" if config.auth_client_id else "",
        "auth_redirect_uri": config.auth_redirect_uri,
        "auth_scope": config.auth_scope,
        "download_max_concurrent": config.download_max_concurrent,
        "download_timeout": config.download_timeout,
        "log_level": config.log_level,
    }


def setup_logging(level: str) -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
