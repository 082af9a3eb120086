"""Gallery wiring and command-line entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from ..auth import (
    AuthConfig,
    AuthCoordinator,
    AuthOutcomeType,
    AuthorizationLauncher,
    ConsoleAuthorizationLauncher,
    TokenStore,
)
from ..catalog import (
    AllowlistClient,
    AllowlistConfig,
    ImportedModelStore,
    ModelRegistry,
    UnknownModelError,
)
from ..downloads import (
    DownloadScheduler,
    DownloadStatus,
    DownloadStatusType,
    SchedulerConfig,
    WorkerConfig,
    create_download_scheduler,
)
from ..inference import (
    EngineBackend,
    EngineConstructionError,
    EngineOptions,
    InferenceSessionGateway,
    SessionOptions,
)
from ..lifecycle import ModelLifecycleCoordinator, ModelManager
from .config import check_config, config_to_dict, get_config, setup_logging

logger = logging.getLogger(__name__)

MODELS_DIRNAME = "models"


class UnavailableBackend:
    """Backend for hosts without an on-device engine; every construction fails."""

    def create_engine(self, options: EngineOptions):
        raise EngineConstructionError("No inference backend configured")

    def create_session(self, engine, options: SessionOptions):
        raise EngineConstructionError("No inference backend configured")


@dataclass
class Gallery:
    """Every wired component of the gallery."""

    registry: ModelRegistry
    scheduler: DownloadScheduler
    auth: AuthCoordinator
    lifecycle: ModelLifecycleCoordinator
    manager: ModelManager
    data_dir: Path
    artifacts_dir: Path


def create_gallery(
    config: argparse.Namespace,
    backend: EngineBackend | None = None,
    launcher: AuthorizationLauncher | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Gallery:
    """
    Create a fully-wired Gallery from parsed configuration.

    Args:
        config: Namespace produced by get_config()
        backend: On-device inference runtime (defaults to one that
            refuses to build engines)
        launcher: Authorization launcher (defaults to the console)
        transport: Optional httpx transport shared by every HTTP client (tests)

    Returns:
        Ready-to-use Gallery; call ``manager.load()`` before use
    """
    data_dir = Path(config.data_dir)
    artifacts_dir = data_dir / MODELS_DIRNAME

    registry = ModelRegistry(
        allowlist_client=AllowlistClient(
            AllowlistConfig(
                version=config.allowlist_version,
                url=config.allowlist_url,
                test_allowlist_path=config.allowlist_test_path,
            ),
            data_dir=data_dir,
            transport=transport,
        ),
        imported_store=ImportedModelStore(data_dir),
        endpoint=config.hf_endpoint,
    )

    scheduler = create_download_scheduler(
        data_dir=data_dir,
        artifacts_dir=artifacts_dir,
        worker_config=WorkerConfig(read_timeout_seconds=config.download_timeout),
        scheduler_config=SchedulerConfig(
            max_concurrent_downloads=config.download_max_concurrent
        ),
        transport=transport,
    )

    auth = AuthCoordinator(
        config=AuthConfig(
            client_id=config.auth_client_id,
            redirect_uri=config.auth_redirect_uri,
            scope=config.auth_scope,
            gated_host=config.hf_endpoint,
        ),
        token_store=TokenStore(data_dir),
        launcher=launcher or ConsoleAuthorizationLauncher(),
        transport=transport,
    )

    lifecycle = ModelLifecycleCoordinator(
        gateway=InferenceSessionGateway(backend or UnavailableBackend()),
        artifacts_dir=artifacts_dir,
    )

    manager = ModelManager(
        registry=registry,
        scheduler=scheduler,
        auth=auth,
        lifecycle=lifecycle,
        artifacts_dir=artifacts_dir,
    )

    return Gallery(
        registry=registry,
        scheduler=scheduler,
        auth=auth,
        lifecycle=lifecycle,
        manager=manager,
        data_dir=data_dir,
        artifacts_dir=artifacts_dir,
    )


def format_status(status: DownloadStatus) -> str:
    if status.status == DownloadStatusType.IN_PROGRESS and status.total_bytes:
        percent = 100 * status.received_bytes // status.total_bytes
        return f"{status.status.value} {percent}%"
    if status.status == DownloadStatusType.FAILED and status.error_message:
        return f"{status.status.value} ({status.error_message})"
    return status.status.value


def print_models(gallery: Gallery) -> None:
    if gallery.registry.load_error:
        print(gallery.registry.load_error)
    for task in gallery.registry.tasks():
        print(f"{task.type.label}:")
        for model in task.models:
            status = gallery.manager.download_status(model.name)
            size_mb = model.total_bytes / 1024 / 1024
            print(f"  {model.name} [{size_mb:.1f} MB] {format_status(status)}")


async def _download(gallery: Gallery, name: str) -> None:
    descriptor = gallery.registry.get_model(name)
    outcome = await gallery.manager.request_download(descriptor)

    if outcome.type == AuthOutcomeType.NEEDS_ACKNOWLEDGEMENT:
        url = gallery.auth.acknowledgement_url(descriptor)
        print(f"Accept the license of {name} at:\n  {url}")
        await asyncio.to_thread(input, "Press Enter once accepted: ")
        outcome = await gallery.manager.acknowledge_and_download(descriptor)

    if outcome.type == AuthOutcomeType.PROCEED:
        logger.info(f"Downloading {name}")
    else:
        logger.error(f"Not downloading {name}: {outcome.type.value} {outcome.error_message}")


async def _log_terminal_status(name: str, status: DownloadStatus) -> None:
    if status.status in (DownloadStatusType.SUCCEEDED, DownloadStatusType.FAILED):
        logger.info(f"{name}: {format_status(status)}")
    else:
        logger.debug(f"{name}: {format_status(status)}")


async def run(config: argparse.Namespace, gallery: Gallery) -> None:
    """Perform the actions requested on the command line."""
    if config.logout:
        gallery.auth.clear_token()
        logger.info("Access token cleared")

    gallery.manager.subscribe(_log_terminal_status)
    await gallery.manager.load()

    refresh = None
    if config.allowlist_refresh_minutes:
        refresh = gallery.manager.start_scheduled_refresh(config.allowlist_refresh_minutes)

    try:
        for name in config.delete:
            try:
                await gallery.manager.delete_model(gallery.registry.get_model(name))
            except UnknownModelError as e:
                logger.error(str(e))

        for name in config.download:
            try:
                await _download(gallery, name)
            except UnknownModelError as e:
                logger.error(str(e))

        await gallery.scheduler.join()

        if config.list or not (config.download or config.delete or config.logout):
            print_models(gallery)
    finally:
        if refresh is not None:
            refresh.shutdown()
        await gallery.scheduler.shutdown()


def main_sync() -> int:
    """Synchronous CLI entry point for script installation."""
    return asyncio.run(main())


async def main() -> int:
    config = get_config()
    setup_logging(config.log_level)
    try:
        check_config(config)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    logger.info(f"Config: {config_to_dict(config)}")

    gallery = create_gallery(config)
    await run(config, gallery)
    return 0
