"""Local notifications for finished downloads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass
class AppLifecycle:
    """Whether the host application is currently in the foreground."""

    in_foreground: bool = True


class DownloadNotifier(Protocol):
    def notify(self, title: str, text: str, model_name: str) -> None: ...


class LoggingNotifier:
    """Notifier that writes notifications to the log."""

    def notify(self, title: str, text: str, model_name: str) -> None:
        logger.info(f"[notification] {title}: {text}")
