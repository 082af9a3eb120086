"""Miscellaneous utility functions."""

from __future__ import annotations

import json
import os
import tempfile
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def write_text_atomic(path: Path, text: str) -> None:
    """
    Replace ``path`` with ``text`` in one step.

    The content goes to a temp file in the same directory first, so a
    crash mid-write leaves the previous file intact.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def write_json_atomic(path: Path, data: Any) -> None:
    write_text_atomic(path, json.dumps(data, indent=2))


async def invoke_callback(callback: Callable[..., Any], *args: Any) -> None:
    """Call a listener that may be a plain function or a coroutine function."""
    result = callback(*args)
    if isinstance(result, Awaitable):
        await result
