"""Entry point for running the gallery as a module."""

import asyncio

from .app import main

if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
