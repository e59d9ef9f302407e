"""Entry point for the sync service.

Usage::

    python -m reachinbox
"""

from __future__ import annotations

import asyncio

from .config import ReachInboxConfig
from .logging import setup_logging
from .service import ReachInboxService


def main() -> None:
    config = ReachInboxConfig()
    setup_logging(json=config.log_json, level=config.log_level)
    asyncio.run(ReachInboxService(config).run())


if __name__ == "__main__":
    main()
