#!/usr/bin/env python3
"""One-shot freshness sweep, for cron.

Re-acquires every channel the catalog knows about. Holds the ``sweep``
key of the keyed lock, so with ``LOCK_BACKEND=redis`` it never overlaps
a sweep started by the Celery beat schedule.

Usage:
    python scripts/routine_update.py
    python scripts/routine_update.py --media-root /srv/media
"""

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from newtube.core.config import Config, get_config  # noqa: E402
from newtube.core.container import create_container  # noqa: E402
from newtube.core.database import close_db, init_db  # noqa: E402
from newtube.core.logging import get_logger, setup_logging  # noqa: E402

logger = get_logger(__name__)


async def routine_update(media_root: Path | None) -> int:
    """Run one sweep and print a summary.

    Returns:
        Process exit code (1 if a channel failed)
    """
    config = Config(media_root=media_root) if media_root else get_config()
    config.media_root.mkdir(parents=True, exist_ok=True)
    container = create_container(config)
    engine = container.infrastructure.db_engine()
    await init_db(engine)

    try:
        sweeper = container.services.sweeper()
        report = await sweeper.sweep_exclusive(container.infrastructure.keyed_lock())
    finally:
        await close_db(engine)

    if report is None:
        print("Another sweep is running; nothing to do")
        return 0

    print(
        f"Swept {report.succeeded}/{report.channels} channels, "
        f"{report.acquired} new videos"
    )
    for channel_url, reason in report.failed.items():
        print(f"  {channel_url}: {reason}")
    return 1 if report.failed else 0


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Refresh every known channel once")
    parser.add_argument(
        "--media-root",
        type=Path,
        default=None,
        help="Media library root (default: MEDIA_ROOT from the environment)",
    )
    args = parser.parse_args()

    setup_logging()
    try:
        exit_code = asyncio.run(routine_update(args.media_root))
    except KeyboardInterrupt:
        logger.info("Sweep cancelled by user")
        sys.exit(1)
    except Exception as e:
        logger.error("Sweep failed", error=str(e), exc_info=True)
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
