#!/usr/bin/env python3
"""Operator-driven re-acquisition.

Removes ids from the archive ledger and acquires them again, for example
after a partial acquisition whose missing assets became available. This
is the only way an id leaves the ledger.

Usage:
    python scripts/reacquire.py dQw4w9WgXcQ
    python scripts/reacquire.py dQw4w9WgXcQ abc123def45 --kind short
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
from newtube.models import VideoKind  # noqa: E402
from newtube.services.acquisition.orchestrator import ChannelContext, VideoOutcome  # noqa: E402

logger = get_logger(__name__)


async def reacquire(video_ids: list[str], kind: VideoKind | None, media_root: Path | None) -> int:
    """Drop each id from the ledger and acquire it again.

    Channel and kind come from the catalog when the video is known.

    Returns:
        Process exit code (1 if any acquisition failed)
    """
    config = Config(media_root=media_root) if media_root else get_config()
    container = create_container(config)
    engine = container.infrastructure.db_engine()
    await init_db(engine)
    catalog = container.services.catalog()
    ledger = container.infrastructure.archive_ledger()
    orchestrator = container.services.orchestrator()

    failures = 0
    try:
        for video_id in video_ids:
            existing = await catalog.get_video(video_id)
            context = ChannelContext(
                channel_url=existing.channel_url if existing else None,
                kind=kind or (existing.kind if existing else VideoKind.STANDARD),
            )
            removed = await ledger.remove(video_id)
            logger.info("Ledger entry removed", video_id=video_id, was_recorded=removed)

            report = await orchestrator.acquire_video(video_id, context)
            status = report.status.value if report.status else "not stored"
            print(f"{video_id}: {report.outcome.value} ({status})")
            if report.error:
                print(f"  error: {report.error}")
            if report.outcome == VideoOutcome.FAILED:
                failures += 1
    finally:
        await close_db(engine)
    return 1 if failures else 0


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Remove ids from the ledger and acquire them again")
    parser.add_argument("video_ids", nargs="+", help="Video ids to re-acquire")
    parser.add_argument(
        "--kind",
        choices=[k.value for k in VideoKind],
        default=None,
        help="Kind of the ids (default: from the catalog, else standard)",
    )
    parser.add_argument(
        "--media-root",
        type=Path,
        default=None,
        help="Media library root (default: MEDIA_ROOT from the environment)",
    )
    args = parser.parse_args()

    setup_logging()
    kind = VideoKind(args.kind) if args.kind else None
    try:
        exit_code = asyncio.run(reacquire(args.video_ids, kind, args.media_root))
    except KeyboardInterrupt:
        logger.info("Re-acquisition cancelled by user")
        sys.exit(1)
    except Exception as e:
        logger.error("Re-acquisition failed", error=str(e), exc_info=True)
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
