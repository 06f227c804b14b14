#!/usr/bin/env python3
"""Manual acquisition of a channel or a single video.

Runs the same orchestrator as the API and the Celery worker, against the
media root configured in the environment (or ``--media-root``).

Usage:
    # Whole channel (videos and shorts tabs)
    python scripts/download_channel.py https://www.youtube.com/@example

    # Only the shorts tab
    python scripts/download_channel.py https://www.youtube.com/@example --kind short

    # One video
    python scripts/download_channel.py --video dQw4w9WgXcQ
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
from newtube.services.acquisition.orchestrator import (  # noqa: E402
    ALL_KINDS,
    ChannelContext,
    VideoOutcome,
)

logger = get_logger(__name__)


def build_config(media_root: Path | None) -> Config:
    if media_root is None:
        return get_config()
    return Config(media_root=media_root)


async def download(
    target: str,
    single_video: bool,
    kinds: list[VideoKind],
    media_root: Path | None,
) -> int:
    """Acquire the target and print a summary.

    Returns:
        Process exit code (1 if anything failed)
    """
    config = build_config(media_root)
    config.media_root.mkdir(parents=True, exist_ok=True)
    container = create_container(config)
    engine = container.infrastructure.db_engine()
    await init_db(engine)
    orchestrator = container.services.orchestrator()

    try:
        if single_video:
            report = await orchestrator.acquire_video(target, ChannelContext(kind=kinds[0]))
            status = report.status.value if report.status else "not stored"
            print(f"{report.video_id}: {report.outcome.value} ({status})")
            if report.missing_assets:
                print(f"  missing: {', '.join(report.missing_assets)}")
            if report.error:
                print(f"  error: {report.error}")
            return 0 if report.outcome != VideoOutcome.FAILED else 1

        channel_report = await orchestrator.acquire_channel(target, kinds)
        print(
            f"{channel_report.channel_url}: {channel_report.discovered} listed, "
            f"{channel_report.skipped} already archived, {channel_report.acquired} acquired "
            f"({channel_report.partial} partial), {channel_report.failed} failed"
        )
        for video_id, reason in channel_report.failures.items():
            print(f"  {video_id}: {reason}")
        for error in channel_report.errors:
            print(f"  listing error: {error}")
        return 0 if channel_report.failed == 0 and not channel_report.errors else 1
    finally:
        await close_db(engine)


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Acquire a channel (or one video) into the NewTube media library",
    )
    parser.add_argument("target", help="Channel URL, or a video id with --video")
    parser.add_argument(
        "--video",
        action="store_true",
        help="Treat the target as a single video id",
    )
    parser.add_argument(
        "--kind",
        choices=[k.value for k in VideoKind],
        default=None,
        help="Restrict to one kind (default: both tabs for channels, standard for videos)",
    )
    parser.add_argument(
        "--media-root",
        type=Path,
        default=None,
        help="Media library root (default: MEDIA_ROOT from the environment)",
    )
    args = parser.parse_args()

    setup_logging()
    kinds = [VideoKind(args.kind)] if args.kind else list(ALL_KINDS)

    try:
        exit_code = asyncio.run(download(args.target, args.video, kinds, args.media_root))
    except KeyboardInterrupt:
        logger.info("Download cancelled by user")
        sys.exit(1)
    except Exception as e:
        logger.error("Download failed", error=str(e), exc_info=True)
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
