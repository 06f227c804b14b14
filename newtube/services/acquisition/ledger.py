"""Archive ledger.

Append-only record of items that have been fully processed. It is the
single source of truth for deduplication and is independent of catalog
rows: the catalog may be rebuilt, the ledger is never replayed.

The file format matches yt-dlp's ``--download-archive`` file, one
``<source> <id>`` pair per line, so an existing archive can be reused.
"""

import asyncio
import os
from pathlib import Path

from newtube.core.exceptions import LedgerWriteError
from newtube.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SOURCE = "youtube"


class ArchiveLedger:
    """File-backed archive ledger.

    Reads are served from an in-memory set that is reloaded whenever the
    file changes on disk (another process appended to it). Writes are
    serialized and fsynced before ``record`` returns.

    Example:
        >>> ledger = ArchiveLedger(Path("./media/download-archive.txt"))
        >>> await ledger.record("dQw4w9WgXcQ")
        >>> ledger.contains("dQw4w9WgXcQ")
        True
    """

    def __init__(self, path: Path, source: str = DEFAULT_SOURCE) -> None:
        """Initialize ArchiveLedger.

        Args:
            path: Ledger file location
            source: Source tag written before each id
        """
        self.path = path
        self.source = source
        self._ids: set[str] = set()
        self._signature: tuple[int, int] | None = None
        self._write_lock = asyncio.Lock()

    def _file_signature(self) -> tuple[int, int] | None:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return None
        return (stat.st_mtime_ns, stat.st_size)

    def _reload_if_changed(self) -> None:
        signature = self._file_signature()
        if signature == self._signature:
            return
        ids: set[str] = set()
        if signature is not None:
            with self.path.open(encoding="utf-8") as f:
                for line in f:
                    parts = line.split()
                    if len(parts) >= 2 and parts[0] == self.source:
                        ids.add(parts[1])
        self._ids = ids
        self._signature = signature

    def contains(self, item_id: str) -> bool:
        """Whether ``item_id`` has been recorded."""
        self._reload_if_changed()
        return item_id in self._ids

    def __contains__(self, item_id: object) -> bool:
        return isinstance(item_id, str) and self.contains(item_id)

    def __len__(self) -> int:
        self._reload_if_changed()
        return len(self._ids)

    def ids(self) -> frozenset[str]:
        """All recorded ids."""
        self._reload_if_changed()
        return frozenset(self._ids)

    def _append_sync(self, item_id: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(f"{self.source} {item_id}\n")
            f.flush()
            os.fsync(f.fileno())

    def _rewrite_sync(self, lines: list[str]) -> None:
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            f.writelines(lines)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

    async def record(self, item_id: str) -> None:
        """Durably append ``item_id``. Recording a present id is a no-op.

        Raises:
            LedgerWriteError: If the append could not be made durable
        """
        async with self._write_lock:
            self._reload_if_changed()
            if item_id in self._ids:
                return
            try:
                await asyncio.to_thread(self._append_sync, item_id)
            except OSError as e:
                raise LedgerWriteError(
                    f"Failed to record {item_id} in archive ledger: {e}", item_id=item_id
                ) from e
            self._ids.add(item_id)
            self._signature = self._file_signature()
        logger.debug("Ledger recorded", item_id=item_id)

    async def remove(self, item_id: str) -> bool:
        """Remove ``item_id`` so that it is acquired again.

        Only used by operator-driven re-acquisition.

        Returns:
            True if the id was present

        Raises:
            LedgerWriteError: If the ledger could not be rewritten
        """
        async with self._write_lock:
            self._reload_if_changed()
            if item_id not in self._ids:
                return False
            remaining: list[str] = []
            if self.path.exists():
                with self.path.open(encoding="utf-8") as f:
                    for line in f:
                        parts = line.split()
                        if parts[:2] == [self.source, item_id]:
                            continue
                        remaining.append(line if line.endswith("\n") else f"{line}\n")
            try:
                await asyncio.to_thread(self._rewrite_sync, remaining)
            except OSError as e:
                raise LedgerWriteError(
                    f"Failed to remove {item_id} from archive ledger: {e}", item_id=item_id
                ) from e
            self._ids.discard(item_id)
            self._signature = self._file_signature()
        logger.info("Ledger entry removed", item_id=item_id)
        return True


__all__ = ["ArchiveLedger", "DEFAULT_SOURCE"]
