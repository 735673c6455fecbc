"""Durable store - debounced JSON snapshot persistence for the master.

Bursts of save requests coalesce into a single write of the newest
snapshot: each request restarts a quiet-period timer and the write happens
once the timer expires. A failed write is logged and never touches the
in-memory state; the next save request simply tries again.
"""
import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..schemas import StorageSnapshot
from ..utils.clock import now_ms

logger = logging.getLogger(__name__)

STATE_FILENAME = "monitor-state.json"


class DurableStore:
    """Persists StorageSnapshot as one JSON document in the data directory."""

    def __init__(self, data_dir: str, debounce_seconds: float = 5.0):
        self.data_dir = Path(data_dir)
        self.debounce_seconds = debounce_seconds
        self._pending: Optional[StorageSnapshot] = None
        self._timer: Optional[asyncio.Task] = None
        self._write_lock = asyncio.Lock()

    @property
    def file_path(self) -> Path:
        return self.data_dir / STATE_FILENAME

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def load(self) -> StorageSnapshot:
        """Read the snapshot; a missing or unreadable file yields an empty one."""
        if not self.file_path.exists():
            logger.info(f"No state file at {self.file_path}, starting with empty state")
            return StorageSnapshot(last_updated=now_ms())

        try:
            raw = self.file_path.read_text(encoding="utf-8")
            snapshot = StorageSnapshot.model_validate(json.loads(raw))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Failed to load state file {self.file_path}, starting with empty state: {e}")
            return StorageSnapshot(last_updated=now_ms())

        logger.info(
            f"Loaded monitor state: {len(snapshot.service_configs)} services, "
            f"{len(snapshot.service_statuses)} statuses, {len(snapshot.slave_statuses)} slaves"
        )
        return snapshot

    def save(self, snapshot: StorageSnapshot):
        """Request a write; requests within the debounce window coalesce."""
        self._pending = snapshot
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.create_task(self._write_after_quiet_period())

    async def save_now(self, snapshot: StorageSnapshot) -> bool:
        """Write immediately. Returns False if the write failed."""
        async with self._write_lock:
            snapshot.last_updated = now_ms()
            payload = snapshot.model_dump_json(by_alias=True, indent=2)
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, self._write_file, payload)
            except OSError as e:
                logger.error(f"Failed to save monitor state to {self.file_path}: {e}")
                return False
            except Exception:
                # Nobody awaits a write whose debounce timer was cancelled
                logger.exception(f"Unexpected error saving monitor state to {self.file_path}")
                return False
            logger.debug("Saved monitor state")
            return True

    async def flush(self) -> bool:
        """Write any pending snapshot right away (used on shutdown)."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None
        snapshot, self._pending = self._pending, None
        if snapshot is None:
            return True
        return await self.save_now(snapshot)

    async def _write_after_quiet_period(self):
        await asyncio.sleep(self.debounce_seconds)
        snapshot, self._pending = self._pending, None
        if snapshot is not None:
            # A newer save() may cancel this timer; the write itself must finish
            await asyncio.shield(self.save_now(snapshot))

    def _write_file(self, payload: str):
        """Write via a temp file and atomic rename (blocking)."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=".monitor-state-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.file_path)
        except OSError:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
