import time
import uuid
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

from pydantic import BaseModel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from utils.logger import setup_logger
import config

logger = setup_logger(__name__)


class ProgressEntry(BaseModel):
    message: str
    timestamp: float


class ProgressTracker:
    """Latest human-readable milestone per analysis session.

    Advisory only: nothing in the pipeline reads it back, and notifications
    may arrive out of order or be dropped.
    """

    def __init__(
        self,
        ttl_seconds: float = config.PROGRESS_TTL_SECONDS,
        on_update: Optional[Callable[[str, str], None]] = None,
        clock: Callable[[], float] = time.time
    ):
        self.ttl_seconds = ttl_seconds
        self.on_update = on_update
        self.clock = clock
        self._entries: Dict[str, ProgressEntry] = {}

    def notify(self, session_id: str, message: str) -> None:
        """Record the latest message for a session. Never raises."""
        self._entries[session_id] = ProgressEntry(message=message, timestamp=self.clock())
        logger.debug(f"[Progress {session_id}]: {message}")

        if self.on_update:
            try:
                self.on_update(session_id, message)
            except Exception as e:
                logger.debug(f"Progress callback failed for {session_id}: {e}")

    def get(self, session_id: str) -> Optional[ProgressEntry]:
        return self._entries.get(session_id)

    def clear(self, session_id: str) -> None:
        self._entries.pop(session_id, None)

    def evict_expired(self) -> int:
        """Drop sessions whose last update is older than the TTL."""
        cutoff = self.clock() - self.ttl_seconds
        expired = [sid for sid, entry in self._entries.items() if entry.timestamp < cutoff]
        for sid in expired:
            del self._entries[sid]
        if expired:
            logger.debug(f"Evicted {len(expired)} abandoned progress sessions")
        return len(expired)

    @contextmanager
    def session(self, session_id: Optional[str] = None) -> Iterator[str]:
        """Scope a session: created on entry, cleared on success or failure."""
        self.evict_expired()
        session_id = session_id or f"session_{uuid.uuid4().hex[:12]}"
        self.notify(session_id, "Starting analysis...")
        try:
            yield session_id
        finally:
            self.clear(session_id)

    def __len__(self) -> int:
        return len(self._entries)


def create_progress(console) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console
    )
