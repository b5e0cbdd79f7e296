"""
Offline Write Queue

Writes made while offline are appended to a per-user queue in the draft
store and replayed later, one at a time, in the order they were queued.

- An item is removed once the server accepts it.
- Each failure is counted on the item; after ``max_failures`` failures the
  item is dropped.
- A replay that starts while another is running returns immediately.
- There is no conflict resolution: the replayed write simply overwrites
  whatever the server holds (last write wins).
"""

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from admissions.client.drafts import DraftStore

logger = logging.getLogger(__name__)

QUEUE_NAME = "offline_queue"
DEFAULT_MAX_FAILURES = 3


@dataclass
class QueuedWrite:
    method: str
    path: str
    body: dict[str, Any] | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    queued_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    failures: int = 0
    last_error: str | None = None


@dataclass
class ReplayResult:
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    skipped: bool = False


class WriteSender(Protocol):
    async def send_queued(self, item: QueuedWrite) -> Any: ...


class OfflineQueue:
    def __init__(
        self,
        store: DraftStore,
        user_id: str,
        max_failures: int = DEFAULT_MAX_FAILURES,
    ):
        self.store = store
        self.user_id = str(user_id)
        self.max_failures = max_failures
        self._replaying = False

    @property
    def is_replaying(self) -> bool:
        return self._replaying

    def _read(self) -> list[QueuedWrite]:
        raw = self.store.get(self.user_id, QUEUE_NAME, []) or []
        return [QueuedWrite(**item) for item in raw]

    def _write(self, items: list[QueuedWrite]) -> None:
        if items:
            self.store.set(self.user_id, QUEUE_NAME, [asdict(i) for i in items])
        else:
            self.store.delete(self.user_id, QUEUE_NAME)

    def enqueue(self, method: str, path: str, body: dict[str, Any] | None = None) -> QueuedWrite:
        item = QueuedWrite(method=method.upper(), path=path, body=body)
        items = self._read()
        items.append(item)
        self._write(items)
        logger.info(f"Queued offline write {item.method} {item.path} ({len(items)} pending)")
        return item

    def pending(self) -> list[QueuedWrite]:
        return self._read()

    def __len__(self) -> int:
        return len(self._read())

    async def replay(self, sender: WriteSender) -> ReplayResult:
        """
        Send queued writes in insertion order.

        Args:
            sender: Object whose ``send_queued(item)`` performs the request
                and raises on failure (normally an AdmissionsClient)
        """
        if self._replaying:
            logger.debug("Replay already in progress, skipping")
            return ReplayResult(skipped=True)

        self._replaying = True
        result = ReplayResult()
        try:
            for item in self._read():
                try:
                    await sender.send_queued(item)
                except Exception as e:
                    item.failures += 1
                    item.last_error = str(e)
                    if item.failures >= self.max_failures:
                        logger.error(
                            f"Dropping queued write {item.id} after {item.failures} failures: {e}"
                        )
                        self._remove(item.id)
                        result.dropped.append(item.id)
                    else:
                        logger.warning(f"Queued write {item.id} failed ({item.failures}): {e}")
                        self._update(item)
                        result.failed.append(item.id)
                    continue

                self._remove(item.id)
                result.sent.append(item.id)
        finally:
            self._replaying = False

        logger.info(
            f"Offline replay finished: sent={len(result.sent)} "
            f"failed={len(result.failed)} dropped={len(result.dropped)}"
        )
        return result

    def _remove(self, item_id: str) -> None:
        self._write([i for i in self._read() if i.id != item_id])

    def _update(self, item: QueuedWrite) -> None:
        self._write([item if i.id == item.id else i for i in self._read()])
