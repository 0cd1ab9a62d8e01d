"""
Best-effort audit logger.

Callers hand events to record() and move on: entries are queued and written
by a background worker with its own database session. A failed write is
retried up to max_attempts times and then dropped. Failures only ever reach
the log, never the caller.
"""
import logging
import os
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from integration_board.models.audit import RecordAuditLog
from integration_board.models.enums import AuditAction

logger = logging.getLogger(__name__)

AUDIT_QUEUE_SIZE = int(os.getenv("AUDIT_QUEUE_SIZE", "1000"))
AUDIT_MAX_ATTEMPTS = int(os.getenv("AUDIT_MAX_ATTEMPTS", "2"))

_STOP = object()


def stringify(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


@dataclass(frozen=True)
class AuditEvent:
    """One mutation to be written to record_audit_logs."""
    record_id: str
    action: AuditAction
    user_id: Optional[str] = None
    field_name: Optional[str] = None
    old_value: Any = None
    new_value: Any = None

    def to_row(self) -> RecordAuditLog:
        return RecordAuditLog(
            record_id=self.record_id,
            user_id=self.user_id,
            action=self.action,
            field_name=self.field_name,
            old_value=stringify(self.old_value),
            new_value=stringify(self.new_value),
        )


class AuditLogger:
    """Fire-and-forget writer for audit entries."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        max_queue_size: int = AUDIT_QUEUE_SIZE,
        max_attempts: int = AUDIT_MAX_ATTEMPTS
    ):
        self.session_factory = session_factory
        self.max_attempts = max(1, max_attempts)
        self._queue: "queue.Queue" = queue.Queue(maxsize=max_queue_size)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, name="audit-logger", daemon=True)
            self._thread.start()

    def stop(self) -> None:
        """Drain pending entries and stop the worker."""
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self._queue.put(_STOP)
        thread.join()

    def record(self, event: AuditEvent) -> None:
        """Queue an entry for writing. Never blocks and never raises."""
        self.start()
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.warning(
                "Audit queue full, dropping %s entry for record %s", event.action.value, event.record_id
            )

    def record_now(self, event: AuditEvent) -> bool:
        """
        Write an entry before returning.

        Used when the entry must land before the next step, e.g. ahead of a
        delete. Still never raises: returns False when the entry was dropped.
        """
        return self._write(event)

    def flush(self) -> None:
        """Block until every queued entry has been written or dropped."""
        if self._thread is None:
            return
        self._queue.join()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._write(item)
            finally:
                self._queue.task_done()

    def _write(self, event: AuditEvent) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            session = None
            try:
                session = self.session_factory()
                session.add(event.to_row())
                session.commit()
                return True
            except Exception:
                logger.warning(
                    "Audit write failed for record %s (%s), attempt %d/%d",
                    event.record_id,
                    event.action.value,
                    attempt,
                    self.max_attempts,
                    exc_info=True,
                )
            finally:
                _discard(session)

        logger.error("Audit entry dropped: %s %s field=%s", event.action.value, event.record_id, event.field_name)
        return False


def _discard(session: Optional[Session]) -> None:
    if session is None:
        return
    try:
        session.rollback()
        session.close()
    except Exception:
        logger.debug("Could not release audit session", exc_info=True)
