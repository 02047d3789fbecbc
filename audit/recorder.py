"""
audit/recorder.py -- Best-effort writer and reader for the audit trail.

Availability over durability: record() and dispatch() never raise. A storage
failure is logged with a traceback on the "adminpanel.audit" logger and the
record is dropped. The request that produced it is unaffected.

dispatch() is the fire-and-forget path used by the request audit middleware.
Writes go to a single worker thread, so they are serialized (kind to SQLite)
and never hold up the event loop or the response. flush() lets tests and the
shutdown path wait for that queue to drain.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime

from audit.models import AuditRecord
from audit.store import AuditStore

logger = logging.getLogger("adminpanel.audit")


class AuditRecorder:
    """Appends AuditRecords and serves paginated reads for operator review.

    Usage:
        recorder = AuditRecorder(AuditStore(db_url))
        recorder.record(AuditRecord(action="LOGOUT", user_id=1))    # synchronous
        recorder.dispatch(AuditRecord(action="GET /api/admin/users"))  # detached
        records, total = recorder.list_page(page=1, page_size=50)
        recorder.close()
    """

    def __init__(self, store: AuditStore) -> None:
        self.store = store
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="audit-writer")
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record(self, entry: AuditRecord) -> AuditRecord | None:
        """Write one record now. Returns the stored record, or None on failure."""
        try:
            return self.store.insert(entry)
        except Exception:
            logger.exception("Failed to write audit record (action=%s)", entry.action)
            return None

    def dispatch(self, entry: AuditRecord) -> None:
        """Queue a write and return immediately. The result is discarded."""
        try:
            future = self._executor.submit(self.record, entry)
        except RuntimeError:
            # Executor already shut down (request finishing during shutdown).
            logger.warning("Audit recorder closed; dropping record (action=%s)", entry.action)
            return
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def flush(self, timeout: float | None = None) -> None:
        """Block until every write dispatched so far has finished."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        self.flush()
        self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_page(self, page: int, page_size: int) -> tuple[list[AuditRecord], int]:
        """Return (records newest-first, total count) for a 1-based page.

        A page past the end returns an empty list, not an error. Invalid
        arguments raise ValueError -- they are programming errors, the HTTP
        layer sanitizes query parameters before calling this.
        """
        if page < 1:
            raise ValueError("page must be >= 1")
        if page_size < 1:
            raise ValueError("page_size must be > 0")
        offset = (page - 1) * page_size
        return self.store.list_page(offset, page_size), self.store.count()

    def recent(self, limit: int = 10) -> list[AuditRecord]:
        return self.store.list_page(0, limit)

    def count(self) -> int:
        return self.store.count()

    def count_since(self, since: datetime, action: str | None = None, action_prefix: str | None = None) -> int:
        return self.store.count_since(since, action=action, action_prefix=action_prefix)
