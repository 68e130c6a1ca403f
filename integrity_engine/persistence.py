"""
Persistence - Fire-and-forget storage of confirmed events and final reports.
"""

import logging
import os
import queue
import threading
from datetime import datetime
from typing import Optional

from shared_utils.file_utils import append_jsonl, ensure_directory_exists, write_json
from shared_utils.validation import sanitize_filename
from .interfaces import PersistenceSink
from .models import ConfirmedSignal, Report


logger = logging.getLogger(__name__)

EVENTS_FILENAME = "events.jsonl"


class JsonlPersistenceSink(PersistenceSink):
    """
    Stores each candidate's data under ``<base_dir>/<candidate>/``.

    Events are appended to ``events.jsonl``; each report is written to its own
    ``report_<timestamp>.json`` file.
    """

    def __init__(self, base_dir: str = "sessions"):
        self.base_dir = base_dir
        self.lock = threading.Lock()
        ensure_directory_exists(base_dir)

    def candidate_directory(self, candidate_id: str) -> str:
        return os.path.join(self.base_dir, sanitize_filename(candidate_id))

    def persist_event(self, event: ConfirmedSignal, candidate_id: str) -> None:
        record = event.to_dict()
        record['candidate_id'] = candidate_id
        path = os.path.join(self.candidate_directory(candidate_id), EVENTS_FILENAME)
        with self.lock:
            append_jsonl(path, record)

    def persist_report(self, report: Report) -> None:
        stamp = (report.ended_at or datetime.now()).strftime("%Y%m%d_%H%M%S_%f")
        path = os.path.join(
            self.candidate_directory(report.candidate_id), f"report_{stamp}.json"
        )
        with self.lock:
            write_json(path, report.to_dict())
        logger.info(f"Report for {report.candidate_id} saved to {path}")


class PersistenceDispatcher(PersistenceSink):
    """
    Wraps a sink with a worker thread so callers never wait on storage.

    Failures are logged and the item is dropped; nothing is retried.
    """

    def __init__(self, sink: PersistenceSink, name: str = "persistence-worker"):
        self.sink = sink
        self.pending: "queue.Queue" = queue.Queue()
        self.failed_count = 0
        self.written_count = 0
        self.worker_running = True
        self.worker_thread = threading.Thread(target=self._worker, name=name, daemon=True)
        self.worker_thread.start()

    def persist_event(self, event: ConfirmedSignal, candidate_id: str) -> None:
        self._submit('event', (event, candidate_id))

    def persist_report(self, report: Report) -> None:
        self._submit('report', (report,))

    def _submit(self, kind: str, args: tuple) -> None:
        if not self.worker_running:
            logger.warning(f"Dispatcher shut down, dropping {kind}")
            return
        self.pending.put((kind, args))

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every submitted item has been handled.

        Returns:
            True if the queue drained, False if the timeout expired first
        """
        if timeout is None:
            self.pending.join()
            return True

        done = threading.Event()

        def wait_for_queue():
            self.pending.join()
            done.set()

        threading.Thread(target=wait_for_queue, daemon=True).start()
        return done.wait(timeout)

    def shutdown(self, timeout: float = 5.0) -> None:
        """Drain outstanding writes and stop the worker."""
        if not self.worker_running:
            return
        self.flush(timeout)
        self.worker_running = False
        self.pending.put(None)
        self.worker_thread.join(timeout)

    def _worker(self) -> None:
        while True:
            item = self.pending.get()
            try:
                if item is None:
                    return
                kind, args = item
                try:
                    if kind == 'event':
                        self.sink.persist_event(*args)
                    else:
                        self.sink.persist_report(*args)
                    self.written_count += 1
                except Exception as e:
                    self.failed_count += 1
                    logger.error(f"Failed to persist {kind}: {e}")
            finally:
                self.pending.task_done()
