"""Background upload queue for batches and hazard records.

Writes are enqueued without blocking the caller and performed by one worker
thread in FIFO order. A failed write is retried in place with the same
document id (stores are idempotent on ids) until it succeeds or exhausts its
attempts, so no later job overtakes it; exhausted jobs are parked in a failed
list that can be requeued. Jobs still queued when the worker stops are parked
as well.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .protocol import SampleBatch, HazardRecord
from .store import RecordStore

logger = logging.getLogger(__name__)


class JobKind(str, Enum):
    CONNECT = "connect"
    BATCH = "batch"
    RECORD = "record"


@dataclass
class UploadJob:
    """A pending write."""
    kind: JobKind
    payload: Optional[Union[SampleBatch, HazardRecord]] = None
    attempts: int = 0
    last_error: Optional[str] = None

    @property
    def document_id(self) -> Optional[str]:
        if isinstance(self.payload, SampleBatch):
            return self.payload.batch_id
        if isinstance(self.payload, HazardRecord):
            return self.payload.record_id
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "document_id": self.document_id,
            "attempts": self.attempts,
            "last_error": self.last_error,
        }


class UploadQueue:
    """Performs record store writes on a worker thread with retry."""

    def __init__(
        self,
        store: RecordStore,
        max_attempts: int = 5,
        retry_delay: float = 2.0,
    ):
        """Initialize the queue.

        Args:
            store: Record store receiving the writes
            max_attempts: Attempts per job before it is parked as failed
            retry_delay: Seconds to wait between attempts
        """
        self.store = store
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self._queue: "queue.Queue[Optional[UploadJob]]" = queue.Queue()
        self._failed: List[UploadJob] = []
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._completed = 0
        self._last_success: Optional[str] = None

    def start(self):
        """Start the upload worker."""
        if self._worker and self._worker.is_alive():
            logger.warning("Upload worker already running")
            return
        self._stop_event.clear()
        self._worker = threading.Thread(target=self._run, name="UploadQueue", daemon=True)
        self._worker.start()
        logger.info("Started upload worker")

    def stop(self, timeout: float = 10.0):
        """Stop the worker after the jobs already queued have been attempted.

        Jobs the worker did not get to are parked in the failed list.
        """
        if self._worker and self._worker.is_alive():
            self._queue.put(None)
            self._worker.join(timeout=timeout)
            if self._worker.is_alive():
                logger.warning("Upload worker did not stop in time")
                return
            self._stop_event.set()
            logger.info("Stopped upload worker")
        self._park_pending()

    @property
    def running(self) -> bool:
        return bool(self._worker and self._worker.is_alive())

    def connect(self):
        """Queue an (idempotent) store connect ahead of subsequent writes."""
        self._queue.put(UploadJob(kind=JobKind.CONNECT))

    def enqueue_batch(self, batch: SampleBatch):
        self._queue.put(UploadJob(kind=JobKind.BATCH, payload=batch))

    def enqueue_record(self, record: HazardRecord):
        self._queue.put(UploadJob(kind=JobKind.RECORD, payload=record))

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued job has succeeded or been parked.

        Args:
            timeout: Maximum seconds to wait (None waits indefinitely)

        Returns:
            True if the queue drained in time
        """
        done = threading.Event()

        def waiter():
            self._queue.join()
            done.set()

        threading.Thread(target=waiter, name="UploadQueueDrain", daemon=True).start()
        return done.wait(timeout)

    def retry_failed(self) -> int:
        """Requeue parked jobs with their attempt counts reset.

        Returns:
            Number of jobs requeued
        """
        with self._lock:
            jobs = self._failed
            self._failed = []
        for job in jobs:
            job.attempts = 0
            self._queue.put(job)
        if jobs:
            logger.info(f"Requeued {len(jobs)} failed uploads")
        return len(jobs)

    def failed_jobs(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [job.to_dict() for job in self._failed]

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "pending": self._queue.qsize(),
                "completed": self._completed,
                "failed": len(self._failed),
                "last_success": self._last_success,
                "running": self.running,
            }

    def _run(self):
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    return
                self._process(job)
            finally:
                self._queue.task_done()

    def _process(self, job: UploadJob):
        # Retry in place: the next job waits until this one is written or parked
        while True:
            job.attempts += 1
            try:
                self._write(job)
            except Exception as e:
                job.last_error = str(e)
                if job.attempts >= self.max_attempts:
                    logger.error(f"Giving up on {job.kind.value} {job.document_id} after {job.attempts} attempts: {e}")
                    with self._lock:
                        self._failed.append(job)
                    return
                logger.warning(
                    f"Upload of {job.kind.value} {job.document_id} failed "
                    f"(attempt {job.attempts}/{self.max_attempts}): {e}"
                )
                self._stop_event.wait(self.retry_delay)
                continue

            with self._lock:
                self._completed += 1
                self._last_success = datetime.utcnow().isoformat() + "Z"
            return

    def _write(self, job: UploadJob):
        self.store.connect()
        if job.kind == JobKind.BATCH:
            self.store.write_batch(job.payload)
        elif job.kind == JobKind.RECORD:
            self.store.write_hazard_record(job.payload)

    def _park_pending(self):
        parked = 0
        while True:
            try:
                job = self._queue.get_nowait()
            except queue.Empty:
                break
            if job is not None:
                job.last_error = job.last_error or "Upload worker stopped"
                with self._lock:
                    self._failed.append(job)
                parked += 1
            self._queue.task_done()
        if parked:
            logger.warning(f"Parked {parked} pending uploads after the worker stopped")
