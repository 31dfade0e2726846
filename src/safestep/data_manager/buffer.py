"""Sample buffer that splits a recording into fixed-size batches.

Samples are appended in arrival order. When the current batch is full the
next append flushes it: the batch is snapshotted, assigned a fresh id,
handed to the flush sink and the buffer is cleared, all under one lock so
no sample is lost or duplicated across the boundary.
"""

import logging
import threading
from typing import Callable, List, Optional

from .protocol import (
    DEFAULT_BATCH_SIZE,
    MotionSample,
    SampleBatch,
    generate_id,
)

logger = logging.getLogger(__name__)

FlushSink = Callable[[SampleBatch], None]


class SampleBuffer:
    """Accumulates motion samples and flushes them in capped batches."""

    def __init__(self, on_flush: FlushSink, batch_size: int = DEFAULT_BATCH_SIZE):
        """Initialize the buffer.

        Args:
            on_flush: Called with each flushed batch while the buffer lock
                is held. Must not block (enqueue the write, don't perform it).
            batch_size: Maximum number of samples per batch
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        self.batch_size = batch_size
        self._on_flush = on_flush
        self._samples: List[MotionSample] = []
        self._last_sample: Optional[MotionSample] = None
        self._flush_count = 0
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._samples)

    @property
    def flush_count(self) -> int:
        with self._lock:
            return self._flush_count

    @property
    def last_sample(self) -> Optional[MotionSample]:
        """Most recent sample added since the last reset (survives flushes)."""
        with self._lock:
            return self._last_sample

    def snapshot(self) -> List[MotionSample]:
        """Copy of the samples not yet flushed."""
        with self._lock:
            return list(self._samples)

    def add_sample(self, sample: MotionSample) -> Optional[SampleBatch]:
        """Append a sample, flushing the full batch first if needed.

        Returns:
            The flushed batch, or None if no flush happened
        """
        with self._lock:
            flushed = None
            if len(self._samples) >= self.batch_size:
                flushed = self._flush_locked()
            self._samples.append(sample)
            self._last_sample = sample
            return flushed

    def flush_remainder(self) -> SampleBatch:
        """Force a flush of whatever is buffered.

        Always produces exactly one batch, even when fewer than
        batch_size samples (or none) are buffered.
        """
        with self._lock:
            return self._flush_locked()

    def reset(self):
        """Discard buffered samples without flushing."""
        with self._lock:
            dropped = len(self._samples)
            self._samples = []
            self._last_sample = None
            self._flush_count = 0
        if dropped:
            logger.debug(f"Sample buffer reset, dropped {dropped} unflushed samples")

    def _flush_locked(self) -> SampleBatch:
        batch = SampleBatch(batch_id=generate_id(), samples=tuple(self._samples))
        self._samples = []
        self._flush_count += 1
        self._on_flush(batch)
        logger.debug(f"Flushed batch {batch.batch_id} ({len(batch)} samples)")
        return batch
