"""Record Scanner for indexing a local record store.

Cancelled sessions leave their flushed batches in storage without a hazard
record referencing them. The scanner cross-checks stored batches against
stored records and reports:
- orphaned batches: stored but referenced by no record
- missing batches: referenced by a record but not stored
"""

import logging
from datetime import datetime
from typing import Dict, Any, Set

from .store import FileRecordStore

logger = logging.getLogger(__name__)


class RecordScanner:
    """Scans a FileRecordStore and reports referential integrity."""

    def __init__(self, store: FileRecordStore):
        """Initialize the scanner.

        Args:
            store: Local record store to scan
        """
        self.store = store

    def scan(self) -> Dict[str, Any]:
        """Scan the store.

        Returns:
            Scan results dictionary
        """
        results = {
            "scanned_at": datetime.utcnow().isoformat() + "Z",
            "data_dir": str(self.store.data_dir),
            "total_batches": 0,
            "total_records": 0,
            "total_samples": 0,
            "referenced_batches": 0,
            "orphaned_batches": [],
            "missing_batches": [],
            "errors": [],
            "records": [],
        }

        if not self.store.data_dir.exists():
            results["errors"].append(f"Data directory does not exist: {self.store.data_dir}")
            return results

        stored_batches: Set[str] = set(self.store.list_batch_ids())
        results["total_batches"] = len(stored_batches)

        for batch_id in sorted(stored_batches):
            batch = self.store.load_batch(batch_id)
            if batch is None:
                results["errors"].append(f"Unreadable batch: {batch_id}")
                continue
            results["total_samples"] += len(batch)

        referenced: Set[str] = set()
        for record_id in self.store.list_record_ids():
            record = self.store.load_record(record_id)
            if record is None:
                results["errors"].append(f"Unreadable record: {record_id}")
                continue

            results["total_records"] += 1
            referenced.update(record.batch_ids)
            missing = [b for b in record.batch_ids if b not in stored_batches]
            results["missing_batches"].extend(missing)
            results["records"].append({
                "record_id": record.record_id,
                "start_time": record.start_time,
                "hazard_types": list(record.hazard_types),
                "num_batches": len(record.batch_ids),
                "missing_batches": len(missing),
            })

        results["referenced_batches"] = len(referenced & stored_batches)
        results["orphaned_batches"] = sorted(stored_batches - referenced)

        logger.info(f"Scan complete: {results['total_batches']} batches, "
                    f"{results['total_records']} records, "
                    f"{len(results['orphaned_batches'])} orphaned")

        return results
