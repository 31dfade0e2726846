"""Record stores for sample batches and hazard records.

Two implementations are provided:
- FileRecordStore writes JSON documents under a local data directory
  (batches/<batch_id>.json, records/<record_id>.json)
- CloudRecordStore PUTs the same documents to an HTTP backend

Both are idempotent on the document id, so a write may be safely resent
after a failure.
"""

import os
import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .protocol import SampleBatch, HazardRecord

logger = logging.getLogger(__name__)


class PersistenceFailure(Exception):
    """A write to the record store did not succeed."""


class RecordStore(ABC):
    """Persistence collaborator used by the session core."""

    @abstractmethod
    def connect(self):
        """Establish connectivity. Must be idempotent."""
        pass

    @abstractmethod
    def write_batch(self, batch: SampleBatch):
        """Persist a sample batch under its batch id."""
        pass

    @abstractmethod
    def write_hazard_record(self, record: HazardRecord):
        """Persist a finalized hazard record."""
        pass

    def close(self):
        """Release resources."""
        pass


class FileRecordStore(RecordStore):
    """Stores batches and records as JSON files on the local filesystem."""

    BATCH_DIR = "batches"
    RECORD_DIR = "records"

    def __init__(self, data_dir: str):
        """Initialize the store.

        Args:
            data_dir: Root directory for stored documents
        """
        self.data_dir = Path(data_dir)
        self.batch_dir = self.data_dir / self.BATCH_DIR
        self.record_dir = self.data_dir / self.RECORD_DIR
        self._connected = False
        self._lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self):
        with self._lock:
            if self._connected:
                return
            try:
                self.batch_dir.mkdir(parents=True, exist_ok=True)
                self.record_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise PersistenceFailure(f"Cannot prepare data directory {self.data_dir}: {e}") from e
            self._connected = True
            logger.info(f"FileRecordStore connected: data_dir={self.data_dir}")

    def write_batch(self, batch: SampleBatch):
        self._write_json(self.batch_dir / f"{batch.batch_id}.json", batch.to_dict())
        logger.debug(f"Saved batch {batch.batch_id} ({len(batch)} samples)")

    def write_hazard_record(self, record: HazardRecord):
        self._write_json(self.record_dir / f"{record.record_id}.json", record.to_dict())
        logger.info(f"Saved hazard record {record.record_id} ({len(record.batch_ids)} batches)")

    def load_batch(self, batch_id: str) -> Optional[SampleBatch]:
        """Load a batch by id, or None if absent or unreadable."""
        data = self._read_json(self.batch_dir / f"{batch_id}.json")
        return SampleBatch.from_dict(data) if data is not None else None

    def load_record(self, record_id: str) -> Optional[HazardRecord]:
        """Load a hazard record by id, or None if absent or unreadable."""
        data = self._read_json(self.record_dir / f"{record_id}.json")
        return HazardRecord.from_dict(data) if data is not None else None

    def list_batch_ids(self) -> List[str]:
        if not self.batch_dir.exists():
            return []
        return sorted(p.stem for p in self.batch_dir.glob("*.json"))

    def list_record_ids(self) -> List[str]:
        if not self.record_dir.exists():
            return []
        return sorted(p.stem for p in self.record_dir.glob("*.json"))

    def _write_json(self, path: Path, data: Dict[str, Any]):
        if not self._connected:
            raise PersistenceFailure("FileRecordStore is not connected")
        tmp_path = path.with_suffix(".json.tmp")
        try:
            with open(tmp_path, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, path)
        except OSError as e:
            raise PersistenceFailure(f"Failed to write {path.name}: {e}") from e

    def _read_json(self, path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load {path}: {e}")
            return None


class CloudRecordStore(RecordStore):
    """Stores batches and records on an HTTP backend.

    Documents are written with PUT to /batches/<batch_id> and
    /records/<record_id>, so resending a document is harmless.
    """

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 10.0):
        """Initialize the store.

        Args:
            base_url: Backend base URL
            api_key: Bearer token sent with every request
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = self._create_session()
        self._connected = False
        self._lock = threading.Lock()

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        # Transport-level retries; PersistenceFailure retries are the upload queue's job
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[408, 429, 500, 502, 503, 504],
            allowed_methods=["GET", "PUT"]
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    @property
    def connected(self) -> bool:
        return self._connected

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def connect(self):
        with self._lock:
            if self._connected:
                return
            if not self.base_url:
                raise PersistenceFailure("Cloud store URL not configured")

            url = f"{self.base_url}/health"
            try:
                response = self.session.get(url, headers=self._headers(), timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                raise PersistenceFailure(f"Error connecting to cloud store: {e}") from e

            if response.status_code != 200:
                raise PersistenceFailure(
                    f"Cloud store health check failed: {response.status_code} - {response.text}"
                )

            self._connected = True
            logger.info(f"Connected to cloud store at {self.base_url}")

    def write_batch(self, batch: SampleBatch):
        self._put(f"/batches/{batch.batch_id}", batch.to_dict())
        logger.debug(f"Uploaded batch {batch.batch_id} ({len(batch)} samples)")

    def write_hazard_record(self, record: HazardRecord):
        self._put(f"/records/{record.record_id}", record.to_dict())
        logger.info(f"Uploaded hazard record {record.record_id}")

    def _put(self, path: str, payload: Dict[str, Any]):
        url = f"{self.base_url}{path}"
        try:
            response = self.session.put(url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise PersistenceFailure(f"Error uploading {path}: {e}") from e

        if response.status_code not in (200, 201, 204):
            # Unauthorized means our session is gone; reconnect on next attempt
            if response.status_code == 401:
                self._connected = False
            raise PersistenceFailure(f"Upload of {path} failed: {response.status_code} - {response.text}")

    def close(self):
        self.session.close()
