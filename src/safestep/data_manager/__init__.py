"""Data Management Module for SafeStep.

This module provides the data protocol for motion samples, batching of
streamed samples, persistence to local or cloud record stores, and the
background upload queue.

Data Flow:
==========
SensorLink reading -> MotionSample -> SampleBuffer -> (batch boundary)
-> UploadQueue -> RecordStore.write_batch

Session finalize -> HazardRecord -> UploadQueue
-> RecordStore.write_hazard_record

Storage Layout (FileRecordStore):
- {data_dir}/batches/{batch_id}.json
- {data_dir}/records/{record_id}.json
"""

from .protocol import (
    Location,
    ZERO_LOCATION,
    SampleKind,
    MotionSample,
    SampleBatch,
    BuildingInfo,
    HazardRecord,
    DEFAULT_BATCH_SIZE,
    SCHEMA_VERSION,
    generate_id,
)
from .buffer import SampleBuffer
from .store import RecordStore, FileRecordStore, CloudRecordStore, PersistenceFailure
from .uploader import UploadQueue
from .scanner import RecordScanner

__all__ = [
    "Location",
    "ZERO_LOCATION",
    "SampleKind",
    "MotionSample",
    "SampleBatch",
    "BuildingInfo",
    "HazardRecord",
    "DEFAULT_BATCH_SIZE",
    "SCHEMA_VERSION",
    "generate_id",
    "SampleBuffer",
    "RecordStore",
    "FileRecordStore",
    "CloudRecordStore",
    "PersistenceFailure",
    "UploadQueue",
    "RecordScanner",
]
