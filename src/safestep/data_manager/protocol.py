"""Data Storage Protocol Definitions.

This module defines the data structures exchanged with record stores:
motion samples, sample batches and hazard records.

Batch document:
{
    "batch_id": "uuid",
    "created_at": "2025-01-23T10:30:00Z",
    "schema_version": "1.0.0",
    "samples": [
        {"kind": "gyroscope", "x": 0.1, "y": -0.2, "z": 0.0,
         "latitude": 42.28, "longitude": -83.74, "altitude": 260.0,
         "timestamp": 1706005800.02, "slot": 1}
    ]
}

Hazard record document:
{
    "record_id": "uuid",
    "hazard_types": ["ice", "stairs"],
    "intensities": [3, 0],
    "image_id": "",
    "batch_ids": ["uuid", "uuid"],
    "start_location": {"latitude": ..., "longitude": ..., "altitude": ...},
    "last_location": {...},
    "start_time": 1706005800.0,
    "building_id": "", "building_floor": "",
    "building_remarks": "", "building_hazard_location": "",
    "created_at": "2025-01-23T10:31:00Z",
    "schema_version": "1.0.0"
}

Schema Version: 1.0.0
"""

import uuid
import logging
from datetime import datetime
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Any, Optional, Tuple, Sequence
from enum import Enum

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0.0"

# Samples per batch: 30 sec @ 50 Hz * 2 sensors
DEFAULT_BATCH_SIZE = 3000


class SampleKind(str, Enum):
    """Kind of reading carried by a motion sample."""
    GYROSCOPE = "gyroscope"
    ACCELERATION = "acceleration"
    NONE = "none"


def generate_id() -> str:
    """Generate a client-side unique identifier for batches and records."""
    return str(uuid.uuid4())


def _utc_now() -> str:
    return datetime.utcnow().isoformat() + "Z"


@dataclass(frozen=True)
class Location:
    """GPS location triple."""
    latitude: float = 0.0
    longitude: float = 0.0
    altitude: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.latitude, self.longitude, self.altitude)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Location":
        return cls(
            latitude=float(data.get("latitude", 0.0)),
            longitude=float(data.get("longitude", 0.0)),
            altitude=float(data.get("altitude", 0.0)),
        )


ZERO_LOCATION = Location()


@dataclass(frozen=True)
class MotionSample:
    """A single gyroscope or accelerometer reading tagged with location."""
    kind: SampleKind
    x: float
    y: float
    z: float
    location: Location
    timestamp: float
    slot: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "x": self.x,
            "y": self.y,
            "z": self.z,
            "latitude": self.location.latitude,
            "longitude": self.location.longitude,
            "altitude": self.location.altitude,
            "timestamp": self.timestamp,
            "slot": self.slot,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MotionSample":
        return cls(
            kind=SampleKind(data.get("kind", SampleKind.NONE.value)),
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            z=float(data.get("z", 0.0)),
            location=Location.from_dict(data),
            timestamp=float(data.get("timestamp", 0.0)),
            slot=int(data.get("slot", 0)),
        )

    @classmethod
    def placeholder(cls, location: Location, timestamp: float) -> "MotionSample":
        """Null-type sample used by single-point hazard reports."""
        return cls(
            kind=SampleKind.NONE,
            x=0.0,
            y=0.0,
            z=0.0,
            location=location,
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class SampleBatch:
    """An ordered group of samples flushed together under one identifier."""
    batch_id: str
    samples: Tuple[MotionSample, ...] = ()
    created_at: str = field(default_factory=_utc_now)
    schema_version: str = SCHEMA_VERSION

    def __len__(self) -> int:
        return len(self.samples)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "created_at": self.created_at,
            "schema_version": self.schema_version,
            "samples": [s.to_dict() for s in self.samples],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SampleBatch":
        return cls(
            batch_id=data["batch_id"],
            samples=tuple(MotionSample.from_dict(s) for s in data.get("samples", [])),
            created_at=data.get("created_at", _utc_now()),
            schema_version=data.get("schema_version", SCHEMA_VERSION),
        )


@dataclass(frozen=True)
class BuildingInfo:
    """Optional indoor metadata attached to a hazard report."""
    building_id: str = ""
    floor: str = ""
    remarks: str = ""
    hazard_location: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildingInfo":
        return cls(
            building_id=str(data.get("building_id", "")),
            floor=str(data.get("building_floor", "")),
            remarks=str(data.get("building_remarks", "")),
            hazard_location=str(data.get("building_hazard_location", "")),
        )


@dataclass(frozen=True)
class HazardRecord:
    """Finalized hazard report referencing every batch of its session."""
    hazard_types: Tuple[str, ...]
    intensities: Tuple[int, ...]
    image_id: str
    batch_ids: Tuple[str, ...]
    start_location: Location
    last_location: Location
    start_time: float
    building: BuildingInfo = field(default_factory=BuildingInfo)
    record_id: str = field(default_factory=generate_id)
    created_at: str = field(default_factory=_utc_now)
    schema_version: str = SCHEMA_VERSION

    @classmethod
    def build(
        cls,
        hazards: Sequence[str],
        intensities: Sequence[int],
        image_id: str,
        batch_ids: Sequence[str],
        start_location: Location,
        last_location: Location,
        start_time: float,
        building: Optional[BuildingInfo] = None,
    ) -> "HazardRecord":
        """Create a record, validating hazard/intensity pairing.

        Raises:
            ValueError: If hazards and intensities differ in length
        """
        if len(hazards) != len(intensities):
            raise ValueError(
                f"hazards and intensities must have the same length "
                f"({len(hazards)} != {len(intensities)})"
            )
        return cls(
            hazard_types=tuple(str(h) for h in hazards),
            intensities=tuple(int(i) for i in intensities),
            image_id=image_id or "",
            batch_ids=tuple(batch_ids),
            start_location=start_location,
            last_location=last_location,
            start_time=start_time,
            building=building or BuildingInfo(),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "record_id": self.record_id,
            "hazard_types": list(self.hazard_types),
            "intensities": list(self.intensities),
            "image_id": self.image_id,
            "batch_ids": list(self.batch_ids),
            "start_location": self.start_location.to_dict(),
            "last_location": self.last_location.to_dict(),
            "start_time": self.start_time,
            "building_id": self.building.building_id,
            "building_floor": self.building.floor,
            "building_remarks": self.building.remarks,
            "building_hazard_location": self.building.hazard_location,
            "created_at": self.created_at,
            "schema_version": self.schema_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HazardRecord":
        """Create from dictionary."""
        return cls(
            hazard_types=tuple(data.get("hazard_types", [])),
            intensities=tuple(int(i) for i in data.get("intensities", [])),
            image_id=data.get("image_id", ""),
            batch_ids=tuple(data.get("batch_ids", [])),
            start_location=Location.from_dict(data.get("start_location", {})),
            last_location=Location.from_dict(data.get("last_location", {})),
            start_time=float(data.get("start_time", 0.0)),
            building=BuildingInfo.from_dict(data),
            record_id=data.get("record_id", generate_id()),
            created_at=data.get("created_at", _utc_now()),
            schema_version=data.get("schema_version", SCHEMA_VERSION),
        )

    def validate(self) -> List[str]:
        """Validate the record.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.batch_ids:
            errors.append("batch_ids must not be empty")

        if len(set(self.batch_ids)) != len(self.batch_ids):
            errors.append("batch_ids must be unique")

        if len(self.hazard_types) != len(self.intensities):
            errors.append("hazard_types and intensities must have the same length")

        return errors
