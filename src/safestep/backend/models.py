"""Request and status models for the SafeStep API."""

from dataclasses import dataclass, asdict, field
from typing import Dict, List, Optional, Any

from ..data_manager.protocol import BuildingInfo


@dataclass
class SystemStatus:
    """System status information."""
    status: str
    sensors: Dict[str, Any] = field(default_factory=dict)
    session: Dict[str, Any] = field(default_factory=dict)
    uploads: Dict[str, Any] = field(default_factory=dict)
    walking_detection: Dict[str, Any] = field(default_factory=dict)
    uptime: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


@dataclass
class FinalizeRequest:
    """Body of POST /api/session/finalize."""
    hazards: List[str]
    intensities: List[int]
    image_id: str = ""
    building: Optional[BuildingInfo] = None
    single_point_report: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FinalizeRequest':
        """Parse a request body.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError("Request body must be a JSON object")

        hazards = data.get('hazards')
        intensities = data.get('intensities')
        if not isinstance(hazards, list) or not isinstance(intensities, list):
            raise ValueError("'hazards' and 'intensities' must be lists")

        try:
            intensities = [int(i) for i in intensities]
        except (TypeError, ValueError):
            raise ValueError("'intensities' must be integers")

        building = None
        if any(data.get(key) for key in ('building_id', 'building_floor', 'building_remarks', 'building_hazard_location')):
            building = BuildingInfo.from_dict(data)

        return cls(
            hazards=[str(h) for h in hazards],
            intensities=intensities,
            image_id=str(data.get('image_id') or ''),
            building=building,
            single_point_report=bool(data.get('single_point_report', False)),
        )
