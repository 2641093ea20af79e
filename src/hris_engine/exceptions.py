"""Error taxonomy shared by the attendance and payroll services.

Every failure the engine reports is one of these types. The API layer maps
them to HTTP responses; nothing here is ever coerced to a zero or default
value.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class RejectionReason(str, Enum):
    """Why a clock event was refused."""

    DUPLICATE_OPEN_FACT = "DuplicateOpenFact"
    NO_ACTIVE_ASSIGNMENT = "NoActiveAssignment"
    OUTSIDE_GEOFENCE = "OutsideGeofence"
    NO_OPEN_FACT = "NoOpenFact"


class HRISError(Exception):
    """Base class for engine errors."""

    code = "HRIS_ERROR"

    def __init__(self, message: str, reason: RejectionReason | None = None):
        self.message = message
        self.reason = reason
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        """Structured fields included in error responses."""
        data: dict[str, Any] = {}
        if self.reason is not None:
            data["reason"] = self.reason.value
        return data


class ValidationError(HRISError):
    """Malformed or out-of-range input."""

    code = "VALIDATION_ERROR"


class StateConflictError(HRISError):
    """Operation conflicts with the current persisted state."""

    code = "STATE_CONFLICT"


class GeofenceRejection(HRISError):
    """Clock event location is outside every assigned site radius."""

    code = "OUTSIDE_GEOFENCE"

    def __init__(self, distance_meters: float, nearest_site_id: int | None = None):
        self.distance_meters = distance_meters
        self.nearest_site_id = nearest_site_id
        super().__init__(
            f"Location is {distance_meters:.1f} m from the nearest assigned site",
            reason=RejectionReason.OUTSIDE_GEOFENCE,
        )

    def details(self) -> dict[str, Any]:
        data = super().details()
        data["distance_meters"] = round(self.distance_meters, 1)
        data["nearest_site_id"] = self.nearest_site_id
        return data


class ConfigurationError(HRISError):
    """Bracket table or settings are malformed."""

    code = "CONFIGURATION_ERROR"


class NotFoundError(HRISError):
    """Referenced entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")

    def details(self) -> dict[str, Any]:
        return {"entity": self.entity, "id": self.entity_id}
