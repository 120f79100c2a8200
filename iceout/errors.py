"""Domain exceptions raised by the core and mapped to HTTP responses in ``main``."""

from enum import Enum


class RejectionReason(str, Enum):
    OUT_OF_RANGE = "OUT_OF_RANGE"
    DUPLICATE_DEVICE = "DUPLICATE_DEVICE"
    GEOLOCATION_DENIED = "GEOLOCATION_DENIED"
    GEOLOCATION_TIMEOUT = "GEOLOCATION_TIMEOUT"


# User-facing text per reason; "too far" invites a retry, "already voted" does not
REJECTION_MESSAGES = {
    RejectionReason.OUT_OF_RANGE: "You must be within 500 meters to validate this sighting.",
    RejectionReason.DUPLICATE_DEVICE: "You have already validated this sighting from this device.",
    RejectionReason.GEOLOCATION_DENIED: "Location access was denied. Enable location to validate.",
    RejectionReason.GEOLOCATION_TIMEOUT: "Could not get your location in time. Please try again.",
}


class IceOutError(Exception):
    pass


class SightingNotFound(IceOutError):
    def __init__(self, sighting_id: str):
        super().__init__(f"Sighting not found: {sighting_id}")
        self.sighting_id = sighting_id


class ValidationNotFound(IceOutError):
    def __init__(self, validation_id: str):
        super().__init__(f"Validation not found: {validation_id}")
        self.validation_id = validation_id


class PrincipalNotFound(IceOutError):
    def __init__(self, principal_id: str):
        super().__init__(f"Principal not found: {principal_id}")
        self.principal_id = principal_id


class Forbidden(IceOutError):
    """Actor lacks the role for the attempted mutation. Message is always "Not permitted"."""

    def __init__(self):
        super().__init__("Not permitted")


class InvalidDeviceIdentifier(IceOutError):
    pass


class InvalidEmail(IceOutError):
    pass


class GeolocationError(IceOutError):
    def __init__(self, reason: RejectionReason, message: str = ""):
        super().__init__(message or REJECTION_MESSAGES[reason])
        self.reason = reason
