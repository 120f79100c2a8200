"""Privacy-preserving device identity.

Each browser keeps one random token it generated on first use. The server
never stores that token: it stores ``HMAC-SHA256(secret, token)`` instead,
so the persisted fingerprint is stable for the device across sightings and
sessions but cannot be linked back to the token (or to a person) without
the server secret.
"""

import hashlib
import hmac
import uuid

from .errors import InvalidDeviceIdentifier

MIN_IDENTIFIER_LEN = 16
MAX_IDENTIFIER_LEN = 256


def new_device_token() -> str:
    """Fresh token for a client that has none persisted yet."""
    return uuid.uuid4().hex + uuid.uuid4().hex


def check_identifier_length(value: str) -> str:
    if not isinstance(value, str):
        raise InvalidDeviceIdentifier("Device identifier must be a string")
    value = value.strip()
    if not (MIN_IDENTIFIER_LEN <= len(value) <= MAX_IDENTIFIER_LEN):
        raise InvalidDeviceIdentifier(
            f"Device identifier must be {MIN_IDENTIFIER_LEN}-{MAX_IDENTIFIER_LEN} characters"
        )
    return value


class DeviceIdentityProvider:
    def __init__(self, secret: str):
        if not secret:
            raise ValueError("device identity secret must not be empty")
        self._key = secret.encode("utf-8")

    def fingerprint(self, device_token: str) -> str:
        token = check_identifier_length(device_token)
        digest = hmac.new(self._key, token.encode("utf-8"), hashlib.sha256).hexdigest()
        # 64 hex chars, always inside the stored fingerprint bounds
        return check_identifier_length(digest)
