import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Callable, Tuple

from .errors import GeolocationError, RejectionReason

logger = logging.getLogger("iceout.geolocation")

DEFAULT_TIMEOUT_S = 10.0

Locator = Callable[[], Tuple[float, float]]


def acquire_position(locator: Locator, timeout_s: float = DEFAULT_TIMEOUT_S) -> Tuple[float, float]:
    """Run a blocking ``locator`` and return its ``(lat, lng)``.

    Raises ``GeolocationError`` with ``GEOLOCATION_TIMEOUT`` when the locator
    does not answer within ``timeout_s`` and ``GEOLOCATION_DENIED`` when it
    raises ``PermissionError``. The worker thread is abandoned, not killed,
    on timeout.
    """
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="geolocate")
    try:
        future = pool.submit(locator)
        try:
            lat, lng = future.result(timeout=timeout_s)
        except FutureTimeout:
            logger.info("Geolocation timed out after %.1fs", timeout_s)
            raise GeolocationError(RejectionReason.GEOLOCATION_TIMEOUT) from None
        except PermissionError as exc:
            logger.info("Geolocation denied")
            raise GeolocationError(RejectionReason.GEOLOCATION_DENIED) from exc
    finally:
        pool.shutdown(wait=False)
    return float(lat), float(lng)


def reason_from_client_error(code: str) -> RejectionReason:
    """Map a browser-reported failure ("denied" / "timeout") to a rejection reason."""
    if code == "denied":
        return RejectionReason.GEOLOCATION_DENIED
    if code == "timeout":
        return RejectionReason.GEOLOCATION_TIMEOUT
    raise ValueError(f"Unknown geolocation error: {code}")
