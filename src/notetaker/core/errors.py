"""Error taxonomy shared by the bot adapters, scheduler and content pipeline.

API endpoints translate these into HTTP status codes; background loops log
them per item and move on.
"""

from __future__ import annotations

import httpx

from src.notetaker.core.monitoring import record_vendor_response


class NotetakerError(Exception):
    """Base class for all domain errors."""


class ConfigurationError(NotetakerError):
    """A required credential or setting is missing.

    Raised lazily on first use of the component that needs it, never at
    import or construction time.
    """


class VendorError(NotetakerError):
    """A bot vendor or social platform answered with a non-2xx response."""

    def __init__(self, vendor: str, status_code: int, body: str = "") -> None:
        self.vendor = vendor
        self.status_code = status_code
        self.body = body
        super().__init__(f"{vendor} returned HTTP {status_code}: {body[:500]}")


class NotFoundError(NotetakerError):
    """The referenced event, post or settings row does not exist."""


class AuthorizationError(NotetakerError):
    """The caller does not own the referenced resource."""


class InvalidStateError(NotetakerError):
    """The resource exists but is not in a state that allows the operation."""


def raise_for_vendor_status(vendor: str, response: httpx.Response) -> None:
    """Raise VendorError for any non-2xx response."""
    record_vendor_response(vendor, response.status_code)
    if response.is_success:
        return
    raise VendorError(vendor, response.status_code, response.text)
