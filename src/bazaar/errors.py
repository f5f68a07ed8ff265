"""Domain exceptions for the catalog query and cache layer.

Propagation policy:
- Query input problems are normalized, never raised.
- StoreUnavailable propagates to the caller as a service failure.
- CacheUnavailable never leaves the cache wrapper.
"""

from __future__ import annotations


class BazaarError(Exception):
    """Base class for catalog errors."""

    code = "InternalServerError"

    def __init__(self, text: str):
        self.text = text
        super().__init__(text)


class ValidationError(BazaarError):
    """Rejected mutation input (reviews, patches)."""

    code = "BadRequest"


class NotFoundError(BazaarError):
    """Unknown record identifier."""

    code = "NotFound"

    def __init__(self, resource_type: str, identifier: str):
        self.resource_type = resource_type
        self.identifier = identifier
        super().__init__(f"{resource_type} with identifier '{identifier}' not found")


class ConflictError(BazaarError):
    """Mutation conflicts with existing state."""

    code = "Conflict"


class StoreUnavailable(BazaarError):
    """Catalog store unreachable or timed out."""

    code = "ServiceUnavailable"


class CacheUnavailable(BazaarError):
    """Cache store unreachable. Raised and handled inside the cache wrapper."""

    code = "CacheUnavailable"
