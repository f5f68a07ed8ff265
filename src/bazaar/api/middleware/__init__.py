"""HTTP middleware for the catalog API."""

from bazaar.api.middleware.correlation import CorrelationMiddleware

__all__ = ["CorrelationMiddleware"]
