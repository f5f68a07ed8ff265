"""API routers."""

from bazaar.api.routers import agents, cache, health, metrics

__all__ = ["agents", "cache", "health", "metrics"]
