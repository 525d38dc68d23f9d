"""API middleware package."""

from src.notetaker.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
