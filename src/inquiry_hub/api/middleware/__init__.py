"""API middleware package."""

from src.inquiry_hub.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
