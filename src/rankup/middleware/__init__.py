# src/rankup/middleware/__init__.py

"""HTTP middleware for the RankUp API."""

from .logging import REQUEST_ID_HEADER, RequestLoggingMiddleware

__all__ = ["REQUEST_ID_HEADER", "RequestLoggingMiddleware"]
