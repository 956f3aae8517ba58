"""
KYB API middleware
==================
Request logging with Correlation ID (X-Request-ID)
"""
from .logging_middleware import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
