"""Middleware package for the edge gatekeeper and request logging."""

from .gatekeeper import EdgeGatekeeperMiddleware, is_protected_path
from .logging import RequestLoggingMiddleware, configure_request_logging

__all__ = [
    "EdgeGatekeeperMiddleware",
    "is_protected_path",
    "RequestLoggingMiddleware",
    "configure_request_logging",
]
