"""
Service boundary for SRP Tracker.

Provides structured-result access to the request lifecycle.
"""

from .api import OperationResult, RequestDetail, SrpService, build_service

__all__ = ["OperationResult", "RequestDetail", "SrpService", "build_service"]
