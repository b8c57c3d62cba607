"""Pydantic schemas for request/response validation."""

from cryptocadet.schemas.common import ErrorDetail, ErrorResponse, ErrorsEnvelope

__all__ = [
    "ErrorDetail",
    "ErrorResponse",
    "ErrorsEnvelope",
]
