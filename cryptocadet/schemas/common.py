"""Common Pydantic schemas used across the API."""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class ErrorResponse(BaseSchema):
    """Error response schema."""

    error: str
    message: str | None = None


class ErrorDetail(BaseSchema):
    """One entry of the payments-app error envelope."""

    message: str
    code: str
    details: str | None = None


class ErrorsEnvelope(BaseSchema):
    """Payments-app error envelope: ``{"errors": [...]}``."""

    errors: list[ErrorDetail]
