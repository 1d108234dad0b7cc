from typing import Any

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    code: str
    message: str
    status: int | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    debug: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    error: ErrorDetail


class ProvisionRequest(BaseModel):
    """Envelope for a dispatched provider operation."""

    configuration: dict[str, Any] = Field(..., description="Vendor credentials/settings")
    params: dict[str, Any] = Field(default_factory=dict, description="Operation parameters")


class ProviderAbout(BaseModel):
    key: str = ""
    name: str
    description: str
    logo_url: str | None = None
