import ipaddress
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

LABEL_PATTERN = r"^[A-Za-z0-9_.\-]+$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$"


class ResourceSpec(BaseModel):
    """Either a named size or an explicit memory/cpu/disk triplet."""

    size: str | None = Field(None, min_length=1, description="Server specs/size name or id")
    memory_mb: int | None = Field(None, ge=0)
    cpu_cores: int | None = Field(None, ge=0)
    disk_mb: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def validate_size_or_resources(self) -> "ResourceSpec":
        if self.size is None and not self.has_resources():
            raise ValueError("size is required when memory_mb, cpu_cores and disk_mb are not all given")
        return self

    def has_resources(self) -> bool:
        return None not in (self.memory_mb, self.cpu_cores, self.disk_mb)


class CreateParams(ResourceSpec):
    customer_identifier: str | int | None = None
    customer_name: str | None = None
    email: str = Field(..., pattern=EMAIL_PATTERN)
    label: str = Field(..., min_length=1, max_length=255, pattern=LABEL_PATTERN)
    location: str = Field(..., min_length=1, description="Server dc/location/region name or id")
    image: str = Field(..., min_length=1, description="Image name or id")
    root_password: str | None = None
    virtualization_type: str | None = None
    software: list[str] | None = None
    licenses: list[str] | None = None
    metadata: dict[str, Any] | None = None


class ServerIdentifierParams(BaseModel):
    instance_id: str = Field(..., min_length=1)


class ChangeRootPasswordParams(ServerIdentifierParams):
    root_password: str = Field(..., min_length=1)


class ReinstallParams(ServerIdentifierParams):
    image: str = Field(..., min_length=1)
    root_password: str | None = None


class ResizeParams(ServerIdentifierParams, ResourceSpec):
    resize_running: bool = Field(False, description="Allow resizing a running server")


class ResultData(BaseModel):
    """Envelope shared by every operation result."""

    message: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    debug: dict[str, Any] = Field(default_factory=dict, exclude=True)


class EmptyResult(ResultData):
    pass


class ServerInfoResult(ResultData):
    instance_id: str
    state: str
    label: str
    hostname: str | None = None
    ip_address: str | None = None
    image: str
    size: str | None = None
    memory_mb: int | None = None
    cpu_cores: int | None = None
    disk_mb: int | None = None
    location: str
    node: str | None = None
    virtualization_type: str | None = None
    customer_identifier: str | int | None = None
    created_at: str | None = Field(None, pattern=DATE_PATTERN)
    updated_at: str | None = Field(None, pattern=DATE_PATTERN)
    suspended: bool | None = None

    @field_validator("ip_address")
    @classmethod
    def validate_ip_address(cls, value: str | None) -> str | None:
        if value is not None:
            ipaddress.ip_address(value)
        return value

    @model_validator(mode="after")
    def validate_size_or_resources(self) -> "ServerInfoResult":
        if self.size is None and None in (self.memory_mb, self.cpu_cores, self.disk_mb):
            raise ValueError("size or memory_mb, cpu_cores and disk_mb are required")
        return self

    def with_message(self, message: str, **changes: Any) -> "ServerInfoResult":
        return self.model_copy(update={"message": message, **changes})
