"""Vendor credential/configuration models, validated before a provider is built."""

from typing import Literal

from pydantic import BaseModel, Field, SecretStr, model_validator

HOSTNAME_PATTERN = r"^([A-Za-z0-9]([A-Za-z0-9\-]{0,61}[A-Za-z0-9])?\.)*[A-Za-z0-9]([A-Za-z0-9\-]{0,61}[A-Za-z0-9])?$"

SOLUSVM_VIRTUALIZATION_TYPES = ("openvz", "xen", "xen hvm", "kvm")


class ProviderConfiguration(BaseModel):
    model_config = {"extra": "ignore"}

    debug: bool = Field(False, description="Log vendor API requests and responses")


class LinodeConfiguration(ProviderConfiguration):
    access_token: SecretStr


class OnAppConfiguration(ProviderConfiguration):
    hostname: str = Field(..., pattern=HOSTNAME_PATTERN)
    username: str = Field(..., min_length=1)
    password: SecretStr
    timeout: int | None = Field(None, ge=1, le=180)


class SolusVMConfiguration(ProviderConfiguration):
    hostname: str = Field(..., pattern=HOSTNAME_PATTERN)
    port: int | None = Field(None, ge=1, le=65535)
    api_id: str = Field(..., min_length=1)
    api_key: SecretStr
    location_type: Literal["node", "node_group"]
    default_virtualization_type: Literal["openvz", "xen", "xen hvm", "kvm"] | None = None
    single_server_owner: bool = False
    server_owner_username: str | None = None

    @model_validator(mode="after")
    def validate_server_owner(self) -> "SolusVMConfiguration":
        if self.single_server_owner and not self.server_owner_username:
            raise ValueError("server_owner_username is required when single_server_owner is set")
        return self


class VirtFusionConfiguration(ProviderConfiguration):
    hostname: str = Field(..., pattern=HOSTNAME_PATTERN)
    api_token: SecretStr
    hypervisor_id: int
    timeout: int | None = Field(None, ge=1, le=180)


class VirtualizorConfiguration(ProviderConfiguration):
    hostname: str = Field(..., pattern=HOSTNAME_PATTERN)
    port: int | None = Field(None, ge=1, le=65535)
    api_key: SecretStr
    api_password: SecretStr
    location_type: Literal["server", "server_group", "geographic"]
    default_virtualization_type: (
        Literal[
            "kvm", "xen", "xenhvm", "xcp", "xcphvm", "openvz", "lxc", "vzo", "vzk", "proxo", "proxk", "proxl"
        ]
        | None
    ) = None
    ignore_ssl_errors: bool = False


class VirtuozzoConfiguration(ProviderConfiguration):
    hostname: str = Field(..., pattern=HOSTNAME_PATTERN)
    port: int = Field(4433, ge=1, le=65535)
    username: str = Field(..., min_length=1)
    password: SecretStr
    timeout: int | None = Field(None, ge=1, le=1800)
