import re
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from provisioning.schemas.server import ResultData

SSH_COMMAND = re.compile(r"^ssh [a-z0-9.\-_]+@[a-z0-9.\-]+", re.IGNORECASE)

ConnectionType = Literal["ssh", "vnc", "redirect"]


class VncConnection(BaseModel):
    websocket_url: str | None = Field(None, pattern=r"^wss://\S+$")
    host: str | None = None
    port: int | None = None
    username: str | None = None
    password: str | None = None

    @model_validator(mode="after")
    def validate_host_or_websocket(self) -> "VncConnection":
        if self.websocket_url is None and None in (self.host, self.port, self.password):
            raise ValueError("host, port and password are required without websocket_url")
        return self


class ConnectionResult(ResultData):
    type: ConnectionType
    command: str | None = None
    redirect_url: str | None = Field(None, pattern=r"^https?://\S+$")
    vnc_connection: VncConnection | None = None
    password: str | None = None
    expires_at: str | None = None

    @model_validator(mode="after")
    def validate_type_fields(self) -> "ConnectionResult":
        if self.type == "ssh":
            if not self.command or not SSH_COMMAND.match(self.command):
                raise ValueError("ssh connections require a command like 'ssh user@host'")
        if self.type == "vnc" and self.vnc_connection is None:
            raise ValueError("vnc connections require vnc_connection")
        if self.type == "redirect" and not self.redirect_url:
            raise ValueError("redirect connections require redirect_url")
        return self

    @classmethod
    def ssh(cls, command: str, message: str = "SSH command generated", **fields) -> "ConnectionResult":
        return cls(type="ssh", command=command, message=message, **fields)
