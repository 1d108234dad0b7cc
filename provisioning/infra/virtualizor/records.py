import json
from dataclasses import dataclass, field
from typing import Any

from provisioning.core.utils import is_numeric

STATUS_NAMES = {0: "Off", 1: "On", 2: "Suspended"}


def status_name(status: Any) -> str:
    """Translate a Virtualizor numeric status into ``Off``/``On``/``Suspended``."""
    if not is_numeric(status):
        return "Unknown"
    return STATUS_NAMES.get(int(float(status)), "Unknown")


def location_name(location_json: str | None) -> str:
    """Render a host server's location JSON as ``city, state, country_code``."""
    if not location_json:
        return "Unknown"

    try:
        data = json.loads(location_json)
    except ValueError:
        # already a formatted string
        return location_json
    if not isinstance(data, dict):
        return location_json

    parts = [data.get("city"), data.get("state"), data.get("country_code")]
    return ", ".join(str(p) for p in parts if p) or "Unknown"


@dataclass
class VirtualizorVps:
    vpsid: str
    vps_name: str | None
    hostname: str | None
    virt: str | None
    plid: str | None
    serid: str | None
    os_name: str | None
    status: Any
    ips: list[str]
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VirtualizorVps":
        ips = payload.get("ips") or []
        if isinstance(ips, dict):
            ips = list(ips.values())
        return cls(
            vpsid=str(payload.get("vpsid")),
            vps_name=payload.get("vps_name"),
            hostname=payload.get("hostname"),
            virt=payload.get("virt"),
            plid=None if payload.get("plid") is None else str(payload["plid"]),
            serid=None if payload.get("serid") is None else str(payload["serid"]),
            os_name=payload.get("os_name"),
            status=(payload.get("stats") or {}).get("status"),
            ips=[str(ip) for ip in ips],
            raw=payload,
        )

    @property
    def label(self) -> str:
        return f"{self.hostname} [{self.vps_name}]"

    @property
    def state(self) -> str:
        return status_name(self.status)


@dataclass
class VirtualizorPlan:
    plid: str
    plan_name: str
    virt: str | None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VirtualizorPlan":
        return cls(
            plid=str(payload.get("plid")),
            plan_name=str(payload.get("plan_name") or ""),
            virt=payload.get("virt"),
        )


@dataclass
class VirtualizorServer:
    serid: str
    server_name: str
    location: str | None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VirtualizorServer":
        return cls(
            serid=str(payload.get("serid")),
            server_name=str(payload.get("server_name") or ""),
            location=payload.get("location"),
        )

    @property
    def location_name(self) -> str:
        return location_name(self.location)


@dataclass
class VirtualizorServerGroup:
    sgid: str
    sg_name: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VirtualizorServerGroup":
        return cls(sgid=str(payload.get("sgid")), sg_name=str(payload.get("sg_name") or ""))


@dataclass
class VirtualizorOsTemplate:
    osid: str
    name: str
    type: str | None

    @classmethod
    def from_payload(cls, osid: str, payload: dict[str, Any]) -> "VirtualizorOsTemplate":
        return cls(osid=str(osid), name=str(payload.get("name") or ""), type=payload.get("type"))


@dataclass
class VirtualizorVnc:
    ip: str
    port: int
    password: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VirtualizorVnc":
        return cls(ip=str(payload["ip"]), port=int(payload["port"]), password=str(payload["password"]))
