import ipaddress
from dataclasses import dataclass, field
from typing import Any


@dataclass
class OnAppVirtualMachine:
    identifier: str
    label: str | None
    hostname: str | None
    booted: bool
    locked: bool
    memory: int | None
    cpus: int | None
    template_label: str | None
    hypervisor_id: int | None
    hypervisor_type: str | None
    ip_addresses: list[str]
    initial_root_password: str | None
    created_at: str | None
    updated_at: str | None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "OnAppVirtualMachine":
        return cls(
            identifier=str(payload.get("identifier") or "Unknown"),
            label=payload.get("label"),
            hostname=payload.get("hostname"),
            booted=bool(payload.get("booted")),
            locked=bool(payload.get("locked")),
            memory=payload.get("memory"),
            cpus=payload.get("cpus"),
            template_label=payload.get("template_label"),
            hypervisor_id=payload.get("hypervisor_id"),
            hypervisor_type=payload.get("hypervisor_type"),
            ip_addresses=[
                ip["ip_address"]["address"]
                for ip in payload.get("ip_addresses") or []
                if (ip.get("ip_address") or {}).get("address")
            ],
            initial_root_password=payload.get("initial_root_password"),
            created_at=payload.get("created_at"),
            updated_at=payload.get("updated_at"),
            raw=payload,
        )

    @property
    def state(self) -> str:
        if self.locked:
            return "Locked"
        return "On" if self.booted else "Off"

    @property
    def primary_ip(self) -> str | None:
        """The only address, else the first public IPv4."""
        if len(self.ip_addresses) == 1:
            return self.ip_addresses[0]

        for address in self.ip_addresses:
            try:
                ip = ipaddress.ip_address(address)
            except ValueError:
                continue
            if ip.version == 4 and ip.is_global:
                return address
        return None


@dataclass
class OnAppDisk:
    id: int
    disk_size: int | None
    primary: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "OnAppDisk":
        return cls(id=int(payload["id"]), disk_size=payload.get("disk_size"), primary=bool(payload.get("primary")))


@dataclass
class OnAppTemplate:
    id: int
    label: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "OnAppTemplate":
        return cls(id=int(payload["id"]), label=payload.get("label") or "")


@dataclass
class OnAppLocationGroup:
    id: int
    city: str | None
    country: str | None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "OnAppLocationGroup":
        return cls(id=int(payload["id"]), city=payload.get("city"), country=payload.get("country"))

    @property
    def name(self) -> str:
        return f"{self.country} ({self.city})"
