from dataclasses import dataclass, field
from typing import Any


@dataclass
class VirtFusionOwner:
    id: int | None
    admin: bool
    ext_relation_id: int | None

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "VirtFusionOwner":
        payload = payload or {}
        ext_relation_id = payload.get("extRelationId")
        return cls(
            id=payload.get("id"),
            admin=bool(payload.get("admin")),
            ext_relation_id=int(ext_relation_id) if ext_relation_id else None,
        )


@dataclass
class VirtFusionServer:
    id: int
    name: str | None
    hostname: str | None
    state: str
    suspended: bool
    owner_id: int | None
    owner: VirtFusionOwner
    ip_address: str | None
    os_template_install_id: int | None
    memory: int | None
    cpu_cores: int | None
    storage: int | None
    hypervisor_name: str | None
    virtualization_type: str | None
    created: str | None
    updated: str | None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VirtFusionServer":
        settings = payload.get("settings") or {}
        resources = settings.get("resources") or {}
        remote_state = payload.get("remoteState") or {}

        return cls(
            id=int(payload["id"]),
            name=payload.get("name"),
            hostname=payload.get("hostname"),
            state=str(remote_state.get("state") or payload.get("state") or "unknown"),
            suspended=bool(payload.get("suspended")),
            owner_id=payload.get("ownerId"),
            owner=VirtFusionOwner.from_payload(payload.get("owner")),
            ip_address=_primary_ipv4((payload.get("network") or {}).get("interfaces") or []),
            os_template_install_id=settings.get("osTemplateInstallId"),
            memory=resources.get("memory"),
            cpu_cores=resources.get("cpuCores"),
            storage=resources.get("storage"),
            hypervisor_name=(payload.get("hypervisor") or {}).get("name"),
            virtualization_type=(settings.get("hyperv") or {}).get("vendorIdValue"),
            created=payload.get("created"),
            updated=payload.get("updated"),
            raw=payload,
        )


def _primary_ipv4(interfaces: list[dict[str, Any]]) -> str | None:
    """First address of the first interface, enabled entries sorted first."""
    if not interfaces:
        return None
    interface = sorted(interfaces, key=lambda i: not i.get("enabled"))[0]
    addresses = sorted(interface.get("ipv4") or [], key=lambda a: not a.get("enabled"))
    return addresses[0].get("address") if addresses else None


@dataclass
class VirtFusionTemplate:
    id: int
    name: str
    version: str
    variant: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VirtFusionTemplate":
        return cls(
            id=int(payload["id"]),
            name=str(payload.get("name") or ""),
            version=str(payload.get("version") or ""),
            variant=str(payload.get("variant") or ""),
        )

    @property
    def label(self) -> str:
        return f"{self.name} {self.version} {self.variant}"

    @property
    def labels(self) -> tuple[str, ...]:
        return (str(self.id), f"{self.name} {self.version}", self.label)


@dataclass
class VirtFusionPackage:
    id: int
    name: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VirtFusionPackage":
        return cls(id=int(payload["id"]), name=str(payload.get("name") or ""))


@dataclass
class VirtFusionVnc:
    ip: str | None
    hostname: str | None
    port: int
    password: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VirtFusionVnc":
        return cls(
            ip=payload.get("ip"),
            hostname=payload.get("hostname"),
            port=int(payload["port"]),
            password=str(payload["password"]),
        )
