from dataclasses import dataclass, field
from typing import Any


@dataclass
class LinodeInstance:
    id: int
    label: str
    status: str
    region: str
    type: str | None
    image: str | None
    ipv4: list[str]
    hypervisor: str | None
    created: str | None
    updated: str | None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    RUNNING = "running"
    OFFLINE = "offline"

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "LinodeInstance":
        return cls(
            id=int(payload["id"]),
            label=payload.get("label") or "",
            status=payload.get("status") or "unknown",
            region=payload.get("region") or "",
            type=payload.get("type"),
            image=payload.get("image"),
            ipv4=list(payload.get("ipv4") or []),
            hypervisor=payload.get("hypervisor"),
            created=payload.get("created"),
            updated=payload.get("updated"),
            raw=payload,
        )


@dataclass
class LinodeImage:
    id: str
    label: str
    vendor: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "LinodeImage":
        return cls(id=payload["id"], label=payload.get("label") or "", vendor=payload.get("vendor"))


@dataclass
class LinodeType:
    id: str
    label: str
    memory: int | None = None
    vcpus: int | None = None
    disk: int | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "LinodeType":
        return cls(
            id=payload["id"],
            label=payload.get("label") or "",
            memory=payload.get("memory"),
            vcpus=payload.get("vcpus"),
            disk=payload.get("disk"),
        )


@dataclass
class LinodeRegion:
    id: str
    country: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "LinodeRegion":
        return cls(id=payload["id"], country=payload.get("country"))


@dataclass
class LinodeDisk:
    id: int
    label: str
    filesystem: str

    SWAP = "swap"

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "LinodeDisk":
        return cls(
            id=int(payload["id"]),
            label=payload.get("label") or "",
            filesystem=payload.get("filesystem") or "",
        )
