from dataclasses import dataclass, field
from typing import Any

NONE_SENTINEL = "--none--"


def parse_pipe_list(csv: str) -> dict[str, str]:
    """Split SolusVM ``id|label,id|label`` strings into an ordered ``{id: label}`` map.

    The ``--none--`` placeholder and blank entries are dropped; an entry without
    a label maps to its own id.
    """
    entries: dict[str, str] = {}
    for entry in csv.split(","):
        entry = entry.strip()
        if not entry or entry == NONE_SENTINEL:
            continue
        key, _, label = entry.partition("|")
        entries[key] = label or key
    return entries


@dataclass
class SolusVMServer:
    vserverid: str
    state: str
    hostname: str
    ipaddress: str | None
    template: str | None
    type: str | None
    node: str | None
    cpus: str | None
    memory: str | None
    hdd: str | None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    ONLINE = "online"
    OFFLINE = "offline"

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SolusVMServer":
        def text(key: str) -> str | None:
            value = payload.get(key)
            return None if value in (None, "") else str(value)

        return cls(
            vserverid=str(payload.get("vserverid") or ""),
            state=text("state") or "unknown",
            hostname=text("hostname") or "",
            ipaddress=text("ipaddress") or text("mainipaddress"),
            template=text("template"),
            type=text("type"),
            node=text("node"),
            cpus=text("cpus"),
            memory=text("memory"),
            hdd=text("hdd"),
            raw=payload,
        )


@dataclass
class SolusVMPlan:
    id: str
    name: str
    cpus: str | None
    ram: str | None
    disk: str | None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SolusVMPlan":
        def text(key: str) -> str | None:
            value = payload.get(key)
            return None if value is None else str(value)

        return cls(
            id=str(payload.get("id")),
            name=str(payload.get("name") or ""),
            cpus=text("cpus"),
            ram=text("ram"),
            disk=text("disk"),
        )

    def matches_specs(self, cpus: str | None, ram: str | None, disk: str | None) -> bool:
        return (self.cpus, self.ram, self.disk) == (cpus, ram, disk)


@dataclass
class SolusVMNode:
    id: str
    name: str | None
    city: str | None
    country: str | None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SolusVMNode":
        return cls(
            id=str(payload.get("id") or ""),
            name=payload.get("name"),
            city=payload.get("city") or None,
            country=payload.get("country") or None,
        )

    @property
    def location(self) -> str | None:
        if self.city and self.country:
            return f"{self.city}, {self.country}"
        return self.country or self.city


@dataclass
class SolusVMConsoleSession:
    username: str
    ip: str
    port: str
    password: str | None
    sessionexpire: int
    created: str | None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SolusVMConsoleSession":
        return cls(
            username=str(payload.get("consoleusername") or ""),
            ip=str(payload.get("consoleip") or ""),
            port=str(payload.get("consoleport") or ""),
            password=payload.get("consolepassword"),
            sessionexpire=int(payload.get("sessionexpire") or 0),
            created=payload.get("created"),
        )

    @property
    def is_new(self) -> bool:
        return self.created == "success"
