import xml.etree.ElementTree as ET
from dataclasses import dataclass

from provisioning.infra.virtuozzo.xml_command import find_local, iter_local, text_local, xsi_type

UNSET_IP = "0.0.0.0"

STATES = (
    "unknown",
    "non-existent",
    "config",
    "down",
    "mounted",
    "suspended",
    "running",
    "repairing",
    "license violation",
)


def state_name(code: object) -> str:
    """Translate a numeric environment state; undefined codes are ``unknown``."""
    try:
        index = int(str(code).strip())
    except (TypeError, ValueError):
        return STATES[0]
    return STATES[index] if 0 <= index < len(STATES) else STATES[0]


@dataclass
class VirtuozzoEnvironment:
    eid: str
    state: str
    name: str | None
    ip_address: str | None
    hostname: str | None
    os_name: str | None
    memory_mb: int
    cpu_count: int
    disk_size: int
    home_path: str | None
    sys_name: str | None
    interface: str

    RUNNING = "running"
    DOWN = "down"

    @classmethod
    def from_element(cls, env: ET.Element, interface: str) -> "VirtuozzoEnvironment":
        config = find_local(env, "virtual_config")
        if config is None:
            config = find_local(env, "config")

        disk = None
        ip = text_local(config, "address", "ip")
        if ip == UNSET_IP:
            ip = None
        for device in iter_local(config, "device") if config is not None else ():
            kind = xsi_type(device) or ""
            if disk is None and kind.endswith("hard_disk_device"):
                disk = device
            if ip is None and kind.endswith("network_device"):
                ip = text_local(device, "ip_address", "ip")
                if ip == UNSET_IP:
                    ip = None

        os_name = text_local(config, "os", "name") or text_local(config, "os_template", "name")

        return cls(
            eid=text_local(env, "eid", default="") or "",
            state=state_name(text_local(env, "status", "state", default="0")),
            name=text_local(config, "name"),
            ip_address=ip,
            hostname=text_local(config, "hostname"),
            os_name=os_name,
            memory_mb=int(text_local(config, "memory_size", default="0")),
            cpu_count=int(text_local(config, "cpu_count", default="0")),
            disk_size=int(text_local(disk, "size", default="0")),
            home_path=text_local(config, "home_path"),
            sys_name=text_local(disk, "sys_name"),
            interface=interface,
        )
