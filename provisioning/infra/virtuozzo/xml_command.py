"""
Envelope builders and local-name helpers for the Virtuozzo XML API.

Requests are ``<packet>`` documents declaring the ``xsi``/``ns2``/``ns3``/``ns4``
prefixes, with an optional ``<target>`` interface and a
``<data><interface><command>`` body. Responses are parsed namespace-aware and
addressed by local element name, so ``<ns1:message>`` and ``<message>`` match
alike.
"""

import base64
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Iterator

API_VERSION = "7.0.0"
DEFAULT_INTERFACE = "vzpenvm"
SYSTEM_REALM = "00000000-0000-0000-0000-000000000000"
DEFAULT_PLATFORM = "Linux"

ROOT_ATTRIBUTES = {
    "xmlns:xsi": "http://www.w3.org/2001/XMLSchema-instance",
    "xmlns:ns2": "http://www.swsoft.com/webservices/vzl/4.0.0/types",
    "xmlns:ns3": "http://www.swsoft.com/webservices/vzp/4.0.0/vzptypes",
    "xmlns:ns4": "http://www.swsoft.com/webservices/vza/4.0.0/vzatypes",
}

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'


def element(name: str, text: object = None, attributes: dict[str, str] | None = None) -> ET.Element:
    el = ET.Element(name, attributes or {})
    if text is not None:
        el.text = str(text)
    return el


def with_children(parent: ET.Element, children: Iterable[ET.Element]) -> ET.Element:
    parent.extend(children)
    return parent


def encode_secret(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


class XMLCommand:
    """Builds one request envelope per method call for a given interface."""

    def __init__(self, interface: str = DEFAULT_INTERFACE, version: str = API_VERSION) -> None:
        self.interface = interface
        self.version = version

    def build(self, body: ET.Element, target: bool = True) -> str:
        root = element("packet", attributes={**ROOT_ATTRIBUTES, "version": self.version})
        if target:
            root.append(element("target", self.interface))
        root.append(body)
        return XML_DECLARATION + ET.tostring(root, encoding="unicode")

    def command(self, name: str, children: Iterable[ET.Element] = ()) -> ET.Element:
        data = element("data")
        interface = ET.SubElement(data, self.interface)
        interface.append(with_children(element(name), children))
        return data

    # --- Element factories ---

    @staticmethod
    def os_element(image: str, platform: str = DEFAULT_PLATFORM) -> ET.Element:
        return with_children(
            element("os", attributes={"xsi:type": "ns2:osType"}),
            [element("name", image), element("platform", platform)],
        )

    @staticmethod
    def hard_disk_element(disk_size: int) -> ET.Element:
        return with_children(
            element("device", attributes={"xsi:type": "ns3:vm_hard_disk_device"}),
            [
                element("boot_sequence_index", 0),
                element("is_bootable"),
                element("enabled", 1),
                element("connected", 1),
                element("emulation_type", 1),
                element("disk_type", 1),
                element("size", disk_size),
            ],
        )

    @staticmethod
    def network_element(ip: str = "0.0.0.0") -> ET.Element:
        return with_children(
            element("device", attributes={"xsi:type": "ns3:vm_network_device"}),
            [
                element("enabled", 1),
                element("connected", 1),
                element("emulation_type", 1),
                element("default_gateway"),
                element("virtual_network_id"),
                with_children(element("ip_address"), [element("ip", ip)]),
            ],
        )

    # --- Commands ---

    @classmethod
    def login(cls, username: str, password: str) -> str:
        """Login envelope for the ``system`` interface; credentials are base64 encoded here."""
        command = cls("system")
        body = command.command(
            "login",
            [
                element("name", encode_secret(username)),
                element("realm", SYSTEM_REALM),
                element("password", encode_secret(password)),
            ],
        )
        first_local(body, "login").set("xsi:type", "ns2:auth_nameType")
        return command.build(body, target=False)

    def create_server(
        self,
        label: str,
        location: str,
        image: str,
        memory_size: int,
        cpu_count: int,
        disk_size: int,
        platform: str = DEFAULT_PLATFORM,
    ) -> str:
        device_list = with_children(
            element("device_list"), [self.hard_disk_element(disk_size), self.network_element()]
        )
        config = with_children(
            element("config"),
            [
                element("name", label),
                self.os_element(image, platform),
                element("memory_size", memory_size),
                device_list,
                element("cpu_count", cpu_count),
                element("home_path", location),
            ],
        )
        return self.build(self.command("create", [config]))

    def install_guest_tools(self, server_id: str) -> str:
        return self.build(self.command("install_tools", [element("eid", server_id)]))

    def server_info(self, server_id: str) -> str:
        return self.build(self.command("get_info", [element("eid", server_id), element("config")]))

    def set_root_password(self, server_id: str, password: str) -> str:
        return self.build(
            self.command(
                "set_user_password",
                [element("eid", server_id), element("user", "root"), element("password", encode_secret(password))],
            )
        )

    def set_server_config(
        self, server_id: str, memory_size: int, cpu_count: int, sys_name: str, disk_size: int, ip: str
    ) -> str:
        disk = self.hard_disk_element(disk_size)
        disk.extend([element("sys_name", sys_name), element("recreate"), element("is_boot_in_use"), element("resize_fs")])
        config = with_children(
            element("config"),
            [
                element("memory_size", memory_size),
                element("cpu_count", cpu_count),
                with_children(element("device_list"), [disk, self.network_element(ip)]),
            ],
        )
        return self.build(self.command("set", [element("eid", server_id), config]))

    def set_server_image(self, server_id: str, image: str, platform: str = DEFAULT_PLATFORM) -> str:
        config = with_children(element("config"), [self.os_element(image, platform)])
        return self.build(self.command("set", [element("eid", server_id), config]))

    def restart_server(self, server_id: str) -> str:
        return self.build(self.command("restart", [element("eid", server_id)]))

    def stop_server(self, server_id: str) -> str:
        return self.build(self.command("stop", [element("eid", server_id), element("force")]))

    def start_server(self, server_id: str) -> str:
        return self.build(self.command("start", [element("eid", server_id)]))

    def destroy_server(self, server_id: str) -> str:
        return self.build(self.command("destroy", [element("eid", server_id)]))


# --- Local-name addressing ---


def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].rsplit(":", 1)[-1]


def children_local(el: ET.Element, name: str) -> Iterator[ET.Element]:
    return (child for child in el if local_name(child.tag) == name)


def first_local(el: ET.Element, name: str) -> ET.Element | None:
    """First descendant (any depth) with local name ``name``."""
    return next((d for d in el.iter() if d is not el and local_name(d.tag) == name), None)


def find_local(el: ET.Element | None, *path: str) -> ET.Element | None:
    """Walk direct children by local name, e.g. ``find_local(env, "status", "state")``."""
    for name in path:
        if el is None:
            return None
        el = next(children_local(el, name), None)
    return el


def text_local(el: ET.Element | None, *path: str, default: str | None = None) -> str | None:
    found = find_local(el, *path)
    if found is None or found.text is None or found.text.strip() == "":
        return default
    return found.text.strip()


def iter_local(el: ET.Element, name: str) -> Iterator[ET.Element]:
    return (d for d in el.iter() if local_name(d.tag) == name)


def xsi_type(el: ET.Element) -> str | None:
    """Local part of an element's ``xsi:type`` attribute, whichever way it was parsed."""
    for key, value in el.attrib.items():
        if local_name(key) == "type":
            return value.rsplit(":", 1)[-1]
    return None
