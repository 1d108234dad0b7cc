import logging
import xml.etree.ElementTree as ET

from provisioning.core.exceptions import ProviderApiError
from provisioning.core.utils import limit_text
from provisioning.infra.http import TransportConfig
from provisioning.infra.virtuozzo.records import VirtuozzoEnvironment
from provisioning.infra.virtuozzo.socket import SocketClient, parse_xml
from provisioning.infra.virtuozzo.xml_command import DEFAULT_INTERFACE, XMLCommand, find_local, text_local
from provisioning.schemas.configuration import VirtuozzoConfiguration

logger = logging.getLogger(__name__)

EMPTY_RESPONSE = "Empty provider api response"


class VirtuozzoClient:
    def __init__(self, configuration: VirtuozzoConfiguration, transport: TransportConfig) -> None:
        self._username = configuration.username
        self._password = configuration.password.get_secret_value()
        self._body_limit = transport.body_limit
        self._socket = SocketClient(
            configuration.hostname,
            configuration.port,
            connect_timeout=transport.connect_timeout,
            timeout=configuration.timeout or transport.timeout,
            body_limit=transport.body_limit,
            debug=transport.debug or configuration.debug,
        )

    async def aclose(self) -> None:
        """Connections are opened per call, so there is nothing to release."""

    async def request(self, command: str) -> tuple[ET.Element, ET.Element]:
        """Send one command envelope, returning the parsed packet and its ``data/<origin>`` payload."""
        response = await self._socket.request(XMLCommand.login(self._username, self._password), command)
        root = parse_xml(response, self._body_limit)

        origin = text_local(root, "origin", default=DEFAULT_INTERFACE)
        payload = find_local(root, "data", origin)
        debug = {"response_body": limit_text(response, self._body_limit)}

        error = find_local(payload, "error")
        if error is not None:
            raise ProviderApiError(
                text_local(error, "message", default="Unknown Provider API Error"),
                data={"origin": origin},
                debug=debug,
            )

        if payload is None or len(payload) == 0:
            raise ProviderApiError(EMPTY_RESPONSE, debug=debug)

        return root, payload

    async def create(
        self,
        *,
        label: str,
        location: str,
        image: str,
        memory_mb: int,
        cpu_cores: int,
        disk_mb: int,
        interface: str | None = None,
    ) -> str:
        command = XMLCommand(interface or DEFAULT_INTERFACE)
        _, payload = await self.request(
            command.create_server(label, location, image, memory_mb, cpu_cores, disk_mb)
        )
        eid = text_local(payload, "env", "eid")
        if not eid:
            raise ProviderApiError("Server creation failed", data={"label": label})
        return eid

    async def get_environment(self, server_id: str) -> VirtuozzoEnvironment:
        root, payload = await self.request(XMLCommand().server_info(server_id))
        env = find_local(payload, "env")
        if env is None:
            raise ProviderApiError(EMPTY_RESPONSE)
        return VirtuozzoEnvironment.from_element(env, text_local(root, "origin", default=DEFAULT_INTERFACE))

    async def install_guest_tools(self, server_id: str) -> None:
        await self.request(XMLCommand().install_guest_tools(server_id))

    async def change_password(self, server_id: str, password: str) -> None:
        await self.request(XMLCommand().set_root_password(server_id, password))

    async def set_config(
        self, server_id: str, *, memory_mb: int, cpu_cores: int, disk_mb: int, sys_name: str, ip: str
    ) -> None:
        await self.request(XMLCommand().set_server_config(server_id, memory_mb, cpu_cores, sys_name, disk_mb, ip))

    async def set_image(self, server_id: str, image: str) -> None:
        await self.request(XMLCommand().set_server_image(server_id, image))

    async def restart(self, server_id: str) -> None:
        await self.request(XMLCommand().restart_server(server_id))

    async def stop(self, server_id: str) -> None:
        await self.request(XMLCommand().stop_server(server_id))

    async def start(self, server_id: str) -> None:
        await self.request(XMLCommand().start_server(server_id))

    async def destroy(self, server_id: str) -> None:
        await self.request(XMLCommand().destroy_server(server_id))
