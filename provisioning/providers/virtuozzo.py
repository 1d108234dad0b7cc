import logging

from provisioning.core.exceptions import NotFoundError, OperationRejectedError, ProviderApiError
from provisioning.infra.http import TransportConfig
from provisioning.infra.virtuozzo.client import EMPTY_RESPONSE, VirtuozzoClient
from provisioning.infra.virtuozzo.records import VirtuozzoEnvironment
from provisioning.infra.virtuozzo.xml_command import DEFAULT_PLATFORM
from provisioning.providers.base import ServerProvider, ensure_resizable, provider_operation
from provisioning.schemas.common import ProviderAbout
from provisioning.schemas.configuration import VirtuozzoConfiguration
from provisioning.schemas.connection import ConnectionResult
from provisioning.schemas.server import (
    ChangeRootPasswordParams,
    CreateParams,
    EmptyResult,
    ReinstallParams,
    ResizeParams,
    ResourceSpec,
    ServerIdentifierParams,
    ServerInfoResult,
)

logger = logging.getLogger(__name__)


def require_triplet(params: ResourceSpec) -> None:
    if params.size:
        raise OperationRejectedError("Size parameter not supported")
    if not params.has_resources():
        raise OperationRejectedError("memory_mb, cpu_cores and disk_mb are required")


class VirtuozzoProvider(ServerProvider):
    """Virtuozzo Hybrid Server 7 over its NUL-framed XML socket API."""

    key = "virtuozzo"
    configuration_class = VirtuozzoConfiguration

    def __init__(
        self,
        configuration: VirtuozzoConfiguration,
        transport: TransportConfig | None = None,
        client: VirtuozzoClient | None = None,
    ) -> None:
        super().__init__(configuration, transport)
        self.client = client or VirtuozzoClient(configuration, self.transport)

    @classmethod
    def about(cls) -> ProviderAbout:
        return ProviderAbout(
            key=cls.key,
            name="Virtuozzo Hybrid Server 7",
            description="Deploy and manage Virtuozzo Hybrid Server 7 virtual servers",
            logo_url="https://api.upmind.io/images/logos/provision/virtuozzo-logo@2x.png",
        )

    @provider_operation
    async def create(self, params: CreateParams) -> ServerInfoResult:
        require_triplet(params)

        server_id = await self.client.create(
            label=params.label,
            location=params.location,
            image=params.image,
            memory_mb=params.memory_mb,
            cpu_cores=params.cpu_cores,
            disk_mb=params.disk_mb,
            interface=params.virtualization_type,
        )
        logger.info("Virtuozzo environment created", extra={"instance_id": server_id})

        await self.client.install_guest_tools(server_id)
        await self.client.start(server_id)

        return await self._get_info(server_id, "Server created successfully!")

    @provider_operation
    async def get_info(self, params: ServerIdentifierParams) -> ServerInfoResult:
        return await self._get_info(params.instance_id, "Server info obtained")

    @provider_operation
    async def get_connection(self, params: ServerIdentifierParams) -> ConnectionResult:
        env = await self._get_environment(params.instance_id)
        host = env.ip_address or env.hostname
        if not host:
            raise OperationRejectedError("Server has no IP address", data={"instance_id": params.instance_id})
        return ConnectionResult.ssh(f"ssh root@{host}")

    @provider_operation
    async def change_root_password(self, params: ChangeRootPasswordParams) -> ServerInfoResult:
        await self.client.change_password(params.instance_id, params.root_password)
        return await self._get_info(params.instance_id, "Root password changed")

    @provider_operation
    async def resize(self, params: ResizeParams) -> ServerInfoResult:
        require_triplet(params)

        env = await self._get_environment(params.instance_id)
        ensure_resizable(env.state == VirtuozzoEnvironment.RUNNING, params)

        if env.state != VirtuozzoEnvironment.DOWN:
            await self.client.stop(params.instance_id)

        await self.client.set_config(
            params.instance_id,
            memory_mb=params.memory_mb,
            cpu_cores=params.cpu_cores,
            disk_mb=params.disk_mb,
            sys_name=env.sys_name or "",
            ip=env.ip_address or "0.0.0.0",
        )
        await self.client.start(params.instance_id)

        return await self._get_info(params.instance_id, "Server is resizing")

    @provider_operation
    async def reinstall(self, params: ReinstallParams) -> ServerInfoResult:
        await self.client.stop(params.instance_id)
        await self.client.set_image(params.instance_id, params.image)
        await self.client.start(params.instance_id)
        return await self._get_info(params.instance_id, "Server rebuilding with fresh image/template")

    @provider_operation
    async def reboot(self, params: ServerIdentifierParams) -> ServerInfoResult:
        await self.client.restart(params.instance_id)
        return await self._get_info(params.instance_id, "Server is rebooting")

    @provider_operation
    async def shutdown(self, params: ServerIdentifierParams) -> ServerInfoResult:
        info = await self._get_info(params.instance_id, "Virtual server already off")
        if info.state == VirtuozzoEnvironment.DOWN:
            return info

        await self.client.stop(params.instance_id)
        return info.with_message("Server is shutting down", state="Stopping")

    @provider_operation
    async def power_on(self, params: ServerIdentifierParams) -> ServerInfoResult:
        info = await self._get_info(params.instance_id, "Virtual server already on")
        if info.state == VirtuozzoEnvironment.RUNNING:
            return info

        await self.client.start(params.instance_id)
        return info.with_message("Server is booting", state="Starting")

    @provider_operation
    async def terminate(self, params: ServerIdentifierParams) -> EmptyResult:
        await self.client.stop(params.instance_id)
        await self.client.destroy(params.instance_id)
        return EmptyResult(message="Server permanently deleted")

    # --- Helpers ---

    async def _get_environment(self, server_id: str) -> VirtuozzoEnvironment:
        try:
            return await self.client.get_environment(server_id)
        except ProviderApiError as e:
            if e.message == EMPTY_RESPONSE:
                raise NotFoundError("Server not found", {"instance_id": server_id}) from e
            raise

    async def _get_info(self, server_id: str, message: str) -> ServerInfoResult:
        env = await self._get_environment(server_id)
        return ServerInfoResult(
            instance_id=env.eid or server_id,
            state=env.state,
            label=env.name or env.eid or server_id,
            hostname=env.hostname,
            ip_address=env.ip_address,
            image=env.os_name or DEFAULT_PLATFORM,
            memory_mb=env.memory_mb,
            cpu_cores=env.cpu_count,
            disk_mb=env.disk_size,
            location=env.home_path or "Unknown",
            node=self.configuration.hostname,
            virtualization_type=env.interface,
            message=message,
        )
