import asyncio
import logging

from provisioning.core.exceptions import OperationRejectedError
from provisioning.core.utils import format_date, generate_password
from provisioning.infra.http import TransportConfig
from provisioning.infra.onapp.client import OnAppClient
from provisioning.infra.onapp.records import OnAppLocationGroup, OnAppTemplate, OnAppVirtualMachine
from provisioning.providers.base import ServerProvider, ensure_resizable, provider_operation
from provisioning.providers.resolver import cached_catalog, resolve
from provisioning.schemas.common import ProviderAbout
from provisioning.schemas.configuration import OnAppConfiguration
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

STATE_ON = "On"
STATE_OFF = "Off"


def require_resources(params: ResourceSpec) -> None:
    if not params.has_resources():
        raise OperationRejectedError("memory_mb, cpu_cores and disk_mb are required")


class OnAppProvider(ServerProvider):
    """OnApp virtual machines, sized by an explicit memory/cpu/disk triplet."""

    key = "onapp"
    configuration_class = OnAppConfiguration

    def __init__(
        self,
        configuration: OnAppConfiguration,
        transport: TransportConfig | None = None,
        client: OnAppClient | None = None,
    ) -> None:
        super().__init__(configuration, transport)
        self.client = client or OnAppClient(configuration, self.transport)

    @classmethod
    def about(cls) -> ProviderAbout:
        return ProviderAbout(
            key=cls.key,
            name="OnApp",
            description="Deploy and manage OnApp virtual servers",
            logo_url="https://api.upmind.io/images/logos/provision/onapp-logo@2x.png",
        )

    @provider_operation
    async def create(self, params: CreateParams) -> ServerInfoResult:
        require_resources(params)

        template = await self._find_template(params.image)
        location = await self._find_location(params.location)

        server_id = await self.client.create_virtual_machine(
            label=params.label,
            template_id=template.id,
            memory_mb=params.memory_mb,
            cpu_cores=params.cpu_cores,
            disk_mb=params.disk_mb,
            location_id=location.id,
            root_password=params.root_password or generate_password(),
        )

        return await self._get_info(server_id, "Server created successfully")

    @provider_operation
    async def get_info(self, params: ServerIdentifierParams) -> ServerInfoResult:
        return await self._get_info(params.instance_id, "Server info obtained")

    @provider_operation
    async def get_connection(self, params: ServerIdentifierParams) -> ConnectionResult:
        vm = await self.client.get_virtual_machine(params.instance_id)
        if not vm.primary_ip:
            raise OperationRejectedError("Server has no IP address", data={"instance_id": params.instance_id})
        return ConnectionResult.ssh(f"ssh root@{vm.primary_ip}", password=vm.initial_root_password)

    @provider_operation
    async def change_root_password(self, params: ChangeRootPasswordParams) -> ServerInfoResult:
        await self.client.reset_password(params.instance_id, params.root_password)
        return await self._get_info(params.instance_id, "Root password changed")

    @provider_operation
    async def resize(self, params: ResizeParams) -> ServerInfoResult:
        require_resources(params)

        vm = await self.client.get_virtual_machine(params.instance_id)
        ensure_resizable(vm.state == STATE_ON, params)

        await self.client.resize(params.instance_id, params.memory_mb, params.cpu_cores, params.disk_mb)
        return await self._get_info(params.instance_id, "Server is resizing")

    @provider_operation
    async def reinstall(self, params: ReinstallParams) -> ServerInfoResult:
        template = await self._find_template(params.image)
        await self.client.rebuild(params.instance_id, template.id)
        return await self._get_info(params.instance_id, "Server rebuilding with fresh image/template")

    @provider_operation
    async def reboot(self, params: ServerIdentifierParams) -> ServerInfoResult:
        await self.client.reboot(params.instance_id)
        return await self._get_info(params.instance_id, "Server is rebooting")

    @provider_operation
    async def shutdown(self, params: ServerIdentifierParams) -> ServerInfoResult:
        return await self._shutdown(params.instance_id)

    @provider_operation
    async def power_on(self, params: ServerIdentifierParams) -> ServerInfoResult:
        return await self._power_on(params.instance_id)

    @provider_operation
    async def suspend(self, params: ServerIdentifierParams) -> ServerInfoResult:
        return await self._shutdown(params.instance_id)

    @provider_operation
    async def unsuspend(self, params: ServerIdentifierParams) -> ServerInfoResult:
        return await self._power_on(params.instance_id)

    @provider_operation
    async def terminate(self, params: ServerIdentifierParams) -> EmptyResult:
        await self.client.destroy(params.instance_id)
        return EmptyResult(message="Server is deleting")

    # --- Helpers ---

    async def _shutdown(self, server_id: str) -> ServerInfoResult:
        info = await self._get_info(server_id, "Virtual server already off")
        if info.state == STATE_OFF:
            return info

        await self.client.shutdown(server_id)
        return await self._get_info(server_id, "Server is shutting down")

    async def _power_on(self, server_id: str) -> ServerInfoResult:
        info = await self._get_info(server_id, "Virtual server already on")
        if info.state == STATE_ON:
            return info

        await self.client.start(server_id)
        return await self._get_info(server_id, "Server is booting")

    async def _get_info(self, server_id: str, message: str) -> ServerInfoResult:
        vm, disk = await asyncio.gather(
            self.client.get_virtual_machine(server_id),
            self.client.get_primary_disk(server_id),
        )
        location = await self._hypervisor_location(vm)
        return self._info(vm, disk.disk_size, location).with_message(message)

    async def _hypervisor_location(self, vm: OnAppVirtualMachine) -> OnAppLocationGroup | None:
        if vm.hypervisor_id is None:
            return None
        return await self.client.get_hypervisor_location(vm.hypervisor_id)

    def _info(
        self, vm: OnAppVirtualMachine, disk_gb: int | None, location: OnAppLocationGroup | None
    ) -> ServerInfoResult:
        return ServerInfoResult(
            instance_id=vm.identifier,
            state=vm.state,
            label=vm.label or vm.hostname or vm.identifier,
            hostname=vm.hostname,
            ip_address=vm.primary_ip,
            image=vm.template_label or "Unknown",
            memory_mb=vm.memory or 0,
            cpu_cores=vm.cpus or 0,
            disk_mb=(disk_gb or 0) * 1024,
            location=location.name if location else "Unknown",
            node=str(vm.hypervisor_id) if vm.hypervisor_id is not None else None,
            virtualization_type=vm.hypervisor_type,
            created_at=format_date(vm.created_at),
            updated_at=format_date(vm.updated_at),
        )

    async def _find_template(self, search: str) -> OnAppTemplate:
        return await resolve(
            search,
            by_id=lambda template_id: self.client.get_template(int(template_id)),
            catalog=lambda: cached_catalog("templates", self.client.list_templates),
            labels=lambda template: (str(template.id), template.label),
            not_found="Template not found",
            search_key="template",
        )

    async def _find_location(self, search: str) -> OnAppLocationGroup:
        return await resolve(
            search,
            by_id=lambda location_id: self.client.get_location(int(location_id)),
            catalog=lambda: cached_catalog("locations", self.client.list_locations),
            labels=lambda location: (str(location.id), location.name),
            not_found="Location not found",
            search_key="location",
        )
