import logging

from provisioning.core.exceptions import OperationRejectedError, ProviderApiError, ProvisionError
from provisioning.core.utils import format_date, is_numeric
from provisioning.infra.http import TransportConfig
from provisioning.infra.virtfusion.client import VirtFusionClient
from provisioning.infra.virtfusion.records import VirtFusionPackage, VirtFusionServer, VirtFusionTemplate
from provisioning.providers.base import ServerProvider, ensure_resizable, provider_operation
from provisioning.providers.resolver import cached_catalog, resolve
from provisioning.schemas.common import ProviderAbout
from provisioning.schemas.configuration import VirtFusionConfiguration
from provisioning.schemas.connection import ConnectionResult, VncConnection
from provisioning.schemas.server import (
    ChangeRootPasswordParams,
    CreateParams,
    EmptyResult,
    ReinstallParams,
    ResizeParams,
    ServerIdentifierParams,
    ServerInfoResult,
)

logger = logging.getLogger(__name__)

STATE_RUNNING = "running"
STATE_FAILED = "failed"
STOPPED_STATES = ("stopped", "shutoff")


class VirtFusionProvider(ServerProvider):
    """VirtFusion servers: packages as sizes, OS templates scoped to the package or server."""

    key = "virtfusion"
    configuration_class = VirtFusionConfiguration

    def __init__(
        self,
        configuration: VirtFusionConfiguration,
        transport: TransportConfig | None = None,
        client: VirtFusionClient | None = None,
    ) -> None:
        super().__init__(configuration, transport)
        self.configuration: VirtFusionConfiguration = configuration
        self.client = client or VirtFusionClient(configuration, self.transport)

    @classmethod
    def about(cls) -> ProviderAbout:
        return ProviderAbout(
            key=cls.key,
            name="Virtfusion",
            description="Deploy and manage Virtfusion virtual servers",
            logo_url="https://api.upmind.io/images/logos/provision/virtfusion-logo@2x.png",
        )

    @provider_operation
    async def create(self, params: CreateParams) -> ServerInfoResult:
        if not params.size:
            raise OperationRejectedError("Size parameter is required")

        package = await self._find_package(params.size)
        template = await self._find_template(
            params.image, lambda: self.client.list_package_templates(package.id), ("package_templates", package.id)
        )

        user_id = await self._user_id(params)
        hypervisor_id = int(params.location) if is_numeric(params.location) else self.configuration.hypervisor_id

        server_id = await self.client.create_server(
            user_id=user_id, package_id=package.id, hypervisor_id=hypervisor_id
        )
        logger.info("VirtFusion server created", extra={"instance_id": server_id, "user_id": user_id})

        ssh_key_ids = await self.client.list_user_ssh_key_ids(user_id)
        try:
            await self.client.build_server(server_id, params.label, template.id, ssh_key_ids)
        except ProvisionError as e:
            raise ProviderApiError(
                "Server building failed", code=e.code, data={"instance_id": server_id}, debug=e.debug
            ) from e

        info = await self._get_info(str(server_id), "Server created successfully!")
        return info.with_message("Server created successfully!", customer_identifier=user_id)

    @provider_operation
    async def get_info(self, params: ServerIdentifierParams) -> ServerInfoResult:
        return await self._get_info(params.instance_id, "Server info obtained")

    @provider_operation
    async def get_connection(self, params: ServerIdentifierParams) -> ConnectionResult:
        server = await self.client.get_server(params.instance_id)

        if not server.owner.admin and server.owner.ext_relation_id:
            tokens = await self.client.get_authentication_tokens(server.owner.ext_relation_id, server.id)
            endpoint = str(tokens["endpoint_complete"]).lstrip("/")
            return ConnectionResult(
                type="redirect",
                redirect_url=f"https://{self.configuration.hostname}/{endpoint}",
                message="Login URL generated",
            )

        vnc = await self.client.enable_vnc(params.instance_id)
        return ConnectionResult(
            type="vnc",
            vnc_connection=VncConnection(host=vnc.hostname or vnc.ip, port=vnc.port, password=vnc.password),
            password=vnc.password,
            message="VNC connection enabled",
        )

    @provider_operation
    async def change_root_password(self, params: ChangeRootPasswordParams) -> ServerInfoResult:
        await self.client.reset_password(params.instance_id)
        return await self._get_info(params.instance_id, "Root password has been updated")

    @provider_operation
    async def resize(self, params: ResizeParams) -> ServerInfoResult:
        if not params.size:
            raise OperationRejectedError("Size parameter is required")

        server = await self.client.get_server(params.instance_id, remote_state=True)
        ensure_resizable(server.state == STATE_RUNNING, params)

        package = await self._find_package(params.size)
        response = await self.client.change_package(params.instance_id, package.id)

        info = await self._get_info(params.instance_id, "Server is resizing")
        return info.with_message("Server is resizing", data={"response_data": response})

    @provider_operation
    async def reinstall(self, params: ReinstallParams) -> ServerInfoResult:
        server = await self.client.get_server(params.instance_id)
        template = await self._find_template(
            params.image,
            lambda: self.client.list_server_templates(server.id),
            ("server_templates", server.id),
        )

        ssh_key_ids = await self.client.list_user_ssh_key_ids(server.owner_id) if server.owner_id else []
        await self.client.build_server(server.id, server.name, template.id, ssh_key_ids)

        return await self._get_info(params.instance_id, "Server rebuilding with fresh image/template")

    @provider_operation
    async def reboot(self, params: ServerIdentifierParams) -> ServerInfoResult:
        await self._operational_server(params.instance_id)
        await self.client.power(params.instance_id, "restart")
        return await self._get_info(params.instance_id, "Server is rebooting")

    @provider_operation
    async def shutdown(self, params: ServerIdentifierParams) -> ServerInfoResult:
        server = await self._operational_server(params.instance_id)
        if server.state in STOPPED_STATES:
            return await self._get_info(params.instance_id, "Virtual server already off")

        await self.client.power(params.instance_id, "shutdown")
        info = await self._get_info(params.instance_id, "Server is shutting down")
        return info.with_message("Server is shutting down", state="Stopping")

    @provider_operation
    async def power_on(self, params: ServerIdentifierParams) -> ServerInfoResult:
        server = await self._operational_server(params.instance_id)
        if server.state == STATE_RUNNING:
            return await self._get_info(params.instance_id, "Virtual server already on")

        await self.client.power(params.instance_id, "boot")
        info = await self._get_info(params.instance_id, "Server is booting")
        return info.with_message("Server is booting", state="Starting")

    @provider_operation
    async def suspend(self, params: ServerIdentifierParams) -> ServerInfoResult:
        server = await self.client.get_server(params.instance_id)
        if server.suspended:
            return await self._get_info(params.instance_id, "Virtual server already suspended")

        await self.client.suspend(params.instance_id)
        info = await self._get_info(params.instance_id, "Server suspending")
        return info.with_message("Server suspending", suspended=True)

    @provider_operation
    async def unsuspend(self, params: ServerIdentifierParams) -> ServerInfoResult:
        server = await self.client.get_server(params.instance_id)
        if not server.suspended:
            return await self._get_info(params.instance_id, "Virtual server already unsuspended")

        await self.client.unsuspend(params.instance_id)
        info = await self._get_info(params.instance_id, "Server un-suspending")
        return info.with_message("Server un-suspending", suspended=False)

    @provider_operation
    async def terminate(self, params: ServerIdentifierParams) -> EmptyResult:
        await self.client.get_server(params.instance_id)
        await self.client.destroy(params.instance_id)
        return EmptyResult(message="Server is deleting")

    # --- Helpers ---

    async def _operational_server(self, server_id: str) -> VirtFusionServer:
        server = await self.client.get_server(server_id, remote_state=True)
        if server.state == STATE_FAILED:
            raise OperationRejectedError("Virtual server is not operational.", data={"state": server.state})
        return server

    async def _user_id(self, params: CreateParams) -> int:
        if params.customer_identifier and is_numeric(params.customer_identifier):
            return int(params.customer_identifier)

        ext_relation_id = (params.metadata or {}).get("ext_relation_id")
        return await self.client.create_user(
            name=params.customer_name or params.email,
            email=params.email,
            ext_relation_id=int(ext_relation_id) if is_numeric(ext_relation_id) else None,
        )

    async def _get_info(self, server_id: str, message: str) -> ServerInfoResult:
        server = await self.client.get_server(server_id, remote_state=True)
        templates = await cached_catalog(
            ("server_templates", server.id), lambda: self.client.list_server_templates(server.id)
        )
        template = next((t for t in templates if t.id == server.os_template_install_id), None)

        return ServerInfoResult(
            instance_id=str(server.id),
            state=server.state,
            label=server.name or server.hostname or str(server.id),
            hostname=server.hostname,
            ip_address=server.ip_address,
            image=template.label if template else "Unknown",
            memory_mb=server.memory or 0,
            cpu_cores=server.cpu_cores or 0,
            disk_mb=(server.storage or 0) * 1024,
            location=server.hypervisor_name or "Unknown",
            node=server.hypervisor_name,
            virtualization_type=server.virtualization_type,
            customer_identifier=server.owner.ext_relation_id or server.owner_id,
            created_at=format_date(server.created),
            updated_at=format_date(server.updated),
            suspended=server.suspended,
            message=message,
        )

    async def _find_package(self, search: str) -> VirtFusionPackage:
        if is_numeric(search):
            return VirtFusionPackage(id=int(search), name=search)
        return await resolve(
            search,
            catalog=lambda: cached_catalog("packages", self.client.list_packages),
            labels=lambda package: (package.name,),
            not_found=f"Package {search} not found",
            search_key="size",
        )

    async def _find_template(self, search: str, fetch, cache_key) -> VirtFusionTemplate:
        return await resolve(
            search,
            catalog=lambda: cached_catalog(cache_key, fetch),
            labels=lambda template: template.labels,
            not_found=f"Package image {search} not found",
            search_key="image",
        )
