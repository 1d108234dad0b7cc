import logging

from provisioning.core.exceptions import OperationRejectedError, ProviderApiError
from provisioning.core.utils import generate_password, now_plus_seconds
from provisioning.infra.http import TransportConfig
from provisioning.infra.solusvm.client import SolusVMClient
from provisioning.infra.solusvm.records import SolusVMPlan, SolusVMServer
from provisioning.providers.base import ServerProvider, ensure_resizable, provider_operation
from provisioning.providers.resolver import cached_catalog, resolve
from provisioning.schemas.common import ProviderAbout
from provisioning.schemas.configuration import SOLUSVM_VIRTUALIZATION_TYPES, SolusVMConfiguration
from provisioning.schemas.connection import ConnectionResult
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

CUSTOM_SIZE = "Custom"


def first_value(value: str | None) -> str | None:
    """SolusVM reports usage as ``total,used,free,percent``; keep the total."""
    if value is None:
        return None
    return value.split(",")[0].strip() or None


class SolusVMProvider(ServerProvider):
    key = "solusvm"
    configuration_class = SolusVMConfiguration

    def __init__(
        self,
        configuration: SolusVMConfiguration,
        transport: TransportConfig | None = None,
        client: SolusVMClient | None = None,
    ) -> None:
        super().__init__(configuration, transport)
        self.configuration: SolusVMConfiguration = configuration
        self.client = client or SolusVMClient(configuration, self.transport)

    @classmethod
    def about(cls) -> ProviderAbout:
        return ProviderAbout(
            key=cls.key,
            name="SolusVM v1",
            description="Deploy and manage SolusVM v1 virtual servers",
            logo_url="https://api.upmind.io/images/logos/provision/solusvm-logo@2x.png",
        )

    @provider_operation
    async def create(self, params: CreateParams) -> ServerInfoResult:
        if not params.size:
            raise OperationRejectedError("Size parameter is required")

        virtualization_type = params.virtualization_type or self.configuration.default_virtualization_type
        if virtualization_type not in SOLUSVM_VIRTUALIZATION_TYPES:
            raise OperationRejectedError(
                "Unsupported virtualization type", data={"virtualization_type": virtualization_type}
            )

        template_id, _ = await self._find_template(params.image, virtualization_type)
        plan = await self._find_plan(params.size, virtualization_type)

        node_group_id = node = None
        if self.configuration.location_type == "node_group":
            node_group_id, _ = await self._find_node_group(params.location)
        else:
            node = params.location

        username = await self._server_owner(params)

        server_id = await self.client.create_server(
            virtualization_type=virtualization_type,
            username=username,
            hostname=params.label,
            plan_name=plan.name,
            template_id=template_id,
            password=params.root_password or generate_password(),
            node_group_id=node_group_id,
            node=node,
        )
        logger.info("SolusVM server created", extra={"instance_id": server_id, "username": username})

        info = await self._get_info(server_id, "Server created")
        return info.with_message("Server created", customer_identifier=username, state="creating")

    @provider_operation
    async def get_info(self, params: ServerIdentifierParams) -> ServerInfoResult:
        return await self._get_info(params.instance_id, "Server info obtained")

    @provider_operation
    async def get_connection(self, params: ServerIdentifierParams) -> ConnectionResult:
        session = await self.client.create_console_session(params.instance_id)
        status = "started" if session.is_new else "ongoing"
        return ConnectionResult.ssh(
            f"ssh {session.username}@{session.ip} -p {session.port}",
            message=f"Serial console session {status}",
            password=session.password,
            expires_at=now_plus_seconds(session.sessionexpire),
        )

    @provider_operation
    async def change_root_password(self, params: ChangeRootPasswordParams) -> ServerInfoResult:
        await self.client.change_root_password(params.instance_id, params.root_password)
        return await self._get_info(params.instance_id, "Root password changed")

    @provider_operation
    async def resize(self, params: ResizeParams) -> ServerInfoResult:
        if not params.size:
            raise OperationRejectedError("Size parameter is required")

        server = await self.client.get_server(params.instance_id)
        ensure_resizable(server.state == SolusVMServer.ONLINE, params)

        plan = await self._find_plan(params.size, server.type)
        await self.client.change_plan(params.instance_id, plan.name)

        info = await self._get_info(params.instance_id, "Server plan changed")
        return info.with_message("Server plan changed", size=plan.name)

    @provider_operation
    async def reinstall(self, params: ReinstallParams) -> ServerInfoResult:
        server = await self.client.get_server(params.instance_id)
        template_id, template_label = await self._find_template(params.image, server.type)

        await self.client.rebuild(params.instance_id, template_id)

        info = await self._get_info(params.instance_id, "Server rebuilding with fresh image/template")
        return info.with_message("Server rebuilding with fresh image/template", image=template_label)

    @provider_operation
    async def reboot(self, params: ServerIdentifierParams) -> ServerInfoResult:
        await self.client.reboot(params.instance_id)
        info = await self._get_info(params.instance_id, "Server rebooting")
        return info.with_message("Server rebooting", state="rebooting")

    @provider_operation
    async def shutdown(self, params: ServerIdentifierParams) -> ServerInfoResult:
        info = await self._get_info(params.instance_id, "Server already offline")
        if info.state == SolusVMServer.OFFLINE:
            return info

        await self.client.shutdown(params.instance_id)
        return info.with_message("Server shutting down", state="shutting_down")

    @provider_operation
    async def power_on(self, params: ServerIdentifierParams) -> ServerInfoResult:
        info = await self._get_info(params.instance_id, "Server already online")
        if info.state == SolusVMServer.ONLINE:
            return info

        await self.client.boot(params.instance_id)
        return info.with_message("Server booting", state="booting")

    @provider_operation
    async def terminate(self, params: ServerIdentifierParams) -> EmptyResult:
        await self.client.terminate(params.instance_id)
        return EmptyResult(message="Server terminating")

    # --- Helpers ---

    async def _server_owner(self, params: CreateParams) -> str:
        if self.configuration.single_server_owner:
            return self.configuration.server_owner_username
        if params.customer_identifier:
            return str(params.customer_identifier)
        return await self.client.create_customer(params.email)

    async def _get_info(self, server_id: str, message: str) -> ServerInfoResult:
        server = await self.client.get_server(server_id)

        templates = await cached_catalog(
            ("templates", server.type), lambda: self.client.list_templates(server.type)
        )
        plans = await cached_catalog(("plans", server.type), lambda: self.client.list_plans(server.type))
        plan = next(
            (
                p
                for p in plans
                if p.matches_specs(server.cpus, first_value(server.memory), first_value(server.hdd))
            ),
            None,
        )

        return ServerInfoResult(
            instance_id=server.vserverid or server_id,
            state=server.state,
            label=server.hostname,
            hostname=server.hostname,
            ip_address=server.ipaddress,
            image=templates.get(server.template or "", server.template or "Unknown"),
            size=plan.name if plan else CUSTOM_SIZE,
            location=await self._node_location(server),
            node=server.node,
            virtualization_type=server.type,
            message=message,
        )

    async def _node_location(self, server: SolusVMServer) -> str:
        node_id = server.raw.get("nodeid")
        if not node_id:
            return "Unknown"
        try:
            node = await cached_catalog(("node", str(node_id)), lambda: self.client.get_node(str(node_id)))
        except ProviderApiError as e:
            logger.warning("Node location lookup failed", extra={"node_id": node_id, "detail": e.message})
            return "Unknown"
        return node.location or "Unknown"

    async def _find_template(self, search: str, virtualization_type: str | None) -> tuple[str, str]:
        return await resolve(
            search,
            catalog=lambda: self._pipe_entries(
                ("templates", virtualization_type), lambda: self.client.list_templates(virtualization_type)
            ),
            labels=lambda entry: entry,
            not_found="Server image/template not found",
            search_key="image",
        )

    async def _find_plan(self, search: str, virtualization_type: str | None) -> SolusVMPlan:
        return await resolve(
            search,
            catalog=lambda: cached_catalog(
                ("plans", virtualization_type), lambda: self.client.list_plans(virtualization_type)
            ),
            labels=lambda plan: (plan.id, plan.name),
            not_found="Server size/plan not found",
            search_key="size",
        )

    async def _find_node_group(self, search: str) -> tuple[str, str]:
        return await resolve(
            search,
            catalog=lambda: self._pipe_entries("node_groups", self.client.list_node_groups),
            labels=lambda entry: entry,
            not_found="Node group not found",
            search_key="location",
        )

    async def _pipe_entries(self, key, fetch) -> list[tuple[str, str]]:
        """Cached ``{id: label}`` catalog as resolvable ``(id, label)`` entries."""
        return list((await cached_catalog(key, fetch)).items())
