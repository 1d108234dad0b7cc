import logging
from typing import Any

from provisioning.core.exceptions import OperationRejectedError
from provisioning.infra.http import TransportConfig
from provisioning.infra.virtualizor.client import VirtualizorClient
from provisioning.infra.virtualizor.records import (
    VirtualizorOsTemplate,
    VirtualizorPlan,
    VirtualizorServer,
    VirtualizorServerGroup,
    VirtualizorVps,
)
from provisioning.providers.base import ServerProvider, ensure_resizable, provider_operation
from provisioning.providers.resolver import cached_catalog, resolve
from provisioning.schemas.common import ProviderAbout
from provisioning.schemas.configuration import VirtualizorConfiguration
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

DEFAULT_VIRT = "kvm"
STATE_ON = "On"
STATE_OFF = "Off"


def done_message(data: dict[str, Any], default: str) -> str:
    return str(data.get("done_msg") or default)


class VirtualizorProvider(ServerProvider):
    key = "virtualizor"
    configuration_class = VirtualizorConfiguration

    def __init__(
        self,
        configuration: VirtualizorConfiguration,
        transport: TransportConfig | None = None,
        client: VirtualizorClient | None = None,
    ) -> None:
        super().__init__(configuration, transport)
        self.configuration: VirtualizorConfiguration = configuration
        self.client = client or VirtualizorClient(configuration, self.transport)

    @classmethod
    def about(cls) -> ProviderAbout:
        return ProviderAbout(
            key=cls.key,
            name="Virtualizor",
            description=(
                "Deploy and manage Virtualizor virtual servers using KVM, Xen, OpenVZ, Proxmox, "
                "Virtuozzo, LXC and more"
            ),
            logo_url="https://api.upmind.io/images/logos/provision/virtualizor-logo@2x.png",
        )

    @provider_operation
    async def create(self, params: CreateParams) -> ServerInfoResult:
        if not params.size:
            raise OperationRejectedError("Size parameter is required")

        virt = params.virtualization_type or self.configuration.default_virtualization_type or DEFAULT_VIRT
        plan = await self._find_plan(params.size, virt)
        template = await self._find_os_template(params.image, virt)

        server_id = server_group_id = None
        if self.configuration.location_type == "server_group":
            server_group_id = (await self._find_server_group(params.location)).sgid
        else:
            server_id = (await self._find_server(params.location)).serid

        vpsid = await self.client.create_virtual_server(
            virt=virt,
            plan_id=plan.plid,
            os_id=template.osid,
            hostname=params.label,
            email=params.email,
            password=params.root_password,
            server_id=server_id,
            server_group_id=server_group_id,
        )
        logger.info("Virtualizor server created", extra={"instance_id": vpsid, "virt": virt})

        info = await self._get_info(vpsid, "Virtual server creating")
        return info.with_message("Virtual server creating", state="Creating")

    @provider_operation
    async def get_info(self, params: ServerIdentifierParams) -> ServerInfoResult:
        return await self._get_info(params.instance_id, "Server info obtained")

    @provider_operation
    async def get_connection(self, params: ServerIdentifierParams) -> ConnectionResult:
        vps, _, _ = await self.client.get_vps_details(params.instance_id)
        if vps.ips:
            return ConnectionResult.ssh(f"ssh root@{vps.ips[0]}")

        vnc = await self.client.get_vnc(params.instance_id)
        return ConnectionResult(
            type="vnc",
            vnc_connection=VncConnection(host=vnc.ip, port=vnc.port, password=vnc.password),
            password=vnc.password,
            message="VNC connection obtained",
        )

    @provider_operation
    async def change_root_password(self, params: ChangeRootPasswordParams) -> ServerInfoResult:
        data = await self.client.change_root_password(params.instance_id, params.root_password)
        return await self._get_info(params.instance_id, done_message(data, "Root password changed"))

    @provider_operation
    async def resize(self, params: ResizeParams) -> ServerInfoResult:
        if not params.size:
            raise OperationRejectedError("Size parameter is required")

        vps, _, _ = await self.client.get_vps_details(params.instance_id)
        ensure_resizable(vps.state == STATE_ON, params)

        plan = await self._find_plan(params.size, vps.virt or DEFAULT_VIRT)
        data = await self.client.change_plan(params.instance_id, plan.plid)

        message = done_message(data, "Virtual server plan updated")
        info = await self._get_info(params.instance_id, message)
        return info.with_message(message, size=plan.plan_name)

    @provider_operation
    async def reinstall(self, params: ReinstallParams) -> ServerInfoResult:
        vps, _, _ = await self.client.get_vps_details(params.instance_id)
        template = await self._find_os_template(params.image, vps.virt)

        data = await self.client.rebuild(params.instance_id, template.osid, params.root_password)

        message = done_message(data, "Virtual server reinstalling")
        info = await self._get_info(params.instance_id, message)
        return info.with_message(message, image=template.name, state="Rebuilding")

    @provider_operation
    async def reboot(self, params: ServerIdentifierParams) -> ServerInfoResult:
        data = await self.client.run_action(params.instance_id, "restart")
        message = done_message(data, "Virtual server restarting")
        info = await self._get_info(params.instance_id, message)
        return info.with_message(message, state="Restarting")

    @provider_operation
    async def shutdown(self, params: ServerIdentifierParams) -> ServerInfoResult:
        return await self._stop(params.instance_id)

    @provider_operation
    async def power_on(self, params: ServerIdentifierParams) -> ServerInfoResult:
        return await self._start(params.instance_id)

    @provider_operation
    async def suspend(self, params: ServerIdentifierParams) -> ServerInfoResult:
        info = await self._stop(params.instance_id)
        return info.with_message(info.message, suspended=True)

    @provider_operation
    async def unsuspend(self, params: ServerIdentifierParams) -> ServerInfoResult:
        info = await self._start(params.instance_id)
        return info.with_message(info.message, suspended=False)

    @provider_operation
    async def terminate(self, params: ServerIdentifierParams) -> EmptyResult:
        data = await self.client.delete(params.instance_id)
        return EmptyResult(message=done_message(data, "Virtual server deleted"))

    # --- Helpers ---

    async def _stop(self, vpsid: str) -> ServerInfoResult:
        info = await self._get_info(vpsid, "Virtual server already off")
        if info.state == STATE_OFF:
            return info

        data = await self.client.run_action(vpsid, "stop")
        return info.with_message(done_message(data, "Virtual server stopping"), state="Stopping")

    async def _start(self, vpsid: str) -> ServerInfoResult:
        info = await self._get_info(vpsid, "Virtual server already on")
        if info.state == STATE_ON:
            return info

        data = await self.client.run_action(vpsid, "start")
        return info.with_message(done_message(data, "Virtual server starting"), state="Starting")

    async def _get_info(self, vpsid: str, message: str) -> ServerInfoResult:
        vps, plans, servers = await self.client.get_vps_details(vpsid)

        # editvs only embeds the plans and servers it was asked about
        plan = plans.get(vps.plid or "")
        if plan is None and vps.plid not in (None, "0"):
            catalog = await cached_catalog(("plans", None), self.client.list_plans)
            plan = next((p for p in catalog if p.plid == vps.plid), None)

        server = servers.get(vps.serid or "")
        if server is None and vps.serid is not None:
            catalog = await cached_catalog("servers", self.client.list_servers)
            server = next((s for s in catalog if s.serid == vps.serid), None)

        return self._info(vps, plan, server).with_message(message)

    def _info(
        self, vps: VirtualizorVps, plan: VirtualizorPlan | None, server: VirtualizorServer | None
    ) -> ServerInfoResult:
        if server is None:
            location = "Unknown"
        elif self.configuration.location_type == "server":
            location = server.server_name
        else:
            location = server.location_name

        return ServerInfoResult(
            instance_id=vps.vpsid,
            state=vps.state,
            label=vps.label,
            hostname=vps.hostname,
            ip_address=vps.ips[0] if vps.ips else None,
            image=vps.os_name or "Unknown",
            size=plan.plan_name if plan else "Custom",
            location=location,
            node=server.server_name if server else None,
            virtualization_type=vps.virt,
        )

    async def _find_plan(self, search: str, virt: str) -> VirtualizorPlan:
        return await resolve(
            search,
            catalog=lambda: cached_catalog(("plans", virt), lambda: self.client.list_plans(virt)),
            labels=lambda plan: (plan.plid, plan.plan_name),
            not_found=f"{virt.upper()} plan not found",
            search_key="size",
        )

    async def _find_os_template(self, search: str, virt: str | None) -> VirtualizorOsTemplate:
        async def templates() -> list[VirtualizorOsTemplate]:
            found = await cached_catalog("os_templates", self.client.list_os_templates)
            return [t for t in found if virt is None or t.type is None or t.type == virt]

        return await resolve(
            search,
            catalog=templates,
            labels=lambda template: (template.osid, template.name),
            not_found="OS template not found",
            search_key="image",
        )

    async def _find_server(self, search: str) -> VirtualizorServer:
        geographic = self.configuration.location_type == "geographic"
        return await resolve(
            search,
            catalog=lambda: cached_catalog("servers", self.client.list_servers),
            labels=lambda server: (server.location_name,) if geographic else (server.serid, server.server_name),
            not_found="Host server not found",
            search_key="location",
        )

    async def _find_server_group(self, search: str) -> VirtualizorServerGroup:
        return await resolve(
            search,
            catalog=lambda: cached_catalog("server_groups", self.client.list_server_groups),
            labels=lambda group: (group.sgid, group.sg_name),
            not_found="Server group not found",
            search_key="location",
        )
