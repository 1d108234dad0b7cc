"""
SolusVMClient: async client for the SolusVM v1 admin API.

Every call is a form POST to ``/api/admin/command.php`` carrying ``id``, ``key``,
``action`` and ``rdtype=json``. A call only succeeds on HTTP 200 with
``status == "success"``.
"""

import asyncio
import logging
from typing import Any

import httpx

from provisioning.core.exceptions import ProviderApiError, ProviderConnectionError
from provisioning.core.utils import generate_password, limit_text, ucfirst
from provisioning.infra.http import TransportConfig, build_client, try_decode_json
from provisioning.infra.solusvm.records import (
    SolusVMConsoleSession,
    SolusVMNode,
    SolusVMPlan,
    SolusVMServer,
    parse_pipe_list,
)
from provisioning.schemas.configuration import SOLUSVM_VIRTUALIZATION_TYPES, SolusVMConfiguration

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5656
COMMAND_PATH = "/api/admin/command.php"


class SolusVMClient:
    def __init__(self, configuration: SolusVMConfiguration, transport: TransportConfig) -> None:
        self._api_id = configuration.api_id
        self._api_key = configuration.api_key.get_secret_value()
        self._body_limit = transport.body_limit
        self._client = build_client(
            transport.but(verify=False, debug=transport.debug or configuration.debug),
            base_url=f"https://{configuration.hostname}:{configuration.port or DEFAULT_PORT}/",
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def create_customer(self, email: str, password: str | None = None) -> str:
        """Create a client account, returning its username."""
        response = await self.call(
            "client-create",
            {"username": email, "email": email, "password": password or generate_password(15)},
        )
        return str(response["username"])

    async def create_server(
        self,
        *,
        virtualization_type: str,
        username: str,
        hostname: str,
        plan_name: str,
        template_id: str,
        password: str,
        node_group_id: str | None = None,
        node: str | None = None,
    ) -> str:
        params: dict[str, Any] = {
            "type": virtualization_type,
            "username": username,
            "hostname": hostname,
            "plan": plan_name,
            "template": template_id,
            "password": password,
            "ips": 1,
        }
        if node_group_id is not None:
            params["nodegroup"] = node_group_id
        if node is not None:
            params["node"] = node

        response = await self.call("vserver-create", params)
        return str(response["vserverid"])

    async def change_plan(self, server_id: str, plan_name: str) -> None:
        await self.call("vserver-change", {"vserverid": server_id, "plan": plan_name})

    async def rebuild(self, server_id: str, template_id: str) -> None:
        await self.call("vserver-rebuild", {"vserverid": server_id, "template": template_id})

    async def change_root_password(self, server_id: str, password: str) -> None:
        await self.call("vserver-rootpassword", {"vserverid": server_id, "rootpassword": password})

    async def boot(self, server_id: str) -> None:
        await self.call("vserver-boot", {"vserverid": server_id})

    async def reboot(self, server_id: str) -> None:
        await self.call("vserver-reboot", {"vserverid": server_id})

    async def shutdown(self, server_id: str) -> None:
        await self.call("vserver-shutdown", {"vserverid": server_id})

    async def terminate(self, server_id: str) -> None:
        await self.call("vserver-terminate", {"vserverid": server_id, "deleteclient": "false"})

    async def get_server(self, server_id: str) -> SolusVMServer:
        """Merge ``vserver-infoall`` with ``vserver-info``, fetched concurrently."""
        infoall, info = await asyncio.gather(
            self.call("vserver-infoall", {"vserverid": server_id, "nographs": 1}),
            self.call("vserver-info", {"vserverid": server_id}),
        )
        return SolusVMServer.from_payload({**infoall, **info})

    async def get_node(self, node_id: str) -> SolusVMNode:
        response = await self.call("node-statistics", {"nodeid": node_id})
        return SolusVMNode.from_payload(response)

    async def list_templates(self, virtualization_type: str | None = None) -> dict[str, str]:
        """Map template id to label, for one virtualization type or all of them."""
        types = [virtualization_type] if virtualization_type else list(SOLUSVM_VIRTUALIZATION_TYPES)
        responses = await asyncio.gather(
            *(self.call("listtemplates", {"type": t, "listpipefriendly": 1}) for t in types)
        )

        templates: dict[str, str] = {}
        for response in responses:
            csv = ",".join(
                str(response.get(key) or "") for key in ("templates", "templateshvm", "templateskvm")
            )
            templates.update(parse_pipe_list(csv))
        return templates

    async def list_plans(self, virtualization_type: str) -> list[SolusVMPlan]:
        try:
            response = await self.call("list-plans", {"type": virtualization_type})
        except ProviderApiError as e:
            if "No plans found" in e.message and virtualization_type in SOLUSVM_VIRTUALIZATION_TYPES:
                return []
            raise
        return [SolusVMPlan.from_payload(p) for p in response.get("plans") or []]

    async def list_node_groups(self) -> dict[str, str]:
        response = await self.call("listnodegroups")
        return parse_pipe_list(str(response.get("nodegroups") or ""))

    async def create_console_session(self, server_id: str, hours: int = 1) -> SolusVMConsoleSession:
        """Enable serial console access, renewing the session when under a quarter of it is left."""
        requested_seconds = hours * 60 * 60
        enable = {"vserverid": server_id, "time": hours, "access": "enable"}

        session = SolusVMConsoleSession.from_payload(await self.call("vserver-console", enable))
        if session.sessionexpire < requested_seconds / 4:
            await self.call("vserver-console", {"vserverid": server_id, "access": "disable"})
            session = SolusVMConsoleSession.from_payload(await self.call("vserver-console", enable))
        return session

    async def call(self, action: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        form = {
            **(params or {}),
            "id": self._api_id,
            "key": self._api_key,
            "action": action,
            "rdtype": "json",
        }
        try:
            response = await self._client.post(COMMAND_PATH, data=form)
        except httpx.TransportError as e:
            raise ProviderConnectionError(
                "API Request Failed",
                data={"exception": {"class": type(e).__name__, "message": str(e)}},
            ) from e

        response_data = try_decode_json(response.text)
        if not isinstance(response_data, dict):
            response_data = None

        status = str((response_data or {}).get("status") or "unknown")
        if response.status_code == 200 and status == "success":
            return response_data

        message = f"API Response {ucfirst(status)}"
        if response_data and response_data.get("statusmsg"):
            message = f"{message}: {response_data['statusmsg']}"

        debug = {}
        if response_data is None:
            debug["response_body"] = limit_text(response.text, self._body_limit)

        raise ProviderApiError(
            message,
            code=response.status_code,
            data={"http_code": response.status_code, "response_data": response_data, "action": action},
            debug=debug,
        )
