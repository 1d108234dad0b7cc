import logging
from typing import Any

import httpx

from provisioning.core.exceptions import ProviderApiError, UnknownResponseError
from provisioning.core.utils import limit_text
from provisioning.infra.http import TransportConfig, build_client, connection_error, try_decode_json
from provisioning.infra.onapp.records import OnAppDisk, OnAppLocationGroup, OnAppTemplate, OnAppVirtualMachine
from provisioning.schemas.configuration import OnAppConfiguration

logger = logging.getLogger(__name__)


def flatten_errors(errors: Any) -> list[str]:
    """Render OnApp ``errors``/``error`` payloads as ``key: v1, v2`` strings."""
    if isinstance(errors, str):
        return [errors]
    if isinstance(errors, dict):
        return [
            f"{key}: {', '.join(str(v) for v in value)}" if isinstance(value, list) else str(value)
            for key, value in errors.items()
        ]
    if isinstance(errors, list):
        return [", ".join(str(v) for v in e) if isinstance(e, list) else str(e) for e in errors]
    return []


class OnAppClient:
    def __init__(self, configuration: OnAppConfiguration, transport: TransportConfig) -> None:
        self._body_limit = transport.body_limit
        if configuration.timeout:
            transport = transport.but(timeout=configuration.timeout)
        self._client = build_client(
            transport.but(debug=transport.debug or configuration.debug),
            base_url=f"https://{configuration.hostname}/",
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            auth=(configuration.username, configuration.password.get_secret_value()),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # --- Virtual machines ---

    async def get_virtual_machine(self, server_id: str) -> OnAppVirtualMachine:
        response = await self.request("GET", f"virtual_machines/{server_id}.json")
        return OnAppVirtualMachine.from_payload(response["virtual_machine"])

    async def get_primary_disk(self, server_id: str) -> OnAppDisk:
        response = await self.request("GET", f"virtual_machines/{server_id}/disks.json")
        return OnAppDisk.from_payload(response[0]["disk"])

    async def create_virtual_machine(
        self,
        *,
        label: str,
        template_id: int,
        memory_mb: int | None,
        cpu_cores: int | None,
        disk_mb: int | None,
        location_id: int,
        root_password: str | None,
    ) -> str:
        body = {
            "virtual_machine": {
                "cpu_shares": 1,
                "hostname": label,
                "label": label,
                "template_id": template_id,
                "memory": memory_mb,
                "cpus": cpu_cores,
                "primary_disk_size": round((disk_mb or 0) / 1024),
                "required_virtual_machine_build": 1,
                "required_virtual_machine_startup": 1,
                "location_id": location_id,
                "initial_root_password": root_password,
            }
        }
        response = await self.request("POST", "virtual_machines.json", json=body)

        identifier = ((response or {}).get("virtual_machine") or {}).get("identifier")
        if not identifier:
            raise ProviderApiError("Server creation failed", data={"result_data": response})
        return str(identifier)

    async def reset_password(self, server_id: str, password: str) -> None:
        body = {"virtual_machine": {"initial_root_password": password}}
        await self.request("POST", f"virtual_machines/{server_id}/reset_password.json", json=body)

    async def resize(self, server_id: str, memory_mb: int, cpu_cores: int, disk_mb: int) -> None:
        primary_disk = await self.get_primary_disk(server_id)

        body = {"virtual_machine": {"memory": memory_mb, "cpus": cpu_cores}}
        await self.request("PUT", f"virtual_machines/{server_id}.json", json=body)

        body = {"disk": {"disk_size": disk_mb / 1024}}
        await self.request("PUT", f"virtual_machines/{server_id}/disks/{primary_disk.id}.json", json=body)

    async def reboot(self, server_id: str) -> None:
        await self.request("POST", f"virtual_machines/{server_id}/reboot.json")

    async def shutdown(self, server_id: str) -> None:
        await self.request("POST", f"virtual_machines/{server_id}/shutdown.json")

    async def start(self, server_id: str) -> None:
        await self.request("POST", f"virtual_machines/{server_id}/startup.json")

    async def destroy(self, server_id: str) -> None:
        await self.request("DELETE", f"virtual_machines/{server_id}.json", params={"destroy_all_backups": 1})

    async def rebuild(self, server_id: str, template_id: int) -> None:
        body = {"virtual_machine": {"template_id": template_id, "required_startup": 1}}
        await self.request("POST", f"virtual_machines/{server_id}/build.json", json=body)

    # --- Catalogs ---

    async def get_template(self, template_id: int) -> OnAppTemplate:
        response = await self.request("GET", f"templates/{template_id}.json")
        return OnAppTemplate.from_payload(response["image_template"])

    async def list_templates(self) -> list[OnAppTemplate]:
        response = await self.request("GET", "templates/system.json") or []
        return [OnAppTemplate.from_payload(t["image_template"]) for t in response]

    async def get_location(self, location_id: int) -> OnAppLocationGroup:
        response = await self.request("GET", f"settings/location_groups/{location_id}.json")
        return OnAppLocationGroup.from_payload(response["location_group"])

    async def list_locations(self) -> list[OnAppLocationGroup]:
        response = await self.request("GET", "settings/location_groups.json") or []
        return [OnAppLocationGroup.from_payload(loc["location_group"]) for loc in response]

    async def get_hypervisor_location(self, hypervisor_id: int) -> OnAppLocationGroup | None:
        response = await self.request("GET", f"settings/hypervisors/{hypervisor_id}.json")
        group_id = response["hypervisor"]["hypervisor_group_id"]

        response = await self.request("GET", f"settings/hypervisor_zones/{group_id}.json")
        location_id = response["hypervisor_group"].get("location_group_id")
        if not location_id:
            return None

        return await self.get_location(int(location_id))

    # --- Transport ---

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Perform one call; an empty body gives ``None``."""
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.TransportError as e:
            raise connection_error(e) from e

        body = response.text.strip()
        if not response.is_success:
            raise self._api_error(response, body)

        if body == "":
            return None

        parsed = try_decode_json(body)
        if parsed is None:
            raise UnknownResponseError(data={"response": limit_text(body, self._body_limit)})
        return parsed

    def _api_error(self, response: httpx.Response, body: str) -> ProviderApiError:
        response_data = try_decode_json(body)
        data: dict[str, Any] = {"http_code": response.status_code}
        if response_data is not None:
            data["response_data"] = response_data
        else:
            data["response_body"] = limit_text(body, self._body_limit)

        messages: list[str] = []
        if isinstance(response_data, dict):
            messages = flatten_errors(response_data.get("errors") or response_data.get("error") or [])

        message = ", ".join(messages) or None
        if message is None and response.reason_phrase == "Unauthorized":
            message = "Unauthorized - check credentials and whitelisted IPs"
        if message and "account has been locked" in message:
            message = "Configuration account error"

        return ProviderApiError(
            f"Provider API error: {message or response.reason_phrase or 'Unknown'}",
            code=response.status_code,
            data=data,
            debug={"response_body": limit_text(body, self._body_limit)},
        )
