import logging
from typing import Any

import httpx

from provisioning.core.exceptions import ProviderApiError, UnknownResponseError
from provisioning.core.utils import limit_text, slugify, ucfirst
from provisioning.infra.http import TransportConfig, build_client, connection_error, try_decode_json
from provisioning.infra.virtfusion.records import (
    VirtFusionPackage,
    VirtFusionServer,
    VirtFusionTemplate,
    VirtFusionVnc,
)
from provisioning.schemas.configuration import VirtFusionConfiguration

logger = logging.getLogger(__name__)


def error_message(response_data: Any) -> str | None:
    """First entry of ``errors``, else ``msg``, else ``message``."""
    if not isinstance(response_data, dict):
        return None

    errors = response_data.get("errors")
    if errors:
        first = next(iter(errors.values())) if isinstance(errors, dict) else errors
        if isinstance(first, list):
            first = first[0] if first else None
        if isinstance(first, str) and first:
            return first

    return response_data.get("msg") or response_data.get("message") or None


def build_hostname(label: str | None) -> str:
    hostname = slugify(label or "", ".")
    if "." not in hostname:
        hostname += ".host"
    return hostname


class VirtFusionClient:
    def __init__(self, configuration: VirtFusionConfiguration, transport: TransportConfig) -> None:
        self._body_limit = transport.body_limit
        if configuration.timeout:
            transport = transport.but(timeout=configuration.timeout)
        self._client = build_client(
            transport.but(debug=transport.debug or configuration.debug),
            base_url=f"https://{configuration.hostname}/api/v1/",
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Authorization": f"Bearer {configuration.api_token.get_secret_value()}",
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # --- Servers ---

    async def get_server(self, server_id: int | str, remote_state: bool = False) -> VirtFusionServer:
        response = await self.request(
            "GET", f"servers/{server_id}", params={"remoteState": "true" if remote_state else "false"}
        )
        return VirtFusionServer.from_payload(response["data"])

    async def create_server(self, *, user_id: int, package_id: int, hypervisor_id: int) -> int:
        body = {"userId": user_id, "packageId": package_id, "ipv4": 1, "hypervisorId": hypervisor_id}
        response = await self.request("POST", "servers", json=body)

        server_id = ((response or {}).get("data") or {}).get("id")
        if not server_id:
            raise ProviderApiError("Server creation failed", data={"result_data": response})
        return int(server_id)

    async def build_server(
        self, server_id: int | str, label: str | None, template_id: int, ssh_key_ids: list[int]
    ) -> None:
        body = {
            "name": label,
            "hostname": build_hostname(label),
            "operatingSystemId": template_id,
            "sshKeys": ssh_key_ids,
        }
        await self.request("POST", f"servers/{server_id}/build", json=body)

    async def reset_password(self, server_id: str) -> None:
        await self.request("POST", f"servers/{server_id}/resetPassword", json={"user": "root", "sendMail": True})

    async def suspend(self, server_id: str) -> None:
        await self.request("POST", f"servers/{server_id}/suspend")

    async def unsuspend(self, server_id: str) -> None:
        await self.request("POST", f"servers/{server_id}/unsuspend")

    async def power(self, server_id: str, action: str) -> None:
        await self.request("POST", f"servers/{server_id}/power/{action}")

    async def destroy(self, server_id: str) -> None:
        await self.request("DELETE", f"servers/{server_id}", params={"delay": 0})

    async def change_package(self, server_id: str, package_id: int) -> dict[str, Any] | None:
        return await self.request("PUT", f"servers/{server_id}/package/{package_id}")

    async def enable_vnc(self, server_id: str) -> VirtFusionVnc:
        response = await self.request("POST", f"servers/{server_id}/vnc", json={"action": "enable"})
        return VirtFusionVnc.from_payload(response["data"]["vnc"])

    async def get_authentication_tokens(self, ext_user_id: int, server_id: int) -> dict[str, Any]:
        response = await self.request("POST", f"users/{ext_user_id}/serverAuthenticationTokens/{server_id}")
        return response["data"]["authentication"]

    # --- Users ---

    async def create_user(self, *, name: str, email: str, ext_relation_id: int | None = None) -> int:
        body: dict[str, Any] = {"name": name, "email": email, "sendMail": True}
        if ext_relation_id is not None:
            body["extRelationId"] = ext_relation_id
        response = await self.request("POST", "users", json=body)
        return int(response["data"]["id"])

    async def list_user_ssh_key_ids(self, user_id: int) -> list[int]:
        response = await self.request("GET", f"ssh_keys/user/{user_id}")
        return [int(key["id"]) for key in (response or {}).get("data") or [] if key.get("enabled")]

    # --- Catalogs ---

    async def list_packages(self) -> list[VirtFusionPackage]:
        response = await self.request("GET", "packages")
        return [VirtFusionPackage.from_payload(p) for p in (response or {}).get("data") or []]

    async def list_package_templates(self, package_id: int) -> list[VirtFusionTemplate]:
        response = await self.request("GET", f"media/templates/fromServerPackageSpec/{package_id}")
        return _flatten_template_groups(response)

    async def list_server_templates(self, server_id: int | str) -> list[VirtFusionTemplate]:
        response = await self.request("GET", f"servers/{server_id}/templates")
        return _flatten_template_groups(response)

    # --- Transport ---

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.TransportError as e:
            raise connection_error(e) from e

        body = response.text
        if not response.is_success:
            response_data = try_decode_json(body)
            message = error_message(response_data) or response.reason_phrase or "Unknown"
            raise ProviderApiError(
                f"Provider API error: {ucfirst(message)}",
                code=response.status_code,
                data={"http_code": response.status_code, "response_data": response_data},
                debug={"response_body": limit_text(body, self._body_limit)},
            )

        if body == "":
            return None

        parsed = try_decode_json(body)
        if parsed is None:
            raise UnknownResponseError(data={"response": limit_text(body, self._body_limit)})
        return parsed


def _flatten_template_groups(response: Any) -> list[VirtFusionTemplate]:
    return [
        VirtFusionTemplate.from_payload(template)
        for group in (response or {}).get("data") or []
        for template in group.get("templates") or []
    ]
