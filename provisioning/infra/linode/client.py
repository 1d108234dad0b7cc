"""
LinodeClient: thin async wrapper over the Linode API v4.

Every non-2xx response is raised as ``ProviderApiError``; when Linode returns its
``{"errors": [{"field", "reason"}]}`` shape the reasons become the message and
the individual errors are kept in ``data["errors"]``.
"""

import json
import logging
from typing import Any

import httpx

from provisioning.core.exceptions import ProviderApiError
from provisioning.core.utils import limit_text
from provisioning.infra.http import TransportConfig, build_client, connection_error, decode_json, try_decode_json
from provisioning.infra.linode.records import LinodeDisk, LinodeImage, LinodeInstance, LinodeRegion, LinodeType
from provisioning.schemas.configuration import LinodeConfiguration

logger = logging.getLogger(__name__)

BASE_URL = "https://api.linode.com/v4/"
PAGE_SIZE = 500


class LinodeClient:
    def __init__(self, configuration: LinodeConfiguration, transport: TransportConfig) -> None:
        self._body_limit = transport.body_limit
        self._client = build_client(
            transport.but(debug=transport.debug or configuration.debug),
            base_url=BASE_URL,
            headers={
                "Authorization": f"Bearer {configuration.access_token.get_secret_value()}",
                "Accept": "application/json",
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # --- Instances ---

    async def get_instance(self, instance_id: int | str) -> LinodeInstance:
        return LinodeInstance.from_payload(await self._request("GET", f"linode/instances/{instance_id}"))

    async def create_instance(self, **fields: Any) -> LinodeInstance:
        payload = {k: v for k, v in fields.items() if v is not None}
        return LinodeInstance.from_payload(await self._request("POST", "linode/instances", json=payload))

    async def rebuild(self, instance_id: int | str, image: str, root_pass: str) -> LinodeInstance:
        payload = await self._request(
            "POST", f"linode/instances/{instance_id}/rebuild", json={"image": image, "root_pass": root_pass}
        )
        return LinodeInstance.from_payload(payload)

    async def resize(self, instance_id: int | str, type_id: str) -> None:
        await self._request("POST", f"linode/instances/{instance_id}/resize", json={"type": type_id})

    async def reboot(self, instance_id: int | str) -> None:
        await self._request("POST", f"linode/instances/{instance_id}/reboot")

    async def shutdown(self, instance_id: int | str) -> None:
        await self._request("POST", f"linode/instances/{instance_id}/shutdown")

    async def boot(self, instance_id: int | str) -> None:
        await self._request("POST", f"linode/instances/{instance_id}/boot")

    async def delete_instance(self, instance_id: int | str) -> None:
        await self._request("DELETE", f"linode/instances/{instance_id}")

    async def list_disks(self, instance_id: int | str) -> list[LinodeDisk]:
        return [LinodeDisk.from_payload(d) for d in await self._paginate(f"linode/instances/{instance_id}/disks")]

    async def reset_disk_password(self, instance_id: int | str, disk_id: int, password: str) -> None:
        await self._request(
            "POST", f"linode/instances/{instance_id}/disks/{disk_id}/password", json={"password": password}
        )

    # --- Catalogs ---

    async def get_image(self, image_id: str) -> LinodeImage:
        return LinodeImage.from_payload(await self._request("GET", f"images/{image_id}"))

    async def list_images(self, label: str | None = None) -> list[LinodeImage]:
        headers = {"X-Filter": json.dumps({"label": label})} if label is not None else None
        return [LinodeImage.from_payload(i) for i in await self._paginate("images", headers=headers)]

    async def get_type(self, type_id: str) -> LinodeType:
        return LinodeType.from_payload(await self._request("GET", f"linode/types/{type_id}"))

    async def list_types(self) -> list[LinodeType]:
        return [LinodeType.from_payload(t) for t in await self._paginate("linode/types")]

    async def get_region(self, region_id: str) -> LinodeRegion:
        return LinodeRegion.from_payload(await self._request("GET", f"regions/{region_id}"))

    # --- Transport ---

    async def _paginate(self, path: str, headers: dict[str, str] | None = None) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        page = 1
        while True:
            payload = await self._request(
                "GET", path, params={"page": page, "page_size": PAGE_SIZE}, headers=headers
            )
            data = payload.get("data") or []
            results.extend(data)
            if not data or page >= int(payload.get("pages") or 1):
                return results
            page += 1

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json, params=params, headers=headers)
        except httpx.TransportError as e:
            raise connection_error(e) from e

        if response.is_success:
            return decode_json(response.text, self._body_limit) if response.text else {}

        body = try_decode_json(response.text)
        errors = body.get("errors") if isinstance(body, dict) else None
        debug = {"response_body": limit_text(response.text, self._body_limit)}

        if errors:
            errors = [{"field": e.get("field"), "reason": e.get("reason")} for e in errors]
            message = "; ".join(str(e["reason"]) for e in errors if e["reason"])
            raise ProviderApiError(
                message or response.reason_phrase,
                code=response.status_code,
                data={"errors": errors},
                debug=debug,
            )

        raise ProviderApiError(
            f"HTTP {response.status_code} {response.reason_phrase}".strip(),
            code=response.status_code,
            debug=debug,
        )
