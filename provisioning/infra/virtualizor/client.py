"""
VirtualizorClient: async client for the Virtualizor admin API.

Calls are ``POST /index.php`` with ``act`` and the admin credentials in the query
string, action data in a form body, and a fresh ``apikey`` hash per call: an
8 digit nonce followed by ``md5(api_password + nonce)``.
"""

import hashlib
import logging
from collections.abc import Sized
from typing import Any

import httpx

from provisioning.core.exceptions import ProviderApiError, UnknownResponseError
from provisioning.core.utils import generate_password, limit_text
from provisioning.infra.http import TransportConfig, build_client, connection_error, try_decode_json
from provisioning.infra.virtualizor.records import (
    VirtualizorOsTemplate,
    VirtualizorPlan,
    VirtualizorServer,
    VirtualizorServerGroup,
    VirtualizorVnc,
    VirtualizorVps,
)
from provisioning.schemas.configuration import VirtualizorConfiguration

logger = logging.getLogger(__name__)

DEFAULT_PORT = 4085
REQUEST_TIMEOUT = 15
PAGE_SIZE = 100

REDACTED_KEYS = ("vs", "vpses", "ostemplates", "scripts", "plans", "servers", "users")


def condense_response_data(response_data: dict[str, Any] | None) -> dict[str, Any] | None:
    """Replace large collections with ``[redacted N key]`` markers."""
    if not response_data:
        return response_data

    condensed = dict(response_data)
    for key in REDACTED_KEYS:
        value = condensed.get(key)
        if isinstance(value, Sized) and not isinstance(value, str) and len(value) > 1:
            condensed[key] = f"[redacted {len(value)} {key}]"
    return condensed


def api_key_hash(api_password: str, nonce: str | None = None) -> str:
    nonce = nonce or generate_password(8, letters=False, digits=True)
    return nonce + hashlib.md5((api_password + nonce).encode()).hexdigest()


def error_message(response_data: dict[str, Any]) -> str | None:
    if not (
        response_data.get("fatal_error_text") or response_data.get("error_heading") or response_data.get("error")
    ):
        return None

    message = "API Error"
    if response_data.get("title"):
        message += f" [{response_data['title']}]"
    if response_data.get("fatal_error_heading"):
        message += f": {response_data['fatal_error_heading']}"
    if response_data.get("fatal_error_text"):
        message += f": {response_data['fatal_error_text']}"

    errors = response_data.get("error")
    if errors:
        if isinstance(errors, dict):
            errors = list(errors.values())
        elif not isinstance(errors, list):
            errors = [errors]
        message += ": " + ", ".join(str(e) for e in errors)
    return message


class VirtualizorClient:
    def __init__(self, configuration: VirtualizorConfiguration, transport: TransportConfig) -> None:
        self._api_key = configuration.api_key.get_secret_value()
        self._api_password = configuration.api_password.get_secret_value()
        self._timeout = httpx.Timeout(REQUEST_TIMEOUT, connect=transport.connect_timeout)
        self._body_limit = transport.body_limit
        self._client = build_client(
            transport.but(
                verify=not configuration.ignore_ssl_errors,
                debug=transport.debug or configuration.debug,
            ),
            base_url=f"https://{configuration.hostname}:{configuration.port or DEFAULT_PORT}/",
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # --- Virtual servers ---

    async def create_virtual_server(
        self,
        *,
        virt: str,
        plan_id: str,
        os_id: str,
        hostname: str,
        email: str,
        password: str | None,
        server_id: str | None = None,
        server_group_id: str | None = None,
    ) -> str:
        password = password or generate_password(16, symbols=True)
        post: dict[str, Any] = {
            "virt": virt,
            "plid": plan_id,
            "osid": os_id,
            "hostname": hostname,
            "user_email": email,
            "user_pass": password,
            "rootpass": password,
            "control_panel": 0,
            "addvps": 1,
        }
        if server_group_id is not None:
            post.update({"node_select": 1, "server_group": server_group_id})
        else:
            post.update({"node_select": 0, "slave_server": server_id})

        data = await self.call("addvs", post=post)
        if not data.get("done"):
            raise ProviderApiError(
                "Virtual server creation unsuccessful",
                data={
                    **{k: v for k, v in post.items() if k not in ("user_pass", "rootpass")},
                    "response_data": condense_response_data(data),
                },
            )

        vps = data.get("vs_info") or {}
        return str(data.get("vpsid") or vps.get("vpsid") or data["done"])

    async def run_action(self, vpsid: str, action: str) -> dict[str, Any]:
        """Run ``start``, ``stop``, ``restart`` or ``poweroff`` against a virtual server."""
        data = await self.call("vs", query={"vpsid": vpsid, "action": action})
        if not data.get("done"):
            raise ProviderApiError(
                f"Virtual server {action} unsuccessful",
                data={"vpsid": vpsid, "action": action, "response_data": condense_response_data(data)},
            )
        return data

    async def get_vps_details(
        self, vpsid: str
    ) -> tuple[VirtualizorVps, dict[str, VirtualizorPlan], dict[str, VirtualizorServer]]:
        """Everything ``editvs`` knows about a virtual server, with its plan and host server maps."""
        data = await self.call("editvs", query={"vpsid": vpsid})
        if not data.get("vps"):
            raise ProviderApiError(
                "Virtual server not found",
                code=404,
                data={"vpsid": vpsid, "response_data": condense_response_data(data)},
            )

        plans = {str(k): VirtualizorPlan.from_payload(v) for k, v in _as_mapping(data.get("plans")).items()}
        servers = {str(k): VirtualizorServer.from_payload(v) for k, v in _as_mapping(data.get("servers")).items()}
        return VirtualizorVps.from_payload(data["vps"]), plans, servers

    async def change_root_password(self, vpsid: str, password: str) -> dict[str, Any]:
        data = await self.call(
            "managevps",
            query={"vpsid": vpsid},
            post={"rootpass": password, "enable_guest_agent": 1, "editvps": 1},
        )
        done = data.get("done")
        if not isinstance(done, dict) or not done.get("change_pass_msg"):
            raise ProviderApiError(
                "Virtual server password change unsuccessful",
                data={"vpsid": vpsid, "response_data": condense_response_data(data)},
            )
        return data

    async def change_plan(self, vpsid: str, plan_id: str) -> dict[str, Any]:
        data = await self.call("editvs", query={"vpsid": vpsid}, post={"plid": plan_id, "editvps": 1})
        if not data.get("done"):
            raise ProviderApiError(
                "Virtual server plan change unsuccessful",
                data={"vpsid": vpsid, "response_data": condense_response_data(data)},
            )
        return data

    async def rebuild(self, vpsid: str, os_id: str, password: str | None = None) -> dict[str, Any]:
        password = password or generate_password(16, symbols=True)
        data = await self.call(
            "rebuild",
            query={"vpsid": vpsid},
            post={
                "vpsid": vpsid,
                "osid": os_id,
                "newos": os_id,
                "newpass": password,
                "conf": password,
                "control_panel": 0,
                "reos": 1,
            },
        )
        if not data.get("done"):
            raise ProviderApiError(
                "Virtual server rebuild unsuccessful",
                data={"vpsid": vpsid, "osid": os_id, "response_data": condense_response_data(data)},
            )
        return data

    async def delete(self, vpsid: str) -> dict[str, Any]:
        data = await self.call("vs", query={"delete": vpsid})
        if not data.get("done"):
            raise ProviderApiError(
                "Virtual server delete unsuccessful",
                data={"vpsid": vpsid, "response_data": condense_response_data(data)},
            )
        return data

    async def get_vnc(self, vpsid: str) -> VirtualizorVnc:
        data = await self.call("vnc", query={"novnc": vpsid})
        return VirtualizorVnc.from_payload(data["info"])

    # --- Catalogs ---

    async def list_plans(self, virt: str | None = None) -> list[VirtualizorPlan]:
        post = {"ptype": virt} if virt else {}
        return [VirtualizorPlan.from_payload(p) for p in await self._paginate("plans", "plans", post)]

    async def list_servers(self) -> list[VirtualizorServer]:
        return [VirtualizorServer.from_payload(s) for s in await self._paginate("servers", "servs")]

    async def list_server_groups(self) -> list[VirtualizorServerGroup]:
        data = await self.call("servergroups")
        return [
            VirtualizorServerGroup.from_payload({"sgid": sgid, **group})
            for sgid, group in _as_mapping(data.get("servergroups")).items()
        ]

    async def list_os_templates(self) -> list[VirtualizorOsTemplate]:
        data = await self.call("ostemplates")
        return [
            VirtualizorOsTemplate.from_payload(osid, template)
            for osid, template in _as_mapping(data.get("ostemplates")).items()
        ]

    async def _paginate(self, act: str, key: str, post: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Fetch ``act`` page by page until a page comes back empty."""
        results: list[dict[str, Any]] = []
        page = 1
        while True:
            data = await self.call(act, query={"page": page, "reslen": PAGE_SIZE}, post=post)
            entries = list(_as_mapping(data.get(key)).values())
            if not entries:
                return results
            results.extend(entries)
            page += 1

    # --- Transport ---

    async def call(
        self, act: str, query: dict[str, Any] | None = None, post: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        params = {
            **(query or {}),
            "api": "json",
            "act": act,
            "adminapikey": self._api_key,
            "adminapipass": self._api_password,
            "apikey": api_key_hash(self._api_password),
        }
        try:
            response = await self._client.post(
                "index.php", params=params, data=post or None, timeout=self._timeout
            )
        except httpx.TransportError as e:
            raise connection_error(e) from e

        debug = {"response_body": limit_text(response.text, self._body_limit)}
        response_data = try_decode_json(response.text)
        if not isinstance(response_data, dict):
            if response.status_code == 200:
                raise UnknownResponseError(data={"http_code": response.status_code}, debug=debug)
            response_data = {}

        message = error_message(response_data)
        if message is None and response.status_code != 200:
            message = f"API {response.status_code} Error"

        if message is not None:
            raise ProviderApiError(
                message,
                code=response.status_code,
                data={"http_code": response.status_code, "response_data": condense_response_data(response_data)},
                debug=debug,
            )

        return response_data


def _as_mapping(value: Any) -> dict[Any, Any]:
    """Virtualizor returns keyed objects, or an empty list when there's nothing."""
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        return dict(enumerate(value))
    return {}
