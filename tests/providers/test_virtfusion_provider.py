import json

import pytest

from provisioning.core.exceptions import NotFoundError, OperationRejectedError, ProviderApiError
from provisioning.providers.virtfusion import VirtFusionProvider
from provisioning.schemas.configuration import VirtFusionConfiguration
from provisioning.schemas.server import CreateParams, ResizeParams, ServerIdentifierParams

API = "/api/v1"
SERVER_PATH = f"{API}/servers/7"


def server(state: str = "running", admin: bool = False, **changes) -> dict:
    payload = {
        "id": 7,
        "name": "web-01",
        "hostname": "web-01.host",
        "state": "complete",
        "remoteState": {"state": state},
        "suspended": False,
        "ownerId": 3,
        "owner": {"id": 3, "admin": admin, "extRelationId": 42},
        "network": {
            "interfaces": [
                {"enabled": True, "ipv4": [{"address": "203.0.113.5", "enabled": True}]},
            ]
        },
        "settings": {
            "osTemplateInstallId": 12,
            "resources": {"memory": 1024, "cpuCores": 1, "storage": 25},
            "hyperv": {"vendorIdValue": "kvm"},
        },
        "hypervisor": {"name": "hv1"},
        "created": "2024-05-01T12:00:00+00:00",
        "updated": "2024-05-02T12:00:00+00:00",
        **changes,
    }
    return {"data": payload}


TEMPLATES = {"data": [{"templates": [{"id": 12, "name": "Debian", "version": "12", "variant": "Minimal"}]}]}


def make_provider(vendor) -> VirtFusionProvider:
    configuration = VirtFusionConfiguration(hostname="vf.example.com", api_token="token", hypervisor_id=1)
    return VirtFusionProvider(configuration, vendor.transport)


def by_id() -> ServerIdentifierParams:
    return ServerIdentifierParams(instance_id="7")


@pytest.fixture
def virtfusion(vendor):
    vendor.on(("GET", SERVER_PATH), server())
    vendor.on(("GET", f"{SERVER_PATH}/templates"), TEMPLATES)
    return vendor


class TestVirtFusionInfo:
    async def test_get_info(self, virtfusion):
        result = await make_provider(virtfusion).get_info(by_id())

        assert result.state == "running"
        assert result.image == "Debian 12 Minimal"
        assert result.disk_mb == 25 * 1024
        assert result.ip_address == "203.0.113.5"
        assert result.customer_identifier == 42
        assert result.created_at == "2024-05-01 12:00:00"
        assert virtfusion.requests[0].url.params["remoteState"] == "true"

    async def test_customer_gets_login_redirect(self, virtfusion):
        virtfusion.on(
            ("POST", f"{API}/users/42/serverAuthenticationTokens/7"),
            {"data": {"authentication": {"endpoint_complete": "/auth/token/abc"}}},
        )

        result = await make_provider(virtfusion).get_connection(by_id())

        assert result.type == "redirect"
        assert result.redirect_url == "https://vf.example.com/auth/token/abc"
        assert result.message == "Login URL generated"

    async def test_admin_owner_gets_vnc(self, virtfusion):
        virtfusion.on(("GET", SERVER_PATH), server(admin=True))
        virtfusion.on(
            ("POST", f"{SERVER_PATH}/vnc"),
            {"data": {"vnc": {"ip": "203.0.113.1", "hostname": "hv1.example.com", "port": 5901, "password": "vncpw"}}},
        )

        result = await make_provider(virtfusion).get_connection(by_id())

        assert result.type == "vnc"
        assert result.vnc_connection.host == "hv1.example.com"
        assert result.vnc_connection.port == 5901
        assert result.message == "VNC connection enabled"


class TestVirtFusionCreate:
    @pytest.fixture
    def catalogs(self, virtfusion):
        virtfusion.on(("GET", f"{API}/packages"), {"data": [{"id": 2, "name": "Starter"}]})
        virtfusion.on(("GET", f"{API}/media/templates/fromServerPackageSpec/2"), TEMPLATES)
        virtfusion.on(("POST", f"{API}/users"), {"data": {"id": 3}})
        virtfusion.on(("POST", f"{API}/servers"), {"data": {"id": 7}})
        virtfusion.on(
            ("GET", f"{API}/ssh_keys/user/3"),
            {"data": [{"id": 5, "enabled": True}, {"id": 6, "enabled": False}]},
        )
        return virtfusion

    def params(self, **changes) -> CreateParams:
        return CreateParams(
            **{
                "email": "jane@example.com",
                "label": "web-01",
                "location": "4",
                "image": "Debian 12",
                "size": "Starter",
                "metadata": {"ext_relation_id": "42"},
                **changes,
            }
        )

    def sent(self, vendor, method: str, path: str) -> dict:
        request = next(r for r in vendor.requests if r.method == method and r.url.path == path)
        return json.loads(request.content)

    async def test_create_builds_with_user_keys(self, catalogs):
        catalogs.on(("POST", f"{SERVER_PATH}/build"), "")

        result = await make_provider(catalogs).create(self.params())

        assert result.message == "Server created successfully!"
        assert result.customer_identifier == 3
        assert self.sent(catalogs, "POST", f"{API}/users")["extRelationId"] == 42
        assert self.sent(catalogs, "POST", f"{API}/servers") == {
            "userId": 3,
            "packageId": 2,
            "ipv4": 1,
            "hypervisorId": 4,
        }
        build = self.sent(catalogs, "POST", f"{SERVER_PATH}/build")
        assert build["operatingSystemId"] == 12
        assert build["sshKeys"] == [5]

    async def test_existing_user_and_default_hypervisor(self, catalogs):
        catalogs.on(("POST", f"{SERVER_PATH}/build"), "")

        await make_provider(catalogs).create(self.params(customer_identifier="3", location="Anywhere"))

        assert catalogs.count(("POST", f"{API}/users")) == 0
        assert self.sent(catalogs, "POST", f"{API}/servers")["hypervisorId"] == 1

    async def test_build_failure(self, catalogs):
        catalogs.on(("POST", f"{SERVER_PATH}/build"), (422, {"errors": ["Template unavailable"]}))

        with pytest.raises(ProviderApiError) as exc_info:
            await make_provider(catalogs).create(self.params())

        assert exc_info.value.message == "Server building failed"
        assert exc_info.value.data["instance_id"] == 7

    async def test_unknown_package(self, catalogs):
        with pytest.raises(NotFoundError, match="Package Enterprise not found"):
            await make_provider(catalogs).create(self.params(size="Enterprise"))


class TestVirtFusionPower:
    async def test_failed_server_refuses_reboot(self, virtfusion):
        virtfusion.on(("GET", SERVER_PATH), server(state="failed"))

        with pytest.raises(OperationRejectedError, match="Virtual server is not operational."):
            await make_provider(virtfusion).reboot(by_id())

        assert virtfusion.count(("POST", f"{SERVER_PATH}/power/restart")) == 0

    async def test_shutdown_when_stopped(self, virtfusion):
        virtfusion.on(("GET", SERVER_PATH), server(state="shutoff"))

        result = await make_provider(virtfusion).shutdown(by_id())

        assert result.message == "Virtual server already off"
        assert virtfusion.count(("POST", f"{SERVER_PATH}/power/shutdown")) == 0

    async def test_power_on(self, virtfusion):
        virtfusion.on(("GET", SERVER_PATH), server(state="stopped"))
        virtfusion.on(("POST", f"{SERVER_PATH}/power/boot"), "")

        result = await make_provider(virtfusion).power_on(by_id())

        assert result.message == "Server is booting"
        assert result.state == "Starting"

    async def test_suspend_already_suspended(self, virtfusion):
        virtfusion.on(("GET", SERVER_PATH), server(suspended=True))

        result = await make_provider(virtfusion).suspend(by_id())

        assert result.message == "Virtual server already suspended"
        assert virtfusion.count(("POST", f"{SERVER_PATH}/suspend")) == 0

    async def test_resize_with_running_opt_in(self, virtfusion):
        virtfusion.on(("PUT", f"{SERVER_PATH}/package/9"), {"data": {"queued": True}})

        result = await make_provider(virtfusion).resize(ResizeParams(instance_id="7", size="9", resize_running=True))

        assert result.message == "Server is resizing"
        assert result.data == {"response_data": {"data": {"queued": True}}}
