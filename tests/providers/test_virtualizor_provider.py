from urllib.parse import parse_qsl

import pytest

from provisioning.core.exceptions import NotFoundError, OperationRejectedError, UnknownResponseError
from provisioning.providers.virtualizor import VirtualizorProvider
from provisioning.schemas.configuration import VirtualizorConfiguration
from provisioning.schemas.server import CreateParams, ResizeParams, ServerIdentifierParams


def vps_details(status: int = 1, ips=None) -> dict:
    return {
        "vps": {
            "vpsid": "101",
            "vps_name": "v1001",
            "hostname": "web.example.com",
            "virt": "kvm",
            "plid": "3",
            "serid": "0",
            "os_name": "ubuntu-22.04-x86_64",
            "stats": {"status": status},
            "ips": {"1": "192.0.2.50"} if ips is None else ips,
        },
        "plans": {"3": {"plid": 3, "plan_name": "KVM Small", "virt": "kvm"}},
        "servers": {
            "0": {"serid": 0, "server_name": "localhost", "location": '{"city": "Paris", "country_code": "FR"}'},
        },
    }


PLANS = (
    {
        "plans": {
            "3": {"plid": 3, "plan_name": "KVM Small", "virt": "kvm"},
            "4": {"plid": 4, "plan_name": "KVM Large", "virt": "kvm"},
        }
    },
    {"plans": []},
)


def make_provider(vendor, location_type: str = "server") -> VirtualizorProvider:
    configuration = VirtualizorConfiguration(
        hostname="virt.example.com", api_key="key", api_password="secret", location_type=location_type
    )
    return VirtualizorProvider(configuration, vendor.transport)


def by_id() -> ServerIdentifierParams:
    return ServerIdentifierParams(instance_id="101")


def form(request) -> dict[str, str]:
    return dict(parse_qsl(request.content.decode()))


class TestVirtualizorInfo:
    async def test_get_info(self, virtualizor_vendor):
        virtualizor_vendor.on("editvs", vps_details())

        result = await make_provider(virtualizor_vendor).get_info(by_id())

        assert result.state == "On"
        assert result.label == "web.example.com [v1001]"
        assert result.ip_address == "192.0.2.50"
        assert result.size == "KVM Small"
        assert result.location == "localhost"
        assert result.image == "ubuntu-22.04-x86_64"

    async def test_geographic_location(self, virtualizor_vendor):
        virtualizor_vendor.on("editvs", vps_details())
        result = await make_provider(virtualizor_vendor, "geographic").get_info(by_id())
        assert result.location == "Paris, FR"

    async def test_plan_and_server_looked_up_when_not_embedded(self, virtualizor_vendor):
        details = vps_details()
        details["plans"] = []
        details["servers"] = []
        virtualizor_vendor.on("editvs", details)
        virtualizor_vendor.on("plans", *PLANS)
        virtualizor_vendor.on(
            "servers",
            {"servs": {"0": {"serid": 0, "server_name": "localhost", "location": None}}},
            {"servs": []},
        )

        result = await make_provider(virtualizor_vendor).get_info(by_id())

        assert result.size == "KVM Small"
        assert result.location == "localhost"
        assert result.node == "localhost"
        plans_request = next(r for r in virtualizor_vendor.requests if r.url.params["act"] == "plans")
        assert "ptype" not in form(plans_request)

    async def test_unlisted_plan_is_custom(self, virtualizor_vendor):
        details = vps_details()
        details["vps"]["plid"] = "0"
        virtualizor_vendor.on("editvs", details)

        result = await make_provider(virtualizor_vendor).get_info(by_id())

        assert result.size == "Custom"
        assert virtualizor_vendor.count("plans") == 0

    async def test_html_page_is_unknown_response(self, virtualizor_vendor):
        virtualizor_vendor.on("editvs", vps_details(status=0))
        virtualizor_vendor.on("plans", "<html>Login</html>")

        with pytest.raises(UnknownResponseError) as exc_info:
            await make_provider(virtualizor_vendor).resize(ResizeParams(instance_id="101", size="KVM Large"))

        assert exc_info.value.debug["response_body"] == "<html>Login</html>"
        assert exc_info.value.data["operation"] == "resize"

    async def test_vnc_without_ips(self, virtualizor_vendor):
        virtualizor_vendor.on("editvs", vps_details(ips=[]))
        virtualizor_vendor.on("vnc", {"info": {"ip": "192.0.2.1", "port": 5901, "password": "vncpw"}})

        result = await make_provider(virtualizor_vendor).get_connection(by_id())

        assert result.type == "vnc"
        assert result.vnc_connection.port == 5901
        assert result.message == "VNC connection obtained"


class TestVirtualizorPower:
    async def test_power_on_when_on_is_noop(self, virtualizor_vendor):
        virtualizor_vendor.on("editvs", vps_details(status=1))

        result = await make_provider(virtualizor_vendor).power_on(by_id())

        assert result.message == "Virtual server already on"
        assert virtualizor_vendor.count("vs") == 0

    async def test_shutdown(self, virtualizor_vendor):
        virtualizor_vendor.on("editvs", vps_details(status=1))
        virtualizor_vendor.on("vs", {"done": 1})

        result = await make_provider(virtualizor_vendor).shutdown(by_id())

        assert result.message == "Virtual server stopping"
        assert result.state == "Stopping"
        action = next(r for r in virtualizor_vendor.requests if r.url.params["act"] == "vs")
        assert action.url.params["action"] == "stop"

    async def test_suspend_flags_server(self, virtualizor_vendor):
        virtualizor_vendor.on("editvs", vps_details(status=0))

        result = await make_provider(virtualizor_vendor).suspend(by_id())

        assert result.suspended is True
        assert result.message == "Virtual server already off"

    async def test_terminate(self, virtualizor_vendor):
        virtualizor_vendor.on("vs", {"done": 1})
        result = await make_provider(virtualizor_vendor).terminate(by_id())
        assert result.message == "Virtual server deleted"
        assert virtualizor_vendor.requests[0].url.params["delete"] == "101"


class TestVirtualizorResize:
    async def test_refused_while_on(self, virtualizor_vendor):
        virtualizor_vendor.on("editvs", vps_details(status=1))

        with pytest.raises(OperationRejectedError, match="Resize not available while server is running"):
            await make_provider(virtualizor_vendor).resize(ResizeParams(instance_id="101", size="KVM Large"))

        assert virtualizor_vendor.count("editvs") == 1
        assert virtualizor_vendor.count("plans") == 0

    async def test_vendor_done_message(self, virtualizor_vendor):
        virtualizor_vendor.on(
            "editvs", vps_details(status=0), {"done": 1, "done_msg": "VPS plan changed"}, vps_details(status=0)
        )
        virtualizor_vendor.on("plans", *PLANS)

        result = await make_provider(virtualizor_vendor).resize(ResizeParams(instance_id="101", size="KVM Large"))

        assert result.message == "VPS plan changed"
        assert result.size == "KVM Large"
        change = [r for r in virtualizor_vendor.requests if r.url.params["act"] == "editvs"][1]
        assert form(change)["plid"] == "4"


class TestVirtualizorCreate:
    def params(self, **changes) -> CreateParams:
        return CreateParams(
            **{
                "email": "jane@example.com",
                "label": "web.example.com",
                "location": "EU",
                "image": "ubuntu-22.04",
                "size": "KVM Small",
                **changes,
            }
        )

    async def test_create_in_server_group(self, virtualizor_vendor):
        virtualizor_vendor.on("plans", *PLANS)
        virtualizor_vendor.on(
            "ostemplates",
            {
                "ostemplates": {
                    "90": {"name": "ubuntu-22.04", "type": "xen"},
                    "100": {"name": "ubuntu-22.04", "type": "kvm"},
                }
            },
        )
        virtualizor_vendor.on("servergroups", {"servergroups": {"2": {"sg_name": "EU"}}})
        virtualizor_vendor.on("addvs", {"done": 1, "vpsid": 101})
        virtualizor_vendor.on("editvs", vps_details(status=0))

        result = await make_provider(virtualizor_vendor, "server_group").create(self.params())

        assert result.message == "Virtual server creating"
        assert result.state == "Creating"
        sent = form(next(r for r in virtualizor_vendor.requests if r.url.params["act"] == "addvs"))
        assert sent["plid"] == "3"
        assert sent["osid"] == "100"
        assert sent["node_select"] == "1"
        assert sent["server_group"] == "2"

    async def test_unknown_plan_names_virtualization_type(self, virtualizor_vendor):
        virtualizor_vendor.on("plans", {"plans": []})

        with pytest.raises(NotFoundError, match="KVM plan not found"):
            await make_provider(virtualizor_vendor).create(self.params(size="Nope"))
