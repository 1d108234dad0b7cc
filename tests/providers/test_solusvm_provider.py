from urllib.parse import parse_qsl

import pytest

from provisioning.core.exceptions import NotFoundError, OperationRejectedError
from provisioning.providers.solusvm import SolusVMProvider, first_value
from provisioning.schemas.configuration import SolusVMConfiguration
from provisioning.schemas.server import CreateParams, ResizeParams, ServerIdentifierParams

INFOALL = {
    "status": "success",
    "state": "online",
    "mainipaddress": "192.0.2.9",
    "memory": "1024,256,768,25",
    "hdd": "20,4,16,20",
}
INFO = {
    "status": "success",
    "vserverid": "55",
    "hostname": "vps55.example.com",
    "type": "kvm",
    "template": "ubuntu-22",
    "node": "node1",
    "nodeid": "3",
    "cpus": "1",
}


def make_provider(vendor, **configuration) -> SolusVMProvider:
    configuration = SolusVMConfiguration(
        **{
            "hostname": "solus.example.com",
            "api_id": "api-id",
            "api_key": "api-key",
            "location_type": "node",
            "default_virtualization_type": "kvm",
            **configuration,
        }
    )
    return SolusVMProvider(configuration, vendor.transport)


def form(request) -> dict[str, str]:
    return dict(parse_qsl(request.content.decode()))


@pytest.fixture
def solusvm_server(solusvm_vendor):
    solusvm_vendor.on("vserver-infoall", INFOALL)
    solusvm_vendor.on("vserver-info", INFO)
    solusvm_vendor.on("listtemplates", {"status": "success", "templateskvm": "ubuntu-22|Ubuntu 22.04"})
    solusvm_vendor.on(
        "list-plans",
        {
            "status": "success",
            "plans": [
                {"id": 1, "name": "Small", "cpus": 1, "ram": 1024, "disk": 20},
                {"id": 2, "name": "Large", "cpus": 4, "ram": 8192, "disk": 160},
            ],
        },
    )
    solusvm_vendor.on("node-statistics", {"status": "success", "id": "3", "city": "Amsterdam", "country": "NL"})
    return solusvm_vendor


def by_id() -> ServerIdentifierParams:
    return ServerIdentifierParams(instance_id="55")


def test_first_value_keeps_total():
    assert first_value("1024,256,768,25") == "1024"
    assert first_value(None) is None
    assert first_value("") is None


class TestSolusVMInfo:
    async def test_plan_and_image_derived_from_catalogs(self, solusvm_server):
        result = await make_provider(solusvm_server).get_info(by_id())

        assert result.size == "Small"
        assert result.image == "Ubuntu 22.04"
        assert result.location == "Amsterdam, NL"
        assert result.ip_address == "192.0.2.9"
        assert result.node == "node1"
        assert solusvm_server.count("listtemplates") == 1
        assert solusvm_server.count("list-plans") == 1

    async def test_unmatched_specs_are_custom(self, solusvm_server):
        solusvm_server.on("vserver-infoall", {**INFOALL, "memory": "3072,0,3072,0"})
        result = await make_provider(solusvm_server).get_info(by_id())
        assert result.size == "Custom"

    async def test_node_lookup_failure_is_unknown_location(self, solusvm_server):
        solusvm_server.on("node-statistics", {"status": "error", "statusmsg": "Invalid node"})
        result = await make_provider(solusvm_server).get_info(by_id())
        assert result.location == "Unknown"

    async def test_console_connection(self, solusvm_server):
        solusvm_server.on(
            "vserver-console",
            {
                "status": "success",
                "consoleusername": "console55",
                "consoleip": "192.0.2.1",
                "consoleport": "22",
                "consolepassword": "pw",
                "sessionexpire": "3600",
                "created": "success",
            },
        )

        result = await make_provider(solusvm_server).get_connection(by_id())

        assert result.type == "ssh"
        assert result.command == "ssh console55@192.0.2.1 -p 22"
        assert result.message == "Serial console session started"
        assert result.password == "pw"
        assert result.expires_at is not None


class TestSolusVMCreate:
    async def test_create_with_new_customer(self, solusvm_server):
        solusvm_server.on("client-create", {"status": "success", "username": "jane@example.com"})
        solusvm_server.on("vserver-create", {"status": "success", "vserverid": "55"})

        params = CreateParams(
            email="jane@example.com", label="vps55", location="node1", image="Ubuntu 22.04", size="Small"
        )
        result = await make_provider(solusvm_server).create(params)

        assert result.message == "Server created"
        assert result.state == "creating"
        assert result.customer_identifier == "jane@example.com"

        create = next(form(r) for r in solusvm_server.requests if form(r)["action"] == "vserver-create")
        assert create["plan"] == "Small"
        assert create["template"] == "ubuntu-22"
        assert create["node"] == "node1"
        assert create["username"] == "jane@example.com"
        assert "nodegroup" not in create

    async def test_create_in_node_group_for_existing_customer(self, solusvm_server):
        solusvm_server.on("listnodegroups", {"status": "success", "nodegroups": "4|Europe,5|America"})
        solusvm_server.on("vserver-create", {"status": "success", "vserverid": "55"})

        params = CreateParams(
            email="jane@example.com",
            customer_identifier="jane",
            label="vps55",
            location="Europe",
            image="ubuntu-22",
            size="1",
        )
        await make_provider(solusvm_server, location_type="node_group").create(params)

        assert solusvm_server.count("client-create") == 0
        create = next(form(r) for r in solusvm_server.requests if form(r)["action"] == "vserver-create")
        assert create["nodegroup"] == "4"
        assert create["username"] == "jane"

    async def test_unsupported_virtualization_type(self, solusvm_vendor):
        params = CreateParams(
            email="jane@example.com",
            label="vps55",
            location="node1",
            image="Ubuntu",
            size="Small",
            virtualization_type="hyperv",
        )
        with pytest.raises(OperationRejectedError, match="Unsupported virtualization type"):
            await make_provider(solusvm_vendor).create(params)
        assert solusvm_vendor.requests == []

    async def test_unknown_plan(self, solusvm_server):
        params = CreateParams(
            email="jane@example.com", label="vps55", location="node1", image="Ubuntu 22.04", size="Huge"
        )
        with pytest.raises(NotFoundError) as exc_info:
            await make_provider(solusvm_server).create(params)
        assert exc_info.value.message == "Server size/plan not found"
        assert exc_info.value.data["size"] == "Huge"


class TestSolusVMActions:
    async def test_shutdown_when_offline_makes_no_call(self, solusvm_server):
        solusvm_server.on("vserver-infoall", {**INFOALL, "state": "offline"})

        result = await make_provider(solusvm_server).shutdown(by_id())

        assert result.message == "Server already offline"
        assert solusvm_server.count("vserver-shutdown") == 0

    async def test_power_on(self, solusvm_server):
        solusvm_server.on("vserver-infoall", {**INFOALL, "state": "offline"})
        solusvm_server.on("vserver-boot", {"status": "success"})

        result = await make_provider(solusvm_server).power_on(by_id())

        assert result.message == "Server booting"
        assert result.state == "booting"

    async def test_resize_changes_plan(self, solusvm_server):
        solusvm_server.on("vserver-infoall", {**INFOALL, "state": "offline"})
        solusvm_server.on("vserver-change", {"status": "success"})

        result = await make_provider(solusvm_server).resize(ResizeParams(instance_id="55", size="Large"))

        assert result.size == "Large"
        change = next(form(r) for r in solusvm_server.requests if form(r)["action"] == "vserver-change")
        assert change["plan"] == "Large"

    async def test_resize_refused_while_online(self, solusvm_server):
        with pytest.raises(OperationRejectedError):
            await make_provider(solusvm_server).resize(ResizeParams(instance_id="55", size="Large"))
        assert solusvm_server.count("vserver-change") == 0
