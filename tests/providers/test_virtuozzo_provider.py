"""
Virtuozzo adapter against an in-memory client double.
"""

import dataclasses

import pytest

from provisioning.core.exceptions import NotFoundError, OperationRejectedError, ProviderApiError
from provisioning.infra.virtuozzo.client import EMPTY_RESPONSE
from provisioning.infra.virtuozzo.records import VirtuozzoEnvironment
from provisioning.providers.virtuozzo import VirtuozzoProvider
from provisioning.schemas.configuration import VirtuozzoConfiguration
from provisioning.schemas.server import CreateParams, ResizeParams, ServerIdentifierParams

ENVIRONMENT = VirtuozzoEnvironment(
    eid="8f3c-env",
    state="running",
    name="web1",
    ip_address="203.0.113.40",
    hostname="web1.example.com",
    os_name=None,
    memory_mb=2048,
    cpu_count=2,
    disk_size=20480,
    home_path="/vz/private/web1",
    sys_name="hdd0",
    interface="vzpenvm",
)


class FakeVirtuozzoClient:
    def __init__(self, environment: VirtuozzoEnvironment | None = ENVIRONMENT, error: Exception | None = None):
        self.environment = environment
        self.error = error
        self.calls: list[tuple] = []
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True

    async def get_environment(self, server_id):
        if self.error is not None:
            raise self.error
        return self.environment

    async def create(self, **fields):
        self.calls.append(("create", fields))
        return self.environment.eid

    async def set_config(self, server_id, **fields):
        self.calls.append(("set_config", server_id, fields))

    def __getattr__(self, name):
        async def record(*args):
            self.calls.append((name, *args))

        return record

    @property
    def names(self) -> list[str]:
        return [call[0] for call in self.calls]


def make_provider(client: FakeVirtuozzoClient) -> VirtuozzoProvider:
    configuration = VirtuozzoConfiguration(hostname="vz.example.com", username="admin", password="secret")
    return VirtuozzoProvider(configuration, client=client)


def by_id() -> ServerIdentifierParams:
    return ServerIdentifierParams(instance_id="8f3c-env")


class TestVirtuozzoProvider:
    async def test_get_info(self):
        result = await make_provider(FakeVirtuozzoClient()).get_info(by_id())

        assert result.state == "running"
        assert result.image == "Linux"
        assert result.location == "/vz/private/web1"
        assert result.node == "vz.example.com"
        assert result.disk_mb == 20480

    async def test_empty_response_is_not_found(self):
        client = FakeVirtuozzoClient(error=ProviderApiError(EMPTY_RESPONSE))

        with pytest.raises(NotFoundError) as exc_info:
            await make_provider(client).get_info(by_id())

        assert exc_info.value.data["instance_id"] == "8f3c-env"

    async def test_create_rejects_named_size(self):
        client = FakeVirtuozzoClient()
        params = CreateParams(
            email="jane@example.com", label="web1", location="/vz/private", image="centos-7", size="small"
        )

        with pytest.raises(OperationRejectedError, match="Size parameter not supported"):
            await make_provider(client).create(params)

        assert client.calls == []

    async def test_create_installs_tools_and_starts(self):
        client = FakeVirtuozzoClient()
        params = CreateParams(
            email="jane@example.com",
            label="web1",
            location="/vz/private",
            image="centos-7",
            memory_mb=2048,
            cpu_cores=2,
            disk_mb=20480,
        )

        result = await make_provider(client).create(params)

        assert result.message == "Server created successfully!"
        assert client.names == ["create", "install_guest_tools", "start"]
        assert client.calls[0][1]["interface"] is None

    async def test_create_uses_requested_interface(self):
        client = FakeVirtuozzoClient()
        params = CreateParams(
            email="jane@example.com",
            label="web1",
            location="/vz/private",
            image="centos-7",
            memory_mb=1024,
            cpu_cores=1,
            disk_mb=10240,
            virtualization_type="vzpct",
        )

        await make_provider(client).create(params)

        assert client.calls[0] == (
            "create",
            {
                "label": "web1",
                "location": "/vz/private",
                "image": "centos-7",
                "memory_mb": 1024,
                "cpu_cores": 1,
                "disk_mb": 10240,
                "interface": "vzpct",
            },
        )

    async def test_resize_stops_configures_and_starts(self):
        client = FakeVirtuozzoClient(dataclasses.replace(ENVIRONMENT, state="stopped"))
        params = ResizeParams(instance_id="8f3c-env", memory_mb=4096, cpu_cores=4, disk_mb=40960)

        result = await make_provider(client).resize(params)

        assert result.message == "Server is resizing"
        assert client.names == ["stop", "set_config", "start"]
        assert client.calls[1][2]["sys_name"] == "hdd0"
        assert client.calls[1][2]["ip"] == "203.0.113.40"

    async def test_resize_refused_while_running(self):
        client = FakeVirtuozzoClient()
        params = ResizeParams(instance_id="8f3c-env", memory_mb=4096, cpu_cores=4, disk_mb=40960)

        with pytest.raises(OperationRejectedError):
            await make_provider(client).resize(params)

        assert client.calls == []

    async def test_power_on_running_is_noop(self):
        client = FakeVirtuozzoClient()
        result = await make_provider(client).power_on(by_id())
        assert result.message == "Virtual server already on"
        assert client.calls == []

    async def test_shutdown(self):
        client = FakeVirtuozzoClient()
        result = await make_provider(client).shutdown(by_id())
        assert result.state == "Stopping"
        assert client.names == ["stop"]

    async def test_context_manager_closes_client(self):
        client = FakeVirtuozzoClient()
        async with make_provider(client) as provider:
            await provider.terminate(by_id())
        assert client.names == ["stop", "destroy"]
        assert client.closed
