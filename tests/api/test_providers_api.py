"""
Tests for /api/v1/providers — listing and operation dispatch.
"""

from httpx import AsyncClient

from provisioning.schemas.common import ErrorResponse

LINODE_CONFIGURATION = {"access_token": "token"}
INSTANCE = {
    "id": 123,
    "label": "web-01",
    "status": "running",
    "region": "us-east",
    "type": "g6-nanode-1",
    "image": "linode/ubuntu22.04",
    "ipv4": ["192.0.2.10"],
    "specs": {"memory": 1024, "vcpus": 1, "disk": 25600},
}


class TestListProviders:
    async def test_lists_every_provider(self, client: AsyncClient):
        resp = await client.get("/api/v1/providers")
        assert resp.status_code == 200
        keys = [p["key"] for p in resp.json()]
        assert sorted(keys) == ["linode", "onapp", "solusvm", "virtfusion", "virtualizor", "virtuozzo"]
        assert all(p["name"] and p["description"] for p in resp.json())


class TestRunOperation:
    async def test_get_info(self, client: AsyncClient, vendor):
        vendor.on(("GET", "/v4/linode/instances/123"), INSTANCE)

        resp = await client.post(
            "/api/v1/providers/linode/get_info",
            json={"configuration": LINODE_CONFIGURATION, "params": {"instance_id": "123"}},
        )

        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["instance_id"] == "123"
        assert data["state"] == "running"
        assert data["message"] == "Server info obtained"
        assert "debug" not in data

    async def test_unknown_provider_returns_404(self, client: AsyncClient):
        resp = await client.post("/api/v1/providers/hetzner/get_info", json={"configuration": {}})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "UNKNOWN_PROVIDER"

    async def test_unknown_operation_returns_404(self, client: AsyncClient):
        resp = await client.post(
            "/api/v1/providers/linode/migrate", json={"configuration": LINODE_CONFIGURATION}
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "UNKNOWN_OPERATION"

    async def test_invalid_configuration_returns_422(self, client: AsyncClient):
        resp = await client.post(
            "/api/v1/providers/onapp/get_info",
            json={"configuration": {"hostname": "not a host"}, "params": {"instance_id": "abc"}},
        )
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        locations = [e["loc"][:2] for e in error["data"]["errors"]]
        assert ["body", "configuration"] in locations

    async def test_invalid_params_returns_422(self, client: AsyncClient, vendor):
        resp = await client.post(
            "/api/v1/providers/linode/create",
            json={
                "configuration": LINODE_CONFIGURATION,
                "params": {"email": "not-an-email", "label": "web 01", "location": "us-east", "image": "x"},
            },
        )
        assert resp.status_code == 422
        fields = {e["loc"][2] for e in resp.json()["error"]["data"]["errors"] if len(e["loc"]) > 2}
        assert {"email", "label"} <= fields
        assert vendor.requests == []

    async def test_vendor_failure_returns_502(self, client: AsyncClient, vendor):
        vendor.on(("GET", "/v4/linode/instances/123"), (500, {"errors": [{"reason": "Internal error"}]}))

        resp = await client.post(
            "/api/v1/providers/linode/get_info",
            json={"configuration": LINODE_CONFIGURATION, "params": {"instance_id": "123"}},
        )

        assert resp.status_code == 502
        error = resp.json()["error"]
        assert error["code"] == "PROVIDER_API_ERROR"
        assert error["status"] == 500
        assert error["data"]["provider"] == "linode"
        assert error["data"]["operation"] == "get_info"
        assert "debug" not in error
        assert ErrorResponse.model_validate(resp.json()).error.status == 500

    async def test_unsupported_operation_returns_501(self, client: AsyncClient):
        resp = await client.post(
            "/api/v1/providers/linode/suspend",
            json={"configuration": LINODE_CONFIGURATION, "params": {"instance_id": "123"}},
        )
        assert resp.status_code == 501
        assert resp.json()["error"]["message"] == "Operation not supported"

    async def test_running_resize_rejected_with_409(self, client: AsyncClient, vendor):
        vendor.on(("GET", "/v4/linode/instances/123"), INSTANCE)

        resp = await client.post(
            "/api/v1/providers/linode/resize",
            json={"configuration": LINODE_CONFIGURATION, "params": {"instance_id": "123", "size": "g6-standard-2"}},
        )

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "OPERATION_REJECTED"


class TestHealth:
    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert "version" in body


class TestOpenApi:
    async def test_operation_documents_error_envelope(self, client: AsyncClient):
        resp = await client.get("/openapi.json")
        assert resp.status_code == 200

        responses = resp.json()["paths"]["/api/v1/providers/{provider}/{operation}"]["post"]["responses"]
        for code in ("404", "409", "501", "502"):
            schema = responses[code]["content"]["application/json"]["schema"]
            assert schema["$ref"] == "#/components/schemas/ErrorResponse"
