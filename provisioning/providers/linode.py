import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager

from provisioning.core.exceptions import NotFoundError, OperationRejectedError, ProviderApiError
from provisioning.core.utils import format_date, generate_password, ucfirst
from provisioning.infra.http import TransportConfig
from provisioning.infra.linode.client import LinodeClient
from provisioning.infra.linode.records import LinodeDisk, LinodeImage, LinodeInstance, LinodeRegion, LinodeType
from provisioning.providers.base import ServerProvider, ensure_resizable, provider_operation
from provisioning.providers.resolver import cached_catalog, is_vendor_not_found, resolve
from provisioning.schemas.common import ProviderAbout
from provisioning.schemas.configuration import LinodeConfiguration
from provisioning.schemas.connection import ConnectionResult
from provisioning.schemas.server import (
    ChangeRootPasswordParams,
    CreateParams,
    EmptyResult,
    ReinstallParams,
    ResizeParams,
    ServerIdentifierParams,
    ServerInfoResult,
)

logger = logging.getLogger(__name__)

IMAGE_ID = re.compile(r"[a-z]+/[a-z0-9\-\.]+")
TYPE_ID = re.compile(r"^[a-z0-9\-]+$")
ALREADY_BOOTED = re.compile(r"Linode \d+ already booted", re.IGNORECASE)


def server_message(message: str) -> str:
    """Rephrase a Linode API reason in terms of a generic server."""
    return ucfirst(re.sub(r"linode( \d+)?", "server", message, flags=re.IGNORECASE))


def api_failure(action: str, error: ProviderApiError) -> ProviderApiError:
    if error.data.get("errors"):
        message = f"{action} failed: [API Error] {server_message(error.message)}"
    else:
        message = f"{action} failed: Unknown error"
    return ProviderApiError(message, code=error.code, data=error.data, debug=error.debug)


@contextmanager
def linode_errors(action: str) -> Iterator[None]:
    """Re-raise vendor API errors as ``"<Action> failed: ..."``."""
    try:
        yield
    except ProviderApiError as e:
        raise api_failure(action, e) from e


class LinodeProvider(ServerProvider):
    key = "linode"
    configuration_class = LinodeConfiguration

    def __init__(
        self,
        configuration: LinodeConfiguration,
        transport: TransportConfig | None = None,
        client: LinodeClient | None = None,
    ) -> None:
        super().__init__(configuration, transport)
        self.client = client or LinodeClient(configuration, self.transport)

    @classmethod
    def about(cls) -> ProviderAbout:
        return ProviderAbout(
            key=cls.key,
            name="Linode",
            description="Deploy and manage Linode instances",
            logo_url="https://api.upmind.io/images/logos/provision/linode-logo@2x.png",
        )

    @provider_operation
    async def create(self, params: CreateParams) -> ServerInfoResult:
        if not params.size:
            raise OperationRejectedError("Size parameter is required")

        image = await self._find_image(params.image)
        linode_type = await self._find_type(params.size)
        region = await self._find_region(params.location)

        with linode_errors("Create"):
            instance = await self.client.create_instance(
                label=params.label,
                region=region.id,
                type=linode_type.id,
                image=image.id,
                root_pass=params.root_password or generate_password(),
                booted=True,
            )

        return self._info(instance).with_message("Server created successfully")

    @provider_operation
    async def get_info(self, params: ServerIdentifierParams) -> ServerInfoResult:
        return await self._get_info(params.instance_id, "Server info obtained")

    @provider_operation
    async def get_connection(self, params: ServerIdentifierParams) -> ConnectionResult:
        instance = await self._get_instance(params.instance_id)
        if not instance.ipv4:
            raise OperationRejectedError("Server has no IP address", data={"instance_id": params.instance_id})
        return ConnectionResult.ssh(f"ssh root@{instance.ipv4[0]}")

    @provider_operation
    async def change_root_password(self, params: ChangeRootPasswordParams) -> ServerInfoResult:
        with linode_errors("Change root password"):
            disks = await self.client.list_disks(params.instance_id)

        disk = next((d for d in disks if d.filesystem != LinodeDisk.SWAP), None)
        if disk is None:
            raise OperationRejectedError("No disks available")

        with linode_errors("Change root password"):
            await self.client.reset_disk_password(params.instance_id, disk.id, params.root_password)

        return await self._get_info(params.instance_id, "Root password changed")

    @provider_operation
    async def resize(self, params: ResizeParams) -> ServerInfoResult:
        if not params.size:
            raise OperationRejectedError("Size parameter is required")

        instance = await self._get_instance(params.instance_id)
        ensure_resizable(instance.status == LinodeInstance.RUNNING, params)

        linode_type = await self._find_type(params.size)
        with linode_errors("Resize"):
            await self.client.resize(params.instance_id, linode_type.id)

        return await self._get_info(params.instance_id, "Server is resizing")

    @provider_operation
    async def reinstall(self, params: ReinstallParams) -> ServerInfoResult:
        image = await self._find_image(params.image)
        with linode_errors("Reinstall"):
            instance = await self.client.rebuild(
                params.instance_id, image.id, params.root_password or generate_password()
            )
        return self._info(instance).with_message("Server is rebuilding")

    @provider_operation
    async def reboot(self, params: ServerIdentifierParams) -> ServerInfoResult:
        with linode_errors("Reboot"):
            await self.client.reboot(params.instance_id)
        return await self._get_info(params.instance_id, "Server is rebooting")

    @provider_operation
    async def shutdown(self, params: ServerIdentifierParams) -> ServerInfoResult:
        info = await self._get_info(params.instance_id, "Virtual server already off")
        if info.state == LinodeInstance.OFFLINE:
            return info

        with linode_errors("Shutdown"):
            await self.client.shutdown(params.instance_id)
        return await self._get_info(params.instance_id, "Server is shutting down")

    @provider_operation
    async def power_on(self, params: ServerIdentifierParams) -> ServerInfoResult:
        info = await self._get_info(params.instance_id, "Server already running")
        if info.state == LinodeInstance.RUNNING:
            return info

        try:
            await self.client.boot(params.instance_id)
        except ProviderApiError as e:
            if not ALREADY_BOOTED.search(e.message):
                raise api_failure("Power on", e) from e
            logger.info("Server already booted", extra={"instance_id": params.instance_id})
            return await self._get_info(params.instance_id, "Server already running")

        return await self._get_info(params.instance_id, "Server is booting")

    @provider_operation
    async def terminate(self, params: ServerIdentifierParams) -> EmptyResult:
        with linode_errors("Terminate"):
            await self.client.delete_instance(params.instance_id)
        return EmptyResult(message="Server permanently deleted")

    # --- Helpers ---

    async def _get_instance(self, instance_id: str) -> LinodeInstance:
        with linode_errors("Get info"):
            return await self.client.get_instance(instance_id)

    async def _get_info(self, instance_id: str, message: str) -> ServerInfoResult:
        return self._info(await self._get_instance(instance_id)).with_message(message)

    def _info(self, instance: LinodeInstance) -> ServerInfoResult:
        specs = instance.raw.get("specs") or {}
        return ServerInfoResult(
            instance_id=str(instance.id),
            state=instance.status,
            label=instance.label,
            hostname=None,
            ip_address=instance.ipv4[0] if instance.ipv4 else None,
            image=instance.image or "unknown",
            size=instance.type or "unknown",
            memory_mb=specs.get("memory"),
            cpu_cores=specs.get("vcpus"),
            disk_mb=specs.get("disk"),
            location=instance.region,
            node=instance.hypervisor or "unknown",
            virtualization_type=instance.hypervisor or "unknown",
            created_at=format_date(instance.created),
            updated_at=format_date(instance.updated),
            message=f"Server is {instance.status.replace('_', ' ')}",
        )

    async def _find_image(self, search: str) -> LinodeImage:
        return await resolve(
            search,
            by_id=self.client.get_image,
            id_pattern=IMAGE_ID,
            catalog=lambda: cached_catalog(("images", search), lambda: self.client.list_images(label=search)),
            labels=lambda image: (image.id, image.label),
            not_found="Image not found",
            search_key="image",
        )

    async def _find_type(self, search: str) -> LinodeType:
        return await resolve(
            search,
            by_id=self.client.get_type,
            id_pattern=TYPE_ID,
            catalog=lambda: cached_catalog("types", self.client.list_types),
            labels=lambda linode_type: (linode_type.id, linode_type.label),
            not_found="Type not found",
            search_key="type",
        )

    async def _find_region(self, search: str) -> LinodeRegion:
        try:
            return await self.client.get_region(search)
        except ProviderApiError as e:
            if is_vendor_not_found(e):
                raise NotFoundError("Region not found", {"region": search}) from e
            raise
