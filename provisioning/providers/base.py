"""
ServerProvider: the operation contract every vendor adapter implements.

Adapters hold no shared state beyond their injected vendor client. Each public
operation is wrapped by ``provider_operation``, which binds a fresh catalog
cache, logs the call and turns unexpected exceptions into a normalized
``ProvisionError``.
"""

import functools
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar, TypeVar

from pydantic import BaseModel

from provisioning.core.exceptions import OperationRejectedError, ProvisionError, UnsupportedOperationError
from provisioning.infra.http import TransportConfig
from provisioning.providers.resolver import catalog_scope
from provisioning.schemas.common import ProviderAbout
from provisioning.schemas.configuration import ProviderConfiguration
from provisioning.schemas.connection import ConnectionResult
from provisioning.schemas.server import (
    ChangeRootPasswordParams,
    CreateParams,
    EmptyResult,
    ReinstallParams,
    ResizeParams,
    ResultData,
    ServerIdentifierParams,
    ServerInfoResult,
)

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=ResultData)

RESIZE_WHILE_RUNNING = "Resize not available while server is running"

# Operation name -> params model accepted by it
OPERATIONS: dict[str, type[BaseModel]] = {
    "create": CreateParams,
    "get_info": ServerIdentifierParams,
    "get_connection": ServerIdentifierParams,
    "change_root_password": ChangeRootPasswordParams,
    "resize": ResizeParams,
    "reinstall": ReinstallParams,
    "reboot": ServerIdentifierParams,
    "shutdown": ServerIdentifierParams,
    "power_on": ServerIdentifierParams,
    "terminate": ServerIdentifierParams,
    "suspend": ServerIdentifierParams,
    "unsuspend": ServerIdentifierParams,
    "attach_recovery_iso": ServerIdentifierParams,
    "detach_recovery_iso": ServerIdentifierParams,
}

READ_OPERATIONS = frozenset({"get_info", "get_connection"})


def provider_operation(func: Callable[[Any, Any], Awaitable[R]]) -> Callable[[Any, Any], Awaitable[R]]:
    operation = func.__name__

    @functools.wraps(func)
    async def wrapper(self: "ServerProvider", params: Any) -> R:
        context: dict[str, Any] = {"provider": self.key, "operation": operation}
        instance_id = getattr(params, "instance_id", None)
        if instance_id is not None:
            context["instance_id"] = instance_id

        log = logger.debug if operation in READ_OPERATIONS else logger.info
        log("Provider operation", extra=context)

        with catalog_scope():
            try:
                result = await func(self, params)
            except OperationRejectedError as e:
                logger.warning("Provider operation rejected", extra={**context, "detail": e.message})
                raise e.with_data({**context, **e.data})
            except ProvisionError as e:
                logger.warning(
                    "Provider operation failed",
                    extra={**context, "error_code": e.error_code, "vendor_code": e.code, "detail": e.message},
                )
                raise e.with_data({**context, **e.data})
            except Exception as e:
                logger.error("Unexpected provider error", exc_info=True, extra=context)
                raise ProvisionError(
                    "Unexpected Provider Error",
                    data=context,
                    debug={"exception": type(e).__name__, "detail": str(e)},
                ) from e

        log("Provider operation complete", extra={**context, "detail": result.message})
        return result

    return wrapper


def ensure_resizable(is_running: bool, params: ResizeParams) -> None:
    """Refuse to resize a running server unless the caller opted in."""
    if is_running and not params.resize_running:
        raise OperationRejectedError(RESIZE_WHILE_RUNNING)


class ServerProvider(ABC):
    """Contract for creating and managing servers on one vendor platform.

    Subclasses set ``key`` and ``configuration_class`` and build their vendor
    client from the validated configuration and a ``TransportConfig``.
    """

    key: ClassVar[str]
    configuration_class: ClassVar[type[ProviderConfiguration]]

    def __init__(self, configuration: ProviderConfiguration, transport: TransportConfig | None = None) -> None:
        self.configuration = configuration
        self.transport = transport or TransportConfig()

    @classmethod
    @abstractmethod
    def about(cls) -> ProviderAbout: ...

    async def aclose(self) -> None:
        client = getattr(self, "client", None)
        if client is not None:
            await client.aclose()

    async def __aenter__(self) -> "ServerProvider":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # --- Required operations ---

    @abstractmethod
    async def create(self, params: CreateParams) -> ServerInfoResult: ...

    @abstractmethod
    async def get_info(self, params: ServerIdentifierParams) -> ServerInfoResult: ...

    @abstractmethod
    async def get_connection(self, params: ServerIdentifierParams) -> ConnectionResult: ...

    @abstractmethod
    async def change_root_password(self, params: ChangeRootPasswordParams) -> ServerInfoResult: ...

    @abstractmethod
    async def resize(self, params: ResizeParams) -> ServerInfoResult: ...

    @abstractmethod
    async def reinstall(self, params: ReinstallParams) -> ServerInfoResult: ...

    @abstractmethod
    async def reboot(self, params: ServerIdentifierParams) -> ServerInfoResult: ...

    @abstractmethod
    async def shutdown(self, params: ServerIdentifierParams) -> ServerInfoResult: ...

    @abstractmethod
    async def power_on(self, params: ServerIdentifierParams) -> ServerInfoResult: ...

    @abstractmethod
    async def terminate(self, params: ServerIdentifierParams) -> EmptyResult: ...

    # --- Optional operations ---

    @provider_operation
    async def suspend(self, params: ServerIdentifierParams) -> ServerInfoResult:
        raise UnsupportedOperationError()

    @provider_operation
    async def unsuspend(self, params: ServerIdentifierParams) -> ServerInfoResult:
        raise UnsupportedOperationError()

    @provider_operation
    async def attach_recovery_iso(self, params: ServerIdentifierParams) -> ServerInfoResult:
        raise UnsupportedOperationError()

    @provider_operation
    async def detach_recovery_iso(self, params: ServerIdentifierParams) -> ServerInfoResult:
        raise UnsupportedOperationError()
