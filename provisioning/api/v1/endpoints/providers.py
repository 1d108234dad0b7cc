import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from provisioning.config import settings
from provisioning.core.exceptions import UnknownOperationError
from provisioning.dependencies import get_transport_config
from provisioning.infra.http import TransportConfig
from provisioning.providers.base import OPERATIONS
from provisioning.providers.registry import build_provider, list_providers
from provisioning.schemas.common import ErrorResponse, ProviderAbout, ProvisionRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/providers", tags=["providers"])

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    code: {"model": ErrorResponse} for code in (404, 409, 422, 501, 502)
}


@contextmanager
def validation_errors(location: str) -> Iterator[None]:
    """Report pydantic errors as request errors located under ``body.<location>``."""
    try:
        yield
    except ValidationError as e:
        raise RequestValidationError(
            [{**error, "loc": ("body", location, *error["loc"])} for error in e.errors()]
        ) from e


@router.get(
    "",
    response_model=list[ProviderAbout],
    summary="List available provisioning providers",
)
async def get_providers() -> list[ProviderAbout]:
    return list_providers()


@router.post(
    "/{provider}/{operation}",
    summary="Run a provider operation",
    responses=ERROR_RESPONSES,
)
async def run_operation(
    provider: str,
    operation: str,
    payload: ProvisionRequest,
    transport: Annotated[TransportConfig, Depends(get_transport_config)],
) -> dict[str, Any]:
    params_model = OPERATIONS.get(operation)
    if params_model is None:
        raise UnknownOperationError(operation)

    with validation_errors("configuration"):
        instance = build_provider(provider, payload.configuration, transport)

    async with instance:
        with validation_errors("params"):
            params = params_model.model_validate(payload.params)
        result = await getattr(instance, operation)(params)

    content = result.model_dump(mode="json")
    if settings.debug:
        content["debug"] = result.debug
    return content
