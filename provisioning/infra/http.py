"""HTTP transport shared by the REST and form-RPC vendor clients."""

import json
import logging
from dataclasses import dataclass, replace
from typing import Any

import httpx

from provisioning.config import settings
from provisioning.core.exceptions import ProviderConnectionError, UnknownResponseError
from provisioning.core.utils import limit_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportConfig:
    """Explicit transport settings handed to every vendor API client.

    ``transport`` lets callers (and tests) swap the network layer, e.g. for an
    ``httpx.MockTransport``.
    """

    connect_timeout: float = settings.http_connect_timeout
    timeout: float = settings.http_timeout
    verify: bool = True
    debug: bool = False
    body_limit: int = settings.error_body_limit
    transport: httpx.AsyncBaseTransport | None = None

    def but(self, **changes: Any) -> "TransportConfig":
        return replace(self, **changes)

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout, connect=self.connect_timeout)


def build_client(
    config: TransportConfig,
    *,
    base_url: str,
    headers: dict[str, str] | None = None,
    auth: httpx.Auth | tuple[str, str] | None = None,
) -> httpx.AsyncClient:
    event_hooks: dict[str, list] = {"request": [], "response": []}
    if config.debug:
        event_hooks["request"].append(_log_request)
        event_hooks["response"].append(_log_response_factory(config.body_limit))

    return httpx.AsyncClient(
        base_url=base_url,
        headers=headers,
        auth=auth,
        timeout=config.timeouts,
        verify=config.verify,
        transport=config.transport,
        event_hooks=event_hooks,
    )


async def _log_request(request: httpx.Request) -> None:
    # Query strings may carry credentials, so only the path is logged
    logger.debug(
        "Vendor request",
        extra={"method": request.method, "url": str(request.url.copy_with(query=None))},
    )


def _log_response_factory(body_limit: int):
    async def _log_response(response: httpx.Response) -> None:
        await response.aread()
        logger.debug(
            "Vendor response",
            extra={
                "status_code": response.status_code,
                "url": str(response.request.url.copy_with(query=None)),
                "body": limit_text(response.text, body_limit),
            },
        )

    return _log_response


def connection_error(
    exc: httpx.TransportError, message: str = "Provider API Connection error"
) -> ProviderConnectionError:
    return ProviderConnectionError(
        message,
        data={"exception": type(exc).__name__, "connection_error": str(exc)},
        debug={"exception": repr(exc)},
    )


def decode_json(body: str, body_limit: int) -> Any:
    """Decode a JSON body, degrading to ``UnknownResponseError`` when it isn't JSON."""
    try:
        return json.loads(body)
    except ValueError as e:
        raise UnknownResponseError(
            debug={"response_body": limit_text(body, body_limit), "exception": str(e)}
        ) from e


def try_decode_json(body: str) -> Any:
    try:
        return json.loads(body)
    except ValueError:
        return None
