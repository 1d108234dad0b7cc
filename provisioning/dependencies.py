from provisioning.config import settings
from provisioning.infra.http import TransportConfig


async def get_transport_config() -> TransportConfig:
    """Dependency that returns the transport settings handed to vendor clients."""
    return TransportConfig(
        connect_timeout=settings.http_connect_timeout,
        timeout=settings.http_timeout,
        body_limit=settings.error_body_limit,
    )
