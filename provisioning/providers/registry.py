from typing import Any

from provisioning.core.exceptions import UnknownProviderError
from provisioning.infra.http import TransportConfig
from provisioning.providers.base import ServerProvider
from provisioning.providers.linode import LinodeProvider
from provisioning.providers.onapp import OnAppProvider
from provisioning.providers.solusvm import SolusVMProvider
from provisioning.providers.virtfusion import VirtFusionProvider
from provisioning.providers.virtualizor import VirtualizorProvider
from provisioning.providers.virtuozzo import VirtuozzoProvider
from provisioning.schemas.common import ProviderAbout

PROVIDERS: dict[str, type[ServerProvider]] = {
    provider.key: provider
    for provider in (
        LinodeProvider,
        OnAppProvider,
        SolusVMProvider,
        VirtFusionProvider,
        VirtualizorProvider,
        VirtuozzoProvider,
    )
}


def get_provider_class(key: str) -> type[ServerProvider]:
    try:
        return PROVIDERS[key]
    except KeyError:
        raise UnknownProviderError(key) from None


def list_providers() -> list[ProviderAbout]:
    return [provider.about() for provider in PROVIDERS.values()]


def build_provider(
    key: str, configuration: dict[str, Any], transport: TransportConfig | None = None
) -> ServerProvider:
    """Validate a raw configuration mapping and build the adapter registered under ``key``.

    Raises ``UnknownProviderError`` for an unregistered key and pydantic's
    ``ValidationError`` for a bad configuration.
    """
    provider_class = get_provider_class(key)
    return provider_class(provider_class.configuration_class.model_validate(configuration), transport)
