"""
Notifier factory.

This module maps an endpoint's kind to the notifier variant that serves it and
parses the endpoint's stored configuration for that variant.
"""

import asyncio
from collections.abc import Awaitable, Callable

import httpx
from pydantic import BaseModel, ValidationError

from ..config import DeliveryConfig
from ..exceptions import DeliveryError
from ..models import DiscordConfig, Endpoint, EndpointKind, PushoverConfig
from .base import Notifier
from .discord import DiscordNotifier
from .pushover import PushoverNotifier

NOTIFIER_REGISTRY: dict[EndpointKind, tuple[type[Notifier], type[BaseModel]]] = {
    EndpointKind.DISCORD: (DiscordNotifier, DiscordConfig),
    EndpointKind.PUSHOVER: (PushoverNotifier, PushoverConfig),
}


def build_notifier(
    endpoint: Endpoint,
    client: httpx.AsyncClient,
    delivery_config: DeliveryConfig | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Notifier:
    """
    Build the notifier for an endpoint.

    Args:
        endpoint: Endpoint row
        client: Shared HTTP client
        delivery_config: Retry settings, defaults when omitted
        sleep: Awaitable used between delivery attempts

    Returns:
        A notifier bound to the endpoint's configuration

    Raises:
        DeliveryError: Permanent, if the stored configuration is invalid
    """
    delivery_config = delivery_config or DeliveryConfig()
    notifier_cls, config_cls = NOTIFIER_REGISTRY[endpoint.kind]

    try:
        config = config_cls.model_validate_json(endpoint.config_json)
    except ValidationError as e:
        raise DeliveryError(
            f"Invalid {endpoint.kind.value} configuration for endpoint "
            f"{endpoint.id}: {e}",
            transient=False,
            endpoint_id=endpoint.id,
        ) from e

    return notifier_cls(
        client,
        config,
        endpoint_id=endpoint.id,
        max_attempts=delivery_config.max_attempts,
        base_delay=delivery_config.base_delay_seconds,
        sleep=sleep,
    )
