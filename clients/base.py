from __future__ import annotations

from typing import Any, Callable, Optional, TypeVar

from pydantic import ValidationError as SchemaValidationError

from models.records import Endpoint, ServiceDescriptor
from rpc.bridge import SyncBridge
from rpc.channel import ServiceChannel
from rpc.discovery import ServiceDiscovery, resolve_endpoint
from services.errors import ValidationError
from settings import Settings, get_settings

T = TypeVar("T")


class ServiceClient:
    """Shared plumbing for the domain clients.

    The endpoint is resolved once here (discovery, then static fallback) and
    never changes for the lifetime of the client.
    """

    descriptor: ServiceDescriptor

    def __init__(
        self,
        endpoint: Optional[Endpoint] = None,
        *,
        settings: Optional[Settings] = None,
        discovery: Optional[ServiceDiscovery] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.endpoint = endpoint or resolve_endpoint(self.descriptor, self.settings, discovery)
        self.channel = ServiceChannel(self.endpoint, grace=self.settings.shutdown_grace_seconds)
        self.bridge = SyncBridge(self.channel)

    def close(self) -> None:
        self.channel.close()

    def __enter__(self: T) -> T:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def build_message(factory: Callable[..., T], **fields: Any) -> T:
    """Construct a wire message, turning schema errors into :class:`ValidationError`."""
    try:
        return factory(**fields)
    except SchemaValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        raise ValidationError(problems) from exc


def parse_number(raw: Any, label: str) -> float:
    try:
        return float(str(raw).strip())
    except ValueError as exc:
        raise ValidationError(f"{label} {raw!r} is not a number.") from exc
