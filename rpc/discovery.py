"""Zeroconf lookup and advertisement of service endpoints."""

from __future__ import annotations

import logging
import socket
from typing import Callable, Optional

from zeroconf import Error as ZeroconfError
from zeroconf import ServiceInfo, Zeroconf

from models.records import Endpoint, ServiceDescriptor
from settings import Settings

logger = logging.getLogger(__name__)

ZeroconfFactory = Callable[[], Zeroconf]


class ServiceDiscovery:
    """Resolves a service name to an :class:`Endpoint` over mDNS."""

    def __init__(self, timeout_ms: int = 5000, zeroconf_factory: ZeroconfFactory = Zeroconf) -> None:
        self.timeout_ms = timeout_ms
        self._zeroconf_factory = zeroconf_factory

    def lookup(self, descriptor: ServiceDescriptor) -> Optional[Endpoint]:
        zeroconf = self._zeroconf_factory()
        try:
            info = zeroconf.get_service_info(
                descriptor.service_type, descriptor.qualified_name, timeout=self.timeout_ms
            )
        finally:
            zeroconf.close()

        if info is None:
            return None
        addresses = info.parsed_addresses()
        if not addresses or not info.port:
            return None
        return Endpoint(service_name=descriptor.instance_name, host=addresses[0], port=info.port)

    def resolve(self, descriptor: ServiceDescriptor, fallback: Endpoint) -> Endpoint:
        """Return the advertised endpoint, or ``fallback`` when lookup fails."""
        try:
            endpoint = self.lookup(descriptor)
        except (OSError, ZeroconfError) as exc:
            logger.warning(
                "Discovery lookup failed, using static address",
                extra={"service": descriptor.instance_name, "reason": str(exc)},
            )
            return fallback

        if endpoint is None:
            logger.warning(
                "Service not advertised, using static address",
                extra={"service": descriptor.instance_name, "host": fallback.host, "port": fallback.port},
            )
            return fallback

        logger.info(
            "Discovered service",
            extra={"service": descriptor.instance_name, "host": endpoint.host, "port": endpoint.port},
        )
        return endpoint


def resolve_endpoint(
    descriptor: ServiceDescriptor,
    settings: Settings,
    discovery: Optional[ServiceDiscovery] = None,
) -> Endpoint:
    fallback = settings.fallback_endpoint(descriptor)
    if discovery is None:
        if not settings.discovery_enabled:
            return fallback
        discovery = ServiceDiscovery(timeout_ms=settings.discovery_timeout_ms)
    return discovery.resolve(descriptor, fallback)


class ServiceAdvertiser:
    """Registers a running service so clients on the local network can find it."""

    def __init__(
        self,
        descriptor: ServiceDescriptor,
        port: int,
        host: Optional[str] = None,
        zeroconf_factory: ZeroconfFactory = Zeroconf,
    ) -> None:
        self.descriptor = descriptor
        self.port = port
        self.host = host or _local_address()
        self._zeroconf_factory = zeroconf_factory
        self._zeroconf: Optional[Zeroconf] = None
        self._info: Optional[ServiceInfo] = None

    def register(self) -> None:
        if self._zeroconf is not None:
            return
        info = ServiceInfo(
            self.descriptor.service_type,
            self.descriptor.qualified_name,
            addresses=[socket.inet_aton(self.host)],
            port=self.port,
            properties={"description": self.descriptor.description},
        )
        zeroconf = self._zeroconf_factory()
        zeroconf.register_service(info)
        self._zeroconf = zeroconf
        self._info = info
        logger.info(
            "Advertised service",
            extra={"service": self.descriptor.instance_name, "host": self.host, "port": self.port},
        )

    def unregister(self) -> None:
        zeroconf, info = self._zeroconf, self._info
        self._zeroconf = None
        self._info = None
        if zeroconf is None:
            return
        try:
            if info is not None:
                zeroconf.unregister_service(info)
        finally:
            zeroconf.close()


def _local_address() -> str:
    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError:
        return "127.0.0.1"
