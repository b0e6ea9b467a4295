"""Service process: binds a servicer to a gRPC server and advertises it."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

import grpc
from zeroconf import Error as ZeroconfError

from models.records import CLIMATE, LIGHTING, SOLAR, ServiceDescriptor
from rpc.discovery import ServiceAdvertiser
from rpc.methods import generic_handler
from servers.climate import ThermostatServicer
from servers.lighting import LightingServicer
from servers.solar import SolarServicer
from services.context import ServiceContext

logger = logging.getLogger(__name__)

SERVICERS: Dict[str, Callable[[ServiceContext], Any]] = {
    CLIMATE.domain: ThermostatServicer,
    SOLAR.domain: SolarServicer,
    LIGHTING.domain: LightingServicer,
}

AdvertiserFactory = Callable[[ServiceDescriptor, int], ServiceAdvertiser]


class ServiceProcess:
    """One domain service: servicer + gRPC server + optional mDNS advertisement."""

    def __init__(
        self,
        descriptor: ServiceDescriptor,
        context: ServiceContext,
        *,
        host: str = "0.0.0.0",
        port: Optional[int] = None,
        workers: Optional[int] = None,
        advertise: bool = True,
        advertiser_factory: AdvertiserFactory = ServiceAdvertiser,
    ) -> None:
        self.descriptor = descriptor
        self.context = context
        self.host = host
        self.requested_port = descriptor.default_port if port is None else port
        self.workers = workers or context.settings.server_workers
        self.advertise = advertise
        self._advertiser_factory = advertiser_factory
        self._advertiser: Optional[ServiceAdvertiser] = None
        self._server: Optional[grpc.Server] = None
        self.port: Optional[int] = None

    def start(self) -> int:
        """Bind, start serving and advertise; returns the bound port."""
        if self._server is not None:
            raise RuntimeError(f"{self.descriptor.instance_name} is already running.")

        servicer = SERVICERS[self.descriptor.domain](self.context)
        server = grpc.server(ThreadPoolExecutor(max_workers=self.workers))
        server.add_generic_rpc_handlers((generic_handler(self.descriptor, servicer),))
        address = f"{self.host}:{self.requested_port}"
        bound = server.add_insecure_port(address)
        if bound == 0:
            raise RuntimeError(f"Could not bind {address}")
        server.start()
        self._server = server
        self.port = bound
        logger.info(
            "Service started",
            extra={"service": self.descriptor.instance_name, "host": self.host, "port": bound},
        )

        if self.advertise:
            advertiser = self._advertiser_factory(self.descriptor, bound)
            try:
                advertiser.register()
            except (OSError, ZeroconfError) as exc:
                logger.warning(
                    "Advertising failed; clients must use the static address",
                    extra={"service": self.descriptor.instance_name, "reason": str(exc)},
                )
            else:
                self._advertiser = advertiser
        return bound

    def stop(self, grace: Optional[float] = None) -> None:
        """Withdraw the advertisement and drain in-flight calls for ``grace`` seconds."""
        if self._advertiser is not None:
            self._advertiser.unregister()
            self._advertiser = None

        server, self._server = self._server, None
        if server is None:
            return
        window = self.context.settings.shutdown_grace_seconds if grace is None else grace
        server.stop(window).wait()
        logger.info("Service stopped", extra={"service": self.descriptor.instance_name})

    def wait(self, timeout: Optional[float] = None) -> bool:
        if self._server is None:
            return True
        return self._server.wait_for_termination(timeout)

    def __enter__(self) -> ServiceProcess:
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()
