from __future__ import annotations

import importlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import cast

import httpx
import structlog

from fixmate_client.config import Config
from fixmate_client.core.http import ApiClient
from fixmate_client.core.modules.notification.api import NotificationsApi
from fixmate_client.core.modules.session.issuer import CredentialIssuer, HttpCredentialIssuer
from fixmate_client.core.modules.storage.storage import JsonFileStorage, KeyValueStorage, MemoryStorage
from fixmate_client.core.modules.storage.store import CredentialStore
from fixmate_client.core.scheduler import AsyncioScheduler, Scheduler

logger = structlog.get_logger(__name__)


class Service:
    """Base class for services sharing the core context."""

    def __init__(self) -> None:
        self._core: Core | None = None

    async def on_start(self) -> None:
        """Initialize service on client startup."""

    async def on_stop(self) -> None:
        """Cleanup service on client shutdown."""

    @property
    def core(self) -> Core:
        """Get the core client context."""
        if self._core is None:
            raise RuntimeError("Core not set for service")
        return self._core

    def set_core(self, core: Core) -> None:
        """Set the core client context."""
        self._core = core


class Services:
    """Service registry that automatically discovers and initializes services."""

    from fixmate_client.core.modules.notification.service import ReadStateService  # noqa: PLC0415
    from fixmate_client.core.modules.poller.service import PollerService  # noqa: PLC0415
    from fixmate_client.core.modules.session.service import SessionService  # noqa: PLC0415
    from fixmate_client.core.modules.toast.service import ToastService  # noqa: PLC0415

    session: SessionService
    read_state: ReadStateService
    toast: ToastService
    poller: PollerService

    def __init__(self) -> None:
        """Initialize all services automatically using service configuration."""
        self._services: list[Service] = []

        # Service configuration: (attribute_name, module_path, class_name)
        # Order matters: session listeners are registered by later services on start
        service_configs = [
            ("session", "fixmate_client.core.modules.session.service", "SessionService"),
            ("read_state", "fixmate_client.core.modules.notification.service", "ReadStateService"),
            ("toast", "fixmate_client.core.modules.toast.service", "ToastService"),
            ("poller", "fixmate_client.core.modules.poller.service", "PollerService"),
        ]

        for attr_name, module_path, class_name in service_configs:
            module = importlib.import_module(module_path)
            service_class = cast(type[Service], getattr(module, class_name))
            service_instance = service_class()
            setattr(self, attr_name, service_instance)
            self._services.append(service_instance)

    def set_core(self, core: Core) -> None:
        """Set core reference for all services."""
        for service in self._services:
            service.set_core(core)

    async def start_all(self) -> None:
        for service in self._services:
            await service.on_start()

    async def stop_all(self) -> None:
        # Reverse order: the poller stops before the session it depends on
        for service in reversed(self._services):
            await service.on_stop()


class Core:
    """Container providing config, storage, transport, scheduler and all service instances."""

    config: Config
    scheduler: Scheduler
    http_client: httpx.AsyncClient
    store: CredentialStore
    issuer: CredentialIssuer
    services: Services
    api: ApiClient
    notifications_api: NotificationsApi

    def __init__(
        self,
        config: Config,
        *,
        issuer: CredentialIssuer | None = None,
        scheduler: Scheduler | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        persistent_storage: KeyValueStorage | None = None,
    ) -> None:
        """Wire the collaborators; every argument besides config may be replaced by a test double."""
        self.config = config
        self.scheduler = scheduler or AsyncioScheduler()
        self.http_client = httpx.AsyncClient(timeout=config.request_timeout, transport=transport)
        if persistent_storage is None:
            persistent_storage = JsonFileStorage(config.storage_path) if config.storage_path else MemoryStorage()
        self.store = CredentialStore(persistent=persistent_storage, tab=MemoryStorage())
        self.issuer = issuer or HttpCredentialIssuer(self.http_client, config.identity_url, self.store)
        self.services = Services()
        self.services.set_core(self)
        self.api = ApiClient(self.http_client, config.api_url, self.services.session)
        self.notifications_api = NotificationsApi(self.api)

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Manage client lifecycle - startup and shutdown."""
        await self.on_start()
        try:
            yield
        finally:
            await self.on_stop()

    async def on_start(self) -> None:
        """Start services, begin credential refresh and, when signed in, polling."""
        await self.services.start_all()
        await self.services.session.initialize()
        if self.services.session.is_authenticated:
            await self.services.poller.start()
        logger.info("client_started", authenticated=self.services.session.is_authenticated)

    async def on_stop(self) -> None:
        """Stop services and close the HTTP client."""
        await self.services.stop_all()
        await self.http_client.aclose()
